from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from ..models.config_models import ValidationPolicy

"""File admission checks run before a file may join an import session.

Each candidate is inspected independently (size, extension, readability);
a batch of candidates is split into admitted and rejected files so one bad
file never blocks the others. Pure inspection: nothing is read beyond a
single byte used to prove the file can be opened.
"""

__all__ = [
    "FileValidationError",
    "FileTooLarge",
    "InvalidFileType",
    "UnreadableFile",
    "ValidationReport",
    "validate_file",
    "validate_files",
]


class FileValidationError(Exception):
    """Base class for admission failures."""

    def __init__(self, path: Path, message: str) -> None:
        super().__init__(message)
        self.path = path


class FileTooLarge(FileValidationError):
    pass


class InvalidFileType(FileValidationError):
    pass


class UnreadableFile(FileValidationError):
    pass


@dataclass
class ValidationReport:
    admitted: list[Path] = field(default_factory=list)
    rejected: list[tuple[Path, FileValidationError]] = field(default_factory=list)

    @property
    def messages(self) -> list[str]:
        return [f"{p.name}: {e}" for p, e in self.rejected]


def _format_mb(size: int) -> str:
    return f"{size / 1024 / 1024:.1f}MB"


def validate_file(path: Path, policy: ValidationPolicy) -> Path:
    """Admit a single file or raise the matching FileValidationError.

    Checks run in order: readability (exists, regular file), extension, size,
    and finally that the file can actually be opened.
    """
    allowed = policy.normalized_extensions
    if not path.exists() or not path.is_file():
        raise UnreadableFile(path, f"file not found or not a regular file: {path.name}")

    suffix = path.suffix.lower()
    if suffix not in allowed:
        raise InvalidFileType(
            path,
            f"invalid file type '{suffix or '<none>'}' for {path.name} "
            f"(allowed: {', '.join(sorted(allowed))})",
        )

    try:
        size = path.stat().st_size
    except OSError as e:
        raise UnreadableFile(path, f"cannot stat {path.name}: {e}") from e
    if size > policy.max_file_bytes:
        raise FileTooLarge(
            path,
            f"file too large: {path.name} is {_format_mb(size)} "
            f"(max {_format_mb(policy.max_file_bytes)})",
        )

    try:
        with path.open("rb") as f:
            f.read(1)
    except OSError as e:
        raise UnreadableFile(path, f"cannot open {path.name}: {e}") from e

    return path


def validate_files(paths: Iterable[Path], policy: ValidationPolicy) -> ValidationReport:
    """Validate candidates independently, preserving the admission order."""
    report = ValidationReport()
    for p in paths:
        try:
            report.admitted.append(validate_file(p, policy))
        except FileValidationError as e:
            report.rejected.append((p, e))
    return report
