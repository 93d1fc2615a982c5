from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .file_status import FileState, FileStatus

"""ImportSession snapshot model.

One ImportSession describes a single user-initiated bulk import run. The
orchestrator is its only writer; observers receive immutable snapshots.

State transitions: idle → processing → (completed | error) → idle (reset)
"""

__all__ = [
    "SessionStatus",
    "ImportSession",
]


class SessionStatus(Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.ERROR)


@dataclass(frozen=True)
class ImportSession:
    """Snapshot of an import run.

    Attributes:
        session_id: Identifier sent with every endpoint call ("" while idle)
        year: Target fiscal year (None while idle)
        files: FileStatus entries in admission order
        status: Overall session status
        progress: Overall progress percentage (0-100, 100 only when completed)
        current_file_index: 1-based index of the file being processed, 0 when idle
        total_processed_rows: Rows of fully completed files
        error: Session-level error (finalization failure only)
        errors: One "<file>: <message>" entry per failed file
        summary: Aggregation result returned by the finish call
    """
    session_id: str = ""
    year: int | None = None
    files: tuple[FileStatus, ...] = ()
    status: SessionStatus = SessionStatus.IDLE
    progress: float = 0.0
    current_file_index: int = 0
    total_processed_rows: int = 0
    error: str | None = None
    errors: tuple[str, ...] = ()
    summary: dict[str, Any] | None = None

    @classmethod
    def idle(cls) -> ImportSession:
        return cls()

    @property
    def total_files(self) -> int:
        return len(self.files)

    @property
    def current_file(self) -> str | None:
        if 1 <= self.current_file_index <= len(self.files):
            return self.files[self.current_file_index - 1].name
        return None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def completed_files(self) -> int:
        return sum(1 for f in self.files if f.status == FileState.COMPLETED)

    @property
    def failed_files(self) -> int:
        return sum(1 for f in self.files if f.status == FileState.ERROR)
