from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

"""FileStatus domain model and FileState enum for the registry importer.

A FileStatus is the per-file record inside an ImportSession. Instances are
immutable; the orchestrator replaces them (dataclasses.replace) as the file
moves through its lifecycle so every published snapshot stays consistent.
"""

__all__ = [
    "FileState",
    "FileStatus",
]


class FileState(Enum):
    """Per-file lifecycle.

    State transitions: pending → processing → (completed | error)

    - PENDING: File admitted to the session, not yet started
    - PROCESSING: File is being decoded / submitted (at most one at a time)
    - COMPLETED: Every batch of the file was accepted by the endpoint
    - ERROR: Decoding failed or a batch exhausted its retries
    """
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (FileState.COMPLETED, FileState.ERROR)


@dataclass(frozen=True)
class FileStatus:
    """Status of one admitted file within an import session."""
    name: str                               # File name as shown to the user
    status: FileState = FileState.PENDING
    rows: int | None = None                 # Rows accepted by the endpoint
    error: str | None = None                # Failure reason (truncated for display by callers)
    skipped_rows: int = 0                   # Decoded rows dropped during normalization
    total_batches: int = 0
    completed_batches: int = 0

    @property
    def batch_fraction(self) -> float:
        if self.total_batches <= 0:
            return 0.0
        return self.completed_batches / self.total_batches
