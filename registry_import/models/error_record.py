from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for error logging.

Structured error record written as JSON Lines by ErrorLogBuffer. The key set
is fixed: timestamp, file, batch, error_type, message. batch=-1 is a sentinel
for file-level errors where no specific batch applies (validation, decoding,
session finalization).
"""

__all__ = [
    "ErrorRecord",
    "FILE_LEVEL",
]

FILE_LEVEL = -1


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: Registry file name being processed
        batch: 1-based batch number. Use -1 for file-level errors
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: Endpoint / parser error message or description
    """
    timestamp: str  # ISO8601 UTC
    file: str
    batch: int
    error_type: str  # UPPER_SNAKE
    message: str

    @staticmethod
    def create(file: str, batch: int, error_type: str, message: str) -> ErrorRecord:
        """Create a new ErrorRecord with current UTC timestamp."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            batch=batch,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)
