"""Domain models for the shareholder registry importer.

This package contains all domain model classes used throughout the application:
configuration, the import session snapshot and its per-file statuses, row
batches, error records and aggregated results.
"""

from .config_models import EndpointConfig, ImportConfig, ImportSettings, ReaderConfig, ValidationPolicy
from .file_status import FileState, FileStatus
from .import_session import ImportSession, SessionStatus
from .row_data import RowBatch, ShareholderRow, SkippedRow

__all__ = [
    # Configuration models
    "EndpointConfig",
    "ImportConfig",
    "ImportSettings",
    "ReaderConfig",
    "ValidationPolicy",
    # Session models
    "FileState",
    "FileStatus",
    "ImportSession",
    "SessionStatus",
    # Row models
    "RowBatch",
    "ShareholderRow",
    "SkippedRow",
]
