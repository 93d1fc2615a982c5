from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable, Collection, Sequence
from dataclasses import replace
from pathlib import Path
from typing import Any

from ..logging.error_log import ErrorLogBuffer
from ..models.config_models import ImportSettings, ReaderConfig
from ..models.error_record import FILE_LEVEL, ErrorRecord
from ..models.file_status import FileState, FileStatus
from ..models.import_session import ImportSession, SessionStatus
from ..models.processing_result import BatchStatsAccumulator, FileStat
from ..models.row_data import RowBatch, SkippedRow
from ..registry.reader import RegistryDecodeError, load_batches
from .endpoint import BatchEndpoint, EndpointError
from .progress import Listener, SnapshotChannel, compute_progress
from .retry import RetryExhaustedError, RetryPolicy, SleepFn

"""Sequential import orchestration.

SequentialImportOrchestrator drives one ImportSession at a time:

1. idle → processing on process_files(files, year)
2. files are handled strictly in admission order; each file is decoded into
   row batches which are submitted one by one through the retry policy
3. a file whose batch exhausts its retries (or that cannot be decoded) is
   marked error and the run continues with the next file
4. a fixed pause separates consecutive files
5. a single finish_session call triggers server-side aggregation; its
   failure is the only way the session ends in error

Every state change is published as an immutable snapshot on the
orchestrator's SnapshotChannel. Instances are created per import surface
and injected with their endpoint; there is no module-level instance.
"""

__all__ = [
    "ProcessingError",
    "SessionStateError",
    "FileProcessingError",
    "SessionFinalizationError",
    "SequentialImportOrchestrator",
    "scan_registry_files",
]

logger = logging.getLogger(__name__)

SESSION_LEVEL_FILE = "<SESSION>"

Reader = Callable[[Path, int], tuple[list[RowBatch], list[SkippedRow]]]


class ProcessingError(Exception):
    """Base exception for processing errors."""
    pass


class SessionStateError(ProcessingError):
    """Raised when an operation is not allowed in the current session state."""


class FileProcessingError(ProcessingError):
    """A file could not be fully imported (recorded on its FileStatus, never raised to callers)."""

    def __init__(self, message: str, error_type: str = "FILE_PROCESSING_ERROR", batch: int = FILE_LEVEL) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.batch = batch


class SessionFinalizationError(ProcessingError):
    """The finish/aggregation call failed; the session ends in error."""


def _default_reader(reader_config: ReaderConfig) -> Reader:
    def read(path: Path, batch_size: int) -> tuple[list[RowBatch], list[SkippedRow]]:
        return load_batches(path, batch_size, record_xpath=reader_config.record_xpath)

    return read


def _new_session_id() -> str:
    return uuid.uuid4().hex


def scan_registry_files(directory: Path, extensions: Collection[str]) -> list[Path]:
    """Scan directory (non-recursive) for files with one of the given suffixes.

    Files are returned sorted by name so the import order is deterministic.

    Raises:
        ProcessingError: If directory doesn't exist or can't be read
    """
    if not directory.exists():
        raise ProcessingError(f"Directory not found: {directory}")

    if not directory.is_dir():
        raise ProcessingError(f"Path is not a directory: {directory}")

    wanted = {e.lower() for e in extensions}
    try:
        return sorted(
            (p for p in directory.iterdir() if p.is_file() and p.suffix.lower() in wanted),
            key=lambda p: p.name,
        )
    except OSError as e:
        raise ProcessingError(f"Error reading directory {directory}: {e}") from e


class SequentialImportOrchestrator:
    """Owns an ImportSession and processes files one at a time.

    Args:
        endpoint: Remote batch endpoint (process_batch / finish_session)
        settings: batch_size, max_retries, delay_between_batches_ms
        retry_policy: Overrides the policy derived from settings
        sleep: Awaitable sleep used for inter-file pauses and backoff
        error_log: Buffer receiving structured error records
        reader: Callable(path, batch_size) -> (batches, skipped_rows)
        reader_config: Used to build the default reader
        is_global: Sent with every endpoint call (global vs per-user dataset)
        session_id_factory: Produces the id of each new session
    """

    def __init__(
        self,
        endpoint: BatchEndpoint,
        settings: ImportSettings | None = None,
        *,
        retry_policy: RetryPolicy | None = None,
        sleep: SleepFn | None = None,
        error_log: ErrorLogBuffer | None = None,
        reader: Reader | None = None,
        reader_config: ReaderConfig | None = None,
        is_global: bool = False,
        session_id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._settings = settings if settings is not None else ImportSettings()
        if self._settings.batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {self._settings.batch_size}")
        self._sleep: SleepFn = sleep if sleep is not None else asyncio.sleep
        self._retry = retry_policy if retry_policy is not None else RetryPolicy(
            max_attempts=self._settings.max_retries,
            base_delay=self._settings.delay_seconds,
            sleep=self._sleep,
        )
        self._error_log = error_log if error_log is not None else ErrorLogBuffer()
        self._reader = reader if reader is not None else _default_reader(reader_config or ReaderConfig())
        self._is_global = is_global
        self._session_id_factory = session_id_factory or _new_session_id

        self._channel = SnapshotChannel()
        self._session = ImportSession.idle()
        self._file_stats: list[FileStat] = []

    # === Observation ===

    @property
    def snapshot(self) -> ImportSession:
        return self._session

    @property
    def file_stats(self) -> list[FileStat]:
        return list(self._file_stats)

    @property
    def error_log(self) -> ErrorLogBuffer:
        return self._error_log

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self._channel.subscribe(listener)

    # === Commands ===

    async def process_files(self, files: Sequence[Path | str], year: int) -> ImportSession:
        """Import admitted files sequentially, then finalize the session.

        Returns the terminal snapshot (completed or error). File-level and
        finalization failures are reported in the snapshot, not raised.

        Raises:
            SessionStateError: If the session is not idle or no files are given
        """
        if self._session.status != SessionStatus.IDLE:
            raise SessionStateError(
                f"cannot start an import while session is {self._session.status.value}; reset first"
            )
        paths = [Path(f) for f in files]
        if not paths:
            raise SessionStateError("no files to import")

        self._file_stats = []
        self._update(
            session_id=self._session_id_factory(),
            year=year,
            files=tuple(FileStatus(name=p.name) for p in paths),
            status=SessionStatus.PROCESSING,
        )
        logger.info(
            "session=%s year=%d importing %d file(s) batch_size=%d max_retries=%d",
            self._session.session_id,
            year,
            len(paths),
            self._settings.batch_size,
            self._retry.max_attempts,
        )

        for idx, path in enumerate(paths):
            await self._process_single_file(idx, path, year)
            if idx < len(paths) - 1 and self._settings.delay_seconds > 0:
                await self._sleep(self._settings.delay_seconds)

        await self._finish_session(year)
        return self._session

    def reset_import(self) -> ImportSession:
        """Return a terminal session to idle (no-op when already idle).

        Raises:
            SessionStateError: If an import is in progress
        """
        status = self._session.status
        if status == SessionStatus.PROCESSING:
            raise SessionStateError("cannot reset while an import is processing")
        if status == SessionStatus.IDLE:
            return self._session
        self._file_stats = []
        self._session = ImportSession.idle()
        self._channel.publish(self._session)
        return self._session

    # === Internals ===

    def _update(self, **changes: Any) -> None:
        self._session = replace(self._session, **changes)
        self._channel.publish(self._session)

    def _update_file(self, idx: int, file_changes: dict[str, Any], **session_changes: Any) -> None:
        files = list(self._session.files)
        files[idx] = replace(files[idx], **file_changes)
        self._update(files=tuple(files), **session_changes)

    def _progress(self, finished_files: int, batch_fraction: float) -> float:
        value = compute_progress(finished_files, batch_fraction, self._session.total_files)
        return max(self._session.progress, value)

    def _log_error(self, file: str, batch: int, error_type: str, message: str) -> None:
        self._error_log.append(ErrorRecord.create(file=file, batch=batch, error_type=error_type, message=message))

    async def _process_single_file(self, idx: int, path: Path, year: int) -> None:
        """Process one file; every failure is contained at file level."""
        name = path.name
        started = time.perf_counter()
        stats = BatchStatsAccumulator()

        self._update_file(idx, {"status": FileState.PROCESSING}, current_file_index=idx + 1)
        logger.info("file %d/%d: %s", idx + 1, self._session.total_files, name)

        try:
            processed = await self._import_file(idx, path, stats, year)
        except FileProcessingError as e:
            self._fail_file(idx, name, str(e), e.error_type, e.batch)
        except Exception as e:
            logger.debug("unexpected failure for file=%s", name, exc_info=True)
            self._fail_file(idx, name, str(e) or type(e).__name__, "FILE_PROCESSING_ERROR", FILE_LEVEL)
        else:
            self._update_file(
                idx,
                {"status": FileState.COMPLETED, "rows": processed},
                total_processed_rows=self._session.total_processed_rows + processed,
                progress=self._progress(idx + 1, 0.0),
            )
            logger.info("file=%s completed rows=%d", name, processed)

        total_batches, avg_batch, p95_batch = stats.get_stats()
        file_status = self._session.files[idx]
        self._file_stats.append(
            FileStat(
                file_name=name,
                status=file_status.status.value,
                processed_rows=file_status.rows or 0,
                elapsed_seconds=time.perf_counter() - started,
                total_batches=total_batches,
                avg_batch_seconds=avg_batch,
                p95_batch_seconds=p95_batch,
            )
        )

    async def _import_file(self, idx: int, path: Path, stats: BatchStatsAccumulator, year: int) -> int:
        """Decode and submit every batch of a file; returns processed rows."""
        name = path.name
        session_id = self._session.session_id

        try:
            # decoding is CPU bound; keep it off the event loop
            batches, skipped = await asyncio.to_thread(self._reader, path, self._settings.batch_size)
        except RegistryDecodeError as e:
            raise FileProcessingError(str(e), error_type="DECODE_ERROR") from e

        for row in skipped:
            self._log_error(name, FILE_LEVEL, "INVALID_ROW", f"row {row.row_number}: {row.reason}")
        if skipped:
            logger.warning("file=%s skipped %d invalid row(s)", name, len(skipped))
        if not batches:
            raise FileProcessingError(f"no shareholder records found in {name}", error_type="DECODE_ERROR")

        total = len(batches)
        self._update_file(idx, {"total_batches": total, "skipped_rows": len(skipped)})

        processed = 0
        for batch in batches:
            label = f"file={name} batch {batch.index}/{total}"
            batch_started = time.perf_counter()
            try:
                result = await self._retry.run(
                    lambda b=batch: self._endpoint.process_batch(session_id, year, b.payload(), self._is_global),
                    description=label,
                )
            except RetryExhaustedError as e:
                self._update_file(idx, {"rows": processed})
                raise FileProcessingError(
                    f"batch {batch.index}/{total} failed after {e.attempts} attempt(s): {e.last_error}",
                    error_type="BATCH_FAILED",
                    batch=batch.index,
                ) from e
            except EndpointError as e:
                self._update_file(idx, {"rows": processed})
                raise FileProcessingError(
                    f"batch {batch.index}/{total} rejected: {e}",
                    error_type="BATCH_FAILED",
                    batch=batch.index,
                ) from e
            stats.add_batch_time(time.perf_counter() - batch_started)

            processed += result.processed_rows
            for message in result.errors:
                self._log_error(name, batch.index, "ROW_REJECTED", message)
            if result.errors:
                logger.warning("%s: endpoint rejected %d row(s)", label, len(result.errors))
            logger.debug("%s accepted rows=%d", label, result.processed_rows)

            self._update_file(
                idx,
                {"completed_batches": batch.index, "rows": processed},
                progress=self._progress(idx, batch.index / total),
            )
        return processed

    def _fail_file(self, idx: int, name: str, message: str, error_type: str, batch: int) -> None:
        self._log_error(name, batch, error_type, message)
        logger.error("file=%s failed: %s", name, message)
        self._update_file(
            idx,
            {"status": FileState.ERROR, "error": message},
            errors=self._session.errors + (f"{name}: {message}",),
            progress=self._progress(idx + 1, 0.0),
        )

    async def _finish_session(self, year: int) -> None:
        session_id = self._session.session_id
        try:
            result = await self._endpoint.finish_session(session_id, year, self._is_global)
            if not result.success:
                raise SessionFinalizationError("aggregation reported failure")
        except Exception as e:
            message = f"session finalization failed: {str(e) or type(e).__name__}"
            self._log_error(SESSION_LEVEL_FILE, FILE_LEVEL, "SESSION_FINALIZATION_ERROR", message)
            logger.error("session=%s %s", session_id, message)
            self._update(status=SessionStatus.ERROR, error=message)
            return

        self._update(status=SessionStatus.COMPLETED, progress=100.0, summary=result.summary)
        logger.info(
            "session=%s completed files=%d failed=%d rows=%d",
            session_id,
            self._session.completed_files,
            self._session.failed_files,
            self._session.total_processed_rows,
        )
