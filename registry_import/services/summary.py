from __future__ import annotations

from datetime import datetime

from ..models.import_session import ImportSession
from ..models.processing_result import FileStat, ImportResult

"""Summary aggregation and SUMMARY line rendering.

Format:
SUMMARY session={id} status={status} files={n}/{n} completed={c} failed={f}
rejected={r} rows={rows} skipped_rows={s} elapsed_sec={e} throughput_rps={t}
"""


def build_import_result(
    session: ImportSession,
    file_stats: list[FileStat],
    rejected_files: int,
    start_time: datetime,
    end_time: datetime,
) -> ImportResult:
    """Aggregate a terminal session snapshot into an ImportResult."""
    elapsed = (end_time - start_time).total_seconds()
    rows = session.total_processed_rows
    throughput = rows / elapsed if elapsed > 0 else 0.0
    return ImportResult(
        session_id=session.session_id or "-",
        status=session.status.value,
        completed_files=session.completed_files,
        failed_files=session.failed_files,
        rejected_files=rejected_files,
        total_processed_rows=rows,
        skipped_rows=sum(f.skipped_rows for f in session.files),
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=elapsed,
        throughput_rows_per_sec=throughput,
        file_stats=list(file_stats),
    )


def _format_number(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # avoid scientific notation for tiny values
        return f"{value:.6f}".rstrip('0').rstrip('.')
    return f"{value:.2f}".rstrip('0').rstrip('.')


def render_summary_line(result: ImportResult) -> str:
    """Render the SUMMARY line for an ImportResult.

    Examples:
        >>> from datetime import datetime, timezone
        >>> start = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
        >>> end = datetime(2024, 1, 1, 10, 0, 2, tzinfo=timezone.utc)
        >>> result = ImportResult(
        ...     session_id="abc", status="completed", completed_files=1, failed_files=0,
        ...     rejected_files=0, total_processed_rows=1000, skipped_rows=0,
        ...     start_time=start, end_time=end, elapsed_seconds=2.0,
        ...     throughput_rows_per_sec=500.0,
        ... )
        >>> render_summary_line(result)
        'SUMMARY session=abc status=completed files=1/1 completed=1 failed=0 rejected=0 rows=1000 skipped_rows=0 elapsed_sec=2 throughput_rps=500'
    """
    total = result.total_files
    return (
        f"SUMMARY session={result.session_id} "
        f"status={result.status} "
        f"files={total}/{total} "
        f"completed={result.completed_files} "
        f"failed={result.failed_files} "
        f"rejected={result.rejected_files} "
        f"rows={result.total_processed_rows} "
        f"skipped_rows={result.skipped_rows} "
        f"elapsed_sec={_format_number(result.elapsed_seconds)} "
        f"throughput_rps={_format_number(result.throughput_rows_per_sec)}"
    )
