from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import UTC, datetime
from pathlib import Path

from dotenv import load_dotenv

from registry_import.config.loader import ConfigError, load_config, require_endpoint
from registry_import.logging.error_log import ErrorLogBuffer
from registry_import.logging.init import log_summary, set_debug, setup_logging
from registry_import.models.config_models import EndpointConfig, ImportConfig
from registry_import.models.error_record import FILE_LEVEL, ErrorRecord
from registry_import.models.import_session import ImportSession, SessionStatus
from registry_import.models.processing_result import FileStat
from registry_import.registry.reader import RegistryDecodeError, normalize_records, read_registry_file
from registry_import.services.endpoint import HttpBatchEndpoint
from registry_import.services.orchestrator import (
    ProcessingError,
    SequentialImportOrchestrator,
    scan_registry_files,
)
from registry_import.services.progress import ProgressTracker
from registry_import.services.summary import build_import_result, render_summary_line
from registry_import.services.validator import validate_files

"""CLI entrypoint.

Flow:
- Load .env (overrides the process environment), then config/import.yml
- Collect candidate files (arguments, or the configured source directory)
- Validate them; rejected files are reported and never imported
- Run the sequential import against the HTTP batch endpoint
- Flush the error log and print the SUMMARY line

Exit codes: 0 everything imported, 2 completed with failed/rejected files,
1 fatal (configuration, nothing admissible, session finalization failure).
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

DEFAULT_CONFIG_PATH = Path("config/import.yml")


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv; .env values win over the environment."""
    if not path.exists():
        return
    try:
        load_dotenv(dotenv_path=path, override=override)
    except OSError as e:
        print(f"WARNING: failed to load .env via python-dotenv: {e}")


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="registry-import",
        description="Sequential shareholder registry bulk importer",
    )
    p.add_argument("files", nargs="*", type=Path, help="Registry files (default: source_directory)")
    p.add_argument("--year", type=int, help="Fiscal year the registry export belongs to")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Config YAML path")
    p.add_argument("--global", dest="global_dataset", action="store_true", help="Import into the global dataset")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print decoded columns & first rows then exit")
    return p.parse_args(argv)


def _collect_files(args: argparse.Namespace, cfg: ImportConfig) -> list[Path]:
    if args.files:
        return list(args.files)
    if not cfg.source_directory:
        raise ProcessingError("no files given and no source_directory configured")
    return scan_registry_files(Path(cfg.source_directory), cfg.validation.normalized_extensions)


def _inspect_data(files: list[Path], cfg: ImportConfig) -> int:
    for f in files:
        print(f"FILE: {f.name}")
        try:
            df = read_registry_file(f, record_xpath=cfg.reader.record_xpath)
        except RegistryDecodeError as e:
            print(f"  read_error: {e}")
            continue
        normalized = normalize_records(df)
        print(f"  columns={[str(c) for c in df.columns]}")
        print(f"  valid_rows={len(normalized.rows)} skipped_rows={len(normalized.skipped)}")
        print("  sample_rows=", [r.to_payload() for r in normalized.rows[:3]])
        for skipped in normalized.skipped[:3]:
            print(f"  skipped row {skipped.row_number}: {skipped.reason}")
    return EXIT_SUCCESS_ALL


async def _run_import(
    files: list[Path],
    year: int,
    cfg: ImportConfig,
    endpoint_cfg: EndpointConfig,
    error_log: ErrorLogBuffer,
    is_global: bool,
) -> tuple[ImportSession, list[FileStat]]:
    async with HttpBatchEndpoint(endpoint_cfg) as endpoint:
        orchestrator = SequentialImportOrchestrator(
            endpoint,
            cfg.settings,
            error_log=error_log,
            reader_config=cfg.reader,
            is_global=is_global,
        )
        with ProgressTracker(len(files)) as progress:
            unsubscribe = orchestrator.subscribe(progress)
            try:
                session = await orchestrator.process_files(files, year)
            finally:
                unsubscribe()
        return session, orchestrator.file_stats


def _flush_error_log(error_log: ErrorLogBuffer, logger) -> None:
    try:
        path = error_log.flush()
    except OSError as e:
        logger.warning(f"failed to write error log: {e}")
        return
    if path is not None:
        logger.info(f"error log written: {path}")


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # None → sys.argv; an explicit [] means "no arguments"
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.debug:
        set_debug()
        logger.debug("debug mode enabled")

    try:
        candidates = _collect_files(args, cfg)
    except ProcessingError as e:
        logger.error(f"files: {e}")
        return EXIT_FATAL

    start_time = datetime.now(UTC)
    if not candidates:
        logger.info("no registry files found")
        empty = build_import_result(ImportSession.idle(), [], 0, start_time, datetime.now(UTC))
        log_summary(render_summary_line(empty)[len("SUMMARY "):])
        return EXIT_SUCCESS_ALL

    error_log = ErrorLogBuffer()
    report = validate_files(candidates, cfg.validation)
    for path, err in report.rejected:
        logger.warning(f"rejected {path.name}: {err}")
        error_log.append(ErrorRecord.create(path.name, FILE_LEVEL, "FILE_REJECTED", str(err)))
    if not report.admitted:
        logger.error("no admissible files to import")
        _flush_error_log(error_log, logger)
        return EXIT_FATAL

    logger.info(f"{len(report.admitted)} file(s) admitted, {len(report.rejected)} rejected")

    if args.inspect_data:
        return _inspect_data(report.admitted, cfg)

    if args.year is None:
        logger.error("--year is required")
        return EXIT_FATAL
    try:
        endpoint_cfg = require_endpoint(cfg)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    is_global = args.global_dataset or cfg.is_global_dataset
    session, file_stats = asyncio.run(
        _run_import(report.admitted, args.year, cfg, endpoint_cfg, error_log, is_global)
    )
    end_time = datetime.now(UTC)

    _flush_error_log(error_log, logger)

    result = build_import_result(session, file_stats, len(report.rejected), start_time, end_time)
    # log_summary adds the "SUMMARY " label itself
    log_summary(render_summary_line(result)[len("SUMMARY "):])

    if session.status == SessionStatus.ERROR:
        logger.error(f"import failed: {session.error}")
        return EXIT_FATAL
    if session.failed_files > 0 or report.rejected:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL
