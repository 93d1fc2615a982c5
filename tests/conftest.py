# Shared pytest fixtures and fakes
from __future__ import annotations

import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest

from registry_import.logging.init import reset_logging
from registry_import.models.row_data import RowBatch, ShareholderRow, SkippedRow
from registry_import.registry.reader import iter_batches
from registry_import.services.endpoint import BatchResult, BatchTransientError, EndpointError, FinishResult

# Effectively "always fails" for the retry policies used in tests
ALWAYS = 10**6


@pytest.fixture(autouse=True)
def _fresh_logging():
    # setup_logging binds sys.stdout once; rebind it to the capture of each test
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.delenv("REGISTRY_IMPORT_ENDPOINT_URL", raising=False)
        monkeypatch.delenv("REGISTRY_IMPORT_API_KEY", raising=False)
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """source_directory: ./data
endpoint:
  url: http://registry.test/functions/v1/batch-processor
  api_key: test-key
import:
  batch_size: 2
  max_retries: 3
  delay_between_batches_ms: 0
validation:
  max_file_bytes: 4096
  allowed_extensions: [".xml"]
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


def registry_xml(rows: Sequence[dict[str, Any]]) -> str:
    """Render registry rows as an export document (one <row> per holding)."""
    parts = ['<?xml version="1.0" encoding="utf-8"?>', "<aksjonaerregister>"]
    for row in rows:
        cells = "".join(f"<{k}>{v}</{k}>" for k, v in row.items() if v is not None)
        parts.append(f"  <row>{cells}</row>")
    parts.append("</aksjonaerregister>")
    return "\n".join(parts) + "\n"


def holding(company: str, holder: str, orgnr: str = "912345678", holder_id: str = "1970", shares: str = "100") -> dict[str, Any]:
    return {
        "orgnr": orgnr,
        "selskap": company,
        "aksjeklasse": "Ordinære aksjer",
        "navn_aksjonaer": holder,
        "fodselsar_orgnr": holder_id,
        "landkode": "NO",
        "antall_aksjer": shares,
    }


@pytest.fixture()
def write_registry_file(temp_workdir: Path):
    """Factory writing data/<name> with n holdings of company <stem>."""

    def _write(name: str, n: int, directory: Path | None = None) -> Path:
        target = (directory or temp_workdir / "data") / name
        company = Path(name).stem
        rows = [holding(company, f"Holder {i}") for i in range(1, n + 1)]
        target.write_text(registry_xml(rows), encoding="utf-8")
        return target

    return _write


def make_rows(company: str, n: int) -> list[ShareholderRow]:
    return [
        ShareholderRow(
            row_number=i,
            company_orgnr="912345678",
            company_name=company,
            holder_name=f"Holder {i}",
            share_class="Ordinære aksjer",
            shares=i,
        )
        for i in range(1, n + 1)
    ]


def fake_reader(contents: dict[str, int | Exception], skipped: dict[str, int] | None = None):
    """Reader stand-in mapping file name -> row count (or an exception to raise)."""
    skipped = skipped or {}

    def read(path: Path, batch_size: int) -> tuple[list[RowBatch], list[SkippedRow]]:
        value = contents[path.name]
        if isinstance(value, Exception):
            raise value
        rows = make_rows(path.stem, value)
        bad = [SkippedRow(value + i, "invalid organisation number: '12AB'") for i in range(1, skipped.get(path.name, 0) + 1)]
        return list(iter_batches(rows, batch_size)), bad

    return read


class FakeSleep:
    """Awaitable sleep recording requested delays instead of waiting."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeEndpoint:
    """Scripted BatchEndpoint.

    Batches are routed by the selskap (company name) of their first row, the
    file stem in these tests. failures[company] is the number of leading
    attempts that fail transiently; permanent[company] raises a non-retryable
    EndpointError.
    """

    def __init__(
        self,
        *,
        failures: dict[str, int] | None = None,
        permanent: set[str] | None = None,
        row_errors: dict[str, list[str]] | None = None,
        finish_success: bool = True,
        finish_error: Exception | None = None,
        summary: dict[str, Any] | None = None,
    ) -> None:
        self.failures = dict(failures or {})
        self.permanent = set(permanent or ())
        self.row_errors = dict(row_errors or {})
        self.finish_success = finish_success
        self.finish_error = finish_error
        self.summary = summary if summary is not None else {"companies": 1}
        self.batch_calls: list[tuple[str, int, int, bool]] = []
        self.attempts: dict[str, int] = {}
        self.finish_calls: list[tuple[str, int, bool]] = []
        self.closed = False

    async def process_batch(self, session_id, year, rows, is_global=False) -> BatchResult:
        company = rows[0]["selskap"]
        self.batch_calls.append((session_id, year, len(rows), is_global))
        self.attempts[company] = self.attempts.get(company, 0) + 1
        if company in self.permanent:
            raise EndpointError(f"HTTP 400 for {company}", status_code=400)
        if self.failures.get(company, 0) > 0:
            self.failures[company] -= 1
            raise BatchTransientError(f"HTTP 503 for {company}", status_code=503)
        return BatchResult(success=True, processed_rows=len(rows), errors=list(self.row_errors.get(company, [])))

    async def finish_session(self, session_id, year, is_global=False) -> FinishResult:
        self.finish_calls.append((session_id, year, is_global))
        if self.finish_error is not None:
            raise self.finish_error
        return FinishResult(success=self.finish_success, summary=self.summary if self.finish_success else None)

    async def __aenter__(self) -> FakeEndpoint:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.closed = True


@pytest.fixture()
def fake_sleep() -> FakeSleep:
    return FakeSleep()
