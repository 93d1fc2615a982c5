from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from ..models.config_models import EndpointConfig

"""Batch processing endpoint (remote collaborator).

The orchestrator only depends on the BatchEndpoint protocol:

- process_batch(session_id, year, rows, is_global) -> BatchResult
- finish_session(session_id, year, is_global) -> FinishResult

HttpBatchEndpoint talks to the hosted batch-processor function. Both
operations are POSTs to the same URL, distinguished by "action":

    {"action": "PROCESS_BATCH", "session_id", "year", "batch_data", "is_global"}
      -> {"success", "processed_rows", "total_rows", "errors"}
    {"action": "FINISH_SESSION", "session_id", "year", "is_global"}
      -> {"success", "summary"}

batch_data rows are ShareholderRow.to_payload() dicts keyed by the
registry column names the function reads (orgnr, selskap, navn_aksjonaer,
fodselsar_orgnr, landkode, aksjeklasse, antall_aksjer).

Retrying PROCESS_BATCH assumes the endpoint upserts (idempotent per row);
that guarantee lives on the server side.
"""

__all__ = [
    "EndpointError",
    "BatchTransientError",
    "BatchResult",
    "FinishResult",
    "BatchEndpoint",
    "HttpBatchEndpoint",
]

logger = logging.getLogger(__name__)

ACTION_PROCESS_BATCH = "PROCESS_BATCH"
ACTION_FINISH_SESSION = "FINISH_SESSION"


class EndpointError(Exception):
    """Base exception for endpoint failures (non-retryable unless subclassed)."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class BatchTransientError(EndpointError):
    """Network / server-side failure worth retrying."""


@dataclass(frozen=True)
class BatchResult:
    success: bool
    processed_rows: int
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class FinishResult:
    success: bool
    summary: dict[str, Any] | None = None


class BatchEndpoint(Protocol):
    async def process_batch(
        self, session_id: str, year: int, rows: Sequence[dict[str, Any]], is_global: bool = False
    ) -> BatchResult: ...

    async def finish_session(self, session_id: str, year: int, is_global: bool = False) -> FinishResult: ...


def _is_retryable_status(status_code: int) -> bool:
    return status_code >= 500 or status_code in (408, 429)


class HttpBatchEndpoint:
    """Async HTTP client for the batch-processor function."""

    def __init__(
        self,
        config: EndpointConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = config.url
        self._api_key = config.api_key
        self._timeout = config.timeout_seconds
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpBatchEndpoint:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
            headers["apikey"] = self._api_key
        return headers

    async def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        client = await self._get_client()
        action = body["action"]
        try:
            response = await client.post(self.url, json=body, headers=self._get_headers())
        except httpx.HTTPError as e:
            raise BatchTransientError(f"{action} request failed: {e}") from e

        if response.status_code >= 400:
            message = f"{action} returned HTTP {response.status_code}: {response.text[:200]}"
            if _is_retryable_status(response.status_code):
                raise BatchTransientError(message, status_code=response.status_code)
            raise EndpointError(message, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise BatchTransientError(f"{action} returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise BatchTransientError(f"{action} returned unexpected payload type {type(data).__name__}")
        return data

    async def process_batch(
        self, session_id: str, year: int, rows: Sequence[dict[str, Any]], is_global: bool = False
    ) -> BatchResult:
        data = await self._post(
            {
                "action": ACTION_PROCESS_BATCH,
                "session_id": session_id,
                "year": year,
                "batch_data": list(rows),
                "is_global": is_global,
            }
        )
        errors = [str(e) for e in data.get("errors") or []]
        if not data.get("success", False):
            raise BatchTransientError(
                data.get("error") or f"{ACTION_PROCESS_BATCH} reported failure",
                details=errors,
            )
        processed = int(data.get("processed_rows", 0) or 0)
        logger.debug(
            "session=%s batch accepted processed_rows=%d total_rows=%s errors=%d",
            session_id,
            processed,
            data.get("total_rows"),
            len(errors),
        )
        return BatchResult(success=True, processed_rows=processed, errors=errors)

    async def finish_session(self, session_id: str, year: int, is_global: bool = False) -> FinishResult:
        data = await self._post(
            {
                "action": ACTION_FINISH_SESSION,
                "session_id": session_id,
                "year": year,
                "is_global": is_global,
            }
        )
        summary = data.get("summary")
        return FinishResult(
            success=bool(data.get("success", False)),
            summary=summary if isinstance(summary, dict) else None,
        )
