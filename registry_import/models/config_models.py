from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the shareholder registry importer.

This module defines the domain models for configuration. The YAML loader in
registry_import/config/loader.py builds these objects after schema validation;
everything downstream (validator, reader, orchestrator, HTTP endpoint) only
sees these frozen dataclasses.
"""

DEFAULT_BATCH_SIZE = 8000
DEFAULT_MAX_RETRIES = 3
DEFAULT_DELAY_BETWEEN_BATCHES_MS = 200
DEFAULT_MAX_FILE_BYTES = 100_000_000
DEFAULT_ALLOWED_EXTENSIONS = (".xml",)
DEFAULT_RECORD_XPATH = "./*"
DEFAULT_TIMEOUT_SECONDS = 120.0


@dataclass(frozen=True)
class EndpointConfig:
    """Remote batch-processing function (URL + credentials).

    Environment variables take precedence over these values.
    """
    url: str
    api_key: str | None = None
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS


@dataclass(frozen=True)
class ImportSettings:
    """Knobs exposed to callers of the orchestrator."""
    batch_size: int = DEFAULT_BATCH_SIZE  # rows per submission
    max_retries: int = DEFAULT_MAX_RETRIES  # attempts per batch (not additional retries)
    delay_between_batches_ms: int = DEFAULT_DELAY_BETWEEN_BATCHES_MS  # inter-file pause + backoff base

    @property
    def delay_seconds(self) -> float:
        return self.delay_between_batches_ms / 1000.0


@dataclass(frozen=True)
class ValidationPolicy:
    """Admission rules applied to every candidate file before import."""
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES
    allowed_extensions: tuple[str, ...] = DEFAULT_ALLOWED_EXTENSIONS

    @property
    def normalized_extensions(self) -> frozenset[str]:
        out = set()
        for ext in self.allowed_extensions:
            ext = ext.strip().lower()
            if not ext.startswith("."):
                ext = "." + ext
            out.add(ext)
        return frozenset(out)


@dataclass(frozen=True)
class ReaderConfig:
    record_xpath: str = DEFAULT_RECORD_XPATH  # XPath selecting one element per shareholder row


@dataclass(frozen=True)
class ImportConfig:
    """Root configuration object for an import run."""
    endpoint: EndpointConfig
    settings: ImportSettings = field(default_factory=ImportSettings)
    validation: ValidationPolicy = field(default_factory=ValidationPolicy)
    reader: ReaderConfig = field(default_factory=ReaderConfig)
    source_directory: str | None = None  # scanned when no files are given on the command line
    is_global_dataset: bool = False
