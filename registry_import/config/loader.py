from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from registry_import.models.config_models import (
    DEFAULT_ALLOWED_EXTENSIONS,
    DEFAULT_BATCH_SIZE,
    DEFAULT_DELAY_BETWEEN_BATCHES_MS,
    DEFAULT_MAX_FILE_BYTES,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RECORD_XPATH,
    DEFAULT_TIMEOUT_SECONDS,
    EndpointConfig,
    ImportConfig,
    ImportSettings,
    ReaderConfig,
    ValidationPolicy,
)

"""Config loader.

Responsibilities:
- Load YAML config (default config/import.yml)
- Validate it against the packaged JSON schema (config/schema.json)
- Apply defaults for every optional section
- Apply environment overrides for the endpoint (REGISTRY_IMPORT_ENDPOINT_URL,
  REGISTRY_IMPORT_API_KEY); the CLI loads .env before calling load_config
"""

SCHEMA_PATH = Path(__file__).with_name("schema.json")

ENV_ENDPOINT_URL = "REGISTRY_IMPORT_ENDPOINT_URL"
ENV_API_KEY = "REGISTRY_IMPORT_API_KEY"


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against JSON schema.

    Raises:
        ConfigError: If the schema file is missing / not valid JSON, or the
            config data fails schema validation.
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _endpoint_from(raw: dict[str, Any]) -> EndpointConfig:
    url = os.getenv(ENV_ENDPOINT_URL) or raw.get("url") or ""
    api_key = os.getenv(ENV_API_KEY) or raw.get("api_key")
    return EndpointConfig(
        url=url.strip(),
        api_key=api_key,
        timeout_seconds=float(raw.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)),
    )


def load_config(path: Path) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")

    _validate_config_schema(data)

    imp = data.get("import", {})
    val = data.get("validation", {})
    rdr = data.get("reader", {})
    return ImportConfig(
        endpoint=_endpoint_from(data.get("endpoint", {})),
        settings=ImportSettings(
            batch_size=imp.get("batch_size", DEFAULT_BATCH_SIZE),
            max_retries=imp.get("max_retries", DEFAULT_MAX_RETRIES),
            delay_between_batches_ms=imp.get("delay_between_batches_ms", DEFAULT_DELAY_BETWEEN_BATCHES_MS),
        ),
        validation=ValidationPolicy(
            max_file_bytes=val.get("max_file_bytes", DEFAULT_MAX_FILE_BYTES),
            allowed_extensions=tuple(val.get("allowed_extensions", DEFAULT_ALLOWED_EXTENSIONS)),
        ),
        reader=ReaderConfig(record_xpath=rdr.get("record_xpath", DEFAULT_RECORD_XPATH)),
        source_directory=data.get("source_directory"),
        is_global_dataset=bool(data.get("is_global_dataset", False)),
    )


def require_endpoint(cfg: ImportConfig) -> EndpointConfig:
    """Return the endpoint config, failing when no URL is configured."""
    if not cfg.endpoint.url:
        raise ConfigError(
            f"endpoint url is not configured (set endpoint.url or {ENV_ENDPOINT_URL})"
        )
    return cfg.endpoint
