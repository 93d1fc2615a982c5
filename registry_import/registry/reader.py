from __future__ import annotations

import csv
import re
import zipfile
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pandas as pd

from ..models.row_data import RowBatch, ShareholderRow, SkippedRow

"""Shareholder registry reader.

Decodes a registry export (XML; CSV and XLSX are accepted as well) into a
DataFrame of raw string cells, normalizes every row into a ShareholderRow
and slices the result into ordered batches.

All cells are read as strings: organisation numbers lose their leading zero
when parsed as integers.
"""

__all__ = [
    "RegistryDecodeError",
    "NormalizedRows",
    "read_registry_file",
    "normalize_records",
    "iter_batches",
    "load_batches",
]

DEFAULT_COMPANY_NAME = "Ukjent selskap ({orgnr})"
DEFAULT_HOLDER_NAME = "Ukjent eier"
DEFAULT_SHARE_CLASS = "Ordinære aksjer"
DEFAULT_COUNTRY = "NO"

# Column aliases observed in registry exports, matched case-insensitively.
COMPANY_ORGNR_ALIASES = ("orgnr", "organisasjonsnummer", "org_nr", "org-nr", '"orgnr')
COMPANY_NAME_ALIASES = ("selskap", "selskapsnavn", "navn", "company_name")
HOLDER_NAME_ALIASES = ("navn aksjonær", "navn_aksjonaer", "aksjonaer", "eier", "holder", "eier_navn")
HOLDER_ID_ALIASES = ("fødselsår/orgnr", "fodselsar_orgnr", "eier_orgnr", "holder_orgnr")
COUNTRY_ALIASES = ("landkode", "country_code")
SHARE_CLASS_ALIASES = ("aksjeklasse", "share_class")
SHARES_ALIASES = ("antall aksjer", "antall_aksjer", "aksjer", "shares", "andeler")

_NON_DIGITS = re.compile(r"\D")


class RegistryDecodeError(Exception):
    """Raised when a registry file cannot be decoded."""


@dataclass
class NormalizedRows:
    rows: list[ShareholderRow] = field(default_factory=list)
    skipped: list[SkippedRow] = field(default_factory=list)


def read_registry_file(path: Path, record_xpath: str = "./*") -> pd.DataFrame:
    """Read a registry export into a DataFrame of string cells.

    Parameters
    ----------
    path: registry file (.xml / .csv / .xlsx)
    record_xpath: XPath selecting one element per shareholder row (XML only)
    """
    suffix = path.suffix.lower()
    try:
        if suffix == ".xml":
            return pd.read_xml(path, xpath=record_xpath, dtype=str)
        if suffix == ".csv":
            # Registry CSV exports use ';', hand-made ones ','
            return pd.read_csv(path, dtype=str, sep=None, engine="python", encoding="utf-8-sig")
        if suffix in (".xlsx", ".xls"):
            return pd.read_excel(path, dtype=str)
    except (ValueError, OSError, SyntaxError, csv.Error, zipfile.BadZipFile) as e:
        # lxml's XMLSyntaxError derives from SyntaxError
        raise RegistryDecodeError(f"failed to decode {path.name}: {e}") from e
    raise RegistryDecodeError(f"unsupported file type: {path.name}")


def _lookup(row: Mapping[str, Any], aliases: Sequence[str]) -> str:
    """First non-empty cell among aliases (keys pre-lowered by the caller)."""
    for alias in aliases:
        val = row.get(alias)
        if val is None:
            continue
        if isinstance(val, float) and pd.isna(val):
            continue
        text = str(val).strip()
        if text:
            return text
    return ""


def _normalize_orgnr(raw: str) -> str | None:
    digits = _NON_DIGITS.sub("", raw)
    if len(digits) == 8:
        digits = "0" + digits
    if len(digits) != 9:
        return None
    return digits


def _normalize_row(row_number: int, raw: Mapping[str, Any]) -> ShareholderRow | SkippedRow:
    row = {str(k).strip().lower(): v for k, v in raw.items()}

    orgnr_raw = _lookup(row, COMPANY_ORGNR_ALIASES)
    company_orgnr = _normalize_orgnr(orgnr_raw)
    if company_orgnr is None:
        return SkippedRow(row_number, f"invalid organisation number: '{orgnr_raw}'")

    company_name = _lookup(row, COMPANY_NAME_ALIASES)
    holder_name = _lookup(row, HOLDER_NAME_ALIASES)
    if not company_name and not holder_name:
        return SkippedRow(row_number, f"missing company and holder name for orgnr {company_orgnr}")

    shares_digits = _NON_DIGITS.sub("", _lookup(row, SHARES_ALIASES))
    shares = int(shares_digits) if shares_digits else 0

    holder_id = _NON_DIGITS.sub("", _lookup(row, HOLDER_ID_ALIASES))
    holder_orgnr: str | None = None
    holder_birth_year: int | None = None
    if len(holder_id) == 9:
        holder_orgnr = holder_id
    elif len(holder_id) == 4 and int(holder_id) >= 1900:
        holder_birth_year = int(holder_id)

    return ShareholderRow(
        row_number=row_number,
        company_orgnr=company_orgnr,
        company_name=company_name or DEFAULT_COMPANY_NAME.format(orgnr=company_orgnr),
        holder_name=holder_name or DEFAULT_HOLDER_NAME,
        share_class=_lookup(row, SHARE_CLASS_ALIASES) or DEFAULT_SHARE_CLASS,
        shares=shares,
        holder_orgnr=holder_orgnr,
        holder_birth_year=holder_birth_year,
        holder_country=(_lookup(row, COUNTRY_ALIASES) or DEFAULT_COUNTRY).upper(),
    )


def normalize_records(df: pd.DataFrame) -> NormalizedRows:
    """Normalize raw registry rows, splitting valid rows from skipped ones.

    Rows whose cells are all empty are ignored silently (trailing blank lines
    in CSV / spreadsheet exports).
    """
    out = NormalizedRows()
    for row_number, (_, raw) in enumerate(df.iterrows(), start=1):
        if raw.isna().all():
            continue
        result = _normalize_row(row_number, raw.to_dict())
        if isinstance(result, SkippedRow):
            out.skipped.append(result)
        else:
            out.rows.append(result)
    return out


def iter_batches(rows: Sequence[ShareholderRow], batch_size: int) -> Iterator[RowBatch]:
    """Yield consecutive batches of at most batch_size rows in source order."""
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    for index, start in enumerate(range(0, len(rows), batch_size), start=1):
        chunk = list(rows[start:start + batch_size])
        yield RowBatch(index=index, start_row=chunk[0].row_number, rows=chunk)


def load_batches(
    path: Path, batch_size: int, record_xpath: str = "./*"
) -> tuple[list[RowBatch], list[SkippedRow]]:
    """Decode + normalize + batch a file (the orchestrator's default reader)."""
    normalized = normalize_records(read_registry_file(path, record_xpath=record_xpath))
    return list(iter_batches(normalized.rows, batch_size)), normalized.skipped
