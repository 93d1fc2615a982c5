from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""Row-level models for the registry importer.

ShareholderRow is one normalized record of the registry export. RowBatch is
the unit submitted to the batch endpoint; batches keep the order in which
rows were decoded from the source file.
"""

__all__ = [
    "ShareholderRow",
    "SkippedRow",
    "RowBatch",
]


@dataclass(frozen=True)
class ShareholderRow:
    """Normalized shareholder holding (one line of the registry export)."""
    row_number: int  # 1-based position in the source file (data rows only)
    company_orgnr: str
    company_name: str
    holder_name: str
    share_class: str
    shares: int
    holder_orgnr: str | None = None
    holder_birth_year: int | None = None
    holder_country: str = "NO"

    def to_payload(self) -> dict[str, Any]:
        """JSON body representation sent to the endpoint (row_number excluded).

        Keys are the column names the batch processor reads; the holder id
        carries the holder's orgnr for companies and the birth year for persons.
        """
        holder_id = self.holder_orgnr
        if holder_id is None and self.holder_birth_year is not None:
            holder_id = str(self.holder_birth_year)
        return {
            "orgnr": self.company_orgnr,
            "selskap": self.company_name,
            "navn_aksjonaer": self.holder_name,
            "fodselsar_orgnr": holder_id,
            "birth_year": self.holder_birth_year,
            "landkode": self.holder_country,
            "aksjeklasse": self.share_class,
            "antall_aksjer": self.shares,
        }


@dataclass(frozen=True)
class SkippedRow:
    row_number: int
    reason: str


@dataclass(frozen=True)
class RowBatch:
    index: int  # 1-based
    start_row: int  # row_number of the first row in the batch
    rows: list[ShareholderRow] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)

    def payload(self) -> list[dict[str, Any]]:
        return [r.to_payload() for r in self.rows]
