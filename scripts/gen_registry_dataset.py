#!/usr/bin/env python3
"""Dataset generation script for import performance testing.

Generates a synthetic shareholder registry export (XML, one <row> element per
holding) with the column names found in real registry exports:

- orgnr, selskap: issuing company
- navn_aksjonaer, fodselsar_orgnr, landkode: holder
- aksjeklasse, antall_aksjer: holding

A configurable share of rows can be made invalid (bad organisation number)
to exercise the skipped-row path. The output is readable by
registry_import.registry.reader with the default record_xpath.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

import numpy as np
import pandas as pd

SHARE_CLASSES = ["Ordinære aksjer", "A-aksjer", "B-aksjer", "Preferanseaksjer"]
COUNTRIES = ["NO", "NO", "NO", "NO", "SE", "DK", "GB", "US"]


def generate_registry_rows(rows: int, companies: int = 500, invalid_ratio: float = 0.0, seed: int = 42) -> pd.DataFrame:
    """Generate a DataFrame of registry rows as raw strings.

    Args:
        rows: Number of holdings to generate
        companies: Number of distinct issuing companies
        invalid_ratio: Share (0..1) of rows given an unusable organisation number
        seed: Random seed for reproducible data

    Returns:
        DataFrame whose cells are all strings
    """
    rng = np.random.default_rng(seed)

    company_ids = rng.integers(800_000_000, 999_999_999, companies)
    company_idx = rng.integers(0, companies, rows)
    orgnr = [str(company_ids[i]) for i in company_idx]

    # Roughly a third of holders are companies (9-digit id), the rest persons (birth year)
    holder_is_company = rng.random(rows) < 0.33
    holder_company_ids = rng.integers(800_000_000, 999_999_999, rows)
    birth_years = rng.integers(1930, 2010, rows)
    holder_id = [
        str(holder_company_ids[i]) if holder_is_company[i] else str(birth_years[i])
        for i in range(rows)
    ]

    if invalid_ratio > 0:
        invalid = rng.random(rows) < invalid_ratio
        orgnr = ["12AB" if invalid[i] else orgnr[i] for i in range(rows)]

    return pd.DataFrame(
        {
            "orgnr": orgnr,
            "selskap": [f"Selskap {company_ids[i]} AS" for i in company_idx],
            "aksjeklasse": rng.choice(SHARE_CLASSES, rows).tolist(),
            "navn_aksjonaer": [f"Aksjonær {j + 1}" for j in range(rows)],
            "fodselsar_orgnr": holder_id,
            "landkode": rng.choice(COUNTRIES, rows).tolist(),
            "antall_aksjer": [str(v) for v in rng.integers(1, 1_000_000, rows)],
        }
    )


def create_registry_file(
    output_path: Path,
    rows: int,
    companies: int = 500,
    invalid_ratio: float = 0.0,
    seed: int = 42,
) -> Path:
    """Write a synthetic registry export to output_path (XML)."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df = generate_registry_rows(rows, companies=companies, invalid_ratio=invalid_ratio, seed=seed)
    df.to_xml(output_path, index=False, root_name="aksjonaerregister", row_name="row")

    print(f"Created registry file: {output_path}")
    print(f"  Rows: {rows:,}")
    print(f"  Companies: {companies:,}")
    print(f"  Invalid ratio: {invalid_ratio:.2%}")
    return output_path


def main() -> int:
    """Main CLI interface for dataset generation."""
    parser = argparse.ArgumentParser(
        description="Generate synthetic shareholder registry exports for performance testing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Generate default 50k rows
  %(prog)s data/aksjonaerregister-2024.xml

  # Larger file with 2%% unusable rows
  %(prog)s big.xml --rows 500000 --companies 20000 --invalid-ratio 0.02
        """,
    )
    parser.add_argument("output", type=Path, help="Output XML file path")
    parser.add_argument("--rows", type=int, default=50_000, help="Number of rows (default: 50000)")
    parser.add_argument("--companies", type=int, default=500, help="Distinct companies (default: 500)")
    parser.add_argument("--invalid-ratio", type=float, default=0.0, help="Share of invalid rows (default: 0)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    args = parser.parse_args()

    if args.rows <= 0:
        print("Error: --rows must be positive", file=sys.stderr)
        return 1
    if args.companies <= 0:
        print("Error: --companies must be positive", file=sys.stderr)
        return 1
    if not 0.0 <= args.invalid_ratio <= 1.0:
        print("Error: --invalid-ratio must be between 0 and 1", file=sys.stderr)
        return 1
    if args.output.suffix.lower() != ".xml":
        print("Warning: output file should have .xml extension", file=sys.stderr)

    try:
        create_registry_file(
            args.output,
            rows=args.rows,
            companies=args.companies,
            invalid_ratio=args.invalid_ratio,
            seed=args.seed,
        )
    except (OSError, ValueError) as e:
        print(f"Error creating registry file: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
