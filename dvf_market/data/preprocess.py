#!/usr/bin/env python3
"""
Extract one department from a national DVF file.

Usage:
    dvf-preprocess ValeursFoncieres-2025-S1.txt data/mutations_d93_2025.csv
    dvf-preprocess ValeursFoncieres-2024.txt data/mutations_d93_2024.csv --department 93

The national file is pipe-delimited with a header row. The output is the
compact semicolon extract read by the loader, with the street address
composed from its number / type / name columns.
"""

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, TextIO

from .dvf_parser import ADMISSIBLE_TYPES, NATIONAL_DEPARTMENT_COLUMN, NATIONAL_LAYOUT, compose_address
from ..core.logging import configure_logging

logger = logging.getLogger(__name__)

OUTPUT_COLUMNS = [
    "idmutation",
    "datemut",
    "valeurfonc",
    "libtypbien",
    "sbatapt",
    "code_postal",
    "nbapt1pp",
    "adresse_complete",
    "commune",
]
PROGRESS_EVERY = 100_000

@dataclass
class PreprocessStats:
    lines: int = 0
    kept: int = 0

def _cell(columns: List[str], index: Optional[int]) -> str:
    if index is None or index >= len(columns):
        return ""
    return columns[index].strip()

def extract_row(columns: List[str], department: str) -> Optional[List[str]]:
    """Output cells for a national row, or None when the row is not wanted."""
    m = NATIONAL_LAYOUT
    if _cell(columns, NATIONAL_DEPARTMENT_COLUMN) != department:
        return None
    if not (_cell(columns, m.id) and _cell(columns, m.date) and _cell(columns, m.value)):
        return None
    kind = _cell(columns, m.property_type)
    if not any(label in kind.lower() for label in ADMISSIBLE_TYPES):
        return None
    address = compose_address(
        _cell(columns, m.street_number), _cell(columns, m.street_type), _cell(columns, m.street_name)
    )
    return [
        _cell(columns, m.id),
        _cell(columns, m.date),
        _cell(columns, m.value).replace(",", "."),
        kind,
        _cell(columns, m.area).replace(",", "."),
        _cell(columns, m.postal_code),
        _cell(columns, m.rooms),
        address or "",
        _cell(columns, m.commune),
    ]

def preprocess(lines: Iterable[str], out: TextIO, department: str = "93") -> PreprocessStats:
    stats = PreprocessStats()
    out.write(";".join(OUTPUT_COLUMNS) + "\n")
    for line in lines:
        stats.lines += 1
        if stats.lines == 1:
            continue  # national header
        row = extract_row(line.rstrip("\r\n").split("|"), department)
        if row is not None:
            out.write(";".join(cell.replace(";", " ") for cell in row) + "\n")
            stats.kept += 1
        if stats.lines % PROGRESS_EVERY == 0:
            logger.info("%d lines read, %d transactions kept", stats.lines, stats.kept)
    return stats

def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Extract one department from a national DVF file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("input", type=Path, help="national pipe-delimited DVF file")
    parser.add_argument("output", type=Path, help="semicolon CSV to write")
    parser.add_argument("--department", default="93", help="department code (default: 93)")
    args = parser.parse_args(argv)

    configure_logging()
    if not args.input.exists():
        logger.error("input file not found: %s", args.input)
        return 1

    args.output.parent.mkdir(parents=True, exist_ok=True)
    with args.input.open(encoding="utf-8", errors="replace") as src, \
            args.output.open("w", encoding="utf-8") as dst:
        stats = preprocess(src, dst, args.department)

    logger.info("%s: %d lines, %d transactions for department %s written to %s",
                args.input, stats.lines, stats.kept, args.department, args.output)
    return 0

if __name__ == "__main__":
    sys.exit(main())
