"""
Parsing of raw DVF rows into `Transaction` values.

Two layouts are understood:
  * the compact semicolon extract with a named header row
    (idmutation;datemut;valeurfonc;libtypbien;sbatapt;code_postal;nbapt1pp)
  * the national pipe-delimited file, read by fixed column position.

Every row yields an `Ok` or an `Err`; nothing in here raises on bad data,
so a single broken line never aborts a batch.
"""

import csv
import math
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator, Optional, Sequence, Union

from .base import SourceError, Transaction

# Admissibility bounds
MIN_AREA_M2 = 9
MAX_AREA_M2 = 400
MIN_PRICE_PER_M2 = 500
MAX_PRICE_PER_M2 = 15000
MIN_PRICE = 10000
ADMISSIBLE_TYPES = ("appartement", "maison", "apartment", "house")

# Cadastral street-type codes found in the national file
STREET_TYPES = {
    "RUE": "rue",
    "AV": "avenue",
    "BD": "boulevard",
    "CHE": "chemin",
    "IMP": "impasse",
    "PL": "place",
    "ALL": "allee",
    "PAS": "passage",
    "CRS": "cours",
    "QUA": "quai",
}

class RejectReason(str, Enum):
    MISSING_FIELD = "missing_field"
    BAD_POSTAL_CODE = "bad_postal_code"
    BAD_NUMBER = "bad_number"
    NOT_ADMISSIBLE = "not_admissible"

@dataclass(frozen=True)
class ParseError:
    reason: RejectReason
    detail: str = ""

@dataclass(frozen=True)
class Ok:
    value: Transaction

@dataclass(frozen=True)
class Err:
    error: ParseError

ParseResult = Union[Ok, Err]

class HeaderError(SourceError):
    """The header row lacks a column we need."""

@dataclass(frozen=True)
class ColumnMapping:
    """Zero-based positions of the fields we read in a row."""
    id: int
    date: int
    value: int
    property_type: int
    area: int
    postal_code: int
    rooms: int
    full_address: Optional[int] = None
    commune: Optional[int] = None
    street_number: Optional[int] = None
    street_type: Optional[int] = None
    street_name: Optional[int] = None

    REQUIRED_COLUMNS = {
        "id": "idmutation",
        "date": "datemut",
        "value": "valeurfonc",
        "property_type": "libtypbien",
        "area": "sbatapt",
        "postal_code": "code_postal",
        "rooms": "nbapt1pp",
    }
    OPTIONAL_COLUMNS = {
        "full_address": "adresse_complete",
        "commune": "commune",
    }

    @classmethod
    def from_header(cls, header: Sequence[str]) -> "ColumnMapping":
        names = [h.strip().lower() for h in header]
        positions = {}
        for attr, column in cls.REQUIRED_COLUMNS.items():
            if column not in names:
                raise HeaderError(f"missing column {column!r} in header")
            positions[attr] = names.index(column)
        for attr, column in cls.OPTIONAL_COLUMNS.items():
            if column in names:
                positions[attr] = names.index(column)
        return cls(**positions)

# Layout of the national "ValeursFoncieres-YYYY.txt" files (pipe-delimited)
NATIONAL_LAYOUT = ColumnMapping(
    id=7,
    date=8,
    value=10,
    property_type=36,
    area=38,
    postal_code=16,
    rooms=39,
    commune=17,
    street_number=11,
    street_type=13,
    street_name=15,
)
NATIONAL_DEPARTMENT_COLUMN = 18

def parse_decimal(text: str) -> float:
    """'468000,00' → 468000.0. Raises ValueError on garbage, NaN or infinity."""
    value = float(text.strip().replace(" ", "").replace(",", "."))
    if math.isnan(value) or math.isinf(value):
        raise ValueError(f"not a finite number: {text!r}")
    return value

def parse_rooms(text: str) -> int:
    try:
        return int(float(text.strip().replace(",", ".")))
    except (ValueError, OverflowError):
        return 0

def parse_date(text: str) -> str:
    """DD/MM/YYYY → YYYY-MM-DD; anything else is returned unchanged."""
    parts = text.strip().split("/")
    if len(parts) == 3:
        day, month, year = parts
        return f"{year}-{month.zfill(2)}-{day.zfill(2)}"
    return text

def compose_address(number: str, type_code: str, name: str) -> Optional[str]:
    street_type = STREET_TYPES.get(type_code.strip().upper(), type_code.strip().lower())
    parts = [p for p in (number.strip().lstrip("0"), street_type, name.strip()) if p]
    return " ".join(parts) or None

def is_admissible(t: Transaction) -> bool:
    kind = t.property_type.lower()
    return (
        MIN_AREA_M2 <= t.living_area <= MAX_AREA_M2
        and MIN_PRICE_PER_M2 <= t.price_per_area <= MAX_PRICE_PER_M2
        and t.price > MIN_PRICE
        and any(label in kind for label in ADMISSIBLE_TYPES)
    )

def _cell(fields: Sequence[str], index: Optional[int]) -> str:
    if index is None or index >= len(fields):
        return ""
    return fields[index]

def parse_fields(fields: Sequence[str], mapping: ColumnMapping) -> ParseResult:
    """Turn one split row into a Transaction, or say why it cannot be one."""
    postal_code = _cell(fields, mapping.postal_code).strip()
    if len(postal_code) != 5:
        return Err(ParseError(RejectReason.BAD_POSTAL_CODE, postal_code))

    raw_value = _cell(fields, mapping.value)
    raw_area = _cell(fields, mapping.area)
    if not raw_value.strip() or not raw_area.strip():
        return Err(ParseError(RejectReason.MISSING_FIELD, "value/area"))
    try:
        price = parse_decimal(raw_value)
        area = parse_decimal(raw_area)
    except ValueError as exc:
        return Err(ParseError(RejectReason.BAD_NUMBER, str(exc)))
    if price <= 0 or area <= 0:
        return Err(ParseError(RejectReason.BAD_NUMBER, f"{raw_value!r}/{raw_area!r}"))

    if mapping.full_address is not None:
        full_address = _cell(fields, mapping.full_address).strip() or None
    elif mapping.street_name is not None:
        full_address = compose_address(
            _cell(fields, mapping.street_number),
            _cell(fields, mapping.street_type),
            _cell(fields, mapping.street_name),
        )
    else:
        full_address = None

    transaction = Transaction(
        id=_cell(fields, mapping.id).strip(),
        sale_date=parse_date(_cell(fields, mapping.date)),
        price=price,
        property_type=_cell(fields, mapping.property_type).strip(),
        living_area=area,
        postal_code=postal_code,
        room_count=parse_rooms(_cell(fields, mapping.rooms)),
        full_address=full_address,
        commune=_cell(fields, mapping.commune).strip() or None,
    )
    if not is_admissible(transaction):
        return Err(ParseError(RejectReason.NOT_ADMISSIBLE, transaction.id))
    return Ok(transaction)

def iter_parsed(
    lines: Iterable[str],
    delimiter: str = ";",
    mapping: Optional[ColumnMapping] = None,
    has_header: bool = True,
) -> Iterator[ParseResult]:
    """
    Lazily parse rows. With no explicit mapping the header row defines it.
    Blank lines are skipped and do not produce a result.
    """
    reader = csv.reader(lines, delimiter=delimiter)
    if has_header:
        header = next(reader, None)
        if header is None:
            return
        if mapping is None:
            mapping = ColumnMapping.from_header(header)
    if mapping is None:
        raise ValueError("a column mapping is required when there is no header row")
    for fields in reader:
        if not fields or not any(f.strip() for f in fields):
            continue
        yield parse_fields(fields, mapping)

@dataclass
class IngestionStats:
    rows_processed: int = 0
    accepted: int = 0
    rejected: int = 0
    reasons: Counter = field(default_factory=Counter)

    def record(self, result: ParseResult) -> None:
        self.rows_processed += 1
        if isinstance(result, Ok):
            self.accepted += 1
        else:
            self.rejected += 1
            self.reasons[result.error.reason.value] += 1
