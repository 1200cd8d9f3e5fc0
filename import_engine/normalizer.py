"""
import_engine.normalizer - Source rows → canonical entity records.

Pure transform: no database access, no logging of row contents above
DEBUG.  One NormalizedRecord is produced per parsed source row, tagged
with its row number and the import mode.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Optional

from dateutil import parser as date_parser

from import_engine.csv_parser import BLANK_VALUES, ParsedFile
from import_engine.field_map import (
    BOOLEAN_FIELDS, DATE_FIELDS, DECIMAL_FIELDS, INTEGER_FIELDS,
    build_header_map,
)

logger = logging.getLogger(__name__)

MIGRATION = "migration"
PROJECT = "project"
IMPORT_MODES = (MIGRATION, PROJECT)

TRUE_VALUES = frozenset({"yes", "true", "1", "y", "t", "on", "enabled", "active"})

# Placeholder dates legacy lab exports use for "unknown"
PLACEHOLDER_DATES = frozenset({"0000-00-00", "00/00/00", "00/00/0000", "0",
                               "12/31/69", "12/31/1969", "1969-12-31"})
EXCEL_EPOCH = date(1899, 12, 30)
EXCEL_SERIAL_MIN = 25569          # 1970-01-01
MIN_YEAR, MAX_YEAR = 1900, 2030   # exclusive bounds of a plausible date

_INT_RE = re.compile(r"^[+-]?\d+(?:\.0*)?$")


@dataclass
class NormalizedRecord:
    entity_type: str
    file: str
    row: int
    mode: str
    fields: dict[str, Any]
    external_number: Optional[int] = None
    external_number_raw: Optional[str] = None
    raw: dict[str, str] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        value = self.fields.get(name)
        return default if value is None else value

    @property
    def is_migration(self) -> bool:
        return self.mode == MIGRATION


@dataclass
class NormalizedFile:
    entity_type: str
    filename: str
    records: list[NormalizedRecord]
    unmatched_headers: list[str]
    parsed: ParsedFile


# ── Value helpers ──────────────────────────────────────────────────────

def is_blank(value: Any) -> bool:
    return value is None or str(value).strip() in BLANK_VALUES


def parse_boolean(value: Any) -> bool:
    """Fixed yes/no vocabulary; anything unrecognised is False."""
    if is_blank(value):
        return False
    return str(value).strip().lower() in TRUE_VALUES


def clean_numeric(value: Any) -> Optional[float]:
    """'250 ul' → 250.0, '1,200mg' → 1200.0, 'n/a' → None."""
    if is_blank(value):
        return None
    cleaned = re.sub(r"[^\d.\-]", "", str(value).replace(",", ""))
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def parse_int(value: Any) -> Optional[int]:
    if is_blank(value):
        return None
    text = str(value).strip()
    if not _INT_RE.match(text):
        return None
    return int(float(text)) if "." in text else int(text)


def convert_excel_date(value: Any) -> Optional[date]:
    """
    Excel serial number or date string → date.

    Known placeholders, unparseable text and implausible years give
    None rather than an error.  Two-digit years that land after 2030
    are read as the previous century.
    """
    if is_blank(value):
        return None
    text = str(value).strip()
    if text in PLACEHOLDER_DATES:
        return None

    try:
        serial = float(text)
    except ValueError:
        serial = None

    if serial is not None:
        if serial <= EXCEL_SERIAL_MIN:
            return None
        try:
            parsed = EXCEL_EPOCH + timedelta(days=int(serial))
        except OverflowError:
            return None
    else:
        try:
            parsed = date_parser.parse(text).date()
        except (ValueError, OverflowError):
            return None
        if parsed.year > MAX_YEAR:
            try:
                parsed = parsed.replace(year=parsed.year - 100)
            except ValueError:          # 29 Feb
                parsed = parsed.replace(year=parsed.year - 100, day=28)

    if not (MIN_YEAR < parsed.year < MAX_YEAR):
        return None
    return parsed


def _convert(name: str, value: str) -> Any:
    if name in BOOLEAN_FIELDS:
        return parse_boolean(value)
    if name in DECIMAL_FIELDS:
        return clean_numeric(value)
    if name in INTEGER_FIELDS:
        number = clean_numeric(value)
        return int(number) if number is not None else None
    if name in DATE_FIELDS:
        return convert_excel_date(value)
    return value


# ── Per-type defaults ──────────────────────────────────────────────────

def _apply_defaults(entity_type: str, fields: dict[str, Any]) -> None:
    if entity_type == "organizations":
        name, institute = fields.get("pi_name"), fields.get("pi_institute")
        if not name:
            fields["pi_name"] = f"PI at {institute}" if institute else "Unknown PI"
        if not institute:
            fields["pi_institute"] = "Unknown Institution"
    elif entity_type == "projects":
        fields.setdefault("disease", "Unknown")
    elif entity_type == "specimens":
        fields.setdefault("activity_status", "Active")
        fields.setdefault("extracted", False)
        fields.setdefault("used_up", False)


# ── Entry points ───────────────────────────────────────────────────────

def normalize_row(values: dict[str, str], row: int, filename: str,
                  entity_type: str, mode: str,
                  header_map: dict[str, list[str]]) -> NormalizedRecord:
    fields: dict[str, Any] = {}
    number, number_raw = None, None

    for canonical, sources in header_map.items():
        present = [values[h] for h in sources if not is_blank(values.get(h))]
        if not present:
            continue
        if canonical == "external_number":
            number_raw = present[0]
            number = next((n for n in map(parse_int, present) if n is not None), None)
            continue
        converted = _convert(canonical, present[0])
        if converted is not None:
            fields[canonical] = converted

    _apply_defaults(entity_type, fields)
    return NormalizedRecord(
        entity_type=entity_type, file=filename, row=row, mode=mode,
        fields=fields, external_number=number,
        external_number_raw=number_raw, raw=dict(values),
    )


def normalize_file(parsed: ParsedFile, entity_type: str, mode: str) -> NormalizedFile:
    """Normalize every row of a parsed file.  The header map is built once."""
    if mode not in IMPORT_MODES:
        raise ValueError(f"Unknown import mode: {mode!r}")

    header_map, unmatched = build_header_map(entity_type, parsed.headers)
    if unmatched:
        logger.debug(f"{parsed.filename}: ignoring headers {unmatched}")

    records = [
        normalize_row(src.values, src.row, parsed.filename,
                      entity_type, mode, header_map)
        for src in parsed.rows
    ]
    return NormalizedFile(entity_type, parsed.filename, records, unmatched, parsed)
