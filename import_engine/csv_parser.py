"""
import_engine.csv_parser - Low-level CSV reading and cleaning.

Responsibilities:
  • BOM removal (UTF-8 / UTF-8-SIG)
  • Header cleaning (quotes, tabs, surrounding whitespace)
  • Source row numbering for error reports (header = row 1)
  • Dropping rows that carry no data at all
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from typing import Optional

from import_engine.errors import ParseError

logger = logging.getLogger(__name__)

BLANK_VALUES = frozenset({"", "NULL", "null"})


@dataclass
class SourceRow:
    row: int
    values: dict[str, str]


@dataclass
class ParsedFile:
    filename: str
    headers: list[str]
    rows: list[SourceRow] = field(default_factory=list)
    filtered_rows: int = 0
    original_row_count: int = 0

    @property
    def total_rows(self) -> int:
        return len(self.rows)


def prepare_reader(raw: str | bytes) -> Optional[csv.DictReader]:
    """
    Accept raw file content (bytes or str), clean it,
    and return a DictReader.  Returns None if content is empty.
    """
    text = _decode(raw)
    if not text or not text.strip():
        return None

    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        return None

    reader.fieldnames = [_clean_header(h) for h in reader.fieldnames]
    return reader


def parse_csv(raw: str | bytes, filename: str) -> ParsedFile:
    """
    Read a whole CSV into SourceRows.  Raises ParseError when the file
    is empty, has no header, or is not valid CSV.
    """
    reader = prepare_reader(raw)
    if reader is None:
        raise ParseError(filename, "file appears to be empty")
    if not any(reader.fieldnames):
        raise ParseError(filename, "header row has no column names")

    parsed = ParsedFile(filename=filename, headers=list(reader.fieldnames))
    try:
        for row_idx, row in enumerate(reader, start=2):   # row 1 = header
            parsed.original_row_count += 1
            values = {
                k: v.strip()
                for k, v in row.items()
                if k and isinstance(v, str) and v.strip()
            }
            if all(v in BLANK_VALUES for v in values.values()):
                parsed.filtered_rows += 1
                continue
            parsed.rows.append(SourceRow(row=row_idx, values=values))
    except csv.Error as exc:
        raise ParseError(filename, f"line {reader.line_num}: {exc}") from exc

    logger.info(f"Parsed {filename}: {parsed.total_rows} rows "
                f"({parsed.filtered_rows} empty rows filtered)")
    return parsed


def _clean_header(header: Optional[str]) -> str:
    if header is None:
        return ""
    return header.replace('"', "").replace("\t", "").strip()


def _decode(raw: str | bytes) -> str:
    if isinstance(raw, bytes):
        # Strip UTF-8 BOM
        if raw.startswith(b"\xef\xbb\xbf"):
            raw = raw[3:]
        return raw.decode("utf-8", errors="replace")
    if raw.startswith("\ufeff"):
        return raw[1:]
    return raw
