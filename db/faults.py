"""
db.faults - Tagged storage-failure model.

Turns a DBAPI error raised by SQLAlchemy into a small ``StorageFault``
record built from the driver's structured error codes (SQLSTATE on
PostgreSQL, extended result-code names on SQLite).  Callers branch on
``fault.kind`` instead of reading the human-readable message.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import DBAPIError


DUPLICATE      = "duplicate"
FOREIGN_KEY    = "foreign_key"
CONSTRAINT     = "constraint"
MISSING_COLUMN = "missing_column"
OTHER          = "other"

_SQLSTATE_KINDS = {
    "23505": DUPLICATE,        # unique_violation
    "23503": FOREIGN_KEY,      # foreign_key_violation
    "23514": CONSTRAINT,       # check_violation
    "23502": CONSTRAINT,       # not_null_violation
    "23P01": CONSTRAINT,       # exclusion_violation
    "42703": MISSING_COLUMN,   # undefined_column
}

_SQLITE_KINDS = {
    "SQLITE_CONSTRAINT_UNIQUE":     DUPLICATE,
    "SQLITE_CONSTRAINT_PRIMARYKEY": DUPLICATE,
    "SQLITE_CONSTRAINT_FOREIGNKEY": FOREIGN_KEY,
    "SQLITE_CONSTRAINT_CHECK":      CONSTRAINT,
    "SQLITE_CONSTRAINT_NOTNULL":    CONSTRAINT,
}


@dataclass(frozen=True)
class StorageFault:
    kind: str
    message: str
    table: Optional[str] = None
    column: Optional[str] = None
    constraint: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "table": self.table,
            "column": self.column,
            "constraint": self.constraint,
        }


def classify_fault(exc: BaseException) -> StorageFault:
    """Build a StorageFault from any exception raised by the storage layer."""
    orig = exc.orig if isinstance(exc, DBAPIError) else exc
    message = str(orig).strip().splitlines()[0] if str(orig).strip() else type(orig).__name__

    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate:
        diag = getattr(orig, "diag", None)
        return StorageFault(
            kind=_SQLSTATE_KINDS.get(sqlstate, CONSTRAINT if sqlstate.startswith("23") else OTHER),
            message=message,
            table=getattr(diag, "table_name", None),
            column=getattr(diag, "column_name", None),
            constraint=getattr(diag, "constraint_name", None),
        )

    errname = getattr(orig, "sqlite_errorname", None)
    if errname:
        kind = _SQLITE_KINDS.get(errname)
        if kind is None:
            kind = CONSTRAINT if errname.startswith("SQLITE_CONSTRAINT") else OTHER
        return StorageFault(kind=kind, message=message)

    return StorageFault(kind=OTHER, message=message)
