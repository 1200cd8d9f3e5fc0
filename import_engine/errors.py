"""
import_engine.errors - Error taxonomy of an import run.

Row-level problems are recovered locally and reported; run-level
problems abort the transaction.

    ParseError             one file is empty/malformed; only that file is dropped
    ValidationIssue        missing required field; accumulated, never raised
    ResolutionNote         reference fell back to the Unknown placeholder
    RowInsertError         storage rejected one row; row skipped, run continues
    TransactionFatalError  anything else while writing; whole run rolled back
    SilentFailureError     commit reported success but nothing was persisted
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from db.faults import StorageFault


class ImportEngineError(Exception):
    """Base class for import engine failures."""


class ParseError(ImportEngineError):
    def __init__(self, filename: str, message: str):
        super().__init__(f"Failed to parse {filename}: {message}")
        self.filename = filename


class RowInsertError(ImportEngineError):
    """Raised when a single row cannot be written."""

    def __init__(self, message: str, fault: Optional[StorageFault] = None):
        super().__init__(message)
        self.fault = fault

    @property
    def category(self) -> str:
        return self.fault.kind if self.fault else "other"


class TransactionFatalError(ImportEngineError):
    """An uncaught failure while writing; the run has been rolled back."""

    def __init__(self, message: str, stage: str,
                 fault: Optional[StorageFault] = None):
        super().__init__(message)
        self.stage = stage
        self.fault = fault


class SilentFailureError(ImportEngineError):
    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Import processed {expected} records but none were persisted"
        )
        self.expected = expected
        self.actual = actual


class ImportValidationFailed(ImportEngineError):
    """Every row of at least one submitted file failed validation."""

    def __init__(self, files: list[str], errors: Optional[list[dict]] = None):
        super().__init__(
            f"No valid rows in {', '.join(files)}; nothing was imported"
        )
        self.files = files
        self.errors = errors or []


@dataclass
class ValidationIssue:
    file: str
    row: int
    field: str
    message: str

    def to_dict(self) -> dict:
        return {"file": self.file, "row": self.row,
                "field": self.field, "message": self.message}


@dataclass
class ResolutionNote:
    entity_type: str      # type that was looked up
    reference: str
    message: str
    row: Optional[int] = None
