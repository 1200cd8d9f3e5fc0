"""
import_engine.report - Structured results of preview and execute runs.

Python attributes are snake_case; ``to_dict`` emits the camelCase keys
the API returns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class EntityResult:
    """Write outcome for one entity type."""
    total: int = 0
    imported: int = 0
    skipped: int = 0
    existing: int = 0                                   # pre-existing, mapped
    errors: list[dict] = field(default_factory=list)    # [{file, row, message, category}]

    def add_error(self, file: str, row: int, message: str,
                  category: str = "other", field_name: Optional[str] = None):
        error = {"file": file, "row": row, "message": message, "category": category}
        if field_name:
            error["field"] = field_name
        self.errors.append(error)
        self.skipped += 1

    @property
    def conflicts(self) -> int:
        return len(self.errors)

    def to_dict(self) -> dict:
        return {"imported": self.imported, "skipped": self.skipped}


@dataclass
class PreviewReport:
    results: dict[str, EntityResult] = field(default_factory=dict)
    errors: list[dict] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    sample_data: dict[str, list[dict]] = field(default_factory=dict)
    stage: str = "reported"

    def to_dict(self) -> dict:
        return {
            "summary": {
                entity_type: {
                    "total": r.total,
                    "new": r.imported,
                    "existing": r.existing,
                    "conflicts": r.conflicts,
                }
                for entity_type, r in self.results.items()
            },
            "errors": self.errors,
            "warnings": self.warnings,
            "sampleData": self.sample_data,
        }


@dataclass
class Verification:
    expected: int
    actual: int
    counts: dict[str, int]
    success_rate: float
    status: str                 # success | low_success | silent_failure | unavailable

    @property
    def ok(self) -> bool:
        return self.status != "silent_failure"

    def to_dict(self) -> dict:
        return {
            "expected": self.expected,
            "actual": self.actual,
            "successRate": self.success_rate,
        }


@dataclass
class ExecuteReport:
    success: bool = False
    message: str = ""
    stage: str = "received"
    total_files: int = 0
    total_records: int = 0
    results: dict[str, EntityResult] = field(default_factory=dict)
    errors: list[dict] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    sequence_updates: dict[str, str] = field(default_factory=dict)
    validation: Optional[Verification] = None
    details: Optional[dict] = None

    def to_dict(self) -> dict:
        out = {
            "success": self.success,
            "message": self.message,
            "stage": self.stage,
            "summary": {
                "totalFiles": self.total_files,
                "totalRecords": self.total_records,
            },
            "results": {t: r.to_dict() for t, r in self.results.items()},
            "errors": self.errors,
            "warnings": self.warnings,
            "sequenceUpdates": self.sequence_updates,
            "validation": self.validation.to_dict() if self.validation else None,
        }
        if self.details is not None:
            out["details"] = self.details
        return out
