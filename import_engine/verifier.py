"""
import_engine.verifier - Post-import safety net.

After commit (or, on the fatal path, after rollback) the real row
counts are compared against the number of rows submitted.  Zero
persisted rows for a non-empty submission is a silent failure and is
reported with a categorised diagnostic instead of a success.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

import config
from db import faults
from db.models import MODEL_BY_TYPE, number_column
from import_engine.report import Verification
from services.placeholder_service import UNKNOWN_NUMBER

logger = logging.getLogger(__name__)

SUCCESS        = "success"
LOW_SUCCESS    = "low_success"
SILENT_FAILURE = "silent_failure"

# fault kind → errorAnalysis key, with the pattern it indicates
_CATEGORIES = {
    faults.CONSTRAINT:     ("constraints", "Database constraint violations"),
    faults.MISSING_COLUMN: ("missingColumns", "Missing database columns"),
    faults.FOREIGN_KEY:    ("foreignKeys", "Foreign key reference errors"),
    faults.DUPLICATE:      ("duplicates", "Duplicate record conflicts"),
    faults.OTHER:          ("other", None),
}

TROUBLESHOOTING = {
    "checkSchema": "Verify the database schema has all required columns (id, *_number fields)",
    "checkConstraints": "Look for foreign key constraint violations in server logs",
    "checkDataFormat": "Ensure CSV data matches expected column names and formats",
    "checkSequences": "Verify number sequences are working properly",
}


def count_real_rows(session: Session) -> dict[str, int]:
    """Rows per entity type, excluding the Unknown placeholders."""
    counts = {}
    for entity_type, model in MODEL_BY_TYPE.items():
        col = number_column(model)
        counts[entity_type] = session.execute(
            select(func.count()).select_from(model)
            .where((col != UNKNOWN_NUMBER) | col.is_(None))
        ).scalar_one()
    return counts


def verify(session: Session, expected: int) -> Verification:
    counts = count_real_rows(session)
    actual = sum(counts.values())
    rate = (actual / expected * 100) if expected > 0 else 100.0

    if expected > 0 and actual == 0:
        status = SILENT_FAILURE
        logger.error(f"Import expected {expected} records but none are persisted")
    elif expected > 0 and actual / expected < config.LOW_SUCCESS_RATE:
        status = LOW_SUCCESS
        logger.warning(f"Low success rate: {rate:.1f}% ({actual}/{expected})")
    else:
        status = SUCCESS

    return Verification(expected=expected, actual=actual, counts=counts,
                        success_rate=round(rate, 1), status=status)


def analyze_errors(errors: list[dict]) -> dict:
    """Count accumulated row errors by storage fault category."""
    if not errors:
        return {"summary": "No specific errors recorded - likely silent database failures"}

    error_types: dict[str, int] = {}
    patterns: list[str] = []
    for error in errors:
        key, pattern = _CATEGORIES.get(error.get("category"), _CATEGORIES[faults.OTHER])
        error_types[key] = error_types.get(key, 0) + 1
        if pattern and pattern not in patterns:
            patterns.append(pattern)

    return {
        "totalErrors": len(errors),
        "errorTypes": error_types,
        "commonPatterns": patterns,
        "samples": errors[:3],
    }


def common_failure_causes(errors: list[dict], counts: dict[str, int]) -> list[dict]:
    """Likely root causes, most fundamental first."""
    causes = []
    categories = {e.get("category") for e in errors}

    if sum(counts.values()) == 0:
        causes.append({
            "cause": "Empty database",
            "description": "Database contains no records at all",
            "solution": "Check that the database schema was applied before importing",
        })
    if faults.MISSING_COLUMN in categories:
        causes.append({
            "cause": "Schema mismatch",
            "description": "Database schema is missing required columns",
            "solution": "Apply the current schema before import",
        })
    if categories & {faults.CONSTRAINT, faults.FOREIGN_KEY}:
        causes.append({
            "cause": "Data validation failures",
            "description": "Records failed database constraint checks",
            "solution": "Check for constraint mismatches between the CSV data and the schema",
        })
    if faults.DUPLICATE in categories:
        causes.append({
            "cause": "Duplicate identifiers",
            "description": "Rows reuse external numbers that already exist",
            "solution": "Remove repeated IDs from the CSV or import in project mode",
        })
    if not causes:
        causes.append({
            "cause": "Silent database failures",
            "description": "Database operations completed without errors but no data was inserted",
            "solution": "Check server logs for detailed database error messages",
        })
    return causes


def build_failure_details(stage: str, files_processed: int, verification: Verification,
                          errors: list[dict]) -> dict:
    return {
        "stage": stage,
        "filesProcessed": files_processed,
        "recordsExpected": verification.expected,
        "recordsActual": verification.actual,
        "databaseCounts": verification.counts,
        "errorAnalysis": analyze_errors(errors),
        "commonCauses": common_failure_causes(errors, verification.counts),
        "specificErrors": errors,
        "troubleshooting": TROUBLESHOOTING,
    }
