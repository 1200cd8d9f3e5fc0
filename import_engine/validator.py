"""
import_engine.validator - Required-field rules per entity type.

The import mode is not consulted: a record gets the same
issues whether it is tagged "migration" or "project".
"""

from __future__ import annotations

from import_engine.errors import ValidationIssue
from import_engine.normalizer import NormalizedRecord, NormalizedFile


def _has_number(record: NormalizedRecord) -> bool:
    return record.external_number_raw is not None


def _validate_organization(record: NormalizedRecord) -> list[ValidationIssue]:
    # Missing PI name and institute get placeholder values in the
    # normalizer; legacy rows are never blocked on them.
    return []


def _validate_project(record: NormalizedRecord) -> list[ValidationIssue]:
    if not _has_number(record):
        return [ValidationIssue(record.file, record.row, "ID",
                                "Missing required project ID")]
    return []


def _validate_specimen(record: NormalizedRecord) -> list[ValidationIssue]:
    if not (record.fields.get("tube_id") or _has_number(record)):
        return [ValidationIssue(record.file, record.row, "tube_id",
                                "Missing required specimen identifier")]
    return []


def _validate_patient(record: NormalizedRecord) -> list[ValidationIssue]:
    return []


_RULES = {
    "organizations": _validate_organization,
    "projects":      _validate_project,
    "specimens":     _validate_specimen,
    "patients":      _validate_patient,
}


def validate_record(record: NormalizedRecord) -> list[ValidationIssue]:
    """Return the record's issues (possibly none).  Never raises."""
    rule = _RULES.get(record.entity_type)
    if rule is None:
        return [ValidationIssue(record.file, record.row, "entity_type",
                                f"Unknown entity type {record.entity_type!r}")]
    return rule(record)


def validate_file(normalized: NormalizedFile) -> tuple[list[NormalizedRecord], list[ValidationIssue]]:
    """Split a file's records into (valid records, accumulated issues)."""
    valid: list[NormalizedRecord] = []
    issues: list[ValidationIssue] = []
    for record in normalized.records:
        found = validate_record(record)
        if found:
            issues.extend(found)
        else:
            valid.append(record)
    return valid, issues


def all_rows_failed(normalized: NormalizedFile, valid: list[NormalizedRecord]) -> bool:
    """True when a file had rows and none of them passed validation."""
    return bool(normalized.records) and not valid
