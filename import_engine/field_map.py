"""
import_engine.field_map - CSV header aliases ↔ canonical entity fields.

Headers are folded before lookup (lower-case, spaces/hyphens/dots as
underscores), so "PI_Name", "PI Name" and "pi_name" are one alias.
Alias order matters: the first alias present in a file with a usable
value wins.
"""

from __future__ import annotations

import re

# Canonical field  →  folded header aliases, per entity type
FIELD_ALIASES: dict[str, dict[str, list[str]]] = {
    "organizations": {
        "external_number":  ["id", "organization_number", "collaborator_number",
                             "organization_id", "collaborator_id", "number"],
        "irb_id":           ["irb_id", "irb"],
        "pi_name":          ["pi_name", "pi", "principal_investigator"],
        "pi_institute":     ["pi_institute", "institute", "institution"],
        "pi_email":         ["pi_email", "email"],
        "pi_phone":         ["pi_phone", "phone"],
        "pi_fax":           ["pi_fax", "fax"],
        "internal_contact": ["internal_contact", "contact"],
        "comments":         ["comments", "comment", "notes"],
    },
    "projects": {
        "external_number":        ["id", "project_number", "project_id", "number"],
        "organization_reference": ["collaborator", "collaborator_id", "collaborator_number",
                                   "organization", "organization_id", "organization_number"],
        "disease":                ["disease", "diagnosis"],
        "specimen_type":          ["specimen_type", "sample_type"],
        "source":                 ["source"],
        "date_received":          ["date_received", "received"],
        "feedback_date":          ["feedback_date"],
        "comments":               ["comments", "comment", "notes"],
    },
    "specimens": {
        "external_number":        ["id", "specimen_number"],
        "tube_id":                ["tube_id", "specimen_id", "sample_id", "barcode"],
        "project_reference":      ["project", "project_id", "project_number"],
        "patient_reference":      ["patient", "patient_id", "patient_number"],
        "date_collected":         ["date_collected", "collection_date"],
        "activity_status":        ["activity_status", "status"],
        "extracted":              ["extracted", "is_extracted"],
        "used_up":                ["used_up"],
        "initial_quantity":       ["initial_quantity", "quantity", "volume"],
        "specimen_site":          ["specimen_site", "site", "specimen_type"],
        "position_freezer":       ["position_freezer", "freezer", "location"],
        "position_rack":          ["position_rack", "rack"],
        "position_box":           ["position_box", "box"],
        "position_dimension_one": ["position_dimension_one", "position_1", "pos1"],
        "position_dimension_two": ["position_dimension_two", "position_2", "pos2"],
        "collection_category":    ["collection_category"],
        "extraction_method":      ["extraction_method"],
        "nucleated_cells":        ["nucleated_cells"],
        "cell_numbers":           ["cell_numbers"],
        "percentage_segs":        ["percentage_segs"],
        "csf_protein":            ["csf_protein"],
        "csf_gluc":               ["csf_gluc"],
        "run_number":             ["run_number"],
        "comments":               ["comments", "notes", "description"],
    },
    "patients": {
        "external_number":      ["id", "patient_number", "patient_id"],
        "external_id":          ["external_id", "mrn", "medical_record_number"],
        "first_name":           ["first_name", "firstname"],
        "last_name":            ["last_name", "lastname"],
        "date_of_birth":        ["date_of_birth", "dob", "birth_date"],
        "diagnosis":            ["diagnosis", "disease"],
        "physician_first_name": ["physician_first_name"],
        "physician_last_name":  ["physician_last_name"],
        "comments":             ["comments", "notes"],
    },
}

BOOLEAN_FIELDS = frozenset({"extracted", "used_up"})
DECIMAL_FIELDS = frozenset({"initial_quantity", "percentage_segs", "csf_protein", "csf_gluc"})
INTEGER_FIELDS = frozenset({"cell_numbers"})
DATE_FIELDS    = frozenset({"date_received", "feedback_date", "date_collected", "date_of_birth"})

# Fields kept as raw text so the resolver can interpret them
REFERENCE_FIELDS = frozenset({"organization_reference", "project_reference", "patient_reference"})

# Upload field names accepted for each entity type
FILE_FIELD_ALIASES: dict[str, str] = {
    "organizations": "organizations",
    "collaborators": "organizations",
    "projects":      "projects",
    "specimens":     "specimens",
    "patients":      "patients",
}

_FOLD_RE = re.compile(r"[\s\-./]+")


def fold_header(header: str) -> str:
    """'PI Name' / 'PI_Name' / 'pi-name' → 'pi_name'."""
    folded = _FOLD_RE.sub("_", header.strip().lower())
    return re.sub(r"_+", "_", folded).strip("_")


def build_header_map(entity_type: str, headers: list[str]) -> tuple[dict[str, list[str]], list[str]]:
    """
    Match a file's headers against the alias table once.

    Returns ({canonical: [source headers in alias priority order]},
    [headers nothing matched]).
    """
    aliases = FIELD_ALIASES[entity_type]
    by_folded: dict[str, list[str]] = {}
    for h in headers:
        if h:
            by_folded.setdefault(fold_header(h), []).append(h)

    header_map: dict[str, list[str]] = {}
    used: set[str] = set()
    for canonical, alias_list in aliases.items():
        sources: list[str] = []
        for alias in alias_list:
            for h in by_folded.get(alias, []):
                if h not in sources:
                    sources.append(h)
        if sources:
            header_map[canonical] = sources
            used.update(sources)

    unmatched = [h for h in headers if h and h not in used]
    return header_map, unmatched
