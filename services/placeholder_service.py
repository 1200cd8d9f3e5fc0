"""
services.placeholder_service - Reserved "Unknown" rows (number 0).

Every entity table keeps one placeholder row that dangling references
fall back to.  Creation is idempotent: rows are only inserted when
absent, so this is safe to call at startup and before every import.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models import Organization, Patient, Project, Specimen, number_column

logger = logging.getLogger(__name__)

UNKNOWN_NUMBER = 0


def _placeholder_key(session: Session, model) -> str | None:
    return session.execute(
        select(model.id).where(number_column(model) == UNKNOWN_NUMBER)
    ).scalar_one_or_none()


def ensure_unknown_entities(session: Session) -> dict[str, str]:
    """Create missing placeholders and return {entity_type: internal key}."""
    keys: dict[str, str] = {}

    org_key = _placeholder_key(session, Organization)
    if org_key is None:
        org = Organization(
            organization_number=UNKNOWN_NUMBER,
            irb_id="UNKNOWN-IRB",
            pi_name="Unknown PI",
            pi_institute="Unknown Institution",
            internal_contact="Unknown Contact",
            comments="Default record for projects with missing or invalid "
                     "organization references",
        )
        session.add(org)
        session.flush()
        org_key = org.id
        logger.info("Created Unknown organization placeholder")
    keys["organizations"] = org_key

    project_key = _placeholder_key(session, Project)
    if project_key is None:
        project = Project(
            project_number=UNKNOWN_NUMBER,
            organization_id=org_key,
            disease="Unknown Disease",
            specimen_type="Unknown Type",
            source="Unknown Source",
            comments="Default record for specimens with missing or invalid "
                     "project references",
        )
        session.add(project)
        session.flush()
        project_key = project.id
        logger.info("Created Unknown project placeholder")
    keys["projects"] = project_key

    patient_key = _placeholder_key(session, Patient)
    if patient_key is None:
        patient = Patient(
            patient_number=UNKNOWN_NUMBER,
            external_id="UNKNOWN-PATIENT",
            first_name="Unknown",
            last_name="Patient",
            comments="Default record for specimens with missing or invalid "
                     "patient references",
        )
        session.add(patient)
        session.flush()
        patient_key = patient.id
        logger.info("Created Unknown patient placeholder")
    keys["patients"] = patient_key

    specimen_key = _placeholder_key(session, Specimen)
    if specimen_key is None:
        specimen = Specimen(
            specimen_number=UNKNOWN_NUMBER,
            project_id=project_key,
            tube_id="UNKNOWN-SPECIMEN",
            activity_status="Inactive",
            comments="Reserved placeholder specimen",
        )
        session.add(specimen)
        session.flush()
        specimen_key = specimen.id
        logger.info("Created Unknown specimen placeholder")
    keys["specimens"] = specimen_key

    return keys
