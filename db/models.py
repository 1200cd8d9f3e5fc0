"""
db.models - SQLAlchemy ORM declarations.

Tables
------
organizations      - collaborating PIs / institutes that own projects.
projects           - research projects, each owned by one organization.
patients           - patients specimens may be drawn from.
specimens          - physical samples, each filed under one project.
number_sequences   - per-entity-type generator for external numbers.
id_generation_log  - audit trail of every generated external number.

Every entity row carries two identifiers: ``id`` (opaque UUID, assigned
here, never shown to users) and a ``*_number`` column (the user-facing
sequential number).  Number 0 is the reserved "Unknown" placeholder row
of each table.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, CheckConstraint, Column, Date, DateTime, ForeignKey, Integer,
    Numeric, String, Text,
)
from sqlalchemy.orm import DeclarativeBase, relationship


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Organization(Base):
    __tablename__ = "organizations"
    number_attr = "organization_number"

    id = Column(String(36), primary_key=True, default=_uuid)
    organization_number = Column(Integer, unique=True, index=True)

    irb_id           = Column(String(50))
    pi_name          = Column(String(255), nullable=False)
    pi_institute     = Column(String(255), nullable=False)
    pi_email         = Column(String(255))
    pi_phone         = Column(String(50))
    pi_fax           = Column(String(50))
    internal_contact = Column(String(255))
    comments         = Column(Text)

    created_at = Column(DateTime, default=_now)
    updated_at = Column(DateTime, default=_now, onupdate=_now)

    projects = relationship("Project", back_populates="organization")

    __table_args__ = (
        CheckConstraint("organization_number >= 0", name="ck_organizations_number"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_number": self.organization_number,
            "irb_id": self.irb_id,
            "pi_name": self.pi_name,
            "pi_institute": self.pi_institute,
            "pi_email": self.pi_email,
            "comments": self.comments,
        }


class Project(Base):
    __tablename__ = "projects"
    number_attr = "project_number"

    id = Column(String(36), primary_key=True, default=_uuid)
    project_number = Column(Integer, unique=True, index=True)
    organization_id = Column(String(36), ForeignKey("organizations.id"),
                             nullable=False, index=True)

    disease       = Column(String(255))
    specimen_type = Column(String(255))
    source        = Column(String(255))
    date_received = Column(Date)
    feedback_date = Column(Date)
    comments      = Column(Text)

    created_at = Column(DateTime, default=_now)
    updated_at = Column(DateTime, default=_now, onupdate=_now)

    organization = relationship("Organization", back_populates="projects")
    specimens = relationship("Specimen", back_populates="project")

    __table_args__ = (
        CheckConstraint("project_number >= 0", name="ck_projects_number"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_number": self.project_number,
            "organization_id": self.organization_id,
            "disease": self.disease,
            "specimen_type": self.specimen_type,
            "source": self.source,
            "date_received": self.date_received.isoformat() if self.date_received else None,
        }


class Patient(Base):
    __tablename__ = "patients"
    number_attr = "patient_number"

    id = Column(String(36), primary_key=True, default=_uuid)
    patient_number = Column(Integer, unique=True, index=True)

    external_id          = Column(String(255), index=True)   # hospital / clinic MRN
    first_name           = Column(String(255))
    last_name            = Column(String(255))
    date_of_birth        = Column(Date)
    diagnosis            = Column(String(255))
    physician_first_name = Column(String(255))
    physician_last_name  = Column(String(255))
    comments             = Column(Text)

    created_at = Column(DateTime, default=_now)
    updated_at = Column(DateTime, default=_now, onupdate=_now)

    specimens = relationship("Specimen", back_populates="patient")

    __table_args__ = (
        CheckConstraint("patient_number >= 0", name="ck_patients_number"),
    )


class Specimen(Base):
    __tablename__ = "specimens"
    number_attr = "specimen_number"

    id = Column(String(36), primary_key=True, default=_uuid)
    specimen_number = Column(Integer, unique=True, index=True)
    project_id = Column(String(36), ForeignKey("projects.id"),
                        nullable=False, index=True)
    patient_id = Column(String(36), ForeignKey("patients.id"), index=True)

    tube_id         = Column(String(255), index=True)
    date_collected  = Column(Date)
    activity_status = Column(String(50))
    extracted       = Column(Boolean, default=False)
    used_up         = Column(Boolean, default=False)
    initial_quantity = Column(Numeric(10, 2))

    # ── Storage position ───────────────────────────────────────────────
    position_freezer       = Column(String(100))
    position_rack          = Column(String(100))
    position_box           = Column(String(100))
    position_dimension_one = Column(String(10))
    position_dimension_two = Column(String(10))

    # ── Clinical / processing metadata ─────────────────────────────────
    specimen_site       = Column(String(255))
    collection_category = Column(String(255))
    extraction_method   = Column(String(255))
    nucleated_cells     = Column(Text)
    cell_numbers        = Column(Integer)
    percentage_segs     = Column(Numeric(5, 2))
    csf_protein         = Column(Numeric(10, 2))
    csf_gluc            = Column(Numeric(10, 2))
    run_number          = Column(String(50))
    comments            = Column(Text)

    created_at = Column(DateTime, default=_now)
    updated_at = Column(DateTime, default=_now, onupdate=_now)

    project = relationship("Project", back_populates="specimens")
    patient = relationship("Patient", back_populates="specimens")

    __table_args__ = (
        CheckConstraint("specimen_number >= 0", name="ck_specimens_number"),
        CheckConstraint("initial_quantity >= 0", name="ck_specimens_quantity"),
    )


class NumberSequence(Base):
    """Next external number to hand out, one row per entity type."""
    __tablename__ = "number_sequences"

    entity_type = Column(String(50), primary_key=True)
    next_value  = Column(Integer, nullable=False, default=1)


class IdGenerationLog(Base):
    __tablename__ = "id_generation_log"

    id           = Column(Integer, primary_key=True, autoincrement=True)
    entity_type  = Column(String(50), nullable=False, index=True)
    generated_id = Column(Integer, nullable=False)
    generated_by = Column(String(255), default="system")
    generated_at = Column(DateTime, default=_now)


# Entity type key (also the upload field name) → model, in import order.
MODEL_BY_TYPE: dict[str, type[Base]] = {
    "organizations": Organization,
    "projects":      Project,
    "specimens":     Specimen,
    "patients":      Patient,
}

ENTITY_TYPES: tuple[str, ...] = tuple(MODEL_BY_TYPE)


def number_column(model):
    """Return the external-number column attribute of an entity model."""
    return getattr(model, model.number_attr)
