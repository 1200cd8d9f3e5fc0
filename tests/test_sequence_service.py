import pytest
from sqlalchemy import select

from db.models import IdGenerationLog
from services.sequence_service import (
    is_number_in_use, max_number, next_number, peek_next_number, sync_sequence,
)
from tests.factories import OrganizationFactory, ProjectFactory


def test_numbering_starts_at_one(session):
    """Test that an empty type ignores its Unknown placeholder (number 0)."""
    assert max_number(session, "organizations") == 0
    assert peek_next_number(session, "organizations") == 1
    assert next_number(session, "organizations") == 1
    assert next_number(session, "organizations") == 2


def test_peek_does_not_consume(session):
    OrganizationFactory(organization_number=10)
    assert peek_next_number(session, "organizations") == 11
    assert peek_next_number(session, "organizations") == 11
    assert next_number(session, "organizations") == 11
    assert peek_next_number(session, "organizations") == 12


def test_generated_numbers_are_logged(session):
    next_number(session, "projects", generated_by="lab-admin")
    entry = session.execute(select(IdGenerationLog)).scalar_one()
    assert (entry.entity_type, entry.generated_id, entry.generated_by) == ("projects", 1, "lab-admin")


def test_sync_moves_sequence_past_migrated_numbers(session):
    """Test that numbers written with supplied IDs advance the generator."""
    next_number(session, "organizations")
    OrganizationFactory(organization_number=46)
    OrganizationFactory(organization_number=47)

    update = sync_sequence(session, "organizations")

    assert (update.max_number, update.next_value) == (47, 48)
    assert update.description == "Updated to max(organization_number) + 1 = 48"
    assert next_number(session, "organizations") == 48


def test_next_number_never_reuses_a_written_number(session):
    """Test that a stale generator still skips past migrated numbers."""
    assert next_number(session, "projects") == 1
    ProjectFactory(project_number=30)
    assert next_number(session, "projects") == 31


def test_sync_on_empty_type(session):
    update = sync_sequence(session, "patients")
    assert update.next_value == 1
    assert update.description == "No patients on record, sequence starts at 1"


def test_number_in_use(session):
    OrganizationFactory(organization_number=5)
    assert is_number_in_use(session, "organizations", 5)
    assert not is_number_in_use(session, "organizations", 6)


def test_invalid_entity_type(session):
    with pytest.raises(ValueError, match="Invalid entity type"):
        next_number(session, "freezers")
