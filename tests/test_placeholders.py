from sqlalchemy import func, select

from db.models import MODEL_BY_TYPE, Project, Specimen, number_column
from services.placeholder_service import UNKNOWN_NUMBER, ensure_unknown_entities


def test_each_table_has_one_unknown_row(session):
    """Test that every entity table holds exactly one number-0 placeholder."""
    for model in MODEL_BY_TYPE.values():
        count = session.execute(
            select(func.count()).where(number_column(model) == UNKNOWN_NUMBER)
        ).scalar_one()
        assert count == 1, model.__tablename__


def test_ensure_is_idempotent(session):
    first = ensure_unknown_entities(session)
    second = ensure_unknown_entities(session)
    assert first == second
    assert set(first) == set(MODEL_BY_TYPE)


def test_unknown_rows_reference_each_other(session):
    keys = ensure_unknown_entities(session)
    project = session.get(Project, keys["projects"])
    specimen = session.get(Specimen, keys["specimens"])

    assert project.organization_id == keys["organizations"]
    assert specimen.project_id == keys["projects"]
    assert specimen.tube_id == "UNKNOWN-SPECIMEN"
