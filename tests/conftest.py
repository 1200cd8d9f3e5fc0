import pytest

from db import get_session, init_db, session_scope
from services import ensure_unknown_entities
from tests import factories


@pytest.fixture
def db_url(tmp_path):
    """File-backed SQLite database, fresh for every test."""
    return f"sqlite:///{tmp_path / 'limsdb-test.sqlite'}"


@pytest.fixture
def database(db_url):
    """Initialise the schema and the Unknown placeholder rows."""
    init_db(db_url)
    with session_scope() as session:
        ensure_unknown_entities(session)
        session.commit()
    return db_url


@pytest.fixture
def session(database):
    """Return a session bound to the test database; factories use it too."""
    session = get_session()
    for factory_cls in factories.ALL_FACTORIES:
        factory_cls._meta.sqlalchemy_session = session
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def app(db_url):
    from main import create_app

    app = create_app(db_url)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    """Return a Flask test client."""
    return app.test_client()
