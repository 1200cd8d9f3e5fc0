"""
db - Database layer.

Public API:
    init_db()        → create engine + tables
    get_session()    → new Session
    session_scope()  → context-managed Session, always closed
    Organization, Project, Specimen, Patient → ORM models
    classify_fault() → tagged StorageFault from a DBAPI error
"""

from db.engine import init_db, get_session, session_scope          # noqa: F401
from db.models import (                                             # noqa: F401
    Base, Organization, Project, Specimen, Patient,
    NumberSequence, IdGenerationLog, MODEL_BY_TYPE, ENTITY_TYPES,
    number_column,
)
from db.faults import StorageFault, classify_fault                 # noqa: F401
