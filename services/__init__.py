"""
services - Business-logic layer sitting between API and DB.
"""

from services.sequence_service import (                    # noqa: F401
    next_number, peek_next_number, sync_sequence, SequenceUpdate,
)
from services.placeholder_service import ensure_unknown_entities   # noqa: F401
