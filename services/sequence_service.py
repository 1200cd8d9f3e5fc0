"""
services.sequence_service - External-number generation and resync.

Isolated so both the import engine and any single-record flow share
the same logic.  Each entity type has one ``number_sequences`` row
holding the next number to hand out.  Migration imports write numbers
the generator has never seen, so ``sync_sequence`` must run after every
batch that could have raised the maximum.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from db.models import (
    IdGenerationLog, MODEL_BY_TYPE, NumberSequence, number_column,
)

logger = logging.getLogger(__name__)


@dataclass
class SequenceUpdate:
    entity_type: str
    max_number: int
    next_value: int

    @property
    def description(self) -> str:
        column = MODEL_BY_TYPE[self.entity_type].number_attr
        if self.max_number == 0:
            return f"No {self.entity_type} on record, sequence starts at 1"
        return f"Updated to max({column}) + 1 = {self.next_value}"


def _model(entity_type: str):
    try:
        return MODEL_BY_TYPE[entity_type]
    except KeyError:
        raise ValueError(
            f"Invalid entity type: {entity_type}. "
            f"Must be one of: {', '.join(MODEL_BY_TYPE)}"
        ) from None


def _sequence_row(session: Session, entity_type: str) -> NumberSequence:
    """Fetch (creating if needed) the generator row for a type."""
    row = session.execute(
        select(NumberSequence)
        .where(NumberSequence.entity_type == entity_type)
        .with_for_update()
    ).scalar_one_or_none()
    if row is None:
        row = NumberSequence(entity_type=entity_type,
                             next_value=max_number(session, entity_type) + 1)
        session.add(row)
        session.flush()
    return row


def max_number(session: Session, entity_type: str) -> int:
    """Highest real external number for a type (placeholders excluded)."""
    col = number_column(_model(entity_type))
    return session.execute(
        select(func.coalesce(func.max(col), 0)).where(col > 0)
    ).scalar_one()


def next_number(session: Session, entity_type: str,
                generated_by: str = "system") -> int:
    """
    Consume and return the next external number for a type.

    Never hands out a number at or below the current maximum, even when
    rows with supplied numbers were written since the last sync.
    """
    row = _sequence_row(session, entity_type)
    value = max(row.next_value, max_number(session, entity_type) + 1)
    row.next_value = value + 1
    session.add(IdGenerationLog(entity_type=entity_type,
                                generated_id=value,
                                generated_by=generated_by))
    session.flush()
    return value


def peek_next_number(session: Session, entity_type: str) -> int:
    """Return the number next_number() would hand out, without consuming it."""
    _model(entity_type)
    row = session.get(NumberSequence, entity_type)
    if row is None:
        return max_number(session, entity_type) + 1
    return max(row.next_value, 1)


def is_number_in_use(session: Session, entity_type: str, number: int) -> bool:
    col = number_column(_model(entity_type))
    return session.execute(
        select(func.count()).where(col == number)
    ).scalar_one() > 0


def sync_sequence(session: Session, entity_type: str) -> SequenceUpdate:
    """
    Advance the generator for ``entity_type`` to max(number) + 1.

    Runs inside the caller's transaction so a rollback also discards
    the generator change.
    """
    highest = max_number(session, entity_type)
    row = _sequence_row(session, entity_type)
    row.next_value = highest + 1
    session.flush()

    update = SequenceUpdate(entity_type, highest, highest + 1)
    logger.info(f"Sequence {entity_type}: max={highest}, next={update.next_value}")
    return update
