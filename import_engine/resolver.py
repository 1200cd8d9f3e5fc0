"""
import_engine.resolver - External reference → internal key, per run.

One ReferenceResolver is created for each preview/execute run and passed
explicitly to every writer; nothing is kept at module level, so two
runs can never see each other's mappings.

Lookup order for a reference:
  1. numbers registered during this run (inserted or matched rows)
  2. a storage lookup by external number (pre-existing rows); misses
     are remembered for the rest of the run
  3. the type's Unknown placeholder, with an informational note
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models import MODEL_BY_TYPE, Patient, number_column
from import_engine.errors import ResolutionNote
from import_engine.normalizer import is_blank, parse_int

logger = logging.getLogger(__name__)

MAP     = "map"
STORAGE = "storage"
UNKNOWN = "unknown"
ABSENT  = "absent"


@dataclass
class Resolution:
    key: str
    source: str
    note: Optional[ResolutionNote] = None

    @property
    def is_fallback(self) -> bool:
        return self.source in (UNKNOWN, ABSENT)


class ReferenceResolver:
    """
    Run-scoped reference map.

    ``resolve`` never raises: a reference that matches nothing comes
    back as the Unknown placeholder's key plus a note.
    """

    def __init__(self, session: Session, unknown_keys: dict[str, str]):
        self.session = session
        self.unknown_keys = dict(unknown_keys)
        self.notes: list[ResolutionNote] = []
        self._map: dict[str, dict[str, str]] = {t: {} for t in MODEL_BY_TYPE}
        self._created: dict[str, set[int]] = {t: set() for t in MODEL_BY_TYPE}
        self._misses: dict[str, set[str]] = {t: set() for t in MODEL_BY_TYPE}

    # ── Registration ───────────────────────────────────────────────────

    def register(self, entity_type: str, number: int, key: str,
                 created: bool = False) -> None:
        self._map[entity_type][str(number)] = key
        if created:
            self._created[entity_type].add(number)

    def register_alias(self, entity_type: str, alias: str, key: str) -> None:
        """Map a non-numeric reference (e.g. a patient MRN) to a key."""
        if not is_blank(alias):
            self._map[entity_type][_alias_key(alias)] = key

    def created_in_run(self, entity_type: str, number: int) -> bool:
        return number in self._created[entity_type]

    def mark_created(self, entity_type: str, number: int) -> None:
        """Record a number inserted this run without making it resolvable."""
        self._created[entity_type].add(number)

    # ── Lookup ─────────────────────────────────────────────────────────

    def lookup(self, entity_type: str, reference: Any) -> Optional[Resolution]:
        """Resolve from the run map or storage only; None when nothing matches."""
        number = parse_int(reference)
        mapped = self._map[entity_type]

        if number is not None and str(number) in mapped:
            return Resolution(mapped[str(number)], MAP)
        alias = _alias_key(reference)
        if alias in mapped:
            return Resolution(mapped[alias], MAP)

        text = str(reference).strip()
        if text in self._misses[entity_type]:
            return None
        key = self._from_storage(entity_type, number, text)
        if key is None:
            self._misses[entity_type].add(text)
            return None
        if number is not None:
            mapped[str(number)] = key
        else:
            mapped[alias] = key
        return Resolution(key, STORAGE)

    def resolve(self, entity_type: str, reference: Any,
                row: Optional[int] = None) -> Resolution:
        unknown = self.unknown_keys[entity_type]
        if is_blank(reference):
            return Resolution(unknown, ABSENT, self._note(
                entity_type, "", "No reference given, using Unknown", row))

        found = self.lookup(entity_type, reference)
        if found is not None:
            return found

        return Resolution(unknown, UNKNOWN, self._note(
            entity_type, str(reference),
            f"{entity_type} reference {reference!r} not found, using Unknown", row))

    # ── Private helpers ────────────────────────────────────────────────

    def _from_storage(self, entity_type: str, number: Optional[int],
                      text: str) -> Optional[str]:
        model = MODEL_BY_TYPE[entity_type]
        # rows inserted this run are only reachable through the run map
        if number is not None and number not in self._created[entity_type]:
            key = self.session.execute(
                select(model.id).where(number_column(model) == number)
            ).scalar_one_or_none()
            if key is not None:
                return key
        if model is Patient:
            return self.session.execute(
                select(Patient.id).where(Patient.external_id == text).limit(1)
            ).scalar_one_or_none()
        return None

    def _note(self, entity_type: str, reference: str, message: str,
              row: Optional[int]) -> ResolutionNote:
        note = ResolutionNote(entity_type, reference, message, row)
        self.notes.append(note)
        logger.debug(f"row {row}: {message}")
        return note


def _alias_key(value: Any) -> str:
    return f"alias:{str(value).strip().lower()}"
