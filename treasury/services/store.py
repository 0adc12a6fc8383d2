"""Key/value persistence for JSON documents.

The tick only ever talks to a `StateStore`; the backend can be the database
(`SqlStateStore`) or a plain dict (`MemoryStateStore`) for tests and dry runs.
"""

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Protocol

from sqlmodel import Session

from treasury.models.state_document import StateDocument

logger = logging.getLogger(__name__)


class StateStore(Protocol):
    def load(self, key: str) -> dict[str, Any] | None: ...

    def save(self, key: str, doc: dict[str, Any]) -> None: ...


class SqlStateStore:
    """StateStore backed by the `state_document` table."""

    def __init__(self, engine):
        self.engine = engine

    def load(self, key: str) -> dict[str, Any] | None:
        with Session(self.engine) as session:
            row = session.get(StateDocument, key)
            if row is None:
                return None
            return copy.deepcopy(row.data)

    def save(self, key: str, doc: dict[str, Any]):
        with Session(self.engine) as session:
            row = session.get(StateDocument, key)
            if row is None:
                row = StateDocument(key=key, data=doc)
            else:
                row.data = copy.deepcopy(doc)
                row.updated_at = datetime.now(timezone.utc)
            session.add(row)
            session.commit()
        logger.debug(f"Saved state document '{key}'")


class MemoryStateStore:
    """StateStore held in a dict. Documents are deep-copied in both directions."""

    def __init__(self, initial: dict[str, dict[str, Any]] | None = None):
        self._docs: dict[str, dict[str, Any]] = copy.deepcopy(initial or {})

    def load(self, key: str) -> dict[str, Any] | None:
        doc = self._docs.get(key)
        return copy.deepcopy(doc) if doc is not None else None

    def save(self, key: str, doc: dict[str, Any]):
        self._docs[key] = copy.deepcopy(doc)
