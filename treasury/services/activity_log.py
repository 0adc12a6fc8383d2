"""Bounded, append-only audit trail consumed by the transparency dashboard."""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from sqlalchemy import delete
from sqlmodel import Session, col, select

from treasury.models.activity_log import ActivityLog
from treasury.utils.constants import ACTIVITY_SOURCE

logger = logging.getLogger(__name__)


@dataclass
class ActivityEntry:
    type: str
    content: str
    result: dict[str, Any] | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    source: str = ACTIVITY_SOURCE

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "content": self.content,
            "result": self.result,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
        }


class ActivitySink(Protocol):
    def append(self, type: str, content: str, result: dict[str, Any] | None = None) -> ActivityEntry: ...

    def recent(self, limit: int = 50) -> list[ActivityEntry]: ...


class SqlActivityLog:
    """Activity log backed by the `activity_log` table, pruned to the newest `limit` rows."""

    def __init__(self, engine, limit: int = 200):
        self.engine = engine
        self.limit = limit

    def append(self, type: str, content: str, result: dict[str, Any] | None = None) -> ActivityEntry:
        entry = ActivityEntry(type=type, content=content, result=result)
        with Session(self.engine) as session:
            session.add(ActivityLog(
                timestamp=entry.timestamp,
                type=entry.type,
                content=entry.content,
                result=entry.result,
                source=entry.source,
            ))
            session.commit()
            self._prune(session)
        logger.info(f"[activity] {type}: {content}")
        return entry

    def _prune(self, session: Session):
        keep_ids = select(ActivityLog.id).order_by(col(ActivityLog.id).desc()).limit(self.limit)
        session.execute(delete(ActivityLog).where(col(ActivityLog.id).not_in(keep_ids)))
        session.commit()

    def recent(self, limit: int = 50) -> list[ActivityEntry]:
        """Newest first."""
        with Session(self.engine) as session:
            rows = session.exec(
                select(ActivityLog).order_by(col(ActivityLog.id).desc()).limit(limit)
            ).all()
        return [
            ActivityEntry(
                type=row.type,
                content=row.content,
                result=row.result,
                timestamp=row.timestamp if row.timestamp.tzinfo else row.timestamp.replace(tzinfo=timezone.utc),
                source=row.source,
            )
            for row in rows
        ]


class MemoryActivityLog:
    """In-process activity log for tests and `simulate`."""

    def __init__(self, limit: int = 200):
        self.limit = limit
        self._entries: deque[ActivityEntry] = deque(maxlen=limit)

    def append(self, type: str, content: str, result: dict[str, Any] | None = None) -> ActivityEntry:
        entry = ActivityEntry(type=type, content=content, result=result)
        self._entries.append(entry)
        logger.info(f"[activity] {type}: {content}")
        return entry

    def recent(self, limit: int = 50) -> list[ActivityEntry]:
        return list(reversed(self._entries))[:limit]

    def types(self) -> list[str]:
        """Entry types oldest first."""
        return [entry.type for entry in self._entries]
