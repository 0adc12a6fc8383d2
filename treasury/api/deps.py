"""Shared API dependencies."""

from treasury.config import settings
from treasury.database import engine
from treasury.services.activity_log import SqlActivityLog
from treasury.services.store import SqlStateStore


def get_state_store() -> SqlStateStore:
    return SqlStateStore(engine)


def get_activity_log() -> SqlActivityLog:
    return SqlActivityLog(engine, limit=settings.activity_log_limit)
