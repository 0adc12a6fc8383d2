"""Database models."""

from treasury.models.activity_log import ActivityLog
from treasury.models.state_document import StateDocument

__all__ = [
    "ActivityLog",
    "StateDocument",
]
