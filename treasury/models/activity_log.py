"""ActivityLog model: bounded audit trail of every treasury decision and outcome."""

from datetime import datetime, timezone
from typing import Any

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON


class ActivityLog(SQLModel, table=True):
    __tablename__ = "activity_log"

    id: int | None = Field(default=None, primary_key=True)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
    type: str = Field(index=True)  # "BUYBACK_DECISION", "BURN_SUCCESS", "MODE_CHANGE", ...
    content: str = ""
    result: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    source: str = "sustainability-daemon"
