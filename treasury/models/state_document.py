"""StateDocument model: one JSON document per persistence key."""

from datetime import datetime, timezone
from typing import Any

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON


class StateDocument(SQLModel, table=True):
    __tablename__ = "state_document"

    key: str = Field(primary_key=True)  # "treasury_state", "metrics"
    data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
