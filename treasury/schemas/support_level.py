"""Pydantic schemas for support level tiers."""

from pydantic import BaseModel, Field


class SupportLevel(BaseModel):
    """A drawdown tier: buy `buy_amount_sol` once price is `drop_percent` below the recent high."""

    drop_percent: float = Field(gt=0, lt=100)
    buy_amount_sol: float = Field(gt=0)

    model_config = {"frozen": True}

    @property
    def level_id(self) -> str:
        return f"dip{self.drop_percent:g}"
