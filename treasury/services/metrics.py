"""Sustainability metrics: runway samples and per-day buyback/burn aggregates.

Kept in its own document next to the treasury state so the dashboard can
chart runway without replaying the activity log.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from treasury.services.state import TreasuryState
from treasury.services.store import StateStore
from treasury.utils.constants import METRICS_KEY

MAX_RUNWAY_SAMPLES = 1440  # 24 hours at one tick per minute
MAX_DAILY_ENTRIES = 90


def _bump_daily(entries: list[dict], day: str, **amounts: float) -> list[dict]:
    if entries and entries[-1]["date"] == day:
        entry = entries[-1]
    else:
        entry = {"date": day, "count": 0, **{k: 0 for k in amounts}}
        entries.append(entry)
    entry["count"] += 1
    for key, value in amounts.items():
        entry[key] = entry.get(key, 0) + value
    return entries[-MAX_DAILY_ENTRIES:]


@dataclass
class TreasuryMetrics:
    runway_history: list[dict[str, Any]] = field(default_factory=list)
    daily_buybacks: list[dict[str, Any]] = field(default_factory=list)
    daily_burns: list[dict[str, Any]] = field(default_factory=list)
    last_updated: str | None = None

    def record_runway(self, now: datetime, runway_days: float, sol_balance: float, mode: str):
        self.runway_history.append({
            "timestamp": now.isoformat(),
            "runway_days": round(runway_days, 2),
            "sol_balance": round(sol_balance, 6),
            "mode": mode,
        })
        self.runway_history = self.runway_history[-MAX_RUNWAY_SAMPLES:]
        self.last_updated = now.isoformat()

    def record_buyback(self, now: datetime, sol_spent: float, tokens_received: int):
        self.daily_buybacks = _bump_daily(
            self.daily_buybacks, now.date().isoformat(), sol_spent=sol_spent, tokens=tokens_received
        )
        self.last_updated = now.isoformat()

    def record_burn(self, now: datetime, tokens_burned: int):
        self.daily_burns = _bump_daily(self.daily_burns, now.date().isoformat(), tokens=tokens_burned)
        self.last_updated = now.isoformat()

    def to_dict(self) -> dict[str, Any]:
        return {
            "runway_history": self.runway_history,
            "daily_buybacks": self.daily_buybacks,
            "daily_burns": self.daily_burns,
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "TreasuryMetrics":
        data = data or {}
        return cls(
            runway_history=list(data.get("runway_history") or []),
            daily_buybacks=list(data.get("daily_buybacks") or []),
            daily_burns=list(data.get("daily_burns") or []),
            last_updated=data.get("last_updated"),
        )


def load_metrics(store: StateStore) -> TreasuryMetrics:
    return TreasuryMetrics.from_dict(store.load(METRICS_KEY))


def save_metrics(store: StateStore, metrics: TreasuryMetrics):
    store.save(METRICS_KEY, metrics.to_dict())


def build_metrics_report(state: TreasuryState, metrics: TreasuryMetrics | None = None) -> dict:
    """Cumulative stats plus the skip-reason breakdown, as shown by `metrics`."""
    stats = state.stats
    tokens_per_sol = (
        stats.total_tokens_bought / stats.total_sol_spent if stats.total_sol_spent > 0 else None
    )
    latest_runway = None
    if metrics and metrics.runway_history:
        latest_runway = metrics.runway_history[-1]
    return {
        "operations": {
            "total_buybacks": stats.total_buybacks,
            "total_sol_spent": round(stats.total_sol_spent, 9),
            "total_tokens_bought": stats.total_tokens_bought,
            "total_burns": stats.total_burns,
            "total_tokens_burned": stats.total_tokens_burned,
        },
        "efficiency": {
            "tokens_per_sol": round(tokens_per_sol, 2) if tokens_per_sol is not None else None,
        },
        "skipped": {
            "low_volume": stats.buybacks_skipped_low_volume,
            "rsi_overbought": stats.buybacks_skipped_rsi,
            "low_liquidity": stats.buybacks_skipped_liquidity,
            "cooldown": stats.buybacks_skipped_cooldown,
        },
        "tick_count": state.tick_count,
        "tokens_accumulated": state.tokens_accumulated,
        "latest_runway": latest_runway,
        "daily_buybacks": metrics.daily_buybacks[-7:] if metrics else [],
        "daily_burns": metrics.daily_burns[-7:] if metrics else [],
    }
