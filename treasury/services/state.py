"""Durable treasury state.

A single `TreasuryState` document is read at the start of a tick, mutated
only by the tick, and saved at the end of it.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any

from treasury.services.runway import TreasuryMode
from treasury.services.store import StateStore
from treasury.utils.constants import STATE_KEY


def _to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class TreasuryStats:
    """Cumulative counters. Only an explicit operator reset sets them back to zero."""
    total_buybacks: int = 0
    total_sol_spent: float = 0.0
    total_tokens_bought: int = 0
    total_burns: int = 0
    total_tokens_burned: int = 0
    buybacks_skipped_low_volume: int = 0
    buybacks_skipped_rsi: int = 0
    buybacks_skipped_liquidity: int = 0
    buybacks_skipped_cooldown: int = 0

    def increment(self, counter: str):
        if not counter.startswith("buybacks_skipped_"):
            raise ValueError(f"Not a skip counter: {counter}")
        setattr(self, counter, getattr(self, counter) + 1)

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "TreasuryStats":
        data = data or {}
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class SupportLevelBuy:
    timestamp: datetime
    amount: float


@dataclass
class TreasuryState:
    recent_high: float = 0.0
    recent_high_timestamp: datetime | None = None
    support_levels_bought: dict[str, SupportLevelBuy] = field(default_factory=dict)
    last_buy_timestamp: datetime | None = None
    last_buy_price: float | None = None
    last_burn_timestamp: datetime | None = None
    tokens_accumulated: int = 0
    current_mode: TreasuryMode = TreasuryMode.NORMAL
    last_mode_change_timestamp: datetime | None = None
    tick_count: int = 0
    price_history: list[float] = field(default_factory=list)
    volume_history: list[float] = field(default_factory=list)
    stats: TreasuryStats = field(default_factory=TreasuryStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "recent_high": self.recent_high,
            "recent_high_timestamp": _to_iso(self.recent_high_timestamp),
            "support_levels_bought": {
                level_id: {"timestamp": _to_iso(buy.timestamp), "amount": buy.amount}
                for level_id, buy in self.support_levels_bought.items()
            },
            "last_buy_timestamp": _to_iso(self.last_buy_timestamp),
            "last_buy_price": self.last_buy_price,
            "last_burn_timestamp": _to_iso(self.last_burn_timestamp),
            "tokens_accumulated": self.tokens_accumulated,
            "current_mode": TreasuryMode(self.current_mode).value,
            "last_mode_change_timestamp": _to_iso(self.last_mode_change_timestamp),
            "tick_count": self.tick_count,
            "price_history": list(self.price_history),
            "volume_history": list(self.volume_history),
            "stats": self.stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "TreasuryState":
        """Rebuild state from a stored document; missing keys take their defaults."""
        if not data:
            return cls()
        bought = {}
        for level_id, entry in (data.get("support_levels_bought") or {}).items():
            bought[level_id] = SupportLevelBuy(
                timestamp=_from_iso(entry.get("timestamp")) or datetime.now(timezone.utc),
                amount=float(entry.get("amount") or 0.0),
            )
        return cls(
            recent_high=float(data.get("recent_high") or 0.0),
            recent_high_timestamp=_from_iso(data.get("recent_high_timestamp")),
            support_levels_bought=bought,
            last_buy_timestamp=_from_iso(data.get("last_buy_timestamp")),
            last_buy_price=data.get("last_buy_price"),
            last_burn_timestamp=_from_iso(data.get("last_burn_timestamp")),
            tokens_accumulated=int(data.get("tokens_accumulated") or 0),
            current_mode=TreasuryMode(data.get("current_mode") or TreasuryMode.NORMAL.value),
            last_mode_change_timestamp=_from_iso(data.get("last_mode_change_timestamp")),
            tick_count=int(data.get("tick_count") or 0),
            price_history=[float(p) for p in data.get("price_history") or []],
            volume_history=[float(v) for v in data.get("volume_history") or []],
            stats=TreasuryStats.from_dict(data.get("stats")),
        )


def observe_price(state: TreasuryState, price: float, now: datetime) -> bool:
    """Track the recent high.

    The first positive price seeds the baseline. A strictly higher price
    replaces the high and clears every bought support level, since those dips
    are no longer support relative to the new high. Returns True on a new high.
    """
    if price <= 0:
        return False
    if state.recent_high <= 0:
        state.recent_high = price
        state.recent_high_timestamp = now
        return False
    if price > state.recent_high:
        state.recent_high = price
        state.recent_high_timestamp = now
        state.support_levels_bought = {}
        return True
    return False


def load_state(store: StateStore) -> TreasuryState:
    return TreasuryState.from_dict(store.load(STATE_KEY))


def save_state(store: StateStore, state: TreasuryState):
    store.save(STATE_KEY, state.to_dict())


def reset_state(store: StateStore) -> TreasuryState:
    """Operator reset: zeroed state and stats."""
    state = TreasuryState()
    save_state(store, state)
    return state
