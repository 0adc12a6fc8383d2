"""Stateless indicator computation over the bounded price/volume history.

All functions are pure computation with no I/O.
"""

from dataclasses import dataclass
from typing import Sequence

import numpy as np

NEUTRAL_RSI = 50.0


# ---------------------------------------------------------------------------
# History helpers
# ---------------------------------------------------------------------------

def push_bounded(history: Sequence[float], value: float, capacity: int) -> list[float]:
    """Append `value` and evict the oldest samples beyond `capacity`."""
    updated = list(history) + [float(value)]
    if len(updated) > capacity:
        updated = updated[-capacity:]
    return updated


# ---------------------------------------------------------------------------
# Indicators
# ---------------------------------------------------------------------------

def compute_rsi(history: Sequence[float], period: int = 14) -> float:
    """Simple-average RSI over the last `period + 1` samples.

    Returns 50 (neutral) when there are fewer than `period + 1` samples
    (expected on cold start) and 100 when there were no losses.
    """
    if len(history) < period + 1:
        return NEUTRAL_RSI

    window = np.asarray(history[-(period + 1):], dtype=float)
    deltas = np.diff(window)
    avg_gain = float(np.sum(deltas[deltas > 0])) / period
    avg_loss = float(-np.sum(deltas[deltas < 0])) / period

    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    rsi = 100.0 - 100.0 / (1.0 + rs)
    return round(rsi, 2)


def compute_momentum(history: Sequence[float], period: int = 15) -> float:
    """Percent change from `period` samples back to the latest one. 0 if insufficient history."""
    if len(history) < period:
        return 0.0
    current = float(history[-1])
    past = float(history[-period])
    if past == 0:
        return 0.0
    return (current - past) / past * 100.0


def average_volume(history: Sequence[float], fallback: float = 0.0) -> float:
    """Mean of the volume history, or `fallback` when there is none yet."""
    if len(history) == 0:
        return float(fallback)
    return float(np.mean(np.asarray(history, dtype=float)))


def is_volume_confirmed(current_volume: float, avg_volume: float, threshold_ratio: float = 0.5) -> bool:
    """Current volume must clear `avg_volume * threshold_ratio`.

    With no average yet this fails open, so a fresh deployment is not blocked forever.
    """
    if avg_volume == 0:
        return True
    return current_volume >= avg_volume * threshold_ratio


def is_liquidity_sufficient(
    liquidity_usd: float,
    trade_size_sol: float,
    sol_price_usd: float,
    max_price_impact_pct: float,
) -> bool:
    """The trade's USD notional must stay below `max_price_impact_pct` of pool liquidity."""
    trade_value_usd = trade_size_sol * sol_price_usd
    max_acceptable = liquidity_usd * (max_price_impact_pct / 100.0)
    return trade_value_usd < max_acceptable


# ---------------------------------------------------------------------------
# Bundled result
# ---------------------------------------------------------------------------

@dataclass
class IndicatorSnapshot:
    """Indicators for a single tick."""
    rsi: float
    momentum: float
    avg_volume: float
    current_volume: float

    def to_dict(self) -> dict:
        return {
            "rsi": self.rsi,
            "momentum": round(self.momentum, 4),
            "avg_volume": round(self.avg_volume, 2),
            "current_volume": round(self.current_volume, 2),
        }


def compute_indicators(
    price_history: Sequence[float],
    volume_history: Sequence[float],
    current_volume: float,
    rsi_period: int = 14,
    momentum_period: int = 15,
) -> IndicatorSnapshot:
    """Compute all indicator values for the current moment.

    Args:
        price_history: Price samples, oldest first, current price last.
        volume_history: 24h volume samples, oldest first.
        current_volume: This tick's 24h volume (average fallback on an empty history).
        rsi_period: RSI lookback period.
        momentum_period: Momentum lookback period.
    """
    return IndicatorSnapshot(
        rsi=compute_rsi(price_history, period=rsi_period),
        momentum=compute_momentum(price_history, period=momentum_period),
        avg_volume=average_volume(volume_history, fallback=current_volume),
        current_volume=float(current_volume),
    )
