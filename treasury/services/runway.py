"""Treasury runway and operating mode."""

from dataclasses import dataclass
from enum import Enum

from treasury.utils.constants import INFINITE_RUNWAY_DAYS


class TreasuryMode(str, Enum):
    NORMAL = "NORMAL"
    CONSERVATIVE = "CONSERVATIVE"
    PAUSED = "PAUSED"


_BUY_MULTIPLIERS = {
    TreasuryMode.NORMAL: 1.0,
    TreasuryMode.CONSERVATIVE: 0.5,
    TreasuryMode.PAUSED: 0.0,
}


def compute_runway_days(sol_balance: float, estimated_daily_burn_sol: float) -> float:
    """Days of operation left at the estimated burn rate (999 when the burn rate is zero)."""
    if estimated_daily_burn_sol == 0:
        return INFINITE_RUNWAY_DAYS
    return sol_balance / estimated_daily_burn_sol


def mode_for_runway(
    runway_days: float,
    critical_runway_days: float = 14,
    emergency_runway_days: float = 7,
) -> TreasuryMode:
    """Map runway to a mode, most severe threshold first."""
    if runway_days <= emergency_runway_days:
        return TreasuryMode.PAUSED
    if runway_days <= critical_runway_days:
        return TreasuryMode.CONSERVATIVE
    return TreasuryMode.NORMAL


def buy_multiplier(mode: TreasuryMode) -> float:
    return _BUY_MULTIPLIERS[TreasuryMode(mode)]


@dataclass
class ModeChange:
    old_mode: TreasuryMode
    new_mode: TreasuryMode

    def describe(self) -> str:
        return f"Treasury mode: {self.old_mode.value} -> {self.new_mode.value}"


def detect_mode_change(previous: TreasuryMode, current: TreasuryMode) -> ModeChange | None:
    previous = TreasuryMode(previous)
    current = TreasuryMode(current)
    if previous == current:
        return None
    return ModeChange(old_mode=previous, new_mode=current)
