"""Buyback decision engine.

The decision is an ordered sequence of named gates evaluated with short-circuit
semantics: the first gate that rejects determines the outcome and, where the
gate has one, the skip counter the caller increments. Gate order is part of
the audit contract: reordering changes which counter moves.

Pure computation: nothing here mutates the treasury state or performs I/O.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Sequence

from treasury.schemas.support_level import SupportLevel
from treasury.services.indicators import (
    IndicatorSnapshot,
    is_liquidity_sufficient,
    is_volume_confirmed,
)
from treasury.services.market_data import MarketSnapshot
from treasury.services.runway import TreasuryMode, buy_multiplier
from treasury.services.state import TreasuryState

SKIP_COOLDOWN = "buybacks_skipped_cooldown"
SKIP_RSI = "buybacks_skipped_rsi"
SKIP_LOW_VOLUME = "buybacks_skipped_low_volume"
SKIP_LIQUIDITY = "buybacks_skipped_liquidity"


@dataclass
class BuybackParams:
    """Thresholds the gates read. Built from Settings by the tick."""
    support_levels: Sequence[SupportLevel]
    min_reserve_sol: float = 0.1
    min_available_sol: float = 0.01
    min_minutes_between_buys: float = 60.0
    rsi_overbought: float = 70.0
    rsi_oversold: float = 35.0
    min_volume_24h: float = 100.0
    volume_threshold: float = 0.5
    max_price_impact_percent: float = 5.0
    sol_price_usd: float = 100.0

    @classmethod
    def from_settings(cls, settings) -> "BuybackParams":
        return cls(
            support_levels=list(settings.support_levels),
            min_reserve_sol=settings.min_reserve_sol,
            min_available_sol=settings.min_available_sol,
            min_minutes_between_buys=settings.min_minutes_between_buys,
            rsi_overbought=settings.rsi_overbought,
            rsi_oversold=settings.rsi_oversold,
            min_volume_24h=settings.min_volume_24h,
            volume_threshold=settings.volume_threshold,
            max_price_impact_percent=settings.max_price_impact_percent,
            sol_price_usd=settings.sol_price_usd,
        )


@dataclass
class GateRejection:
    reason: str
    skip_counter: str | None = None


@dataclass
class GateContext:
    """Inputs for one evaluation plus the values earlier gates derive for later ones."""
    state: TreasuryState
    market: MarketSnapshot
    indicators: IndicatorSnapshot
    mode: TreasuryMode
    sol_balance: float
    now: datetime
    params: BuybackParams

    available_sol: float = 0.0
    recent_high: float = 0.0
    levels_bought: set[str] = field(default_factory=set)
    drop_percent: float = 0.0
    level: SupportLevel | None = None
    intended_sol: float = 0.0
    amount_sol: float = 0.0


@dataclass
class BuybackDecision:
    """Buyback decision for one tick."""
    should_buy: bool
    amount_sol: float = 0.0
    level: SupportLevel | None = None
    gate: str | None = None  # name of the rejecting gate
    reason: str = ""
    skip_counter: str | None = None
    drop_percent: float | None = None
    available_sol: float | None = None

    def to_dict(self) -> dict:
        return {
            "should_buy": self.should_buy,
            "amount_sol": round(self.amount_sol, 9),
            "level": self.level.level_id if self.level else None,
            "gate": self.gate,
            "reason": self.reason,
            "drop_percent": round(self.drop_percent, 4) if self.drop_percent is not None else None,
            "available_sol": round(self.available_sol, 9) if self.available_sol is not None else None,
        }


# ---------------------------------------------------------------------------
# Gates (order matters)
# ---------------------------------------------------------------------------

def _gate_mode(ctx: GateContext) -> GateRejection | None:
    if ctx.mode == TreasuryMode.PAUSED:
        return GateRejection("Treasury mode is PAUSED")
    return None


def _gate_balance(ctx: GateContext) -> GateRejection | None:
    ctx.available_sol = ctx.sol_balance - ctx.params.min_reserve_sol
    if ctx.available_sol <= ctx.params.min_available_sol:
        return GateRejection(
            f"Insufficient SOL: {ctx.sol_balance:.4f} (reserve: {ctx.params.min_reserve_sol})"
        )
    return None


def _gate_cooldown(ctx: GateContext) -> GateRejection | None:
    last_buy = ctx.state.last_buy_timestamp
    if last_buy is None:
        return None
    minutes_since = (ctx.now - last_buy).total_seconds() / 60.0
    if minutes_since < ctx.params.min_minutes_between_buys:
        return GateRejection(
            f"Cooldown: {round(minutes_since)}m since last buy "
            f"(min: {ctx.params.min_minutes_between_buys:g}m)",
            SKIP_COOLDOWN,
        )
    return None


def _gate_rsi_overbought(ctx: GateContext) -> GateRejection | None:
    rsi = ctx.indicators.rsi
    if rsi >= ctx.params.rsi_overbought:
        return GateRejection(f"RSI overbought: {rsi} >= {ctx.params.rsi_overbought:g}", SKIP_RSI)
    return None


def _gate_min_volume(ctx: GateContext) -> GateRejection | None:
    volume = ctx.market.volume_24h
    if volume < ctx.params.min_volume_24h:
        return GateRejection(
            f"Volume too low: ${volume:.2f} < ${ctx.params.min_volume_24h:g}", SKIP_LOW_VOLUME
        )
    return None


def _gate_volume_confirmation(ctx: GateContext) -> GateRejection | None:
    current = ctx.market.volume_24h
    avg = ctx.indicators.avg_volume
    if not is_volume_confirmed(current, avg, ctx.params.volume_threshold):
        return GateRejection(
            f"Volume below threshold: ${current:.2f} < {avg * ctx.params.volume_threshold:.2f} "
            f"({ctx.params.volume_threshold * 100:g}% of avg)",
            SKIP_LOW_VOLUME,
        )
    return None


def _gate_recent_high(ctx: GateContext) -> GateRejection | None:
    price = ctx.market.price
    high = ctx.state.recent_high
    bought = set(ctx.state.support_levels_bought)
    if high <= 0:
        high = price
    elif price > high:
        # A new high invalidates earlier dip buys
        high = price
        bought = set()
    if high <= 0:
        return GateRejection("No price baseline yet")
    ctx.recent_high = high
    ctx.levels_bought = bought
    return None


def _gate_support_level(ctx: GateContext) -> GateRejection | None:
    ctx.drop_percent = (ctx.recent_high - ctx.market.price) / ctx.recent_high * 100.0
    triggered = None
    for level in sorted(ctx.params.support_levels, key=lambda lvl: lvl.drop_percent):
        if ctx.drop_percent >= level.drop_percent and level.level_id not in ctx.levels_bought:
            triggered = level  # deepest qualifying tier wins
    if triggered is None:
        return GateRejection(f"No support level triggered (drop: {ctx.drop_percent:.2f}%)")
    ctx.level = triggered
    return None


def _gate_liquidity(ctx: GateContext) -> GateRejection | None:
    ctx.intended_sol = ctx.level.buy_amount_sol * buy_multiplier(ctx.mode)
    if not is_liquidity_sufficient(
        ctx.market.liquidity_usd,
        ctx.intended_sol,
        ctx.params.sol_price_usd,
        ctx.params.max_price_impact_percent,
    ):
        return GateRejection(
            f"Insufficient liquidity: ${ctx.market.liquidity_usd:.2f} for {ctx.intended_sol:g} SOL trade",
            SKIP_LIQUIDITY,
        )
    return None


def _gate_sizing(ctx: GateContext) -> GateRejection | None:
    ctx.amount_sol = min(ctx.intended_sol, ctx.available_sol)
    if ctx.amount_sol <= 0:
        return GateRejection("Sized buy amount is zero")
    return None


Gate = Callable[[GateContext], GateRejection | None]

BUYBACK_GATES: tuple[tuple[str, Gate], ...] = (
    ("mode", _gate_mode),
    ("balance", _gate_balance),
    ("cooldown", _gate_cooldown),
    ("rsi_overbought", _gate_rsi_overbought),
    ("min_volume", _gate_min_volume),
    ("volume_confirmation", _gate_volume_confirmation),
    ("recent_high", _gate_recent_high),
    ("support_level", _gate_support_level),
    ("liquidity", _gate_liquidity),
    ("sizing", _gate_sizing),
)


def evaluate_buyback(
    state: TreasuryState,
    market: MarketSnapshot,
    indicators: IndicatorSnapshot,
    mode: TreasuryMode,
    sol_balance: float,
    now: datetime,
    params: BuybackParams,
) -> BuybackDecision:
    """Evaluate whether to execute a buyback.

    Returns a BuybackDecision with the decision and reason. A rejection
    carries the gate name and, where applicable, the stats counter to increment.
    """
    ctx = GateContext(
        state=state,
        market=market,
        indicators=indicators,
        mode=TreasuryMode(mode),
        sol_balance=sol_balance,
        now=now,
        params=params,
    )

    for name, gate in BUYBACK_GATES:
        rejection = gate(ctx)
        if rejection is not None:
            return BuybackDecision(
                should_buy=False,
                gate=name,
                reason=rejection.reason,
                skip_counter=rejection.skip_counter,
                drop_percent=ctx.drop_percent if ctx.level or name == "support_level" else None,
                available_sol=ctx.available_sol if name != "mode" else None,
            )

    oversold = indicators.rsi <= params.rsi_oversold
    if ctx.amount_sol < ctx.intended_sol:
        reason = (
            f"Support {ctx.level.drop_percent:g}% triggered, limited to available "
            f"{ctx.available_sol:.4f} SOL (RSI: {indicators.rsi}, {'OVERSOLD' if oversold else 'neutral'})"
        )
    else:
        reason = (
            f"Support {ctx.level.drop_percent:g}% triggered "
            f"(RSI: {indicators.rsi}, {'OVERSOLD' if oversold else 'neutral'})"
        )

    return BuybackDecision(
        should_buy=True,
        amount_sol=ctx.amount_sol,
        level=ctx.level,
        reason=reason,
        drop_percent=ctx.drop_percent,
        available_sol=ctx.available_sol,
    )
