"""One treasury tick.

This is the function APScheduler calls on each interval. It orchestrates:
market fetch → indicators → runway/mode → buyback decision → burn decision →
state persistence. Every decision, whether acted on or not, lands in the
activity log.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable

from treasury.config import Settings
from treasury.services import indicators as ind
from treasury.services.activity_log import ActivitySink
from treasury.services.burn import BurnDecision, evaluate_burn
from treasury.services.buyback import BuybackDecision, BuybackParams, evaluate_buyback
from treasury.services.market_data import MarketSnapshot
from treasury.services.metrics import TreasuryMetrics, load_metrics, save_metrics
from treasury.services.runway import (
    ModeChange,
    TreasuryMode,
    compute_runway_days,
    detect_mode_change,
    mode_for_runway,
)
from treasury.services.solana_client import Executor, TxResult
from treasury.services.state import (
    SupportLevelBuy,
    TreasuryState,
    load_state,
    observe_price,
    save_state,
)
from treasury.services.store import StateStore
from treasury.utils import constants as c

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TreasuryRuntime:
    """Everything a tick needs. Built once by the CLI or the API lifespan."""
    settings: Settings
    store: StateStore
    activity_log: ActivitySink
    executor: Executor
    fetch_market: Callable[[], Awaitable[MarketSnapshot | None]]
    clock: Callable[[], datetime] = utc_now
    dry_run: bool | None = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def is_dry_run(self) -> bool:
        return self.settings.dry_run if self.dry_run is None else self.dry_run


@dataclass
class TickReport:
    tick: int
    timestamp: datetime
    skipped: bool = False
    skip_reason: str | None = None
    market: MarketSnapshot | None = None
    sol_balance: float | None = None
    runway_days: float | None = None
    mode: TreasuryMode | None = None
    mode_change: ModeChange | None = None
    new_high: bool = False
    indicators: ind.IndicatorSnapshot | None = None
    buyback: BuybackDecision | None = None
    buy_result: TxResult | None = None
    burn: BurnDecision | None = None
    burn_result: TxResult | None = None

    def to_dict(self) -> dict:
        return {
            "tick": self.tick,
            "timestamp": self.timestamp.isoformat(),
            "skipped": self.skipped,
            "skip_reason": self.skip_reason,
            "market": self.market.to_dict() if self.market else None,
            "sol_balance": self.sol_balance,
            "runway_days": round(self.runway_days, 2) if self.runway_days is not None else None,
            "mode": self.mode.value if self.mode else None,
            "mode_change": self.mode_change.describe() if self.mode_change else None,
            "new_high": self.new_high,
            "indicators": self.indicators.to_dict() if self.indicators else None,
            "buyback": self.buyback.to_dict() if self.buyback else None,
            "buy_result": self.buy_result.to_dict() if self.buy_result else None,
            "burn": self.burn.to_dict() if self.burn else None,
            "burn_result": self.burn_result.to_dict() if self.burn_result else None,
        }


async def run_guarded_tick(runtime: TreasuryRuntime) -> TickReport | None:
    """Run one tick, skipping if a prior tick is still in flight.

    Any exception inside the tick is logged and recorded; the loop keeps running.
    """
    if runtime.lock.locked():
        logger.warning("[tick] Skipping overlapping tick")
        runtime.activity_log.append(
            c.TICK_SKIPPED_OVERLAP,
            "Skipped tick because previous run is still in progress",
        )
        return None

    async with runtime.lock:
        try:
            return await run_tick(runtime)
        except Exception as e:
            logger.error(f"[tick] Tick failed: {e}", exc_info=True)
            runtime.activity_log.append(c.ERROR, f"Tick error: {e}", {"error": str(e)})
            return None


async def wait_for_idle(runtime: TreasuryRuntime):
    """Block until no tick is in flight."""
    async with runtime.lock:
        return


async def run_tick(runtime: TreasuryRuntime, persist: bool = True) -> TickReport:
    """Execute one tick.

    Steps:
    1. Fetch market data (failure or a zero price skips the tick without touching state)
    2. Push price/volume history, fetch wallet balance
    3. Runway → mode, log mode changes, track the recent high
    4. Buyback decision → execute → commit and save on confirmed success
    5. Burn decision → execute → commit and save on confirmed success
    6. Record the runway sample and persist state + metrics
    """
    settings = runtime.settings
    log = runtime.activity_log
    state = load_state(runtime.store)
    metrics = load_metrics(runtime.store)
    now = runtime.clock()

    state.tick_count += 1
    tag = f"[tick {state.tick_count}]"
    report = TickReport(tick=state.tick_count, timestamp=now)
    logger.info(f"{tag} Starting at {now.isoformat()}")

    # Step 1: market data
    market = await runtime.fetch_market()
    if market is None:
        return _skip(runtime, report, tag, "Failed to fetch market data")
    if market.price <= 0:
        return _skip(runtime, report, tag, "Market data has no usable price")
    report.market = market

    # Step 2: history and balance
    state.price_history = ind.push_bounded(state.price_history, market.price, settings.price_history_length)
    state.volume_history = ind.push_bounded(
        state.volume_history, market.volume_24h, settings.volume_history_length
    )

    balance = await runtime.executor.get_balance()
    if balance is None:
        return _skip(runtime, report, tag, "Failed to fetch wallet balance")
    report.sol_balance = balance.sol_balance

    # Step 3: runway, mode, recent high
    runway_days = compute_runway_days(balance.sol_balance, settings.estimated_daily_burn_sol)
    mode = mode_for_runway(runway_days, settings.critical_runway_days, settings.emergency_runway_days)
    report.runway_days = runway_days
    report.mode = mode

    change = detect_mode_change(state.current_mode, mode)
    if change is not None:
        logger.info(f"{tag} Mode change: {change.old_mode.value} -> {change.new_mode.value}")
        log.append(c.MODE_CHANGE, change.describe(), {
            "old_mode": change.old_mode.value,
            "new_mode": change.new_mode.value,
            "runway_days": round(runway_days, 1),
            "sol_balance": round(balance.sol_balance, 4),
        })
        state.current_mode = mode
        state.last_mode_change_timestamp = now
        report.mode_change = change

    report.new_high = observe_price(state, market.price, now)

    # Step 4: buyback
    snapshot = ind.compute_indicators(
        state.price_history,
        state.volume_history,
        market.volume_24h,
        rsi_period=settings.rsi_period,
        momentum_period=settings.momentum_period,
    )
    report.indicators = snapshot
    drop = (state.recent_high - market.price) / state.recent_high * 100 if state.recent_high > 0 else 0.0
    logger.info(
        f"{tag} Price: ${market.price:.8f} | RSI: {snapshot.rsi} | Drop: {drop:.1f}% | "
        f"Mode: {mode.value} | Runway: {runway_days:.1f}d"
    )

    decision = evaluate_buyback(
        state, market, snapshot, mode, balance.sol_balance, now, BuybackParams.from_settings(settings)
    )
    report.buyback = decision
    logger.info(f"{tag} Buy decision: {'YES' if decision.should_buy else 'NO'} - {decision.reason}")
    log.append(c.BUYBACK_DECISION, decision.reason, {
        **decision.to_dict(),
        "price": market.price,
        "mode": mode.value,
        "indicators": snapshot.to_dict(),
    })
    if decision.skip_counter:
        state.stats.increment(decision.skip_counter)

    if decision.should_buy:
        report.buy_result = await _execute_buyback(runtime, state, metrics, decision, market, now, tag, persist)

    # Step 5: burn
    burn_decision = evaluate_burn(state.tokens_accumulated, settings.min_tokens_to_burn)
    report.burn = burn_decision
    logger.info(f"{tag} Burn decision: {'YES' if burn_decision.should_burn else 'NO'} - {burn_decision.reason}")
    log.append(c.BURN_DECISION, burn_decision.reason, burn_decision.to_dict())

    if burn_decision.should_burn:
        report.burn_result = await _execute_burn(runtime, state, metrics, burn_decision, now, tag, persist)

    # Step 6: persist
    metrics.record_runway(now, runway_days, balance.sol_balance, mode.value)
    if persist:
        _save(runtime, state, metrics)
    return report


def _save(runtime: TreasuryRuntime, state: TreasuryState, metrics: TreasuryMetrics):
    save_state(runtime.store, state)
    save_metrics(runtime.store, metrics)


def _skip(runtime: TreasuryRuntime, report: TickReport, tag: str, reason: str) -> TickReport:
    logger.warning(f"{tag} {reason}, skipping tick")
    runtime.activity_log.append(c.TICK_SKIPPED, reason, {"tick": report.tick})
    report.skipped = True
    report.skip_reason = reason
    return report


async def _execute_buyback(
    runtime: TreasuryRuntime,
    state: TreasuryState,
    metrics: TreasuryMetrics,
    decision: BuybackDecision,
    market: MarketSnapshot,
    now: datetime,
    tag: str,
    persist: bool = True,
) -> TxResult:
    log = runtime.activity_log
    amount = decision.amount_sol
    level_id = decision.level.level_id if decision.level else None

    if runtime.is_dry_run:
        logger.info(f"{tag} DRY RUN - would buy back {amount:.4f} SOL")
        log.append(c.BUYBACK_DRY_RUN, decision.reason, {"amount_sol": amount, "level": level_id, "dry_run": True})
        return TxResult(success=True, dry_run=True)

    log.append(c.BUYBACK_START, decision.reason, {"amount_sol": amount, "level": level_id, "status": "started"})
    result = await runtime.executor.buy(amount)
    if not result.success:
        logger.error(f"{tag} Buyback failed: {result.error}")
        log.append(c.BUYBACK_FAILED, decision.reason, {"amount_sol": amount, "error": result.error})
        return result

    tokens = int(result.tokens_received or 0)
    state.stats.total_buybacks += 1
    state.stats.total_sol_spent += amount
    state.stats.total_tokens_bought += tokens
    state.tokens_accumulated += tokens
    state.last_buy_timestamp = now
    state.last_buy_price = market.price
    if level_id:
        state.support_levels_bought[level_id] = SupportLevelBuy(timestamp=now, amount=amount)
    metrics.record_buyback(now, amount, tokens)
    if persist:
        _save(runtime, state, metrics)

    logger.info(f"{tag} Buyback successful: {tokens:,} tokens for {amount:.4f} SOL")
    log.append(c.BUYBACK_SUCCESS, decision.reason, {
        "amount_sol": amount,
        "tokens_received": tokens,
        "signature": result.signature,
        "level": level_id,
    })
    return result


async def _execute_burn(
    runtime: TreasuryRuntime,
    state: TreasuryState,
    metrics: TreasuryMetrics,
    decision: BurnDecision,
    now: datetime,
    tag: str,
    persist: bool = True,
) -> TxResult:
    log = runtime.activity_log
    amount = decision.token_amount

    if runtime.is_dry_run:
        logger.info(f"{tag} DRY RUN - would burn {amount:,} tokens")
        log.append(c.BURN_DRY_RUN, f"Would burn {amount:,} tokens", {"token_amount": amount, "dry_run": True})
        return TxResult(success=True, dry_run=True)

    log.append(c.BURN_START, f"Burning {amount:,} tokens", {"token_amount": amount, "status": "started"})
    result = await runtime.executor.burn(amount)
    if not result.success:
        logger.error(f"{tag} Burn failed: {result.error}")
        log.append(c.BURN_FAILED, f"Burn failed: {result.error}", {"token_amount": amount, "error": result.error})
        return result

    state.stats.total_burns += 1
    state.stats.total_tokens_burned += amount
    state.tokens_accumulated = 0
    state.last_burn_timestamp = now
    metrics.record_burn(now, amount)
    if persist:
        _save(runtime, state, metrics)

    logger.info(f"{tag} Burn successful: {amount:,} tokens")
    log.append(c.BURN_SUCCESS, f"Burned {amount:,} tokens", {"token_amount": amount, "signature": result.signature})
    return result
