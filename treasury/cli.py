"""CLI for running and inspecting the treasury controller.

Usage:
    python -m treasury.cli <command>

Commands:
    status        Treasury balance, runway, mode and accumulation
    metrics       Cumulative buyback/burn statistics
    simulate      One dry-run tick against a copy of the saved state
    run           Run the tick loop until SIGINT/SIGTERM
    history [n]   Most recent activity log entries (default 20)
    config        Effective configuration and support tiers
    reset         Reset treasury state, statistics and metrics
"""

import asyncio
import json
import logging
import signal
import sys
from functools import partial

from treasury.config import ConfigurationError, Settings, settings as default_settings
from treasury.database import create_db_and_tables, engine as default_engine
from treasury.engine.tick import TreasuryRuntime, run_tick
from treasury.services.activity_log import MemoryActivityLog, SqlActivityLog
from treasury.services.market_data import fetch_market_snapshot
from treasury.services.metrics import TreasuryMetrics, build_metrics_report, load_metrics, save_metrics
from treasury.services.runway import compute_runway_days, mode_for_runway
from treasury.services.solana_client import DryRunExecutor, SolanaClient
from treasury.services.state import load_state, reset_state
from treasury.services.store import MemoryStateStore, SqlStateStore
from treasury.utils.constants import DAEMON_START, DAEMON_STOP, METRICS_KEY, STATE_KEY, STATE_RESET
from treasury.utils.logging import setup_logging

logger = logging.getLogger(__name__)

USAGE = __doc__


def build_runtime(
    settings: Settings,
    db_engine=None,
    dry_run: bool | None = None,
    store=None,
    activity_log=None,
) -> TreasuryRuntime:
    """Wire settings to concrete stores, the wallet client and the market feed."""
    settings.require_credentials()
    db_engine = db_engine or default_engine
    client = SolanaClient(
        rpc_url=settings.rpc_url,
        private_key=settings.wallet_private_key,
        token_mint=settings.token_mint_address,
        jupiter_base_url=settings.jupiter_base_url,
        token_decimals=settings.token_decimals,
        slippage_bps=settings.slippage_bps,
        priority_fee_lamports=settings.priority_fee_lamports,
        http_timeout=settings.http_timeout_seconds,
        confirm_timeout=settings.confirm_timeout_seconds,
    )
    is_dry_run = settings.dry_run if dry_run is None else dry_run
    return TreasuryRuntime(
        settings=settings,
        store=store if store is not None else SqlStateStore(db_engine),
        activity_log=activity_log if activity_log is not None else SqlActivityLog(
            db_engine, limit=settings.activity_log_limit
        ),
        executor=DryRunExecutor(client) if is_dry_run else client,
        fetch_market=partial(
            fetch_market_snapshot,
            settings.token_mint_address,
            settings.dexscreener_base_url,
            settings.http_timeout_seconds,
        ),
        dry_run=is_dry_run,
    )


def _print_json(data):
    print(json.dumps(data, indent=2, default=str))


async def _close(runtime: TreasuryRuntime):
    close = getattr(runtime.executor, "close", None)
    if close is not None:
        await close()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

async def show_status(settings: Settings, db_engine=None):
    runtime = build_runtime(settings, db_engine)
    try:
        state = load_state(runtime.store)
        balance = await runtime.executor.get_balance()
    finally:
        await _close(runtime)

    sol_balance = balance.sol_balance if balance else 0.0
    token_balance = balance.token_balance if balance else 0.0
    runway = compute_runway_days(sol_balance, settings.estimated_daily_burn_sol)
    mode = mode_for_runway(runway, settings.critical_runway_days, settings.emergency_runway_days)

    print("")
    print("========================================")
    print("  TREASURY STATUS")
    print("========================================")
    print("")
    print("Treasury:")
    if balance is None:
        print("  (balance unavailable)")
    print(f"  SOL Balance:     {sol_balance:.4f} SOL")
    print(f"  Token Balance:   {token_balance:,.0f}")
    print(f"  Runway:          {runway:.1f} days")
    print(f"  Mode:            {mode.value}")
    print("")
    print("Accumulation:")
    print(f"  Tokens Pending:  {state.tokens_accumulated:,}")
    print(f"  Burn Threshold:  {settings.min_tokens_to_burn:,}")
    print(f"  Last Burn:       {state.last_burn_timestamp.isoformat() if state.last_burn_timestamp else 'Never'}")
    print("")
    print("Buybacks:")
    print(f"  Recent High:     ${state.recent_high:.8f}")
    print(f"  Last Buy:        {state.last_buy_timestamp.isoformat() if state.last_buy_timestamp else 'Never'}")
    for level in settings.support_levels:
        bought = state.support_levels_bought.get(level.level_id)
        marker = f"bought {bought.amount:.4f} SOL at {bought.timestamp.isoformat()}" if bought else "open"
        print(f"  -{level.drop_percent:g}% ({level.buy_amount_sol:g} SOL): {marker}")
    print("")
    print(f"Ticks: {state.tick_count}  Dry run: {settings.dry_run}")
    print("")


def show_metrics(db_engine=None):
    store = SqlStateStore(db_engine or default_engine)
    _print_json(build_metrics_report(load_state(store), load_metrics(store)))


async def simulate(settings: Settings, db_engine=None):
    """Run one dry-run tick on an in-memory copy of the persisted state. Nothing is saved."""
    persisted = SqlStateStore(db_engine or default_engine)
    snapshot = {}
    for key in (STATE_KEY, METRICS_KEY):
        doc = persisted.load(key)
        if doc is not None:
            snapshot[key] = doc
    activity = MemoryActivityLog(limit=settings.activity_log_limit)
    runtime = build_runtime(
        settings,
        db_engine,
        dry_run=True,
        store=MemoryStateStore(snapshot),
        activity_log=activity,
    )
    try:
        report = await run_tick(runtime, persist=False)
    finally:
        await _close(runtime)
    _print_json({
        "report": report.to_dict(),
        "activity": [entry.to_dict() for entry in reversed(activity.recent(activity.limit))],
    })


async def run_daemon(settings: Settings, db_engine=None):
    """Run the tick loop until SIGINT/SIGTERM, then finish the in-flight tick and exit."""
    from treasury.engine.scheduler import start_scheduler, stop_scheduler

    if not settings.enabled:
        print("Treasury controller is disabled (SUSTAINABILITY_ENABLED=false).")
        return

    runtime = build_runtime(settings, db_engine)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    runtime.activity_log.append(DAEMON_START, "Treasury controller started", {
        "dry_run": runtime.is_dry_run,
        "tick_interval_seconds": settings.tick_interval_seconds,
        "support_levels": [lvl.level_id for lvl in settings.support_levels],
    })
    start_scheduler(runtime)
    try:
        await stop.wait()
        logger.info("Shutdown requested, waiting for in-flight tick")
    finally:
        await stop_scheduler(runtime)
        runtime.activity_log.append(DAEMON_STOP, "Treasury controller stopped")
        await _close(runtime)


def show_history(limit: int, settings: Settings, db_engine=None):
    log = SqlActivityLog(db_engine or default_engine, limit=settings.activity_log_limit)
    for entry in reversed(log.recent(limit)):
        print(f"{entry.timestamp.isoformat()}  {entry.type:<22} {entry.content}")


def show_config(settings: Settings):
    data = settings.model_dump(exclude={"wallet_private_key"})
    data["wallet_private_key"] = "***" if settings.wallet_private_key else ""
    data["support_levels"] = [
        {"id": lvl.level_id, "drop_percent": lvl.drop_percent, "buy_amount_sol": lvl.buy_amount_sol}
        for lvl in settings.support_levels
    ]
    _print_json(data)


def reset(settings: Settings, db_engine=None):
    db_engine = db_engine or default_engine
    store = SqlStateStore(db_engine)
    reset_state(store)
    save_metrics(store, TreasuryMetrics())
    SqlActivityLog(db_engine, limit=settings.activity_log_limit).append(
        STATE_RESET, "Treasury state, statistics and metrics reset by operator"
    )
    print("Treasury state reset.")


def main(argv: list[str] | None = None):
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        print(USAGE)
        sys.exit(1)

    settings = default_settings
    setup_logging(settings.log_level)
    create_db_and_tables()

    command = argv[0]
    try:
        if command == "status":
            asyncio.run(show_status(settings))
        elif command == "metrics":
            show_metrics()
        elif command == "simulate":
            asyncio.run(simulate(settings))
        elif command == "run":
            asyncio.run(run_daemon(settings))
        elif command == "history":
            limit = int(argv[1]) if len(argv) > 1 else 20
            show_history(limit, settings)
        elif command == "config":
            show_config(settings)
        elif command == "reset":
            reset(settings)
        else:
            print(f"Unknown command: {command}")
            print(USAGE)
            sys.exit(1)
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        sys.exit(2)


if __name__ == "__main__":
    main()
