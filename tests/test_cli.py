"""Tests for CLI commands against an in-memory database."""

import json
from unittest.mock import AsyncMock, patch

import pytest

from conftest import NOW, make_market
from treasury import cli
from treasury.config import ConfigurationError, Settings
from treasury.services.activity_log import SqlActivityLog
from treasury.services.metrics import TreasuryMetrics, load_metrics, save_metrics
from treasury.services.solana_client import DryRunExecutor, SolanaClient, WalletBalance
from treasury.services.state import TreasuryState, TreasuryStats, load_state, save_state
from treasury.services.store import SqlStateStore
from treasury.utils import constants as c


def test_build_runtime_requires_credentials(memory_engine):
    with pytest.raises(ConfigurationError):
        cli.build_runtime(Settings(token_mint_address="", rpc_url="", wallet_private_key=""), memory_engine)


def test_build_runtime_dry_run_wraps_client(settings, memory_engine):
    runtime = cli.build_runtime(settings, memory_engine, dry_run=True)
    assert isinstance(runtime.executor, DryRunExecutor)
    assert runtime.is_dry_run is True

    live = cli.build_runtime(settings, memory_engine)
    assert isinstance(live.executor, SolanaClient)


@pytest.mark.asyncio
async def test_simulate_saves_nothing(settings, memory_engine, capsys):
    store = SqlStateStore(memory_engine)
    save_state(store, TreasuryState(recent_high=1.0, tick_count=5))

    with patch("treasury.cli.fetch_market_snapshot", AsyncMock(return_value=make_market(price=0.85))), \
            patch.object(SolanaClient, "get_balance", AsyncMock(return_value=WalletBalance(5.0, 0.0))), \
            patch.object(SolanaClient, "buy", AsyncMock()) as buy:
        await cli.simulate(settings, memory_engine)

    buy.assert_not_awaited()
    out = json.loads(capsys.readouterr().out)
    assert out["report"]["tick"] == 6
    assert out["report"]["buyback"]["should_buy"] is True
    assert [e["type"] for e in out["activity"]] == [
        c.BUYBACK_DECISION,
        c.BUYBACK_DRY_RUN,
        c.BURN_DECISION,
    ]

    assert load_state(store).tick_count == 5
    assert SqlActivityLog(memory_engine).recent(10) == []


def test_metrics(memory_engine, capsys):
    save_state(SqlStateStore(memory_engine), TreasuryState(stats=TreasuryStats(total_burns=3)))
    cli.show_metrics(memory_engine)
    assert json.loads(capsys.readouterr().out)["operations"]["total_burns"] == 3


def test_reset_clears_state_and_metrics(settings, memory_engine, capsys):
    store = SqlStateStore(memory_engine)
    save_state(store, TreasuryState(stats=TreasuryStats(total_buybacks=9)))
    metrics = TreasuryMetrics()
    metrics.record_runway(NOW, 42.0, 4.2, "NORMAL")
    metrics.record_burn(NOW, 1_000_000)
    save_metrics(store, metrics)

    cli.reset(settings, memory_engine)

    assert load_state(store).stats.total_buybacks == 0
    assert load_metrics(store) == TreasuryMetrics()
    assert SqlActivityLog(memory_engine).recent(1)[0].type == c.STATE_RESET


def test_history(settings, memory_engine, capsys):
    log = SqlActivityLog(memory_engine)
    log.append(c.BUYBACK_DECISION, "older")
    log.append(c.BURN_DECISION, "newer")
    cli.show_history(5, settings, memory_engine)
    lines = capsys.readouterr().out.strip().splitlines()
    assert "older" in lines[0]
    assert "newer" in lines[1]


def test_config_masks_wallet_key(settings, capsys):
    cli.show_config(settings)
    out = json.loads(capsys.readouterr().out)
    assert out["wallet_private_key"] == "***"
    assert out["support_levels"][0]["id"] == "dip10"


@pytest.mark.asyncio
async def test_run_exits_when_disabled(settings, capsys):
    settings.enabled = False
    await cli.run_daemon(settings)
    assert "disabled" in capsys.readouterr().out


def test_unknown_command_exits():
    with patch("treasury.cli.create_db_and_tables"), pytest.raises(SystemExit):
        cli.main(["bogus"])
