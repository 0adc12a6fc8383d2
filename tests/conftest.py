"""Shared fixtures: settings, in-memory database, fake market and wallet."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import base58
import pytest
from solders.keypair import Keypair
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

from treasury.config import Settings
from treasury.database import create_db_and_tables
from treasury.engine.tick import TreasuryRuntime
from treasury.services.activity_log import MemoryActivityLog
from treasury.services.market_data import MarketSnapshot
from treasury.services.solana_client import TxResult, WalletBalance
from treasury.services.store import MemoryStateStore
from treasury.utils.constants import SOL_MINT

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_market(price=1.0, volume_24h=1_000.0, liquidity_usd=10_000.0, **overrides) -> MarketSnapshot:
    return MarketSnapshot(
        price=price,
        volume_24h=volume_24h,
        liquidity_usd=liquidity_usd,
        timestamp=NOW,
        **overrides,
    )


def make_wallet_key() -> str:
    return base58.b58encode(bytes(Keypair())).decode()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        token_mint_address=SOL_MINT,
        rpc_url="https://rpc.invalid",
        wallet_private_key=make_wallet_key(),
        dry_run=False,
        estimated_daily_burn_sol=0.1,
    )


@pytest.fixture
def memory_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_db_and_tables(engine)
    return engine


@pytest.fixture
def executor():
    """Wallet with 5 SOL (50 days of runway at 0.1 SOL/day)."""
    ex = MagicMock()
    ex.get_balance = AsyncMock(return_value=WalletBalance(sol_balance=5.0, token_balance=0.0))
    ex.buy = AsyncMock(return_value=TxResult(success=True, signature="sig-buy", tokens_received=500_000))
    ex.burn = AsyncMock(return_value=TxResult(success=True, signature="sig-burn"))
    ex.close = AsyncMock()
    return ex


@pytest.fixture
def runtime(settings, executor) -> TreasuryRuntime:
    return TreasuryRuntime(
        settings=settings,
        store=MemoryStateStore(),
        activity_log=MemoryActivityLog(limit=200),
        executor=executor,
        fetch_market=AsyncMock(return_value=make_market()),
        clock=lambda: NOW,
    )
