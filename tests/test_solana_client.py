"""Tests for the wallet client: key loading, balances, buy and burn paths, sell block, dry run."""

import base64
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import base58
import httpx
import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from solders.transaction_status import TransactionConfirmationStatus

from treasury.config import ConfigurationError
from treasury.services.solana_client import (
    SELL_BLOCKED_REASON,
    DryRunExecutor,
    SolanaClient,
    TxResult,
    WalletBalance,
    load_keypair,
)
from treasury.utils.constants import SOL_MINT


def _make_client() -> SolanaClient:
    client = SolanaClient(
        rpc_url="https://rpc.invalid",
        private_key=base58.b58encode(bytes(Keypair())).decode(),
        token_mint=SOL_MINT,
        confirm_timeout=1.0,
    )
    client._rpc = MagicMock()
    client._rpc.get_account_info = AsyncMock(return_value=SimpleNamespace(value=object()))
    return client


def _status(confirmation=TransactionConfirmationStatus.Confirmed, err=None):
    return SimpleNamespace(value=[SimpleNamespace(err=err, confirmation_status=confirmation)])


# ---------------------------------------------------------------------------
# Key loading
# ---------------------------------------------------------------------------

class TestLoadKeypair:
    def test_base58(self):
        kp = Keypair()
        assert load_keypair(base58.b58encode(bytes(kp)).decode()).pubkey() == kp.pubkey()

    def test_json_array(self):
        kp = Keypair()
        assert load_keypair(json.dumps(list(bytes(kp)))).pubkey() == kp.pubkey()

    def test_empty_rejected(self):
        with pytest.raises(ConfigurationError):
            load_keypair("")

    def test_wrong_length_rejected(self):
        with pytest.raises(ConfigurationError):
            load_keypair(base58.b58encode(b"\x01" * 32).decode())

    def test_garbage_rejected(self):
        with pytest.raises(ConfigurationError):
            load_keypair("not-base58-0OIl")


# ---------------------------------------------------------------------------
# Balances
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_balance():
    client = _make_client()
    client._rpc.get_balance = AsyncMock(return_value=SimpleNamespace(value=2_500_000_000))
    client._rpc.get_token_account_balance = AsyncMock(
        return_value=SimpleNamespace(value=SimpleNamespace(ui_amount=1234.5))
    )
    balance = await client.get_balance()
    assert balance == WalletBalance(sol_balance=2.5, token_balance=1234.5)


@pytest.mark.asyncio
async def test_missing_token_account_is_zero():
    client = _make_client()
    client._rpc.get_balance = AsyncMock(return_value=SimpleNamespace(value=1_000_000_000))
    client._rpc.get_account_info = AsyncMock(return_value=SimpleNamespace(value=None))
    client._rpc.get_token_account_balance = AsyncMock()
    balance = await client.get_balance()
    assert balance.token_balance == 0.0
    client._rpc.get_token_account_balance.assert_not_awaited()


@pytest.mark.asyncio
async def test_token_balance_rpc_error_fails_the_read():
    client = _make_client()
    client._rpc.get_balance = AsyncMock(return_value=SimpleNamespace(value=1_000_000_000))
    client._rpc.get_token_account_balance = AsyncMock(side_effect=ConnectionError("429 Too Many Requests"))
    with pytest.raises(ConnectionError):
        await client.get_token_balance()
    assert await client.get_balance() is None


@pytest.mark.asyncio
async def test_balance_failure_returns_none():
    client = _make_client()
    client._rpc.get_balance = AsyncMock(side_effect=ConnectionError("rpc down"))
    assert await client.get_balance() is None


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_sell_is_always_blocked():
    client = _make_client()
    result = await client.sell(1_000_000)
    assert result.success is False
    assert result.blocked is True
    assert result.error == SELL_BLOCKED_REASON
    assert client._rpc.method_calls == []


@pytest.mark.asyncio
async def test_zero_amounts_rejected_without_network():
    client = _make_client()
    assert (await client.buy(0.0)).success is False
    assert (await client.burn(0)).success is False
    assert (await client.lock(0)).success is False
    assert client._rpc.method_calls == []


@pytest.mark.asyncio
async def test_burn_sends_and_confirms():
    client = _make_client()
    sig = Signature.default()
    client._rpc.get_latest_blockhash = AsyncMock(
        return_value=SimpleNamespace(value=SimpleNamespace(blockhash=Hash.default()))
    )
    client._rpc.send_transaction = AsyncMock(return_value=SimpleNamespace(value=sig))
    client._rpc.get_signature_statuses = AsyncMock(return_value=_status())

    result = await client.burn(1_000)

    assert result.success is True
    assert result.signature == str(sig)
    client._rpc.send_transaction.assert_awaited_once()


@pytest.mark.asyncio
async def test_burn_on_chain_error():
    client = _make_client()
    client._rpc.get_latest_blockhash = AsyncMock(
        return_value=SimpleNamespace(value=SimpleNamespace(blockhash=Hash.default()))
    )
    client._rpc.send_transaction = AsyncMock(return_value=SimpleNamespace(value=Signature.default()))
    client._rpc.get_signature_statuses = AsyncMock(return_value=_status(err="InstructionError"))

    result = await client.burn(1_000)

    assert result.success is False
    assert "InstructionError" in result.error


@pytest.mark.asyncio
async def test_send_exception_becomes_failed_result():
    client = _make_client()
    client._rpc.get_latest_blockhash = AsyncMock(side_effect=ConnectionError("rpc down"))
    result = await client.lock(1_000)
    assert result.success is False
    assert "rpc down" in result.error


# ---------------------------------------------------------------------------
# Buy
# ---------------------------------------------------------------------------

QUOTED_TOKENS = 480_000


def _token_balance(ui_amount):
    return SimpleNamespace(value=SimpleNamespace(ui_amount=ui_amount))


def _swap_transaction(client: SolanaClient) -> str:
    message = MessageV0.try_compile(
        payer=client.keypair.pubkey(),
        instructions=[],
        address_lookup_table_accounts=[],
        recent_blockhash=Hash.default(),
    )
    return base64.b64encode(bytes(VersionedTransaction(message, [client.keypair]))).decode()


def _jupiter(quote_response=None, swap_response=None):
    http = MagicMock()
    http.get = AsyncMock(return_value=quote_response or httpx.Response(
        200, json={"outAmount": str(QUOTED_TOKENS * 10 ** 6)}
    ))
    http.post = AsyncMock(return_value=swap_response)
    patcher = patch("treasury.services.solana_client.httpx.AsyncClient")
    return http, patcher


def _buy_client(token_balances) -> SolanaClient:
    client = _make_client()
    client._rpc.get_token_account_balance = AsyncMock(side_effect=token_balances)
    client._rpc.send_raw_transaction = AsyncMock(return_value=SimpleNamespace(value=Signature.default()))
    client._rpc.get_signature_statuses = AsyncMock(return_value=_status())
    return client


class TestBuy:
    @pytest.mark.asyncio
    async def test_tokens_from_balance_delta(self):
        client = _buy_client([_token_balance(1_000.0), _token_balance(501_000.0)])
        http, patcher = _jupiter(swap_response=httpx.Response(
            200, json={"swapTransaction": _swap_transaction(client)}
        ))
        with patcher as client_cls:
            client_cls.return_value.__aenter__.return_value = http
            result = await client.buy(0.1)

        assert result.success is True
        assert result.signature == str(Signature.default())
        assert result.tokens_received == 500_000
        assert http.get.call_args.kwargs["params"]["amount"] == "100000000"
        assert http.get.call_args.kwargs["params"]["slippageBps"] == "2000"
        client._rpc.send_raw_transaction.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lagging_balance_uses_quote(self):
        client = _buy_client([_token_balance(1_000.0), _token_balance(1_000.0)])
        http, patcher = _jupiter(swap_response=httpx.Response(
            200, json={"swapTransaction": _swap_transaction(client)}
        ))
        with patcher as client_cls:
            client_cls.return_value.__aenter__.return_value = http
            result = await client.buy(0.1)

        assert result.success is True
        assert result.tokens_received == QUOTED_TOKENS

    @pytest.mark.asyncio
    async def test_failed_pre_swap_read_uses_quote_not_wallet_total(self):
        client = _buy_client([ConnectionError("429 Too Many Requests"), _token_balance(1_500_000.0)])
        http, patcher = _jupiter(swap_response=httpx.Response(
            200, json={"swapTransaction": _swap_transaction(client)}
        ))
        with patcher as client_cls:
            client_cls.return_value.__aenter__.return_value = http
            result = await client.buy(0.1)

        assert result.success is True
        assert result.tokens_received == QUOTED_TOKENS

    @pytest.mark.asyncio
    async def test_failed_post_swap_read_uses_quote(self):
        client = _buy_client([_token_balance(1_000.0), ConnectionError("timeout")])
        http, patcher = _jupiter(swap_response=httpx.Response(
            200, json={"swapTransaction": _swap_transaction(client)}
        ))
        with patcher as client_cls:
            client_cls.return_value.__aenter__.return_value = http
            result = await client.buy(0.1)

        assert result.success is True
        assert result.tokens_received == QUOTED_TOKENS

    @pytest.mark.asyncio
    async def test_quote_error(self):
        client = _buy_client([_token_balance(0.0)])
        http, patcher = _jupiter(quote_response=httpx.Response(500, json={}))
        with patcher as client_cls:
            client_cls.return_value.__aenter__.return_value = http
            result = await client.buy(0.1)

        assert result.success is False
        assert "quote failed: 500" in result.error
        http.post.assert_not_awaited()
        client._rpc.send_raw_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_swap_error(self):
        client = _buy_client([_token_balance(0.0)])
        http, patcher = _jupiter(swap_response=httpx.Response(429, json={}))
        with patcher as client_cls:
            client_cls.return_value.__aenter__.return_value = http
            result = await client.buy(0.1)

        assert result.success is False
        assert "swap failed: 429" in result.error
        client._rpc.send_raw_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_swap_transaction(self):
        client = _buy_client([_token_balance(0.0)])
        http, patcher = _jupiter(swap_response=httpx.Response(200, json={"error": "no route"}))
        with patcher as client_cls:
            client_cls.return_value.__aenter__.return_value = http
            result = await client.buy(0.1)

        assert result.success is False
        assert result.error == "Jupiter returned no swap transaction"
        client._rpc.send_raw_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_confirmation_timeout(self):
        client = _buy_client([_token_balance(0.0)])
        client.confirm_timeout = 0
        http, patcher = _jupiter(swap_response=httpx.Response(
            200, json={"swapTransaction": _swap_transaction(client)}
        ))
        with patcher as client_cls:
            client_cls.return_value.__aenter__.return_value = http
            result = await client.buy(0.1)

        assert result.success is False
        assert result.signature == str(Signature.default())
        assert "timeout" in result.error
        assert result.tokens_received == 0


# ---------------------------------------------------------------------------
# Dry run
# ---------------------------------------------------------------------------

class TestDryRunExecutor:
    @pytest.mark.asyncio
    async def test_balance_passes_through(self):
        inner = MagicMock()
        inner.get_balance = AsyncMock(return_value=WalletBalance(1.0, 2.0))
        assert await DryRunExecutor(inner).get_balance() == WalletBalance(1.0, 2.0)

    @pytest.mark.asyncio
    async def test_actions_never_reach_inner_client(self):
        inner = MagicMock()
        inner.buy = AsyncMock()
        inner.burn = AsyncMock()
        executor = DryRunExecutor(inner)

        buy = await executor.buy(0.1)
        burn = await executor.burn(1_000)

        assert buy == TxResult(success=True, signature="dry-run", dry_run=True)
        assert burn.dry_run is True
        inner.buy.assert_not_awaited()
        inner.burn.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sell_still_blocked(self):
        result = await DryRunExecutor().sell(5)
        assert result.blocked is True
