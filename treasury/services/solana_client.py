"""Solana wallet client for treasury actions.

Buys route through Jupiter (quote, then a signed swap transaction); burns and
locks are plain SPL token instructions sent from the dev wallet. Selling is
blocked unconditionally.
"""

import asyncio
import base64
import json
import logging
import time
from dataclasses import dataclass
from typing import Protocol

import base58
import httpx
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from solders.transaction_status import TransactionConfirmationStatus
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    BurnParams,
    TransferCheckedParams,
    burn,
    create_idempotent_associated_token_account,
    get_associated_token_address,
    transfer_checked,
)

from treasury.config import ConfigurationError
from treasury.utils.constants import INCINERATOR_ADDRESS, LAMPORTS_PER_SOL, SOL_MINT

logger = logging.getLogger(__name__)

SELL_BLOCKED_REASON = "Dev wallet NEVER sells"


@dataclass
class TxResult:
    success: bool
    signature: str | None = None
    tokens_received: int = 0
    error: str | None = None
    dry_run: bool = False
    blocked: bool = False

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "signature": self.signature,
            "tokens_received": self.tokens_received,
            "error": self.error,
            "dry_run": self.dry_run,
            "blocked": self.blocked,
        }


@dataclass
class WalletBalance:
    sol_balance: float
    token_balance: float


class Executor(Protocol):
    async def get_balance(self) -> WalletBalance | None: ...

    async def buy(self, amount_sol: float) -> TxResult: ...

    async def burn(self, token_amount: int) -> TxResult: ...

    async def lock(self, token_amount: int) -> TxResult: ...

    async def sell(self, token_amount: int = 0) -> TxResult: ...


def load_keypair(private_key: str) -> Keypair:
    """Load a wallet key given as base58 or as a JSON byte array (solana-keygen format)."""
    raw = (private_key or "").strip()
    if not raw:
        raise ConfigurationError("Wallet private key is empty")
    try:
        if raw.startswith("["):
            key_bytes = bytes(json.loads(raw))
        else:
            key_bytes = base58.b58decode(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Wallet private key could not be decoded: {e}") from e
    if len(key_bytes) != 64:
        raise ConfigurationError(f"Wallet private key decoded to {len(key_bytes)} bytes, expected 64")
    return Keypair.from_bytes(key_bytes)


class SolanaClient:
    """Executes buy, burn and lock for the configured token from the dev wallet."""

    def __init__(
        self,
        rpc_url: str,
        private_key: str,
        token_mint: str,
        jupiter_base_url: str = "https://quote-api.jup.ag/v6",
        token_decimals: int = 6,
        slippage_bps: int = 2000,
        priority_fee_lamports: int = 500_000,
        http_timeout: float = 10.0,
        confirm_timeout: float = 90.0,
    ):
        self.rpc_url = rpc_url
        self.keypair = load_keypair(private_key)
        self.mint = Pubkey.from_string(token_mint)
        self.jupiter_base_url = jupiter_base_url.rstrip("/")
        self.token_decimals = token_decimals
        self.slippage_bps = slippage_bps
        self.priority_fee_lamports = priority_fee_lamports
        self.http_timeout = http_timeout
        self.confirm_timeout = confirm_timeout
        self._rpc: AsyncClient | None = None

    @property
    def wallet_address(self) -> str:
        return str(self.keypair.pubkey())

    async def _ensure_clients(self) -> AsyncClient:
        """Lazily open the RPC connection."""
        if self._rpc is None:
            self._rpc = AsyncClient(self.rpc_url, commitment=Confirmed)
            logger.info(f"[executor] RPC client initialized for wallet {self.wallet_address}")
        return self._rpc

    async def close(self):
        if self._rpc is not None:
            await self._rpc.close()
            self._rpc = None

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    async def get_sol_balance(self) -> float:
        rpc = await self._ensure_clients()
        resp = await rpc.get_balance(self.keypair.pubkey())
        return resp.value / LAMPORTS_PER_SOL

    async def get_token_balance(self) -> float:
        """UI token balance of the wallet's associated token account.

        0 only when the account does not exist yet; RPC failures propagate.
        """
        rpc = await self._ensure_clients()
        ata = get_associated_token_address(self.keypair.pubkey(), self.mint)
        info = await rpc.get_account_info(ata)
        if info.value is None:
            return 0.0
        resp = await rpc.get_token_account_balance(ata)
        return float(resp.value.ui_amount or 0.0)

    async def _read_token_balance(self) -> float | None:
        try:
            return await self.get_token_balance()
        except Exception as e:
            logger.warning(f"[executor] Token balance read failed: {e}")
            return None

    async def get_balance(self) -> WalletBalance | None:
        try:
            return WalletBalance(
                sol_balance=await self.get_sol_balance(),
                token_balance=await self.get_token_balance(),
            )
        except Exception as e:
            logger.error(f"[executor] Balance fetch failed: {e}")
            return None

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def buy(self, amount_sol: float) -> TxResult:
        """Swap `amount_sol` SOL for the token via Jupiter."""
        lamports = int(amount_sol * LAMPORTS_PER_SOL)
        if lamports <= 0:
            return TxResult(success=False, error="Buy amount rounds to zero lamports")

        try:
            tokens_before = await self._read_token_balance()

            async with httpx.AsyncClient(timeout=self.http_timeout) as http:
                quote_resp = await http.get(
                    f"{self.jupiter_base_url}/quote",
                    params={
                        "inputMint": SOL_MINT,
                        "outputMint": str(self.mint),
                        "amount": str(lamports),
                        "slippageBps": str(self.slippage_bps),
                    },
                )
                if quote_resp.status_code != 200:
                    return TxResult(success=False, error=f"Jupiter quote failed: {quote_resp.status_code}")
                quote = quote_resp.json()

                swap_resp = await http.post(
                    f"{self.jupiter_base_url}/swap",
                    json={
                        "quoteResponse": quote,
                        "userPublicKey": self.wallet_address,
                        "wrapAndUnwrapSol": True,
                        "dynamicComputeUnitLimit": True,
                        "prioritizationFeeLamports": self.priority_fee_lamports,
                    },
                )
                if swap_resp.status_code != 200:
                    return TxResult(success=False, error=f"Jupiter swap failed: {swap_resp.status_code}")
                swap_tx = swap_resp.json().get("swapTransaction")
            if not swap_tx:
                return TxResult(success=False, error="Jupiter returned no swap transaction")

            unsigned = VersionedTransaction.from_bytes(base64.b64decode(swap_tx))
            signed = VersionedTransaction(unsigned.message, [self.keypair])

            rpc = await self._ensure_clients()
            send_resp = await rpc.send_raw_transaction(
                bytes(signed), opts=TxOpts(skip_preflight=False, preflight_commitment=Confirmed)
            )
            signature = str(send_resp.value)
            logger.info(f"[executor] Buy sent: {amount_sol:.4f} SOL, sig={signature}")

            error = await self._wait_for_confirmation(signature)
            if error:
                return TxResult(success=False, signature=signature, error=error)

            quoted = int(int(quote.get("outAmount", 0)) / 10 ** self.token_decimals)
            tokens_after = await self._read_token_balance()
            if tokens_before is None or tokens_after is None:
                received = quoted
            else:
                received = int(tokens_after - tokens_before)
                if received <= 0:
                    # RPC balance can lag confirmation
                    received = quoted
            logger.info(f"[executor] Buy confirmed: {received:,} tokens")
            return TxResult(success=True, signature=signature, tokens_received=received)
        except Exception as e:
            logger.error(f"[executor] Buy failed: {e}")
            return TxResult(success=False, error=str(e))

    async def burn(self, token_amount: int) -> TxResult:
        """Burn `token_amount` tokens from the wallet's token account, reducing supply."""
        if token_amount <= 0:
            return TxResult(success=False, error="Nothing to burn")
        try:
            owner = self.keypair.pubkey()
            ix = burn(BurnParams(
                program_id=TOKEN_PROGRAM_ID,
                account=get_associated_token_address(owner, self.mint),
                mint=self.mint,
                owner=owner,
                amount=self._raw_amount(token_amount),
            ))
            return await self._send_instructions([ix], label=f"Burn {token_amount:,} tokens")
        except Exception as e:
            logger.error(f"[executor] Burn failed: {e}")
            return TxResult(success=False, error=str(e))

    async def lock(self, token_amount: int) -> TxResult:
        """Transfer `token_amount` tokens to the incinerator's token account."""
        if token_amount <= 0:
            return TxResult(success=False, error="Nothing to lock")
        try:
            owner = self.keypair.pubkey()
            incinerator = Pubkey.from_string(INCINERATOR_ADDRESS)
            dest = get_associated_token_address(incinerator, self.mint)
            instructions = [
                create_idempotent_associated_token_account(payer=owner, owner=incinerator, mint=self.mint),
                transfer_checked(TransferCheckedParams(
                    program_id=TOKEN_PROGRAM_ID,
                    source=get_associated_token_address(owner, self.mint),
                    mint=self.mint,
                    dest=dest,
                    owner=owner,
                    amount=self._raw_amount(token_amount),
                    decimals=self.token_decimals,
                )),
            ]
            return await self._send_instructions(instructions, label=f"Lock {token_amount:,} tokens")
        except Exception as e:
            logger.error(f"[executor] Lock failed: {e}")
            return TxResult(success=False, error=str(e))

    async def sell(self, token_amount: int = 0) -> TxResult:
        logger.warning(f"[executor] Sell of {token_amount:,} tokens refused: {SELL_BLOCKED_REASON}")
        return TxResult(success=False, error=SELL_BLOCKED_REASON, blocked=True)

    # ------------------------------------------------------------------
    # Transaction helpers
    # ------------------------------------------------------------------

    def _raw_amount(self, token_amount: int) -> int:
        return int(token_amount) * 10 ** self.token_decimals

    async def _send_instructions(self, instructions: list, label: str) -> TxResult:
        rpc = await self._ensure_clients()
        blockhash = (await rpc.get_latest_blockhash()).value.blockhash
        message = MessageV0.try_compile(
            payer=self.keypair.pubkey(),
            instructions=instructions,
            address_lookup_table_accounts=[],
            recent_blockhash=blockhash,
        )
        tx = VersionedTransaction(message, [self.keypair])
        send_resp = await rpc.send_transaction(
            tx, opts=TxOpts(skip_preflight=False, preflight_commitment=Confirmed)
        )
        signature = str(send_resp.value)
        logger.info(f"[executor] {label} sent, sig={signature}")

        error = await self._wait_for_confirmation(signature)
        if error:
            return TxResult(success=False, signature=signature, error=error)
        logger.info(f"[executor] {label} confirmed")
        return TxResult(success=True, signature=signature)

    async def _wait_for_confirmation(self, signature: str) -> str | None:
        """Poll until confirmed. Returns an error string, or None once confirmed."""
        rpc = await self._ensure_clients()
        sig = Signature.from_string(signature)
        start = time.monotonic()
        while time.monotonic() - start < self.confirm_timeout:
            resp = await rpc.get_signature_statuses([sig])
            status = resp.value[0] if resp.value else None
            if status is not None:
                if status.err:
                    return f"Transaction failed on-chain: {status.err}"
                if status.confirmation_status in (
                    TransactionConfirmationStatus.Confirmed,
                    TransactionConfirmationStatus.Finalized,
                ):
                    return None
            await asyncio.sleep(1.0)
        return f"Confirmation timeout after {self.confirm_timeout:g}s"


class DryRunExecutor:
    """Reads balances through a real client but never sends a transaction."""

    def __init__(self, inner: Executor | None = None, balance: WalletBalance | None = None):
        self.inner = inner
        self.balance = balance

    async def get_balance(self) -> WalletBalance | None:
        if self.inner is not None:
            return await self.inner.get_balance()
        return self.balance

    async def buy(self, amount_sol: float) -> TxResult:
        logger.info(f"[executor] DRY RUN buy {amount_sol:.4f} SOL")
        return TxResult(success=True, signature="dry-run", dry_run=True)

    async def burn(self, token_amount: int) -> TxResult:
        logger.info(f"[executor] DRY RUN burn {token_amount:,} tokens")
        return TxResult(success=True, signature="dry-run", dry_run=True)

    async def lock(self, token_amount: int) -> TxResult:
        logger.info(f"[executor] DRY RUN lock {token_amount:,} tokens")
        return TxResult(success=True, signature="dry-run", dry_run=True)

    async def sell(self, token_amount: int = 0) -> TxResult:
        return TxResult(success=False, error=SELL_BLOCKED_REASON, blocked=True, dry_run=True)

    async def close(self):
        if self.inner is not None and hasattr(self.inner, "close"):
            await self.inner.close()
