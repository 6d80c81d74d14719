"""
Solana RPC gateway.

Thin wrapper over solana-py's AsyncClient for the calls the engine makes:
broadcast, signature status polling, blockhash, token balances and recent
prioritization fees. RPC rejections are translated into TradeError
subclasses so the tier ladder can decide whether to retry.

Usage:
    rpc = SolanaRpc("https://api.mainnet-beta.solana.com")
    signature = await rpc.send_raw_transaction(raw)
    await rpc.confirm_signature(signature, timeout=30)
"""
import asyncio
import logging
import time
from typing import Callable, List, Optional, Tuple

import aiohttp
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException
from solana.rpc.types import TokenAccountOpts, TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature

from ..core.errors import (
    ConfirmationTimeoutError, InsufficientBalanceError, SimulationError,
    TradeError, TransactionFailedError, classify_trade_error, is_simulation_failure,
)
from ..core.http import HttpClient
from ..models import TokenBalance, lamports_to_sol

logger = logging.getLogger(__name__)

LANDED_STATUSES = ("confirmed", "finalized")


def _status_name(status) -> str:
    """Normalise solders TransactionConfirmationStatus (or a plain str) to 'confirmed' etc."""
    if status is None:
        return ""
    return str(status).split(".")[-1].lower()


def translate_rpc_error(error: Exception) -> TradeError:
    """Map an RPC rejection onto the engine's error hierarchy."""
    message = str(error)
    category = classify_trade_error(message)
    if category.message == "Insufficient balance":
        return InsufficientBalanceError(message)
    if is_simulation_failure(message):
        return SimulationError(message)
    return TransactionFailedError(message, retryable=category.is_retryable)


class SolanaRpc(HttpClient):
    """One RPC endpoint (primary or fallback)."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        client: Optional[AsyncClient] = None,
        session: Optional[aiohttp.ClientSession] = None,
        sleep: Callable[[float], object] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(timeout=timeout, session=session)
        self.url = url
        self.client = client or AsyncClient(url, commitment=Confirmed, timeout=timeout)
        self._sleep = sleep
        self._clock = clock

    async def close(self):
        await self.client.close()
        await super().close()

    async def send_raw_transaction(self, raw: bytes) -> str:
        """Broadcast with preflight. Retries are owned by the caller's backoff policy."""
        opts = TxOpts(skip_preflight=False, max_retries=0, preflight_commitment=Confirmed)
        try:
            resp = await self.client.send_raw_transaction(raw, opts=opts)
        except RPCException as e:
            raise translate_rpc_error(e) from e
        except SolanaRpcException as e:
            raise TransactionFailedError(f"RPC unavailable: {e}") from e
        return str(resp.value)

    async def get_signature_status(self, signature: str) -> Optional[str]:
        """
        Confirmation status of a signature ('processed', 'confirmed', 'finalized').

        Returns None while the signature is unknown. Raises
        TransactionFailedError if the transaction landed with an error.
        """
        resp = await self.client.get_signature_statuses([Signature.from_string(signature)])
        value = resp.value[0] if resp.value else None
        if value is None:
            return None
        if value.err:
            raise TransactionFailedError(f"Transaction failed: {value.err}")
        return _status_name(value.confirmation_status)

    async def is_confirmed(self, signature: str) -> bool:
        try:
            return await self.get_signature_status(signature) in LANDED_STATUSES
        except (TransactionFailedError, SolanaRpcException) as e:
            logger.debug(f"Status check for {signature[:16]}... failed: {e}")
            return False

    async def confirm_signature(
        self,
        signature: str,
        timeout: float = 30.0,
        poll_interval: float = 1.0,
    ):
        """Poll until confirmed/finalized. Raises on on-chain failure or timeout."""
        deadline = self._clock() + timeout
        while self._clock() < deadline:
            try:
                status = await self.get_signature_status(signature)
            except SolanaRpcException as e:
                logger.debug(f"Status check failed: {e}")
                status = None
            if status in LANDED_STATUSES:
                logger.info(f"Transaction {signature[:16]}... {status}")
                return
            await self._sleep(poll_interval)

        raise ConfirmationTimeoutError(
            f"Transaction {signature[:16]}... not confirmed after {timeout:.0f}s"
        )

    async def get_latest_blockhash(self) -> Tuple[Hash, int]:
        resp = await self.client.get_latest_blockhash(Confirmed)
        return resp.value.blockhash, resp.value.last_valid_block_height

    async def get_sol_balance(self, owner: str) -> float:
        resp = await self.client.get_balance(Pubkey.from_string(owner))
        return lamports_to_sol(resp.value)

    async def get_token_balance(self, owner: str, mint: str) -> Optional[TokenBalance]:
        """
        Sum of the owner's token accounts for a mint.

        None when the owner holds no account for the mint.
        """
        resp = await self.client.get_token_accounts_by_owner_json_parsed(
            Pubkey.from_string(owner),
            TokenAccountOpts(mint=Pubkey.from_string(mint)),
        )
        if not resp.value:
            return None

        raw_total = 0
        decimals = 0
        for account in resp.value:
            token_amount = account.account.data.parsed['info']['tokenAmount']
            raw_total += int(token_amount['amount'])
            decimals = int(token_amount['decimals'])

        return TokenBalance(
            mint=mint,
            amount=raw_total / (10 ** decimals),
            raw_amount=raw_total,
            decimals=decimals,
        )

    async def get_recent_prioritization_fees(self, account_keys: Optional[List[str]] = None) -> List[int]:
        """Per-slot prioritization fees (micro-lamports per CU) from recent blocks."""
        params = [account_keys] if account_keys else []
        data = await self._json_rpc(self.url, "getRecentPrioritizationFees", params)
        if 'error' in data:
            raise TradeError(f"getRecentPrioritizationFees failed: {data['error']}")
        return [int(entry.get('prioritizationFee', 0)) for entry in data.get('result') or []]
