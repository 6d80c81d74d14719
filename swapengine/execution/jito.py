"""
Jito Bundle Relay
=================

Private submission through Jito block engines. A bundle is the signed swap
transaction plus a tip transfer to one of the public tip accounts; it stays
out of the public mempool until a leader includes it.

Submission fans out to every block engine at once and acts on the first
success in endpoint order. All requests are awaited so none are left
dangling.

Usage:
    relay = JitoBundleClient(rpc)
    result = await relay.send_transaction(signed, signer, tip_lamports=5_000_000)
    if result.landed:
        print(result.signature)
"""
import asyncio
import logging
import math
import random
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

import aiohttp
import base58
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

from ..core.backoff import BackoffPolicy
from ..core.config import ENDPOINTS, JITO_ENDPOINTS, LAMPORTS_PER_SOL
from ..core.errors import BundleRejectedError
from ..core.http import HttpClient
from ..interfaces import Signer
from ..models import SignedTransaction
from .rpc import SolanaRpc

logger = logging.getLogger(__name__)

# Tip accounts (one picked at random per bundle)
JITO_TIP_ACCOUNTS = [
    '96gYZGLnJYVFmbjzopPSU6QiEV5fGqZNyN9nmNhvrZU5',
    'HFqU5x63VTqvQss8hp11i4wVV8bD44PvwucfZ2bU7gRe',
    'Cw8CFyM9FkoMi7K7Crf6HNQqf4uEMzpKw6QNghXLvLkY',
    'ADaUMid9yfUytqMBgopwjb2DTLSokTSzL1zt6iGPaS49',
    'DfXygSm4jCyNCybVYYK6DwvWqjKee8pbDmJGcLWNDXjh',
    'ADuUkR4vqLUMWXxW9gh6D6L8pMSawimctcNZ5pGwDcEt',
    'DttWaMuVvTiduZRnguLF7jNxTgiMBZ1hyAumKUiL2KRL',
    '3AVi9Tg9Uo68tJfuvoKvqKNWKkC5wPdSSdeBnizKZ6jT',
]

DEFAULT_TIP_LAMPORTS = 5_000_000      # 0.005 SOL
DEFAULT_TIP_FLOOR = 10_000

# Rate limited / invalid params: move to the next block engine
ROTATE_ERROR_CODES = (-32097, -32602)

BUNDLE_PATH = "/api/v1/bundles"


def calculate_recommended_tip(trade_value_sol: float) -> int:
    """Tip in lamports scaled to trade value."""
    if trade_value_sol < 0.1:
        return 3_000_000
    if trade_value_sol < 0.5:
        return 5_000_000
    if trade_value_sol < 1:
        return 7_500_000
    if trade_value_sol < 5:
        return 10_000_000
    return 15_000_000


def calculate_turbo_tip(trade_value_sol: float) -> int:
    """Aggressive tip for time-critical trades."""
    if trade_value_sol < 0.5:
        return 10_000_000
    if trade_value_sol < 1:
        return 20_000_000
    if trade_value_sol < 5:
        return 30_000_000
    return 50_000_000


def competitive_tip(tip_lamports: int, tip_floor: int) -> int:
    """The network tip floor may raise a tip, never lower it."""
    return max(tip_lamports, tip_floor)


@dataclass
class BundleResult:
    success: bool
    bundle_id: Optional[str] = None
    signature: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[int] = None
    landed: bool = False
    endpoint: Optional[str] = None


@dataclass(frozen=True)
class BundleStatus:
    landed: bool
    status: str


class JitoBundleClient(HttpClient):
    """Bundle submission and landing checks across Jito block engines."""

    def __init__(
        self,
        rpc: SolanaRpc,
        endpoints: Optional[List[str]] = None,
        preferred_endpoint: Optional[str] = None,
        tip_lamports: int = DEFAULT_TIP_LAMPORTS,
        backoff: Optional[BackoffPolicy] = None,
        request_timeout: float = 3.0,
        landing_timeout: float = 8.0,
        poll_interval: float = 1.0,
        parallel: bool = True,
        session: Optional[aiohttp.ClientSession] = None,
        sleep: Callable[[float], object] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(timeout=request_timeout, session=session)
        self.rpc = rpc
        self.endpoints = list(endpoints or JITO_ENDPOINTS.values())
        if not self.endpoints:
            raise ValueError("At least one block engine endpoint is required")

        # Preferred endpoint first for sequential mode
        if preferred_endpoint:
            preferred = JITO_ENDPOINTS.get(preferred_endpoint, preferred_endpoint)
            self.endpoints = [preferred] + [e for e in self.endpoints if e != preferred]

        self.tip_lamports = tip_lamports
        self.backoff = backoff or BackoffPolicy(max_attempts=2, base_delay=0.3, sleep=sleep)
        self.landing_timeout = landing_timeout
        self.poll_interval = poll_interval
        self.parallel = parallel
        self._current = 0
        self._sleep = sleep
        self._clock = clock

    @property
    def current_endpoint(self) -> str:
        return self.endpoints[self._current]

    def rotate_endpoint(self):
        self._current = (self._current + 1) % len(self.endpoints)
        logger.info(f"[Jito] Rotating to endpoint: {self.current_endpoint}")

    async def create_tip_transaction(self, signer: Signer, tip_lamports: Optional[int] = None) -> bytes:
        """Signed SOL transfer to a random tip account, on a fresh blockhash."""
        tip = tip_lamports if tip_lamports is not None else self.tip_lamports
        tip_account = Pubkey.from_string(random.choice(JITO_TIP_ACCOUNTS))
        blockhash, _ = await self.rpc.get_latest_blockhash()

        ix = transfer(TransferParams(from_pubkey=signer.pubkey, to_pubkey=tip_account, lamports=tip))
        tx = Transaction.new_signed_with_payer(
            [ix],
            payer=signer.pubkey,
            signing_keypairs=[signer.keypair],
            recent_blockhash=blockhash,
        )
        return bytes(tx)

    async def _send_bundle_to_endpoint(self, endpoint: str, encoded: List[str]) -> BundleResult:
        """POST sendBundle to one block engine. Failures come back as results."""
        try:
            session = await self._get_session()
            payload = {"jsonrpc": "2.0", "id": 1, "method": "sendBundle", "params": [encoded]}
            async with session.post(
                f"{endpoint}{BUNDLE_PATH}",
                json=payload,
                timeout=self._timeout(),
            ) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    return BundleResult(
                        success=False,
                        error=f"Jito bundle submission failed: {text}",
                        endpoint=endpoint,
                    )
                data = await resp.json(content_type=None)
        except asyncio.TimeoutError:
            return BundleResult(success=False, error="Timeout", endpoint=endpoint)
        except aiohttp.ClientError as e:
            return BundleResult(success=False, error=str(e), endpoint=endpoint)

        error = data.get('error')
        if error:
            return BundleResult(
                success=False,
                error=error.get('message') or str(error),
                error_code=error.get('code'),
                endpoint=endpoint,
            )
        return BundleResult(success=True, bundle_id=data.get('result'), endpoint=endpoint)

    async def send_bundle_parallel(self, transactions: List[bytes]) -> BundleResult:
        """Send to every endpoint concurrently; first success in endpoint order wins."""
        encoded = [base58.b58encode(tx).decode() for tx in transactions]
        logger.info(f"[Jito] Sending bundle to {len(self.endpoints)} endpoints in parallel...")

        results = await asyncio.gather(
            *(self._send_bundle_to_endpoint(e, encoded) for e in self.endpoints),
            return_exceptions=True,
        )

        errors = []
        for endpoint, result in zip(self.endpoints, results):
            if isinstance(result, BaseException):
                errors.append(f"{endpoint}: {result}")
                continue
            if result.success:
                logger.info(f"[Jito] Bundle accepted by {endpoint}")
                return result
            errors.append(f"{endpoint}: {result.error}")

        message = f"All Jito endpoints failed: {'; '.join(errors)}"
        logger.warning(f"[Jito] {message}")
        return BundleResult(success=False, error=message)

    async def send_bundle(self, transactions: List[bytes], parallel: Optional[bool] = None) -> BundleResult:
        """Submit a bundle (max 5 transactions)."""
        if not transactions:
            return BundleResult(success=False, error="Empty bundle")
        if len(transactions) > 5:
            return BundleResult(success=False, error="Maximum 5 transactions per bundle")

        if self.parallel if parallel is None else parallel:
            return await self.send_bundle_parallel(transactions)

        encoded = [base58.b58encode(tx).decode() for tx in transactions]
        result = await self._send_bundle_to_endpoint(self.current_endpoint, encoded)
        if not result.success and (result.error_code is None or result.error_code in ROTATE_ERROR_CODES):
            self.rotate_endpoint()
        return result

    async def get_bundle_status(self, bundle_id: str, endpoint: Optional[str] = None) -> BundleStatus:
        """Landing status from getBundleStatuses, asked of `endpoint` or the current one."""
        try:
            data = await self._json_rpc(
                f"{endpoint or self.current_endpoint}{BUNDLE_PATH}",
                "getBundleStatuses",
                [[bundle_id]],
            )
        except (asyncio.TimeoutError, aiohttp.ClientError, ValueError) as e:
            logger.debug(f"[Jito] Bundle status check failed: {e}")
            return BundleStatus(landed=False, status="unknown")

        values = (data.get('result') or {}).get('value') or []
        if data.get('error') or not values or not values[0]:
            return BundleStatus(landed=False, status="not_found")

        status = values[0].get('confirmation_status') or "pending"
        return BundleStatus(landed=status in ("confirmed", "finalized"), status=status)

    async def send_transaction(
        self,
        signed: SignedTransaction,
        signer: Signer,
        tip_lamports: Optional[int] = None,
        wait_for_confirmation: bool = True,
    ) -> BundleResult:
        """
        Bundle a signed transaction with a tip and wait for it to land.

        Rejected bundles are retried under the backoff policy with a fresh
        tip transaction each attempt. After the landing timeout the swap
        signature is checked directly before giving up.
        """
        tip = tip_lamports if tip_lamports is not None else self.tip_lamports

        async def attempt(n: int) -> BundleResult:
            tip_tx = await self.create_tip_transaction(signer, tip)
            result = await self.send_bundle([signed.raw, tip_tx])
            if not result.success:
                raise BundleRejectedError(result.error or "Bundle rejected")
            return result

        try:
            accepted = await self.backoff.run(attempt, label="jito bundle")
        except BundleRejectedError as e:
            return BundleResult(success=False, error=str(e))

        accepted.signature = signed.signature
        if not wait_for_confirmation or not accepted.bundle_id:
            return accepted

        logger.info(f"[Jito] Bundle {accepted.bundle_id[:16]}... submitted, tip {tip} lamports")
        deadline = self._clock() + self.landing_timeout
        while self._clock() < deadline:
            # Only the accepting block engine knows the bundle
            status = await self.get_bundle_status(accepted.bundle_id, endpoint=accepted.endpoint)
            if status.landed:
                accepted.landed = True
                return accepted
            if status.status == "failed":
                return BundleResult(
                    success=False,
                    bundle_id=accepted.bundle_id,
                    signature=signed.signature,
                    error="Bundle failed to land",
                )
            await self._sleep(self.poll_interval)

        # Bundle status can lag; the swap signature is authoritative
        if await self.rpc.is_confirmed(signed.signature):
            accepted.landed = True
            return accepted

        return BundleResult(
            success=False,
            bundle_id=accepted.bundle_id,
            signature=signed.signature,
            error="Bundle confirmation timeout",
        )

    async def get_tip_floor(self) -> int:
        """Median landed tip (lamports) from the public tip-floor API."""
        try:
            session = await self._get_session()
            async with session.get(ENDPOINTS['JITO_TIP_FLOOR'], timeout=self._timeout()) as resp:
                if resp.status != 200:
                    return DEFAULT_TIP_FLOOR
                data = await resp.json(content_type=None)
        except (asyncio.TimeoutError, aiohttp.ClientError, ValueError) as e:
            logger.debug(f"[Jito] Tip floor lookup failed: {e}")
            return DEFAULT_TIP_FLOOR

        median = (data[0] if data else {}).get('landed_tips_50th_percentile') or 0
        return math.ceil(median * LAMPORTS_PER_SOL) or DEFAULT_TIP_FLOOR
