"""
Execution Tier Coordinator
==========================

Submits a prepared trade through an ordered ladder of paths:

    primary_rpc  ->  jito (private bundle)  ->  fallback_rpc

Tiers run strictly one after another, never raced. Each tier owns its retry
policy; once its attempts are used up the next tier starts. A non-retryable
error (no route, insufficient balance) ends the ladder immediately.

The coordinator knows nothing about why a trade is made; the router and the
order monitor use it the same way.

Usage:
    coordinator = ExecutionTierCoordinator([primary, jito, fallback])
    result = await coordinator.execute(quote, preparer, signer)
"""
import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Protocol

from ..core.backoff import BackoffPolicy
from ..core.errors import (
    BundleRejectedError, SimulationError, TransactionFailedError, classify_trade_error,
    is_retryable, is_simulation_failure,
)
from ..interfaces import Signer
from ..models import ExecutionResult, PreparedTrade, Quote
from .jito import JitoBundleClient, calculate_recommended_tip, competitive_tip
from .rpc import SolanaRpc

logger = logging.getLogger(__name__)


class Prepare(Protocol):
    """Builds freshly signed material per call; `invalidate` forces a re-quote next time."""

    async def __call__(self) -> PreparedTrade: ...

    def invalidate(self) -> None: ...


@dataclass
class TierOutcome:
    """A landed submission."""
    tier: str
    signature: str
    prepared: PreparedTrade
    bundle_id: Optional[str] = None
    output_amount: Optional[int] = None      # Observed output, when the tier can measure it


class SubmissionTier(Protocol):
    name: str
    private: bool

    async def submit(self, prepare: Prepare, signer: Signer, tip_lamports: Optional[int] = None) -> TierOutcome: ...


class RpcSubmissionTier:
    """Direct broadcast to one RPC node, confirmed by signature polling."""

    private = False

    def __init__(
        self,
        name: str,
        rpc: SolanaRpc,
        backoff: Optional[BackoffPolicy] = None,
        confirm_timeout: float = 30.0,
        poll_interval: float = 1.0,
    ):
        self.name = name
        self.rpc = rpc
        self.backoff = backoff or BackoffPolicy(max_attempts=2, base_delay=1.0)
        self.confirm_timeout = confirm_timeout
        self.poll_interval = poll_interval

    async def submit(self, prepare: Prepare, signer: Signer, tip_lamports: Optional[int] = None) -> TierOutcome:
        async def attempt(n: int) -> TierOutcome:
            prepared = await prepare()
            try:
                signature = await self.rpc.send_raw_transaction(prepared.signed.raw)
            except SimulationError:
                prepare.invalidate()
                raise
            logger.info(f"[{self.name}] Sent {signature[:16]}... (attempt {n + 1})")
            await self.rpc.confirm_signature(signature, self.confirm_timeout, self.poll_interval)
            return TierOutcome(tier=self.name, signature=signature, prepared=prepared)

        return await self.backoff.run(attempt, label=self.name)


class BundleSubmissionTier:
    """Private submission through the Jito relay."""

    name = "jito"
    private = True

    def __init__(self, relay: JitoBundleClient):
        self.relay = relay

    async def submit(self, prepare: Prepare, signer: Signer, tip_lamports: Optional[int] = None) -> TierOutcome:
        prepared = await prepare()
        tip = tip_lamports or calculate_recommended_tip(prepared.quote.notional_sol)
        tip = competitive_tip(tip, await self.relay.get_tip_floor())

        result = await self.relay.send_transaction(prepared.signed, signer, tip_lamports=tip)
        if not result.success:
            if is_simulation_failure(result.error):
                prepare.invalidate()
                raise SimulationError(result.error)
            if result.bundle_id:
                raise TransactionFailedError(result.error or "Bundle did not land")
            raise BundleRejectedError(result.error or "Bundle rejected")

        return TierOutcome(
            tier=self.name,
            signature=result.signature or prepared.signed.signature,
            prepared=prepared,
            bundle_id=result.bundle_id,
        )


class ExecutionTierCoordinator:
    """Runs submission tiers in order until one lands."""

    def __init__(self, tiers: List[SubmissionTier]):
        if not tiers:
            raise ValueError("At least one submission tier is required")
        self.tiers = tiers

    @property
    def tier_names(self) -> List[str]:
        return [t.name for t in self.tiers]

    async def execute(
        self,
        quote: Quote,
        prepare: Prepare,
        signer: Signer,
        use_jito: bool = True,
        tip_lamports: Optional[int] = None,
    ) -> ExecutionResult:
        """
        Submit through the tier ladder.

        Args:
            quote: Quote the trade was requested with (reported on failure)
            prepare: Returns freshly built, signed material on each call
            signer: Trade signer (also pays bundle tips)
            use_jito: Skip private tiers when False
            tip_lamports: Bundle tip override

        Returns:
            ExecutionResult, never raises
        """
        start = time.time()
        last_error = "no tier attempted"

        for tier in self.tiers:
            if tier.private and not use_jito:
                continue

            logger.info(f"Submitting via {tier.name}")
            try:
                outcome = await tier.submit(prepare, signer, tip_lamports=tip_lamports)
            except Exception as e:
                last_error = str(e) or e.__class__.__name__
                if not is_retryable(e):
                    category = classify_trade_error(last_error)
                    logger.warning(f"[{tier.name}] Non-retryable failure: {last_error}")
                    result = ExecutionResult.failure(
                        last_error,
                        quote=quote,
                        tier=tier.name,
                        category=category.message,
                    )
                    result.latency_ms = (time.time() - start) * 1000
                    return result
                logger.warning(f"[{tier.name}] Exhausted: {last_error}")
                continue

            result = self._result_from_outcome(outcome)
            result.latency_ms = (time.time() - start) * 1000
            return result

        result = ExecutionResult.failure(
            f"All execution tiers failed: {last_error}",
            quote=quote,
            category=classify_trade_error(last_error).message,
        )
        result.latency_ms = (time.time() - start) * 1000
        return result

    @staticmethod
    def _result_from_outcome(outcome: TierOutcome) -> ExecutionResult:
        quote = outcome.prepared.quote
        output = quote.out_amount if outcome.output_amount is None else outcome.output_amount

        result = ExecutionResult(
            success=True,
            venue=quote.venue,
            signature=outcome.signature,
            input_amount=quote.in_amount,
            output_amount=output,
            min_output_amount=quote.min_out_amount,
            price_impact=quote.price_impact_pct,
            tier=outcome.tier,
            bundle_id=outcome.bundle_id,
        )

        # A fill below the slippage floor is never reported as success
        if output < quote.min_out_amount:
            result.success = False
            result.error = f"Output {output} below minimum {quote.min_out_amount}"
            result.error_category = "Price moved too much"
            logger.error(f"[{outcome.tier}] {result.error} ({outcome.signature[:16]}...)")
        else:
            logger.info(f"[{outcome.tier}] Landed {outcome.signature[:16]}...")
        return result
