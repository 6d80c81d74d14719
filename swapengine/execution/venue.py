"""
Venue capability shared by the Jupiter and PumpPortal clients.

A venue quotes, builds an unsigned transaction, and executes through the
tier coordinator. `TradePreparer` is the closure each tier calls to get a
fresh signed transaction: it re-quotes when the quote has gone stale or the
previous build failed simulation.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from solders.transaction import VersionedTransaction

from ..core.errors import SimulationError, TradeError, classify_trade_error
from ..interfaces import Signer
from ..models import (
    ExecutionResult, PreparedTrade, Quote, SignedTransaction, SwapMaterial, VenueKind,
)
from .jito import calculate_turbo_tip

logger = logging.getLogger(__name__)

# Urgency at which bundle tips switch to the turbo schedule
TURBO_URGENCY = 9


@dataclass
class TradeOptions:
    """Per-trade overrides. Unset fields fall back to engine defaults."""
    slippage_bps: Optional[int] = None
    priority_fee: Optional[int] = None       # micro-lamports per CU
    urgency: Optional[int] = None            # 1-10, drives the dynamic fee
    force_venue: Optional[VenueKind] = None
    use_jito: Optional[bool] = None
    tip_lamports: Optional[int] = None


class SwapVenue(Protocol):
    kind: VenueKind

    async def quote(
        self, input_mint: str, output_mint: str, amount: int, slippage_bps: int,
        decimals: Optional[int] = None,
    ) -> Quote: ...

    async def build(self, quote: Quote, signer_public_key: str, fee_hint: int) -> SwapMaterial: ...

    async def execute(self, quote: Quote, signer: Signer, opts: TradeOptions) -> ExecutionResult: ...

    async def buy(self, token: str, sol_amount: float, signer: Signer, opts: TradeOptions) -> ExecutionResult: ...

    async def sell(
        self, token: str, amount: float, decimals: int, signer: Signer, opts: TradeOptions,
    ) -> ExecutionResult: ...


def sign_material(material: SwapMaterial, signer: Signer) -> SignedTransaction:
    """Sign a venue-built VersionedTransaction with the trade signer."""
    try:
        unsigned = VersionedTransaction.from_bytes(material.payload)
    except Exception as e:
        raise SimulationError(f"{material.venue.value} returned an undecodable transaction: {e}") from e

    signed = VersionedTransaction(unsigned.message, [signer.keypair])
    return SignedTransaction(
        raw=bytes(signed),
        signature=str(signed.signatures[0]),
        last_valid_block_height=material.last_valid_block_height,
    )


class TradePreparer:
    """
    Callable handed to the tier coordinator.

    Each call returns freshly built and signed material. The quote is
    refreshed when older than `max_quote_age` or after a simulation failure.
    """

    def __init__(
        self,
        venue: SwapVenue,
        quote: Quote,
        signer: Signer,
        fee_hint: int,
        max_quote_age: float = 5.0,
    ):
        self.venue = venue
        self.quote = quote
        self.signer = signer
        self.fee_hint = fee_hint
        self.max_quote_age = max_quote_age
        self._requote = False
        self.requotes = 0

    async def __call__(self) -> PreparedTrade:
        stale = self._requote or self.quote.age() > self.max_quote_age
        # Percentage sells carry no amount and resolve it at build time
        if stale and self.quote.in_amount > 0:
            q = self.quote
            logger.info(f"Re-quoting {q.venue.value} {q.input_mint[:8]}... -> {q.output_mint[:8]}...")
            self.quote = await self.venue.quote(
                q.input_mint, q.output_mint, q.in_amount, q.slippage_bps, decimals=q.token_decimals,
            )
            self.requotes += 1
            self._requote = False

        try:
            material = await self.venue.build(self.quote, self.signer.public_key, self.fee_hint)
        except SimulationError:
            self._requote = True
            raise

        return PreparedTrade(quote=self.quote, signed=sign_material(material, self.signer))

    def invalidate(self):
        """Force a re-quote on the next call, e.g. after a rejected pre-flight."""
        self._requote = True


async def execute_with_tiers(
    venue: SwapVenue,
    coordinator,
    quote: Quote,
    signer: Signer,
    opts: TradeOptions,
    default_priority_fee: int,
    max_quote_age: float,
) -> ExecutionResult:
    """Hand a quote to the tier coordinator with a re-quoting preparer."""
    fee = opts.priority_fee if opts.priority_fee is not None else default_priority_fee
    preparer = TradePreparer(venue, quote, signer, fee, max_quote_age)
    tip = opts.tip_lamports
    if tip is None and (opts.urgency or 0) >= TURBO_URGENCY:
        tip = calculate_turbo_tip(quote.notional_sol)
    return await coordinator.execute(
        quote,
        preparer,
        signer,
        use_jito=True if opts.use_jito is None else opts.use_jito,
        tip_lamports=tip,
    )


async def quote_and_execute(
    venue: SwapVenue,
    input_mint: str,
    output_mint: str,
    amount: int,
    slippage_bps: int,
    signer: Signer,
    opts: TradeOptions,
    decimals: Optional[int] = None,
) -> ExecutionResult:
    """Quote then execute; quote failures come back as a failed result."""
    try:
        quote = await venue.quote(input_mint, output_mint, amount, slippage_bps, decimals=decimals)
    except TradeError as e:
        category = classify_trade_error(str(e))
        logger.warning(f"{venue.kind.value} quote failed: {e}")
        return ExecutionResult.failure(str(e), venue=venue.kind, category=category.message)
    return await venue.execute(quote, signer, opts)
