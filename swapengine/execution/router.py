"""
DEX Router
==========

Sends each trade to the right venue:
- pump.fun tokens still on the bonding curve -> PumpPortal
- everything else (and any metadata failure) -> Jupiter

`prefer_pumpportal` routes graduated pump.fun tokens to PumpPortal too.
When the caller gives no priority fee, one is derived from the fee
estimator using trade value and urgency.

Usage:
    router = DexRouter({VenueKind.JUPITER: jupiter, VenueKind.PUMPFUN: pump}, token_info, fees)
    result = await router.buy(mint, 0.25, signer)
    result = await router.sell(mint, 1_000_000, 6, signer, TradeOptions(urgency=9))
"""
import logging
from dataclasses import replace
from typing import Dict, Optional

from ..core.config import SOL_MINT
from ..interfaces import Signer, TokenInfoProvider
from ..models import ExecutionResult, Quote, TokenInfo, TradeSide, VenueKind, sol_to_lamports
from .priority_fee import PriorityFeeEstimator
from .venue import SwapVenue, TradeOptions

logger = logging.getLogger(__name__)


class DexRouter:
    """Venue selection plus fee defaults. Holds no state beyond shared caches."""

    def __init__(
        self,
        venues: Dict[VenueKind, SwapVenue],
        token_info: TokenInfoProvider,
        fee_estimator: Optional[PriorityFeeEstimator] = None,
        default_slippage_bps: int = 500,
        default_priority_fee: int = 100_000,
        prefer_pumpportal: bool = False,
        default_urgency: int = 5,
    ):
        if VenueKind.JUPITER not in venues:
            raise ValueError("Router requires the Jupiter venue as default route")
        self.venues = venues
        self.token_info = token_info
        self.fee_estimator = fee_estimator
        self.default_slippage_bps = default_slippage_bps
        self.default_priority_fee = default_priority_fee
        self.prefer_pumpportal = prefer_pumpportal
        self.default_urgency = default_urgency

    @staticmethod
    def venue_for(info: Optional[TokenInfo], prefer_pumpportal: bool = False) -> VenueKind:
        if info is not None and info.is_pump_fun and (info.on_bonding_curve or prefer_pumpportal):
            return VenueKind.PUMPFUN
        return VenueKind.JUPITER

    async def _lookup(self, token: str) -> Optional[TokenInfo]:
        try:
            return await self.token_info.get_token_info(token)
        except Exception as e:
            logger.warning(f"Token info lookup failed for {token[:8]}...: {e}")
            return None

    async def select_venue(self, token: str) -> VenueKind:
        """Venue for a token; Jupiter when metadata is unavailable."""
        info = await self._lookup(token)
        return self._select(info)

    def _select(self, info: Optional[TokenInfo], force: Optional[VenueKind] = None) -> VenueKind:
        kind = force or self.venue_for(info, self.prefer_pumpportal)
        if kind not in self.venues:
            logger.warning(f"Venue {kind.value} not configured, using jupiter")
            return VenueKind.JUPITER
        return kind

    async def _resolve_options(self, opts: Optional[TradeOptions], value_sol: float) -> TradeOptions:
        opts = opts or TradeOptions()
        slippage = opts.slippage_bps or self.default_slippage_bps
        urgency = self.default_urgency if opts.urgency is None else opts.urgency

        fee = opts.priority_fee
        if fee is None:
            if self.fee_estimator is not None:
                fee = await self.fee_estimator.calculate_dynamic_fee(value_sol, urgency)
            else:
                fee = self.default_priority_fee

        return replace(opts, slippage_bps=slippage, priority_fee=fee, urgency=urgency)

    async def buy(
        self,
        token: str,
        sol_amount: float,
        signer: Signer,
        opts: Optional[TradeOptions] = None,
    ) -> ExecutionResult:
        """Buy `token` with `sol_amount` SOL."""
        info = await self._lookup(token)
        kind = self._select(info, opts.force_venue if opts else None)
        resolved = await self._resolve_options(opts, sol_amount)

        logger.info(
            f"BUY {token[:8]}... {sol_amount} SOL via {kind.value} "
            f"(slippage {resolved.slippage_bps} bps, fee {resolved.priority_fee})"
        )
        result = await self.venues[kind].buy(token, sol_amount, signer, resolved)
        result.token_info = info
        return result

    async def sell(
        self,
        token: str,
        amount: float,
        decimals: int,
        signer: Signer,
        opts: Optional[TradeOptions] = None,
    ) -> ExecutionResult:
        """Sell `amount` (UI units) of `token` for SOL."""
        info = await self._lookup(token)
        kind = self._select(info, opts.force_venue if opts else None)
        value_sol = amount * info.price_native if info else 0.0
        resolved = await self._resolve_options(opts, value_sol)

        logger.info(
            f"SELL {amount} {token[:8]}... via {kind.value} "
            f"(slippage {resolved.slippage_bps} bps, fee {resolved.priority_fee})"
        )
        result = await self.venues[kind].sell(token, amount, decimals, signer, resolved)
        result.token_info = info
        return result

    async def get_quote(
        self,
        token: str,
        amount: float,
        side: TradeSide,
        decimals: Optional[int] = None,
        slippage_bps: Optional[int] = None,
    ) -> Quote:
        """
        Preview quote without trading.

        Args:
            token: Token mint
            amount: SOL for buys, token UI amount for sells
            side: TradeSide.BUY or TradeSide.SELL
            decimals: Token decimals (required for sells)

        Raises:
            ValueError: sell without decimals
            TradeError: venue could not quote
        """
        kind = await self.select_venue(token)
        venue = self.venues[kind]
        slippage = slippage_bps or self.default_slippage_bps

        if side == TradeSide.BUY:
            return await venue.quote(SOL_MINT, token, sol_to_lamports(amount), slippage, decimals=decimals)

        if decimals is None:
            raise ValueError("Decimals required for sell quote")
        raw_amount = int(amount * (10 ** decimals))
        return await venue.quote(token, SOL_MINT, raw_amount, slippage, decimals=decimals)

    async def get_token_info(self, token: str) -> Optional[TokenInfo]:
        return await self._lookup(token)
