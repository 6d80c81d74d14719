"""
PumpPortal Client
=================

Bonding-curve venue for pump.fun tokens via PumpPortal's local trade API.
`/api/trade-local` returns raw unsigned transaction bytes; signing and
submission happen locally. PumpPortal has no quote endpoint, so quotes are
estimated from the token's native (SOL) price.

Usage:
    pump = PumpPortalClient(coordinator, token_info)
    result = await pump.buy(mint, 0.1, signer, TradeOptions())
    result = await pump.sell_percentage(mint, 50, signer, TradeOptions())
"""
import asyncio
import logging
from typing import Optional, Union

import aiohttp

from ..core.config import ENDPOINTS, LAMPORTS_PER_SOL, SOL_MINT
from ..core.errors import NoRouteError, TradeError, error_from_message
from ..core.http import HttpClient
from ..interfaces import Signer, TokenInfoProvider
from ..models import (
    ExecutionResult, Quote, SwapMaterial, VenueKind, apply_slippage, sol_to_lamports,
)
from .venue import TradeOptions, execute_with_tiers, quote_and_execute

logger = logging.getLogger(__name__)

# pump.fun mints use 6 decimals
PUMPFUN_TOKEN_DECIMALS = 6

POOLS = ('pump', 'raydium', 'pump-amm', 'launchlab', 'raydium-cpmm', 'bonk', 'auto')


class PumpPortalClient(HttpClient):
    """PumpPortal swap venue."""

    kind = VenueKind.PUMPFUN

    def __init__(
        self,
        coordinator,
        token_info: TokenInfoProvider,
        default_slippage_bps: int = 500,
        default_priority_fee: int = 100_000,
        pool: str = 'auto',
        max_quote_age: float = 5.0,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
        trade_url: str = ENDPOINTS['PUMPPORTAL_TRADE'],
    ):
        if pool not in POOLS:
            raise ValueError(f"Unknown PumpPortal pool: {pool}")
        super().__init__(timeout=timeout, session=session)
        self.coordinator = coordinator
        self.token_info = token_info
        self.default_slippage_bps = default_slippage_bps
        self.default_priority_fee = default_priority_fee
        self.pool = pool
        self.max_quote_age = max_quote_age
        self.trade_url = trade_url

    async def quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int,
        decimals: Optional[int] = None,
    ) -> Quote:
        """Estimated quote from the token's current SOL price."""
        is_buy = input_mint == SOL_MINT
        token = output_mint if is_buy else input_mint
        decimals = PUMPFUN_TOKEN_DECIMALS if decimals is None else decimals

        try:
            info = await self.token_info.get_token_info(token)
        except Exception as e:
            raise TradeError(f"PumpPortal price lookup failed for {token}: {e}") from e
        if info is None or info.price_native <= 0:
            raise NoRouteError(f"No PumpFun price available for {token}")

        if is_buy:
            out_amount = int(amount / LAMPORTS_PER_SOL / info.price_native * (10 ** decimals))
        else:
            out_amount = int(amount / (10 ** decimals) * info.price_native * LAMPORTS_PER_SOL)

        return Quote(
            venue=self.kind,
            input_mint=input_mint,
            output_mint=output_mint,
            in_amount=amount,
            out_amount=out_amount,
            min_out_amount=apply_slippage(out_amount, slippage_bps),
            slippage_bps=slippage_bps,
            route='PumpFun (Bonding Curve)' if info.on_bonding_curve else 'PumpFun',
            token_decimals=decimals,
        )

    def _trade_amount(self, quote: Quote) -> Union[float, str]:
        if 'percentage' in quote.raw:
            return f"{quote.raw['percentage']:g}%"
        if quote.is_buy:
            return quote.in_amount / LAMPORTS_PER_SOL
        return quote.in_amount / (10 ** (quote.token_decimals or PUMPFUN_TOKEN_DECIMALS))

    async def build(self, quote: Quote, signer_public_key: str, fee_hint: int) -> SwapMaterial:
        """Unsigned trade transaction from PumpPortal."""
        body = {
            'publicKey': signer_public_key,
            'action': 'buy' if quote.is_buy else 'sell',
            'mint': quote.token_mint,
            'amount': self._trade_amount(quote),
            'denominatedInSol': 'true' if quote.is_buy else 'false',
            'slippage': quote.slippage_bps / 100,             # Percent
            'priorityFee': fee_hint / LAMPORTS_PER_SOL,       # SOL
            'pool': self.pool,
        }

        try:
            session = await self._get_session()
            async with session.post(self.trade_url, json=body, timeout=self._timeout()) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise error_from_message(f"PumpPortal API error: {text}")
                payload = await resp.read()
        except asyncio.TimeoutError as e:
            raise TradeError("PumpPortal request timed out") from e
        except aiohttp.ClientError as e:
            raise TradeError(f"PumpPortal request failed: {e}") from e

        if not payload:
            raise TradeError("PumpPortal returned an empty transaction")

        return SwapMaterial(payload=payload, venue=self.kind)

    async def execute(self, quote: Quote, signer: Signer, opts: TradeOptions) -> ExecutionResult:
        return await execute_with_tiers(
            self, self.coordinator, quote, signer, opts,
            self.default_priority_fee, self.max_quote_age,
        )

    async def buy(self, token: str, sol_amount: float, signer: Signer, opts: TradeOptions) -> ExecutionResult:
        slippage = opts.slippage_bps or self.default_slippage_bps
        return await quote_and_execute(
            self, SOL_MINT, token, sol_to_lamports(sol_amount), slippage, signer, opts,
        )

    async def sell(
        self,
        token: str,
        amount: float,
        decimals: int,
        signer: Signer,
        opts: TradeOptions,
    ) -> ExecutionResult:
        slippage = opts.slippage_bps or self.default_slippage_bps
        raw_amount = int(amount * (10 ** decimals))
        return await quote_and_execute(
            self, token, SOL_MINT, raw_amount, slippage, signer, opts, decimals=decimals,
        )

    async def sell_percentage(
        self,
        token: str,
        percentage: float,
        signer: Signer,
        opts: TradeOptions,
    ) -> ExecutionResult:
        """
        Sell a percentage (1-100) of the wallet's holding.

        PumpPortal resolves the amount at build time, so the quote carries
        no expected output and no slippage floor.
        """
        if not 1 <= percentage <= 100:
            return ExecutionResult.failure(
                "Percentage must be between 1 and 100",
                venue=self.kind,
                category="Invalid amount",
            )

        quote = Quote(
            venue=self.kind,
            input_mint=token,
            output_mint=SOL_MINT,
            in_amount=0,
            out_amount=0,
            min_out_amount=0,
            slippage_bps=opts.slippage_bps or self.default_slippage_bps,
            route='PumpFun',
            raw={'percentage': percentage},
        )
        return await self.execute(quote, signer, opts)
