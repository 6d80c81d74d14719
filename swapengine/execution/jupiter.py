"""
Jupiter Aggregator Client
=========================

General-purpose swap venue. Quotes come from `/swap/v1/quote`; the swap
endpoint returns an unsigned, base64-encoded VersionedTransaction plus its
last valid block height. Signing and submission are done locally through
the tier coordinator.

Usage:
    jupiter = JupiterClient(coordinator, api_key=key)
    quote = await jupiter.quote(SOL_MINT, mint, 100_000_000, slippage_bps=500)
    result = await jupiter.execute(quote, signer, TradeOptions())
"""
import asyncio
import base64
import logging
from typing import Dict, List, Optional

import aiohttp

from ..core.config import ENDPOINTS, SOL_MINT
from ..core.errors import SimulationError, TradeError, error_from_message
from ..core.http import HttpClient
from ..interfaces import Signer
from ..models import (
    ExecutionResult, Quote, SwapMaterial, VenueKind, apply_slippage, sol_to_lamports,
)
from .venue import TradeOptions, execute_with_tiers, quote_and_execute

logger = logging.getLogger(__name__)

MAX_ACCOUNTS = 64


def route_label(route_plan: List[dict]) -> str:
    """Unique AMM labels in route order, e.g. 'Raydium → Orca'."""
    labels = []
    for step in route_plan or []:
        label = (step.get('swapInfo') or {}).get('label')
        if label and label not in labels:
            labels.append(label)
    return ' → '.join(labels) or 'Direct'


class JupiterClient(HttpClient):
    """Jupiter swap venue."""

    kind = VenueKind.JUPITER

    def __init__(
        self,
        coordinator,
        api_key: Optional[str] = None,
        default_slippage_bps: int = 500,
        default_priority_fee: int = 100_000,
        max_quote_age: float = 5.0,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
        quote_url: str = ENDPOINTS['JUPITER_QUOTE'],
        swap_url: str = ENDPOINTS['JUPITER_SWAP'],
    ):
        headers = {'Accept': 'application/json'}
        if api_key:
            headers['x-api-key'] = api_key
        super().__init__(timeout=timeout, session=session, headers=headers)
        self.coordinator = coordinator
        self.default_slippage_bps = default_slippage_bps
        self.default_priority_fee = default_priority_fee
        self.max_quote_age = max_quote_age
        self.quote_url = quote_url
        self.swap_url = swap_url

    async def get_quote_response(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: Optional[int] = None,
        only_direct_routes: bool = False,
    ) -> Dict:
        """Raw quoteResponse, needed verbatim by the swap endpoint."""
        params = {
            'inputMint': input_mint,
            'outputMint': output_mint,
            'amount': str(amount),
            'slippageBps': str(slippage_bps or self.default_slippage_bps),
            'restrictIntermediateTokens': 'true',
            'maxAccounts': str(MAX_ACCOUNTS),
        }
        if only_direct_routes:
            params['onlyDirectRoutes'] = 'true'

        try:
            session = await self._get_session()
            async with session.get(self.quote_url, params=params, timeout=self._timeout()) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise error_from_message(f"Jupiter quote failed: {text}")
                return await resp.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise TradeError("Jupiter quote timed out") from e
        except aiohttp.ClientError as e:
            raise TradeError(f"Jupiter quote request failed: {e}") from e
        except ValueError as e:
            raise TradeError("Jupiter returned an invalid quote response") from e

    async def quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int,
        decimals: Optional[int] = None,
    ) -> Quote:
        data = await self.get_quote_response(input_mint, output_mint, amount, slippage_bps)
        if not isinstance(data, dict) or data.get('outAmount') is None:
            error = data.get('error') if isinstance(data, dict) else None
            raise error_from_message(f"Jupiter quote failed: {error or 'missing outAmount'}")

        try:
            out_amount = int(data['outAmount'])
            in_amount = int(data.get('inAmount', amount))
            threshold = data.get('otherAmountThreshold')
            min_out = int(threshold) if threshold else apply_slippage(out_amount, slippage_bps)
            price_impact = float(data.get('priceImpactPct') or 0)
        except (TypeError, ValueError) as e:
            raise TradeError(f"Jupiter returned a malformed quote: {e}") from e

        return Quote(
            venue=self.kind,
            input_mint=input_mint,
            output_mint=output_mint,
            in_amount=in_amount,
            out_amount=out_amount,
            min_out_amount=min_out,
            slippage_bps=slippage_bps,
            price_impact_pct=price_impact,
            route=route_label(data.get('routePlan')),
            token_decimals=decimals,
            raw=data,
        )

    async def build(self, quote: Quote, signer_public_key: str, fee_hint: int) -> SwapMaterial:
        """Unsigned swap transaction for a quote."""
        body = {
            'quoteResponse': quote.raw,
            'userPublicKey': signer_public_key,
            'wrapAndUnwrapSol': True,
            'useSharedAccounts': True,
            'dynamicComputeUnitLimit': True,
            'skipUserAccountsRpcCalls': False,
            'dynamicSlippage': True,
            'prioritizationFeeLamports': fee_hint,
        }

        try:
            session = await self._get_session()
            async with session.post(self.swap_url, json=body, timeout=self._timeout()) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise error_from_message(f"Jupiter swap build failed: {text}")
                data = await resp.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise TradeError("Jupiter swap build timed out") from e
        except aiohttp.ClientError as e:
            raise TradeError(f"Jupiter swap build failed: {e}") from e
        except ValueError as e:
            raise TradeError("Jupiter returned an invalid swap response") from e

        if not isinstance(data, dict):
            raise TradeError("Jupiter returned an invalid swap response")
        if data.get('simulationError'):
            raise SimulationError(f"Simulation failed: {data['simulationError']}")
        if not data.get('swapTransaction'):
            raise TradeError(f"Jupiter swap build failed: {data.get('error') or 'missing swapTransaction'}")

        try:
            payload = base64.b64decode(data['swapTransaction'], validate=True)
        except (TypeError, ValueError) as e:
            raise SimulationError(f"Jupiter returned an undecodable transaction: {e}") from e

        return SwapMaterial(
            payload=payload,
            venue=self.kind,
            last_valid_block_height=data.get('lastValidBlockHeight'),
        )

    async def execute(self, quote: Quote, signer: Signer, opts: TradeOptions) -> ExecutionResult:
        return await execute_with_tiers(
            self, self.coordinator, quote, signer, opts,
            self.default_priority_fee, self.max_quote_age,
        )

    async def buy(self, token: str, sol_amount: float, signer: Signer, opts: TradeOptions) -> ExecutionResult:
        """Buy `token` with `sol_amount` SOL."""
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
        """Sell `amount` (UI units) of `token` for SOL."""
        slippage = opts.slippage_bps or self.default_slippage_bps
        raw_amount = int(amount * (10 ** decimals))
        return await quote_and_execute(
            self, token, SOL_MINT, raw_amount, slippage, signer, opts, decimals=decimals,
        )
