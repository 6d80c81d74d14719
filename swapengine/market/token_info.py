"""
Token Info - DexScreener price and venue metadata.
==================================================

Resolves a mint to its best Solana pair (deepest liquidity) and derives
the venue flags the router needs: `is_pump_fun` and `on_bonding_curve`.
An unknown token yields None, never a zero price.

Usage:
    service = TokenInfoService(cache=TTLCache(30))
    info = await service.get_token_info(mint)
    infos = await service.get_token_infos([mint_a, mint_b], force_refresh=True)
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

import aiohttp

from ..core.cache import TTLCache
from ..core.config import ENDPOINTS
from ..core.http import HttpClient
from ..models import TokenInfo

logger = logging.getLogger(__name__)

MIN_PAIR_LIQUIDITY_USD = 1_000
BONDING_CURVE_MAX_LIQUIDITY_USD = 100_000
BATCH_SIZE = 30                        # DexScreener address limit per request

DEX_NAMES = {
    'raydium': 'Raydium',
    'orca': 'Orca',
    'meteora': 'Meteora',
    'pumpfun': 'PumpFun',
    'pumpswap': 'PumpSwap',
    'jupiter': 'Jupiter',
    'lifinity': 'Lifinity',
    'phoenix': 'Phoenix',
    'openbook': 'OpenBook',
}


def _float(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _pairs(data) -> List[dict]:
    pairs = data.get('pairs') if isinstance(data, dict) else None
    if not isinstance(pairs, list):
        return []
    return [p for p in pairs if isinstance(p, dict)]


def _liquidity(pair: dict) -> float:
    return _float((pair.get('liquidity') or {}).get('usd'))


def select_best_pair(pairs: Iterable[dict]) -> Optional[dict]:
    """
    Pick the Solana pair with the deepest liquidity.

    Pairs under $1k liquidity are ignored unless nothing else exists, in which
    case the first Solana pair is used.
    """
    solana_pairs = [p for p in pairs if p.get('chainId') == 'solana']
    if not solana_pairs:
        return None

    liquid = [p for p in solana_pairs if _liquidity(p) > MIN_PAIR_LIQUIDITY_USD]
    if not liquid:
        return solana_pairs[0]
    return max(liquid, key=_liquidity)


def is_pump_fun_pair(pair: dict) -> bool:
    dex_id = (pair.get('dexId') or '').lower()
    url = (pair.get('url') or '').lower()
    return 'pump' in dex_id or 'pump.fun' in url


def pair_to_token_info(pair: dict) -> TokenInfo:
    """Convert a DexScreener pair into TokenInfo."""
    base = pair.get('baseToken') or {}
    dex_id = pair.get('dexId') or ''
    liquidity = _liquidity(pair)
    is_pump_fun = is_pump_fun_pair(pair)

    created_ms = _float(pair.get('pairCreatedAt'))
    created_at = (
        datetime.fromtimestamp(created_ms / 1000, tz=timezone.utc) if created_ms else None
    )

    return TokenInfo(
        address=base.get('address', ''),
        symbol=base.get('symbol', ''),
        name=base.get('name', ''),
        price_usd=_float(pair.get('priceUsd')),
        price_native=_float(pair.get('priceNative')),
        decimals=9,
        liquidity=liquidity,
        volume_24h=_float((pair.get('volume') or {}).get('h24')),
        price_change_24h=_float((pair.get('priceChange') or {}).get('h24')),
        market_cap=pair.get('marketCap'),
        fdv=pair.get('fdv'),
        pair_address=pair.get('pairAddress'),
        dex_id=dex_id,
        dex_name=DEX_NAMES.get(dex_id.lower(), dex_id),
        is_pump_fun=is_pump_fun,
        # Bonding-curve pairs stay on the pumpfun dex until graduation
        on_bonding_curve=(
            is_pump_fun and dex_id == 'pumpfun'
            and liquidity < BONDING_CURVE_MAX_LIQUIDITY_USD
        ),
        url=pair.get('url'),
        created_at=created_at,
    )


class TokenInfoService(HttpClient):
    """DexScreener-backed TokenInfoProvider with a shared TTL cache."""

    def __init__(
        self,
        cache: Optional[TTLCache] = None,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
        base_url: str = ENDPOINTS['DEXSCREENER_TOKENS'],
    ):
        super().__init__(timeout=timeout, session=session)
        self.cache = cache if cache is not None else TTLCache(ttl_seconds=30.0)
        self.base_url = base_url.rstrip('/')

    async def _fetch_pairs(self, addresses: List[str]) -> List[dict]:
        """Fetch raw pairs for up to BATCH_SIZE addresses. Network errors and malformed bodies yield []."""
        url = f"{self.base_url}/{','.join(addresses)}"
        try:
            session = await self._get_session()
            async with session.get(url, timeout=self._timeout()) as resp:
                if resp.status != 200:
                    logger.warning(f"DexScreener returned {resp.status} for {len(addresses)} token(s)")
                    return []
                data = await resp.json(content_type=None)
        except asyncio.TimeoutError:
            logger.warning(f"DexScreener timeout for {len(addresses)} token(s)")
            return []
        except aiohttp.ClientError as e:
            logger.warning(f"DexScreener request failed: {e}")
            return []
        except ValueError as e:
            logger.warning(f"DexScreener returned invalid JSON: {e}")
            return []
        return _pairs(data)

    async def get_token_info(self, address: str, force_refresh: bool = False) -> Optional[TokenInfo]:
        """Token metadata for one mint, or None when unknown."""
        if not force_refresh:
            cached = self.cache.get(address)
            if cached is not None:
                return cached

        pair = select_best_pair(await self._fetch_pairs([address]))
        if pair is None:
            return None

        info = pair_to_token_info(pair)
        self.cache.set(address, info)
        return info

    async def get_token_infos(
        self,
        addresses: Iterable[str],
        force_refresh: bool = False,
    ) -> Dict[str, TokenInfo]:
        """
        Batched lookup, one request per 30 mints.

        Tokens without a Solana pair are absent from the result.
        """
        unique = list(dict.fromkeys(addresses))
        results: Dict[str, TokenInfo] = {}

        missing = []
        for address in unique:
            cached = None if force_refresh else self.cache.get(address)
            if cached is not None:
                results[address] = cached
            else:
                missing.append(address)

        chunks = [missing[i:i + BATCH_SIZE] for i in range(0, len(missing), BATCH_SIZE)]
        responses = await asyncio.gather(*(self._fetch_pairs(c) for c in chunks))

        by_token: Dict[str, List[dict]] = {}
        for pairs in responses:
            for pair in pairs:
                token = (pair.get('baseToken') or {}).get('address')
                if token:
                    by_token.setdefault(token, []).append(pair)

        for address in missing:
            pair = select_best_pair(by_token.get(address, []))
            if pair is None:
                continue
            info = pair_to_token_info(pair)
            self.cache.set(address, info)
            results[address] = info

        return results

    async def search_tokens(self, query: str, limit: int = 10) -> List[TokenInfo]:
        """Search Solana tokens by symbol or name, deduplicated by mint."""
        try:
            session = await self._get_session()
            async with session.get(
                ENDPOINTS['DEXSCREENER_SEARCH'],
                params={'q': query},
                timeout=self._timeout(),
            ) as resp:
                if resp.status != 200:
                    return []
                data = await resp.json(content_type=None)
        except (asyncio.TimeoutError, aiohttp.ClientError, ValueError) as e:
            logger.warning(f"DexScreener search failed: {e}")
            return []

        seen = set()
        results = []
        for pair in _pairs(data):
            if pair.get('chainId') != 'solana':
                continue
            address = (pair.get('baseToken') or {}).get('address')
            if not address or address in seen:
                continue
            seen.add(address)
            results.append(pair_to_token_info(pair))
            if len(results) >= limit:
                break
        return results

    async def is_pump_fun_token(self, address: str) -> bool:
        """Whether any Solana pair for the mint trades on pump.fun."""
        pairs = await self._fetch_pairs([address])
        return any(is_pump_fun_pair(p) for p in pairs)
