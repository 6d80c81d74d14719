"""
Priority Fee Estimator
======================

Compute-unit price estimates for the current network. Helius
`getPriorityFeeEstimate` is used when an API key is configured; otherwise
the estimate is derived from `getRecentPrioritizationFees` percentiles.

Fees are micro-lamports per compute unit and are distinct from bundle tips.

Usage:
    estimator = PriorityFeeEstimator(rpc, helius_api_key=key)
    estimate = await estimator.get_priority_fees()
    fee = await estimator.calculate_dynamic_fee(trade_value_sol=2.5, urgency=7)
"""
import asyncio
import logging
import math
from typing import List, Optional

import aiohttp
import numpy as np
from solana.exceptions import SolanaRpcException

from ..core.cache import TTLCache
from ..core.config import ENDPOINTS
from ..core.errors import TradeError
from ..core.http import HttpClient
from ..models import FeeEstimate, PriorityLevel
from .rpc import SolanaRpc

logger = logging.getLogger(__name__)

# Hard cap on any computed fee (0.001 SOL)
MAX_PRIORITY_FEE = 1_000_000

CACHE_KEY = "priority_fees"

# Helius response gaps are filled with these
HELIUS_FALLBACK_LEVELS = {
    'low': 1_000,
    'medium': 10_000,
    'high': 100_000,
    'veryHigh': 500_000,
    'unsafeMax': 1_000_000,
}

# (percentile, floor) per level for RPC-derived estimates
RPC_PERCENTILES = {
    'low': (25, 1_000),
    'medium': (50, 10_000),
    'high': (75, 100_000),
    'very_high': (90, 500_000),
    'unsafe_max': (99, 1_000_000),
}

# (trade value SOL threshold, multiplier), checked in order
VALUE_MULTIPLIERS = [
    (10.0, 2.0),
    (5.0, 1.5),
    (1.0, 1.2),
]


def default_fees() -> FeeEstimate:
    """Conservative estimate used when no network data is available."""
    return FeeEstimate(
        low=1_000,
        medium=10_000,
        high=50_000,
        very_high=100_000,
        unsafe_max=500_000,
        source="default",
    )


def estimate_from_samples(fees: List[int]) -> FeeEstimate:
    """Nearest-rank percentiles over non-zero fee samples, each floored."""
    samples = np.array([f for f in fees if f > 0], dtype=np.int64)
    if samples.size == 0:
        return default_fees()

    levels = {}
    for level, (pct, floor) in RPC_PERCENTILES.items():
        value = int(np.percentile(samples, pct, method="inverted_cdf"))
        levels[level] = max(floor, value)

    return FeeEstimate(source="rpc", **levels)


def level_for_urgency(urgency: int) -> PriorityLevel:
    """Map urgency 1-10 onto a fee level."""
    if urgency <= 2:
        return PriorityLevel.LOW
    if urgency <= 4:
        return PriorityLevel.MEDIUM
    if urgency <= 6:
        return PriorityLevel.HIGH
    if urgency <= 8:
        return PriorityLevel.VERY_HIGH
    return PriorityLevel.UNSAFE_MAX


def value_multiplier(trade_value_sol: float) -> float:
    for threshold, multiplier in VALUE_MULTIPLIERS:
        if trade_value_sol > threshold:
            return multiplier
    return 1.0


def format_priority_fee(lamports: int) -> str:
    """Human-readable fee: raw lamports below 0.00001 SOL, else SOL."""
    sol = lamports / 1_000_000_000
    if sol < 0.00001:
        return f"{lamports} lamports"
    return f"{sol:.6f} SOL"


class PriorityFeeEstimator(HttpClient):
    """Fee estimates behind a shared TTL cache."""

    def __init__(
        self,
        rpc: SolanaRpc,
        helius_api_key: Optional[str] = None,
        cache: Optional[TTLCache] = None,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
        helius_url: str = ENDPOINTS['HELIUS_RPC'],
    ):
        super().__init__(timeout=timeout, session=session)
        self.rpc = rpc
        self.helius_api_key = helius_api_key
        self.helius_url = helius_url
        self.cache = cache if cache is not None else TTLCache(ttl_seconds=10.0)

    async def get_helius_priority_fees(
        self,
        account_keys: Optional[List[str]] = None,
    ) -> Optional[FeeEstimate]:
        """Helius estimate, or None without an API key or on any failure."""
        if not self.helius_api_key:
            return None

        params = {'options': {'includeAllPriorityFeeLevels': True}}
        if account_keys:
            params['accountKeys'] = account_keys

        url = f"{self.helius_url}?api-key={self.helius_api_key}"
        try:
            data = await self._json_rpc(url, "getPriorityFeeEstimate", [params])
        except (asyncio.TimeoutError, aiohttp.ClientError, ValueError) as e:
            logger.warning(f"Helius priority fee error: {e}")
            return None

        levels = (data.get('result') or {}).get('priorityFeeLevels')
        if not levels:
            return None

        def level(name: str) -> int:
            return math.ceil(levels.get(name) or HELIUS_FALLBACK_LEVELS[name])

        return FeeEstimate(
            low=level('low'),
            medium=level('medium'),
            high=level('high'),
            very_high=level('veryHigh'),
            unsafe_max=level('unsafeMax'),
            source="helius",
        )

    async def get_rpc_priority_fees(self, account_keys: Optional[List[str]] = None) -> FeeEstimate:
        """Percentile estimate from recent blocks. Defaults on any RPC failure."""
        try:
            fees = await self.rpc.get_recent_prioritization_fees(account_keys)
        except (asyncio.TimeoutError, aiohttp.ClientError, SolanaRpcException, TradeError, ValueError) as e:
            logger.warning(f"RPC priority fee error: {e}")
            return default_fees()
        return estimate_from_samples(fees)

    async def get_priority_fees(
        self,
        account_keys: Optional[List[str]] = None,
        force_refresh: bool = False,
    ) -> FeeEstimate:
        """Current estimate; cached for the cache TTL unless force_refresh."""
        if not force_refresh:
            cached = self.cache.get(CACHE_KEY)
            if cached is not None:
                return cached

        estimate = await self.get_helius_priority_fees(account_keys)
        if estimate is None:
            estimate = await self.get_rpc_priority_fees(account_keys)

        logger.debug(f"Priority fees ({estimate.source}): {estimate.to_dict()}")
        self.cache.set(CACHE_KEY, estimate)
        return estimate

    async def get_recommended_fee(
        self,
        level: PriorityLevel = PriorityLevel.HIGH,
        account_keys: Optional[List[str]] = None,
    ) -> int:
        estimate = await self.get_priority_fees(account_keys)
        return estimate.level(level)

    async def calculate_dynamic_fee(
        self,
        trade_value_sol: float,
        urgency: int = 5,
        account_keys: Optional[List[str]] = None,
    ) -> int:
        """
        Fee for a trade of the given value and urgency (1-10).

        Urgency picks the level, value scales it (x1.2 over 1 SOL, x1.5 over
        5 SOL, x2 over 10 SOL), and the result never exceeds MAX_PRIORITY_FEE.
        """
        estimate = await self.get_priority_fees(account_keys)
        base_fee = estimate.level(level_for_urgency(urgency))
        fee = math.ceil(base_fee * value_multiplier(trade_value_sol))
        return min(fee, MAX_PRIORITY_FEE)

