"""
Tests for the priority fee estimator.

Tests:
    1. Urgency maps onto fee levels
    2. Trade value scales the fee and the cap always holds
    3. RPC percentiles are floored and fall back to defaults
    4. Helius estimates are preferred and cached
"""
import aiohttp
import pytest
from unittest.mock import AsyncMock

from swapengine.core.cache import TTLCache
from swapengine.execution.priority_fee import (
    CACHE_KEY, MAX_PRIORITY_FEE, PriorityFeeEstimator, default_fees,
    estimate_from_samples, format_priority_fee, level_for_urgency, value_multiplier,
)
from swapengine.models import FeeEstimate, PriorityLevel


def make_estimator(fees=None, helius_api_key=None, rpc_error=None):
    rpc = AsyncMock()
    if rpc_error is not None:
        rpc.get_recent_prioritization_fees.side_effect = rpc_error
    else:
        rpc.get_recent_prioritization_fees.return_value = fees or []
    return PriorityFeeEstimator(rpc, helius_api_key=helius_api_key, cache=TTLCache(ttl_seconds=10))


class TestLevelForUrgency:
    @pytest.mark.parametrize("urgency,level", [
        (1, PriorityLevel.LOW),
        (2, PriorityLevel.LOW),
        (3, PriorityLevel.MEDIUM),
        (4, PriorityLevel.MEDIUM),
        (5, PriorityLevel.HIGH),
        (6, PriorityLevel.HIGH),
        (7, PriorityLevel.VERY_HIGH),
        (8, PriorityLevel.VERY_HIGH),
        (9, PriorityLevel.UNSAFE_MAX),
        (10, PriorityLevel.UNSAFE_MAX),
    ])
    def test_mapping(self, urgency, level):
        assert level_for_urgency(urgency) == level


class TestValueMultiplier:
    def test_thresholds_are_exclusive(self):
        assert value_multiplier(0.5) == 1.0
        assert value_multiplier(1.0) == 1.0
        assert value_multiplier(1.01) == 1.2
        assert value_multiplier(5.5) == 1.5
        assert value_multiplier(12) == 2.0


class TestEstimateFromSamples:
    def test_empty_samples_give_defaults(self):
        assert estimate_from_samples([]) == default_fees()

    def test_equality_ignores_snapshot_time(self):
        early = FeeEstimate(1, 2, 3, 4, 5, timestamp=100.0)
        late = FeeEstimate(1, 2, 3, 4, 5, timestamp=200.0)
        assert early == late
        assert early != FeeEstimate(1, 2, 3, 4, 5, timestamp=100.0, source="rpc")

    def test_zero_fees_are_ignored(self):
        assert estimate_from_samples([0, 0, 0]).source == "default"

    def test_levels_are_floored(self):
        estimate = estimate_from_samples([5] * 100)
        assert estimate.low == 1_000
        assert estimate.medium == 10_000
        assert estimate.high == 100_000
        assert estimate.very_high == 500_000
        assert estimate.unsafe_max == 1_000_000
        assert estimate.source == "rpc"

    def test_nearest_rank_percentiles(self):
        samples = list(range(1, 101))
        estimate = estimate_from_samples([s * 100_000 for s in samples])
        assert estimate.low == 2_500_000
        assert estimate.medium == 5_000_000
        assert estimate.high == 7_500_000
        assert estimate.very_high == 9_000_000
        assert estimate.unsafe_max == 9_900_000

    def test_levels_are_ascending(self):
        estimate = estimate_from_samples([3_000, 80_000, 250_000, 1_200_000, 40])
        levels = [estimate.low, estimate.medium, estimate.high, estimate.very_high, estimate.unsafe_max]
        assert levels == sorted(levels)


class TestCalculateDynamicFee:
    async def test_small_urgent_trade_uses_unsafe_max(self):
        estimator = make_estimator()
        fee = await estimator.calculate_dynamic_fee(0.05, urgency=9)
        assert fee == default_fees().unsafe_max

    async def test_large_trade_doubles_fee(self):
        estimator = make_estimator()
        fee = await estimator.calculate_dynamic_fee(12, urgency=5)
        assert fee == default_fees().high * 2
        assert fee <= MAX_PRIORITY_FEE

    async def test_fee_never_exceeds_cap(self):
        estimator = make_estimator()
        estimator.cache.set(CACHE_KEY, FeeEstimate(
            low=1_000, medium=10_000, high=100_000, very_high=500_000, unsafe_max=900_000,
        ))
        fee = await estimator.calculate_dynamic_fee(12, urgency=10)
        assert fee == MAX_PRIORITY_FEE

    async def test_fractional_fee_rounds_up(self):
        estimator = make_estimator()
        estimator.cache.set(CACHE_KEY, FeeEstimate(
            low=1_001, medium=10_000, high=100_000, very_high=500_000, unsafe_max=900_000,
        ))
        assert await estimator.calculate_dynamic_fee(2.0, urgency=1) == 1_202


class TestGetPriorityFees:
    async def test_rpc_fallback_without_helius_key(self):
        estimator = make_estimator(fees=[200_000] * 10)
        estimate = await estimator.get_priority_fees()
        assert estimate.source == "rpc"
        assert estimate.high == 200_000

    async def test_rpc_failure_gives_defaults(self):
        estimator = make_estimator(rpc_error=aiohttp.ClientError("down"))
        estimate = await estimator.get_priority_fees()
        assert estimate == default_fees()

    async def test_result_is_cached(self):
        estimator = make_estimator(fees=[200_000])
        first = await estimator.get_priority_fees()
        second = await estimator.get_priority_fees()
        assert first is second
        assert estimator.rpc.get_recent_prioritization_fees.await_count == 1

    async def test_force_refresh_bypasses_cache(self):
        estimator = make_estimator(fees=[200_000])
        await estimator.get_priority_fees()
        await estimator.get_priority_fees(force_refresh=True)
        assert estimator.rpc.get_recent_prioritization_fees.await_count == 2

    async def test_helius_preferred_when_configured(self):
        estimator = make_estimator(helius_api_key="key")
        estimator._json_rpc = AsyncMock(return_value={
            'result': {'priorityFeeLevels': {
                'low': 10.5, 'medium': 2_000, 'high': 30_000, 'veryHigh': 400_000, 'unsafeMax': 0,
            }},
        })
        estimate = await estimator.get_priority_fees(account_keys=["acct"])
        assert estimate.source == "helius"
        assert estimate.low == 11
        assert estimate.unsafe_max == 1_000_000
        method, params = estimator._json_rpc.await_args.args[1:3]
        assert method == "getPriorityFeeEstimate"
        assert params[0]['accountKeys'] == ["acct"]
        estimator.rpc.get_recent_prioritization_fees.assert_not_awaited()

    async def test_helius_failure_falls_back_to_rpc(self):
        estimator = make_estimator(fees=[200_000], helius_api_key="key")
        estimator._json_rpc = AsyncMock(side_effect=aiohttp.ClientError("boom"))
        estimate = await estimator.get_priority_fees()
        assert estimate.source == "rpc"

    async def test_recommended_fee_level(self):
        estimator = make_estimator()
        assert await estimator.get_recommended_fee(PriorityLevel.MEDIUM) == 10_000


class TestFormatPriorityFee:
    def test_small_fee_in_lamports(self):
        assert format_priority_fee(5_000) == "5000 lamports"

    def test_large_fee_in_sol(self):
        assert format_priority_fee(1_000_000) == "0.001000 SOL"
