"""
Tests for DexScreener token metadata: pair selection, venue flags and batching.
"""
import asyncio

from conftest import FakeResponse, FakeSession, PUMP_MINT, TOKEN_MINT, html_response
from swapengine.core.cache import TTLCache
from swapengine.market.token_info import (
    BATCH_SIZE, TokenInfoService, is_pump_fun_pair, pair_to_token_info, select_best_pair,
)


def make_pair(address=TOKEN_MINT, liquidity=50_000, chain='solana', dex_id='raydium', price='1.5', **extra):
    pair = {
        'chainId': chain,
        'dexId': dex_id,
        'pairAddress': f"pair-{address[:6]}-{dex_id}",
        'baseToken': {'address': address, 'symbol': 'TEST', 'name': 'Test Token'},
        'priceUsd': price,
        'priceNative': '0.01',
        'liquidity': {'usd': liquidity},
        'volume': {'h24': 12_000},
        'priceChange': {'h24': -3.5},
        'marketCap': 1_000_000,
        'url': f"https://dexscreener.com/solana/{address}",
    }
    pair.update(extra)
    return pair


def make_service(responses, cache=None):
    session = FakeSession(responses)
    return TokenInfoService(cache=cache if cache is not None else TTLCache(ttl_seconds=30), session=session), session


# ─── Pair selection ──────────────────────────────────────────────────────────

class TestSelectBestPair:
    def test_deepest_liquidity_wins(self):
        pairs = [make_pair(liquidity=5_000), make_pair(liquidity=80_000, dex_id='orca'), make_pair(liquidity=20_000)]
        assert select_best_pair(pairs)['dexId'] == 'orca'

    def test_other_chains_ignored(self):
        pairs = [make_pair(chain='ethereum', liquidity=10_000_000), make_pair(liquidity=2_000, dex_id='meteora')]
        assert select_best_pair(pairs)['dexId'] == 'meteora'

    def test_illiquid_falls_back_to_first(self):
        pairs = [make_pair(liquidity=10, dex_id='first'), make_pair(liquidity=900, dex_id='second')]
        assert select_best_pair(pairs)['dexId'] == 'first'

    def test_no_solana_pairs(self):
        assert select_best_pair([make_pair(chain='base')]) is None
        assert select_best_pair([]) is None


class TestPairToTokenInfo:
    def test_fields(self):
        info = pair_to_token_info(make_pair(pairCreatedAt=1_700_000_000_000))
        assert info.address == TOKEN_MINT
        assert info.price_usd == 1.5
        assert info.price_native == 0.01
        assert info.liquidity == 50_000
        assert info.volume_24h == 12_000
        assert info.price_change_24h == -3.5
        assert info.dex_name == 'Raydium'
        assert info.created_at.year == 2023
        assert not info.is_pump_fun

    def test_bonding_curve(self):
        info = pair_to_token_info(make_pair(address=PUMP_MINT, dex_id='pumpfun', liquidity=30_000))
        assert info.is_pump_fun
        assert info.on_bonding_curve

    def test_deep_pumpfun_pair_is_graduated(self):
        info = pair_to_token_info(make_pair(address=PUMP_MINT, dex_id='pumpfun', liquidity=150_000))
        assert info.is_pump_fun
        assert not info.on_bonding_curve

    def test_pumpswap_is_pump_but_not_curve(self):
        info = pair_to_token_info(make_pair(address=PUMP_MINT, dex_id='pumpswap', liquidity=10_000))
        assert info.is_pump_fun
        assert not info.on_bonding_curve

    def test_pump_url_detected(self):
        assert is_pump_fun_pair({'dexId': 'raydium', 'url': 'https://pump.fun/coin/abc'})

    def test_bad_numbers_default_to_zero(self):
        info = pair_to_token_info(make_pair(price=None, liquidity='n/a'))
        assert info.price_usd == 0.0
        assert info.liquidity == 0.0


# ─── Service ─────────────────────────────────────────────────────────────────

class TestTokenInfoService:
    async def test_single_lookup_is_cached(self):
        service, session = make_service([FakeResponse(payload={'pairs': [make_pair()]})])
        first = await service.get_token_info(TOKEN_MINT)
        second = await service.get_token_info(TOKEN_MINT)
        assert first is second
        assert len(session.requests) == 1
        assert session.requests[0][1].endswith(f"/{TOKEN_MINT}")

    async def test_force_refresh_bypasses_cache(self):
        service, session = make_service([
            FakeResponse(payload={'pairs': [make_pair(price='1.0')]}),
            FakeResponse(payload={'pairs': [make_pair(price='2.0')]}),
        ])
        await service.get_token_info(TOKEN_MINT)
        info = await service.get_token_info(TOKEN_MINT, force_refresh=True)
        assert info.price_usd == 2.0
        assert len(session.requests) == 2

    async def test_unknown_token_is_none(self):
        service, _ = make_service([FakeResponse(payload={'pairs': None})])
        assert await service.get_token_info(TOKEN_MINT) is None

    async def test_http_error_is_none(self):
        service, _ = make_service([FakeResponse(status=429)])
        assert await service.get_token_info(TOKEN_MINT) is None

    async def test_timeout_is_none(self):
        service, _ = make_service([])

        async def timeout_session():
            raise asyncio.TimeoutError()

        service._get_session = timeout_session
        assert await service._fetch_pairs([TOKEN_MINT]) == []

    async def test_batch_splits_requests(self):
        mints = [f"Mint{i:040d}" for i in range(BATCH_SIZE + 5)]
        service, session = make_service([
            FakeResponse(payload={'pairs': [make_pair(address=m) for m in mints[:BATCH_SIZE]]}),
            FakeResponse(payload={'pairs': [make_pair(address=m) for m in mints[BATCH_SIZE:]]}),
        ])
        infos = await service.get_token_infos(mints + mints[:3])

        assert set(infos) == set(mints)
        assert len(session.requests) == 2
        assert session.requests[0][1].count(',') == BATCH_SIZE - 1
        assert session.requests[1][1].count(',') == 4

    async def test_batch_uses_cache_and_omits_unknown(self):
        cache = TTLCache(ttl_seconds=30)
        service, session = make_service([FakeResponse(payload={'pairs': [make_pair(address=PUMP_MINT)]})], cache)
        cached = pair_to_token_info(make_pair())
        cache.set(TOKEN_MINT, cached)

        infos = await service.get_token_infos([TOKEN_MINT, PUMP_MINT, "Unknown111"])
        assert infos[TOKEN_MINT] is cached
        assert infos[PUMP_MINT].address == PUMP_MINT
        assert "Unknown111" not in infos
        assert TOKEN_MINT not in session.requests[0][1]

    async def test_batch_force_refresh_refetches_everything(self):
        cache = TTLCache(ttl_seconds=30)
        cache.set(TOKEN_MINT, pair_to_token_info(make_pair(price='1.0')))
        service, session = make_service([FakeResponse(payload={'pairs': [make_pair(price='3.0')]})], cache)

        infos = await service.get_token_infos([TOKEN_MINT], force_refresh=True)
        assert infos[TOKEN_MINT].price_usd == 3.0
        assert len(session.requests) == 1

    async def test_search_dedupes_and_limits(self):
        pairs = [
            make_pair(address="AAA", dex_id='raydium'),
            make_pair(address="AAA", dex_id='orca'),
            make_pair(address="BBB", chain='ethereum'),
            make_pair(address="CCC"),
            make_pair(address="DDD"),
        ]
        service, session = make_service([FakeResponse(payload={'pairs': pairs})])
        results = await service.search_tokens("test", limit=2)
        assert [r.address for r in results] == ["AAA", "CCC"]
        assert session.requests[0][2]['params'] == {'q': "test"}

    async def test_is_pump_fun_token(self):
        service, _ = make_service([
            FakeResponse(payload={'pairs': [make_pair(), make_pair(dex_id='pumpswap')]}),
            FakeResponse(payload={'pairs': [make_pair()]}),
        ])
        assert await service.is_pump_fun_token(PUMP_MINT)
        assert not await service.is_pump_fun_token(TOKEN_MINT)

    async def test_html_body_is_none(self):
        service, _ = make_service([html_response()])
        assert await service.get_token_info(TOKEN_MINT) is None

    async def test_malformed_pairs_ignored(self):
        service, _ = make_service([
            FakeResponse(payload=["unexpected"]),
            FakeResponse(payload={'pairs': "none"}),
            FakeResponse(payload={'pairs': ["junk", make_pair(pairCreatedAt="soon")]}),
        ])
        assert await service.get_token_info(TOKEN_MINT) is None
        assert await service.get_token_info(TOKEN_MINT, force_refresh=True) is None
        info = await service.get_token_info(TOKEN_MINT, force_refresh=True)
        assert info.price_usd == 1.5
        assert info.created_at is None

    async def test_search_html_body_is_empty(self):
        service, _ = make_service([html_response()])
        assert await service.search_tokens("test") == []
