"""
Tests for engine assembly.
"""
from conftest import PUMP_MINT
from swapengine import EngineConfig, build_engine
from swapengine.models import VenueKind


class TestBuildEngine:
    async def test_default_tier_ladder(self):
        async with build_engine(EngineConfig()) as engine:
            assert engine.coordinator.tier_names == ['primary_rpc', 'jito', 'fallback_rpc']
            assert engine.relay is not None
            assert engine.fallback_rpc is engine.rpc
            assert engine.monitor is None

    async def test_without_jito(self):
        config = EngineConfig(use_jito=False, fallback_rpc_url="http://fallback.test")
        async with build_engine(config) as engine:
            assert engine.coordinator.tier_names == ['primary_rpc', 'fallback_rpc']
            assert engine.relay is None
            assert engine.fallback_rpc is not engine.rpc
            assert engine.fallback_rpc.url == "http://fallback.test"

    async def test_router_wiring(self):
        config = EngineConfig(default_slippage_bps=300, prefer_pumpportal=True)
        async with build_engine(config) as engine:
            assert engine.router.venues[VenueKind.JUPITER] is engine.jupiter
            assert engine.router.venues[VenueKind.PUMPFUN] is engine.pumpportal
            assert engine.router.default_slippage_bps == 300
            assert engine.router.prefer_pumpportal
            assert engine.router.fee_estimator is engine.fees
            assert engine.pumpportal.token_info is engine.token_info

    async def test_router_uses_configured_urgency(self):
        async with build_engine(EngineConfig(default_urgency=9)) as engine:
            assert engine.router.default_urgency == 9

    async def test_monitor_needs_signer_factory(self, signer):
        engine = build_engine(
            EngineConfig(),
            signer_factory=lambda wallet: signer,
            on_order_triggered=lambda order, result: None,
        )
        async with engine:
            assert engine.monitor is not None
            assert engine.monitor.store is engine.store
            assert engine.monitor.config is engine.config.monitor
            assert engine.monitor.running is False

    async def test_shared_token_cache(self):
        async with build_engine(EngineConfig(token_info_ttl=45)) as engine:
            assert engine.token_info.cache.ttl == 45
            assert PUMP_MINT not in engine.token_info.cache
