"""
Engine Assembly
===============

Wires one process-wide engine from an EngineConfig: shared caches, the two
RPC gateways, fee estimator, Jito relay, submission tiers, both venues, the
router and (when a signer factory is given) the order monitor.

Usage:
    engine = build_engine(EngineConfig.from_env())
    async with engine:
        result = await engine.router.buy(mint, 0.1, signer)
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .core.backoff import BackoffPolicy
from .core.cache import TTLCache
from .core.config import EngineConfig
from .execution.jito import JitoBundleClient
from .execution.jupiter import JupiterClient
from .execution.priority_fee import PriorityFeeEstimator
from .execution.pumpportal import PumpPortalClient
from .execution.router import DexRouter
from .execution.rpc import SolanaRpc
from .execution.tiers import BundleSubmissionTier, ExecutionTierCoordinator, RpcSubmissionTier
from .interfaces import Signer, TradeStore
from .market.token_info import TokenInfoService
from .models import VenueKind, WalletRecord
from .monitor.price_monitor import ErrorCallback, OrderCallback, OrderMonitor
from .store import InMemoryTradeStore

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    """All long-lived engine components. Close once at shutdown."""
    config: EngineConfig
    rpc: SolanaRpc
    fallback_rpc: SolanaRpc
    fees: PriorityFeeEstimator
    token_info: TokenInfoService
    relay: Optional[JitoBundleClient]
    coordinator: ExecutionTierCoordinator
    jupiter: JupiterClient
    pumpportal: PumpPortalClient
    router: DexRouter
    store: TradeStore
    monitor: Optional[OrderMonitor] = None

    async def close(self):
        if self.monitor is not None and self.monitor.running:
            await self.monitor.stop()

        clients = [self.jupiter, self.pumpportal, self.token_info, self.fees, self.relay, self.rpc]
        if self.fallback_rpc is not self.rpc:
            clients.append(self.fallback_rpc)
        for client in clients:
            if client is not None:
                await client.close()
        logger.debug("Engine closed")

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()


def _rpc_tier(name: str, rpc: SolanaRpc, config: EngineConfig) -> RpcSubmissionTier:
    tiers = config.tiers
    return RpcSubmissionTier(
        name,
        rpc,
        backoff=BackoffPolicy(max_attempts=tiers.rpc_attempts, base_delay=tiers.rpc_base_delay),
        confirm_timeout=tiers.confirm_timeout,
        poll_interval=tiers.confirm_poll_interval,
    )


def build_engine(
    config: Optional[EngineConfig] = None,
    store: Optional[TradeStore] = None,
    signer_factory: Optional[Callable[[WalletRecord], Signer]] = None,
    on_order_triggered: Optional[OrderCallback] = None,
    on_error: Optional[ErrorCallback] = None,
) -> Engine:
    """
    Build the engine.

    Args:
        config: Engine configuration (defaults to EngineConfig())
        store: Persistence (defaults to InMemoryTradeStore)
        signer_factory: Resolves a stored wallet to a signer; enables the order monitor
        on_order_triggered: Monitor callback (order, TriggerResult)
        on_error: Monitor loop error callback
    """
    config = config or EngineConfig()
    store = store or InMemoryTradeStore()

    token_cache = TTLCache(ttl_seconds=config.token_info_ttl)
    fee_cache = TTLCache(ttl_seconds=config.fee_cache_ttl)

    rpc = SolanaRpc(config.rpc_url, timeout=config.rpc_timeout)
    if config.fallback_rpc_url == config.rpc_url:
        fallback_rpc = rpc
    else:
        fallback_rpc = SolanaRpc(config.fallback_rpc_url, timeout=config.rpc_timeout)

    fees = PriorityFeeEstimator(
        rpc,
        helius_api_key=config.helius_api_key,
        cache=fee_cache,
        timeout=config.http_timeout,
    )
    token_info = TokenInfoService(cache=token_cache, timeout=config.http_timeout)

    tiers = [_rpc_tier("primary_rpc", rpc, config)]
    relay = None
    if config.use_jito:
        relay = JitoBundleClient(
            rpc,
            endpoints=config.jito_endpoints,
            backoff=BackoffPolicy(
                max_attempts=config.tiers.bundle_attempts,
                base_delay=config.tiers.bundle_base_delay,
            ),
            request_timeout=config.tiers.relay_request_timeout,
            landing_timeout=config.tiers.bundle_timeout,
            poll_interval=config.tiers.bundle_poll_interval,
        )
        tiers.append(BundleSubmissionTier(relay))
    tiers.append(_rpc_tier("fallback_rpc", fallback_rpc, config))
    coordinator = ExecutionTierCoordinator(tiers)

    jupiter = JupiterClient(
        coordinator,
        api_key=config.jupiter_api_key,
        default_slippage_bps=config.default_slippage_bps,
        default_priority_fee=config.default_priority_fee,
        max_quote_age=config.max_quote_age,
        timeout=config.http_timeout,
    )
    pumpportal = PumpPortalClient(
        coordinator,
        token_info,
        default_slippage_bps=config.default_slippage_bps,
        default_priority_fee=config.default_priority_fee,
        max_quote_age=config.max_quote_age,
        timeout=config.http_timeout,
    )

    router = DexRouter(
        {VenueKind.JUPITER: jupiter, VenueKind.PUMPFUN: pumpportal},
        token_info,
        fee_estimator=fees,
        default_slippage_bps=config.default_slippage_bps,
        default_priority_fee=config.default_priority_fee,
        prefer_pumpportal=config.prefer_pumpportal,
        default_urgency=config.default_urgency,
    )

    monitor = None
    if signer_factory is not None:
        monitor = OrderMonitor(
            store,
            router,
            token_info,
            rpc,
            signer_factory,
            config=config.monitor,
            on_order_triggered=on_order_triggered,
            on_error=on_error,
        )

    logger.info(f"Engine built: tiers {coordinator.tier_names}, jito={'on' if relay else 'off'}")
    return Engine(
        config=config,
        rpc=rpc,
        fallback_rpc=fallback_rpc,
        fees=fees,
        token_info=token_info,
        relay=relay,
        coordinator=coordinator,
        jupiter=jupiter,
        pumpportal=pumpportal,
        router=router,
        store=store,
        monitor=monitor,
    )
