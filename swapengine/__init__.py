"""
Swap Engine - Custodial Solana Trade Execution
==============================================

Routes swaps to the right venue, prices fees, submits through a tiered
ladder (RPC -> Jito bundle -> fallback RPC) and liquidates positions when
stop-loss / take-profit triggers fire.

Usage:
    from swapengine import build_engine, EngineConfig, KeypairSigner

    engine = build_engine(EngineConfig.from_env())
    signer = KeypairSigner.from_file("~/.config/solana/id.json")
    result = await engine.router.buy(mint, 0.1, signer)
"""

# Configuration
from .core.config import (
    EngineConfig,
    TierConfig,
    MonitorConfig,
    DEFAULT_CONFIG,
    LIQUIDATION_CONFIG,
    SOL_MINT,
)

# Errors
from .core.errors import (
    SwapEngineError,
    TradeError,
    NoRouteError,
    InsufficientBalanceError,
    SimulationError,
    TransactionFailedError,
    ConfirmationTimeoutError,
    BundleRejectedError,
    classify_trade_error,
)

# Data models
from .models import (
    VenueKind,
    TradeSide,
    OrderType,
    OrderStatus,
    PriorityLevel,
    Quote,
    ExecutionResult,
    FeeEstimate,
    TokenInfo,
    TokenBalance,
    WalletRecord,
    Position,
    LimitOrder,
    TransactionRecord,
    TriggerResult,
)

# Components
from .execution import (
    DexRouter,
    ExecutionTierCoordinator,
    JitoBundleClient,
    JupiterClient,
    PriorityFeeEstimator,
    PumpPortalClient,
    SolanaRpc,
    TradeOptions,
)
from .market import TokenInfoService
from .monitor import OrderMonitor
from .store import InMemoryTradeStore
from .wallet import KeypairSigner
from .engine import Engine, build_engine

__version__ = "0.1.0"

__all__ = [
    'EngineConfig', 'TierConfig', 'MonitorConfig', 'DEFAULT_CONFIG', 'LIQUIDATION_CONFIG', 'SOL_MINT',
    'SwapEngineError', 'TradeError', 'NoRouteError', 'InsufficientBalanceError',
    'SimulationError', 'TransactionFailedError', 'ConfirmationTimeoutError',
    'BundleRejectedError', 'classify_trade_error',
    'VenueKind', 'TradeSide', 'OrderType', 'OrderStatus', 'PriorityLevel',
    'Quote', 'ExecutionResult', 'FeeEstimate', 'TokenInfo', 'TokenBalance',
    'WalletRecord', 'Position', 'LimitOrder', 'TransactionRecord', 'TriggerResult',
    'DexRouter', 'ExecutionTierCoordinator', 'JitoBundleClient', 'JupiterClient',
    'PriorityFeeEstimator', 'PumpPortalClient', 'SolanaRpc', 'TradeOptions',
    'TokenInfoService', 'OrderMonitor', 'InMemoryTradeStore', 'KeypairSigner',
    'Engine', 'build_engine',
]
