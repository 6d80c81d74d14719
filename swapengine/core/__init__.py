"""
Core modules: configuration, errors, caching and retry policy.
"""
from .config import (
    EngineConfig, TierConfig, MonitorConfig,
    DEFAULT_CONFIG, LIQUIDATION_CONFIG,
    ENDPOINTS, JITO_ENDPOINTS, SOL_MINT, USDC_MINT, LAMPORTS_PER_SOL,
)
from .errors import (
    SwapEngineError, TradeError, NoRouteError, InsufficientBalanceError,
    SimulationError, TransactionFailedError, ConfirmationTimeoutError,
    BundleRejectedError, ErrorCategory, classify_trade_error, error_from_message,
    is_retryable, is_simulation_failure,
)
from .cache import TTLCache
from .backoff import BackoffPolicy
from .http import HttpClient

__all__ = [
    'EngineConfig', 'TierConfig', 'MonitorConfig',
    'DEFAULT_CONFIG', 'LIQUIDATION_CONFIG',
    'ENDPOINTS', 'JITO_ENDPOINTS', 'SOL_MINT', 'USDC_MINT', 'LAMPORTS_PER_SOL',
    'SwapEngineError', 'TradeError', 'NoRouteError', 'InsufficientBalanceError',
    'SimulationError', 'TransactionFailedError', 'ConfirmationTimeoutError',
    'BundleRejectedError', 'ErrorCategory', 'classify_trade_error', 'error_from_message',
    'is_retryable', 'is_simulation_failure',
    'TTLCache',
    'BackoffPolicy',
    'HttpClient',
]
