"""
Configuration - All execution parameters in one place.

Usage:
    from swapengine.core import EngineConfig

    # Defaults
    config = EngineConfig()

    # From environment (SOLANA_RPC_URL, HELIUS_API_KEY, ...)
    config = EngineConfig.from_env()
"""
import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional


# API Endpoints
ENDPOINTS = {
    # Jupiter aggregator
    'JUPITER_QUOTE': 'https://api.jup.ag/swap/v1/quote',
    'JUPITER_SWAP': 'https://api.jup.ag/swap/v1/swap',

    # PumpPortal local trade API (returns unsigned tx)
    'PUMPPORTAL_TRADE': 'https://pumpportal.fun/api/trade-local',

    # DexScreener
    'DEXSCREENER_TOKENS': 'https://api.dexscreener.com/latest/dex/tokens',
    'DEXSCREENER_SEARCH': 'https://api.dexscreener.com/latest/dex/search',

    # Helius priority fee API
    'HELIUS_RPC': 'https://mainnet.helius-rpc.com/',

    # Jito tip floor
    'JITO_TIP_FLOOR': 'https://bundles.jito.wtf/api/v1/bundles/tip_floor',

    # Public RPC (fallback tier)
    'SOLANA_PUBLIC_RPC': 'https://api.mainnet-beta.solana.com',
}

# Jito Block Engine endpoints
JITO_ENDPOINTS = {
    'mainnet': 'https://mainnet.block-engine.jito.wtf',
    'amsterdam': 'https://amsterdam.mainnet.block-engine.jito.wtf',
    'frankfurt': 'https://frankfurt.mainnet.block-engine.jito.wtf',
    'ny': 'https://ny.mainnet.block-engine.jito.wtf',
    'tokyo': 'https://tokyo.mainnet.block-engine.jito.wtf',
}

SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
LAMPORTS_PER_SOL = 1_000_000_000


def _env_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(value: Optional[str], default: int) -> int:
    if value is None or value.strip() == "":
        return default
    return int(value)


def _env_float(value: Optional[str], default: float) -> float:
    if value is None or value.strip() == "":
        return default
    return float(value)


@dataclass
class TierConfig:
    """Submission tier timing."""

    rpc_attempts: int = 2                   # Attempts per direct-RPC tier
    rpc_base_delay: float = 1.0             # Backoff base (seconds)
    confirm_timeout: float = 30.0           # Signature polling timeout
    confirm_poll_interval: float = 1.0      # Signature polling interval

    bundle_attempts: int = 2                # Jito bundle retries
    bundle_base_delay: float = 0.3          # Jito retry backoff base
    bundle_timeout: float = 8.0             # Bundle landing timeout
    bundle_poll_interval: float = 1.0
    relay_request_timeout: float = 3.0      # Per block-engine request

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rpc_attempts': self.rpc_attempts,
            'rpc_base_delay': self.rpc_base_delay,
            'confirm_timeout': self.confirm_timeout,
            'confirm_poll_interval': self.confirm_poll_interval,
            'bundle_attempts': self.bundle_attempts,
            'bundle_base_delay': self.bundle_base_delay,
            'bundle_timeout': self.bundle_timeout,
            'bundle_poll_interval': self.bundle_poll_interval,
            'relay_request_timeout': self.relay_request_timeout,
        }


@dataclass
class MonitorConfig:
    """SL/TP monitor configuration."""

    check_interval: float = 10.0            # Seconds between ticks
    slippage_bps: int = 1000                # 10% - liquidation must not stall
    urgency: int = 9                        # Top fee percentile
    settle_delay: float = 2.0               # Wait before re-reading balance
    dust_threshold: float = 0.0001          # Below this the position is closed
    mismatch_tolerance: float = 0.01        # Log DB vs chain divergence above this

    def to_dict(self) -> Dict[str, Any]:
        return {
            'check_interval': self.check_interval,
            'slippage_bps': self.slippage_bps,
            'urgency': self.urgency,
            'settle_delay': self.settle_delay,
            'dust_threshold': self.dust_threshold,
            'mismatch_tolerance': self.mismatch_tolerance,
        }


@dataclass
class EngineConfig:
    """Master configuration."""

    # Chain
    rpc_url: str = ENDPOINTS['SOLANA_PUBLIC_RPC']
    fallback_rpc_url: str = ENDPOINTS['SOLANA_PUBLIC_RPC']
    rpc_timeout: float = 10.0

    # Optional API keys
    helius_api_key: Optional[str] = None
    jupiter_api_key: Optional[str] = None

    # Trading defaults
    default_slippage_bps: int = 500         # 5%
    default_priority_fee: int = 100_000     # micro-lamports per CU
    default_urgency: int = 5
    max_quote_age: float = 5.0              # Re-quote older quotes
    http_timeout: float = 10.0

    # Routing
    use_jito: bool = True
    prefer_pumpportal: bool = False
    jito_endpoints: List[str] = field(default_factory=lambda: list(JITO_ENDPOINTS.values()))

    # Caches
    token_info_ttl: float = 30.0
    fee_cache_ttl: float = 10.0

    tiers: TierConfig = field(default_factory=TierConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)

    log_level: str = "INFO"

    def __post_init__(self):
        if not 0 < self.default_slippage_bps <= 10_000:
            raise ValueError(f"default_slippage_bps out of range: {self.default_slippage_bps}")
        if not 1 <= self.default_urgency <= 10:
            raise ValueError(f"default_urgency must be 1-10: {self.default_urgency}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        """Build config from environment variables."""
        env = os.environ if environ is None else environ
        defaults = cls()

        rpc_url = env.get('SOLANA_RPC_URL') or defaults.rpc_url
        monitor = replace(
            defaults.monitor,
            check_interval=_env_float(env.get('MONITOR_INTERVAL_SECONDS'), defaults.monitor.check_interval),
        )

        return cls(
            rpc_url=rpc_url,
            fallback_rpc_url=env.get('FALLBACK_RPC_URL') or defaults.fallback_rpc_url,
            helius_api_key=env.get('HELIUS_API_KEY') or None,
            jupiter_api_key=env.get('JUPITER_API_KEY') or None,
            default_slippage_bps=_env_int(env.get('DEFAULT_SLIPPAGE_BPS'), defaults.default_slippage_bps),
            default_priority_fee=_env_int(env.get('MAX_PRIORITY_FEE_LAMPORTS'), defaults.default_priority_fee),
            default_urgency=_env_int(env.get('DEFAULT_URGENCY'), defaults.default_urgency),
            use_jito=_env_bool(env.get('USE_JITO'), defaults.use_jito),
            prefer_pumpportal=_env_bool(env.get('PREFER_PUMPPORTAL'), defaults.prefer_pumpportal),
            monitor=monitor,
            log_level=(env.get('LOG_LEVEL') or defaults.log_level).upper(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rpc_url': self.rpc_url,
            'fallback_rpc_url': self.fallback_rpc_url,
            'helius_enabled': bool(self.helius_api_key),
            'default_slippage_bps': self.default_slippage_bps,
            'default_priority_fee': self.default_priority_fee,
            'default_urgency': self.default_urgency,
            'max_quote_age': self.max_quote_age,
            'use_jito': self.use_jito,
            'prefer_pumpportal': self.prefer_pumpportal,
            'jito_endpoints': len(self.jito_endpoints),
            'tiers': self.tiers.to_dict(),
            'monitor': self.monitor.to_dict(),
        }


# Default configuration
DEFAULT_CONFIG = EngineConfig()


# Forced liquidation: wide slippage, top fee tier
LIQUIDATION_CONFIG = EngineConfig(
    default_slippage_bps=1000,
    default_urgency=9,
)
