"""
Execution layer: venues, fees, relay, submission tiers and routing.
"""
from .venue import SwapVenue, TradeOptions, TradePreparer, sign_material
from .rpc import SolanaRpc
from .priority_fee import (
    PriorityFeeEstimator, MAX_PRIORITY_FEE, format_priority_fee, level_for_urgency,
)
from .jito import (
    JitoBundleClient, BundleResult, BundleStatus, JITO_TIP_ACCOUNTS,
    calculate_recommended_tip, calculate_turbo_tip, competitive_tip,
)
from .tiers import (
    ExecutionTierCoordinator, RpcSubmissionTier, BundleSubmissionTier, TierOutcome,
)
from .jupiter import JupiterClient
from .pumpportal import PumpPortalClient
from .router import DexRouter

__all__ = [
    'SwapVenue', 'TradeOptions', 'TradePreparer', 'sign_material',
    'SolanaRpc',
    'PriorityFeeEstimator', 'MAX_PRIORITY_FEE', 'format_priority_fee', 'level_for_urgency',
    'JitoBundleClient', 'BundleResult', 'BundleStatus', 'JITO_TIP_ACCOUNTS',
    'calculate_recommended_tip', 'calculate_turbo_tip', 'competitive_tip',
    'ExecutionTierCoordinator', 'RpcSubmissionTier', 'BundleSubmissionTier', 'TierOutcome',
    'JupiterClient',
    'PumpPortalClient',
    'DexRouter',
]
