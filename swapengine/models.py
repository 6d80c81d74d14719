"""
Engine Models - Shared Data Structures
======================================

Everything that crosses a component boundary: quotes, unsigned/signed
transaction material, execution results, fee snapshots, and the records
owned by the persistence layer (positions, limit orders, transactions).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
import time
import uuid

from .core.config import SOL_MINT, LAMPORTS_PER_SOL


class VenueKind(Enum):
    """Liquidity venues the router can select."""
    JUPITER = "jupiter"      # General swap aggregator
    PUMPFUN = "pumpfun"      # Bonding-curve venue via PumpPortal


class TradeSide(Enum):
    BUY = "buy"
    SELL = "sell"


class OrderType(Enum):
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"


class OrderStatus(Enum):
    ACTIVE = "active"
    TRIGGERED = "triggered"
    CANCELLED = "cancelled"


class PriorityLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"
    UNSAFE_MAX = "unsafe_max"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Quote:
    """Price quote from a venue. Valid until consumed by a build or stale."""
    venue: VenueKind
    input_mint: str
    output_mint: str
    in_amount: int               # Raw units (lamports for SOL)
    out_amount: int              # Expected output, raw units
    min_out_amount: int          # Worst-case floor implied by slippage
    slippage_bps: int
    price_impact_pct: float = 0.0
    route: str = ""
    token_decimals: Optional[int] = None
    created_at: float = field(default_factory=time.monotonic)
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def is_buy(self) -> bool:
        return self.input_mint == SOL_MINT

    @property
    def token_mint(self) -> str:
        return self.output_mint if self.is_buy else self.input_mint

    @property
    def notional_sol(self) -> float:
        """Trade value in SOL (input for buys, expected output for sells)."""
        lamports = self.in_amount if self.is_buy else self.out_amount
        return lamports / LAMPORTS_PER_SOL

    def age(self, now: Optional[float] = None) -> float:
        return (time.monotonic() if now is None else now) - self.created_at

    def to_dict(self) -> dict:
        return {
            'venue': self.venue.value,
            'input_mint': self.input_mint,
            'output_mint': self.output_mint,
            'in_amount': self.in_amount,
            'out_amount': self.out_amount,
            'min_out_amount': self.min_out_amount,
            'slippage_bps': self.slippage_bps,
            'price_impact_pct': self.price_impact_pct,
            'route': self.route,
            'token_decimals': self.token_decimals,
        }


def apply_slippage(amount: int, slippage_bps: int) -> int:
    """Worst-case output for `amount` given a slippage floor in bps."""
    return amount * (10_000 - slippage_bps) // 10_000


@dataclass(frozen=True)
class SwapMaterial:
    """Unsigned, venue-specific transaction payload. Never persisted."""
    payload: bytes
    venue: VenueKind
    last_valid_block_height: Optional[int] = None


@dataclass(frozen=True)
class SignedTransaction:
    raw: bytes
    signature: str
    last_valid_block_height: Optional[int] = None


@dataclass(frozen=True)
class PreparedTrade:
    """A freshly built and signed transaction plus the quote it was built from."""
    quote: Quote
    signed: SignedTransaction


@dataclass
class ExecutionResult:
    """Result of a trade. The only artifact callers (UI, monitor) receive."""
    success: bool
    venue: Optional[VenueKind] = None
    signature: Optional[str] = None
    error: Optional[str] = None
    error_category: Optional[str] = None
    input_amount: int = 0
    output_amount: int = 0
    min_output_amount: int = 0
    price_impact: float = 0.0
    tier: Optional[str] = None
    bundle_id: Optional[str] = None
    token_info: Optional["TokenInfo"] = None
    latency_ms: float = 0.0
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def failure(
        cls,
        error: str,
        quote: Optional[Quote] = None,
        venue: Optional[VenueKind] = None,
        tier: Optional[str] = None,
        category: Optional[str] = None,
    ) -> "ExecutionResult":
        return cls(
            success=False,
            venue=quote.venue if quote else venue,
            error=error,
            error_category=category,
            input_amount=quote.in_amount if quote else 0,
            output_amount=quote.out_amount if quote else 0,
            min_output_amount=quote.min_out_amount if quote else 0,
            price_impact=quote.price_impact_pct if quote else 0.0,
            tier=tier,
        )

    def to_dict(self) -> dict:
        return {
            'success': self.success,
            'venue': self.venue.value if self.venue else None,
            'signature': self.signature,
            'error': self.error,
            'error_category': self.error_category,
            'input_amount': self.input_amount,
            'output_amount': self.output_amount,
            'min_output_amount': self.min_output_amount,
            'price_impact': self.price_impact,
            'tier': self.tier,
            'bundle_id': self.bundle_id,
            'latency_ms': self.latency_ms,
            'timestamp': self.timestamp,
        }


@dataclass(frozen=True)
class FeeEstimate:
    """Priority fee levels (micro-lamports per CU, ascending). Read-only snapshot."""
    low: int
    medium: int
    high: int
    very_high: int
    unsafe_max: int
    timestamp: float = field(default_factory=time.time, compare=False)
    source: str = "default"

    def level(self, level: PriorityLevel) -> int:
        return getattr(self, level.value)

    def to_dict(self) -> dict:
        return {
            'low': self.low,
            'medium': self.medium,
            'high': self.high,
            'very_high': self.very_high,
            'unsafe_max': self.unsafe_max,
            'timestamp': self.timestamp,
            'source': self.source,
        }


@dataclass
class TokenInfo:
    """Token price/liquidity/venue metadata (DexScreener best pair)."""
    address: str
    symbol: str
    name: str
    price_usd: float
    price_native: float = 0.0            # Price in SOL
    decimals: int = 9
    liquidity: float = 0.0
    volume_24h: float = 0.0
    price_change_24h: float = 0.0
    market_cap: Optional[float] = None
    fdv: Optional[float] = None
    pair_address: Optional[str] = None
    dex_id: str = ""
    dex_name: str = ""
    is_pump_fun: bool = False
    on_bonding_curve: bool = False
    url: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            'address': self.address,
            'symbol': self.symbol,
            'name': self.name,
            'price_usd': self.price_usd,
            'price_native': self.price_native,
            'liquidity': self.liquidity,
            'volume_24h': self.volume_24h,
            'price_change_24h': self.price_change_24h,
            'dex_id': self.dex_id,
            'is_pump_fun': self.is_pump_fun,
            'on_bonding_curve': self.on_bonding_curve,
        }


@dataclass(frozen=True)
class TokenBalance:
    """On-chain SPL token balance."""
    mint: str
    amount: float                # UI amount
    raw_amount: int
    decimals: int


@dataclass
class WalletRecord:
    """Stored custodial wallet. The secret stays opaque to the engine."""
    user_id: str
    public_address: str
    encrypted_secret: bytes = b""


@dataclass
class Position:
    """Persisted holding. `amount` is a hint; the chain is authoritative."""
    user_id: str
    token_address: str
    amount: float
    token_symbol: str = ""
    token_decimals: int = 9
    entry_price_usd: float = 0.0
    entry_sol: float = 0.0
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])
    updated_at: datetime = field(default_factory=_now)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'token_address': self.token_address,
            'token_symbol': self.token_symbol,
            'token_decimals': self.token_decimals,
            'amount': self.amount,
            'entry_price_usd': self.entry_price_usd,
            'entry_sol': self.entry_sol,
        }


@dataclass
class LimitOrder:
    """Stop-loss / take-profit order against one position."""
    user_id: str
    position_id: str
    order_type: OrderType
    trigger_price: float
    sell_percentage: float = 100.0
    status: OrderStatus = OrderStatus.ACTIVE
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])
    created_at: datetime = field(default_factory=_now)

    def __post_init__(self):
        if not 1 <= self.sell_percentage <= 100:
            raise ValueError(f"sell_percentage must be between 1 and 100, got {self.sell_percentage}")
        if self.trigger_price <= 0:
            raise ValueError(f"trigger_price must be positive, got {self.trigger_price}")

    @property
    def is_active(self) -> bool:
        return self.status == OrderStatus.ACTIVE

    def should_trigger(self, current_price: float) -> bool:
        """Stop-loss fires at or below the trigger, take-profit at or above."""
        if self.order_type == OrderType.STOP_LOSS:
            return current_price <= self.trigger_price
        return current_price >= self.trigger_price

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'position_id': self.position_id,
            'order_type': self.order_type.value,
            'trigger_price': self.trigger_price,
            'sell_percentage': self.sell_percentage,
            'status': self.status.value,
            'created_at': self.created_at.isoformat(),
        }


@dataclass
class TransactionRecord:
    """Trade history row written after every buy/sell attempt."""
    user_id: str
    type: str                    # 'buy' | 'sell'
    token_address: str
    status: str                  # 'success' | 'failed'
    token_symbol: str = ""
    amount_tokens: Optional[float] = None
    amount_sol: Optional[float] = None
    price_usd: Optional[float] = None
    tx_signature: Optional[str] = None
    dex_used: Optional[str] = None
    error_message: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])
    created_at: datetime = field(default_factory=_now)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'type': self.type,
            'token_address': self.token_address,
            'token_symbol': self.token_symbol,
            'amount_tokens': self.amount_tokens,
            'amount_sol': self.amount_sol,
            'price_usd': self.price_usd,
            'tx_signature': self.tx_signature,
            'dex_used': self.dex_used,
            'status': self.status,
            'error_message': self.error_message,
        }


@dataclass
class TriggerResult:
    """Outcome of a triggered SL/TP order, passed to the monitor callback."""
    success: bool
    sold_amount: float
    received_sol: float = 0.0
    signature: Optional[str] = None
    error: Optional[str] = None
    cancelled: bool = False

    def to_dict(self) -> dict:
        return {
            'success': self.success,
            'sold_amount': self.sold_amount,
            'received_sol': self.received_sol,
            'signature': self.signature,
            'error': self.error,
            'cancelled': self.cancelled,
        }


def lamports_to_sol(lamports) -> float:
    return int(lamports) / LAMPORTS_PER_SOL


def sol_to_lamports(sol: float) -> int:
    return int(sol * LAMPORTS_PER_SOL)
