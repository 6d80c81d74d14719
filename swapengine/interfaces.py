"""
Boundary contracts the engine consumes.

Implementations live outside the engine (database, key custody, market data);
the in-process references are `InMemoryTradeStore`, `KeypairSigner`,
`TokenInfoService` and `SolanaRpc`.
"""
from typing import List, Optional, Protocol, runtime_checkable

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .models import (
    LimitOrder, OrderStatus, Position, TokenBalance, TokenInfo,
    TransactionRecord, WalletRecord,
)


@runtime_checkable
class Signer(Protocol):
    """Signing capability for one call. Never persisted or logged."""

    @property
    def public_key(self) -> str: ...

    @property
    def pubkey(self) -> Pubkey: ...

    @property
    def keypair(self) -> Keypair: ...


class TradeStore(Protocol):
    """
    Persistence for wallets, positions, limit orders and trade history.

    Every call is an idempotent upsert or status transition. No atomicity
    across calls is assumed.
    """

    async def get_wallet(self, user_id: str) -> Optional[WalletRecord]: ...

    async def get_positions(self, user_id: str) -> List[Position]: ...

    async def get_position(self, position_id: str) -> Optional[Position]: ...

    async def upsert_position(self, position: Position) -> Position: ...

    async def delete_position(self, position_id: str) -> bool: ...

    async def get_all_active_orders(self) -> List[LimitOrder]: ...

    async def get_active_orders(self, user_id: str) -> List[LimitOrder]: ...

    async def create_order(self, order: LimitOrder) -> LimitOrder: ...

    async def update_order_status(self, order_id: str, status: OrderStatus) -> bool: ...

    async def cancel_orders_for_position(self, position_id: str) -> int: ...

    async def create_transaction(self, record: TransactionRecord) -> TransactionRecord: ...


class TokenInfoProvider(Protocol):
    """Price and venue metadata. None means unknown, never zero."""

    async def get_token_info(self, address: str, force_refresh: bool = False) -> Optional[TokenInfo]: ...


class BalanceReader(Protocol):
    """Authoritative on-chain token balances."""

    async def get_token_balance(self, owner: str, mint: str) -> Optional[TokenBalance]: ...
