"""
In-memory trade store.

Reference `TradeStore` used by the CLI and tests. Enforces the limit-order
lifecycle: only `active` orders transition, and a transition on a missing
or already-inactive order is a no-op that returns False.
"""
import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .models import (
    LimitOrder, OrderStatus, Position, TransactionRecord, WalletRecord,
)

logger = logging.getLogger(__name__)


class InMemoryTradeStore:
    """Process-local store guarded by a single asyncio lock."""

    def __init__(self):
        self._wallets: Dict[str, WalletRecord] = {}
        self._positions: Dict[str, Position] = {}
        self._orders: Dict[str, LimitOrder] = {}
        self._transactions: List[TransactionRecord] = []
        self._lock = asyncio.Lock()

    # Wallets

    async def add_wallet(self, wallet: WalletRecord) -> WalletRecord:
        self._wallets[wallet.user_id] = wallet
        return wallet

    async def get_wallet(self, user_id: str) -> Optional[WalletRecord]:
        return self._wallets.get(user_id)

    # Positions

    async def get_positions(self, user_id: str) -> List[Position]:
        return [p for p in self._positions.values() if p.user_id == user_id]

    async def get_position(self, position_id: str) -> Optional[Position]:
        return self._positions.get(position_id)

    async def upsert_position(self, position: Position) -> Position:
        async with self._lock:
            stored = replace(position, updated_at=datetime.now(timezone.utc))
            self._positions[stored.id] = stored
            return stored

    async def delete_position(self, position_id: str) -> bool:
        async with self._lock:
            return self._positions.pop(position_id, None) is not None

    # Orders

    async def get_all_active_orders(self) -> List[LimitOrder]:
        return [o for o in self._orders.values() if o.is_active]

    async def get_active_orders(self, user_id: str) -> List[LimitOrder]:
        return [o for o in self._orders.values() if o.user_id == user_id and o.is_active]

    async def get_order(self, order_id: str) -> Optional[LimitOrder]:
        return self._orders.get(order_id)

    async def create_order(self, order: LimitOrder) -> LimitOrder:
        async with self._lock:
            self._orders[order.id] = order
            return order

    async def update_order_status(self, order_id: str, status: OrderStatus) -> bool:
        """Transition an active order. Missing or inactive orders are left alone."""
        async with self._lock:
            order = self._orders.get(order_id)
            if order is None or not order.is_active:
                logger.debug(f"Order {order_id} not active, status update to {status.value} skipped")
                return False
            order.status = status
            return True

    async def cancel_orders_for_position(self, position_id: str) -> int:
        async with self._lock:
            cancelled = 0
            for order in self._orders.values():
                if order.position_id == position_id and order.is_active:
                    order.status = OrderStatus.CANCELLED
                    cancelled += 1
            return cancelled

    # Trade history

    async def create_transaction(self, record: TransactionRecord) -> TransactionRecord:
        async with self._lock:
            self._transactions.append(record)
            return record

    async def get_transactions(self, user_id: str) -> List[TransactionRecord]:
        return [t for t in self._transactions if t.user_id == user_id]
