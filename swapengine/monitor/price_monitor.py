"""
Order Monitor
=============

Background loop that watches prices for every active stop-loss/take-profit
order and liquidates the position when a trigger condition holds.

Each tick:
1. Load active orders, group them by position
2. Load the positions of every user with an active order
3. One batched price fetch for all distinct tokens (cache bypassed)
4. Evaluate positions concurrently; at most one order fires per position per tick

On trigger the on-chain balance is authoritative. The stored position amount
is only a hint, and a zero or unknown balance cancels the order and purges
the position without selling.

Usage:
    monitor = OrderMonitor(store, router, token_info, rpc, signer_factory)
    await monitor.start()
    order = await monitor.create_stop_loss(user_id, position_id, trigger_price=0.00012)
    ...
    await monitor.stop()
"""
import asyncio
import inspect
import logging
from collections import defaultdict
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..core.config import MonitorConfig
from ..execution.venue import TradeOptions
from ..interfaces import BalanceReader, Signer, TradeStore
from ..models import (
    LimitOrder, OrderStatus, OrderType, Position, TokenInfo,
    TransactionRecord, TriggerResult, WalletRecord, lamports_to_sol,
)

logger = logging.getLogger(__name__)

OrderCallback = Callable[[LimitOrder, TriggerResult], Any]
ErrorCallback = Callable[[Exception], Any]


async def _maybe_await(value):
    if inspect.isawaitable(value):
        return await value
    return value


class OrderMonitor:
    """Stop-loss / take-profit engine."""

    def __init__(
        self,
        store: TradeStore,
        router,
        token_info,
        balances: BalanceReader,
        signer_factory: Callable[[WalletRecord], Signer],
        config: Optional[MonitorConfig] = None,
        on_order_triggered: Optional[OrderCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.router = router
        self.token_info = token_info
        self.balances = balances
        self.signer_factory = signer_factory
        self.config = config or MonitorConfig()
        self.on_order_triggered = on_order_triggered
        self.on_error = on_error
        self._sleep = sleep

        self._running = False
        self._checking = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start the monitoring loop. No-op if already running."""
        if self._running:
            return
        self._running = True
        logger.info(f"[MONITOR] Started (interval {self.config.check_interval}s)")
        self._task = asyncio.create_task(self._run())

    async def stop(self):
        """Stop the monitoring loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("[MONITOR] Stopped")

    async def _run(self):
        while self._running:
            try:
                await self.check_prices()
            except Exception as e:
                await self._report(e)
            await self._sleep(self.config.check_interval)

    async def _report(self, error: Exception):
        logger.error(f"[MONITOR] {error.__class__.__name__}: {error}")
        if self.on_error is None:
            return
        try:
            await _maybe_await(self.on_error(error))
        except Exception as e:
            logger.error(f"[MONITOR] Error handler failed: {e}")

    async def check_prices(self) -> int:
        """
        Run one tick.

        Returns:
            Number of orders triggered (overlapping calls return 0)
        """
        if self._checking:
            logger.debug("[MONITOR] Previous tick still running, skipping")
            return 0

        self._checking = True
        try:
            return await self._tick()
        finally:
            self._checking = False

    async def _tick(self) -> int:
        orders = await self.store.get_all_active_orders()
        if not orders:
            return 0

        by_position: Dict[str, List[LimitOrder]] = defaultdict(list)
        for order in orders:
            by_position[order.position_id].append(order)

        users = sorted({o.user_id for o in orders})
        per_user = await asyncio.gather(*(self.store.get_positions(u) for u in users))
        positions = {p.id: p for user_positions in per_user for p in user_positions}

        tracked = []
        for position_id in by_position:
            position = positions.get(position_id)
            if position is None:
                logger.warning(f"[MONITOR] Position {position_id} missing for {len(by_position[position_id])} order(s)")
                continue
            tracked.append(position)

        if not tracked:
            return 0

        mints = sorted({p.token_address for p in tracked})
        infos = await self.token_info.get_token_infos(mints, force_refresh=True)

        results = await asyncio.gather(
            *(self._evaluate(p, by_position[p.id], infos.get(p.token_address)) for p in tracked),
            return_exceptions=True,
        )

        triggered = 0
        for result in results:
            if isinstance(result, Exception):
                await self._report(result)
            elif result:
                triggered += 1

        logger.debug(f"[MONITOR] Tick: {len(orders)} orders, {len(tracked)} positions, {triggered} triggered")
        return triggered

    async def _evaluate(
        self,
        position: Position,
        orders: List[LimitOrder],
        info: Optional[TokenInfo],
    ) -> bool:
        if info is None or info.price_usd <= 0:
            logger.debug(f"[MONITOR] No price for {position.token_address[:8]}..., skipping")
            return False

        for order in orders:
            if order.should_trigger(info.price_usd):
                logger.info(
                    f"[MONITOR] {order.order_type.value} {order.id} hit: "
                    f"${info.price_usd:.8f} vs trigger ${order.trigger_price:.8f}"
                )
                await self.trigger_order(order, position, info)
                return True
        return False

    async def trigger_order(
        self,
        order: LimitOrder,
        position: Position,
        info: Optional[TokenInfo] = None,
    ) -> TriggerResult:
        """
        Liquidate `sell_percentage` of the on-chain balance for a triggered order.

        Raises:
            Store, balance or signer failures propagate; the order stays active.
        """
        wallet = await self.store.get_wallet(order.user_id)
        if wallet is None:
            raise LookupError(f"No wallet for user {order.user_id}")

        balance = await self.balances.get_token_balance(wallet.public_address, position.token_address)
        if balance is None or balance.amount <= 0:
            logger.warning(
                f"[MONITOR] No on-chain balance for {position.token_address[:8]}..., "
                f"cancelling order {order.id} and closing position {position.id}"
            )
            await self.store.update_order_status(order.id, OrderStatus.CANCELLED)
            await self.store.delete_position(position.id)
            result = TriggerResult(success=False, sold_amount=0.0, error="No token balance", cancelled=True)
            await self._notify(order, result)
            return result

        if abs(balance.amount - position.amount) > self.config.mismatch_tolerance:
            logger.warning(
                f"[MONITOR] Balance mismatch for {position.id}: "
                f"stored {position.amount}, on-chain {balance.amount}"
            )

        sell_amount = balance.amount * order.sell_percentage / 100
        signer = self.signer_factory(wallet)
        opts = TradeOptions(slippage_bps=self.config.slippage_bps, urgency=self.config.urgency)

        execution = await self.router.sell(
            position.token_address, sell_amount, balance.decimals, signer, opts,
        )

        # Triggered orders never re-fire, whatever the sell outcome
        await self.store.update_order_status(order.id, OrderStatus.TRIGGERED)

        await self._sleep(self.config.settle_delay)
        await self._reconcile(wallet, position)

        received_sol = lamports_to_sol(execution.output_amount) if execution.success else 0.0
        await self.store.create_transaction(TransactionRecord(
            user_id=order.user_id,
            type='sell',
            token_address=position.token_address,
            token_symbol=position.token_symbol,
            status='success' if execution.success else 'failed',
            amount_tokens=sell_amount,
            amount_sol=received_sol if execution.success else None,
            price_usd=info.price_usd if info else None,
            tx_signature=execution.signature,
            dex_used=execution.venue.value if execution.venue else None,
            error_message=execution.error,
        ))

        if execution.success:
            logger.info(
                f"[MONITOR] Sold {sell_amount} {position.token_symbol or position.token_address[:8]} "
                f"for {received_sol:.6f} SOL ({execution.signature[:16]}...)"
            )
        else:
            logger.error(f"[MONITOR] Sell for order {order.id} failed: {execution.error}")

        result = TriggerResult(
            success=execution.success,
            sold_amount=sell_amount if execution.success else 0.0,
            received_sol=received_sol,
            signature=execution.signature,
            error=execution.error,
        )
        await self._notify(order, result)
        return result

    async def _reconcile(self, wallet: WalletRecord, position: Position):
        """Persist the on-chain balance, closing the position at dust."""
        balance = await self.balances.get_token_balance(wallet.public_address, position.token_address)
        remaining = balance.amount if balance else 0.0

        if remaining <= self.config.dust_threshold:
            await self.store.delete_position(position.id)
            cancelled = await self.store.cancel_orders_for_position(position.id)
            logger.info(f"[MONITOR] Position {position.id} closed ({cancelled} sibling order(s) cancelled)")
        else:
            await self.store.upsert_position(replace(position, amount=remaining))
            logger.info(f"[MONITOR] Position {position.id} updated to {remaining}")

    async def _notify(self, order: LimitOrder, result: TriggerResult):
        if self.on_order_triggered is None:
            return
        try:
            await _maybe_await(self.on_order_triggered(order, result))
        except Exception as e:
            await self._report(e)

    # Order management

    async def _create_order(
        self,
        order_type: OrderType,
        user_id: str,
        position_id: str,
        trigger_price: float,
        sell_percentage: float,
    ) -> LimitOrder:
        position = await self.store.get_position(position_id)
        if position is None or position.user_id != user_id:
            raise ValueError(f"Position {position_id} not found for user {user_id}")

        order = LimitOrder(
            user_id=user_id,
            position_id=position_id,
            order_type=order_type,
            trigger_price=trigger_price,
            sell_percentage=sell_percentage,
        )
        created = await self.store.create_order(order)
        logger.info(
            f"[MONITOR] {order_type.value} {created.id} on {position.token_address[:8]}... "
            f"at ${trigger_price} ({sell_percentage:g}%)"
        )
        return created

    async def create_stop_loss(
        self,
        user_id: str,
        position_id: str,
        trigger_price: float,
        sell_percentage: float = 100.0,
    ) -> LimitOrder:
        """Sell when price falls to or below `trigger_price` (USD)."""
        return await self._create_order(OrderType.STOP_LOSS, user_id, position_id, trigger_price, sell_percentage)

    async def create_take_profit(
        self,
        user_id: str,
        position_id: str,
        trigger_price: float,
        sell_percentage: float = 100.0,
    ) -> LimitOrder:
        """Sell when price rises to or above `trigger_price` (USD)."""
        return await self._create_order(OrderType.TAKE_PROFIT, user_id, position_id, trigger_price, sell_percentage)

    async def cancel_order(self, order_id: str) -> bool:
        """Cancel an order. Idempotent: inactive or unknown orders are left as they are."""
        await self.store.update_order_status(order_id, OrderStatus.CANCELLED)
        return True

    async def get_user_orders(self, user_id: str) -> List[LimitOrder]:
        return await self.store.get_active_orders(user_id)
