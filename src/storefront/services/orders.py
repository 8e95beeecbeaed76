"""
Order orchestration.

``OrderOrchestrator`` turns a user id and a set of (product, quantity) pairs
into a persisted order, and reverses that order on cancellation. Each
operation is one unit of work: it either applies every stock and balance
change or none of them.

Locks are always taken in the same order, products by ascending id and then
the user, so concurrent multi-item orders and cancellations cannot wait on
each other in a cycle.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from storefront.domain.base import require_positive
from storefront.domain.order import Order, OrderLine
from storefront.exceptions import InvalidStateError, ValidationError
from storefront.observability import (
    ATTR_AMOUNT,
    ATTR_ITEM_COUNT,
    ATTR_ORDER_ID,
    ATTR_ORDER_STATUS,
    ATTR_USER_ID,
    Tracer,
    create_tracer,
)
from storefront.services.points import PointLedger
from storefront.services.stock import StockManager
from storefront.stores.interface import Database

logger = logging.getLogger(__name__)


class OrderOrchestrator:
    """
    Creates, pays and cancels orders atomically.

    Balance is debited when an order is created, so ``pay_order`` only moves
    the status forward and ``cancel_order`` always refunds the frozen total.

    Example:
        >>> orders = OrderOrchestrator(database)
        >>> order = await orders.create_order(user.id, {pen.id: 2, ink.id: 1})
        >>> await orders.pay_order(order.id)
        >>> await orders.cancel_order(order.id)  # stock and points come back
    """

    def __init__(
        self,
        database: Database,
        stock: StockManager | None = None,
        ledger: PointLedger | None = None,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            database: Storage backend providing units of work
            stock: Stock manager (created with the same tracer if omitted)
            ledger: Point ledger (created with the same tracer if omitted)
            tracer: Optional custom Tracer instance
            enable_tracing: If True and OpenTelemetry is available, emit traces.
                Ignored if tracer is explicitly provided.
        """
        self._database = database
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._stock = stock or StockManager(tracer=self._tracer)
        self._ledger = ledger or PointLedger(tracer=self._tracer)

    async def create_order(self, user_id: int, items: Mapping[int, int]) -> Order:
        """
        Create an order, reserving stock and debiting the total.

        Input is validated before any row is touched, so malformed requests
        never take a lock.

        Args:
            user_id: Ordering user
            items: Quantity per product id (non-empty, quantities > 0)

        Returns:
            The persisted PENDING order

        Raises:
            ValidationError: If items is empty or a quantity is not positive
            NotFoundError: If the user or any product does not exist
            InsufficientStockError: If a product has fewer units than ordered
            InsufficientBalanceError: If the user cannot pay the total
            LockTimeoutError: If a row lock could not be acquired in time
        """
        if not items:
            raise ValidationError("order requires at least one item", field="items")
        for quantity in items.values():
            require_positive(quantity, "quantity")

        with self._tracer.span(
            "storefront.order.create",
            {ATTR_USER_ID: user_id, ATTR_ITEM_COUNT: len(items)},
        ):
            async with self._database.transaction() as uow:
                await uow.users.find(user_id)

                lines = []
                for product_id in sorted(items):
                    quantity = items[product_id]
                    product = await self._stock.decrease(uow, product_id, quantity)
                    lines.append(OrderLine(product_id, quantity, product.price))

                order = Order.create(user_id, lines)
                if order.total_amount > 0:
                    await self._ledger.debit(uow, user_id, order.total_amount)

                order = await uow.orders.save(order)

        logger.info(
            "Created order %s for user %s: %d items, total %d",
            order.id,
            user_id,
            len(order.items),
            order.total_amount,
            extra={"order_id": order.id, "user_id": user_id},
        )
        return order

    async def get_order(self, order_id: int) -> Order:
        async with self._database.transaction() as uow:
            return await uow.orders.find(order_id)

    async def get_orders_by_user(self, user_id: int) -> list[Order]:
        """
        All orders of a user, oldest first.

        Raises:
            NotFoundError: If the user does not exist
        """
        async with self._database.transaction() as uow:
            await uow.users.find(user_id)
            return await uow.orders.find_by_user(user_id)

    async def pay_order(self, order_id: int) -> Order:
        """
        Mark a PENDING order as PAID.

        Raises:
            NotFoundError: If the order does not exist
            InvalidStateError: If the order is not PENDING
        """
        with self._tracer.span("storefront.order.pay", {ATTR_ORDER_ID: order_id}):
            async with self._database.transaction() as uow:
                order = await uow.orders.find_for_update(order_id)
                try:
                    order.pay()
                except InvalidStateError:
                    logger.info(
                        "Rejected payment of order %s in status %s", order_id, order.status.value
                    )
                    raise
                order = await uow.orders.save(order)

        logger.info("Paid order %s", order_id, extra={"order_id": order_id})
        return order

    async def cancel_order(self, order_id: int) -> Order:
        """
        Cancel an order, restoring stock and refunding the frozen total.

        Raises:
            NotFoundError: If the order does not exist
            InvalidStateError: If the order is already CANCELLED
            LockTimeoutError: If a row lock could not be acquired in time
        """
        with self._tracer.span("storefront.order.cancel", {ATTR_ORDER_ID: order_id}) as span:
            async with self._database.transaction() as uow:
                order = await uow.orders.find_for_update(order_id)
                if order.is_cancelled:
                    logger.info("Rejected cancellation of already cancelled order %s", order_id)
                    raise InvalidStateError(order.id, order.status.value, "cancel")

                for product_id, quantity in sorted(order.product_quantities.items()):
                    await self._stock.increase(uow, product_id, quantity)

                if order.total_amount > 0:
                    await self._ledger.credit(uow, order.user_id, order.total_amount)

                previous = order.cancel()
                order = await uow.orders.save(order)

            if span is not None:
                span.set_attribute(ATTR_ORDER_STATUS, previous.value)
                span.set_attribute(ATTR_AMOUNT, order.total_amount)

        logger.info(
            "Cancelled order %s (was %s), refunded %d",
            order_id,
            previous.value,
            order.total_amount,
            extra={"order_id": order_id, "user_id": order.user_id},
        )
        return order
