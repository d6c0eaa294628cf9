"""
Order Status Reconciliation

Paid and delivered transitions, shared by the PayOS webhook and authenticated
staff actions. Transitions are idempotent: repeating one returns the order
unchanged, keeps the original timestamp and publishes nothing.
"""

import logging

from .models import Order
from .protocols import OrderNotFoundError, OrderRepositoryProtocol
from .events.publishers import publish_order_delivered, publish_order_paid

logger = logging.getLogger(__name__)


class StatusReconciler:
    """Applies paid/delivered flags to stored orders"""

    def __init__(self, repository: OrderRepositoryProtocol, event_bus=None):
        self.repository = repository
        self.event_bus = event_bus

    async def mark_paid(self, order_id: str, source: str = "staff") -> Order:
        """
        Mark an order paid

        Raises:
            OrderNotFoundError: no order with this id
        """
        before = await self.repository.get_order(order_id)
        if before is None:
            raise OrderNotFoundError(f"Order not found: {order_id}")
        if before.is_paid:
            logger.info(f"Order {order_id} already paid at {before.paid_at}")
            return before

        order = await self.repository.set_paid(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order not found: {order_id}")

        # A concurrent call may have won the conditional update
        if order.paid_at != before.paid_at:
            logger.info(f"Order {order_id} marked paid ({source})")
            await publish_order_paid(self.event_bus, order, source=source)
        return order

    async def mark_paid_by_code(self, order_code: int) -> Order:
        """
        Mark paid the order that used this provider order code

        Raises:
            OrderNotFoundError: no order ever used this code
        """
        order = await self.repository.get_order_by_code(order_code)
        if order is None:
            logger.warning(f"Payment confirmation for unknown order code {order_code}")
            raise OrderNotFoundError(f"No order for order code {order_code}")
        return await self.mark_paid(order.order_id, source="webhook")

    async def mark_delivered(self, order_id: str) -> Order:
        """
        Mark an order delivered

        Raises:
            OrderNotFoundError: no order with this id
        """
        before = await self.repository.get_order(order_id)
        if before is None:
            raise OrderNotFoundError(f"Order not found: {order_id}")
        if before.is_delivered:
            logger.info(f"Order {order_id} already delivered at {before.delivered_at}")
            return before

        order = await self.repository.set_delivered(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order not found: {order_id}")

        if order.delivered_at != before.delivered_at:
            logger.info(f"Order {order_id} marked delivered")
            await publish_order_delivered(self.event_bus, order)
        return order
