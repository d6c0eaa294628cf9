"""
Order Service Events Module

Exports all event-related functionality for order service
"""

from .models import (
    OrderCreatedEvent,
    OrderPaidEvent,
    OrderDeliveredEvent,
    OrderDeletedEvent,
    OrderPaymentLinkCreatedEvent,
)

from .publishers import (
    publish_order_created,
    publish_order_paid,
    publish_order_delivered,
    publish_order_deleted,
    publish_payment_link_created,
)

__all__ = [
    # Event Models
    "OrderCreatedEvent",
    "OrderPaidEvent",
    "OrderDeliveredEvent",
    "OrderDeletedEvent",
    "OrderPaymentLinkCreatedEvent",
    # Publishers
    "publish_order_created",
    "publish_order_paid",
    "publish_order_delivered",
    "publish_order_deleted",
    "publish_payment_link_created",
]
