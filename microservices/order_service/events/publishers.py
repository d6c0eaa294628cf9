"""
Order Service Event Publishers

Functions to publish events from order service
"""

import logging
from typing import Optional

from core.nats_client import Event, EventType, ServiceSource
from ..models import Order, PaymentDescriptor
from .models import (
    OrderCreatedEvent,
    OrderPaidEvent,
    OrderDeliveredEvent,
    OrderDeletedEvent,
    OrderPaymentLinkCreatedEvent,
)

logger = logging.getLogger(__name__)


async def _publish(event_bus, event_type: EventType, source: ServiceSource, data: dict, order_id: str) -> bool:
    if not event_bus:
        logger.debug(f"Event bus not available, skipping {event_type.value} event")
        return False

    try:
        event = Event(
            event_type=event_type,
            source=source,
            data=data,
            subject=order_id,
        )
        result = await event_bus.publish_event(event)
        if result is False:
            logger.warning(f"Event bus rejected {event_type.value} event for order {order_id}")
            return False
        logger.info(f"Published {event_type.value} event for order {order_id}")
        return True

    except Exception as e:
        logger.error(f"Failed to publish {event_type.value} event: {e}")
        return False


async def publish_order_created(event_bus, order: Order) -> bool:
    """Publish order.created event"""
    event_data = OrderCreatedEvent(
        order_id=order.order_id,
        order_code=order.order_code,
        requester_key=order.requester.key,
        requester_kind=order.requester.kind,
        total_price=order.total_price,
        product_ids=[line.product for line in order.products],
        payment_method=order.payment_method,
    )
    return await _publish(
        event_bus, EventType.ORDER_CREATED, ServiceSource.ORDER_SERVICE,
        event_data.model_dump(mode='json'), order.order_id
    )


async def publish_order_paid(event_bus, order: Order, source: str = "staff") -> bool:
    """Publish order.paid event"""
    event_data = OrderPaidEvent(
        order_id=order.order_id,
        order_code=order.order_code,
        requester_key=order.requester.key,
        total_price=order.total_price,
        paid_at=order.paid_at,
        source=source,
    )
    event_source = (
        ServiceSource.PAYMENT_PROVIDER if source == "webhook" else ServiceSource.ORDER_SERVICE
    )
    return await _publish(
        event_bus, EventType.ORDER_PAID, event_source,
        event_data.model_dump(mode='json'), order.order_id
    )


async def publish_order_delivered(event_bus, order: Order) -> bool:
    """Publish order.delivered event"""
    event_data = OrderDeliveredEvent(
        order_id=order.order_id,
        requester_key=order.requester.key,
        delivered_at=order.delivered_at,
    )
    return await _publish(
        event_bus, EventType.ORDER_DELIVERED, ServiceSource.ORDER_SERVICE,
        event_data.model_dump(mode='json'), order.order_id
    )


async def publish_order_deleted(event_bus, order: Order, deleted_by: Optional[str] = None) -> bool:
    """Publish order.deleted event"""
    event_data = OrderDeletedEvent(
        order_id=order.order_id,
        requester_key=order.requester.key,
        deleted_at=order.deleted_at,
        deleted_by=deleted_by,
    )
    return await _publish(
        event_bus, EventType.ORDER_DELETED, ServiceSource.ORDER_SERVICE,
        event_data.model_dump(mode='json'), order.order_id
    )


async def publish_payment_link_created(event_bus, order: Order, payment: PaymentDescriptor) -> bool:
    """Publish order.payment_link_created event"""
    event_data = OrderPaymentLinkCreatedEvent(
        order_id=order.order_id,
        order_code=payment.order_code,
        payment_link_id=payment.payment_link_id,
        amount=payment.amount,
        attempt=order.payment_attempts,
    )
    return await _publish(
        event_bus, EventType.ORDER_PAYMENT_LINK_CREATED, ServiceSource.ORDER_SERVICE,
        event_data.model_dump(mode='json'), order.order_id
    )
