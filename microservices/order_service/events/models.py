"""
Order Service Event Models

Pydantic models for events published by order service
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime, timezone
from decimal import Decimal


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderCreatedEvent(BaseModel):
    """Event published when order is created"""
    order_id: str
    order_code: int
    requester_key: str
    requester_kind: str
    total_price: Decimal
    product_ids: List[str] = []
    payment_method: str
    timestamp: datetime = Field(default_factory=_utcnow)


class OrderPaidEvent(BaseModel):
    """Event published when order is marked paid"""
    order_id: str
    order_code: int
    requester_key: str
    total_price: Decimal
    paid_at: datetime
    source: str = "staff"
    timestamp: datetime = Field(default_factory=_utcnow)


class OrderDeliveredEvent(BaseModel):
    """Event published when order is marked delivered"""
    order_id: str
    requester_key: str
    delivered_at: datetime
    timestamp: datetime = Field(default_factory=_utcnow)


class OrderDeletedEvent(BaseModel):
    """Event published when order is soft-deleted"""
    order_id: str
    requester_key: str
    deleted_at: datetime
    deleted_by: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)


class OrderPaymentLinkCreatedEvent(BaseModel):
    """Event published when a payment link is issued for an order"""
    order_id: str
    order_code: int
    payment_link_id: Optional[str] = None
    amount: int
    attempt: int = 1
    timestamp: datetime = Field(default_factory=_utcnow)
