"""
NATS JetStream Client for the Order Service

Event-driven communication with downstream consumers (fulfillment,
notifications, analytics). Publishing is best-effort: a failed publish is
logged and reported as False, never raised into the request path.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

import nats
from nats.aio.client import Client as NATSClient
from nats.js import JetStreamContext

logger = logging.getLogger(__name__)


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that keeps Decimal amounts exact as strings"""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return str(obj)
        return super().default(obj)


class EventType(Enum):
    """Event types published by the order service"""

    ORDER_CREATED = "order.created"
    ORDER_PAID = "order.paid"
    ORDER_DELIVERED = "order.delivered"
    ORDER_DELETED = "order.deleted"
    ORDER_PAYMENT_LINK_CREATED = "order.payment_link_created"


class ServiceSource(Enum):
    """Event sources"""

    ORDER_SERVICE = "order_service"
    PAYMENT_PROVIDER = "payment_provider"


class Event:
    """Event model"""

    def __init__(
        self,
        event_type: EventType,
        source: ServiceSource,
        data: Dict[str, Any],
        subject: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ):
        self.id = str(uuid.uuid4())
        self.type = event_type.value
        self.source = source.value
        self.data = data
        self.subject = subject
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.metadata = metadata or {}
        self.version = "1.0.0"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "source": self.source,
            "subject": self.subject,
            "timestamp": self.timestamp,
            "data": self.data,
            "metadata": self.metadata,
            "version": self.version,
        }


class NATSEventBus:
    """
    NATS JetStream event bus.

    Events are published on their type as subject (e.g. "order.paid") into a
    stream named after the subject prefix ("order-stream").
    """

    def __init__(self, service_name: str, url: str):
        self.service_name = service_name
        self.url = url
        self._nc: Optional[NATSClient] = None
        self._js: Optional[JetStreamContext] = None
        self._streams: set = set()

        logger.info(f"NATS EventBus initialized: {self.url}")

    async def connect(self):
        """Connect to NATS and open a JetStream context"""
        self._nc = await nats.connect(self.url, name=self.service_name)
        self._js = self._nc.jetstream()
        logger.info(f"Connected to NATS as {self.service_name}")

    async def _ensure_stream(self, event_type: str) -> str:
        prefix = event_type.split('.')[0]
        stream_name = f"{prefix}-stream"
        if stream_name not in self._streams:
            await self._js.add_stream(name=stream_name, subjects=[f"{prefix}.>"])
            self._streams.add(stream_name)
        return stream_name

    async def publish_event(self, event: Event) -> bool:
        """Publish an event to JetStream"""
        if not self.is_connected:
            logger.error("Not connected to NATS")
            return False

        try:
            stream_name = await self._ensure_stream(event.type)
            data = json.dumps(event.to_dict(), cls=DecimalEncoder).encode()
            ack = await self._js.publish(event.type, data, stream=stream_name)
            logger.info(f"Published event {event.type} [{event.id}] to stream {stream_name}, seq={ack.seq}")
            return True
        except Exception as e:
            logger.error(f"Error publishing event {event.id}: {e}")
            return False

    async def close(self):
        """Drain and close the NATS connection"""
        if self._nc is not None:
            await self._nc.drain()
            self._nc = None
            self._js = None
        logger.info("Disconnected from NATS")

    @property
    def is_connected(self) -> bool:
        return self._nc is not None and self._nc.is_connected


async def get_event_bus(service_name: str, url: str) -> NATSEventBus:
    """
    Create and connect an event bus.

    Args:
        service_name: Name of the service using the event bus
        url: NATS server URL

    Returns:
        Connected NATSEventBus
    """
    event_bus = NATSEventBus(service_name=service_name, url=url)
    await event_bus.connect()
    return event_bus


__all__ = ["Event", "EventType", "ServiceSource", "NATSEventBus", "get_event_bus"]
