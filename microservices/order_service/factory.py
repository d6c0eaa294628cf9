"""
Order Service Factory

Factory functions for creating service instances with real dependencies.
This is the ONLY place that imports I/O-dependent modules.

Usage:
    from .factory import create_order_service
    service = create_order_service(config, db, event_bus=event_bus)
"""
from typing import Optional

from core.config import OrderServiceConfig
from core.postgres_client import PostgresClient

from .order_service import OrderService
from .protocols import PaymentGatewayProtocol


def create_order_service(
    config: OrderServiceConfig,
    db: PostgresClient,
    payment_gateway: Optional[PaymentGatewayProtocol] = None,
    event_bus=None,
) -> OrderService:
    """
    Create OrderService with real dependencies.

    This function imports the real repositories and the PayOS client (which
    have I/O dependencies). Use this in production, NOT in tests.

    Args:
        config: Order service configuration
        db: Shared PostgreSQL client
        payment_gateway: Payment adapter (defaults to a PayOSClient)
        event_bus: Event bus for publishing events

    Returns:
        Configured OrderService instance
    """
    # Import real implementations here (not at module level)
    from .order_repository import OrderRepository
    from .catalog_repository import CatalogRepository
    from .clients import PayOSClient

    return OrderService(
        repository=OrderRepository(db),
        catalog=CatalogRepository(db),
        payment_gateway=payment_gateway or PayOSClient(config.payment),
        event_bus=event_bus,
        requester_mode=config.requester_mode,
        default_return_url=config.payment.return_url,
        default_cancel_url=config.payment.cancel_url,
    )
