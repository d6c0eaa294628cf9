"""
Order Service Protocols (Interfaces)

These interfaces define contracts for dependency injection.
NO import-time I/O dependencies - safe to import anywhere.
"""
from typing import Any, Dict, List, Optional, Protocol, Set, runtime_checkable
from decimal import Decimal

# Import only models (no I/O dependencies)
from .models import (
    CatalogProduct, Order, OrderDraft, PaymentDescriptor, PaymentLinkInfo,
    PaymentLinkStatus, SalesByDate, WebhookData,
)


# ============================================================================
# Custom Exceptions - defined here to avoid importing repository
# ============================================================================

class OrderServiceError(Exception):
    """Base exception for order service errors"""
    pass


class InvalidInputError(OrderServiceError):
    """Malformed or missing request fields"""
    pass


class InvalidOrderError(InvalidInputError):
    """Cart cannot be priced (empty, non-positive quantity)"""
    pass


class ProductNotFoundError(InvalidInputError):
    """Cart references a product that does not exist"""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class PaymentValidationError(InvalidInputError):
    """Payment-link parameters rejected before calling the provider"""
    pass


class OrderNotFoundError(OrderServiceError):
    """Order not found error"""
    pass


class InvalidOrderStateError(OrderServiceError):
    """Operation not allowed in the order's current state"""
    pass


class OrderAccessDeniedError(OrderServiceError):
    """Caller may not read or act on this order"""
    pass


class PersistenceError(OrderServiceError):
    """Datastore unavailable or statement failed"""
    pass


class PaymentProviderError(OrderServiceError):
    """Payment provider call failed"""
    pass


class PaymentProviderTimeout(PaymentProviderError):
    """Payment provider call timed out; the outcome is unknown"""
    pass


class WebhookVerificationError(OrderServiceError):
    """Webhook signature did not match"""
    pass


class PaymentLinkNotCreatedError(OrderServiceError):
    """Order was persisted but no payment link could be created"""

    def __init__(self, order: Order, cause: PaymentProviderError):
        self.order = order
        self.cause = cause
        super().__init__(
            f"Order {order.order_id} was created but the payment link failed: {cause}. "
            f"Retry payment link creation for this order instead of resubmitting the cart"
        )


# ============================================================================
# Repository Protocols
# ============================================================================

@runtime_checkable
class CatalogReaderProtocol(Protocol):
    """Read-only product lookup"""

    async def resolve_many(self, product_ids: Set[str]) -> Dict[str, CatalogProduct]:
        """Return records for the ids that exist; missing ids are simply absent"""
        ...


@runtime_checkable
class OrderRepositoryProtocol(Protocol):
    """
    Interface for Order Repository.

    Implementations must provide these methods.
    Used for dependency injection to enable testing.
    """

    async def next_order_code(self) -> int:
        """Allocate a provider-unique order code"""
        ...

    async def create_order(self, draft: OrderDraft) -> Order:
        """Persist a new order"""
        ...

    async def get_order(self, order_id: str) -> Optional[Order]:
        """Get order by ID (deleted orders included)"""
        ...

    async def get_order_by_code(self, order_code: int) -> Optional[Order]:
        """Get order by any order code it has used"""
        ...

    async def list_orders(
        self,
        limit: int = 50,
        offset: int = 0,
        include_deleted: bool = False
    ) -> List[Order]:
        """List orders, newest first"""
        ...

    async def list_orders_by_requester(
        self,
        requester_key: str,
        limit: int = 50,
        offset: int = 0,
        include_deleted: bool = False
    ) -> List[Order]:
        """List orders for a requester, newest first"""
        ...

    async def set_paid(self, order_id: str) -> Optional[Order]:
        """Mark paid once; later calls leave paid_at unchanged"""
        ...

    async def set_delivered(self, order_id: str) -> Optional[Order]:
        """Mark delivered once; later calls leave delivered_at unchanged"""
        ...

    async def soft_delete(self, order_id: str) -> Optional[Order]:
        """Mark deleted once; later calls leave deleted_at unchanged"""
        ...

    async def update_payment_link(
        self,
        order_id: str,
        status: PaymentLinkStatus,
        payment_link_id: Optional[str] = None,
        order_code: Optional[int] = None,
        expected_code: Optional[int] = None
    ) -> Optional[Order]:
        """
        Record the outcome of a payment-link attempt

        With expected_code the update only applies while the order still
        carries that code; None means no such order or another attempt won.
        """
        ...

    async def count_orders(self) -> int:
        """Count active orders"""
        ...

    async def total_sales(self) -> Decimal:
        """Sum of total prices of active orders"""
        ...

    async def sales_by_date(self) -> List[SalesByDate]:
        """Paid sales grouped by paid date"""
        ...


# ============================================================================
# Event Bus Protocol
# ============================================================================

@runtime_checkable
class EventBusProtocol(Protocol):
    """Interface for Event Bus - no I/O imports"""

    async def publish_event(self, event: Any) -> None:
        """Publish an event"""
        ...


# ============================================================================
# Client Protocols
# ============================================================================

@runtime_checkable
class PaymentGatewayProtocol(Protocol):
    """Interface for the payment provider adapter"""

    def validate_link_params(
        self,
        amount: Decimal,
        description: str,
        return_url: str,
        cancel_url: str
    ) -> None:
        """Raise PaymentValidationError for parameters the provider would reject"""
        ...

    async def create_payment_link(
        self,
        order_code: int,
        amount: Decimal,
        description: str,
        return_url: str,
        cancel_url: str
    ) -> PaymentDescriptor:
        """Create a payment link"""
        ...

    async def get_payment_link(self, order_code: int) -> Optional[PaymentLinkInfo]:
        """Get an existing payment link, None if the provider has none"""
        ...

    async def cancel_payment_link(
        self,
        order_code: int,
        reason: Optional[str] = None
    ) -> PaymentLinkInfo:
        """Cancel a pending payment link"""
        ...

    async def verify_webhook(self, payload: Dict[str, Any]) -> WebhookData:
        """Verify a webhook signature and return its data block"""
        ...
