"""
Order Service Business Logic

Sequences order creation (pricing, persistence, payment link), re-issues
payment links for existing orders and serves the read, delete and statistics
operations of the order API.
"""

from typing import List, Optional, Sequence
from decimal import Decimal
import logging

from core.auth_dependencies import CallerContext
from .models import (
    AuthenticatedUser, Order, OrderCreateRequest, OrderCreatedResponse,
    OrderDraft, OrderLineView, OrderView, PaymentLinkCreateRequest,
    PaymentLinkStatus, ProviderLinkStatus, SalesByDate, StaffEntered,
    WebhookAck, WebhookPayload,
)
from .pricing import PricingEngine
from .protocols import (
    CatalogReaderProtocol,
    InvalidInputError,
    InvalidOrderStateError,
    OrderAccessDeniedError,
    OrderNotFoundError,
    OrderRepositoryProtocol,
    PaymentGatewayProtocol,
    PaymentLinkNotCreatedError,
    PaymentProviderError,
    PaymentProviderTimeout,
    PersistenceError,
)
from .reconciliation import StatusReconciler
from .events.publishers import (
    publish_order_created,
    publish_order_deleted,
    publish_payment_link_created,
)

logger = logging.getLogger(__name__)

DEFAULT_PAYMENT_DESCRIPTION = "Order payment"

# Previous attempts whose link may still be live at the provider; a failed
# call can still have created the link
_POSSIBLY_LIVE_LINK = {
    PaymentLinkStatus.PENDING,
    PaymentLinkStatus.CREATED,
    PaymentLinkStatus.UNKNOWN,
    PaymentLinkStatus.FAILED,
}

_CANCELLABLE_PROVIDER_STATUS = {
    ProviderLinkStatus.PENDING,
    ProviderLinkStatus.PROCESSING,
    ProviderLinkStatus.UNDERPAID,
}


class OrderService:
    """
    Order orchestration business logic

    Handles creation and payment-link coordination; delegates flag
    transitions to the StatusReconciler.
    """

    def __init__(
        self,
        repository: OrderRepositoryProtocol,
        catalog: CatalogReaderProtocol,
        payment_gateway: PaymentGatewayProtocol,
        event_bus=None,
        requester_mode: str = "user",
        default_return_url: str = "",
        default_cancel_url: str = ""
    ):
        """
        Initialize Order Service

        Args:
            repository: Order store
            catalog: Product lookups for pricing and display names
            payment_gateway: Payment provider adapter
            event_bus: NATS event bus instance (optional)
            requester_mode: "user" or "staff"
            default_return_url: Used when a request carries no returnUrl
            default_cancel_url: Used when a request carries no cancelUrl
        """
        self.repository = repository
        self.catalog = catalog
        self.payment_gateway = payment_gateway
        self.event_bus = event_bus
        self.requester_mode = requester_mode
        self.default_return_url = default_return_url
        self.default_cancel_url = default_cancel_url

        self.pricing = PricingEngine(catalog)
        self.reconciler = StatusReconciler(repository, event_bus)

        logger.info(f"OrderService initialized (requester mode: {requester_mode})")

    # =========================================================================
    # Order Creation
    # =========================================================================

    async def create_order(
        self,
        request: OrderCreateRequest,
        caller: CallerContext
    ) -> OrderCreatedResponse:
        """
        Price, persist and request a payment link for a cart

        Args:
            request: Cart, shipping address and payment options
            caller: Authenticated caller

        Returns:
            The stored order and its payment descriptor

        Raises:
            InvalidInputError: rejected input or pricing, nothing persisted
            PersistenceError: the order could not be stored
            PaymentLinkNotCreatedError: the order is stored but has no link
        """
        requester = self._resolve_requester(request, caller)

        priced = await self.pricing.price(request.products)
        logger.info(
            f"Priced cart for {requester.key}: {len(priced.lines)} line(s), total {priced.total_price}"
        )

        description = request.description or DEFAULT_PAYMENT_DESCRIPTION
        return_url = request.return_url or self.default_return_url
        cancel_url = request.cancel_url or self.default_cancel_url
        self.payment_gateway.validate_link_params(
            priced.total_price, description, return_url, cancel_url
        )

        order_code = await self.repository.next_order_code()
        draft = OrderDraft(
            order_code=order_code,
            requester=requester,
            products=priced.lines,
            shipping_address=request.shipping_address,
            payment_method=request.payment_method,
            description=description,
            total_price=priced.total_price,
        )
        order = await self.repository.create_order(draft)
        logger.info(f"Persisted order {order.order_id} with order code {order.order_code}")

        await publish_order_created(self.event_bus, order)

        return await self._issue_payment_link(order, description, return_url, cancel_url)

    def _resolve_requester(self, request: OrderCreateRequest, caller: CallerContext):
        if self.requester_mode == "staff":
            label = (request.staff or "").strip()
            if not label:
                raise InvalidInputError("Staff label is required")
            return StaffEntered(label=label)
        return AuthenticatedUser(user_id=caller.user_id)

    async def request_payment_link(
        self,
        order_id: str,
        caller: CallerContext,
        request: Optional[PaymentLinkCreateRequest] = None
    ) -> OrderCreatedResponse:
        """
        Issue a new payment link for an existing unpaid order

        A link from a previous attempt that may still be live is looked up at
        the provider first: a paid link settles the order, a pending one is
        cancelled before the new link is created under a fresh order code.

        Raises:
            OrderNotFoundError: no such order
            OrderAccessDeniedError: caller does not own the order
            InvalidOrderStateError: order is paid or deleted
            PaymentLinkNotCreatedError: provider failed again
        """
        request = request or PaymentLinkCreateRequest()
        order = await self._get_accessible_order(order_id, caller)
        self._ensure_payable(order)

        description = request.description or order.description or DEFAULT_PAYMENT_DESCRIPTION
        return_url = request.return_url or self.default_return_url
        cancel_url = request.cancel_url or self.default_cancel_url
        self.payment_gateway.validate_link_params(
            order.total_price, description, return_url, cancel_url
        )

        if order.payment_link_status in _POSSIBLY_LIVE_LINK:
            await self._settle_previous_link(order)

        order_code = await self.repository.next_order_code()
        claimed = await self.repository.update_payment_link(
            order.order_id,
            PaymentLinkStatus.PENDING,
            order_code=order_code,
            expected_code=order.order_code,
        )
        if claimed is None:
            logger.warning(f"Concurrent payment link request for order {order.order_id} lost the race")
            raise InvalidOrderStateError(
                f"A payment link for order {order.order_id} is already being requested"
            )
        order = claimed
        logger.info(
            f"Retrying payment link for order {order.order_id} "
            f"(attempt {order.payment_attempts}, order code {order_code})"
        )

        return await self._issue_payment_link(order, description, return_url, cancel_url)

    def _ensure_payable(self, order: Order) -> None:
        if order.is_deleted:
            raise InvalidOrderStateError(f"Order {order.order_id} has been deleted")
        if order.is_paid:
            raise InvalidOrderStateError(f"Order {order.order_id} is already paid")

    async def _settle_previous_link(self, order: Order) -> None:
        """Resolve the provider-side state of the order's current link"""
        link = await self.payment_gateway.get_payment_link(order.order_code)
        if link is None:
            return

        if link.status == ProviderLinkStatus.PAID:
            await self.reconciler.mark_paid(order.order_id, source="provider")
            raise InvalidOrderStateError(f"Order {order.order_id} is already paid")

        if link.status in _CANCELLABLE_PROVIDER_STATUS:
            await self.payment_gateway.cancel_payment_link(
                order.order_code, reason="Superseded by a new payment link"
            )
            logger.info(f"Cancelled previous payment link {order.order_code} for order {order.order_id}")

    async def _issue_payment_link(
        self,
        order: Order,
        description: str,
        return_url: str,
        cancel_url: str
    ) -> OrderCreatedResponse:
        try:
            payment = await self.payment_gateway.create_payment_link(
                order_code=order.order_code,
                amount=order.total_price,
                description=description,
                return_url=return_url,
                cancel_url=cancel_url,
            )
        except PaymentProviderTimeout as e:
            logger.warning(f"Payment link for order {order.order_id} timed out, outcome unknown")
            order = await self._record_link_failure(order, PaymentLinkStatus.UNKNOWN)
            raise PaymentLinkNotCreatedError(order, e) from e
        except PaymentProviderError as e:
            logger.error(f"Payment link for order {order.order_id} failed: {e}")
            order = await self._record_link_failure(order, PaymentLinkStatus.FAILED)
            raise PaymentLinkNotCreatedError(order, e) from e

        updated = await self.repository.update_payment_link(
            order.order_id, PaymentLinkStatus.CREATED, payment_link_id=payment.payment_link_id
        )
        order = updated or order
        logger.info(f"Payment link {payment.payment_link_id} created for order {order.order_id}")

        await publish_payment_link_created(self.event_bus, order, payment)
        return OrderCreatedResponse(order=order, payment_data=payment)

    async def _record_link_failure(self, order: Order, status: PaymentLinkStatus) -> Order:
        """Best-effort bookkeeping; the order itself is already stored"""
        try:
            updated = await self.repository.update_payment_link(order.order_id, status)
        except PersistenceError as e:
            logger.error(f"Could not record payment link status for order {order.order_id}: {e}")
            return order
        return updated or order

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_order(self, order_id: str, caller: CallerContext) -> OrderView:
        """Get one order (deleted orders included)"""
        order = await self._get_accessible_order(order_id, caller)
        views = await self._to_views([order])
        return views[0]

    async def list_orders(
        self,
        limit: int = 50,
        offset: int = 0,
        include_deleted: bool = False
    ) -> List[OrderView]:
        """List all orders, newest first"""
        orders = await self.repository.list_orders(
            limit=limit, offset=offset, include_deleted=include_deleted
        )
        return await self._to_views(orders)

    async def list_orders_for_requester(
        self,
        requester_id: str,
        caller: CallerContext,
        limit: int = 50,
        offset: int = 0
    ) -> List[OrderView]:
        """List a requester's orders; non-staff callers may only list their own"""
        if not caller.is_staff and requester_id != caller.user_id:
            raise OrderAccessDeniedError("Cannot list another requester's orders")
        orders = await self.repository.list_orders_by_requester(
            requester_id, limit=limit, offset=offset
        )
        return await self._to_views(orders)

    async def list_my_orders(
        self,
        caller: CallerContext,
        limit: int = 50,
        offset: int = 0
    ) -> List[OrderView]:
        """List the caller's own orders"""
        return await self.list_orders_for_requester(
            caller.user_id, caller, limit=limit, offset=offset
        )

    async def _get_accessible_order(self, order_id: str, caller: CallerContext) -> Order:
        order = await self.repository.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order not found: {order_id}")
        if not caller.is_staff and not self._is_owner(order, caller):
            raise OrderAccessDeniedError(f"Access denied to order {order_id}")
        return order

    @staticmethod
    def _is_owner(order: Order, caller: CallerContext) -> bool:
        return order.requester.kind == "user" and order.requester.key == caller.user_id

    async def _to_views(self, orders: Sequence[Order]) -> List[OrderView]:
        """Attach current catalog names for display"""
        product_ids = {line.product for order in orders for line in order.products}
        try:
            catalog = await self.catalog.resolve_many(product_ids)
        except PersistenceError as e:
            logger.warning(f"Catalog unavailable for display names, using snapshots: {e}")
            catalog = {}

        views = []
        for order in orders:
            lines = [
                OrderLineView(
                    **line.model_dump(),
                    display_name=catalog[line.product].name if line.product in catalog else line.name,
                )
                for line in order.products
            ]
            views.append(OrderView(**{**order.model_dump(), "products": lines}))
        return views

    # =========================================================================
    # Status Transitions
    # =========================================================================

    async def mark_paid(self, order_id: str) -> Order:
        """Mark an order paid (staff); customers are settled by the webhook"""
        return await self.reconciler.mark_paid(order_id, source="staff")

    async def mark_delivered(self, order_id: str) -> Order:
        """Mark an order delivered (staff)"""
        return await self.reconciler.mark_delivered(order_id)

    async def soft_delete_order(self, order_id: str, caller: Optional[CallerContext] = None) -> Order:
        """
        Soft-delete an order (staff); repeating it is a no-op

        Raises:
            OrderNotFoundError: no such order
        """
        before = await self.repository.get_order(order_id)
        if before is None:
            raise OrderNotFoundError(f"Order not found: {order_id}")

        order = await self.repository.soft_delete(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order not found: {order_id}")

        if not before.is_deleted and order.is_deleted:
            logger.info(f"Order {order_id} soft-deleted")
            await publish_order_deleted(
                self.event_bus, order, deleted_by=caller.user_id if caller else None
            )
        return order

    async def handle_payment_webhook(self, payload: WebhookPayload) -> WebhookAck:
        """
        Verify a PayOS webhook and reconcile the paid flag

        Raises:
            WebhookVerificationError: signature mismatch
        """
        data = await self.payment_gateway.verify_webhook(
            payload.model_dump(by_alias=True, exclude_none=True)
        )
        if payload.code != "00" or not data.is_success:
            logger.info(f"Ignoring non-success webhook for order code {data.order_code}")
            return WebhookAck(message="ignored")

        try:
            order = await self.reconciler.mark_paid_by_code(data.order_code)
        except OrderNotFoundError:
            # PayOS sends a sample payload when the webhook URL is registered
            return WebhookAck(message="order not found")

        logger.info(f"Webhook confirmed payment of order {order.order_id} (code {data.order_code})")
        return WebhookAck()

    # =========================================================================
    # Statistics
    # =========================================================================

    async def count_orders(self) -> int:
        """Number of active orders"""
        return await self.repository.count_orders()

    async def total_sales(self) -> Decimal:
        """Sum of total prices of active orders"""
        return await self.repository.total_sales()

    async def sales_by_date(self) -> List[SalesByDate]:
        """Paid sales grouped by paid date"""
        return await self.repository.sales_by_date()
