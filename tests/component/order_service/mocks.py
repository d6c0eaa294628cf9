"""
Order Service - Mock Dependencies

Mock implementations for component testing.
Returns production model objects as expected by the service.
"""
from typing import Optional, Dict, Any, List, Set
import asyncio
from datetime import datetime, timezone
from decimal import Decimal
import uuid

# Import the actual models used by the service
from core.config import PaymentConfig
from microservices.order_service.clients import PayOSClient
from microservices.order_service.models import (
    CatalogProduct, LifecycleStatus, Order, OrderDraft, PaymentDescriptor,
    PaymentLinkInfo, PaymentLinkStatus, ProviderLinkStatus, SalesByDate,
    WebhookData,
)
from microservices.order_service.protocols import WebhookVerificationError


class _CallLogMixin:
    """Call recording shared by the mocks"""

    def _log_call(self, method: str, **kwargs):
        """Log method calls for assertions"""
        self._call_log.append({"method": method, "kwargs": kwargs})

    def assert_called(self, method: str):
        """Assert that a method was called"""
        called_methods = [c["method"] for c in self._call_log]
        assert method in called_methods, f"Expected {method} to be called, but got {called_methods}"

    def assert_not_called(self, method: str):
        """Assert that a method was never called"""
        called_methods = [c["method"] for c in self._call_log]
        assert method not in called_methods, f"Expected {method} not to be called"

    def assert_called_with(self, method: str, **kwargs):
        """Assert that a method was called with specific kwargs"""
        for call in self._call_log:
            if call["method"] == method:
                if all(call["kwargs"].get(key) == value for key, value in kwargs.items()):
                    return
        raise AssertionError(f"Expected {method} to be called with {kwargs}")

    def get_call_count(self, method: str) -> int:
        """Get number of times a method was called"""
        return sum(1 for c in self._call_log if c["method"] == method)

    def _raise_if_error(self, method: str):
        error = self._errors.get(method) or self._errors.get("*")
        if error:
            raise error

    def set_error(self, error: Exception, method: str = "*"):
        """Set an error to be raised on one method (or all)"""
        self._errors[method] = error

    def clear_error(self, method: str = "*"):
        self._errors.pop(method, None)


class MockCatalogReader(_CallLogMixin):
    """Mock catalog reader

    Implements CatalogReaderProtocol interface.
    """

    def __init__(self):
        self._products: Dict[str, CatalogProduct] = {}
        self._errors: Dict[str, Exception] = {}
        self._call_log: List[Dict] = []

    def set_product(
        self,
        product_id: str,
        name: str,
        price: Decimal,
        count_in_stock: int = 10,
        category_id: Optional[str] = None
    ) -> CatalogProduct:
        """Add a product to the mock catalog"""
        product = CatalogProduct(
            product_id=product_id,
            name=name,
            price=price,
            count_in_stock=count_in_stock,
            category_id=category_id,
        )
        self._products[product_id] = product
        return product

    def remove_product(self, product_id: str):
        self._products.pop(product_id, None)

    async def resolve_many(self, product_ids: Set[str]) -> Dict[str, CatalogProduct]:
        self._log_call("resolve_many", product_ids=set(product_ids))
        self._raise_if_error("resolve_many")
        return {pid: self._products[pid] for pid in product_ids if pid in self._products}


class MockOrderRepository(_CallLogMixin):
    """Mock order repository for component testing

    Implements OrderRepositoryProtocol interface with the same
    set-once semantics for paid/delivered/deleted as the SQL statements.
    """

    def __init__(self, first_order_code: int = 100000):
        self._data: Dict[str, Order] = {}
        self._next_code = first_order_code
        self._errors: Dict[str, Exception] = {}
        self._call_log: List[Dict] = []

    # Test helpers

    def set_order(self, order: Order):
        """Add an existing order to the mock repository"""
        self._data[order.order_id] = order

    def count(self) -> int:
        return len(self._data)

    def all_orders(self) -> List[Order]:
        return list(self._data.values())

    def _save(self, order: Order, **changes) -> Order:
        updated = order.model_copy(update=changes)
        self._data[order.order_id] = updated
        return updated

    # Protocol methods

    async def next_order_code(self) -> int:
        self._log_call("next_order_code")
        self._raise_if_error("next_order_code")
        code = self._next_code
        self._next_code += 1
        return code

    async def create_order(self, draft: OrderDraft) -> Order:
        self._log_call("create_order", draft=draft)
        self._raise_if_error("create_order")
        now = datetime.now(timezone.utc)
        order = Order(
            order_id=f"order_{uuid.uuid4().hex[:12]}",
            order_code=draft.order_code,
            requester=draft.requester,
            products=draft.products,
            shipping_address=draft.shipping_address,
            payment_method=draft.payment_method,
            description=draft.description,
            total_price=draft.total_price,
            payment_link_status=PaymentLinkStatus.PENDING,
            payment_attempts=1,
            created_at=now,
            updated_at=now,
        )
        self._data[order.order_id] = order
        return order

    async def get_order(self, order_id: str) -> Optional[Order]:
        self._log_call("get_order", order_id=order_id)
        self._raise_if_error("get_order")
        return self._data.get(order_id)

    async def get_order_by_code(self, order_code: int) -> Optional[Order]:
        self._log_call("get_order_by_code", order_code=order_code)
        self._raise_if_error("get_order_by_code")
        for order in self._data.values():
            if order_code in order.all_order_codes:
                return order
        return None

    def _page(self, orders: List[Order], limit: int, offset: int, include_deleted: bool) -> List[Order]:
        if not include_deleted:
            orders = [o for o in orders if not o.is_deleted]
        orders = sorted(orders, key=lambda o: o.created_at, reverse=True)
        return orders[offset:offset + limit]

    async def list_orders(
        self,
        limit: int = 50,
        offset: int = 0,
        include_deleted: bool = False
    ) -> List[Order]:
        self._log_call("list_orders", limit=limit, offset=offset, include_deleted=include_deleted)
        self._raise_if_error("list_orders")
        return self._page(list(self._data.values()), limit, offset, include_deleted)

    async def list_orders_by_requester(
        self,
        requester_key: str,
        limit: int = 50,
        offset: int = 0,
        include_deleted: bool = False
    ) -> List[Order]:
        self._log_call("list_orders_by_requester", requester_key=requester_key, limit=limit, offset=offset)
        self._raise_if_error("list_orders_by_requester")
        orders = [o for o in self._data.values() if o.requester.key == requester_key]
        return self._page(orders, limit, offset, include_deleted)

    async def set_paid(self, order_id: str) -> Optional[Order]:
        self._log_call("set_paid", order_id=order_id)
        self._raise_if_error("set_paid")
        order = self._data.get(order_id)
        if order is None or order.is_paid:
            return order
        now = datetime.now(timezone.utc)
        return self._save(order, is_paid=True, paid_at=now, updated_at=now)

    async def set_delivered(self, order_id: str) -> Optional[Order]:
        self._log_call("set_delivered", order_id=order_id)
        self._raise_if_error("set_delivered")
        order = self._data.get(order_id)
        if order is None or order.is_delivered:
            return order
        now = datetime.now(timezone.utc)
        return self._save(order, is_delivered=True, delivered_at=now, updated_at=now)

    async def soft_delete(self, order_id: str) -> Optional[Order]:
        self._log_call("soft_delete", order_id=order_id)
        self._raise_if_error("soft_delete")
        order = self._data.get(order_id)
        if order is None or order.is_deleted:
            return order
        now = datetime.now(timezone.utc)
        return self._save(order, status=LifecycleStatus.DELETED, deleted_at=now, updated_at=now)

    async def update_payment_link(
        self,
        order_id: str,
        status: PaymentLinkStatus,
        payment_link_id: Optional[str] = None,
        order_code: Optional[int] = None,
        expected_code: Optional[int] = None
    ) -> Optional[Order]:
        self._log_call(
            "update_payment_link",
            order_id=order_id, status=status,
            payment_link_id=payment_link_id, order_code=order_code,
            expected_code=expected_code
        )
        self._raise_if_error("update_payment_link")
        order = self._data.get(order_id)
        if order is None:
            return None
        if expected_code is not None and order.order_code != expected_code:
            return None
        changes: Dict[str, Any] = {
            "payment_link_status": status,
            "updated_at": datetime.now(timezone.utc),
        }
        if order_code is not None:
            changes.update(
                order_code=order_code,
                previous_order_codes=order.all_order_codes,
                payment_link_id=payment_link_id,
                payment_attempts=order.payment_attempts + 1,
            )
        elif payment_link_id is not None:
            changes["payment_link_id"] = payment_link_id
        return self._save(order, **changes)

    async def count_orders(self) -> int:
        self._log_call("count_orders")
        self._raise_if_error("count_orders")
        return sum(1 for o in self._data.values() if not o.is_deleted)

    async def total_sales(self) -> Decimal:
        self._log_call("total_sales")
        self._raise_if_error("total_sales")
        return sum((o.total_price for o in self._data.values() if not o.is_deleted), Decimal("0"))

    async def sales_by_date(self) -> List[SalesByDate]:
        self._log_call("sales_by_date")
        self._raise_if_error("sales_by_date")
        totals: Dict[str, Decimal] = {}
        for order in self._data.values():
            if order.is_paid and not order.is_deleted and order.paid_at:
                day = order.paid_at.astimezone(timezone.utc).strftime("%Y-%m-%d")
                totals[day] = totals.get(day, Decimal("0")) + order.total_price
        return [SalesByDate(date=day, total_sales=total) for day, total in sorted(totals.items())]


class MockPaymentGateway(_CallLogMixin):
    """Mock PayOS adapter

    Implements PaymentGatewayProtocol. Parameter validation is delegated to
    the real client so both share the provider's limits.
    """

    VALID_SIGNATURE = "valid-signature"

    def __init__(self):
        self._validator = PayOSClient(
            PaymentConfig(client_id="test", api_key="test", checksum_key="test"),
            http_client=_UnusedHttpClient(),
        )
        self._links: Dict[int, PaymentLinkInfo] = {}
        self._errors: Dict[str, Exception] = {}
        self._call_log: List[Dict] = []

    def set_link(self, order_code: int, amount: int, status: ProviderLinkStatus = ProviderLinkStatus.PENDING):
        """Register a provider-side link"""
        self._links[order_code] = PaymentLinkInfo(
            payment_link_id=uuid.uuid4().hex,
            order_code=order_code,
            amount=amount,
            amount_paid=amount if status == ProviderLinkStatus.PAID else 0,
            amount_remaining=0 if status == ProviderLinkStatus.PAID else amount,
            status=status,
        )

    def link_status(self, order_code: int) -> Optional[ProviderLinkStatus]:
        link = self._links.get(order_code)
        return link.status if link else None

    def codes_with_status(self, status: ProviderLinkStatus) -> List[int]:
        return [code for code, link in self._links.items() if link.status == status]

    def validate_link_params(self, amount, description, return_url, cancel_url) -> None:
        self._log_call("validate_link_params", amount=amount, description=description)
        self._validator.validate_link_params(amount, description, return_url, cancel_url)

    async def create_payment_link(
        self,
        order_code: int,
        amount: Decimal,
        description: str,
        return_url: str,
        cancel_url: str
    ) -> PaymentDescriptor:
        self._log_call(
            "create_payment_link",
            order_code=order_code, amount=amount, description=description
        )
        self._raise_if_error("create_payment_link")
        minor = self._validator.to_minor_units(amount)
        self.set_link(order_code, minor)
        return PaymentDescriptor(
            bin="970422",
            checkout_url=f"https://pay.payos.vn/web/{order_code}",
            account_number="0123456789",
            account_name="MERCHANT",
            amount=minor,
            description=description,
            order_code=order_code,
            qr_code=f"qr-{order_code}",
            payment_link_id=self._links[order_code].payment_link_id,
            currency="VND",
            status="PENDING",
        )

    async def get_payment_link(self, order_code: int) -> Optional[PaymentLinkInfo]:
        self._log_call("get_payment_link", order_code=order_code)
        self._raise_if_error("get_payment_link")
        return self._links.get(order_code)

    async def cancel_payment_link(self, order_code: int, reason: Optional[str] = None) -> PaymentLinkInfo:
        self._log_call("cancel_payment_link", order_code=order_code, reason=reason)
        self._raise_if_error("cancel_payment_link")
        link = self._links[order_code].model_copy(update={"status": ProviderLinkStatus.CANCELLED})
        self._links[order_code] = link
        return link

    async def verify_webhook(self, payload: Dict[str, Any]) -> WebhookData:
        self._log_call("verify_webhook", payload=payload)
        if payload.get("signature") != self.VALID_SIGNATURE:
            raise WebhookVerificationError("Invalid webhook signature")
        return WebhookData.model_validate(payload["data"])


class _UnusedHttpClient:
    """Stands in for httpx.AsyncClient where no request is ever sent"""

    async def aclose(self):
        pass


class MockEventBus:
    """Mock NATS event bus"""

    def __init__(self):
        self.published_events: List[Any] = []
        self._call_log: List[Dict] = []

    async def publish_event(self, event: Any):
        """Publish event"""
        self._call_log.append({"method": "publish_event", "event": event})
        self.published_events.append(event)

    def get_event_types(self) -> List[str]:
        return [e.type for e in self.published_events]

    def assert_published(self, event_type: str = None):
        """Assert that an event was published"""
        assert len(self.published_events) > 0, "No events were published"
        if event_type:
            event_types = self.get_event_types()
            assert event_type in event_types, f"Expected {event_type} event, got {event_types}"

    def assert_not_published(self, event_type: str):
        assert event_type not in self.get_event_types(), f"Unexpected {event_type} event"

    def clear(self):
        """Clear all published events"""
        self.published_events.clear()
        self._call_log.clear()


class FailingEventBus:
    """Event bus whose publish always raises"""

    async def publish_event(self, event: Any):
        raise ConnectionError("NATS unavailable")


class YieldingPaymentGateway(MockPaymentGateway):
    """Gateway whose link lookup yields to the event loop, letting requests interleave"""

    async def get_payment_link(self, order_code: int) -> Optional[PaymentLinkInfo]:
        await asyncio.sleep(0)
        return await super().get_payment_link(order_code)
