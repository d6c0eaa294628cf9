"""
Order Service Data Models

Pydantic models for orders, pricing snapshots, payment links and the
request/response schemas of the order API. API-facing models serialize with
camelCase aliases; Python code uses the snake_case field names.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from datetime import datetime
from decimal import Decimal
from enum import Enum


class LifecycleStatus(str, Enum):
    """Order lifecycle status"""
    ACTIVE = "active"
    DELETED = "deleted"


class PaymentLinkStatus(str, Enum):
    """Outcome of the latest payment-link request for an order"""
    NOT_REQUESTED = "not_requested"
    PENDING = "pending"
    CREATED = "created"
    FAILED = "failed"
    UNKNOWN = "unknown"


class ProviderLinkStatus(str, Enum):
    """Payment link status as reported by PayOS"""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"
    UNDERPAID = "UNDERPAID"
    FAILED = "FAILED"


class CamelModel(BaseModel):
    """Base model exposing camelCase aliases on the wire"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _require_text(value: str) -> str:
    if value is None or not str(value).strip():
        raise ValueError("must not be empty")
    return str(value).strip()


# Requester variants

class AuthenticatedUser(CamelModel):
    """Order placed by an authenticated user"""
    kind: Literal["user"] = "user"
    user_id: str

    @property
    def key(self) -> str:
        return self.user_id


class StaffEntered(CamelModel):
    """Order entered by staff under a free-text label"""
    kind: Literal["staff"] = "staff"
    label: str

    @property
    def key(self) -> str:
        return self.label


Requester = Annotated[Union[AuthenticatedUser, StaffEntered], Field(discriminator="kind")]


# Catalog Models

class CatalogProduct(BaseModel):
    """Read-only product record used for pricing"""
    product_id: str
    name: str
    price: Decimal = Field(..., ge=0)
    count_in_stock: int = Field(default=0, ge=0)
    category_id: Optional[str] = None


# Core Order Models

class ShippingAddress(CamelModel):
    """Shipping information block; presence is the only rule"""
    name: str
    age: int = Field(..., ge=0)
    address: str
    phone_number: str

    @field_validator('name', 'address', 'phone_number')
    @classmethod
    def validate_present(cls, v):
        return _require_text(v)


class OrderLine(CamelModel):
    """Priced product snapshot inside an order"""
    product: str
    name: str
    quantity: int = Field(..., gt=0)
    price: Decimal = Field(..., ge=0)

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


class OrderDraft(BaseModel):
    """Everything the store needs to persist a new order"""
    order_code: int = Field(..., gt=0)
    requester: Requester
    products: List[OrderLine]
    shipping_address: ShippingAddress
    payment_method: str
    description: Optional[str] = None
    total_price: Decimal = Field(..., ge=0)


class Order(CamelModel):
    """Core order model"""
    order_id: str
    order_code: int
    previous_order_codes: List[int] = []
    requester: Requester
    products: List[OrderLine]
    shipping_address: ShippingAddress
    payment_method: str
    description: Optional[str] = None
    total_price: Decimal
    is_paid: bool = False
    paid_at: Optional[datetime] = None
    is_delivered: bool = False
    delivered_at: Optional[datetime] = None
    status: LifecycleStatus = LifecycleStatus.ACTIVE
    deleted_at: Optional[datetime] = None
    payment_link_status: PaymentLinkStatus = PaymentLinkStatus.NOT_REQUESTED
    payment_link_id: Optional[str] = None
    payment_attempts: int = 0
    created_at: datetime
    updated_at: datetime

    @property
    def is_deleted(self) -> bool:
        return self.status == LifecycleStatus.DELETED

    @property
    def all_order_codes(self) -> List[int]:
        return [*self.previous_order_codes, self.order_code]


class OrderLineView(OrderLine):
    """Order line with the product's current catalog name for display"""
    display_name: str


class OrderView(Order):
    """Order enriched for display; the stored snapshot is untouched"""
    products: List[OrderLineView]


# Request Models

class OrderLineRequest(CamelModel):
    """Requested cart line; any client-supplied price is ignored"""
    product: str
    quantity: int

    @field_validator('product')
    @classmethod
    def validate_product(cls, v):
        return _require_text(v)


class OrderCreateRequest(CamelModel):
    """Create order request"""
    products: List[OrderLineRequest] = Field(default_factory=list, description="Cart lines")
    shipping_address: ShippingAddress = Field(..., description="Shipping information")
    payment_method: str = Field(..., description="Payment method label")
    staff: Optional[str] = Field(None, description="Staff label (staff requester mode)")
    description: Optional[str] = Field(None, description="Payment description, max 25 characters")
    return_url: Optional[str] = Field(None, description="Redirect after successful payment")
    cancel_url: Optional[str] = Field(None, description="Redirect after cancelled payment")

    @field_validator('payment_method')
    @classmethod
    def validate_payment_method(cls, v):
        return _require_text(v)


class PaymentLinkCreateRequest(CamelModel):
    """Request a (new) payment link for an existing order"""
    description: Optional[str] = None
    return_url: Optional[str] = None
    cancel_url: Optional[str] = None


# Payment Models

class PaymentDescriptor(CamelModel):
    """Normalized payment-link response from the provider"""
    bin: str
    checkout_url: str
    account_number: str
    account_name: str
    amount: int
    description: str
    order_code: int
    qr_code: str
    payment_link_id: Optional[str] = None
    currency: Optional[str] = None
    status: Optional[str] = None


class PaymentLinkInfo(CamelModel):
    """State of an existing payment link at the provider"""
    payment_link_id: Optional[str] = None
    order_code: int
    amount: int
    amount_paid: int = 0
    amount_remaining: int = 0
    status: ProviderLinkStatus


class WebhookPayload(CamelModel):
    """Payment provider webhook body"""
    code: str
    desc: str
    success: Optional[bool] = None
    data: Dict[str, Any]
    signature: str


class WebhookData(CamelModel):
    """Verified webhook data block"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    order_code: int
    amount: int
    description: Optional[str] = None
    reference: Optional[str] = None
    transaction_date_time: Optional[str] = None
    payment_link_id: Optional[str] = None
    code: Optional[str] = None
    desc: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.code in (None, "00")


# Response Models

class OrderCreatedResponse(CamelModel):
    """Order plus the payment link to complete it"""
    order: Order
    payment_data: Optional[PaymentDescriptor] = None


class OrderListResponse(CamelModel):
    """Order list response"""
    orders: List[OrderView]
    count: int
    limit: int
    offset: int


class OrderDeletedResponse(CamelModel):
    """Soft delete response"""
    message: str
    order: Order


class TotalOrdersResponse(CamelModel):
    total_orders: int


class TotalSalesResponse(CamelModel):
    total_sales: Decimal


class SalesByDate(CamelModel):
    date: str
    total_sales: Decimal


class WebhookAck(CamelModel):
    success: bool = True
    message: str = "ok"


class OrderServiceStatus(BaseModel):
    """Order service status response"""
    service: str = "order_service"
    status: str = "operational"
    port: int = 8210
    version: str = "1.0.0"
    database_connected: bool
    payment_provider_configured: bool = False
    timestamp: Optional[datetime] = None
