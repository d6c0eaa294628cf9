"""
Order Microservice

Responsibilities:
- Order creation from a cart priced against the catalog
- PayOS payment links for orders (and retries)
- Paid/delivered reconciliation from webhooks and staff actions
- Order listings, soft delete and sales statistics
"""

from fastapi import FastAPI, HTTPException, Depends, status, Query, Path, Body
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn
import asyncpg
from contextlib import asynccontextmanager
from typing import List, Optional
from datetime import datetime, timezone

from core.auth_dependencies import CallerContext, require_caller, require_staff
from core.config import load_settings
from core.logger import setup_service_logger
from core.nats_client import get_event_bus
from core.postgres_client import PostgresClient
from .clients import PayOSClient
from .factory import create_order_service
from .order_repository import OrderRepository
from .order_service import OrderService
from .protocols import (
    InvalidInputError,
    InvalidOrderStateError,
    OrderAccessDeniedError,
    OrderNotFoundError,
    OrderServiceError,
    PaymentLinkNotCreatedError,
    PaymentProviderError,
    PersistenceError,
    WebhookVerificationError,
)
from .models import (
    Order, OrderCreateRequest, OrderCreatedResponse, OrderDeletedResponse,
    OrderListResponse, OrderServiceStatus, OrderView, PaymentLinkCreateRequest,
    SalesByDate, TotalOrdersResponse, TotalSalesResponse, WebhookAck, WebhookPayload,
)

# Initialize configuration
config = load_settings()

# Setup loggers (use actual service name)
logger = setup_service_logger(config.service_name, config.logging)


class OrderMicroservice:
    """Order microservice core class"""

    def __init__(self):
        self.order_service: Optional[OrderService] = None
        self.db: Optional[PostgresClient] = None
        self.payment_client: Optional[PayOSClient] = None
        self.event_bus = None

    async def initialize(self, event_bus=None):
        """Initialize the microservice"""
        self.event_bus = event_bus
        self.db = PostgresClient(config.infra)
        try:
            await self.db.connect()
            await OrderRepository(self.db).ensure_schema()
        except (OSError, asyncpg.PostgresError, PersistenceError) as e:
            # The pool is created lazily, requests retry the connection
            logger.warning(f"PostgreSQL not ready at startup: {e}")

        if not config.payment.is_configured:
            logger.warning("PayOS credentials are not configured, payment links will fail")
        self.payment_client = PayOSClient(config.payment)

        self.order_service = create_order_service(
            config, self.db, payment_gateway=self.payment_client, event_bus=event_bus
        )
        logger.info("Order microservice initialized successfully")

    async def health_check(self) -> bool:
        return self.db is not None and await self.db.health_check()

    async def shutdown(self):
        """Shutdown the microservice"""
        if self.payment_client:
            await self.payment_client.close()
        if self.event_bus:
            await self.event_bus.close()
            logger.info("Event bus closed")
        if self.db:
            await self.db.close()
        logger.info("Order microservice shutdown completed")


# Global microservice instance
order_microservice = OrderMicroservice()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    event_bus = None
    if config.infra.nats_enabled:
        try:
            event_bus = await get_event_bus(config.service_name, config.infra.resolved_nats_url)
            logger.info("Event bus initialized successfully")
        except Exception as e:
            logger.warning(f"Failed to initialize event bus: {e}. Continuing without event publishing.")
            event_bus = None

    await order_microservice.initialize(event_bus=event_bus)

    yield

    await order_microservice.shutdown()


# Create FastAPI application
app = FastAPI(
    title="Order Service",
    description="Order creation, PayOS payment links and payment reconciliation",
    version="1.0.0",
    lifespan=lifespan
)

# CORS handled by Gateway


# Dependency injection
def get_order_service() -> OrderService:
    """Get order service instance"""
    if not order_microservice.order_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Order service not initialized"
        )
    return order_microservice.order_service


# Health check endpoints
@app.get("/health")
async def health_check():
    """Service health check"""
    return {
        "status": "healthy",
        "service": config.service_name,
        "port": config.service_port,
        "version": "1.0.0",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@app.get("/health/detailed", response_model=OrderServiceStatus)
async def detailed_health_check():
    """Detailed health check with database connectivity"""
    return OrderServiceStatus(
        service=config.service_name,
        port=config.service_port,
        database_connected=await order_microservice.health_check(),
        payment_provider_configured=config.payment.is_configured,
        timestamp=datetime.now(timezone.utc)
    )


# Order creation and payment links

@app.post(
    "/api/v1/orders",
    response_model=OrderCreatedResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_order(
    request: OrderCreateRequest,
    caller: CallerContext = Depends(require_caller),
    order_service: OrderService = Depends(get_order_service)
):
    """Create an order and its payment link"""
    return await order_service.create_order(request, caller)


@app.post(
    "/api/v1/orders/{order_id}/payment-link",
    response_model=OrderCreatedResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_payment_link(
    order_id: str = Path(..., description="Order ID"),
    request: Optional[PaymentLinkCreateRequest] = Body(None),
    caller: CallerContext = Depends(require_caller),
    order_service: OrderService = Depends(get_order_service)
):
    """Request a new payment link for an unpaid order"""
    return await order_service.request_payment_link(order_id, caller, request)


# Order query endpoints

@app.get("/api/v1/orders", response_model=OrderListResponse)
async def list_orders(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    include_deleted: bool = Query(False, description="Include soft-deleted orders"),
    caller: CallerContext = Depends(require_staff),
    order_service: OrderService = Depends(get_order_service)
):
    """List all orders (staff)"""
    orders = await order_service.list_orders(limit, offset, include_deleted)
    return OrderListResponse(orders=orders, count=len(orders), limit=limit, offset=offset)


@app.get("/api/v1/orders/mine", response_model=OrderListResponse)
async def list_my_orders(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    caller: CallerContext = Depends(require_caller),
    order_service: OrderService = Depends(get_order_service)
):
    """List the caller's orders"""
    orders = await order_service.list_my_orders(caller, limit, offset)
    return OrderListResponse(orders=orders, count=len(orders), limit=limit, offset=offset)


@app.get("/api/v1/orders/requester/{requester_id}", response_model=OrderListResponse)
async def list_requester_orders(
    requester_id: str = Path(..., description="User ID or staff label"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    caller: CallerContext = Depends(require_caller),
    order_service: OrderService = Depends(get_order_service)
):
    """List orders for a requester (self or staff)"""
    orders = await order_service.list_orders_for_requester(requester_id, caller, limit, offset)
    return OrderListResponse(orders=orders, count=len(orders), limit=limit, offset=offset)


# Statistics endpoints (declared before /orders/{order_id})

@app.get("/api/v1/orders/total-orders", response_model=TotalOrdersResponse)
async def total_orders(
    caller: CallerContext = Depends(require_staff),
    order_service: OrderService = Depends(get_order_service)
):
    """Number of active orders"""
    return TotalOrdersResponse(total_orders=await order_service.count_orders())


@app.get("/api/v1/orders/total-sales", response_model=TotalSalesResponse)
async def total_sales(
    caller: CallerContext = Depends(require_staff),
    order_service: OrderService = Depends(get_order_service)
):
    """Sum of total prices of active orders"""
    return TotalSalesResponse(total_sales=await order_service.total_sales())


@app.get("/api/v1/orders/total-sales-by-date", response_model=List[SalesByDate])
async def total_sales_by_date(
    caller: CallerContext = Depends(require_staff),
    order_service: OrderService = Depends(get_order_service)
):
    """Paid sales per day"""
    return await order_service.sales_by_date()


@app.get("/api/v1/orders/{order_id}", response_model=OrderView)
async def get_order(
    order_id: str = Path(..., description="Order ID"),
    caller: CallerContext = Depends(require_caller),
    order_service: OrderService = Depends(get_order_service)
):
    """Get order details"""
    return await order_service.get_order(order_id, caller)


# Status transitions

@app.put("/api/v1/orders/{order_id}/pay", response_model=Order)
async def mark_order_paid(
    order_id: str = Path(..., description="Order ID"),
    caller: CallerContext = Depends(require_staff),
    order_service: OrderService = Depends(get_order_service)
):
    """Mark an order paid (staff)"""
    return await order_service.mark_paid(order_id)


@app.put("/api/v1/orders/{order_id}/deliver", response_model=Order)
async def mark_order_delivered(
    order_id: str = Path(..., description="Order ID"),
    caller: CallerContext = Depends(require_staff),
    order_service: OrderService = Depends(get_order_service)
):
    """Mark an order delivered (staff)"""
    return await order_service.mark_delivered(order_id)


@app.delete("/api/v1/orders/{order_id}", response_model=OrderDeletedResponse)
async def delete_order(
    order_id: str = Path(..., description="Order ID"),
    caller: CallerContext = Depends(require_staff),
    order_service: OrderService = Depends(get_order_service)
):
    """Soft-delete an order (staff)"""
    order = await order_service.soft_delete_order(order_id, caller)
    return OrderDeletedResponse(message="Order deleted", order=order)


# Payment provider webhook

@app.post("/api/v1/payments/payos/webhook", response_model=WebhookAck)
async def payos_webhook(
    payload: WebhookPayload,
    order_service: OrderService = Depends(get_order_service)
):
    """PayOS payment confirmation"""
    return await order_service.handle_payment_webhook(payload)


# Error handlers

def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return _error(status.HTTP_400_BAD_REQUEST, "; ".join(messages) or "Invalid request")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request, exc):
    return _error(status.HTTP_400_BAD_REQUEST, str(exc))


@app.exception_handler(WebhookVerificationError)
async def webhook_verification_handler(request, exc):
    return _error(status.HTTP_400_BAD_REQUEST, str(exc))


@app.exception_handler(OrderAccessDeniedError)
async def access_denied_handler(request, exc):
    return _error(status.HTTP_403_FORBIDDEN, str(exc))


@app.exception_handler(OrderNotFoundError)
async def not_found_error_handler(request, exc):
    return _error(status.HTTP_404_NOT_FOUND, str(exc))


@app.exception_handler(InvalidOrderStateError)
async def invalid_state_handler(request, exc):
    return _error(status.HTTP_409_CONFLICT, str(exc))


@app.exception_handler(PaymentLinkNotCreatedError)
async def payment_link_not_created_handler(request, exc: PaymentLinkNotCreatedError):
    return _error(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        str(exc),
        order=exc.order.model_dump(mode="json", by_alias=True)
    )


@app.exception_handler(PaymentProviderError)
async def payment_provider_handler(request, exc):
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request, exc):
    logger.error(f"Persistence failure on {request.url.path}: {exc}")
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Order storage is unavailable")


@app.exception_handler(OrderServiceError)
async def service_error_handler(request, exc):
    logger.error(f"Unhandled order service error on {request.url.path}: {exc}")
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


if __name__ == "__main__":
    uvicorn.run(
        "microservices.order_service.main:app",
        host=config.service_host,
        port=config.service_port,
        reload=config.debug,
        log_level=config.log_level.lower()
    )
