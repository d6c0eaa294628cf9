"""
PayOS Payment Gateway Client

Adapter over the official payOS SDK (AsyncPayOS). The SDK signs requests,
verifies response and webhook signatures and unwraps the {code, desc, data}
envelope; this module validates parameters up front and converts SDK results
and errors into the order service's own types.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx
from payos import APIError, AsyncPayOS, ConnectionTimeoutError, InvalidSignatureError, PayOSError, WebhookError
from payos.types import CreatePaymentLinkRequest
from pydantic import AnyHttpUrl, TypeAdapter, ValidationError

from core.config import PaymentConfig
from ..models import PaymentDescriptor, PaymentLinkInfo, WebhookData
from ..protocols import (
    PaymentProviderError,
    PaymentProviderTimeout,
    PaymentValidationError,
    WebhookVerificationError,
)

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_LENGTH = 25
LINK_NOT_FOUND_CODE = "101"

# Malformed provider data surfaces from the SDK as one of these
_MALFORMED_RESPONSE = (KeyError, TypeError, AttributeError, ValidationError)

_http_url = TypeAdapter(AnyHttpUrl)


def is_valid_http_url(url: Optional[str]) -> bool:
    if not url:
        return False
    try:
        _http_url.validate_python(url)
    except ValidationError:
        return False
    return True


class PayOSClient:
    """Client for the PayOS merchant API"""

    def __init__(self, config: PaymentConfig, http_client: Optional[httpx.AsyncClient] = None):
        """
        Initialize PayOS client

        Args:
            config: PayOS merchant settings
            http_client: Preconfigured client (tests inject a MockTransport)
        """
        self.config = config
        self.client = http_client or httpx.AsyncClient(timeout=config.timeout_seconds)
        self._sdk: Optional[AsyncPayOS] = None
        logger.info(f"PayOSClient initialized with base_url: {config.base_url}")

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def sdk(self) -> AsyncPayOS:
        """SDK client, built on first use so an unconfigured service still starts"""
        if self._sdk is None:
            if not self.config.is_configured:
                raise PaymentProviderError("PayOS credentials are not configured")
            self._sdk = AsyncPayOS(
                client_id=self.config.client_id,
                api_key=self.config.api_key,
                checksum_key=self.config.checksum_key,
                base_url=self.config.base_url,
                timeout=self.config.timeout_seconds,
                max_retries=self.config.max_retries,
                http_client=self.client,
            )
        return self._sdk

    # =============================================================================
    # Validation
    # =============================================================================

    def to_minor_units(self, amount: Decimal) -> int:
        """Convert a decimal amount to the provider's integer minor units"""
        scaled = Decimal(amount).scaleb(self.config.amount_exponent)
        if scaled != scaled.to_integral_value():
            raise PaymentValidationError(
                f"Amount {amount} has more precision than the payment provider accepts"
            )
        minor = int(scaled)
        if minor <= 0:
            raise PaymentValidationError("Payment amount must be positive")
        return minor

    def validate_link_params(
        self,
        amount: Decimal,
        description: str,
        return_url: str,
        cancel_url: str
    ) -> None:
        """
        Reject parameters PayOS would refuse, without a network round trip

        Raises:
            PaymentValidationError: bad amount, description or URL
        """
        self.to_minor_units(amount)
        if not description or not description.strip():
            raise PaymentValidationError("Payment description is required")
        if len(description) > MAX_DESCRIPTION_LENGTH:
            raise PaymentValidationError(
                f"Payment description must be at most {MAX_DESCRIPTION_LENGTH} characters, "
                f"got {len(description)}"
            )
        if not is_valid_http_url(return_url):
            raise PaymentValidationError(f"Invalid returnUrl: {return_url!r}")
        if not is_valid_http_url(cancel_url):
            raise PaymentValidationError(f"Invalid cancelUrl: {cancel_url!r}")

    # =============================================================================
    # Payment Links
    # =============================================================================

    async def create_payment_link(
        self,
        order_code: int,
        amount: Decimal,
        description: str,
        return_url: str,
        cancel_url: str
    ) -> PaymentDescriptor:
        """
        Create a payment link

        Args:
            order_code: Provider-unique order code
            amount: Authoritative order total
            description: Transfer description (max 25 characters)
            return_url: Redirect after payment
            cancel_url: Redirect after cancellation

        Returns:
            Normalized payment descriptor

        Raises:
            PaymentValidationError: parameters rejected locally
            PaymentProviderTimeout: no answer within the timeout (outcome unknown)
            PaymentProviderError: provider refused, transport failed or the
                response was malformed
        """
        self.validate_link_params(amount, description, return_url, cancel_url)

        request = CreatePaymentLinkRequest(
            order_code=order_code,
            amount=self.to_minor_units(amount),
            description=description,
            return_url=return_url,
            cancel_url=cancel_url,
        )
        result = await self._call(
            f"create link {order_code}", self.sdk.payment_requests.create(request)
        )
        if result is None:
            raise PaymentProviderError("Payment provider returned no payment link data")

        try:
            descriptor = PaymentDescriptor(
                bin=result.bin,
                checkout_url=result.checkout_url,
                account_number=result.account_number,
                account_name=result.account_name,
                amount=result.amount,
                description=result.description,
                order_code=result.order_code,
                qr_code=result.qr_code,
                payment_link_id=result.payment_link_id,
                currency=result.currency,
                status=result.status,
            )
        except _MALFORMED_RESPONSE as e:
            raise PaymentProviderError(f"Payment provider returned malformed link data: {e}") from e

        logger.info(f"Created payment link for order code {order_code}")
        return descriptor

    async def get_payment_link(self, order_code: int) -> Optional[PaymentLinkInfo]:
        """Get an existing payment link, None if the provider has none"""
        try:
            link = await self._call(
                f"get link {order_code}", self.sdk.payment_requests.get(order_code)
            )
        except PaymentProviderError as e:
            cause = e.__cause__
            if isinstance(cause, APIError) and (
                cause.error_code == LINK_NOT_FOUND_CODE or cause.status_code == 404
            ):
                return None
            raise
        return self._to_link_info(link) if link is not None else None

    async def cancel_payment_link(self, order_code: int, reason: Optional[str] = None) -> PaymentLinkInfo:
        """Cancel a pending payment link"""
        link = await self._call(
            f"cancel link {order_code}",
            self.sdk.payment_requests.cancel(order_code, cancellation_reason=reason),
        )
        logger.info(f"Cancelled payment link for order code {order_code}")
        return self._to_link_info(link)

    def _to_link_info(self, link: Any) -> PaymentLinkInfo:
        try:
            return PaymentLinkInfo(
                payment_link_id=link.id,
                order_code=link.order_code,
                amount=link.amount,
                amount_paid=link.amount_paid,
                amount_remaining=link.amount_remaining,
                status=link.status,
            )
        except _MALFORMED_RESPONSE as e:
            raise PaymentProviderError(f"Payment provider returned malformed link data: {e}") from e

    async def _call(self, operation: str, call):
        """Await an SDK call and translate its failures"""
        try:
            return await call
        except ConnectionTimeoutError as e:
            logger.error(f"PayOS {operation} timed out: {e}")
            raise PaymentProviderTimeout(f"Payment provider timed out: {e}") from e
        except InvalidSignatureError as e:
            logger.error(f"PayOS {operation} failed signature check: {e}")
            raise PaymentProviderError(f"Payment provider response signature mismatch: {e}") from e
        except APIError as e:
            if e.error_code:
                logger.error(f"PayOS {operation} rejected: {e.error_code} {e.error_desc}")
                raise PaymentProviderError(f"Payment provider error {e.error_code}: {e}") from e
            logger.error(f"PayOS {operation} failed: HTTP {e.status_code}")
            raise PaymentProviderError(f"Payment provider returned HTTP {e.status_code}: {e}") from e
        except PayOSError as e:
            logger.error(f"PayOS {operation} failed: {e}")
            raise PaymentProviderError(f"Payment provider unreachable: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"PayOS {operation} transport error: {e}")
            raise PaymentProviderError(f"Payment provider unreachable: {e}") from e
        except _MALFORMED_RESPONSE as e:
            logger.error(f"PayOS {operation} returned malformed data: {e}")
            raise PaymentProviderError(f"Payment provider returned malformed data: {e}") from e

    # =============================================================================
    # Webhooks
    # =============================================================================

    async def verify_webhook(self, payload: Dict[str, Any]) -> WebhookData:
        """
        Verify a webhook body and return its data block

        Raises:
            WebhookVerificationError: malformed body or signature mismatch
        """
        try:
            verified = await self.sdk.webhooks.verify(payload)
        except PaymentProviderError as e:
            raise WebhookVerificationError(str(e)) from e
        except WebhookError as e:
            data = payload.get("data") if isinstance(payload, dict) else None
            order_code = data.get("orderCode") if isinstance(data, dict) else None
            logger.warning(f"Rejected webhook for order code {order_code}: {e}")
            raise WebhookVerificationError(f"Invalid webhook: {e}") from e

        return WebhookData.model_validate(verified.model_dump_camel_case())
