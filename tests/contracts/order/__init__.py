"""
Order Service Contracts

Data contracts for order_service testing.
"""

from .data_contract import (
    # Enums
    PaymentLinkStatusContract,
    ProviderLinkStatusContract,
    # Request Contracts
    OrderLineRequestContract,
    ShippingAddressContract,
    OrderCreateRequestContract,
    PaymentLinkRequestContract,
    # Provider Contracts
    CatalogProductContract,
    PaymentDescriptorContract,
    # Test Data Factory
    OrderTestDataFactory,
    # Builders
    OrderCreateRequestBuilder,
)

__all__ = [
    "PaymentLinkStatusContract",
    "ProviderLinkStatusContract",
    "OrderLineRequestContract",
    "ShippingAddressContract",
    "OrderCreateRequestContract",
    "PaymentLinkRequestContract",
    "CatalogProductContract",
    "PaymentDescriptorContract",
    "OrderTestDataFactory",
    "OrderCreateRequestBuilder",
]
