"""
Order Pricing

Prices a requested cart from stored catalog data. Client-supplied prices never
reach this module: request lines only carry a product id and a quantity.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Sequence
import logging

from .models import OrderLine, OrderLineRequest
from .protocols import CatalogReaderProtocol, InvalidOrderError, ProductNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PricedOrder:
    """Snapshotted order lines and their authoritative total"""
    lines: List[OrderLine]
    total_price: Decimal


class PricingEngine:
    """Resolves cart lines against the catalog and computes the total"""

    def __init__(self, catalog: CatalogReaderProtocol):
        self.catalog = catalog

    async def price(self, lines: Sequence[OrderLineRequest]) -> PricedOrder:
        """
        Price a cart

        Args:
            lines: Requested lines in cart order

        Returns:
            PricedOrder with one snapshot per requested line

        Raises:
            InvalidOrderError: empty cart or non-positive quantity
            ProductNotFoundError: a product id does not exist
        """
        if not lines:
            raise InvalidOrderError("No products specified")

        for line in lines:
            if line.quantity <= 0:
                raise InvalidOrderError(
                    f"Quantity must be positive for product {line.product}, got {line.quantity}"
                )

        product_ids = {line.product for line in lines}
        catalog = await self.catalog.resolve_many(product_ids)

        for line in lines:
            if line.product not in catalog:
                logger.info(f"Pricing rejected: unknown product {line.product}")
                raise ProductNotFoundError(line.product)

        priced_lines = [
            OrderLine(
                product=line.product,
                name=catalog[line.product].name,
                quantity=line.quantity,
                price=catalog[line.product].price,
            )
            for line in lines
        ]
        total = sum((line.line_total for line in priced_lines), Decimal("0"))

        return PricedOrder(lines=priced_lines, total_price=total)
