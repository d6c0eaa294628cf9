"""
Catalog Repository

Read-only access to product records owned by the catalog. The order service
only ever reads name, price and stock from here to price a cart.
"""

from typing import Dict, Set
import asyncio
import logging

import asyncpg

from core.postgres_client import PostgresClient
from .models import CatalogProduct
from .protocols import PersistenceError

logger = logging.getLogger(__name__)


class CatalogRepository:
    """Product lookups for pricing"""

    def __init__(self, db: PostgresClient, schema: str = "catalog"):
        self.db = db
        self.schema = schema
        self.products_table = "products"

    async def resolve_many(self, product_ids: Set[str]) -> Dict[str, CatalogProduct]:
        """
        Resolve product ids to catalog records

        Args:
            product_ids: Distinct product ids

        Returns:
            Mapping containing only the ids that exist
        """
        if not product_ids:
            return {}

        query = f'''
            SELECT product_id, name, price, count_in_stock, category_id
            FROM "{self.schema}".{self.products_table}
            WHERE product_id = ANY($1::text[])
        '''

        try:
            rows = await self.db.query(query, [sorted(product_ids)])
        except (asyncpg.PostgresError, OSError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to resolve products {sorted(product_ids)}: {e}")
            raise PersistenceError(f"Catalog unavailable: {e}") from e

        return {
            row["product_id"]: CatalogProduct(
                product_id=row["product_id"],
                name=row["name"],
                price=row["price"],
                count_in_stock=row["count_in_stock"] or 0,
                category_id=row.get("category_id"),
            )
            for row in rows
        }
