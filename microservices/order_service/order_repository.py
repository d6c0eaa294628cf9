"""
Order Repository

Data access layer for orders using the asyncpg-backed PostgresClient.

Each order is one row: the order lines, shipping address and requester are
kept as a JSONB document, while flags, timestamps and lookup keys are columns.
Paid/delivered/deleted transitions are single conditional UPDATEs, so
concurrent duplicate calls cannot move a timestamp once it is set.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
import asyncio
import logging
import uuid

import asyncpg

from core.postgres_client import PostgresClient
from .models import (
    LifecycleStatus, Order, OrderDraft, PaymentLinkStatus, SalesByDate,
)
from .protocols import PersistenceError

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

DB_ERRORS = (asyncpg.PostgresError, OSError, asyncio.TimeoutError)


class OrderRepository:
    """
    Repository for order data operations

    Handles all database operations for orders using PostgresClient.
    """

    def __init__(self, db: PostgresClient):
        self.db = db
        self.schema = "orders"  # Using "orders" instead of "order" (reserved keyword)
        self.orders_table = "orders"
        self.order_code_sequence = "order_code_seq"

    @property
    def _table(self) -> str:
        return f'"{self.schema}".{self.orders_table}'

    async def ensure_schema(self) -> None:
        """Apply the bundled DDL (idempotent)"""
        for migration in sorted(MIGRATIONS_DIR.glob("*.sql")):
            try:
                await self.db.execute(migration.read_text(encoding="utf-8"))
            except DB_ERRORS as e:
                logger.error(f"Failed to apply migration {migration.name}: {e}")
                raise PersistenceError(f"Failed to apply migration {migration.name}: {e}") from e
            logger.info(f"Applied migration {migration.name}")

    async def next_order_code(self) -> int:
        """Allocate the next order code from a database sequence"""
        try:
            return await self.db.query_value(
                f"SELECT nextval('\"{self.schema}\".{self.order_code_sequence}')"
            )
        except DB_ERRORS as e:
            logger.error(f"Failed to allocate order code: {e}")
            raise PersistenceError(f"Failed to allocate order code: {e}") from e

    async def create_order(self, draft: OrderDraft) -> Order:
        """Persist a new order; the payment link is requested right after"""
        order_id = f"order_{uuid.uuid4().hex[:12]}"
        now = datetime.now(timezone.utc)
        document = draft.model_dump(
            mode="json",
            include={"requester", "products", "shipping_address", "payment_method", "description"},
        )

        query = f'''
            INSERT INTO {self._table} (
                order_id, order_code, order_codes, requester_key, document,
                total_price, payment_link_status, payment_attempts,
                created_at, updated_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, 1, $8, $8)
            RETURNING *
        '''
        params = [
            order_id,
            draft.order_code,
            [draft.order_code],
            draft.requester.key,
            document,
            draft.total_price,
            PaymentLinkStatus.PENDING.value,
            now,
        ]

        try:
            row = await self.db.query_row(query, params)
        except DB_ERRORS as e:
            logger.error(f"Failed to create order: {e}")
            raise PersistenceError(f"Failed to create order: {e}") from e

        return self._row_to_order(row)

    async def get_order(self, order_id: str) -> Optional[Order]:
        """Get order by ID (deleted orders included)"""
        query = f'SELECT * FROM {self._table} WHERE order_id = $1'
        try:
            row = await self.db.query_row(query, [order_id])
        except DB_ERRORS as e:
            logger.error(f"Failed to get order {order_id}: {e}")
            raise PersistenceError(f"Failed to get order: {e}") from e

        return self._row_to_order(row) if row else None

    async def get_order_by_code(self, order_code: int) -> Optional[Order]:
        """Get order by the current or any previous order code"""
        query = f'SELECT * FROM {self._table} WHERE $1 = ANY(order_codes)'
        try:
            row = await self.db.query_row(query, [order_code])
        except DB_ERRORS as e:
            logger.error(f"Failed to get order by code {order_code}: {e}")
            raise PersistenceError(f"Failed to get order: {e}") from e

        return self._row_to_order(row) if row else None

    async def list_orders(
        self,
        limit: int = 50,
        offset: int = 0,
        include_deleted: bool = False
    ) -> List[Order]:
        """List orders, newest first"""
        conditions = [] if include_deleted else ["status = 'active'"]
        return await self._list(conditions, [], limit, offset)

    async def list_orders_by_requester(
        self,
        requester_key: str,
        limit: int = 50,
        offset: int = 0,
        include_deleted: bool = False
    ) -> List[Order]:
        """List orders for a requester, newest first"""
        conditions = ["requester_key = $1"]
        if not include_deleted:
            conditions.append("status = 'active'")
        return await self._list(conditions, [requester_key], limit, offset)

    async def _list(
        self,
        conditions: List[str],
        params: List[Any],
        limit: int,
        offset: int
    ) -> List[Order]:
        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        param_count = len(params)
        query = f'''
            SELECT * FROM {self._table}
            {where_clause}
            ORDER BY created_at DESC
            LIMIT ${param_count + 1} OFFSET ${param_count + 2}
        '''
        try:
            rows = await self.db.query(query, [*params, limit, offset])
        except DB_ERRORS as e:
            logger.error(f"Failed to list orders: {e}")
            raise PersistenceError(f"Failed to list orders: {e}") from e

        return [self._row_to_order(row) for row in rows]

    # Flag transitions

    async def set_paid(self, order_id: str) -> Optional[Order]:
        """Mark paid once; later calls leave paid_at unchanged"""
        return await self._set_flag(order_id, "is_paid", "paid_at", "TRUE", "FALSE")

    async def set_delivered(self, order_id: str) -> Optional[Order]:
        """Mark delivered once; later calls leave delivered_at unchanged"""
        return await self._set_flag(order_id, "is_delivered", "delivered_at", "TRUE", "FALSE")

    async def soft_delete(self, order_id: str) -> Optional[Order]:
        """Mark deleted once; later calls leave deleted_at unchanged"""
        return await self._set_flag(
            order_id, "status", "deleted_at",
            f"'{LifecycleStatus.DELETED.value}'", f"'{LifecycleStatus.ACTIVE.value}'"
        )

    async def _set_flag(
        self,
        order_id: str,
        column: str,
        timestamp_column: str,
        new_value: str,
        expected_value: str
    ) -> Optional[Order]:
        """Compare-and-set a flag column, stamping its timestamp on the first change"""
        query = f'''
            UPDATE {self._table}
            SET {column} = {new_value}, {timestamp_column} = $2, updated_at = $2
            WHERE order_id = $1 AND {column} = {expected_value}
            RETURNING *
        '''
        try:
            row = await self.db.query_row(query, [order_id, datetime.now(timezone.utc)])
        except DB_ERRORS as e:
            logger.error(f"Failed to update {column} for order {order_id}: {e}")
            raise PersistenceError(f"Failed to update order: {e}") from e

        if row:
            logger.info(f"Order {order_id}: {column} -> {new_value}")
            return self._row_to_order(row)

        # Already transitioned, or no such order
        return await self.get_order(order_id)

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

        A new order_code starts a new attempt: it is appended to the order's
        code history, the previous link id is cleared and the attempt counter
        is incremented. With expected_code the row only matches while it
        still carries that code, so concurrent attempts cannot both start.
        """
        update_data: Dict[str, Any] = {
            "payment_link_status": status.value,
            "updated_at": datetime.now(timezone.utc),
        }
        if order_code is not None:
            update_data["order_code"] = order_code
            update_data["payment_link_id"] = payment_link_id
        elif payment_link_id is not None:
            update_data["payment_link_id"] = payment_link_id

        # Build SET clause
        set_clauses = []
        params = []
        param_count = 0

        for key, value in update_data.items():
            param_count += 1
            set_clauses.append(f"{key} = ${param_count}")
            params.append(value)
            if key == "order_code":
                set_clauses.append(f"order_codes = array_append(order_codes, ${param_count})")
                set_clauses.append("payment_attempts = payment_attempts + 1")

        param_count += 1
        params.append(order_id)
        conditions = [f"order_id = ${param_count}"]

        if expected_code is not None:
            param_count += 1
            params.append(expected_code)
            conditions.append(f"order_code = ${param_count}")

        query = f'''
            UPDATE {self._table}
            SET {", ".join(set_clauses)}
            WHERE {" AND ".join(conditions)}
            RETURNING *
        '''
        try:
            row = await self.db.query_row(query, params)
        except DB_ERRORS as e:
            logger.error(f"Failed to update payment link for order {order_id}: {e}")
            raise PersistenceError(f"Failed to update order: {e}") from e

        return self._row_to_order(row) if row else None

    # Statistics

    async def count_orders(self) -> int:
        """Count active orders"""
        query = f"SELECT COUNT(*) FROM {self._table} WHERE status = 'active'"
        try:
            return await self.db.query_value(query) or 0
        except DB_ERRORS as e:
            logger.error(f"Failed to count orders: {e}")
            raise PersistenceError(f"Failed to count orders: {e}") from e

    async def total_sales(self) -> Decimal:
        """Sum of total prices of active orders"""
        query = f"SELECT COALESCE(SUM(total_price), 0) FROM {self._table} WHERE status = 'active'"
        try:
            return Decimal(await self.db.query_value(query))
        except DB_ERRORS as e:
            logger.error(f"Failed to compute total sales: {e}")
            raise PersistenceError(f"Failed to compute total sales: {e}") from e

    async def sales_by_date(self) -> List[SalesByDate]:
        """Paid sales grouped by the UTC date they were paid"""
        query = f'''
            SELECT to_char(paid_at AT TIME ZONE 'UTC', 'YYYY-MM-DD') AS date,
                   SUM(total_price) AS total_sales
            FROM {self._table}
            WHERE is_paid AND status = 'active'
            GROUP BY 1
            ORDER BY 1
        '''
        try:
            rows = await self.db.query(query)
        except DB_ERRORS as e:
            logger.error(f"Failed to compute sales by date: {e}")
            raise PersistenceError(f"Failed to compute sales by date: {e}") from e

        return [SalesByDate(date=row["date"], total_sales=row["total_sales"]) for row in rows]

    def _row_to_order(self, row: Dict[str, Any]) -> Order:
        """Merge the JSONB document with the column values"""
        document = row["document"]
        return Order(
            order_id=row["order_id"],
            order_code=row["order_code"],
            previous_order_codes=[c for c in (row["order_codes"] or []) if c != row["order_code"]],
            requester=document["requester"],
            products=document["products"],
            shipping_address=document["shipping_address"],
            payment_method=document["payment_method"],
            description=document.get("description"),
            total_price=row["total_price"],
            is_paid=row["is_paid"],
            paid_at=row["paid_at"],
            is_delivered=row["is_delivered"],
            delivered_at=row["delivered_at"],
            status=row["status"],
            deleted_at=row["deleted_at"],
            payment_link_status=row["payment_link_status"],
            payment_link_id=row["payment_link_id"],
            payment_attempts=row["payment_attempts"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
