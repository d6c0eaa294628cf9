"""
PostgreSQL Client Wrapper

Thin wrapper around an asyncpg connection pool. JSONB columns are encoded and
decoded as Python dicts/lists so repositories can store documents directly.

Usage:
    from core.postgres_client import PostgresClient

    db = PostgresClient(config.infra)
    await db.connect()

    rows = await db.query("SELECT * FROM orders.orders WHERE order_id = $1", [order_id])
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import asyncpg

from core.config import InfraConfig

logger = logging.getLogger(__name__)


async def _init_connection(conn: asyncpg.Connection) -> None:
    """Register JSON codecs on every new pooled connection"""
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )


def _affected_rows(status: str) -> int:
    """Parse asyncpg command status such as 'UPDATE 1' or 'INSERT 0 1'"""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


class PostgresClient:
    """
    PostgreSQL client backed by an asyncpg pool.

    The pool is created lazily on first use (or explicitly via connect())
    and every statement is bounded by the configured command timeout.
    """

    def __init__(self, config: InfraConfig):
        self.config = config
        self._pool: Optional[asyncpg.Pool] = None

    async def connect(self) -> asyncpg.Pool:
        """Create the connection pool if needed"""
        if self._pool is None:
            logger.info(
                f"Connecting to PostgreSQL at {self.config.postgres_host}:"
                f"{self.config.postgres_port}/{self.config.postgres_db}"
            )
            self._pool = await asyncpg.create_pool(
                dsn=self.config.postgres_dsn,
                min_size=self.config.postgres_pool_min,
                max_size=self.config.postgres_pool_max,
                command_timeout=self.config.postgres_command_timeout,
                init=_init_connection,
            )
        return self._pool

    async def close(self):
        """Close the pool"""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("PostgreSQL pool closed")

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def query(self, sql: str, params: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
        """Execute query and return all rows as dicts"""
        pool = await self.connect()
        rows = await pool.fetch(sql, *(params or []))
        return [dict(row) for row in rows]

    async def query_row(self, sql: str, params: Optional[List[Any]] = None) -> Optional[Dict[str, Any]]:
        """Execute query and return the first row, if any"""
        pool = await self.connect()
        row = await pool.fetchrow(sql, *(params or []))
        return dict(row) if row is not None else None

    async def query_value(self, sql: str, params: Optional[List[Any]] = None) -> Any:
        """Execute query and return the first column of the first row"""
        pool = await self.connect()
        return await pool.fetchval(sql, *(params or []))

    async def execute(self, sql: str, params: Optional[List[Any]] = None) -> int:
        """Execute a statement and return the number of affected rows"""
        pool = await self.connect()
        status = await pool.execute(sql, *(params or []))
        return _affected_rows(status)

    async def health_check(self) -> bool:
        """Check database connectivity"""
        try:
            return await self.query_value("SELECT 1") == 1
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
            logger.warning(f"PostgreSQL health check failed: {e}")
            return False


__all__ = ["PostgresClient"]
