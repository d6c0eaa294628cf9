"""
Integration Test Layer Configuration

Repositories run against a real PostgreSQL reached through the POSTGRES_*
environment variables. Every test is skipped when the server is unreachable.

Usage:
    POSTGRES_HOST=localhost pytest tests/integration -v
"""
import asyncio
import os
import sys

import asyncpg
import pytest
import pytest_asyncio

# Add project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

os.environ["ENV"] = "testing"
os.environ["NATS_ENABLED"] = "false"

from core.config import InfraConfig
from core.postgres_client import PostgresClient

CONNECT_ERRORS = (OSError, asyncio.TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError)


def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


@pytest_asyncio.fixture
async def db():
    """Connected PostgresClient, or skip when the server is unreachable"""
    client = PostgresClient(InfraConfig.from_env())
    try:
        await asyncio.wait_for(client.connect(), timeout=5)
    except CONNECT_ERRORS as e:
        pytest.skip(f"PostgreSQL unreachable at {client.config.postgres_host}: {e}")
    yield client
    await client.close()
