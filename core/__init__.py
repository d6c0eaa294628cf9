#!/usr/bin/env python3
"""
Core Module for the Order Service

Shared infrastructure components:
    - config/: dataclass configuration loaded from the environment
    - logger.py: process-wide logging setup
    - postgres_client.py: asyncpg connection pool wrapper
    - nats_client.py: NATS JetStream event bus
    - auth_dependencies.py: FastAPI dependencies for gateway-forwarded identity

USAGE:
    from core.config import load_settings
    from core.postgres_client import PostgresClient

    config = load_settings()
    db = PostgresClient(config.infra)
"""
