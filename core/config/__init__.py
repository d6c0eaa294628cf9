#!/usr/bin/env python3
"""Modular configuration system for the order service

Configuration hierarchy:
- infra_config: PostgreSQL and NATS endpoints
- payment_config: PayOS merchant credentials and defaults
- logging_config: Logging configuration
- service_config: Order service settings, combines the above
"""
import os
from dotenv import load_dotenv
from .logging_config import LoggingConfig
from .infra_config import InfraConfig
from .payment_config import PaymentConfig
from .service_config import OrderServiceConfig, REQUESTER_MODES

ENV_FILES = {
    "development": "deployment/environments/dev.env",
    "dev": "deployment/environments/dev.env",
    "testing": "deployment/environments/test.env",
    "test": "deployment/environments/test.env",
    "staging": "deployment/environments/staging.env",
    "production": "deployment/environments/production.env",
}


def load_settings() -> OrderServiceConfig:
    """Load the environment file for ENV, then build the config struct"""
    env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
    load_dotenv(ENV_FILES.get(env, ENV_FILES["development"]), override=False)
    return OrderServiceConfig.from_env()


__all__ = [
    'OrderServiceConfig',
    'REQUESTER_MODES',
    'load_settings',
    'LoggingConfig',
    'InfraConfig',
    'PaymentConfig',
]
