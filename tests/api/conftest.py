"""
API Test Layer Configuration

HTTP contract tests run the FastAPI app in-process through TestClient.
The service dependency is overridden with component mocks, so no
PostgreSQL, NATS or PayOS is needed.

Usage:
    pytest tests/api -v
    pytest tests/api -v -k "webhook"
"""

import os
import sys

import pytest

# Set testing environment BEFORE the app module loads its settings
os.environ["ENV"] = "testing"
os.environ["NATS_ENABLED"] = "false"

# Add project root
sys.path.insert(
    0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
)


def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "api: marks tests as API contract tests"
    )
