"""
Order Service Clients Module

Adapters for external providers
"""

from .payos_client import PayOSClient

__all__ = [
    "PayOSClient",
]
