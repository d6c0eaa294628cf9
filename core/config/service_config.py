#!/usr/bin/env python3
"""Order service main configuration

Combines all sub-configs into the single struct that main.py builds once at
startup and hands to the service factory.
"""
import os
from dataclasses import dataclass, field

from .infra_config import InfraConfig
from .logging_config import LoggingConfig
from .payment_config import PaymentConfig

def _bool(val: str) -> bool:
    return val.lower() == "true"

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default


REQUESTER_MODES = ("user", "staff")


@dataclass
class OrderServiceConfig:
    """Order service settings"""
    service_name: str = "order_service"
    service_host: str = "0.0.0.0"
    service_port: int = 8210
    debug: bool = False

    # "user": orders belong to the authenticated caller
    # "staff": orders carry a free-text staff label from the request body
    requester_mode: str = "user"

    infra: InfraConfig = field(default_factory=InfraConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    payment: PaymentConfig = field(default_factory=PaymentConfig)

    def __post_init__(self):
        if self.requester_mode not in REQUESTER_MODES:
            raise ValueError(
                f"requester_mode must be one of {REQUESTER_MODES}, got {self.requester_mode!r}"
            )

    @property
    def log_level(self) -> str:
        return self.logging.log_level

    @classmethod
    def from_env(cls) -> 'OrderServiceConfig':
        """Load order service configuration from environment variables"""
        return cls(
            service_name=os.getenv("SERVICE_NAME", "order_service"),
            service_host=os.getenv("SERVICE_HOST", "0.0.0.0"),
            service_port=_int(os.getenv("ORDER_SERVICE_PORT", "8210"), 8210),
            debug=_bool(os.getenv("DEBUG", "false")),
            requester_mode=os.getenv("ORDER_REQUESTER_MODE", "user").lower(),
            infra=InfraConfig.from_env(),
            logging=LoggingConfig.from_env(),
            payment=PaymentConfig.from_env(),
        )
