#!/usr/bin/env python3
"""Payment provider configuration (PayOS)

Credentials come from the PayOS merchant dashboard: client id, API key and the
checksum key used to sign payment-link requests and verify webhooks.
"""
import os
from dataclasses import dataclass

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default

def _float(val: str, default: float) -> float:
    try:
        return float(val) if val else default
    except ValueError:
        return default


@dataclass
class PaymentConfig:
    """PayOS merchant settings"""
    client_id: str = ""
    api_key: str = ""
    checksum_key: str = ""
    base_url: str = "https://api-merchant.payos.vn"
    timeout_seconds: float = 10.0

    # SDK retry count for 5xx responses and timeouts
    max_retries: int = 0

    # Provider amounts are integers in minor units; VND has none
    amount_exponent: int = 0

    # Defaults used when the order request does not carry its own URLs
    return_url: str = "http://localhost:3000/payment/success"
    cancel_url: str = "http://localhost:3000/payment/cancel"

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.api_key and self.checksum_key)

    @classmethod
    def from_env(cls) -> 'PaymentConfig':
        """Load PayOS config from environment variables"""
        return cls(
            client_id=os.getenv("PAYOS_CLIENT_ID", ""),
            api_key=os.getenv("PAYOS_API_KEY", ""),
            checksum_key=os.getenv("PAYOS_CHECKSUM_KEY", ""),
            base_url=os.getenv("PAYOS_BASE_URL", "https://api-merchant.payos.vn"),
            timeout_seconds=_float(os.getenv("PAYOS_TIMEOUT_SECONDS", "10"), 10.0),
            max_retries=_int(os.getenv("PAYOS_MAX_RETRIES", "0"), 0),
            amount_exponent=_int(os.getenv("PAYOS_AMOUNT_EXPONENT", "0"), 0),
            return_url=os.getenv("PAYOS_RETURN_URL", "http://localhost:3000/payment/success"),
            cancel_url=os.getenv("PAYOS_CANCEL_URL", "http://localhost:3000/payment/cancel"),
        )
