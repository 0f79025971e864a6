"""
config.py — Service Settings and Per-Request Checkout Configuration

Process-level settings (database, message broker, HTTP timeouts) are read once
from environment variables. Business settings that admins change at runtime
(fraud thresholds, shipping defaults, COD surcharge) are loaded per request into
an immutable `CheckoutConfig` and handed to the checkout workflow explicitly.
"""

import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import httpx

# Service-Adressen und Zugangsdaten (aus Env Vars)
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./order_pipeline.db")
AUTO_CREATE_TABLES = os.environ.get("AUTO_CREATE_TABLES", "true").lower() in ("1", "true", "yes")

RABBITMQ_HOST = os.environ.get("RABBITMQ_HOST", "localhost")
RABBITMQ_USER = os.environ.get("RABBITMQ_USER", "shop")
RABBITMQ_PASSWORD = os.environ.get("RABBITMQ_PASSWORD", "shop")
NOTIFICATION_QUEUE = os.environ.get("NOTIFICATION_QUEUE", "notifications.order.confirmed")

COURIER_CONNECT_TIMEOUT = float(os.environ.get("COURIER_CONNECT_TIMEOUT", "10"))
COURIER_READ_TIMEOUT = float(os.environ.get("COURIER_READ_TIMEOUT", "15"))

CREDENTIALS_ENCRYPTION_KEY = os.environ.get("CREDENTIALS_ENCRYPTION_KEY", "")

LOG_FILE = os.environ.get("LOG_FILE", "order_pipeline.log")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Guest addresses are attributed to this fixed identity
GUEST_USER_ID = "00000000-0000-0000-0000-000000000001"


def courier_timeout() -> httpx.Timeout:
    """Bounded timeout applied to every outbound courier call."""
    return httpx.Timeout(COURIER_CONNECT_TIMEOUT, read=COURIER_READ_TIMEOUT)


@dataclass(frozen=True)
class CheckoutConfig:
    """
    Business settings for one checkout request.

    Attributes:
        max_orders_per_phone_24h (int): Orders allowed per phone in a trailing 24h window.
        order_rate_limit_seconds (int): Minimum spacing between two orders from one phone.
        default_shipping_cost (Decimal): Fee used when no delivery zone matches.
        free_shipping_threshold (Decimal | None): Subtotal at which the default fee is waived.
        cod_extra_charge (Decimal): Flat surcharge for cash-on-delivery orders.
    """
    max_orders_per_phone_24h: int = 5
    order_rate_limit_seconds: int = 30
    default_shipping_cost: Decimal = Decimal("120")
    free_shipping_threshold: Optional[Decimal] = None
    cod_extra_charge: Decimal = Decimal("0")
