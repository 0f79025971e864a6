"""
shipping.py — Shipping Cost Resolver
"""

from decimal import Decimal
from typing import Optional

from .config import CheckoutConfig
from .repository import OrderStore

PICKUP = "pickup"


def resolve_shipping(store: OrderStore, district: str, subtotal: Decimal, config: CheckoutConfig,
                     shipping_method: Optional[str] = None) -> Decimal:
    """
    Returns the shipping fee for a destination district.

    Store pickup is free. An active delivery zone for the district wins; otherwise
    the configured default applies, waived once the subtotal reaches the
    free-shipping threshold.
    """
    if shipping_method == PICKUP:
        return Decimal("0")

    zone_cost = store.find_zone_cost(district)
    if zone_cost is not None:
        return Decimal(zone_cost)

    threshold = config.free_shipping_threshold
    if threshold and subtotal >= threshold:
        return Decimal("0")
    return Decimal(config.default_shipping_cost)
