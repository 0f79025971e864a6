"""
pricing.py — Pricing & Inventory Oracle

Re-derives every cart line from the catalog. Client-supplied prices and names are
never read; only product ids and quantities cross this boundary.
"""

import logging
import math
from decimal import Decimal
from typing import Iterable, List, Tuple

from .domain import VerifiedLine
from .errors import NotFoundError, OutOfStockError, UnavailableError
from .repository import OrderStore

log = logging.getLogger(__name__)

MIN_QUANTITY = 1
MAX_QUANTITY = 100


def clamp_quantity(raw) -> int:
    """Coerces a requested quantity into [1, 100]; junk becomes 1."""
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return MIN_QUANTITY
    if math.isnan(value) or value == 0:
        return MIN_QUANTITY
    if math.isinf(value):
        return MAX_QUANTITY if value > 0 else MIN_QUANTITY
    return max(MIN_QUANTITY, min(MAX_QUANTITY, math.floor(value)))


def verify_cart(store: OrderStore, items: Iterable) -> Tuple[List[VerifiedLine], Decimal]:
    """
    Prices the cart from current catalog rows.

    Args:
        store (OrderStore): Source of product rows.
        items (Iterable): Cart lines exposing `product_id` and `quantity`.

    Returns:
        tuple: (verified lines in cart order, subtotal)

    Raises:
        NotFoundError: A product id does not exist.
        UnavailableError: A product is inactive.
        OutOfStockError: Quantity exceeds stock and the product is not preorderable.
    """
    items = list(items)
    products = store.get_products(item.product_id for item in items)

    lines = []
    subtotal = Decimal("0")
    for item in items:
        product = products.get(item.product_id)
        if product is None:
            raise NotFoundError(f"Product not found: {item.product_id}", product_id=item.product_id)
        if not product.is_active:
            raise UnavailableError(f'Product "{product.name}" is no longer available', product_name=product.name)

        qty = clamp_quantity(item.quantity)
        short = product.stock_quantity < qty
        if short and not product.is_preorderable:
            raise OutOfStockError(product.name, product.stock_quantity)

        line = VerifiedLine(
            product_id=product.id,
            product_name=product.name,
            product_price=Decimal(product.price),
            quantity=qty,
            is_preorder=short,
        )
        if line.is_preorder:
            log.info(f"[Pricing] {product.name}: {qty} angefragt, {product.stock_quantity} auf Lager → Vorbestellung.")
        subtotal += line.line_total
        lines.append(line)

    return lines, subtotal
