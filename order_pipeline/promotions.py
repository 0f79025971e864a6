"""
promotions.py — Promotion Evaluator

A promo code that fails any eligibility rule simply yields no discount; checkout
never fails because of a bad code.
"""

import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from .db import PromoCodeRow, utcnow
from .domain import PromoOutcome
from .repository import OrderStore

log = logging.getLogger(__name__)

NO_PROMO = PromoOutcome()


def normalize_code(code) -> str:
    if not code or not isinstance(code, str):
        return ""
    return code.strip().upper()


def is_eligible(promo: PromoCodeRow, subtotal: Decimal, now: datetime) -> bool:
    if not promo.is_active:
        return False
    if promo.expires_at is not None and promo.expires_at <= now:
        return False
    if promo.starts_at is not None and promo.starts_at > now:
        return False
    if promo.usage_limit and promo.used_count >= promo.usage_limit:
        return False
    if promo.min_order_amount and subtotal < promo.min_order_amount:
        return False
    return True


def compute_discount(promo: PromoCodeRow, subtotal: Decimal) -> Decimal:
    """Percentage discounts round to whole units and respect the cap; never more than the subtotal."""
    value = Decimal(promo.discount_value)
    if promo.discount_type == "percentage":
        discount = (subtotal * value / Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        if promo.max_discount_amount and discount > promo.max_discount_amount:
            discount = Decimal(promo.max_discount_amount)
    else:
        discount = value
    return max(Decimal("0"), min(discount, subtotal))


def evaluate_promo(store: OrderStore, code, subtotal: Decimal, now: Optional[datetime] = None) -> PromoOutcome:
    normalized = normalize_code(code)
    if not normalized:
        return NO_PROMO

    promo = store.find_active_promo(normalized)
    if promo is None:
        log.info(f"[Promo] Code {normalized} unbekannt oder inaktiv, wird ignoriert.")
        return NO_PROMO

    if not is_eligible(promo, subtotal, now or utcnow()):
        log.info(f"[Promo] Code {normalized} nicht anwendbar (Zeitraum/Limit/Mindestbestellwert).")
        return NO_PROMO

    return PromoOutcome(promo_id=promo.id, discount=compute_discount(promo, subtotal))
