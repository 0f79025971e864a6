"""
fraud.py — Fraud & Rate-Limit Guard

Checks a checkout's contact phone and user id against the block-list, then
enforces two rate windows over orders linked to that phone. The windows only
read: the new order becoming visible is what the next request counts. Two truly
concurrent requests from one phone can therefore both pass.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from .config import CheckoutConfig
from .db import utcnow
from .errors import BlockedError, RateLimitError
from .repository import OrderStore

log = logging.getLogger(__name__)

BLOCKED_MESSAGE = "Order cannot be processed. Please contact support."


def check_abuse(store: OrderStore, phone: str, user_id: Optional[str], config: CheckoutConfig,
                now: Optional[datetime] = None):
    """
    Raises if this phone/user may not order right now.

    Raises:
        BlockedError: Phone or user id is on the active block-list.
        RateLimitError: Daily order cap reached or the previous order is too recent.
    """
    now = now or utcnow()

    if store.is_blocked(phone=phone) or (user_id and store.is_blocked(user_id=user_id)):
        log.warning(f"[Fraud] Gesperrter Kunde versucht zu bestellen (Telefon: {phone}, User: {user_id}).")
        raise BlockedError(BLOCKED_MESSAGE)

    daily = store.count_orders_for_phone_since(phone, now - timedelta(hours=24))
    if daily >= config.max_orders_per_phone_24h:
        log.warning(f"[Fraud] Tageslimit erreicht für {phone}: {daily}/{config.max_orders_per_phone_24h}.")
        raise RateLimitError("Too many orders from this phone number. Please try later.")

    if config.order_rate_limit_seconds > 0:
        recent = store.count_orders_for_phone_since(phone, now - timedelta(seconds=config.order_rate_limit_seconds))
        if recent > 0:
            log.info(f"[Fraud] Bestellabstand unterschritten für {phone} ({config.order_rate_limit_seconds}s).")
            raise RateLimitError("Please wait before placing another order.")
