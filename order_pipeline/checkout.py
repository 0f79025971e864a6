"""
checkout.py — Order Verification Workflow

This module contains the authoritative server-side order creation path. Every
checkout client goes through it; nothing the client computed is trusted.

Workflow Overview:
1. Validate the submission (cart size, contact, payment method)
2. Abuse check: block-list and phone rate windows
3. Re-price every line from the catalog (stock, preorder, active state)
4. Resolve shipping for the destination district
5. Evaluate the promo code (a bad code only means no discount)
6. Add the COD surcharge and compute the total
7. Persist address → order → order lines, deleting the order again if the lines fail
8. Advisory follow-ups: promo usage, cart cleanup, confirmation event

Steps 1–7 are required: any failure aborts the checkout and no order remains.
Step 8 is best-effort: failures are logged and swallowed.
"""

import logging
from decimal import Decimal
from typing import Optional

from .config import GUEST_USER_ID, CheckoutConfig
from .domain import (
    CreatedOrder, OrderStatus, OrderTotals, PaymentMethod, PromoOutcome, clean_phone, is_valid_email,
    is_valid_phone, sanitize,
)
from .errors import PersistenceError, ValidationError
from .fraud import check_abuse
from .models import CheckoutRequest
from .pricing import verify_cart
from .promotions import evaluate_promo
from .repository import OrderStore
from .shipping import resolve_shipping

log = logging.getLogger(__name__)

MAX_CART_ITEMS = 50
PAYMENT_METHODS = {m.value for m in PaymentMethod}


def validate_request(request: CheckoutRequest) -> str:
    """
    Checks the shape of a submission before anything is read or written.

    Returns:
        str: The normalized contact phone.

    Raises:
        ValidationError: With a message naming the offending field.
    """
    if not request.items:
        raise ValidationError("Cart is empty")
    if len(request.items) > MAX_CART_ITEMS:
        raise ValidationError("Too many items")

    address = request.address
    if address is None or not address.full_name or not address.phone:
        raise ValidationError("Name and phone are required")

    phone = clean_phone(address.phone)
    if not is_valid_phone(phone):
        raise ValidationError("Invalid phone number format")

    if address.email and not is_valid_email(address.email):
        raise ValidationError("Invalid email format")

    if request.payment_method not in PAYMENT_METHODS:
        raise ValidationError("Invalid payment method")

    return phone


def build_notes(request: CheckoutRequest, user_id: Optional[str]) -> Optional[str]:
    parts = [
        sanitize(request.notes, 500) if request.notes else None,
        f"Guest Email: {sanitize(request.address.email, 100)}" if not user_id and request.address.email else None,
        f"Txn: {sanitize(request.transaction_id, 50)}" if request.transaction_id else None,
    ]
    parts = [p for p in parts if p]
    return " | ".join(parts) if parts else None


class CheckoutService:
    """
    Order Verification Service.

    Args:
        store (OrderStore): Pricing, fraud, promo and shipping lookups plus the order writes.
        notifier: Object with `order_confirmed(order_id, order_number)`; treated as fire-and-forget.
    """

    def __init__(self, store: OrderStore, notifier=None):
        self.store = store
        self.notifier = notifier

    def create_order(self, request: CheckoutRequest, user_id: Optional[str] = None,
                     config: Optional[CheckoutConfig] = None) -> CreatedOrder:
        """
        Verifies and persists one checkout submission.

        Args:
            request (CheckoutRequest): The submitted cart, address and payment choice.
            user_id (str | None): Authenticated user, or None for guests.
            config (CheckoutConfig | None): Business settings; loaded from the store when omitted.

        Returns:
            CreatedOrder: Order id, order number and the server-computed figures.

        Raises:
            ValidationError, BlockedError, RateLimitError, NotFoundError, UnavailableError,
            OutOfStockError, PersistenceError: The checkout was rejected; no order exists.
        """
        # --- 1. Validierung ---
        phone = validate_request(request)
        config = config or self.store.load_checkout_config()
        address = request.address

        # --- 2. Missbrauchsprüfung ---
        check_abuse(self.store, phone, user_id, config)

        # --- 3. Serverseitige Preise ---
        lines, subtotal = verify_cart(self.store, request.items)

        # --- 4. Versandkosten ---
        shipping_cost = resolve_shipping(self.store, address.district or "", subtotal, config, request.shipping_method)

        # --- 5. Promo-Code ---
        promo = evaluate_promo(self.store, request.promo_code, subtotal)

        # --- 6. Nachnahme-Aufschlag & Summe ---
        cod_charge = config.cod_extra_charge if request.payment_method == PaymentMethod.COD.value else Decimal("0")
        totals = OrderTotals(
            subtotal=subtotal,
            shipping_cost=shipping_cost,
            cod_charge=cod_charge,
            discount=promo.discount,
        )

        # --- 7. Persistenz (Adresse → Order → Positionen) ---
        created = self._persist(request, phone, user_id, lines, totals, promo)
        log_prefix = f"[Order: {created.order_number}]"
        log.info(f"{log_prefix} Bestellung angelegt. Summe {totals.total} "
                 f"(Zwischensumme {subtotal}, Versand {shipping_cost}, COD {cod_charge}, Rabatt {promo.discount}).")

        # --- 8. Best-effort Folgeaktionen ---
        self._after_commit(created, user_id, promo)
        return created

    def _persist(self, request, phone, user_id, lines, totals, promo) -> CreatedOrder:
        address = request.address
        try:
            address_id = self.store.insert_address(
                user_id=user_id or GUEST_USER_ID,
                full_name=sanitize(address.full_name, 100),
                phone=phone,
                division=sanitize(address.division or "N/A", 50),
                district=sanitize(address.district or "N/A", 50),
                thana=sanitize(address.thana or "N/A", 50),
                address_line=sanitize(address.address_line or "Store Pickup", 300),
                is_default=bool(user_id),
            )
        except Exception as e:
            log.critical(f"Adresse konnte nicht gespeichert werden: {e}")
            raise PersistenceError("Failed to save address") from e

        try:
            order = self.store.insert_order(
                user_id=user_id,
                address_id=address_id,
                payment_method=request.payment_method,
                payment_transaction_id=sanitize(request.transaction_id, 50) or None,
                subtotal=totals.subtotal,
                shipping_cost=totals.shipping_cost,
                cod_charge=totals.cod_charge,
                discount_amount=totals.discount,
                total=totals.total,
                status=OrderStatus.PENDING_PAYMENT.value,
                is_preorder=any(line.is_preorder for line in lines),
                promo_code_id=promo.promo_id,
                notes=build_notes(request, user_id),
            )
        except Exception as e:
            # Adresse bleibt als Waise zurück, das ist akzeptiert
            log.critical(f"Order konnte nicht gespeichert werden: {e}")
            raise PersistenceError("Failed to create order") from e

        try:
            self.store.insert_order_lines(order.id, lines)
        except Exception as e:
            log.error(f"[Order: {order.order_number}] Positionen fehlgeschlagen ({e}). Starte Rollback.")
            try:
                self.store.delete_order(order.id)
                log.info(f"[Order: {order.order_number}] Rollback erfolgreich.")
            except Exception as rollback_e:
                log.critical(f"[Order: {order.order_number}] ROLLBACK FEHLGESCHLAGEN: {rollback_e}. "
                             f"BENÖTIGT MANUELLE AKTION!")
            raise PersistenceError("Failed to save order items") from e

        return CreatedOrder(order_id=order.id, order_number=order.order_number, totals=totals)

    def _after_commit(self, created: CreatedOrder, user_id: Optional[str], promo: PromoOutcome):
        log_prefix = f"[Order: {created.order_number}]"

        if promo.applied:
            try:
                self.store.increment_promo_usage(promo.promo_id)
                self.store.record_promo_usage(promo.promo_id, created.order_id, user_id, promo.discount)
            except Exception as e:
                log.warning(f"{log_prefix} Promo-Nutzung konnte nicht verbucht werden: {e}")

        if user_id:
            try:
                self.store.clear_cart(user_id)
            except Exception as e:
                log.warning(f"{log_prefix} Warenkorb von {user_id} konnte nicht geleert werden: {e}")

        if self.notifier is not None:
            try:
                self.notifier.order_confirmed(created.order_id, created.order_number)
            except Exception as e:
                log.error(f"{log_prefix} Benachrichtigung fehlgeschlagen: {e}")
