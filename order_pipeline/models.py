"""
models.py — API Data Models for Checkout and Dispatch

Pydantic models for the inbound request payloads and the response bodies. The
checkout models are deliberately lenient: semantic validation (phone format,
payment method, cart size) happens in the checkout workflow so it can answer
with a precise message instead of a schema dump.
"""

from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class CartLine(BaseModel):
    """
    One line of the submitted cart.

    Attributes:
        product_id (str): Catalog product id.
        quantity: Requested quantity as sent; anything non-numeric becomes 1, the rest is clamped to 1..100.
        price (float | None): Whatever the client believes the price is. Ignored.
    """
    product_id: str
    quantity: Optional[Any] = 1
    price: Optional[float] = None
    product_name: Optional[str] = None


class AddressInput(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    division: Optional[str] = None
    district: Optional[str] = None
    thana: Optional[str] = None
    address_line: Optional[str] = None


class CheckoutRequest(BaseModel):
    """
    Checkout submission from a storefront client.

    Client-side totals may be sent for reconciliation but are never read.
    """
    items: List[CartLine] = Field(default_factory=list)
    address: Optional[AddressInput] = None
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    promo_code: Optional[str] = None
    notes: Optional[str] = None
    shipping_method: Optional[str] = None
    total: Optional[float] = None


class CheckoutResponse(BaseModel):
    success: bool = True
    order_id: str
    order_number: str
    total: float
    subtotal: float
    shipping_cost: float
    discount: float


class DispatchAddressIn(BaseModel):
    full_name: str
    phone: str
    division: str = ""
    district: str = ""
    thana: str = ""
    address_line: str = ""


class DispatchOrderIn(BaseModel):
    id: str
    order_number: str
    total: Decimal
    payment_method: str
    address: Optional[DispatchAddressIn] = None


class DispatchBody(BaseModel):
    """
    Operator dispatch request.

    Either `orders` (with embedded address snapshots) or `order_ids` (loaded from
    the store) must be given.
    """
    provider_id: str
    orders: Optional[List[DispatchOrderIn]] = None
    order_ids: Optional[List[str]] = None


class DispatchResultOut(BaseModel):
    order_id: str
    order_number: str
    success: bool
    tracking_id: Optional[str] = None
    error: Optional[str] = None


class DispatchResponse(BaseModel):
    results: List[DispatchResultOut]
    success_count: int
    failure_count: int


class QuoteBody(BaseModel):
    """Destination and parcel figures for a delivery charge quote."""
    district: str
    thana: str = ""
    weight_kg: Decimal = Decimal("0.5")
    cash_to_collect: Decimal = Decimal("0")
    declared_value: Decimal = Decimal("0")


class CancelBody(BaseModel):
    """
    Cancels a shipment at the courier.

    When `order_id` is given, the order moves to `cancelled` once the courier
    has accepted the cancellation.
    """
    reason: str = "Cancelled"
    order_id: Optional[str] = None
