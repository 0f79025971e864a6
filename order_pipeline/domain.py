"""
domain.py — Core Domain Types

Plain value objects passed between the checkout workflow, the repository and
the dispatch pipeline. Nothing here performs I/O.
"""

import re
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


class OrderStatus(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    COD = "cod"
    BKASH = "bkash"
    NAGAD = "nagad"
    BANK_TRANSFER = "bank_transfer"


PHONE_PATTERN = re.compile(r"^01[3-9]\d{8}$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_TAG_PATTERN = re.compile(r"<[^>]*>")


def clean_phone(phone: str) -> str:
    """Removes spaces and dashes from a phone number."""
    return re.sub(r"[\s-]", "", phone or "")


def is_valid_phone(phone: str) -> bool:
    return bool(PHONE_PATTERN.match(clean_phone(phone)))


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email or ""))


def sanitize(value, max_len: int = 500) -> str:
    """Strips HTML tags, trims and truncates free text."""
    if not value or not isinstance(value, str):
        return ""
    return _TAG_PATTERN.sub("", value).strip()[:max_len]


# ═══════════════════════════════════════════════════════════════════════════════
# Checkout
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class VerifiedLine:
    """A cart line priced from the catalog. Name and price are snapshotted at order time."""
    product_id: str
    product_name: str
    product_price: Decimal
    quantity: int
    is_preorder: bool = False

    @property
    def line_total(self) -> Decimal:
        return self.product_price * self.quantity


@dataclass(frozen=True)
class PromoOutcome:
    promo_id: Optional[str] = None
    discount: Decimal = Decimal("0")

    @property
    def applied(self) -> bool:
        return self.promo_id is not None


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    shipping_cost: Decimal
    cod_charge: Decimal
    discount: Decimal

    @property
    def total(self) -> Decimal:
        return max(Decimal("0"), self.subtotal + self.shipping_cost + self.cod_charge - self.discount)


@dataclass(frozen=True)
class CreatedOrder:
    order_id: str
    order_number: str
    totals: OrderTotals


# ═══════════════════════════════════════════════════════════════════════════════
# Dispatch
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Provider:
    id: str
    name: str
    provider_type: str
    is_active: bool = True
    api_key: str = ""
    api_secret: str = ""
    config: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_sandbox(self) -> bool:
        return self.config.get("is_sandbox", True) is not False


@dataclass(frozen=True)
class AddressSnapshot:
    full_name: str
    phone: str
    division: str = ""
    district: str = ""
    thana: str = ""
    address_line: str = ""


@dataclass(frozen=True)
class DispatchOrder:
    """A confirmed order as the operator selected it, with its address if one exists."""
    id: str
    order_number: str
    total: Decimal
    payment_method: str
    address: Optional[AddressSnapshot] = None


@dataclass(frozen=True)
class DispatchRequest:
    """Canonical courier request, independent of any provider's field names."""
    order_id: str
    order_number: str
    recipient_name: str
    recipient_phone: str
    address_line: str
    division: str
    district: str
    thana: str
    cash_to_collect: Decimal
    declared_value: Decimal
    weight_kg: Decimal = Decimal("0.5")
    quantity: int = 1
    notes: str = ""

    @classmethod
    def from_order(cls, order: DispatchOrder) -> "DispatchRequest":
        addr = order.address
        return cls(
            order_id=order.id,
            order_number=order.order_number,
            recipient_name=addr.full_name,
            recipient_phone=clean_phone(addr.phone),
            address_line=addr.address_line,
            division=addr.division,
            district=addr.district,
            thana=addr.thana,
            cash_to_collect=order.total if order.payment_method == PaymentMethod.COD.value else Decimal("0"),
            declared_value=order.total,
        )


@dataclass(frozen=True)
class DispatchResult:
    order_id: str
    order_number: str
    success: bool
    tracking_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def failed(cls, order_id: str, order_number: str, error: str) -> "DispatchResult":
        return cls(order_id=order_id, order_number=order_number, success=False, error=error)


@dataclass
class DispatchSummary:
    results: list
    success_count: int = 0
    failure_count: int = 0
