"""
db.py — Database Layer (SQLAlchemy models)

Relational schema shared by the checkout workflow and the dispatch orchestrator.
Money columns are Numeric and surface as Decimal.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON, Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text, create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    # sqlite speichert naive Zeitstempel; wir bleiben durchgehend bei naivem UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


Money = Numeric(12, 2)


class Base(DeclarativeBase):
    pass


# ═══════════════════════════════════════════════════════════════════════════════
# Catalog & Settings (read-only for the pipeline)
# ═══════════════════════════════════════════════════════════════════════════════

class ProductRow(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    stock_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_preorderable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class BlockedCustomerRow(Base):
    __tablename__ = "blocked_customers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, index=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class DeliveryZoneRow(Base):
    __tablename__ = "delivery_zones"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    district: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    shipping_cost: Mapped[Decimal] = mapped_column(Money, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class PromoCodeRow(Base):
    __tablename__ = "promo_codes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    discount_type: Mapped[str] = mapped_column(String(20), nullable=False, default="percentage")
    discount_value: Mapped[Decimal] = mapped_column(Money, nullable=False)
    max_discount_amount: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    min_order_amount: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    usage_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    starts_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class CheckoutSettingsRow(Base):
    __tablename__ = "checkout_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    default_shipping_cost: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    free_shipping_threshold: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    cod_extra_charge: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)


class FraudSettingsRow(Base):
    __tablename__ = "checkout_fraud_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    max_orders_per_phone_24h: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    order_rate_limit_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class DeliveryProviderRow(Base):
    __tablename__ = "delivery_providers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    provider_type: Mapped[str] = mapped_column(String(30), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    api_key: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    api_secret: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    config: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)


# ═══════════════════════════════════════════════════════════════════════════════
# Orders (written by the pipeline)
# ═══════════════════════════════════════════════════════════════════════════════

class AddressRow(Base):
    __tablename__ = "addresses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    division: Mapped[str] = mapped_column(String(50), nullable=False)
    district: Mapped[str] = mapped_column(String(50), nullable=False)
    thana: Mapped[str] = mapped_column(String(50), nullable=False)
    address_line: Mapped[str] = mapped_column(String(300), nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class OrderRow(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    order_number: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    address_id: Mapped[Optional[str]] = mapped_column(ForeignKey("addresses.id"), nullable=True, index=True)
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_transaction_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    subtotal: Mapped[Decimal] = mapped_column(Money, nullable=False)
    shipping_cost: Mapped[Decimal] = mapped_column(Money, nullable=False)
    cod_charge: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    discount_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending_payment")
    is_preorder: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tracking_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    promo_code_id: Mapped[Optional[str]] = mapped_column(ForeignKey("promo_codes.id"), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)


class OrderItemRow(Base):
    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id"), nullable=False, index=True)
    product_id: Mapped[str] = mapped_column(String(36), nullable=False)
    product_name: Mapped[str] = mapped_column(String(200), nullable=False)
    product_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    is_preorder: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class PromoUsageRow(Base):
    __tablename__ = "promo_code_usage"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    promo_code_id: Mapped[str] = mapped_column(ForeignKey("promo_codes.id"), nullable=False)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id"), nullable=False)
    user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    discount_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class CartItemRow(Base):
    __tablename__ = "cart_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    product_id: Mapped[str] = mapped_column(String(36), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


# ═══════════════════════════════════════════════════════════════════════════════
# Database Setup
# ═══════════════════════════════════════════════════════════════════════════════

def create_database(url: str, create_tables: bool = True, **engine_kwargs) -> tuple[sessionmaker, Engine]:
    """Create engine (+ tables) and return (session_factory, engine)."""
    engine = create_engine(url, **engine_kwargs)
    if create_tables:
        Base.metadata.create_all(engine)
    return sessionmaker(engine, expire_on_commit=False), engine
