"""
repository.py — Keyed Reads and Writes Against the Relational Store

`OrderStore` is the only component that talks to the database. Every write runs
in its own short transaction, the way the hosted datastore behaves, so callers
that need several writes to succeed together must compensate explicitly.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import sessionmaker

from .config import CheckoutConfig
from .db import (
    AddressRow, BlockedCustomerRow, CartItemRow, CheckoutSettingsRow, DeliveryProviderRow,
    DeliveryZoneRow, FraudSettingsRow, OrderItemRow, OrderRow, ProductRow, PromoCodeRow,
    PromoUsageRow, utcnow,
)
from .domain import AddressSnapshot, DispatchOrder, OrderStatus, Provider, VerifiedLine


def generate_order_number(now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    return f"ORD-{now:%y%m%d}-{uuid.uuid4().hex[:6].upper()}"


class OrderStore:
    """
    Repository over a SQLAlchemy session factory.

    Args:
        session_factory (sessionmaker): Factory producing sessions bound to the store's engine.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    # --- Settings ---

    def load_checkout_config(self) -> CheckoutConfig:
        """Reads the admin-managed settings rows, falling back to defaults for anything unset."""
        defaults = CheckoutConfig()
        with self.session_factory() as session:
            checkout = session.scalars(select(CheckoutSettingsRow).limit(1)).first()
            fraud = session.scalars(select(FraudSettingsRow).limit(1)).first()

        def pick(row, attr, fallback):
            value = getattr(row, attr, None) if row is not None else None
            return fallback if value is None else value

        return CheckoutConfig(
            max_orders_per_phone_24h=pick(fraud, "max_orders_per_phone_24h", defaults.max_orders_per_phone_24h),
            order_rate_limit_seconds=pick(fraud, "order_rate_limit_seconds", defaults.order_rate_limit_seconds),
            default_shipping_cost=Decimal(pick(checkout, "default_shipping_cost", defaults.default_shipping_cost)),
            free_shipping_threshold=pick(checkout, "free_shipping_threshold", defaults.free_shipping_threshold),
            cod_extra_charge=Decimal(pick(checkout, "cod_extra_charge", defaults.cod_extra_charge)),
        )

    # --- Fraud & rate limit ---

    def is_blocked(self, phone: Optional[str] = None, user_id: Optional[str] = None) -> bool:
        with self.session_factory() as session:
            for column, value in ((BlockedCustomerRow.phone, phone), (BlockedCustomerRow.user_id, user_id)):
                if not value:
                    continue
                hit = session.scalars(
                    select(BlockedCustomerRow.id)
                    .where(column == value, BlockedCustomerRow.is_active.is_(True))
                    .limit(1)
                ).first()
                if hit is not None:
                    return True
        return False

    def count_orders_for_phone_since(self, phone: str, since: datetime) -> int:
        """Counts orders placed after `since` whose address carries this phone."""
        with self.session_factory() as session:
            return session.scalar(
                select(func.count(OrderRow.id))
                .join(AddressRow, OrderRow.address_id == AddressRow.id)
                .where(AddressRow.phone == phone, OrderRow.created_at >= since)
            ) or 0

    # --- Catalog, zones, promos ---

    def get_products(self, product_ids: Iterable[str]) -> Dict[str, ProductRow]:
        ids = list(set(product_ids))
        if not ids:
            return {}
        with self.session_factory() as session:
            rows = session.scalars(select(ProductRow).where(ProductRow.id.in_(ids))).all()
        return {row.id: row for row in rows}

    def find_zone_cost(self, district: str) -> Optional[Decimal]:
        with self.session_factory() as session:
            return session.scalars(
                select(DeliveryZoneRow.shipping_cost)
                .where(DeliveryZoneRow.district == (district or ""), DeliveryZoneRow.is_active.is_(True))
                .limit(1)
            ).first()

    def find_active_promo(self, code: str) -> Optional[PromoCodeRow]:
        with self.session_factory() as session:
            return session.scalars(
                select(PromoCodeRow).where(PromoCodeRow.code == code, PromoCodeRow.is_active.is_(True))
            ).first()

    # --- Order writes ---

    def insert_address(self, **fields) -> str:
        with self.session_factory.begin() as session:
            row = AddressRow(**fields)
            session.add(row)
            session.flush()
            return row.id

    def insert_order(self, **fields) -> OrderRow:
        fields.setdefault("order_number", generate_order_number())
        with self.session_factory.begin() as session:
            row = OrderRow(**fields)
            session.add(row)
            session.flush()
            return row

    def insert_order_lines(self, order_id: str, lines: List[VerifiedLine]):
        with self.session_factory.begin() as session:
            session.add_all([
                OrderItemRow(
                    order_id=order_id,
                    product_id=line.product_id,
                    product_name=line.product_name,
                    product_price=line.product_price,
                    quantity=line.quantity,
                    is_preorder=line.is_preorder,
                )
                for line in lines
            ])

    def delete_order(self, order_id: str):
        with self.session_factory.begin() as session:
            session.execute(delete(OrderItemRow).where(OrderItemRow.order_id == order_id))
            session.execute(delete(OrderRow).where(OrderRow.id == order_id))

    def get_order(self, order_id: str) -> Optional[OrderRow]:
        with self.session_factory() as session:
            return session.get(OrderRow, order_id)

    def get_order_lines(self, order_id: str) -> List[OrderItemRow]:
        with self.session_factory() as session:
            return list(session.scalars(select(OrderItemRow).where(OrderItemRow.order_id == order_id)).all())

    # --- Advisory writes ---

    def increment_promo_usage(self, promo_id: str):
        with self.session_factory.begin() as session:
            session.execute(
                update(PromoCodeRow)
                .where(PromoCodeRow.id == promo_id)
                .values(used_count=PromoCodeRow.used_count + 1)
            )

    def record_promo_usage(self, promo_id: str, order_id: str, user_id: Optional[str], discount: Decimal):
        with self.session_factory.begin() as session:
            session.add(PromoUsageRow(
                promo_code_id=promo_id, order_id=order_id, user_id=user_id, discount_amount=discount,
            ))

    def clear_cart(self, user_id: str):
        with self.session_factory.begin() as session:
            session.execute(delete(CartItemRow).where(CartItemRow.user_id == user_id))

    # --- Dispatch ---

    def get_provider(self, provider_id: str) -> Optional[Provider]:
        with self.session_factory() as session:
            row = session.get(DeliveryProviderRow, provider_id)
        if row is None:
            return None
        return Provider(
            id=row.id,
            name=row.name,
            provider_type=row.provider_type,
            is_active=row.is_active,
            api_key=row.api_key or "",
            api_secret=row.api_secret or "",
            config=dict(row.config or {}),
        )

    def load_dispatch_orders(self, order_ids: List[str]) -> List[DispatchOrder]:
        """
        Loads orders with their address snapshots in the caller's order.

        Each id appears at most once in the result; unknown ids are left out.
        """
        with self.session_factory() as session:
            rows = session.execute(
                select(OrderRow, AddressRow)
                .outerjoin(AddressRow, OrderRow.address_id == AddressRow.id)
                .where(OrderRow.id.in_(order_ids))
            ).all()

        by_id = {}
        for order, addr in rows:
            snapshot = None
            if addr is not None:
                snapshot = AddressSnapshot(
                    full_name=addr.full_name, phone=addr.phone, division=addr.division,
                    district=addr.district, thana=addr.thana, address_line=addr.address_line,
                )
            by_id[order.id] = DispatchOrder(
                id=order.id, order_number=order.order_number, total=order.total,
                payment_method=order.payment_method, address=snapshot,
            )
        return [by_id[oid] for oid in dict.fromkeys(order_ids) if oid in by_id]

    def mark_shipped(self, order_id: str, tracking_number: Optional[str]):
        with self.session_factory.begin() as session:
            session.execute(
                update(OrderRow)
                .where(OrderRow.id == order_id)
                .values(status=OrderStatus.SHIPPED.value, tracking_number=tracking_number)
            )

    def mark_cancelled(self, order_id: str) -> bool:
        with self.session_factory.begin() as session:
            result = session.execute(
                update(OrderRow)
                .where(OrderRow.id == order_id)
                .values(status=OrderStatus.CANCELLED.value)
            )
        return result.rowcount > 0
