from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.pool import StaticPool

from order_pipeline.couriers.tokens import reset_token_caches
from order_pipeline.db import (
    BlockedCustomerRow, CartItemRow, DeliveryProviderRow, DeliveryZoneRow, ProductRow, PromoCodeRow,
    create_database, utcnow,
)
from order_pipeline.domain import OrderStatus
from order_pipeline.models import AddressInput, CartLine, CheckoutRequest
from order_pipeline.repository import OrderStore


class FakeNotifier:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def order_confirmed(self, order_id, order_number):
        if self.fail:
            raise ConnectionError("broker down")
        self.sent.append((order_id, order_number))


@pytest.fixture(autouse=True)
def fresh_token_caches():
    reset_token_caches()
    yield
    reset_token_caches()


@pytest.fixture
def session_factory():
    factory, engine = create_database(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield factory
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return OrderStore(session_factory)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def add_row(session_factory):
    """Inserts an ORM row and returns it detached."""
    def _add(row):
        with session_factory.begin() as session:
            session.add(row)
        return row
    return _add


@pytest.fixture
def catalog(add_row):
    """A small catalog: in stock, low stock, preorderable, inactive."""
    return {
        "shirt": add_row(ProductRow(id="p-shirt", name="Cotton Shirt", price=Decimal("500"), stock_quantity=10)),
        "lamp": add_row(ProductRow(id="p-lamp", name="Clay Lamp", price=Decimal("250"), stock_quantity=2)),
        "saree": add_row(ProductRow(id="p-saree", name="Jamdani Saree", price=Decimal("3000"),
                                    stock_quantity=0, is_preorderable=True)),
        "mug": add_row(ProductRow(id="p-mug", name="Old Mug", price=Decimal("100"),
                                  stock_quantity=50, is_active=False)),
    }


@pytest.fixture
def dhaka_zone(add_row):
    return add_row(DeliveryZoneRow(district="Dhaka", shipping_cost=Decimal("60")))


@pytest.fixture
def make_promo(add_row):
    def _make(**overrides):
        fields = dict(
            code="SAVE10", discount_type="percentage", discount_value=Decimal("10"),
            max_discount_amount=None, min_order_amount=None, usage_limit=None, used_count=0,
            starts_at=utcnow() - timedelta(days=1), expires_at=utcnow() + timedelta(days=1), is_active=True,
        )
        fields.update(overrides)
        return add_row(PromoCodeRow(**fields))
    return _make


@pytest.fixture
def block(add_row):
    def _block(phone=None, user_id=None, is_active=True):
        return add_row(BlockedCustomerRow(phone=phone, user_id=user_id, is_active=is_active))
    return _block


@pytest.fixture
def cart_item(add_row):
    def _cart(user_id, product_id="p-shirt"):
        return add_row(CartItemRow(user_id=user_id, product_id=product_id, quantity=1))
    return _cart


@pytest.fixture
def add_provider(add_row):
    def _provider(provider_type, api_key="key", api_secret="secret", config=None, is_active=True, id=None):
        return add_row(DeliveryProviderRow(
            id=id or f"prov-{provider_type}", name=provider_type.title(), provider_type=provider_type,
            api_key=api_key, api_secret=api_secret, config=config or {}, is_active=is_active,
        ))
    return _provider


@pytest.fixture
def confirmed_order(store):
    """Writes an address + confirmed order and returns the order row."""
    counter = {"n": 0}

    def _order(total=Decimal("1080"), payment_method="cod", with_address=True, phone="01712345678"):
        counter["n"] += 1
        address_id = None
        if with_address:
            address_id = store.insert_address(
                user_id="u-1", full_name=f"Customer {counter['n']}", phone=phone,
                division="Dhaka", district="Dhaka", thana="Mirpur", address_line=f"House {counter['n']}, Road 5",
            )
        return store.insert_order(
            order_number=f"ORD-TEST-{counter['n']:03d}", address_id=address_id, payment_method=payment_method,
            subtotal=total, shipping_cost=Decimal("0"), total=total, status=OrderStatus.CONFIRMED.value,
        )
    return _order


def checkout_request(items=None, phone="01712345678", payment_method="cod", **overrides):
    address = overrides.pop("address", None) or AddressInput(
        full_name="Rahim Uddin", phone=phone, division="Dhaka", district="Dhaka", thana="Mirpur",
        address_line="House 12, Road 5",
    )
    return CheckoutRequest(
        items=items if items is not None else [CartLine(product_id="p-shirt", quantity=2)],
        address=address,
        payment_method=payment_method,
        **overrides,
    )
