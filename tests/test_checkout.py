from decimal import Decimal

import pytest
from sqlalchemy import func, select

from conftest import FakeNotifier, checkout_request
from order_pipeline.checkout import CheckoutService
from order_pipeline.config import GUEST_USER_ID, CheckoutConfig
from order_pipeline.db import AddressRow, CartItemRow, OrderRow, PromoCodeRow, PromoUsageRow
from order_pipeline.errors import (
    BlockedError, NotFoundError, OutOfStockError, PersistenceError, RateLimitError, UnavailableError,
    ValidationError,
)
from order_pipeline.models import AddressInput, CartLine
from order_pipeline.repository import OrderStore

NO_SPACING = CheckoutConfig(order_rate_limit_seconds=0, cod_extra_charge=Decimal("20"))


def count(session_factory, model):
    with session_factory() as session:
        return session.scalar(select(func.count()).select_from(model))


class TestPricing:
    def test_total_uses_server_prices_and_ignores_client_figures(self, store, notifier, catalog, dhaka_zone):
        request = checkout_request(
            items=[CartLine(product_id="p-shirt", quantity=2, price=1, product_name="Free Shirt")],
            total=1,
        )

        created = CheckoutService(store, notifier).create_order(request, config=NO_SPACING)

        totals = created.totals
        assert totals.subtotal == Decimal("1000")
        assert totals.shipping_cost == Decimal("60")
        assert totals.cod_charge == Decimal("20")
        assert totals.total == totals.subtotal + totals.shipping_cost + totals.cod_charge - totals.discount
        assert totals.total == Decimal("1080")

        order = store.get_order(created.order_id)
        assert order.total == Decimal("1080")
        assert order.status == "pending_payment"
        lines = store.get_order_lines(created.order_id)
        assert [(l.product_name, l.product_price, l.quantity) for l in lines] == [
            ("Cotton Shirt", Decimal("500"), 2),
        ]

    def test_cod_surcharge_only_for_cod(self, store, catalog, dhaka_zone):
        created = CheckoutService(store).create_order(checkout_request(payment_method="bkash"), config=NO_SPACING)
        assert created.totals.cod_charge == Decimal("0")
        assert created.totals.total == Decimal("1060")

    @pytest.mark.parametrize("raw, expected", [
        (0, 1), (-3, 1), (2.7, 2), (500, 100), (None, 1), ("abc", 1), ("3", 3), ([2], 1),
    ])
    def test_quantity_is_clamped(self, store, add_row, raw, expected):
        from order_pipeline.db import ProductRow
        add_row(ProductRow(id="p-bulk", name="Bulk Item", price=Decimal("10"), stock_quantity=1000))

        created = CheckoutService(store).create_order(
            checkout_request(items=[CartLine(product_id="p-bulk", quantity=raw)]), config=NO_SPACING)

        assert store.get_order_lines(created.order_id)[0].quantity == expected

    def test_out_of_stock_names_product_and_available_quantity(self, store, session_factory, catalog):
        request = checkout_request(items=[CartLine(product_id="p-lamp", quantity=5)])

        with pytest.raises(OutOfStockError) as exc:
            CheckoutService(store).create_order(request, config=NO_SPACING)

        assert exc.value.product_name == "Clay Lamp"
        assert exc.value.available == 2
        assert "Clay Lamp" in exc.value.message and "2" in exc.value.message
        assert count(session_factory, OrderRow) == 0

    def test_preorderable_product_becomes_preorder_line(self, store, catalog):
        request = checkout_request(items=[CartLine(product_id="p-saree", quantity=1)])

        created = CheckoutService(store).create_order(request, config=NO_SPACING)

        line = store.get_order_lines(created.order_id)[0]
        assert line.is_preorder is True
        assert store.get_order(created.order_id).is_preorder is True

    def test_missing_product_aborts_whole_order(self, store, session_factory, catalog):
        request = checkout_request(items=[CartLine(product_id="p-shirt"), CartLine(product_id="p-ghost")])

        with pytest.raises(NotFoundError, match="p-ghost"):
            CheckoutService(store).create_order(request, config=NO_SPACING)
        assert count(session_factory, OrderRow) == 0

    def test_inactive_product_is_unavailable(self, store, catalog):
        with pytest.raises(UnavailableError, match="Old Mug"):
            CheckoutService(store).create_order(
                checkout_request(items=[CartLine(product_id="p-mug")]), config=NO_SPACING)


class TestValidation:
    @pytest.mark.parametrize("overrides, message", [
        ({"items": []}, "Cart is empty"),
        ({"items": [CartLine(product_id="p-shirt")] * 51}, "Too many items"),
        ({"phone": "12345"}, "Invalid phone number format"),
        ({"payment_method": "card"}, "Invalid payment method"),
        ({"address": AddressInput(full_name="", phone="01712345678")}, "Name and phone are required"),
        ({"address": AddressInput(full_name="A", phone="01712345678", email="not-an-email")},
         "Invalid email format"),
    ])
    def test_rejects_malformed_input_without_side_effects(self, store, session_factory, catalog, overrides, message):
        with pytest.raises(ValidationError, match=message):
            CheckoutService(store).create_order(checkout_request(**overrides), config=NO_SPACING)
        assert count(session_factory, AddressRow) == 0

    def test_phone_with_spaces_and_dashes_is_accepted(self, store, catalog):
        created = CheckoutService(store).create_order(checkout_request(phone="017-1234 5678"), config=NO_SPACING)
        assert created.order_number.startswith("ORD-")


class TestAbuse:
    def test_blocked_phone(self, store, catalog, block):
        block(phone="01712345678")
        with pytest.raises(BlockedError) as exc:
            CheckoutService(store).create_order(checkout_request(), config=NO_SPACING)
        assert exc.value.status_code == 403

    def test_blocked_user(self, store, catalog, block):
        block(user_id="u-bad")
        with pytest.raises(BlockedError):
            CheckoutService(store).create_order(checkout_request(), user_id="u-bad", config=NO_SPACING)

    def test_lifted_block_is_ignored(self, store, catalog, block):
        block(phone="01712345678", is_active=False)
        CheckoutService(store).create_order(checkout_request(), config=NO_SPACING)

    def test_second_order_inside_spacing_window_is_rate_limited(self, store, catalog):
        service = CheckoutService(store)
        config = CheckoutConfig(order_rate_limit_seconds=30)
        service.create_order(checkout_request(), config=config)

        with pytest.raises(RateLimitError) as exc:
            service.create_order(checkout_request(), config=config)
        assert exc.value.status_code == 429

    def test_daily_cap(self, store, catalog):
        service = CheckoutService(store)
        config = CheckoutConfig(max_orders_per_phone_24h=2, order_rate_limit_seconds=0)
        service.create_order(checkout_request(), config=config)
        service.create_order(checkout_request(), config=config)

        with pytest.raises(RateLimitError, match="Too many orders"):
            service.create_order(checkout_request(), config=config)
        # another phone is unaffected
        service.create_order(checkout_request(phone="01812345678"), config=config)


class FailingLinesStore(OrderStore):
    def insert_order_lines(self, order_id, lines):
        raise RuntimeError("order_items insert failed")


class TestPersistence:
    def test_line_failure_rolls_back_order(self, session_factory, catalog):
        store = FailingLinesStore(session_factory)

        with pytest.raises(PersistenceError) as exc:
            CheckoutService(store).create_order(checkout_request(), config=NO_SPACING)

        assert exc.value.status_code == 500
        assert count(session_factory, OrderRow) == 0
        # the address may stay behind as an orphan
        assert count(session_factory, AddressRow) == 1

    def test_guest_address_and_notes(self, store, session_factory, catalog):
        request = checkout_request(
            address=AddressInput(full_name="<b>Karim</b>", phone="01912345678", email="karim@example.com"),
            transaction_id="TX123", notes="Call before delivery", payment_method="bkash",
        )

        created = CheckoutService(store).create_order(request, config=NO_SPACING)

        order = store.get_order(created.order_id)
        assert order.user_id is None
        assert order.notes == "Call before delivery | Guest Email: karim@example.com | Txn: TX123"
        assert order.payment_transaction_id == "TX123"
        with session_factory() as session:
            address = session.get(AddressRow, order.address_id)
        assert address.user_id == GUEST_USER_ID
        assert address.full_name == "Karim"
        assert address.address_line == "Store Pickup"
        assert address.district == "N/A"


class TestAdvisoryEffects:
    def test_promo_applied_and_usage_recorded(self, store, session_factory, catalog, dhaka_zone, make_promo):
        promo = make_promo(code="SAVE10")

        created = CheckoutService(store).create_order(
            checkout_request(promo_code=" save10 "), user_id="u-1", config=NO_SPACING)

        assert created.totals.discount == Decimal("100")
        assert created.totals.total == Decimal("980")
        with session_factory() as session:
            assert session.get(PromoCodeRow, promo.id).used_count == 1
            usage = session.scalars(select(PromoUsageRow)).one()
        assert usage.order_id == created.order_id
        assert usage.discount_amount == Decimal("100")

    def test_unknown_promo_is_ignored(self, store, catalog):
        created = CheckoutService(store).create_order(checkout_request(promo_code="NOPE"), config=NO_SPACING)
        assert created.totals.discount == Decimal("0")

    def test_notification_failure_does_not_fail_order(self, store, catalog):
        created = CheckoutService(store, FakeNotifier(fail=True)).create_order(checkout_request(), config=NO_SPACING)
        assert store.get_order(created.order_id) is not None

    def test_notification_sent_after_commit(self, store, notifier, catalog):
        created = CheckoutService(store, notifier).create_order(checkout_request(), config=NO_SPACING)
        assert notifier.sent == [(created.order_id, created.order_number)]

    def test_authenticated_cart_is_cleared(self, store, session_factory, catalog, cart_item):
        cart_item("u-1")
        cart_item("u-2")

        CheckoutService(store).create_order(checkout_request(), user_id="u-1", config=NO_SPACING)

        with session_factory() as session:
            owners = session.scalars(select(CartItemRow.user_id)).all()
        assert owners == ["u-2"]

    def test_config_loaded_from_settings_rows(self, store, add_row, catalog):
        from order_pipeline.db import CheckoutSettingsRow, FraudSettingsRow
        add_row(CheckoutSettingsRow(default_shipping_cost=Decimal("150"), cod_extra_charge=Decimal("10")))
        add_row(FraudSettingsRow(max_orders_per_phone_24h=3, order_rate_limit_seconds=None))

        config = store.load_checkout_config()

        assert config.default_shipping_cost == Decimal("150")
        assert config.cod_extra_charge == Decimal("10")
        assert config.max_orders_per_phone_24h == 3
        assert config.order_rate_limit_seconds == 30
        assert config.free_shipping_threshold is None
