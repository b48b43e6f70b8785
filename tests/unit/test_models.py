"""
Tests for core.models module.
"""
import pytest
from datetime import datetime, timezone

from core.models import (
    Combo,
    ComboSlot,
    ComboSlotProduct,
    Company,
    Coupon,
    CustomerCredit,
    DeliveryDriver,
    NfeCompanySettings,
    NfeGlobalSettings,
    Order,
    OrderItem,
    OrderStatus,
    RecipeLine,
    parse_datetime,
    to_float,
)


class TestParsing:
    """Tests for row value helpers."""

    def test_parse_datetime_zulu(self):
        """Z suffix should parse as UTC."""
        assert parse_datetime("2026-01-14T17:00:00Z") == datetime(2026, 1, 14, 17, tzinfo=timezone.utc)

    def test_parse_datetime_offset(self):
        result = parse_datetime("2026-01-14T14:00:00-03:00")
        assert result == datetime(2026, 1, 14, 17, tzinfo=timezone.utc)

    def test_parse_datetime_passthrough_and_invalid(self):
        moment = datetime(2026, 1, 1)
        assert parse_datetime(moment) is moment
        assert parse_datetime(None) is None
        assert parse_datetime("") is None
        assert parse_datetime("yesterday") is None

    def test_to_float(self):
        """Numeric columns may arrive as strings."""
        assert to_float("57.50") == 57.5
        assert to_float(3) == 3.0
        assert to_float(None) == 0.0
        assert to_float("abc", default=-1.0) == -1.0


class TestOrderStatus:
    """Tests for OrderStatus enum."""

    def test_in_kitchen(self):
        assert OrderStatus.in_kitchen() == {"pending", "confirmed", "preparing", "ready"}

    def test_label_and_color(self):
        assert OrderStatus.DELIVERED.label == "Entregue"
        assert OrderStatus.CANCELLED.color == "#ef4444"

    def test_unlabelled_status(self):
        """Statuses without a label fall back to the raw value and grey."""
        assert OrderStatus.QUEUED.label == "queued"
        assert OrderStatus.QUEUED.color == "#6b7280"


class TestOrder:
    """Tests for Order model."""

    def test_from_row(self, order_row):
        order = Order.from_row(order_row)

        assert order.total == 57.5
        assert order.subtotal == 52.5
        assert order.created_at == datetime(2026, 1, 14, 17, tzinfo=timezone.utc)
        assert order.delivered_at == datetime(2026, 1, 14, 17, 35, tzinfo=timezone.utc)
        assert order.queue_position is None
        assert not order.is_cancelled

    def test_from_row_defaults(self):
        """Missing columns should get safe defaults."""
        order = Order.from_row({"id": "o1", "queue_position": "2"})

        assert order.status == "pending"
        assert order.total == 0.0
        assert order.customer_name == ""
        assert order.created_at is None
        assert order.queue_position == 2

    def test_is_within(self, order):
        start = datetime(2026, 1, 14, tzinfo=timezone.utc)
        end = datetime(2026, 1, 14, 23, 59, tzinfo=timezone.utc)
        assert order.is_within(start, end)
        assert not order.is_within(end, end)

    def test_is_within_without_created_at(self):
        order = Order(id="o1", company_id="c", status="pending", total=0)
        assert not order.is_within(datetime.min, datetime.max)

    def test_to_dict(self, order):
        data = order.to_dict()

        assert data["id"] == order.id
        assert data["total"] == 57.5
        assert data["created_at"] == "2026-01-14T17:00:00+00:00"
        assert "customer_phone" not in data


class TestOrderItem:
    """Tests for OrderItem model."""

    def test_from_row(self, order_item_rows):
        item = OrderItem.from_row(order_item_rows[0])

        assert item.product_name == "X-Burger"
        assert item.quantity == 2.0
        assert item.total_price == 40.0
        assert item.to_dict()["product_id"] == "prod-burger"


class TestCompany:
    """Tests for Company model."""

    def test_from_row(self, company_row):
        company = Company.from_row(company_row)

        assert company.name == "Pizzaria Bella"
        assert company.is_open is True
        assert company.opening_hours["sunday"] == {"enabled": False}

    def test_is_open_defaults_to_true(self):
        """A null is_open column means not manually closed."""
        assert Company.from_row({"id": "c", "is_open": None}).is_open is True
        assert Company.from_row({"id": "c", "is_open": False}).is_open is False


class TestNfeSettings:
    """Tests for NFe settings models."""

    def test_global_defaults(self):
        settings = NfeGlobalSettings.from_row({"is_enabled": True, "focus_nfe_token": ""})

        assert settings.is_enabled is True
        assert settings.focus_nfe_token is None
        assert settings.environment == "homologacao"

    def test_company_settings(self):
        settings = NfeCompanySettings.from_row({
            "company_id": "c", "csc_id": "1", "csc_token": "T", "serie_nfce": "3", "ambiente": "",
        })

        assert settings.serie_nfce == 3
        assert settings.ambiente is None

    def test_company_settings_blank_serie(self):
        assert NfeCompanySettings.from_row({"serie_nfce": ""}).serie_nfce is None


class TestRecipeLine:
    """Tests for RecipeLine model."""

    def test_embedded_ingredient(self):
        """Ingredient columns come from the embedded join."""
        line = RecipeLine.from_row({
            "product_id": "p1",
            "ingredient_id": "i1",
            "quantity_per_unit": "0.25",
            "inventory_ingredients": {"id": "i1", "name": "Mussarela", "current_stock": 3},
        })

        assert line.quantity_per_unit == 0.25
        assert line.ingredient_name == "Mussarela"
        assert line.current_stock == 3.0

    def test_flat_row(self):
        """Mirrored rows carry the ingredient columns flat."""
        line = RecipeLine.from_row({
            "product_id": "p1", "ingredient_id": "i1", "quantity_per_unit": 1,
            "ingredient_name": "Massa", "current_stock": 0,
        })

        assert line.ingredient_name == "Massa"
        assert line.current_stock == 0.0


class TestDriverAndCredit:
    """Tests for DeliveryDriver and CustomerCredit models."""

    def test_driver_from_row(self):
        driver = DeliveryDriver.from_row({"id": "d1", "company_id": "c", "is_available": 1})
        assert driver.is_available is True
        assert driver.driver_name == ""

    def test_credit_from_row(self):
        credit = CustomerCredit.from_row({
            "id": "cr1", "remaining_amount": "15.00", "expires_at": None,
        })
        assert credit.remaining_amount == 15.0
        assert credit.expires_at is None


class TestCoupon:
    """Tests for Coupon model."""

    def test_from_row(self):
        coupon = Coupon.from_row({
            "code": "bemvindo10",
            "discount_type": "percentage",
            "discount_value": "10",
            "max_uses": 100,
            "current_uses": None,
            "is_active": None,
        })

        assert coupon.code == "BEMVINDO10"
        assert coupon.discount_value == 10.0
        assert coupon.max_uses == 100
        assert coupon.current_uses == 0
        assert coupon.is_active is True


class TestCombo:
    """Tests for Combo model lookups."""

    def test_slot_and_product_lookup(self):
        pizza = ComboSlotProduct(product_id="p1", name="Calabresa", price=40.0)
        slot = ComboSlot(id="s1", name="Pizza", products=[pizza])
        combo = Combo(id="c1", name="Combo Família", price_type="selectable", slots=[slot])

        assert not combo.is_fixed
        assert combo.slot("s1") is slot
        assert combo.slot("missing") is None
        assert slot.find_product("p1") is pizza
        assert slot.find_product("p2") is None

    def test_fixed_by_default(self):
        assert Combo(id="c1", name="Combo").is_fixed
