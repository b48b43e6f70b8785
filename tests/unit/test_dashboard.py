"""
Tests for core.dashboard module.
"""
import pytest
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from core.dashboard import (
    build_dashboard,
    calculate_chart_data,
    calculate_ingredient_financials,
    calculate_inventory_overview,
    calculate_stats,
    calculate_status_data,
    calculate_top_products,
    period_bounds,
)
from core.exceptions import ValidationError
from core.models import Ingredient, InventoryMovement, Order, OrderItem

TZ = ZoneInfo("America/Sao_Paulo")
NOW = datetime(2026, 1, 14, 15, 0, tzinfo=TZ)


def make_order(order_id, days_ago, total, status="delivered", source="online", hour=12):
    created = (NOW - timedelta(days=days_ago)).replace(hour=hour, minute=0)
    return Order(
        id=order_id, company_id="c1", status=status, total=total,
        created_at=created, source=source,
    )


@pytest.fixture
def orders():
    """Newest first, like the store returns them."""
    return [
        make_order("today-1", 0, 100.0, status="preparing"),
        make_order("today-2", 0, 50.0, status="cancelled", hour=11),
        make_order("d2", 2, 80.0, source="table"),
        make_order("d6", 6, 20.0, status="out_for_delivery"),
        make_order("prev-1", 8, 60.0),
        make_order("prev-2", 10, 40.0, status="cancelled"),
        make_order("old", 30, 999.0),
    ]


class TestPeriodBounds:
    """Tests for period_bounds."""

    def test_seven_days(self):
        """Last 7 calendar days including today, and the 7 before."""
        current, previous = period_bounds("7days", NOW)

        assert current[0] == datetime(2026, 1, 8, tzinfo=TZ)
        assert current[1].date() == NOW.date()
        assert previous[0] == datetime(2026, 1, 1, tzinfo=TZ)
        assert previous[1].date() == datetime(2026, 1, 7).date()

    def test_today(self):
        current, previous = period_bounds("today", NOW)
        assert current[0] == datetime(2026, 1, 14, tzinfo=TZ)
        assert previous[0] == datetime(2026, 1, 13, tzinfo=TZ)

    def test_unknown_period(self):
        with pytest.raises(ValidationError):
            period_bounds("90days", NOW)


class TestCalculateStats:
    """Tests for calculate_stats."""

    def test_headline_numbers(self, orders):
        current, previous = period_bounds("7days", NOW)
        stats = calculate_stats(orders, current, previous)

        assert stats.orders_period == 4
        assert stats.orders_previous == 2
        # cancelled orders do not count as revenue
        assert stats.revenue_period == 200.0
        assert stats.revenue_previous == 60.0
        assert stats.average_ticket == pytest.approx(200.0 / 3)
        assert stats.average_ticket_previous == 60.0
        assert stats.pending_orders == 1
        assert stats.in_delivery_orders == 1
        assert stats.cancelled_period == 1
        assert stats.delivered_period == 1
        assert stats.table_orders_period == 1
        assert stats.table_revenue_period == 80.0

    def test_empty_previous_window(self):
        current, previous = period_bounds("today", NOW)
        stats = calculate_stats([make_order("a", 0, 10.0)], current, previous)
        assert stats.orders_previous == 0
        assert stats.average_ticket_previous == 0.0


class TestChartData:
    """Tests for calculate_chart_data."""

    def test_weekday_labels_for_short_periods(self, orders):
        chart = calculate_chart_data(orders, 7, NOW)

        assert len(chart) == 7
        # 2026-01-14 is a Wednesday
        assert chart[-1] == {"date": "qua", "orders": 1, "revenue": 100.0}
        assert chart[0]["date"] == "qui"

    def test_date_labels_for_long_periods(self, orders):
        chart = calculate_chart_data(orders, 30, NOW)

        assert len(chart) == 30
        assert chart[-1]["date"] == "14/01"
        assert chart[0]["date"] == "16/12"


class TestStatusData:
    """Tests for calculate_status_data."""

    def test_labels_and_unknown_status(self):
        data = calculate_status_data([
            make_order("a", 0, 1.0, status="delivered"),
            make_order("b", 0, 1.0, status="delivered"),
            make_order("c", 0, 1.0, status="queued"),
        ])
        assert data == [
            {"name": "Entregue", "value": 2, "color": "#22c55e"},
            {"name": "queued", "value": 1, "color": "#6b7280"},
        ]


class TestTopProducts:
    """Tests for calculate_top_products."""

    def test_ranked_by_quantity(self):
        items = [
            OrderItem("Pizza", 2, 40.0, 80.0),
            OrderItem("Refri", 5, 6.0, 30.0),
            OrderItem("Pizza", 1, 40.0, 40.0),
        ]
        top = calculate_top_products(items, limit=1)
        assert top == [{"name": "Refri", "quantity": 5, "revenue": 30.0}]


class TestInventoryOverview:
    """Tests for calculate_inventory_overview."""

    def test_critical_sorted_by_stock_ratio(self):
        ingredients = [
            Ingredient("a", "Queijo", current_stock=4, min_stock=5),
            Ingredient("b", "Tomate", current_stock=1, min_stock=10),
            Ingredient("c", "Farinha", current_stock=50, min_stock=10),
            Ingredient("d", "Sal", current_stock=0, min_stock=0),
        ]
        overview = calculate_inventory_overview(ingredients, unavailable_count=2)

        assert overview.low_stock_count == 2
        assert overview.unavailable_products_count == 2
        assert [i.id for i in overview.critical_ingredients] == ["b", "a"]


class TestIngredientFinancials:
    """Tests for calculate_ingredient_financials."""

    def test_costs_and_margin(self):
        movements = [
            InventoryMovement("cheese", "purchase", 10, unit_cost=30.0),
            InventoryMovement("cheese", "consumption", -2, unit_cost=None),
            InventoryMovement("tomato", "consumption", -1, unit_cost=5.0),
            InventoryMovement("tomato", "adjustment", 3, unit_cost=5.0),
        ]
        financials = calculate_ingredient_financials(movements, 200.0, {"cheese": 25.0})

        assert financials.purchases_cost == 300.0
        assert financials.consumption_cost == 55.0
        assert financials.gross_margin == 145.0
        assert financials.gross_margin_percent == pytest.approx(72.5)

    def test_zero_revenue(self):
        financials = calculate_ingredient_financials([], 0.0)
        assert financials.gross_margin_percent == 0.0


class TestBuildDashboard:
    """Tests for build_dashboard."""

    def test_full_payload(self, orders):
        data = build_dashboard(
            orders=orders,
            period_items=[OrderItem("Pizza", 1, 100.0, 100.0)],
            ingredients=[Ingredient("a", "Queijo", current_stock=1, min_stock=5, average_unit_cost=30.0)],
            unavailable_count=1,
            movements=[],
            period="7days",
            now=NOW,
        )

        assert data["period"] == "7days"
        assert data["stats"]["orders_period"] == 4
        assert len(data["chart_data"]) == 7
        assert len(data["recent_orders"]) == 5
        assert data["recent_orders"][0]["id"] == "today-1"
        assert data["top_products"][0]["name"] == "Pizza"
        assert data["inventory_overview"]["low_stock_count"] == 1
        assert data["ingredient_financials"]["gross_margin"] == 200.0

    def test_no_orders(self):
        data = build_dashboard([], [], [], 0, [], "today", NOW)

        assert data["stats"]["orders_period"] == 0
        assert data["chart_data"] == []
        assert data["status_data"] == []
        assert data["recent_orders"] == []
