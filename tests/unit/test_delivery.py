"""
Tests for core.delivery module.
"""
import pytest
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from core.delivery import (
    calculate_driver_metrics,
    delivery_minutes,
    format_delivery_time,
    plan_queue_advance,
    queue_notification,
    queue_push_payload,
)
from core.models import Order

TZ = ZoneInfo("America/Sao_Paulo")
NOW = datetime(2026, 1, 20, 21, 0, tzinfo=TZ)
MONTH_START = datetime(2026, 1, 1, tzinfo=TZ)
MONTH_END = datetime(2026, 2, 1, tzinfo=TZ) - timedelta(microseconds=1)


def delivered(order_id, created, minutes, status="delivered"):
    return Order(
        id=order_id,
        company_id="c1",
        status=status,
        total=50.0,
        created_at=created,
        delivered_at=created + timedelta(minutes=minutes) if minutes is not None else None,
    )


def queued(order_id, position, status="queued", name="Cliente"):
    return Order(
        id=order_id, company_id="c1", status=status, total=10.0,
        queue_position=position, customer_name=name,
    )


class TestDeliveryTime:
    """Tests for delivery_minutes and format_delivery_time."""

    def test_minutes_truncated(self):
        start = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert delivery_minutes(start, start + timedelta(minutes=34, seconds=59)) == 34

    def test_format_short(self):
        start = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert format_delivery_time(start, start + timedelta(minutes=42)) == "42 min"

    def test_format_hours(self):
        start = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert format_delivery_time(start, start + timedelta(minutes=75)) == "1h 15min"

    def test_format_missing(self):
        assert format_delivery_time(None, None) == "-"


class TestDriverMetrics:
    """Tests for calculate_driver_metrics."""

    def test_no_deliveries(self):
        metrics = calculate_driver_metrics([], MONTH_START, MONTH_END, NOW)
        assert metrics.to_dict() == {
            "total_deliveries": 0,
            "average_delivery_time": 0,
            "deliveries_this_month": 0,
            "deliveries_today": 0,
            "success_rate": 0,
            "fastest_delivery": 0,
            "slowest_delivery": 0,
        }

    def test_metrics(self):
        """Counts, rate and timing over delivered orders."""
        orders = [
            delivered("a", NOW - timedelta(hours=2), 30),
            delivered("b", NOW - timedelta(days=1), 45),
            delivered("c", datetime(2025, 12, 20, 20, 0, tzinfo=TZ), 20),
            delivered("d", NOW - timedelta(hours=1), None, status="cancelled"),
        ]
        metrics = calculate_driver_metrics(orders, MONTH_START, MONTH_END, NOW)

        assert metrics.total_deliveries == 3
        assert metrics.deliveries_this_month == 2
        assert metrics.deliveries_today == 1
        assert metrics.success_rate == 75
        assert metrics.fastest_delivery == 20
        assert metrics.slowest_delivery == 45
        # (30 + 45 + 20) / 3 = 31.67
        assert metrics.average_delivery_time == 32

    def test_outlier_times_ignored(self):
        """Durations of zero or beyond the limit do not skew timing."""
        orders = [
            delivered("a", NOW - timedelta(hours=3), 40),
            delivered("b", NOW - timedelta(days=2), 0),
            delivered("c", NOW - timedelta(days=3), 600),
        ]
        metrics = calculate_driver_metrics(orders, MONTH_START, MONTH_END, NOW)

        assert metrics.total_deliveries == 3
        assert metrics.average_delivery_time == 40
        assert metrics.fastest_delivery == 40
        assert metrics.slowest_delivery == 40

    def test_half_rounds_up(self):
        """An average of 30.5 minutes reports 31."""
        orders = [
            delivered("a", NOW - timedelta(hours=5), 30),
            delivered("b", NOW - timedelta(hours=4), 31),
        ]
        metrics = calculate_driver_metrics(orders, MONTH_START, MONTH_END, NOW)
        assert metrics.average_delivery_time == 31


class TestPlanQueueAdvance:
    """Tests for plan_queue_advance."""

    def test_empty_queue(self):
        plan = plan_queue_advance([])
        assert plan.is_empty
        assert plan.renumbered == []

    def test_pops_lowest_and_compacts(self):
        """Positions 2, 5, 9 become next=2 and the rest renumbered 1, 2."""
        plan = plan_queue_advance([queued("o9", 9), queued("o2", 2), queued("o5", 5)])

        assert plan.next_order.id == "o2"
        assert plan.renumbered == [("o5", 1), ("o9", 2)]

    def test_ignores_orders_outside_queue(self):
        """Only queued orders with a position take part."""
        plan = plan_queue_advance([
            queued("a", None),
            queued("b", 1, status="out_for_delivery"),
            queued("c", 3),
        ])
        assert plan.next_order.id == "c"
        assert plan.renumbered == []


class TestQueueNotifications:
    """Tests for the driver notification payloads."""

    def test_notification_row(self):
        order = queued("o1", 1, name="João")
        row = queue_notification("user-1", order, "c1")

        assert row["user_id"] == "user-1"
        assert "João" in row["message"]
        assert row["data"] == {"type": "queue_next", "order_id": "o1", "company_id": "c1"}

    def test_push_payload(self):
        order = queued("o1", 1, name="João")
        payload = queue_push_payload("user-1", order, "c1")

        assert payload["userId"] == "user-1"
        assert payload["userType"] == "driver"
        assert payload["payload"]["tag"] == "order-o1"
        assert payload["payload"]["data"]["url"] == "/driver"
