"""
Dashboard aggregations for a restaurant's admin home page.

Pure functions over already-loaded rows. Day boundaries are taken in the
timezone of ``now`` (the store's local time), so callers must pass an
aware datetime.

Usage:
    from core.dashboard import build_dashboard

    data = build_dashboard(orders, items, ingredients, unavailable, movements,
                           period="7days", now=datetime.now(tz))
"""
from dataclasses import asdict, dataclass, field
from datetime import datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from core.config import config
from core.exceptions import ValidationError
from core.models import (
    Ingredient,
    InventoryMovement,
    MovementType,
    Order,
    OrderItem,
    OrderStatus,
    STATUS_LABELS,
    UNKNOWN_STATUS_COLOR,
)

# datetime.weekday() order, Monday first
WEEKDAY_ABBR_PT = ("seg", "ter", "qua", "qui", "sex", "sáb", "dom")


@dataclass
class DashboardStats:
    orders_period: int = 0
    orders_previous: int = 0
    revenue_period: float = 0.0
    revenue_previous: float = 0.0
    average_ticket: float = 0.0
    average_ticket_previous: float = 0.0
    pending_orders: int = 0
    in_delivery_orders: int = 0
    delivered_period: int = 0
    cancelled_period: int = 0
    table_orders_period: int = 0
    table_revenue_period: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class InventoryOverview:
    low_stock_count: int = 0
    unavailable_products_count: int = 0
    critical_ingredients: List[Ingredient] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "low_stock_count": self.low_stock_count,
            "unavailable_products_count": self.unavailable_products_count,
            "critical_ingredients": [i.to_dict() for i in self.critical_ingredients],
        }


@dataclass
class IngredientFinancials:
    purchases_cost: float = 0.0
    consumption_cost: float = 0.0
    gross_margin: float = 0.0
    gross_margin_percent: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {k: round(v, 2) for k, v in asdict(self).items()}


# ═══════════════════════════════════════════════════════════════════════════════
# PERIODS
# ═══════════════════════════════════════════════════════════════════════════════

def _start_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.min, tzinfo=moment.tzinfo)


def _end_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.max, tzinfo=moment.tzinfo)


def period_days(period: str) -> int:
    try:
        return config.dashboard.period_days[period]
    except KeyError:
        raise ValidationError(
            "period", f"must be one of {sorted(config.dashboard.period_days)}", period
        )


def period_bounds(
    period: str, now: datetime
) -> Tuple[Tuple[datetime, datetime], Tuple[datetime, datetime]]:
    """
    Current and previous windows for a period filter.

    ``7days`` is the last 7 calendar days including today; the previous
    window is the 7 days before that.
    """
    days = period_days(period)
    current = (_start_of_day(now - timedelta(days=days - 1)), _end_of_day(now))
    previous = (
        _start_of_day(now - timedelta(days=days * 2 - 1)),
        _end_of_day(now - timedelta(days=days)),
    )
    return current, previous


# ═══════════════════════════════════════════════════════════════════════════════
# AGGREGATIONS
# ═══════════════════════════════════════════════════════════════════════════════

def _revenue(orders: Iterable[Order]) -> float:
    return sum(o.total for o in orders)


def calculate_stats(
    orders: List[Order],
    current: Tuple[datetime, datetime],
    previous: Tuple[datetime, datetime],
) -> DashboardStats:
    """Headline numbers; revenue and ticket ignore cancelled orders."""
    in_period = [o for o in orders if o.is_within(*current)]
    in_previous = [o for o in orders if o.is_within(*previous)]

    valid_period = [o for o in in_period if not o.is_cancelled]
    valid_previous = [o for o in in_previous if not o.is_cancelled]
    revenue_period = _revenue(valid_period)
    revenue_previous = _revenue(valid_previous)

    table_orders = [o for o in valid_period if o.source == "table"]

    return DashboardStats(
        orders_period=len(in_period),
        orders_previous=len(in_previous),
        revenue_period=revenue_period,
        revenue_previous=revenue_previous,
        average_ticket=revenue_period / len(valid_period) if valid_period else 0.0,
        average_ticket_previous=revenue_previous / len(valid_previous) if valid_previous else 0.0,
        pending_orders=sum(1 for o in orders if o.status in OrderStatus.in_kitchen()),
        in_delivery_orders=sum(1 for o in orders if o.status == OrderStatus.OUT_FOR_DELIVERY.value),
        delivered_period=sum(1 for o in in_period if o.status == OrderStatus.DELIVERED.value),
        cancelled_period=sum(1 for o in in_period if o.is_cancelled),
        table_orders_period=len(table_orders),
        table_revenue_period=_revenue(table_orders),
    )


def calculate_chart_data(orders: List[Order], days: int, now: datetime) -> List[Dict[str, Any]]:
    """One point per day, oldest first, for non-cancelled orders."""
    chart = []
    valid = [o for o in orders if not o.is_cancelled]

    for offset in range(days - 1, -1, -1):
        day = now - timedelta(days=offset)
        start, end = _start_of_day(day), _end_of_day(day)
        day_orders = [o for o in valid if o.is_within(start, end)]

        label = WEEKDAY_ABBR_PT[day.weekday()] if days <= 7 else day.strftime("%d/%m")
        chart.append({
            "date": label,
            "orders": len(day_orders),
            "revenue": round(_revenue(day_orders), 2),
        })

    return chart


def calculate_status_data(orders: List[Order]) -> List[Dict[str, Any]]:
    """Order count per status, in order of first appearance."""
    counts: Dict[str, int] = {}
    for order in orders:
        counts[order.status] = counts.get(order.status, 0) + 1

    result = []
    for status, count in counts.items():
        label, color = STATUS_LABELS.get(status, (status, UNKNOWN_STATUS_COLOR))
        result.append({"name": label, "value": count, "color": color})
    return result


def calculate_top_products(items: List[OrderItem], limit: int = 5) -> List[Dict[str, Any]]:
    grouped: Dict[str, Dict[str, float]] = {}
    for item in items:
        entry = grouped.setdefault(item.product_name, {"quantity": 0.0, "revenue": 0.0})
        entry["quantity"] += item.quantity
        entry["revenue"] += item.total_price

    ranked = sorted(grouped.items(), key=lambda kv: kv[1]["quantity"], reverse=True)
    return [
        {"name": name, "quantity": data["quantity"], "revenue": round(data["revenue"], 2)}
        for name, data in ranked[:limit]
    ]


def calculate_inventory_overview(
    ingredients: List[Ingredient],
    unavailable_count: int,
    limit: int = 5,
) -> InventoryOverview:
    low_stock = [
        i for i in ingredients
        if i.min_stock > 0 and i.current_stock <= i.min_stock
    ]
    low_stock.sort(key=lambda i: i.current_stock / i.min_stock)

    return InventoryOverview(
        low_stock_count=len(low_stock),
        unavailable_products_count=unavailable_count,
        critical_ingredients=low_stock[:limit],
    )


def calculate_ingredient_financials(
    movements: List[InventoryMovement],
    revenue: float,
    average_costs: Optional[Dict[str, float]] = None,
) -> IngredientFinancials:
    """
    Purchase and consumption cost over the period's stock movements.

    Consumption without a recorded unit cost is valued at the ingredient's
    average cost.
    """
    average_costs = average_costs or {}
    purchases = 0.0
    consumption = 0.0

    for movement in movements:
        if movement.movement_type == MovementType.PURCHASE.value:
            purchases += movement.quantity * (movement.unit_cost or 0.0)
        elif movement.movement_type == MovementType.CONSUMPTION.value:
            unit_cost = movement.unit_cost
            if unit_cost is None:
                unit_cost = average_costs.get(movement.ingredient_id, 0.0)
            consumption += abs(movement.quantity) * unit_cost

    margin = revenue - consumption
    return IngredientFinancials(
        purchases_cost=purchases,
        consumption_cost=consumption,
        gross_margin=margin,
        gross_margin_percent=(margin / revenue * 100) if revenue > 0 else 0.0,
    )


def build_dashboard(
    orders: List[Order],
    period_items: List[OrderItem],
    ingredients: List[Ingredient],
    unavailable_count: int,
    movements: List[InventoryMovement],
    period: str,
    now: datetime,
) -> Dict[str, Any]:
    """
    Everything the dashboard page renders.

    ``orders`` must be sorted newest first; ``period_items`` are the items
    of orders created in the current window.
    """
    days = period_days(period)
    current, previous = period_bounds(period, now)

    if orders:
        stats = calculate_stats(orders, current, previous)
        chart = calculate_chart_data(orders, days, now)
        status_data = calculate_status_data(orders)
    else:
        stats, chart, status_data = DashboardStats(), [], []

    average_costs = {i.id: i.average_unit_cost for i in ingredients}
    financials = calculate_ingredient_financials(movements, stats.revenue_period, average_costs)

    return {
        "period": period,
        "period_start": current[0].isoformat(),
        "period_end": current[1].isoformat(),
        "stats": stats.to_dict(),
        "chart_data": chart,
        "status_data": status_data,
        "recent_orders": [o.to_dict() for o in orders[:config.dashboard.recent_orders_limit]],
        "top_products": calculate_top_products(period_items, config.dashboard.top_products_limit),
        "inventory_overview": calculate_inventory_overview(
            ingredients, unavailable_count, config.dashboard.critical_items_limit
        ).to_dict(),
        "ingredient_financials": financials.to_dict(),
    }
