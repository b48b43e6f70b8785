"""
Delivery driver statistics and the per-driver order queue.

A driver can hold one active delivery; further orders assigned to them
wait with status ``queued`` and a 1-based ``queue_position``.
"""
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Any, Dict, List, Optional, Tuple

from core.config import config
from core.models import Order, OrderStatus


def delivery_minutes(created_at: datetime, delivered_at: datetime) -> int:
    """Whole minutes between order creation and delivery, truncated."""
    return int((delivered_at - created_at).total_seconds() / 60)


def format_delivery_time(created_at: Optional[datetime], delivered_at: Optional[datetime]) -> str:
    if not delivered_at or not created_at:
        return "-"
    minutes = delivery_minutes(created_at, delivered_at)
    if minutes < 60:
        return f"{minutes} min"
    return f"{minutes // 60}h {minutes % 60}min"


@dataclass
class DriverMetrics:
    total_deliveries: int = 0
    average_delivery_time: int = 0
    deliveries_this_month: int = 0
    deliveries_today: int = 0
    success_rate: int = 0
    fastest_delivery: int = 0
    slowest_delivery: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_deliveries": self.total_deliveries,
            "average_delivery_time": self.average_delivery_time,
            "deliveries_this_month": self.deliveries_this_month,
            "deliveries_today": self.deliveries_today,
            "success_rate": self.success_rate,
            "fastest_delivery": self.fastest_delivery,
            "slowest_delivery": self.slowest_delivery,
        }


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def calculate_driver_metrics(
    deliveries: List[Order],
    month_start: datetime,
    month_end: datetime,
    now: datetime,
) -> DriverMetrics:
    """
    Performance numbers for one driver.

    ``deliveries`` is every order ever assigned to the driver. Delivery
    times outside (0, max_delivery_minutes) are ignored as bad data.
    """
    completed = [
        o for o in deliveries
        if o.status == OrderStatus.DELIVERED.value and o.delivered_at
    ]
    today_start = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
    limit = config.delivery.max_delivery_minutes

    times = [
        minutes for minutes in (
            delivery_minutes(o.created_at, o.delivered_at) for o in completed if o.created_at
        )
        if 0 < minutes < limit
    ]

    return DriverMetrics(
        total_deliveries=len(completed),
        average_delivery_time=_round_half_up(sum(times) / len(times)) if times else 0,
        deliveries_this_month=sum(1 for o in completed if month_start <= o.delivered_at <= month_end),
        deliveries_today=sum(1 for o in completed if o.delivered_at >= today_start),
        success_rate=_round_half_up(len(completed) / len(deliveries) * 100) if deliveries else 0,
        fastest_delivery=min(times) if times else 0,
        slowest_delivery=max(times) if times else 0,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# DRIVER QUEUE
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class QueueAdvance:
    """What to write when a driver finishes a delivery."""
    next_order: Optional[Order] = None
    renumbered: List[Tuple[str, int]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.next_order is None


def plan_queue_advance(queued: List[Order]) -> QueueAdvance:
    """
    Pop the lowest queue position and compact the rest to 1..n.

    Orders without a position are not part of the queue.
    """
    in_queue = sorted(
        (o for o in queued if o.status == OrderStatus.QUEUED.value and o.queue_position is not None),
        key=lambda o: o.queue_position,
    )
    if not in_queue:
        return QueueAdvance()

    next_order, rest = in_queue[0], in_queue[1:]
    return QueueAdvance(
        next_order=next_order,
        renumbered=[(order.id, position) for position, order in enumerate(rest, start=1)],
    )


def queue_notification(driver_user_id: str, order: Order, company_id: str) -> Dict[str, Any]:
    """In-app notification row for the driver's next queued delivery."""
    return {
        "user_id": driver_user_id,
        "title": "Próxima entrega na fila!",
        "message": f"Você tem uma nova entrega para {order.customer_name}. Aceite para começar!",
        "type": "info",
        "data": {"type": "queue_next", "order_id": order.id, "company_id": company_id},
    }


def queue_push_payload(driver_user_id: str, order: Order, company_id: str) -> Dict[str, Any]:
    return {
        "userId": driver_user_id,
        "companyId": company_id,
        "userType": "driver",
        "payload": {
            "title": "📦 Próxima entrega!",
            "body": f"Nova entrega para {order.customer_name} está pronta.",
            "tag": f"order-{order.id}",
            "data": {"type": "queue_next", "orderId": order.id, "companyId": company_id, "url": "/driver"},
        },
    }
