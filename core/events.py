"""
In-process event bus.

Domain operations announce what changed (an order's payment, an invoice
batch, a sync run) and subscribers react: cache invalidation, logging,
metrics. Handlers run concurrently and a failing handler never breaks the
emitter.

Usage:
    from core.events import events, OrderEvent

    @events.on(OrderEvent.PAYMENT_UPDATED)
    async def drop_dashboard(data: dict):
        await cache.invalidate_company(data["company_id"])

    await events.emit(OrderEvent.PAYMENT_UPDATED, {"order_id": "...", "company_id": "..."})
"""
import asyncio
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Coroutine, Deque, Dict, List, Optional

from core.observability import get_correlation_id, get_logger

logger = get_logger(__name__)

EventHandler = Callable[[Dict[str, Any]], Coroutine[Any, Any, None]]


class OrderEvent(Enum):
    # Mirror sync
    SYNC_STARTED = "sync.started"
    SYNC_COMPLETED = "sync.completed"
    SYNC_FAILED = "sync.failed"
    ORDERS_SYNCED = "orders.synced"
    INVENTORY_SYNCED = "inventory.synced"

    # Order lifecycle
    PAYMENT_UPDATED = "order.payment_updated"
    DRIVER_QUEUE_ADVANCED = "driver.queue_advanced"
    CREDITS_CONSUMED = "customer.credits_consumed"

    # Fiscal
    NFE_BATCH_PROCESSED = "nfe.batch_processed"
    NFE_INVOICE_FAILED = "nfe.invoice_failed"

    # Cache / scheduler
    CACHE_INVALIDATED = "cache.invalidated"
    JOB_COMPLETED = "scheduler.job_completed"
    JOB_FAILED = "scheduler.job_failed"


@dataclass
class Event:
    type: OrderEvent
    data: Dict[str, Any]
    source: str = "app"
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    correlation_id: Optional[str] = field(default_factory=get_correlation_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.type.value,
            "data": self.data,
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "correlation_id": self.correlation_id,
            "source": self.source,
        }


class EventBus:
    """
    Async publish/subscribe with per-type and wildcard handlers and a
    bounded history for the admin API.
    """

    def __init__(self, max_history: int = 100):
        self._handlers: Dict[Optional[OrderEvent], List[EventHandler]] = {}
        self._history: Deque[Event] = deque(maxlen=max_history)

    def on(self, event_type: Optional[OrderEvent] = None) -> Callable[[EventHandler], EventHandler]:
        """Decorator form of ``subscribe``; ``None`` subscribes to everything."""
        def decorator(handler: EventHandler) -> EventHandler:
            self.subscribe(event_type, handler)
            return handler
        return decorator

    def subscribe(self, event_type: Optional[OrderEvent], handler: EventHandler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug(
            f"Registered {handler.__name__}",
            extra={"event_type": event_type.value if event_type else "*"},
        )

    def unsubscribe(self, event_type: Optional[OrderEvent], handler: EventHandler) -> bool:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    async def emit(
        self,
        event_type: OrderEvent,
        data: Optional[Dict[str, Any]] = None,
        source: str = "app",
    ) -> Event:
        event = Event(type=event_type, data=data or {}, source=source)
        self._history.append(event)

        handlers = self._handlers.get(event_type, []) + self._handlers.get(None, [])
        if not handlers:
            return event

        results = await asyncio.gather(
            *(handler(event.data) for handler in handlers),
            return_exceptions=True,
        )
        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                logger.error(
                    f"Handler {handler.__name__} failed for {event_type.value}: {result}",
                    extra={"event_id": event.event_id},
                )

        return event

    def get_history(self, event_type: Optional[OrderEvent] = None, limit: int = 20) -> List[Dict[str, Any]]:
        history = [e for e in self._history if event_type is None or e.type == event_type]
        return [e.to_dict() for e in history[-limit:]]

    def get_handlers(self) -> Dict[str, int]:
        return {
            (et.value if et else "*"): len(handlers)
            for et, handlers in self._handlers.items()
        }

    def clear_handlers(self) -> None:
        self._handlers.clear()

    def clear_history(self) -> None:
        self._history.clear()


# Global event bus instance
events = EventBus()


# ═══════════════════════════════════════════════════════════════════════════════
# CONVENIENCE EMITTERS
# ═══════════════════════════════════════════════════════════════════════════════

async def emit_orders_synced(count: int, company_ids: List[str], duration_ms: float) -> Event:
    return await events.emit(
        OrderEvent.ORDERS_SYNCED,
        {"count": count, "company_ids": sorted(set(company_ids)), "duration_ms": duration_ms},
        source="sync_service",
    )


async def emit_payment_updated(order_id: str, company_id: Optional[str], payment_status: str) -> Event:
    return await events.emit(
        OrderEvent.PAYMENT_UPDATED,
        {"order_id": order_id, "company_id": company_id, "payment_status": payment_status},
        source="payments",
    )


async def emit_nfe_batch_processed(processed: int, failed: int) -> Event:
    return await events.emit(
        OrderEvent.NFE_BATCH_PROCESSED,
        {"processed": processed, "failed": failed},
        source="nfe",
    )


async def emit_cache_invalidated(pattern: str, count: int, reason: str) -> Event:
    return await events.emit(
        OrderEvent.CACHE_INVALIDATED,
        {"pattern": pattern, "count": count, "reason": reason},
        source="cache",
    )
