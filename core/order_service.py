"""
Order lifecycle operations that write to the backend.

- Payment webhook: sync ``payment_status`` from Mercado Pago
- Driver queue: hand the driver their next queued delivery
- Customer credits: spend referral credits on an order

Each operation reads and writes through ``BackendClient``; the business
rules live in ``core.delivery`` and ``core.credits``.
"""
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from core.backend import BackendClient, get_backend, utc_now_iso
from core.credits import allocate_credits
from core.delivery import plan_queue_advance, queue_notification, queue_push_payload
from core.events import OrderEvent, emit_payment_updated, events
from core.exceptions import GatewayError, NotFoundError, ValidationError
from core.mercadopago import MercadoPagoClient, map_payment_status
from core.models import CustomerCredit, DriverStatus, OrderStatus
from core.observability import get_logger
from core.resilience import CircuitOpenError

logger = get_logger(__name__)

PUSH_FUNCTION = "send-push-notification"


class OrderService:
    """
    Usage:
        service = get_order_service()
        result = await service.advance_driver_queue(driver_id)
    """

    def __init__(
        self,
        backend: Optional[BackendClient] = None,
        payments_factory: Callable[[], MercadoPagoClient] = MercadoPagoClient,
    ):
        self._backend = backend
        self.payments_factory = payments_factory

    @property
    def backend(self) -> BackendClient:
        if self._backend is None:
            self._backend = get_backend()
        return self._backend

    # ═══════════════════════════════════════════════════════════════════════════
    # PAYMENTS
    # ═══════════════════════════════════════════════════════════════════════════

    async def handle_payment_webhook(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply a Mercado Pago notification to its order.

        Only ``payment`` notifications carrying ``data.id`` do anything; the
        payment's ``external_reference`` is our order id.

        Raises:
            ValueError: payments not configured
            GatewayError: lookup or update failed
        """
        if body.get("type") != "payment":
            return {"received": True}

        data = body.get("data")
        payment_id = data.get("id") if isinstance(data, dict) else None
        if not payment_id:
            logger.info("Payment webhook without payment id")
            return {"received": True}

        async with self.payments_factory() as payments:
            payment = await payments.get_payment(str(payment_id))
        if not isinstance(payment, dict):
            payment = {}

        order_id = payment.get("external_reference")
        if not order_id:
            logger.info(
                "Payment without external_reference",
                extra={"payment_id": payment_id},
            )
            return {"received": True}

        payment_status = map_payment_status(payment.get("status") or "")
        rows = await self.backend.update_order(
            order_id,
            {"payment_status": payment_status, "updated_at": utc_now_iso()},
        )
        if not rows:
            logger.warning(f"Payment {payment_id} references unknown order {order_id}")

        company_id = rows[0].get("company_id") if rows else None
        await emit_payment_updated(order_id, company_id, payment_status)
        logger.info(
            f"Order {order_id} payment status -> {payment_status}",
            extra={"order_id": order_id, "payment_id": payment_id},
        )
        return {"received": True, "order_id": order_id, "payment_status": payment_status}

    # ═══════════════════════════════════════════════════════════════════════════
    # DRIVER QUEUE
    # ═══════════════════════════════════════════════════════════════════════════

    async def advance_driver_queue(self, driver_id: str) -> Dict[str, Any]:
        """
        Called when a driver finishes a delivery.

        Moves the lowest queued order to ``awaiting_driver``, compacts the
        rest of the queue and notifies the driver. An empty queue makes the
        driver available again.
        """
        driver = await self.backend.get_driver(driver_id)
        if driver is None:
            raise NotFoundError("Driver", driver_id)

        plan = plan_queue_advance(await self.backend.get_queued_orders(driver_id))

        if plan.is_empty:
            await self.backend.update_driver(
                driver_id,
                {"driver_status": DriverStatus.AVAILABLE.value, "is_available": True},
            )
            logger.info(f"No queued orders for driver {driver_id}")
            return {"success": True, "nextOrder": None, "message": "No queued orders"}

        next_order = plan.next_order
        await self.backend.update_order(
            next_order.id,
            {"status": OrderStatus.AWAITING_DRIVER.value, "queue_position": None},
        )
        await self.backend.update_driver(
            driver_id,
            {"driver_status": DriverStatus.PENDING_ACCEPTANCE.value, "is_available": False},
        )
        for order_id, position in plan.renumbered:
            await self.backend.update_order(order_id, {"queue_position": position})

        if driver.user_id:
            await self.backend.insert_notification(
                queue_notification(driver.user_id, next_order, driver.company_id)
            )
            await self._send_push(driver.user_id, next_order, driver.company_id)

        await events.emit(
            OrderEvent.DRIVER_QUEUE_ADVANCED,
            {
                "driver_id": driver_id,
                "order_id": next_order.id,
                "company_id": driver.company_id,
                "remaining": len(plan.renumbered),
            },
            source="order_service",
        )
        logger.info(f"Order {next_order.id} moved from queue to awaiting_driver")

        return {
            "success": True,
            "nextOrder": {"id": next_order.id, "customerName": next_order.customer_name},
            "remainingInQueue": len(plan.renumbered),
        }

    async def _send_push(self, user_id: str, order, company_id: str) -> None:
        """Push is best effort; the in-app notification is already stored."""
        try:
            await self.backend.invoke_function(
                PUSH_FUNCTION, queue_push_payload(user_id, order, company_id)
            )
        except (GatewayError, CircuitOpenError) as e:
            logger.error(f"Error sending push to {user_id}: {e}")

    # ═══════════════════════════════════════════════════════════════════════════
    # CREDITS
    # ═══════════════════════════════════════════════════════════════════════════

    async def consume_customer_credits(
        self,
        company_id: str,
        customer_id: str,
        amount: float,
        order_id: str,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Spend up to ``amount`` of the customer's credits, oldest first."""
        if amount is None or amount <= 0:
            raise ValidationError("amountToConsume", "must be greater than zero", amount)

        now = now or datetime.now(timezone.utc)
        credits = await self.backend.get_available_credits(company_id, customer_id, now)
        if not credits:
            return {"consumed": 0, "message": "No credits available"}

        allocation = await allocate_credits(credits, amount, now, commit=self._commit_credit)
        consumed = allocation.consumed
        if consumed:
            await events.emit(
                OrderEvent.CREDITS_CONSUMED,
                {
                    "company_id": company_id,
                    "customer_id": customer_id,
                    "order_id": order_id,
                    "consumed": consumed,
                },
                source="order_service",
            )
        return {"consumed": consumed, "message": f"Consumed {consumed:.2f} in credits"}

    async def _commit_credit(self, credit: CustomerCredit, taken: float, remaining: float) -> bool:
        try:
            await self.backend.update_credit_remaining(credit.id, remaining)
        except (GatewayError, CircuitOpenError) as e:
            logger.error(f"Error updating credit {credit.id}: {e}")
            return False
        logger.info(
            "Consumed from credit",
            extra={"credit_id": credit.id, "consumed": taken, "new_remaining": remaining},
        )
        return True


_order_service: Optional[OrderService] = None


def get_order_service() -> OrderService:
    global _order_service
    if _order_service is None:
        _order_service = OrderService()
    return _order_service
