"""
Integration tests for core/order_service.py

Payment webhook, driver queue and credit consumption against a mocked
backend.
"""
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from core.events import OrderEvent, events
from core.exceptions import GatewayAPIError, NotFoundError, ValidationError
from core.models import CustomerCredit, DeliveryDriver, Order
from core.order_service import PUSH_FUNCTION, OrderService

NOW = datetime(2026, 1, 14, 18, 0, tzinfo=timezone.utc)


def payments_factory(payment: dict):
    client = MagicMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    client.get_payment = AsyncMock(return_value=payment)
    return MagicMock(return_value=client)


def queued(order_id: str, position: int) -> Order:
    return Order(
        id=order_id, company_id="c1", status="queued", total=30.0,
        customer_name=f"Cliente {order_id}", queue_position=position,
    )


class TestPaymentWebhook:
    """Tests for handle_payment_webhook."""

    def setup_method(self):
        events.clear_history()

    @pytest.mark.asyncio
    async def test_ignores_other_topics(self, mock_backend):
        factory = payments_factory({})
        service = OrderService(backend=mock_backend, payments_factory=factory)

        result = await service.handle_payment_webhook({"type": "merchant_order", "data": {"id": 1}})

        assert result == {"received": True}
        factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_without_payment_id(self, mock_backend):
        service = OrderService(backend=mock_backend, payments_factory=payments_factory({}))
        assert await service.handle_payment_webhook({"type": "payment", "data": {}}) == {"received": True}

    @pytest.mark.asyncio
    async def test_non_object_data_is_ignored(self, mock_backend):
        factory = payments_factory({})
        service = OrderService(backend=mock_backend, payments_factory=factory)

        for data in ("123", ["123"], 123):
            result = await service.handle_payment_webhook({"type": "payment", "data": data})
            assert result == {"received": True}
        factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_object_payment_body(self, mock_backend):
        service = OrderService(backend=mock_backend, payments_factory=payments_factory(None))

        result = await service.handle_payment_webhook({"type": "payment", "data": {"id": "5"}})

        assert result == {"received": True}
        mock_backend.update_order.assert_not_called()

    @pytest.mark.asyncio
    async def test_approved_payment_marks_order_paid(self, mock_backend):
        mock_backend.update_order.return_value = [{"id": "o1", "company_id": "c1"}]
        factory = payments_factory({"id": 99, "status": "approved", "external_reference": "o1"})
        service = OrderService(backend=mock_backend, payments_factory=factory)

        result = await service.handle_payment_webhook({"type": "payment", "data": {"id": 99}})

        assert result == {"received": True, "order_id": "o1", "payment_status": "paid"}
        factory.return_value.get_payment.assert_called_once_with("99")
        order_id, values = mock_backend.update_order.call_args.args
        assert order_id == "o1"
        assert values["payment_status"] == "paid"
        assert "updated_at" in values

        event = events.get_history(OrderEvent.PAYMENT_UPDATED)[-1]
        assert event["data"] == {"order_id": "o1", "company_id": "c1", "payment_status": "paid"}

    @pytest.mark.asyncio
    async def test_rejected_payment(self, mock_backend):
        mock_backend.update_order.return_value = []
        factory = payments_factory({"status": "rejected", "external_reference": "o1"})
        service = OrderService(backend=mock_backend, payments_factory=factory)

        result = await service.handle_payment_webhook({"type": "payment", "data": {"id": "5"}})

        assert result["payment_status"] == "failed"

    @pytest.mark.asyncio
    async def test_payment_without_reference(self, mock_backend):
        factory = payments_factory({"status": "approved"})
        service = OrderService(backend=mock_backend, payments_factory=factory)

        result = await service.handle_payment_webhook({"type": "payment", "data": {"id": "5"}})

        assert result == {"received": True}
        mock_backend.update_order.assert_not_called()


class TestAdvanceDriverQueue:
    """Tests for advance_driver_queue."""

    @pytest.fixture
    def driver(self):
        return DeliveryDriver(id="d1", company_id="c1", driver_name="João", user_id="u1")

    @pytest.mark.asyncio
    async def test_unknown_driver(self, mock_backend):
        mock_backend.get_driver.return_value = None
        with pytest.raises(NotFoundError):
            await OrderService(backend=mock_backend).advance_driver_queue("d1")

    @pytest.mark.asyncio
    async def test_empty_queue_frees_driver(self, mock_backend, driver):
        mock_backend.get_driver.return_value = driver
        mock_backend.get_queued_orders.return_value = []

        result = await OrderService(backend=mock_backend).advance_driver_queue("d1")

        assert result == {"success": True, "nextOrder": None, "message": "No queued orders"}
        mock_backend.update_driver.assert_called_once_with(
            "d1", {"driver_status": "available", "is_available": True}
        )

    @pytest.mark.asyncio
    async def test_moves_lowest_position_and_compacts(self, mock_backend, driver):
        """Position 1 goes to awaiting_driver, the rest become 1..n."""
        mock_backend.get_driver.return_value = driver
        mock_backend.get_queued_orders.return_value = [queued("b", 3), queued("a", 1), queued("c", 5)]

        result = await OrderService(backend=mock_backend).advance_driver_queue("d1")

        assert result == {
            "success": True,
            "nextOrder": {"id": "a", "customerName": "Cliente a"},
            "remainingInQueue": 2,
        }
        order_updates = [c.args for c in mock_backend.update_order.call_args_list]
        assert order_updates == [
            ("a", {"status": "awaiting_driver", "queue_position": None}),
            ("b", {"queue_position": 1}),
            ("c", {"queue_position": 2}),
        ]
        mock_backend.update_driver.assert_called_once_with(
            "d1", {"driver_status": "pending_acceptance", "is_available": False}
        )

    @pytest.mark.asyncio
    async def test_notifies_driver(self, mock_backend, driver):
        mock_backend.get_driver.return_value = driver
        mock_backend.get_queued_orders.return_value = [queued("a", 1)]

        await OrderService(backend=mock_backend).advance_driver_queue("d1")

        notification = mock_backend.insert_notification.call_args.args[0]
        assert notification["user_id"] == "u1"
        assert notification["data"]["order_id"] == "a"
        name, payload = mock_backend.invoke_function.call_args.args
        assert name == PUSH_FUNCTION
        assert payload["userId"] == "u1"

    @pytest.mark.asyncio
    async def test_push_failure_is_not_fatal(self, mock_backend, driver):
        mock_backend.get_driver.return_value = driver
        mock_backend.get_queued_orders.return_value = [queued("a", 1)]
        mock_backend.invoke_function.side_effect = GatewayAPIError("push failed", status_code=500)

        result = await OrderService(backend=mock_backend).advance_driver_queue("d1")

        assert result["success"] is True

    @pytest.mark.asyncio
    async def test_driver_without_user_gets_no_notification(self, mock_backend, driver):
        driver.user_id = None
        mock_backend.get_driver.return_value = driver
        mock_backend.get_queued_orders.return_value = [queued("a", 1)]

        await OrderService(backend=mock_backend).advance_driver_queue("d1")

        mock_backend.insert_notification.assert_not_called()
        mock_backend.invoke_function.assert_not_called()


class TestConsumeCredits:
    """Tests for consume_customer_credits."""

    def setup_method(self):
        events.clear_history()

    @pytest.mark.asyncio
    async def test_rejects_non_positive_amount(self, mock_backend):
        with pytest.raises(ValidationError):
            await OrderService(backend=mock_backend).consume_customer_credits("c", "u", 0, "o")

    @pytest.mark.asyncio
    async def test_no_credits(self, mock_backend):
        mock_backend.get_available_credits.return_value = []

        result = await OrderService(backend=mock_backend).consume_customer_credits(
            "c", "u", 10.0, "o", now=NOW
        )

        assert result == {"consumed": 0, "message": "No credits available"}

    @pytest.mark.asyncio
    async def test_oldest_first(self, mock_backend):
        """Spends the oldest credit fully before touching the next one."""
        mock_backend.get_available_credits.return_value = [
            CustomerCredit(id="new", remaining_amount=20.0, created_at=NOW - timedelta(days=1)),
            CustomerCredit(id="old", remaining_amount=5.0, created_at=NOW - timedelta(days=10)),
        ]

        result = await OrderService(backend=mock_backend).consume_customer_credits(
            "c", "u", 12.0, "o", now=NOW
        )

        assert result == {"consumed": 12.0, "message": "Consumed 12.00 in credits"}
        updates = [c.args for c in mock_backend.update_credit_remaining.call_args_list]
        assert updates == [("old", 0.0), ("new", 13.0)]
        event = events.get_history(OrderEvent.CREDITS_CONSUMED)[-1]
        assert event["data"]["consumed"] == 12.0

    @pytest.mark.asyncio
    async def test_never_more_than_available(self, mock_backend):
        mock_backend.get_available_credits.return_value = [
            CustomerCredit(id="a", remaining_amount=7.5, created_at=NOW),
        ]

        result = await OrderService(backend=mock_backend).consume_customer_credits(
            "c", "u", 50.0, "o", now=NOW
        )

        assert result["consumed"] == 7.5

    @pytest.mark.asyncio
    async def test_failed_update_moves_to_next_credit(self, mock_backend):
        mock_backend.get_available_credits.return_value = [
            CustomerCredit(id="a", remaining_amount=10.0, created_at=NOW - timedelta(days=2)),
            CustomerCredit(id="b", remaining_amount=10.0, created_at=NOW - timedelta(days=1)),
        ]
        mock_backend.update_credit_remaining.side_effect = [GatewayAPIError("conflict", status_code=409), None]

        result = await OrderService(backend=mock_backend).consume_customer_credits(
            "c", "u", 6.0, "o", now=NOW
        )

        assert result["consumed"] == 6.0
        assert mock_backend.update_credit_remaining.call_args.args == ("b", 4.0)
