"""
Pytest configuration and shared fixtures.
"""
import os

# Gateway clients refuse to start without credentials
os.environ.setdefault("SUPABASE_URL", "https://backend.test")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "service-key")
os.environ.setdefault("MERCADO_PAGO_ACCESS_TOKEN", "mp-token")
os.environ.setdefault("CACHE_ENABLED", "false")

import pytest
from datetime import datetime
from typing import Any, Dict, List
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

from core import resilience
from core.models import Company, NfeInvoice, Order, OrderItem

COMPANY_ID = "11111111-1111-1111-1111-111111111111"
DRIVER_ID = "22222222-2222-2222-2222-222222222222"
CUSTOMER_ID = "33333333-3333-3333-3333-333333333333"
ORDER_ID = "44444444-4444-4444-4444-444444444444"

SAO_PAULO = ZoneInfo("America/Sao_Paulo")


@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    """Gateway breakers are shared per service; start every test closed."""
    resilience._breakers.clear()
    yield
    resilience._breakers.clear()


@pytest.fixture
def now() -> datetime:
    """Wednesday 2026-01-14 15:00 in Sao Paulo."""
    return datetime(2026, 1, 14, 15, 0, tzinfo=SAO_PAULO)


@pytest.fixture
def order_row() -> Dict[str, Any]:
    """Order row as returned by the backend REST API."""
    return {
        "id": ORDER_ID,
        "company_id": COMPANY_ID,
        "status": "delivered",
        "total": "57.50",
        "subtotal": 52.5,
        "delivery_fee": 7.0,
        "discount_amount": 2.0,
        "customer_name": "Maria Souza",
        "customer_phone": "11999990000",
        "payment_method": "pix",
        "payment_status": "paid",
        "source": "online",
        "notes": "Sem cebola",
        "created_at": "2026-01-14T17:00:00Z",
        "updated_at": "2026-01-14T17:40:00+00:00",
        "delivered_at": "2026-01-14T17:35:00Z",
        "delivery_driver_id": DRIVER_ID,
        "queue_position": None,
    }


@pytest.fixture
def order_item_rows() -> List[Dict[str, Any]]:
    return [
        {
            "id": "item-1",
            "order_id": ORDER_ID,
            "product_id": "prod-burger",
            "product_name": "X-Burger",
            "quantity": 2,
            "unit_price": 20.0,
            "total_price": 40.0,
        },
        {
            "id": "item-2",
            "order_id": ORDER_ID,
            "product_id": "prod-coke",
            "product_name": "Coca-Cola 350ml",
            "quantity": 1,
            "unit_price": 12.5,
            "total_price": 12.5,
        },
    ]


@pytest.fixture
def company_row() -> Dict[str, Any]:
    return {
        "id": COMPANY_ID,
        "name": "Pizzaria Bella",
        "cnpj": "12.345.678/0001-90",
        "razao_social": "Bella Alimentos LTDA",
        "inscricao_estadual": "123.456.789.000",
        "status": "active",
        "is_open": True,
        "opening_hours": {
            "monday": {"enabled": True, "open": "18:00", "close": "23:00"},
            "tuesday": {"enabled": True, "open": "18:00", "close": "23:00"},
            "wednesday": {
                "enabled": True,
                "periods": [{"open": "11:00", "close": "14:00"}, {"open": "18:00", "close": "23:30"}],
            },
            "thursday": {"enabled": True, "open": "18:00", "close": "23:00"},
            "friday": {"enabled": True, "open": "18:00", "close": "02:00"},
            "saturday": {"enabled": True, "open": "18:00", "close": "02:00"},
            "sunday": {"enabled": False},
        },
    }


@pytest.fixture
def order(order_row) -> Order:
    return Order.from_row(order_row)


@pytest.fixture
def order_items(order_item_rows) -> List[OrderItem]:
    return [OrderItem.from_row(r) for r in order_item_rows]


@pytest.fixture
def company(company_row) -> Company:
    return Company.from_row(company_row)


@pytest.fixture
def invoice() -> NfeInvoice:
    return NfeInvoice.from_row({
        "id": "inv-1",
        "order_id": ORDER_ID,
        "company_id": COMPANY_ID,
        "status": "pending",
        "created_at": "2026-01-14T17:36:00Z",
    })


@pytest.fixture
def mock_backend():
    """BackendClient double; every coroutine method is an AsyncMock."""
    backend = MagicMock()
    for name in (
        "select", "select_one", "update", "insert", "invoke_function", "fetch_all",
        "get_nfe_global_settings", "get_company_nfe_settings", "get_pending_invoices",
        "update_invoice", "get_order", "get_order_items", "update_order", "get_company",
        "get_recipe_lines", "get_driver", "update_driver", "get_queued_orders",
        "insert_notification", "get_available_credits",
        "update_credit_remaining",
    ):
        setattr(backend, name, AsyncMock())
    return backend
