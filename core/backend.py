"""
Async client for the managed Postgres REST API (PostgREST dialect).

The backend is the system of record for companies, orders, inventory,
invoices and drivers. This client speaks its auto-generated REST API with
the service-role key, so row-level security does not apply.

Filters use PostgREST operators as query params:
    {"status": in_(["pending", "processing"]), "company_id": eq(company_id)}

Usage:
    async with BackendClient() as backend:
        invoices = await backend.get_pending_invoices(limit=10)
"""
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, Iterable, List, Optional

from core.config import config
from core.exceptions import GatewayDataError
from core.http_client import GatewayClient
from core.models import (
    Company,
    CustomerCredit,
    DeliveryDriver,
    NfeCompanySettings,
    NfeGlobalSettings,
    NfeInvoice,
    Order,
    OrderItem,
    RecipeLine,
)
from core.observability import get_logger

logger = get_logger(__name__)


def eq(value: Any) -> str:
    return f"eq.{value}"


def gt(value: Any) -> str:
    return f"gt.{value}"


def gte(value: Any) -> str:
    return f"gte.{value}"


def in_(values: Iterable[Any]) -> str:
    return "in.(" + ",".join(str(v) for v in values) + ")"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class BackendClient(GatewayClient):
    """Service-role REST client with a few typed helpers per table."""

    service_name = "backend"

    def __init__(
        self,
        url: str = None,
        service_key: str = None,
        timeout: float = None,
        **kwargs,
    ):
        self.url = (url or config.backend.url).rstrip("/")
        self.service_key = service_key or config.backend.service_key
        if not self.url or not self.service_key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required")
        super().__init__(
            base_url=self.url,
            timeout=timeout or config.backend.request_timeout,
            **kwargs,
        )

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    # ═══════════════════════════════════════════════════════════════════════════
    # GENERIC TABLE ACCESS
    # ═══════════════════════════════════════════════════════════════════════════

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Dict[str, str]] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"select": columns}
        params.update(filters or {})
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = limit
        if offset:
            params["offset"] = offset

        rows = await self._request("GET", f"rest/v1/{table}", params=params)
        if rows is None:
            return []
        if not isinstance(rows, list):
            raise GatewayDataError(
                f"Unexpected response selecting {table}",
                service=self.service_name,
                expected="list",
                got=type(rows).__name__,
            )
        return rows

    async def select_one(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Dict[str, str]] = None,
    ) -> Optional[Dict[str, Any]]:
        rows = await self.select(table, columns, filters, limit=1)
        return rows[0] if rows else None

    async def update(
        self,
        table: str,
        values: Dict[str, Any],
        filters: Dict[str, str],
    ) -> List[Dict[str, Any]]:
        if not filters:
            raise ValueError("Refusing to update without filters")
        rows = await self._request(
            "PATCH",
            f"rest/v1/{table}",
            params=filters,
            json=values,
            headers={"Prefer": "return=representation"},
        )
        return rows or []

    async def insert(self, table: str, rows: Any) -> List[Dict[str, Any]]:
        result = await self._request(
            "POST",
            f"rest/v1/{table}",
            json=rows,
            headers={"Prefer": "return=representation"},
        )
        return result or []

    async def invoke_function(self, name: str, body: Dict[str, Any]) -> Any:
        """Call a deployed edge function (push notifications and the like)."""
        return await self._request("POST", f"functions/v1/{name}", json=body)

    async def paginate(
        self,
        table: str,
        filters: Optional[Dict[str, str]] = None,
        order: str = "updated_at.asc",
        page_size: int = None,
        max_pages: int = 100,
    ) -> AsyncGenerator[List[Dict[str, Any]], None]:
        """Yield pages of rows until a short page comes back."""
        page_size = page_size or config.backend.page_limit
        for page in range(max_pages):
            batch = await self.select(
                table, filters=filters, order=order, limit=page_size, offset=page * page_size
            )
            if not batch:
                break
            yield batch
            if len(batch) < page_size:
                break

    async def fetch_all(self, table: str, **kwargs) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        async for batch in self.paginate(table, **kwargs):
            rows.extend(batch)
        return rows

    # ═══════════════════════════════════════════════════════════════════════════
    # NFE
    # ═══════════════════════════════════════════════════════════════════════════

    async def get_nfe_global_settings(self) -> Optional[NfeGlobalSettings]:
        row = await self.select_one("nfe_global_settings")
        return NfeGlobalSettings.from_row(row) if row else None

    async def get_company_nfe_settings(self, company_id: str) -> Optional[NfeCompanySettings]:
        row = await self.select_one("nfe_company_settings", filters={"company_id": eq(company_id)})
        return NfeCompanySettings.from_row(row) if row else None

    async def get_pending_invoices(self, limit: int = 10) -> List[NfeInvoice]:
        rows = await self.select(
            "nfe_invoices",
            filters={"status": in_(["pending", "processing"])},
            order="created_at.asc",
            limit=limit,
        )
        return [NfeInvoice.from_row(r) for r in rows]

    async def update_invoice(self, invoice_id: str, values: Dict[str, Any]) -> None:
        await self.update(
            "nfe_invoices",
            {**values, "updated_at": utc_now_iso()},
            {"id": eq(invoice_id)},
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # ORDERS / COMPANIES
    # ═══════════════════════════════════════════════════════════════════════════

    async def get_order(self, order_id: str) -> Optional[Order]:
        row = await self.select_one("orders", filters={"id": eq(order_id)})
        return Order.from_row(row) if row else None

    async def get_order_items(self, order_id: str) -> List[OrderItem]:
        rows = await self.select("order_items", filters={"order_id": eq(order_id)})
        return [OrderItem.from_row(r) for r in rows]

    async def update_order(self, order_id: str, values: Dict[str, Any]) -> List[Dict[str, Any]]:
        return await self.update("orders", values, {"id": eq(order_id)})

    async def get_company(self, company_id: str) -> Optional[Company]:
        row = await self.select_one("companies", filters={"id": eq(company_id)})
        return Company.from_row(row) if row else None

    # ═══════════════════════════════════════════════════════════════════════════
    # INVENTORY
    # ═══════════════════════════════════════════════════════════════════════════

    async def get_recipe_lines(
        self,
        company_id: Optional[str] = None,
        product_ids: Optional[List[str]] = None,
    ) -> List[RecipeLine]:
        filters: Dict[str, str] = {}
        if company_id:
            filters["company_id"] = eq(company_id)
        if product_ids:
            filters["product_id"] = in_(product_ids)
        rows = await self.select(
            "inventory_product_ingredients",
            columns="product_id,ingredient_id,quantity_per_unit,"
                    "inventory_ingredients(id,name,current_stock)",
            filters=filters,
        )
        return [RecipeLine.from_row(r) for r in rows]

    # ═══════════════════════════════════════════════════════════════════════════
    # DRIVERS
    # ═══════════════════════════════════════════════════════════════════════════

    async def get_driver(self, driver_id: str) -> Optional[DeliveryDriver]:
        row = await self.select_one("delivery_drivers", filters={"id": eq(driver_id)})
        return DeliveryDriver.from_row(row) if row else None

    async def update_driver(self, driver_id: str, values: Dict[str, Any]) -> None:
        await self.update("delivery_drivers", values, {"id": eq(driver_id)})

    async def get_queued_orders(self, driver_id: str) -> List[Order]:
        rows = await self.select(
            "orders",
            filters={
                "delivery_driver_id": eq(driver_id),
                "status": eq("queued"),
                "queue_position": "not.is.null",
            },
            order="queue_position.asc",
        )
        return [Order.from_row(r) for r in rows]

    async def insert_notification(self, notification: Dict[str, Any]) -> None:
        await self.insert("notifications", notification)

    # ═══════════════════════════════════════════════════════════════════════════
    # CREDITS
    # ═══════════════════════════════════════════════════════════════════════════

    async def get_available_credits(
        self, company_id: str, customer_id: str, now: datetime
    ) -> List[CustomerCredit]:
        rows = await self.select(
            "customer_referral_credits",
            columns="id,remaining_amount,created_at,expires_at",
            filters={
                "company_id": eq(company_id),
                "customer_id": eq(customer_id),
                "remaining_amount": gt(0),
                "or": f"(expires_at.is.null,expires_at.gt.{now.isoformat()})",
            },
            order="created_at.asc",
        )
        return [CustomerCredit.from_row(r) for r in rows]

    async def update_credit_remaining(self, credit_id: str, remaining: float) -> None:
        await self.update(
            "customer_referral_credits",
            {"remaining_amount": remaining},
            {"id": eq(credit_id)},
        )


# ═══════════════════════════════════════════════════════════════════════════════
# SINGLETON INSTANCE
# ═══════════════════════════════════════════════════════════════════════════════

_backend_instance: Optional[BackendClient] = None


def get_backend() -> BackendClient:
    global _backend_instance
    if _backend_instance is None:
        _backend_instance = BackendClient()
    return _backend_instance


async def close_backend() -> None:
    global _backend_instance
    if _backend_instance is not None:
        await _backend_instance.close()
        _backend_instance = None
