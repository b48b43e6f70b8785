"""DuckDBStore order methods."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from core.models import Order, OrderItem
from core.observability import get_logger
from core.repositories.base import dedupe, placeholders, to_utc_naive

logger = get_logger(__name__)

ORDER_COLUMNS = """
    id, company_id, status, total, subtotal, delivery_fee, discount_amount,
    customer_name, payment_method, payment_status, source, delivery_driver_id,
    queue_position, created_at, updated_at, delivered_at
"""


class OrdersMixin:

    async def upsert_orders(self, orders: List[Dict[str, Any]]) -> int:
        """Insert or update backend order rows (idempotent).

        Returns:
            Number of orders upserted
        """
        if not orders:
            return 0

        orders = dedupe(orders, "id")
        async with self.connection() as conn:
            conn.execute("BEGIN TRANSACTION")
            try:
                for order in orders:
                    conn.execute("""
                        INSERT OR REPLACE INTO orders (
                            id, company_id, status, total, subtotal, delivery_fee,
                            discount_amount, customer_name, payment_method, payment_status,
                            source, delivery_driver_id, queue_position,
                            created_at, updated_at, delivered_at, synced_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                    """, [
                        order["id"],
                        order.get("company_id"),
                        order.get("status"),
                        order.get("total") or 0,
                        order.get("subtotal") or 0,
                        order.get("delivery_fee") or 0,
                        order.get("discount_amount") or 0,
                        order.get("customer_name"),
                        order.get("payment_method"),
                        order.get("payment_status"),
                        order.get("source"),
                        order.get("delivery_driver_id"),
                        order.get("queue_position"),
                        to_utc_naive(order.get("created_at")),
                        to_utc_naive(order.get("updated_at")),
                        to_utc_naive(order.get("delivered_at")),
                    ])
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.info(f"Upserted {len(orders)} orders to DuckDB")
        return len(orders)

    async def upsert_order_items(self, items: List[Dict[str, Any]]) -> int:
        if not items:
            return 0

        items = dedupe(items, "id")
        async with self.connection() as conn:
            conn.execute("BEGIN TRANSACTION")
            try:
                for item in items:
                    conn.execute("""
                        INSERT OR REPLACE INTO order_items (
                            id, order_id, product_id, product_name,
                            quantity, unit_price, total_price
                        ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """, [
                        item["id"],
                        item.get("order_id"),
                        item.get("product_id"),
                        item.get("product_name"),
                        item.get("quantity") or 0,
                        item.get("unit_price") or 0,
                        item.get("total_price") or 0,
                    ])
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.debug(f"Upserted {len(items)} order items to DuckDB")
        return len(items)

    async def get_orders(self, company_id: str, since: Optional[datetime] = None) -> List[Order]:
        """Orders of a company, newest first."""
        query = f"SELECT {ORDER_COLUMNS} FROM orders WHERE company_id = ?"
        params: list = [company_id]
        if since is not None:
            query += " AND created_at >= ?"
            params.append(to_utc_naive(since))
        query += " ORDER BY created_at DESC"

        rows = await self._fetch_rows(query, params)
        return [Order.from_row(r) for r in rows]

    async def get_order_items(self, order_ids: List[str]) -> List[OrderItem]:
        if not order_ids:
            return []
        rows = await self._fetch_rows(
            f"""
            SELECT id, order_id, product_id, product_name, quantity, unit_price, total_price
            FROM order_items
            WHERE order_id IN ({placeholders(order_ids)})
            """,
            list(order_ids),
        )
        return [OrderItem.from_row(r) for r in rows]

    async def get_driver_orders(
        self,
        driver_id: str,
        company_id: Optional[str] = None,
    ) -> List[Order]:
        """Every order ever assigned to a driver, newest first."""
        query = f"SELECT {ORDER_COLUMNS} FROM orders WHERE delivery_driver_id = ?"
        params: list = [driver_id]
        if company_id:
            query += " AND company_id = ?"
            params.append(company_id)
        query += " ORDER BY created_at DESC"

        rows = await self._fetch_rows(query, params)
        return [Order.from_row(r) for r in rows]
