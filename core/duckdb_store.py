"""
DuckDB analytics mirror for the restaurant dashboard.

Keeps a local copy of companies, orders, order items and inventory so the
dashboard aggregations never hit the backend REST API on the request path.
The backend stays the system of record; this file can be deleted and
rebuilt with a full sync at any time.

Domain-specific query methods are organized into repository mixins:
- OrdersMixin: Orders, order items, driver deliveries
- InventoryMixin: Ingredients, recipes, stock movements

Timestamps are stored as naive UTC and come back timezone-aware (UTC).
"""
import asyncio
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import duckdb
import orjson

from core.config import config
from core.exceptions import QueryTimeoutError
from core.models import Company
from core.observability import get_logger
from core.repositories import InventoryMixin, OrdersMixin
from core.repositories.base import from_utc_naive, to_utc_naive

logger = get_logger(__name__)


class DuckDBStore(OrdersMixin, InventoryMixin):
    """
    Async-compatible DuckDB store for analytics data.

    Features:
    - Persistent storage (survives restarts)
    - Incremental sync from the backend
    - Thread offloading to avoid blocking the asyncio event loop
    """

    def __init__(self, db_path: Optional[Path] = None, query_timeout: float = None):
        self.db_path = Path(db_path or config.storage.duckdb_path)
        self.query_timeout = query_timeout or config.storage.query_timeout_seconds
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = asyncio.Lock()  # Serializes all database access
        self._executor: Optional[ThreadPoolExecutor] = None
        self._total_queries = 0

    async def connect(self) -> None:
        """Initialize database connection, schema, and thread pool."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        async with self._lock:
            if self._connection is None:
                self._connection = duckdb.connect(str(self.db_path))
                self._init_schema(self._connection)

                self._executor = ThreadPoolExecutor(
                    max_workers=1,  # DuckDB connections require serialized access
                    thread_name_prefix="duckdb",
                )

                logger.info(f"DuckDB connected: {self.db_path}")

    async def close(self) -> None:
        """Close database connection and thread pool."""
        async with self._lock:
            if self._executor:
                self._executor.shutdown(wait=True)
                self._executor = None

            if self._connection:
                self._connection.close()
                self._connection = None
                logger.info("DuckDB connection closed")

    async def checkpoint(self) -> None:
        """Flush the WAL into the main database file."""
        async with self.connection() as conn:
            conn.execute("CHECKPOINT")
            logger.info("DuckDB checkpoint completed")

    def get_connection_info(self) -> Dict[str, Any]:
        return {
            "status": "active" if self._connection else "not_initialized",
            "total_queries": self._total_queries,
            "db_path": str(self.db_path),
        }

    @asynccontextmanager
    async def connection(self):
        """
        Get the database connection under the store lock.

        DuckDB connections are NOT thread-safe: only one thread can use a
        connection at a time.
        """
        if self._connection is None:
            await self.connect()
        async with self._lock:
            yield self._connection

    # ─── Query Execution with Timeout ────────────────────────────────────────

    async def _fetch_all(
        self,
        query: str,
        params: list = None,
        timeout: float = None,
    ) -> List[tuple]:
        """
        Execute query and fetch all results with timeout.

        Raises:
            QueryTimeoutError: If query exceeds timeout
        """
        timeout = timeout or self.query_timeout
        async with self.connection() as conn:
            self._total_queries += 1
            try:
                loop = asyncio.get_event_loop()

                def _run():
                    return conn.execute(query, params or []).fetchall()

                return await asyncio.wait_for(
                    loop.run_in_executor(self._executor, _run),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                raise QueryTimeoutError(query, timeout, "Fetch all failed")

    async def _fetch_one(
        self,
        query: str,
        params: list = None,
        timeout: float = None,
    ) -> Optional[tuple]:
        rows = await self._fetch_all(query, params, timeout)
        return rows[0] if rows else None

    async def _fetch_rows(
        self,
        query: str,
        params: list = None,
        timeout: float = None,
    ) -> List[Dict[str, Any]]:
        """Like ``_fetch_all`` but rows come back as dicts with aware timestamps."""
        timeout = timeout or self.query_timeout
        async with self.connection() as conn:
            self._total_queries += 1
            try:
                loop = asyncio.get_event_loop()

                def _run():
                    cursor = conn.execute(query, params or [])
                    columns = [d[0] for d in cursor.description]
                    return [dict(zip(columns, row)) for row in cursor.fetchall()]

                rows = await asyncio.wait_for(
                    loop.run_in_executor(self._executor, _run),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                raise QueryTimeoutError(query, timeout, "Fetch rows failed")

        for row in rows:
            for key, value in row.items():
                if isinstance(value, datetime):
                    row[key] = from_utc_naive(value)
        return rows

    @staticmethod
    def _init_schema(conn: duckdb.DuckDBPyConnection) -> None:
        """Create database schema if not exists."""
        conn.execute("""
            CREATE TABLE IF NOT EXISTS companies (
                id VARCHAR PRIMARY KEY,
                name VARCHAR,
                status VARCHAR,
                cnpj VARCHAR,
                is_open BOOLEAN,
                opening_hours VARCHAR,
                synced_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS orders (
                id VARCHAR PRIMARY KEY,
                company_id VARCHAR NOT NULL,
                status VARCHAR,
                total DECIMAL(12, 2),
                subtotal DECIMAL(12, 2),
                delivery_fee DECIMAL(12, 2),
                discount_amount DECIMAL(12, 2),
                customer_name VARCHAR,
                payment_method VARCHAR,
                payment_status VARCHAR,
                source VARCHAR,
                delivery_driver_id VARCHAR,
                queue_position INTEGER,
                created_at TIMESTAMP,
                updated_at TIMESTAMP,
                delivered_at TIMESTAMP,
                synced_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS order_items (
                id VARCHAR PRIMARY KEY,
                order_id VARCHAR NOT NULL,
                product_id VARCHAR,
                product_name VARCHAR,
                quantity DOUBLE,
                unit_price DECIMAL(12, 2),
                total_price DECIMAL(12, 2)
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS inventory_ingredients (
                id VARCHAR PRIMARY KEY,
                company_id VARCHAR NOT NULL,
                name VARCHAR,
                unit VARCHAR,
                current_stock DOUBLE,
                min_stock DOUBLE,
                average_unit_cost DOUBLE,
                synced_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS inventory_product_ingredients (
                product_id VARCHAR NOT NULL,
                ingredient_id VARCHAR NOT NULL,
                company_id VARCHAR,
                quantity_per_unit DOUBLE
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS inventory_movements (
                id VARCHAR PRIMARY KEY,
                company_id VARCHAR NOT NULL,
                ingredient_id VARCHAR,
                movement_type VARCHAR,
                quantity DOUBLE,
                unit_cost DOUBLE,
                created_at TIMESTAMP
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS sync_metadata (
                key VARCHAR PRIMARY KEY,
                value VARCHAR,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    # ═══════════════════════════════════════════════════════════════════════════
    # SYNC METADATA / COMPANIES
    # ═══════════════════════════════════════════════════════════════════════════

    async def get_last_sync_time(self, key: str = "orders") -> Optional[datetime]:
        """Get last sync watermark for incremental updates."""
        row = await self._fetch_one(
            "SELECT value FROM sync_metadata WHERE key = ?", [f"last_sync_{key}"]
        )
        if row and row[0]:
            return from_utc_naive(to_utc_naive(row[0]))
        return None

    async def set_last_sync_time(self, key: str = "orders", timestamp: datetime = None) -> None:
        timestamp = timestamp or datetime.now(timezone.utc)
        async with self.connection() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO sync_metadata (key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
            """, [f"last_sync_{key}", timestamp.isoformat()])

    async def upsert_companies(self, companies: List[Dict[str, Any]]) -> int:
        if not companies:
            return 0

        async with self.connection() as conn:
            conn.execute("BEGIN TRANSACTION")
            try:
                for company in companies:
                    hours = company.get("opening_hours")
                    conn.execute("""
                        INSERT OR REPLACE INTO companies
                            (id, name, status, cnpj, is_open, opening_hours, synced_at)
                        VALUES (?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                    """, [
                        company["id"],
                        company.get("name"),
                        company.get("status"),
                        company.get("cnpj"),
                        company.get("is_open"),
                        orjson.dumps(hours).decode() if hours is not None else None,
                    ])
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.info(f"Upserted {len(companies)} companies to DuckDB")
        return len(companies)

    async def get_company(self, company_id: str) -> Optional[Company]:
        rows = await self._fetch_rows(
            "SELECT id, name, status, cnpj, is_open, opening_hours FROM companies WHERE id = ?",
            [company_id],
        )
        if not rows:
            return None
        row = rows[0]
        if row["opening_hours"]:
            row["opening_hours"] = orjson.loads(row["opening_hours"])
        return Company.from_row(row)

    async def get_stats(self) -> Dict[str, Any]:
        """Row counts and file size for the health endpoint."""
        counts = {}
        for table in (
            "companies", "orders", "order_items",
            "inventory_ingredients", "inventory_product_ingredients", "inventory_movements",
        ):
            row = await self._fetch_one(f"SELECT COUNT(*) FROM {table}")
            counts[table] = row[0] if row else 0

        min_max = await self._fetch_one("SELECT MIN(created_at), MAX(created_at) FROM orders")
        return {
            **counts,
            "date_range": {
                "min": min_max[0].isoformat() if min_max and min_max[0] else None,
                "max": min_max[1].isoformat() if min_max and min_max[1] else None,
            },
            "db_size_mb": (
                round(self.db_path.stat().st_size / 1024 / 1024, 2)
                if self.db_path.exists() else 0
            ),
        }


# ═══════════════════════════════════════════════════════════════════════════════
# SINGLETON INSTANCE
# ═══════════════════════════════════════════════════════════════════════════════

_store_instance: Optional[DuckDBStore] = None
_store_lock = asyncio.Lock()


async def get_store() -> DuckDBStore:
    """Get singleton DuckDB store instance (coroutine-safe)."""
    global _store_instance
    async with _store_lock:
        if _store_instance is None:
            _store_instance = DuckDBStore()
            await _store_instance.connect()
    return _store_instance


async def close_store() -> None:
    global _store_instance
    if _store_instance:
        await _store_instance.close()
        _store_instance = None
