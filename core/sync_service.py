"""
Sync service for keeping the DuckDB mirror in step with the backend.

Features:
- Full sync: initial load of the last N days of orders plus inventory
- Incremental sync: only rows updated since the last checkpoint
- Runs are scheduled by core.scheduler
- Observability: timing and sync events
"""
import time
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from core.backend import BackendClient, get_backend, gte, in_
from core.config import config
from core.duckdb_store import DuckDBStore, get_store
from core.events import OrderEvent, emit_orders_synced, events
from core.exceptions import GatewayConnectionError, GatewayError
from core.models import parse_datetime
from core.observability import get_logger
from core.resilience import CircuitOpenError

logger = get_logger(__name__)

ITEM_CHUNK_SIZE = 100


def _get_max_updated_at(rows: List[Dict[str, Any]], key: str = "updated_at") -> Optional[datetime]:
    """
    Latest ``updated_at`` among source rows.

    The checkpoint is the SOURCE timestamp, never now(): rows updated while
    the sync runs are picked up next cycle.
    """
    latest = None
    for row in rows:
        updated = parse_datetime(row.get(key))
        if updated and (latest is None or updated > latest):
            latest = updated
    return latest


def _company_ids(rows: List[Dict[str, Any]]) -> List[str]:
    return sorted({r["company_id"] for r in rows if r.get("company_id")})


class SyncService:
    """Pulls backend rows into DuckDB."""

    INVENTORY_INTERVAL_SECONDS = 300
    COMPANIES_INTERVAL_SECONDS = 3600

    def __init__(self, store: DuckDBStore, backend: Optional[BackendClient] = None):
        self.store = store
        self._backend = backend
        self._last_sync_time: Optional[datetime] = None
        self._last_orders_found = 0
        self._last_error: Optional[str] = None

    @property
    def backend(self) -> BackendClient:
        if self._backend is None:
            self._backend = get_backend()
        return self._backend

    def get_sync_stats(self) -> Dict[str, Any]:
        return {
            "last_sync_time": self._last_sync_time.isoformat() if self._last_sync_time else None,
            "last_orders_found": self._last_orders_found,
            "last_error": self._last_error,
        }

    # ═══════════════════════════════════════════════════════════════════════════
    # TABLE SYNCS
    # ═══════════════════════════════════════════════════════════════════════════

    async def _sync_orders_since(self, since: datetime) -> Dict[str, Any]:
        """Upsert orders updated since ``since`` and their items."""
        orders = await self.backend.fetch_all(
            "orders",
            filters={"updated_at": gte(since.isoformat())},
            order="updated_at.asc",
        )
        if not orders:
            return {"orders": 0, "items": 0, "checkpoint": None, "company_ids": []}

        order_count = await self.store.upsert_orders(orders)

        items_count = 0
        order_ids = [o["id"] for o in orders]
        for start in range(0, len(order_ids), ITEM_CHUNK_SIZE):
            chunk = order_ids[start:start + ITEM_CHUNK_SIZE]
            items = await self.backend.fetch_all(
                "order_items",
                filters={"order_id": in_(chunk)},
                order="id.asc",
            )
            items_count += await self.store.upsert_order_items(items)

        return {
            "orders": order_count,
            "items": items_count,
            "checkpoint": _get_max_updated_at(orders),
            "company_ids": _company_ids(orders),
        }

    async def sync_companies(self) -> int:
        companies = await self.backend.fetch_all("companies", order="id.asc")
        count = await self.store.upsert_companies(companies)
        await self.store.set_last_sync_time("companies")
        return count

    async def sync_inventory(self, movements_since: Optional[datetime] = None) -> Dict[str, int]:
        """Ingredients (current stock), recipes and recent stock movements."""
        ingredients = await self.backend.fetch_all("inventory_ingredients", order="id.asc")
        recipe_rows = await self.backend.fetch_all(
            "inventory_product_ingredients", order="product_id.asc"
        )

        if movements_since is None:
            movements_since = await self.store.get_last_sync_time("movements")
        if movements_since is None:
            movements_since = datetime.now(timezone.utc) - timedelta(
                days=config.backend.initial_sync_days
            )
        movements = await self.backend.fetch_all(
            "inventory_movements",
            filters={"created_at": gte(movements_since.isoformat())},
            order="created_at.asc",
        )

        by_company: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for row in recipe_rows:
            if row.get("company_id"):
                by_company[row["company_id"]].append(row)

        recipes = 0
        for company_id in _company_ids(ingredients):
            recipes += await self.store.replace_recipes(company_id, by_company.get(company_id, []))

        stats = {
            "ingredients": await self.store.upsert_ingredients(ingredients),
            "recipes": recipes,
            "movements": await self.store.upsert_movements(movements),
        }

        latest_movement = _get_max_updated_at(movements, key="created_at")
        if latest_movement:
            await self.store.set_last_sync_time("movements", latest_movement)
        await self.store.set_last_sync_time("inventory")

        await events.emit(
            OrderEvent.INVENTORY_SYNCED,
            {**stats, "company_ids": _company_ids(ingredients)},
            source="sync_service",
        )
        return stats

    async def _is_due(self, key: str, interval_seconds: int) -> bool:
        last = await self.store.get_last_sync_time(key)
        if last is None:
            return True
        return (datetime.now(timezone.utc) - last).total_seconds() > interval_seconds

    # ═══════════════════════════════════════════════════════════════════════════
    # SYNC RUNS
    # ═══════════════════════════════════════════════════════════════════════════

    async def full_sync(self, days_back: int = None) -> Dict[str, Any]:
        """
        Load the last ``days_back`` days of orders plus all inventory.

        Returns:
            Dict with sync statistics
        """
        days_back = days_back or config.backend.initial_sync_days
        start_time = time.perf_counter()
        since = datetime.now(timezone.utc) - timedelta(days=days_back)

        await events.emit(
            OrderEvent.SYNC_STARTED,
            {"sync_type": "full", "days_back": days_back},
            source="sync_service",
        )
        logger.info(f"Starting full sync ({days_back} days)")

        try:
            stats: Dict[str, Any] = {"companies": await self.sync_companies()}
            result = await self._sync_orders_since(since)
            if result["checkpoint"]:
                await self.store.set_last_sync_time("orders", result["checkpoint"])
            stats.update(orders=result["orders"], items=result["items"])
            stats.update(await self.sync_inventory(movements_since=since))
        except (GatewayError, CircuitOpenError) as e:
            self._last_error = str(e)
            await events.emit(
                OrderEvent.SYNC_FAILED,
                {"sync_type": "full", "error": str(e)},
                source="sync_service",
            )
            logger.error(f"Full sync failed: {e}", exc_info=True)
            raise

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        self._last_sync_time = datetime.now(timezone.utc)
        self._last_orders_found = result["orders"]
        self._last_error = None

        if result["orders"]:
            await emit_orders_synced(result["orders"], result["company_ids"], round(elapsed_ms, 2))
        await events.emit(
            OrderEvent.SYNC_COMPLETED,
            {"sync_type": "full", "duration_ms": round(elapsed_ms, 2), "stats": stats},
            source="sync_service",
        )
        logger.info("Full sync completed", extra={"duration_ms": round(elapsed_ms, 2), "stats": stats})
        return stats

    async def incremental_sync(self) -> Dict[str, Any]:
        """
        Fetch rows updated since the last checkpoint (minus a safety buffer).

        Connection problems are logged and reported in the stats rather than
        raised so the scheduler simply retries on the next cycle.
        """
        start_time = time.perf_counter()
        stats: Dict[str, Any] = {"orders": 0, "items": 0}
        error_occurred = None

        await events.emit(
            OrderEvent.SYNC_STARTED, {"sync_type": "incremental"}, source="sync_service"
        )

        try:
            last_sync = await self.store.get_last_sync_time("orders")
            if last_sync is None:
                last_sync = datetime.now(timezone.utc) - timedelta(
                    days=config.backend.initial_sync_days
                )
            since = last_sync - timedelta(hours=config.backend.sync_buffer_hours)

            result = await self._sync_orders_since(since)
            stats.update(orders=result["orders"], items=result["items"])

            if result["orders"]:
                checkpoint = result["checkpoint"]
                if checkpoint:
                    await self.store.set_last_sync_time("orders", checkpoint)
                logger.info(
                    f"Incremental sync: {result['orders']} orders, checkpoint: {checkpoint}"
                )
                await emit_orders_synced(
                    result["orders"],
                    result["company_ids"],
                    round((time.perf_counter() - start_time) * 1000, 2),
                )

            if await self._is_due("companies", self.COMPANIES_INTERVAL_SECONDS):
                stats["companies"] = await self.sync_companies()

            if await self._is_due("inventory", self.INVENTORY_INTERVAL_SECONDS):
                stats.update(await self.sync_inventory())

            self._last_orders_found = result["orders"]

        except (GatewayConnectionError, CircuitOpenError) as e:
            error_occurred = str(e)
            logger.warning(f"Incremental sync connection error (will retry): {e}")
        except GatewayError as e:
            error_occurred = str(e)
            logger.error(f"Incremental sync error: {e}", exc_info=True)
        finally:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            self._last_sync_time = datetime.now(timezone.utc)
            self._last_error = error_occurred
            logger.info(
                "Incremental sync completed",
                extra={"duration_ms": round(elapsed_ms, 2), "stats": stats},
            )

        if error_occurred:
            stats["error"] = error_occurred
            await events.emit(
                OrderEvent.SYNC_FAILED,
                {"sync_type": "incremental", "error": error_occurred},
                source="sync_service",
            )
        else:
            await events.emit(
                OrderEvent.SYNC_COMPLETED,
                {"sync_type": "incremental", "duration_ms": round(elapsed_ms, 2), "stats": stats},
                source="sync_service",
            )
        return stats

# ═══════════════════════════════════════════════════════════════════════════════
# SINGLETON INSTANCE
# ═══════════════════════════════════════════════════════════════════════════════

_sync_service: Optional[SyncService] = None


async def get_sync_service() -> SyncService:
    """Get singleton sync service instance."""
    global _sync_service
    if _sync_service is None:
        store = await get_store()
        _sync_service = SyncService(store)
    return _sync_service


async def init_and_sync(full_sync_days: int = None) -> None:
    """
    Initialize the store and bring it up to date.

    Called on application startup: an empty mirror gets a full sync, an
    existing one an incremental sync.
    """
    store = await get_store()
    stats = await store.get_stats()
    sync_service = await get_sync_service()

    if stats["orders"] == 0:
        logger.info("No data in DuckDB, performing initial full sync...")
        await sync_service.full_sync(days_back=full_sync_days)
    else:
        logger.info(f"DuckDB has {stats['orders']} orders, running incremental sync")
        await sync_service.incremental_sync()
