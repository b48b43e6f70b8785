"""
Dashboard read model.

Loads a company's mirrored rows from DuckDB, runs ``core.dashboard`` and
keeps the result in Redis under ``dashboard:<company>:<period>`` until the
next sync touching that company invalidates it.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from core.cache import cache, dashboard_key
from core.config import config
from core.dashboard import build_dashboard, period_bounds
from core.duckdb_store import DuckDBStore, get_store
from core.inventory import unavailable_products
from core.observability import get_logger, timed

logger = get_logger(__name__)


class DashboardService:
    """
    Usage:
        service = await get_dashboard_service()
        data = await service.get_dashboard(company_id, "7days", now)
    """

    def __init__(self, store: DuckDBStore):
        self.store = store

    async def get_dashboard(self, company_id: str, period: str, now: datetime) -> Dict[str, Any]:
        """Cached dashboard for a company; ``now`` carries the display timezone."""
        return await cache.get_or_set(
            dashboard_key(company_id, period),
            lambda: self.compute_dashboard(company_id, period, now),
            ttl=config.cache.dashboard_ttl_seconds,
        )

    @timed("dashboard.compute", warn_threshold_ms=2000)
    async def compute_dashboard(self, company_id: str, period: str, now: datetime) -> Dict[str, Any]:
        current, previous = period_bounds(period, now)

        # Previous window start covers both comparison windows
        orders = await self.store.get_orders(company_id, since=previous[0])
        period_order_ids = [o.id for o in orders if o.is_within(*current)]
        items = await self.store.get_order_items(period_order_ids)

        ingredients = await self.store.get_ingredients(company_id)
        recipe = await self.store.get_recipe_lines(company_id)
        movements = await self.store.get_movements(company_id, start=current[0], end=current[1])

        logger.debug(
            "Computing dashboard",
            extra={"company_id": company_id, "period": period, "orders": len(orders)},
        )
        return build_dashboard(
            orders=orders,
            period_items=items,
            ingredients=ingredients,
            unavailable_count=len(unavailable_products(recipe)),
            movements=movements,
            period=period,
            now=now,
        )


_dashboard_service: Optional[DashboardService] = None


async def get_dashboard_service() -> DashboardService:
    global _dashboard_service
    if _dashboard_service is None:
        _dashboard_service = DashboardService(await get_store())
    return _dashboard_service
