"""
Redis cache for per-company read models (dashboard, menu availability).

Redis is optional at runtime: when it is disabled or unreachable every
read is a miss and every write a no-op, so callers never branch on it.

Key layout:
    dashboard:<company_id>:<period>
    unavailable:<company_id>

Usage:
    from core.cache import cache, dashboard_key

    data = await cache.get_or_set(dashboard_key(cid, "7days"), build, ttl=60)
    await cache.invalidate_company(cid)
"""
import asyncio
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Optional

import orjson
import redis.asyncio as redis

from core.config import config
from core.events import OrderEvent, emit_cache_invalidated, events
from core.observability import Timer, get_logger

logger = get_logger(__name__)


def dashboard_key(company_id: str, period: str) -> str:
    return f"dashboard:{company_id}:{period}"


def unavailable_key(company_id: str) -> str:
    return f"unavailable:{company_id}"


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    errors: int = 0
    sets: int = 0
    invalidations: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return (self.hits / total * 100) if total > 0 else 0.0

    def to_dict(self) -> dict:
        return {**asdict(self), "hit_rate_percent": round(self.hit_rate, 2)}


class RedisCache:
    """Async Redis cache that degrades to a no-op."""

    def __init__(self, url: str = None, enabled: bool = None, default_ttl: int = None):
        self.url = url or config.cache.redis_url
        self.enabled = config.cache.enabled if enabled is None else enabled
        self.default_ttl = default_ttl or config.cache.ttl_seconds
        self._client: Optional[redis.Redis] = None
        self._connected = False
        self._stats = CacheStats()
        self._lock = asyncio.Lock()

    async def connect(self) -> bool:
        if not self.enabled:
            logger.info("Redis cache disabled by configuration")
            return False

        async with self._lock:
            if self._connected:
                return True
            try:
                self._client = redis.from_url(
                    self.url,
                    socket_timeout=5.0,
                    socket_connect_timeout=5.0,
                )
                await self._client.ping()
                self._connected = True
                logger.info("Redis connected", extra={"url": self.url})
            except (redis.RedisError, OSError) as e:
                logger.warning(f"Redis connection failed, caching disabled: {e}")
                self._client = None
                self._connected = False

        return self._connected

    async def disconnect(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected and self._client is not None

    async def get(self, key: str) -> Optional[Any]:
        if not self.is_connected:
            self._stats.misses += 1
            return None

        try:
            with Timer("cache_get"):
                raw = await self._client.get(key)
        except redis.RedisError as e:
            self._stats.errors += 1
            logger.debug(f"Cache get error for {key}: {e}")
            return None

        if raw is None:
            self._stats.misses += 1
            return None
        self._stats.hits += 1
        return orjson.loads(raw)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self.is_connected:
            return False

        try:
            await self._client.setex(key, ttl or self.default_ttl, orjson.dumps(value, default=str))
        except redis.RedisError as e:
            self._stats.errors += 1
            logger.debug(f"Cache set error for {key}: {e}")
            return False

        self._stats.sets += 1
        return True

    async def invalidate_pattern(self, pattern: str, reason: str = "pattern") -> int:
        """Delete keys matching a glob pattern (SCAN, never KEYS)."""
        if not self.is_connected:
            return 0

        deleted = 0
        try:
            async for key in self._client.scan_iter(match=pattern, count=100):
                deleted += await self._client.delete(key)
        except redis.RedisError as e:
            self._stats.errors += 1
            logger.debug(f"Cache invalidate error for {pattern}: {e}")
            return deleted

        if deleted:
            self._stats.invalidations += deleted
            await emit_cache_invalidated(pattern, deleted, reason)
        return deleted

    async def invalidate_company(self, company_id: str, reason: str = "company_changed") -> int:
        deleted = await self.invalidate_pattern(f"dashboard:{company_id}:*", reason)
        deleted += await self.invalidate_pattern(unavailable_key(company_id), reason)
        return deleted

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
    ) -> Any:
        value = await self.get(key)
        if value is not None:
            return value
        value = await factory()
        await self.set(key, value, ttl)
        return value

    def get_stats(self) -> dict:
        return {
            "enabled": self.enabled,
            "connected": self.is_connected,
            **self._stats.to_dict(),
        }


# Global cache instance
cache = RedisCache()


def register_cache_invalidation_handlers() -> None:
    """Drop a company's cached read models whenever its data changes."""

    @events.on(OrderEvent.ORDERS_SYNCED)
    async def invalidate_on_orders_synced(data: dict):
        for company_id in data.get("company_ids", []):
            await cache.invalidate_company(company_id, reason="orders_synced")

    @events.on(OrderEvent.INVENTORY_SYNCED)
    async def invalidate_on_inventory_synced(data: dict):
        for company_id in data.get("company_ids", []):
            await cache.invalidate_company(company_id, reason="inventory_synced")

    @events.on(OrderEvent.PAYMENT_UPDATED)
    async def invalidate_on_payment(data: dict):
        if data.get("company_id"):
            await cache.invalidate_company(data["company_id"], reason="payment_updated")

    logger.info("Cache invalidation handlers registered")
