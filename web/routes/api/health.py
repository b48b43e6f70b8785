"""Health check and metrics endpoints."""
import asyncio
import time
from datetime import datetime, timezone

import psutil
from fastapi import APIRouter, Request

from core.cache import cache
from core.observability import Timer, get_correlation_id, metrics
from core.resilience import get_circuit_states
from core.sync_service import get_sync_service
from web.config import VERSION
from web.schemas import HealthResponse, MetricsResponse
from ._deps import START_TIME, get_logger, get_store, limiter

router = APIRouter()
logger = get_logger(__name__)

# DuckDB counts are cached so load balancer probes stay cheap
_stats_cache: dict = {"data": None, "expires_at": 0}
_stats_cache_lock = asyncio.Lock()
_STATS_CACHE_TTL = 60

# No successful sync for this long means the mirror is stale
STALE_SYNC_SECONDS = 900


async def _sync_status() -> dict:
    sync_service = await get_sync_service()
    stats = sync_service.get_sync_stats()

    seconds_since_sync = None
    if stats.get("last_sync_time"):
        last_sync = datetime.fromisoformat(stats["last_sync_time"])
        seconds_since_sync = int((datetime.now(timezone.utc) - last_sync).total_seconds())

    if stats.get("last_error"):
        status = "error"
    elif seconds_since_sync is None:
        status = "idle"
    elif seconds_since_sync > STALE_SYNC_SECONDS:
        status = "stale"
    else:
        status = "active"

    return {
        "status": status,
        "last_sync_time": stats.get("last_sync_time"),
        "seconds_since_sync": seconds_since_sync,
        "last_orders_found": stats.get("last_orders_found", 0),
        "last_error": stats.get("last_error"),
    }


@router.get("/health", response_model=HealthResponse)
@limiter.limit("60/minute")
async def health_check(request: Request):
    """Health check endpoint for Docker/load balancer monitoring."""
    now = time.time()
    async with _stats_cache_lock:
        if _stats_cache["data"] and now < _stats_cache["expires_at"]:
            duckdb_stats = _stats_cache["data"]
            duckdb_status = "connected"
            db_latency_ms = 0.0
        else:
            db_latency_ms = None
            try:
                with Timer("health_check_db") as timer:
                    store = await get_store()
                    duckdb_stats = await store.get_stats()
                duckdb_status = "connected"
                db_latency_ms = round(timer.elapsed_ms, 2)
                _stats_cache["data"] = duckdb_stats
                _stats_cache["expires_at"] = now + _STATS_CACHE_TTL
            except Exception as e:
                logger.warning(f"Health check could not read DuckDB: {e}")
                duckdb_stats = None
                duckdb_status = f"error: {e}"

    try:
        sync_status = await _sync_status()
    except Exception as e:
        logger.debug(f"Could not get sync status: {e}")
        sync_status = None

    return {
        "status": "healthy" if duckdb_stats else "degraded",
        "version": VERSION,
        "uptime_seconds": int(time.time() - START_TIME),
        "correlation_id": get_correlation_id(),
        "duckdb": {
            "status": duckdb_status,
            "latency_ms": db_latency_ms,
            **(duckdb_stats or {}),
        },
        "sync": sync_status,
    }


@router.get("/health/detailed")
@limiter.limit("30/minute")
async def detailed_health_check(request: Request):
    """Component-level status: store, cache, upstream circuits, sync, scheduler."""
    components = {}
    overall_status = "healthy"

    try:
        with Timer("health_duckdb") as timer:
            store = await get_store()
            duckdb_stats = await store.get_stats()
        components["duckdb"] = {
            **store.get_connection_info(),
            "status": "connected",
            "latency_ms": round(timer.elapsed_ms, 2),
            **duckdb_stats,
        }
    except Exception as e:
        components["duckdb"] = {"status": "error", "error": str(e)}
        overall_status = "degraded"

    if cache.is_connected:
        components["redis"] = {"status": "connected", **cache.get_stats()}
    else:
        components["redis"] = {"status": "not_connected", **cache.get_stats()}

    circuits = get_circuit_states()
    components["gateways"] = circuits
    if any(c.get("state") == "open" for c in circuits.values()):
        overall_status = "degraded"

    try:
        components["sync"] = await _sync_status()
    except Exception as e:
        components["sync"] = {"status": "error", "error": str(e)}

    from core.scheduler import get_scheduler
    scheduler = get_scheduler()
    components["scheduler"] = {
        "status": "running" if scheduler.is_running else "stopped",
        "jobs": len(scheduler.get_jobs()),
    }

    uptime_seconds = int(time.time() - START_TIME)
    try:
        process = psutil.Process()
        memory_info = process.memory_info()
        sys_metrics = {
            "uptime_seconds": uptime_seconds,
            "memory_mb": round(memory_info.rss / 1024 / 1024, 1),
            "memory_percent": round(process.memory_percent(), 1),
            "cpu_percent": round(process.cpu_percent(interval=0.1), 1),
            "threads": process.num_threads(),
        }
    except psutil.Error:
        sys_metrics = {"uptime_seconds": uptime_seconds}

    return {
        "status": overall_status,
        "version": VERSION,
        "correlation_id": get_correlation_id(),
        "components": components,
        "metrics": sys_metrics,
    }


@router.get("/metrics", response_model=MetricsResponse)
@limiter.limit("60/minute")
async def get_metrics_endpoint(request: Request):
    """Get application metrics."""
    return {
        "uptime_seconds": int(time.time() - START_TIME),
        "correlation_id": get_correlation_id(),
        **metrics.get_stats(),
    }
