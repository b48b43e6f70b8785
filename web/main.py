"""
FastAPI application for the restaurant ordering backend.
"""
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, ORJSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.gzip import GZipMiddleware

from core.backend import close_backend
from core.cache import cache, register_cache_invalidation_handlers
from core.config import ConfigurationError, validate_config
from core.duckdb_store import close_store, get_store
from core.events import OrderEvent, events
from core.exceptions import (
    GatewayError,
    NfeConfigurationError,
    NotFoundError,
    QueryTimeoutError,
    ValidationError,
)
from core.observability import get_correlation_id, get_logger, setup_logging
from core.resilience import CircuitOpenError
from core.scheduler import start_scheduler, stop_scheduler
from core.sync_service import init_and_sync
from web.config import CORS_ORIGINS, VERSION
from web.middleware import RequestLoggingMiddleware, RequestTimeoutMiddleware
from web.routes import api
from web.routes.api._deps import limiter

# Configure structured logging
# Use JSON format in production (LOG_FORMAT=json), human-readable otherwise
log_format = os.getenv("LOG_FORMAT", "text")
log_level = os.getenv("LOG_LEVEL", "INFO")
setup_logging(level=log_level, json_format=(log_format == "json"))
logger = get_logger(__name__)

app = FastAPI(
    title="Restaurant Ordering API",
    description="Orders, payments, invoices, delivery and kitchen inventory",
    version=VERSION,
    default_response_class=ORJSONResponse,
)

app.state.limiter = limiter


def _error_body(error: str, detail: str, **extra) -> dict:
    return {"error": error, "detail": detail, "correlation_id": get_correlation_id(), **extra}


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(f"Rate limit exceeded for {get_remote_address(request)}")
    return JSONResponse(
        status_code=429,
        content=_error_body(
            "Rate limit exceeded",
            "Too many requests. Please try again later.",
            retry_after=exc.detail,
        ),
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=422,
        content=_error_body("Validation error", exc.message, field=exc.field),
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content=_error_body("Not found", str(exc)))


@app.exception_handler(NfeConfigurationError)
async def nfe_configuration_handler(request: Request, exc: NfeConfigurationError):
    return JSONResponse(status_code=400, content=_error_body("NFe not configured", str(exc)))


@app.exception_handler(CircuitOpenError)
async def circuit_open_handler(request: Request, exc: CircuitOpenError):
    return JSONResponse(
        status_code=503,
        content=_error_body("Upstream unavailable", str(exc)),
        headers={"Retry-After": str(max(int(exc.retry_in), 1))},
    )


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    logger.error(f"Upstream error on {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content=_error_body("Upstream error", str(exc)))


@app.exception_handler(QueryTimeoutError)
async def query_timeout_handler(request: Request, exc: QueryTimeoutError):
    return JSONResponse(status_code=504, content=_error_body("Query timeout", str(exc)))


# Add request logging middleware (adds correlation IDs and timing)
app.add_middleware(RequestLoggingMiddleware)

# Add request timeout middleware
# Must be AFTER logging so correlation_id is set when timeout fires
app.add_middleware(RequestTimeoutMiddleware)

# Add Gzip compression (min 500 bytes to compress)
app.add_middleware(GZipMiddleware, minimum_size=500)

if CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

app.include_router(api.router, prefix="/api")


@app.on_event("startup")
async def startup_event():
    logger.info(f"Restaurant API {VERSION} starting...")

    # Validate configuration early - fail fast with clear errors
    try:
        validate_config(require_backend=True)
        logger.info("Configuration validated")
    except ConfigurationError as e:
        logger.critical(f"Configuration error: {e}")
        raise SystemExit(1)

    # Open the DuckDB mirror and bring it up to date
    store = await get_store()
    try:
        await init_and_sync()
    except (GatewayError, CircuitOpenError) as e:
        # Serve from whatever is mirrored; the scheduler retries the sync
        logger.error(f"Initial sync failed: {e}")
    stats = await store.get_stats()
    logger.info(
        f"DuckDB ready: {stats['orders']} orders, "
        f"{stats['inventory_ingredients']} ingredients, "
        f"{stats['db_size_mb']} MB"
    )

    try:
        await start_scheduler()
        logger.info("Background job scheduler started")
    except Exception as e:
        logger.error(f"Scheduler initialization failed: {e}", exc_info=True)

    _register_event_handlers()

    # Redis is optional: without it every read goes to DuckDB
    if await cache.connect():
        register_cache_invalidation_handlers()
        logger.info("Redis cache connected")
    else:
        logger.info("Redis cache not available, running without cache")

    logger.info("Restaurant API ready")


def _register_event_handlers():
    """Log-only handlers for operational events."""

    @events.on(OrderEvent.SYNC_FAILED)
    async def on_sync_failed(data: dict):
        logger.warning(f"Sync failed: {data.get('sync_type', 'unknown')} - {data.get('error')}")

    @events.on(OrderEvent.NFE_INVOICE_FAILED)
    async def on_invoice_failed(data: dict):
        logger.warning(
            f"Invoice {data.get('invoice_id')} failed: {data.get('error')}",
            extra={"order_id": data.get("order_id")},
        )

    @events.on(OrderEvent.JOB_FAILED)
    async def on_job_failed(data: dict):
        logger.warning(f"Job {data.get('job_id')} failed: {data.get('error')}")


@app.on_event("shutdown")
async def shutdown_event():
    # Stop scheduler first (graceful shutdown of background jobs)
    try:
        stop_scheduler()
        logger.info("Scheduler stopped")
    except Exception as e:
        logger.warning(f"Error stopping scheduler: {e}")

    try:
        await close_backend()
    except Exception as e:
        logger.warning(f"Error closing backend client: {e}")

    try:
        await cache.disconnect()
    except Exception as e:
        logger.warning(f"Error disconnecting Redis: {e}")

    try:
        await close_store()
        logger.info("DuckDB closed")
    except Exception as e:
        logger.warning(f"Error closing DuckDB: {e}")
    logger.info("Restaurant API stopped")
