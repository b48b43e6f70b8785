"""Shared dependencies for API route modules."""
import time
from datetime import datetime

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.duckdb_store import get_store
from core.observability import get_logger
from core.validators import validate_timezone
from web.config import DEFAULT_RATE_LIMIT, WEBHOOK_RATE_LIMIT

# Shared limiter instance
limiter = Limiter(key_func=get_remote_address)

# Track startup time for uptime calculation
START_TIME = time.time()


def local_now(timezone_name: str = None) -> datetime:
    """Current time in the restaurant's timezone (DEFAULT_TIMEZONE unless given)."""
    return datetime.now(validate_timezone(timezone_name))


__all__ = [
    "limiter",
    "get_store",
    "get_logger",
    "local_now",
    "START_TIME",
    "DEFAULT_RATE_LIMIT",
    "WEBHOOK_RATE_LIMIT",
]
