"""
Structured logging, correlation IDs and in-process metrics.

Usage:
    from core.observability import setup_logging, get_logger, correlation_context

    # In app startup:
    setup_logging(level="INFO", json_format=True)

    # Anywhere:
    logger = get_logger(__name__)

    # Around a request or a background job:
    with correlation_context(request_id):
        logger.info("NFe batch started", extra={"batch_size": 10})
"""
import asyncio
import functools
import logging
import time
import uuid
from collections import deque
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, Optional

import orjson

_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
_log_context: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})

# LogRecord attributes that are never treated as structured extras
_RECORD_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "asctime", "taskName",
})


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> None:
    _correlation_id.set(correlation_id)


def generate_correlation_id() -> str:
    """Short random id, good enough to grep a request across log lines."""
    return uuid.uuid4().hex[:12]


class correlation_context:
    """Bind a correlation ID for the duration of a ``with`` block."""

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id or generate_correlation_id()
        self.token = None

    def __enter__(self) -> str:
        self.token = _correlation_id.set(self.correlation_id)
        return self.correlation_id

    def __exit__(self, *args):
        _correlation_id.reset(self.token)


def add_log_context(**kwargs) -> None:
    """Attach fields (company_id, job_id...) to every following log line."""
    _log_context.set({**_log_context.get(), **kwargs})


def clear_log_context() -> None:
    _log_context.set({})


def _record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line.

    Fields: timestamp, level, logger, message, correlation_id (when bound),
    log context, ``extra={...}`` fields and the formatted exception.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            entry["correlation_id"] = correlation_id

        entry.update(_log_context.get())
        entry.update(_record_extras(record))

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return orjson.dumps(entry, default=str).decode()


class HumanReadableFormatter(logging.Formatter):
    """
    Console formatter.

    Format: TIMESTAMP LEVEL LOGGER [CORRELATION_ID] MESSAGE | extras
    """

    def format(self, record: logging.LogRecord) -> str:
        correlation_id = get_correlation_id()
        correlation_str = f" [{correlation_id}]" if correlation_id else ""
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

        line = f"{timestamp} {record.levelname:8} {record.name}{correlation_str} {record.getMessage()}"

        extras = {**_log_context.get(), **_record_extras(record)}
        if extras:
            line += " | " + " ".join(f"{k}={v}" for k, v in extras.items())

        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"

        return line


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    include_libs: bool = False
) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level name
        json_format: JSON lines (production) instead of console format
        include_libs: Keep httpx/apscheduler/uvicorn access logs at ``level``
    """
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not include_libs:
        for noisy in ("httpx", "httpcore", "uvicorn.access", "apscheduler.executors.default"):
            logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


# ═══════════════════════════════════════════════════════════════════════════════
# TIMING
# ═══════════════════════════════════════════════════════════════════════════════

class Timer:
    """
    Measure a block and optionally log it.

    Usage:
        with Timer("focus_nfe.emit", logger) as t:
            response = await client.emit_nfce(ref, payload)
        metrics.record_timing("focus_nfe.emit", t.elapsed_ms)
    """

    def __init__(
        self,
        name: str,
        logger: Optional[logging.Logger] = None,
        warn_threshold_ms: float = 1000,
    ):
        self.name = name
        self.logger = logger
        self.warn_threshold_ms = warn_threshold_ms
        self.start_time: float = 0
        self.elapsed_ms: float = 0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args):
        self.elapsed_ms = (time.perf_counter() - self.start_time) * 1000
        if self.logger:
            _log_duration(self.logger, self.name, self.elapsed_ms, self.warn_threshold_ms)


def _log_duration(logger: logging.Logger, name: str, elapsed_ms: float, warn_ms: float) -> None:
    level = logging.WARNING if elapsed_ms > warn_ms else logging.DEBUG
    logger.log(level, f"{name} completed", extra={"duration_ms": round(elapsed_ms, 2)})


def timed(name: Optional[str] = None, warn_threshold_ms: float = 1000):
    """
    Decorator that logs and records how long a function takes.

    Works for both plain and ``async def`` functions.
    """
    def decorator(func: Callable) -> Callable:
        operation_name = name or func.__qualname__
        func_logger = get_logger(func.__module__)

        def _finish(start: float) -> None:
            elapsed_ms = (time.perf_counter() - start) * 1000
            metrics.record_timing(operation_name, elapsed_ms)
            _log_duration(func_logger, operation_name, elapsed_ms, warn_threshold_ms)

        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                start = time.perf_counter()
                try:
                    return await func(*args, **kwargs)
                finally:
                    _finish(start)
            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                _finish(start)
        return sync_wrapper

    return decorator


# ═══════════════════════════════════════════════════════════════════════════════
# METRICS (in-memory, exposed on /api/metrics)
# ═══════════════════════════════════════════════════════════════════════════════

class MetricsCollector:
    """
    Counters and bounded timing windows.

    Tracks requests per endpoint, errors per type, upstream calls per
    gateway (ok/failed) and the last ``max_samples`` durations per operation.
    """

    def __init__(self, max_samples: int = 100):
        self._max_samples = max_samples
        self._request_counts: Dict[str, int] = {}
        self._error_counts: Dict[str, int] = {}
        self._gateway_calls: Dict[str, Dict[str, int]] = {}
        self._timing_samples: Dict[str, Deque[float]] = {}

    def record_request(self, endpoint: str) -> None:
        self._request_counts[endpoint] = self._request_counts.get(endpoint, 0) + 1

    def record_error(self, error_type: str) -> None:
        self._error_counts[error_type] = self._error_counts.get(error_type, 0) + 1

    def record_gateway_call(self, service: str, ok: bool) -> None:
        counts = self._gateway_calls.setdefault(service, {"ok": 0, "failed": 0})
        counts["ok" if ok else "failed"] += 1

    def record_timing(self, operation: str, duration_ms: float) -> None:
        samples = self._timing_samples.get(operation)
        if samples is None:
            samples = self._timing_samples[operation] = deque(maxlen=self._max_samples)
        samples.append(duration_ms)

    def get_stats(self) -> Dict[str, Any]:
        """Snapshot of everything collected so far."""
        timing = {}
        for operation, samples in self._timing_samples.items():
            if not samples:
                continue
            ordered = sorted(samples)
            timing[operation] = {
                "count": len(ordered),
                "avg_ms": round(sum(ordered) / len(ordered), 2),
                "min_ms": round(ordered[0], 2),
                "max_ms": round(ordered[-1], 2),
                "p50_ms": round(ordered[len(ordered) // 2], 2),
                "p95_ms": round(ordered[int(len(ordered) * 0.95)], 2) if len(ordered) >= 20 else None,
            }

        return {
            "requests": dict(self._request_counts),
            "errors": dict(self._error_counts),
            "gateways": {k: dict(v) for k, v in self._gateway_calls.items()},
            "timing": timing,
        }

    def reset(self) -> None:
        self._request_counts.clear()
        self._error_counts.clear()
        self._gateway_calls.clear()
        self._timing_samples.clear()


# Global metrics instance
metrics = MetricsCollector()
