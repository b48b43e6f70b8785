"""
Retry and circuit breaking for outbound gateway calls.

Every HTTP client (backend REST API, Focus NFe, Mercado Pago) shares one
named ``CircuitBreaker`` per service and wraps its requests in
``retry_with_backoff``.
Breakers register themselves so /api/health/detailed can report them.
"""
import asyncio
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Type

from core.observability import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class RetryConfig:
    """Exponential backoff parameters."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: float = 0.1

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the given (1-based) failed attempt."""
        delay = min(self.base_delay * (self.exponential_base ** (attempt - 1)), self.max_delay)
        return delay + delay * self.jitter * random.random()


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    half_open_requests: int = 1


class CircuitOpenError(Exception):
    """Raised instead of calling a gateway whose breaker is open."""

    def __init__(self, name: str, retry_in: float = 0):
        self.name = name
        self.retry_in = max(retry_in, 0)
        super().__init__(f"Circuit '{name}' is open, retry in {self.retry_in:.0f}s")


_breakers: Dict[str, "CircuitBreaker"] = {}


@dataclass
class CircuitBreaker:
    """
    Classic three-state breaker.

    CLOSED lets everything through and counts consecutive failures; at
    ``failure_threshold`` it goes OPEN and rejects calls until
    ``recovery_timeout`` passes; then HALF_OPEN allows
    ``half_open_requests`` probes, closing on success and re-opening on
    failure.
    """
    name: str = "default"
    config: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure_time: float = 0
    half_open_attempts: int = 0

    def __post_init__(self):
        self._lock = asyncio.Lock()
        _breakers[self.name] = self

    async def can_execute(self) -> bool:
        async with self._lock:
            if self.state == CircuitState.CLOSED:
                return True

            if self.state == CircuitState.OPEN:
                if time.time() - self.last_failure_time < self.config.recovery_timeout:
                    return False
                logger.info("Circuit half-open", extra={"circuit": self.name})
                self.state = CircuitState.HALF_OPEN
                self.half_open_attempts = 0

            if self.half_open_attempts < self.config.half_open_requests:
                self.half_open_attempts += 1
                return True
            return False

    async def record_success(self) -> None:
        async with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                logger.info("Circuit closed", extra={"circuit": self.name})
                self.state = CircuitState.CLOSED
            self.failure_count = 0

    async def record_failure(self) -> None:
        async with self._lock:
            self.failure_count += 1
            self.last_failure_time = time.time()

            if self.state == CircuitState.HALF_OPEN or (
                self.state == CircuitState.CLOSED
                and self.failure_count >= self.config.failure_threshold
            ):
                logger.warning(
                    "Circuit opened",
                    extra={"circuit": self.name, "failures": self.failure_count},
                )
                self.state = CircuitState.OPEN

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    @property
    def retry_in(self) -> float:
        return self.config.recovery_timeout - (time.time() - self.last_failure_time)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "last_failure_time": self.last_failure_time or None,
        }


def get_circuit_states() -> Dict[str, Dict[str, Any]]:
    """State of every breaker created in this process."""
    return {name: breaker.snapshot() for name, breaker in _breakers.items()}


def get_breaker(name: str, config: Optional[CircuitBreakerConfig] = None) -> CircuitBreaker:
    """
    The process-wide breaker for ``name``, created on first use.

    Clients built per call (one Focus NFe client per invoice, one Mercado
    Pago client per webhook) share failure state through this.
    """
    breaker = _breakers.get(name)
    if breaker is None:
        breaker = CircuitBreaker(name=name, config=config or CircuitBreakerConfig())
    return breaker


async def retry_with_backoff(
    func: Callable[..., Any],
    *args,
    config: Optional[RetryConfig] = None,
    retryable_exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    **kwargs
) -> Any:
    """
    Await ``func(*args, **kwargs)``, retrying retryable failures.

    Non-retryable exceptions propagate immediately; the last retryable one
    propagates once ``max_attempts`` is exhausted.
    """
    config = config or RetryConfig()

    for attempt in range(1, config.max_attempts + 1):
        try:
            return await func(*args, **kwargs)
        except retryable_exceptions as e:
            if attempt == config.max_attempts:
                logger.error(
                    f"All {config.max_attempts} attempts failed",
                    extra={"error": str(e)}
                )
                raise

            delay = config.delay_for(attempt)
            retry_after = getattr(e, "retry_after", None)
            if retry_after:
                delay = min(max(delay, float(retry_after)), config.max_delay)

            logger.warning(
                f"Attempt {attempt} failed, retrying in {delay:.2f}s",
                extra={"attempt": attempt, "delay": round(delay, 2), "error": str(e)}
            )
            await asyncio.sleep(delay)
