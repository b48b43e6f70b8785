"""
Shared async HTTP plumbing for upstream gateways.

Subclasses set ``service_name`` and ``headers`` and call ``_request``.
Every request gets:
- Connection pooling with httpx
- Exponential backoff retry on network errors (3 attempts)
- A circuit breaker shared per service (opens after 5 consecutive failures)
- The current correlation ID as ``X-Request-ID``
"""
from typing import Any, Dict, Optional

import httpx

from core.exceptions import GatewayAPIError, GatewayConnectionError
from core.observability import Timer, get_correlation_id, get_logger, metrics
from core.resilience import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitOpenError,
    RetryConfig,
    get_breaker,
    retry_with_backoff,
)

logger = get_logger(__name__)

DEFAULT_RETRY = RetryConfig(max_attempts=3, base_delay=1.0, max_delay=30.0)
DEFAULT_BREAKER = CircuitBreakerConfig(failure_threshold=5, recovery_timeout=60.0)


class GatewayClient:
    """
    Base async client.

    Usage:
        async with FocusNfeClient(token, base_url) as client:
            data = await client.emit_nfce(ref, payload)
    """

    service_name = "gateway"

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        retry_config: Optional[RetryConfig] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_config = retry_config or DEFAULT_RETRY
        self.circuit_breaker = circuit_breaker or get_breaker(self.service_name, DEFAULT_BREAKER)
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def headers(self) -> Dict[str, str]:
        return {"Accept": "application/json", "Content-Type": "application/json"}

    @property
    def auth(self) -> Optional[httpx.Auth]:
        return None

    async def connect(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=self.headers,
                auth=self.auth,
                timeout=self.timeout,
                limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
            )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Send a request with retry and circuit breaking.

        Raises:
            GatewayConnectionError: network failure after all retries
            GatewayAPIError: upstream answered with status >= 400
            CircuitOpenError: too many recent failures, request not sent
        """
        if not await self.circuit_breaker.can_execute():
            raise CircuitOpenError(self.service_name, self.circuit_breaker.retry_in)

        try:
            result = await retry_with_backoff(
                self._do_request,
                method, path, params, json, headers,
                config=self.retry_config,
                retryable_exceptions=(GatewayConnectionError,),
            )
        except GatewayConnectionError:
            await self.circuit_breaker.record_failure()
            metrics.record_gateway_call(self.service_name, ok=False)
            raise
        except GatewayAPIError as e:
            # 4xx is the caller's fault, only server errors count against the upstream
            if e.status_code is None or e.status_code >= 500:
                await self.circuit_breaker.record_failure()
            else:
                await self.circuit_breaker.record_success()
            metrics.record_gateway_call(self.service_name, ok=False)
            raise

        await self.circuit_breaker.record_success()
        metrics.record_gateway_call(self.service_name, ok=True)
        return result

    async def _do_request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        if not self._client:
            await self.connect()

        url = f"{self.base_url}/{path.lstrip('/')}"
        request_headers = dict(headers or {})
        correlation_id = get_correlation_id()
        if correlation_id:
            request_headers["X-Request-ID"] = correlation_id

        try:
            with Timer(f"{self.service_name}.{method.lower()}", logger) as timer:
                response = await self._client.request(
                    method=method,
                    url=url,
                    params=params,
                    json=json,
                    headers=request_headers or None,
                )
            metrics.record_timing(f"{self.service_name}.request", timer.elapsed_ms)

        except httpx.TimeoutException as e:
            logger.error(
                f"{self.service_name} timeout: {method} {path}",
                extra={"service": self.service_name, "timeout": self.timeout}
            )
            raise GatewayConnectionError(
                f"Request timeout after {self.timeout}s",
                service=self.service_name,
                retry_after=5,
            ) from e

        except httpx.RequestError as e:
            logger.error(
                f"{self.service_name} request failed: {method} {path}",
                extra={"service": self.service_name, "error": str(e)}
            )
            raise GatewayConnectionError(str(e), service=self.service_name) from e

        body = self._decode(response)

        if response.status_code >= 400:
            logger.warning(
                f"{self.service_name} returned {response.status_code}",
                extra={"service": self.service_name, "path": path, "status_code": response.status_code}
            )
            raise GatewayAPIError(
                f"{self.service_name} returned {response.status_code}",
                details=response.text[:500],
                service=self.service_name,
                status_code=response.status_code,
                error_code=body.get("code") if isinstance(body, dict) else None,
                body=body,
            )

        return body

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None
