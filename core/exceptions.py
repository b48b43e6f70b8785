"""
Exception hierarchy for upstream gateways and business rules.

Exception Hierarchy:
    GatewayError (base)        - Backend REST API, Focus NFe, Mercado Pago
    ├── GatewayConnectionError - Network/timeout issues (recoverable)
    ├── GatewayAPIError        - Upstream returned error response
    └── GatewayDataError       - Invalid response structure

    ValidationError            - Input validation failed
    NotFoundError              - Referenced row does not exist
    NfeConfigurationError      - NFe emission disabled or misconfigured
    QueryTimeoutError          - Analytics store query too slow
"""

from typing import Any


class GatewayError(Exception):
    """Base exception for all errors talking to an upstream service."""

    def __init__(self, message: str, details: str = None, service: str = None):
        self.message = message
        self.details = details
        self.service = service
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class GatewayConnectionError(GatewayError):
    """
    Network-related errors (timeout, connection refused, etc.).

    These are typically recoverable with retry.
    """

    def __init__(
        self,
        message: str,
        details: str = None,
        service: str = None,
        retry_after: int = None,
    ):
        super().__init__(message, details, service)
        self.retry_after = retry_after


class GatewayAPIError(GatewayError):
    """
    Upstream returned an error response.

    The raw JSON body (if any) is kept in ``body`` because both tax and
    payment gateways put the useful message inside it.
    """

    def __init__(
        self,
        message: str,
        details: str = None,
        service: str = None,
        status_code: int = None,
        error_code: str = None,
        body: Any = None,
    ):
        super().__init__(message, details, service)
        self.status_code = status_code
        self.error_code = error_code
        self.body = body


class GatewayDataError(GatewayError):
    """Upstream response has an unexpected structure."""

    def __init__(
        self,
        message: str,
        details: str = None,
        service: str = None,
        expected: str = None,
        got: str = None,
    ):
        super().__init__(message, details, service)
        self.expected = expected
        self.got = got


class ValidationError(Exception):
    """
    Input validation failed.

    Used for validating request payloads before processing.
    """

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")

    def __str__(self) -> str:
        if self.value is not None:
            return f"{self.field}: {self.message} (got: {self.value!r})"
        return f"{self.field}: {self.message}"


class NotFoundError(Exception):
    """A referenced row (order, company, driver...) does not exist."""

    def __init__(self, resource: str, identifier: Any):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}")


class NfeConfigurationError(Exception):
    """NFe emission cannot run (settings missing, disabled or no token)."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class QueryTimeoutError(Exception):
    """
    Analytics query exceeded timeout.

    Usually a missing index or a scan over too much mirrored data.
    """

    def __init__(self, query: str, timeout: float, details: str = None):
        self.query = query[:200] + "..." if len(query) > 200 else query
        self.timeout = timeout
        self.details = details
        message = f"Query timed out after {timeout}s"
        if details:
            message = f"{message}: {details}"
        super().__init__(message)

    def __str__(self) -> str:
        return f"QueryTimeoutError: Query timed out after {self.timeout}s - {self.query}"
