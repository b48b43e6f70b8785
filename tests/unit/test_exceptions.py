"""
Tests for core.exceptions module.
"""
import pytest

from core.exceptions import (
    GatewayAPIError,
    GatewayConnectionError,
    GatewayDataError,
    GatewayError,
    NfeConfigurationError,
    NotFoundError,
    QueryTimeoutError,
    ValidationError,
)


class TestGatewayError:
    """Tests for base GatewayError exception."""

    def test_message_only(self):
        """Error with message only."""
        error = GatewayError("Something went wrong")
        assert str(error) == "Something went wrong"
        assert error.message == "Something went wrong"
        assert error.details is None
        assert error.service is None

    def test_message_with_details(self):
        """Error with message and details."""
        error = GatewayError("Failed to fetch", "Connection timeout", service="backend")
        assert str(error) == "Failed to fetch: Connection timeout"
        assert error.service == "backend"


class TestGatewayConnectionError:
    """Tests for GatewayConnectionError exception."""

    def test_inheritance(self):
        """Should inherit from GatewayError."""
        error = GatewayConnectionError("Connection failed")
        assert isinstance(error, GatewayError)

    def test_retry_after(self):
        """Should support retry_after attribute."""
        error = GatewayConnectionError("Timeout", retry_after=5)
        assert error.retry_after == 5

    def test_no_retry_after(self):
        """retry_after should be None by default."""
        assert GatewayConnectionError("Failed").retry_after is None


class TestGatewayAPIError:
    """Tests for GatewayAPIError exception."""

    def test_inheritance(self):
        assert isinstance(GatewayAPIError("API error"), GatewayError)

    def test_status_and_body(self):
        """Should keep status code, error code and the decoded body."""
        error = GatewayAPIError(
            "focus_nfe returned 422",
            status_code=422,
            error_code="requisicao_invalida",
            body={"mensagem": "CNPJ invalido"},
        )
        assert error.status_code == 422
        assert error.error_code == "requisicao_invalida"
        assert error.body == {"mensagem": "CNPJ invalido"}


class TestGatewayDataError:
    """Tests for GatewayDataError exception."""

    def test_expected_got(self):
        """Should support expected and got attributes."""
        error = GatewayDataError("Type mismatch", expected="list", got="dict")
        assert isinstance(error, GatewayError)
        assert error.expected == "list"
        assert error.got == "dict"


class TestValidationError:
    """Tests for ValidationError exception."""

    def test_not_gateway_error(self):
        """Should NOT inherit from GatewayError."""
        assert not isinstance(ValidationError("period", "Invalid"), GatewayError)

    def test_field_and_message(self):
        error = ValidationError("company_id", "Id is required")
        assert error.field == "company_id"
        assert error.message == "Id is required"
        assert str(error) == "company_id: Id is required"

    def test_with_value(self):
        """Should include value in string representation."""
        error = ValidationError("amount", "Must be greater than zero", value=-5)
        assert error.value == -5
        assert "-5" in str(error)


class TestNotFoundError:
    """Tests for NotFoundError exception."""

    def test_message(self):
        error = NotFoundError("Driver", "abc")
        assert error.resource == "Driver"
        assert error.identifier == "abc"
        assert str(error) == "Driver not found: abc"


class TestNfeConfigurationError:
    def test_message(self):
        error = NfeConfigurationError("NFe is disabled")
        assert error.message == "NFe is disabled"
        assert str(error) == "NFe is disabled"


class TestQueryTimeoutError:
    """Tests for QueryTimeoutError exception."""

    def test_truncates_long_query(self):
        error = QueryTimeoutError("SELECT " + "x" * 300, timeout=30)
        assert len(error.query) == 203
        assert error.query.endswith("...")
        assert "30" in str(error)

    def test_short_query(self):
        error = QueryTimeoutError("SELECT 1", timeout=5, details="scan")
        assert error.query == "SELECT 1"
        assert error.details == "scan"
