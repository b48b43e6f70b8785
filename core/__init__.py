"""
Core shared library for the restaurant ordering backend.

This package contains the logic used by the web/ API and the background jobs:
- exceptions: Custom exception hierarchy
- validators: Input validation functions
- config: Centralized configuration
- pricing, inventory, store_hours, delivery, credits, dashboard: pure business rules
- backend, focus_nfe, mercadopago: HTTP gateway clients
"""

# Import in dependency order
from core.exceptions import (
    GatewayError,
    GatewayConnectionError,
    GatewayAPIError,
    GatewayDataError,
    ValidationError,
    NotFoundError,
    NfeConfigurationError,
)

from core.validators import (
    validate_id,
    validate_period,
    validate_month,
    validate_amount,
    validate_timezone,
)

from core.config import config

__all__ = [
    # Exceptions
    "GatewayError",
    "GatewayConnectionError",
    "GatewayAPIError",
    "GatewayDataError",
    "ValidationError",
    "NotFoundError",
    "NfeConfigurationError",
    # Validators
    "validate_id",
    "validate_period",
    "validate_month",
    "validate_amount",
    "validate_timezone",
    # Config
    "config",
]
