"""
Centralized configuration for the restaurant ordering backend.

This module provides a single source of truth for all configuration values.
Configuration is loaded from environment variables with sensible defaults.

Usage:
    from core.config import config

    url = config.backend.url
    cache_ttl = config.cache.ttl_seconds
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_bool(name: str, default: str = "true") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class BackendConfig:
    """Managed Postgres REST API (system of record)."""

    url: str = field(default_factory=lambda: os.getenv("SUPABASE_URL", "").rstrip("/"))
    service_key: str = field(
        default_factory=lambda: os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
    )
    request_timeout: int = 30
    page_limit: int = 1000
    sync_buffer_hours: int = 2
    initial_sync_days: int = 60


@dataclass(frozen=True)
class NfeConfig:
    """Focus NFe gateway and queue worker settings."""

    production_url: str = "https://api.focusnfe.com.br"
    homologation_url: str = "https://homologacao.focusnfe.com.br"
    batch_size: int = field(default_factory=lambda: int(os.getenv("NFE_BATCH_SIZE", "10")))
    process_interval_seconds: int = field(
        default_factory=lambda: int(os.getenv("NFE_PROCESS_INTERVAL_SECONDS", "120"))
    )
    request_timeout: int = 60
    default_ncm: str = "21069090"
    delivery_ncm: str = "49019900"

    def base_url(self, environment: str) -> str:
        """Production only when explicitly requested, homologation otherwise."""
        if environment == "production":
            return self.production_url
        return self.homologation_url


@dataclass(frozen=True)
class PaymentConfig:
    """Mercado Pago configuration."""

    base_url: str = "https://api.mercadopago.com"
    access_token: str = field(
        default_factory=lambda: os.getenv("MERCADO_PAGO_ACCESS_TOKEN", "")
    )
    request_timeout: int = 20


@dataclass(frozen=True)
class CacheConfig:
    """Caching configuration."""

    enabled: bool = field(default_factory=lambda: _env_bool("CACHE_ENABLED"))
    redis_url: str = field(
        default_factory=lambda: os.getenv("REDIS_URL", "redis://localhost:6379/0")
    )
    ttl_seconds: int = 300  # 5 minutes
    dashboard_ttl_seconds: int = 60
    unavailable_ttl_seconds: int = 30


@dataclass(frozen=True)
class StorageConfig:
    """Local analytics mirror."""

    duckdb_path: str = field(
        default_factory=lambda: os.getenv("DUCKDB_PATH", "data/restaurant.duckdb")
    )
    query_timeout_seconds: float = 30.0


@dataclass(frozen=True)
class WebConfig:
    """HTTP API configuration."""

    host: str = field(default_factory=lambda: os.getenv("WEB_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.getenv("WEB_PORT", "8080")))
    cors_origins: List[str] = field(default_factory=lambda: [
        o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()
    ])

    # Rate limiting
    rate_limit_per_minute: int = 30
    webhook_rate_limit_per_minute: int = 120


@dataclass(frozen=True)
class DashboardConfig:
    """Dashboard aggregation settings."""

    period_days: Dict[str, int] = field(default_factory=lambda: {
        "today": 1,
        "7days": 7,
        "30days": 30,
    })
    recent_orders_limit: int = 5
    top_products_limit: int = 5
    critical_items_limit: int = 5

    # Default timezone for day boundaries
    default_timezone: str = field(
        default_factory=lambda: os.getenv("DEFAULT_TIMEZONE", "America/Sao_Paulo")
    )


@dataclass(frozen=True)
class DeliveryConfig:
    """Driver metrics settings."""

    # Delivery durations outside (0, max) minutes are treated as bad data
    max_delivery_minutes: int = 300


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""

    version: str = "1.0.0"
    backend: BackendConfig = field(default_factory=BackendConfig)
    nfe: NfeConfig = field(default_factory=NfeConfig)
    payments: PaymentConfig = field(default_factory=PaymentConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    web: WebConfig = field(default_factory=WebConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)


# Global config instance
config = AppConfig()

VERSION = config.version
DEFAULT_TIMEZONE = config.dashboard.default_timezone


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def validate_config(require_backend: bool = True, require_payments: bool = False) -> None:
    """
    Validate that all required configuration is present.

    Call this on application startup to fail fast with clear error messages
    instead of cryptic runtime failures.

    Args:
        require_backend: If True, validate backend URL and service key
        require_payments: If True, validate the Mercado Pago access token

    Raises:
        ConfigurationError: If required configuration is missing
    """
    errors = []

    if require_backend:
        if not config.backend.url:
            errors.append("SUPABASE_URL is required but not set")
        elif not config.backend.url.startswith(("http://", "https://")):
            errors.append("SUPABASE_URL must start with http:// or https://")
        if not config.backend.service_key:
            errors.append("SUPABASE_SERVICE_ROLE_KEY is required but not set")

    if require_payments and not config.payments.access_token:
        errors.append("MERCADO_PAGO_ACCESS_TOKEN is required but not set")

    if config.nfe.batch_size < 1:
        errors.append("NFE_BATCH_SIZE must be at least 1")

    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        raise ConfigurationError(error_msg)
