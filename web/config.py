"""
Web API configuration.
"""
from core.config import config, DEFAULT_TIMEZONE, VERSION

# Web server settings
WEB_HOST = config.web.host
WEB_PORT = config.web.port

CORS_ORIGINS = config.web.cors_origins

# slowapi limit strings
DEFAULT_RATE_LIMIT = f"{config.web.rate_limit_per_minute}/minute"
WEBHOOK_RATE_LIMIT = f"{config.web.webhook_rate_limit_per_minute}/minute"

__all__ = [
    "WEB_HOST",
    "WEB_PORT",
    "CORS_ORIGINS",
    "DEFAULT_RATE_LIMIT",
    "WEBHOOK_RATE_LIMIT",
    "DEFAULT_TIMEZONE",
    "VERSION",
]
