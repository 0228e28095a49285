"""
Rate limiter configuration module.

This module creates the SlowAPI rate limiter instance that can be imported
by route modules without circular import issues.
"""

import logging
from typing import Any, Dict, Optional

from slowapi import Limiter
from slowapi.util import get_remote_address

from session_service.core.config import Settings, settings

# Initialize logging
logger = logging.getLogger(__name__)


def get_limiter_storage(app_settings: Settings = settings) -> Optional[str]:
    """
    Get the storage backend for rate limiting.

    Returns Redis URL if configured, otherwise None (uses in-memory storage).
    Logs a warning when the configured URL is not a Redis URL.
    """
    if not app_settings.redis_url:
        return None
    if not app_settings.redis_url.startswith(("redis://", "rediss://")):
        logger.warning(
            "Invalid REDIS_URL format: %s. Using in-memory storage instead.",
            app_settings.redis_url
        )
        return None
    logger.info("Using Redis backend for rate limiting")
    return app_settings.redis_url


def create_limiter(app_settings: Settings = settings) -> Limiter:
    """
    Create and configure the SlowAPI rate limiter.

    Uses Redis backend if REDIS_URL is configured, otherwise falls back to
    in-memory storage, which only holds for a single instance. Rate limit
    headers (including Retry-After on 429) are always sent.

    Returns:
        Configured Limiter instance
    """
    limiter_kwargs: Dict[str, Any] = {
        "key_func": get_remote_address,
        "enabled": app_settings.rate_limit_enabled,
        "headers_enabled": True,
        "default_limits": [],  # Limits are applied per endpoint
    }

    storage_uri = get_limiter_storage(app_settings)
    if storage_uri:
        limiter_kwargs["storage_uri"] = storage_uri
    else:
        logger.info("Using in-memory storage for rate limiting")

    if not app_settings.rate_limit_enabled:
        logger.warning("Rate limiting is disabled")

    return Limiter(**limiter_kwargs)


# Single limiter instance shared by the application and route decorators
limiter = create_limiter()
