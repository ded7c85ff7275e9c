"""
Sentry Error Tracking
=====================

Centralized error tracking and performance monitoring using Sentry.

Related files:
- adsync/main.py: Initializes Sentry in create_app()
- adsync/deps.py: Sets user context after the user id is decoded
- adsync/main.py exception handlers: platform failures are captured with context

Environment Variables:
- SENTRY_DSN: Sentry project DSN (required for Sentry to work)
- ENVIRONMENT: Environment name (production, staging, development)
"""

from __future__ import annotations

import logging
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

logger = logging.getLogger(__name__)

_initialized = False


def init_sentry(dsn: Optional[str], environment: str = "development", release: Optional[str] = None) -> bool:
    """
    Initialize Sentry SDK for FastAPI.

    Should be called once during application startup.

    Returns:
        True if Sentry was initialized, False when no DSN is configured.
    """
    global _initialized

    if not dsn:
        logger.info("[SENTRY] SENTRY_DSN not set - error tracking disabled")
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            RedisIntegration(),
            LoggingIntegration(
                level=logging.INFO,        # Capture INFO+ as breadcrumbs
                event_level=logging.ERROR,  # Send ERROR+ as events
            ),
        ],
        traces_sample_rate=0.1,
        send_default_pii=False,  # Tokens travel in headers and query strings
        release=release,
    )
    _initialized = True
    logger.info("[SENTRY] Initialized for %s environment", environment)
    return True


def set_user_context(user_id: int) -> None:
    """Attach the request's user id to subsequent Sentry events."""
    if not _initialized:
        return
    sentry_sdk.set_user({"id": str(user_id)})


def capture_exception(exception: Exception, extra: Optional[dict] = None) -> None:
    """
    Manually capture a handled exception.

    Use this for failures that are turned into an HTTP response but should
    still be tracked.
    """
    if not _initialized:
        logger.debug("[SENTRY] Disabled, not capturing %s", type(exception).__name__)
        return

    with sentry_sdk.new_scope() as scope:
        for key, value in (extra or {}).items():
            scope.set_extra(key, value)
        sentry_sdk.capture_exception(exception)
