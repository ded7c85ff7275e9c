"""
Telemetry Module
================

Error tracking for the sync service.

Components:
- sentry.py: Error tracking and performance monitoring

Environment Variables:
- SENTRY_DSN: Sentry project DSN (Sentry stays disabled when unset)
- ENVIRONMENT: Environment name (production, staging, development)

Usage:
    from adsync.telemetry import init_sentry, set_user_context

Related modules:
- adsync/main.py: Initializes Sentry in create_app()
- adsync/deps.py: Sets user context after the request's user is resolved
"""

from adsync.telemetry.sentry import (
    capture_exception,
    init_sentry,
    set_user_context,
)

__all__ = [
    "init_sentry",
    "set_user_context",
    "capture_exception",
]
