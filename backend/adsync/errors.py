"""
Sync Errors
===========

Typed failures surfaced by the credential and sync-on-read layer.

WHY THIS FILE EXISTS
--------------------
Callers (HTTP routes, workers) need to tell apart "the user never connected",
"the user must reconnect", and "the platform is down" without parsing messages.
Each failure carries the platform it came from so the HTTP layer can render a
platform-specific message.

RELATED FILES
-------------
- adsync/services/credential_manager.py: Raises NotAuthenticated, TokenExpiredNoRefresh, RefreshFailed
- adsync/services/meta_ads_client.py, google_analytics_client.py: Raise RemoteFetchFailed
- adsync/services/schema_upsert.py: Raises PersistenceError
- adsync/main.py: Maps these to HTTP status codes
"""

from typing import Optional


class SyncError(Exception):
    """
    Base exception for every failure raised by this package.

    USAGE:
        try:
            campaigns = meta_sync.get_campaigns(user_id, account_id)
        except SyncError as e:
            return {"error": e.to_user_message()}
    """

    def __init__(self, message: str, platform: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.platform = platform

    def to_user_message(self) -> str:
        """Generic, platform-specific text safe to show end users."""
        label = _platform_label(self.platform)
        return f"Could not load data from {label}. Please try again."


class NotAuthenticated(SyncError):
    """No credential row exists for the user and platform."""

    def to_user_message(self) -> str:
        return f"Connect your {_platform_label(self.platform)} account to continue."


class TokenExpiredNoRefresh(SyncError):
    """
    Credential expired and there is no refresh token to renew it.

    Terminal until the user completes OAuth again.
    """

    def to_user_message(self) -> str:
        return f"Your {_platform_label(self.platform)} connection expired. Please reconnect."


class RefreshFailed(SyncError):
    """The platform rejected the refresh call. Not retried by this layer."""


class TokenExchangeFailed(SyncError):
    """The platform rejected an OAuth authorization code exchange."""


class RemoteFetchFailed(SyncError):
    """
    A platform API call failed (network, timeout, auth rejection, rate limit).

    ATTRIBUTES:
        status_code: HTTP status returned by the platform, None for transport errors
    """

    def __init__(self, message: str, platform: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, platform)
        self.status_code = status_code


class PersistenceError(SyncError):
    """A durable-store write failed."""

    def __init__(self, message: str, table: Optional[str] = None, platform: Optional[str] = None):
        super().__init__(message, platform)
        self.table = table


def _platform_label(platform: Optional[str]) -> str:
    return {
        "meta": "Meta Ads",
        "google_analytics": "Google Analytics",
    }.get(platform or "", "the platform")
