"""Google Analytics (GA4) client.

WHAT:
    OAuth 2.0 code exchange and refresh against Google's token endpoint,
    first-page listing of accounts/properties through the Analytics Admin API,
    and daily reports through the Analytics Data API.

WHY:
    - Google access tokens live ~1h; the refresh token obtained with
      `access_type=offline` + `prompt=consent` lets the credential manager renew
      them without user interaction.
    - Plain REST over httpx keeps auth per call (Bearer header), with no
      client-library global credentials.

REFERENCES:
    - https://developers.google.com/identity/protocols/oauth2/web-server
    - https://developers.google.com/analytics/devguides/config/admin/v1/rest
    - https://developers.google.com/analytics/devguides/reporting/data/v1/rest
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlencode

from adsync.errors import RemoteFetchFailed, TokenExchangeFailed
from adsync.schemas import TokenSet
from adsync.services.platform_client import PlatformApiClient

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
ADMIN_API_URL = "https://analyticsadmin.googleapis.com/v1beta"
DATA_API_URL = "https://analyticsdata.googleapis.com/v1beta"

DEFAULT_SCOPES = ["https://www.googleapis.com/auth/analytics.readonly"]

ACCOUNT_FIELDS = ["name", "displayName"]
PROPERTY_FIELDS = ["name", "displayName", "parent"]

# Order matters: report rows are parsed positionally
REPORT_DIMENSIONS = ["date"]
REPORT_METRICS = ["sessions", "activeUsers", "newUsers", "engagementRate", "conversions"]


class GoogleAnalyticsClient(PlatformApiClient):
    """Client for Google OAuth and the GA4 Admin/Data APIs.

    Usage:
        ```python
        client = GoogleAnalyticsClient(client_id="...", client_secret="...", redirect_uri="https://app/cb")
        tokens = client.exchange_code("4/0Ab...")
        accounts = client.list_entities(tokens.access_token, "accounts", ACCOUNT_FIELDS)
        ```
    """

    platform = "google_analytics"
    tag = "GA_CLIENT"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scopes: Optional[Sequence[str]] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = list(scopes or DEFAULT_SCOPES)

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "access_type": "offline",  # Request refresh token
            "prompt": "consent",  # Force consent screen to ensure refresh token
            "include_granted_scopes": "true",
            "state": state,
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    def exchange_code(self, code: str, redirect_uri: Optional[str] = None) -> TokenSet:
        """Exchange an authorization code for access + refresh tokens.

        Raises:
            TokenExchangeFailed: Google rejected the code.
        """
        try:
            data = self._request(
                "POST",
                GOOGLE_TOKEN_URL,
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": redirect_uri or self.redirect_uri,
                },
                retry=False,
            )
            tokens = self._token_set(data)
        except RemoteFetchFailed as e:
            raise TokenExchangeFailed(f"Google code exchange failed: {e.message}", self.platform) from e

        if not tokens.refresh_token:
            logger.warning("[GA_CLIENT] Code exchange returned no refresh token")
        return tokens

    def refresh(self, refresh_token: str) -> TokenSet:
        """Obtain a new access token. The response usually omits refresh_token.

        Raises:
            RemoteFetchFailed: Google rejected the refresh (e.g. invalid_grant). Never retried.
        """
        data = self._request(
            "POST",
            GOOGLE_TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
            retry=False,
        )
        return self._token_set(data)

    def list_entities(
        self,
        access_token: str,
        scope: str,
        fields: Sequence[str],
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Return the first page of an Admin API collection ("accounts", "properties").

        Raises:
            RemoteFetchFailed: network error, timeout, or API error.
        """
        collection = scope.strip("/").split("/")[-1]
        query = dict(params or {})
        if fields:
            # Partial response: only the requested fields of each item
            query["fields"] = f"{collection}({','.join(fields)}),nextPageToken"

        logger.info("[GA_CLIENT] GET %s", scope)
        body = self._request(
            "GET",
            f"{ADMIN_API_URL}/{scope.strip('/')}",
            params=query,
            headers=self._auth_headers(access_token),
        )
        return body.get(collection, [])

    def run_report(self, access_token: str, property_id: str, start_date: str, end_date: str) -> Dict[str, Any]:
        """Run a daily report (REPORT_DIMENSIONS x REPORT_METRICS) for a property.

        Args:
            property_id: "properties/456"
            start_date, end_date: "YYYY-MM-DD"
        """
        body = {
            "dateRanges": [{"startDate": start_date, "endDate": end_date}],
            "dimensions": [{"name": name} for name in REPORT_DIMENSIONS],
            "metrics": [{"name": name} for name in REPORT_METRICS],
        }
        logger.info("[GA_CLIENT] runReport %s %s..%s", property_id, start_date, end_date)
        return self._request(
            "POST",
            f"{DATA_API_URL}/{property_id}:runReport",
            json=body,
            headers=self._auth_headers(access_token),
        )

    @staticmethod
    def _auth_headers(access_token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}

    def _token_set(self, data: Dict[str, Any]) -> TokenSet:
        access_token = data.get("access_token")
        if not access_token:
            raise RemoteFetchFailed("Google token response has no access_token", self.platform)
        try:
            expires_in = int(data.get("expires_in") or 3600)
        except (TypeError, ValueError) as e:
            raise RemoteFetchFailed(f"Google token response has invalid expires_in: {data.get('expires_in')!r}", self.platform) from e
        return TokenSet(
            access_token=access_token,
            expires_in=expires_in,
            refresh_token=data.get("refresh_token"),
            scope=data.get("scope"),
        )
