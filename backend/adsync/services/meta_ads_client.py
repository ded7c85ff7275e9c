"""Meta Ads (Graph API) client.

WHAT:
    OAuth code exchange, long-lived token exchange, and first-page edge reads
    (ad accounts, campaigns, ad sets, ads, insights) against the Graph API.

WHY:
    - Single place that knows Graph URLs, field lists and error codes.
    - No SDK global state: each instance carries its own app credentials and
      HTTP client, injected by adsync/deps.py.

TOKENS:
    Meta issues no refresh tokens. A fresh OAuth token is short-lived (~1-2h)
    and is immediately upgraded to a long-lived (~60 days) token through the
    `fb_exchange_token` grant, which is what `refresh()` performs. When a
    long-lived token expires the user must reconnect.

REFERENCES:
    - https://developers.facebook.com/docs/marketing-api
    - https://developers.facebook.com/docs/facebook-login/guides/access-tokens/get-long-lived
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlencode

from adsync.errors import RemoteFetchFailed, TokenExchangeFailed
from adsync.schemas import TokenSet
from adsync.services.platform_client import PlatformApiClient

logger = logging.getLogger(__name__)

DEFAULT_SCOPES = ["ads_read", "ads_management", "business_management", "read_insights"]

# Tokens living less than 60 days are short-lived and get exchanged
LONG_LIVED_THRESHOLD_SECONDS = 5184000

AD_ACCOUNT_FIELDS = ["id", "name", "account_status", "amount_spent", "currency", "business_name"]
CAMPAIGN_FIELDS = [
    "id", "name", "objective", "status", "created_time",
    "start_time", "stop_time", "daily_budget", "lifetime_budget",
]
ADSET_FIELDS = [
    "id", "name", "status", "daily_budget", "lifetime_budget",
    "bid_strategy", "start_time", "end_time",
]
AD_FIELDS = ["id", "name", "status", "created_time"]
INSIGHT_FIELDS = [
    "impressions", "clicks", "spend", "cpc", "ctr", "reach",
    "frequency", "unique_clicks", "cost_per_unique_click",
]


class MetaAdsClient(PlatformApiClient):
    """Client for the Meta Graph API.

    Usage:
        ```python
        client = MetaAdsClient(app_id="...", app_secret="...", redirect_uri="https://app/cb")
        tokens = client.exchange_code("abc")
        accounts = client.list_entities(tokens.access_token, "me/adaccounts", AD_ACCOUNT_FIELDS)
        ```
    """

    platform = "meta"
    tag = "META_CLIENT"
    # 4: app limit, 17: user limit, 32: page limit, 613: custom limit, 80004: ads account limit
    THROTTLE_ERROR_CODES = frozenset({4, 17, 32, 613, 80004})

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        redirect_uri: str,
        graph_version: str = "v22.0",
        scopes: Optional[Sequence[str]] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.app_id = app_id
        self.app_secret = app_secret
        self.redirect_uri = redirect_uri
        self.graph_version = graph_version
        self.scopes = list(scopes or DEFAULT_SCOPES)
        self.base_url = f"https://graph.facebook.com/{graph_version}"

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.app_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "state": state,
            "scope": ",".join(self.scopes),  # Meta uses comma-separated scopes
        }
        return f"https://www.facebook.com/{self.graph_version}/dialog/oauth?{urlencode(params)}"

    def exchange_code(self, code: str, redirect_uri: Optional[str] = None) -> TokenSet:
        """Exchange an authorization code, then upgrade to a long-lived token.

        Raises:
            TokenExchangeFailed: Meta rejected the code.
        """
        try:
            data = self._request(
                "GET",
                f"{self.base_url}/oauth/access_token",
                params={
                    "client_id": self.app_id,
                    "client_secret": self.app_secret,
                    "redirect_uri": redirect_uri or self.redirect_uri,
                    "code": code,
                },
                retry=False,
            )
            tokens = self._token_set(data)
        except RemoteFetchFailed as e:
            raise TokenExchangeFailed(f"Meta code exchange failed: {e.message}", self.platform) from e

        if tokens.expires_in >= LONG_LIVED_THRESHOLD_SECONDS:
            return tokens

        logger.info("[META_CLIENT] Token is short-lived (%ss), exchanging for long-lived token", tokens.expires_in)
        try:
            return self.refresh(tokens.access_token)
        except RemoteFetchFailed as e:
            logger.warning("[META_CLIENT] Long-lived exchange failed, keeping short-lived token: %s", e.message)
            return tokens

    def refresh(self, refresh_token: str) -> TokenSet:
        """Exchange a still-valid token for a long-lived one (`fb_exchange_token`).

        Raises:
            RemoteFetchFailed: Meta rejected the exchange. Never retried.
        """
        data = self._request(
            "GET",
            f"{self.base_url}/oauth/access_token",
            params={
                "grant_type": "fb_exchange_token",
                "client_id": self.app_id,
                "client_secret": self.app_secret,
                "fb_exchange_token": refresh_token,
            },
            retry=False,
        )
        tokens = self._token_set(data)
        logger.info("[META_CLIENT] Obtained long-lived token (expires in %ss)", tokens.expires_in)
        return tokens

    def list_entities(
        self,
        access_token: str,
        scope: str,
        fields: Sequence[str],
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Return the first page of an edge, e.g. scope="act_1/campaigns".

        Raises:
            RemoteFetchFailed: network error, timeout, or Graph API error.
        """
        query = dict(params or {})
        query["fields"] = ",".join(fields)
        query["access_token"] = access_token

        logger.info("[META_CLIENT] GET %s", scope)
        body = self._request("GET", f"{self.base_url}/{scope.lstrip('/')}", params=query)
        return body.get("data", [])

    def _token_set(self, data: Dict[str, Any]) -> TokenSet:
        access_token = data.get("access_token")
        if not access_token:
            raise RemoteFetchFailed("Meta token response has no access_token", self.platform)
        # Long-lived tokens are sometimes returned without expires_in
        try:
            expires_in = int(data.get("expires_in") or LONG_LIVED_THRESHOLD_SECONDS)
        except (TypeError, ValueError) as e:
            raise RemoteFetchFailed(f"Meta token response has invalid expires_in: {data.get('expires_in')!r}", self.platform) from e
        return TokenSet(access_token=access_token, expires_in=expires_in)
