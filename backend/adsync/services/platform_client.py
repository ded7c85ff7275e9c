"""Shared HTTP plumbing for remote platform clients.

WHAT:
    Base class wrapping an `httpx.Client` with a bounded timeout, retry with
    linear backoff for throttling and 5xx responses, and translation of every
    failure into `RemoteFetchFailed`.

WHY:
    - Both platforms paginate, throttle and fail the same way at the HTTP level.
    - Callers never see httpx exceptions, only the typed failures in
      adsync/errors.py.
    - Token calls (code exchange, refresh) pass `retry=False`: a rejected
      refresh is surfaced immediately.

REFERENCES:
    - adsync/services/meta_ads_client.py
    - adsync/services/google_analytics_client.py
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, FrozenSet, List, Optional, Protocol, Sequence

import httpx

from adsync.errors import RemoteFetchFailed
from adsync.schemas import TokenSet

logger = logging.getLogger(__name__)


class RemotePlatformClient(Protocol):
    """Capability the credential manager needs from a platform."""

    platform: str

    def authorization_url(self, state: str) -> str:
        ...

    def exchange_code(self, code: str, redirect_uri: Optional[str] = None) -> TokenSet:
        ...

    def refresh(self, refresh_token: str) -> TokenSet:
        ...

    def list_entities(
        self,
        access_token: str,
        scope: str,
        fields: Sequence[str],
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        ...


class PlatformApiClient:
    """Retrying JSON-over-HTTP client. Subclasses set `platform` and `tag`."""

    platform: str = ""
    tag: str = "PLATFORM_CLIENT"
    # Platform error codes that mean "throttled, try later" even on a 4xx
    THROTTLE_ERROR_CODES: FrozenSet[Any] = frozenset()

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        http_client: Optional[httpx.Client] = None,
    ):
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self._http = http_client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self._http.close()

    # -------------------------
    # internal helpers
    # -------------------------
    def _safe_json(self, resp: httpx.Response) -> Dict[str, Any]:
        """Platforms sometimes answer with HTML (proxies) or an empty body."""
        try:
            body = resp.json()
        except ValueError:
            logger.error(
                "[%s] Non-JSON response status=%s body_snip=%s",
                self.tag, resp.status_code, (resp.text or "").strip()[:200],
            )
            return {}
        return body if isinstance(body, dict) else {"data": body}

    def _error_message(self, body: Dict[str, Any], resp: httpx.Response) -> str:
        error = body.get("error")
        if isinstance(error, dict):
            return error.get("message") or f"HTTP {resp.status_code}"
        if isinstance(error, str):
            # OAuth endpoints: {"error": "invalid_grant", "error_description": "..."}
            return body.get("error_description") or error
        return f"HTTP {resp.status_code}"

    def _is_retryable(self, resp: httpx.Response, body: Dict[str, Any]) -> bool:
        if resp.status_code == 429 or resp.status_code >= 500:
            return True
        error = body.get("error")
        return isinstance(error, dict) and error.get("code") in self.THROTTLE_ERROR_CODES

    def _backoff(self, attempt: int, reason: str) -> None:
        wait = self.retry_delay * attempt
        logger.warning(
            "[%s] %s. Retrying in %.1fs (attempt %d/%d)",
            self.tag, reason, wait, attempt, self.max_retries,
        )
        time.sleep(wait)

    def _request(self, method: str, url: str, *, retry: bool = True, **kwargs: Any) -> Dict[str, Any]:
        """Send a request and return the decoded JSON body.

        Raises:
            RemoteFetchFailed: transport error, timeout, or non-2xx response
                after retries are exhausted.
        """
        attempts = self.max_retries if retry else 1

        for attempt in range(1, attempts + 1):
            try:
                resp = self._http.request(method, url, timeout=self.timeout, **kwargs)
            except httpx.TimeoutException as e:
                if attempt < attempts:
                    self._backoff(attempt, f"Timeout calling {url}")
                    continue
                raise RemoteFetchFailed(f"{self.platform} request timed out", self.platform) from e
            except httpx.HTTPError as e:
                if attempt < attempts:
                    self._backoff(attempt, f"Request error {e}")
                    continue
                raise RemoteFetchFailed(f"{self.platform} request failed: {e}", self.platform) from e

            body = self._safe_json(resp)
            if resp.is_success:
                return body

            message = self._error_message(body, resp)
            if attempt < attempts and self._is_retryable(resp, body):
                self._backoff(attempt, f"Throttled or server error {resp.status_code}")
                continue

            logger.error("[%s] %s %s failed status=%s: %s", self.tag, method, url, resp.status_code, message)
            raise RemoteFetchFailed(message, self.platform, status_code=resp.status_code)

        # Unreachable: the loop either returns or raises on its last attempt
        raise RemoteFetchFailed("Max retries exhausted", self.platform)
