"""Credential manager: read, refresh, cache and persist one platform's OAuth tokens.

WHAT:
    Serves a valid access token for (user, platform), refreshing it lazily at
    read time when the stored credential is past `expires_at`.

WHY:
    - The durable store (`platform_credentials`) is the system of record.
    - The cache holds a fast-path copy for at most min(seconds to expiry, cap),
      so a cached token is never served past its stored expiry by more than
      the accepted staleness window.
    - Concurrent refreshes of the same credential are not serialized: each
      overwrites the row with its own result and the last write wins.

STATES (see CredentialState):
    absent → active → expired → active (refreshed) | expired_terminal (no refresh token)

REFERENCES:
    - adsync/security.py (TokenCipher)
    - adsync/services/cache_keys.py (credential_key, token_cache_ttl)
    - adsync/services/schema_upsert.py (credential row upsert)
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from adsync.errors import (
    NotAuthenticated,
    PersistenceError,
    RefreshFailed,
    RemoteFetchFailed,
    TokenExpiredNoRefresh,
)
from adsync.models import PlatformCredential, PlatformEnum
from adsync.schemas import CredentialState, CredentialStatus, TokenSet
from adsync.security import TokenCipher
from adsync.services.cache_keys import TOKEN_CACHE_CAP_SECONDS, credential_key, token_cache_ttl
from adsync.services.cache_store import CacheStore
from adsync.services.platform_client import RemotePlatformClient
from adsync.services.schema_upsert import SchemaAdaptiveUpserter, utcnow

logger = logging.getLogger(__name__)

CREDENTIALS_TABLE = "platform_credentials"


class CredentialManager:
    """Owns the credential cycle for one platform.

    Usage:
        ```python
        manager = CredentialManager(
            client=meta_client, cache=cache, session_factory=get_session_factory(),
            upserter=upserter, cipher=cipher,
        )
        token = manager.get_access_token(user_id=42)
        ```
    """

    def __init__(
        self,
        client: RemotePlatformClient,
        cache: CacheStore,
        session_factory: sessionmaker,
        upserter: SchemaAdaptiveUpserter,
        cipher: TokenCipher,
        cache_cap: int = TOKEN_CACHE_CAP_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.client = client
        self.platform = client.platform
        self.cache = cache
        self.session_factory = session_factory
        self.upserter = upserter
        self.cipher = cipher
        self.cache_cap = cache_cap
        self.clock = clock

    # -------------------------
    # public API
    # -------------------------
    def get_access_token(self, user_id: int) -> str:
        """Return a usable access token.

        Raises:
            NotAuthenticated: No credential row for the user, or its tokens cannot
                be decrypted with the current key (the user must reconnect).
            TokenExpiredNoRefresh: Expired and no refresh token stored.
            RefreshFailed: The platform rejected the refresh.
        """
        key = credential_key(self.platform, user_id)
        cached = self.cache.get(key)
        if cached:
            logger.debug("[CREDENTIALS] Cache hit for %s", key)
            return cached

        logger.info("[CREDENTIALS] Cache miss for %s, reading durable store", key)
        row = self._load(user_id)
        if row is None:
            raise NotAuthenticated(f"No {self.platform} credential for user {user_id}", self.platform)

        label = self._label(user_id)
        now = self.clock()
        access_token = self._decrypt(row.access_token_enc, user_id, f"{label}:access")
        expires_at = row.expires_at

        if now > expires_at:
            if not row.refresh_token_enc:
                logger.warning("[CREDENTIALS] %s expired at %s with no refresh token", label, expires_at)
                raise TokenExpiredNoRefresh(
                    f"{self.platform} credential for user {user_id} expired and cannot be refreshed",
                    self.platform,
                )
            refresh_token = self._decrypt(row.refresh_token_enc, user_id, f"{label}:refresh")
            access_token, expires_at = self._refresh(user_id, refresh_token, row.scope)

        ttl = token_cache_ttl((expires_at - self.clock()).total_seconds(), self.cache_cap)
        if ttl > 0:
            self.cache.set(key, access_token, ttl)
        else:
            logger.info("[CREDENTIALS] Not caching %s (ttl=%s)", label, ttl)
        return access_token

    def store_new_credential(self, user_id: int, tokens: TokenSet) -> None:
        """Persist a token set from an OAuth exchange and cache the access token.

        Raises:
            PersistenceError: The credential row could not be written.
        """
        label = self._label(user_id)
        self._persist(user_id, tokens.access_token, tokens.refresh_token, self._expires_at(tokens), tokens.scope)
        logger.info(
            "[CREDENTIALS] Stored new credential for %s (expires_in=%ss, refresh_token=%s)",
            label, tokens.expires_in, bool(tokens.refresh_token),
        )
        ttl = token_cache_ttl(tokens.expires_in, self.cache_cap)
        if ttl > 0:
            self.cache.set(credential_key(self.platform, user_id), tokens.access_token, ttl)

    def complete_oauth(self, user_id: int, code: str, redirect_uri: Optional[str] = None) -> TokenSet:
        """Exchange an authorization code and store the resulting credential.

        Raises:
            TokenExchangeFailed: The platform rejected the code.
            PersistenceError: The credential row could not be written.
        """
        tokens = self.client.exchange_code(code, redirect_uri)
        self.store_new_credential(user_id, tokens)
        return tokens

    def authorization_url(self, state: str) -> str:
        return self.client.authorization_url(state)

    def credential_state(self, user_id: int) -> CredentialStatus:
        """Lifecycle state of the stored credential, judged by wall clock."""
        row = self._load(user_id)
        if row is None:
            state = CredentialState.absent
        elif self.clock() <= row.expires_at:
            state = CredentialState.active
        elif row.refresh_token_enc:
            state = CredentialState.expired
        else:
            state = CredentialState.expired_terminal
        return CredentialStatus(platform=self.platform, state=state)

    # -------------------------
    # internal helpers
    # -------------------------
    def _label(self, user_id: int) -> str:
        return f"{self.platform}:user:{user_id}"

    def _expires_at(self, tokens: TokenSet) -> datetime:
        return self.clock() + timedelta(seconds=tokens.expires_in)

    def _decrypt(self, ciphertext: str, user_id: int, context: str) -> str:
        try:
            return self.cipher.decrypt(ciphertext, context=context)
        except ValueError as e:
            logger.error("[CREDENTIALS] Stored token for %s cannot be decrypted: %s", context, e)
            raise NotAuthenticated(
                f"{self.platform} credential for user {user_id} is unreadable",
                self.platform,
            ) from e

    def _load(self, user_id: int) -> Optional[PlatformCredential]:
        try:
            with self.session_factory() as db:
                return (
                    db.query(PlatformCredential)
                    .filter(
                        PlatformCredential.user_id == user_id,
                        PlatformCredential.platform == PlatformEnum(self.platform),
                    )
                    .first()
                )
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Credential lookup failed for {self._label(user_id)}: {e}",
                table=CREDENTIALS_TABLE,
                platform=self.platform,
            ) from e

    def _refresh(self, user_id: int, refresh_token: str, scope: Optional[str]) -> tuple:
        label = self._label(user_id)
        logger.info("[CREDENTIALS] Refreshing expired credential for %s", label)
        try:
            tokens = self.client.refresh(refresh_token)
        except RemoteFetchFailed as e:
            logger.error("[CREDENTIALS] Refresh rejected for %s: %s", label, e.message)
            raise RefreshFailed(f"Refresh failed for {label}: {e.message}", self.platform) from e

        # Platforms usually omit the refresh token on refresh; keep the stored one
        new_refresh = tokens.refresh_token or refresh_token
        expires_at = self._expires_at(tokens)
        try:
            self._persist(user_id, tokens.access_token, new_refresh, expires_at, tokens.scope or scope)
        except PersistenceError as e:
            # The refreshed token is still served; the next cold read refreshes again
            logger.warning("[CREDENTIALS] Refreshed token for %s could not be persisted: %s", label, e.message)
        else:
            logger.info("[CREDENTIALS] Refreshed %s (expires_at=%s)", label, expires_at)
        return tokens.access_token, expires_at

    def _persist(
        self,
        user_id: int,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: datetime,
        scope: Optional[str],
    ) -> int:
        label = self._label(user_id)
        values = {
            "user_id": user_id,
            "platform": self.platform,
            "access_token_enc": self.cipher.encrypt(access_token, context=f"{label}:access"),
            "refresh_token_enc": (
                self.cipher.encrypt(refresh_token, context=f"{label}:refresh") if refresh_token else None
            ),
            "expires_at": expires_at,
            "scope": scope,
        }
        return self.upserter.upsert(CREDENTIALS_TABLE, ["user_id", "platform"], values)
