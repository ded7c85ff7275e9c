"""Dependency providers and settings management.

Every collaborator (engine, Redis client, platform clients, upsert helper,
credential managers, sync services) is built here once per process and handed
to the services through their constructors. Routes receive them through
FastAPI `Depends`, so tests swap any of them with `app.dependency_overrides`.
"""

import logging
from functools import lru_cache
from typing import Optional

from fastapi import Cookie, Depends, Header, HTTPException, status
from jose import JWTError
from pydantic_settings import BaseSettings, SettingsConfigDict
from redis import Redis

from .database import get_engine, get_session_factory
from .security import TokenCipher, decode_token
from .services.analytics_sync_service import AnalyticsSyncService
from .services.cache_keys import TOKEN_CACHE_CAP_SECONDS
from .services.cache_store import CacheStore, RedisCacheStore
from .services.credential_manager import CredentialManager
from .services.google_analytics_client import GoogleAnalyticsClient
from .services.meta_ads_client import MetaAdsClient
from .services.meta_sync_service import MetaSyncService
from .services.schema_upsert import SchemaAdaptiveUpserter
from .telemetry import set_user_context
from .utils.env import require_setting

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment or .env."""

    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"
    ENVIRONMENT: str = "development"
    SENTRY_DSN: Optional[str] = None

    # Stores
    REDIS_URL: str = "redis://localhost:6379/0"
    TOKEN_ENCRYPTION_KEY: Optional[str] = None
    JWT_SECRET: Optional[str] = None

    # Meta Ads
    META_APP_ID: Optional[str] = None
    META_APP_SECRET: Optional[str] = None
    META_GRAPH_VERSION: str = "v22.0"
    META_OAUTH_REDIRECT_URI: Optional[str] = None

    # Google Analytics
    GOOGLE_CLIENT_ID: Optional[str] = None
    GOOGLE_CLIENT_SECRET: Optional[str] = None
    GOOGLE_OAUTH_REDIRECT_URI: Optional[str] = None

    # Sync behaviour
    TOKEN_CACHE_CAP_SECONDS: int = TOKEN_CACHE_CAP_SECONDS
    REMOTE_TIMEOUT_SECONDS: float = 30.0
    REMOTE_MAX_RETRIES: int = 3

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def cors_origins(self) -> list:
        # BACKEND_CORS_ORIGINS is a comma-separated list
        return [origin.strip() for origin in self.BACKEND_CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()  # type: ignore[call-arg]


# =============================================================================
# STORES
# =============================================================================

@lru_cache()
def get_redis_client() -> Redis:
    settings = get_settings()
    logger.info("[DEPS] Connecting Redis client")
    return Redis.from_url(settings.REDIS_URL, socket_timeout=5, socket_connect_timeout=5)


def get_cache_store() -> CacheStore:
    return RedisCacheStore(get_redis_client())


@lru_cache()
def get_upserter() -> SchemaAdaptiveUpserter:
    return SchemaAdaptiveUpserter(get_engine())


@lru_cache()
def get_cipher() -> TokenCipher:
    settings = get_settings()
    return TokenCipher(require_setting("TOKEN_ENCRYPTION_KEY", settings.TOKEN_ENCRYPTION_KEY))


# =============================================================================
# PLATFORM CLIENTS
# =============================================================================

@lru_cache()
def get_meta_client() -> MetaAdsClient:
    settings = get_settings()
    return MetaAdsClient(
        app_id=require_setting("META_APP_ID", settings.META_APP_ID),
        app_secret=require_setting("META_APP_SECRET", settings.META_APP_SECRET),
        redirect_uri=require_setting("META_OAUTH_REDIRECT_URI", settings.META_OAUTH_REDIRECT_URI),
        graph_version=settings.META_GRAPH_VERSION,
        timeout=settings.REMOTE_TIMEOUT_SECONDS,
        max_retries=settings.REMOTE_MAX_RETRIES,
    )


@lru_cache()
def get_google_client() -> GoogleAnalyticsClient:
    settings = get_settings()
    return GoogleAnalyticsClient(
        client_id=require_setting("GOOGLE_CLIENT_ID", settings.GOOGLE_CLIENT_ID),
        client_secret=require_setting("GOOGLE_CLIENT_SECRET", settings.GOOGLE_CLIENT_SECRET),
        redirect_uri=require_setting("GOOGLE_OAUTH_REDIRECT_URI", settings.GOOGLE_OAUTH_REDIRECT_URI),
        timeout=settings.REMOTE_TIMEOUT_SECONDS,
        max_retries=settings.REMOTE_MAX_RETRIES,
    )


# =============================================================================
# CREDENTIALS AND SYNC SERVICES
# =============================================================================

@lru_cache()
def get_meta_credentials() -> CredentialManager:
    return CredentialManager(
        client=get_meta_client(),
        cache=get_cache_store(),
        session_factory=get_session_factory(),
        upserter=get_upserter(),
        cipher=get_cipher(),
        cache_cap=get_settings().TOKEN_CACHE_CAP_SECONDS,
    )


@lru_cache()
def get_google_credentials() -> CredentialManager:
    return CredentialManager(
        client=get_google_client(),
        cache=get_cache_store(),
        session_factory=get_session_factory(),
        upserter=get_upserter(),
        cipher=get_cipher(),
        cache_cap=get_settings().TOKEN_CACHE_CAP_SECONDS,
    )


@lru_cache()
def get_meta_sync_service() -> MetaSyncService:
    return MetaSyncService(get_meta_credentials(), get_meta_client(), get_cache_store(), get_upserter())


@lru_cache()
def get_analytics_sync_service() -> AnalyticsSyncService:
    return AnalyticsSyncService(get_google_credentials(), get_google_client(), get_cache_store(), get_upserter())


# =============================================================================
# REQUEST IDENTITY
# =============================================================================

def get_current_user_id(
    access_token: Optional[str] = Cookie(default=None, alias="access_token"),
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> int:
    """Resolve the caller's user id from the `access_token` cookie or a Bearer header.

    The token is a JWT issued by the identity service; its `sub` claim is the
    integer user id. The cookie value may carry a "Bearer " prefix.
    """
    raw = access_token or authorization
    if not raw:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    # Remove optional "Bearer " prefix
    token = raw[len("Bearer "):] if raw.startswith("Bearer ") else raw

    secret = require_setting("JWT_SECRET", settings.JWT_SECRET)
    try:
        payload = decode_token(token, secret)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    subject = payload.get("sub")
    try:
        user_id = int(subject)
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")

    set_user_context(user_id)
    return user_id
