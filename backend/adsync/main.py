"""FastAPI application entrypoint.

Configures CORS, error tracking, the mapping from sync failures to HTTP
status codes, includes routers, and exposes a healthcheck endpoint.

Failure mapping:
    NotAuthenticated, TokenExpiredNoRefresh            → 401 (user must (re)connect)
    RefreshFailed, TokenExchangeFailed, RemoteFetchFailed → 502 (platform failed)
    PersistenceError                                   → 500
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .deps import get_settings
from .errors import (
    NotAuthenticated,
    PersistenceError,
    RefreshFailed,
    RemoteFetchFailed,
    SyncError,
    TokenExchangeFailed,
    TokenExpiredNoRefresh,
)
from .routers import google_analytics as google_analytics_router
from .routers import meta as meta_router
from .telemetry import capture_exception, init_sentry

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

STATUS_BY_ERROR = (
    (NotAuthenticated, 401),
    (TokenExpiredNoRefresh, 401),
    (RefreshFailed, 502),
    (TokenExchangeFailed, 502),
    (RemoteFetchFailed, 502),
    (PersistenceError, 500),
)


def status_for(exc: SyncError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


def create_app() -> FastAPI:
    settings = get_settings()
    init_sentry(settings.SENTRY_DSN, environment=settings.ENVIRONMENT)

    app = FastAPI(
        title="adsync API",
        description="""
        Credential lifecycle and cache-aside sync for Meta Ads and Google Analytics.

        ## Features

        - **OAuth**: Connect Meta Ads and Google Analytics accounts
        - **Meta Ads**: Ad accounts, campaigns, ad sets, ads and daily insights
        - **Google Analytics**: Accounts, GA4 properties and daily reports
        """,
        version="1.0.0",
    )

    logger.info("[CORS] Allowed origins: %s", settings.cors_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(SyncError)
    async def sync_error_handler(request: Request, exc: SyncError):
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error("[API] %s %s failed: %s", request.method, request.url.path, exc.message)
            capture_exception(exc, extra={"path": request.url.path, "platform": exc.platform})
        else:
            logger.info("[API] %s %s rejected: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.to_user_message(), "platform": exc.platform},
        )

    app.include_router(meta_router.oauth_router)
    app.include_router(meta_router.router)
    app.include_router(google_analytics_router.oauth_router)
    app.include_router(google_analytics_router.router)

    @app.get("/health", tags=["Health"], summary="Health check")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
