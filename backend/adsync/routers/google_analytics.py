"""Google Analytics endpoints: OAuth connection and sync-on-read reads.

WHAT:
    Thin HTTP wrappers over the Google credential manager and the analytics
    sync service.

REFERENCES:
    - adsync/routers/meta.py (same pattern)
    - adsync/services/analytics_sync_service.py
"""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from adsync.deps import get_analytics_sync_service, get_current_user_id, get_google_credentials
from adsync.routers.meta import parse_date_range
from adsync.schemas import (
    AnalyticsAccount,
    AnalyticsProperty,
    AnalyticsReportRow,
    AuthorizationUrl,
    CredentialStatus,
    OAuthCompleted,
)
from adsync.services.analytics_sync_service import AnalyticsSyncService
from adsync.services.credential_manager import CredentialManager

logger = logging.getLogger(__name__)

oauth_router = APIRouter(prefix="/auth/google", tags=["Google OAuth"])
router = APIRouter(prefix="/google-analytics", tags=["Google Analytics"])


@oauth_router.get("/authorize", response_model=AuthorizationUrl)
def google_authorize(
    user_id: int = Depends(get_current_user_id),
    credentials: CredentialManager = Depends(get_google_credentials),
) -> AuthorizationUrl:
    return AuthorizationUrl(url=credentials.authorization_url(state=str(user_id)))


@oauth_router.get("/callback", response_model=OAuthCompleted)
def google_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    user_id: int = Depends(get_current_user_id),
    credentials: CredentialManager = Depends(get_google_credentials),
) -> OAuthCompleted:
    """Exchange the authorization code for access + refresh tokens and store them."""
    if error:
        logger.error("[GOOGLE_OAUTH] OAuth error for user %s: %s", user_id, error)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Google OAuth error: {error}")
    if not code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing authorization code")
    if state != str(user_id):
        logger.error("[GOOGLE_OAUTH] State mismatch for user %s", user_id)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid OAuth state")

    tokens = credentials.complete_oauth(user_id, code)
    logger.info("[GOOGLE_OAUTH] Connected Google Analytics for user %s", user_id)
    return OAuthCompleted(
        platform=credentials.platform,
        expires_in=tokens.expires_in,
        has_refresh_token=bool(tokens.refresh_token),
    )


@router.get("/status", response_model=CredentialStatus)
def google_status(
    user_id: int = Depends(get_current_user_id),
    credentials: CredentialManager = Depends(get_google_credentials),
) -> CredentialStatus:
    return credentials.credential_state(user_id)


@router.get("/accounts", response_model=List[AnalyticsAccount])
def list_accounts(
    user_id: int = Depends(get_current_user_id),
    service: AnalyticsSyncService = Depends(get_analytics_sync_service),
) -> List[AnalyticsAccount]:
    return service.get_accounts(user_id)


@router.get("/accounts/{account_id:path}/properties", response_model=List[AnalyticsProperty])
def list_properties(
    account_id: str,
    user_id: int = Depends(get_current_user_id),
    service: AnalyticsSyncService = Depends(get_analytics_sync_service),
) -> List[AnalyticsProperty]:
    """`account_id` is the resource name, e.g. accounts/123 (a bare id is prefixed)."""
    if not account_id.startswith("accounts/"):
        account_id = f"accounts/{account_id}"
    return service.get_properties(user_id, account_id)


@router.get("/properties/{property_id:path}/report", response_model=List[AnalyticsReportRow])
def property_report(
    property_id: str,
    start: date = Query(..., description="First day, YYYY-MM-DD"),
    end: date = Query(..., description="Last day (inclusive), YYYY-MM-DD"),
    user_id: int = Depends(get_current_user_id),
    service: AnalyticsSyncService = Depends(get_analytics_sync_service),
) -> List[AnalyticsReportRow]:
    if not property_id.startswith("properties/"):
        property_id = f"properties/{property_id}"
    window = parse_date_range(start, end)
    return service.get_report(user_id, property_id, window.start, window.end)
