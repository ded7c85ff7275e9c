"""Meta Ads endpoints: OAuth connection and sync-on-read reads.

WHAT:
    Thin HTTP wrappers over the Meta credential manager and sync service.

WHY:
    - Routers handle identity + request parsing only.
    - Typed sync failures propagate to the handlers in adsync/main.py, which
      map them to status codes.

REFERENCES:
    - adsync/services/credential_manager.py
    - adsync/services/meta_sync_service.py
"""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError

from adsync.deps import get_current_user_id, get_meta_credentials, get_meta_sync_service
from adsync.schemas import (
    AuthorizationUrl,
    CampaignInsightRow,
    CredentialStatus,
    DateRange,
    MetaAd,
    MetaAdAccount,
    MetaAdSet,
    MetaCampaign,
    OAuthCompleted,
)
from adsync.services.credential_manager import CredentialManager
from adsync.services.meta_sync_service import MetaSyncService

logger = logging.getLogger(__name__)

oauth_router = APIRouter(prefix="/auth/meta", tags=["Meta OAuth"])
router = APIRouter(prefix="/meta", tags=["Meta Ads"])


def parse_date_range(start: date, end: date) -> DateRange:
    """Validate an inclusive range from query parameters (422 when start > end)."""
    try:
        return DateRange(start=start, end=end)
    except ValidationError:
        raise HTTPException(
            status_code=422,
            detail="start must be on or before end",
        )


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------

@oauth_router.get("/authorize", response_model=AuthorizationUrl)
def meta_authorize(
    user_id: int = Depends(get_current_user_id),
    credentials: CredentialManager = Depends(get_meta_credentials),
) -> AuthorizationUrl:
    """Consent URL for connecting a Meta ad account. `state` carries the user id."""
    return AuthorizationUrl(url=credentials.authorization_url(state=str(user_id)))


@oauth_router.get("/callback", response_model=OAuthCompleted)
def meta_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    user_id: int = Depends(get_current_user_id),
    credentials: CredentialManager = Depends(get_meta_credentials),
) -> OAuthCompleted:
    """Exchange the authorization code and store the (long-lived) token."""
    if error:
        logger.error("[META_OAUTH] OAuth error for user %s: %s", user_id, error)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Meta OAuth error: {error}")
    if not code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing authorization code")
    if state != str(user_id):
        logger.error("[META_OAUTH] State mismatch for user %s", user_id)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid OAuth state")

    tokens = credentials.complete_oauth(user_id, code)
    logger.info("[META_OAUTH] Connected Meta for user %s", user_id)
    return OAuthCompleted(
        platform=credentials.platform,
        expires_in=tokens.expires_in,
        has_refresh_token=bool(tokens.refresh_token),
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@router.get("/status", response_model=CredentialStatus)
def meta_status(
    user_id: int = Depends(get_current_user_id),
    credentials: CredentialManager = Depends(get_meta_credentials),
) -> CredentialStatus:
    return credentials.credential_state(user_id)


@router.get("/ad-accounts", response_model=List[MetaAdAccount])
def list_ad_accounts(
    user_id: int = Depends(get_current_user_id),
    service: MetaSyncService = Depends(get_meta_sync_service),
) -> List[MetaAdAccount]:
    return service.get_ad_accounts(user_id)


@router.get("/ad-accounts/{account_id}/campaigns", response_model=List[MetaCampaign])
def list_campaigns(
    account_id: str,
    user_id: int = Depends(get_current_user_id),
    service: MetaSyncService = Depends(get_meta_sync_service),
) -> List[MetaCampaign]:
    return service.get_campaigns(user_id, account_id)


@router.get("/campaigns/{campaign_id}/adsets", response_model=List[MetaAdSet])
def list_ad_sets(
    campaign_id: str,
    user_id: int = Depends(get_current_user_id),
    service: MetaSyncService = Depends(get_meta_sync_service),
) -> List[MetaAdSet]:
    return service.get_ad_sets(user_id, campaign_id)


@router.get("/adsets/{adset_id}/ads", response_model=List[MetaAd])
def list_ads(
    adset_id: str,
    user_id: int = Depends(get_current_user_id),
    service: MetaSyncService = Depends(get_meta_sync_service),
) -> List[MetaAd]:
    return service.get_ads(user_id, adset_id)


@router.get("/campaigns/{campaign_id}/insights", response_model=List[CampaignInsightRow])
def campaign_insights(
    campaign_id: str,
    start: date = Query(..., description="First day, YYYY-MM-DD"),
    end: date = Query(..., description="Last day (inclusive), YYYY-MM-DD"),
    user_id: int = Depends(get_current_user_id),
    service: MetaSyncService = Depends(get_meta_sync_service),
) -> List[CampaignInsightRow]:
    window = parse_date_range(start, end)
    return service.get_campaign_insights(user_id, campaign_id, window.start, window.end)
