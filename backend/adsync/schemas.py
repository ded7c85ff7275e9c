"""Pydantic schemas for token sets, normalized remote entities and API payloads.

Remote payloads are normalized before they reach these models: missing
numeric metrics become 0 and missing strings become "". The same models are
what the sync services cache (as JSON) and return.
"""

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


# Tokens ---------------------------------------------------------

class TokenSet(BaseModel):
    """Token bundle returned by an OAuth code exchange or refresh."""

    access_token: str
    expires_in: int = Field(description="Lifetime of access_token in seconds")
    refresh_token: Optional[str] = None
    scope: Optional[str] = None


class CredentialState(str, Enum):
    """Credential lifecycle: absent → active → expired → active | expired_terminal."""

    absent = "absent"
    active = "active"
    expired = "expired"
    expired_terminal = "expired_terminal"


class CredentialStatus(BaseModel):
    platform: str
    state: CredentialState


class DateRange(BaseModel):
    """Inclusive date range for insights and reports."""

    start: date
    end: date

    @model_validator(mode="after")
    def _check_order(self):
        if self.start > self.end:
            raise ValueError("start must be on or before end")
        return self


# Meta Ads -------------------------------------------------------

class MetaAdAccount(BaseModel):
    id: str = Field(description="Meta ad account id", examples=["act_123456789"])
    name: str = ""
    account_status: int = 0
    amount_spent: float = 0
    currency: str = ""
    business_name: str = ""


class MetaCampaign(BaseModel):
    id: str
    account_id: str = Field(description="Parent ad account id")
    name: str = ""
    objective: str = ""
    status: str = ""
    daily_budget: float = 0
    lifetime_budget: float = 0
    created_time: str = ""
    start_time: str = ""
    stop_time: str = ""


class MetaAdSet(BaseModel):
    id: str
    campaign_id: str = Field(description="Parent campaign id")
    name: str = ""
    status: str = ""
    bid_strategy: str = ""
    daily_budget: float = 0
    lifetime_budget: float = 0
    start_time: str = ""
    end_time: str = ""


class MetaAd(BaseModel):
    id: str
    ad_set_id: str = Field(description="Parent ad set id")
    name: str = ""
    status: str = ""
    created_time: str = ""


class CampaignInsightRow(BaseModel):
    """One day of campaign metrics."""

    campaign_id: str
    date_start: date
    date_stop: Optional[date] = None
    impressions: int = 0
    clicks: int = 0
    ctr: float = 0
    cpc: float = 0
    spend: float = 0
    reach: int = 0
    frequency: float = 0
    unique_clicks: int = 0
    cost_per_unique_click: float = 0


# Google Analytics ----------------------------------------------

class AnalyticsAccount(BaseModel):
    id: str = Field(description="GA account resource name", examples=["accounts/123"])
    display_name: str = ""


class AnalyticsProperty(BaseModel):
    id: str = Field(description="GA property resource name", examples=["properties/456"])
    account_id: str = Field(description="Parent account resource name")
    display_name: str = ""


class AnalyticsReportRow(BaseModel):
    """One day of property metrics."""

    property_id: str
    date: str = Field(description="GA4 date dimension", examples=["20240131"])
    sessions: int = 0
    active_users: int = 0
    new_users: int = 0
    engagement_rate: float = 0
    conversions: int = 0


# API payloads ---------------------------------------------------

class AuthorizationUrl(BaseModel):
    url: str


class OAuthCompleted(BaseModel):
    platform: str
    expires_in: int
    has_refresh_token: bool
