"""SQLAlchemy ORM models and enums.

This module defines the current durable schema. Rows for remote entities are
written through `services/schema_upsert.py`, which reflects the live tables
instead of relying on these classes, so older databases that still carry
legacy column names (`campaigns.account_id`, `campaign_insights.date`) keep
working. Each table's natural key is declared as a named unique constraint;
upserts resolve conflicts against it.
"""

import enum

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import declarative_base


# Single Base used by the entire application
Base = declarative_base()


# Enums ---------------------------------------------------------

class PlatformEnum(str, enum.Enum):
    meta = "meta"
    google_analytics = "google_analytics"


# Credentials ---------------------------------------------------

class PlatformCredential(Base):
    """Encrypted OAuth credential for one user on one platform.

    WHAT:
        System of record for access/refresh tokens. The cache only holds a
        short-lived copy of the access token.
    WHY:
        One row per (user, platform); refreshes overwrite in place.
    """
    __tablename__ = "platform_credentials"
    __table_args__ = (
        UniqueConstraint("user_id", "platform", name="uq_platform_credentials_user_platform"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    platform = Column(Enum(PlatformEnum, values_callable=lambda obj: [e.value for e in obj]), nullable=False)
    access_token_enc = Column(Text, nullable=False)
    refresh_token_enc = Column(Text, nullable=True)
    expires_at = Column(DateTime, nullable=False)  # naive UTC
    scope = Column(String, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())

    def __str__(self):
        return f"{self.platform.value} credential for user {self.user_id} (expires: {self.expires_at:%Y-%m-%d %H:%M})"


# Meta Ads ------------------------------------------------------

class AdAccount(Base):
    __tablename__ = "ad_accounts"
    __table_args__ = (UniqueConstraint("user_id", "account_id", name="uq_ad_accounts_user_account"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    account_id = Column(String, nullable=False)  # "act_123"
    name = Column(String, nullable=False, server_default="")
    status = Column(Integer, nullable=True)  # Meta account_status code
    currency = Column(String, nullable=True)
    amount_spent = Column(Numeric(18, 4), nullable=True)
    business_name = Column(String, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())


class Campaign(Base):
    """Meta campaign scoped by its ad account.

    Older databases name the scope column `account_id`; see
    services/schema_upsert.py::ColumnAlias.
    """
    __tablename__ = "campaigns"
    __table_args__ = (UniqueConstraint("ad_account_id", "campaign_id", name="uq_campaigns_account_campaign"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    ad_account_id = Column(String, nullable=False, index=True)
    campaign_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False, server_default="")
    objective = Column(String, nullable=False, server_default="")
    status = Column(String, nullable=False, server_default="")
    daily_budget = Column(Numeric(18, 4), nullable=True)
    lifetime_budget = Column(Numeric(18, 4), nullable=True)
    start_time = Column(String, nullable=True)
    stop_time = Column(String, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())


class AdSet(Base):
    __tablename__ = "ad_sets"
    __table_args__ = (UniqueConstraint("campaign_id", "ad_set_id", name="uq_ad_sets_campaign_adset"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    campaign_id = Column(String, nullable=False, index=True)
    ad_set_id = Column(String, nullable=False)
    name = Column(String, nullable=False, server_default="")
    status = Column(String, nullable=False, server_default="")
    bid_strategy = Column(String, nullable=True)
    daily_budget = Column(Numeric(18, 4), nullable=True)
    lifetime_budget = Column(Numeric(18, 4), nullable=True)
    start_time = Column(String, nullable=True)
    end_time = Column(String, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())


class Ad(Base):
    __tablename__ = "ads"
    __table_args__ = (UniqueConstraint("ad_set_id", "ad_id", name="uq_ads_adset_ad"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    ad_set_id = Column(String, nullable=False, index=True)
    ad_id = Column(String, nullable=False)
    name = Column(String, nullable=False, server_default="")
    status = Column(String, nullable=False, server_default="")
    created_time = Column(String, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())


class CampaignInsight(Base):
    """Daily campaign metrics.

    Older databases name the day column `date`; the upsert helper resolves it.
    Metrics default to 0 when Meta omits them.
    """
    __tablename__ = "campaign_insights"
    __table_args__ = (UniqueConstraint("campaign_id", "date_start", name="uq_campaign_insights_campaign_day"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    campaign_db_id = Column(Integer, ForeignKey("campaigns.id"), nullable=False)
    campaign_id = Column(String, nullable=False, index=True)
    date_start = Column(Date, nullable=False)
    impressions = Column(Integer, nullable=False, server_default="0")
    clicks = Column(Integer, nullable=False, server_default="0")
    ctr = Column(Numeric(18, 6), nullable=False, server_default="0")
    cpc = Column(Numeric(18, 6), nullable=False, server_default="0")
    spend = Column(Numeric(18, 4), nullable=False, server_default="0")
    reach = Column(Integer, nullable=False, server_default="0")
    frequency = Column(Numeric(18, 6), nullable=False, server_default="0")
    unique_clicks = Column(Integer, nullable=False, server_default="0")
    cost_per_unique_click = Column(Numeric(18, 6), nullable=False, server_default="0")
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())


# Google Analytics ----------------------------------------------

class GoogleAccount(Base):
    __tablename__ = "google_accounts"
    __table_args__ = (UniqueConstraint("user_id", "account_id", name="uq_google_accounts_user_account"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    account_id = Column(String, nullable=False)  # "accounts/123"
    display_name = Column(String, nullable=False, server_default="")
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())


class GoogleProperty(Base):
    __tablename__ = "google_properties"
    __table_args__ = (UniqueConstraint("user_id", "property_id", name="uq_google_properties_user_property"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    account_id = Column(String, nullable=False)
    property_id = Column(String, nullable=False)  # "properties/456"
    display_name = Column(String, nullable=False, server_default="")
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())


class GoogleAnalyticsData(Base):
    __tablename__ = "google_analytics_data"
    __table_args__ = (
        UniqueConstraint("user_id", "property_id", "date", name="uq_google_analytics_data_user_property_day"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    property_id = Column(String, nullable=False)
    date = Column(String, nullable=False)  # GA4 "YYYYMMDD"
    sessions = Column(Integer, nullable=False, server_default="0")
    active_users = Column(Integer, nullable=False, server_default="0")
    new_users = Column(Integer, nullable=False, server_default="0")
    engagement_rate = Column(Numeric(18, 6), nullable=False, server_default="0")
    conversions = Column(Integer, nullable=False, server_default="0")
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())
