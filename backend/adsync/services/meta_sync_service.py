"""Meta Ads sync-on-read service.

WHAT:
    Read operations for ad accounts, campaigns, ad sets, ads and daily campaign
    insights. Each read is served from cache when possible, otherwise fetched
    from the Graph API, cached, and upserted into the durable store.

WHY:
    Dashboards ask for the same hierarchy over and over; Graph API calls are
    rate limited per ad account. Persisted rows let other components query
    history without calling Meta.

HIERARCHY (scope → entity):
    user → ad account → campaign → ad set → ad
    campaign → insight row (one per day)

REFERENCES:
    - adsync/services/sync_on_read.py (shared read path)
    - adsync/services/meta_ads_client.py (field lists)
    - adsync/services/cache_keys.py (keys, TTLs)
"""

from __future__ import annotations

import json
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from adsync.errors import PersistenceError
from adsync.schemas import CampaignInsightRow, MetaAd, MetaAdAccount, MetaAdSet, MetaCampaign
from adsync.services import cache_keys
from adsync.services.meta_ads_client import (
    AD_ACCOUNT_FIELDS,
    AD_FIELDS,
    ADSET_FIELDS,
    CAMPAIGN_FIELDS,
    INSIGHT_FIELDS,
    MetaAdsClient,
)
from adsync.services.schema_upsert import CAMPAIGN_ACCOUNT_COLUMN, INSIGHT_DATE_COLUMN
from adsync.services.sync_on_read import PersistReport, SyncOnReadService, as_float, as_int, as_str

logger = logging.getLogger(__name__)


class MetaSyncService(SyncOnReadService):
    """Sync-on-read operations for the Meta Ads hierarchy.

    Usage:
        ```python
        service = MetaSyncService(credentials, client, cache, upserter)
        campaigns = service.get_campaigns(user_id=42, account_id="act_123")
        ```
    """

    tag = "META_SYNC"
    client: MetaAdsClient

    # ------------------------------------------------------------------
    # Ad accounts
    # ------------------------------------------------------------------
    def get_ad_accounts(self, user_id: int) -> List[MetaAdAccount]:
        def fetch(token: str) -> List[MetaAdAccount]:
            raw = self.client.list_entities(token, "me/adaccounts", AD_ACCOUNT_FIELDS)
            return [
                MetaAdAccount(
                    id=as_str(item.get("id")),
                    name=as_str(item.get("name")),
                    account_status=as_int(item.get("account_status")),
                    amount_spent=as_float(item.get("amount_spent")),
                    currency=as_str(item.get("currency")),
                    business_name=as_str(item.get("business_name")),
                )
                for item in raw
            ]

        def persist(accounts: List[MetaAdAccount]) -> PersistReport:
            return self.persist_each(
                "ad_accounts",
                accounts,
                lambda a: self.upserter.upsert(
                    "ad_accounts",
                    ["user_id", "account_id"],
                    {
                        "user_id": user_id,
                        "account_id": a.id,
                        "name": a.name,
                        "status": a.account_status,
                        "currency": a.currency,
                        "amount_spent": a.amount_spent,
                        "business_name": a.business_name,
                    },
                ),
            )

        return self.read_through(
            user_id,
            cache_keys.meta_ad_accounts_key(user_id),
            cache_keys.META_AD_ACCOUNTS_TTL,
            MetaAdAccount,
            fetch,
            persist,
        )

    # ------------------------------------------------------------------
    # Campaigns
    # ------------------------------------------------------------------
    def get_campaigns(self, user_id: int, account_id: str) -> List[MetaCampaign]:
        def fetch(token: str) -> List[MetaCampaign]:
            raw = self.client.list_entities(token, f"{account_id}/campaigns", CAMPAIGN_FIELDS)
            return [
                MetaCampaign(
                    id=as_str(item.get("id")),
                    account_id=account_id,
                    name=as_str(item.get("name")),
                    objective=as_str(item.get("objective")),
                    status=as_str(item.get("status")),
                    daily_budget=as_float(item.get("daily_budget")),
                    lifetime_budget=as_float(item.get("lifetime_budget")),
                    created_time=as_str(item.get("created_time")),
                    start_time=as_str(item.get("start_time")),
                    stop_time=as_str(item.get("stop_time")),
                )
                for item in raw
            ]

        def persist(campaigns: List[MetaCampaign]) -> PersistReport:
            return self.persist_each(
                "campaigns",
                campaigns,
                lambda c: self.upserter.upsert(
                    "campaigns",
                    [CAMPAIGN_ACCOUNT_COLUMN, "campaign_id"],
                    {
                        CAMPAIGN_ACCOUNT_COLUMN: account_id,
                        "campaign_id": c.id,
                        "name": c.name,
                        "objective": c.objective,
                        "status": c.status,
                        "daily_budget": c.daily_budget,
                        "lifetime_budget": c.lifetime_budget,
                        "start_time": c.start_time,
                        "stop_time": c.stop_time,
                    },
                ),
            )

        return self.read_through(
            user_id,
            cache_keys.meta_campaigns_key(account_id),
            cache_keys.META_CAMPAIGNS_TTL,
            MetaCampaign,
            fetch,
            persist,
        )

    # ------------------------------------------------------------------
    # Ad sets
    # ------------------------------------------------------------------
    def get_ad_sets(self, user_id: int, campaign_id: str) -> List[MetaAdSet]:
        def fetch(token: str) -> List[MetaAdSet]:
            raw = self.client.list_entities(token, f"{campaign_id}/adsets", ADSET_FIELDS)
            return [
                MetaAdSet(
                    id=as_str(item.get("id")),
                    campaign_id=campaign_id,
                    name=as_str(item.get("name")),
                    status=as_str(item.get("status")),
                    bid_strategy=as_str(item.get("bid_strategy")),
                    daily_budget=as_float(item.get("daily_budget")),
                    lifetime_budget=as_float(item.get("lifetime_budget")),
                    start_time=as_str(item.get("start_time")),
                    end_time=as_str(item.get("end_time")),
                )
                for item in raw
            ]

        def persist(ad_sets: List[MetaAdSet]) -> PersistReport:
            return self.persist_each(
                "ad_sets",
                ad_sets,
                lambda s: self.upserter.upsert(
                    "ad_sets",
                    ["campaign_id", "ad_set_id"],
                    {
                        "campaign_id": campaign_id,
                        "ad_set_id": s.id,
                        "name": s.name,
                        "status": s.status,
                        "bid_strategy": s.bid_strategy,
                        "daily_budget": s.daily_budget,
                        "lifetime_budget": s.lifetime_budget,
                        "start_time": s.start_time,
                        "end_time": s.end_time,
                    },
                ),
            )

        return self.read_through(
            user_id,
            cache_keys.meta_adsets_key(campaign_id),
            cache_keys.META_ADSETS_TTL,
            MetaAdSet,
            fetch,
            persist,
        )

    # ------------------------------------------------------------------
    # Ads
    # ------------------------------------------------------------------
    def get_ads(self, user_id: int, adset_id: str) -> List[MetaAd]:
        def fetch(token: str) -> List[MetaAd]:
            raw = self.client.list_entities(token, f"{adset_id}/ads", AD_FIELDS)
            return [
                MetaAd(
                    id=as_str(item.get("id")),
                    ad_set_id=adset_id,
                    name=as_str(item.get("name")),
                    status=as_str(item.get("status")),
                    created_time=as_str(item.get("created_time")),
                )
                for item in raw
            ]

        def persist(ads: List[MetaAd]) -> PersistReport:
            return self.persist_each(
                "ads",
                ads,
                lambda a: self.upserter.upsert(
                    "ads",
                    ["ad_set_id", "ad_id"],
                    {
                        "ad_set_id": adset_id,
                        "ad_id": a.id,
                        "name": a.name,
                        "status": a.status,
                        "created_time": a.created_time,
                    },
                ),
            )

        return self.read_through(
            user_id,
            cache_keys.meta_ads_key(adset_id),
            cache_keys.META_ADS_TTL,
            MetaAd,
            fetch,
            persist,
        )

    # ------------------------------------------------------------------
    # Campaign insights
    # ------------------------------------------------------------------
    def get_campaign_insights(self, user_id: int, campaign_id: str, start: date, end: date) -> List[CampaignInsightRow]:
        """Daily insight rows for a campaign over [start, end].

        Insight rows reference the campaign's durable row. When the campaign has
        not been synced yet (or the lookup fails) the result is empty, Meta is
        not called, and nothing is cached.
        """
        token = self.credentials.get_access_token(user_id)
        key = cache_keys.meta_insights_key(campaign_id, start, end)
        cached = self._load_cached(key, CampaignInsightRow)
        if cached is not None:
            logger.info("[META_SYNC] Cache hit %s (%d rows)", key, len(cached))
            return cached

        try:
            campaign_db_id = self.upserter.find_id("campaigns", {"campaign_id": campaign_id})
        except PersistenceError as e:
            logger.error("[META_SYNC] Campaign lookup failed for %s: %s", campaign_id, e.message)
            return []
        if campaign_db_id is None:
            logger.info("[META_SYNC] Campaign %s not synced yet, returning no insights", campaign_id)
            return []

        def fetch(token: str) -> List[CampaignInsightRow]:
            raw = self.client.list_entities(
                token,
                f"{campaign_id}/insights",
                INSIGHT_FIELDS,
                params={
                    "time_range": json.dumps({"since": start.isoformat(), "until": end.isoformat()}),
                    "time_increment": 1,
                },
            )
            return self._parse_insights(campaign_id, raw)

        def persist(rows: List[CampaignInsightRow]) -> PersistReport:
            return self.persist_each(
                "campaign_insights",
                rows,
                lambda r: self.upserter.upsert(
                    "campaign_insights",
                    ["campaign_id", INSIGHT_DATE_COLUMN],
                    {
                        "campaign_db_id": campaign_db_id,
                        "campaign_id": campaign_id,
                        INSIGHT_DATE_COLUMN: r.date_start,
                        "impressions": r.impressions,
                        "clicks": r.clicks,
                        "ctr": r.ctr,
                        "cpc": r.cpc,
                        "spend": r.spend,
                        "reach": r.reach,
                        "frequency": r.frequency,
                        "unique_clicks": r.unique_clicks,
                        "cost_per_unique_click": r.cost_per_unique_click,
                    },
                ),
            )

        return self.fetch_and_store(token, key, cache_keys.META_INSIGHTS_TTL, fetch, persist)

    @staticmethod
    def _parse_insights(campaign_id: str, raw: List[Dict[str, Any]]) -> List[CampaignInsightRow]:
        rows = []
        for item in raw:
            day = _parse_day(item.get("date_start"))
            if day is None:
                logger.warning("[META_SYNC] Dropping insight row without date_start for %s", campaign_id)
                continue
            rows.append(
                CampaignInsightRow(
                    campaign_id=campaign_id,
                    date_start=day,
                    date_stop=_parse_day(item.get("date_stop")),
                    impressions=as_int(item.get("impressions")),
                    clicks=as_int(item.get("clicks")),
                    ctr=as_float(item.get("ctr")),
                    cpc=as_float(item.get("cpc")),
                    spend=as_float(item.get("spend")),
                    reach=as_int(item.get("reach")),
                    frequency=as_float(item.get("frequency")),
                    unique_clicks=as_int(item.get("unique_clicks")),
                    cost_per_unique_click=as_float(item.get("cost_per_unique_click")),
                )
            )
        return rows


def _parse_day(value: Any) -> Optional[date]:
    """Graph "YYYY-MM-DD" day, or None when absent or malformed."""
    if not value:
        return None
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        return None
