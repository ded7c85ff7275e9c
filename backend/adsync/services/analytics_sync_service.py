"""Google Analytics sync-on-read service.

WHAT:
    Read operations for GA accounts, GA4 properties of an account, and daily
    property reports, served cache-aside and persisted best-effort.

WHY:
    Admin API listings change rarely and Data API reports are quota-bound per
    property. Keys carry the user id because listings depend on the caller's
    grants.

REFERENCES:
    - adsync/services/sync_on_read.py (shared read path)
    - adsync/services/google_analytics_client.py (REPORT_METRICS order)
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List

from adsync.schemas import AnalyticsAccount, AnalyticsProperty, AnalyticsReportRow
from adsync.services import cache_keys
from adsync.services.google_analytics_client import (
    ACCOUNT_FIELDS,
    PROPERTY_FIELDS,
    REPORT_METRICS,
    GoogleAnalyticsClient,
)
from adsync.services.sync_on_read import PersistReport, SyncOnReadService, as_float, as_int, as_str

logger = logging.getLogger(__name__)


class AnalyticsSyncService(SyncOnReadService):
    """Sync-on-read operations for Google Analytics."""

    tag = "GA_SYNC"
    client: GoogleAnalyticsClient

    def get_accounts(self, user_id: int) -> List[AnalyticsAccount]:
        def fetch(token: str) -> List[AnalyticsAccount]:
            raw = self.client.list_entities(token, "accounts", ACCOUNT_FIELDS)
            return [
                AnalyticsAccount(id=as_str(item.get("name")), display_name=as_str(item.get("displayName")))
                for item in raw
            ]

        def persist(accounts: List[AnalyticsAccount]) -> PersistReport:
            return self.persist_each(
                "google_accounts",
                accounts,
                lambda a: self.upserter.upsert(
                    "google_accounts",
                    ["user_id", "account_id"],
                    {"user_id": user_id, "account_id": a.id, "display_name": a.display_name},
                ),
            )

        return self.read_through(
            user_id,
            cache_keys.ga_accounts_key(user_id),
            cache_keys.GA_ACCOUNTS_TTL,
            AnalyticsAccount,
            fetch,
            persist,
        )

    def get_properties(self, user_id: int, account_id: str) -> List[AnalyticsProperty]:
        """GA4 properties whose parent is `account_id` ("accounts/123")."""

        def fetch(token: str) -> List[AnalyticsProperty]:
            raw = self.client.list_entities(
                token, "properties", PROPERTY_FIELDS, params={"filter": f"parent:{account_id}"}
            )
            return [
                AnalyticsProperty(
                    id=as_str(item.get("name")),
                    account_id=as_str(item.get("parent")) or account_id,
                    display_name=as_str(item.get("displayName")),
                )
                for item in raw
            ]

        def persist(properties: List[AnalyticsProperty]) -> PersistReport:
            return self.persist_each(
                "google_properties",
                properties,
                lambda p: self.upserter.upsert(
                    "google_properties",
                    ["user_id", "property_id"],
                    {
                        "user_id": user_id,
                        "account_id": p.account_id,
                        "property_id": p.id,
                        "display_name": p.display_name,
                    },
                ),
            )

        return self.read_through(
            user_id,
            cache_keys.ga_properties_key(account_id, user_id),
            cache_keys.GA_PROPERTIES_TTL,
            AnalyticsProperty,
            fetch,
            persist,
        )

    def get_report(self, user_id: int, property_id: str, start: date, end: date) -> List[AnalyticsReportRow]:
        """Daily sessions/users/engagement/conversions for a property over [start, end]."""

        def fetch(token: str) -> List[AnalyticsReportRow]:
            body = self.client.run_report(token, property_id, start.isoformat(), end.isoformat())
            return self._parse_report(property_id, body)

        def persist(rows: List[AnalyticsReportRow]) -> PersistReport:
            return self.persist_each(
                "google_analytics_data",
                rows,
                lambda r: self.upserter.upsert(
                    "google_analytics_data",
                    ["user_id", "property_id", "date"],
                    {
                        "user_id": user_id,
                        "property_id": property_id,
                        "date": r.date,
                        "sessions": r.sessions,
                        "active_users": r.active_users,
                        "new_users": r.new_users,
                        "engagement_rate": r.engagement_rate,
                        "conversions": r.conversions,
                    },
                ),
            )

        return self.read_through(
            user_id,
            cache_keys.ga_report_key(property_id, start, end, user_id),
            cache_keys.GA_REPORT_TTL,
            AnalyticsReportRow,
            fetch,
            persist,
        )

    @staticmethod
    def _parse_report(property_id: str, body: Dict[str, Any]) -> List[AnalyticsReportRow]:
        rows = []
        for row in body.get("rows") or []:
            dimensions = [d.get("value") for d in row.get("dimensionValues") or []]
            if not dimensions or not dimensions[0]:
                logger.warning("[GA_SYNC] Dropping report row without date for %s", property_id)
                continue
            # Positional, in REPORT_METRICS order; trailing metrics may be absent
            metrics = [m.get("value") for m in row.get("metricValues") or []]
            metrics += [None] * (len(REPORT_METRICS) - len(metrics))
            rows.append(
                AnalyticsReportRow(
                    property_id=property_id,
                    date=as_str(dimensions[0]),
                    sessions=as_int(metrics[0]),
                    active_users=as_int(metrics[1]),
                    new_users=as_int(metrics[2]),
                    engagement_rate=as_float(metrics[3]),
                    conversions=as_int(metrics[4]),
                )
            )
        return rows
