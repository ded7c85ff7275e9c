"""Tests for SchemaAdaptiveUpserter.

WHAT:
    Natural-key upserts (insert, then update in place), legacy column
    resolution, per-process caching of schema lookups, and error translation.

REFERENCES:
    - adsync/services/schema_upsert.py (module under test)
"""

from datetime import date

import pytest
from sqlalchemy import event, select, text

from adsync.database import create_db_engine
from adsync.errors import PersistenceError
from adsync.models import Campaign, CampaignInsight
from adsync.services.schema_upsert import (
    CAMPAIGN_ACCOUNT_COLUMN,
    INSIGHT_DATE_COLUMN,
    ColumnVariant,
    SchemaAdaptiveUpserter,
)

LEGACY_DDL = [
    """
    CREATE TABLE campaigns (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        account_id VARCHAR NOT NULL,
        campaign_id VARCHAR NOT NULL,
        name VARCHAR,
        objective VARCHAR,
        status VARCHAR,
        UNIQUE (account_id, campaign_id)
    )
    """,
    """
    CREATE TABLE campaign_insights (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        campaign_db_id INTEGER NOT NULL,
        campaign_id VARCHAR NOT NULL,
        date DATE NOT NULL,
        impressions INTEGER,
        clicks INTEGER,
        UNIQUE (campaign_id, date)
    )
    """,
]


@pytest.fixture
def legacy_engine():
    """Database created before the account/date columns were renamed."""
    engine = create_db_engine("sqlite://")
    with engine.begin() as conn:
        for ddl in LEGACY_DDL:
            conn.execute(text(ddl))
    yield engine
    engine.dispose()


def _campaign(account_id, campaign_id, name):
    return {CAMPAIGN_ACCOUNT_COLUMN: account_id, "campaign_id": campaign_id, "name": name}


class TestUpsert:
    def test_same_natural_key_updates_in_place(self, upserter, engine):
        """WHAT: Two upserts of (scope, remote id) leave one row with the latest values."""
        key = [CAMPAIGN_ACCOUNT_COLUMN, "campaign_id"]
        first_id = upserter.upsert("campaigns", key, {**_campaign("act_1", "123", "Spring"), "status": "ACTIVE"})
        second_id = upserter.upsert("campaigns", key, {**_campaign("act_1", "123", "Summer"), "status": "PAUSED"})

        with engine.connect() as conn:
            rows = conn.execute(select(Campaign.__table__)).fetchall()

        assert first_id == second_id
        assert len(rows) == 1
        assert rows[0].name == "Summer"
        assert rows[0].status == "PAUSED"

    def test_same_remote_id_in_other_scope_is_a_new_row(self, upserter, engine):
        key = [CAMPAIGN_ACCOUNT_COLUMN, "campaign_id"]
        a = upserter.upsert("campaigns", key, _campaign("act_1", "123", "A"))
        b = upserter.upsert("campaigns", key, _campaign("act_2", "123", "B"))

        assert a != b

    def test_key_only_values_return_existing_id(self, upserter):
        first = upserter.upsert("ad_accounts", ["user_id", "account_id"], {"user_id": 1, "account_id": "act_1"})
        again = upserter.upsert("ad_accounts", ["user_id", "account_id"], {"user_id": 1, "account_id": "act_1"})

        assert first == again

    def test_omitted_columns_take_column_defaults(self, upserter, engine):
        """WHAT: Reflected tables carry the DDL defaults, so partial rows satisfy NOT NULL."""
        upserter.upsert("campaigns", [CAMPAIGN_ACCOUNT_COLUMN, "campaign_id"], _campaign("act_1", "123", "Spring"))
        campaign_db_id = upserter.upsert(
            "campaigns", [CAMPAIGN_ACCOUNT_COLUMN, "campaign_id"], {CAMPAIGN_ACCOUNT_COLUMN: "act_1", "campaign_id": "7"}
        )
        upserter.upsert(
            "campaign_insights",
            ["campaign_id", INSIGHT_DATE_COLUMN],
            {"campaign_db_id": campaign_db_id, "campaign_id": "7", INSIGHT_DATE_COLUMN: date(2024, 1, 1)},
        )

        with engine.connect() as conn:
            campaigns = conn.execute(select(Campaign.__table__).order_by(Campaign.__table__.c.id)).fetchall()
            insight = conn.execute(select(CampaignInsight.__table__)).one()

        assert [(c.name, c.objective, c.status) for c in campaigns] == [("Spring", "", ""), ("", "", "")]
        assert (insight.impressions, insight.clicks, insight.spend) == (0, 0, 0)

    def test_find_id(self, upserter):
        row_id = upserter.upsert("campaigns", [CAMPAIGN_ACCOUNT_COLUMN, "campaign_id"], _campaign("act_1", "9", "X"))

        assert upserter.find_id("campaigns", {"campaign_id": "9"}) == row_id
        assert upserter.find_id("campaigns", {"campaign_id": "missing"}) is None

    def test_missing_key_column_is_rejected(self, upserter):
        with pytest.raises(PersistenceError):
            upserter.upsert("campaigns", [CAMPAIGN_ACCOUNT_COLUMN, "campaign_id"], {"campaign_id": "1"})

    def test_unknown_column_is_rejected(self, upserter):
        with pytest.raises(PersistenceError) as exc_info:
            upserter.upsert("ads", ["ad_set_id", "ad_id"], {"ad_set_id": "s", "ad_id": "a", "colour": "red"})

        assert exc_info.value.table == "ads"

    def test_constraint_violation_becomes_persistence_error(self, upserter):
        # campaign_db_id is NOT NULL
        with pytest.raises(PersistenceError):
            upserter.upsert(
                "campaign_insights",
                ["campaign_id", INSIGHT_DATE_COLUMN],
                {"campaign_db_id": None, "campaign_id": "1", INSIGHT_DATE_COLUMN: date(2024, 1, 1)},
            )

    def test_unknown_table(self, upserter):
        with pytest.raises(PersistenceError):
            upserter.table("no_such_table")


class TestColumnResolution:
    def test_current_schema_resolves_current(self, upserter):
        assert upserter.resolve("campaigns", CAMPAIGN_ACCOUNT_COLUMN) == ColumnVariant.current
        assert upserter.resolve("campaign_insights", INSIGHT_DATE_COLUMN) == ColumnVariant.current

    def test_legacy_schema_resolves_legacy(self, legacy_engine):
        upserter = SchemaAdaptiveUpserter(legacy_engine)

        assert upserter.resolve("campaigns", CAMPAIGN_ACCOUNT_COLUMN) == ColumnVariant.legacy
        assert upserter.column_name("campaign_insights", INSIGHT_DATE_COLUMN) == "date"

    def test_legacy_schema_upserts(self, legacy_engine):
        upserter = SchemaAdaptiveUpserter(legacy_engine)
        key = [CAMPAIGN_ACCOUNT_COLUMN, "campaign_id"]
        upserter.upsert("campaigns", key, _campaign("act_1", "123", "Old"))
        campaign_db_id = upserter.upsert("campaigns", key, _campaign("act_1", "123", "New"))
        upserter.upsert(
            "campaign_insights",
            ["campaign_id", INSIGHT_DATE_COLUMN],
            {
                "campaign_db_id": campaign_db_id,
                "campaign_id": "123",
                INSIGHT_DATE_COLUMN: date(2024, 1, 1),
                "clicks": 4,
            },
        )

        with legacy_engine.connect() as conn:
            campaigns = conn.execute(text("SELECT account_id, name FROM campaigns")).fetchall()
            insights = conn.execute(text("SELECT campaign_db_id, date, clicks FROM campaign_insights")).fetchall()

        assert campaigns == [("act_1", "New")]
        assert insights[0][0] == campaign_db_id
        assert insights[0][2] == 4

    def test_neither_column_present(self, upserter):
        from adsync.services.schema_upsert import ColumnAlias

        with pytest.raises(PersistenceError):
            upserter.resolve("ads", ColumnAlias(current="ad_account_id", legacy="account_id"))

    def test_schema_is_inspected_once_per_table(self, engine):
        """WHAT: Hundreds of insight rows must not repeat the metadata query."""
        upserter = SchemaAdaptiveUpserter(engine)
        statements = []

        @event.listens_for(engine, "before_cursor_execute")
        def _record(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement)

        campaign_db_id = upserter.upsert(
            "campaigns", [CAMPAIGN_ACCOUNT_COLUMN, "campaign_id"], _campaign("act_1", "1", "C")
        )
        for day in range(1, 4):
            upserter.upsert(
                "campaign_insights",
                ["campaign_id", INSIGHT_DATE_COLUMN],
                {"campaign_db_id": campaign_db_id, "campaign_id": "1", INSIGHT_DATE_COLUMN: date(2024, 1, day)},
            )
        inspected_after_first_round = sum("PRAGMA" in s.upper() for s in statements)
        statements.clear()

        for day in range(4, 30):
            upserter.upsert(
                "campaign_insights",
                ["campaign_id", INSIGHT_DATE_COLUMN],
                {"campaign_db_id": campaign_db_id, "campaign_id": "1", INSIGHT_DATE_COLUMN: date(2024, 1, day)},
            )

        assert inspected_after_first_round > 0
        assert not any("PRAGMA" in s.upper() for s in statements)

        with engine.connect() as conn:
            count = conn.execute(select(CampaignInsight.__table__.c.id)).fetchall()
        assert len(count) == 29


def test_unsupported_dialect_is_rejected():
    from unittest.mock import Mock

    engine = Mock()
    engine.dialect.name = "mysql"

    with pytest.raises(ValueError):
        SchemaAdaptiveUpserter(engine)
