"""Schema-adaptive upsert helper.

WHAT:
    Issues "insert; on natural-key conflict update every non-key column"
    statements against tables whose column names have drifted between schema
    versions, and returns the affected row id.

WHY:
    Some databases were created before columns were renamed
    (`campaigns.account_id` → `ad_account_id`, `campaign_insights.date` →
    `date_start`). The live table is reflected once per table per process and
    every alias is resolved against it, so insight syncs writing hundreds of
    rows never repeat the metadata query.

HOW:
    1. `table(name)` reflects the table on first use and memoizes it.
    2. `resolve(name, alias)` picks `ColumnVariant.current` when the current
       column exists, otherwise `ColumnVariant.legacy`, and memoizes the choice.
    3. `upsert()` builds a dialect `INSERT ... ON CONFLICT (...) DO UPDATE`
       with RETURNING id and runs it in its own short transaction, so one bad
       row never aborts its neighbours.

REFERENCES:
    - adsync/models.py (current schema and natural keys)
    - adsync/services/meta_sync_service.py, analytics_sync_service.py (callers)
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

from sqlalchemy import MetaData, Table, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from adsync.errors import PersistenceError

logger = logging.getLogger(__name__)


class ColumnVariant(str, enum.Enum):
    current = "current"
    legacy = "legacy"


@dataclass(frozen=True)
class ColumnAlias:
    """A column known under a current and a historical name."""
    current: str
    legacy: str

    def name_for(self, variant: ColumnVariant) -> str:
        return self.current if variant == ColumnVariant.current else self.legacy


ColumnRef = Union[str, ColumnAlias]

# Known drifted columns
CAMPAIGN_ACCOUNT_COLUMN = ColumnAlias(current="ad_account_id", legacy="account_id")
INSIGHT_DATE_COLUMN = ColumnAlias(current="date_start", legacy="date")

_DIALECT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SchemaAdaptiveUpserter:
    """Upserts rows by natural key against reflected tables.

    One instance is shared for the process lifetime; its table and column
    lookups are cached on the instance.

    Usage:
        ```python
        upserter = SchemaAdaptiveUpserter(engine)
        row_id = upserter.upsert(
            "campaigns",
            natural_key=[CAMPAIGN_ACCOUNT_COLUMN, "campaign_id"],
            values={CAMPAIGN_ACCOUNT_COLUMN: "act_1", "campaign_id": "123", "name": "Spring"},
        )
        ```
    """

    def __init__(self, engine: Engine):
        if engine.dialect.name not in _DIALECT_INSERTS:
            raise ValueError(f"Upserts are not supported for dialect '{engine.dialect.name}'")
        self.engine = engine
        self._insert = _DIALECT_INSERTS[engine.dialect.name]
        self._tables: Dict[str, Table] = {}
        self._variants: Dict[Tuple[str, ColumnAlias], ColumnVariant] = {}

    # -------------------------
    # schema capability lookup
    # -------------------------
    def table(self, table_name: str) -> Table:
        """Return the reflected table, querying the store's metadata only once."""
        table = self._tables.get(table_name)
        if table is not None:
            return table

        try:
            table = Table(table_name, MetaData(), autoload_with=self.engine)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Cannot inspect table {table_name}: {e}", table=table_name) from e

        logger.info("[UPSERT] Reflected %s (%d columns)", table_name, len(table.columns))
        self._tables[table_name] = table
        return table

    def resolve(self, table_name: str, alias: ColumnAlias) -> ColumnVariant:
        """Which name of `alias` exists on the live table."""
        cache_key = (table_name, alias)
        variant = self._variants.get(cache_key)
        if variant is not None:
            return variant

        columns = self.table(table_name).c
        if alias.current in columns:
            variant = ColumnVariant.current
        elif alias.legacy in columns:
            variant = ColumnVariant.legacy
        else:
            raise PersistenceError(
                f"Table {table_name} has neither {alias.current} nor {alias.legacy}",
                table=table_name,
            )

        logger.info("[UPSERT] %s.%s resolved to %s column", table_name, alias.current, variant.value)
        self._variants[cache_key] = variant
        return variant

    def column_name(self, table_name: str, ref: ColumnRef) -> str:
        if isinstance(ref, ColumnAlias):
            return ref.name_for(self.resolve(table_name, ref))
        return ref

    # -------------------------
    # writes / lookups
    # -------------------------
    def upsert(
        self,
        table_name: str,
        natural_key: Sequence[ColumnRef],
        values: Mapping[ColumnRef, Any],
    ) -> int:
        """Insert a row, or update all non-key columns when the natural key exists.

        Last writer wins; partial fields are not merged.

        Returns:
            The row id.

        Raises:
            PersistenceError: Schema mismatch or any durable-store failure.
        """
        table = self.table(table_name)
        row = {self.column_name(table_name, ref): value for ref, value in values.items()}
        key_columns = [self.column_name(table_name, ref) for ref in natural_key]

        missing = [c for c in key_columns if c not in row]
        if missing:
            raise PersistenceError(f"Missing natural key columns {missing} for {table_name}", table=table_name)
        unknown = [c for c in row if c not in table.c]
        if unknown:
            raise PersistenceError(f"Unknown columns {unknown} for {table_name}", table=table_name)

        if "updated_at" in table.c and "updated_at" not in row:
            row["updated_at"] = utcnow()

        stmt = self._insert(table).values(**row)
        update_columns = {c: stmt.excluded[c] for c in row if c not in key_columns}
        if update_columns:
            stmt = stmt.on_conflict_do_update(index_elements=key_columns, set_=update_columns)
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=key_columns)
        stmt = stmt.returning(table.c.id)

        try:
            with self.engine.begin() as conn:
                record_id = conn.execute(stmt).scalar()
                if record_id is None:
                    # DO NOTHING on conflict returns no row
                    record_id = conn.execute(
                        select(table.c.id).where(*[table.c[c] == row[c] for c in key_columns])
                    ).scalar()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Upsert into {table_name} failed: {e}", table=table_name) from e

        return record_id

    def find_id(self, table_name: str, criteria: Mapping[ColumnRef, Any]) -> Optional[int]:
        """Return the id of the first row matching `criteria`, or None."""
        table = self.table(table_name)
        conditions = [table.c[self.column_name(table_name, ref)] == value for ref, value in criteria.items()]
        try:
            with self.engine.connect() as conn:
                return conn.execute(select(table.c.id).where(*conditions).limit(1)).scalar()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Lookup in {table_name} failed: {e}", table=table_name) from e
