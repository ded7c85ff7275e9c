"""Shared sync-on-read path for remote resources.

WHAT:
    Cache-aside read (token → cache → remote → cache → durable store) used by
    every per-resource operation of the platform sync services, plus the
    per-item persistence outcome those operations aggregate.

WHY:
    - The read path answers the caller from the remote result. Persisting what
      was fetched is best-effort: a row that fails to upsert is reported in a
      `PersistOutcome`, logged, and never fails the read.
    - Cache entries are a disposable projection. A corrupt entry is treated
      as a miss.

FLOW:
    1. resolve the caller's token (credential failures propagate)
    2. key hit → deserialize, return (no remote, no durable store)
    3. miss → fetch(token) calls the platform
    4. cache the normalized list with the resource TTL
    5. persist each item in its own transaction, aggregate outcomes

REFERENCES:
    - adsync/services/meta_sync_service.py
    - adsync/services/analytics_sync_service.py
    - adsync/services/schema_upsert.py
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError

from adsync.errors import PersistenceError
from adsync.services.cache_store import CacheStore
from adsync.services.credential_manager import CredentialManager
from adsync.services.schema_upsert import SchemaAdaptiveUpserter

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


# =============================================================================
# PERSISTENCE OUTCOMES
# =============================================================================

@dataclass
class PersistOutcome(Generic[T]):
    """Result of persisting one fetched entity."""

    entity: T
    persisted: bool
    error: Optional[str] = None


@dataclass
class PersistReport(Generic[T]):
    """Outcomes for one fetched batch."""

    resource: str
    outcomes: List[PersistOutcome[T]] = field(default_factory=list)
    skipped_reason: Optional[str] = None

    @property
    def persisted_count(self) -> int:
        return sum(1 for o in self.outcomes if o.persisted)

    @property
    def failures(self) -> List[PersistOutcome[T]]:
        return [o for o in self.outcomes if not o.persisted]

    def __repr__(self):
        return (
            f"PersistReport(resource={self.resource}, persisted={self.persisted_count}, "
            f"failed={len(self.failures)}, skipped={self.skipped_reason!r})"
        )


# =============================================================================
# NORMALIZERS
# =============================================================================
# Remote payloads send numbers as strings ("12.5") and omit empty metrics.

def as_int(value: Any) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError):
        logger.debug("Non-numeric value %r normalized to 0", value)
        return 0


def as_float(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.debug("Non-numeric value %r normalized to 0.0", value)
        return 0.0


def as_str(value: Any) -> str:
    return "" if value is None else str(value)


# =============================================================================
# BASE SERVICE
# =============================================================================

class SyncOnReadService:
    """Base for the per-platform sync services. Subclasses set `tag`."""

    tag = "SYNC"

    def __init__(
        self,
        credentials: CredentialManager,
        client: Any,
        cache: CacheStore,
        upserter: SchemaAdaptiveUpserter,
    ):
        self.credentials = credentials
        self.client = client
        self.cache = cache
        self.upserter = upserter

    @property
    def platform(self) -> str:
        return self.credentials.platform

    def read_through(
        self,
        user_id: int,
        key: str,
        ttl_seconds: int,
        model: Type[T],
        fetch: Callable[[str], List[T]],
        persist: Optional[Callable[[List[T]], PersistReport[T]]] = None,
    ) -> List[T]:
        """Resolve the caller's token, then serve `key` from cache or fetch, cache and persist.

        The token is resolved before the cache lookup so that a user without a
        usable credential never reads entries cached for another user.

        Raises:
            NotAuthenticated, TokenExpiredNoRefresh, RefreshFailed: from the credential manager.
            RemoteFetchFailed: from `fetch`.
        """
        token = self.credentials.get_access_token(user_id)

        cached = self._load_cached(key, model)
        if cached is not None:
            logger.info("[%s] Cache hit %s (%d items)", self.tag, key, len(cached))
            return cached

        return self.fetch_and_store(token, key, ttl_seconds, fetch, persist)

    def fetch_and_store(
        self,
        token: str,
        key: str,
        ttl_seconds: int,
        fetch: Callable[[str], List[T]],
        persist: Optional[Callable[[List[T]], PersistReport[T]]] = None,
    ) -> List[T]:
        logger.info("[%s] Cache miss %s, fetching from %s", self.tag, key, self.platform)
        items = fetch(token)

        payload = json.dumps([item.model_dump(mode="json") for item in items])
        self.cache.set(key, payload, ttl_seconds)

        if persist is not None and items:
            self.log_report(persist(items))
        return items

    def persist_each(self, resource: str, items: Sequence[T], write: Callable[[T], Any]) -> PersistReport[T]:
        """Upsert every item independently; a failing item never stops the rest."""
        report: PersistReport[T] = PersistReport(resource=resource)
        for item in items:
            try:
                write(item)
            except PersistenceError as e:
                logger.error("[%s] Failed to persist %s %s: %s", self.tag, resource, _entity_label(item), e.message)
                report.outcomes.append(PersistOutcome(entity=item, persisted=False, error=e.message))
            else:
                report.outcomes.append(PersistOutcome(entity=item, persisted=True))
        return report

    def log_report(self, report: PersistReport) -> None:
        if report.skipped_reason:
            logger.warning("[%s] Skipped persisting %s: %s", self.tag, report.resource, report.skipped_reason)
        elif report.failures:
            logger.warning(
                "[%s] Persisted %d/%d %s (%d failed)",
                self.tag, report.persisted_count, len(report.outcomes), report.resource, len(report.failures),
            )
        else:
            logger.info("[%s] Persisted %d %s", self.tag, report.persisted_count, report.resource)

    def _load_cached(self, key: str, model: Type[T]) -> Optional[List[T]]:
        raw = self.cache.get(key)
        if raw is None:
            return None
        try:
            return [model.model_validate(item) for item in json.loads(raw)]
        except (ValueError, TypeError, ValidationError) as e:
            logger.warning("[%s] Discarding unreadable cache entry %s: %s", self.tag, key, e)
            return None


def _entity_label(item: BaseModel) -> str:
    for attr in ("id", "date_start", "date"):
        value = getattr(item, attr, None)
        if value is not None:
            return str(value)
    return type(item).__name__
