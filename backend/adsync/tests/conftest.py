"""Pytest configuration for adsync tests

WHAT: Shared fixtures: in-memory SQLite store, instrumented fake cache, fake
      platform clients, a controllable clock, and credential manager / sync
      service factories wired the same way adsync/deps.py wires them.
WHY: Services receive every collaborator through their constructor, so tests
     swap real Redis / HTTP for in-memory fakes without patching globals.
REFERENCES:
    - adsync/deps.py: Production wiring
    - adsync/database.py: Engine creation and init_db
"""

import os
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Ensure backend is in path
BACKEND_ROOT = Path(__file__).resolve().parents[2]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

# Set test environment
TEST_FERNET_KEY = "MDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDA="  # URL-safe base64 of 32 bytes
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("TOKEN_ENCRYPTION_KEY", TEST_FERNET_KEY)
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("META_APP_ID", "test-meta-app")
os.environ.setdefault("META_APP_SECRET", "test-meta-secret")
os.environ.setdefault("META_OAUTH_REDIRECT_URI", "https://app/cb")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-google-client")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-google-secret")
os.environ.setdefault("GOOGLE_OAUTH_REDIRECT_URI", "https://app/google/cb")

from sqlalchemy.orm import sessionmaker  # noqa: E402

from adsync.database import create_db_engine, init_db  # noqa: E402
from adsync.errors import RemoteFetchFailed  # noqa: E402
from adsync.schemas import TokenSet  # noqa: E402
from adsync.security import TokenCipher  # noqa: E402
from adsync.services.analytics_sync_service import AnalyticsSyncService  # noqa: E402
from adsync.services.credential_manager import CredentialManager  # noqa: E402
from adsync.services.meta_sync_service import MetaSyncService  # noqa: E402
from adsync.services.schema_upsert import SchemaAdaptiveUpserter  # noqa: E402


# ============================================================================
# Fakes
# ============================================================================

class FakeCache:
    """In-memory CacheStore that records every call."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.get_calls: List[str] = []
        self.set_calls: List[tuple] = []

    def get(self, key: str) -> Optional[str]:
        self.get_calls.append(key)
        return self.data.get(key)

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self.set_calls.append((key, value, ttl_seconds))
        if ttl_seconds <= 0:
            return
        self.data[key] = value
        self.ttls[key] = ttl_seconds

    def clear(self) -> None:
        """Simulate cache eviction (or a Redis restart)."""
        self.data.clear()
        self.ttls.clear()


class FakeClock:
    """Callable naive-UTC clock that tests move by hand."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2024, 1, 15, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakePlatformClient:
    """Stands in for MetaAdsClient / GoogleAnalyticsClient."""

    def __init__(self, platform: str = "meta"):
        self.platform = platform
        self.exchange_result = TokenSet(access_token="T1", expires_in=3600)
        self.refresh_result: Any = TokenSet(access_token="T2", expires_in=3600)
        self.responses: Dict[str, List[Dict[str, Any]]] = {}
        self.report: Dict[str, Any] = {"rows": []}
        self.exchange_calls: List[tuple] = []
        self.refresh_calls: List[str] = []
        self.list_calls: List[tuple] = []
        self.report_calls: List[tuple] = []

    def authorization_url(self, state: str) -> str:
        return f"https://auth.example/{self.platform}?state={state}"

    def exchange_code(self, code: str, redirect_uri: Optional[str] = None) -> TokenSet:
        self.exchange_calls.append((code, redirect_uri))
        return self.exchange_result

    def refresh(self, refresh_token: str) -> TokenSet:
        self.refresh_calls.append(refresh_token)
        if isinstance(self.refresh_result, Exception):
            raise self.refresh_result
        return self.refresh_result

    def list_entities(self, access_token, scope, fields, params=None):
        self.list_calls.append((access_token, scope, tuple(fields), params))
        if scope not in self.responses:
            raise RemoteFetchFailed(f"unexpected scope {scope}", self.platform, status_code=404)
        return self.responses[scope]

    def run_report(self, access_token, property_id, start_date, end_date):
        self.report_calls.append((access_token, property_id, start_date, end_date))
        return self.report


class CountingSessionFactory:
    """Wraps a sessionmaker and counts durable-store reads."""

    def __init__(self, factory: sessionmaker):
        self.factory = factory
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.factory()


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def engine():
    """In-memory SQLite (StaticPool) with the current schema."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return CountingSessionFactory(sessionmaker(bind=engine, autoflush=False, autocommit=False))


@pytest.fixture
def upserter(engine):
    return SchemaAdaptiveUpserter(engine)


# ============================================================================
# Collaborator Fixtures
# ============================================================================

@pytest.fixture
def cache():
    return FakeCache()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cipher():
    return TokenCipher(TEST_FERNET_KEY)


@pytest.fixture
def meta_client():
    return FakePlatformClient("meta")


@pytest.fixture
def google_client():
    return FakePlatformClient("google_analytics")


@pytest.fixture
def make_manager(cache, session_factory, upserter, cipher, clock):
    def _make(client, **overrides):
        kwargs = dict(
            client=client,
            cache=cache,
            session_factory=session_factory,
            upserter=upserter,
            cipher=cipher,
            clock=clock,
        )
        kwargs.update(overrides)
        return CredentialManager(**kwargs)

    return _make


@pytest.fixture
def meta_credentials(make_manager, meta_client):
    return make_manager(meta_client)


@pytest.fixture
def google_credentials(make_manager, google_client):
    return make_manager(google_client)


@pytest.fixture
def meta_service(meta_credentials, meta_client, cache, upserter):
    return MetaSyncService(meta_credentials, meta_client, cache, upserter)


@pytest.fixture
def analytics_service(google_credentials, google_client, cache, upserter):
    return AnalyticsSyncService(google_credentials, google_client, cache, upserter)
