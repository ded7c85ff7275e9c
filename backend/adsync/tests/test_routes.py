"""HTTP-level tests: identity, error-to-status mapping and request validation.

WHAT: Drives the FastAPI app through TestClient with services swapped via
      `app.dependency_overrides`.
WHY: Routers must stay thin; the status codes a client sees come from the
     typed failures raised below them.
"""

from datetime import date

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from adsync import deps
from adsync.errors import (
    NotAuthenticated,
    PersistenceError,
    RefreshFailed,
    RemoteFetchFailed,
    TokenExpiredNoRefresh,
)
from adsync.main import create_app
from adsync.schemas import MetaAdAccount, TokenSet

JWT_SECRET = "test-jwt-secret"


class _StubMetaService:
    """Returns canned data, or raises `error` when set."""

    def __init__(self):
        self.error = None
        self.insight_calls = []

    def get_ad_accounts(self, user_id):
        if self.error:
            raise self.error
        return [MetaAdAccount(id="act_1", name=f"Account of {user_id}")]

    def get_campaign_insights(self, user_id, campaign_id, start, end):
        self.insight_calls.append((user_id, campaign_id, start, end))
        return []


@pytest.fixture
def app():
    app = create_app()
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def meta_stub(app):
    stub = _StubMetaService()
    app.dependency_overrides[deps.get_meta_sync_service] = lambda: stub
    app.dependency_overrides[deps.get_current_user_id] = lambda: 42
    return stub


@pytest.fixture
def client(app):
    return TestClient(app)


def _jwt(sub):
    return jwt.encode({"sub": sub}, JWT_SECRET, algorithm="HS256")


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


class TestIdentity:
    def test_missing_token(self, app, client):
        app.dependency_overrides[deps.get_meta_sync_service] = _StubMetaService

        assert client.get("/meta/ad-accounts").status_code == 401

    def test_bearer_header(self, app, client):
        app.dependency_overrides[deps.get_meta_sync_service] = _StubMetaService

        response = client.get("/meta/ad-accounts", headers={"Authorization": f"Bearer {_jwt('7')}"})

        assert response.status_code == 200
        assert response.json()[0]["name"] == "Account of 7"

    def test_cookie(self, app, client):
        app.dependency_overrides[deps.get_meta_sync_service] = _StubMetaService
        client.cookies.set("access_token", _jwt("8"))

        response = client.get("/meta/ad-accounts")

        assert response.json()[0]["name"] == "Account of 8"

    @pytest.mark.parametrize(
        "token",
        [
            "not-a-jwt",
            jwt.encode({"sub": "7"}, "another-secret", algorithm="HS256"),
            jwt.encode({"sub": "alice"}, JWT_SECRET, algorithm="HS256"),
            jwt.encode({"scope": "read"}, JWT_SECRET, algorithm="HS256"),
        ],
    )
    def test_rejected_tokens(self, app, client, token):
        app.dependency_overrides[deps.get_meta_sync_service] = _StubMetaService

        response = client.get("/meta/ad-accounts", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401


class TestErrorMapping:
    @pytest.mark.parametrize(
        "error,expected_status",
        [
            (NotAuthenticated("no credential", "meta"), 401),
            (TokenExpiredNoRefresh("expired", "meta"), 401),
            (RefreshFailed("invalid_grant", "meta"), 502),
            (RemoteFetchFailed("Graph API down", "meta", status_code=500), 502),
            (PersistenceError("disk full", table="ad_accounts"), 500),
        ],
    )
    def test_status_codes(self, client, meta_stub, error, expected_status):
        meta_stub.error = error

        response = client.get("/meta/ad-accounts")

        assert response.status_code == expected_status

    def test_not_connected_message(self, client, meta_stub):
        meta_stub.error = NotAuthenticated("no credential", "meta")

        body = client.get("/meta/ad-accounts").json()

        assert body == {"detail": "Connect your Meta Ads account to continue.", "platform": "meta"}

    def test_remote_failure_hides_platform_message(self, client, meta_stub):
        meta_stub.error = RemoteFetchFailed("(#100) Invalid parameter", "meta", status_code=400)

        body = client.get("/meta/ad-accounts").json()

        assert "#100" not in body["detail"]
        assert body["detail"] == "Could not load data from Meta Ads. Please try again."


class TestInsightsRange:
    def test_valid_range(self, client, meta_stub):
        response = client.get("/meta/campaigns/123/insights", params={"start": "2024-01-01", "end": "2024-01-31"})

        assert response.status_code == 200
        assert meta_stub.insight_calls == [(42, "123", date(2024, 1, 1), date(2024, 1, 31))]

    def test_inverted_range(self, client, meta_stub):
        response = client.get("/meta/campaigns/123/insights", params={"start": "2024-02-01", "end": "2024-01-01"})

        assert response.status_code == 422
        assert meta_stub.insight_calls == []

    def test_malformed_date(self, client, meta_stub):
        response = client.get("/meta/campaigns/123/insights", params={"start": "yesterday", "end": "2024-01-01"})

        assert response.status_code == 422


class TestOAuthCallback:
    @pytest.fixture
    def connect(self, app, meta_credentials):
        app.dependency_overrides[deps.get_current_user_id] = lambda: 42
        app.dependency_overrides[deps.get_meta_credentials] = lambda: meta_credentials
        return meta_credentials

    def test_authorize_carries_user_in_state(self, client, connect):
        response = client.get("/auth/meta/authorize")

        assert response.json() == {"url": "https://auth.example/meta?state=42"}

    def test_callback_stores_credential(self, client, connect, meta_client):
        meta_client.exchange_result = TokenSet(access_token="EAAB", expires_in=5184000)

        response = client.get("/auth/meta/callback", params={"code": "abc", "state": "42"})

        assert response.status_code == 200
        assert response.json() == {"platform": "meta", "expires_in": 5184000, "has_refresh_token": False}
        assert connect.get_access_token(42) == "EAAB"
        assert client.get("/meta/status").json() == {"platform": "meta", "state": "active"}

    def test_state_mismatch(self, client, connect, meta_client):
        response = client.get("/auth/meta/callback", params={"code": "abc", "state": "41"})

        assert response.status_code == 400
        assert meta_client.exchange_calls == []

    def test_provider_error(self, client, connect):
        response = client.get("/auth/meta/callback", params={"error": "access_denied", "state": "42"})

        assert response.status_code == 400

    def test_rejected_code_is_bad_gateway(self, client, connect, meta_client):
        from adsync.errors import TokenExchangeFailed

        def _reject(code, redirect_uri=None):
            raise TokenExchangeFailed("code expired", "meta")

        meta_client.exchange_code = _reject

        response = client.get("/auth/meta/callback", params={"code": "old", "state": "42"})

        assert response.status_code == 502


def test_google_status_absent(app, client, google_credentials):
    app.dependency_overrides[deps.get_current_user_id] = lambda: 3
    app.dependency_overrides[deps.get_google_credentials] = lambda: google_credentials

    response = client.get("/google-analytics/status")

    assert response.json() == {"platform": "google_analytics", "state": "absent"}
