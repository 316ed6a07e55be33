"""Tests for API routes."""

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from issue_calendar.calendar.client import CalendarGateway, CalendarInfo
from issue_calendar.calendar.tokens import TokenManager
from issue_calendar.core.config import settings
from issue_calendar.core.dependencies import get_gateway, get_token_manager
from issue_calendar.main import app
from issue_calendar.models import EventReference
from issue_calendar.models.issue import TIMED
from issue_calendar.stores import SqlCredentialStore, SqlIssueEventStore

from helpers import NOW, FakeResponse, RecordingAdapter, user_values


@pytest.fixture(name="sql_store")
def sql_store_fixture(session: Session) -> SqlCredentialStore:
    store = SqlCredentialStore(session)
    store.put("alice", user_values("alice"))
    return store


@pytest.fixture(name="sql_tokens")
def sql_tokens_fixture(client: TestClient, sql_store, http) -> TokenManager:
    tokens = TokenManager(sql_store, "client-id", "client-secret", session=http, clock=lambda: NOW)
    app.dependency_overrides[get_token_manager] = lambda: tokens
    return tokens


@pytest.fixture(name="adapters")
def adapters_fixture(client: TestClient, sql_store, sql_tokens):
    direct, relay = RecordingAdapter(), RecordingAdapter(prefix="relay")
    app.dependency_overrides[get_gateway] = lambda: CalendarGateway(
        sql_store, sql_tokens, direct=direct, relay=relay
    )
    return direct, relay


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_check(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestAuthRoutes:
    """Tests for the OAuth routes."""

    def test_auth_url_needs_client_id(self, client: TestClient, monkeypatch):
        monkeypatch.setattr(settings, "google_client_id", "")
        response = client.get("/oauth/url")
        assert response.status_code == 400

    def test_auth_url(self, client: TestClient, monkeypatch):
        monkeypatch.setattr(settings, "google_client_id", "cid.apps.googleusercontent.com")
        response = client.get("/oauth/url")
        assert response.status_code == 200
        url = response.json()["authUrl"]
        assert "client_id=cid.apps.googleusercontent.com" in url
        assert "access_type=offline" in url
        assert "prompt=consent" in url

    def test_token_exchange(self, client: TestClient, sql_tokens, sql_store, http):
        http.post.return_value = FakeResponse(
            payload={"access_token": "new-a", "refresh_token": "new-r", "expires_in": 3600}
        )

        response = client.post("/oauth/token", json={"userId": "bob", "code": "4/abc"})

        assert response.status_code == 200
        assert sql_store.get("bob").refresh_token == "new-r"
        assert http.post.call_args.kwargs["data"]["grant_type"] == "authorization_code"

    def test_token_exchange_passes_provider_error(self, client: TestClient, sql_tokens, http):
        http.post.return_value = FakeResponse(
            status_code=400,
            payload={"error": "invalid_grant", "error_description": "Malformed auth code."},
        )

        response = client.post("/oauth/token", json={"userId": "bob", "code": "bad"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Malformed auth code."

    def test_token_exchange_requires_code(self, client: TestClient, sql_tokens, http):
        response = client.post("/oauth/token", json={"userId": "bob", "code": ""})

        assert response.status_code == 400
        http.post.assert_not_called()

    def test_status(self, client: TestClient, sql_tokens):
        data = client.get("/auth/status/alice").json()
        assert data["isAuthenticated"] is True
        assert data["accessTokenValid"] is True
        assert data["tokenExpiresIn"] == 3600

    def test_refresh_failure(self, client: TestClient, sql_tokens, sql_store, http):
        http.post.return_value = FakeResponse(status_code=400, payload={"error": "invalid_grant"})

        response = client.post("/auth/refresh/alice")

        assert response.status_code == 400
        assert sql_store.get("alice").access_token is None
        assert sql_store.get("alice").refresh_token == "refresh-alice"

    def test_logout(self, client: TestClient, sql_tokens, sql_store):
        response = client.post("/auth/logout/alice")

        assert response.status_code == 200
        assert sql_store.get("alice").refresh_token is None
        assert client.get("/auth/status/alice").json()["isAuthenticated"] is False


class TestUserRoutes:
    """Tests for per-user calendar configuration."""

    def test_calendar_config(self, client: TestClient, sql_store):
        data = client.get("/users/alice/calendar").json()
        assert data == {
            "calendarId": "alice@example.com",
            "relayUrl": None,
            "hasRelayApiKey": False,
            "authorized": True,
        }

    def test_update_leaves_omitted_fields(self, client: TestClient, sql_store):
        response = client.put(
            "/users/alice/calendar",
            json={"relayUrl": "https://relay.example/exec", "relayApiKey": "k"},
        )

        assert response.status_code == 200
        creds = sql_store.get("alice")
        assert creds.calendar_id == "alice@example.com"
        assert creds.has_relay

    def test_empty_string_clears(self, client: TestClient, sql_store):
        client.put("/users/alice/calendar", json={"calendarId": ""})
        assert sql_store.get("alice").calendar_id is None

    def test_list_calendars(self, client: TestClient, adapters):
        direct, _ = adapters
        direct.calendars = [CalendarInfo("alice@example.com", "Alice", True, "owner")]

        data = client.get("/users/alice/calendars").json()

        assert data["calendars"] == [
            {"id": "alice@example.com", "name": "Alice", "isPrimary": True, "accessRole": "owner"}
        ]

    def test_list_calendars_unauthorized(self, client: TestClient, adapters):
        response = client.get("/users/nobody/calendars")
        assert response.status_code == 400

    def test_relay_test_needs_configuration(self, client: TestClient, adapters):
        response = client.post("/users/alice/relay/test")
        assert response.status_code == 400


class TestIssueRoutes:
    """Tests for issue change notifications."""

    def test_scheduled_issue_creates_event(self, client: TestClient, adapters, session: Session):
        direct, _ = adapters
        notification = {
            "before": {"id": "PRJ-1", "summary": "Report", "assignee": "alice"},
            "after": {
                "id": "PRJ-1",
                "summary": "Report",
                "assignee": "alice",
                "start": "2026-03-10T09:00:00Z",
                "duration": "PT2H",
            },
        }

        response = client.post("/issues/changes", json=notification)

        assert response.status_code == 200
        data = response.json()
        assert data["transition"] == "scheduled"
        assert data["eventId"] == "evt-1"
        assert data["ok"] is True
        assert direct.names == ["create"]
        assert SqlIssueEventStore(session).get("PRJ-1") == EventReference("evt-1", TIMED, "alice")
        assert client.get("/issues/PRJ-1/event").json()["eventId"] == "evt-1"

    def test_failure_still_answers_ok(self, client: TestClient, adapters):
        notification = {
            "after": {
                "id": "PRJ-2",
                "assignee": "nobody",
                "start": "2026-03-10T09:00:00Z",
            },
        }

        response = client.post("/issues/changes", json=notification)

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is False
        assert data["eventId"] is None
        assert "not authorized" in data["error"]

    def test_no_event(self, client: TestClient):
        assert client.get("/issues/PRJ-9/event").json() == {"eventId": None}
