"""Shared test fixtures."""

from unittest.mock import MagicMock

import pytest
import requests
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from issue_calendar.calendar.client import CalendarGateway
from issue_calendar.calendar.sync import EventLifecycleController
from issue_calendar.calendar.tokens import TokenManager
from issue_calendar.core.database import get_session
from issue_calendar.main import app
from issue_calendar.stores import MemoryCredentialStore, MemoryIssueEventStore

from helpers import NOW, RecordingAdapter, user_values


@pytest.fixture(name="engine")
def engine_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    """Create a new database session for each test."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Create a test client with the test database session."""

    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="http")
def http_fixture():
    """A requests.Session whose post/get answers are set per test."""
    return MagicMock(spec=requests.Session)


@pytest.fixture(name="store")
def store_fixture() -> MemoryCredentialStore:
    """Two authorized users with fresh access tokens."""
    return MemoryCredentialStore({"alice": user_values("alice"), "bob": user_values("bob")})


@pytest.fixture(name="tokens")
def tokens_fixture(store, http) -> TokenManager:
    return TokenManager(
        store, "client-id", "client-secret", session=http, clock=lambda: NOW
    )


@pytest.fixture(name="direct")
def direct_fixture() -> RecordingAdapter:
    return RecordingAdapter()


@pytest.fixture(name="relay")
def relay_fixture() -> RecordingAdapter:
    return RecordingAdapter(prefix="relay")


@pytest.fixture(name="gateway")
def gateway_fixture(store, tokens, direct, relay) -> CalendarGateway:
    return CalendarGateway(store, tokens, direct=direct, relay=relay)


@pytest.fixture(name="issue_store")
def issue_store_fixture() -> MemoryIssueEventStore:
    return MemoryIssueEventStore()


@pytest.fixture(name="controller")
def controller_fixture(gateway, issue_store) -> EventLifecycleController:
    return EventLifecycleController(gateway, issue_store, time_zone="UTC", resolved_color_id="2")
