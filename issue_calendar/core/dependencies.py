"""FastAPI dependency providers for the sync services."""
import requests
from fastapi import Depends, HTTPException
from sqlmodel import Session

from issue_calendar.calendar.client import (
    CalendarGateway,
    GoogleCalendarAdapter,
    RelayCalendarAdapter,
)
from issue_calendar.calendar.sync import EventLifecycleController
from issue_calendar.calendar.tokens import TokenManager
from issue_calendar.core.database import get_session
from issue_calendar.core.errors import ApiError, AuthError, ConfigurationError, SyncError
from issue_calendar.stores import SqlCredentialStore, SqlIssueEventStore

# Shared connection pool for token and relay calls
http_session = requests.Session()


def get_credential_store(session: Session = Depends(get_session)) -> SqlCredentialStore:
    return SqlCredentialStore(session)


def get_issue_store(session: Session = Depends(get_session)) -> SqlIssueEventStore:
    return SqlIssueEventStore(session)


def get_token_manager(
    store: SqlCredentialStore = Depends(get_credential_store),
) -> TokenManager:
    return TokenManager.from_settings(store, session=http_session)


def get_gateway(
    store: SqlCredentialStore = Depends(get_credential_store),
    tokens: TokenManager = Depends(get_token_manager),
) -> CalendarGateway:
    return CalendarGateway(
        store,
        tokens,
        direct=GoogleCalendarAdapter(),
        relay=RelayCalendarAdapter(session=http_session),
    )


def get_controller(
    gateway: CalendarGateway = Depends(get_gateway),
    issues: SqlIssueEventStore = Depends(get_issue_store),
) -> EventLifecycleController:
    return EventLifecycleController(gateway, issues)


def to_http_exception(error: SyncError) -> HTTPException:
    """Map a sync error onto the status the caller should see."""
    if isinstance(error, (ConfigurationError, AuthError)):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, ApiError):
        return HTTPException(status_code=502, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))
