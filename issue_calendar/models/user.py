"""Per-user calendar settings and OAuth credentials.

This module defines the UserCalendarSettings model, the persisted form of
the per-user property bag: which calendar receives the user's events, the
OAuth tokens used to act on their behalf, and the optional relay transport
configuration.
"""

from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


class UserCalendarSettings(SQLModel, table=True):
    """Calendar configuration and OAuth state for one tracker user.

    The refresh token is long-lived and only cleared by an explicit
    de-authorization. The access token is a cache: it is replaced on every
    refresh and dropped when a refresh is rejected.

    Attributes:
        user_id: Tracker login or id of the user (primary key).
        calendar_id: Google Calendar id events are written to.
        refresh_token: Long-lived OAuth token used to obtain access tokens.
        access_token: Short-lived OAuth bearer token.
        token_expiry: Access token expiry as epoch milliseconds.
        relay_url: Web app URL of the user's relay script, if any.
        relay_api_key: API key the relay script expects.
        updated_at: Last time any field was written.
    """
    user_id: str = Field(primary_key=True)
    calendar_id: str | None = None
    refresh_token: str | None = None
    access_token: str | None = None
    token_expiry: int | None = None
    relay_url: str | None = None
    relay_api_key: str | None = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
