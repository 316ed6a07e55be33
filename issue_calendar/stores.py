"""Key-value stores for per-user credentials and per-issue event references.

The sync engine only talks to the ``CredentialStore`` and ``IssueEventStore``
protocols. The SQL implementations back the running service; the memory
implementations are used by tests and embedding hosts that keep this state
elsewhere.
"""
import logging
from dataclasses import dataclass, fields, replace
from datetime import UTC, datetime
from typing import Any, Protocol

from sqlmodel import Session

from issue_calendar.models import EventReference, IssueEventLink, UserCalendarSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserCredentials:
    """Snapshot of one user's calendar property bag."""
    user_id: str
    calendar_id: str | None = None
    refresh_token: str | None = None
    access_token: str | None = None
    token_expiry: int | None = None  # epoch millis
    relay_url: str | None = None
    relay_api_key: str | None = None

    @property
    def has_relay(self) -> bool:
        return bool(self.relay_url and self.relay_api_key)


CREDENTIAL_FIELDS = frozenset(f.name for f in fields(UserCredentials)) - {"user_id"}


class CredentialStore(Protocol):
    def get(self, user_id: str) -> UserCredentials: ...

    def put(self, user_id: str, patch: dict[str, Any]) -> UserCredentials: ...


class IssueEventStore(Protocol):
    def get(self, issue_id: str) -> EventReference | None: ...

    def put(self, issue_id: str, ref: EventReference | None) -> None: ...


def _merge(current: UserCredentials, patch: dict[str, Any]) -> UserCredentials:
    unknown = set(patch) - CREDENTIAL_FIELDS
    if unknown:
        raise KeyError(f"Unknown credential fields: {sorted(unknown)}")

    merged = replace(current, **patch)
    if merged.access_token and not merged.refresh_token:
        # A bare access token cannot be renewed, so it is never kept on its own
        logger.warning(
            f"Dropping access token for {current.user_id}: no refresh token stored"
        )
        merged = replace(merged, access_token=None, token_expiry=None)
    return merged


class MemoryCredentialStore:
    """Dict-backed credential store."""

    def __init__(self, initial: dict[str, dict[str, Any]] | None = None):
        self._users: dict[str, UserCredentials] = {}
        for user_id, values in (initial or {}).items():
            self.put(user_id, values)

    def get(self, user_id: str) -> UserCredentials:
        return self._users.get(user_id, UserCredentials(user_id=user_id))

    def put(self, user_id: str, patch: dict[str, Any]) -> UserCredentials:
        merged = _merge(self.get(user_id), patch)
        self._users[user_id] = merged
        return merged


class SqlCredentialStore:
    """Credential store backed by the UserCalendarSettings table."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: str) -> UserCredentials:
        row = self.session.get(UserCalendarSettings, user_id)
        if row is None:
            return UserCredentials(user_id=user_id)
        return UserCredentials(
            user_id=user_id,
            **{name: getattr(row, name) for name in CREDENTIAL_FIELDS},
        )

    def put(self, user_id: str, patch: dict[str, Any]) -> UserCredentials:
        merged = _merge(self.get(user_id), patch)

        row = self.session.get(UserCalendarSettings, user_id)
        if row is None:
            row = UserCalendarSettings(user_id=user_id)
        for name in CREDENTIAL_FIELDS:
            setattr(row, name, getattr(merged, name))
        row.updated_at = datetime.now(UTC)

        self.session.add(row)
        self.session.commit()
        return merged


class MemoryIssueEventStore:
    """Dict-backed issue event store."""

    def __init__(self):
        self._refs: dict[str, EventReference] = {}

    def get(self, issue_id: str) -> EventReference | None:
        return self._refs.get(issue_id)

    def put(self, issue_id: str, ref: EventReference | None) -> None:
        if ref is None:
            self._refs.pop(issue_id, None)
        else:
            self._refs[issue_id] = ref


class SqlIssueEventStore:
    """Issue event store backed by the IssueEventLink table."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, issue_id: str) -> EventReference | None:
        row = self.session.get(IssueEventLink, issue_id)
        if row is None or not row.event_id:
            return None
        start = row.event_start
        if start is not None and start.tzinfo is None:
            # SQLite drops the offset; starts are written in UTC
            start = start.replace(tzinfo=UTC)
        return EventReference(
            event_id=row.event_id,
            kind=row.event_kind,
            owner=row.owner_user_id,
            start=start,
            duration=row.event_duration,
        )

    def put(self, issue_id: str, ref: EventReference | None) -> None:
        row = self.session.get(IssueEventLink, issue_id)

        if ref is None:
            if row is not None:
                self.session.delete(row)
                self.session.commit()
            return

        if row is None:
            row = IssueEventLink(issue_id=issue_id, event_id=ref.event_id)
        row.event_id = ref.event_id
        row.event_kind = ref.kind
        row.owner_user_id = ref.owner
        row.event_start = ref.start.astimezone(UTC) if ref.start else None
        row.event_duration = ref.duration
        row.updated_at = datetime.now(UTC)

        self.session.add(row)
        self.session.commit()
