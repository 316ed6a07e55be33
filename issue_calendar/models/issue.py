"""Issue snapshots and the synced-event reference.

An ``IssueSnapshot`` is what the tracker hands us on every field change:
the values of the scheduling fields before or after the change. The
``IssueEventLink`` table holds the one piece of issue state this service
owns, the id of the remote event currently mirroring the issue.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlmodel import Field, SQLModel

ALL_DAY = "all_day"
TIMED = "timed"


@dataclass(frozen=True)
class IssueSnapshot:
    """The tracker fields that drive calendar sync, at one point in time.

    ``duration`` and ``remind_before`` are ISO-8601 period strings exactly
    as the tracker reports them (``PT2H``, ``P1W2D``). ``assignee`` is the
    user id of the assignee, which is also the key into the credential store.
    """
    id: str
    summary: str = ""
    description: str | None = None
    assignee: str | None = None
    start: datetime | None = None
    duration: str | None = None
    remind_before: str | None = None
    resolved: bool = False

    @property
    def event_kind(self) -> str:
        return TIMED if self.duration else ALL_DAY


@dataclass(frozen=True)
class EventReference:
    """The remote event currently synced for an issue.

    ``start`` and ``duration`` are the issue values the event's timing was
    last written from. They are bookkeeping and do not take part in equality.
    """
    event_id: str
    kind: str | None = None
    owner: str | None = None
    start: datetime | None = field(default=None, compare=False)
    duration: str | None = field(default=None, compare=False)


class IssueEventLink(SQLModel, table=True):
    """Persisted synced-event reference for an issue.

    Attributes:
        issue_id: Tracker id of the issue (primary key).
        event_id: Id of the remote calendar event.
        event_kind: Shape the event was created with, "all_day" or "timed".
        owner_user_id: User whose calendar holds the event.
        event_start: Issue start the event timing was written from, in UTC.
        event_duration: Issue duration the event timing was written from.
        updated_at: When the reference was last written.
    """
    issue_id: str = Field(primary_key=True)
    event_id: str
    event_kind: str | None = None
    owner_user_id: str | None = None
    event_start: datetime | None = None
    event_duration: str | None = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
