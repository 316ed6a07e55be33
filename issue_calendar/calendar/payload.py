"""Build calendar event payloads from issue snapshots.

The builder produces one canonical ``CalendarEvent``. The two transports
want different wire shapes for it, so each has its own encoder:

    to_google_body()  -> {"start": {"date" | "dateTime"}, "reminders": ...}
    to_relay_data()   -> {"isAllDay", "startDate" | "startDateTime", ...}

Both encoders accept either a full event (via ``event_values``) or the
partial dict produced by ``build_event_patch``; only the keys present are
encoded, which is what makes a PATCH carry just the changed fields.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from issue_calendar.calendar.period import describe_minutes, parse_period
from issue_calendar.core.errors import MissingStartTimeError
from issue_calendar.models.issue import ALL_DAY, TIMED, IssueSnapshot

logger = logging.getLogger(__name__)

# Google Calendar rejects reminders more than 4 weeks ahead
MAX_REMINDER_MINUTES = 40320
LONG_EVENT_MINUTES = 10080

# Keys of a partial event payload
SUMMARY = "summary"
DESCRIPTION = "description"
TIMING = "timing"
REMINDER = "reminder_minutes"
COLOR = "color_id"


@dataclass(frozen=True)
class EventTiming:
    """When an event happens: either a whole day or a start/end pair."""
    all_day: bool
    start_date: date | None = None
    start: datetime | None = None
    end: datetime | None = None
    time_zone: str = "UTC"

    @property
    def kind(self) -> str:
        return ALL_DAY if self.all_day else TIMED


@dataclass(frozen=True)
class CalendarEvent:
    """Canonical calendar event for one issue.

    ``reminder_minutes`` of None means reminders are explicitly disabled
    (no popup, no calendar default). ``color_id`` of None means the
    calendar's default color.
    """
    summary: str
    description: str
    timing: EventTiming
    reminder_minutes: int | None = None
    color_id: str | None = None

    @property
    def kind(self) -> str:
        return self.timing.kind


def build_description(issue: IssueSnapshot) -> str:
    return f"{issue.id}\n{issue.description or ''}"


def build_color(issue: IssueSnapshot, resolved_color_id: str = "2") -> str | None:
    return resolved_color_id if issue.resolved else None


def build_timing(issue: IssueSnapshot, time_zone: str = "UTC") -> EventTiming:
    """
    Derive event timing from start time and duration.

    No duration means an all-day event on the start's calendar date. With a
    duration the event is timed and ends at start + duration.
    """
    if issue.start is None:
        raise MissingStartTimeError(
            f"Cannot build a calendar event for {issue.id}: issue has no start time"
        )

    if not issue.duration:
        logger.debug(f"No duration on {issue.id}, using an all-day event")
        return EventTiming(all_day=True, start_date=issue.start.date(), time_zone=time_zone)

    minutes = parse_period(issue.duration)
    if not minutes:
        logger.warning(
            f"Duration {issue.duration!r} on {issue.id} is not usable, "
            "creating a zero-length event"
        )
        minutes = 0
    elif minutes > LONG_EVENT_MINUTES:
        logger.warning(
            f"Event duration of {describe_minutes(minutes)} on {issue.id} "
            "is unusually long for a calendar event"
        )

    return EventTiming(
        all_day=False,
        start=issue.start,
        end=issue.start + timedelta(minutes=minutes),
        time_zone=time_zone,
    )


def build_reminder(issue: IssueSnapshot) -> int | None:
    """Reminder lead time in minutes, clamped to 4 weeks; None disables reminders."""
    minutes = parse_period(issue.remind_before)
    if not minutes:
        if issue.remind_before:
            logger.info(f"Reminder {issue.remind_before!r} on {issue.id} not usable, disabling")
        return None

    if minutes > MAX_REMINDER_MINUTES:
        logger.warning(
            f"Reminder of {describe_minutes(minutes)} on {issue.id} exceeds the "
            "4 week maximum, using 4 weeks"
        )
        return MAX_REMINDER_MINUTES
    return minutes


def build_event_payload(
    issue: IssueSnapshot,
    time_zone: str = "UTC",
    resolved_color_id: str = "2",
) -> CalendarEvent:
    """
    Turn an issue snapshot into a calendar event.

    Raises:
        MissingStartTimeError: The issue is unscheduled.
    """
    return CalendarEvent(
        summary=issue.summary,
        description=build_description(issue),
        timing=build_timing(issue, time_zone),
        reminder_minutes=build_reminder(issue),
        color_id=build_color(issue, resolved_color_id),
    )


def build_event_patch(
    issue: IssueSnapshot,
    changed: set[str],
    time_zone: str = "UTC",
    resolved_color_id: str = "2",
) -> dict[str, Any]:
    """
    Build only the payload keys named in ``changed``.

    Timing is the only key that needs a start time, so a summary or color
    patch still works for an issue whose start is missing.
    """
    values: dict[str, Any] = {}
    if SUMMARY in changed:
        values[SUMMARY] = issue.summary
    if DESCRIPTION in changed:
        values[DESCRIPTION] = build_description(issue)
    if TIMING in changed:
        values[TIMING] = build_timing(issue, time_zone)
    if REMINDER in changed:
        values[REMINDER] = build_reminder(issue)
    if COLOR in changed:
        values[COLOR] = build_color(issue, resolved_color_id)
    return values


def event_values(event: CalendarEvent) -> dict[str, Any]:
    """Full key set for a new event; a default color is left out."""
    values = {
        SUMMARY: event.summary,
        DESCRIPTION: event.description,
        TIMING: event.timing,
        REMINDER: event.reminder_minutes,
    }
    if event.color_id is not None:
        values[COLOR] = event.color_id
    return values


def to_google_body(values: dict[str, Any]) -> dict[str, Any]:
    """Encode event values as a Google Calendar API event resource."""
    body: dict[str, Any] = {}

    if SUMMARY in values:
        body["summary"] = values[SUMMARY]
    if DESCRIPTION in values:
        body["description"] = values[DESCRIPTION]

    if TIMING in values:
        timing: EventTiming = values[TIMING]
        if timing.all_day:
            # All-day end dates are exclusive
            body["start"] = {"date": timing.start_date.isoformat()}
            body["end"] = {"date": (timing.start_date + timedelta(days=1)).isoformat()}
        else:
            body["start"] = {"dateTime": timing.start.isoformat(), "timeZone": timing.time_zone}
            body["end"] = {"dateTime": timing.end.isoformat(), "timeZone": timing.time_zone}

    if REMINDER in values:
        minutes = values[REMINDER]
        body["reminders"] = {
            "useDefault": False,
            "overrides": [{"method": "popup", "minutes": minutes}] if minutes else [],
        }

    if COLOR in values:
        body["colorId"] = values[COLOR]

    return body


def to_relay_data(values: dict[str, Any]) -> dict[str, Any]:
    """Encode event values in the relay script's eventData shape."""
    data: dict[str, Any] = {}

    if SUMMARY in values:
        data["summary"] = values[SUMMARY]
    if DESCRIPTION in values:
        data["description"] = values[DESCRIPTION]

    if TIMING in values:
        timing: EventTiming = values[TIMING]
        data["isAllDay"] = timing.all_day
        if timing.all_day:
            data["startDate"] = timing.start_date.isoformat()
        else:
            data["startDateTime"] = timing.start.isoformat()
            data["endDateTime"] = timing.end.isoformat()

    if REMINDER in values:
        data["reminderMinutes"] = values[REMINDER] or 0

    if COLOR in values:
        data["colorId"] = values[COLOR]

    return data
