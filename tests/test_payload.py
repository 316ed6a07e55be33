"""Tests for building calendar event payloads."""

from datetime import UTC, date, datetime

import pytest

from issue_calendar.calendar.payload import (
    COLOR,
    MAX_REMINDER_MINUTES,
    REMINDER,
    SUMMARY,
    TIMING,
    build_event_patch,
    build_event_payload,
    event_values,
    to_google_body,
    to_relay_data,
)
from issue_calendar.core.errors import MissingStartTimeError
from issue_calendar.models import IssueSnapshot
from issue_calendar.models.issue import ALL_DAY, TIMED

START = datetime(2026, 3, 10, 14, 30, tzinfo=UTC)


def make_issue(**fields) -> IssueSnapshot:
    values = {"id": "PRJ-7", "summary": "Write report", "assignee": "alice", "start": START}
    values.update(fields)
    return IssueSnapshot(**values)


class TestBuildEventPayload:
    """Tests for building a full event from an issue."""

    def test_requires_start_time(self):
        with pytest.raises(MissingStartTimeError):
            build_event_payload(make_issue(start=None))

    def test_no_duration_is_all_day_on_start_date(self):
        event = build_event_payload(make_issue())
        assert event.kind == ALL_DAY
        assert event.timing.start_date == date(2026, 3, 10)
        assert event.timing.start is None

    def test_duration_makes_timed_event(self):
        event = build_event_payload(make_issue(duration="PT2H"))
        assert event.kind == TIMED
        assert event.timing.start == START
        assert event.timing.end == datetime(2026, 3, 10, 16, 30, tzinfo=UTC)

    def test_long_duration_is_accepted(self, caplog):
        event = build_event_payload(make_issue(duration="P2W"))
        assert event.timing.end == datetime(2026, 3, 24, 14, 30, tzinfo=UTC)
        assert "unusually long" in caplog.text

    def test_description_carries_issue_id(self):
        event = build_event_payload(make_issue(description="Quarterly numbers"))
        assert event.description == "PRJ-7\nQuarterly numbers"

    def test_description_without_issue_description(self):
        assert build_event_payload(make_issue()).description == "PRJ-7\n"

    def test_reminder_attached(self):
        assert build_event_payload(make_issue(remind_before="PT30M")).reminder_minutes == 30

    def test_reminder_clamped_to_four_weeks(self, caplog):
        # 50000 minutes is 34 days, 17 hours and 20 minutes
        event = build_event_payload(make_issue(remind_before="P34DT17H20M"))
        assert event.reminder_minutes == MAX_REMINDER_MINUTES == 40320
        assert "exceeds" in caplog.text

    @pytest.mark.parametrize("remind_before", [None, "", "garbage", "PT0S"])
    def test_unusable_reminder_disables_reminders(self, remind_before):
        event = build_event_payload(make_issue(remind_before=remind_before))
        assert event.reminder_minutes is None
        assert to_google_body(event_values(event))["reminders"] == {
            "useDefault": False,
            "overrides": [],
        }

    def test_color_from_resolution(self):
        assert build_event_payload(make_issue(resolved=True)).color_id == "2"
        assert build_event_payload(make_issue(resolved=False)).color_id is None


class TestBuildEventPatch:
    """Tests for building partial updates."""

    def test_only_requested_keys(self):
        patch = build_event_patch(make_issue(summary="Renamed"), {SUMMARY})
        assert patch == {SUMMARY: "Renamed"}

    def test_summary_patch_without_start(self):
        patch = build_event_patch(make_issue(start=None), {SUMMARY, COLOR})
        assert patch == {SUMMARY: "Write report", COLOR: None}

    def test_timing_patch_needs_start(self):
        with pytest.raises(MissingStartTimeError):
            build_event_patch(make_issue(start=None), {TIMING})

    def test_reminder_patch_can_disable(self):
        assert build_event_patch(make_issue(), {REMINDER}) == {REMINDER: None}


class TestGoogleBody:
    """Tests for the Calendar API event resource encoding."""

    def test_all_day_event(self):
        body = to_google_body(event_values(build_event_payload(make_issue())))
        assert body["start"] == {"date": "2026-03-10"}
        assert body["end"] == {"date": "2026-03-11"}
        assert "colorId" not in body

    def test_timed_event(self):
        body = to_google_body(
            event_values(build_event_payload(make_issue(duration="PT1H", remind_before="PT10M")))
        )
        assert body["start"] == {"dateTime": "2026-03-10T14:30:00+00:00", "timeZone": "UTC"}
        assert body["end"] == {"dateTime": "2026-03-10T15:30:00+00:00", "timeZone": "UTC"}
        assert body["reminders"]["overrides"] == [{"method": "popup", "minutes": 10}]

    def test_color_reset_is_sent_as_null(self):
        assert to_google_body({COLOR: None}) == {"colorId": None}

    def test_patch_only_encodes_given_keys(self):
        assert to_google_body({SUMMARY: "New title"}) == {"summary": "New title"}


class TestRelayData:
    """Tests for the relay eventData encoding."""

    def test_all_day_event(self):
        data = to_relay_data(event_values(build_event_payload(make_issue())))
        assert data["isAllDay"] is True
        assert data["startDate"] == "2026-03-10"
        assert data["reminderMinutes"] == 0

    def test_timed_event(self):
        data = to_relay_data(event_values(build_event_payload(make_issue(duration="PT45M"))))
        assert data["isAllDay"] is False
        assert data["startDateTime"] == "2026-03-10T14:30:00+00:00"
        assert data["endDateTime"] == "2026-03-10T15:15:00+00:00"

    def test_resolved_color(self):
        data = to_relay_data(event_values(build_event_payload(make_issue(resolved=True))))
        assert data["colorId"] == "2"
