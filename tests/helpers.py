"""Test doubles and sample data shared by the test modules."""

import json
from datetime import UTC, datetime, timedelta

from issue_calendar.calendar.tokens import to_millis
from issue_calendar.core.errors import RequestRejectedError

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


class FakeResponse:
    """Stand-in for requests.Response."""

    def __init__(self, status_code=200, payload=None, text=None, headers=None):
        self.status_code = status_code
        self.headers = headers or {}
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self.text = text

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return json.loads(self.text)


class RecordingAdapter:
    """Calendar adapter that records calls and hands out sequential event ids."""

    def __init__(self, prefix="evt", fail_on=()):
        self.calls = []
        self.prefix = prefix
        self.fail_on = set(fail_on)
        self.calendars = []
        self._created = 0

    def _record(self, name, *args):
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise RequestRejectedError(f"{name} rejected", status=500)

    @property
    def names(self):
        return [call[0] for call in self.calls]

    def create_event(self, credentials, calendar_id, event):
        self._record("create", credentials, calendar_id, event)
        self._created += 1
        return f"{self.prefix}-{self._created}"

    def patch_event(self, credentials, calendar_id, event_id, changes):
        self._record("patch", credentials, calendar_id, event_id, changes)

    def delete_event(self, credentials, calendar_id, event_id):
        self._record("delete", credentials, calendar_id, event_id)

    def list_calendars(self, credentials):
        self._record("list", credentials)
        return self.calendars


def user_values(name: str, expires_in=timedelta(hours=1)) -> dict:
    return {
        "calendar_id": f"{name}@example.com",
        "refresh_token": f"refresh-{name}",
        "access_token": f"token-{name}",
        "token_expiry": to_millis(NOW + expires_in),
    }

