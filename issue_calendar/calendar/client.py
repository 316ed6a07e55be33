"""Google Calendar transports.

Two adapters implement the same calendar operations:

- ``GoogleCalendarAdapter`` calls the Calendar API directly with the
  user's OAuth access token.
- ``RelayCalendarAdapter`` POSTs to a user-deployed Apps Script web app
  that performs the call with the user's own Google session. Apps Script
  answers the POST with a 302 to a one-off "echo" URL that serves the JSON
  result, so the redirect is followed by hand.

``CalendarGateway`` picks the adapter and credentials for a user.
"""
import html
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

import google_auth_httplib2
import httplib2
import requests
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from issue_calendar.calendar.payload import (
    CalendarEvent,
    event_values,
    to_google_body,
    to_relay_data,
)
from issue_calendar.calendar.tokens import TokenManager
from issue_calendar.core.config import settings
from issue_calendar.core.errors import (
    ApiError,
    ConfigurationError,
    InvalidResponseBodyError,
    RelayRedirectUnresolvedError,
    RequestRejectedError,
)
from issue_calendar.stores import CredentialStore

logger = logging.getLogger(__name__)

# Title of Apps Script's redirect page, which may arrive with any status
REDIRECT_MARKER = "Moved Temporarily"

# Tried in order against the redirect page body
HREF_PATTERNS = [
    re.compile(r'HREF="([^"]+)"'),
    re.compile(r'href="([^"]+)"'),
    re.compile(r"href=([^\s>\"']+)", re.IGNORECASE),
]
ECHO_URL_PATTERN = re.compile(r"https://script\.googleusercontent\.com/macros/echo\?[^\"'>\s]+")


@dataclass(frozen=True)
class CalendarInfo:
    """A calendar visible to the user."""
    id: str
    name: str
    is_primary: bool = False
    access_role: str | None = None


@dataclass(frozen=True)
class RelayCredentials:
    url: str
    api_key: str


@dataclass(frozen=True)
class RelayDirect:
    """The relay answered with its result body."""
    body: str


@dataclass(frozen=True)
class RelayRedirect:
    """The relay answered with a redirect; ``location`` is None if unrecoverable."""
    location: str | None


class CalendarAdapter(Protocol):
    def create_event(self, credentials: Any, calendar_id: str, event: CalendarEvent) -> str: ...

    def patch_event(
        self, credentials: Any, calendar_id: str, event_id: str, changes: dict[str, Any]
    ) -> None: ...

    def delete_event(self, credentials: Any, calendar_id: str, event_id: str) -> None: ...

    def list_calendars(self, credentials: Any) -> list[CalendarInfo]: ...


def header_value(headers: Mapping[str, str] | None, name: str) -> str | None:
    """Case-insensitive header lookup that also works on plain dicts."""
    if not headers:
        return None
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def find_redirect_url(body: str | None) -> str | None:
    """
    Recover the redirect target from an HTML redirect page.

    Tries an uppercase ``HREF="..."``, a lowercase ``href="..."`` and an
    unquoted ``href=...`` in that order, then any bare Apps Script echo URL.
    HTML entities (``&amp;``) are decoded.
    """
    if not body:
        return None

    for pattern in HREF_PATTERNS:
        match = pattern.search(body)
        if match:
            return html.unescape(match.group(1))

    match = ECHO_URL_PATTERN.search(body)
    if match:
        return html.unescape(match.group(0))
    return None


def classify_relay_response(
    status: int | None, headers: Mapping[str, str] | None, body: str | None
) -> RelayDirect | RelayRedirect:
    """
    Decide whether a relay response is the result or a redirect to it.

    A 3xx status is a redirect, and so is a body carrying the redirect page
    marker whatever the status. The target comes from the Location header
    first and the HTML body second.
    """
    body = body or ""
    is_redirect = (status is not None and 300 <= status < 400) or REDIRECT_MARKER in body

    if not is_redirect:
        return RelayDirect(body)

    location = header_value(headers, "Location") or find_redirect_url(body)
    return RelayRedirect(location)


def parse_relay_body(body: str | None, status: int | None = None) -> dict:
    """
    Validate a relay result body.

    Every result is a JSON object with a boolean ``success``. A false
    success carries the relay's ``error`` text.
    """
    if not body or not body.strip():
        raise InvalidResponseBodyError("Empty response from relay", status=status)

    try:
        data = json.loads(body)
    except ValueError:
        logger.error(f"Failed to parse relay response: {body[:500]}")
        if status and status >= 400:
            raise RequestRejectedError(f"Relay: HTTP {status}", status=status, body=body)
        raise InvalidResponseBodyError("Invalid response from relay", status=status, body=body)

    if not isinstance(data, dict) or not isinstance(data.get("success"), bool):
        raise InvalidResponseBodyError(
            "Relay response has no success flag", status=status, body=body
        )

    if not data["success"]:
        raise RequestRejectedError(
            data.get("error") or "Relay call failed", status=status, body=body
        )
    return data


class RelayCalendarAdapter:
    """Calendar operations through a user's Apps Script relay."""

    def __init__(self, session: requests.Session | None = None, timeout: float | None = None):
        self.session = session or requests.Session()
        self.timeout = timeout or settings.http_timeout_seconds

    def call(self, credentials: RelayCredentials, action: str, **params: Any) -> dict:
        """
        POST one action to the relay and return its validated JSON result.

        Raises:
            RelayRedirectUnresolvedError: Redirected with no usable target URL.
            InvalidResponseBodyError: Empty or non-JSON result.
            RequestRejectedError: Result with ``success: false``.
            ApiError: Network failure.
        """
        logger.info(f"Relay call: {action}")
        payload = {"apiKey": credentials.api_key, "action": action, **params}

        try:
            response = self.session.post(
                credentials.url,
                json=payload,
                allow_redirects=False,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ApiError(f"Relay: cannot connect to {credentials.url}: {e}")

        outcome = classify_relay_response(response.status_code, response.headers, response.text)

        if isinstance(outcome, RelayDirect):
            return parse_relay_body(outcome.body, response.status_code)

        if not outcome.location:
            logger.error(f"Relay redirect without target: {(response.text or '')[:500]}")
            raise RelayRedirectUnresolvedError(
                "Received redirect but could not find redirect URL. "
                "Check the relay deployment settings.",
                status=response.status_code,
                body=response.text or "",
            )

        logger.debug(f"Following relay redirect to {outcome.location}")
        try:
            final = self.session.get(outcome.location, timeout=self.timeout)
        except requests.RequestException as e:
            raise ApiError(f"Relay: redirect target unreachable: {e}")
        return parse_relay_body(final.text, final.status_code)

    def test_connection(self, credentials: RelayCredentials) -> dict:
        return self.call(credentials, "test")

    def list_calendars(self, credentials: RelayCredentials) -> list[CalendarInfo]:
        data = self.call(credentials, "list-calendars")
        return [
            CalendarInfo(
                id=item["id"],
                name=item.get("summary", item["id"]),
                is_primary=bool(item.get("primary")),
                access_role=item.get("accessRole"),
            )
            for item in data.get("calendars", [])
        ]

    def create_event(
        self, credentials: RelayCredentials, calendar_id: str, event: CalendarEvent
    ) -> str:
        data = self.call(
            credentials,
            "create",
            calendarId=calendar_id,
            eventData=to_relay_data(event_values(event)),
        )
        event_id = data.get("eventId")
        if not event_id:
            raise InvalidResponseBodyError("Relay create returned no eventId", body=json.dumps(data))
        return event_id

    def patch_event(
        self,
        credentials: RelayCredentials,
        calendar_id: str,
        event_id: str,
        changes: dict[str, Any],
    ) -> None:
        self.call(
            credentials,
            "update",
            eventId=event_id,
            calendarId=calendar_id,
            eventData=to_relay_data(changes),
        )

    def delete_event(self, credentials: RelayCredentials, calendar_id: str, event_id: str) -> None:
        self.call(credentials, "delete", eventId=event_id, calendarId=calendar_id)


class GoogleCalendarAdapter:
    """Calendar operations against the Google Calendar API."""

    def __init__(self, http=None, timeout: float | None = None):
        # ``http`` replaces the authorized transport, for tests
        self.http = http
        self.timeout = timeout or settings.http_timeout_seconds

    def _service(self, access_token: str):
        if self.http is not None:
            return build("calendar", "v3", http=self.http, cache_discovery=False)

        authed_http = google_auth_httplib2.AuthorizedHttp(
            Credentials(token=access_token),
            http=httplib2.Http(timeout=self.timeout),
        )
        return build("calendar", "v3", http=authed_http, cache_discovery=False)

    def _execute(self, request, operation: str):
        try:
            return request.execute()
        except HttpError as e:
            content = e.content.decode("utf-8", "replace") if isinstance(e.content, bytes) else str(e.content)
            raise RequestRejectedError(
                f"Google Calendar {operation} failed: HTTP {e.resp.status}",
                status=e.resp.status,
                body=content,
            )
        except ValueError as e:
            raise InvalidResponseBodyError(f"Google Calendar {operation}: invalid response body: {e}")
        except (httplib2.HttpLib2Error, OSError) as e:
            raise ApiError(f"Google Calendar {operation}: cannot connect: {e}")

    def _expect_object(self, result, operation: str) -> dict:
        if not isinstance(result, dict):
            raise InvalidResponseBodyError(
                f"Google Calendar {operation}: invalid response body", body=str(result)[:500]
            )
        return result

    def create_event(self, access_token: str, calendar_id: str, event: CalendarEvent) -> str:
        service = self._service(access_token)
        request = service.events().insert(
            calendarId=calendar_id, body=to_google_body(event_values(event))
        )
        result = self._expect_object(self._execute(request, "create"), "create")
        if "id" not in result:
            raise InvalidResponseBodyError("Google Calendar create returned no event id")
        return result["id"]

    def patch_event(
        self, access_token: str, calendar_id: str, event_id: str, changes: dict[str, Any]
    ) -> None:
        service = self._service(access_token)
        request = service.events().patch(
            calendarId=calendar_id, eventId=event_id, body=to_google_body(changes)
        )
        self._expect_object(self._execute(request, "patch"), "patch")

    def delete_event(self, access_token: str, calendar_id: str, event_id: str) -> None:
        # 204 No Content is the success answer; the body is ignored
        service = self._service(access_token)
        self._execute(service.events().delete(calendarId=calendar_id, eventId=event_id), "delete")

    def list_calendars(self, access_token: str) -> list[CalendarInfo]:
        service = self._service(access_token)
        result = self._expect_object(
            self._execute(service.calendarList().list(), "list calendars"), "list calendars"
        )
        return [
            CalendarInfo(
                id=item["id"],
                name=item.get("summaryOverride") or item.get("summary", item["id"]),
                is_primary=bool(item.get("primary")),
                access_role=item.get("accessRole"),
            )
            for item in result.get("items", [])
        ]


@dataclass
class CalendarConnection:
    """An adapter bound to one user's credentials and calendar."""
    user_id: str
    adapter: CalendarAdapter
    credentials: Any
    calendar_id: str | None

    @property
    def transport(self) -> str:
        return "relay" if isinstance(self.credentials, RelayCredentials) else "direct"

    def _require_calendar(self) -> str:
        if not self.calendar_id:
            raise ConfigurationError(
                f"Google Calendar ID not configured for user {self.user_id}"
            )
        return self.calendar_id

    def create_event(self, event: CalendarEvent) -> str:
        return self.adapter.create_event(self.credentials, self._require_calendar(), event)

    def patch_event(self, event_id: str, changes: dict[str, Any]) -> None:
        self.adapter.patch_event(self.credentials, self._require_calendar(), event_id, changes)

    def delete_event(self, event_id: str) -> None:
        self.adapter.delete_event(self.credentials, self._require_calendar(), event_id)

    def list_calendars(self) -> list[CalendarInfo]:
        return self.adapter.list_calendars(self.credentials)


class CalendarGateway:
    """Resolves which transport and credentials to use for a user.

    Users with both a relay URL and API key go through the relay; everyone
    else goes through the direct API with an OAuth access token.
    """

    def __init__(
        self,
        store: CredentialStore,
        tokens: TokenManager,
        direct: CalendarAdapter | None = None,
        relay: CalendarAdapter | None = None,
    ):
        self.store = store
        self.tokens = tokens
        self.direct = direct or GoogleCalendarAdapter()
        self.relay = relay or RelayCalendarAdapter()

    def connect(self, user_id: str) -> CalendarConnection:
        """
        Raises:
            ConfigurationError: Relay half-configured.
            AuthError: Direct path and no usable OAuth grant.
        """
        creds = self.store.get(user_id)

        if bool(creds.relay_url) != bool(creds.relay_api_key):
            raise ConfigurationError(
                f"Relay not fully configured for user {user_id}: "
                "both the relay URL and API key are required"
            )

        if creds.has_relay:
            return CalendarConnection(
                user_id=user_id,
                adapter=self.relay,
                credentials=RelayCredentials(url=creds.relay_url, api_key=creds.relay_api_key),
                calendar_id=creds.calendar_id,
            )

        return CalendarConnection(
            user_id=user_id,
            adapter=self.direct,
            credentials=self.tokens.get_access_token(user_id),
            calendar_id=creds.calendar_id,
        )
