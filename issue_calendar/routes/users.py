"""Per-user calendar configuration routes."""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from issue_calendar.calendar.client import CalendarGateway, RelayCredentials
from issue_calendar.core.dependencies import (
    get_credential_store,
    get_gateway,
    to_http_exception,
)
from issue_calendar.core.errors import ConfigurationError, SyncError
from issue_calendar.stores import SqlCredentialStore

router = APIRouter(prefix="/users", tags=["users"])


class CalendarConfig(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    calendar_id: str | None = None
    relay_url: str | None = None
    relay_api_key: str | None = None


@router.get("/{user_id}/calendar")
def get_calendar_config(
    user_id: str, store: SqlCredentialStore = Depends(get_credential_store)
):
    """Show the user's calendar configuration without exposing secrets."""
    creds = store.get(user_id)
    return {
        "calendarId": creds.calendar_id,
        "relayUrl": creds.relay_url,
        "hasRelayApiKey": bool(creds.relay_api_key),
        "authorized": bool(creds.refresh_token),
    }


@router.put("/{user_id}/calendar")
def update_calendar_config(
    user_id: str,
    config: CalendarConfig,
    store: SqlCredentialStore = Depends(get_credential_store),
):
    """Set the calendar id and/or relay settings; omitted fields are left alone."""
    patch = config.model_dump(exclude_unset=True)
    # Empty strings clear a setting
    patch = {name: value or None for name, value in patch.items()}
    store.put(user_id, patch)
    return {"success": True}


@router.get("/{user_id}/calendars")
def list_calendars(user_id: str, gateway: CalendarGateway = Depends(get_gateway)):
    """List the calendars the user can pick from."""
    try:
        calendars = gateway.connect(user_id).list_calendars()
    except SyncError as e:
        raise to_http_exception(e)

    return {
        "calendars": [
            {
                "id": calendar.id,
                "name": calendar.name,
                "isPrimary": calendar.is_primary,
                "accessRole": calendar.access_role,
            }
            for calendar in calendars
        ]
    }


@router.post("/{user_id}/relay/test")
def test_relay(user_id: str, gateway: CalendarGateway = Depends(get_gateway)):
    """Run the relay's test action with the stored URL and API key."""
    creds = gateway.store.get(user_id)
    try:
        if not creds.has_relay:
            raise ConfigurationError(f"Relay not configured for user {user_id}")
        result = gateway.relay.test_connection(
            RelayCredentials(url=creds.relay_url, api_key=creds.relay_api_key)
        )
    except SyncError as e:
        raise to_http_exception(e)
    return result
