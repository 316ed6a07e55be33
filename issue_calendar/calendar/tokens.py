"""OAuth token lifecycle for acting on a user's Google Calendar.

Each user goes through the same states:

    Unauthorized --authorize()--> Authorized/TokenValid
    TokenValid   --time passes--> TokenStale
    TokenStale   --refresh ok---> TokenValid
    TokenStale   --refresh fails-> access token dropped, refresh token kept

Only ``deauthorize()`` removes the refresh token.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Callable
from urllib.parse import urlencode

import requests

from issue_calendar.core.config import settings
from issue_calendar.core.errors import (
    ConfigurationError,
    NoRefreshTokenIssuedError,
    NotAuthorizedError,
    RefreshFailedError,
    TokenExchangeError,
)
from issue_calendar.stores import CredentialStore, UserCredentials

logger = logging.getLogger(__name__)

SAFETY_MARGIN = timedelta(minutes=5)

# Serializes read-check-refresh-write per user across manager instances
_refresh_locks: dict[str, threading.Lock] = {}
_refresh_locks_guard = threading.Lock()


def _lock_for(user_id: str) -> threading.Lock:
    with _refresh_locks_guard:
        return _refresh_locks.setdefault(user_id, threading.Lock())


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


@dataclass(frozen=True)
class TokenGrant:
    """Tokens issued by an authorization_code exchange."""
    access_token: str
    refresh_token: str
    expires_in: int


def build_authorization_url(
    client_id: str,
    redirect_uri: str | None = None,
    scope: str | None = None,
    auth_uri: str | None = None,
) -> str:
    """
    Build the consent URL a user opens to grant calendar access.

    ``access_type=offline`` and ``prompt=consent`` make Google issue a
    refresh token even for users who authorized before.
    """
    if not client_id:
        raise ConfigurationError("OAuth client ID not configured")

    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri or settings.google_redirect_uri,
        "scope": scope or settings.google_calendar_scope,
        "response_type": "code",
        "access_type": "offline",
        "prompt": "consent",
    }
    return f"{auth_uri or settings.google_auth_uri}?{urlencode(params)}"


def _json_or_empty(response: requests.Response) -> dict:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def exchange_code(
    code: str,
    client_id: str,
    client_secret: str,
    session: requests.Session | None = None,
    redirect_uri: str | None = None,
    token_uri: str | None = None,
    timeout: float | None = None,
) -> TokenGrant:
    """
    Exchange an authorization code for refresh and access tokens.

    Raises:
        ConfigurationError: Client id or secret missing.
        TokenExchangeError: Provider rejected the code; the message is the
            provider's error_description when it sent one.
        NoRefreshTokenIssuedError: Provider answered without a refresh token.
    """
    if not client_id or not client_secret:
        raise ConfigurationError("OAuth credentials not configured")
    if not code:
        raise TokenExchangeError("Authorization code is required")

    session = session or requests.Session()
    try:
        response = session.post(
            token_uri or settings.google_token_uri,
            data={
                "code": code,
                "client_id": client_id,
                "client_secret": client_secret,
                "redirect_uri": redirect_uri or settings.google_redirect_uri,
                "grant_type": "authorization_code",
            },
            timeout=timeout or settings.http_timeout_seconds,
        )
    except requests.RequestException as e:
        raise TokenExchangeError(f"Token endpoint unreachable: {e}")

    payload = _json_or_empty(response)

    if "error" in payload or not response.ok:
        error = payload.get("error")
        description = payload.get("error_description") or error or f"HTTP {response.status_code}"
        logger.error(f"OAuth token exchange failed: {error} - {description}")
        raise TokenExchangeError(description, error=error)

    if not payload.get("refresh_token"):
        raise NoRefreshTokenIssuedError(
            "No refresh token returned. Revoke the app's access in your Google "
            "account settings and authorize again."
        )
    if not payload.get("access_token"):
        raise TokenExchangeError("No access token returned by token endpoint")

    return TokenGrant(
        access_token=payload["access_token"],
        refresh_token=payload["refresh_token"],
        expires_in=int(payload.get("expires_in", 3600)),
    )


class TokenManager:
    """Hands out valid access tokens, refreshing them when they go stale."""

    def __init__(
        self,
        store: CredentialStore,
        client_id: str,
        client_secret: str,
        session: requests.Session | None = None,
        token_uri: str | None = None,
        timeout: float | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.client_id = client_id
        self.client_secret = client_secret
        self.session = session or requests.Session()
        self.token_uri = token_uri or settings.google_token_uri
        self.timeout = timeout or settings.http_timeout_seconds
        self.clock = clock

    @classmethod
    def from_settings(cls, store: CredentialStore, session: requests.Session | None = None):
        return cls(
            store,
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            session=session,
        )

    def get_access_token(self, user_id: str) -> str:
        """
        Return a usable access token for the user.

        A cached token is used while it is more than five minutes from
        expiry; otherwise the refresh token is exchanged for a new one.

        Raises:
            NotAuthorizedError: The user never authorized (no refresh token).
            RefreshFailedError: The provider rejected the refresh.
            ConfigurationError: Client id or secret missing.
        """
        with _lock_for(user_id):
            creds = self.store.get(user_id)
            if not creds.refresh_token:
                raise NotAuthorizedError(f"User {user_id} has not authorized calendar access")

            if self._is_fresh(creds):
                logger.debug(f"Using cached access token for {user_id}")
                return creds.access_token

            logger.info(f"Access token for {user_id} expired or missing, refreshing")
            return self._refresh(creds)

    def refresh(self, user_id: str) -> str:
        """Force a refresh regardless of the cached token's expiry."""
        with _lock_for(user_id):
            creds = self.store.get(user_id)
            if not creds.refresh_token:
                raise NotAuthorizedError(f"User {user_id} has not authorized calendar access")
            return self._refresh(creds)

    def authorize(self, user_id: str, code: str, redirect_uri: str | None = None) -> TokenGrant:
        """Complete the authorization-code flow and store the user's tokens."""
        grant = exchange_code(
            code,
            self.client_id,
            self.client_secret,
            session=self.session,
            redirect_uri=redirect_uri,
            token_uri=self.token_uri,
            timeout=self.timeout,
        )
        expiry = to_millis(self.clock()) + grant.expires_in * 1000
        with _lock_for(user_id):
            self.store.put(
                user_id,
                {
                    "refresh_token": grant.refresh_token,
                    "access_token": grant.access_token,
                    "token_expiry": expiry,
                },
            )
        logger.info(f"OAuth authorization completed for {user_id}")
        return grant

    def deauthorize(self, user_id: str) -> None:
        """Forget every token for the user."""
        with _lock_for(user_id):
            self.store.put(
                user_id, {"refresh_token": None, "access_token": None, "token_expiry": None}
            )
        logger.info(f"Cleared OAuth tokens for {user_id}")

    def status(self, user_id: str) -> dict:
        """Authorization state of the user, for display."""
        creds = self.store.get(user_id)
        now = to_millis(self.clock())
        valid = bool(creds.access_token and creds.token_expiry and creds.token_expiry > now)
        return {
            "isAuthenticated": bool(creds.refresh_token),
            "hasRefreshToken": bool(creds.refresh_token),
            "hasAccessToken": bool(creds.access_token),
            "accessTokenValid": valid,
            "tokenExpiresIn": round((creds.token_expiry - now) / 1000) if valid else 0,
        }

    def _is_fresh(self, creds: UserCredentials) -> bool:
        if not creds.access_token or not creds.token_expiry:
            return False
        return to_millis(self.clock() + SAFETY_MARGIN) < creds.token_expiry

    def _refresh(self, creds: UserCredentials) -> str:
        if not self.client_id or not self.client_secret:
            raise ConfigurationError("OAuth credentials not configured")

        try:
            response = self.session.post(
                self.token_uri,
                data={
                    "refresh_token": creds.refresh_token,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "grant_type": "refresh_token",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise RefreshFailedError(f"Token endpoint unreachable: {e}")

        if response.status_code != 200:
            logger.error(f"Token refresh failed for {creds.user_id}: {response.text}")
            self.store.put(creds.user_id, {"access_token": None, "token_expiry": None})
            raise RefreshFailedError(
                "Failed to refresh access token. User may need to re-authenticate.",
                status=response.status_code,
                body=response.text,
            )

        payload = _json_or_empty(response)
        token = payload.get("access_token")
        if not token:
            raise RefreshFailedError(
                "No access token returned during refresh",
                status=response.status_code,
                body=response.text,
            )

        expiry = to_millis(self.clock()) + int(payload.get("expires_in", 3600)) * 1000
        self.store.put(creds.user_id, {"access_token": token, "token_expiry": expiry})
        logger.info(f"Refreshed access token for {creds.user_id}")
        return token
