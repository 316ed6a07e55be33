"""Error taxonomy for calendar synchronization.

Every failure raised by the token manager, the protocol adapters or the
event builder is a ``SyncError``. Call sites match on the subclass rather
than probing for optional attributes:

- ``ConfigurationError``: something the user or operator has to set up
  (client id/secret, calendar id, relay credentials). Never retried.
- ``AuthError``: the OAuth grant is missing or was rejected.
- ``ApiError``: the provider or relay answered with something other than
  a usable success. Carries the upstream status and body.
- ``ParseError``: input could not be turned into calendar data.
"""


class SyncError(Exception):
    """Base class for calendar sync failures.

    ``operation`` and ``user_id`` are filled in by the lifecycle controller
    so a single log line carries the full context of the failed call.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.operation: str | None = None
        self.user_id: str | None = None

    def with_context(self, operation: str, user_id: str | None) -> "SyncError":
        self.operation = operation
        self.user_id = user_id
        return self


class ConfigurationError(SyncError):
    """Missing client credentials, calendar id or relay configuration."""


class AuthError(SyncError):
    """The user's OAuth grant cannot produce an access token."""


class NotAuthorizedError(AuthError):
    """No refresh token is stored for the user."""


class RefreshFailedError(AuthError):
    """The token endpoint rejected a refresh_token grant."""

    def __init__(self, message: str, status: int | None = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class TokenExchangeError(AuthError):
    """The token endpoint rejected an authorization_code grant.

    ``str(error)`` is the provider's error_description when it sent one.
    """

    def __init__(self, message: str, error: str | None = None):
        super().__init__(message)
        self.error = error


class NoRefreshTokenIssuedError(AuthError):
    """Code exchange succeeded but the provider issued no refresh token.

    Happens when the user re-authorizes without revoking earlier consent.
    """


class ApiError(SyncError):
    """Non-success answer from the calendar provider or the relay."""

    def __init__(self, message: str, status: int | None = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class RequestRejectedError(ApiError):
    """The remote side refused the request (non-2xx or success=false)."""


class InvalidResponseBodyError(ApiError):
    """A response body was empty or not the JSON we expected."""


class RelayRedirectUnresolvedError(ApiError):
    """The relay redirected but no target URL could be recovered."""


class ParseError(SyncError):
    """Issue data could not be converted into calendar data."""


class MissingStartTimeError(ParseError):
    """An event payload was requested for an issue without a start time."""
