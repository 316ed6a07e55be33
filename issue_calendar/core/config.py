"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or .env file."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Application
    app_name: str = "Issue Calendar Sync"
    debug: bool = False
    log_file: str = ""  # Defaults to ~/.logs/issue-calendar/latest.log

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    allowed_origins: str = "*"  # Comma-separated origins, or "*" for all

    # Database
    database_url: str = "sqlite:///./issue_calendar.db"

    # Google OAuth
    google_client_id: str = ""
    google_client_secret: str = ""
    google_auth_uri: str = "https://accounts.google.com/o/oauth2/v2/auth"
    google_token_uri: str = "https://oauth2.googleapis.com/token"
    google_redirect_uri: str = "urn:ietf:wg:oauth:2.0:oob"
    google_calendar_scope: str = "https://www.googleapis.com/auth/calendar"

    # Calendar sync
    http_timeout_seconds: float = 30.0
    event_time_zone: str = "UTC"
    resolved_color_id: str = "2"  # Sage


settings = Settings()
