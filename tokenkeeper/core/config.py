"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or .env file."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Application
    app_name: str = "Token Keeper"
    debug: bool = False
    log_file: str = ""  # Empty logs to stderr

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Database
    database_url: str = "sqlite:///./tokenkeeper.db"

    # Identity provider (OAuth2 client registration)
    sso_client_id: str = ""
    sso_client_secret: str = ""
    sso_authorize_url: str = "https://login.eveonline.com/oauth/authorize"
    sso_token_url: str = "https://login.eveonline.com/oauth/token"
    sso_verify_url: str = "https://login.eveonline.com/oauth/verify"
    sso_callback_url: str = "http://localhost:8000/auth/callback"
    sso_display_name_field: str = "CharacterName"
    http_timeout_seconds: float = 10.0

    # Token lifecycle
    pending_authorization_lifetime_minutes: int = 10
    reaper_interval_minutes: int = 5
    default_refresh_window_seconds: int = 300


settings = Settings()
