"""Application configuration loading."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    database_url: str
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"

    probe_timeout_s: float = Field(default=15.0, gt=0)
    full_sweep_every_minutes: int = Field(default=5, ge=1, le=60)
    tick_interval_s: int = Field(default=60, ge=1)
    discovery_interval_hours: int = Field(default=6, ge=1)
    cleanup_interval_hours: int = Field(default=24, ge=1)
    default_retention_days: int = Field(default=7, ge=1, le=90)

    cloudflare_email: str = ""
    cloudflare_api_key: str = ""
    cloudflare_zones_per_page: int = Field(default=50, ge=5, le=50)

    # "<bot_token>|<chat_id>"
    telegram: str = ""
    resend_api_key: str = ""
    alert_email: str = ""
    alert_email_from: str = "Uptime Monitor <onboarding@resend.dev>"

    auth_enabled: bool = Field(default=True, validation_alias="AUTH_ENABLED")
    auth_username: str = Field(default="admin", validation_alias="AUTH_USERNAME")
    auth_password: str = Field(default="change-me", validation_alias="AUTH_PASSWORD")
    session_secret_key: str = "change-me-session-secret"
    session_max_age: int = 60 * 60 * 24 * 30


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""
    return Settings()
