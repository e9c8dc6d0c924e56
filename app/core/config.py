"""Application configuration."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_name: str = "safewake"
    debug: bool = False
    api_prefix: str = "/api"

    # Record store: "sql" (SQLAlchemy) or "memory"
    store_backend: str = "sql"
    database_url: str = "sqlite:///./safewake.db"

    # Zone that anchors the alarm's HH:MM time-of-day
    timezone: str = "UTC"

    # Escalation reconciler
    reconciler_enabled: bool = False
    reconcile_interval_seconds: int = 120

    # WhatsApp gateway (empty url -> messages are only logged)
    whatsapp_gateway_url: str = ""
    whatsapp_gateway_token: str = ""
    notify_max_attempts: int = 3
    notify_backoff_seconds: float = 1.0

    # Client-side alarm clock
    api_base_url: str = "http://localhost:8000"


settings = Settings()
