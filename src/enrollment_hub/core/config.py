"""
Application Configuration

Settings are loaded from environment variables (and an optional .env file)
using pydantic-settings. Import the module-level ``settings`` instance, or use
``get_settings()`` as a FastAPI dependency.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the Enrollment Hub API."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment
    python_env: str = "development"

    # Storage
    database_url: str = "sqlite+aiosqlite:///./enrollment_hub.db"
    database_echo: bool = False
    database_auto_create: bool = True
    redis_url: str = "redis://localhost:6379/0"

    # HTTP
    cors_origins: str = "http://localhost:3000"

    # Waitlist offer policy
    offer_window_hours: int = Field(default=24, ge=1)
    offer_reminder_hours: int = Field(default=4, ge=0)
    offer_sweep_interval_minutes: int = Field(default=5, ge=1)

    # Inbound request throttling (per student)
    enrollment_rate_limit: int = Field(default=10, ge=1)
    enrollment_rate_window_seconds: int = Field(default=60, ge=1)

    # Realtime
    broadcast_send_timeout_seconds: float = 5.0

    # Notification delivery
    resend_api_key: str | None = None
    email_from: str = "Enrollment Hub <noreply@enrollmenthub.dev>"
    frontend_url: str = "http://localhost:3000"
    student_email_domain: str | None = None

    @property
    def is_development(self) -> bool:
        return self.python_env.lower() == "development"

    @property
    def is_production(self) -> bool:
        return self.python_env.lower() == "production"

    @property
    def cors_origins_list(self) -> list[str]:
        """CORS origins as a list (comma separated in the environment)."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return Settings()


settings = get_settings()
