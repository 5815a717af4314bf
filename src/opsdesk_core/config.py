"""Application settings loaded from environment variables."""
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """OpsDesk Core settings.

    Every field can be overridden with an ``OPSDESK_``-prefixed environment
    variable (e.g. ``OPSDESK_DATABASE_URL``).
    """

    model_config = SettingsConfigDict(
        env_prefix="OPSDESK_",
        env_file=".env",
        extra="ignore",
    )

    database_url: str = "sqlite:///./opsdesk.db"
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    # Fallbacks used when a playbook step cannot be fully resolved
    default_sla_value: int = Field(1, ge=0)
    default_sla_unit: str = "days"
    fallback_task_title: str = "Unknown task"
    fallback_department_name: str = "General"
    fallback_department_id: Optional[str] = None

    # Author recorded on automatic incident log entries
    system_user: str = "system"


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return Settings()
