from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Database
    db_path: str = "/data/taskmirror.db"

    # Todoist credentials
    todoist_api_token: str = ""
    todoist_api_url: str = "https://api.todoist.com/api/v1"
    todoist_webhook_secret: str = ""
    supported_webhook_versions: list[str] = ["10"]

    # Routines
    default_routine_project_id: str | None = None
    routine_lead_days: int = 0

    # Optional settings
    tz: str = "America/Los_Angeles"
    sync_interval_minutes: int = 5
    routine_hour: int = 0
    routine_minute: int = 0
    scheduler_enabled: bool = True
    debug: bool = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
