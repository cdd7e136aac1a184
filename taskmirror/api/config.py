from fastapi import APIRouter
from pydantic import BaseModel

from taskmirror.core.config import get_settings

router = APIRouter(prefix="/api", tags=["config"])


class HealthResponse(BaseModel):
    status: str
    version: str


class ConfigResponse(BaseModel):
    db_path: str
    todoist_api_url: str
    todoist_token_configured: bool
    webhook_secret_configured: bool
    supported_webhook_versions: list[str]
    default_routine_project_id: str | None
    routine_lead_days: int
    tz: str
    sync_interval_minutes: int
    routine_hour: int
    routine_minute: int
    scheduler_enabled: bool
    debug: bool


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="ok", version="0.1.0")


@router.get("/config", response_model=ConfigResponse)
async def get_config() -> ConfigResponse:
    """Get current configuration (secrets reported only as configured or not)."""
    settings = get_settings()
    return ConfigResponse(
        db_path=settings.db_path,
        todoist_api_url=settings.todoist_api_url,
        todoist_token_configured=bool(settings.todoist_api_token),
        webhook_secret_configured=bool(settings.todoist_webhook_secret),
        supported_webhook_versions=settings.supported_webhook_versions,
        default_routine_project_id=settings.default_routine_project_id,
        routine_lead_days=settings.routine_lead_days,
        tz=settings.tz,
        sync_interval_minutes=settings.sync_interval_minutes,
        routine_hour=settings.routine_hour,
        routine_minute=settings.routine_minute,
        scheduler_enabled=settings.scheduler_enabled,
        debug=settings.debug,
    )
