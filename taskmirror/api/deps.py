"""Shared API dependencies."""

from typing import AsyncGenerator

from fastapi import HTTPException

from taskmirror.core.config import get_settings
from taskmirror.core.exceptions import (
    ConfigurationError,
    NotFoundError,
    RemoteAPIError,
    TaskMirrorError,
)
from taskmirror.services.todoist import TodoistClient


async def get_todoist_client() -> AsyncGenerator[TodoistClient, None]:
    """Dependency for FastAPI to get a Todoist client, closed after the request."""
    settings = get_settings()
    client = TodoistClient(settings.todoist_api_token, settings.todoist_api_url)
    try:
        yield client
    finally:
        await client.close()


def http_error(e: TaskMirrorError) -> HTTPException:
    """Map a domain error onto its HTTP status."""
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ConfigurationError):
        return HTTPException(status_code=503, detail=str(e))
    if isinstance(e, RemoteAPIError):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))
