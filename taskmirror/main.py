from contextlib import asynccontextmanager
from fastapi import FastAPI

from taskmirror.core.database import init_db
from taskmirror.api import config, routines, sync, webhook
from taskmirror.services.scheduler import start_scheduler, stop_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events."""
    # Startup
    await init_db()
    start_scheduler()
    yield
    # Shutdown
    stop_scheduler()


# Create FastAPI application
app = FastAPI(
    title="Task Mirror",
    description="Local Todoist mirror with routine task generation",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(config.router)
app.include_router(sync.router)
app.include_router(webhook.router)
app.include_router(routines.router)
