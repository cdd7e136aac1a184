"""Sync API endpoints."""

import logging
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc

from taskmirror.api.deps import get_todoist_client, http_error
from taskmirror.core.clock import utcnow
from taskmirror.core.config import get_settings
from taskmirror.core.database import get_db
from taskmirror.core.exceptions import TaskMirrorError
from taskmirror.models.sync_log import SyncLog
from taskmirror.schemas.responses import SyncResultResponse, SyncStatusResponse
from taskmirror.services.sync import SyncService, get_cursor, planned_sync_type
from taskmirror.services.todoist import TodoistClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.post("", response_model=SyncResultResponse)
async def run_sync(
    db: AsyncSession = Depends(get_db),
    client: TodoistClient = Depends(get_todoist_client),
):
    """Run one sync cycle now (full on first run, incremental afterwards)."""
    settings = get_settings()
    sync_service = SyncService(client, settings.tz)
    started_at = utcnow()
    sync_type = await planned_sync_type(db)

    try:
        result = await sync_service.run(db)
    except TaskMirrorError as e:
        db.add(SyncLog(
            sync_type=sync_type,
            started_at=started_at,
            completed_at=utcnow(),
            status="failed",
            error_message=str(e),
        ))
        await db.commit()
        raise http_error(e) from e

    db.add(SyncLog(
        sync_type="full" if result.full_sync else "incremental",
        started_at=started_at,
        completed_at=utcnow(),
        status="success",
        details=result.to_dict(),
    ))
    await db.commit()

    return SyncResultResponse(**result.to_dict())


@router.get("/status", response_model=SyncStatusResponse)
async def sync_status(db: AsyncSession = Depends(get_db)):
    """Get sync status - cursor timestamps and the last logged sync run."""
    cursor = await get_cursor(db)

    result = await db.execute(
        select(SyncLog)
        .where(SyncLog.sync_type != "routines")
        .order_by(desc(SyncLog.started_at), desc(SyncLog.id))
        .limit(1)
    )
    last_log = result.scalar_one_or_none()

    return SyncStatusResponse(
        has_cursor=bool(cursor and cursor.token),
        last_full_sync_at=cursor.last_full_sync_at if cursor else None,
        last_incremental_sync_at=cursor.last_incremental_sync_at if cursor else None,
        last_run_at=last_log.completed_at if last_log else None,
        last_run_status=last_log.status if last_log else "never_synced",
        last_run_details=last_log.details if last_log else None,
        last_error=last_log.error_message if last_log else None,
    )
