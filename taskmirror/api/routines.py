"""Routine management endpoints."""

import logging
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc

from taskmirror.api.deps import get_todoist_client, http_error
from taskmirror.core.clock import utcnow
from taskmirror.core.config import get_settings
from taskmirror.core.database import get_db
from taskmirror.core.exceptions import TaskMirrorError
from taskmirror.models.routines import Routine, RoutineTask, RoutineTaskStatus
from taskmirror.models.sync_log import SyncLog
from taskmirror.schemas.responses import (
    ClearPendingResponse,
    RoutineCreate,
    RoutineResponse,
    RoutineRunResponse,
    RoutineTaskResponse,
    RoutineUpdate,
)
from taskmirror.services import routines as routine_service
from taskmirror.services.todoist import TodoistClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/routines", tags=["routines"])

# Columns that cannot be set to null by a partial update
NON_NULLABLE_FIELDS = {"name", "frequency", "duration", "labels", "priority"}


@router.get("", response_model=list[RoutineResponse])
async def list_routines(include_deferred: bool = True, db: AsyncSession = Depends(get_db)):
    """All routines, oldest first."""
    query = select(Routine).order_by(Routine.created_at, Routine.id)
    if not include_deferred:
        query = query.where(Routine.defer.is_(False))
    result = await db.execute(query)
    return result.scalars().all()


@router.post("", response_model=RoutineResponse, status_code=201)
async def create_routine(request: RoutineCreate, db: AsyncSession = Depends(get_db)):
    """Create a routine. Its first task is generated on the next scheduler pass."""
    now = utcnow()
    routine = Routine(**request.model_dump(), created_at=now, updated_at=now)
    db.add(routine)
    await db.commit()
    logger.info(f"Created routine {routine.id} '{routine.name}' ({routine.frequency})")
    return routine


@router.post("/generate", response_model=RoutineRunResponse)
async def generate_routine_tasks(
    db: AsyncSession = Depends(get_db),
    client: TodoistClient = Depends(get_todoist_client),
):
    """Run the aging and generation pass now. Safe to call repeatedly."""
    try:
        client.ensure_configured()
    except TaskMirrorError as e:
        raise http_error(e) from e

    settings = get_settings()
    scheduler = routine_service.RoutineScheduler(
        client,
        settings.tz,
        default_project_id=settings.default_routine_project_id,
        lead_days=settings.routine_lead_days,
    )
    started_at = utcnow()
    summary = await scheduler.run(db)

    db.add(SyncLog(
        sync_type="routines",
        started_at=started_at,
        completed_at=utcnow(),
        status="partial" if summary.errors else "success",
        details=summary.to_dict(),
    ))
    await db.commit()
    return RoutineRunResponse(**summary.to_dict())


@router.delete("/tasks/pending", response_model=ClearPendingResponse)
async def clear_pending_tasks(
    db: AsyncSession = Depends(get_db),
    client: TodoistClient = Depends(get_todoist_client),
):
    """Delete every pending routine task, remotely first."""
    try:
        client.ensure_configured()
    except TaskMirrorError as e:
        raise http_error(e) from e

    summary = await routine_service.clear_pending_routine_tasks(db, client, get_settings().tz)
    return ClearPendingResponse(
        deleted=summary.deleted,
        failed=summary.failed,
        skipped=summary.skipped,
        routines_recalculated=summary.routines_recalculated,
    )


@router.post("/tasks/{task_id}/skip", response_model=RoutineTaskResponse)
async def skip_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    client: TodoistClient = Depends(get_todoist_client),
):
    """Skip a pending routine task and close it in Todoist."""
    try:
        return await routine_service.skip_routine_task(db, client, task_id, get_settings().tz)
    except TaskMirrorError as e:
        raise http_error(e) from e


@router.get("/{routine_id}", response_model=RoutineResponse)
async def get_routine(routine_id: int, db: AsyncSession = Depends(get_db)):
    try:
        return await routine_service.get_routine(db, routine_id)
    except TaskMirrorError as e:
        raise http_error(e) from e


@router.patch("/{routine_id}", response_model=RoutineResponse)
async def update_routine(routine_id: int, request: RoutineUpdate, db: AsyncSession = Depends(get_db)):
    """Update the fields present in the request body."""
    try:
        routine = await routine_service.get_routine(db, routine_id)
    except TaskMirrorError as e:
        raise http_error(e) from e

    changes = request.model_dump(exclude_unset=True)
    null_fields = sorted(k for k, v in changes.items() if v is None and k in NON_NULLABLE_FIELDS)
    if null_fields:
        raise HTTPException(status_code=422, detail=f"Fields cannot be null: {', '.join(null_fields)}")

    for key, value in changes.items():
        setattr(routine, key, value)
    routine.updated_at = utcnow()
    await db.commit()
    return routine


@router.delete("/{routine_id}", status_code=204)
async def delete_routine(routine_id: int, db: AsyncSession = Depends(get_db)):
    """Delete a routine and its task history."""
    try:
        await routine_service.delete_routine(db, routine_id)
    except TaskMirrorError as e:
        raise http_error(e) from e


@router.post("/{routine_id}/defer", response_model=RoutineResponse)
async def defer_routine(routine_id: int, db: AsyncSession = Depends(get_db)):
    """Pause task generation for a routine."""
    try:
        return await routine_service.defer_routine(db, routine_id)
    except TaskMirrorError as e:
        raise http_error(e) from e


@router.post("/{routine_id}/undefer", response_model=RoutineResponse)
async def undefer_routine(routine_id: int, db: AsyncSession = Depends(get_db)):
    """Resume task generation for a routine."""
    try:
        return await routine_service.undefer_routine(db, routine_id)
    except TaskMirrorError as e:
        raise http_error(e) from e


@router.get("/{routine_id}/tasks", response_model=list[RoutineTaskResponse])
async def list_routine_tasks(
    routine_id: int,
    status: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Task history of a routine, newest first."""
    try:
        await routine_service.get_routine(db, routine_id)
    except TaskMirrorError as e:
        raise http_error(e) from e

    if status is not None and status not in RoutineTaskStatus.ALL:
        raise HTTPException(status_code=422, detail=f"Unknown status: {status}")

    query = (
        select(RoutineTask)
        .where(RoutineTask.routine_id == routine_id)
        .order_by(desc(RoutineTask.ready_date), desc(RoutineTask.id))
    )
    if status is not None:
        query = query.where(RoutineTask.status == status)
    result = await db.execute(query)
    return result.scalars().all()
