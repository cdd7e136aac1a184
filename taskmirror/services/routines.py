"""Routine task lifecycle and the daily routine scheduler.

The scheduler runs in two phases: aging (pending instances become deferred or
missed) and generation (the next instance is created for routines whose
occurrence has arrived). A routine has at most one pending instance at a time.

Remote creation and the local link are not atomic. The instance row is
committed first with the ``PENDING`` placeholder id and the command uuid of
the remote create; a later pass resumes that create with the same uuid
instead of generating a new instance.
"""

import logging
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskmirror.core.clock import local_today, to_local_date, utcnow
from taskmirror.core.exceptions import NotFoundError, TaskMirrorError
from taskmirror.models.mirror import Item
from taskmirror.models.routines import (
    PENDING_REMOTE_ID,
    Routine,
    RoutineTask,
    RoutineTaskStatus,
)
from taskmirror.services.completion import refresh_completion_rates
from taskmirror.services.occurrence import (
    DURATION_MINUTES,
    due_date_for,
    next_ready_date,
    time_of_day_label,
    was_recently_resumed,
)
from taskmirror.services.payloads import ResourceType
from taskmirror.services.reconciler import get_entity
from taskmirror.services.todoist import TodoistClient

logger = logging.getLogger(__name__)

ROUTINE_LABEL = "routine"
# Pending instances this many days past due are marked missed
MISSED_AFTER_DAYS = 2


@dataclass
class RoutineRunSummary:
    routines_processed: int = 0
    tasks_created: int = 0
    tasks_missed: int = 0
    tasks_deferred: int = 0
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ClearSummary:
    deleted: int = 0
    failed: int = 0
    skipped: int = 0
    routines_recalculated: int = 0


def _parse_remote_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable completion timestamp {value!r}")
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


async def get_pending_task(session: AsyncSession, routine_id: int) -> RoutineTask | None:
    result = await session.execute(
        select(RoutineTask)
        .where(
            RoutineTask.routine_id == routine_id,
            RoutineTask.status == RoutineTaskStatus.PENDING,
        )
        .order_by(RoutineTask.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_routine_task_by_remote_id(session: AsyncSession, remote_task_id: str) -> RoutineTask | None:
    if remote_task_id == PENDING_REMOTE_ID:
        return None
    result = await session.execute(
        select(RoutineTask).where(RoutineTask.remote_task_id == remote_task_id)
    )
    return result.scalars().first()


async def latest_completion(session: AsyncSession, routine_id: int) -> datetime | None:
    """Most recent completion among the routine's completed instances."""
    result = await session.execute(
        select(func.max(RoutineTask.completed_date)).where(
            RoutineTask.routine_id == routine_id,
            RoutineTask.status == RoutineTaskStatus.COMPLETED,
        )
    )
    return result.scalar_one_or_none()


def _set_status(task: RoutineTask, status: str, now: datetime) -> None:
    task.status = status
    task.updated_at = now


async def observe_item(session: AsyncSession, item: Item, tz: str) -> RoutineTask | None:
    """
    Move the RoutineTask linked to ``item`` to match the remote task's state.

    - checked while pending -> completed (and the routine's last completion)
    - deleted while pending -> skipped
    - unchecked while completed -> pending and the routine's last completion
      is recomputed, unless the routine already has another pending instance

    Terminal missed/skipped/deferred instances are left alone. Returns the
    RoutineTask when its status changed. Does not commit.
    """
    task = await get_routine_task_by_remote_id(session, item.remote_id)
    if task is None:
        return None

    now = utcnow()
    previous = task.status

    if task.status == RoutineTaskStatus.PENDING and item.is_deleted:
        _set_status(task, RoutineTaskStatus.SKIPPED, now)
    elif task.status == RoutineTaskStatus.PENDING and item.checked:
        completed = _parse_remote_timestamp(item.completed_at) or now
        _set_status(task, RoutineTaskStatus.COMPLETED, now)
        task.completed_date = completed
        routine = await session.get(Routine, task.routine_id)
        if routine is not None and (
            routine.last_completed_date is None or routine.last_completed_date < completed
        ):
            routine.last_completed_date = completed
    elif task.status == RoutineTaskStatus.COMPLETED and not item.checked and not item.is_deleted:
        other = await get_pending_task(session, task.routine_id)
        if other is not None:
            logger.warning(
                f"Ignoring uncompletion of routine task {task.id}: "
                f"routine {task.routine_id} already has pending task {other.id}"
            )
            return None
        _set_status(task, RoutineTaskStatus.PENDING, now)
        task.completed_date = None
        await session.flush()
        routine = await session.get(Routine, task.routine_id)
        if routine is not None:
            routine.last_completed_date = await latest_completion(session, task.routine_id)
    else:
        return None

    logger.info(f"Routine task {task.id} {previous} -> {task.status} (remote task {item.remote_id})")
    await refresh_completion_rates(session, task.routine_id, local_today(tz), tz)
    return task


def build_task_args(routine: Routine, task: RoutineTask, default_project_id: str | None) -> dict[str, Any]:
    """Arguments for the remote ``item_add`` command of a routine instance."""
    labels = [label for label in (routine.labels or []) if label != ROUTINE_LABEL]
    labels.append(ROUTINE_LABEL)
    if routine.time_of_day:
        tod_label = time_of_day_label(routine.time_of_day)
        if tod_label not in labels:
            labels.append(tod_label)

    args: dict[str, Any] = {
        "content": routine.name,
        "labels": labels,
        "priority": routine.priority,
        "due": {"date": task.ready_date.isoformat()},
    }
    if routine.description:
        args["description"] = routine.description
    if task.due_date != task.ready_date:
        args["deadline"] = {"date": task.due_date.isoformat()}
    project_id = routine.project_id or default_project_id
    if project_id:
        args["project_id"] = project_id
    minutes = DURATION_MINUTES.get(routine.duration)
    if minutes:
        args["duration"] = {"amount": minutes, "unit": "minute"}
    return args


class RoutineScheduler:
    """Ages and generates routine task instances."""

    def __init__(
        self,
        client: TodoistClient,
        timezone: str,
        default_project_id: str | None = None,
        lead_days: int = 0,
    ):
        self.client = client
        self.timezone = timezone
        self.default_project_id = default_project_id
        self.lead_days = lead_days

    def _today(self) -> date:
        return local_today(self.timezone)

    async def age_tasks(self, session: AsyncSession, summary: RoutineRunSummary, today: date) -> set[int]:
        """
        Aging phase.

        Pending instances of deferred routines become deferred; pending
        instances more than two days past due become missed and their remote
        task is completed. A failed remote completion is reported but the
        local transition stands.

        Returns ids of routines whose instances changed.
        """
        result = await session.execute(
            select(RoutineTask, Routine)
            .join(Routine, Routine.id == RoutineTask.routine_id)
            .where(RoutineTask.status == RoutineTaskStatus.PENDING)
        )
        rows = result.all()
        now = utcnow()
        affected: set[int] = set()
        to_complete: list[RoutineTask] = []

        for task, routine in rows:
            if routine.defer:
                _set_status(task, RoutineTaskStatus.DEFERRED, now)
                summary.tasks_deferred += 1
                affected.add(routine.id)
            elif (today - task.due_date).days > MISSED_AFTER_DAYS:
                _set_status(task, RoutineTaskStatus.MISSED, now)
                summary.tasks_missed += 1
                affected.add(routine.id)
                if task.remote_task_id != PENDING_REMOTE_ID:
                    to_complete.append(task)

        for routine_id in affected:
            await refresh_completion_rates(session, routine_id, today, self.timezone)
        await session.commit()

        for task in to_complete:
            try:
                await self.client.complete_task(task.remote_task_id)
            except TaskMirrorError as e:
                logger.warning(f"Failed to complete missed task {task.remote_task_id} remotely: {e}")
                summary.errors.append(f"complete {task.remote_task_id}: {e}")

        logger.info(
            f"Aging: {summary.tasks_missed} missed, {summary.tasks_deferred} deferred "
            f"across {len(affected)} routines"
        )
        return affected

    async def _create_remote(self, session: AsyncSession, routine: Routine, task: RoutineTask) -> str:
        if not task.create_command_uuid:
            task.create_command_uuid = str(uuid.uuid4())
            await session.commit()
        args = build_task_args(routine, task, self.default_project_id)
        remote_id = await self.client.add_task(args, command_uuid=task.create_command_uuid)
        task.remote_task_id = remote_id
        task.updated_at = utcnow()
        await session.flush()

        # The item may have been mirrored before the link existed
        item = await get_entity(session, ResourceType.ITEM, remote_id)
        if item is not None:
            await observe_item(session, item, self.timezone)
        await session.commit()
        return remote_id

    async def generate_for_routine(self, session: AsyncSession, routine: Routine, today: date) -> int:
        """
        Generation phase for a single routine.

        Returns the number of remote tasks created (0 or 1).
        """
        if routine.defer:
            return 0

        pending = await get_pending_task(session, routine.id)
        if pending is not None:
            if pending.remote_task_id != PENDING_REMOTE_ID:
                return 0
            logger.info(f"Resuming in-flight generation of routine task {pending.id} for '{routine.name}'")
            await self._create_remote(session, routine, pending)
            return 1

        last_completed = (
            to_local_date(routine.last_completed_date, self.timezone)
            if routine.last_completed_date else None
        )
        ready = next_ready_date(
            routine.frequency,
            today,
            last_completed=last_completed,
            ideal_day=routine.ideal_day,
            recently_resumed=was_recently_resumed(routine.resumed_at, utcnow()),
        )
        if ready > today + timedelta(days=self.lead_days):
            return 0

        now = utcnow()
        task = RoutineTask(
            routine_id=routine.id,
            remote_task_id=PENDING_REMOTE_ID,
            create_command_uuid=str(uuid.uuid4()),
            ready_date=ready,
            due_date=due_date_for(ready, routine.frequency, routine.time_of_day),
            status=RoutineTaskStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        session.add(task)
        await session.commit()

        remote_id = await self._create_remote(session, routine, task)
        logger.info(f"Generated routine task {task.id} for '{routine.name}' ready {ready} -> {remote_id}")
        return 1

    async def generate_tasks(self, session: AsyncSession, summary: RoutineRunSummary, today: date) -> None:
        """Generation phase for every active routine; per-routine errors are isolated."""
        result = await session.execute(
            select(Routine.id).where(Routine.defer.is_(False)).order_by(Routine.created_at, Routine.id)
        )
        routine_ids = result.scalars().all()

        # Rows are re-fetched per routine; a rollback expires everything loaded before it
        for routine_id in routine_ids:
            routine = await session.get(Routine, routine_id)
            if routine is None:
                continue
            summary.routines_processed += 1
            name = routine.name
            try:
                summary.tasks_created += await self.generate_for_routine(session, routine, today)
            except Exception as e:
                logger.error(f"Routine generation failed for '{name}': {e}")
                summary.errors.append(f"{name}: {e}")
                await session.rollback()

    async def run(self, session: AsyncSession, today: date | None = None) -> RoutineRunSummary:
        """Run aging then generation. Safe to invoke repeatedly."""
        started = time.monotonic()
        today = today or self._today()
        summary = RoutineRunSummary()
        logger.info(f"Running routine scheduler for {today}")

        await self.age_tasks(session, summary, today)
        await self.generate_tasks(session, summary, today)

        summary.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Routine scheduler complete: {summary.routines_processed} routines, "
            f"{summary.tasks_created} created, {summary.tasks_missed} missed"
            + (f" (errors: {summary.errors})" if summary.errors else "")
        )
        return summary


async def get_routine(session: AsyncSession, routine_id: int) -> Routine:
    routine = await session.get(Routine, routine_id)
    if routine is None:
        raise NotFoundError(f"Routine {routine_id} not found")
    return routine


async def get_routine_task(session: AsyncSession, routine_task_id: int) -> RoutineTask:
    task = await session.get(RoutineTask, routine_task_id)
    if task is None:
        raise NotFoundError(f"Routine task {routine_task_id} not found")
    return task


async def defer_routine(session: AsyncSession, routine_id: int) -> Routine:
    """Pause generation. Pending instances become deferred on the next aging pass."""
    routine = await get_routine(session, routine_id)
    now = utcnow()
    routine.defer = True
    routine.deferral_date = now
    routine.updated_at = now
    await session.commit()
    return routine


async def undefer_routine(session: AsyncSession, routine_id: int) -> Routine:
    """Resume generation. Already-deferred instances stay deferred."""
    routine = await get_routine(session, routine_id)
    now = utcnow()
    routine.defer = False
    routine.deferral_date = None
    routine.resumed_at = now
    routine.updated_at = now
    await session.commit()
    return routine


async def delete_routine(session: AsyncSession, routine_id: int) -> None:
    """Delete a routine and all of its instances."""
    routine = await get_routine(session, routine_id)
    await session.execute(delete(RoutineTask).where(RoutineTask.routine_id == routine_id))
    await session.delete(routine)
    await session.commit()
    logger.info(f"Deleted routine {routine_id} and its tasks")


async def skip_routine_task(
    session: AsyncSession, client: TodoistClient, routine_task_id: int, tz: str
) -> RoutineTask:
    """
    User skip: a pending instance becomes skipped and its remote task is
    closed. A remote failure is logged; the local skip stands.
    """
    task = await get_routine_task(session, routine_task_id)
    if task.status != RoutineTaskStatus.PENDING:
        return task

    _set_status(task, RoutineTaskStatus.SKIPPED, utcnow())
    await refresh_completion_rates(session, task.routine_id, local_today(tz), tz)
    await session.commit()

    if task.remote_task_id != PENDING_REMOTE_ID:
        try:
            await client.close_task(task.remote_task_id)
        except TaskMirrorError as e:
            logger.warning(f"Skipped routine task {task.id} but closing {task.remote_task_id} failed: {e}")
    return task


async def clear_pending_routine_tasks(session: AsyncSession, client: TodoistClient, tz: str) -> ClearSummary:
    """
    Delete every pending routine task.

    Linked remote tasks are deleted first; a row whose remote delete fails is
    kept. Placeholder rows are removed locally only.
    """
    result = await session.execute(
        select(RoutineTask).where(RoutineTask.status == RoutineTaskStatus.PENDING)
    )
    pending = result.scalars().all()
    summary = ClearSummary()
    affected: set[int] = set()

    for task in pending:
        affected.add(task.routine_id)
        if task.remote_task_id == PENDING_REMOTE_ID:
            await session.delete(task)
            summary.skipped += 1
            continue
        try:
            await client.delete_task(task.remote_task_id)
        except TaskMirrorError as e:
            logger.error(f"Failed to delete remote task {task.remote_task_id}: {e}")
            summary.failed += 1
            continue

        item = (await session.execute(
            select(Item).where(Item.remote_id == task.remote_task_id)
        )).scalar_one_or_none()
        if item is not None:
            item.is_deleted = 1
        await session.delete(task)
        summary.deleted += 1

    await session.flush()
    today = local_today(tz)
    for routine_id in affected:
        await refresh_completion_rates(session, routine_id, today, tz)
        summary.routines_recalculated += 1
    await session.commit()

    logger.info(f"Cleared pending routine tasks: {summary}")
    return summary
