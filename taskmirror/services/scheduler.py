"""APScheduler setup for the periodic sync and daily routine jobs."""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from taskmirror.core.clock import utcnow
from taskmirror.core.config import get_settings
from taskmirror.core.database import async_session_maker
from taskmirror.services.routines import RoutineScheduler
from taskmirror.services.sync import SyncService, planned_sync_type
from taskmirror.services.todoist import TodoistClient
from taskmirror.models.sync_log import SyncLog

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: AsyncIOScheduler | None = None


def build_client() -> TodoistClient:
    settings = get_settings()
    return TodoistClient(settings.todoist_api_token, settings.todoist_api_url)


def build_routine_scheduler(client: TodoistClient) -> RoutineScheduler:
    settings = get_settings()
    return RoutineScheduler(
        client,
        settings.tz,
        default_project_id=settings.default_routine_project_id,
        lead_days=settings.routine_lead_days,
    )


async def run_scheduled_sync():
    """Run one Todoist sync cycle and log it."""
    settings = get_settings()
    logger.info("Starting scheduled sync job")

    client = build_client()
    sync_service = SyncService(client, settings.tz)
    started_at = utcnow()

    async with async_session_maker() as session:
        sync_type = await planned_sync_type(session)
        try:
            result = await sync_service.run(session)

            session.add(SyncLog(
                sync_type="full" if result.full_sync else "incremental",
                started_at=started_at,
                completed_at=utcnow(),
                status="success",
                details={"change_count": result.change_count, "sync_token": result.sync_token},
            ))
            await session.commit()

            logger.info(f"Scheduled sync completed: {result.change_count} changes")
        except Exception as e:
            logger.error(f"Scheduled sync failed: {e}")

            session.add(SyncLog(
                sync_type=sync_type,
                started_at=started_at,
                completed_at=utcnow(),
                status="failed",
                error_message=str(e),
            ))
            await session.commit()
        finally:
            await client.close()


async def run_scheduled_routines():
    """Run the daily routine aging and generation pass and log it."""
    logger.info("Starting scheduled routine job")

    client = build_client()
    routine_scheduler = build_routine_scheduler(client)
    started_at = utcnow()

    async with async_session_maker() as session:
        try:
            summary = await routine_scheduler.run(session)

            session.add(SyncLog(
                sync_type="routines",
                started_at=started_at,
                completed_at=utcnow(),
                status="partial" if summary.errors else "success",
                details=summary.to_dict(),
            ))
            await session.commit()
        except Exception as e:
            logger.error(f"Scheduled routine run failed: {e}")
            await session.rollback()

            session.add(SyncLog(
                sync_type="routines",
                started_at=started_at,
                completed_at=utcnow(),
                status="failed",
                error_message=str(e),
            ))
            await session.commit()
        finally:
            await client.close()


def start_scheduler():
    """Start the APScheduler."""
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already started")
        return

    settings = get_settings()
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled by configuration")
        return

    scheduler = AsyncIOScheduler(timezone=settings.tz)

    scheduler.add_job(
        run_scheduled_sync,
        IntervalTrigger(minutes=settings.sync_interval_minutes),
        id="todoist_sync",
        name="Todoist sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    scheduler.add_job(
        run_scheduled_routines,
        CronTrigger(hour=settings.routine_hour, minute=settings.routine_minute, timezone=settings.tz),
        id="daily_routines",
        name="Daily routine task generation",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    logger.info(
        f"Scheduler started - sync every {settings.sync_interval_minutes} min, "
        f"routines daily at {settings.routine_hour:02d}:{settings.routine_minute:02d} {settings.tz}"
    )


def stop_scheduler():
    """Stop the APScheduler."""
    global scheduler

    if scheduler is not None:
        scheduler.shutdown()
        scheduler = None
        logger.info("Scheduler stopped")
