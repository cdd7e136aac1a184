"""Routine completion rates."""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskmirror.core.clock import to_local_date
from taskmirror.core.exceptions import NotFoundError
from taskmirror.models.routines import Routine, RoutineTask, RoutineTaskStatus

logger = logging.getLogger(__name__)

MONTH_WINDOW_DAYS = 30


@dataclass
class CompletionRates:
    overall: int
    month: int
    completed: int
    missed: int
    skipped: int


def _rate(completed: int, resolved: int) -> int:
    # An unstarted routine is not penalized
    if resolved == 0:
        return 100
    # Integer half-up rounding of completed / resolved * 100
    return (completed * 200 + resolved) // (2 * resolved)


def _reference_date(task: RoutineTask, tz: str) -> date:
    if task.completed_date is not None:
        return to_local_date(task.completed_date, tz)
    return task.ready_date


def compute_completion_rates(tasks: Iterable[RoutineTask], today: date, tz: str = "UTC") -> CompletionRates:
    """
    Overall and trailing-30-day completion percentages.

    rate = completed / (completed + missed + skipped) * 100, rounded. Pending
    and deferred instances do not count. The monthly window uses the
    local completion date, or the ready date for instances never completed.
    """
    window_start = today - timedelta(days=MONTH_WINDOW_DAYS)
    counts = {status: 0 for status in RoutineTaskStatus.RESOLVED}
    month_counts = {status: 0 for status in RoutineTaskStatus.RESOLVED}

    for task in tasks:
        if task.status not in counts:
            continue
        counts[task.status] += 1
        if _reference_date(task, tz) >= window_start:
            month_counts[task.status] += 1

    return CompletionRates(
        overall=_rate(counts[RoutineTaskStatus.COMPLETED], sum(counts.values())),
        month=_rate(month_counts[RoutineTaskStatus.COMPLETED], sum(month_counts.values())),
        completed=counts[RoutineTaskStatus.COMPLETED],
        missed=counts[RoutineTaskStatus.MISSED],
        skipped=counts[RoutineTaskStatus.SKIPPED],
    )


async def refresh_completion_rates(
    session: AsyncSession, routine_id: int, today: date, tz: str = "UTC"
) -> CompletionRates:
    """Recompute and store the completion rates of one routine. Does not commit."""
    routine = await session.get(Routine, routine_id)
    if routine is None:
        raise NotFoundError(f"Routine {routine_id} not found")

    result = await session.execute(select(RoutineTask).where(RoutineTask.routine_id == routine_id))
    rates = compute_completion_rates(result.scalars().all(), today, tz)

    routine.completion_rate_overall = rates.overall
    routine.completion_rate_month = rates.month
    await session.flush()

    logger.debug(f"Routine {routine_id} completion: overall={rates.overall}% month={rates.month}%")
    return rates
