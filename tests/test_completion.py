"""Tests for routine completion rates."""

from datetime import date, datetime, timedelta

import pytest

from taskmirror.core.exceptions import NotFoundError
from taskmirror.models.routines import Routine, RoutineTask, RoutineTaskStatus
from taskmirror.services.completion import compute_completion_rates, refresh_completion_rates

TODAY = date(2025, 3, 31)


def make_task(status, ready=TODAY, completed=None):
    return RoutineTask(
        routine_id=1,
        remote_task_id="x",
        ready_date=ready,
        due_date=ready,
        status=status,
        completed_date=completed,
    )


def tasks_of(completed=0, missed=0, skipped=0, pending=0, deferred=0, ready=TODAY):
    tasks = []
    tasks += [make_task(RoutineTaskStatus.COMPLETED, ready, datetime.combine(ready, datetime.min.time()))
              for _ in range(completed)]
    tasks += [make_task(RoutineTaskStatus.MISSED, ready) for _ in range(missed)]
    tasks += [make_task(RoutineTaskStatus.SKIPPED, ready) for _ in range(skipped)]
    tasks += [make_task(RoutineTaskStatus.PENDING, ready) for _ in range(pending)]
    tasks += [make_task(RoutineTaskStatus.DEFERRED, ready) for _ in range(deferred)]
    return tasks


class TestComputeCompletionRates:

    def test_seven_of_ten(self):
        rates = compute_completion_rates(tasks_of(completed=7, missed=2, skipped=1), TODAY)
        assert rates.overall == 70
        assert rates.month == 70
        assert (rates.completed, rates.missed, rates.skipped) == (7, 2, 1)

    def test_no_resolved_tasks_defaults_to_100(self):
        rates = compute_completion_rates(tasks_of(pending=1, deferred=2), TODAY)
        assert rates.overall == 100
        assert rates.month == 100

    def test_empty(self):
        assert compute_completion_rates([], TODAY).overall == 100

    def test_pending_and_deferred_do_not_count(self):
        rates = compute_completion_rates(tasks_of(completed=1, missed=1, pending=3, deferred=3), TODAY)
        assert rates.overall == 50

    def test_rounds_half_up(self):
        # 1/8 = 12.5%
        assert compute_completion_rates(tasks_of(completed=1, missed=7), TODAY).overall == 13
        # 2/3 = 66.67%
        assert compute_completion_rates(tasks_of(completed=2, skipped=1), TODAY).overall == 67

    def test_bounds(self):
        assert compute_completion_rates(tasks_of(missed=4), TODAY).overall == 0
        assert compute_completion_rates(tasks_of(completed=4), TODAY).overall == 100

    def test_month_window(self):
        old = TODAY - timedelta(days=45)
        tasks = tasks_of(missed=3, ready=old) + tasks_of(completed=1, ready=TODAY)
        rates = compute_completion_rates(tasks, TODAY)
        assert rates.overall == 25
        assert rates.month == 100

    def test_month_window_uses_completion_date(self):
        # Ready long ago but completed recently
        task = make_task(RoutineTaskStatus.COMPLETED, TODAY - timedelta(days=60), datetime(2025, 3, 30, 9, 0))
        rates = compute_completion_rates([task] + tasks_of(missed=1, ready=TODAY - timedelta(days=60)), TODAY)
        assert rates.month == 100
        assert rates.overall == 50

    def test_month_window_uses_local_completion_date(self):
        # 23:30 UTC on Feb 28 is already March 1 in Berlin, the first day of the window
        task = make_task(RoutineTaskStatus.COMPLETED, TODAY - timedelta(days=40), datetime(2025, 2, 28, 23, 30))
        tasks = [task] + tasks_of(missed=1)

        assert compute_completion_rates(tasks, TODAY, "Europe/Berlin").month == 50
        assert compute_completion_rates(tasks, TODAY, "UTC").month == 0


class TestRefreshCompletionRates:

    @pytest.mark.asyncio
    async def test_writes_rates_to_routine(self, async_session):
        routine = Routine(name="Read", frequency="Daily", duration="30min")
        async_session.add(routine)
        await async_session.flush()
        for task in tasks_of(completed=7, missed=2, skipped=1):
            task.routine_id = routine.id
            async_session.add(task)
        await async_session.flush()

        rates = await refresh_completion_rates(async_session, routine.id, TODAY)

        assert rates.overall == 70
        assert routine.completion_rate_overall == 70
        assert routine.completion_rate_month == 70

    @pytest.mark.asyncio
    async def test_missing_routine_raises(self, async_session):
        with pytest.raises(NotFoundError):
            await refresh_completion_rates(async_session, 999, TODAY)
