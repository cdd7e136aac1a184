"""Tests for ORM model constraints.

Verifies unique=True columns raise IntegrityError on duplicate inserts,
ensuring the one-row-per-remote-id guarantees are enforced at the DB level.
"""

import pytest
from datetime import date
from sqlalchemy.exc import IntegrityError

from taskmirror.models import (
    Item,
    Label,
    Project,
    Routine,
    RoutineTask,
    RoutineTaskStatus,
    PENDING_REMOTE_ID,
    SyncCursor,
    WebhookEvent,
)


class TestMirrorConstraints:

    @pytest.mark.asyncio
    async def test_duplicate_item_remote_id_raises(self, async_session):
        async_session.add(Item(remote_id="i1", content="a", sync_version=1))
        await async_session.commit()

        async_session.add(Item(remote_id="i1", content="b", sync_version=2))
        with pytest.raises(IntegrityError):
            await async_session.commit()

    @pytest.mark.asyncio
    async def test_same_remote_id_in_different_tables_allowed(self, async_session):
        async_session.add(Project(remote_id="x1", name="p", sync_version=1))
        async_session.add(Label(remote_id="x1", name="l", sync_version=1))
        await async_session.commit()


class TestSyncStateConstraints:

    @pytest.mark.asyncio
    async def test_one_cursor_per_service(self, async_session):
        async_session.add(SyncCursor(service="todoist", token="a"))
        await async_session.commit()

        async_session.add(SyncCursor(service="todoist", token="b"))
        with pytest.raises(IntegrityError):
            await async_session.commit()

    @pytest.mark.asyncio
    async def test_delivery_id_unique(self, async_session):
        async_session.add(WebhookEvent(delivery_id="d-1", event_name="item:added", status="success"))
        await async_session.commit()

        async_session.add(WebhookEvent(delivery_id="d-1", event_name="item:added", status="success"))
        with pytest.raises(IntegrityError):
            await async_session.commit()


class TestRoutineDefaults:

    @pytest.mark.asyncio
    async def test_new_routine_and_task_defaults(self, async_session):
        routine = Routine(name="Stretch", frequency="Daily", duration="5min")
        async_session.add(routine)
        await async_session.flush()
        task = RoutineTask(routine_id=routine.id, ready_date=date(2025, 3, 1), due_date=date(2025, 3, 1))
        async_session.add(task)
        await async_session.commit()

        assert routine.defer is False
        assert routine.labels == []
        assert routine.completion_rate_overall == 100
        assert routine.completion_rate_month == 100
        assert task.remote_task_id == PENDING_REMOTE_ID
        assert task.status == RoutineTaskStatus.PENDING
