"""Tests for webhook ingestion and signature verification."""

import base64
import hashlib
import hmac
from datetime import date

import pytest
from sqlalchemy import func, select

from taskmirror.models.mirror import Item, Project
from taskmirror.models.routines import Routine, RoutineTask, RoutineTaskStatus
from taskmirror.models.sync_state import WebhookEvent
from taskmirror.services.webhook import (
    WebhookDelivery,
    WebhookIngestor,
    WebhookOutcome,
    apply_event_semantics,
    verify_signature,
)


def delivery(delivery_id="d-1", event_name="item:added", protocol="10", entity_version=1, **event_data):
    return WebhookDelivery(delivery_id=delivery_id, body={
        "event_name": event_name,
        "user_id": "u-1",
        "version": protocol,
        "triggered_at": "2025-03-01T12:00:00Z",
        "initiator": {"id": "u-1", "email": "me@example.com"},
        "event_data": {"id": "i1", "content": "Task", "version": entity_version, **event_data},
    })


@pytest.fixture
def ingestor():
    return WebhookIngestor(["10"], "UTC")


async def count_events(session) -> int:
    return (await session.execute(select(func.count(WebhookEvent.id)))).scalar_one()


class TestIngest:

    @pytest.mark.asyncio
    async def test_item_added_is_mirrored_and_logged(self, async_session, ingestor):
        outcome = await ingestor.ingest(async_session, delivery())
        assert outcome is WebhookOutcome.SUCCESS

        stored = (await async_session.execute(select(Item))).scalar_one()
        assert stored.remote_id == "i1"
        assert stored.content == "Task"

        event = (await async_session.execute(select(WebhookEvent))).scalar_one()
        assert event.status == "success"
        assert event.entity_id == "i1"
        assert event.entity_type == "item"
        assert event.initiator_email == "me@example.com"
        assert event.processing_time_ms is not None

    @pytest.mark.asyncio
    async def test_duplicate_delivery_is_ignored(self, async_session, ingestor):
        await ingestor.ingest(async_session, delivery(content="original"))
        outcome = await ingestor.ingest(async_session, delivery(content="changed", entity_version=2))

        assert outcome is WebhookOutcome.DUPLICATE
        assert await count_events(async_session) == 1
        stored = (await async_session.execute(select(Item))).scalar_one()
        assert stored.content == "original"

    @pytest.mark.asyncio
    async def test_duplicate_with_newer_version_still_ignored(self, async_session, ingestor):
        await ingestor.ingest(async_session, delivery())
        replay = delivery()
        replay.body["event_data"]["version"] = 99
        replay.body["event_data"]["content"] = "replayed"

        assert await ingestor.ingest(async_session, replay) is WebhookOutcome.DUPLICATE
        stored = (await async_session.execute(select(Item))).scalar_one()
        assert stored.sync_version == 1

    @pytest.mark.asyncio
    async def test_unsupported_version_is_skipped_without_mutation(self, async_session, ingestor):
        outcome = await ingestor.ingest(async_session, delivery(protocol="9"))

        assert outcome is WebhookOutcome.SKIPPED
        assert (await async_session.execute(select(Item))).scalars().all() == []
        event = (await async_session.execute(select(WebhookEvent))).scalar_one()
        assert event.status == "skipped"
        assert "version" in event.error_message

    @pytest.mark.asyncio
    async def test_unknown_entity_prefix_is_skipped(self, async_session, ingestor):
        outcome = await ingestor.ingest(async_session, delivery(event_name="filter:added"))
        assert outcome is WebhookOutcome.SKIPPED

    @pytest.mark.asyncio
    async def test_malformed_payload_is_logged_failed(self, async_session, ingestor):
        bad = delivery()
        bad.body["event_data"] = {"content": "no id"}

        outcome = await ingestor.ingest(async_session, bad)

        assert outcome is WebhookOutcome.FAILED
        event = (await async_session.execute(select(WebhookEvent))).scalar_one()
        assert event.status == "failed"
        assert "id" in event.error_message
        assert (await async_session.execute(select(Item))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_out_of_order_deliveries_keep_newest(self, async_session, ingestor):
        await ingestor.ingest(async_session, delivery("d-2", "item:updated", content="newer", entity_version=5))
        await ingestor.ingest(async_session, delivery("d-1", "item:updated", content="older", entity_version=3))

        stored = (await async_session.execute(select(Item))).scalar_one()
        assert stored.content == "newer"
        assert await count_events(async_session) == 2

    @pytest.mark.asyncio
    async def test_project_archived(self, async_session, ingestor):
        d = WebhookDelivery(delivery_id="d-p", body={
            "event_name": "project:archived",
            "version": "10",
            "event_data": {"id": "p1", "name": "Old", "version": 2},
        })
        assert await ingestor.ingest(async_session, d) is WebhookOutcome.SUCCESS

        project = (await async_session.execute(select(Project))).scalar_one()
        assert project.is_archived == 1
        assert project.is_deleted == 0

    @pytest.mark.asyncio
    async def test_item_completed_completes_routine_task(self, async_session, ingestor):
        routine = Routine(name="Stretch", frequency="Daily", duration="15min")
        async_session.add(routine)
        await async_session.flush()
        async_session.add(RoutineTask(
            routine_id=routine.id,
            remote_task_id="i1",
            ready_date=date(2025, 3, 1),
            due_date=date(2025, 3, 1),
            status=RoutineTaskStatus.PENDING,
        ))
        await async_session.commit()

        await ingestor.ingest(async_session, delivery(event_name="item:completed", entity_version=2))

        task = (await async_session.execute(select(RoutineTask))).scalar_one()
        assert task.status == RoutineTaskStatus.COMPLETED


class TestEventSemantics:

    def test_deleted_sets_flag(self):
        assert apply_event_semantics("label:deleted", {"id": "l1"}, None)["is_deleted"] is True

    def test_completed_uses_trigger_time(self):
        payload = apply_event_semantics("item:completed", {"id": "i1"}, "2025-03-01T12:00:00Z")
        assert payload["checked"] is True
        assert payload["completed_at"] == "2025-03-01T12:00:00Z"

    def test_uncompleted_clears_completion(self):
        payload = apply_event_semantics("item:uncompleted", {"id": "i1", "completed_at": "x"}, None)
        assert payload["checked"] is False
        assert payload["completed_at"] is None

    def test_unarchived_clears_flag(self):
        assert apply_event_semantics("project:unarchived", {"id": "p1"}, None)["is_archived"] is False

    def test_event_data_is_not_mutated(self):
        data = {"id": "i1"}
        apply_event_semantics("item:deleted", data, None)
        assert data == {"id": "i1"}


class TestVerifySignature:

    def _sign(self, body: bytes, secret: str) -> str:
        return base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()

    def test_valid_signature(self):
        body = b'{"event_name":"item:added"}'
        assert verify_signature(body, self._sign(body, "s3cret"), "s3cret")

    def test_wrong_secret(self):
        body = b'{"event_name":"item:added"}'
        assert not verify_signature(body, self._sign(body, "other"), "s3cret")

    def test_tampered_body(self):
        signature = self._sign(b'{"a":1}', "s3cret")
        assert not verify_signature(b'{"a":2}', signature, "s3cret")

    def test_missing_signature(self):
        assert not verify_signature(b"{}", None, "s3cret")
