"""Tests for the webhook receiver and delivery log endpoints."""

import base64
import hashlib
import hmac
import json
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from taskmirror.api.webhook import router
from taskmirror.core.config import Settings
from taskmirror.core.database import get_db
from taskmirror.models.mirror import Item
from taskmirror.models.sync_state import WebhookEvent


def _make_test_app(session):
    app = FastAPI()
    app.include_router(router)

    async def override_get_db():
        yield session

    app.dependency_overrides[get_db] = override_get_db
    return app


def _body(version="10", **event_data) -> bytes:
    return json.dumps({
        "event_name": "item:added",
        "user_id": "u-1",
        "version": version,
        "triggered_at": "2025-03-01T12:00:00Z",
        "initiator": {"id": "u-1", "email": "me@example.com"},
        "event_data": {"id": "i1", "content": "Task", "version": 1, **event_data},
    }).encode()


def _sign(body: bytes, secret: str) -> str:
    return base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()


def _settings(secret=""):
    return Settings(todoist_webhook_secret=secret, supported_webhook_versions=["10"], tz="UTC")


class TestReceiveWebhook:

    @pytest.mark.asyncio
    async def test_valid_delivery_is_processed(self, async_session):
        body = _body()
        app = _make_test_app(async_session)
        with patch("taskmirror.api.webhook.get_settings", return_value=_settings("s3cret")):
            with TestClient(app) as client:
                resp = client.post("/todoist/webhook", content=body, headers={
                    "X-Todoist-Delivery-ID": "d-1",
                    "X-Todoist-Hmac-SHA256": _sign(body, "s3cret"),
                })

        assert resp.status_code == 200
        assert resp.json() == {"status": "success"}
        item = (await async_session.execute(select(Item))).scalar_one()
        assert item.remote_id == "i1"

    @pytest.mark.asyncio
    async def test_invalid_signature_is_401_and_not_logged(self, async_session):
        body = _body()
        app = _make_test_app(async_session)
        with patch("taskmirror.api.webhook.get_settings", return_value=_settings("s3cret")):
            with TestClient(app) as client:
                resp = client.post("/todoist/webhook", content=body, headers={
                    "X-Todoist-Delivery-ID": "d-1",
                    "X-Todoist-Hmac-SHA256": _sign(body, "wrong"),
                })

        assert resp.status_code == 401
        count = (await async_session.execute(select(func.count(WebhookEvent.id)))).scalar_one()
        assert count == 0

    @pytest.mark.asyncio
    async def test_missing_delivery_id_is_400(self, async_session):
        app = _make_test_app(async_session)
        with patch("taskmirror.api.webhook.get_settings", return_value=_settings()):
            with TestClient(app) as client:
                resp = client.post("/todoist/webhook", content=_body())
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_duplicate_and_skipped_deliveries_answer_200(self, async_session):
        app = _make_test_app(async_session)
        with patch("taskmirror.api.webhook.get_settings", return_value=_settings()):
            with TestClient(app) as client:
                first = client.post("/todoist/webhook", content=_body(), headers={"X-Todoist-Delivery-ID": "d-1"})
                again = client.post("/todoist/webhook", content=_body(), headers={"X-Todoist-Delivery-ID": "d-1"})
                old = client.post("/todoist/webhook", content=_body(version="8"),
                                  headers={"X-Todoist-Delivery-ID": "d-2"})

        assert first.json() == {"status": "success"}
        assert again.status_code == 200
        assert again.json() == {"status": "duplicate"}
        assert old.status_code == 200
        assert old.json() == {"status": "skipped"}

    @pytest.mark.asyncio
    async def test_invalid_json_is_400(self, async_session):
        app = _make_test_app(async_session)
        with patch("taskmirror.api.webhook.get_settings", return_value=_settings()):
            with TestClient(app) as client:
                resp = client.post("/todoist/webhook", content=b"not json",
                                   headers={"X-Todoist-Delivery-ID": "d-1"})
        assert resp.status_code == 400


class TestListWebhookEvents:

    @pytest.mark.asyncio
    async def test_lists_and_filters_by_status(self, async_session):
        async_session.add(WebhookEvent(delivery_id="d-1", event_name="item:added", status="success"))
        async_session.add(WebhookEvent(delivery_id="d-2", event_name="item:added", status="skipped"))
        await async_session.commit()

        app = _make_test_app(async_session)
        with TestClient(app) as client:
            all_events = client.get("/api/webhooks/events").json()
            skipped = client.get("/api/webhooks/events?status=skipped").json()

        assert {e["delivery_id"] for e in all_events} == {"d-1", "d-2"}
        assert [e["delivery_id"] for e in skipped] == ["d-2"]
