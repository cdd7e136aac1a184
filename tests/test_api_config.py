"""Tests for the health and config endpoints."""

from unittest.mock import patch

from fastapi import FastAPI
from fastapi.testclient import TestClient

from taskmirror.api.config import router
from taskmirror.core.config import Settings


def _make_test_app():
    app = FastAPI()
    app.include_router(router)
    return app


class TestConfigEndpoints:

    def test_health(self):
        with TestClient(_make_test_app()) as client:
            resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_config_hides_secrets(self):
        settings = Settings(todoist_api_token="secret-token", todoist_webhook_secret="", tz="UTC")
        with patch("taskmirror.api.config.get_settings", return_value=settings):
            with TestClient(_make_test_app()) as client:
                data = client.get("/api/config").json()

        assert data["todoist_token_configured"] is True
        assert data["webhook_secret_configured"] is False
        assert data["tz"] == "UTC"
        assert "secret-token" not in str(data)
