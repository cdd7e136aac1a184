"""Todoist API client (sync endpoint: pulls and command batches)."""

import logging
import uuid
from typing import Any, Optional

import httpx

from taskmirror.core.exceptions import ConfigurationError, RemoteAPIError

logger = logging.getLogger(__name__)

FULL_SYNC_TOKEN = "*"


class TodoistClient:
    """Async client for the Todoist sync endpoint."""

    def __init__(self, api_token: str, base_url: str = "https://api.todoist.com/api/v1"):
        self.api_token = api_token
        self.base_url = base_url.rstrip('/')
        self.client: Optional[httpx.AsyncClient] = None

    def ensure_configured(self) -> None:
        """Raise ConfigurationError when no API token is set."""
        if not self.api_token:
            raise ConfigurationError("TODOIST_API_TOKEN not configured")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        self.ensure_configured()
        if self.client is None:
            self.client = httpx.AsyncClient(
                headers={"Authorization": f"Bearer {self.api_token}"},
                timeout=30.0
            )
        return self.client

    async def close(self):
        """Close the HTTP client."""
        if self.client:
            await self.client.aclose()
            self.client = None

    async def _post_sync(self, body: dict[str, Any]) -> dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.post(f"{self.base_url}/sync", json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Todoist API returned HTTP {e.response.status_code}: {e.response.text[:200]}")
            raise RemoteAPIError(
                f"Todoist API error: {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Todoist API request failed: {e}")
            raise RemoteAPIError(f"Todoist API request failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise RemoteAPIError(f"Todoist API returned invalid JSON: {response.text[:200]}") from e
        if not isinstance(data, dict):
            raise RemoteAPIError("Todoist API returned an unexpected response shape")
        return data

    async def sync(self, sync_token: str, resource_types: list[str]) -> dict[str, Any]:
        """
        Pull changes since ``sync_token`` ("*" for everything).

        Returns:
            The decoded response: resource lists, ``sync_token`` and
            optionally ``full_sync``.
        """
        logger.info(f"Requesting {'full' if sync_token == FULL_SYNC_TOKEN else 'incremental'} sync")
        data = await self._post_sync({"sync_token": sync_token, "resource_types": resource_types})
        if not isinstance(data.get("sync_token"), str):
            raise RemoteAPIError("Sync response is missing sync_token")
        return data

    async def execute_commands(self, commands: list[dict[str, Any]]) -> dict[str, Any]:
        """
        Send a command batch.

        Each command must carry a caller-generated ``uuid``; the remote side
        uses it to drop retried commands.

        Raises:
            RemoteAPIError: on transport errors or when any command status is
                not "ok".
        """
        data = await self._post_sync({"commands": commands})
        statuses = data.get("sync_status") or {}
        failed = {k: v for k, v in statuses.items() if v != "ok"}
        if failed:
            raise RemoteAPIError(f"Sync command failed: {failed}")
        return data

    async def add_task(self, args: dict[str, Any], command_uuid: str | None = None) -> str:
        """Create a task and return its remote id."""
        command_uuid = command_uuid or str(uuid.uuid4())
        temp_id = f"tmp-{command_uuid}"
        data = await self.execute_commands([{
            "type": "item_add",
            "uuid": command_uuid,
            "temp_id": temp_id,
            "args": args,
        }])
        task_id = (data.get("temp_id_mapping") or {}).get(temp_id)
        if not task_id:
            raise RemoteAPIError(f"item_add {command_uuid} returned no id for {temp_id}")
        logger.info(f"Created Todoist task {task_id}")
        return str(task_id)

    async def complete_task(self, task_id: str) -> None:
        """Mark a task completed."""
        await self.execute_commands([{
            "type": "item_complete",
            "uuid": str(uuid.uuid4()),
            "args": {"id": task_id},
        }])

    async def close_task(self, task_id: str) -> None:
        """Close a task (completes one occurrence of recurring tasks)."""
        await self.execute_commands([{
            "type": "item_close",
            "uuid": str(uuid.uuid4()),
            "args": {"id": task_id},
        }])

    async def delete_task(self, task_id: str) -> None:
        """Delete a task."""
        await self.execute_commands([{
            "type": "item_delete",
            "uuid": str(uuid.uuid4()),
            "args": {"id": task_id},
        }])
