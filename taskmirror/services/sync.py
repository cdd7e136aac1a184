"""Sync orchestration - pulls Todoist state into the local mirror."""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskmirror.core.clock import utcnow
from taskmirror.models.sync_state import SyncCursor
from taskmirror.services.payloads import RESOURCE_ORDER, ResourceType, parse_sync_response
from taskmirror.services.reconciler import Action, upsert_entity
from taskmirror.services.routines import observe_item
from taskmirror.services.todoist import FULL_SYNC_TOKEN, TodoistClient

logger = logging.getLogger(__name__)

TODOIST_SERVICE = "todoist"
RESOURCE_TYPES = [resource.value for resource in RESOURCE_ORDER]


@dataclass
class SyncResult:
    change_count: int
    sync_token: str
    full_sync: bool
    counts: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


async def get_cursor(session: AsyncSession, service: str = TODOIST_SERVICE) -> SyncCursor | None:
    result = await session.execute(select(SyncCursor).where(SyncCursor.service == service))
    return result.scalar_one_or_none()


async def planned_sync_type(session: AsyncSession) -> str:
    """SyncLog type of the next cycle: full when no cursor is stored."""
    cursor = await get_cursor(session)
    return "incremental" if cursor and cursor.token else "full"


class SyncService:
    """Drives full and incremental sync cycles against Todoist."""

    def __init__(self, client: TodoistClient, timezone: str):
        self.client = client
        self.timezone = timezone

    async def _fetch(self, token: str) -> tuple[dict[str, Any], bool]:
        """Pull from ``token``; an incremental response flagged full_sync is discarded."""
        data = await self.client.sync(token, RESOURCE_TYPES)
        if token != FULL_SYNC_TOKEN and data.get("full_sync"):
            logger.info("Remote requested a full sync, discarding incremental response")
            data = await self.client.sync(FULL_SYNC_TOKEN, RESOURCE_TYPES)
            return data, True
        return data, token == FULL_SYNC_TOKEN

    async def apply(self, session: AsyncSession, data: dict[str, Any]) -> dict[str, int]:
        """
        Reconcile every entity of a sync response, in dependency order.

        Returns:
            Changed-row counts per resource type. Does not commit.
        """
        parsed = parse_sync_response(data)
        counts: dict[str, int] = {}

        for resource in RESOURCE_ORDER:
            changed = 0
            for entity in parsed[resource]:
                action, record = await upsert_entity(session, entity)
                if action is Action.SKIP:
                    continue
                changed += 1
                if resource is ResourceType.ITEM:
                    await observe_item(session, record, self.timezone)
            counts[resource.value] = changed

        return counts

    async def run(self, session: AsyncSession) -> SyncResult:
        """
        Run one sync cycle: full when no cursor is stored, incremental
        otherwise.

        Raises:
            ConfigurationError: no API token; nothing is fetched or written.
            RemoteAPIError, PayloadError: the cycle is rolled back and the
                cursor is not advanced.
        """
        self.client.ensure_configured()

        cursor = await get_cursor(session)
        token = cursor.token if cursor and cursor.token else FULL_SYNC_TOKEN

        try:
            data, full_sync = await self._fetch(token)
            counts = await self.apply(session, data)

            now = utcnow()
            if cursor is None:
                cursor = SyncCursor(service=TODOIST_SERVICE)
                session.add(cursor)
            cursor.token = data["sync_token"]
            if full_sync:
                cursor.last_full_sync_at = now
            else:
                cursor.last_incremental_sync_at = now

            await session.commit()
        except Exception as e:
            logger.error(f"Todoist sync failed: {e}")
            await session.rollback()
            raise

        result = SyncResult(
            change_count=sum(counts.values()),
            sync_token=data["sync_token"],
            full_sync=full_sync,
            counts=counts,
        )
        logger.info(
            f"Todoist {'full' if full_sync else 'incremental'} sync completed: "
            f"{result.change_count} changes {counts}"
        )
        return result
