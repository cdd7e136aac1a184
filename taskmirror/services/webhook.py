"""Todoist webhook ingestion.

Deliveries are processed at most once: the delivery id is recorded in
``webhook_events`` and any delivery already present there is ignored.
Deliveries may arrive in any order; the version gate in the reconciler
decides whether their entity data is newer than what is stored.
"""

import base64
import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from taskmirror.core.clock import utcnow
from taskmirror.core.exceptions import PayloadError
from taskmirror.models.sync_state import WebhookEvent
from taskmirror.services.payloads import ResourceType, parse_entity
from taskmirror.services.reconciler import Action, upsert_entity
from taskmirror.services.routines import observe_item

logger = logging.getLogger(__name__)

ENTITY_PREFIXES = {
    "item": ResourceType.ITEM,
    "project": ResourceType.PROJECT,
    "section": ResourceType.SECTION,
    "label": ResourceType.LABEL,
    "note": ResourceType.NOTE,
    "reminder": ResourceType.REMINDER,
}


class WebhookOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    DUPLICATE = "duplicate"


@dataclass
class WebhookDelivery:
    """One webhook POST: the delivery id header plus the decoded body."""

    delivery_id: str
    body: dict[str, Any]

    @property
    def event_name(self) -> str:
        return str(self.body.get("event_name") or "unknown")

    @property
    def version(self) -> str | None:
        version = self.body.get("version")
        return None if version is None else str(version)


def verify_signature(body: bytes, signature: str | None, secret: str) -> bool:
    """Check ``X-Todoist-Hmac-SHA256``: base64 HMAC-SHA256 of the raw body."""
    if not signature:
        return False
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode("ascii")
    return hmac.compare_digest(expected, signature)


def apply_event_semantics(event_name: str, event_data: dict[str, Any], triggered_at: str | None) -> dict[str, Any]:
    """Entity payload implied by the event, on top of its ``event_data``."""
    payload = dict(event_data)
    action = event_name.split(":", 1)[1] if ":" in event_name else ""

    if action == "deleted":
        payload["is_deleted"] = True
    elif event_name == "item:completed":
        payload["checked"] = True
        payload["completed_at"] = triggered_at
    elif event_name == "item:uncompleted":
        payload["checked"] = False
        payload["completed_at"] = None
    elif event_name == "project:archived":
        payload["is_archived"] = True
    elif event_name == "project:unarchived":
        payload["is_archived"] = False
    return payload


async def is_duplicate(session: AsyncSession, delivery_id: str) -> bool:
    result = await session.execute(
        select(WebhookEvent.id).where(WebhookEvent.delivery_id == delivery_id)
    )
    return result.first() is not None


class WebhookIngestor:
    """Applies webhook deliveries to the mirror and logs each one."""

    def __init__(self, supported_versions: list[str], timezone: str):
        self.supported_versions = [str(v) for v in supported_versions]
        self.timezone = timezone

    async def _process(self, session: AsyncSession, delivery: WebhookDelivery, event: WebhookEvent) -> tuple[WebhookOutcome, str | None]:
        event_name = delivery.event_name
        prefix = event_name.split(":", 1)[0]
        resource = ENTITY_PREFIXES.get(prefix)
        if resource is None:
            return WebhookOutcome.SKIPPED, f"Unsupported event type: {event_name}"

        event_data = delivery.body.get("event_data")
        if not isinstance(event_data, dict):
            raise PayloadError(f"{event_name} delivery has no event_data object")

        payload = apply_event_semantics(event_name, event_data, delivery.body.get("triggered_at"))
        entity = parse_entity(resource, payload)
        event.entity_id = entity.remote_id
        event.entity_type = prefix

        action, record = await upsert_entity(session, entity)
        if resource is ResourceType.ITEM and action is not Action.SKIP:
            await observe_item(session, record, self.timezone)

        logger.info(f"Webhook {event_name} {entity.remote_id}: {action.value}")
        return WebhookOutcome.SUCCESS, None

    async def ingest(self, session: AsyncSession, delivery: WebhookDelivery) -> WebhookOutcome:
        """
        Process a delivery at most once.

        Returns:
            DUPLICATE without writing when the delivery id is already logged;
            otherwise the status recorded for the delivery.
        """
        started = time.monotonic()

        if await is_duplicate(session, delivery.delivery_id):
            logger.info(f"Ignoring duplicate webhook delivery {delivery.delivery_id}")
            return WebhookOutcome.DUPLICATE

        body = delivery.body
        initiator = body.get("initiator") if isinstance(body.get("initiator"), dict) else {}
        event = WebhookEvent(
            delivery_id=delivery.delivery_id,
            event_name=delivery.event_name,
            user_id=None if body.get("user_id") is None else str(body["user_id"]),
            version=delivery.version,
            triggered_at=body.get("triggered_at"),
            initiator_id=None if initiator.get("id") is None else str(initiator["id"]),
            initiator_email=initiator.get("email"),
        )

        if delivery.version not in self.supported_versions:
            outcome, error = WebhookOutcome.SKIPPED, f"Unsupported webhook version: {delivery.version}"
            logger.warning(f"Skipping delivery {delivery.delivery_id}: {error}")
        else:
            try:
                outcome, error = await self._process(session, delivery, event)
            except Exception as e:
                logger.error(f"Webhook delivery {delivery.delivery_id} ({delivery.event_name}) failed: {e}")
                await session.rollback()
                outcome, error = WebhookOutcome.FAILED, str(e)

        event.status = outcome.value
        event.error_message = error
        event.processed_at = utcnow()
        event.processing_time_ms = int((time.monotonic() - started) * 1000)
        session.add(event)
        try:
            await session.commit()
        except IntegrityError:
            # Same delivery id committed concurrently
            await session.rollback()
            logger.info(f"Webhook delivery {delivery.delivery_id} was recorded concurrently")
            return WebhookOutcome.DUPLICATE

        return outcome
