"""Version-gated reconciliation of remote entities into the local mirror."""

from enum import Enum
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskmirror.models.mirror import Project, Section, Label, Item, Note, Reminder
from taskmirror.services.payloads import CLEAR, RawEntity, ResourceType, SetTo

logger = logging.getLogger(__name__)


MODEL_FOR_RESOURCE = {
    ResourceType.PROJECT: Project,
    ResourceType.SECTION: Section,
    ResourceType.LABEL: Label,
    ResourceType.ITEM: Item,
    ResourceType.NOTE: Note,
    ResourceType.REMINDER: Reminder,
}


class Action(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    SKIP = "skip"


def reconcile(existing, incoming: RawEntity) -> Action:
    """Decide what to do with an incoming entity.

    Only a strictly greater version overwrites; equal or older versions are
    stale or duplicate and are skipped without error.
    """
    if existing is None:
        return Action.INSERT
    if existing.sync_version < incoming.sync_version:
        return Action.UPDATE
    return Action.SKIP


def _apply_changes(record, incoming: RawEntity) -> None:
    for column, change in incoming.changes.items():
        if isinstance(change, SetTo):
            setattr(record, column, change.value)
        elif change is CLEAR:
            setattr(record, column, None)
    record.sync_version = incoming.sync_version


async def get_entity(session: AsyncSession, resource: ResourceType, remote_id: str):
    """Look up a mirrored entity by its remote id."""
    model = MODEL_FOR_RESOURCE[resource]
    result = await session.execute(select(model).where(model.remote_id == remote_id))
    return result.scalar_one_or_none()


async def upsert_entity(session: AsyncSession, incoming: RawEntity) -> tuple[Action, object]:
    """Apply ``incoming`` to the store according to :func:`reconcile`.

    Returns the action taken and the stored record (the existing one when the
    payload was skipped). Does not commit.
    """
    existing = await get_entity(session, incoming.resource, incoming.remote_id)
    action = reconcile(existing, incoming)

    if action is Action.INSERT:
        record = MODEL_FOR_RESOURCE[incoming.resource](remote_id=incoming.remote_id)
        _apply_changes(record, incoming)
        session.add(record)
        await session.flush()
        logger.debug(f"Inserted {incoming.resource.value} {incoming.remote_id} at v{incoming.sync_version}")
        return action, record

    if action is Action.UPDATE:
        _apply_changes(existing, incoming)
        await session.flush()
        logger.debug(f"Updated {incoming.resource.value} {incoming.remote_id} to v{incoming.sync_version}")
        return action, existing

    logger.debug(
        f"Skipped stale {incoming.resource.value} {incoming.remote_id} "
        f"(v{incoming.sync_version} <= v{existing.sync_version})"
    )
    return action, existing
