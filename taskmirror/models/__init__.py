# Database models
from taskmirror.models.mirror import (
    Project,
    Section,
    Label,
    Item,
    Note,
    Reminder,
)
from taskmirror.models.routines import Routine, RoutineTask, RoutineTaskStatus, PENDING_REMOTE_ID
from taskmirror.models.sync_state import SyncCursor, WebhookEvent
from taskmirror.models.sync_log import SyncLog

__all__ = [
    "Project",
    "Section",
    "Label",
    "Item",
    "Note",
    "Reminder",
    "Routine",
    "RoutineTask",
    "RoutineTaskStatus",
    "PENDING_REMOTE_ID",
    "SyncCursor",
    "WebhookEvent",
    "SyncLog",
]
