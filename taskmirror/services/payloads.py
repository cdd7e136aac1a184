"""Validate and coerce raw Todoist payloads into RawEntity objects.

Remote entities arrive as loosely typed JSON. Everything is checked here, at
the ingestion boundary, so the reconciler only ever sees a RawEntity whose
field changes are one of:

- ``UNSET``: key absent from the payload, leave the stored value alone
- ``CLEAR``: explicit null on a clearable field, store NULL
- ``SetTo(value)``: store ``value``
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable
import logging

from taskmirror.core.clock import now_ms
from taskmirror.core.exceptions import PayloadError

logger = logging.getLogger(__name__)


class ResourceType(str, Enum):
    PROJECT = "projects"
    SECTION = "sections"
    LABEL = "labels"
    ITEM = "items"
    NOTE = "notes"
    REMINDER = "reminders"


# Items reference projects and sections, notes and reminders reference items.
RESOURCE_ORDER = (
    ResourceType.PROJECT,
    ResourceType.SECTION,
    ResourceType.LABEL,
    ResourceType.ITEM,
    ResourceType.NOTE,
    ResourceType.REMINDER,
)


class _Unset:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "UNSET"


class _Clear:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "CLEAR"


UNSET = _Unset()
CLEAR = _Clear()


@dataclass(frozen=True)
class SetTo:
    value: Any


FieldChange = _Unset | _Clear | SetTo


class VersionSource(str, Enum):
    PAYLOAD = "payload"        # explicit version field from the provider
    UPDATED_AT = "updated_at"  # provider's modification timestamp
    OBSERVED = "observed"      # local wall clock; most-recently-observed wins


@dataclass
class RawEntity:
    """A validated remote entity tagged with its resource type."""

    resource: ResourceType
    remote_id: str
    sync_version: int
    version_source: VersionSource = VersionSource.PAYLOAD
    changes: dict[str, FieldChange] = field(default_factory=dict)

    def get(self, column: str, default: Any = None) -> Any:
        """Value being set for ``column``, or ``default`` when unset/cleared."""
        change = self.changes.get(column, UNSET)
        return change.value if isinstance(change, SetTo) else default

    def is_set(self, column: str) -> bool:
        return isinstance(self.changes.get(column, UNSET), SetTo)


# --- coercers ---------------------------------------------------------------

def _as_str(value: Any) -> str:
    if isinstance(value, (str, int)) and not isinstance(value, bool):
        return str(value)
    raise ValueError(f"expected string, got {type(value).__name__}")


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.lstrip("-").isdigit():
        return int(value)
    raise ValueError(f"expected integer, got {value!r}")


def _as_flag(value: Any) -> int:
    """Booleans and 0/1 integers both collapse to a 0/1 integer flag."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int) and value in (0, 1):
        return value
    raise ValueError(f"expected boolean flag, got {value!r}")


def _as_object(value: Any) -> dict:
    if isinstance(value, dict):
        return value
    raise ValueError(f"expected object, got {type(value).__name__}")


def _as_str_list(value: Any) -> list[str]:
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    raise ValueError(f"expected list of strings, got {value!r}")


@dataclass(frozen=True)
class FieldDef:
    column: str
    coerce: Callable[[Any], Any]
    clearable: bool = False
    key: str | None = None  # payload key when it differs from the column

    @property
    def payload_key(self) -> str:
        return self.key or self.column


FIELD_DEFS: dict[ResourceType, tuple[FieldDef, ...]] = {
    ResourceType.PROJECT: (
        FieldDef("name", _as_str),
        FieldDef("color", _as_str),
        FieldDef("parent_id", _as_str, clearable=True),
        FieldDef("child_order", _as_int),
        FieldDef("collapsed", _as_flag),
        FieldDef("shared", _as_flag),
        FieldDef("is_favorite", _as_flag),
        FieldDef("view_style", _as_str),
        FieldDef("created_at", _as_str),
        FieldDef("updated_at", _as_str),
        FieldDef("is_deleted", _as_flag),
        FieldDef("is_archived", _as_flag),
    ),
    ResourceType.SECTION: (
        FieldDef("name", _as_str),
        FieldDef("project_id", _as_str),
        FieldDef("section_order", _as_int),
        FieldDef("collapsed", _as_flag),
        FieldDef("is_deleted", _as_flag),
        FieldDef("is_archived", _as_flag),
    ),
    ResourceType.LABEL: (
        FieldDef("name", _as_str),
        FieldDef("color", _as_str),
        FieldDef("item_order", _as_int),
        FieldDef("is_favorite", _as_flag),
        FieldDef("is_deleted", _as_flag),
    ),
    ResourceType.ITEM: (
        FieldDef("content", _as_str),
        FieldDef("description", _as_str, clearable=True),
        FieldDef("project_id", _as_str, clearable=True),
        FieldDef("section_id", _as_str, clearable=True),
        FieldDef("parent_id", _as_str, clearable=True),
        FieldDef("child_order", _as_int),
        FieldDef("priority", _as_int),
        FieldDef("due", _as_object, clearable=True),
        FieldDef("deadline", _as_object, clearable=True),
        FieldDef("duration", _as_object, clearable=True),
        FieldDef("labels", _as_str_list),
        FieldDef("assigned_by_uid", _as_str, clearable=True),
        FieldDef("added_by_uid", _as_str),
        FieldDef("responsible_uid", _as_str, clearable=True),
        FieldDef("comment_count", _as_int),
        FieldDef("checked", _as_flag),
        FieldDef("added_at", _as_str),
        FieldDef("completed_at", _as_str, clearable=True),
        FieldDef("updated_at", _as_str),
        FieldDef("user_id", _as_str),
        FieldDef("is_deleted", _as_flag),
    ),
    ResourceType.NOTE: (
        FieldDef("item_id", _as_str),
        FieldDef("project_id", _as_str, clearable=True),
        FieldDef("content", _as_str),
        FieldDef("posted_uid", _as_str),
        FieldDef("posted_at", _as_str),
        FieldDef("is_deleted", _as_flag),
    ),
    ResourceType.REMINDER: (
        FieldDef("item_id", _as_str),
        FieldDef("type", _as_str),
        FieldDef("due", _as_object, clearable=True),
        FieldDef("mm_offset", _as_int, clearable=True),
        FieldDef("notify_uid", _as_str),
        FieldDef("is_deleted", _as_flag),
    ),
}


def _iso_to_ms(iso_str: str) -> int:
    """Convert an ISO 8601 timestamp to epoch milliseconds."""
    if iso_str.endswith("Z"):
        iso_str = iso_str[:-1] + "+00:00"
    return int(datetime.fromisoformat(iso_str).timestamp() * 1000)


def resolve_version(resource: ResourceType, payload: dict) -> tuple[int, VersionSource]:
    """Pick the version for a payload.

    Order: explicit ``version``/``sync_version`` field, then (items only)
    ``updated_at``, then the local observed clock. The observed-clock fallback
    only orders updates as they arrive here; two updates observed in the same
    millisecond get the same version and the second is skipped.
    """
    for key in ("sync_version", "version"):
        value = payload.get(key)
        if value is not None and not isinstance(value, bool):
            try:
                return _as_int(value), VersionSource.PAYLOAD
            except ValueError:
                logger.warning(f"Ignoring non-integer {key}={value!r} on {resource.value} payload")

    if resource is ResourceType.ITEM and isinstance(payload.get("updated_at"), str):
        try:
            return _iso_to_ms(payload["updated_at"]), VersionSource.UPDATED_AT
        except ValueError:
            logger.warning(f"Unparseable updated_at {payload['updated_at']!r} on item payload")

    return now_ms(), VersionSource.OBSERVED


def parse_entity(resource: ResourceType, payload: Any) -> RawEntity:
    """Validate one payload of the given resource type.

    Raises:
        PayloadError: the payload is not an object, has no id, or a field
            has the wrong type.
    """
    if not isinstance(payload, dict):
        raise PayloadError(f"{resource.value} payload must be an object, got {type(payload).__name__}")

    raw_id = payload.get("id")
    if raw_id is None or raw_id == "" or isinstance(raw_id, bool):
        raise PayloadError(f"{resource.value} payload is missing an id")
    remote_id = str(raw_id)

    changes: dict[str, FieldChange] = {}
    for field_def in FIELD_DEFS[resource]:
        if field_def.payload_key not in payload:
            continue
        value = payload[field_def.payload_key]
        if value is None:
            if field_def.clearable:
                changes[field_def.column] = CLEAR
            continue
        try:
            changes[field_def.column] = SetTo(field_def.coerce(value))
        except ValueError as e:
            raise PayloadError(f"{resource.value} {remote_id}: field '{field_def.payload_key}': {e}") from e

    version, source = resolve_version(resource, payload)
    return RawEntity(
        resource=resource,
        remote_id=remote_id,
        sync_version=version,
        version_source=source,
        changes=changes,
    )


def parse_sync_response(data: dict) -> dict[ResourceType, list[RawEntity]]:
    """Parse every resource list present in a sync response."""
    parsed: dict[ResourceType, list[RawEntity]] = {}
    for resource in RESOURCE_ORDER:
        entries = data.get(resource.value) or []
        if not isinstance(entries, list):
            raise PayloadError(f"'{resource.value}' in sync response must be a list")
        parsed[resource] = [parse_entity(resource, entry) for entry in entries]
    return parsed
