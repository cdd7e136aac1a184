"""Pydantic request and response models for API endpoints."""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from taskmirror.services.occurrence import Duration, Frequency, TimeOfDay


def _clean_labels(labels: list[str]) -> list[str]:
    return [label.strip() for label in labels if label.strip()]


class RoutineBase(BaseModel):
    """Fields shared by routine create and update requests."""
    model_config = ConfigDict(use_enum_values=True)

    description: str | None = None
    time_of_day: TimeOfDay | None = None
    ideal_day: int | None = Field(default=None, ge=0, le=6)  # 0=Sunday
    project_id: str | None = None
    labels: list[str] = Field(default_factory=list)
    priority: int = Field(default=1, ge=1, le=4)

    @field_validator("labels")
    @classmethod
    def strip_labels(cls, v):
        return _clean_labels(v)


class RoutineCreate(RoutineBase):
    """Request body for creating a routine."""
    name: str = Field(min_length=1)
    frequency: Frequency
    duration: Duration


class RoutineUpdate(BaseModel):
    """Partial update; only fields present in the request are changed."""
    model_config = ConfigDict(use_enum_values=True)

    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    frequency: Frequency | None = None
    duration: Duration | None = None
    time_of_day: TimeOfDay | None = None
    ideal_day: int | None = Field(default=None, ge=0, le=6)
    project_id: str | None = None
    labels: list[str] | None = None
    priority: int | None = Field(default=None, ge=1, le=4)

    @field_validator("labels")
    @classmethod
    def strip_labels(cls, v):
        if v is None:
            return v
        return _clean_labels(v)


class RoutineResponse(BaseModel):
    """Routine with its current completion rates."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None
    frequency: str
    duration: str
    time_of_day: str | None
    ideal_day: int | None
    project_id: str | None
    labels: list[str]
    priority: int
    defer: bool
    deferral_date: datetime | None
    resumed_at: datetime | None
    last_completed_date: datetime | None
    completion_rate_overall: int
    completion_rate_month: int
    created_at: datetime
    updated_at: datetime


class RoutineTaskResponse(BaseModel):
    """One generated routine instance."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    routine_id: int
    remote_task_id: str
    ready_date: date
    due_date: date
    status: str
    completed_date: datetime | None
    created_at: datetime
    updated_at: datetime


class RoutineRunResponse(BaseModel):
    """Summary of one routine scheduler pass."""
    routines_processed: int
    tasks_created: int
    tasks_missed: int
    tasks_deferred: int
    errors: list[str]
    duration_ms: int


class ClearPendingResponse(BaseModel):
    deleted: int
    failed: int
    skipped: int
    routines_recalculated: int


class SyncResultResponse(BaseModel):
    """Result of an on-demand sync cycle."""
    change_count: int
    sync_token: str
    full_sync: bool
    counts: dict[str, int]


class SyncStatusResponse(BaseModel):
    """Cursor state and the most recent logged run."""
    has_cursor: bool
    last_full_sync_at: datetime | None
    last_incremental_sync_at: datetime | None
    last_run_at: datetime | None
    last_run_status: str
    last_run_details: dict[str, Any] | None = None
    last_error: str | None = None


class WebhookEventResponse(BaseModel):
    """Logged webhook delivery."""
    model_config = ConfigDict(from_attributes=True)

    delivery_id: str
    event_name: str
    version: str | None
    triggered_at: str | None
    status: str
    error_message: str | None
    processed_at: datetime
    processing_time_ms: int | None
    entity_id: str | None
    entity_type: str | None


class WebhookAck(BaseModel):
    status: str
