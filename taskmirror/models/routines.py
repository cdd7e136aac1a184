"""Routines and their generated task instances."""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
)

from taskmirror.core.clock import utcnow
from taskmirror.core.database import Base

# Placeholder remote id while the remote create is in flight
PENDING_REMOTE_ID = "PENDING"


class RoutineTaskStatus:
    """Lifecycle states of a RoutineTask."""

    PENDING = "pending"
    COMPLETED = "completed"
    MISSED = "missed"
    SKIPPED = "skipped"
    DEFERRED = "deferred"

    ALL = (PENDING, COMPLETED, MISSED, SKIPPED, DEFERRED)
    # Statuses that count toward completion rates
    RESOLVED = (COMPLETED, MISSED, SKIPPED)


class Routine(Base):
    """User-defined recurring task template."""

    __tablename__ = "routines"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    frequency = Column(String, nullable=False)
    duration = Column(String, nullable=False)
    time_of_day = Column(String, nullable=True)
    ideal_day = Column(Integer, nullable=True)  # 0=Sunday .. 6=Saturday
    project_id = Column(String, nullable=True)
    labels = Column(JSON, nullable=False, default=list)
    priority = Column(Integer, nullable=False, default=1)

    defer = Column(Boolean, nullable=False, default=False, index=True)
    deferral_date = Column(DateTime, nullable=True)
    resumed_at = Column(DateTime, nullable=True)
    last_completed_date = Column(DateTime, nullable=True)

    completion_rate_overall = Column(Integer, nullable=False, default=100)
    completion_rate_month = Column(Integer, nullable=False, default=100)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)


class RoutineTask(Base):
    """One generated occurrence of a routine, linked to a remote task."""

    __tablename__ = "routine_tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    routine_id = Column(Integer, ForeignKey("routines.id", ondelete="CASCADE"), nullable=False)
    remote_task_id = Column(String, nullable=False, default=PENDING_REMOTE_ID, index=True)
    create_command_uuid = Column(String, nullable=True)
    ready_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(String, nullable=False, default=RoutineTaskStatus.PENDING, index=True)
    completed_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_routine_tasks_routine_status", "routine_id", "status"),
    )
