"""Sync cursor and webhook delivery log."""

from sqlalchemy import Column, Integer, String, DateTime, Text

from taskmirror.core.clock import utcnow
from taskmirror.core.database import Base


class SyncCursor(Base):
    """Last sync token issued by a remote service (one row per service)."""

    __tablename__ = "sync_cursors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    service = Column(String, nullable=False, unique=True)
    token = Column(String, nullable=True)
    last_full_sync_at = Column(DateTime, nullable=True)
    last_incremental_sync_at = Column(DateTime, nullable=True)


class WebhookEvent(Base):
    """Append-only audit log of webhook deliveries.

    ``delivery_id`` is unique: a delivery already present here is never
    processed again.
    """

    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    delivery_id = Column(String, nullable=False, unique=True, index=True)
    event_name = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=True)
    version = Column(String, nullable=True)
    triggered_at = Column(String, nullable=True)
    status = Column(String, nullable=False, index=True)  # "success", "failed", "skipped"
    error_message = Column(Text, nullable=True)
    processed_at = Column(DateTime, nullable=False, default=utcnow)
    processing_time_ms = Column(Integer, nullable=True)
    entity_id = Column(String, nullable=True, index=True)
    entity_type = Column(String, nullable=True)
    initiator_id = Column(String, nullable=True)
    initiator_email = Column(String, nullable=True)
