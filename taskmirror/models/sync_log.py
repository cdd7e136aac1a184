"""Sync log model for tracking scheduled and manual runs."""

from sqlalchemy import Column, Integer, String, DateTime, Text, JSON

from taskmirror.core.clock import utcnow
from taskmirror.core.database import Base


class SyncLog(Base):
    """Log of sync cycles and routine scheduler runs."""

    __tablename__ = "sync_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sync_type = Column(String, nullable=False)  # "full", "incremental", "routines"
    started_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)
    status = Column(String, nullable=False)  # "success", "failed", "partial"
    details = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)
