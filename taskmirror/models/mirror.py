"""Local mirror of remote Todoist resources.

Every mirrored table is keyed by the remote id and carries a ``sync_version``
used by the reconciler. Rows are never hard-deleted by sync; the integer
``is_deleted`` / ``is_archived`` flags act as tombstones.
"""

from sqlalchemy import BigInteger, Column, Integer, String, Text, JSON

from taskmirror.core.database import Base


class Project(Base):
    """Mirrored project."""

    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    remote_id = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False, default="")
    color = Column(String, nullable=False, default="charcoal")
    parent_id = Column(String, nullable=True)
    child_order = Column(Integer, nullable=False, default=0)
    collapsed = Column(Integer, nullable=False, default=0)
    shared = Column(Integer, nullable=False, default=0)
    is_favorite = Column(Integer, nullable=False, default=0)
    view_style = Column(String, nullable=False, default="list")
    created_at = Column(String, nullable=True)
    updated_at = Column(String, nullable=True)
    is_deleted = Column(Integer, nullable=False, default=0)
    is_archived = Column(Integer, nullable=False, default=0)
    sync_version = Column(BigInteger, nullable=False)


class Section(Base):
    """Mirrored section."""

    __tablename__ = "sections"

    id = Column(Integer, primary_key=True, autoincrement=True)
    remote_id = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False, default="")
    project_id = Column(String, nullable=True, index=True)
    section_order = Column(Integer, nullable=False, default=0)
    collapsed = Column(Integer, nullable=False, default=0)
    is_deleted = Column(Integer, nullable=False, default=0)
    is_archived = Column(Integer, nullable=False, default=0)
    sync_version = Column(BigInteger, nullable=False)


class Label(Base):
    """Mirrored personal label."""

    __tablename__ = "labels"

    id = Column(Integer, primary_key=True, autoincrement=True)
    remote_id = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False, default="", index=True)
    color = Column(String, nullable=False, default="charcoal")
    item_order = Column(Integer, nullable=False, default=0)
    is_favorite = Column(Integer, nullable=False, default=0)
    is_deleted = Column(Integer, nullable=False, default=0)
    sync_version = Column(BigInteger, nullable=False)


class Item(Base):
    """Mirrored task (Todoist calls these items)."""

    __tablename__ = "items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    remote_id = Column(String, nullable=False, unique=True, index=True)
    content = Column(Text, nullable=False, default="")
    description = Column(Text, nullable=True)
    project_id = Column(String, nullable=True, index=True)
    section_id = Column(String, nullable=True, index=True)
    parent_id = Column(String, nullable=True)
    child_order = Column(Integer, nullable=False, default=0)
    priority = Column(Integer, nullable=False, default=1)
    due = Column(JSON, nullable=True)
    deadline = Column(JSON, nullable=True)
    duration = Column(JSON, nullable=True)
    labels = Column(JSON, nullable=False, default=list)
    assigned_by_uid = Column(String, nullable=True)
    added_by_uid = Column(String, nullable=True)
    responsible_uid = Column(String, nullable=True)
    comment_count = Column(Integer, nullable=False, default=0)
    checked = Column(Integer, nullable=False, default=0)
    added_at = Column(String, nullable=True)
    completed_at = Column(String, nullable=True)
    updated_at = Column(String, nullable=True)
    user_id = Column(String, nullable=True)
    is_deleted = Column(Integer, nullable=False, default=0)
    sync_version = Column(BigInteger, nullable=False)


class Note(Base):
    """Mirrored comment on an item or project."""

    __tablename__ = "notes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    remote_id = Column(String, nullable=False, unique=True, index=True)
    item_id = Column(String, nullable=True, index=True)
    project_id = Column(String, nullable=True)
    content = Column(Text, nullable=False, default="")
    posted_uid = Column(String, nullable=True)
    posted_at = Column(String, nullable=True)
    is_deleted = Column(Integer, nullable=False, default=0)
    sync_version = Column(BigInteger, nullable=False)


class Reminder(Base):
    """Mirrored reminder attached to an item."""

    __tablename__ = "reminders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    remote_id = Column(String, nullable=False, unique=True, index=True)
    item_id = Column(String, nullable=True, index=True)
    type = Column(String, nullable=False, default="relative")
    due = Column(JSON, nullable=True)
    mm_offset = Column(Integer, nullable=True)
    notify_uid = Column(String, nullable=True)
    is_deleted = Column(Integer, nullable=False, default=0)
    sync_version = Column(BigInteger, nullable=False)
