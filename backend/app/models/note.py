"""
Note and LessonPlan models - free-form notes and the active lesson plan
attached to a user.

Both are soft-deleted through deleted_at; default queries exclude deleted
rows.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Text, Integer, DateTime, String, Boolean, JSON, Index
from app.database import Base


class Note(Base):
    """
    SQLAlchemy model for the notes table.

    visibility is a 1-4 tier controlling who may read the note:
    1 = admin, 2 = + mentor, 3 = + coach, 4 = + the subject themself.
    """
    __tablename__ = "notes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(10), nullable=False,
                     doc="Subject of the note")
    title = Column(Text, nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    primary_tag = Column(Text, nullable=False, default="",
                         doc="Main tag; some tags are restricted by role")
    tags = Column(JSON, nullable=False, default=list)
    is_starred = Column(Boolean, nullable=False, default=False)
    additional_info = Column(JSON, nullable=False, default=dict)
    visibility = Column(Integer, nullable=False)
    created_by = Column(String(10), nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    deleted_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_notes_user_id", "user_id"),
        Index("ix_notes_deleted_at", "deleted_at"),
    )

    def __repr__(self):
        return f"<Note(id={self.id}, user={self.user_id}, visibility={self.visibility})>"


class LessonPlan(Base):
    """
    SQLAlchemy model for the lesson_plans table.

    At most one plan per user is active; creating a new one archives the
    previous plan into a Note.
    """
    __tablename__ = "lesson_plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(10), nullable=False)
    title = Column(Text, nullable=False, default="")
    description = Column(JSON, nullable=False, default=list,
                         doc="List of plan items")
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    result = Column(Text, nullable=False, default="")
    active = Column(Boolean, nullable=False, default=True)
    created_by = Column(String(10), nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    deleted_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_lesson_plans_user_id", "user_id"),
        Index("ix_lesson_plans_active", "active"),
    )

    def __repr__(self):
        return f"<LessonPlan(id={self.id}, user={self.user_id}, active={self.active})>"
