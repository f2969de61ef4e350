"""
Note store - notes about a user and their lesson plans.

A user has at most one active lesson plan. Creating a new plan archives the
active one into a note tagged LessonPlanArchive and deactivates it, all in
the same transaction.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from app.database import transaction
from app.errors import NotFound, ValidationError
from app.logging_config import get_logger, log_with_context
from app.models.note import Note, LessonPlan
from app.services.note_visibility import (
    TAG_LESSON_PLAN_ARCHIVE, VISIBILITY_SUBJECT, is_valid_visibility,
)

logger = get_logger("db")

DEFAULT_PAGE_SIZE = 50
ARCHIVE_TITLE_SUFFIX = " (archived)"


class NotePatch(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    primary_tag: Optional[str] = None
    tags: Optional[List[str]] = None
    is_starred: Optional[bool] = None
    additional_info: Optional[dict] = None
    visibility: Optional[int] = None

    @field_validator("visibility")
    @classmethod
    def known_visibility(cls, v):
        if v is not None and not is_valid_visibility(v):
            raise ValueError("visibility must be between 1 and 4")
        return v


class LessonPlanPatch(BaseModel):
    title: Optional[str] = None
    description: Optional[List[str]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    result: Optional[str] = None


def archive_description(items: list) -> str:
    """Render plan items as a "- item" bullet list."""
    return "\n".join("- {}".format(item) for item in (items or []))


def create_note(db: Session, user_id: str, created_by: str, title: str = "",
                description: str = "", primary_tag: str = "", tags: Optional[list] = None,
                visibility: int = VISIBILITY_SUBJECT,
                additional_info: Optional[dict] = None) -> Note:
    if not is_valid_visibility(visibility):
        raise ValidationError("visibility must be between 1 and 4")

    now = datetime.now(timezone.utc)
    note = Note(
        user_id=user_id,
        title=title or "",
        description=description or "",
        primary_tag=primary_tag or "",
        tags=list(tags or []),
        is_starred=False,
        additional_info=dict(additional_info or {}),
        visibility=visibility,
        created_by=created_by,
        created_at=now,
        updated_at=now,
    )
    with transaction(db):
        db.add(note)

    log_with_context(logger, "INFO", "Note created",
                     context={"note_id": note.id, "user_id": user_id, "created_by": created_by})
    return note


def get_note(db: Session, note_id: int) -> Note:
    note = (
        db.query(Note)
        .filter(Note.id == note_id, Note.deleted_at.is_(None))
        .first()
    )
    if note is None:
        raise NotFound("Note {} not found".format(note_id))
    return note


def list_notes_for_user(db: Session, user_id: str) -> list:
    """All live notes about the user, newest first."""
    return (
        db.query(Note)
        .filter(Note.user_id == user_id, Note.deleted_at.is_(None))
        .order_by(Note.created_at.desc(), Note.id.desc())
        .all()
    )


def update_note(db: Session, note: Note, patch: NotePatch) -> Note:
    fields = patch.model_dump(exclude_unset=True)
    if not fields:
        raise ValidationError("no updates provided")

    with transaction(db):
        for name, value in fields.items():
            if value is None:
                raise ValidationError("{} cannot be null".format(name))
            setattr(note, name, value)
        note.updated_at = datetime.now(timezone.utc)

    log_with_context(logger, "INFO", "Note updated",
                     context={"note_id": note.id}, extra_data={"fields": sorted(fields)})
    return note


def delete_note(db: Session, note: Note) -> None:
    with transaction(db):
        note.deleted_at = datetime.now(timezone.utc)
    log_with_context(logger, "INFO", "Note deleted", context={"note_id": note.id})


# ── Lesson plans ─────────────────────────────────────────────

def get_active_lesson_plan(db: Session, user_id: str) -> Optional[LessonPlan]:
    return (
        db.query(LessonPlan)
        .filter(LessonPlan.user_id == user_id,
                LessonPlan.active.is_(True),
                LessonPlan.deleted_at.is_(None))
        .order_by(LessonPlan.created_at.desc())
        .first()
    )


def get_lesson_plan(db: Session, plan_id: int) -> LessonPlan:
    plan = (
        db.query(LessonPlan)
        .filter(LessonPlan.id == plan_id, LessonPlan.deleted_at.is_(None))
        .first()
    )
    if plan is None:
        raise NotFound("Lesson plan {} not found".format(plan_id))
    return plan


def create_lesson_plan(db: Session, user_id: str, created_by: str, title: str = "",
                       description: Optional[list] = None,
                       start_date: Optional[datetime] = None,
                       end_date: Optional[datetime] = None,
                       result: str = "") -> LessonPlan:
    """
    Create the user's new active plan.

    The previously active plan becomes a note titled "<title> (archived)"
    with its items as a bullet list, visible at level 4, and is deactivated.
    """
    now = datetime.now(timezone.utc)
    with transaction(db):
        previous = (
            db.query(LessonPlan)
            .filter(LessonPlan.user_id == user_id,
                    LessonPlan.active.is_(True),
                    LessonPlan.deleted_at.is_(None))
            .with_for_update()
            .all()
        )
        for old in previous:
            db.add(Note(
                user_id=old.user_id,
                title=(old.title or "") + ARCHIVE_TITLE_SUFFIX,
                description=archive_description(old.description),
                primary_tag=TAG_LESSON_PLAN_ARCHIVE,
                tags=[TAG_LESSON_PLAN_ARCHIVE],
                is_starred=False,
                additional_info={},
                visibility=VISIBILITY_SUBJECT,
                created_by=old.created_by,
                created_at=now,
                updated_at=now,
            ))
            old.active = False
            old.updated_at = now

        plan = LessonPlan(
            user_id=user_id,
            title=title or "",
            description=list(description or []),
            start_date=start_date,
            end_date=end_date,
            result=result or "",
            active=True,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        db.add(plan)

    log_with_context(logger, "INFO", "Lesson plan created",
                     context={"plan_id": plan.id, "user_id": user_id},
                     extra_data={"archived": [p.id for p in previous]})
    return plan


def update_lesson_plan(db: Session, plan: LessonPlan, patch: LessonPlanPatch) -> LessonPlan:
    fields = patch.model_dump(exclude_unset=True)
    if not fields:
        raise ValidationError("no updates provided")

    with transaction(db):
        for name, value in fields.items():
            if name in ("start_date", "end_date"):
                setattr(plan, name, value)
                continue
            if value is None:
                raise ValidationError("{} cannot be null".format(name))
            setattr(plan, name, value)
        plan.updated_at = datetime.now(timezone.utc)

    log_with_context(logger, "INFO", "Lesson plan updated",
                     context={"plan_id": plan.id}, extra_data={"fields": sorted(fields)})
    return plan
