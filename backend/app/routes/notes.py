"""
Notes API routes - notes about a user and that user's lesson plan.

Reads are filtered by each note's visibility level; tags such as
StudentAssessment may only be used by some roles.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.database import get_db
from app.errors import NotFound, ValidationError
from app.logging_config import get_logger, log_with_context
from app.models.note import Note, LessonPlan
from app.models.user import User
from app.routes.deps import get_current_user, get_resolver, forbid
from app.services.authorization import AccessResolver, Actor
from app.services.note_store import (
    DEFAULT_PAGE_SIZE, LessonPlanPatch, NotePatch, create_lesson_plan, create_note,
    delete_note, get_active_lesson_plan, get_lesson_plan, get_note,
    list_notes_for_user, update_lesson_plan, update_note,
)
from app.services.note_visibility import VISIBILITY_SUBJECT, tag_allowed_for_role
from app.services.users import get_user_by_id

router = APIRouter()
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────

class NoteCreateRequest(BaseModel):
    user_id: str = Field(..., description="Subject of the note")
    title: str = ""
    description: str = ""
    primary_tag: str = ""
    tags: List[str] = Field(default_factory=list)
    visibility: int = Field(VISIBILITY_SUBJECT, description="1 admin .. 4 subject and their coach/mentor")
    additional_info: dict = Field(default_factory=dict)


class LessonPlanCreateRequest(BaseModel):
    user_id: str
    title: str = ""
    description: List[str] = Field(default_factory=list, description="Plan items")
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    result: str = ""


def _isoformat(value):
    return value.isoformat() if value else None


def serialize_note(note: Note) -> dict:
    return {
        "id": note.id,
        "user_id": note.user_id,
        "title": note.title,
        "description": note.description,
        "primary_tag": note.primary_tag,
        "tags": note.tags or [],
        "is_starred": note.is_starred,
        "additional_info": note.additional_info or {},
        "visibility": note.visibility,
        "created_by": note.created_by,
        "created_at": _isoformat(note.created_at),
        "updated_at": _isoformat(note.updated_at),
    }


def serialize_lesson_plan(plan: Optional[LessonPlan]) -> Optional[dict]:
    if plan is None:
        return None
    return {
        "id": plan.id,
        "user_id": plan.user_id,
        "title": plan.title,
        "description": plan.description or [],
        "start_date": _isoformat(plan.start_date),
        "end_date": _isoformat(plan.end_date),
        "result": plan.result,
        "active": plan.active,
        "created_by": plan.created_by,
        "created_at": _isoformat(plan.created_at),
        "updated_at": _isoformat(plan.updated_at),
    }


def _check_tag(user: User, tag: Optional[str]) -> None:
    if tag and not tag_allowed_for_role(tag, user.role):
        forbid("tag restricted")


@router.post("", status_code=201)
def add_note(
    request: NoteCreateRequest,
    user: User = Depends(get_current_user),
    resolver: AccessResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    try:
        subject = get_user_by_id(db, request.user_id)
    except NotFound:
        raise ValidationError("No such user")
    if not resolver.note_subject(Actor.from_user(user), subject):
        forbid()
    _check_tag(user, request.primary_tag)

    note = create_note(
        db, subject.id, user.id,
        title=request.title,
        description=request.description,
        primary_tag=request.primary_tag,
        tags=request.tags,
        visibility=request.visibility,
        additional_info=request.additional_info,
    )
    return serialize_note(note)


@router.get("")
def notes_for_user(
    user_id: str = Query(..., description="Subject of the notes"),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    resolver: AccessResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    """Visible notes about the user, newest first, plus their active lesson plan."""
    try:
        subject = get_user_by_id(db, user_id)
    except NotFound:
        raise ValidationError("No such user")
    actor = Actor.from_user(user)
    if not resolver.note_subject(actor, subject):
        forbid()

    visible = resolver.visible_notes(actor, subject.id, list_notes_for_user(db, subject.id))
    page = visible[offset:offset + limit]

    return {
        "lesson_plan": serialize_lesson_plan(get_active_lesson_plan(db, subject.id)),
        "notes": [serialize_note(n) for n in page],
        "total": len(visible),
        "limit": limit,
        "offset": offset,
    }


@router.post("/lesson-plans", status_code=201)
def add_lesson_plan(
    request: LessonPlanCreateRequest,
    user: User = Depends(get_current_user),
    resolver: AccessResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    if not resolver.lesson_plan(Actor.from_user(user), request.user_id):
        forbid("only mentor or admin can create lesson plan")
    get_user_by_id(db, request.user_id)

    plan = create_lesson_plan(
        db, request.user_id, user.id,
        title=request.title,
        description=request.description,
        start_date=request.start_date,
        end_date=request.end_date,
        result=request.result,
    )
    return serialize_lesson_plan(plan)


@router.patch("/lesson-plans/{plan_id}")
def patch_lesson_plan(
    plan_id: int,
    patch: LessonPlanPatch,
    user: User = Depends(get_current_user),
    resolver: AccessResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    plan = get_lesson_plan(db, plan_id)
    if not resolver.lesson_plan(Actor.from_user(user), plan.user_id):
        forbid("only mentor or admin can update lesson plan")
    return serialize_lesson_plan(update_lesson_plan(db, plan, patch))


@router.patch("/{note_id}")
def patch_note(
    note_id: int,
    patch: NotePatch,
    user: User = Depends(get_current_user),
    resolver: AccessResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    note = get_note(db, note_id)
    if not resolver.note(Actor.from_user(user), note):
        forbid()
    _check_tag(user, patch.primary_tag)

    updated = update_note(db, note, patch)
    log_with_context(logger, "INFO", "Note patched",
                     context={"note_id": note_id, "actor_id": user.id})
    return serialize_note(updated)


@router.delete("/{note_id}")
def remove_note(
    note_id: int,
    user: User = Depends(get_current_user),
    resolver: AccessResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    note = get_note(db, note_id)
    if not resolver.note(Actor.from_user(user), note):
        forbid()
    delete_note(db, note)
    return {"message": "deleted", "id": note_id}
