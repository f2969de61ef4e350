"""
Attendance API routes - record, list, edit and soft-delete class attendance.

Provides endpoints for:
- Recording one class for one or several students
- Monthly listing scoped to the caller (coach: own records, mentor: mentored reach)
- Reading, patching and deleting a single record
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.database import get_db
from app.errors import NotFound, ValidationError
from app.logging_config import get_logger, log_with_context
from app.models.attendance import Attendance
from app.models.user import User, ROLE_COACH, ROLE_MENTOR, ROLE_STUDENT
from app.routes.deps import get_resolver, require_staff, forbid
from app.services.attendance_store import (
    AttendanceFilter, AttendancePatch, create_attendances, delete_attendance,
    get_attendance, list_attendances, parse_date_flexible, update_attendance,
    validate_class_type,
)
from app.services.authorization import AccessResolver, Actor

router = APIRouter()
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────

class AttendanceCreateRequest(BaseModel):
    student_id: Optional[str] = Field(None, description="Single student")
    student_ids: List[str] = Field(default_factory=list, description="Several students, one record each")
    coach_id: Optional[str] = Field(None, description="Ignored for coaches; defaults to the caller")
    class_type: str
    date: str = Field(..., description="YYYY-MM-DD or RFC 3339")
    session_id: str = ""
    class_highlights: str = ""
    homework: str = ""


def _person(user: Optional[User]) -> Optional[dict]:
    if user is None:
        return None
    return {"id": user.id, "first_name": user.first_name, "last_name": user.last_name}


def serialize_attendance(record: Attendance) -> dict:
    """Serialize an Attendance ORM object to a dict for API response."""
    return {
        "id": record.id,
        "student_id": record.student_id,
        "coach_id": record.coach_id,
        "class_type": record.class_type,
        "date": record.date.isoformat() if record.date else None,
        "session_id": record.session_id,
        "is_verified": record.is_verified,
        "class_highlights": record.class_highlights,
        "homework": record.homework,
        "student": _person(record.student),
        "coach": _person(record.coach),
        "created_at": record.created_at.isoformat() if record.created_at else None,
        "updated_at": record.updated_at.isoformat() if record.updated_at else None,
    }


def _check_participants(db: Session, student_ids: list, coach_id: str) -> None:
    for student_id in student_ids:
        student = db.get(User, student_id)
        if student is None or student.role != ROLE_STUDENT:
            raise NotFound("Student {} not found".format(student_id))
    coach = db.get(User, coach_id)
    if coach is None or coach.role == ROLE_STUDENT:
        raise NotFound("Coach {} not found".format(coach_id))


@router.post("", status_code=201)
def create_attendance(
    request: AttendanceCreateRequest,
    user: User = Depends(require_staff),
    resolver: AccessResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    validate_class_type(request.class_type)
    class_date = parse_date_flexible(request.date)

    student_ids = [sid for sid in request.student_ids if sid]
    if not student_ids and request.student_id:
        student_ids = [request.student_id]
    if not student_ids:
        raise ValidationError("student_id is required")

    # Coaches always file under themselves
    coach_id = request.coach_id or user.id
    if user.role == ROLE_COACH:
        coach_id = user.id

    actor = Actor.from_user(user)
    if not resolver.attendance_create(actor, request.class_type, coach_id, student_ids):
        forbid()
    _check_participants(db, student_ids, coach_id)

    records = create_attendances(
        db, student_ids, coach_id, request.class_type, class_date,
        session_id=request.session_id,
        class_highlights=request.class_highlights,
        homework=request.homework,
    )

    if len(records) == 1:
        return serialize_attendance(records[0])
    return [serialize_attendance(r) for r in records]


@router.get("")
def list_attendance(
    month: Optional[int] = Query(None, description="1-12"),
    year: Optional[int] = Query(None, description="1970-2100"),
    student_id: Optional[str] = Query(None),
    coach_id: Optional[str] = Query(None),
    class_type: Optional[str] = Query(None),
    session_id: Optional[str] = Query(None),
    is_verified: Optional[bool] = Query(None),
    user: User = Depends(require_staff),
    resolver: AccessResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    if month is None or year is None:
        raise HTTPException(status_code=400, detail="month and year are required")

    f = AttendanceFilter(
        month=month,
        year=year,
        student_id=student_id,
        coach_id=coach_id,
        class_type=class_type,
        session_id=session_id,
        is_verified=is_verified,
    )

    if user.role == ROLE_COACH:
        f.coach_id = user.id
    elif user.role == ROLE_MENTOR:
        if not resolver.attendance_listing(Actor.from_user(user), coach_id or "", student_id or ""):
            forbid()
        f.mentor_id = user.id

    records = list_attendances(db, f)
    return {"attendances": [serialize_attendance(r) for r in records], "total": len(records)}


def _load_accessible(db: Session, resolver: AccessResolver, user: User, attendance_id: int):
    record = get_attendance(db, attendance_id)
    if not resolver.attendance(Actor.from_user(user), record):
        forbid()
    return record


@router.get("/{attendance_id}")
def get_attendance_record(
    attendance_id: int,
    user: User = Depends(require_staff),
    resolver: AccessResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    return serialize_attendance(_load_accessible(db, resolver, user, attendance_id))


@router.patch("/{attendance_id}")
def patch_attendance(
    attendance_id: int,
    patch: AttendancePatch,
    user: User = Depends(require_staff),
    resolver: AccessResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    record = _load_accessible(db, resolver, user, attendance_id)

    fields = patch.model_dump(exclude_unset=True)
    if "is_verified" in fields and user.role == ROLE_COACH:
        forbid("only mentors and admins can verify attendance")

    updated = update_attendance(db, record, fields)
    log_with_context(logger, "INFO", "Attendance patched",
                     context={"attendance_id": attendance_id, "actor_id": user.id})
    return serialize_attendance(updated)


@router.delete("/{attendance_id}")
def remove_attendance(
    attendance_id: int,
    user: User = Depends(require_staff),
    resolver: AccessResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    record = _load_accessible(db, resolver, user, attendance_id)
    delete_attendance(db, record)
    return {"message": "deleted", "id": attendance_id}
