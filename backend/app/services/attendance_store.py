"""
Attendance store - class attendance records and their monthly listing.

Records are soft-deleted; every read here skips rows with deleted_at set.
Access control is decided by the caller (see app.services.authorization).
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

from pydantic import BaseModel, field_validator
from sqlalchemy import exists, or_
from sqlalchemy.orm import Session, joinedload

from app.database import transaction
from app.errors import NotFound, ValidationError
from app.logging_config import get_logger, log_with_context
from app.models.attendance import Attendance, CLASS_TYPES
from app.models.relation import Relation

logger = get_logger("db")

MIN_YEAR = 1970
MAX_YEAR = 2100


def parse_date_flexible(value) -> date:
    """
    Parse YYYY-MM-DD, falling back to an RFC 3339 timestamp.

    Raises ValidationError for anything else.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        raise ValidationError("date is required")
    try:
        return date.fromisoformat(value)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        raise ValidationError("invalid date '{}'".format(value))


def validate_class_type(class_type: str) -> str:
    if class_type not in CLASS_TYPES:
        raise ValidationError("invalid class_type '{}'".format(class_type))
    return class_type


class AttendancePatch(BaseModel):
    class_type: Optional[str] = None
    date: Optional[str] = None
    session_id: Optional[str] = None
    is_verified: Optional[bool] = None
    class_highlights: Optional[str] = None
    homework: Optional[str] = None

    @field_validator("class_type")
    @classmethod
    def known_class_type(cls, v):
        if v is not None and v not in CLASS_TYPES:
            raise ValueError("class_type must be one of {}".format(", ".join(CLASS_TYPES)))
        return v


@dataclass
class AttendanceFilter:
    """Monthly listing filter; mentor_id restricts to a mentor's reach."""
    month: int
    year: int
    student_id: Optional[str] = None
    coach_id: Optional[str] = None
    class_type: Optional[str] = None
    session_id: Optional[str] = None
    is_verified: Optional[bool] = None
    mentor_id: Optional[str] = None


def month_range(month: int, year: int) -> tuple:
    """[first day of month, first day of next month)"""
    if month < 1 or month > 12:
        raise ValidationError("invalid month")
    if year < MIN_YEAR or year > MAX_YEAR:
        raise ValidationError("invalid year")
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start, end


def create_attendances(db: Session, student_ids: list, coach_id: str, class_type: str,
                       class_date: date, session_id: str = "", class_highlights: str = "",
                       homework: str = "") -> list:
    """Create one record per student in a single transaction. is_verified starts false."""
    validate_class_type(class_type)
    if not student_ids:
        raise ValidationError("student_id is required")

    now = datetime.now(timezone.utc)
    records = []
    with transaction(db):
        for student_id in student_ids:
            record = Attendance(
                student_id=student_id,
                coach_id=coach_id,
                class_type=class_type,
                date=class_date,
                session_id=session_id or "",
                is_verified=False,
                class_highlights=class_highlights or "",
                homework=homework or "",
                created_at=now,
                updated_at=now,
            )
            db.add(record)
            records.append(record)
        db.flush()

    log_with_context(logger, "INFO", "Attendance recorded",
                     context={"coach_id": coach_id, "class_type": class_type},
                     extra_data={"student_ids": list(student_ids),
                                 "attendance_ids": [r.id for r in records]})
    return records


def get_attendance(db: Session, attendance_id: int) -> Attendance:
    record = (
        db.query(Attendance)
        .options(joinedload(Attendance.student), joinedload(Attendance.coach))
        .filter(Attendance.id == attendance_id, Attendance.deleted_at.is_(None))
        .first()
    )
    if record is None:
        raise NotFound("Attendance {} not found".format(attendance_id))
    return record


def update_attendance(db: Session, record: Attendance, fields: dict) -> Attendance:
    """Apply already-validated fields (from AttendancePatch) to the record."""
    if not fields:
        raise ValidationError("no updates provided")

    with transaction(db):
        for name, value in fields.items():
            if value is None:
                raise ValidationError("{} cannot be null".format(name))
            if name == "date":
                value = parse_date_flexible(value)
            setattr(record, name, value)
        record.updated_at = datetime.now(timezone.utc)

    log_with_context(logger, "INFO", "Attendance updated",
                     context={"attendance_id": record.id},
                     extra_data={"fields": sorted(fields)})
    return record


def delete_attendance(db: Session, record: Attendance) -> None:
    with transaction(db):
        record.deleted_at = datetime.now(timezone.utc)
    log_with_context(logger, "INFO", "Attendance deleted",
                     context={"attendance_id": record.id})


def list_attendances(db: Session, f: AttendanceFilter) -> list:
    """Records dated within the month, newest date first, then newest id."""
    start, end = month_range(f.month, f.year)

    query = (
        db.query(Attendance)
        .options(joinedload(Attendance.student), joinedload(Attendance.coach))
        .filter(Attendance.deleted_at.is_(None),
                Attendance.date >= start,
                Attendance.date < end)
    )
    if f.student_id:
        query = query.filter(Attendance.student_id == f.student_id)
    if f.coach_id:
        query = query.filter(Attendance.coach_id == f.coach_id)
    if f.class_type:
        query = query.filter(Attendance.class_type == validate_class_type(f.class_type))
    if f.session_id:
        query = query.filter(Attendance.session_id == f.session_id)
    if f.is_verified is not None:
        query = query.filter(Attendance.is_verified.is_(f.is_verified))

    if f.mentor_id:
        # Own records, students the mentor mentors, or coaches the mentor mentors
        mentors_student = exists().where(
            Relation.user_id == Attendance.student_id,
            Relation.mentor_id == f.mentor_id,
            Relation.is_tracking.is_(False),
        )
        mentors_coach = exists().where(
            Relation.coach_id == Attendance.coach_id,
            Relation.mentor_id == f.mentor_id,
        )
        query = query.filter(or_(Attendance.coach_id == f.mentor_id,
                                 mentors_student, mentors_coach))

    return query.order_by(Attendance.date.desc(), Attendance.id.desc()).all()
