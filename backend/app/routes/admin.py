"""
Admin API routes - approvals, account status and coaching assignments.

Every endpoint requires the admin role. Assignment changes go through the
AssignmentService so each request is one atomic transaction.
"""

import time
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.database import get_db
from app.logging_config import get_logger, log_with_context
from app.models.user import User, ROLE_MENTOR
from app.routes.deps import require_admin
from app.routes.users import serialize_user
from app.services.assignments import AssignmentService
from app.services.relationship_store import RelationshipStore
from app.services.users import (
    UserStatusPatch, approve_user, list_unapproved_users, update_user_fields,
)

router = APIRouter()
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────

class StudentAssignmentRequest(BaseModel):
    """coach_id "" (or omitted) unassigns the student."""
    student_id: str = Field(..., description="Student to assign")
    coach_id: Optional[str] = Field("", description="Coach to assign to; empty to unassign")


class MentorAssignmentRequest(BaseModel):
    """mentor_id "" (or omitted) removes the coach's mentor."""
    coach_id: str = Field(..., description="Coach receiving the mentor")
    mentor_id: Optional[str] = Field("", description="Mentor; empty to remove")


def _isoformat(value):
    return value.isoformat() if value else None


def serialize_student_assignment(entry) -> dict:
    result = serialize_user(entry.user)
    result.update({
        "coach_id": entry.coach_id,
        "mentor_id": entry.mentor_id,
        "assigned_at": _isoformat(entry.assigned_at),
    })
    return result


def serialize_coach_assignment(entry) -> dict:
    result = serialize_user(entry.user)
    result.update({
        "student_id": entry.student_id,
        "is_mentor": entry.is_mentor,
        "mentor_id": entry.mentor_id,
        "assigned_at": _isoformat(entry.assigned_at),
    })
    return result


@router.put("/users/{user_id}")
def update_user_status(
    user_id: str,
    patch: UserStatusPatch,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = update_user_fields(db, user_id, patch)
    log_with_context(logger, "INFO", "User status changed by admin",
                     context={"user_id": user_id, "admin_id": admin.id})
    return serialize_user(user)


@router.post("/users/{user_id}/approve")
def approve(
    user_id: str,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = approve_user(db, user_id)
    log_with_context(logger, "INFO", "User approved",
                     context={"user_id": user_id, "admin_id": admin.id})
    return {"message": "user approved", "user": serialize_user(user)}


@router.get("/pending")
def pending_approvals(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return [serialize_user(u) for u in list_unapproved_users(db)]


@router.get("/students")
def students_with_assignments(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    entries = RelationshipStore(db).list_students_with_assignments()
    return [serialize_student_assignment(e) for e in entries]


@router.get("/coaches")
def coaches_with_assignments(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    entries = RelationshipStore(db).list_coaches_with_assignments()
    return [serialize_coach_assignment(e) for e in entries]


@router.get("/mentors")
def mentors_with_assignments(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    entries = RelationshipStore(db).list_coaches_with_assignments()
    return [serialize_coach_assignment(e) for e in entries if e.user.role == ROLE_MENTOR]


@router.get("/dashboard")
def dashboard(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Everything the admin dashboard renders, in one call."""
    start_time = time.time()
    store = RelationshipStore(db)

    coaches = [serialize_coach_assignment(e) for e in store.list_coaches_with_assignments()]
    data = {
        "pending_approvals": [serialize_user(u) for u in list_unapproved_users(db)],
        "students": [serialize_student_assignment(e)
                     for e in store.list_students_with_assignments()],
        "coaches": coaches,
        "mentor_coaches": [c for c in coaches if c["role"] == ROLE_MENTOR],
    }

    duration_ms = round((time.time() - start_time) * 1000, 2)
    log_with_context(logger, "INFO", "Dashboard assembled",
                     context={"admin_id": admin.id},
                     extra_data={"duration_ms": duration_ms,
                                 "students": len(data["students"]),
                                 "coaches": len(coaches)})
    return data


@router.put("/assignments/student")
def assign_student(
    request: StudentAssignmentRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    coach_id = request.coach_id or ""
    relation = AssignmentService(db).set_student_coach_assignment(request.student_id, coach_id)

    if relation is None:
        return {"message": "student unassigned", "student_id": request.student_id}
    return {
        "message": "student assigned to coach",
        "student_id": relation.user_id,
        "coach_id": relation.coach_id,
        "mentor_id": relation.mentor_id or None,
    }


@router.put("/assignments/mentor")
def assign_mentor(
    request: MentorAssignmentRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    mentor_id = request.mentor_id or ""
    students = AssignmentService(db).set_coach_mentor_assignment(request.coach_id, mentor_id)

    message = "mentor assigned to coach" if mentor_id else "mentor removed from coach"
    return {
        "message": message,
        "coach_id": request.coach_id,
        "mentor_id": mentor_id or None,
        "students_updated": students,
    }
