"""
Users API routes - profiles and the caller's own account.

Provides endpoints for:
- Listing users visible to the caller (admin: everyone or one role, coach/mentor: their students)
- Reading and updating a profile (self, admin, or the user's coach/mentor)
- Resetting the caller's own password
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.config import MIN_PASSWORD_LENGTH
from app.database import get_db
from app.logging_config import get_logger, log_with_context
from app.models.user import User, ROLES, ROLE_ADMIN, ROLE_COACH, ROLE_MENTOR
from app.routes.deps import get_current_user, get_resolver, forbid
from app.services.authorization import AccessResolver, Actor
from app.services.relationship_store import RelationshipStore
from app.services.users import (
    ProfilePatch, get_user_by_id, list_all_users, list_users_by_role, set_password, update_profile,
)

router = APIRouter()
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────

class ResetPasswordRequest(BaseModel):
    new_password: str


def _isoformat(value):
    return value.isoformat() if value else None


def serialize_user(user: User, include_details: bool = False) -> dict:
    """Serialize a User ORM object to a dict for API response."""
    result = {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "role": user.role,
        "approved": user.approved,
        "active": user.active,
        "created_at": _isoformat(user.created_at),
        "updated_at": _isoformat(user.updated_at),
    }
    if include_details:
        d = user.details
        result["details"] = {
            "city": d.city,
            "state": d.state,
            "country": d.country,
            "zipcode": d.zipcode,
            "phone": d.phone,
            "dob": _isoformat(d.dob),
            "lichess_username": d.lichess_username,
            "uscf_id": d.uscf_id,
            "chesscom_username": d.chesscom_username,
            "fide_id": d.fide_id,
            "bio": d.bio,
            "profile_picture_url": d.profile_picture_url,
            "additional_info": d.additional_info or {},
        } if d else None
    return result


@router.get("")
def list_users(
    role: Optional[str] = Query(None, description="Admin only: restrict to one role"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if user.role == ROLE_ADMIN:
        if role and role not in ROLES:
            raise HTTPException(status_code=400, detail=f"Role must be one of {', '.join(ROLES)}")
        users = list_users_by_role(db, role) if role else list_all_users(db)
    elif user.role in (ROLE_COACH, ROLE_MENTOR):
        users = RelationshipStore(db).list_students_for_coach_or_mentor(user.id)
    else:
        forbid()
    return {"users": [serialize_user(u) for u in users], "total": len(users)}


@router.get("/me")
def get_me(user: User = Depends(get_current_user)):
    return serialize_user(user, include_details=True)


@router.post("/reset-password")
def reset_password(
    request: ResetPasswordRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if len(request.new_password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
        )
    set_password(db, user.id, request.new_password)
    return {"message": "Password updated"}


@router.get("/{user_id}")
def get_user(
    user_id: str,
    user: User = Depends(get_current_user),
    resolver: AccessResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    if not resolver.student_data(Actor.from_user(user), user_id):
        forbid()
    return serialize_user(get_user_by_id(db, user_id), include_details=True)


@router.put("/{user_id}")
def update_user(
    user_id: str,
    patch: ProfilePatch,
    user: User = Depends(get_current_user),
    resolver: AccessResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    if not resolver.student_data(Actor.from_user(user), user_id):
        forbid()
    updated = update_profile(db, user_id, patch)

    log_with_context(logger, "INFO", "Profile update via API",
                     context={"user_id": user_id, "actor_id": user.id})
    return serialize_user(updated, include_details=True)
