"""
Auth API routes - signup and login.

Signup creates an unapproved account; login only succeeds once an admin has
approved it and while it is active.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.config import MIN_PASSWORD_LENGTH
from app.database import get_db
from app.logging_config import get_logger, log_with_context
from app.models.user import ROLE_COACH, ROLE_MENTOR, ROLE_STUDENT
from app.routes.users import serialize_user
from app.security import create_access_token, verify_password
from app.services.users import create_user, get_user_by_email

router = APIRouter()
logger = get_logger("http")

SIGNUP_ROLES = (ROLE_STUDENT, ROLE_COACH, ROLE_MENTOR)


# ── Pydantic schemas ─────────────────────────────────────────

class SignupRequest(BaseModel):
    email: str = Field(..., description="Login email")
    password: str
    first_name: str = ""
    last_name: str = ""
    role: Optional[str] = Field(None, description="student (default), coach or mentor")


class LoginRequest(BaseModel):
    email: str
    password: str


@router.post("/signup", status_code=201)
def signup(request: SignupRequest, db: Session = Depends(get_db)):
    role = request.role or ROLE_STUDENT
    if role not in SIGNUP_ROLES:
        raise HTTPException(status_code=400, detail=f"Role must be one of {', '.join(SIGNUP_ROLES)}")
    if "@" not in request.email:
        raise HTTPException(status_code=400, detail="Invalid email")
    if len(request.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
        )

    user = create_user(db, request.email, request.password,
                       request.first_name, request.last_name, role)

    log_with_context(logger, "INFO", "Signup completed",
                     context={"user_id": user.id, "role": role})
    return {"user": serialize_user(user), "message": "Account created; awaiting approval"}


@router.post("/login")
def login(request: LoginRequest, db: Session = Depends(get_db)):
    user = get_user_by_email(db, request.email)
    if user is None or not verify_password(request.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if not user.approved:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account awaiting approval")
    if not user.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account disabled")

    log_with_context(logger, "INFO", "Login succeeded", context={"user_id": user.id})
    return {
        "access_token": create_access_token(user.id, user.role),
        "token_type": "bearer",
        "user": serialize_user(user),
    }
