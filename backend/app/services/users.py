"""
User store - account creation, lookup and partial updates.

Partial updates take explicit patch models; only the fields a client sent
(model_dump(exclude_unset=True)) are written.
"""

import secrets
from datetime import date, datetime, timezone
from typing import Optional

from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from app.database import transaction
from app.errors import DuplicateKey, NotFound, TransientStoreError, ValidationError
from app.logging_config import get_logger, log_with_context
from app.models.user import User, UserDetails, ROLES, ROLE_COACH, ROLE_MENTOR, ROLE_STUDENT
from app.security import get_password_hash
from app.services.relationship_store import RelationshipStore

logger = get_logger("db")

BASE36_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
USER_ID_PREFIX = "USR00"
USER_ID_SUFFIX_LENGTH = 5
CREATE_USER_ATTEMPTS = 5


# ── Patch models ─────────────────────────────────────────────

class UserStatusPatch(BaseModel):
    """Admin-only account fields."""
    email: Optional[str] = None
    role: Optional[str] = None
    approved: Optional[bool] = None
    active: Optional[bool] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        if v is None:
            return v
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("invalid email")
        return v

    @field_validator("role")
    @classmethod
    def known_role(cls, v):
        if v is not None and v not in ROLES:
            raise ValueError("role must be one of {}".format(", ".join(ROLES)))
        return v


class ProfilePatch(BaseModel):
    """Fields a user (or their coach, mentor or an admin) may edit."""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    zipcode: Optional[str] = None
    phone: Optional[str] = None
    dob: Optional[date] = None
    lichess_username: Optional[str] = None
    uscf_id: Optional[str] = None
    chesscom_username: Optional[str] = None
    fide_id: Optional[str] = None
    bio: Optional[str] = None
    profile_picture_url: Optional[str] = None
    additional_info: Optional[dict] = None


# ProfilePatch fields stored on users; everything else lives on user_details
USER_PROFILE_FIELDS = {"first_name", "last_name"}


def generate_user_id() -> str:
    """USR00 followed by five random base-36 characters."""
    suffix = "".join(secrets.choice(BASE36_ALPHABET) for _ in range(USER_ID_SUFFIX_LENGTH))
    return USER_ID_PREFIX + suffix


def get_user_by_id(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("User {} not found".format(user_id))
    return user


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email.strip().lower()).first()


def create_user(db: Session, email: str, password: str, first_name: str = "",
                last_name: str = "", role: str = ROLE_STUDENT) -> User:
    """
    Create an unapproved, active user with empty profile details.

    A fresh id is drawn for each of up to five attempts. A clash on the
    email is reported as DuplicateKey straight away.
    """
    if role not in ROLES:
        raise ValidationError("Invalid role '{}'".format(role))
    email = email.strip().lower()
    if get_user_by_email(db, email) is not None:
        raise DuplicateKey("Email already registered")

    password_hash = get_password_hash(password)
    for _ in range(CREATE_USER_ATTEMPTS):
        user_id = generate_user_id()
        if db.get(User, user_id) is not None:
            continue
        now = datetime.now(timezone.utc)
        user = User(
            id=user_id,
            email=email,
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            role=role,
            approved=False,
            active=True,
            created_at=now,
            updated_at=now,
        )
        user.details = UserDetails(user_id=user_id, additional_info={}, updated_at=now)
        try:
            with transaction(db):
                db.add(user)
        except DuplicateKey:
            # Lost a race: either on the email or on the id
            if get_user_by_email(db, email) is not None:
                raise
            continue

        log_with_context(logger, "INFO", "User created",
                         context={"user_id": user_id, "role": role})
        return user

    raise TransientStoreError("Could not allocate a unique user id")


def _check_role_change(store: RelationshipStore, user: User, new_role: str) -> None:
    """Relation rows must keep naming a mentor as mentor and a coach or mentor as coach."""
    if new_role != ROLE_MENTOR and store.is_referenced_as_mentor(user.id):
        raise ValidationError(
            "User {} is still mentor of a coach; remove the mentor assignment first".format(user.id))
    if new_role not in (ROLE_COACH, ROLE_MENTOR) and store.is_referenced_as_coach(user.id):
        raise ValidationError(
            "User {} still coaches students; reassign them first".format(user.id))


def update_user_fields(db: Session, user_id: str, patch: UserStatusPatch) -> User:
    """Apply an admin status patch (email, role, approved, active)."""
    fields = patch.model_dump(exclude_unset=True)
    if not fields:
        raise ValidationError("No fields to update")

    with transaction(db):
        store = RelationshipStore(db)
        user = store.lock_users(user_id).get(user_id)
        if user is None:
            raise NotFound("User {} not found".format(user_id))
        if fields.get("role") and fields["role"] != user.role:
            _check_role_change(store, user, fields["role"])
        if "email" in fields and fields["email"] != user.email:
            other = get_user_by_email(db, fields["email"])
            if other is not None:
                raise DuplicateKey("Email already registered")
        for name, value in fields.items():
            if value is None:
                raise ValidationError("{} cannot be null".format(name))
            setattr(user, name, value)
        user.updated_at = datetime.now(timezone.utc)

    log_with_context(logger, "INFO", "User status updated",
                     context={"user_id": user_id}, extra_data={"fields": sorted(fields)})
    return user


def update_profile(db: Session, user_id: str, patch: ProfilePatch) -> User:
    fields = patch.model_dump(exclude_unset=True)
    if not fields:
        raise ValidationError("No fields to update")

    with transaction(db):
        user = get_user_by_id(db, user_id)
        now = datetime.now(timezone.utc)
        if user.details is None:
            user.details = UserDetails(user_id=user_id, additional_info={})
        for name, value in fields.items():
            if name in USER_PROFILE_FIELDS:
                setattr(user, name, value or "")
            elif name == "dob":
                user.details.dob = value
            elif name == "additional_info":
                user.details.additional_info = value or {}
            else:
                setattr(user.details, name, value or "")
        user.updated_at = now
        user.details.updated_at = now

    log_with_context(logger, "INFO", "Profile updated",
                     context={"user_id": user_id}, extra_data={"fields": sorted(fields)})
    return user


def set_password(db: Session, user_id: str, new_password: str) -> None:
    with transaction(db):
        user = get_user_by_id(db, user_id)
        user.password_hash = get_password_hash(new_password)
        user.updated_at = datetime.now(timezone.utc)
    log_with_context(logger, "INFO", "Password changed", context={"user_id": user_id})


def approve_user(db: Session, user_id: str) -> User:
    return update_user_fields(db, user_id, UserStatusPatch(approved=True))


def list_unapproved_users(db: Session) -> list:
    return (
        db.query(User)
        .filter(User.approved.is_(False))
        .order_by(User.created_at.desc())
        .all()
    )


def list_users_by_role(db: Session, role: str) -> list:
    return (
        db.query(User)
        .filter(User.role == role)
        .order_by(User.created_at.desc())
        .all()
    )


def list_all_users(db: Session) -> list:
    return db.query(User).order_by(User.created_at.desc()).all()
