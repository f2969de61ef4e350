"""
User and UserDetails models - accounts and their profile data.

Every account has exactly one role. New accounts start unapproved and
cannot log in until an admin approves them; `active` is a soft-disable
switch. Users are never hard-deleted.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, String, Boolean, Date, ForeignKey, JSON
from sqlalchemy.orm import relationship
from app.database import Base

ROLE_ADMIN = "admin"
ROLE_COACH = "coach"
ROLE_MENTOR = "mentor"
ROLE_STUDENT = "student"

ROLES = (ROLE_ADMIN, ROLE_COACH, ROLE_MENTOR, ROLE_STUDENT)


class User(Base):
    """
    SQLAlchemy model for the users table.

    IDs have the form USR00XXXXX (five base-36 characters).
    """
    __tablename__ = "users"

    id = Column(String(10), primary_key=True,
                doc="User identifier, USR00 + 5 base-36 characters")
    email = Column(Text, unique=True, nullable=False, index=True,
                   doc="Login email, stored lowercase")
    password_hash = Column(Text, nullable=False,
                           doc="pbkdf2_sha256 hash of the password")
    first_name = Column(Text, nullable=False, default="")
    last_name = Column(Text, nullable=False, default="")
    role = Column(String(16), nullable=False,
                  doc="admin | coach | mentor | student")
    approved = Column(Boolean, nullable=False, default=False,
                      doc="Gates login; set by an admin")
    active = Column(Boolean, nullable=False, default=True,
                    doc="Soft-disable flag")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    details = relationship("UserDetails", back_populates="user", uselist=False,
                           cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"


class UserDetails(Base):
    """
    SQLAlchemy model for the user_details table.

    One-to-one with User (user_id is both PK and FK). Created empty
    together with the user.
    """
    __tablename__ = "user_details"

    user_id = Column(String(10), ForeignKey("users.id"), primary_key=True)
    city = Column(Text, default="")
    state = Column(Text, default="")
    country = Column(Text, default="")
    zipcode = Column(Text, default="")
    phone = Column(Text, default="")
    dob = Column(Date, nullable=True)
    lichess_username = Column(Text, default="")
    uscf_id = Column(Text, default="")
    chesscom_username = Column(Text, default="")
    fide_id = Column(Text, default="")
    bio = Column(Text, default="")
    profile_picture_url = Column(Text, default="")
    additional_info = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    user = relationship("User", back_populates="details")

    def __repr__(self):
        return f"<UserDetails(user_id={self.user_id})>"
