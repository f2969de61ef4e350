"""
Attendance model - one class attended by one student with one coach.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Text, Integer, DateTime, String, Boolean, Date, ForeignKey, Index
from sqlalchemy.orm import relationship
from app.database import Base

CLASS_REGULAR = "regular"
CLASS_DUAL = "dual"
CLASS_GAME_SESSION = "game_session"
CLASS_SUBSTITUTION = "substitution"

CLASS_TYPES = (CLASS_REGULAR, CLASS_DUAL, CLASS_GAME_SESSION, CLASS_SUBSTITUTION)


class Attendance(Base):
    """
    SQLAlchemy model for the attendances table.

    is_verified starts false and may only be changed by a mentor or admin.
    Soft-deleted through deleted_at.
    """
    __tablename__ = "attendances"

    id = Column(Integer, primary_key=True, autoincrement=True)
    student_id = Column(String(10), ForeignKey("users.id"), nullable=False)
    coach_id = Column(String(10), ForeignKey("users.id"), nullable=False)
    class_type = Column(String(16), nullable=False,
                        doc="regular | dual | game_session | substitution")
    date = Column(Date, nullable=False)
    session_id = Column(String(64), nullable=False, default="")
    is_verified = Column(Boolean, nullable=False, default=False)
    class_highlights = Column(Text, nullable=False, default="")
    homework = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    deleted_at = Column(DateTime, nullable=True)

    student = relationship("User", foreign_keys=[student_id])
    coach = relationship("User", foreign_keys=[coach_id])

    __table_args__ = (
        Index("ix_attendances_student_id", "student_id"),
        Index("ix_attendances_coach_id", "coach_id"),
        Index("ix_attendances_date", "date"),
        Index("ix_attendances_session_id", "session_id"),
    )

    def __repr__(self):
        return (f"<Attendance(id={self.id}, student={self.student_id}, "
                f"coach={self.coach_id}, type='{self.class_type}')>")
