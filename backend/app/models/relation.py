"""
Relation model - the student <-> coach <-> mentor edge.

Each row records one student's coach and that coach's mentor. A coach with
a mentor but no students keeps the mentor on a tracking row: user_id is
"T-" + the last 8 characters of the coach id and is_tracking is set.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, DateTime, String, Boolean, Index
from app.database import Base

TRACKING_PREFIX = "T-"


class Relation(Base):
    """
    SQLAlchemy model for the relations table.

    Composite primary key (coach_id, user_id). user_id is not a foreign key
    because tracking rows carry a synthetic id. mentor_id is "" when the
    coach has no mentor.
    """
    __tablename__ = "relations"

    coach_id = Column(String(10), primary_key=True,
                      doc="Coach (or mentor acting as coach) of the student")
    user_id = Column(String(10), primary_key=True,
                     doc="Student id, or the synthetic tracking id")
    mentor_id = Column(String(10), nullable=False, default="",
                       doc="Mentor of the coach; empty when none")
    is_tracking = Column(Boolean, nullable=False, default=False,
                         doc="True for the mentor-only row of a coach without students")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        doc="When the assignment was made")

    __table_args__ = (
        Index("ix_relations_mentor_id", "mentor_id"),
        Index("ix_relations_user_id", "user_id"),
    )

    def __repr__(self):
        return (f"<Relation(coach={self.coach_id}, user={self.user_id}, "
                f"mentor='{self.mentor_id}', tracking={self.is_tracking})>")
