from app.models.user import User, UserDetails
from app.models.relation import Relation
from app.models.note import Note, LessonPlan
from app.models.attendance import Attendance

__all__ = ["User", "UserDetails", "Relation", "Note", "LessonPlan", "Attendance"]
