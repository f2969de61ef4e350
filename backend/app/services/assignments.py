"""
Assignment Service - the two business operations that mutate relations.

1. set_student_coach_assignment: assign, move or unassign a student
2. set_coach_mentor_assignment: give a coach a mentor, or take it away

Each call is a single transaction. The affected user rows are locked first
(SELECT ... FOR UPDATE, sorted by id) so concurrent calls for the same
student or coach serialize instead of losing updates. Any failure rolls the
whole change back; the service never retries.
"""

from typing import Optional

from sqlalchemy.orm import Session

from app.database import transaction
from app.errors import NotFound, ValidationError
from app.logging_config import get_logger, log_with_context
from app.models.relation import Relation
from app.models.user import ROLE_COACH, ROLE_MENTOR, ROLE_STUDENT
from app.services.relationship_store import RelationshipStore

logger = get_logger("relations")

COACHING_ROLES = (ROLE_COACH, ROLE_MENTOR)


class AssignmentService:

    def __init__(self, db: Session, store: Optional[RelationshipStore] = None):
        self.db = db
        self.store = store or RelationshipStore(db)

    def _require_user(self, users: dict, user_id: str, roles: tuple, label: str):
        user = users.get(user_id)
        if user is None:
            raise NotFound("{} {} not found".format(label.capitalize(), user_id))
        if user.role not in roles:
            raise ValidationError(
                "User {} has role '{}' and cannot be used as {}".format(user_id, user.role, label))
        return user

    def _keep_mentors(self, removed: list) -> None:
        """A coach that just lost its last student keeps its mentor on a tracking row."""
        for old_coach_id, mentor_id in removed:
            if mentor_id and self.store.count_real_assignments(old_coach_id) == 0:
                self.store.upsert_tracking_row(old_coach_id, mentor_id)

    def _checked_default_mentor(self, users: dict, coach_id: str) -> str:
        """
        The coach's default mentor, or "" when that user is gone or no longer
        has the mentor role. The mentor row is locked along with the others.
        """
        mentor_id = self.store.default_mentor_for_coach(coach_id)
        if not mentor_id:
            return ""
        if mentor_id not in users:
            users.update(self.store.lock_users(mentor_id))
        mentor = users.get(mentor_id)
        if mentor is None or mentor.role != ROLE_MENTOR:
            log_with_context(logger, "WARNING", "Ignoring stale default mentor",
                             context={"coach_id": coach_id, "mentor_id": mentor_id})
            return ""
        return mentor_id

    def set_student_coach_assignment(self, student_id: str, coach_id: str) -> Optional[Relation]:
        """
        Assign the student to the coach, or unassign when coach_id is "".

        The student ends up with exactly one real relation row (or none when
        unassigning). The row's mentor is the coach's default mentor, and
        the coach's tracking row is removed since the coach now has a real
        student. A previous coach left without students keeps its mentor on
        a tracking row. Returns the resulting row, or None after an unassign.
        """
        if not student_id:
            raise ValidationError("student_id is required")

        with transaction(self.db):
            previous_coaches = self.store.coaches_of_student(student_id)
            candidate_mentor = self.store.default_mentor_for_coach(coach_id) if coach_id else ""
            users = self.store.lock_users(student_id, coach_id, candidate_mentor, *previous_coaches)
            self._require_user(users, student_id, (ROLE_STUDENT,), "student")

            if not coach_id:
                removed = self.store.remove_assignments_for_student(student_id)
                self._keep_mentors(removed)
                log_with_context(logger, "INFO", "Student unassigned",
                                 context={"student_id": student_id, "removed": len(removed)})
                return None

            self._require_user(users, coach_id, COACHING_ROLES, "coach")

            default_mentor = self._checked_default_mentor(users, coach_id)
            removed = self.store.remove_assignments_for_student(student_id, keep_coach_id=coach_id)
            self._keep_mentors(removed)

            relation = self.db.get(Relation, (coach_id, student_id))
            if relation is not None and not relation.is_tracking:
                if relation.mentor_id != default_mentor:
                    relation.mentor_id = default_mentor
                    self.db.flush()
            else:
                relation = self.store.add_assignment(coach_id, student_id, default_mentor)

            self.store.delete_tracking_row(coach_id)

            log_with_context(logger, "INFO", "Student assigned to coach",
                             context={"student_id": student_id, "coach_id": coach_id,
                                      "mentor_id": default_mentor})

        return relation

    def set_coach_mentor_assignment(self, coach_id: str, mentor_id: str) -> int:
        """
        Make mentor_id the mentor of every row of the coach.

        An empty mentor_id clears the mentor everywhere and drops the tracking
        row. Otherwise a coach without real students keeps the mentor on a
        tracking row, and a coach with students has none. Returns the number
        of real assignments now carrying the mentor.
        """
        if not coach_id:
            raise ValidationError("coach_id is required")

        with transaction(self.db):
            users = self.store.lock_users(coach_id, mentor_id)
            self._require_user(users, coach_id, COACHING_ROLES, "coach")
            if mentor_id:
                self._require_user(users, mentor_id, (ROLE_MENTOR,), "mentor")

            self.store.set_mentor_for_coach(coach_id, mentor_id)

            if not mentor_id:
                self.store.delete_tracking_row(coach_id)
                log_with_context(logger, "INFO", "Mentor removed from coach",
                                 context={"coach_id": coach_id})
                return 0

            real_count = self.store.count_real_assignments(coach_id)
            if real_count > 0:
                self.store.delete_tracking_row(coach_id)
            else:
                self.store.upsert_tracking_row(coach_id, mentor_id)

            log_with_context(logger, "INFO", "Mentor assigned to coach",
                             context={"coach_id": coach_id, "mentor_id": mentor_id,
                                      "students": real_count})

        return real_count
