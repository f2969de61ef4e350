"""
Relationship Store - owns the student <-> coach <-> mentor mapping.

All reads and writes of the relations table go through this module:
1. Assignment CRUD (add/remove/find a student's assignment)
2. Default-mentor resolution for a coach
3. Tracking-row bookkeeping for coaches that have a mentor but no students
4. Relation predicates used by authorization (coach-of, mentor-of, ...)
5. Dashboard projections joining users with their assignments

The store never commits. Callers own the transaction boundary (see
app.database.transaction), which lets the Assignment Service compose several
store calls into one atomic change.

Tracking rows are identified by the is_tracking column, never by parsing
the "T-" prefix of user_id.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from app.errors import DuplicateKey, NotFound
from app.logging_config import get_logger, log_with_context
from app.models.relation import Relation, TRACKING_PREFIX
from app.models.user import User, ROLE_ADMIN, ROLE_COACH, ROLE_MENTOR, ROLE_STUDENT

logger = get_logger("relations")


def tracking_user_id(coach_id: str) -> str:
    """
    Synthetic user_id of a coach's tracking row.

    "T-" + the last 8 characters of the coach id, or "T-" + the whole id
    when it is 8 characters or shorter (keeps the value within 10 chars).
    """
    if len(coach_id) <= 8:
        return TRACKING_PREFIX + coach_id
    return TRACKING_PREFIX + coach_id[-8:]


@dataclass
class StudentAssignment:
    """A student together with their (optional) coach and mentor."""
    user: User
    coach_id: Optional[str] = None
    mentor_id: Optional[str] = None
    assigned_at: Optional[datetime] = None


@dataclass
class CoachAssignment:
    """
    One dashboard entry for a coach or mentor.

    is_mentor distinguishes "user coaches student_id" from "user mentors the
    coach of student_id". Entries without student_id are users with no real
    assignment; mentor_id then carries the coach's default mentor, if any.
    """
    user: User
    student_id: Optional[str] = None
    is_mentor: bool = False
    mentor_id: Optional[str] = None
    assigned_at: Optional[datetime] = None


class RelationshipStore:
    """Query and mutation operations over the relations table."""

    def __init__(self, db: Session):
        self.db = db

    def _real_relations(self):
        return self.db.query(Relation).filter(Relation.is_tracking.is_(False))

    def _exists(self, *criteria) -> bool:
        return self.db.query(Relation.coach_id).filter(*criteria).first() is not None

    # ── Assignment CRUD ──────────────────────────────────────

    def add_assignment(self, coach_id: str, student_id: str, mentor_id: str = "") -> Relation:
        """Create the (coach_id, student_id) row. Raises DuplicateKey if present."""
        if self.db.get(Relation, (coach_id, student_id)) is not None:
            raise DuplicateKey(
                "Assignment of {} to coach {} already exists".format(student_id, coach_id))

        relation = Relation(
            coach_id=coach_id,
            user_id=student_id,
            mentor_id=mentor_id or "",
            is_tracking=False,
            created_at=datetime.now(timezone.utc),
        )
        self.db.add(relation)
        self.db.flush()

        log_with_context(logger, "INFO", "Assignment created",
                         context={"coach_id": coach_id, "student_id": student_id,
                                  "mentor_id": mentor_id})
        return relation

    def remove_assignment(self, coach_id: str, student_id: str) -> bool:
        """Delete the (coach_id, student_id) row; returns False if there was none."""
        relation = self.db.get(Relation, (coach_id, student_id))
        if relation is None:
            return False
        self.db.delete(relation)
        self.db.flush()

        log_with_context(logger, "INFO", "Assignment removed",
                         context={"coach_id": coach_id, "student_id": student_id})
        return True

    def coaches_of_student(self, student_id: str) -> list:
        rows = (
            self.db.query(Relation.coach_id)
            .filter(Relation.user_id == student_id, Relation.is_tracking.is_(False))
            .all()
        )
        return [row[0] for row in rows]

    def remove_assignments_for_student(self, student_id: str, keep_coach_id: str = "") -> list:
        """
        Delete every real row of the student except the one under keep_coach_id.

        Returns (coach_id, mentor_id) of each deleted row.
        """
        query = self._real_relations().filter(Relation.user_id == student_id)
        if keep_coach_id:
            query = query.filter(Relation.coach_id != keep_coach_id)
        relations = query.all()
        removed = [(r.coach_id, r.mentor_id or "") for r in relations]
        for relation in relations:
            self.db.delete(relation)
        self.db.flush()

        if removed:
            log_with_context(logger, "INFO", "Assignments removed for student",
                             context={"student_id": student_id,
                                      "coach_ids": [coach_id for coach_id, _ in removed]})
        return removed

    def find_assignment_for_student(self, student_id: str) -> Relation:
        relation = (
            self._real_relations()
            .filter(Relation.user_id == student_id)
            .order_by(Relation.created_at.desc())
            .first()
        )
        if relation is None:
            raise NotFound("No coach assignment for student {}".format(student_id))
        return relation

    def coach_and_mentor_for_student(self, student_id: str) -> tuple:
        """(coach_id, mentor_id) of the student, or ("", "") when unassigned."""
        try:
            relation = self.find_assignment_for_student(student_id)
        except NotFound:
            return "", ""
        return relation.coach_id, relation.mentor_id or ""

    def default_mentor_for_coach(self, coach_id: str) -> str:
        """
        Mentor that new students of the coach inherit.

        Scans every row of the coach, tracking row included, and returns the
        mentor of the newest row that has one; "" if no row has a mentor.
        """
        row = (
            self.db.query(Relation.mentor_id)
            .filter(Relation.coach_id == coach_id,
                    Relation.mentor_id.isnot(None),
                    Relation.mentor_id != "")
            .order_by(Relation.created_at.desc(), Relation.user_id)
            .first()
        )
        return row[0] if row else ""

    def count_real_assignments(self, coach_id: str) -> int:
        return self._real_relations().filter(Relation.coach_id == coach_id).count()

    def set_mentor_for_coach(self, coach_id: str, mentor_id: str) -> int:
        """Set mentor_id on every row of the coach (tracking row too)."""
        relations = self.db.query(Relation).filter(Relation.coach_id == coach_id).all()
        for relation in relations:
            relation.mentor_id = mentor_id
        self.db.flush()

        log_with_context(logger, "INFO", "Mentor set on {} relation rows".format(len(relations)),
                         context={"coach_id": coach_id, "mentor_id": mentor_id})
        return len(relations)

    # ── Tracking rows ────────────────────────────────────────

    def get_tracking_row(self, coach_id: str) -> Optional[Relation]:
        return (
            self.db.query(Relation)
            .filter(Relation.coach_id == coach_id, Relation.is_tracking.is_(True))
            .first()
        )

    def upsert_tracking_row(self, coach_id: str, mentor_id: str) -> Relation:
        row = self.get_tracking_row(coach_id)
        if row is None:
            row = Relation(
                coach_id=coach_id,
                user_id=tracking_user_id(coach_id),
                mentor_id=mentor_id,
                is_tracking=True,
                created_at=datetime.now(timezone.utc),
            )
            self.db.add(row)
        else:
            row.mentor_id = mentor_id
        self.db.flush()

        log_with_context(logger, "INFO", "Tracking row stored",
                         context={"coach_id": coach_id, "mentor_id": mentor_id})
        return row

    def delete_tracking_row(self, coach_id: str) -> bool:
        row = self.get_tracking_row(coach_id)
        if row is None:
            return False
        self.db.delete(row)
        self.db.flush()

        log_with_context(logger, "INFO", "Tracking row deleted",
                         context={"coach_id": coach_id})
        return True

    # ── Locking ──────────────────────────────────────────────

    def lock_users(self, *user_ids: str) -> dict:
        """
        SELECT ... FOR UPDATE the given user rows and return them by id.

        Rows are locked in sorted id order so two transactions touching the
        same pair of users cannot deadlock. Missing ids are simply absent
        from the result.
        """
        ids = sorted({user_id for user_id in user_ids if user_id})
        if not ids:
            return {}
        users = (
            self.db.query(User)
            .filter(User.id.in_(ids))
            .order_by(User.id)
            .with_for_update()
            .populate_existing()
            .all()
        )
        return {user.id: user for user in users}

    # ── Relation predicates ──────────────────────────────────

    def is_coach_of(self, coach_id: str, student_id: str) -> bool:
        if not coach_id or not student_id:
            return False
        return self._exists(Relation.coach_id == coach_id,
                            Relation.user_id == student_id,
                            Relation.is_tracking.is_(False))

    def is_mentor_of(self, mentor_id: str, student_id: str) -> bool:
        if not mentor_id or not student_id:
            return False
        return self._exists(Relation.mentor_id == mentor_id,
                            Relation.user_id == student_id,
                            Relation.is_tracking.is_(False))

    def is_mentor_of_coach(self, mentor_id: str, coach_id: str) -> bool:
        """True if any row of the coach, tracking row included, names the mentor."""
        if not mentor_id or not coach_id:
            return False
        return self._exists(Relation.mentor_id == mentor_id,
                            Relation.coach_id == coach_id)

    def is_referenced_as_coach(self, user_id: str) -> bool:
        """True if the user coaches any real row."""
        if not user_id:
            return False
        return self._exists(Relation.coach_id == user_id, Relation.is_tracking.is_(False))

    def is_referenced_as_mentor(self, user_id: str) -> bool:
        """True if any row, tracking row included, names the user as mentor."""
        if not user_id:
            return False
        return self._exists(Relation.mentor_id == user_id)

    def is_related_student(self, requester_id: str, student_id: str) -> bool:
        """
        Admin, the student themself, their coach or their mentor.

        Checks run cheapest first and stop at the first match.
        """
        requester = self.db.get(User, requester_id)
        if requester is not None and requester.role == ROLE_ADMIN:
            return True
        if requester_id == student_id:
            return True
        if self.is_coach_of(requester_id, student_id):
            return True
        return self.is_mentor_of(requester_id, student_id)

    # ── Projections ──────────────────────────────────────────

    def list_students_for_coach_or_mentor(self, user_id: str) -> list:
        """Students the user coaches or mentors, newest account first."""
        return (
            self.db.query(User)
            .join(Relation, Relation.user_id == User.id)
            .filter(Relation.is_tracking.is_(False),
                    or_(Relation.coach_id == user_id, Relation.mentor_id == user_id))
            .distinct()
            .order_by(User.created_at.desc())
            .all()
        )

    def list_students_with_assignments(self) -> list:
        """
        Every student with their assignment.

        Unassigned students come first, then assigned ones by newest
        assignment. Tracking rows never match a student.
        """
        rows = (
            self.db.query(User, Relation)
            .outerjoin(Relation, and_(Relation.user_id == User.id,
                                      Relation.is_tracking.is_(False)))
            .filter(User.role == ROLE_STUDENT)
            .order_by(Relation.created_at.desc().nulls_first(), User.created_at.desc())
            .all()
        )
        return [
            StudentAssignment(
                user=user,
                coach_id=relation.coach_id if relation else None,
                mentor_id=(relation.mentor_id or None) if relation else None,
                assigned_at=relation.created_at if relation else None,
            )
            for user, relation in rows
        ]

    def list_coaches_with_assignments(self) -> list:
        """
        Every coach and mentor with their assignments.

        A user gets one entry per real relation row where they are the coach
        (is_mentor=False) or the mentor (is_mentor=True), newest first.
        Users with no real rows come first with a single entry carrying the
        coach's default mentor, which may come from the tracking row.
        """
        coaches = (
            self.db.query(User)
            .filter(User.role.in_([ROLE_COACH, ROLE_MENTOR]))
            .order_by(User.created_at.desc())
            .all()
        )
        by_id = {coach.id: coach for coach in coaches}

        relations = (
            self.db.query(Relation)
            .order_by(Relation.created_at.desc(), Relation.coach_id, Relation.user_id)
            .all()
        )

        default_mentors = {}
        for relation in relations:
            if relation.mentor_id and relation.coach_id not in default_mentors:
                default_mentors[relation.coach_id] = relation.mentor_id

        assigned = []
        with_real_rows = set()
        for relation in relations:
            if relation.is_tracking:
                continue
            coach = by_id.get(relation.coach_id)
            if coach is not None:
                assigned.append(CoachAssignment(
                    user=coach,
                    student_id=relation.user_id,
                    is_mentor=False,
                    mentor_id=relation.mentor_id or default_mentors.get(relation.coach_id),
                    assigned_at=relation.created_at,
                ))
                with_real_rows.add(coach.id)
            mentor = by_id.get(relation.mentor_id) if relation.mentor_id else None
            if mentor is not None:
                assigned.append(CoachAssignment(
                    user=mentor,
                    student_id=relation.user_id,
                    is_mentor=True,
                    assigned_at=relation.created_at,
                ))
                with_real_rows.add(mentor.id)

        unassigned = [
            CoachAssignment(user=coach, mentor_id=default_mentors.get(coach.id))
            for coach in coaches
            if coach.id not in with_real_rows
        ]
        return unassigned + assigned
