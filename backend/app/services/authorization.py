"""
Authorization Resolver - access decisions for student data, attendance
records and notes.

The can_access_* functions are pure: they take the acting user and
precomputed relationship facts and return a bool. AccessResolver gathers
those facts from the Relationship Store, issuing only the lookups a rule can
still use, and logs denied decisions on the "authz" channel.

A False decision is not an error; routes turn it into a 403.
"""

from dataclasses import dataclass

from app.logging_config import get_logger, log_with_context
from app.models.attendance import CLASS_DUAL, CLASS_GAME_SESSION, CLASS_REGULAR, CLASS_SUBSTITUTION
from app.models.user import ROLE_ADMIN, ROLE_COACH, ROLE_MENTOR, ROLE_STUDENT
from app.services.note_visibility import (
    VISIBILITY_RULES, VISIBILITY_MENTOR, VISIBILITY_COACH, level_permits,
)
from app.services.relationship_store import RelationshipStore

logger = get_logger("authz")


@dataclass(frozen=True)
class Actor:
    """The user making a request."""
    id: str
    role: str

    @classmethod
    def from_user(cls, user) -> "Actor":
        return cls(id=user.id, role=user.role)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


@dataclass(frozen=True)
class AttendanceFacts:
    mentor_of_coach: bool = False
    mentor_of_student: bool = False


@dataclass(frozen=True)
class NoteFacts:
    """Relationship of the actor to the note's subject."""
    is_coach: bool = False
    is_mentor: bool = False


def can_access_student_data(actor: Actor, target_id: str, coach_id: str = "",
                            mentor_id: str = "") -> bool:
    """Self, admin, or the target's coach or mentor."""
    if actor.id == target_id or actor.is_admin:
        return True
    if coach_id and actor.id == coach_id:
        return True
    return bool(mentor_id) and actor.id == mentor_id


def can_access_attendance(actor: Actor, record, facts: AttendanceFacts) -> bool:
    """
    Admin always; a coach only for their own records; a mentor for their own
    records and for records of coaches or students they mentor. Students
    never.
    """
    if actor.is_admin:
        return True
    if actor.role == ROLE_COACH:
        return record.coach_id == actor.id
    if actor.role == ROLE_MENTOR:
        return (record.coach_id == actor.id
                or facts.mentor_of_coach
                or facts.mentor_of_student)
    return False


def can_access_note(actor: Actor, note, facts: NoteFacts) -> bool:
    relationships = set()
    if actor.is_admin:
        relationships.add("admin")
    if actor.id == note.user_id:
        relationships.add("self")
    if facts.is_coach:
        relationships.add("coach")
    if facts.is_mentor:
        relationships.add("mentor")
    return level_permits(note.visibility, relationships)


class AccessResolver:
    """Fetches relationship facts on demand and applies the pure rules."""

    def __init__(self, store: RelationshipStore):
        self.store = store

    def _decide(self, allowed: bool, actor: Actor, resource: str, resource_id) -> bool:
        if not allowed:
            log_with_context(logger, "INFO", "Access denied",
                             context={"actor_id": actor.id, "role": actor.role,
                                      "resource": resource, "resource_id": resource_id})
        return allowed

    def student_data(self, actor: Actor, target_id: str) -> bool:
        """
        Whether actor may read or update target_id's profile.

        For a student the coach and mentor come from their assignment; a
        user without one (e.g. a coach) is reachable by their default mentor.
        """
        if actor.id == target_id or actor.is_admin:
            return True
        coach_id, mentor_id = self.store.coach_and_mentor_for_student(target_id)
        if not coach_id:
            mentor_id = self.store.default_mentor_for_coach(target_id)
        allowed = can_access_student_data(actor, target_id, coach_id, mentor_id)
        return self._decide(allowed, actor, "user", target_id)

    def attendance_facts(self, actor: Actor, record) -> AttendanceFacts:
        if actor.role != ROLE_MENTOR or record.coach_id == actor.id:
            return AttendanceFacts()
        if self.store.is_mentor_of_coach(actor.id, record.coach_id):
            return AttendanceFacts(mentor_of_coach=True)
        return AttendanceFacts(
            mentor_of_student=self.store.is_mentor_of(actor.id, record.student_id))

    def attendance(self, actor: Actor, record) -> bool:
        allowed = can_access_attendance(actor, record, self.attendance_facts(actor, record))
        return self._decide(allowed, actor, "attendance", record.id)

    def attendance_create(self, actor: Actor, class_type: str, coach_id: str,
                          student_ids: list) -> bool:
        """
        Whether actor may file records of class_type under coach_id.

        Coaches need a coaching relation with every student for regular and
        dual classes. Mentors may file substitutions and game sessions for
        themselves or coaches they mentor; for other classes each student
        must be related to them unless they mentor the coach.
        """
        if actor.is_admin:
            return True

        if actor.role == ROLE_COACH:
            if class_type in (CLASS_REGULAR, CLASS_DUAL):
                allowed = all(self.store.is_coach_of(actor.id, sid) for sid in student_ids)
            else:
                allowed = True
            return self._decide(allowed, actor, "attendance", None)

        if actor.role == ROLE_MENTOR:
            owns_coach = (coach_id == actor.id
                          or self.store.is_mentor_of_coach(actor.id, coach_id))
            if class_type in (CLASS_SUBSTITUTION, CLASS_GAME_SESSION):
                allowed = owns_coach
            else:
                allowed = owns_coach or all(
                    self.store.is_related_student(actor.id, sid) for sid in student_ids)
            return self._decide(allowed, actor, "attendance", None)

        return self._decide(False, actor, "attendance", None)

    def attendance_listing(self, actor: Actor, coach_id: str = "", student_id: str = "") -> bool:
        """Mentors may only filter by coaches and students within their reach."""
        if actor.role != ROLE_MENTOR:
            return actor.role in (ROLE_ADMIN, ROLE_COACH)
        if coach_id and coach_id != actor.id and not self.store.is_mentor_of_coach(actor.id, coach_id):
            return self._decide(False, actor, "attendance", coach_id)
        if student_id and not self.store.is_related_student(actor.id, student_id):
            return self._decide(False, actor, "attendance", student_id)
        return True

    def note_facts(self, actor: Actor, note) -> NoteFacts:
        level = note.visibility
        if actor.is_admin or level not in VISIBILITY_RULES:
            return NoteFacts()
        if actor.id == note.user_id and "self" in VISIBILITY_RULES[level]:
            return NoteFacts()
        if level < VISIBILITY_MENTOR:
            return NoteFacts()
        # The subject may be a student or a coach
        if (self.store.is_mentor_of(actor.id, note.user_id)
                or self.store.is_mentor_of_coach(actor.id, note.user_id)):
            return NoteFacts(is_mentor=True)
        if level < VISIBILITY_COACH:
            return NoteFacts()
        return NoteFacts(is_coach=self.store.is_coach_of(actor.id, note.user_id))

    def note(self, actor: Actor, note) -> bool:
        allowed = can_access_note(actor, note, self.note_facts(actor, note))
        return self._decide(allowed, actor, "note", note.id)

    def visible_notes(self, actor: Actor, subject_id: str, notes: list) -> list:
        """Filter notes about one subject, looking the relationship up once."""
        if actor.is_admin or actor.id == subject_id:
            facts = NoteFacts()
        else:
            facts = NoteFacts(
                is_coach=self.store.is_coach_of(actor.id, subject_id),
                is_mentor=(self.store.is_mentor_of(actor.id, subject_id)
                           or self.store.is_mentor_of_coach(actor.id, subject_id)),
            )
        return [n for n in notes if can_access_note(actor, n, facts)]

    def note_subject(self, actor: Actor, subject) -> bool:
        """
        Whether actor may write or list notes about subject.

        Coaches are open to admins and mentors, students to related users,
        anyone else only to admins and themselves.
        """
        if subject.role == ROLE_COACH:
            allowed = actor.role in (ROLE_ADMIN, ROLE_MENTOR)
        elif subject.role == ROLE_STUDENT:
            allowed = actor.is_admin or self.store.is_related_student(actor.id, subject.id)
        else:
            allowed = actor.is_admin or actor.id == subject.id
        return self._decide(allowed, actor, "notes", subject.id)

    def lesson_plan(self, actor: Actor, user_id: str) -> bool:
        """Admins, or a mentor of the user."""
        allowed = actor.is_admin or (
            actor.role == ROLE_MENTOR and (self.store.is_mentor_of(actor.id, user_id)
                                          or self.store.is_mentor_of_coach(actor.id, user_id)))
        return self._decide(allowed, actor, "lesson_plan", user_id)
