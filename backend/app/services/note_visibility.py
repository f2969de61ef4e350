"""
Note Visibility Policy - who may read a note, and who may use which tag.

A note's visibility level is a 1-4 tier:

    1  admin
    2  admin, mentor of the subject
    3  admin, mentor or coach of the subject
    4  admin, the subject themself, their coach or mentor

Unknown levels deny everyone.
"""

from app.models.user import ROLE_ADMIN, ROLE_COACH, ROLE_MENTOR

VISIBILITY_ADMIN = 1
VISIBILITY_MENTOR = 2
VISIBILITY_COACH = 3
VISIBILITY_SUBJECT = 4

VISIBILITY_LEVELS = (VISIBILITY_ADMIN, VISIBILITY_MENTOR, VISIBILITY_COACH, VISIBILITY_SUBJECT)

# Relationships to the subject that unlock each level
VISIBILITY_RULES = {
    VISIBILITY_ADMIN: frozenset({"admin"}),
    VISIBILITY_MENTOR: frozenset({"admin", "mentor"}),
    VISIBILITY_COACH: frozenset({"admin", "mentor", "coach"}),
    VISIBILITY_SUBJECT: frozenset({"admin", "self", "mentor", "coach"}),
}

TAG_STUDENT_ASSESSMENT = "StudentAssessment"
TAG_COACH_ASSESSMENT = "CoachAssessment"
TAG_PARENT_FEEDBACK = "ParentFeedback"
TAG_LESSON_PLAN_ARCHIVE = "LessonPlanArchive"

# Tags missing from this map are open to every role
TAG_RESTRICTIONS = {
    TAG_STUDENT_ASSESSMENT: frozenset({ROLE_MENTOR, ROLE_COACH, ROLE_ADMIN}),
    TAG_COACH_ASSESSMENT: frozenset({ROLE_MENTOR, ROLE_ADMIN}),
    TAG_PARENT_FEEDBACK: frozenset({ROLE_MENTOR, ROLE_COACH, ROLE_ADMIN}),
    TAG_LESSON_PLAN_ARCHIVE: frozenset({ROLE_MENTOR, ROLE_ADMIN}),
}


def is_valid_visibility(level) -> bool:
    return isinstance(level, int) and not isinstance(level, bool) and level in VISIBILITY_LEVELS


def tag_allowed_for_role(tag: str, role: str) -> bool:
    allowed = TAG_RESTRICTIONS.get(tag)
    if allowed is None:
        return True
    return role in allowed


def level_permits(level: int, relationships: set) -> bool:
    """True if any of the reader's relationships to the subject unlocks the level."""
    permitted = VISIBILITY_RULES.get(level)
    if permitted is None:
        return False
    return bool(permitted & set(relationships))
