"""
Tests for the user, attendance and note stores below the HTTP layer.
"""
from datetime import date
from unittest.mock import patch

import pytest

from app.errors import DuplicateKey, TransientStoreError, ValidationError
from app.models.note import LessonPlan
from app.models.user import ROLE_COACH, ROLE_MENTOR, ROLE_STUDENT
from app.services import users as user_store
from app.services.attendance_store import month_range, parse_date_flexible
from app.services.assignments import AssignmentService
from app.services.note_store import (
    LessonPlanPatch, archive_description, create_lesson_plan, update_lesson_plan,
)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

def test_generated_ids_have_prefix_and_base36_suffix():
    user_id = user_store.generate_user_id()
    assert user_id.startswith("USR00")
    assert len(user_id) == 10
    assert all(c in user_store.BASE36_ALPHABET for c in user_id[5:])


def test_create_user_retries_on_id_collision(db, make_user):
    make_user(ROLE_STUDENT, user_id="USR00TAKEN")
    ids = iter(["USR00TAKEN", "USR00FRESH"])
    with patch.object(user_store, "generate_user_id", side_effect=lambda: next(ids)):
        user = user_store.create_user(db, "fresh@example.com", "hunter22")
    assert user.id == "USR00FRESH"
    assert user.approved is False
    assert user.details is not None


def test_create_user_gives_up_after_five_collisions(db, make_user):
    make_user(ROLE_STUDENT, user_id="USR00TAKEN")
    with patch.object(user_store, "generate_user_id", return_value="USR00TAKEN"):
        with pytest.raises(TransientStoreError):
            user_store.create_user(db, "unlucky@example.com", "hunter22")


def test_create_user_duplicate_email(db, make_user):
    make_user(ROLE_STUDENT, email="dup@example.com")
    with pytest.raises(DuplicateKey):
        user_store.create_user(db, "DUP@example.com", "hunter22")


def test_create_user_unknown_role(db):
    with pytest.raises(ValidationError):
        user_store.create_user(db, "x@example.com", "hunter22", role="owner")


def test_status_patch_rejects_null_field(db, make_user):
    user = make_user(ROLE_COACH)
    with pytest.raises(ValidationError):
        user_store.update_user_fields(db, user.id, user_store.UserStatusPatch(active=None))


def test_list_users_by_role_newest_first(db, make_user):
    older = make_user(ROLE_COACH)
    newer = make_user(ROLE_COACH)
    make_user(ROLE_STUDENT)
    assert [u.id for u in user_store.list_users_by_role(db, ROLE_COACH)] == [newer.id, older.id]


# ---------------------------------------------------------------------------
# Attendance helpers
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("value, expected", [
    ("2026-02-28", date(2026, 2, 28)),
    ("2026-02-28T23:10:00Z", date(2026, 2, 28)),
    ("2026-02-28T01:00:00+05:30", date(2026, 2, 28)),
])
def test_parse_date_flexible(value, expected):
    assert parse_date_flexible(value) == expected


@pytest.mark.parametrize("value", ["", "yesterday", "2026-13-01"])
def test_parse_date_flexible_rejects(value):
    with pytest.raises(ValidationError):
        parse_date_flexible(value)


def test_month_range_wraps_december():
    assert month_range(12, 2025) == (date(2025, 12, 1), date(2026, 1, 1))


@pytest.mark.parametrize("month, year", [(0, 2026), (13, 2026), (5, 1969), (5, 2101)])
def test_month_range_bounds(month, year):
    with pytest.raises(ValidationError):
        month_range(month, year)


# ---------------------------------------------------------------------------
# Lesson plans
# ---------------------------------------------------------------------------

def test_archive_description_bullets():
    assert archive_description(["a", "b"]) == "- a\n- b"
    assert archive_description(None) == ""


def test_only_one_active_plan(db, make_user):
    student = make_user(ROLE_STUDENT)
    create_lesson_plan(db, student.id, "USR00MENT1", title="one")
    create_lesson_plan(db, student.id, "USR00MENT1", title="two")
    create_lesson_plan(db, student.id, "USR00MENT1", title="three")

    active = db.query(LessonPlan).filter(LessonPlan.active.is_(True)).all()
    assert [p.title for p in active] == ["three"]


def test_lesson_plan_patch_cannot_reactivate(db, make_user):
    student = make_user(ROLE_STUDENT)
    first = create_lesson_plan(db, student.id, "USR00MENT1", title="one")
    create_lesson_plan(db, student.id, "USR00MENT1", title="two")

    with pytest.raises(ValidationError):
        update_lesson_plan(db, first, LessonPlanPatch(active=True))

    active = db.query(LessonPlan).filter(LessonPlan.active.is_(True)).all()
    assert [p.title for p in active] == ["two"]


# ---------------------------------------------------------------------------
# Role changes of users referenced by relations
# ---------------------------------------------------------------------------

@pytest.fixture
def coached(db, make_user):
    coach = make_user(ROLE_COACH)
    mentor = make_user(ROLE_MENTOR)
    student = make_user(ROLE_STUDENT)
    service = AssignmentService(db)
    service.set_student_coach_assignment(student.id, coach.id)
    service.set_coach_mentor_assignment(coach.id, mentor.id)
    return coach, mentor, student


def test_mentor_in_use_cannot_change_role(db, coached):
    _, mentor, _ = coached
    for role in (ROLE_STUDENT, ROLE_COACH):
        with pytest.raises(ValidationError):
            user_store.update_user_fields(db, mentor.id, user_store.UserStatusPatch(role=role))
    db.expire_all()
    assert user_store.get_user_by_id(db, mentor.id).role == ROLE_MENTOR


def test_mentor_of_idle_coach_cannot_change_role(db, make_user):
    coach = make_user(ROLE_COACH)
    mentor = make_user(ROLE_MENTOR)
    AssignmentService(db).set_coach_mentor_assignment(coach.id, mentor.id)
    with pytest.raises(ValidationError):
        user_store.update_user_fields(db, mentor.id, user_store.UserStatusPatch(role=ROLE_STUDENT))


def test_coach_with_students_cannot_become_student(db, coached):
    coach, _, _ = coached
    with pytest.raises(ValidationError):
        user_store.update_user_fields(db, coach.id, user_store.UserStatusPatch(role=ROLE_STUDENT))


def test_coach_with_students_may_become_mentor(db, coached):
    coach, _, _ = coached
    user = user_store.update_user_fields(db, coach.id, user_store.UserStatusPatch(role=ROLE_MENTOR))
    assert user.role == ROLE_MENTOR


def test_role_change_allowed_once_mentor_removed(db, coached):
    coach, mentor, _ = coached
    AssignmentService(db).set_coach_mentor_assignment(coach.id, "")
    user = user_store.update_user_fields(db, mentor.id, user_store.UserStatusPatch(role=ROLE_STUDENT))
    assert user.role == ROLE_STUDENT


def test_same_role_patch_is_not_checked(db, coached):
    _, mentor, _ = coached
    user = user_store.update_user_fields(
        db, mentor.id, user_store.UserStatusPatch(role=ROLE_MENTOR, active=False))
    assert user.active is False
