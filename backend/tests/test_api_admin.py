"""
API tests for the admin endpoints: approvals, status changes, assignments
and the dashboard projections.
"""
import pytest

from app.models.relation import Relation
from app.models.user import ROLE_ADMIN, ROLE_COACH, ROLE_MENTOR, ROLE_STUDENT
from app.services.relationship_store import tracking_user_id

from conftest import auth_headers


@pytest.fixture
def admin(make_user):
    return make_user(ROLE_ADMIN)


@pytest.fixture
def headers(admin):
    return auth_headers(admin)


def _assign_student(client, headers, student_id, coach_id):
    return client.put("/api/admin/assignments/student",
                      json={"student_id": student_id, "coach_id": coach_id}, headers=headers)


def _assign_mentor(client, headers, coach_id, mentor_id):
    return client.put("/api/admin/assignments/mentor",
                      json={"coach_id": coach_id, "mentor_id": mentor_id}, headers=headers)


@pytest.mark.parametrize("role", [ROLE_STUDENT, ROLE_COACH, ROLE_MENTOR])
def test_non_admins_are_forbidden(client, make_user, role):
    user = make_user(role)
    assert client.get("/api/admin/dashboard", headers=auth_headers(user)).status_code == 403


def test_pending_lists_unapproved_newest_first(client, make_user, headers):
    first = make_user(ROLE_STUDENT, approved=False)
    second = make_user(ROLE_COACH, approved=False)
    make_user(ROLE_STUDENT)

    body = client.get("/api/admin/pending", headers=headers).json()
    assert [u["id"] for u in body] == [second.id, first.id]


def test_approve_user(client, make_user, headers):
    user = make_user(ROLE_STUDENT, approved=False)
    resp = client.post("/api/admin/users/{}/approve".format(user.id), headers=headers)
    assert resp.status_code == 200
    assert resp.json()["user"]["approved"] is True


def test_approve_unknown_user(client, headers):
    resp = client.post("/api/admin/users/USR00NOONE/approve", headers=headers)
    assert resp.status_code == 404


def test_update_user_status(client, make_user, headers):
    user = make_user(ROLE_STUDENT)
    resp = client.put("/api/admin/users/{}".format(user.id),
                      json={"role": ROLE_COACH, "active": False}, headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["role"] == ROLE_COACH
    assert body["active"] is False
    assert body["approved"] is True


def test_update_user_status_unknown_role(client, make_user, headers):
    user = make_user(ROLE_STUDENT)
    resp = client.put("/api/admin/users/{}".format(user.id), json={"role": "owner"}, headers=headers)
    assert resp.status_code == 422


def test_update_user_email_clash(client, make_user, headers):
    make_user(ROLE_STUDENT, email="taken@example.com")
    user = make_user(ROLE_STUDENT)
    resp = client.put("/api/admin/users/{}".format(user.id),
                      json={"email": "Taken@example.com"}, headers=headers)
    assert resp.status_code == 409


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------

def test_assign_student_inherits_mentor(client, db, make_user, headers):
    coach = make_user(ROLE_COACH)
    mentor = make_user(ROLE_MENTOR)
    student = make_user(ROLE_STUDENT)

    resp = _assign_mentor(client, headers, coach.id, mentor.id)
    assert resp.json()["students_updated"] == 0
    assert db.get(Relation, (coach.id, tracking_user_id(coach.id))).is_tracking is True

    resp = _assign_student(client, headers, student.id, coach.id)
    assert resp.status_code == 200
    assert resp.json()["mentor_id"] == mentor.id
    db.expire_all()
    assert db.get(Relation, (coach.id, tracking_user_id(coach.id))) is None


def test_unassign_student(client, db, make_user, headers):
    coach = make_user(ROLE_COACH)
    student = make_user(ROLE_STUDENT)
    _assign_student(client, headers, student.id, coach.id)

    resp = _assign_student(client, headers, student.id, "")
    assert resp.status_code == 200
    assert resp.json()["message"] == "student unassigned"
    db.expire_all()
    assert db.query(Relation).filter(Relation.user_id == student.id).count() == 0


def test_assign_student_to_student_is_rejected(client, make_user, headers):
    a = make_user(ROLE_STUDENT)
    b = make_user(ROLE_STUDENT)
    resp = _assign_student(client, headers, a.id, b.id)
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


def test_assign_unknown_coach(client, make_user, headers):
    student = make_user(ROLE_STUDENT)
    assert _assign_student(client, headers, student.id, "USR00NOONE").status_code == 404


def test_assign_mentor_counts_students(client, make_user, headers):
    coach = make_user(ROLE_COACH)
    mentor = make_user(ROLE_MENTOR)
    for _ in range(3):
        _assign_student(client, headers, make_user(ROLE_STUDENT).id, coach.id)

    body = _assign_mentor(client, headers, coach.id, mentor.id).json()
    assert body["students_updated"] == 3
    assert body["message"] == "mentor assigned to coach"


def test_remove_mentor(client, make_user, headers):
    coach = make_user(ROLE_COACH)
    mentor = make_user(ROLE_MENTOR)
    _assign_mentor(client, headers, coach.id, mentor.id)

    body = _assign_mentor(client, headers, coach.id, "").json()
    assert body["mentor_id"] is None
    assert body["message"] == "mentor removed from coach"


def test_assign_coach_as_mentor_is_rejected(client, make_user, headers):
    coach = make_user(ROLE_COACH)
    other = make_user(ROLE_COACH)
    assert _assign_mentor(client, headers, coach.id, other.id).status_code == 400


# ---------------------------------------------------------------------------
# Dashboard projections
# ---------------------------------------------------------------------------

def test_students_projection(client, make_user, headers):
    coach = make_user(ROLE_COACH)
    assigned = make_user(ROLE_STUDENT)
    unassigned = make_user(ROLE_STUDENT)
    _assign_student(client, headers, assigned.id, coach.id)

    body = client.get("/api/admin/students", headers=headers).json()
    by_id = {s["id"]: s for s in body}
    assert body[0]["id"] == unassigned.id
    assert by_id[unassigned.id]["coach_id"] is None
    assert by_id[assigned.id]["coach_id"] == coach.id
    assert by_id[assigned.id]["assigned_at"] is not None


def test_coaches_projection_shows_idle_coach_mentor(client, make_user, headers):
    coach = make_user(ROLE_COACH)
    mentor = make_user(ROLE_MENTOR)
    _assign_mentor(client, headers, coach.id, mentor.id)

    body = client.get("/api/admin/coaches", headers=headers).json()
    entry = next(c for c in body if c["id"] == coach.id)
    assert entry["student_id"] is None
    assert entry["mentor_id"] == mentor.id
    assert all(c["id"] != tracking_user_id(coach.id) for c in body)


def test_mentors_projection_only_mentors(client, make_user, headers):
    make_user(ROLE_COACH)
    mentor = make_user(ROLE_MENTOR)
    body = client.get("/api/admin/mentors", headers=headers).json()
    assert [m["id"] for m in body] == [mentor.id]
    assert body[0]["is_mentor"] is False


def test_dashboard_bundles_everything(client, make_user, headers):
    make_user(ROLE_STUDENT, approved=False)
    coach = make_user(ROLE_COACH)
    mentor = make_user(ROLE_MENTOR)
    student = make_user(ROLE_STUDENT)
    _assign_student(client, headers, student.id, coach.id)
    _assign_mentor(client, headers, coach.id, mentor.id)

    body = client.get("/api/admin/dashboard", headers=headers).json()
    assert len(body["pending_approvals"]) == 1
    assert student.id in {s["id"] for s in body["students"]}
    assert {c["id"] for c in body["mentor_coaches"]} == {mentor.id}
    coach_entry = next(c for c in body["coaches"] if c["id"] == coach.id)
    assert coach_entry["student_id"] == student.id
    assert coach_entry["mentor_id"] == mentor.id


def test_referenced_mentor_keeps_role(client, make_user, headers):
    coach = make_user(ROLE_COACH)
    mentor = make_user(ROLE_MENTOR)
    student = make_user(ROLE_STUDENT)
    _assign_student(client, headers, student.id, coach.id)
    _assign_mentor(client, headers, coach.id, mentor.id)

    resp = client.put("/api/admin/users/{}".format(mentor.id), json={"role": ROLE_STUDENT},
                      headers=headers)
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    body = client.get("/api/admin/mentors", headers=headers).json()
    assert [m["id"] for m in body] == [mentor.id]


def test_mentor_role_change_after_unassignment(client, make_user, headers):
    coach = make_user(ROLE_COACH)
    mentor = make_user(ROLE_MENTOR)
    _assign_mentor(client, headers, coach.id, mentor.id)
    _assign_mentor(client, headers, coach.id, "")

    resp = client.put("/api/admin/users/{}".format(mentor.id), json={"role": ROLE_COACH},
                      headers=headers)
    assert resp.status_code == 200
    assert resp.json()["role"] == ROLE_COACH
