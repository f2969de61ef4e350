"""
API tests for signup, login and the /api/users endpoints.
"""
import pytest

from app.models.user import ROLE_ADMIN, ROLE_COACH, ROLE_MENTOR, ROLE_STUDENT
from app.services.assignments import AssignmentService

from conftest import DEFAULT_PASSWORD, auth_headers


@pytest.fixture
def team(db, make_user):
    """Admin, one coach with a mentor and one student, plus an outsider coach."""
    people = {
        "admin": make_user(ROLE_ADMIN),
        "coach": make_user(ROLE_COACH),
        "mentor": make_user(ROLE_MENTOR),
        "student": make_user(ROLE_STUDENT),
        "other_coach": make_user(ROLE_COACH),
        "other_student": make_user(ROLE_STUDENT),
    }
    service = AssignmentService(db)
    service.set_student_coach_assignment(people["student"].id, people["coach"].id)
    service.set_coach_mentor_assignment(people["coach"].id, people["mentor"].id)
    return people


# ---------------------------------------------------------------------------
# Signup and login
# ---------------------------------------------------------------------------

def test_signup_creates_unapproved_student(client):
    resp = client.post("/api/auth/signup", json={
        "email": "New.Player@Example.com", "password": "hunter22",
        "first_name": "New", "last_name": "Player",
    })
    assert resp.status_code == 201
    user = resp.json()["user"]
    assert user["role"] == ROLE_STUDENT
    assert user["approved"] is False
    assert user["email"] == "new.player@example.com"
    assert user["id"].startswith("USR00") and len(user["id"]) == 10


def test_signup_rejects_admin_role(client):
    resp = client.post("/api/auth/signup", json={
        "email": "boss@example.com", "password": "hunter22", "role": ROLE_ADMIN,
    })
    assert resp.status_code == 400


def test_signup_rejects_short_password(client):
    resp = client.post("/api/auth/signup", json={"email": "a@example.com", "password": "abc"})
    assert resp.status_code == 400


def test_signup_duplicate_email(client, make_user):
    make_user(ROLE_STUDENT, email="taken@example.com")
    resp = client.post("/api/auth/signup", json={"email": "taken@example.com", "password": "hunter22"})
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "DUPLICATE_KEY"


def test_login_requires_approval(client):
    client.post("/api/auth/signup", json={"email": "wait@example.com", "password": "hunter22"})
    resp = client.post("/api/auth/login", json={"email": "wait@example.com", "password": "hunter22"})
    assert resp.status_code == 403


def test_signup_approve_login_flow(client, make_user):
    admin = make_user(ROLE_ADMIN)
    created = client.post("/api/auth/signup", json={
        "email": "coach@example.com", "password": "hunter22", "role": ROLE_COACH,
    }).json()["user"]

    resp = client.post("/api/admin/users/{}/approve".format(created["id"]), headers=auth_headers(admin))
    assert resp.status_code == 200

    resp = client.post("/api/auth/login", json={"email": "coach@example.com", "password": "hunter22"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["role"] == ROLE_COACH

    me = client.get("/api/users/me", headers={"Authorization": "Bearer " + body["access_token"]})
    assert me.json()["id"] == created["id"]


def test_login_wrong_password(client, make_user):
    user = make_user(ROLE_STUDENT)
    resp = client.post("/api/auth/login", json={"email": user.email, "password": "nope-nope"})
    assert resp.status_code == 401


def test_login_inactive_user(client, make_user):
    user = make_user(ROLE_STUDENT, active=False)
    resp = client.post("/api/auth/login", json={"email": user.email, "password": DEFAULT_PASSWORD})
    assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Authentication on protected routes
# ---------------------------------------------------------------------------

def test_missing_token_is_unauthorized(client):
    assert client.get("/api/users/me").status_code == 401


def test_garbage_token_is_unauthorized(client):
    resp = client.get("/api/users/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


def test_unapproved_token_is_forbidden(client, make_user):
    user = make_user(ROLE_STUDENT, approved=False)
    assert client.get("/api/users/me", headers=auth_headers(user)).status_code == 403


def test_me_includes_details(client, make_user):
    user = make_user(ROLE_STUDENT)
    body = client.get("/api/users/me", headers=auth_headers(user)).json()
    assert body["id"] == user.id
    assert body["details"]["additional_info"] == {}


def test_request_id_is_echoed(client, make_user):
    user = make_user(ROLE_STUDENT)
    headers = dict(auth_headers(user), **{"X-Request-ID": "trace-123"})
    resp = client.get("/api/users/me", headers=headers)
    assert resp.headers["X-Request-ID"] == "trace-123"


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

def test_coach_and_mentor_read_their_student(client, team):
    url = "/api/users/{}".format(team["student"].id)
    assert client.get(url, headers=auth_headers(team["coach"])).status_code == 200
    assert client.get(url, headers=auth_headers(team["mentor"])).status_code == 200
    assert client.get(url, headers=auth_headers(team["admin"])).status_code == 200


def test_unrelated_users_cannot_read_student(client, team):
    url = "/api/users/{}".format(team["student"].id)
    assert client.get(url, headers=auth_headers(team["other_coach"])).status_code == 403
    assert client.get(url, headers=auth_headers(team["other_student"])).status_code == 403


def test_mentor_reads_mentored_coach(client, team):
    url = "/api/users/{}".format(team["coach"].id)
    assert client.get(url, headers=auth_headers(team["mentor"])).status_code == 200


def test_admin_gets_404_for_unknown_user(client, team):
    resp = client.get("/api/users/USR00NOONE", headers=auth_headers(team["admin"]))
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "NOT_FOUND"


def test_coach_updates_student_profile(client, team):
    resp = client.put(
        "/api/users/{}".format(team["student"].id),
        json={"city": "Pune", "lichess_username": "knightrider", "dob": "2012-04-09"},
        headers=auth_headers(team["coach"]),
    )
    assert resp.status_code == 200
    details = resp.json()["details"]
    assert details["city"] == "Pune"
    assert details["lichess_username"] == "knightrider"
    assert details["dob"] == "2012-04-09"


def test_profile_update_keeps_unsent_fields(client, team):
    headers = auth_headers(team["student"])
    url = "/api/users/{}".format(team["student"].id)
    client.put(url, json={"first_name": "Anya", "bio": "likes endgames"}, headers=headers)
    body = client.put(url, json={"bio": "likes openings"}, headers=headers).json()
    assert body["first_name"] == "Anya"
    assert body["details"]["bio"] == "likes openings"


def test_empty_profile_update_is_rejected(client, team):
    resp = client.put("/api/users/{}".format(team["student"].id), json={},
                      headers=auth_headers(team["student"]))
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


def test_other_coach_cannot_update_student(client, team):
    resp = client.put("/api/users/{}".format(team["student"].id), json={"city": "Goa"},
                      headers=auth_headers(team["other_coach"]))
    assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Listing and password reset
# ---------------------------------------------------------------------------

def test_admin_lists_everyone(client, team):
    body = client.get("/api/users", headers=auth_headers(team["admin"])).json()
    assert body["total"] == len(team)


def test_coach_lists_only_their_students(client, team):
    body = client.get("/api/users", headers=auth_headers(team["coach"])).json()
    assert [u["id"] for u in body["users"]] == [team["student"].id]


def test_mentor_lists_mentored_students(client, team):
    body = client.get("/api/users", headers=auth_headers(team["mentor"])).json()
    assert [u["id"] for u in body["users"]] == [team["student"].id]


def test_student_cannot_list_users(client, team):
    assert client.get("/api/users", headers=auth_headers(team["student"])).status_code == 403


def test_admin_filters_users_by_role(client, team):
    body = client.get("/api/users", params={"role": ROLE_COACH},
                      headers=auth_headers(team["admin"])).json()
    assert {u["id"] for u in body["users"]} == {team["coach"].id, team["other_coach"].id}
    assert body["total"] == 2


def test_admin_role_filter_rejects_unknown_role(client, team):
    resp = client.get("/api/users", params={"role": "owner"}, headers=auth_headers(team["admin"]))
    assert resp.status_code == 400


def test_reset_password(client, make_user):
    user = make_user(ROLE_STUDENT)
    resp = client.post("/api/users/reset-password", json={"new_password": "brand-new-pw"},
                       headers=auth_headers(user))
    assert resp.status_code == 200

    old = client.post("/api/auth/login", json={"email": user.email, "password": DEFAULT_PASSWORD})
    new = client.post("/api/auth/login", json={"email": user.email, "password": "brand-new-pw"})
    assert old.status_code == 401
    assert new.status_code == 200


def test_reset_password_too_short(client, make_user):
    user = make_user(ROLE_STUDENT)
    resp = client.post("/api/users/reset-password", json={"new_password": "x"},
                       headers=auth_headers(user))
    assert resp.status_code == 400
