"""
Tests for the superadmin back-office: users, activity, cycle review
and impersonation.
"""
from datetime import datetime, timedelta, timezone

from studio.core.security import IMPERSONATION_COOKIE, IMPERSONATION_MAX_HOURS, TokenSigner
from studio.database.models import AdminActivityLog, ImpersonationLog, User


def _cycle(client, headers, name="Hostel water complaints"):
    response = client.post("/api/cycles", json={"name": name}, headers=headers)
    assert response.status_code == 201
    return response.json()["id"]


class TestUserManagement:
    """/api/admin/users"""

    def test_anonymous_is_401(self, client):
        assert client.get("/api/admin/users").status_code == 401

    def test_learner_is_403(self, client, learner):
        _, headers = learner

        response = client.get("/api/admin/users", headers=headers)

        assert response.status_code == 403
        assert response.json()["error"] == "Unauthorized"

    def test_create_user_logs_activity(self, client, superadmin, count):
        _, headers = superadmin

        response = client.post(
            "/api/admin/users",
            json={"email": "New.Faculty@jkkn.ac.in", "password": "s3cret", "name": "New Faculty", "role": "facilitator"},
            headers=headers,
        )

        assert response.status_code == 201
        user = response.json()["user"]
        assert user["email"] == "new.faculty@jkkn.ac.in"
        assert "password_hash" not in user
        assert count(AdminActivityLog, action="create_user") == 1

    def test_created_user_can_sign_in(self, client, superadmin):
        _, headers = superadmin
        client.post("/api/admin/users", json={"email": "pw@jkkn.ac.in", "password": "s3cret"}, headers=headers)

        response = client.post("/api/auth/login", json={"email": "pw@jkkn.ac.in", "password": "s3cret"})

        assert response.status_code == 200
        assert response.json()["user"]["role"] == "learner"

    def test_cannot_create_superadmin(self, client, superadmin):
        _, headers = superadmin

        response = client.post(
            "/api/admin/users",
            json={"email": "boss@jkkn.ac.in", "password": "x", "role": "superadmin"},
            headers=headers,
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Cannot create superadmin users"

    def test_duplicate_email_is_409(self, client, superadmin, learner):
        _, headers = superadmin

        response = client.post(
            "/api/admin/users", json={"email": "learner@jkkn.ac.in", "password": "x"}, headers=headers
        )

        assert response.status_code == 409

    def test_update_role(self, client, superadmin, learner, load):
        _, headers = superadmin
        learner_id, _ = learner

        response = client.put(f"/api/admin/users/{learner_id}", json={"role": "facilitator"}, headers=headers)

        assert response.status_code == 200
        assert load(User, learner_id)["role"] == "facilitator"

    def test_superadmins_are_immutable(self, client, superadmin, make_user):
        _, headers = superadmin
        other_id, _ = make_user("other.root@jkkn.ac.in", role="superadmin")

        assert client.put(f"/api/admin/users/{other_id}", json={"name": "X"}, headers=headers).status_code == 400
        assert client.delete(f"/api/admin/users/{other_id}", headers=headers).status_code == 400

    def test_invalid_role_is_400(self, client, superadmin, learner):
        _, headers = superadmin
        learner_id, _ = learner

        response = client.put(f"/api/admin/users/{learner_id}", json={"role": "wizard"}, headers=headers)

        assert response.status_code == 400

    def test_delete_user_removes_cycles(self, client, superadmin, learner, load):
        _, admin_headers = superadmin
        learner_id, learner_headers = learner
        _cycle(client, learner_headers)

        response = client.delete(f"/api/admin/users/{learner_id}", headers=admin_headers)

        assert response.json() == {"success": True}
        assert load(User, learner_id) is None

    def test_unknown_user_is_404(self, client, superadmin):
        _, headers = superadmin

        assert client.get("/api/admin/users/missing", headers=headers).status_code == 404


class TestUserExport:
    """GET /api/admin/users/export"""

    def test_csv_download(self, client, superadmin, learner):
        _, headers = superadmin

        response = client.get("/api/admin/users/export", headers=headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert 'filename="flywheel-users-' in response.headers["content-disposition"]
        lines = response.text.split("\n")
        assert lines[0] == "ID,Email,Name,Role,Department,Year,Created At,Updated At"
        assert len(lines) == 3
        assert not response.text.endswith("\n")

    def test_values_with_commas_and_quotes_are_quoted(self, client, superadmin, make_user):
        _, headers = superadmin
        make_user("doe@jkkn.ac.in", name='Doe, "JJ"')

        response = client.get("/api/admin/users/export", headers=headers)

        row = next(line for line in response.text.split("\n") if "doe@jkkn.ac.in" in line)
        assert ',"Doe, ""JJ""",learner,' in row

    def test_role_filter(self, client, superadmin, learner):
        _, headers = superadmin

        response = client.get("/api/admin/users/export", params={"role": "superadmin"}, headers=headers)

        lines = response.text.split("\n")
        assert len(lines) == 2
        assert "root@jkkn.ac.in" in lines[1]

    def test_learner_gets_forbidden_message(self, client, learner):
        _, headers = learner

        response = client.get("/api/admin/users/export", headers=headers)

        assert response.status_code == 403
        assert response.json()["error"] == "Forbidden: Superadmin only"


class TestActivityLog:
    """GET /api/admin/activity"""

    def test_pagination_and_filters(self, client, superadmin):
        _, headers = superadmin
        for i in range(3):
            client.post(
                "/api/admin/users", json={"email": f"user{i}@jkkn.ac.in", "password": "x"}, headers=headers
            )

        response = client.get("/api/admin/activity", params={"limit": 2}, headers=headers)

        body = response.json()
        assert len(body["logs"]) == 2
        assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}
        assert body["filters"]["availableActions"] == ["create_user"]
        assert body["filters"]["entityTypes"] == ["user", "cycle", "system"]
        assert body["logs"][0]["admin"]["email"] == "root@jkkn.ac.in"

    def test_filter_by_action(self, client, superadmin):
        _, headers = superadmin
        client.post("/api/admin/users", json={"email": "a@jkkn.ac.in", "password": "x"}, headers=headers)

        response = client.get("/api/admin/activity", params={"action": "delete_user"}, headers=headers)

        assert response.json()["logs"] == []


class TestCycleReview:
    """Notes and reviews on learners' cycles"""

    def test_add_list_and_delete_note(self, client, superadmin, learner):
        _, admin_headers = superadmin
        _, learner_headers = learner
        cycle_id = _cycle(client, learner_headers)

        created = client.post(
            f"/api/admin/cycles/{cycle_id}/notes", json={"content": "  Good interviews  "}, headers=admin_headers
        )
        assert created.status_code == 201
        note = created.json()["note"]
        assert note["content"] == "Good interviews"

        notes = client.get(f"/api/admin/cycles/{cycle_id}/notes", headers=admin_headers).json()["notes"]
        assert [n["id"] for n in notes] == [note["id"]]

        deleted = client.delete(
            f"/api/admin/cycles/{cycle_id}/notes", params={"noteId": note["id"]}, headers=admin_headers
        )
        assert deleted.json() == {"success": True}
        assert client.get(f"/api/admin/cycles/{cycle_id}/notes", headers=admin_headers).json()["notes"] == []

    def test_note_id_is_checked_first(self, client):
        response = client.delete("/api/admin/cycles/any/notes")

        assert response.status_code == 400
        assert response.json()["error"] == "Note ID is required"

    def test_empty_note_is_400(self, client, superadmin, learner):
        _, admin_headers = superadmin
        cycle_id = _cycle(client, learner[1])

        response = client.post(f"/api/admin/cycles/{cycle_id}/notes", json={"content": "   "}, headers=admin_headers)

        assert response.status_code == 400

    def test_review_is_created_then_updated(self, client, superadmin, learner):
        _, admin_headers = superadmin
        cycle_id = _cycle(client, learner[1])

        assert client.get(f"/api/admin/cycles/{cycle_id}/review", headers=admin_headers).json() == {"review": None}

        first = client.put(f"/api/admin/cycles/{cycle_id}/review", json={"status": "in_review"}, headers=admin_headers)
        second = client.put(
            f"/api/admin/cycles/{cycle_id}/review",
            json={"status": "approved", "notes": "Ship it"},
            headers=admin_headers,
        )

        assert first.status_code == 201
        assert second.status_code == 200
        review = client.get(f"/api/admin/cycles/{cycle_id}/review", headers=admin_headers).json()["review"]
        assert review["status"] == "approved"
        assert review["reviewer"]["email"] == "root@jkkn.ac.in"

    def test_invalid_review_status(self, client, superadmin, learner):
        _, admin_headers = superadmin
        cycle_id = _cycle(client, learner[1])

        response = client.put(f"/api/admin/cycles/{cycle_id}/review", json={"status": "great"}, headers=admin_headers)

        assert response.status_code == 400

    def test_cycles_list_includes_review_status(self, client, superadmin, learner):
        _, admin_headers = superadmin
        cycle_id = _cycle(client, learner[1], name="Canteen queue")
        client.put(f"/api/admin/cycles/{cycle_id}/review", json={"status": "flagged"}, headers=admin_headers)

        response = client.get("/api/admin/cycles", params={"search": "canteen"}, headers=admin_headers)

        cycles = response.json()["cycles"]
        assert len(cycles) == 1
        assert cycles[0]["review_status"] == "flagged"
        assert cycles[0]["user"]["email"] == "learner@jkkn.ac.in"


class TestImpersonation:
    """/api/admin/impersonate"""

    def test_full_session(self, client, superadmin, learner, count):
        admin_id, admin_headers = superadmin
        learner_id, _ = learner

        started = client.post(
            "/api/admin/impersonate",
            json={"targetUserId": learner_id, "reason": "Support ticket"},
            headers=admin_headers,
        )
        assert started.status_code == 200
        assert started.json()["session"]["targetUser"]["id"] == learner_id
        assert IMPERSONATION_COOKIE in client.cookies

        me = client.get("/api/auth/me", headers=admin_headers).json()
        assert me["user"]["id"] == learner_id
        assert me["realUser"]["id"] == admin_id
        assert me["isImpersonating"] is True

        status = client.get("/api/admin/impersonate").json()
        assert status["isImpersonating"] is True
        assert status["admin"]["id"] == admin_id

        ended = client.delete("/api/admin/impersonate", headers=admin_headers)
        assert ended.json() == {"success": True, "message": "Impersonation session ended"}
        assert count(ImpersonationLog, action="start") == 1
        assert count(ImpersonationLog, action="end") == 1
        assert count(AdminActivityLog, action="impersonation_ended") == 1

    def test_cycles_are_created_for_the_target(self, client, superadmin, learner):
        _, admin_headers = superadmin
        learner_id, learner_headers = learner
        client.post("/api/admin/impersonate", json={"targetUserId": learner_id}, headers=admin_headers)

        _cycle(client, admin_headers, name="Made while impersonating")
        client.cookies.clear()

        names = [c["name"] for c in client.get("/api/cycles", headers=learner_headers).json()]
        assert names == ["Made while impersonating"]

    def test_learner_cannot_impersonate(self, client, learner, other_learner):
        _, headers = learner

        response = client.post(
            "/api/admin/impersonate", json={"targetUserId": other_learner[0]}, headers=headers
        )

        assert response.status_code == 403

    def test_cannot_impersonate_superadmin(self, client, superadmin, make_user):
        _, headers = superadmin
        other_id, _ = make_user("root2@jkkn.ac.in", role="superadmin")

        response = client.post("/api/admin/impersonate", json={"targetUserId": other_id}, headers=headers)

        assert response.status_code == 403
        assert response.json()["error"] == "Cannot impersonate other superadmins"

    def test_missing_target(self, client, superadmin):
        _, headers = superadmin

        assert client.post("/api/admin/impersonate", json={}, headers=headers).status_code == 400
        assert client.post(
            "/api/admin/impersonate", json={"targetUserId": "missing"}, headers=headers
        ).status_code == 404

    def test_end_without_session(self, client, superadmin):
        _, headers = superadmin

        response = client.delete("/api/admin/impersonate", headers=headers)

        assert response.status_code == 400
        assert response.json()["error"] == "No active impersonation session"

    def test_status_without_cookie(self, client):
        assert client.get("/api/admin/impersonate").json() == {"isImpersonating": False}

    def test_expired_cookie_falls_back_to_real_user(self, client, superadmin, learner):
        admin_id, admin_headers = superadmin
        started = datetime.now(timezone.utc) - timedelta(hours=IMPERSONATION_MAX_HOURS + 1)
        cookie = TokenSigner().sign(
            {
                "adminId": admin_id,
                "adminEmail": "root@jkkn.ac.in",
                "adminName": "Root",
                "targetUserId": learner[0],
                "targetEmail": "learner@jkkn.ac.in",
                "targetName": "Learner",
                "startedAt": started.isoformat(),
                "expiresAt": (started + timedelta(hours=IMPERSONATION_MAX_HOURS)).isoformat(),
            },
            token_type="impersonation",
            expires_in=timedelta(hours=IMPERSONATION_MAX_HOURS),
            issued_at=started,
        )
        client.cookies.set(IMPERSONATION_COOKIE, cookie)

        me = client.get("/api/auth/me", headers=admin_headers).json()
        status = client.get("/api/admin/impersonate")

        assert me["user"]["id"] == admin_id
        assert me["isImpersonating"] is False
        assert status.json() == {"isImpersonating": False, "expired": True}
        set_cookie = status.headers["set-cookie"].lower()
        assert f"{IMPERSONATION_COOKIE}=" in set_cookie
        assert "max-age=0" in set_cookie

    def test_tampered_cookie_is_not_impersonating(self, client, superadmin, learner):
        admin_id, admin_headers = superadmin
        started = client.post("/api/admin/impersonate", json={"targetUserId": learner[0]}, headers=admin_headers)
        head, signature = started.cookies[IMPERSONATION_COOKIE].rsplit(".", 1)
        flipped = "A" if signature[5] != "A" else "B"
        client.cookies.clear()
        client.cookies.set(IMPERSONATION_COOKIE, f"{head}.{signature[:5]}{flipped}{signature[6:]}")

        me = client.get("/api/auth/me", headers=admin_headers).json()

        assert me["user"]["id"] == admin_id
        assert me["isImpersonating"] is False
        assert client.get("/api/admin/impersonate").json() == {"isImpersonating": False}

    def test_cookie_of_another_admin_is_ignored(self, client, superadmin, make_user, learner):
        _, admin_headers = superadmin
        other_admin_id, other_headers = make_user("root3@jkkn.ac.in", role="superadmin")
        client.post("/api/admin/impersonate", json={"targetUserId": learner[0]}, headers=admin_headers)

        me = client.get("/api/auth/me", headers=other_headers).json()

        assert me["user"]["id"] == other_admin_id
        assert me["isImpersonating"] is False
