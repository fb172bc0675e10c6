"""
Tests for institutions, membership and institution change requests.
"""
from studio.database.models import AdminActivityLog, Institution, User


def _institution(client, headers, slug="jkkn-pharmacy", short_name="JKKNCP", **extra):
    response = client.post(
        "/api/institutions",
        json={"slug": slug, "name": f"JKKN {short_name}", "short_name": short_name, **extra},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()["id"]


class TestInstitutionCrud:
    """/api/institutions"""

    def test_list_is_public_and_active_only(self, client, superadmin, institution):
        _, headers = superadmin
        empty_id = _institution(client, headers, slug="jkkn-school", short_name="JKKNS", type="school")
        client.delete(f"/api/institutions/{empty_id}", headers=headers)

        response = client.get("/api/institutions")

        assert response.status_code == 200
        assert [i["short_name"] for i in response.json()] == ["JKKNCET"]

    def test_create_defaults_to_college(self, client, superadmin, count):
        _, headers = superadmin

        institution_id = _institution(client, headers)

        assert client.get(f"/api/institutions/{institution_id}").json()["type"] == "college"
        assert count(AdminActivityLog, action="create_institution") == 1

    def test_create_requires_fields(self, client, superadmin):
        _, headers = superadmin

        response = client.post("/api/institutions", json={"slug": "x"}, headers=headers)

        assert response.status_code == 400
        assert response.json()["error"] == "Missing required fields: slug, name, short_name"

    def test_invalid_type(self, client, superadmin):
        _, headers = superadmin

        response = client.post(
            "/api/institutions",
            json={"slug": "x", "name": "X", "short_name": "X", "type": "university"},
            headers=headers,
        )

        assert response.status_code == 400

    def test_duplicate_slug_is_409(self, client, superadmin, institution):
        _, headers = superadmin

        response = client.post(
            "/api/institutions",
            json={"slug": "jkkn-engineering", "name": "Again", "short_name": "AG"},
            headers=headers,
        )

        assert response.status_code == 409

    def test_update_slug_clash_is_409(self, client, superadmin, institution):
        _, headers = superadmin
        other_id = _institution(client, headers)

        response = client.patch(
            f"/api/institutions/{other_id}", json={"slug": "jkkn-engineering"}, headers=headers
        )

        assert response.status_code == 409

    def test_update_without_fields(self, client, superadmin, institution):
        _, headers = superadmin

        response = client.patch(f"/api/institutions/{institution}", json={}, headers=headers)

        assert response.status_code == 400
        assert response.json()["error"] == "No valid fields to update"

    def test_delete_with_members_is_refused(self, client, superadmin, institution, learner):
        _, headers = superadmin

        response = client.delete(f"/api/institutions/{institution}", headers=headers)

        assert response.status_code == 400
        assert "Cannot delete institution with 1 users" in response.json()["error"]

    def test_delete_is_soft(self, client, superadmin, load):
        _, headers = superadmin
        institution_id = _institution(client, headers)

        response = client.delete(f"/api/institutions/{institution_id}", headers=headers)

        assert response.json()["success"] is True
        assert load(Institution, institution_id)["is_active"] is False

    def test_learner_cannot_create(self, client, learner):
        _, headers = learner

        response = client.post(
            "/api/institutions", json={"slug": "x", "name": "X", "short_name": "X"}, headers=headers
        )

        assert response.status_code == 403
        assert response.json()["error"] == "Unauthorized"


class TestMembership:
    """/api/user/institution"""

    def test_first_pick_sets_institution(self, client, make_user, institution, load):
        user_id, headers = make_user("newbie@jkkn.ac.in")

        response = client.post("/api/user/institution", json={"institution_id": institution}, headers=headers)

        assert response.json() == {
            "success": True,
            "institution": {"id": institution, "name": "JKKN College of Engineering", "short_name": "JKKNCET"},
        }
        assert load(User, user_id)["institution_id"] == institution

    def test_second_pick_is_refused(self, client, learner, superadmin):
        _, headers = learner
        other_id = _institution(client, superadmin[1])

        response = client.post("/api/user/institution", json={"institution_id": other_id}, headers=headers)

        assert response.status_code == 400

    def test_inactive_institution_is_404(self, client, make_user, superadmin):
        _, admin_headers = superadmin
        institution_id = _institution(client, admin_headers)
        client.delete(f"/api/institutions/{institution_id}", headers=admin_headers)
        _, headers = make_user("newbie@jkkn.ac.in")

        response = client.post("/api/user/institution", json={"institution_id": institution_id}, headers=headers)

        assert response.status_code == 404

    def test_get_own_institution(self, client, learner, institution):
        _, headers = learner

        body = client.get("/api/user/institution", headers=headers).json()

        assert body["institution_id"] == institution
        assert body["institution"]["slug"] == "jkkn-engineering"


class TestChangeRequests:
    """/api/institution-change-requests"""

    def test_request_and_approve(self, client, superadmin, learner, load):
        _, admin_headers = superadmin
        learner_id, headers = learner
        target_id = _institution(client, admin_headers)

        created = client.post(
            "/api/institution-change-requests",
            json={"to_institution_id": target_id, "reason": "Transferred"},
            headers=headers,
        )
        assert created.status_code == 201

        mine = client.get("/api/institution-change-requests/my-request", headers=headers).json()
        assert mine["to_institution"] == "JKKNCP"

        pending = client.get("/api/institution-change-requests", headers=admin_headers).json()
        assert pending[0]["from_institution"] == "JKKN College of Engineering"

        reviewed = client.patch(
            "/api/institution-change-requests",
            json={"request_id": created.json()["id"], "action": "approve"},
            headers=admin_headers,
        )
        assert reviewed.json() == {"success": True, "status": "approved"}
        assert load(User, learner_id)["institution_id"] == target_id
        assert client.get("/api/institution-change-requests/my-request", headers=headers).json() is None

    def test_only_one_pending_request(self, client, superadmin, learner):
        _, headers = learner
        target_id = _institution(client, superadmin[1])
        client.post("/api/institution-change-requests", json={"to_institution_id": target_id}, headers=headers)

        response = client.post(
            "/api/institution-change-requests", json={"to_institution_id": target_id}, headers=headers
        )

        assert response.status_code == 400
        assert response.json()["error"] == "You already have a pending change request"

    def test_unknown_target_is_404(self, client, learner):
        _, headers = learner

        response = client.post(
            "/api/institution-change-requests", json={"to_institution_id": "missing"}, headers=headers
        )

        assert response.status_code == 404

    def test_institution_admin_sees_only_own_institution(self, client, superadmin, learner, make_user, institution):
        _, admin_headers = superadmin
        other_id = _institution(client, admin_headers)
        _, principal_headers = make_user("principal@jkkn.ac.in", role="institution_admin", institution_id=other_id)
        _, mover_headers = make_user("mover@jkkn.ac.in", institution_id=other_id)
        client.post("/api/institution-change-requests", json={"to_institution_id": other_id}, headers=learner[1])
        moving_out = client.post(
            "/api/institution-change-requests", json={"to_institution_id": institution}, headers=mover_headers
        ).json()

        visible = client.get("/api/institution-change-requests", headers=principal_headers).json()
        assert [r["user_email"] for r in visible] == ["learner@jkkn.ac.in"]

        response = client.patch(
            "/api/institution-change-requests",
            json={"request_id": moving_out["id"], "action": "reject"},
            headers=principal_headers,
        )
        assert response.status_code == 403

    def test_learner_cannot_review(self, client, learner):
        _, headers = learner

        assert client.get("/api/institution-change-requests", headers=headers).status_code == 403

    def test_bad_action_is_400(self, client, superadmin):
        _, headers = superadmin

        response = client.patch(
            "/api/institution-change-requests", json={"request_id": "x", "action": "maybe"}, headers=headers
        )

        assert response.status_code == 400
