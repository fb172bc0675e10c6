"""
Tests for events, participation and event admin teams.
"""
from datetime import datetime, timedelta

from studio.database.models import AdminActivityLog, User


def _dates(days_from_now=30):
    now = datetime.utcnow()
    return {
        "start_date": (now - timedelta(days=1)).isoformat() + "Z",
        "end_date": (now + timedelta(days=days_from_now)).isoformat() + "Z",
    }


class TestEventCrud:
    """/api/events"""

    def test_create_and_list(self, client, superadmin, count):
        _, headers = superadmin

        created = client.post(
            "/api/events",
            json={"slug": "appathon-3", "name": "Appathon 3.0", "config": {"appathon_mode": True}, **_dates()},
            headers=headers,
        )

        assert created.status_code == 201
        event = created.json()["event"]
        assert event["banner_color"] == "amber"
        assert event["is_active"] is True
        listed = client.get("/api/events").json()
        assert [e["slug"] for e in listed] == ["appathon-3"]
        assert listed[0]["participant_count"] == 0
        assert count(AdminActivityLog, action="create_event") == 1

    def test_missing_fields(self, client, superadmin):
        _, headers = superadmin

        response = client.post("/api/events", json={"slug": "x", "name": "X"}, headers=headers)

        assert response.status_code == 400
        assert response.json()["error"] == "Missing required fields: slug, name, start_date, end_date"

    def test_slug_must_be_url_safe(self, client, superadmin):
        _, headers = superadmin

        response = client.post("/api/events", json={"slug": "Appathon 3", "name": "X", **_dates()}, headers=headers)

        assert response.status_code == 400
        assert response.json()["error"].startswith("Slug must contain")

    def test_duplicate_slug(self, client, superadmin, event):
        _, headers = superadmin

        response = client.post("/api/events", json={"slug": "appathon-2", "name": "Again", **_dates()}, headers=headers)

        assert response.status_code == 409

    def test_learner_cannot_create(self, client, learner):
        _, headers = learner

        response = client.post("/api/events", json={"slug": "x", "name": "X", **_dates()}, headers=headers)

        assert response.status_code == 403
        assert response.json()["error"] == "Unauthorized"

    def test_update_and_get(self, client, superadmin, event):
        _, headers = superadmin

        updated = client.patch(f"/api/events/{event}", json={"name": "Appathon Two"}, headers=headers)

        assert updated.json()["event"]["name"] == "Appathon Two"
        assert client.get(f"/api/events/{event}").json()["event"]["name"] == "Appathon Two"

    def test_delete_clears_participants(self, client, superadmin, learner, event, load):
        _, admin_headers = superadmin
        learner_id, headers = learner
        client.post("/api/events/join", json={"eventId": event}, headers=headers)

        response = client.delete(f"/api/events/{event}", headers=admin_headers)

        assert response.json() == {"success": True, "message": "Event deleted"}
        assert load(User, learner_id)["active_event_id"] is None
        assert client.get(f"/api/events/{event}").status_code == 404


class TestParticipation:
    """/api/events/join and /api/events/leave"""

    def test_join_and_leave(self, client, learner, event, load):
        learner_id, headers = learner

        joined = client.post("/api/events/join", json={"eventId": event}, headers=headers)

        assert joined.json()["message"] == "Joined Appathon 2.0"
        assert load(User, learner_id)["active_event_id"] == event
        assert client.get("/api/events").json()[0]["participant_count"] == 1

        left = client.post("/api/events/leave", headers=headers)
        assert left.json() == {"success": True, "message": "Left event successfully"}
        assert load(User, learner_id)["active_event_id"] is None

    def test_join_requires_event_id(self, client, learner):
        response = client.post("/api/events/join", json={}, headers=learner[1])

        assert response.status_code == 400
        assert response.json()["error"] == "Event ID is required"

    def test_cannot_join_ended_event(self, client, superadmin, learner):
        _, admin_headers = superadmin
        now = datetime.utcnow()
        event = client.post(
            "/api/events",
            json={
                "slug": "old",
                "name": "Old",
                "start_date": (now - timedelta(days=10)).isoformat(),
                "end_date": (now - timedelta(days=1)).isoformat(),
            },
            headers=admin_headers,
        ).json()["event"]

        response = client.post("/api/events/join", json={"eventId": event["id"]}, headers=learner[1])

        assert response.status_code == 400
        assert response.json()["error"] == "This event has ended"

    def test_new_cycles_belong_to_the_active_event(self, client, learner, event):
        _, headers = learner
        client.post("/api/events/join", json={"eventId": event}, headers=headers)

        cycle = client.post("/api/cycles", json={"name": "Event cycle"}, headers=headers).json()

        assert cycle["event_id"] == event


class TestEventAdmins:
    """/api/events/{id}/admins and /api/events/by-slug/{slug}"""

    def test_dashboard_for_event_admin(self, client, event_admin):
        _, headers = event_admin

        body = client.get("/api/events/by-slug/appathon-2", headers=headers).json()

        assert body["event"]["slug"] == "appathon-2"
        assert body["userRole"] == "admin"
        assert [a["user"]["email"] for a in body["admins"]] == ["coordinator@jkkn.ac.in"]

    def test_dashboard_forbidden_for_learner(self, client, learner, event):
        response = client.get("/api/events/by-slug/appathon-2", headers=learner[1])

        assert response.status_code == 403

    def test_superadmin_adds_admin(self, client, superadmin, learner, event):
        _, headers = superadmin

        response = client.post(
            f"/api/events/{event}/admins", json={"email": "Learner@jkkn.ac.in"}, headers=headers
        )

        assert response.status_code == 201
        assert response.json()["admin"]["role"] == "admin"
        assert client.post(
            f"/api/events/{event}/admins", json={"email": "learner@jkkn.ac.in"}, headers=headers
        ).status_code == 409

    def test_event_admin_may_only_add_reviewers(self, client, event_admin, learner, event):
        _, headers = event_admin

        refused = client.post(f"/api/events/{event}/admins", json={"email": "learner@jkkn.ac.in"}, headers=headers)
        allowed = client.post(
            f"/api/events/{event}/admins",
            json={"email": "learner@jkkn.ac.in", "role": "reviewer"},
            headers=headers,
        )

        assert refused.status_code == 403
        assert refused.json()["error"] == "Only superadmins can add admin role"
        assert allowed.status_code == 201

    def test_unknown_email(self, client, superadmin, event):
        response = client.post(
            f"/api/events/{event}/admins", json={"email": "ghost@jkkn.ac.in"}, headers=superadmin[1]
        )

        assert response.status_code == 404
        assert response.json()["error"] == "User not found with this email"

    def test_remove_admin_rules(self, client, superadmin, event_admin, learner, event):
        _, admin_headers = event_admin
        reviewer = client.post(
            f"/api/events/{event}/admins",
            json={"email": "learner@jkkn.ac.in", "role": "reviewer"},
            headers=admin_headers,
        ).json()["admin"]
        admins = client.get(f"/api/events/{event}/admins", headers=admin_headers).json()["admins"]
        own_record = next(a for a in admins if a["user"]["email"] == "coordinator@jkkn.ac.in")

        assert client.delete(f"/api/events/{event}/admins/{own_record['id']}", headers=admin_headers).status_code == 400
        assert client.delete(
            f"/api/events/{event}/admins/{reviewer['id']}", headers=admin_headers
        ).json() == {"success": True}
        assert client.delete(
            f"/api/events/{event}/admins/{own_record['id']}", headers=superadmin[1]
        ).json() == {"success": True}
