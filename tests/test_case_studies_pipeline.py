"""
Tests for case studies and the incubation pipeline.
"""
from studio.database.models import CaseStudy, NifStageHistory


def _problem(client, headers, title="Canteen queues"):
    body = {"title": title, "problem_statement": "Lunch queues take 40 minutes", "theme": "community"}
    return client.post("/api/problems", json=body, headers=headers).json()["problem_id"]


class TestCaseStudies:
    """/api/case-studies"""

    def test_draft_then_publish(self, client, superadmin, learner, load):
        _, headers = superadmin
        problem_id = _problem(client, headers)

        created = client.post(
            "/api/case-studies",
            json={"problem_id": problem_id, "title": "Token system for the canteen"},
            headers=headers,
        )
        assert created.status_code == 201
        study = created.json()
        assert study["status"] == "draft"
        assert study["difficulty_level"] == "intermediate"

        assert client.get(f"/api/case-studies/{study['id']}", headers=learner[1]).status_code == 404
        assert client.get("/api/case-studies", headers=learner[1]).json()["data"] == []

        published = client.patch(
            f"/api/case-studies/{study['id']}", json={"status": "published"}, headers=headers
        ).json()
        assert published["published_at"] is not None

        detail = client.get(f"/api/case-studies/{study['id']}", headers=learner[1]).json()
        assert detail["problem"]["title"] == "Canteen queues"
        assert detail["author"]["email"] == "root@jkkn.ac.in"
        assert load(CaseStudy, study["id"])["view_count"] == 1

    def test_superadmin_sees_drafts_and_filters(self, client, superadmin):
        _, headers = superadmin
        problem_id = _problem(client, headers)
        client.post("/api/case-studies", json={"problem_id": problem_id, "title": "Draft"}, headers=headers)

        everything = client.get("/api/case-studies", headers=headers).json()
        published = client.get("/api/case-studies", params={"published": "true"}, headers=headers).json()
        by_theme = client.get("/api/case-studies", params={"theme": "education"}, headers=headers).json()

        assert everything["pagination"]["total"] == 1
        assert everything["pagination"]["hasMore"] is False
        assert published["data"] == []
        assert by_theme["data"] == []

    def test_create_validation(self, client, superadmin):
        _, headers = superadmin

        missing = client.post("/api/case-studies", json={"title": "No problem"}, headers=headers)
        unknown = client.post("/api/case-studies", json={"problem_id": "missing", "title": "T"}, headers=headers)

        assert missing.json()["error"] == "problem_id and title are required"
        assert unknown.status_code == 404

    def test_delete(self, client, superadmin, load):
        _, headers = superadmin
        problem_id = _problem(client, headers)
        study_id = client.post(
            "/api/case-studies", json={"problem_id": problem_id, "title": "Gone"}, headers=headers
        ).json()["id"]

        assert client.delete(f"/api/case-studies/{study_id}", headers=headers).json() == {"success": True}
        assert load(CaseStudy, study_id) is None

    def test_learner_cannot_write(self, client, superadmin, learner):
        problem_id = _problem(client, superadmin[1])

        response = client.post(
            "/api/case-studies", json={"problem_id": problem_id, "title": "Mine"}, headers=learner[1]
        )

        assert response.status_code == 403


class TestPipeline:
    """/api/pipeline"""

    def test_add_and_move_through_stages(self, client, superadmin, count):
        admin_id, headers = superadmin
        problem_id = _problem(client, headers)

        added = client.post("/api/pipeline", json={"problem_id": problem_id, "notes": "Strong demand"}, headers=headers)
        assert added.status_code == 201
        assert added.json()["message"] == '"Canteen queues" added to NIF pipeline'
        candidate_id = added.json()["candidate_id"]

        screened = client.patch(
            f"/api/pipeline/{candidate_id}", json={"stage": "screened"}, headers=headers
        ).json()["candidate"]
        assert screened["stage"] == "screened"
        assert screened["screened_by"] == admin_id

        graduated = client.patch(
            f"/api/pipeline/{candidate_id}",
            json={"stage": "graduated", "startup_name": "QueueLess", "jobs_created": 4},
            headers=headers,
        ).json()["candidate"]
        assert graduated["graduated_at"] is not None

        detail = client.get(f"/api/pipeline/{candidate_id}", headers=headers).json()
        assert detail["candidate"]["problem"]["title"] == "Canteen queues"
        assert count(NifStageHistory, candidate_id=candidate_id) == 3

    def test_list_with_stats(self, client, superadmin):
        _, headers = superadmin
        first = client.post("/api/pipeline", json={"problem_id": _problem(client, headers)}, headers=headers).json()
        client.post("/api/pipeline", json={"problem_id": _problem(client, headers, "Second")}, headers=headers)
        client.patch(
            f"/api/pipeline/{first['candidate_id']}", json={"stage": "incubating", "jobs_created": 3}, headers=headers
        )

        body = client.get("/api/pipeline", params={"include_stats": "true"}, headers=headers).json()
        incubating = client.get("/api/pipeline", params={"stage": "incubating"}, headers=headers).json()

        assert body["total"] == 2
        assert body["stats"]["by_stage"]["identified"] == 1
        assert body["stats"]["total_startups"] == 1
        assert body["stats"]["total_jobs_created"] == 3
        assert incubating["total"] == 1
        assert incubating["stats"] is None

    def test_add_errors(self, client, superadmin):
        _, headers = superadmin
        problem_id = _problem(client, headers)
        client.post("/api/pipeline", json={"problem_id": problem_id}, headers=headers)

        assert client.post("/api/pipeline", json={}, headers=headers).status_code == 400
        assert client.post("/api/pipeline", json={"problem_id": "missing"}, headers=headers).status_code == 404
        assert client.post("/api/pipeline", json={"problem_id": problem_id}, headers=headers).status_code == 409

    def test_update_errors(self, client, superadmin):
        _, headers = superadmin
        candidate_id = client.post(
            "/api/pipeline", json={"problem_id": _problem(client, headers)}, headers=headers
        ).json()["candidate_id"]

        empty = client.patch(f"/api/pipeline/{candidate_id}", json={}, headers=headers)
        bad_stage = client.patch(f"/api/pipeline/{candidate_id}", json={"stage": "unicorn"}, headers=headers)
        missing = client.patch("/api/pipeline/missing", json={"stage": "screened"}, headers=headers)

        assert empty.json()["error"] == "No update data provided"
        assert bad_stage.status_code == 400
        assert missing.status_code == 404

    def test_remove(self, client, superadmin):
        _, headers = superadmin
        candidate_id = client.post(
            "/api/pipeline", json={"problem_id": _problem(client, headers)}, headers=headers
        ).json()["candidate_id"]

        response = client.delete(f"/api/pipeline/{candidate_id}", headers=headers)

        assert response.json() == {"success": True, "message": "Removed from pipeline"}
        assert client.get(f"/api/pipeline/{candidate_id}", headers=headers).status_code == 404

    def test_requires_admin(self, client, learner):
        response = client.get("/api/pipeline", headers=learner[1])

        assert response.status_code == 403
        assert response.json()["error"] == "Admin access required"
