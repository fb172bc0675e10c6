"""
Tests for problem similarity and clusters.
"""
from studio.database.models import ProblemSimilarity
from studio.services.similarity_service import compute_similarity, keywords, normalize_text, theme_cluster_name


def _problem(client, headers, title, statement, theme=None, **extra):
    body = {"title": title, "problem_statement": statement, **extra}
    if theme:
        body["theme"] = theme
    return client.post("/api/problems", json=body, headers=headers).json()["problem_id"]


class TestScoring:
    """Keyword and theme similarity"""

    def test_normalize_and_keywords(self):
        assert normalize_text("  Hostel-WATER, supply!! ") == "hostel water supply"
        assert keywords("The hostel water is cold") == {"hostel", "water", "cold"}

    def test_shared_theme_and_words(self):
        score = compute_similarity("hostel water supply", "hostel water timing", "community", "community")

        assert score == 0.5

    def test_theme_only_when_text_has_no_keywords(self):
        assert compute_similarity("a b c", "hostel", "education", "education") == 0.5
        assert compute_similarity("a b c", "hostel", "education", "health") == 0.0

    def test_different_theme_halves_score(self):
        assert compute_similarity("hostel water", "hostel water", "education", "health") == 0.5

    def test_cluster_names(self):
        assert theme_cluster_name("other") == "Other Problems"
        assert theme_cluster_name("robotics") == "robotics Problems"


class TestComputeSimilarities:
    """/api/problems/compute-similarities"""

    def test_needs_two_open_problems(self, client, superadmin):
        _, headers = superadmin
        _problem(client, headers, "Hostel water queue", "Hostel students queue for water")

        body = client.post("/api/problems/compute-similarities", json={}, headers=headers).json()

        assert body["message"] == "Not enough problems to compute similarities"
        assert body["similarities_computed"] == 0

    def test_stores_pairs_and_builds_theme_clusters(self, client, superadmin, count):
        _, headers = superadmin
        _problem(client, headers, "Hostel water queue", "Hostel students queue for water", theme="community")
        _problem(client, headers, "Hostel water timing", "Hostel water arrives late", theme="community")
        _problem(client, headers, "Lab booking", "Chemistry slots clash", theme="education")

        body = client.post(
            "/api/problems/compute-similarities", json={"recompute_all": True}, headers=headers
        ).json()

        assert body["success"] is True
        assert body["problem_count"] == 3
        assert body["similarities_computed"] == 1
        assert body["clusters_updated"] == 1
        assert count(ProblemSimilarity) == 1

        clusters = client.get("/api/clusters", params={"include_problems": "true"}, headers=headers).json()
        assert clusters["total"] == 1
        assert clusters["clusters"][0]["slug"] == "community"
        assert clusters["clusters"][0]["problem_count"] == 2
        assert len(clusters["clusters"][0]["problems"]) == 2

    def test_rerun_updates_existing_pairs(self, client, superadmin, count):
        _, headers = superadmin
        _problem(client, headers, "Hostel water queue", "Hostel water", theme="community")
        _problem(client, headers, "Hostel water timing", "Hostel water", theme="community")

        client.post("/api/problems/compute-similarities", json={}, headers=headers)
        client.post("/api/problems/compute-similarities", json={}, headers=headers)

        assert count(ProblemSimilarity) == 1

    def test_stats_are_open_to_signed_in_users(self, client, superadmin, learner):
        _, headers = superadmin
        _problem(client, headers, "Hostel water queue", "Hostel water", theme="community")
        _problem(client, headers, "Hostel water timing", "Hostel water", theme="community")
        client.post("/api/problems/compute-similarities", json={}, headers=headers)

        stats = client.get("/api/problems/compute-similarities", headers=learner[1]).json()

        assert stats["total_problems"] == 2
        assert stats["total_similarities"] == 1
        assert stats["last_computed"] is not None

    def test_compute_requires_admin(self, client, learner):
        response = client.post("/api/problems/compute-similarities", json={}, headers=learner[1])

        assert response.status_code == 403
        assert response.json()["error"] == "Admin access required"


class TestSimilarProblems:
    """/api/problems/{id}/similar"""

    def test_precomputed_pairs_win(self, client, superadmin):
        _, headers = superadmin
        first = _problem(client, headers, "Hostel water queue", "Hostel water", theme="community")
        second = _problem(client, headers, "Hostel water timing", "Hostel water", theme="community")
        client.post("/api/problems/compute-similarities", json={}, headers=headers)

        body = client.get(f"/api/problems/{first}/similar", headers=headers).json()

        assert body["method"] == "precomputed"
        assert [p["id"] for p in body["similar"]] == [second]

    def test_keyword_fallback(self, client, superadmin):
        _, headers = superadmin
        source = _problem(client, headers, "Library seats", "Not enough seats", theme="education")
        same_theme = _problem(client, headers, "Lab booking", "Slots clash", theme="education")
        keyword = _problem(client, headers, "Reading room", "Library closes early", theme="community")
        _problem(client, headers, "Bus pass", "Expires silently", theme="community")

        body = client.get(f"/api/problems/{source}/similar", headers=headers).json()

        assert body["method"] == "keyword_fallback"
        assert [(p["id"], p["similarity_score"]) for p in body["similar"]] == [(same_theme, 0.8), (keyword, 0.5)]

    def test_unknown_problem(self, client, learner):
        assert client.get("/api/problems/missing/similar", headers=learner[1]).status_code == 404


class TestClusters:
    """/api/clusters"""

    def test_manual_cluster_with_centroid(self, client, superadmin):
        _, headers = superadmin
        first = _problem(client, headers, "Hostel water queue", "Hostel water", severity_rating=8)
        second = _problem(client, headers, "Hostel water timing", "Hostel water", severity_rating=6)

        response = client.post(
            "/api/clusters",
            json={"name": "Water Woes", "primary_theme": "community", "problem_ids": [first, second, "missing"]},
            headers=headers,
        )

        assert response.status_code == 201
        cluster = response.json()["cluster"]
        assert cluster["slug"] == "water-woes"
        assert cluster["problem_count"] == 2
        assert cluster["avg_severity"] == 7
        listed = client.get("/api/clusters", params={"include_problems": "true"}, headers=headers).json()
        centroids = [p["id"] for p in listed["clusters"][0]["problems"] if p["is_centroid"]]
        assert centroids == [first]

    def test_name_required_and_unique(self, client, superadmin):
        _, headers = superadmin
        client.post("/api/clusters", json={"name": "Water Woes"}, headers=headers)

        assert client.post("/api/clusters", json={}, headers=headers).status_code == 400
        assert client.post("/api/clusters", json={"name": "Water woes"}, headers=headers).status_code == 409

    def test_filter_by_theme(self, client, superadmin):
        _, headers = superadmin
        client.post("/api/clusters", json={"name": "Water", "primary_theme": "community"}, headers=headers)
        client.post("/api/clusters", json={"name": "Labs", "primary_theme": "education"}, headers=headers)

        body = client.get("/api/clusters", params={"theme": "education"}, headers=headers).json()

        assert [c["name"] for c in body["clusters"]] == ["Labs"]
        assert "status" not in body["clusters"][0]

    def test_learner_cannot_create(self, client, learner):
        response = client.post("/api/clusters", json={"name": "Mine"}, headers=learner[1])

        assert response.status_code == 403
