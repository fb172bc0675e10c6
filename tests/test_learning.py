"""
Tests for outcomes, refinements, scores and the flywheel summary.
"""
import pytest

from studio.database.models import ProblemBankEntry, ProblemEvolution
from studio.services.learning_service import suggest_refinement


def _problem(client, headers, **extra):
    body = {"title": "Exam hall seating", "problem_statement": "students cannot find their seats", **extra}
    return client.post("/api/problems", json=body, headers=headers).json()["problem_id"]


class TestSuggestRefinement:
    """Template rewrites used by the refinement endpoint"""

    def test_clarity_without_context_adds_placeholders(self):
        suggestion, _, confidence = suggest_refinement("queues are long", "clarity")

        assert suggestion == "[Who is affected] experiences queues are long [when/how often]"
        assert confidence == 0.6

    def test_clarity_with_who_and_when(self):
        suggestion, _, confidence = suggest_refinement(
            "queues are long", "clarity", who="Day scholars", when="every evening"
        )

        assert suggestion == "Day scholars experiences queues are long every evening"
        assert confidence == 0.8

    def test_scope_uses_location(self):
        suggestion, _, _ = suggest_refinement("queues are long", "scope", where="the canteen")

        assert suggestion == "In the canteen, queues are long"

    def test_evidence_boost_is_capped(self):
        _, _, boosted = suggest_refinement("x", "clarity", "similar_successes", who="a", when="b")
        _, _, feedback = suggest_refinement("x", "validation", "user_feedback")

        assert boosted == pytest.approx(0.88)
        assert feedback == pytest.approx(0.735)
        assert boosted <= 0.95

    def test_unknown_type_keeps_statement(self):
        suggestion, reason, confidence = suggest_refinement("x", "poetry")

        assert suggestion == "x"
        assert reason == "No specific refinement pattern matched."
        assert confidence == 0.5


class TestOutcomes:
    """/api/problems/{id}/outcomes"""

    def test_success_marks_problem_solved(self, client, superadmin, load):
        _, headers = superadmin
        problem_id = _problem(client, headers)

        response = client.post(
            f"/api/problems/{problem_id}/outcomes",
            json={"outcome_type": "success", "users_impacted": 120, "key_insights": ["Print seat maps"]},
            headers=headers,
        )

        assert response.status_code == 201
        assert response.json()["iterations_count"] == 1
        assert load(ProblemBankEntry, problem_id)["status"] == "solved"
        outcomes = client.get(f"/api/problems/{problem_id}/outcomes", headers=headers).json()
        assert outcomes[0]["recorder"]["email"] == "root@jkkn.ac.in"
        assert outcomes[0]["attempt"] is None

    def test_partial_keeps_status(self, client, superadmin, load):
        _, headers = superadmin
        problem_id = _problem(client, headers)

        client.post(f"/api/problems/{problem_id}/outcomes", json={"outcome_type": "partial"}, headers=headers)

        assert load(ProblemBankEntry, problem_id)["status"] == "open"

    def test_outcome_type_is_validated(self, client, superadmin):
        _, headers = superadmin
        problem_id = _problem(client, headers)

        missing = client.post(f"/api/problems/{problem_id}/outcomes", json={}, headers=headers)
        unknown = client.post(f"/api/problems/{problem_id}/outcomes", json={"outcome_type": "meh"}, headers=headers)

        assert missing.json()["error"] == "outcome_type is required"
        assert unknown.status_code == 400

    def test_unknown_problem(self, client, superadmin):
        response = client.post(
            "/api/problems/missing/outcomes", json={"outcome_type": "success"}, headers=superadmin[1]
        )

        assert response.status_code == 404

    def test_learner_cannot_record(self, client, superadmin, learner):
        problem_id = _problem(client, superadmin[1])

        response = client.post(
            f"/api/problems/{problem_id}/outcomes", json={"outcome_type": "success"}, headers=learner[1]
        )

        assert response.status_code == 403


class TestRefinements:
    """/api/problems/{id}/refinements"""

    def test_accept_versions_the_statement(self, client, superadmin, load, count):
        _, headers = superadmin
        problem_id = _problem(client, headers, who_affected="First years", when_occurs="on exam days")
        refinement = client.post(
            f"/api/problems/{problem_id}/refinements", json={}, headers=headers
        ).json()["refinement"]
        assert refinement["status"] == "pending"

        response = client.patch(
            f"/api/problems/{problem_id}/refinements/{refinement['id']}", json={"action": "accept"}, headers=headers
        )

        assert response.json()["message"] == "Refinement accepted and problem statement updated"
        assert response.json()["refinement"]["status"] == "accepted"
        assert load(ProblemBankEntry, problem_id)["problem_statement"] == (
            "First years experiences students cannot find their seats on exam days"
        )
        assert count(ProblemEvolution, problem_id=problem_id, version=1) == 1

    def test_modify_requires_statement(self, client, superadmin, load):
        _, headers = superadmin
        problem_id = _problem(client, headers)
        refinement_id = client.post(
            f"/api/problems/{problem_id}/refinements", json={"refinement_type": "impact"}, headers=headers
        ).json()["refinement"]["id"]
        url = f"/api/problems/{problem_id}/refinements/{refinement_id}"

        refused = client.patch(url, json={"action": "modify"}, headers=headers)
        modified = client.patch(url, json={"action": "modify", "modified_statement": "Seats are unmarked"}, headers=headers)

        assert refused.status_code == 400
        assert modified.json()["refinement"]["status"] == "modified"
        assert load(ProblemBankEntry, problem_id)["problem_statement"] == "Seats are unmarked"

    def test_reject_leaves_statement(self, client, superadmin, load, count):
        _, headers = superadmin
        problem_id = _problem(client, headers)
        refinement_id = client.post(
            f"/api/problems/{problem_id}/refinements", json={}, headers=headers
        ).json()["refinement"]["id"]

        response = client.patch(
            f"/api/problems/{problem_id}/refinements/{refinement_id}", json={"action": "reject"}, headers=headers
        )

        assert response.json()["message"] == "Refinement rejected"
        assert load(ProblemBankEntry, problem_id)["problem_statement"] == "students cannot find their seats"
        assert count(ProblemEvolution, problem_id=problem_id) == 0

    def test_invalid_action_and_unknown_refinement(self, client, superadmin):
        _, headers = superadmin
        problem_id = _problem(client, headers)

        invalid = client.patch(f"/api/problems/{problem_id}/refinements/x", json={"action": "ignore"}, headers=headers)
        missing = client.patch(f"/api/problems/{problem_id}/refinements/x", json={"action": "accept"}, headers=headers)

        assert invalid.json()["error"] == "Invalid action. Must be accept, reject, or modify"
        assert missing.status_code == 404

    def test_list_and_delete(self, client, superadmin):
        _, headers = superadmin
        problem_id = _problem(client, headers)
        refinement_id = client.post(
            f"/api/problems/{problem_id}/refinements", json={}, headers=headers
        ).json()["refinement"]["id"]

        assert len(client.get(f"/api/problems/{problem_id}/refinements", headers=headers).json()) == 1
        client.delete(f"/api/problems/{problem_id}/refinements/{refinement_id}", headers=headers)
        assert client.get(f"/api/problems/{problem_id}/refinements", headers=headers).json() == []


class TestScores:
    """/api/problems/{id}/score"""

    def test_composite_is_mean_of_given_dimensions(self, client, superadmin):
        _, headers = superadmin
        problem_id = _problem(client, headers)

        response = client.post(
            f"/api/problems/{problem_id}/score",
            json={"severity_score": 8, "feasibility_score": 6},
            headers=headers,
        )

        assert response.json()["score"]["composite_score"] == 7
        assert client.get(f"/api/problems/{problem_id}/score", headers=headers).json()["average_score"] == 7

    def test_same_scorer_updates_in_place(self, client, superadmin):
        _, headers = superadmin
        problem_id = _problem(client, headers)
        url = f"/api/problems/{problem_id}/score"

        client.post(url, json={"severity_score": 4}, headers=headers)
        client.post(url, json={"severity_score": 10}, headers=headers)

        scores = client.get(url, headers=headers).json()["scores"]
        assert [s["severity_score"] for s in scores] == [10]

    def test_out_of_range(self, client, superadmin):
        _, headers = superadmin
        problem_id = _problem(client, headers)

        response = client.post(f"/api/problems/{problem_id}/score", json={"severity_score": 11}, headers=headers)

        assert response.status_code == 400
        assert response.json()["error"] == "Scores must be between 1 and 10"

    def test_requires_admin(self, client, superadmin, learner):
        problem_id = _problem(client, superadmin[1])

        response = client.post(f"/api/problems/{problem_id}/score", json={"severity_score": 5}, headers=learner[1])

        assert response.status_code == 403
        assert response.json()["error"] == "Admin access required"

    def test_no_scores(self, client, superadmin):
        _, headers = superadmin
        problem_id = _problem(client, headers)

        assert client.get(f"/api/problems/{problem_id}/score", headers=headers).json() == {
            "scores": [],
            "average_score": None,
        }


class TestFlywheelSummary:
    """/api/flywheel/summary"""

    def test_rolls_up_outcomes(self, client, superadmin):
        _, headers = superadmin
        solved = _problem(client, headers)
        _problem(client, headers, title="Second")
        client.post(
            f"/api/problems/{solved}/outcomes",
            json={"outcome_type": "success", "users_impacted": 50, "time_to_solution_days": 10},
            headers=headers,
        )
        client.post(f"/api/problems/{solved}/outcomes", json={"outcome_type": "pivot"}, headers=headers)

        summary = client.get("/api/flywheel/summary", headers=headers).json()

        assert summary["total_problems"] == 2
        assert summary["problems_with_outcomes"] == 1
        assert summary["outcome_rate"] == 0.5
        assert summary["success_rate"] == 0.5
        assert summary["average_solution_time_days"] == 5
        assert summary["total_users_impacted"] == 50
        assert summary["total_patterns"] == 0

    def test_empty_summary(self, client, superadmin):
        summary = client.get("/api/flywheel/summary", headers=superadmin[1]).json()

        assert summary["outcome_rate"] == 0
        assert summary["average_solution_time_days"] is None

    def test_recompute(self, client, superadmin):
        response = client.post("/api/flywheel/summary", headers=superadmin[1])

        assert response.json()["message"] == "Flywheel metrics computed successfully"

    def test_superadmin_only(self, client, learner):
        response = client.get("/api/flywheel/summary", headers=learner[1])

        assert response.status_code == 403
        assert response.json()["error"] == "Forbidden - superadmin only"
