"""
Learning Service - What the studio learns from every attempt.

Closing the loop on a banked problem:
1. Outcomes record what happened when a team tried to solve it
2. Refinements suggest sharper wording; accepted ones are versioned
3. Scores rate problems on five 1-10 dimensions
4. The flywheel summary rolls all of it up for superadmins
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func

from studio.core.exceptions import NotFoundError, ValidationError
from studio.core.logging_config import LoggerMixin
from studio.database.connection import get_database
from studio.database.models import (
    AIRefinement,
    CaseStudy,
    ProblemBankEntry,
    ProblemEvolution,
    ProblemOutcome,
    ProblemScore,
)
from studio.services.auth_service import CurrentUser

OUTCOME_TYPES = ("success", "partial", "pivot", "abandoned", "ongoing")

REFINEMENT_ACTIONS = {"accept": "accepted", "reject": "rejected", "modify": "modified"}

REFINEMENT_MESSAGES = {
    "accept": "Refinement accepted and problem statement updated",
    "modify": "Refinement modified and problem statement updated",
    "reject": "Refinement rejected",
}

# Confidence multiplier per evidence source
EVIDENCE_BOOST = {"similar_successes": 1.1, "user_feedback": 1.05}
MAX_CONFIDENCE = 0.95


def suggest_refinement(
    statement: str,
    refinement_type: str,
    based_on: str = "patterns",
    who: Optional[str] = None,
    when: Optional[str] = None,
    where: Optional[str] = None
) -> Tuple[str, str, float]:
    """
    Template-based rewrite of a problem statement.

    Returns:
        Tuple of (suggested statement, reason, confidence)

    Example:
        >>> suggest_refinement("queues are long", "scope", where="the canteen")[0]
        'In the canteen, queues are long'
    """
    suggestion, reason, confidence = statement, "", 0.5

    if refinement_type == "clarity":
        if not who and not when:
            suggestion = f"[Who is affected] experiences {statement} [when/how often]"
            reason = (
                "Added placeholders for specificity - the problem statement lacks "
                "information about who is affected and when the problem occurs."
            )
            confidence = 0.6
        elif who and when:
            suggestion = f"{who} experiences {statement} {when}"
            reason = "Incorporated context about who and when into a clearer statement."
            confidence = 0.8
        else:
            reason = (
                "The problem statement appears reasonably clear. "
                "Consider adding more specific context about affected users."
            )
    elif refinement_type == "scope":
        if where:
            suggestion = f"In {where}, {statement}"
            reason = "Added location context to make the problem more specific."
            confidence = 0.75
        else:
            suggestion = f"{statement} - specifically in [context/location]"
            reason = "Suggested adding location or context specificity."
            confidence = 0.6
    elif refinement_type == "feasibility":
        suggestion = f"{statement} - This could be addressed by [potential solution approach]"
        reason = "Suggested adding actionable direction to help focus solution development."
        confidence = 0.65
    elif refinement_type == "user_focus":
        if who:
            suggestion = f"For {who}: {statement}"
            reason = "Reframed to emphasize the user perspective."
            confidence = 0.75
        else:
            suggestion = f"[Target users] need {statement} because [reason]"
            reason = "Suggested adding clear user focus and motivation."
            confidence = 0.6
    elif refinement_type == "general":
        reason = "The problem statement is reasonable. Consider refining based on user feedback."
    elif refinement_type == "validation":
        suggestion = f"[X users] report that {statement}, causing [specific impact]"
        reason = "Suggested adding validation evidence and impact measurement."
        confidence = 0.7
    elif refinement_type == "impact":
        suggestion = f"{statement} - affecting [N users/hour/cost] per [time period]"
        reason = "Suggested quantifying the impact to prioritize this problem."
        confidence = 0.65
    else:
        reason = "No specific refinement pattern matched."

    confidence = min(confidence * EVIDENCE_BOOST.get(based_on, 1.0), MAX_CONFIDENCE)
    return suggestion, reason, confidence


def _require_problem(session, problem_id: str) -> ProblemBankEntry:
    problem = session.get(ProblemBankEntry, problem_id)
    if problem is None:
        raise NotFoundError("Problem not found")
    return problem


def _ratio(part: int, whole: int) -> float:
    return part / whole if whole else 0


class LearningService(LoggerMixin):
    """
    Outcomes, refinements, scores and the flywheel roll-up.

    Example:
        >>> service = LearningService()
        >>> service.record_outcome(admin, problem_id, {"outcome_type": "success"})["outcome_type"]
        'success'
    """

    # ============================================================
    # Outcomes
    # ============================================================

    def list_outcomes(self, problem_id: str) -> List[Dict[str, Any]]:
        with get_database().get_session() as session:
            outcomes = (
                session.query(ProblemOutcome)
                .filter(ProblemOutcome.problem_id == problem_id)
                .order_by(ProblemOutcome.recorded_at.desc())
                .all()
            )
            result = []
            for outcome in outcomes:
                attempt = outcome.attempt
                result.append({
                    **outcome.to_dict(),
                    "recorder": outcome.recorder.brief() if outcome.recorder else None,
                    "attempt": {
                        "id": attempt.id,
                        "team_name": attempt.team_name,
                        "outcome": attempt.outcome,
                        "started_at": attempt.to_dict()["started_at"],
                        "completed_at": attempt.to_dict()["completed_at"],
                    } if attempt else None,
                })
            return result

    def record_outcome(self, admin: CurrentUser, problem_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Record what happened on a problem. A success marks it solved.

        Raises:
            NotFoundError: Unknown problem
            ValidationError: Missing or unknown outcome_type
        """
        with get_database().get_session() as session:
            problem = _require_problem(session, problem_id)

            outcome_type = data.get("outcome_type")
            if not outcome_type:
                raise ValidationError("outcome_type is required", field="outcome_type")
            if outcome_type not in OUTCOME_TYPES:
                raise ValidationError("Invalid outcome_type", field="outcome_type")

            outcome = ProblemOutcome(
                problem_id=problem_id,
                attempt_id=data.get("attempt_id"),
                outcome_type=outcome_type,
                outcome_description=data.get("outcome_description"),
                time_to_solution_days=data.get("time_to_solution_days"),
                iterations_count=data.get("iterations_count") or 1,
                user_adoption_rate=data.get("user_adoption_rate"),
                satisfaction_score=data.get("satisfaction_score"),
                users_impacted=data.get("users_impacted") or 0,
                time_saved_hours=data.get("time_saved_hours") or 0,
                cost_saved=data.get("cost_saved") or 0,
                revenue_generated=data.get("revenue_generated") or 0,
                what_worked=data.get("what_worked"),
                what_didnt_work=data.get("what_didnt_work"),
                key_insights=data.get("key_insights") or [],
                recommendations=data.get("recommendations") or [],
                recorded_by=admin.id,
            )
            session.add(outcome)
            if outcome_type == "success":
                problem.status = "solved"
            session.flush()
            self.logger.info(f"Outcome {outcome_type} recorded on problem {problem_id}")
            return outcome.to_dict()

    # ============================================================
    # Refinements
    # ============================================================

    def list_refinements(self, problem_id: str) -> List[Dict[str, Any]]:
        with get_database().get_session() as session:
            rows = (
                session.query(AIRefinement)
                .filter(AIRefinement.problem_id == problem_id)
                .order_by(AIRefinement.created_at.desc())
                .all()
            )
            return [row.to_dict() for row in rows]

    def create_refinement(
        self,
        problem_id: str,
        refinement_type: str = "clarity",
        based_on: str = "patterns"
    ) -> Dict[str, Any]:
        with get_database().get_session() as session:
            problem = _require_problem(session, problem_id)
            suggestion, reason, confidence = suggest_refinement(
                problem.problem_statement,
                refinement_type,
                based_on,
                who=problem.who_affected,
                when=problem.when_occurs,
                where=problem.where_occurs,
            )
            refinement = AIRefinement(
                problem_id=problem_id,
                refinement_type=refinement_type,
                original_statement=problem.problem_statement,
                suggested_statement=suggestion,
                refinement_reason=reason,
                based_on=based_on,
                confidence_score=confidence,
                status="pending",
            )
            session.add(refinement)
            session.flush()
            return refinement.to_dict()

    def respond_to_refinement(
        self,
        admin: CurrentUser,
        problem_id: str,
        refinement_id: str,
        action: Optional[str],
        modified_statement: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Accept, reject or modify a suggestion.

        Accepting or modifying replaces the problem statement and appends a
        problem_evolution version.
        """
        if action not in REFINEMENT_ACTIONS:
            raise ValidationError("Invalid action. Must be accept, reject, or modify", field="action")

        with get_database().get_session() as session:
            refinement = (
                session.query(AIRefinement)
                .filter(AIRefinement.id == refinement_id, AIRefinement.problem_id == problem_id)
                .first()
            )
            if refinement is None:
                raise NotFoundError("Refinement not found")
            if action == "modify" and not modified_statement:
                raise ValidationError("modified_statement is required for modify action", field="modified_statement")

            refinement.status = REFINEMENT_ACTIONS[action]
            refinement.responded_at = datetime.utcnow()
            if action == "modify":
                refinement.suggested_statement = modified_statement

            if action in ("accept", "modify"):
                problem = _require_problem(session, problem_id)
                new_statement = modified_statement if action == "modify" else refinement.suggested_statement
                latest = (
                    session.query(func.max(ProblemEvolution.version))
                    .filter(ProblemEvolution.problem_id == problem_id)
                    .scalar()
                )
                session.add(ProblemEvolution(
                    problem_id=problem_id,
                    version=(latest or 0) + 1,
                    previous_statement=problem.problem_statement,
                    new_statement=new_statement,
                    change_reason=f"ai_refinement_{action}",
                    changed_by=admin.id,
                ))
                problem.problem_statement = new_statement
                problem.updated_at = datetime.utcnow()

            session.flush()
            return {"refinement": refinement.to_dict(), "message": REFINEMENT_MESSAGES[action]}

    def delete_refinement(self, problem_id: str, refinement_id: str) -> None:
        with get_database().get_session() as session:
            (
                session.query(AIRefinement)
                .filter(AIRefinement.id == refinement_id, AIRefinement.problem_id == problem_id)
                .delete(synchronize_session=False)
            )

    # ============================================================
    # Scores
    # ============================================================

    def list_scores(self, problem_id: str) -> Dict[str, Any]:
        with get_database().get_session() as session:
            scores = (
                session.query(ProblemScore)
                .filter(ProblemScore.problem_id == problem_id)
                .order_by(ProblemScore.created_at.desc())
                .all()
            )
            composites = [s.composite_score for s in scores if s.composite_score is not None]
            return {
                "scores": [s.to_dict() for s in scores],
                "average_score": sum(composites) / len(composites) if composites else None,
            }

    def upsert_score(self, admin: CurrentUser, problem_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """One score per (problem, scoring method, scorer); composite is the mean of given dimensions."""
        provided = {d: data.get(d) for d in ProblemScore.DIMENSIONS if data.get(d) is not None}
        if any(not 1 <= value <= 10 for value in provided.values()):
            raise ValidationError("Scores must be between 1 and 10")

        scored_by = data.get("scored_by") or "manual"
        with get_database().get_session() as session:
            _require_problem(session, problem_id)
            score = (
                session.query(ProblemScore)
                .filter(
                    ProblemScore.problem_id == problem_id,
                    ProblemScore.scored_by == scored_by,
                    ProblemScore.scored_by_user == admin.id,
                )
                .first()
            )
            if score is None:
                score = ProblemScore(problem_id=problem_id, scored_by=scored_by, scored_by_user=admin.id)
                session.add(score)

            for dimension in ProblemScore.DIMENSIONS:
                setattr(score, dimension, data.get(dimension))
            score.notes = data.get("notes")
            score.composite_score = sum(provided.values()) / len(provided) if provided else None
            score.updated_at = datetime.utcnow()
            session.flush()
            return score.to_dict()

    # ============================================================
    # Flywheel summary
    # ============================================================

    def flywheel_summary(self) -> Dict[str, Any]:
        with get_database().get_session() as session:
            total_problems = session.query(func.count(ProblemBankEntry.id)).scalar() or 0
            outcomes = session.query(ProblemOutcome).all()
            case_studies = session.query(CaseStudy).all()
            refinements = session.query(AIRefinement.status).all()

        problems_with_outcomes = len({o.problem_id for o in outcomes})
        successes = sum(1 for o in outcomes if o.outcome_type == "success")
        accepted = sum(1 for (status,) in refinements if status == "accepted")

        return {
            "total_problems": total_problems,
            "problems_with_outcomes": problems_with_outcomes,
            "outcome_rate": _ratio(problems_with_outcomes, total_problems),
            "success_rate": _ratio(successes, len(outcomes)),
            "average_solution_time_days": (
                sum(o.time_to_solution_days or 0 for o in outcomes) / len(outcomes) if outcomes else None
            ),
            "total_users_impacted": sum(o.users_impacted or 0 for o in outcomes),
            "total_time_saved_hours": sum(o.time_saved_hours or 0 for o in outcomes),
            "total_cost_saved": sum(o.cost_saved or 0 for o in outcomes),
            "total_revenue_generated": sum(o.revenue_generated or 0 for o in outcomes),
            "total_case_studies": len(case_studies),
            "published_case_studies": sum(1 for c in case_studies if c.status == "published"),
            "total_case_study_views": sum(c.view_count or 0 for c in case_studies),
            "total_refinements": len(refinements),
            "refinements_accepted": accepted,
            "refinement_acceptance_rate": _ratio(accepted, len(refinements)),
            # Learning patterns are not mined yet
            "total_patterns": 0,
            "active_patterns": 0,
        }


# Global service instance
_learning_service: Optional[LearningService] = None


def get_learning_service() -> LearningService:
    """Get or create the global learning service."""
    global _learning_service
    if _learning_service is None:
        _learning_service = LearningService()
    return _learning_service
