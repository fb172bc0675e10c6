"""
Pipeline Service - The NIF incubation pipeline.

Promising banked problems move through these stages:
identified -> screened -> shortlisted -> incubating -> graduated,
with rejected and on_hold as side exits. Every stage change is written
to nif_stage_history.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from studio.core.exceptions import ConflictError, NotFoundError, ValidationError
from studio.core.logging_config import LoggerMixin
from studio.database.connection import get_database
from studio.database.models import NifCandidate, NifStageHistory, ProblemBankEntry, ProblemScore
from studio.services.auth_service import CurrentUser

PIPELINE_STAGES = ("identified", "screened", "shortlisted", "incubating", "graduated", "rejected", "on_hold")

UPDATABLE_FIELDS = (
    "stage",
    "decision_notes",
    "rejection_reason",
    "startup_name",
    "startup_status",
    "startup_website",
    "team_members",
    "funding_stage",
    "funding_amount",
    "jobs_created",
    "revenue_generated",
    "graduated_at",
)


def _latest_score(session, problem_id: str) -> Optional[ProblemScore]:
    return (
        session.query(ProblemScore)
        .filter(ProblemScore.problem_id == problem_id)
        .order_by(ProblemScore.updated_at.desc())
        .first()
    )


def _candidate_view(session, candidate: NifCandidate, full_scores: bool = False) -> Dict[str, Any]:
    problem = candidate.problem
    institution = problem.institution if problem else None
    score = _latest_score(session, candidate.problem_id)
    data = {
        **candidate.to_dict(),
        "problem": {
            "id": problem.id,
            "title": problem.title,
            "problem_statement": problem.problem_statement,
            "theme": problem.theme,
            "status": problem.status,
            "validation_status": problem.validation_status,
            "severity_rating": problem.severity_rating,
            "created_at": problem.to_dict()["created_at"],
        } if problem else None,
        "institution_name": institution.name if institution else None,
        "institution_short": institution.short_name if institution else None,
    }
    if full_scores:
        data["scores"] = score.to_dict() if score else None
    else:
        data["composite_score"] = score.composite_score if score else None
    return data


class PipelineService(LoggerMixin):
    """
    Pipeline candidates, stage moves and pipeline statistics.

    Example:
        >>> service = PipelineService()
        >>> result = service.add(admin, problem_id)
        >>> service.update(admin, result["candidate_id"], {"stage": "screened"})["candidate"]["screened_by"] == admin.id
        True
    """

    def list(self, stage: Optional[str] = None, include_stats: bool = False) -> Dict[str, Any]:
        with get_database().get_session() as session:
            query = session.query(NifCandidate)
            if stage and stage != "all":
                query = query.filter(NifCandidate.stage == stage)
            candidates = query.order_by(NifCandidate.identified_at.desc()).all()

            data = [_candidate_view(session, c) for c in candidates]
            stats = self._stats(session.query(NifCandidate).all()) if include_stats else None

        return {"candidates": data, "total": len(data), "stats": stats}

    def _stats(self, candidates) -> Dict[str, Any]:
        by_stage = {stage: 0 for stage in PIPELINE_STAGES}
        graduation_days = []
        for candidate in candidates:
            by_stage[candidate.stage] = by_stage.get(candidate.stage, 0) + 1
            if candidate.stage == "graduated" and candidate.graduated_at and candidate.identified_at:
                elapsed = candidate.graduated_at - candidate.identified_at
                graduation_days.append(elapsed.total_seconds() / 86400)

        return {
            "total_candidates": len(candidates),
            "by_stage": by_stage,
            "total_startups": by_stage["incubating"] + by_stage["graduated"],
            "total_jobs_created": sum(c.jobs_created or 0 for c in candidates),
            "total_revenue": sum(c.revenue_generated or 0 for c in candidates),
            "avg_time_to_graduation_days": (
                round(sum(graduation_days) / len(graduation_days)) if graduation_days else None
            ),
        }

    def add(self, admin: CurrentUser, problem_id: Optional[str], notes: Optional[str] = None) -> Dict[str, Any]:
        """
        Put a banked problem into the pipeline at stage `identified`.

        Raises:
            ValidationError: problem_id missing
            NotFoundError: Unknown problem
            ConflictError: The problem already has a candidate
        """
        if not problem_id:
            raise ValidationError("Problem ID is required", field="problem_id")

        with get_database().get_session() as session:
            problem = session.get(ProblemBankEntry, problem_id)
            if problem is None:
                raise NotFoundError("Problem not found")
            if session.query(NifCandidate).filter(NifCandidate.problem_id == problem_id).first() is not None:
                raise ConflictError("Problem is already in the pipeline")

            candidate = NifCandidate(
                problem_id=problem_id,
                stage="identified",
                decision_notes=notes,
                identified_by=admin.id,
            )
            session.add(candidate)
            session.flush()
            session.add(NifStageHistory(
                candidate_id=candidate.id,
                from_stage=None,
                to_stage="identified",
                changed_by=admin.id,
                notes=notes,
            ))
            self.logger.info(f"Problem {problem_id} added to pipeline as {candidate.id}")
            return {
                "success": True,
                "candidate_id": candidate.id,
                "message": f'"{problem.title}" added to NIF pipeline',
            }

    def get(self, candidate_id: str) -> Dict[str, Any]:
        with get_database().get_session() as session:
            candidate = session.get(NifCandidate, candidate_id)
            if candidate is None:
                raise NotFoundError("Candidate not found")
            return {
                "candidate": _candidate_view(session, candidate, full_scores=True),
                "history": [h.to_dict() for h in candidate.history],
            }

    def update(self, admin: CurrentUser, candidate_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        updates = {key: data[key] for key in UPDATABLE_FIELDS if data.get(key) is not None}
        if not updates:
            raise ValidationError("No update data provided")

        stage = updates.get("stage")
        if stage is not None and stage not in PIPELINE_STAGES:
            raise ValidationError("Invalid stage", field="stage")

        with get_database().get_session() as session:
            candidate = session.get(NifCandidate, candidate_id)
            if candidate is None:
                raise NotFoundError("Candidate not found")

            previous_stage = candidate.stage
            for key, value in updates.items():
                if isinstance(value, datetime) and value.tzinfo is not None:
                    value = value.astimezone(timezone.utc).replace(tzinfo=None)
                setattr(candidate, key, value)

            if stage == "screened":
                candidate.screened_by = admin.id
            elif stage == "shortlisted":
                candidate.shortlisted_by = admin.id
            elif stage == "graduated" and candidate.graduated_at is None:
                candidate.graduated_at = datetime.utcnow()

            if stage is not None and stage != previous_stage:
                session.add(NifStageHistory(
                    candidate_id=candidate.id,
                    from_stage=previous_stage,
                    to_stage=stage,
                    changed_by=admin.id,
                    notes=updates.get("decision_notes"),
                ))
                self.logger.info(f"Candidate {candidate_id} moved {previous_stage} -> {stage}")

            candidate.updated_at = datetime.utcnow()
            session.flush()
            return {"success": True, "candidate": candidate.to_dict()}

    def remove(self, candidate_id: str) -> Dict[str, Any]:
        with get_database().get_session() as session:
            candidate = session.get(NifCandidate, candidate_id)
            if candidate is not None:
                session.delete(candidate)
        return {"success": True, "message": "Removed from pipeline"}


# Global service instance
_pipeline_service: Optional[PipelineService] = None


def get_pipeline_service() -> PipelineService:
    """Get or create the global pipeline service."""
    global _pipeline_service
    if _pipeline_service is None:
        _pipeline_service = PipelineService()
    return _pipeline_service
