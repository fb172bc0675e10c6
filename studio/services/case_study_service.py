"""
Case Study Service - Write-ups of solved problems.

Case studies are authored by superadmins as drafts and become visible to
everyone once published. Each published read bumps view_count.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from studio.core.exceptions import NotFoundError, ValidationError
from studio.core.logging_config import LoggerMixin
from studio.database.connection import get_database
from studio.database.models import CaseStudy, ProblemBankEntry
from studio.services.auth_service import CurrentUser
from studio.services.problem_bank_service import institution_summary

CONTENT_FIELDS = (
    "title",
    "summary",
    "full_content",
    "problem_section",
    "approach_section",
    "solution_section",
    "impact_section",
    "lessons_section",
    "target_audience",
    "difficulty_level",
    "estimated_read_time_minutes",
    "related_problems",
    "external_references",
    "media_urls",
)


def _serialize(case_study: CaseStudy) -> Dict[str, Any]:
    problem = case_study.problem
    return {
        **case_study.to_dict(),
        "problem": {
            "id": problem.id,
            "title": problem.title,
            "problem_statement": problem.problem_statement,
            "theme": problem.theme,
            "institution": institution_summary(problem.institution),
        } if problem else None,
        "author": case_study.author.brief() if case_study.author else None,
    }


class CaseStudyService(LoggerMixin):
    """
    Case study CRUD with publish-only visibility for non-superadmins.

    Example:
        >>> service = CaseStudyService()
        >>> study = service.create(admin, {"problem_id": pid, "title": "Canteen queues"})
        >>> study["status"]
        'draft'
    """

    def list(
        self,
        user: CurrentUser,
        status: Optional[str] = None,
        theme: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
        published_only: bool = False
    ) -> Dict[str, Any]:
        limit, offset = max(limit, 1), max(offset, 0)

        with get_database().get_session() as session:
            query = session.query(CaseStudy)
            if not user.is_superadmin or published_only:
                query = query.filter(CaseStudy.status == "published")
            elif status:
                query = query.filter(CaseStudy.status == status)
            if theme:
                query = query.join(ProblemBankEntry, ProblemBankEntry.id == CaseStudy.problem_id).filter(
                    ProblemBankEntry.theme == theme
                )

            total = query.count()
            rows = (
                query.order_by(
                    CaseStudy.published_at.is_(None),
                    CaseStudy.published_at.desc(),
                    CaseStudy.created_at.desc(),
                )
                .offset(offset)
                .limit(limit)
                .all()
            )
            return {
                "data": [_serialize(row) for row in rows],
                "pagination": {
                    "total": total,
                    "limit": limit,
                    "offset": offset,
                    "hasMore": total > offset + limit,
                },
            }

    def create(self, admin: CurrentUser, data: Dict[str, Any]) -> Dict[str, Any]:
        if not data.get("problem_id") or not data.get("title"):
            raise ValidationError("problem_id and title are required")

        with get_database().get_session() as session:
            if session.get(ProblemBankEntry, data["problem_id"]) is None:
                raise NotFoundError("Problem not found")

            case_study = CaseStudy(
                problem_id=data["problem_id"],
                attempt_id=data.get("attempt_id"),
                status="draft",
                created_by=admin.id,
            )
            for key in CONTENT_FIELDS:
                if data.get(key) is not None:
                    setattr(case_study, key, data[key])
            session.add(case_study)
            session.flush()
            self.logger.info(f"Case study {case_study.id} drafted for problem {case_study.problem_id}")
            return case_study.to_dict()

    def get(self, user: CurrentUser, case_study_id: str) -> Dict[str, Any]:
        with get_database().get_session() as session:
            case_study = session.get(CaseStudy, case_study_id)
            if case_study is None or (not user.is_superadmin and case_study.status != "published"):
                raise NotFoundError("Case study not found")

            if case_study.status == "published":
                case_study.view_count = (case_study.view_count or 0) + 1
            session.flush()
            return _serialize(case_study)

    def update(self, case_study_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        with get_database().get_session() as session:
            case_study = session.get(CaseStudy, case_study_id)
            if case_study is None:
                raise NotFoundError("Case study not found")

            for key in CONTENT_FIELDS + ("status",):
                if data.get(key) is not None:
                    setattr(case_study, key, data[key])
            if data.get("status") == "published" and case_study.published_at is None:
                case_study.published_at = datetime.utcnow()
            case_study.updated_at = datetime.utcnow()
            session.flush()
            return case_study.to_dict()

    def delete(self, case_study_id: str) -> None:
        with get_database().get_session() as session:
            session.query(CaseStudy).filter(CaseStudy.id == case_study_id).delete(synchronize_session=False)


# Global service instance
_case_study_service: Optional[CaseStudyService] = None


def get_case_study_service() -> CaseStudyService:
    """Get or create the global case study service."""
    global _case_study_service
    if _case_study_service is None:
        _case_study_service = CaseStudyService()
    return _case_study_service
