"""
Problem Bank Service - Institutional memory of validated problems.

Problems reach the bank three ways:
1. An admin saves a finished cycle (from_cycle)
2. An event admin or learner writes one in directly (create / submit)
3. An import (source_type="import", not exposed over HTTP)

Banked problems can then be forked into fresh cycles and attempted by
teams. Outcomes, refinements and scores live in learning_service.
"""
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_

from studio.core.exceptions import ConflictError, NotFoundError, ValidationError
from studio.core.logging_config import LoggerMixin
from studio.database.connection import get_database
from studio.database.models import (
    Context,
    Cycle,
    Problem,
    ProblemAttempt,
    ProblemBankEntry,
    ProblemEvidence,
    ProblemSimilarity,
    User,
)
from studio.flywheel.scoring import PROBLEM_THEMES, detect_theme, get_severity_label, is_high_potential_problem
from studio.services.auth_service import CurrentUser

SORTABLE_FIELDS = (
    "created_at",
    "updated_at",
    "title",
    "theme",
    "status",
    "validation_status",
    "severity_rating",
    "desperate_user_score",
    "users_interviewed",
)

UPDATABLE_FIELDS = (
    "title",
    "problem_statement",
    "theme",
    "sub_theme",
    "who_affected",
    "when_occurs",
    "where_occurs",
    "frequency",
    "severity_rating",
    "current_workaround",
    "validation_status",
    "desperate_user_score",
    "status",
    "is_open_for_attempts",
    "best_solution_url",
    "department",
)

PROBLEM_SOURCE_TYPES = ("cycle", "manual", "import", "appathon")
PROBLEM_FREQUENCIES = ("daily", "weekly", "monthly", "rarely")
PROBLEM_STATUSES = ("open", "claimed", "in_progress", "solved", "archived")
VALIDATION_STATUSES = ("unvalidated", "user_tested", "desperate_user_confirmed", "market_validated")

CHOICE_FIELDS = {
    "theme": PROBLEM_THEMES,
    "frequency": PROBLEM_FREQUENCIES,
    "status": PROBLEM_STATUSES,
    "validation_status": VALIDATION_STATUSES,
    "source_type": PROBLEM_SOURCE_TYPES,
}

# Learner submissions always enter the bank unreviewed
SUBMISSION_DEFAULTS = {"source_type": "manual", "validation_status": "unvalidated", "status": "open"}

SUCCESSFUL_ATTEMPT_OUTCOMES = ("success", "deployed")

# Interview pain at or above this counts the interviewee as a desperate user
DESPERATE_PAIN_LEVEL = 8


def check_choices(data: Dict[str, Any]) -> None:
    """
    Reject enum fields holding a value outside their allowed set.

    Raises:
        ValidationError: Naming the field and its allowed values
    """
    for field, allowed in CHOICE_FIELDS.items():
        value = data.get(field)
        if value is not None and value not in allowed:
            raise ValidationError(f"Invalid {field}. Must be one of: {', '.join(allowed)}")


def institution_summary(institution) -> Optional[Dict[str, Any]]:
    if institution is None:
        return None
    return {"id": institution.id, "name": institution.name, "short_name": institution.short_name}


def _card(problem: ProblemBankEntry, attempt_count: int) -> Dict[str, Any]:
    institution = problem.institution
    return {
        "id": problem.id,
        "title": problem.title,
        "problem_statement": problem.problem_statement,
        "theme": problem.theme,
        "status": problem.status,
        "validation_status": problem.validation_status,
        "severity_rating": problem.severity_rating,
        "desperate_user_score": problem.desperate_user_score,
        "created_at": problem.to_dict()["created_at"],
        "attempt_count": attempt_count,
        "institution_name": institution.name if institution else None,
        "institution_short": institution.short_name if institution else None,
        "severity_label": get_severity_label(problem.severity_rating),
        "is_high_potential": is_high_potential_problem(
            problem.validation_status, problem.desperate_user_score, problem.severity_rating
        ),
    }


def _distribution(values: List[Optional[str]], key: str, default: str) -> List[Dict[str, Any]]:
    counts: Dict[str, int] = {}
    for value in values:
        value = value or default
        counts[value] = counts.get(value, 0) + 1
    return [
        {key: name, "count": count}
        for name, count in sorted(counts.items(), key=lambda item: item[1], reverse=True)
    ]


def _build_statement(problem: Optional[Problem], context: Optional[Context]) -> str:
    parts = []
    if problem is not None and problem.selected_question:
        parts.append(problem.selected_question)
    if context is not None:
        if context.problem_description:
            parts.append(context.problem_description)
        if context.primary_users and context.specific_trigger:
            parts.append(f"Affects {context.primary_users} {context.specific_trigger}.")
    return "\n\n".join(parts) or "Problem statement not provided"


def _validation_status(cycle: Cycle) -> str:
    impact, value = cycle.impact_assessment, cycle.value_assessment
    if impact is not None and impact.completed and (impact.total_users or 0) > 0:
        return "market_validated"
    if value is not None and (value.desperate_user_score or 0) >= 3:
        return "desperate_user_confirmed"
    if cycle.context is not None and cycle.context.interviews:
        return "user_tested"
    return "unvalidated"


class ProblemBankService(LoggerMixin):
    """
    Browse, bank, fork and attempt problems.

    Example:
        >>> service = ProblemBankService()
        >>> result = service.save_from_cycle(admin, cycle_id)
        >>> service.fork(learner, result["problem_id"])["message"]
        'Problem forked successfully. Your new cycle is ready!'
    """

    # ============================================================
    # Listing and statistics
    # ============================================================

    def list_problems(
        self,
        theme: Optional[str] = None,
        status: Optional[str] = None,
        validation_status: Optional[str] = None,
        institution_id: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: str = "created_at",
        sort_dir: str = "desc",
        page: int = 1,
        per_page: int = 20
    ) -> Dict[str, Any]:
        """
        Filtered, sorted, paginated problem cards.

        Unknown sort fields fall back to created_at.
        """
        page = max(page, 1)
        per_page = max(per_page, 1)
        sort_column = getattr(ProblemBankEntry, sort_by if sort_by in SORTABLE_FIELDS else "created_at")
        order = sort_column.asc() if sort_dir == "asc" else sort_column.desc()

        with get_database().get_session() as session:
            query = session.query(ProblemBankEntry)
            if theme:
                query = query.filter(ProblemBankEntry.theme == theme)
            if status:
                query = query.filter(ProblemBankEntry.status == status)
            if validation_status:
                query = query.filter(ProblemBankEntry.validation_status == validation_status)
            if institution_id:
                query = query.filter(ProblemBankEntry.institution_id == institution_id)
            if search:
                pattern = f"%{search.lower()}%"
                query = query.filter(or_(
                    func.lower(ProblemBankEntry.title).like(pattern),
                    func.lower(ProblemBankEntry.problem_statement).like(pattern),
                ))

            total = query.count()
            problems = query.order_by(order).offset((page - 1) * per_page).limit(per_page).all()

            ids = [p.id for p in problems]
            attempt_counts = dict(
                session.query(ProblemAttempt.problem_id, func.count(ProblemAttempt.id))
                .filter(ProblemAttempt.problem_id.in_(ids))
                .group_by(ProblemAttempt.problem_id)
                .all()
            ) if ids else {}

            data = [_card(p, attempt_counts.get(p.id, 0)) for p in problems]

        return {
            "data": data,
            "total": total,
            "page": page,
            "per_page": per_page,
            "total_pages": math.ceil(total / per_page),
        }

    def get_stats(self) -> Dict[str, Any]:
        with get_database().get_session() as session:
            problems = session.query(ProblemBankEntry).all()

            institutions: Dict[str, Dict[str, Any]] = {}
            for problem in problems:
                if problem.institution is None:
                    continue
                entry = institutions.setdefault(
                    problem.institution_id,
                    {**institution_summary(problem.institution), "count": 0},
                )
                entry["count"] += 1

            severities = [p.severity_rating for p in problems if p.severity_rating is not None]

            return {
                "total": len(problems),
                "themeDistribution": _distribution([p.theme for p in problems], "theme", "other"),
                "institutionDistribution": sorted(
                    institutions.values(), key=lambda item: item["count"], reverse=True
                ),
                "statusDistribution": _distribution([p.status for p in problems], "status", "open"),
                "validationDistribution": _distribution(
                    [p.validation_status for p in problems], "validation", "unvalidated"
                ),
                "avgSeverity": sum(severities) / len(severities) if severities else None,
            }

    # ============================================================
    # Writing problems
    # ============================================================

    def create(
        self,
        user: CurrentUser,
        data: Dict[str, Any],
        source_event: Optional[str] = None,
        event_id: Optional[str] = None
    ) -> str:
        """
        Insert a problem written by hand and return its id.

        Raises:
            ValidationError: Title or statement missing
        """
        title, statement = data.get("title"), data.get("problem_statement")
        if not title or not statement:
            raise ValidationError("Title and problem statement are required")
        check_choices(data)

        with get_database().get_session() as session:
            problem = ProblemBankEntry(
                title=title[:200],
                problem_statement=statement,
                theme=data.get("theme") or "other",
                sub_theme=data.get("sub_theme"),
                who_affected=data.get("who_affected"),
                when_occurs=data.get("when_occurs"),
                where_occurs=data.get("where_occurs"),
                frequency=data.get("frequency"),
                severity_rating=data.get("severity_rating"),
                current_workaround=data.get("current_workaround"),
                source_type=data.get("source_type") or "manual",
                source_year=datetime.utcnow().year,
                source_event=source_event or data.get("source_event"),
                validation_status=data.get("validation_status") or "unvalidated",
                status=data.get("status") or "open",
                is_open_for_attempts=True,
                institution_id=user.institution_id,
                submitted_by=user.id,
                event_id=event_id,
                extra_data={},
            )
            session.add(problem)
            session.flush()
            self.logger.info(f"Problem {problem.id} created by {user.id}")
            return problem.id

    def submit(self, user: CurrentUser, data: Dict[str, Any]) -> str:
        """A learner's submission, tagged with their active event."""
        source_event, event_id = None, None
        if user.active_event_id:
            with get_database().get_session() as session:
                row = session.get(User, user.id)
                if row is not None and row.active_event is not None:
                    source_event, event_id = row.active_event.name, row.active_event.id
        return self.create(user, {**data, **SUBMISSION_DEFAULTS}, source_event=source_event, event_id=event_id)

    def get(self, problem_id: str) -> Dict[str, Any]:
        with get_database().get_session() as session:
            problem = session.get(ProblemBankEntry, problem_id)
            if problem is None:
                raise NotFoundError("Problem not found")

            attempts = sorted(problem.attempts, key=lambda a: a.started_at, reverse=True)
            evidence = sorted(problem.evidence, key=lambda e: e.created_at, reverse=True)
            return {
                **problem.to_dict(),
                "institution": institution_summary(problem.institution),
                "submitter": problem.submitter.brief() if problem.submitter else None,
                "evidence": [e.to_dict() for e in evidence],
                "attempts": [a.to_dict() for a in attempts],
                "tags": [t.to_dict() for t in problem.tags],
                "attempt_count": len(attempts),
                "successful_attempts": sum(1 for a in attempts if a.outcome in SUCCESSFUL_ATTEMPT_OUTCOMES),
            }

    def update(self, problem_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        check_choices(data)
        with get_database().get_session() as session:
            problem = session.get(ProblemBankEntry, problem_id)
            if problem is None:
                raise NotFoundError("Problem not found")
            for key in UPDATABLE_FIELDS:
                if data.get(key) is not None:
                    setattr(problem, key, data[key])
            problem.updated_at = datetime.utcnow()
            session.flush()
            return problem.to_dict()

    def delete(self, problem_id: str) -> None:
        with get_database().get_session() as session:
            problem = session.get(ProblemBankEntry, problem_id)
            if problem is None:
                raise NotFoundError("Problem not found")
            # Similarity pairs reference the problem from either side
            session.query(ProblemSimilarity).filter(or_(
                ProblemSimilarity.problem_id_a == problem_id,
                ProblemSimilarity.problem_id_b == problem_id,
            )).delete(synchronize_session=False)
            session.delete(problem)
        self.logger.info(f"Problem {problem_id} deleted")

    # ============================================================
    # Banking finished cycles
    # ============================================================

    def eligible_cycles(self, include_all: bool = False) -> Dict[str, Any]:
        """Cycles with a problem statement, split by whether they can be banked."""
        with get_database().get_session() as session:
            saved_ids = {
                cycle_id for (cycle_id,) in
                session.query(ProblemBankEntry.original_cycle_id)
                .filter(ProblemBankEntry.original_cycle_id.isnot(None))
                .distinct()
                .all()
            }

            query = (
                session.query(Cycle)
                .join(Problem, Problem.cycle_id == Cycle.id)
                .filter(or_(Problem.refined_statement.isnot(None), Problem.selected_question.isnot(None)))
            )
            if not include_all:
                query = query.filter(Cycle.current_step >= 7)
            cycles = query.order_by(Cycle.updated_at.desc()).all()

            rows = []
            for cycle in cycles:
                statement = cycle.problem.refined_statement or cycle.problem.selected_question or ""
                data = cycle.to_dict()
                rows.append({
                    "id": cycle.id,
                    "name": cycle.name,
                    "status": cycle.status,
                    "current_step": cycle.current_step,
                    "created_at": data["created_at"],
                    "updated_at": data["updated_at"],
                    "user_name": (cycle.user.name if cycle.user else None) or "Unknown",
                    "user_email": cycle.user.email if cycle.user else None,
                    "problem_preview": statement[:200],
                    "is_saved": cycle.id in saved_ids,
                    "is_eligible": cycle.current_step >= 7,
                })

        return {
            "eligible": [r for r in rows if r["is_eligible"] and not r["is_saved"]],
            "in_progress": [r for r in rows if not r["is_eligible"] and not r["is_saved"]],
            "saved": [r for r in rows if r["is_saved"]],
            "total": len(rows),
            "already_saved": len(saved_ids),
        }

    def save_from_cycle(
        self,
        admin: CurrentUser,
        cycle_id: Optional[str],
        source_event: Optional[str] = None
    ) -> str:
        """
        Bank a cycle's problem with its evidence and return the new id.

        Raises:
            ValidationError: cycle_id missing
            ConflictError: The cycle is already banked (carries problem_id)
            NotFoundError: Unknown cycle
        """
        if not cycle_id:
            raise ValidationError("Missing required field: cycle_id", field="cycle_id")

        with get_database().get_session() as session:
            existing = (
                session.query(ProblemBankEntry)
                .filter(ProblemBankEntry.original_cycle_id == cycle_id)
                .first()
            )
            if existing is not None:
                raise ConflictError("Problem already exists in bank", extra={"problem_id": existing.id})

            cycle = session.get(Cycle, cycle_id)
            if cycle is None:
                raise NotFoundError("Cycle not found")

            problem, context = cycle.problem, cycle.context
            value, impact, build = cycle.value_assessment, cycle.impact_assessment, cycle.build
            interviews = list(context.interviews) if context is not None else []
            solved = bool(impact is not None and impact.completed)

            title = (problem.selected_question if problem else None) or cycle.name or "Untitled Problem"
            entry = ProblemBankEntry(
                original_cycle_id=cycle.id,
                source_type="cycle",
                source_year=datetime.utcnow().year,
                source_event=source_event,
                title=title[:200],
                problem_statement=_build_statement(problem, context),
                theme=detect_theme(
                    problem.selected_question if problem else None,
                    context.problem_description if context else None,
                    context.primary_users if context else None,
                    context.where_occurs if context else None,
                ),
                who_affected=context.primary_users if context else None,
                when_occurs=context.specific_trigger if context else None,
                where_occurs=context.where_occurs if context else None,
                frequency=(context.frequency if context else None) or (problem.frequency if problem else None),
                severity_rating=context.pain_level if context else None,
                current_workaround=context.current_workaround if context else None,
                validation_status=_validation_status(cycle),
                users_interviewed=len(interviews),
                desperate_user_count=sum(1 for i in interviews if (i.pain_level or 0) >= DESPERATE_PAIN_LEVEL),
                desperate_user_score=(value.desperate_user_score or None) if value else None,
                institution_id=admin.institution_id,
                submitted_by=admin.id,
                event_id=cycle.event_id,
                status="solved" if solved else "open",
                is_open_for_attempts=not solved,
                best_solution_cycle_id=cycle.id if solved else None,
                best_solution_url=build.deployed_url if (solved and build) else None,
                extra_data={
                    "original_cycle_name": cycle.name,
                    "build_url": (build.deployed_url or build.lovable_project_url) if build else None,
                    "impact_score": impact.impact_score if impact else None,
                },
            )
            session.add(entry)
            session.flush()

            for interview in interviews:
                session.add(ProblemEvidence(
                    problem_id=entry.id,
                    evidence_type="interview",
                    content=interview.notes or interview.key_quote or "Interview conducted",
                    source_name=interview.interviewee_name or "Anonymous",
                    source_role=interview.interviewee_role,
                    pain_level=interview.pain_level,
                    collected_at=interview.conducted_at,
                    collected_by=admin.id,
                ))

            self.logger.info(f"Cycle {cycle_id} banked as problem {entry.id} ({len(interviews)} evidence rows)")
            return entry.id

    # ============================================================
    # Forks and attempts
    # ============================================================

    def fork(self, user: CurrentUser, problem_id: Optional[str]) -> str:
        """
        Start a new cycle from a banked problem and return the cycle id.

        Step 1 is pre-filled from the bank, so the cycle opens at step 2.
        """
        if not problem_id:
            raise ValidationError("Missing required field: problem_id", field="problem_id")

        with get_database().get_session() as session:
            source = session.get(ProblemBankEntry, problem_id)
            if source is None:
                raise NotFoundError("Problem not found")

            cycle = Cycle(
                user_id=user.id,
                event_id=user.active_event_id,
                name=f"Fork: {source.title[:100]}",
                status="active",
                current_step=2,
            )
            cycle.problem = Problem(
                selected_question=source.title,
                refined_statement=source.problem_statement,
                frequency=source.frequency,
                pain_level=source.severity_rating,
                completed=True,
            )
            cycle.context = Context(
                primary_users=source.who_affected,
                specific_trigger=source.when_occurs,
                where_occurs=source.where_occurs,
                frequency=source.frequency,
                pain_level=source.severity_rating,
                current_workaround=source.current_workaround,
                problem_description=source.problem_statement,
            )
            session.add(cycle)
            session.flush()

            session.add(ProblemAttempt(
                problem_id=source.id,
                cycle_id=cycle.id,
                user_id=user.id,
                outcome="building",
            ))
            self.logger.info(f"Problem {problem_id} forked into cycle {cycle.id} by {user.id}")
            return cycle.id

    def list_attempts(self, problem_id: str) -> List[Dict[str, Any]]:
        with get_database().get_session() as session:
            attempts = (
                session.query(ProblemAttempt)
                .filter(ProblemAttempt.problem_id == problem_id)
                .order_by(ProblemAttempt.started_at.desc())
                .all()
            )
            return [a.to_dict() for a in attempts]

    def start_attempt(
        self,
        user: CurrentUser,
        problem_id: str,
        team_name: Optional[str] = None,
        cycle_id: Optional[str] = None
    ) -> str:
        """
        Claim a problem for the caller's team and return the attempt id.

        Raises:
            NotFoundError: Unknown problem
            ConflictError: The caller already has an attempt without an outcome
        """
        with get_database().get_session() as session:
            problem = session.get(ProblemBankEntry, problem_id)
            if problem is None:
                raise NotFoundError("Problem not found")

            existing = (
                session.query(ProblemAttempt)
                .filter(
                    ProblemAttempt.problem_id == problem_id,
                    ProblemAttempt.user_id == user.id,
                    ProblemAttempt.outcome.is_(None),
                )
                .first()
            )
            if existing is not None:
                raise ConflictError(
                    "You already have an active attempt on this problem",
                    extra={"attempt_id": existing.id},
                )

            attempt = ProblemAttempt(
                problem_id=problem_id,
                cycle_id=cycle_id,
                user_id=user.id,
                team_name=team_name or user.name or user.email or "Anonymous",
            )
            session.add(attempt)
            if problem.status == "open":
                problem.status = "claimed"
            session.flush()
            return attempt.id


# Global service instance
_problem_bank_service: Optional[ProblemBankService] = None


def get_problem_bank_service() -> ProblemBankService:
    """Get or create the global problem bank service."""
    global _problem_bank_service
    if _problem_bank_service is None:
        _problem_bank_service = ProblemBankService()
    return _problem_bank_service
