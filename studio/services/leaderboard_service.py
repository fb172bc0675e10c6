"""
Leaderboard Service - Institutions ranked by problems found.

The public variant is scoped to one event and powers the appathon
landing page, so it needs no sign-in.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, or_

from studio.core.exceptions import NotFoundError
from studio.core.logging_config import LoggerMixin
from studio.database.connection import get_database
from studio.database.models import Cycle, Event, ProblemBankEntry, User

QUESTION_FIELDS = (
    "refined_statement",
    "selected_question",
    "q_takes_too_long",
    "q_repetitive",
    "q_lookup_repeatedly",
    "q_complaints",
    "q_would_pay",
)

VALIDATED = ("desperate_user_confirmed", "market_validated")


def _identified(cycle: Cycle) -> bool:
    problem = cycle.problem
    return problem is not None and any(getattr(problem, f) for f in QUESTION_FIELDS)


def _rank(cycles: List[Cycle], problems: List[ProblemBankEntry]) -> Dict[str, Any]:
    stats: Dict[str, Dict[str, Any]] = {}

    for cycle in cycles:
        owner = cycle.user
        if owner is None or owner.institution is None:
            continue
        institution = owner.institution
        entry = stats.setdefault(institution.id, {
            "id": institution.id,
            "name": institution.name,
            "short_name": institution.short_name or institution.name,
            "total_cycles": 0,
            "completed_cycles": 0,
            "problems_identified": 0,
            "problems_saved": 0,
            "problems_solved": 0,
            "problems_validated": 0,
        })
        entry["total_cycles"] += 1
        if cycle.current_step >= 7:
            entry["completed_cycles"] += 1
        if _identified(cycle):
            entry["problems_identified"] += 1

    for problem in problems:
        entry = stats.get(problem.institution_id)
        if entry is None:
            continue
        entry["problems_saved"] += 1
        if problem.status == "solved":
            entry["problems_solved"] += 1
        if problem.validation_status in VALIDATED:
            entry["problems_validated"] += 1

    leaderboard = sorted(
        stats.values(),
        key=lambda e: (e["problems_identified"], e["completed_cycles"]),
        reverse=True,
    )
    totals = {
        key: sum(e[key] for e in leaderboard)
        for key in ("total_cycles", "completed_cycles", "problems_identified", "problems_saved")
    }
    totals["institutions"] = len(leaderboard)
    return {"leaderboard": leaderboard, "totals": totals}


class LeaderboardService(LoggerMixin):
    """
    Institution rankings.

    Example:
        >>> LeaderboardService().public("appathon-2")["event"]["slug"]
        'appathon-2'
    """

    def overall(self) -> Dict[str, Any]:
        with get_database().get_session() as session:
            cycles = session.query(Cycle).all()
            problems = session.query(ProblemBankEntry).all()
            return _rank(cycles, problems)

    def public(self, event_slug: str) -> Dict[str, Any]:
        """
        Rankings for one active event.

        A cycle counts when it belongs to the event, or has no event while
        its owner is currently in the event.
        """
        with get_database().get_session() as session:
            event = (
                session.query(Event)
                .filter(Event.slug == event_slug, Event.is_active.is_(True))
                .first()
            )
            if event is None:
                raise NotFoundError("Event not found")

            cycles = (
                session.query(Cycle)
                .join(User, User.id == Cycle.user_id)
                .filter(or_(
                    Cycle.event_id == event.id,
                    and_(Cycle.event_id.is_(None), User.active_event_id == event.id),
                ))
                .all()
            )
            problems = (
                session.query(ProblemBankEntry)
                .filter(or_(ProblemBankEntry.event_id == event.id, ProblemBankEntry.event_id.is_(None)))
                .all()
            )

            result = _rank(cycles, problems)
            result["event"] = {"id": event.id, "name": event.name, "slug": event.slug}
            return result


# Global service instance
_leaderboard_service: Optional[LeaderboardService] = None


def get_leaderboard_service() -> LeaderboardService:
    """Get or create the global leaderboard service."""
    global _leaderboard_service
    if _leaderboard_service is None:
        _leaderboard_service = LeaderboardService()
    return _leaderboard_service
