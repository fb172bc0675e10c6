"""
Services module - Business logic and orchestration.

Services contain the core application logic:
- No HTTP concerns (those belong in api/)
- Work on ORM rows inside one database session per operation
- Hand dicts and CurrentUser snapshots back to the routes
"""
from studio.services.auth_service import CurrentUser, get_auth_service
from studio.services.coach_service import get_coach_service
from studio.services.credential_service import get_credential_service
from studio.services.cycle_service import get_cycle_service
from studio.services.problem_bank_service import get_problem_bank_service

__all__ = [
    "CurrentUser",
    "get_auth_service",
    "get_coach_service",
    "get_credential_service",
    "get_cycle_service",
    "get_problem_bank_service",
]
