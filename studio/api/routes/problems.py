"""
Problem Bank Routes - Banked problems and everything attached to them.

Route order matters here: every static path (stats, leaderboard,
eligible-cycles, from-cycle, fork, submit, compute-similarities) is
declared before `/{problem_id}`.

Access levels:
1. Listing and creating need event-admin rights on at least one event
2. Reading or editing a single problem, outcomes and refinements are superadmin only
3. Attempts, forks, submissions and leaderboards are open to any signed-in user
4. The public leaderboard needs no sign-in at all
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from studio.api.deps import get_current_user, get_effective_user, require_superadmin
from studio.core.config import get_settings
from studio.core.exceptions import ForbiddenError
from studio.core.logging_config import get_logger
from studio.models.common import ErrorResponse
from studio.models.problems import (
    AttemptCreate,
    ComputeSimilaritiesRequest,
    ForkRequest,
    FromCycleRequest,
    OutcomeCreate,
    ProblemCreate,
    ProblemUpdate,
    RefinementAction,
    RefinementCreate,
    ScoreCreate,
)
from studio.services.auth_service import CurrentUser
from studio.services.event_service import get_admin_events
from studio.services.leaderboard_service import get_leaderboard_service
from studio.services.learning_service import get_learning_service
from studio.services.problem_bank_service import get_problem_bank_service
from studio.services.similarity_service import get_similarity_service

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/problems",
    tags=["Problem Bank"],
    responses={
        401: {"model": ErrorResponse, "description": "Not signed in"},
        403: {"model": ErrorResponse, "description": "Not allowed"},
        404: {"model": ErrorResponse, "description": "Problem not found"},
    },
)

superadmin_only = require_superadmin("Forbidden - superadmin only")
admin_access = require_superadmin("Admin access required")


def event_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Superadmins, and callers who administer at least one event."""
    if not user.is_superadmin and not get_admin_events(user):
        raise ForbiddenError("Forbidden - admin access required")
    return user


# ============================================================
# Collection
# ============================================================

@router.get("", summary="Browse the problem bank")
async def list_problems(
    theme: Optional[str] = None,
    status: Optional[str] = None,
    validation_status: Optional[str] = None,
    institution_id: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: str = "created_at",
    sort_dir: str = "desc",
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=100),
    user: CurrentUser = Depends(event_admin)
) -> Dict[str, Any]:
    return get_problem_bank_service().list_problems(
        theme=theme,
        status=status,
        validation_status=validation_status,
        institution_id=institution_id,
        search=search,
        sort_by=sort_by,
        sort_dir=sort_dir,
        page=page,
        per_page=per_page,
    )


@router.post("", status_code=201, summary="Add a problem by hand")
async def create_problem(body: ProblemCreate, user: CurrentUser = Depends(event_admin)) -> Dict[str, Any]:
    problem_id = get_problem_bank_service().create(user, body.model_dump(exclude_none=True))
    return {"success": True, "problem_id": problem_id, "message": "Problem created successfully"}


@router.post("/submit", status_code=201, summary="Submit a problem from the field")
async def submit_problem(body: ProblemCreate, user: CurrentUser = Depends(get_effective_user)) -> Dict[str, Any]:
    problem_id = get_problem_bank_service().submit(user, body.model_dump(exclude_none=True))
    return {"success": True, "problem_id": problem_id, "message": "Problem submitted successfully!"}


@router.get("/stats", summary="Problem bank distributions")
async def problem_stats(admin: CurrentUser = Depends(superadmin_only)) -> Dict[str, Any]:
    return get_problem_bank_service().get_stats()


# ============================================================
# Leaderboards
# ============================================================

@router.get("/leaderboard", summary="Institution leaderboard")
async def leaderboard(user: CurrentUser = Depends(get_current_user)) -> Dict[str, Any]:
    return get_leaderboard_service().overall()


@router.get("/leaderboard/public", summary="Public leaderboard for one event")
async def public_leaderboard(event: Optional[str] = None) -> Dict[str, Any]:
    return get_leaderboard_service().public(event or get_settings().default_public_event_slug)


# ============================================================
# Banking cycles and forking problems
# ============================================================

@router.get("/eligible-cycles", summary="Cycles that can be saved to the bank")
async def eligible_cycles(
    all: bool = Query(default=False),
    admin: CurrentUser = Depends(superadmin_only)
) -> Dict[str, Any]:
    return get_problem_bank_service().eligible_cycles(include_all=all)


@router.post("/from-cycle", status_code=201, summary="Save a cycle's problem to the bank")
async def save_from_cycle(body: FromCycleRequest, admin: CurrentUser = Depends(superadmin_only)) -> Dict[str, Any]:
    problem_id = get_problem_bank_service().save_from_cycle(admin, body.cycle_id, source_event=body.source_event)
    return {"success": True, "problem_id": problem_id, "message": "Problem saved to bank successfully"}


@router.post("/fork", status_code=201, summary="Start a new cycle from a banked problem")
async def fork_problem(body: ForkRequest, user: CurrentUser = Depends(get_effective_user)) -> Dict[str, Any]:
    cycle_id = get_problem_bank_service().fork(user, body.problem_id)
    return {
        "success": True,
        "cycle_id": cycle_id,
        "message": "Problem forked successfully. Your new cycle is ready!",
    }


# ============================================================
# Similarity runs
# ============================================================

@router.get("/compute-similarities", summary="Similarity statistics")
async def similarity_stats(user: CurrentUser = Depends(get_current_user)) -> Dict[str, Any]:
    return get_similarity_service().get_stats()


@router.post("/compute-similarities", summary="Recompute problem similarities")
async def compute_similarities(
    body: ComputeSimilaritiesRequest,
    admin: CurrentUser = Depends(admin_access)
) -> Dict[str, Any]:
    return get_similarity_service().compute(
        problem_id=body.problem_id,
        threshold=body.threshold,
        recompute_all=body.recompute_all,
    )


# ============================================================
# One problem
# ============================================================

@router.get("/{problem_id}", summary="Problem with evidence, attempts and tags")
async def get_problem(problem_id: str, admin: CurrentUser = Depends(superadmin_only)) -> Dict[str, Any]:
    return get_problem_bank_service().get(problem_id)


@router.patch("/{problem_id}", summary="Update a problem")
async def update_problem(
    problem_id: str,
    body: ProblemUpdate,
    admin: CurrentUser = Depends(superadmin_only)
) -> Dict[str, Any]:
    problem = get_problem_bank_service().update(problem_id, body.model_dump(exclude_none=True))
    return {"problem": problem}


@router.delete("/{problem_id}", summary="Delete a problem")
async def delete_problem(problem_id: str, admin: CurrentUser = Depends(superadmin_only)) -> Dict[str, bool]:
    get_problem_bank_service().delete(problem_id)
    return {"success": True}


@router.get("/{problem_id}/similar", summary="Problems similar to this one")
async def similar_problems(problem_id: str, user: CurrentUser = Depends(get_current_user)) -> Dict[str, Any]:
    return get_similarity_service().find_similar(problem_id)


# ============================================================
# Attempts
# ============================================================

@router.get("/{problem_id}/attempts", summary="Attempts on a problem")
async def list_attempts(problem_id: str, user: CurrentUser = Depends(get_current_user)) -> List[Dict[str, Any]]:
    return get_problem_bank_service().list_attempts(problem_id)


@router.post("/{problem_id}/attempts", status_code=201, summary="Start an attempt")
async def start_attempt(
    problem_id: str,
    body: AttemptCreate,
    user: CurrentUser = Depends(get_effective_user)
) -> Dict[str, Any]:
    attempt_id = get_problem_bank_service().start_attempt(
        user, problem_id, team_name=body.team_name, cycle_id=body.cycle_id
    )
    return {"success": True, "attempt_id": attempt_id, "message": "Attempt started successfully"}


# ============================================================
# Outcomes, refinements and scores
# ============================================================

@router.get("/{problem_id}/outcomes", summary="Recorded outcomes")
async def list_outcomes(problem_id: str, user: CurrentUser = Depends(get_current_user)) -> List[Dict[str, Any]]:
    return get_learning_service().list_outcomes(problem_id)


@router.post("/{problem_id}/outcomes", status_code=201, summary="Record an outcome")
async def record_outcome(
    problem_id: str,
    body: OutcomeCreate,
    admin: CurrentUser = Depends(superadmin_only)
) -> Dict[str, Any]:
    return get_learning_service().record_outcome(admin, problem_id, body.model_dump())


@router.get("/{problem_id}/refinements", summary="Suggested refinements")
async def list_refinements(problem_id: str, user: CurrentUser = Depends(get_current_user)) -> List[Dict[str, Any]]:
    return get_learning_service().list_refinements(problem_id)


@router.post("/{problem_id}/refinements", status_code=201, summary="Suggest a refinement")
async def create_refinement(
    problem_id: str,
    body: RefinementCreate,
    admin: CurrentUser = Depends(superadmin_only)
) -> Dict[str, Any]:
    refinement = get_learning_service().create_refinement(
        problem_id, refinement_type=body.refinement_type, based_on=body.based_on
    )
    return {"refinement": refinement}


@router.patch("/{problem_id}/refinements/{refinement_id}", summary="Accept, reject or modify a refinement")
async def respond_to_refinement(
    problem_id: str,
    refinement_id: str,
    body: RefinementAction,
    admin: CurrentUser = Depends(superadmin_only)
) -> Dict[str, Any]:
    return get_learning_service().respond_to_refinement(
        admin, problem_id, refinement_id, body.action, modified_statement=body.modified_statement
    )


@router.delete("/{problem_id}/refinements/{refinement_id}", summary="Delete a refinement")
async def delete_refinement(
    problem_id: str,
    refinement_id: str,
    admin: CurrentUser = Depends(superadmin_only)
) -> Dict[str, bool]:
    get_learning_service().delete_refinement(problem_id, refinement_id)
    return {"success": True}


@router.get("/{problem_id}/score", summary="Scores for a problem")
async def list_scores(problem_id: str, user: CurrentUser = Depends(get_current_user)) -> Dict[str, Any]:
    return get_learning_service().list_scores(problem_id)


@router.post("/{problem_id}/score", summary="Score a problem")
async def upsert_score(
    problem_id: str,
    body: ScoreCreate,
    admin: CurrentUser = Depends(admin_access)
) -> Dict[str, Any]:
    score = get_learning_service().upsert_score(admin, problem_id, body.model_dump())
    return {"success": True, "score": score}
