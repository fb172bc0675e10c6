"""
Cycle Routes - A learner's journey through the flywheel.

All endpoints act as the effective user, so an impersonating admin sees
and edits the target learner's cycles.
"""
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Path, Response

from studio.api.deps import get_effective_user
from studio.models.common import ErrorResponse
from studio.models.cycles import CycleCreate, CycleUpdate, StepUpdate
from studio.services.auth_service import CurrentUser
from studio.services.cycle_service import get_cycle_service

router = APIRouter(
    prefix="/api/cycles",
    tags=["Cycles"],
    responses={
        401: {"model": ErrorResponse, "description": "Not signed in"},
        404: {"model": ErrorResponse, "description": "Cycle not found"},
    },
)


@router.get("", summary="The caller's cycles")
async def list_cycles(user: CurrentUser = Depends(get_effective_user)) -> List[Dict[str, Any]]:
    return get_cycle_service().list_for_user(user)


@router.post("", status_code=201, summary="Start a new cycle")
async def create_cycle(body: CycleCreate, user: CurrentUser = Depends(get_effective_user)) -> Dict[str, Any]:
    return get_cycle_service().create(user, body.name)


@router.get("/{cycle_id}", summary="A cycle with all step data")
async def get_cycle(cycle_id: str, user: CurrentUser = Depends(get_effective_user)) -> Dict[str, Any]:
    return get_cycle_service().get(user, cycle_id)


@router.patch("/{cycle_id}", summary="Rename a cycle or change its status")
async def update_cycle(
    cycle_id: str,
    body: CycleUpdate,
    user: CurrentUser = Depends(get_effective_user)
) -> Dict[str, Any]:
    return get_cycle_service().update(user, cycle_id, name=body.name, status=body.status)


@router.delete("/{cycle_id}", status_code=204, summary="Delete a cycle")
async def delete_cycle(cycle_id: str, user: CurrentUser = Depends(get_effective_user)) -> Response:
    get_cycle_service().delete(user, cycle_id)
    return Response(status_code=204)


@router.put("/{cycle_id}/steps/{step}", summary="Save (and optionally complete) a step")
async def save_step(
    cycle_id: str,
    body: StepUpdate,
    step: int = Path(..., ge=1),
    user: CurrentUser = Depends(get_effective_user)
) -> Dict[str, Any]:
    interviews = [i.model_dump() for i in body.interviews] if body.interviews is not None else None
    return get_cycle_service().save_step(
        user, cycle_id, step, body.data, complete=body.complete, interviews=interviews
    )


@router.post("/{cycle_id}/lovable-prompt", summary="Render the Lovable prompt for a cycle")
async def build_lovable_prompt(cycle_id: str, user: CurrentUser = Depends(get_effective_user)) -> Dict[str, Any]:
    return get_cycle_service().build_lovable_prompt(user, cycle_id)
