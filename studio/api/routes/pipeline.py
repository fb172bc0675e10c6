"""
Pipeline Routes - The incubation pipeline for promising problems.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from studio.api.deps import require_superadmin
from studio.models.common import ErrorResponse
from studio.models.problems import PipelineCreate, PipelineUpdate
from studio.services.auth_service import CurrentUser
from studio.services.pipeline_service import get_pipeline_service

router = APIRouter(
    prefix="/api/pipeline",
    tags=["Pipeline"],
    responses={
        401: {"model": ErrorResponse, "description": "Not signed in"},
        403: {"model": ErrorResponse, "description": "Admin access required"},
        404: {"model": ErrorResponse, "description": "Candidate not found"},
    },
)

admin_access = require_superadmin("Admin access required")


@router.get("", summary="Pipeline candidates")
async def list_candidates(
    stage: Optional[str] = None,
    include_stats: bool = False,
    admin: CurrentUser = Depends(admin_access)
) -> Dict[str, Any]:
    return get_pipeline_service().list(stage=stage, include_stats=include_stats)


@router.post("", status_code=201, summary="Add a problem to the pipeline")
async def add_candidate(body: PipelineCreate, admin: CurrentUser = Depends(admin_access)) -> Dict[str, Any]:
    return get_pipeline_service().add(admin, body.problem_id, notes=body.notes)


@router.get("/{candidate_id}", summary="Candidate with stage history")
async def get_candidate(candidate_id: str, admin: CurrentUser = Depends(admin_access)) -> Dict[str, Any]:
    return get_pipeline_service().get(candidate_id)


@router.patch("/{candidate_id}", summary="Move or update a candidate")
async def update_candidate(
    candidate_id: str,
    body: PipelineUpdate,
    admin: CurrentUser = Depends(admin_access)
) -> Dict[str, Any]:
    return get_pipeline_service().update(admin, candidate_id, body.model_dump(exclude_none=True))


@router.delete("/{candidate_id}", summary="Remove a candidate")
async def remove_candidate(candidate_id: str, admin: CurrentUser = Depends(admin_access)) -> Dict[str, Any]:
    return get_pipeline_service().remove(candidate_id)
