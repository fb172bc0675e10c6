"""
Case Study Routes - Published write-ups of solved problems.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from studio.api.deps import get_current_user, require_superadmin
from studio.models.common import ErrorResponse
from studio.models.problems import CaseStudyCreate, CaseStudyUpdate
from studio.services.auth_service import CurrentUser
from studio.services.case_study_service import get_case_study_service

router = APIRouter(
    prefix="/api/case-studies",
    tags=["Case Studies"],
    responses={
        401: {"model": ErrorResponse, "description": "Not signed in"},
        404: {"model": ErrorResponse, "description": "Case study not found"},
    },
)

superadmin_only = require_superadmin("Forbidden - superadmin only")


@router.get("", summary="List case studies")
async def list_case_studies(
    status: Optional[str] = None,
    theme: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    published: bool = False,
    user: CurrentUser = Depends(get_current_user)
) -> Dict[str, Any]:
    return get_case_study_service().list(
        user, status=status, theme=theme, limit=limit, offset=offset, published_only=published
    )


@router.post("", status_code=201, summary="Draft a case study")
async def create_case_study(body: CaseStudyCreate, admin: CurrentUser = Depends(superadmin_only)) -> Dict[str, Any]:
    return get_case_study_service().create(admin, body.model_dump())


@router.get("/{case_study_id}", summary="Read a case study")
async def get_case_study(case_study_id: str, user: CurrentUser = Depends(get_current_user)) -> Dict[str, Any]:
    return get_case_study_service().get(user, case_study_id)


@router.patch("/{case_study_id}", summary="Edit or publish a case study")
async def update_case_study(
    case_study_id: str,
    body: CaseStudyUpdate,
    admin: CurrentUser = Depends(superadmin_only)
) -> Dict[str, Any]:
    return get_case_study_service().update(case_study_id, body.model_dump(exclude_none=True))


@router.delete("/{case_study_id}", summary="Delete a case study")
async def delete_case_study(case_study_id: str, admin: CurrentUser = Depends(superadmin_only)) -> Dict[str, bool]:
    get_case_study_service().delete(case_study_id)
    return {"success": True}
