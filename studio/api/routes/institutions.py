"""
Institution Routes - Institutions, membership and change requests.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request

from studio.api.deps import client_ip, get_effective_user, require_admin_role, require_superadmin
from studio.models.common import ErrorResponse
from studio.models.organization import (
    ChangeRequestAction,
    ChangeRequestCreate,
    InstitutionCreate,
    InstitutionUpdate,
    SetInstitutionRequest,
)
from studio.services.auth_service import CurrentUser
from studio.services.institution_service import get_institution_service

router = APIRouter(
    prefix="/api",
    tags=["Institutions"],
    responses={
        401: {"model": ErrorResponse, "description": "Not signed in"},
        404: {"model": ErrorResponse, "description": "Institution not found"},
    },
)

superadmin = require_superadmin("Unauthorized")
institution_admin = require_admin_role("Unauthorized")


@router.get("/institutions", summary="Active institutions")
async def list_institutions() -> List[Dict[str, Any]]:
    return get_institution_service().list_active()


@router.post("/institutions", status_code=201, summary="Create an institution")
async def create_institution(
    body: InstitutionCreate,
    request: Request,
    admin: CurrentUser = Depends(superadmin)
) -> Dict[str, Any]:
    return get_institution_service().create(admin, body.model_dump(), ip_address=client_ip(request))


@router.get("/institutions/{institution_id}", summary="Get an institution")
async def get_institution(institution_id: str) -> Dict[str, Any]:
    return get_institution_service().get(institution_id)


@router.patch("/institutions/{institution_id}", summary="Update an institution")
async def update_institution(
    institution_id: str,
    body: InstitutionUpdate,
    request: Request,
    admin: CurrentUser = Depends(superadmin)
) -> Dict[str, Any]:
    return get_institution_service().update(
        admin, institution_id, body.model_dump(exclude_none=True), ip_address=client_ip(request)
    )


@router.delete("/institutions/{institution_id}", summary="Deactivate an institution")
async def delete_institution(
    institution_id: str,
    request: Request,
    admin: CurrentUser = Depends(superadmin)
) -> Dict[str, Any]:
    institution = get_institution_service().soft_delete(admin, institution_id, ip_address=client_ip(request))
    return {"success": True, "institution": institution}


# ============================================================
# The caller's own institution
# ============================================================

@router.get("/user/institution", summary="The caller's institution")
async def get_user_institution(user: CurrentUser = Depends(get_effective_user)) -> Dict[str, Any]:
    return get_institution_service().get_user_institution(user)


@router.post("/user/institution", summary="Pick an institution (first time only)")
async def set_user_institution(
    body: SetInstitutionRequest,
    user: CurrentUser = Depends(get_effective_user)
) -> Dict[str, Any]:
    return get_institution_service().set_user_institution(user, body.institution_id)


# ============================================================
# Change requests
# ============================================================

@router.get("/institution-change-requests", summary="Pending change requests")
async def list_change_requests(admin: CurrentUser = Depends(institution_admin)) -> List[Dict[str, Any]]:
    return get_institution_service().list_pending_requests(admin)


@router.post("/institution-change-requests", status_code=201, summary="Ask to move institution")
async def create_change_request(
    body: ChangeRequestCreate,
    user: CurrentUser = Depends(get_effective_user)
) -> Dict[str, Any]:
    return get_institution_service().create_request(user, body.to_institution_id, reason=body.reason)


@router.patch("/institution-change-requests", summary="Approve or reject a change request")
async def review_change_request(
    body: ChangeRequestAction,
    request: Request,
    admin: CurrentUser = Depends(institution_admin)
) -> Dict[str, Any]:
    return get_institution_service().review_request(
        admin, body.request_id, body.action, ip_address=client_ip(request)
    )


@router.get("/institution-change-requests/my-request", summary="The caller's pending request")
async def my_change_request(user: CurrentUser = Depends(get_effective_user)) -> Optional[Dict[str, Any]]:
    return get_institution_service().get_my_request(user)
