"""
Admin Routes - The superadmin back-office.

Covers:
1. User management and CSV export
2. The admin activity log
3. Cycle review, notes and the review queue
4. Impersonation sessions

Every mutating call passes the caller's IP through so the services can
record it in admin_activity_logs.
"""
from datetime import date, datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse

from studio.api.deps import (
    clear_auth_cookies,
    client_ip,
    get_current_user,
    get_optional_user,
    require_superadmin,
    set_impersonation_cookie,
    user_agent,
)
from studio.core.exceptions import AuthenticationError, ForbiddenError, ValidationError
from studio.core.logging_config import get_logger
from studio.core.security import IMPERSONATION_COOKIE
from studio.models.auth import (
    CreateUserRequest,
    CycleNoteRequest,
    CycleReviewRequest,
    ImpersonateRequest,
    UpdateUserRequest,
)
from studio.models.common import ErrorResponse
from studio.services.admin_service import get_admin_service
from studio.services.auth_service import CurrentUser
from studio.services.impersonation_service import get_impersonation_service

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/admin",
    tags=["Admin"],
    responses={
        401: {"model": ErrorResponse, "description": "Not signed in"},
        403: {"model": ErrorResponse, "description": "Superadmin only"},
    },
)

superadmin = require_superadmin("Unauthorized")
superadmin_only = require_superadmin("Forbidden: Superadmin only")


# ============================================================
# Users
# ============================================================

@router.get("/users", summary="List all users")
async def list_users(admin: CurrentUser = Depends(superadmin)) -> Dict[str, Any]:
    return {"users": get_admin_service().list_users()}


@router.post("/users", status_code=201, summary="Create a password account")
async def create_user(
    body: CreateUserRequest,
    request: Request,
    admin: CurrentUser = Depends(superadmin)
) -> Dict[str, Any]:
    user = get_admin_service().create_user(
        admin,
        email=body.email,
        password=body.password,
        name=body.name,
        role=body.role,
        ip_address=client_ip(request),
    )
    return {"user": user}


@router.get("/users/export", summary="Export users as CSV")
async def export_users(
    request: Request,
    role: Optional[str] = None,
    admin: CurrentUser = Depends(superadmin_only)
) -> Response:
    csv_text, count = get_admin_service().export_users(admin, role=role or None, ip_address=client_ip(request))
    filename = f"flywheel-users-{date.today().isoformat()}.csv"
    logger.info(f"Exported {count} users for {admin.email}")
    return Response(
        content=csv_text,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/users/{user_id}", summary="Get one user")
async def get_user(user_id: str, admin: CurrentUser = Depends(superadmin)) -> Dict[str, Any]:
    return {"user": get_admin_service().get_user(user_id)}


@router.put("/users/{user_id}", summary="Update a user's name or role")
async def update_user(
    user_id: str,
    body: UpdateUserRequest,
    request: Request,
    admin: CurrentUser = Depends(superadmin)
) -> Dict[str, Any]:
    user = get_admin_service().update_user(
        admin, user_id, name=body.name, role=body.role, ip_address=client_ip(request)
    )
    return {"user": user}


@router.delete("/users/{user_id}", summary="Delete a user and their cycles")
async def delete_user(user_id: str, request: Request, admin: CurrentUser = Depends(superadmin)) -> Dict[str, bool]:
    get_admin_service().delete_user(admin, user_id, ip_address=client_ip(request))
    return {"success": True}


# ============================================================
# Activity log
# ============================================================

@router.get("/activity", summary="Admin activity log")
async def list_activity(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=500),
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    admin_id: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    admin: CurrentUser = Depends(superadmin_only)
) -> Dict[str, Any]:
    return get_admin_service().list_activity(
        page=page,
        limit=limit,
        action=action,
        entity_type=entity_type,
        admin_id=admin_id,
        start_date=start_date,
        end_date=end_date,
    )


# ============================================================
# Cycle review
# ============================================================

@router.get("/cycles", summary="Cycles awaiting review")
async def list_cycles(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=200),
    status: Optional[str] = None,
    event_id: Optional[str] = None,
    search: Optional[str] = None,
    admin: CurrentUser = Depends(superadmin_only)
) -> Dict[str, Any]:
    return get_admin_service().list_cycles(page=page, limit=limit, status=status, event_id=event_id, search=search)


@router.get("/cycles/{cycle_id}/notes", summary="Notes on a cycle")
async def list_notes(cycle_id: str, admin: CurrentUser = Depends(superadmin_only)) -> Dict[str, Any]:
    return {"notes": get_admin_service().list_notes(cycle_id)}


@router.post("/cycles/{cycle_id}/notes", status_code=201, summary="Add a note to a cycle")
async def add_note(
    cycle_id: str,
    body: CycleNoteRequest,
    request: Request,
    admin: CurrentUser = Depends(superadmin_only)
) -> Dict[str, Any]:
    note = get_admin_service().add_note(admin, cycle_id, body.content, ip_address=client_ip(request))
    return {"note": note}


@router.delete("/cycles/{cycle_id}/notes", summary="Delete a note")
async def delete_note(
    cycle_id: str,
    request: Request,
    note_id: Optional[str] = Query(default=None, alias="noteId"),
    user: Optional[CurrentUser] = Depends(get_optional_user)
) -> Dict[str, bool]:
    if not note_id:
        raise ValidationError("Note ID is required", field="noteId")
    if user is None:
        raise AuthenticationError("Unauthorized")
    if not user.is_superadmin:
        raise ForbiddenError("Forbidden: Superadmin only")

    get_admin_service().delete_note(user, cycle_id, note_id, ip_address=client_ip(request))
    return {"success": True}


@router.get("/cycles/{cycle_id}/review", summary="Review status of a cycle")
async def get_review(cycle_id: str, admin: CurrentUser = Depends(superadmin_only)) -> Dict[str, Any]:
    return {"review": get_admin_service().get_review(cycle_id)}


@router.put("/cycles/{cycle_id}/review", summary="Create or update a cycle review")
async def upsert_review(
    cycle_id: str,
    body: CycleReviewRequest,
    request: Request,
    admin: CurrentUser = Depends(superadmin_only)
) -> JSONResponse:
    review, created = get_admin_service().upsert_review(
        admin, cycle_id, body.status, notes=body.notes, ip_address=client_ip(request)
    )
    return JSONResponse({"review": review}, status_code=201 if created else 200)


# ============================================================
# Impersonation
# ============================================================

@router.post("/impersonate", summary="Start impersonating a user")
async def start_impersonation(
    body: ImpersonateRequest,
    request: Request,
    admin: CurrentUser = Depends(get_current_user)
) -> JSONResponse:
    result, cookie = get_impersonation_service().start(
        admin,
        body.target_user_id,
        reason=body.reason,
        ip_address=client_ip(request),
        user_agent=user_agent(request),
    )
    response = JSONResponse(result)
    set_impersonation_cookie(response, cookie)
    return response


@router.delete("/impersonate", summary="End the impersonation session")
async def end_impersonation(
    request: Request,
    user: Optional[CurrentUser] = Depends(get_optional_user)
) -> JSONResponse:
    cookie = request.cookies.get(IMPERSONATION_COOKIE)
    if not cookie:
        raise ValidationError("No active impersonation session")
    if user is None:
        raise AuthenticationError("Unauthorized")

    result = get_impersonation_service().end(
        user, cookie, ip_address=client_ip(request), user_agent=user_agent(request)
    )
    response = JSONResponse(result)
    clear_auth_cookies(response, impersonation_only=True)
    return response


@router.get("/impersonate", summary="Impersonation status")
async def impersonation_status(request: Request) -> JSONResponse:
    status = get_impersonation_service().status(request.cookies.get(IMPERSONATION_COOKIE))
    response = JSONResponse(status)
    if status.get("expired"):
        clear_auth_cookies(response, impersonation_only=True)
    return response
