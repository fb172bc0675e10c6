"""
Event Routes - Appathons and other time-boxed events.

Static paths (join, leave, by-slug) are declared before `/{event_id}`
so they are never captured as an id.
"""
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Request

from studio.api.deps import client_ip, get_current_user, get_effective_user, require_superadmin
from studio.models.common import ErrorResponse
from studio.models.organization import EventAdminCreate, EventCreate, EventUpdate, JoinEventRequest
from studio.services.auth_service import CurrentUser
from studio.services.event_service import get_event_service

router = APIRouter(
    prefix="/api/events",
    tags=["Events"],
    responses={
        401: {"model": ErrorResponse, "description": "Not signed in"},
        404: {"model": ErrorResponse, "description": "Event not found"},
    },
)

superadmin = require_superadmin("Unauthorized")


@router.get("", summary="Active events")
async def list_events() -> List[Dict[str, Any]]:
    return get_event_service().list_active()


@router.post("", status_code=201, summary="Create an event")
async def create_event(
    body: EventCreate,
    request: Request,
    admin: CurrentUser = Depends(superadmin)
) -> Dict[str, Any]:
    event = get_event_service().create(admin, body.model_dump(), ip_address=client_ip(request))
    return {"event": event}


@router.post("/join", summary="Join an event")
async def join_event(body: JoinEventRequest, user: CurrentUser = Depends(get_effective_user)) -> Dict[str, Any]:
    return get_event_service().join(user, body.event_id)


@router.post("/leave", summary="Leave the current event")
async def leave_event(user: CurrentUser = Depends(get_effective_user)) -> Dict[str, Any]:
    return get_event_service().leave(user)


@router.get("/by-slug/{slug}", summary="Event admin dashboard data")
async def get_event_by_slug(slug: str, user: CurrentUser = Depends(get_current_user)) -> Dict[str, Any]:
    return get_event_service().get_by_slug(user, slug)


@router.get("/{event_id}", summary="Get an event")
async def get_event(event_id: str) -> Dict[str, Any]:
    return {"event": get_event_service().get(event_id)}


@router.patch("/{event_id}", summary="Update an event")
async def update_event(
    event_id: str,
    body: EventUpdate,
    request: Request,
    admin: CurrentUser = Depends(superadmin)
) -> Dict[str, Any]:
    event = get_event_service().update(
        admin, event_id, body.model_dump(exclude_none=True), ip_address=client_ip(request)
    )
    return {"event": event}


@router.delete("/{event_id}", summary="Delete an event")
async def delete_event(
    event_id: str,
    request: Request,
    admin: CurrentUser = Depends(superadmin)
) -> Dict[str, Any]:
    return get_event_service().delete(admin, event_id, ip_address=client_ip(request))


# ============================================================
# Event admins
# ============================================================

@router.get("/{event_id}/admins", summary="Admins of an event")
async def list_event_admins(event_id: str, user: CurrentUser = Depends(get_current_user)) -> Dict[str, Any]:
    return {"admins": get_event_service().list_admins(user, event_id)}


@router.post("/{event_id}/admins", status_code=201, summary="Add an event admin")
async def add_event_admin(
    event_id: str,
    body: EventAdminCreate,
    request: Request,
    user: CurrentUser = Depends(get_current_user)
) -> Dict[str, Any]:
    admin = get_event_service().add_admin(user, event_id, body.email, role=body.role, ip_address=client_ip(request))
    return {"admin": admin}


@router.delete("/{event_id}/admins/{admin_id}", summary="Remove an event admin")
async def remove_event_admin(
    event_id: str,
    admin_id: str,
    request: Request,
    user: CurrentUser = Depends(get_current_user)
) -> Dict[str, Any]:
    return get_event_service().remove_admin(user, event_id, admin_id, ip_address=client_ip(request))
