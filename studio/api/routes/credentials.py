"""
Credential Routes - Bring-your-own-subscription (BYOS) provider keys.

Credentials always belong to the real signed-in user; an impersonating
admin never sees or replaces the target's keys.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from studio.api.deps import get_current_user
from studio.models.byos import CredentialCreate
from studio.models.common import ErrorResponse
from studio.services.auth_service import CurrentUser
from studio.services.credential_service import get_credential_service

router = APIRouter(
    prefix="/api/credentials",
    tags=["Credentials"],
    responses={
        400: {"model": ErrorResponse, "description": "Invalid credentials"},
        401: {"model": ErrorResponse, "description": "Not signed in"},
        500: {"model": ErrorResponse, "description": "Encryption not configured"},
    },
)


@router.get("", summary="Connected providers")
async def list_credentials(user: CurrentUser = Depends(get_current_user)) -> Dict[str, Any]:
    return get_credential_service().list(user)


@router.post("", summary="Store provider credentials")
async def store_credentials(body: CredentialCreate, user: CurrentUser = Depends(get_current_user)) -> Dict[str, Any]:
    return get_credential_service().store(user, body.provider, body.credential_type, body.credentials)


@router.delete("", summary="Remove provider credentials")
async def delete_credentials(
    provider: Optional[str] = None,
    user: CurrentUser = Depends(get_current_user)
) -> Dict[str, Any]:
    return get_credential_service().delete(user, provider)
