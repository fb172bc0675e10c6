"""
Auth Routes - Sign-in, sign-out and the current user.

Google sign-in and the Gemini consent flow both end in a browser
redirect, so their callbacks answer with 302s instead of JSON errors.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, RedirectResponse

from studio.api.deps import (
    clear_auth_cookies,
    get_current_user,
    get_effective_user,
    get_optional_user,
    set_session_cookie,
)
from studio.core.exceptions import ForbiddenError, StudioException
from studio.core.logging_config import get_logger
from studio.models.auth import LoginRequest
from studio.models.common import ErrorResponse
from studio.services.auth_service import CurrentUser, get_auth_service
from studio.services.credential_service import get_credential_service

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/auth",
    tags=["Auth"],
    responses={
        401: {"model": ErrorResponse, "description": "Not signed in"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
)


@router.get("/login", summary="Start Google sign-in")
async def login_url(next: Optional[str] = None) -> Dict[str, str]:
    return {"authUrl": get_auth_service().build_login_url(next)}


@router.post("/login", summary="Sign in with email and password")
async def password_login(request: LoginRequest) -> JSONResponse:
    result = get_auth_service().password_login(request.email, request.password)
    response = JSONResponse({"user": result.user.to_dict(), "token": result.token})
    set_session_cookie(response, result.token)
    return response


@router.get("/callback", include_in_schema=False)
async def google_callback(code: Optional[str] = None, state: Optional[str] = None) -> RedirectResponse:
    """Finish Google sign-in; every failure lands back on /login."""
    try:
        result = get_auth_service().complete_google_sign_in(code, state)
    except ForbiddenError:
        return RedirectResponse("/login?error=domain_not_allowed", status_code=302)
    except StudioException as e:
        logger.warning(f"Google sign-in failed: {e.message}")
        return RedirectResponse("/login?error=auth_callback_error", status_code=302)

    response = RedirectResponse(result.redirect_to, status_code=302)
    set_session_cookie(response, result.token)
    return response


@router.post("/logout", summary="Sign out")
async def logout() -> JSONResponse:
    response = JSONResponse({"success": True})
    clear_auth_cookies(response)
    return response


@router.get("/me", summary="Current user")
async def me(
    real_user: CurrentUser = Depends(get_current_user),
    user: CurrentUser = Depends(get_effective_user)
) -> Dict[str, Any]:
    profile = get_auth_service().get_profile(user.id)
    return {
        "user": profile,
        "realUser": real_user.to_dict(),
        "isImpersonating": user.id != real_user.id,
    }


# ============================================================
# Gemini consent flow
# ============================================================

@router.get("/gemini", summary="Start the Gemini OAuth consent flow")
async def gemini_auth_url(user: CurrentUser = Depends(get_current_user)) -> Dict[str, str]:
    return {"authUrl": get_credential_service().build_gemini_auth_url(user)}


@router.get("/gemini/callback", include_in_schema=False)
async def gemini_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    user: Optional[CurrentUser] = Depends(get_optional_user)
) -> RedirectResponse:
    try:
        target = get_credential_service().complete_gemini_oauth(user, code, state, error)
    except Exception as e:
        logger.exception(f"Gemini OAuth callback failed: {e}")
        target = "/settings?gemini_error=internal"
    return RedirectResponse(target, status_code=302)
