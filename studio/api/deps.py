"""
Request dependencies - who is calling and what they may do.

Routes declare their access level with FastAPI `Depends`:
- get_current_user      : any signed-in user (401 otherwise)
- get_effective_user    : same, but honours an admin's impersonation cookie
- require_superadmin    : 403 with the message the endpoint documents
- require_admin_role    : superadmin or institution_admin

Admin endpoints always see the real user; only learner-facing endpoints
use the effective (possibly impersonated) one.
"""
from datetime import timedelta
from typing import Callable, Optional

from fastapi import Depends, Request, Response

from studio.core.audit import get_client_ip
from studio.core.config import get_settings
from studio.core.exceptions import AuthenticationError, ForbiddenError
from studio.core.security import (
    IMPERSONATION_COOKIE,
    IMPERSONATION_MAX_HOURS,
    SESSION_COOKIE,
    decode_session_token,
)
from studio.services.auth_service import CurrentUser, get_auth_service
from studio.services.impersonation_service import get_impersonation_service


def _session_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return request.cookies.get(SESSION_COOKIE)


def get_optional_user(request: Request) -> Optional[CurrentUser]:
    """The signed-in user, or None for anonymous callers."""
    token = _session_token(request)
    if not token:
        return None
    return get_auth_service().get_user(decode_session_token(token))


def get_current_user(user: Optional[CurrentUser] = Depends(get_optional_user)) -> CurrentUser:
    if user is None:
        raise AuthenticationError("Unauthorized")
    return user


def get_effective_user(request: Request, user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    return get_impersonation_service().resolve_effective_user(
        user, request.cookies.get(IMPERSONATION_COOKIE)
    )


def require_superadmin(message: str = "Unauthorized") -> Callable[..., CurrentUser]:
    """Dependency factory: 401 when anonymous, 403 `message` unless superadmin."""

    def dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not user.is_superadmin:
            raise ForbiddenError(message)
        return user

    return dependency


def require_admin_role(message: str = "Admin access required") -> Callable[..., CurrentUser]:
    def dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not (user.is_superadmin or user.is_institution_admin):
            raise ForbiddenError(message)
        return user

    return dependency


def client_ip(request: Request) -> str:
    return get_client_ip(request)


def user_agent(request: Request) -> Optional[str]:
    return request.headers.get("user-agent")


# ============================================================
# Cookies
# ============================================================

def set_session_cookie(response: Response, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=int(timedelta(hours=settings.session_ttl_hours).total_seconds()),
        httponly=True,
        samesite="lax",
        secure=settings.is_production(),
        path="/",
    )


def set_impersonation_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        IMPERSONATION_COOKIE,
        token,
        max_age=int(timedelta(hours=IMPERSONATION_MAX_HOURS).total_seconds()),
        httponly=True,
        samesite="lax",
        secure=get_settings().is_production(),
        path="/",
    )


def clear_auth_cookies(response: Response, impersonation_only: bool = False) -> None:
    response.delete_cookie(IMPERSONATION_COOKIE, path="/")
    if not impersonation_only:
        response.delete_cookie(SESSION_COOKIE, path="/")
