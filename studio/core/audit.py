"""
Transport-level request auditing and response hardening.

One log line per API call: method, path, status, latency, caller IP
(first x-forwarded-for hop behind a proxy) and how the caller
authenticated. Admin actions get their own admin_activity_logs rows
from the services; nothing here touches the database.
"""
import logging
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from studio.core.logging_config import get_logger
from studio.core.security import IMPERSONATION_COOKIE, SESSION_COOKIE

logger = get_logger(__name__)

# Probes are polled every few seconds
QUIET_PATHS = frozenset({"/health", "/health/ready"})

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


def get_client_ip(request: Request) -> str:
    """Resolve the caller's IP from proxy headers, then the socket."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


def describe_auth(request: Request) -> str:
    if request.headers.get("authorization", "").lower().startswith("bearer "):
        kind = "bearer"
    elif SESSION_COOKIE in request.cookies:
        kind = "cookie"
    else:
        kind = "anonymous"
    if IMPERSONATION_COOKIE in request.cookies:
        kind += "+impersonation"
    return kind


def _level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class AuditMiddleware(BaseHTTPMiddleware):
    """Log each request and stamp X-Response-Time on the response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        path = request.url.path
        caller = f"client={get_client_ip(request)} auth={describe_auth(request)}"

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = time.perf_counter() - started
            logger.error(f"{request.method} {path} crashed after {elapsed:.3f}s {caller}: {e}")
            raise

        elapsed = time.perf_counter() - started
        response.headers["X-Response-Time"] = f"{elapsed:.3f}s"

        if path in QUIET_PATHS:
            logger.debug(f"probe {path} -> {response.status_code}")
        else:
            logger.log(
                _level_for(response.status_code),
                f"{request.method} {path} -> {response.status_code} in {elapsed:.3f}s {caller}"
            )
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Stamp SECURITY_HEADERS on every response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        return response
