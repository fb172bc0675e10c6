"""
Impersonation Service - Superadmins viewing the studio as another user.

The session lives entirely in a signed cookie (see core.security). The
database only records when a session starts and ends, both in
impersonation_logs and in the admin activity log.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from studio.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from studio.core.logging_config import LoggerMixin
from studio.core.security import IMPERSONATION_MAX_HOURS, TokenExpired, TokenInvalid, TokenSigner
from studio.database.connection import get_database
from studio.database.models import ImpersonationLog, User
from studio.services.activity import log_admin_activity
from studio.services.auth_service import CurrentUser

TOKEN_TYPE = "impersonation"


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class ImpersonationService(LoggerMixin):
    """
    Start, end and inspect impersonation sessions.

    Example:
        >>> service = ImpersonationService()
        >>> body, cookie = service.start(admin, target_id, reason="Support ticket")
        >>> service.resolve_effective_user(admin, cookie).id == target_id
        True
    """

    def __init__(self):
        self.signer = TokenSigner()

    def start(
        self,
        admin: CurrentUser,
        target_user_id: Optional[str],
        reason: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Tuple[Dict[str, Any], str]:
        """
        Begin impersonating a user.

        Returns:
            Tuple of (response body, signed cookie value)
        """
        if not admin.is_superadmin:
            raise ForbiddenError("Forbidden: Superadmin only")
        if not target_user_id:
            raise ValidationError("Target user ID required", field="targetUserId")

        started_at = datetime.now(timezone.utc)
        expires_at = started_at + timedelta(hours=IMPERSONATION_MAX_HOURS)

        with get_database().get_session() as session:
            target = session.get(User, target_user_id)
            if target is None:
                raise NotFoundError("Target user not found")
            if target.role == "superadmin":
                raise ForbiddenError("Cannot impersonate other superadmins")

            session.add(ImpersonationLog(
                admin_id=admin.id,
                target_user_id=target.id,
                action="start",
                reason=reason or None,
                ip_address=ip_address,
                user_agent=user_agent,
            ))
            log_admin_activity(
                session,
                admin.id,
                "impersonation_started",
                "user",
                target.id,
                {"target_email": target.email, "target_name": target.name, "reason": reason},
                ip_address,
            )
            target_info = {"id": target.id, "email": target.email, "name": target.name}

        claims = {
            "adminId": admin.id,
            "adminEmail": admin.email,
            "adminName": admin.name,
            "targetUserId": target_info["id"],
            "targetEmail": target_info["email"],
            "targetName": target_info["name"],
            "startedAt": _iso(started_at),
            "expiresAt": _iso(expires_at),
        }
        cookie = self.signer.sign(
            claims,
            token_type=TOKEN_TYPE,
            expires_in=timedelta(hours=IMPERSONATION_MAX_HOURS),
            issued_at=started_at,
        )
        self.logger.info(f"Impersonation started: admin={admin.id} target={target_info['id']}")

        body = {
            "success": True,
            "message": f"Now impersonating {target_info['name'] or target_info['email']}",
            "session": {"targetUser": target_info, "expiresAt": claims["expiresAt"]},
        }
        return body, cookie

    def read_cookie(self, cookie: Optional[str], allow_expired: bool = False) -> Optional[Dict[str, Any]]:
        """
        Claims of a verified cookie, or None.

        Raises:
            TokenExpired: The cookie is genuine but past its four hours
        """
        if not cookie:
            return None
        try:
            return self.signer.verify(cookie, token_type=TOKEN_TYPE, allow_expired=allow_expired)
        except TokenInvalid as e:
            self.logger.warning(f"Ignoring tampered impersonation cookie: {e}")
            return None

    def end(
        self,
        admin: CurrentUser,
        cookie: Optional[str],
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Dict[str, Any]:
        claims = self.read_cookie(cookie, allow_expired=True)
        if claims is None:
            raise ValidationError("No active impersonation session")

        started = datetime.fromisoformat(claims["startedAt"].replace("Z", "+00:00"))
        duration_minutes = round((datetime.now(timezone.utc) - started).total_seconds() / 60)

        with get_database().get_session() as session:
            session.add(ImpersonationLog(
                admin_id=claims.get("adminId"),
                target_user_id=claims.get("targetUserId"),
                action="end",
                reason="Session ended by admin",
                ip_address=ip_address,
                user_agent=user_agent,
            ))
            log_admin_activity(
                session,
                claims.get("adminId"),
                "impersonation_ended",
                "user",
                claims.get("targetUserId"),
                {"target_email": claims.get("targetEmail"), "duration_minutes": duration_minutes},
                ip_address,
            )

        self.logger.info(f"Impersonation ended by {admin.id} after {duration_minutes} minutes")
        return {"success": True, "message": "Impersonation session ended"}

    def status(self, cookie: Optional[str]) -> Dict[str, Any]:
        """Body of GET /api/admin/impersonate."""
        try:
            claims = self.read_cookie(cookie)
        except TokenExpired:
            return {"isImpersonating": False, "expired": True}

        if claims is None:
            return {"isImpersonating": False}

        return {
            "isImpersonating": True,
            "admin": {"id": claims["adminId"], "email": claims["adminEmail"], "name": claims["adminName"]},
            "targetUser": {
                "id": claims["targetUserId"],
                "email": claims["targetEmail"],
                "name": claims["targetName"],
            },
            "startedAt": claims["startedAt"],
            "expiresAt": claims["expiresAt"],
        }

    def resolve_effective_user(self, real_user: CurrentUser, cookie: Optional[str]) -> CurrentUser:
        """
        The user learner-facing endpoints act as.

        Falls back to the real user unless the cookie verifies, has not
        expired and was issued to this very admin.
        """
        try:
            claims = self.read_cookie(cookie)
        except TokenExpired:
            return real_user

        if not claims or claims.get("adminId") != real_user.id or not real_user.is_superadmin:
            return real_user

        with get_database().get_session() as session:
            target = session.get(User, claims.get("targetUserId"))
            if target is None:
                return real_user
            return CurrentUser.from_model(target)


# Global service instance
_impersonation_service: Optional[ImpersonationService] = None


def get_impersonation_service() -> ImpersonationService:
    """Get or create the global impersonation service."""
    global _impersonation_service
    if _impersonation_service is None:
        _impersonation_service = ImpersonationService()
    return _impersonation_service
