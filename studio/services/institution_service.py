"""
Institution Service - Colleges, schools and who belongs where.

A learner picks an institution once at first sign-in. After that, moving
to another institution goes through a change request that a superadmin
(or an admin of the destination institution) approves.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from studio.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from studio.core.logging_config import LoggerMixin
from studio.database.connection import get_database
from studio.database.models import Institution, InstitutionChangeRequest, User
from studio.services.activity import log_admin_activity
from studio.services.auth_service import CurrentUser

INSTITUTION_TYPES = ("college", "school", "external")

UPDATABLE_FIELDS = ("name", "short_name", "slug", "type", "is_active")


def _summary(institution: Optional[Institution]) -> Optional[Dict[str, Any]]:
    if institution is None:
        return None
    return {"id": institution.id, "name": institution.name, "short_name": institution.short_name}


class InstitutionService(LoggerMixin):
    """
    Institution CRUD plus membership and change requests.

    Example:
        >>> service = InstitutionService()
        >>> service.list_active()[0]["short_name"]
        'JKKNCET'
    """

    def list_active(self) -> List[Dict[str, Any]]:
        with get_database().get_session() as session:
            rows = (
                session.query(Institution)
                .filter(Institution.is_active.is_(True))
                .order_by(Institution.type.asc(), Institution.name.asc())
                .all()
            )
            return [row.to_dict() for row in rows]

    def get(self, institution_id: str) -> Dict[str, Any]:
        with get_database().get_session() as session:
            institution = session.get(Institution, institution_id)
            if institution is None:
                raise NotFoundError("Institution not found")
            return institution.to_dict()

    def create(
        self,
        admin: CurrentUser,
        data: Dict[str, Any],
        ip_address: Optional[str] = None
    ) -> Dict[str, Any]:
        slug, name, short_name = data.get("slug"), data.get("name"), data.get("short_name")
        if not slug or not name or not short_name:
            raise ValidationError("Missing required fields: slug, name, short_name")

        institution_type = data.get("type")
        if institution_type and institution_type not in INSTITUTION_TYPES:
            raise ValidationError("Invalid type. Must be college, school, or external", field="type")

        with get_database().get_session() as session:
            if session.query(Institution).filter(Institution.slug == slug).first() is not None:
                raise ConflictError("An institution with this slug already exists")

            institution = Institution(
                slug=slug,
                name=name,
                short_name=short_name,
                type=institution_type or "college",
                is_active=True,
            )
            session.add(institution)
            session.flush()
            log_admin_activity(
                session, admin.id, "create_institution", "institution", institution.id,
                {"slug": slug, "name": name, "short_name": short_name, "type": institution_type},
                ip_address,
            )
            return institution.to_dict()

    def update(
        self,
        admin: CurrentUser,
        institution_id: str,
        data: Dict[str, Any],
        ip_address: Optional[str] = None
    ) -> Dict[str, Any]:
        updates = {key: data[key] for key in UPDATABLE_FIELDS if data.get(key) is not None}
        if "type" in updates and updates["type"] not in INSTITUTION_TYPES:
            raise ValidationError("Invalid type. Must be college, school, or external", field="type")
        if not updates:
            raise ValidationError("No valid fields to update")

        with get_database().get_session() as session:
            institution = session.get(Institution, institution_id)
            if institution is None:
                raise NotFoundError("Institution not found")

            if "slug" in updates:
                clash = (
                    session.query(Institution)
                    .filter(Institution.slug == updates["slug"], Institution.id != institution_id)
                    .first()
                )
                if clash is not None:
                    raise ConflictError("An institution with this slug already exists")

            for key, value in updates.items():
                setattr(institution, key, value)
            try:
                session.flush()
            except IntegrityError as e:
                raise ConflictError("An institution with this slug already exists") from e

            log_admin_activity(
                session, admin.id, "update_institution", "institution", institution_id,
                updates, ip_address,
            )
            return institution.to_dict()

    def soft_delete(
        self,
        admin: CurrentUser,
        institution_id: str,
        ip_address: Optional[str] = None
    ) -> Dict[str, Any]:
        with get_database().get_session() as session:
            institution = session.get(Institution, institution_id)
            if institution is None:
                raise NotFoundError("Institution not found")

            member_count = session.query(User).filter(User.institution_id == institution_id).count()
            if member_count > 0:
                raise ValidationError(
                    f"Cannot delete institution with {member_count} users. Reassign or remove users first."
                )

            institution.is_active = False
            session.flush()
            log_admin_activity(
                session, admin.id, "delete_institution", "institution", institution_id,
                {"soft_delete": True}, ip_address,
            )
            return institution.to_dict()

    # ============================================================
    # The caller's own institution
    # ============================================================

    def get_user_institution(self, user: CurrentUser) -> Dict[str, Any]:
        with get_database().get_session() as session:
            row = session.get(User, user.id)
            institution = row.institution if row else None
            return {
                "institution_id": row.institution_id if row else None,
                "institution": institution.to_dict() if institution else None,
            }

    def set_user_institution(self, user: CurrentUser, institution_id: Optional[str]) -> Dict[str, Any]:
        if not institution_id:
            raise ValidationError("institution_id is required", field="institution_id")

        with get_database().get_session() as session:
            institution = session.get(Institution, institution_id)
            if institution is None or not institution.is_active:
                raise NotFoundError("Institution not found or inactive")

            row = session.get(User, user.id)
            if row.institution_id:
                raise ValidationError("You already have an institution. Use the change request flow to switch.")

            row.institution_id = institution.id
            self.logger.info(f"User {user.id} joined institution {institution.short_name}")
            return {"success": True, "institution": _summary(institution)}

    # ============================================================
    # Change requests
    # ============================================================

    def list_pending_requests(self, admin: CurrentUser) -> List[Dict[str, Any]]:
        """Pending requests, scoped to their own institution for institution admins."""
        with get_database().get_session() as session:
            query = session.query(InstitutionChangeRequest).filter(InstitutionChangeRequest.status == "pending")
            if admin.is_institution_admin:
                query = query.filter(InstitutionChangeRequest.to_institution_id == admin.institution_id)

            requests = query.order_by(InstitutionChangeRequest.created_at.desc()).all()
            return [
                {
                    "id": r.id,
                    "user_id": r.user_id,
                    "user_email": r.user.email if r.user else None,
                    "user_name": r.user.name if r.user else None,
                    "from_institution": r.from_institution.name if r.from_institution else None,
                    "to_institution": r.to_institution.name if r.to_institution else None,
                    "reason": r.reason,
                    "created_at": r.to_dict()["created_at"],
                }
                for r in requests
            ]

    def create_request(
        self,
        user: CurrentUser,
        to_institution_id: Optional[str],
        reason: Optional[str] = None
    ) -> Dict[str, Any]:
        if not to_institution_id:
            raise ValidationError("to_institution_id is required", field="to_institution_id")

        with get_database().get_session() as session:
            pending = (
                session.query(InstitutionChangeRequest)
                .filter(InstitutionChangeRequest.user_id == user.id, InstitutionChangeRequest.status == "pending")
                .first()
            )
            if pending is not None:
                raise ValidationError("You already have a pending change request")

            if session.get(Institution, to_institution_id) is None:
                raise NotFoundError("Institution not found")

            row = session.get(User, user.id)
            request = InstitutionChangeRequest(
                user_id=user.id,
                from_institution_id=row.institution_id,
                to_institution_id=to_institution_id,
                reason=reason,
                status="pending",
            )
            session.add(request)
            session.flush()
            return request.to_dict()

    def review_request(
        self,
        admin: CurrentUser,
        request_id: Optional[str],
        action: Optional[str],
        ip_address: Optional[str] = None
    ) -> Dict[str, Any]:
        if not request_id or action not in ("approve", "reject"):
            raise ValidationError("request_id and action (approve/reject) are required")

        with get_database().get_session() as session:
            request = session.get(InstitutionChangeRequest, request_id)
            if request is None:
                raise NotFoundError("Request not found")

            if admin.is_institution_admin and request.to_institution_id != admin.institution_id:
                raise ForbiddenError("Unauthorized")

            status = "approved" if action == "approve" else "rejected"
            request.status = status
            request.reviewed_by = admin.id
            request.reviewed_at = datetime.utcnow()

            if action == "approve":
                member = session.get(User, request.user_id)
                if member is not None:
                    member.institution_id = request.to_institution_id

            log_admin_activity(
                session, admin.id, f"{action}_institution_change", "user", request.user_id,
                {
                    "request_id": request.id,
                    "from_institution_id": request.from_institution_id,
                    "to_institution_id": request.to_institution_id,
                },
                ip_address,
            )
            return {"success": True, "status": status}

    def get_my_request(self, user: CurrentUser) -> Optional[Dict[str, Any]]:
        with get_database().get_session() as session:
            request = (
                session.query(InstitutionChangeRequest)
                .filter(InstitutionChangeRequest.user_id == user.id, InstitutionChangeRequest.status == "pending")
                .first()
            )
            if request is None:
                return None
            return {
                "id": request.id,
                "status": request.status,
                "reason": request.reason,
                "created_at": request.to_dict()["created_at"],
                "to_institution": request.to_institution.short_name if request.to_institution else None,
            }


# Global service instance
_institution_service: Optional[InstitutionService] = None


def get_institution_service() -> InstitutionService:
    """Get or create the global institution service."""
    global _institution_service
    if _institution_service is None:
        _institution_service = InstitutionService()
    return _institution_service
