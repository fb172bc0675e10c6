"""
Admin Service - The superadmin back-office.

This service covers:
1. User management (list, create, edit, delete, CSV export)
2. The admin activity log
3. Cycle oversight: listing, private notes and review status

Role checks happen in the API layer; every method here assumes the
caller is already authorized and records what it changed.
"""
import csv
import io
import math
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func

from studio.core.exceptions import ConflictError, NotFoundError, ValidationError
from studio.core.logging_config import LoggerMixin
from studio.core.security import hash_password
from studio.core.validators import normalize_email
from studio.database.connection import get_database
from studio.database.models import AdminActivityLog, AdminCycleNote, Cycle, CycleReview, User
from studio.services.activity import log_admin_activity
from studio.services.auth_service import USER_ROLES, CurrentUser

EXPORT_HEADERS = ["ID", "Email", "Name", "Role", "Department", "Year", "Created At", "Updated At"]

REVIEW_STATUSES = ("pending", "in_review", "approved", "needs_revision", "flagged")

ACTIVITY_ENTITY_TYPES = ["user", "cycle", "system"]


def js_iso(value: Optional[datetime]) -> str:
    """ISO-8601 with milliseconds and a Z suffix, as browsers print dates."""
    if value is None:
        return ""
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def _brief(user: Optional[User]) -> Optional[Dict[str, Any]]:
    return user.brief() if user is not None else None


class AdminService(LoggerMixin):
    """
    Back-office operations for superadmins.

    Example:
        >>> service = AdminService()
        >>> user = service.create_user(admin, email="a@jkkn.ac.in", password="secret")
        >>> csv_text, count = service.export_users(admin)
    """

    # ============================================================
    # Users
    # ============================================================

    def list_users(self) -> List[Dict[str, Any]]:
        with get_database().get_session() as session:
            users = session.query(User).order_by(User.created_at.desc()).all()
            return [user.to_dict() for user in users]

    def get_user(self, user_id: str) -> Dict[str, Any]:
        with get_database().get_session() as session:
            user = session.get(User, user_id)
            if user is None:
                raise NotFoundError("User not found")
            return user.to_dict()

    def create_user(
        self,
        admin: CurrentUser,
        email: Optional[str],
        password: Optional[str],
        name: Optional[str] = None,
        role: Optional[str] = None,
        ip_address: Optional[str] = None
    ) -> Dict[str, Any]:
        if not email or not password:
            raise ValidationError("Email and password are required")
        if role == "superadmin":
            raise ValidationError("Cannot create superadmin users", field="role")
        role = role or "learner"
        if role not in USER_ROLES:
            raise ValidationError("Invalid role", field="role")

        email = normalize_email(email)
        with get_database().get_session() as session:
            if session.query(User).filter(User.email == email).first() is not None:
                raise ConflictError("A user with this email already exists")

            user = User(email=email, name=name, role=role, password_hash=hash_password(password))
            session.add(user)
            session.flush()
            log_admin_activity(
                session, admin.id, "create_user", "user", user.id,
                {"email": email, "role": role}, ip_address,
            )
            return user.to_dict()

    def update_user(
        self,
        admin: CurrentUser,
        user_id: str,
        name: Optional[str] = None,
        role: Optional[str] = None,
        ip_address: Optional[str] = None
    ) -> Dict[str, Any]:
        with get_database().get_session() as session:
            user = session.get(User, user_id)
            if user is None:
                raise NotFoundError("User not found")
            if user.role == "superadmin":
                raise ValidationError("Cannot modify superadmin users")
            if role == "superadmin":
                raise ValidationError("Cannot set superadmin role", field="role")
            if role is not None and role not in USER_ROLES:
                raise ValidationError("Invalid role", field="role")

            changes: Dict[str, Any] = {}
            if name is not None:
                user.name = name
                changes["name"] = name
            if role is not None:
                user.role = role
                changes["role"] = role
            session.flush()

            log_admin_activity(
                session, admin.id, "update_user", "user", user_id,
                {"changes": changes}, ip_address,
            )
            return user.to_dict()

    def delete_user(self, admin: CurrentUser, user_id: str, ip_address: Optional[str] = None) -> None:
        with get_database().get_session() as session:
            user = session.get(User, user_id)
            if user is None:
                raise NotFoundError("User not found")
            if user.role == "superadmin":
                raise ValidationError("Cannot delete superadmin users")

            # Step data goes with each cycle through the ORM cascade
            for cycle in session.query(Cycle).filter(Cycle.user_id == user_id).all():
                session.delete(cycle)
            email = user.email
            session.delete(user)

            log_admin_activity(
                session, admin.id, "delete_user", "user", user_id,
                {"email": email}, ip_address,
            )
        self.logger.info(f"User {user_id} deleted by {admin.id}")

    def export_users(
        self,
        admin: CurrentUser,
        role: Optional[str] = None,
        ip_address: Optional[str] = None
    ) -> Tuple[str, int]:
        """
        Render users as CSV.

        Returns:
            Tuple of (csv text, number of users exported)
        """
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(EXPORT_HEADERS)

        with get_database().get_session() as session:
            query = session.query(User).order_by(User.created_at.desc())
            if role:
                query = query.filter(User.role == role)
            users = query.all()

            for user in users:
                writer.writerow([
                    user.id,
                    user.email,
                    user.name or "",
                    user.role,
                    user.department or "",
                    user.year_of_study if user.year_of_study is not None else "",
                    js_iso(user.created_at),
                    js_iso(user.updated_at),
                ])

            log_admin_activity(
                session, admin.id, "users_exported", "user", None,
                {"count": len(users), "filter_role": role}, ip_address,
            )

        # Rows are joined, not terminated
        return buffer.getvalue()[:-1], len(users)

    # ============================================================
    # Activity log
    # ============================================================

    def list_activity(
        self,
        page: int = 1,
        limit: int = 50,
        action: Optional[str] = None,
        entity_type: Optional[str] = None,
        admin_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> Dict[str, Any]:
        page = max(page, 1)
        limit = max(limit, 1)

        with get_database().get_session() as session:
            query = session.query(AdminActivityLog)
            if action:
                query = query.filter(AdminActivityLog.action == action)
            if entity_type:
                query = query.filter(AdminActivityLog.entity_type == entity_type)
            if admin_id:
                query = query.filter(AdminActivityLog.admin_id == admin_id)
            if start_date:
                query = query.filter(AdminActivityLog.created_at >= start_date)
            if end_date:
                query = query.filter(AdminActivityLog.created_at <= end_date)

            total = query.count()
            rows = (
                query.order_by(AdminActivityLog.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            logs = [{**row.to_dict(), "admin": _brief(row.admin)} for row in rows]

            sampled = [a for (a,) in session.query(AdminActivityLog.action).limit(100).all()]

        return {
            "logs": logs,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": math.ceil(total / limit),
            },
            "filters": {
                "availableActions": list(dict.fromkeys(sampled)),
                "entityTypes": list(ACTIVITY_ENTITY_TYPES),
            },
        }

    # ============================================================
    # Cycles
    # ============================================================

    def list_cycles(
        self,
        page: int = 1,
        limit: int = 20,
        status: Optional[str] = None,
        event_id: Optional[str] = None,
        search: Optional[str] = None
    ) -> Dict[str, Any]:
        page = max(page, 1)
        limit = max(limit, 1)

        with get_database().get_session() as session:
            query = session.query(Cycle)
            if status:
                query = query.filter(Cycle.status == status)
            if event_id:
                query = query.filter(Cycle.event_id == event_id)
            if search:
                query = query.filter(func.lower(Cycle.name).contains(search.lower()))

            total = query.count()
            cycles = (
                query.order_by(Cycle.updated_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            data = [
                {
                    **cycle.to_dict(),
                    "user": _brief(cycle.user),
                    "review_status": cycle.review.status if cycle.review else None,
                }
                for cycle in cycles
            ]

        return {
            "cycles": data,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": math.ceil(total / limit),
            },
        }

    def list_notes(self, cycle_id: str) -> List[Dict[str, Any]]:
        with get_database().get_session() as session:
            notes = (
                session.query(AdminCycleNote)
                .filter(AdminCycleNote.cycle_id == cycle_id)
                .order_by(AdminCycleNote.created_at.desc())
                .all()
            )
            return [{**note.to_dict(), "admin": _brief(note.admin)} for note in notes]

    def add_note(
        self,
        admin: CurrentUser,
        cycle_id: str,
        content: Optional[str],
        ip_address: Optional[str] = None
    ) -> Dict[str, Any]:
        if not content or not content.strip():
            raise ValidationError("Note content is required", field="content")

        with get_database().get_session() as session:
            if session.get(Cycle, cycle_id) is None:
                raise NotFoundError("Cycle not found")

            note = AdminCycleNote(cycle_id=cycle_id, admin_id=admin.id, content=content.strip())
            session.add(note)
            session.flush()
            log_admin_activity(
                session, admin.id, "cycle_note_added", "cycle", cycle_id,
                {"note_id": note.id, "content_preview": note.content[:100]}, ip_address,
            )
            return {**note.to_dict(), "admin": admin.brief()}

    def delete_note(
        self,
        admin: CurrentUser,
        cycle_id: str,
        note_id: str,
        ip_address: Optional[str] = None
    ) -> None:
        with get_database().get_session() as session:
            (
                session.query(AdminCycleNote)
                .filter(AdminCycleNote.id == note_id, AdminCycleNote.cycle_id == cycle_id)
                .delete(synchronize_session=False)
            )
            log_admin_activity(
                session, admin.id, "cycle_note_deleted", "cycle", cycle_id,
                {"note_id": note_id}, ip_address,
            )

    def get_review(self, cycle_id: str) -> Optional[Dict[str, Any]]:
        with get_database().get_session() as session:
            review = session.query(CycleReview).filter(CycleReview.cycle_id == cycle_id).first()
            if review is None:
                return None
            return {**review.to_dict(), "reviewer": _brief(review.reviewer)}

    def upsert_review(
        self,
        admin: CurrentUser,
        cycle_id: str,
        status: Optional[str],
        notes: Optional[str] = None,
        ip_address: Optional[str] = None
    ) -> Tuple[Dict[str, Any], bool]:
        """
        Create or update the single review of a cycle.

        Returns:
            Tuple of (review dict, created)
        """
        if status not in REVIEW_STATUSES:
            raise ValidationError("Invalid status", field="status")

        with get_database().get_session() as session:
            if session.get(Cycle, cycle_id) is None:
                raise NotFoundError("Cycle not found")

            review = session.query(CycleReview).filter(CycleReview.cycle_id == cycle_id).first()
            created = review is None
            if created:
                review = CycleReview(cycle_id=cycle_id)
                session.add(review)

            review.status = status
            review.notes = notes
            review.reviewer_id = admin.id
            review.reviewed_at = datetime.utcnow()
            session.flush()

            log_admin_activity(
                session,
                admin.id,
                "cycle_review_created" if created else "cycle_review_updated",
                "cycle",
                cycle_id,
                {"status": status, "notes": (notes or "")[:100] or None},
                ip_address,
            )
            return {**review.to_dict(), "reviewer": admin.brief()}, created


# Global service instance
_admin_service: Optional[AdminService] = None


def get_admin_service() -> AdminService:
    """Get or create the global admin service."""
    global _admin_service
    if _admin_service is None:
        _admin_service = AdminService()
    return _admin_service
