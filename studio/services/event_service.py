"""
Event Service - Appathons and other time-boxed events.

Learners join one event at a time (users.active_event_id). Each event
has its own admin team with three levels:
- admin: full control, only superadmins may grant or revoke it
- reviewer / viewer: read access to the event back-office
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func

from studio.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from studio.core.logging_config import LoggerMixin
from studio.core.validators import normalize_email, validate_slug
from studio.database.connection import get_database
from studio.database.models import Event, EventAdmin, User
from studio.services.activity import log_admin_activity
from studio.services.auth_service import CurrentUser

EVENT_ADMIN_ROLES = ("admin", "reviewer", "viewer")

UPDATABLE_FIELDS = ("slug", "name", "description", "start_date", "end_date", "is_active", "banner_color", "config")


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    """Store datetimes as naive UTC."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _participant_count(session, event_id: str) -> int:
    return session.query(func.count(User.id)).filter(User.active_event_id == event_id).scalar() or 0


def _admin_entry(admin: EventAdmin) -> Dict[str, Any]:
    return {
        "id": admin.id,
        "user_id": admin.user_id,
        "role": admin.role,
        "created_at": admin.to_dict()["created_at"],
        "user": admin.user.brief() if admin.user else {"name": "Unknown", "email": ""},
    }


def _event_role(session, user_id: str, event_id: str) -> Optional[str]:
    assignment = (
        session.query(EventAdmin)
        .filter(EventAdmin.event_id == event_id, EventAdmin.user_id == user_id)
        .first()
    )
    return assignment.role if assignment is not None else None


def check_event_admin_access(user: CurrentUser, event_id: str, session=None) -> Tuple[bool, Optional[str]]:
    """
    Whether a user may manage an event, and in which role.

    Superadmins manage every event with the role `superadmin`. Pass an
    open session when calling from inside one.
    """
    if user.is_superadmin:
        return True, "superadmin"

    if session is not None:
        role = _event_role(session, user.id, event_id)
    else:
        with get_database().get_session() as own_session:
            role = _event_role(own_session, user.id, event_id)
    return (role is not None), role


def get_admin_events(user: CurrentUser) -> List[Dict[str, Any]]:
    """Events the user administers as `{id, slug, name, role}`."""
    with get_database().get_session() as session:
        if user.is_superadmin:
            events = session.query(Event).filter(Event.is_active.is_(True)).all()
            return [{"id": e.id, "slug": e.slug, "name": e.name, "role": "superadmin"} for e in events]

        assignments = session.query(EventAdmin).filter(EventAdmin.user_id == user.id).all()
        return [
            {"id": a.event.id, "slug": a.event.slug, "name": a.event.name, "role": a.role}
            for a in assignments
            if a.event is not None
        ]


class EventService(LoggerMixin):
    """
    Event CRUD, participation and event admin management.

    Example:
        >>> service = EventService()
        >>> service.join(user, event_id)["message"]
        'Joined Appathon 2.0'
    """

    def list_active(self) -> List[Dict[str, Any]]:
        with get_database().get_session() as session:
            events = (
                session.query(Event)
                .filter(Event.is_active.is_(True))
                .order_by(Event.start_date.asc())
                .all()
            )
            return [
                {**event.to_dict(), "participant_count": _participant_count(session, event.id)}
                for event in events
            ]

    def get(self, event_id: str) -> Dict[str, Any]:
        with get_database().get_session() as session:
            event = session.get(Event, event_id)
            if event is None:
                raise NotFoundError("Event not found")
            return {**event.to_dict(), "participant_count": _participant_count(session, event.id)}

    def create(self, admin: CurrentUser, data: Dict[str, Any], ip_address: Optional[str] = None) -> Dict[str, Any]:
        if not all(data.get(key) for key in ("slug", "name", "start_date", "end_date")):
            raise ValidationError("Missing required fields: slug, name, start_date, end_date")
        valid, error = validate_slug(data["slug"])
        if not valid:
            raise ValidationError(error)

        with get_database().get_session() as session:
            if session.query(Event).filter(Event.slug == data["slug"]).first() is not None:
                raise ConflictError("An event with this slug already exists")

            event = Event(
                slug=data["slug"],
                name=data["name"],
                description=data.get("description"),
                start_date=_naive(data["start_date"]),
                end_date=_naive(data["end_date"]),
                banner_color=data.get("banner_color") or "amber",
                config=data.get("config") or {},
                is_active=data.get("is_active") if data.get("is_active") is not None else True,
                created_by=admin.id,
            )
            session.add(event)
            session.flush()
            log_admin_activity(
                session, admin.id, "create_event", "event", event.id,
                {"slug": event.slug, "name": event.name}, ip_address,
            )
            return event.to_dict()

    def update(
        self,
        admin: CurrentUser,
        event_id: str,
        data: Dict[str, Any],
        ip_address: Optional[str] = None
    ) -> Dict[str, Any]:
        updates = {key: data[key] for key in UPDATABLE_FIELDS if key in data and data[key] is not None}
        if "slug" in updates:
            valid, error = validate_slug(updates["slug"])
            if not valid:
                raise ValidationError(error)

        with get_database().get_session() as session:
            event = session.get(Event, event_id)
            if event is None:
                raise NotFoundError("Event not found")

            if "slug" in updates:
                clash = session.query(Event).filter(Event.slug == updates["slug"], Event.id != event_id).first()
                if clash is not None:
                    raise ConflictError("An event with this slug already exists")

            for key, value in updates.items():
                if key in ("start_date", "end_date"):
                    value = _naive(value)
                setattr(event, key, value)
            event.updated_at = datetime.utcnow()
            session.flush()

            log_admin_activity(
                session, admin.id, "update_event", "event", event_id,
                {"updated_fields": list(updates.keys()) + ["updated_at"]}, ip_address,
            )
            return event.to_dict()

    def delete(self, admin: CurrentUser, event_id: str, ip_address: Optional[str] = None) -> Dict[str, Any]:
        with get_database().get_session() as session:
            event = session.get(Event, event_id)
            if event is None:
                raise NotFoundError("Event not found")

            session.query(User).filter(User.active_event_id == event_id).update(
                {User.active_event_id: None}, synchronize_session=False
            )
            name, slug = event.name, event.slug
            session.delete(event)
            log_admin_activity(
                session, admin.id, "delete_event", "event", event_id,
                {"name": name, "slug": slug}, ip_address,
            )
        return {"success": True, "message": "Event deleted"}

    # ============================================================
    # Participation
    # ============================================================

    def join(self, user: CurrentUser, event_id: Optional[str]) -> Dict[str, Any]:
        if not event_id:
            raise ValidationError("Event ID is required", field="eventId")

        with get_database().get_session() as session:
            event = session.get(Event, event_id)
            if event is None or not event.is_active:
                raise NotFoundError("Event not found or inactive")
            if event.end_date < datetime.utcnow():
                raise ValidationError("This event has ended")

            row = session.get(User, user.id)
            if row is None:
                raise NotFoundError("User not found")
            row.active_event_id = event.id
            self.logger.info(f"User {user.id} joined event {event.slug}")
            return {
                "success": True,
                "message": f"Joined {event.name}",
                "event": {"id": event.id, "name": event.name, "slug": event.slug},
            }

    def leave(self, user: CurrentUser) -> Dict[str, Any]:
        with get_database().get_session() as session:
            row = session.get(User, user.id)
            if row is None:
                raise NotFoundError("User not found")
            row.active_event_id = None
        return {"success": True, "message": "Left event successfully"}

    # ============================================================
    # Event admins
    # ============================================================

    def get_by_slug(self, user: CurrentUser, slug: str) -> Dict[str, Any]:
        with get_database().get_session() as session:
            event = session.query(Event).filter(Event.slug == slug).first()
            if event is None:
                raise NotFoundError("Event not found")
            event_data = event.to_dict()
            event_id = event.id

        is_admin, role = check_event_admin_access(user, event_id)
        if not is_admin:
            raise ForbiddenError("Forbidden")

        return {"event": event_data, "admins": self._list_admins(event_id), "userRole": role}

    def list_admins(self, user: CurrentUser, event_id: str) -> List[Dict[str, Any]]:
        is_admin, _ = check_event_admin_access(user, event_id)
        if not is_admin:
            raise ForbiddenError("Forbidden")
        return self._list_admins(event_id)

    def _list_admins(self, event_id: str) -> List[Dict[str, Any]]:
        with get_database().get_session() as session:
            admins = (
                session.query(EventAdmin)
                .filter(EventAdmin.event_id == event_id)
                .order_by(EventAdmin.created_at.asc())
                .all()
            )
            return [_admin_entry(admin) for admin in admins]

    def add_admin(
        self,
        user: CurrentUser,
        event_id: str,
        email: Optional[str],
        role: str = "admin",
        ip_address: Optional[str] = None
    ) -> Dict[str, Any]:
        is_admin, caller_role = check_event_admin_access(user, event_id)
        if not is_admin:
            raise ForbiddenError("Forbidden")
        if not email:
            raise ValidationError("Email is required", field="email")
        if role not in EVENT_ADMIN_ROLES:
            raise ValidationError("Invalid role", field="role")
        if role == "admin" and caller_role != "superadmin":
            raise ForbiddenError("Only superadmins can add admin role")

        with get_database().get_session() as session:
            target = session.query(User).filter(User.email == normalize_email(email)).first()
            if target is None:
                raise NotFoundError("User not found with this email")

            existing = (
                session.query(EventAdmin)
                .filter(EventAdmin.event_id == event_id, EventAdmin.user_id == target.id)
                .first()
            )
            if existing is not None:
                raise ConflictError("User is already an admin for this event")

            admin = EventAdmin(event_id=event_id, user_id=target.id, role=role, assigned_by=user.id)
            session.add(admin)
            session.flush()
            log_admin_activity(
                session, user.id, "add_event_admin", "event", event_id,
                {"user_email": target.email, "user_id": target.id, "role": role}, ip_address,
            )
            return _admin_entry(admin)

    def remove_admin(
        self,
        user: CurrentUser,
        event_id: str,
        admin_id: str,
        ip_address: Optional[str] = None
    ) -> Dict[str, Any]:
        is_admin, caller_role = check_event_admin_access(user, event_id)
        if not is_admin:
            raise ForbiddenError("Forbidden")

        with get_database().get_session() as session:
            record = (
                session.query(EventAdmin)
                .filter(EventAdmin.id == admin_id, EventAdmin.event_id == event_id)
                .first()
            )
            if record is None:
                raise NotFoundError("Admin record not found")
            if record.user_id == user.id:
                raise ValidationError("Cannot remove yourself as admin")
            if record.role == "admin" and caller_role != "superadmin":
                raise ForbiddenError("Only superadmins can remove admin role")

            removed_user_id, removed_role = record.user_id, record.role
            session.delete(record)
            log_admin_activity(
                session, user.id, "remove_event_admin", "event", event_id,
                {"removed_user_id": removed_user_id, "removed_role": removed_role}, ip_address,
            )
        return {"success": True}


# Global service instance
_event_service: Optional[EventService] = None


def get_event_service() -> EventService:
    """Get or create the global event service."""
    global _event_service
    if _event_service is None:
        _event_service = EventService()
    return _event_service
