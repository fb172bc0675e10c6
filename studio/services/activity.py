"""
Admin activity log writer.

Every back-office mutation records who did what to which entity. The
row is written in the caller's session so it commits (or rolls back)
together with the change it describes.
"""
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from studio.core.logging_config import get_logger
from studio.database.models import AdminActivityLog

logger = get_logger(__name__)


def log_admin_activity(
    session: Session,
    admin_id: Optional[str],
    action: str,
    entity_type: str,
    entity_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None
) -> AdminActivityLog:
    """
    Append one admin_activity_logs row.

    Args:
        session: Open session; the row is flushed, not committed
        admin_id: Acting user
        action: Verb such as `create_user` or `impersonation_started`
        entity_type: `user`, `cycle`, `institution`, `event`, `problem`, ...
        entity_id: Affected row, when there is one
        details: Free-form JSON context
        ip_address: Caller IP as resolved by get_client_ip
    """
    entry = AdminActivityLog(
        admin_id=admin_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
        ip_address=ip_address,
    )
    session.add(entry)
    session.flush()
    logger.info(f"ADMIN ACTION: {action} {entity_type}={entity_id} by={admin_id}")
    return entry
