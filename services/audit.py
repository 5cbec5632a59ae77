"""Audit logging service."""

from __future__ import annotations

from typing import Optional

from extensions import db
from models import AuditLog
from services.auth import get_current_user


def log_action(
    action: str,
    entity_type: str,
    entity_id: Optional[int],
    details: str = "",
    tenant_id: Optional[int] = None,
) -> None:
    """Record an audit log entry for the current user.

    Does not commit; the entry lands in the caller's transaction.
    """
    user = get_current_user()
    db.session.add(
        AuditLog(
            tenant_id=tenant_id,
            user_id=user.id if user else None,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
        )
    )
