# Overview: Best-effort append to the audit_logs collection.

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import AuditLog
from refurb.time_utils import to_utc_z, utcnow

logger = logging.getLogger(__name__)


def _write_entry(entry: AuditLog) -> None:
    db.session.add(entry)
    db.session.commit()


def append_audit_event(
    *,
    user_id: int | None,
    action: str,
    metadata: dict[str, Any] | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AuditLog | None:
    """
    Append an audit entry and commit it.

    Call this after the parent operation has committed: a failure here is
    logged and swallowed, and only the audit row is rolled back.
    Returns None when the write failed.
    """
    now = utcnow()
    details = {"timestamp": to_utc_z(now)}
    if metadata:
        details.update(metadata)

    entry = AuditLog(
        user_id=user_id,
        action=action,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent,
        created_at=now,
    )
    try:
        _write_entry(entry)
    except SQLAlchemyError:
        db.session.rollback()
        logger.warning("Audit write failed for action=%s user_id=%s", action, user_id, exc_info=True)
        return None
    return entry


def list_audit_events(user_id: int, *, action: str | None = None, limit: int = 100) -> list[AuditLog]:
    query = db.session.query(AuditLog).filter(AuditLog.user_id == user_id)
    if action:
        query = query.filter(AuditLog.action == action)
    return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
