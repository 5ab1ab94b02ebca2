"""
Best-effort audit appends.

The primary state change is committed first; the audit entry is written in a
second commit. A failed audit write is logged and rolled back and never
reaches the caller.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database.models import AuditAction, AuditLog, AuditTargetType
from database.repositories import AuditRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestMeta:
    """Requester details recorded on audit entries"""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def append_audit(
    session: Session,
    action: AuditAction,
    target_type: AuditTargetType,
    target_id: Optional[Any] = None,
    actor_id: Optional[Any] = None,
    actor_email: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    meta: Optional[RequestMeta] = None
) -> Optional[AuditLog]:
    """Append and commit one audit entry; returns None if the write failed"""
    meta = meta or RequestMeta()
    try:
        entry = AuditRepository(session).log(
            action=action,
            target_type=target_type,
            target_id=target_id,
            actor_id=actor_id,
            actor_email=actor_email,
            details=details,
            ip_address=meta.ip_address,
            user_agent=meta.user_agent
        )
        session.commit()
        return entry
    except SQLAlchemyError:
        session.rollback()
        logger.exception(
            "Audit append failed: action=%s target=%s/%s",
            action.value, target_type.value, target_id
        )
        return None
