# Overview: Security event logging for authorization and login failures.

"""
Security Event Logging

Denials are logged, grants are not. Events are written in their own
transaction: a denial usually ends the request, and the audit row must
survive even when the caller's work is rolled back.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import SecurityEvent
from ..time_utils import utcnow

logger = logging.getLogger(__name__)


def log_security_event(
    user_id: str | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    branch_id: str | None = None,
) -> SecurityEvent | None:
    """
    Log security event to audit trail.

    event_type examples:
    - PERMISSION_DENIED
    - BRANCH_ACCESS_DENIED
    - LOGIN_FAILED
    - INVALID_TOKEN
    """
    event = SecurityEvent(
        user_id=str(user_id) if user_id is not None else None,
        branch_id=branch_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
        occurred_at=utcnow(),
    )

    try:
        db.session.add(event)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to persist security event %s for user %s", event_type, user_id)
        return None

    return event


def list_security_events(*, user_id: str | None = None, event_type: str | None = None, limit: int = 50) -> list[SecurityEvent]:
    query = db.session.query(SecurityEvent)
    if user_id is not None:
        query = query.filter(SecurityEvent.user_id == str(user_id))
    if event_type:
        query = query.filter(SecurityEvent.event_type == event_type)
    return query.order_by(SecurityEvent.occurred_at.desc(), SecurityEvent.id.desc()).limit(limit).all()
