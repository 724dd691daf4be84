# Overview: Service-layer operations for the security audit trail.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import SecurityEvent
from backoffice.time_utils import utcnow


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    main_user_id: int | None = None,
    request_id: str | None = None,
) -> SecurityEvent:
    """
    Log security event to audit trail with tenant context.

    Commits immediately: callers must only invoke this when the session holds
    no half-finished domain work (after a rollback, or before any mutation).

    event_type examples:
    - CROSS_TENANT_ACCESS_DENIED
    - LOGIN_FAILED
    - LOGIN_SUCCEEDED
    - PASSWORD_RESET_REQUESTED
    - PASSWORD_RESET_COMPLETED
    - PASSWORD_CHANGED
    """
    event = SecurityEvent(
        user_id=user_id,
        main_user_id=main_user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        request_id=request_id,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    if not success:
        current_app.logger.warning(
            "Security event %s user_id=%s main_user_id=%s resource=%s reason=%s",
            event_type, user_id, main_user_id, resource, reason,
        )

    return event
