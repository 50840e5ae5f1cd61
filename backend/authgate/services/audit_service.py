# Overview: Security audit trail writer; the single sink for auth and admin events.

"""
Security Event Logging

WHY: Every denied authentication and every admin mutation is recorded with
the account (if known), a reason code and the source address so it can be
reviewed later. Response bodies stay coarse; the detail lives here.

event_type values:
- LOGIN_SUCCESS / LOGIN_FAILED (wrong credentials; drives throttling)
- LOGIN_DENIED (right credentials, account not allowed in)
- LOGIN_THROTTLED
- LOGOUT
- TOKEN_REJECTED
- SESSION_INVALIDATED
- CSRF_REJECTED
- ACCESS_DENIED
- ADMIN_ACTION
"""

from flask import current_app, has_request_context, request

from ..extensions import db
from ..models import SecurityEvent
from authgate.time_utils import Clock, get_clock


def log_security_event(
    event_type: str,
    success: bool,
    user_id: int | None = None,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    clock: Clock | None = None,
) -> SecurityEvent:
    """
    Append a security event and commit it.

    Request context (path, address, user agent) fills in anything the caller
    leaves out. Failures are also emitted as warnings on the app logger.
    """
    if has_request_context():
        resource = resource or request.path
        ip_address = ip_address or request.remote_addr
        user_agent = user_agent or request.headers.get("User-Agent")

    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=get_clock(clock).now(),
    )

    db.session.add(event)
    db.session.commit()

    if not success:
        current_app.logger.warning(
            "[SECURITY] %s: %s (user_id=%s, action=%s) from %s",
            event_type, reason or "no reason", user_id, action, ip_address,
        )

    return event


def log_admin_action(admin_user_id: int, action: str, target: str | None = None) -> SecurityEvent:
    current_app.logger.info("[ADMIN] user %s performed %s on %s", admin_user_id, action, target or "system")
    return log_security_event(
        event_type="ADMIN_ACTION",
        success=True,
        user_id=admin_user_id,
        action=action,
        reason=target,
    )
