# Overview: Service-layer operations for login throttling; encapsulates business logic and database work.

"""
Login Throttling Service

WHY: Prevent brute-force password attacks by limiting failed login attempts.
After too many failures, the identifier is temporarily locked.

SECURITY FEATURES:
- Tracks failed attempts per account, whichever identifier (username or
  email) and whichever client named it; unknown identifiers are tracked by
  name, case-folded
- Lockout after LOGIN_MAX_FAILED_ATTEMPTS failures within LOGIN_LOCKOUT_WINDOW
- Lockout lasts LOGIN_LOCKOUT_WINDOW from the most recent failure
- Uses the security_events table for tracking (bucket key in `action`)
- A successful login starts the count afresh
- Switching clients or identifiers does not reset the count
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app, has_app_context

from ..extensions import db
from ..errors import LoginThrottled
from ..models import SecurityEvent
from . import audit_service
from authgate.time_utils import Clock, get_clock


# Defaults when no app config is available
MAX_FAILED_ATTEMPTS = 5
LOCKOUT_WINDOW = timedelta(minutes=15)


def _max_attempts() -> int:
    if has_app_context():
        return current_app.config.get("LOGIN_MAX_FAILED_ATTEMPTS", MAX_FAILED_ATTEMPTS)
    return MAX_FAILED_ATTEMPTS


def _window() -> timedelta:
    if has_app_context():
        return current_app.config.get("LOGIN_LOCKOUT_WINDOW", LOCKOUT_WINDOW)
    return LOCKOUT_WINDOW


def normalize_identifier(identifier: str | None) -> str:
    return (identifier or "").strip().lower()


def throttle_key(identifier: str | None, user=None) -> str:
    """Bucket a login attempt is counted in: the account when one matched, else the identifier."""
    if user is not None:
        return f"account:{user.id}"
    return "name:" + normalize_identifier(identifier)


def _failures_query(key: str, clock: Clock | None = None):
    now = get_clock(clock).now()
    cutoff = now - _window()

    last_success = db.session.query(SecurityEvent.occurred_at).filter(
        SecurityEvent.event_type == "LOGIN_SUCCESS",
        SecurityEvent.action == key,
    ).order_by(SecurityEvent.occurred_at.desc()).first()
    if last_success and last_success[0] > cutoff:
        cutoff = last_success[0]

    return db.session.query(SecurityEvent).filter(
        SecurityEvent.event_type == "LOGIN_FAILED",
        SecurityEvent.action == key,
        SecurityEvent.occurred_at >= cutoff,
    )


def get_recent_failed_attempts(key: str, clock: Clock | None = None) -> int:
    """Count failures in the bucket within the window (and since the last success)."""
    return _failures_query(key, clock).count()


def is_locked(key: str, clock: Clock | None = None) -> tuple[bool, int | None]:
    """
    Check if a bucket is currently locked.

    Returns:
    - (True, seconds_remaining) if locked
    - (False, None) if not locked
    """
    query = _failures_query(key, clock)
    if query.count() < _max_attempts():
        return False, None

    most_recent = query.order_by(SecurityEvent.occurred_at.desc()).first()
    now = get_clock(clock).now()
    lockout_end = most_recent.occurred_at + _window()
    if now < lockout_end:
        return True, max(1, int((lockout_end - now).total_seconds()))
    return False, None


def check_not_locked(key: str, clock: Clock | None = None) -> None:
    """Raise LoginThrottled (429) while the bucket is locked."""
    locked, seconds_remaining = is_locked(key, clock)
    if locked:
        raise LoginThrottled(retry_after_seconds=seconds_remaining)


def record_failed_attempt(
    key: str,
    reason: str,
    user_id: int | None = None,
    clock: Clock | None = None,
) -> int:
    """
    Record a failed login attempt.

    Returns the total number of recent failed attempts.
    """
    audit_service.log_security_event(
        event_type="LOGIN_FAILED",
        success=False,
        user_id=user_id,
        action=key,
        reason=reason,
        clock=clock,
    )
    return _failures_query(key, clock).count()


def record_successful_login(user_id: int, key: str, clock: Clock | None = None) -> None:
    """Record a successful login; later failures are counted from here."""
    audit_service.log_security_event(
        event_type="LOGIN_SUCCESS",
        success=True,
        user_id=user_id,
        action=key,
        clock=clock,
    )


def get_lockout_status(key: str, clock: Clock | None = None) -> dict:
    locked, seconds_remaining = is_locked(key, clock)
    return {
        "locked": locked,
        "failed_attempts": get_recent_failed_attempts(key, clock),
        "max_attempts": _max_attempts(),
        "seconds_until_unlock": seconds_remaining,
        "lockout_window_minutes": int(_window().total_seconds() / 60),
    }
