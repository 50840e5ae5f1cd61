# Overview: Service-layer operations for maintenance; encapsulates business logic and database work.

from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..models import SecurityEvent
from . import desktop_token_service, session_service
from authgate.time_utils import Clock, get_clock


def cleanup_security_events(*, retention_days: int = 90, clock: Clock | None = None) -> int:
    """
    Delete security events older than retention_days.
    """
    cutoff = get_clock(clock).now() - timedelta(days=retention_days)
    deleted = db.session.query(SecurityEvent).filter(
        SecurityEvent.occurred_at < cutoff
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted


def cleanup_sessions(clock: Clock | None = None) -> dict:
    """
    Purge idle browser sessions and expired desktop tokens.

    Expiry is already enforced on access; this only reclaims rows.
    """
    return {
        "browser_sessions": session_service.cleanup_idle_sessions(clock),
        "desktop_tokens": desktop_token_service.cleanup_expired_tokens(clock),
    }
