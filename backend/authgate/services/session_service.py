# Overview: Service-layer operations for browser sessions; encapsulates business logic and database work.

"""
Browser Session Lifecycle

WHY: The session identifier is the only bearer credential a browser holds.
The server is the sole authority on validity: identifiers are random,
stored hashed, rotated on login and every SESSION_ROTATION_INTERVAL, and
destroyed the moment the account behind them stops being entitled.

SECURITY FEATURES:
- Cryptographically secure random identifiers (32 bytes)
- Identifiers hashed with SHA-256 before storage
- Idle timeout (SESSION_IDLE_TIMEOUT), enforced lazily on next access
- Regeneration rewrites the stored hash in a single UPDATE: the old id stops
  resolving in the same statement that makes the new one valid
- One anti-forgery token per session, carried across regeneration
- Every load re-reads the users row; deactivation, expiry or role change
  made after login takes effect on the next request
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app, has_app_context
from sqlalchemy import update

from ..extensions import db
from ..errors import Unauthenticated
from ..models import BrowserSession, User
from . import entitlement_service
from authgate.time_utils import Clock, get_clock, to_utc_z


# Defaults when no app config is available
SESSION_IDLE_TIMEOUT = timedelta(minutes=30)
SESSION_ROTATION_INTERVAL = timedelta(hours=2)


@dataclass
class SessionContext:
    """Result of load_and_validate. user is None for anonymous sessions."""
    session: BrowserSession
    session_id: str
    user: User | None


def generate_session_id() -> str:
    """64-character hex string (32 bytes of entropy) handed to the client."""
    return secrets.token_hex(32)


def hash_session_id(session_id: str) -> str:
    return hashlib.sha256(session_id.encode('utf-8')).hexdigest()


def _idle_timeout() -> timedelta:
    if has_app_context():
        return current_app.config.get("SESSION_IDLE_TIMEOUT", SESSION_IDLE_TIMEOUT)
    return SESSION_IDLE_TIMEOUT


def _rotation_interval() -> timedelta:
    if has_app_context():
        return current_app.config.get("SESSION_ROTATION_INTERVAL", SESSION_ROTATION_INTERVAL)
    return SESSION_ROTATION_INTERVAL


def identity_payload(user: User) -> dict:
    """
    Account summary cached in the session.

    Package snapshot and entitlement end are carried for standard accounts only.
    """
    payload = {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "isActive": user.is_active,
    }
    if not user.is_admin:
        payload["package"] = user.package.to_summary() if user.package else None
        payload["packageEndDate"] = to_utc_z(user.package_end_date)
    return payload


def _get_by_id(session_id: str | None) -> BrowserSession | None:
    if not session_id:
        return None
    return db.session.query(BrowserSession).filter_by(
        sid_hash=hash_session_id(session_id)
    ).first()


def _new_session(
    user: User | None,
    now: datetime,
    ip_address: str | None,
    user_agent: str | None,
) -> tuple[BrowserSession, str]:
    session_id = generate_session_id()
    session = BrowserSession(
        sid_hash=hash_session_id(session_id),
        user_id=user.id if user else None,
        identity=identity_payload(user) if user else None,
        created_at=now,
        last_seen_at=now,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.session.add(session)
    db.session.commit()
    return session, session_id


def start_anonymous(
    ip_address: str | None = None,
    user_agent: str | None = None,
    clock: Clock | None = None,
) -> tuple[BrowserSession, str]:
    """
    Allocate a session with no identity (first interaction).

    Idle anonymous rows are swept in the same commit.
    """
    now = get_clock(clock).now()
    _purge_idle_anonymous(now)
    return _new_session(None, now, ip_address, user_agent)


def _purge_idle_anonymous(now: datetime) -> int:
    return db.session.query(BrowserSession).filter(
        BrowserSession.user_id.is_(None),
        BrowserSession.last_seen_at < now - _idle_timeout(),
    ).delete(synchronize_session=False)


def establish(
    user: User,
    ip_address: str | None = None,
    user_agent: str | None = None,
    clock: Clock | None = None,
) -> tuple[BrowserSession, str]:
    """
    Allocate a new authenticated session.

    Only called after password and entitlement checks have passed.
    Returns (session_record, plaintext_session_id).
    """
    return _new_session(user, get_clock(clock).now(), ip_address, user_agent)


def attach_identity(session_id: str, user: User) -> BrowserSession:
    """
    Put an identity on an existing (usually anonymous) session.

    Login calls this and then regenerate(), so the pre-login identifier can
    never be used to ride the authenticated session (fixation).
    """
    session = _get_by_id(session_id)
    if not session:
        raise Unauthenticated("Session not found")
    session.user_id = user.id
    session.identity = identity_payload(user)
    db.session.commit()
    return session


def regenerate(session_id: str, clock: Clock | None = None) -> str:
    """
    Issue a fresh identifier for the same session.

    Payload and anti-forgery token are untouched; created_at restarts the
    rotation clock. Raises Unauthenticated if the old id no longer resolves.
    """
    now = get_clock(clock).now()
    new_session_id = generate_session_id()

    result = db.session.execute(
        update(BrowserSession)
        .where(BrowserSession.sid_hash == hash_session_id(session_id))
        .values(
            sid_hash=hash_session_id(new_session_id),
            created_at=now,
            last_seen_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise Unauthenticated("Session not found")

    db.session.commit()
    # Rows loaded earlier in this request still hold the old hash
    db.session.expire_all()
    return new_session_id


def destroy(session_id: str | None) -> bool:
    """Invalidate immediately. Returns False if the id was unknown."""
    if not session_id:
        return False
    deleted = db.session.query(BrowserSession).filter_by(
        sid_hash=hash_session_id(session_id)
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted > 0


def _destroy_record(session: BrowserSession) -> None:
    db.session.delete(session)
    db.session.commit()


def load_and_validate(session_id: str | None, clock: Clock | None = None) -> SessionContext | None:
    """
    Resolve a session id for the current request.

    Returns None (and destroys the session where one existed) if:
    - the id is unknown
    - the session sat idle past SESSION_IDLE_TIMEOUT
    - the account was deleted, deactivated, or its entitlement lapsed

    On success refreshes the cached identity from the authoritative account
    row and touches last_seen_at.
    """
    session = _get_by_id(session_id)
    if not session:
        return None

    now = get_clock(clock).now()

    if now - session.last_seen_at > _idle_timeout():
        _destroy_record(session)
        return None

    user = None
    if session.user_id is not None:
        user = db.session.get(User, session.user_id)
        if not user or not entitlement_service.is_entitled(user, now):
            _destroy_record(session)
            return None
        session.identity = identity_payload(user)

    session.last_seen_at = now
    db.session.commit()

    return SessionContext(session=session, session_id=session_id, user=user)


def needs_rotation(session: BrowserSession, clock: Clock | None = None) -> bool:
    """Authenticated sessions are regenerated every SESSION_ROTATION_INTERVAL."""
    if not session.is_authenticated:
        return False
    return get_clock(clock).now() - session.created_at > _rotation_interval()


def ensure_csrf_token(session: BrowserSession) -> str:
    """Return the session's anti-forgery token, generating it on first need."""
    if not session.csrf_token:
        session.csrf_token = secrets.token_hex(32)
        db.session.commit()
    return session.csrf_token


def csrf_matches(session: BrowserSession | None, token: str | None) -> bool:
    if session is None or not session.csrf_token or not isinstance(token, str) or not token:
        return False
    return hmac.compare_digest(session.csrf_token, token)


def destroy_user_sessions(user_id: int) -> int:
    """Drop every browser session of an account. Caller commits."""
    return db.session.query(BrowserSession).filter(
        BrowserSession.user_id == user_id
    ).delete(synchronize_session=False)


def cleanup_idle_sessions(clock: Clock | None = None) -> int:
    """Delete sessions past the idle timeout (advisory sweep)."""
    cutoff = get_clock(clock).now() - _idle_timeout()
    deleted = db.session.query(BrowserSession).filter(
        BrowserSession.last_seen_at < cutoff
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted
