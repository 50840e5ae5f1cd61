# Overview: Service-layer operations for desktop bearer tokens; encapsulates business logic and database work.

"""
Desktop Token Management

WHY: The desktop client has no browser cookie, so it carries an opaque
bearer token instead. Tokens are never self-describing: every use is an
authoritative lookup, so revocation is immediate and needs no blacklist.

VALIDITY: a token is valid only while
- it exists and has not passed its TTL (DESKTOP_TOKEN_TTL)
- the owning account is still entitled
- the account's current registered_device_id equals the device recorded on
  the token; a new device claiming the account supersedes all older tokens

LOGIN ORDER: credential -> entitlement -> device binding -> issue. The
binding write happens only after every read-only check has passed, and the
binding, the token and last_login_at are committed together.
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import timedelta

from flask import current_app, has_app_context

from ..extensions import db
from ..errors import (
    AuthGateError,
    InvalidCredentials,
    InvalidToken,
    ValidationFailed,
)
from ..models import DesktopToken, User
from . import account_service, auth_service, device_service, entitlement_service
from .device_service import BindOutcome
from authgate.time_utils import Clock, get_clock


DESKTOP_TOKEN_TTL = timedelta(days=30)


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    Returns 64-character hex string (32 bytes of entropy).
    This is the plaintext token sent to client (never stored).
    """
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    WHY SHA-256 not bcrypt: Tokens are already high-entropy (unlike passwords).
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _token_ttl() -> timedelta:
    if has_app_context():
        return current_app.config.get("DESKTOP_TOKEN_TTL", DESKTOP_TOKEN_TTL)
    return DESKTOP_TOKEN_TTL


def _lookup(token: str | None) -> DesktopToken | None:
    if not isinstance(token, str) or not token:
        return None
    return db.session.query(DesktopToken).filter_by(token_hash=hash_token(token)).first()


def revoke_user_tokens(user_id: int, except_device: str | None = None) -> int:
    """
    Delete an account's tokens, optionally keeping those of one device.

    Caller commits.
    """
    query = db.session.query(DesktopToken).filter(DesktopToken.user_id == user_id)
    if except_device is not None:
        query = query.filter(DesktopToken.device_id != except_device)
    return query.delete(synchronize_session=False)


def login(
    username: str,
    password: str,
    device_id: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
    clock: Clock | None = None,
) -> tuple[DesktopToken, str, User]:
    """
    Authenticate a desktop client and issue a bearer token.

    Returns (token_record, plaintext_token, user).

    Raises, in priority order:
        ValidationFailed: missing username/password/device_id
        InvalidCredentials: unknown account or wrong password (same message)
        AccountDeactivated / EntitlementExpired: account not entitled
        DeviceMismatch: account is bound to another device
    """
    if not isinstance(username, str) or not isinstance(password, str) or not username or not password:
        raise ValidationFailed("username and password required")
    device_id = device_service.validate_device_id(device_id)

    now = get_clock(clock).now()

    user = account_service.get_user_by_username(username)
    if not auth_service.check_credentials(user, password):
        raise InvalidCredentials()

    user_id = user.id
    try:
        entitlement_service.require_entitled(user, now)
        outcome = device_service.bind_or_verify(user, device_id)
        if outcome is BindOutcome.CLAIMED:
            # Leftovers from a previous binding can never be valid again
            revoke_user_tokens(user.id, except_device=device_id)

        plaintext = generate_token()
        record = DesktopToken(
            token_hash=hash_token(plaintext),
            user_id=user.id,
            device_id=device_id,
            issued_at=now,
            expires_at=now + _token_ttl(),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.session.add(record)
        account_service.record_login(user, clock=clock)
        db.session.commit()
    except AuthGateError as exc:
        db.session.rollback()
        exc.user_id = user_id
        raise
    except Exception:
        db.session.rollback()
        raise

    return record, plaintext, user


def verify(token: str | None, clock: Clock | None = None) -> User:
    """
    Resolve a bearer token to its account.

    Raises:
        ValidationFailed: no token supplied
        InvalidToken: unknown, past TTL, or superseded by another device (401)
        AccountDeactivated / EntitlementExpired: account no longer entitled (403)

    Tokens that fail for any reason other than "unknown" are deleted, so the
    next attempt starts clean.
    """
    if not isinstance(token, str) or not token:
        raise ValidationFailed("Token is required")

    record = _lookup(token)
    if not record:
        raise InvalidToken()

    now = get_clock(clock).now()
    user = record.user

    try:
        if record.expires_at < now:
            raise InvalidToken(reason="token_expired")
        if user is None:
            raise InvalidToken()
        entitlement_service.require_entitled(user, now)
        if user.registered_device_id != record.device_id:
            raise InvalidToken(reason="device_superseded")
    except AuthGateError as exc:
        exc.user_id = record.user_id
        _drop(record)
        raise

    record.last_used_at = now
    db.session.commit()
    return user


def logout(token: str | None) -> int:
    """
    Remove a token. The account's device binding is left alone; clearing it
    is an admin action.

    Returns the id of the account the token belonged to.
    """
    if not isinstance(token, str) or not token:
        raise ValidationFailed("Token is required")
    record = _lookup(token)
    if not record:
        raise InvalidToken()
    user_id = record.user_id
    _drop(record)
    return user_id


def _drop(record: DesktopToken) -> None:
    db.session.delete(record)
    db.session.commit()


def cleanup_expired_tokens(clock: Clock | None = None) -> int:
    """Delete tokens past their TTL."""
    deleted = db.session.query(DesktopToken).filter(
        DesktopToken.expires_at < get_clock(clock).now()
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted
