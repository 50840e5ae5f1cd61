# Overview: Service-layer operations for credentials; hashing and verification only.

"""
Credential Verifier

WHY: Secrets are stored only as salted bcrypt hashes. Verification is a
boolean "match / no match"; malformed hashes and unknown accounts look
exactly like a wrong password, including in timing.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12, BCRYPT_ROUNDS config)
- Minimum 6 characters required
- Hashing happens only when the secret changes (account_service.set_password)
"""

import bcrypt
from flask import current_app, has_app_context

from ..errors import ValidationFailed


DEFAULT_ROUNDS = 12
MIN_PASSWORD_LENGTH = 6

# Lazily built hash used to burn the same bcrypt time for unknown accounts
_dummy_hash: str | None = None


def validate_password(password: str) -> None:
    """
    Validate password meets the minimum policy.

    Raises ValidationFailed if requirements not met.
    """
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")


def _rounds(rounds: int | None) -> int:
    if rounds is not None:
        return rounds
    if has_app_context():
        return int(current_app.config.get("BCRYPT_ROUNDS", DEFAULT_ROUNDS))
    return DEFAULT_ROUNDS


def hash_password(password: str, rounds: int | None = None) -> str:
    """
    Hash password using bcrypt.

    WHY: Cost factor 12 keeps a single verification in the tens of
    milliseconds while making offline brute force expensive.
    """
    salt = bcrypt.gensalt(rounds=_rounds(rounds))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    Returns True if password matches hash, False otherwise. Never raises:
    a malformed hash is indistinguishable from a wrong password.

    WHY timing-safe: bcrypt.checkpw() compares in constant time.
    """
    if not isinstance(password, str) or not isinstance(password_hash, str):
        return False
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except (ValueError, TypeError):
        return False


def _get_dummy_hash() -> str:
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = hash_password("authgate-dummy-secret")
    return _dummy_hash


def check_credentials(user, password: str) -> bool:
    """
    Verify a presented secret for a possibly-missing account.

    When user is None a verification against a dummy hash still runs so the
    response time does not reveal whether the account exists.
    """
    if user is None:
        verify_password(password or "", _get_dummy_hash())
        return False
    return verify_password(password, user.password_hash)
