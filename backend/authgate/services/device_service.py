# Overview: Single-device binding for the desktop client.

"""
Device Binding

WHY: At most one desktop device may be valid per account. The binding lives
on the users row (not on tokens), so it outlives token expiry and covers
every token ever issued.

STATES:
- registered_device_id IS NULL -> next successful login claims it
- bound to X, presented X      -> accepted, no write
- bound to X, presented Y      -> DeviceMismatch (admin reset required)

CONCURRENCY: The first claim is a conditional UPDATE
(... WHERE registered_device_id IS NULL). Two near-simultaneous first logins
from different devices cannot both match the predicate, so exactly one wins.
Nothing here commits; the caller commits the claim together with whatever it
issues on the strength of it.
"""

from __future__ import annotations

import enum

from sqlalchemy import update

from ..extensions import db
from ..errors import DeviceMismatch, ValidationFailed
from ..models import User, DesktopToken


MAX_DEVICE_ID_LENGTH = 255


class BindOutcome(enum.Enum):
    CLAIMED = "claimed"   # account was unbound; this device now owns it
    MATCHED = "matched"   # account already bound to this device


def validate_device_id(device_id) -> str:
    if not isinstance(device_id, str) or not device_id.strip():
        raise ValidationFailed("device_id is required")
    device_id = device_id.strip()
    if len(device_id) > MAX_DEVICE_ID_LENGTH:
        raise ValidationFailed("device_id is too long")
    return device_id


def claim_device(user_id: int, device_id: str) -> bool:
    """
    Compare-and-set the binding from NULL to device_id.

    Returns True only if this call performed the transition.
    """
    result = db.session.execute(
        update(User)
        .where(User.id == user_id, User.registered_device_id.is_(None))
        .values(registered_device_id=device_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def bind_or_verify(user: User, device_id: str) -> BindOutcome:
    """
    Bind an unbound account to device_id, or confirm it is already bound to it.

    Raises DeviceMismatch when the account belongs to another device, including
    when another request claimed it between our read and our write.
    """
    device_id = validate_device_id(device_id)

    if user.registered_device_id is None:
        claimed = claim_device(user.id, device_id)
        # Pick up the winner's value if we lost the race
        db.session.refresh(user, ["registered_device_id"])
        if claimed:
            return BindOutcome.CLAIMED

    if user.registered_device_id == device_id:
        return BindOutcome.MATCHED

    raise DeviceMismatch()


def reset(user: User) -> int:
    """
    Clear the binding (admin only) and revoke the account's desktop tokens.

    Re-opens first-claim semantics. Returns the number of tokens revoked.
    Caller commits.
    """
    user.registered_device_id = None
    return db.session.query(DesktopToken).filter(
        DesktopToken.user_id == user.id
    ).delete(synchronize_session=False)
