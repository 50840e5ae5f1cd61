# Overview: Service-layer operations for admin entitlement management; encapsulates business logic and database work.

"""
Admin Entitlement Operations

WHY: Admins change who may use the product: they toggle accounts, delete
them, reassign packages and clear device bindings. These are plain writes;
nothing is pushed to live sessions. Sessions and tokens pick up the new
state on their next request, because every request re-reads the account row.

INVARIANTS:
- At least one admin account always exists (delete and bulk delete refuse
  to remove the last one; demotion is guarded in account_service)
- A package referenced by any account cannot be deleted
"""

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..errors import Conflict, ValidationFailed
from ..models import SecurityEvent, User, ROLE_USER
from . import account_service, desktop_token_service, device_service, session_service
from authgate.time_utils import Clock, get_clock


BULK_ACTIONS = ("activate", "deactivate", "delete")


def normalize_ids(user_ids) -> list[int]:
    if not isinstance(user_ids, (list, tuple, set)) or not user_ids:
        raise ValidationFailed("No users selected")
    try:
        return sorted({int(user_id) for user_id in user_ids})
    except (TypeError, ValueError):
        raise ValidationFailed("Invalid user id")


def bulk_set_active(user_ids, active: bool) -> int:
    """
    Flip is_active on many accounts.

    Flag-only update: existing sessions and tokens are rejected lazily on
    their next use. Returns the number of rows changed.
    """
    ids = normalize_ids(user_ids)
    updated = db.session.query(User).filter(User.id.in_(ids)).update(
        {User.is_active: bool(active)}, synchronize_session=False
    )
    db.session.commit()
    db.session.expire_all()
    return updated


def _purge_account(user_id: int) -> None:
    session_service.destroy_user_sessions(user_id)
    desktop_token_service.revoke_user_tokens(user_id)
    # Keep the audit trail, detached from the account
    db.session.query(SecurityEvent).filter(SecurityEvent.user_id == user_id).update(
        {SecurityEvent.user_id: None}, synchronize_session=False
    )


def delete_users(user_ids) -> int:
    """
    Delete many accounts with their sessions and tokens.

    Raises Conflict, deleting nothing, when the selection covers every admin.
    Returns the number of accounts deleted.
    """
    ids = normalize_ids(user_ids)
    users = db.session.query(User).filter(User.id.in_(ids)).all()
    if not users:
        return 0

    admins_selected = sum(1 for user in users if user.is_admin)
    if admins_selected and admins_selected >= account_service.count_admins():
        raise Conflict("Cannot delete the last admin user")

    try:
        for user in users:
            _purge_account(user.id)
            db.session.delete(user)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return len(users)


def delete_user(user_id: int) -> None:
    """Delete one account. Same last-admin rule as delete_users."""
    account_service.require_user(user_id)
    delete_users([user_id])


def bulk_action(action: str, user_ids) -> dict:
    """
    Dispatch an admin bulk action: activate, deactivate or delete.

    Returns {"action": ..., "affected": n}.
    """
    if action not in BULK_ACTIONS:
        raise ValidationFailed("Invalid action")

    if action == "delete":
        affected = delete_users(user_ids)
    else:
        affected = bulk_set_active(user_ids, active=(action == "activate"))

    return {"action": action, "affected": affected}


def reset_device(user_id: int) -> int:
    """
    Clear an account's device binding so the next desktop login claims it.

    Returns the number of desktop tokens revoked alongside.
    """
    user = account_service.require_user(user_id)
    revoked = device_service.reset(user)
    db.session.commit()
    return revoked


def assign_package(
    user_id: int,
    package_id: int,
    end_date: datetime,
    start_date: datetime | None = None,
    clock: Clock | None = None,
) -> User:
    """
    Move a standard account onto a package with a new entitlement window.

    The new window applies from the account's next request.
    """
    user = account_service.require_user(user_id)
    if user.role != ROLE_USER:
        raise ValidationFailed("Packages apply to standard users only")
    if end_date is None:
        raise ValidationFailed("Please enter a valid end date")

    package = account_service.require_package(package_id)

    user.package_id = package.id
    user.package_start_date = start_date or get_clock(clock).now()
    user.package_end_date = end_date
    db.session.commit()
    return user


def delete_package(package_id: int) -> None:
    """Refuses with Conflict while any account references the package."""
    account_service.delete_package(package_id)
