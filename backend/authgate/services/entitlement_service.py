# Overview: Pure entitlement rules; no database or clock access.

"""
Entitlement Model

Answers "is this account allowed to operate now" from account state and an
explicit `now`. Callers obtain `now` from their injected Clock, so every
boundary (now == end, end + 1s) is testable without real delays.

Accounts are a tagged variant: admins have no entitlement window at all,
standard accounts always have one.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Union

from ..errors import AccountDeactivated, EntitlementExpired
from ..models import ROLE_ADMIN

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class AdminAccount:
    active: bool


@dataclass(frozen=True)
class StandardAccount:
    active: bool
    package_id: int | None
    window_end: datetime
    window_start: datetime | None = None


Account = Union[AdminAccount, StandardAccount]


def account_from_user(user) -> Account:
    """
    Build the domain variant from a users row.

    Raises ValueError for a standard account without an entitlement end,
    which the database constraint should already prevent.
    """
    if user.role == ROLE_ADMIN:
        return AdminAccount(active=bool(user.is_active))
    if user.package_end_date is None:
        raise ValueError(f"Standard account {user.id} has no entitlement window")
    return StandardAccount(
        active=bool(user.is_active),
        package_id=user.package_id,
        window_start=user.package_start_date,
        window_end=user.package_end_date,
    )


def _coerce(account) -> Account:
    if isinstance(account, (AdminAccount, StandardAccount)):
        return account
    return account_from_user(account)


def is_entitled(account, now: datetime) -> bool:
    """
    False if inactive; True for admins; otherwise now <= window_end.
    """
    account = _coerce(account)
    if not account.active:
        return False
    if isinstance(account, AdminAccount):
        return True
    return now <= account.window_end


def require_entitled(account, now: datetime) -> None:
    """Raise the specific Forbidden kind when the account is not entitled."""
    account = _coerce(account)
    if not account.active:
        raise AccountDeactivated()
    if not is_entitled(account, now):
        raise EntitlementExpired()


def days_until_expiry(account, now: datetime) -> int | None:
    """
    Ceiling of remaining whole days; negative once expired. None for admins.
    """
    account = _coerce(account)
    if isinstance(account, AdminAccount):
        return None
    remaining = (account.window_end - now).total_seconds()
    return math.ceil(remaining / SECONDS_PER_DAY)


def is_expiring_within(account, days: int, now: datetime) -> bool:
    """Active standard account whose window ends within the next `days` days."""
    account = _coerce(account)
    if isinstance(account, AdminAccount) or not account.active:
        return False
    return now <= account.window_end <= now + timedelta(days=days)
