from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from flask import current_app, has_app_context


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Clock:
    """
    Source of 'now' for every time comparison in the auth core.

    Services take a clock argument; when omitted they use the one registered
    on the application (see get_clock), so tests can freeze time per app.
    """

    def now(self) -> datetime:
        return utcnow()


class FrozenClock(Clock):
    """Clock pinned to a fixed instant; moved only by set() or advance()."""

    def __init__(self, at: datetime | None = None):
        self._now = at or utcnow()

    def now(self) -> datetime:
        return self._now

    def set(self, at: datetime) -> None:
        self._now = at

    def advance(self, **delta) -> datetime:
        self._now = self._now + timedelta(**delta)
        return self._now


_SYSTEM_CLOCK = Clock()


def get_clock(clock: Clock | None = None) -> Clock:
    """Resolve an explicit clock, else the app's clock, else the system clock."""
    if clock is not None:
        return clock
    if has_app_context():
        return current_app.extensions.get("clock", _SYSTEM_CLOCK)
    return _SYSTEM_CLOCK


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DD" is interpreted as the end of that day (23:59:59 UTC)
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    # Date-only package end dates cover the whole day
    if len(s) == 10:
        return dt.replace(hour=23, minute=59, second=59)

    # Normalize to UTC-naive
    if dt.tzinfo is None:
        # interpret naive as UTC
        return dt.replace(tzinfo=None)

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
