"""Clock abstraction so expiry boundaries can be tested deterministically"""

from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    """Source of the current time"""

    def now(self) -> datetime:
        """Return the current timezone-aware UTC time"""
        ...


class SystemClock:
    """Wall clock, always UTC"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Tag a naive datetime as UTC or convert an aware one to UTC.

    SQLite drops tzinfo on the way back, every timestamp stored by this
    service is UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
