"""
Time sources. Accrual is a function of "now", so every service takes a clock
instead of reading the wall clock directly.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in UTC"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Manually driven clock for tests and replays"""

    def __init__(self, start: Optional[datetime] = None):
        self._now = ensure_utc(start or datetime.now(timezone.utc))

    def now(self) -> datetime:
        return self._now

    def set(self, moment: datetime) -> None:
        self._now = ensure_utc(moment)

    def advance(self, days: int = 0, hours: int = 0, seconds: int = 0) -> datetime:
        self._now = self._now + timedelta(days=days, hours=hours, seconds=seconds)
        return self._now


def ensure_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC"""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)
