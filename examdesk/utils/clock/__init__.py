from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from examdesk.utils.config import settings


class Clock:
    """Current civil time in one canonical zone.

    Both the exam-date match and the daily start window are evaluated
    against this clock, so they can never disagree about the timezone.
    `tz_name=None` uses the server's local zone.
    """

    def __init__(self, tz_name: str | None = None):
        self.tz = ZoneInfo(tz_name) if tz_name else None

    def now(self) -> datetime:
        if self.tz is None:
            return datetime.now().astimezone()
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()


class FixedClock(Clock):
    """Clock pinned to a single instant (seeding and tests)."""

    def __init__(self, instant: datetime):
        super().__init__()
        if instant.tzinfo is None:
            instant = instant.astimezone()
        self.instant = instant

    def now(self) -> datetime:
        return self.instant


def get_clock() -> Clock:
    return Clock(settings.exam_timezone)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Stored datetimes come back naive (UTC) unless the client is tz-aware."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
