"""
Date keys: calendar days as canonical `YYYY-MM-DD` strings.

One time-zone policy for the whole process (settings.DATE_KEY_TIMEZONE).
The clock is injectable so tests can pin "now" without patching datetime.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from app.core.config import settings

DateKey = str
Clock = Callable[[], datetime]

DATE_KEY_FORMAT = "%Y-%m-%d"


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def to_date_key(day: date) -> DateKey:
    return day.strftime(DATE_KEY_FORMAT)


def parse_date_key(key: DateKey) -> date:
    return datetime.strptime(key, DATE_KEY_FORMAT).date()


class DateKeyProvider:
    """Resolves today / yesterday under a single fixed time zone."""

    def __init__(self, tz_name: str = "UTC", clock: Optional[Clock] = None):
        self.tz = ZoneInfo(tz_name)
        self._clock = clock or _utcnow

    def current_day(self) -> date:
        now = self._clock()
        if now.tzinfo is None:
            # Naive clocks are read as UTC.
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(self.tz).date()

    def today(self) -> DateKey:
        return to_date_key(self.current_day())

    def yesterday(self) -> DateKey:
        return to_date_key(self.current_day() - timedelta(days=1))

    def keys(self) -> tuple[DateKey, DateKey]:
        """(today, yesterday) from one clock read."""
        day = self.current_day()
        return to_date_key(day), to_date_key(day - timedelta(days=1))


def get_date_keys() -> DateKeyProvider:
    return DateKeyProvider(settings.DATE_KEY_TIMEZONE)
