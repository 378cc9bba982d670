"""Daily rollover reference: 20:00 in a fixed regional time zone.

Every deadline is computed from this reference, never from a client clock.
Brasília (America/Sao_Paulo) has had no DST since 2019, so 20:00 local is
23:00 UTC year-round.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo

from uticoins.config import get_settings


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and normalize aware ones."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class RolloverClock:
    """Maps instants to business dates and business dates to rollover instants."""

    tz_name: str = "America/Sao_Paulo"
    rollover_hour: int = 20

    def __post_init__(self) -> None:
        if not 0 <= self.rollover_hour <= 23:
            raise ValueError(f"rollover_hour must be in [0, 23], got {self.rollover_hour}")

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.tz_name)

    def business_date(self, now: datetime) -> date:
        """The regional date of the most recent rollover at or before ``now``."""
        local = ensure_utc(now).astimezone(self.tz)
        if local.hour < self.rollover_hour:
            return local.date() - timedelta(days=1)
        return local.date()

    def rollover_at(self, day: date) -> datetime:
        """Instant (UTC) at which ``day``'s code opens."""
        local = datetime.combine(day, time(self.rollover_hour), tzinfo=self.tz)
        return local.astimezone(timezone.utc)

    def next_rollover(self, now: datetime) -> datetime:
        """Instant (UTC) of the next rollover strictly after ``now``."""
        return self.rollover_at(self.business_date(now) + timedelta(days=1))

    def seconds_until_next_rollover(self, now: datetime) -> int:
        delta = self.next_rollover(now) - ensure_utc(now)
        return max(0, int(delta.total_seconds()))

    def utc_rollover_hour(self, day: date | None = None) -> int:
        """UTC hour of the rollover, for scheduling cron jobs."""
        if day is None:
            day = datetime.now(timezone.utc).date()
        return self.rollover_at(day).hour


@lru_cache
def get_rollover_clock() -> RolloverClock:
    """Rollover clock built from settings (cached)."""
    settings = get_settings()
    return RolloverClock(tz_name=settings.rollover_timezone, rollover_hour=settings.rollover_hour)
