from datetime import date, datetime, time, timezone
from typing import Protocol
from zoneinfo import ZoneInfo

from app.config.settings import settings


def to_naive_utc(dt: datetime) -> datetime:
    """
    Convert a datetime object to naive UTC (no timezone info).

    Args:
        dt: Datetime object to convert, naive values are assumed to be UTC already

    Returns:
        datetime: Naive UTC datetime
    """
    if dt.tzinfo is None:
        return dt
    utc_dt = dt.astimezone(timezone.utc)
    return utc_dt.replace(tzinfo=None)


def from_naive_utc(dt: datetime, zone: ZoneInfo = ZoneInfo("UTC")) -> datetime:
    """
    Convert a naive UTC datetime (no timezone info) to a timezone-aware datetime.

    Args:
        dt: Naive UTC datetime to convert
        zone: Timezone to use for the conversion (default: UTC)

    Returns:
        datetime: Timezone-aware datetime
    """
    if dt.tzinfo is not None:
        raise ValueError("Input datetime must be naive (no timezone info)")
    return dt.replace(tzinfo=timezone.utc).astimezone(zone)


def start_of_day(day: date, zone: ZoneInfo) -> datetime:
    """First instant of ``day`` in ``zone``."""
    return datetime.combine(day, time.min, tzinfo=zone)


def end_of_day(day: date, zone: ZoneInfo) -> datetime:
    """
    Last instant of ``day`` in ``zone`` (23:59:59.999999).

    ``fold=1`` picks the later of two ambiguous wall times, so a repeated
    23:xx hour (clocks turned back at midnight) stays inside ``day``.
    """
    return datetime.combine(day, time.max, tzinfo=zone).replace(fold=1)


class Clock(Protocol):
    """Source of "today" for date defaulting."""

    zone: ZoneInfo

    def today(self) -> date: ...


class ZoneClock:
    """Wall clock reading the current date in a fixed time zone."""

    def __init__(self, zone: ZoneInfo):
        self.zone = zone

    def today(self) -> date:
        return datetime.now(self.zone).date()


class FixedClock:
    """Clock pinned to a single date, used by tests and replays."""

    def __init__(self, fixed_today: date, zone: ZoneInfo):
        self.fixed_today = fixed_today
        self.zone = zone

    def today(self) -> date:
        return self.fixed_today


def get_clock() -> Clock:
    """Clock for the configured application time zone."""
    return ZoneClock(ZoneInfo(settings.TIME_ZONE))
