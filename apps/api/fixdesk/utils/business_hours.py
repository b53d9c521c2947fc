"""Business-day helpers with US federal holiday support."""

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import holidays

BUSINESS_HOURS_START = 8
BUSINESS_HOURS_END = 18


@lru_cache(maxsize=10)
def get_us_holidays(year: int) -> set:
    """Cache holiday sets per year for performance."""
    return set(holidays.US(years=year).keys())


def is_business_day(dt: datetime) -> bool:
    """Check if date is a business day (Mon-Fri, not a holiday)."""
    if dt.weekday() >= 5:  # Weekend
        return False
    if dt.date() in get_us_holidays(dt.year):
        return False
    return True


def next_business_day_at(dt: datetime, hour: int) -> datetime:
    """Return the next business day after dt at the given local hour."""
    candidate = dt.replace(hour=hour, minute=0, second=0, microsecond=0) + timedelta(days=1)
    while not is_business_day(candidate):
        candidate += timedelta(days=1)
    return candidate


def resolve_zone(tz_name: str | None):
    """ZoneInfo for tz_name, UTC when unset or unknown."""
    if not tz_name:
        return timezone.utc
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc
