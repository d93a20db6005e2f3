from datetime import datetime, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from src.config import settings


def utc_now() -> datetime:
    """Server-side 'now' in UTC (aware)."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalise a stored timestamp to an aware UTC datetime.

    Backends without time zone support (SQLite) hand values back naive;
    they were written as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def service_timezone() -> tzinfo:
    """Time zone that defines calendar days for ticket validity and daily stats."""
    return ZoneInfo(settings.TIMEZONE)


def start_of_local_day(moment: datetime, tz: Optional[tzinfo] = None) -> datetime:
    local = moment.astimezone(tz or service_timezone())
    return local.replace(hour=0, minute=0, second=0, microsecond=0)
