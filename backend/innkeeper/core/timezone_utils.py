"""
Timezone utilities for the hotel.

All persisted instants are UTC. Date windows (check-in day, end-of-day
checkout) are evaluated in the hotel's configured timezone.
"""

from datetime import date, datetime, time, timezone
from typing import Optional, cast

import pytz

from .config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and normalize aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_hotel_timezone() -> pytz.BaseTzInfo:
    return pytz.timezone(settings.hotel_timezone)


def hotel_date(value: datetime) -> date:
    """Calendar date of an instant as seen at the hotel."""
    aware = cast(datetime, ensure_utc(value))
    return aware.astimezone(get_hotel_timezone()).date()


def end_of_hotel_day(value: datetime) -> datetime:
    """Last representable instant (23:59:59.999999 local) of the hotel day containing value, in UTC."""
    tz = get_hotel_timezone()
    local_day = hotel_date(value)
    local_end = tz.localize(datetime.combine(local_day, time.max))
    return local_end.astimezone(timezone.utc)
