"""
Standardized Date/Time Handling Utilities

Completion windows are UTC calendar days. Keep every timestamp aware:

CRITICAL RULES:
- Always store datetimes in DB as UTC (use to_utc())
- "Today" means the UTC day containing now_utc()
- A day window is half-open: [00:00 UTC, next 00:00 UTC)
- Never mix naive and aware datetimes
"""

import logging
from datetime import datetime, date, time, timedelta
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

UTC = ZoneInfo("UTC")


def now_utc() -> datetime:
    """
    Get current datetime in UTC (timezone-aware)

    Returns:
        Current datetime in UTC with timezone info
    """
    return datetime.now(UTC)


def to_utc(dt: datetime) -> datetime:
    """
    Convert datetime to UTC for database storage

    Naive datetimes are assumed to already be UTC.
    """
    if dt.tzinfo is None:
        logger.debug(f"Treating naive datetime {dt} as UTC")
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def utc_date(dt: datetime) -> date:
    """UTC calendar date of a timestamp"""
    return to_utc(dt).date()


def get_day_start_utc(date_obj: date) -> datetime:
    """Datetime at 00:00 UTC of the given date"""
    return datetime.combine(date_obj, time.min, tzinfo=UTC)


def utc_day_window(moment: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """
    Completion window containing `moment` (default: now)

    Returns:
        (start, end) with start at 00:00 UTC and end at the next 00:00 UTC,
        end exclusive
    """
    day = utc_date(moment or now_utc())
    start = get_day_start_utc(day)
    return start, start + timedelta(days=1)
