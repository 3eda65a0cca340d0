"""
Standardized Date/Time Handling Utilities

Quest dates are calendar dates in the user's own timezone: a quest log
for "today" in Tokyo can be dated a day ahead of the same moment in UTC.

RULES:
- Store timestamps as timezone-aware UTC (use now_utc())
- Resolve "today" per user with get_today_date(user_timezone)
- Invalid or missing timezones fall back to DEFAULT_TIMEZONE, never raise
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fitquest.config import DEFAULT_TIMEZONE

logger = logging.getLogger(__name__)


def get_safe_timezone(timezone: Optional[str]) -> ZoneInfo:
    """
    Resolve an IANA timezone name, falling back to the default

    Args:
        timezone: IANA identifier such as 'America/Los_Angeles', or None

    Returns:
        ZoneInfo for the timezone, or for DEFAULT_TIMEZONE if invalid
    """
    if not timezone:
        return ZoneInfo(DEFAULT_TIMEZONE)

    try:
        return ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.warning(f"Invalid timezone '{timezone}', falling back to {DEFAULT_TIMEZONE}: {e}")
        return ZoneInfo(DEFAULT_TIMEZONE)


def now_utc() -> datetime:
    """Current datetime in UTC (timezone-aware)"""
    return datetime.now(ZoneInfo("UTC"))


def get_today_date(timezone: Optional[str] = None) -> date:
    """
    Today's calendar date in a timezone

    Example:
        # At 2026-01-18 23:00 UTC
        get_today_date("UTC")         # date(2026, 1, 18)
        get_today_date("Asia/Tokyo")  # date(2026, 1, 19)
    """
    return now_utc().astimezone(get_safe_timezone(timezone)).date()


def days_between(first: date, second: date) -> int:
    """Whole-day distance between two dates (order does not matter)"""
    return abs((second - first).days)


def previous_day(value: date) -> date:
    return value - timedelta(days=1)


def day_of_week(value: date) -> int:
    """Day of week with 0 = Sunday ... 6 = Saturday"""
    return (value.weekday() + 1) % 7
