"""
Datetime utilities for the MedLog service.

Two kinds of time values flow through the system:
- Stamps written by the service (record modification time, medication
  transitions, log taps) are UTC and serialized as ISO 8601 with a 'Z' suffix.
- Dates entered by the user (visit date, medication start date, log date)
  are kept as the ISO strings they were entered as. Comparisons only look
  at their calendar date.

Usage:
    from core.datetime_utils import utc_now, format_iso, parse_calendar_date

    stamp = format_iso(utc_now())            # "2024-01-15T05:00:00Z"
    visit_day = parse_calendar_date("2024-01-15T10:30")  # date(2024, 1, 15)
"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

logger = logging.getLogger(__name__)


# =============================================================================
# CORE UTILITIES
# =============================================================================

def utc_now() -> datetime:
    """
    Get current datetime in UTC with timezone info.

    Returns:
        datetime: Current time as timezone-aware datetime in UTC.
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    - If datetime is naive (no timezone), assumes it's already UTC
    - If datetime has timezone, converts to UTC
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# =============================================================================
# PARSING
# =============================================================================

def parse_datetime(value: Union[str, datetime]) -> datetime:
    """
    Parse a datetime value to UTC datetime.

    Accepts a datetime object, an ISO 8601 string (with or without timezone,
    date-only allowed) or one of a few common formats.

    Raises:
        ValueError: If the value cannot be parsed.

    Examples:
        >>> parse_datetime("2024-01-15T10:30:00Z")
        datetime.datetime(2024, 1, 15, 10, 30, tzinfo=datetime.timezone.utc)
    """
    if isinstance(value, datetime):
        return to_utc(value)

    if not isinstance(value, str):
        raise ValueError(f"Expected datetime or string, got {type(value).__name__}")

    value = value.strip()

    try:
        if value.endswith('Z'):
            value = value[:-1] + '+00:00'
        return to_utc(datetime.fromisoformat(value))
    except ValueError:
        pass

    formats = [
        "%Y-%m-%d %H:%M:%S",      # 2024-01-15 10:30:00
        "%Y-%m-%d %H:%M",         # 2024-01-15 10:30
        "%Y/%m/%d %H:%M",         # 2024/01/15 10:30
        "%Y/%m/%d",               # 2024/01/15
        "%Y年%m月%d日",            # 2024年01月15日
    ]

    for fmt in formats:
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue

    raise ValueError(f"Cannot parse datetime: '{value}'")


def parse_datetime_safe(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse datetime with graceful error handling.

    Returns:
        Parsed datetime in UTC, or None if parsing fails or input is None.
    """
    if value is None or value == "":
        return None
    try:
        return parse_datetime(value)
    except ValueError as e:
        logger.warning(f"Failed to parse datetime '{value}': {e}")
        return None


def parse_calendar_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    """
    Extract the calendar date a user entered, ignoring any time part.

    The date is taken as written (no timezone shifting), so "2024-01-15T23:30+08:00"
    is still the 15th.

    Returns:
        The date, or None if the value is empty or unparseable.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if len(text) >= 10:
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            pass
    parsed = parse_datetime_safe(text)
    return parsed.date() if parsed else None


# =============================================================================
# FORMATTING
# =============================================================================

def format_iso(dt: datetime) -> str:
    """
    Format datetime to ISO 8601 string with UTC timezone.

    Example:
        >>> format_iso(datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc))
        '2024-01-15T10:30:00Z'
    """
    return to_utc(dt).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_date(d: date) -> str:
    """Format a calendar date as YYYY-MM-DD."""
    return d.strftime("%Y-%m-%d")


def add_days(d: date, days: int) -> date:
    """Shift a calendar date by a number of days."""
    return d + timedelta(days=days)
