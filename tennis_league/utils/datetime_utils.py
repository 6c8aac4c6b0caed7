"""
Datetime utility functions.
Parsing and formatting helpers for match dates and times.
"""

from datetime import date, datetime
from typing import Optional, Union
import pytz

from tennis_league.utils.constants import TIME_BLOCKS


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def parse_match_date(value: Union[str, date]) -> date:
    """
    Parse a match date given as an ISO string ("2025-01-10") or a date.

    Raises:
        ValueError: If the value is not a valid calendar date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Expected ISO date string, got {type(value).__name__}")
    try:
        return datetime.strptime(value.strip()[:10], "%Y-%m-%d").date()
    except ValueError:
        raise ValueError(f"Malformed date '{value}', expected YYYY-MM-DD")


def normalize_match_time(value: Optional[str]) -> Optional[str]:
    """
    Normalize a start time to "HH:MM". Accepts "H:MM", "HH:MM" and "HH:MM:SS".

    Returns None for blank input.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(text, fmt).strftime("%H:%M")
        except ValueError:
            continue
    raise ValueError(f"Malformed time '{value}', expected HH:MM")


def time_block_for(time_str: Optional[str]) -> Optional[str]:
    """
    Coarse time block for a "HH:MM" start time.

    Examples:
        >>> time_block_for("09:30")
        'Morning'
        >>> time_block_for("23:15") is None
        True
    """
    if not time_str:
        return None
    hour = int(time_str.split(":")[0])
    for name, start, end in TIME_BLOCKS:
        if start <= hour < end:
            return name
    return None
