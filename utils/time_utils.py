"""
utils/time_utils.py

Purpose: Time and threshold helpers

- Reminder threshold calculations
- Timestamp formatting for chat messages
"""

from datetime import datetime, timedelta
from typing import Optional

ORDER_TIME_FORMAT = "%d.%m.%Y %H:%M"


def reminder_cutoff(now: Optional[datetime] = None, after_hours: int = 24) -> datetime:
    """
    Returns the moment before which a claimed order is due for a reminder.
    """
    now = now or datetime.utcnow()
    return now - timedelta(hours=after_hours)


def format_timestamp(dt: Optional[datetime], format_str: str = ORDER_TIME_FORMAT) -> str:
    """
    Formats a datetime object to string.
    """
    if not dt:
        return "N/A"
    return dt.strftime(format_str)
