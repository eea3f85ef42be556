"""
Calendar date helpers shared by the scheduler, scanner and report.
"""

from datetime import date, datetime
from typing import Any

LOG_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
REPORT_DATE_FORMAT = "%d %B, %Y"


def format_timestamp(value: datetime | date | None = None) -> str:
    """Format a moment as `YYYY-MM-DD HH:MM:SS` (now when omitted)."""
    value = value or datetime.now()
    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    return value.strftime(LOG_TIMESTAMP_FORMAT)


def format_report_date(value: date) -> str:
    """Format a date as `DD Month, YYYY`."""
    return value.strftime(REPORT_DATE_FORMAT)


def is_same_calendar_day(first: date, second: date) -> bool:
    """True when both fall on the same day, month and year."""
    return (first.day, first.month, first.year) == (second.day, second.month, second.year)


def is_same_day_of_year(first: date, second: date) -> bool:
    """True when both share day-of-month and month; year is ignored."""
    return (first.day, first.month) == (second.day, second.month)


def _local_date(value: datetime) -> date:
    """Calendar date of value in local time; naive values are already local."""
    if value.tzinfo is not None:
        value = value.astimezone()
    return value.date()


def parse_calendar_date(value: Any) -> date | None:
    """
    Coerce a stored metadata value into a date.

    Accepts date/datetime objects and ISO-8601 strings (a trailing "Z" is
    allowed). Timezone-aware values are read in local time. Returns None
    for empty or unparseable values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _local_date(value)
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    try:
        return _local_date(datetime.fromisoformat(text))
    except ValueError:
        pass
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None
