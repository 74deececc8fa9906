"""
Period Formatter: display labels for metric aggregation periods.

Maps a (point in time, period type) pair to the label shown on trend charts
and report tables:

- daily:     "2024-03-05"
- weekly:    "Week 10"
- monthly:   "Mar 2024"
- quarterly: "Q1 2024"
- yearly:    "2024"
- custom:    full ISO timestamp (sortable)

Week numbering uses Sunday-start weeks where week 1 is the (possibly partial)
week containing January 1:

    n = ceil((day_of_year + weekday_of_jan1) / 7)

with day_of_year 1-based and weekday_of_jan1 0 for Sunday .. 6 for Saturday.
This is not ISO-8601 week numbering; around year boundaries the two can
disagree (e.g. Dec 31 may be "Week 53" here and ISO week 1).
"""

import math
from datetime import date, datetime
from typing import Union

from feedback_analytics.models.enums import PeriodType

# Fixed English abbreviations so labels do not depend on the process locale
_MONTH_ABBREVIATIONS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


def sunday_weekday(d: date) -> int:
    """Weekday index with 0=Sunday .. 6=Saturday."""
    return (d.weekday() + 1) % 7


def week_number(d: date) -> int:
    """Sunday-start week of the year; week 1 contains January 1."""
    jan1 = date(d.year, 1, 1)
    day_of_year = d.timetuple().tm_yday
    return math.ceil((day_of_year + sunday_weekday(jan1)) / 7)


def quarter_of(d: date) -> int:
    """Quarter number 1..4 for a date."""
    return math.ceil(d.month / 3)


def label(value: Union[date, datetime], period_type: Union[PeriodType, str]) -> str:
    """
    Format a period start as a display label.

    Args:
        value: Period start (date or naive datetime)
        period_type: Period granularity, enum member or its string value

    Returns:
        Label string. Unknown period types fall back to the ISO timestamp.
    """
    try:
        period = PeriodType(period_type)
    except ValueError:
        period = PeriodType.CUSTOM

    if period == PeriodType.DAILY:
        day = value.date() if isinstance(value, datetime) else value
        return day.isoformat()
    if period == PeriodType.WEEKLY:
        return f"Week {week_number(value)}"
    if period == PeriodType.MONTHLY:
        return f"{_MONTH_ABBREVIATIONS[value.month - 1]} {value.year:04d}"
    if period == PeriodType.QUARTERLY:
        return f"Q{quarter_of(value)} {value.year:04d}"
    if period == PeriodType.YEARLY:
        return f"{value.year:04d}"

    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    return value.isoformat()
