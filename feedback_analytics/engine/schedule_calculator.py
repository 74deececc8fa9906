"""
Schedule Calculator: next fire-time for a recurring report.

Pure function of (now, schedule). The candidate instant is always built on
now's calendar day at the schedule's HH:mm, then moved to the rule's target
day. Whenever the candidate is not strictly after now it is pushed one
recurrence step forward, so repeated polls always make progress.

Calendar rules:
- daily:     today at time, else tomorrow
- weekly:    next day_of_week (0=Sunday) at time, at most 7 days out
- monthly:   day_of_month of this month at time, else of next month. A day
             past the end of the month rolls into the following month
             (day 31 in April is May 1).
- quarterly: 1st of the current quarter's first month, else of the next
             quarter's first month
- yearly:    January 1 of this year, else of next year
- manual:    never fires

Arithmetic is timezone-naive; a schedule's ``timezone`` is not applied.
Inputs are assumed to be validated (see ``validate_schedule``).
"""

from datetime import datetime, timedelta
from typing import Optional

from feedback_analytics.models.enums import ScheduleFrequency
from feedback_analytics.models.schedules import ScheduleDescriptor

from .period_formatter import sunday_weekday


def _month_day_overflowing(
    year: int, month0: int, day: int, hour: int, minute: int
) -> datetime:
    """
    Build year/month/day at hour:minute, letting month and day overflow.

    month0 is 0-indexed and may exceed 11 (rolls into later years). A day
    beyond the month's length rolls into the following month.
    """
    year += month0 // 12
    month = month0 % 12 + 1
    return datetime(year, month, 1, hour, minute) + timedelta(days=day - 1)


def _at_time(now: datetime, hour: int, minute: int) -> datetime:
    return now.replace(hour=hour, minute=minute, second=0, microsecond=0)


def next_fire_time(now: datetime, schedule: Optional[ScheduleDescriptor]) -> Optional[datetime]:
    """
    Compute the next instant at which a schedule fires.

    Args:
        now: Reference instant (naive local time)
        schedule: Validated schedule descriptor, or None

    Returns:
        The earliest fire instant strictly after now, or None for manual
        (or absent) schedules
    """
    if schedule is None or schedule.frequency == ScheduleFrequency.MANUAL:
        return None

    # Wall-clock arithmetic; an aware now keeps its tzinfo on the result
    tzinfo = now.tzinfo
    now = now.replace(tzinfo=None)

    hour, minute = schedule.hour_minute
    candidate = _at_time(now, hour, minute)
    frequency = schedule.frequency

    if frequency == ScheduleFrequency.DAILY:
        if candidate <= now:
            candidate += timedelta(days=1)

    elif frequency == ScheduleFrequency.WEEKLY:
        days_until = (schedule.day_of_week - sunday_weekday(candidate) + 7) % 7
        candidate += timedelta(days=days_until)
        if candidate <= now:
            candidate += timedelta(days=7)

    elif frequency == ScheduleFrequency.MONTHLY:
        month0 = candidate.month - 1
        candidate = _month_day_overflowing(
            candidate.year, month0, schedule.day_of_month, hour, minute
        )
        if candidate <= now:
            candidate = _month_day_overflowing(
                now.year, month0 + 1, schedule.day_of_month, hour, minute
            )

    elif frequency == ScheduleFrequency.QUARTERLY:
        quarter_start0 = ((now.month - 1) // 3) * 3
        candidate = _month_day_overflowing(now.year, quarter_start0, 1, hour, minute)
        if candidate <= now:
            candidate = _month_day_overflowing(now.year, quarter_start0 + 3, 1, hour, minute)

    elif frequency == ScheduleFrequency.YEARLY:
        candidate = datetime(now.year, 1, 1, hour, minute)
        if candidate <= now:
            candidate = datetime(now.year + 1, 1, 1, hour, minute)

    return candidate.replace(tzinfo=tzinfo)
