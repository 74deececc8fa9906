"""
Unit tests for next fire-time computation.

Reference instant for most tests is Friday 2024-03-15 10:00.
"""

from datetime import datetime, timezone

import pytest

from feedback_analytics.engine.schedule_calculator import next_fire_time
from tests.conftest import REFERENCE_NOW, make_schedule


# ============================================================================
# Daily
# ============================================================================


class TestDaily:
    def test_daily_time_later_today_fires_today(self):
        result = next_fire_time(REFERENCE_NOW, make_schedule("daily", "11:00"))
        assert result == datetime(2024, 3, 15, 11, 0)

    def test_daily_time_already_passed_fires_tomorrow(self):
        result = next_fire_time(REFERENCE_NOW, make_schedule("daily", "09:00"))
        assert result == datetime(2024, 3, 16, 9, 0)

    def test_daily_exact_tie_steps_forward(self):
        """A fire-time equal to now is never returned."""
        result = next_fire_time(REFERENCE_NOW, make_schedule("daily", "10:00"))
        assert result == datetime(2024, 3, 16, 10, 0)

    def test_daily_seconds_are_zeroed(self):
        now = datetime(2024, 3, 15, 8, 59, 59, 999999)
        result = next_fire_time(now, make_schedule("daily", "09:00"))
        assert result == datetime(2024, 3, 15, 9, 0, 0, 0)

    def test_daily_rolls_over_year_end(self):
        now = datetime(2024, 12, 31, 23, 30)
        result = next_fire_time(now, make_schedule("daily", "06:15"))
        assert result == datetime(2025, 1, 1, 6, 15)


# ============================================================================
# Weekly
# ============================================================================


class TestWeekly:
    def test_weekly_later_weekday_this_week(self):
        # Monday is 3 days after Friday
        result = next_fire_time(REFERENCE_NOW, make_schedule("weekly", "09:00", dayOfWeek=1))
        assert result == datetime(2024, 3, 18, 9, 0)

    def test_weekly_same_weekday_time_passed_fires_next_week(self):
        result = next_fire_time(REFERENCE_NOW, make_schedule("weekly", "09:00", dayOfWeek=5))
        assert result == datetime(2024, 3, 22, 9, 0)

    def test_weekly_same_weekday_time_ahead_fires_today(self):
        result = next_fire_time(REFERENCE_NOW, make_schedule("weekly", "11:00", dayOfWeek=5))
        assert result == datetime(2024, 3, 15, 11, 0)

    def test_weekly_sunday_is_zero(self):
        result = next_fire_time(REFERENCE_NOW, make_schedule("weekly", "08:00", dayOfWeek=0))
        assert result == datetime(2024, 3, 17, 8, 0)
        assert result.weekday() == 6

    def test_weekly_result_within_seven_days(self):
        for day in range(7):
            result = next_fire_time(REFERENCE_NOW, make_schedule("weekly", "10:00", dayOfWeek=day))
            assert REFERENCE_NOW < result <= datetime(2024, 3, 22, 10, 0)
            assert (result.weekday() + 1) % 7 == day


# ============================================================================
# Monthly
# ============================================================================


class TestMonthly:
    def test_monthly_day_ahead_this_month(self):
        result = next_fire_time(REFERENCE_NOW, make_schedule("monthly", "09:00", dayOfMonth=20))
        assert result == datetime(2024, 3, 20, 9, 0)

    def test_monthly_day_passed_fires_next_month(self):
        result = next_fire_time(REFERENCE_NOW, make_schedule("monthly", "09:00", dayOfMonth=10))
        assert result == datetime(2024, 4, 10, 9, 0)

    def test_monthly_same_day_time_passed_fires_next_month(self):
        result = next_fire_time(REFERENCE_NOW, make_schedule("monthly", "09:00", dayOfMonth=15))
        assert result == datetime(2024, 4, 15, 9, 0)

    def test_monthly_day_31_in_april_rolls_into_may(self):
        now = datetime(2024, 4, 15, 10, 0)
        result = next_fire_time(now, make_schedule("monthly", "09:00", dayOfMonth=31))
        assert result == datetime(2024, 5, 1, 9, 0)

    def test_monthly_day_31_overflows_february_in_leap_year(self):
        now = datetime(2024, 1, 31, 10, 0)
        result = next_fire_time(now, make_schedule("monthly", "09:00", dayOfMonth=31))
        assert result == datetime(2024, 3, 2, 9, 0)

    def test_monthly_december_rolls_into_next_year(self):
        now = datetime(2024, 12, 20, 10, 0)
        result = next_fire_time(now, make_schedule("monthly", "09:00", dayOfMonth=5))
        assert result == datetime(2025, 1, 5, 9, 0)


# ============================================================================
# Quarterly / Yearly
# ============================================================================


class TestQuarterly:
    def test_quarterly_after_quarter_start_fires_next_quarter(self):
        result = next_fire_time(REFERENCE_NOW, make_schedule("quarterly", "09:00"))
        assert result == datetime(2024, 4, 1, 9, 0)

    def test_quarterly_on_quarter_start_before_time(self):
        now = datetime(2024, 10, 1, 8, 0)
        result = next_fire_time(now, make_schedule("quarterly", "09:00"))
        assert result == datetime(2024, 10, 1, 9, 0)

    def test_quarterly_last_quarter_rolls_into_next_year(self):
        now = datetime(2024, 11, 5, 12, 0)
        result = next_fire_time(now, make_schedule("quarterly", "09:00"))
        assert result == datetime(2025, 1, 1, 9, 0)


class TestYearly:
    def test_yearly_after_new_year_fires_next_year(self):
        result = next_fire_time(REFERENCE_NOW, make_schedule("yearly", "09:00"))
        assert result == datetime(2025, 1, 1, 9, 0)

    def test_yearly_on_new_year_before_time(self):
        now = datetime(2024, 1, 1, 8, 0)
        result = next_fire_time(now, make_schedule("yearly", "09:00"))
        assert result == datetime(2024, 1, 1, 9, 0)


# ============================================================================
# Manual, absent and timezone handling
# ============================================================================


class TestNoFireTime:
    def test_manual_schedule_never_fires(self):
        assert next_fire_time(REFERENCE_NOW, make_schedule("manual", time=None)) is None

    def test_manual_schedule_with_time_never_fires(self):
        assert next_fire_time(REFERENCE_NOW, make_schedule("manual", "09:00")) is None

    def test_absent_schedule_never_fires(self):
        assert next_fire_time(REFERENCE_NOW, None) is None


@pytest.mark.parametrize(
    "frequency,fields",
    [
        ("daily", {}),
        ("weekly", {"dayOfWeek": 2}),
        ("monthly", {"dayOfMonth": 31}),
        ("quarterly", {}),
        ("yearly", {}),
    ],
)
def test_aware_now_keeps_tzinfo(frequency, fields):
    now = REFERENCE_NOW.replace(tzinfo=timezone.utc)
    result = next_fire_time(now, make_schedule(frequency, "09:00", **fields))
    assert result.tzinfo is timezone.utc
    assert result > now


def test_timezone_field_is_not_applied():
    plain = next_fire_time(REFERENCE_NOW, make_schedule("daily", "09:00"))
    zoned = next_fire_time(
        REFERENCE_NOW, make_schedule("daily", "09:00", timezone="America/New_York")
    )
    assert plain == zoned
