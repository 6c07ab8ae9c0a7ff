"""
Tests for age and calendar arithmetic.
"""
from datetime import date, datetime, timedelta

import pytest

from babylog.models.age import (
    age_in_days, age_in_months, age_in_weeks, calendar_days_between,
    format_age, hours_between, is_same_day, start_of_day,
)


class TestDays:

    def test_age_in_days_floors(self):
        assert age_in_days(datetime(2025, 1, 1, 12), datetime(2025, 1, 3, 11)) == 1
        assert age_in_days(datetime(2025, 1, 1, 12), datetime(2025, 1, 3, 12)) == 2

    def test_accepts_dates(self):
        assert age_in_days(date(2025, 1, 1), date(2025, 1, 31)) == 30

    def test_age_in_weeks(self):
        birth = datetime(2025, 1, 1)
        assert age_in_weeks(birth, birth + timedelta(days=13)) == 1
        assert age_in_weeks(birth, birth + timedelta(days=14)) == 2

    def test_calendar_days_ignore_time_of_day(self):
        assert calendar_days_between(datetime(2025, 3, 1, 23, 30),
                                     datetime(2025, 3, 2, 0, 30)) == 1
        assert calendar_days_between(datetime(2025, 3, 2, 0, 10),
                                     datetime(2025, 3, 2, 23, 50)) == 0

    def test_same_day(self):
        assert is_same_day(datetime(2025, 3, 1, 0, 0), datetime(2025, 3, 1, 23, 59))
        assert not is_same_day(datetime(2025, 3, 1, 23, 59), datetime(2025, 3, 2, 0, 0))
        assert start_of_day(date(2025, 3, 1)) == datetime(2025, 3, 1)

    def test_hours_between(self):
        assert hours_between(datetime(2025, 3, 1, 23), datetime(2025, 3, 2, 1)) == 2.0


class TestMonths:

    def test_average_month_length(self):
        birth = datetime(2025, 1, 1)
        assert age_in_months(birth + timedelta(days=60.88), birth) == pytest.approx(2.0)

    def test_clamped_to_chart_range(self):
        birth = datetime(2020, 1, 1)
        assert age_in_months(datetime(2025, 1, 1), birth) == 24.0
        assert age_in_months(datetime(2019, 12, 1), birth) == 0.0


class TestFormatAge:

    @pytest.mark.parametrize("days,expected", [
        (0, '0 days'),
        (1, '1 day'),
        (29, '29 days'),
        (31, '1 month, 1 day'),
        (45, '1 month, 15 days'),
        (60, '2 months'),
    ])
    def test_format(self, days, expected):
        birth = datetime(2025, 1, 1)
        assert format_age(birth, birth + timedelta(days=days)) == expected
