import pytest
from datetime import date, timedelta

from app.core.config import parse_weekend_days
from app.services.working_days import calculate_working_days, is_weekend

FRI_SAT = {4, 5}
SAT_SUN = {5, 6}


def test_single_working_day():
    # 2025-06-02 is a Monday
    result = calculate_working_days(date(2025, 6, 2), date(2025, 6, 2), FRI_SAT)
    assert result.total_days == 1
    assert result.working_days == 1
    assert result.weekend_days == 0
    assert result.weekend_dates == []


def test_sunday_to_thursday_is_five_working_days():
    result = calculate_working_days(date(2025, 6, 1), date(2025, 6, 5), FRI_SAT)
    assert result.total_days == 5
    assert result.working_days == 5


def test_full_week_excludes_weekend():
    result = calculate_working_days(date(2025, 6, 1), date(2025, 6, 7), FRI_SAT)
    assert result.total_days == 7
    assert result.working_days == 5
    assert result.weekend_days == 2
    assert result.weekend_dates == [date(2025, 6, 6), date(2025, 6, 7)]


def test_weekend_only_range_has_zero_working_days():
    result = calculate_working_days(date(2025, 6, 6), date(2025, 6, 7), FRI_SAT)
    assert result.total_days == 2
    assert result.working_days == 0


def test_weekend_policy_is_configurable():
    # Same Fri-Sat range under a Saturday/Sunday weekend has one working day
    result = calculate_working_days(date(2025, 6, 6), date(2025, 6, 7), SAT_SUN)
    assert result.working_days == 1
    assert result.weekend_dates == [date(2025, 6, 7)]


def test_range_across_month_and_leap_day():
    # 2024-02-26 (Mon) .. 2024-03-03 (Sun), including Feb 29
    result = calculate_working_days(date(2024, 2, 26), date(2024, 3, 3), FRI_SAT)
    assert result.total_days == 7
    assert result.working_days == 5


def test_long_range_totals_are_consistent():
    start = date(2025, 1, 1)
    end = start + timedelta(days=364)
    result = calculate_working_days(start, end, FRI_SAT)
    assert result.total_days == 365
    assert result.working_days + result.weekend_days == result.total_days
    assert len(result.weekend_dates) == result.weekend_days
    assert all(d.weekday() in FRI_SAT for d in result.weekend_dates)


def test_reversed_range_raises():
    with pytest.raises(ValueError):
        calculate_working_days(date(2025, 6, 5), date(2025, 6, 1), FRI_SAT)


def test_default_policy_comes_from_settings():
    assert is_weekend(date(2025, 6, 6))  # Friday
    assert is_weekend(date(2025, 6, 7))  # Saturday
    assert not is_weekend(date(2025, 6, 8))  # Sunday


@pytest.mark.parametrize("raw,expected", [
    ("friday,saturday", {4, 5}),
    ("Saturday, Sunday", {5, 6}),
    ("4,5", {4, 5}),
])
def test_parse_weekend_days(raw, expected):
    assert parse_weekend_days(raw) == expected


def test_parse_weekend_days_rejects_unknown_names():
    with pytest.raises(ValueError):
        parse_weekend_days("funday")
