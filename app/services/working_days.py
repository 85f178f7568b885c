"""
Working-day arithmetic over inclusive calendar-date ranges.

Pure calendar math: no clock, no timezone, no I/O.
"""
from datetime import date, timedelta
from typing import AbstractSet, List, NamedTuple, Optional

from app.core.config import settings


class DayBreakdown(NamedTuple):
    total_days: int
    working_days: int
    weekend_days: int
    weekend_dates: List[date]


def is_weekend(day: date, weekend_days: Optional[AbstractSet[int]] = None) -> bool:
    if weekend_days is None:
        weekend_days = settings.leave.weekend_days
    return day.weekday() in weekend_days


def calculate_working_days(
    start_date: date,
    end_date: date,
    weekend_days: Optional[AbstractSet[int]] = None
) -> DayBreakdown:
    """
    Classify every day in [start_date, end_date] as working or weekend.

    Args:
        start_date: First day of the range (inclusive)
        end_date: Last day of the range (inclusive), not before start_date
        weekend_days: Python weekday numbers (Mon=0) of the weekly rest days;
            defaults to the institution policy from settings

    Raises:
        ValueError: if end_date is before start_date
    """
    if end_date < start_date:
        raise ValueError(f"end_date {end_date} is before start_date {start_date}")
    if weekend_days is None:
        weekend_days = settings.leave.weekend_days

    total_days = (end_date - start_date).days + 1

    weekend_dates = []
    current = start_date
    while current <= end_date:
        if current.weekday() in weekend_days:
            weekend_dates.append(current)
        current += timedelta(days=1)
    weekend_count = len(weekend_dates)

    return DayBreakdown(
        total_days=total_days,
        working_days=total_days - weekend_count,
        weekend_days=weekend_count,
        weekend_dates=weekend_dates,
    )
