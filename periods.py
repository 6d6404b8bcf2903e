from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from models import TimePeriod

EARLIEST = date(1970, 1, 1)
LATEST = date(9999, 12, 31)


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    def contains(self, value: date) -> bool:
        return self.start <= value <= self.end


def week_start(value: date) -> date:
    return value - timedelta(days=value.weekday())


def month_start(value: date) -> date:
    return value.replace(day=1)


def next_month_start(value: date) -> date:
    first = value.replace(day=1)
    if first.month == 12:
        return first.replace(year=first.year + 1, month=1)
    return first.replace(month=first.month + 1)


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or date.today()
    if not period or period == "all":
        return Period("all", EARLIEST, LATEST)
    if period == "future":
        return Period("future", today + timedelta(days=1), LATEST)
    if period == "past":
        return Period("past", EARLIEST, today)
    if period == "today":
        return Period("today", today, today)
    if period == "this_week":
        first = week_start(today)
        return Period("this_week", first, first + timedelta(days=6))
    if period == "last_month":
        first_this = today.replace(day=1)
        last_month_end = first_this - date.resolution
        last_month_start = last_month_end.replace(day=1)
        return Period("last_month", last_month_start, last_month_end)
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)
    if period != "this_month":
        raise ValueError(f"Unknown period: {period}")

    first = month_start(today)
    end_this = next_month_start(first) - date.resolution
    return Period("this_month", first, end_this)


def period_start_for(period: TimePeriod, value: date) -> date:
    """Start of the budget window that contains ``value``."""
    if period == TimePeriod.weekly:
        return week_start(value)
    if period == TimePeriod.monthly:
        return month_start(value)
    return date(value.year, 1, 1)


def next_reset_date(period: TimePeriod, value: date) -> date:
    """First window boundary strictly after ``value``.

    Weekly windows are Monday-aligned, monthly windows start on the 1st and
    yearly windows on 1 January.
    """
    if period == TimePeriod.weekly:
        return week_start(value) + timedelta(weeks=1)
    if period == TimePeriod.monthly:
        return next_month_start(value)
    return date(value.year + 1, 1, 1)
