from datetime import date

import pytest

from models import TimePeriod
from periods import EARLIEST, LATEST, next_reset_date, period_start_for, resolve_period

TODAY = date(2024, 3, 13)


def test_resolve_named_periods() -> None:
    this_month = resolve_period("this_month", None, None, today=TODAY)
    assert (this_month.start, this_month.end) == (date(2024, 3, 1), date(2024, 3, 31))

    last_month = resolve_period("last_month", None, None, today=TODAY)
    assert (last_month.start, last_month.end) == (date(2024, 2, 1), date(2024, 2, 29))

    week = resolve_period("this_week", None, None, today=TODAY)
    assert (week.start, week.end) == (date(2024, 3, 11), date(2024, 3, 17))

    future = resolve_period("future", None, None, today=TODAY)
    assert future.start == date(2024, 3, 14) and future.end == LATEST

    everything = resolve_period(None, None, None, today=TODAY)
    assert (everything.start, everything.end) == (EARLIEST, LATEST)


def test_resolve_custom_period() -> None:
    period = resolve_period("custom", "2024-01-01", "2024-01-31", today=TODAY)
    assert period.contains(date(2024, 1, 31))
    assert not period.contains(date(2024, 2, 1))

    with pytest.raises(ValueError):
        resolve_period("custom", "2024-02-01", "2024-01-01", today=TODAY)
    with pytest.raises(ValueError):
        resolve_period("custom", None, "2024-01-01", today=TODAY)
    with pytest.raises(ValueError):
        resolve_period("fortnight", None, None, today=TODAY)


def test_budget_period_boundaries() -> None:
    assert period_start_for(TimePeriod.weekly, TODAY) == date(2024, 3, 11)
    assert period_start_for(TimePeriod.monthly, TODAY) == date(2024, 3, 1)
    assert period_start_for(TimePeriod.yearly, TODAY) == date(2024, 1, 1)

    assert next_reset_date(TimePeriod.weekly, TODAY) == date(2024, 3, 18)
    assert next_reset_date(TimePeriod.monthly, date(2024, 12, 31)) == date(2025, 1, 1)
    assert next_reset_date(TimePeriod.yearly, TODAY) == date(2025, 1, 1)
