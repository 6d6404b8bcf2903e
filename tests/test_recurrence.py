from datetime import date, timedelta
from uuid import uuid4

import pytest

from errors import ValidationError
from models import RecurrenceInterval, RecurrenceKind, Transaction, TransactionType
from recurrence import RecurringEngine, generate_instances, instances_of, occurrence_date


def _origin(
    interval: RecurrenceInterval,
    start: date,
    end: date | None = None,
) -> Transaction:
    return Transaction(
        date=start,
        amount_cents=50_000,
        description="Rent",
        type=TransactionType.expense,
        from_account_id=uuid4(),
        category_id=uuid4(),
        is_recurring=True,
        recurrence_interval=interval,
        recurrence_end_date=end,
        kind=RecurrenceKind.origin,
        pool_id=uuid4(),
    )


def test_monthly_from_month_end_clamps_without_drifting() -> None:
    origin = _origin(RecurrenceInterval.monthly, date(2024, 1, 31))

    instances = generate_instances(origin, date(2024, 4, 30), max_instances=100)

    assert [t.date for t in instances] == [
        date(2024, 2, 29),
        date(2024, 3, 31),
        date(2024, 4, 30),
    ]


def test_weekly_catch_up_after_two_weeks() -> None:
    start = date(2024, 5, 6)
    origin = _origin(RecurrenceInterval.weekly, start)

    instances = generate_instances(origin, start + timedelta(days=14), max_instances=100)

    assert [t.date for t in instances] == [start + timedelta(days=7), start + timedelta(days=14)]


def test_interval_steps() -> None:
    anchor = date(2024, 2, 29)
    assert occurrence_date(anchor, RecurrenceInterval.daily, 2) == date(2024, 3, 2)
    assert occurrence_date(anchor, RecurrenceInterval.biweekly, 1) == date(2024, 3, 14)
    assert occurrence_date(anchor, RecurrenceInterval.quarterly, 1) == date(2024, 5, 29)
    assert occurrence_date(anchor, RecurrenceInterval.yearly, 1) == date(2025, 2, 28)
    assert occurrence_date(anchor, RecurrenceInterval.yearly, 4) == date(2028, 2, 29)


def test_none_interval_has_no_occurrences() -> None:
    with pytest.raises(ValidationError):
        occurrence_date(date(2024, 1, 1), RecurrenceInterval.none, 1)


def test_instances_are_linked_plain_transactions() -> None:
    origin = _origin(RecurrenceInterval.monthly, date(2024, 1, 1))

    (first,) = generate_instances(origin, date(2024, 2, 1), max_instances=10)

    assert first.id != origin.id
    assert first.parent_transaction_id == origin.id
    assert first.kind == RecurrenceKind.generated
    assert not first.is_recurring
    assert first.recurrence_interval == RecurrenceInterval.none
    assert first.pool_id is None
    assert first.amount_cents == origin.amount_cents
    assert first.description == "Rent"


def test_end_date_stops_generation() -> None:
    origin = _origin(RecurrenceInterval.monthly, date(2024, 1, 10), end=date(2024, 3, 10))

    instances = generate_instances(origin, date(2025, 1, 1), max_instances=100)

    assert [t.date for t in instances] == [date(2024, 2, 10), date(2024, 3, 10)]


def test_existing_instances_are_not_duplicated() -> None:
    origin = _origin(RecurrenceInterval.weekly, date(2024, 1, 1))
    first = generate_instances(origin, date(2024, 1, 29), max_instances=100)

    again = generate_instances(origin, date(2024, 2, 5), first, max_instances=100)

    assert [t.date for t in again] == [date(2024, 2, 5)]


def test_instance_cap_is_respected() -> None:
    origin = _origin(RecurrenceInterval.daily, date(2024, 1, 1))
    assert len(generate_instances(origin, date(2030, 1, 1), max_instances=5)) == 5


def test_only_recurring_origins_generate() -> None:
    origin = _origin(RecurrenceInterval.monthly, date(2024, 1, 1))
    (child,) = generate_instances(origin, date(2024, 2, 1), max_instances=10)
    plain = origin.model_copy(update={"is_recurring": False})

    with pytest.raises(ValidationError):
        generate_instances(plain, date(2024, 6, 1))
    with pytest.raises(ValidationError):
        generate_instances(child, date(2024, 6, 1))


def test_engine_materialise_is_idempotent() -> None:
    today = date(2024, 1, 1)
    engine = RecurringEngine(horizon_days=60, max_instances=100)
    origin = _origin(RecurrenceInterval.monthly, today)

    once = engine.materialise([origin], today)
    twice = engine.materialise(once, today)

    assert len(once) == 3
    assert [t.id for t in twice] == [t.id for t in once]
    assert [t.date for t in instances_of(origin.id, twice)] == [
        date(2024, 2, 1),
        date(2024, 3, 1),
    ]


def test_engine_horizon_moves_with_today() -> None:
    engine = RecurringEngine(horizon_days=10, max_instances=100)
    origin = _origin(RecurrenceInterval.daily, date(2024, 1, 1))

    early = engine.materialise([origin], date(2024, 1, 1))
    later = engine.materialise(early, date(2024, 1, 5))

    assert len(early) == 11
    assert len(later) == 15


def test_cap_limits_one_run_not_the_whole_series() -> None:
    today = date(2024, 3, 15)
    engine = RecurringEngine(horizon_days=30, max_instances=1_000)
    origin = _origin(RecurrenceInterval.daily, date(2021, 1, 1))

    first = engine.materialise([origin], today)
    assert len(instances_of(origin.id, first)) == 1_000

    second = engine.materialise(first, today)
    dates = [t.date for t in instances_of(origin.id, second)]
    assert dates[-1] == today + timedelta(days=30)
    assert len(dates) == len(set(dates))
