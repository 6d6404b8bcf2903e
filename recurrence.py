import logging
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Sequence
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo

from config import get_settings
from errors import ValidationError
from models import RecurrenceInterval, RecurrenceKind, Transaction

logger = logging.getLogger(__name__)


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def _add_months(base: date, months: int, *, desired_day: int) -> date:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    day = min(desired_day, days_in_month(year, month))
    return date(year, month, day)


_DAY_STEPS = {
    RecurrenceInterval.daily: 1,
    RecurrenceInterval.weekly: 7,
    RecurrenceInterval.biweekly: 14,
}

_MONTH_STEPS = {
    RecurrenceInterval.monthly: 1,
    RecurrenceInterval.quarterly: 3,
    RecurrenceInterval.yearly: 12,
}


def occurrence_date(anchor: date, interval: RecurrenceInterval, n: int) -> date:
    """The ``n``-th occurrence after ``anchor`` (``n == 0`` is the anchor).

    Month based intervals are computed from the anchor rather than chained
    from the previous occurrence so a clamped day (Jan 31 -> Feb 28) does not
    stick for the rest of the series.
    """
    if interval == RecurrenceInterval.none:
        raise ValidationError("Interval 'none' has no occurrences")
    if interval in _DAY_STEPS:
        return anchor + timedelta(days=_DAY_STEPS[interval] * n)
    return _add_months(anchor, _MONTH_STEPS[interval] * n, desired_day=anchor.day)


def make_instance(origin: Transaction, on: date) -> Transaction:
    return origin.model_copy(
        update={
            "id": uuid4(),
            "date": on,
            "is_recurring": False,
            "recurrence_interval": RecurrenceInterval.none,
            "recurrence_end_date": None,
            "parent_transaction_id": origin.id,
            "kind": RecurrenceKind.generated,
            "pool_id": None,
        }
    )


def generate_instances(
    origin: Transaction,
    horizon: date,
    existing: Iterable[Transaction] = (),
    *,
    max_instances: Optional[int] = None,
) -> list[Transaction]:
    if not origin.is_recurring:
        raise ValidationError("Transaction is not recurring")
    if origin.recurrence_interval == RecurrenceInterval.none:
        raise ValidationError("Recurring transaction needs an interval")
    if origin.parent_transaction_id is not None:
        raise ValidationError("Generated instances cannot generate further instances")

    if max_instances is None:
        max_instances = get_settings().recurrence_max_instances
    materialised = {
        txn.date for txn in existing if txn.parent_transaction_id == origin.id
    }
    stop = horizon
    if origin.recurrence_end_date and origin.recurrence_end_date < stop:
        stop = origin.recurrence_end_date

    instances: list[Transaction] = []
    n = 1
    while len(instances) < max_instances:
        next_date = occurrence_date(origin.date, origin.recurrence_interval, n)
        if next_date > stop:
            break
        if next_date not in materialised:
            instances.append(make_instance(origin, next_date))
        n += 1
    else:
        logger.warning(
            f"recurrence_cap_reached: origin={origin.id} max_instances={max_instances}"
        )
    return instances


class RecurringEngine:
    def __init__(
        self,
        horizon_days: Optional[int] = None,
        max_instances: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self.horizon_days = (
            horizon_days
            if horizon_days is not None
            else settings.recurrence_horizon_days
        )
        self.max_instances = (
            max_instances
            if max_instances is not None
            else settings.recurrence_max_instances
        )

    def horizon(self, today: Optional[date] = None) -> date:
        today = today or local_today()
        return today + timedelta(days=self.horizon_days)

    def generate_for(
        self,
        origin: Transaction,
        transactions: Sequence[Transaction],
        today: Optional[date] = None,
    ) -> list[Transaction]:
        return generate_instances(
            origin,
            self.horizon(today),
            transactions,
            max_instances=self.max_instances,
        )

    def materialise(
        self, transactions: Sequence[Transaction], today: Optional[date] = None
    ) -> list[Transaction]:
        """Extend ``transactions`` with every missing instance up to the horizon."""
        result = list(transactions)
        count = 0
        for origin in [txn for txn in transactions if txn.is_origin]:
            created = self.generate_for(origin, result, today)
            result.extend(created)
            count += len(created)
        if count:
            logger.info(f"recurrence_materialised: instances={count}")
        return result


def instances_of(
    origin_id: UUID, transactions: Iterable[Transaction]
) -> list[Transaction]:
    children = [t for t in transactions if t.parent_transaction_id == origin_id]
    return sorted(children, key=lambda t: t.date)
