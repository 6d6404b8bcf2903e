import logging
from datetime import date
from typing import Iterable, Optional, Sequence

from models import Account, Budget, BudgetType, Transaction, TransactionType
from periods import next_reset_date

logger = logging.getLogger(__name__)


def roll_period(budget: Budget, now: date) -> tuple[date, date]:
    """Current window ``(start, next_reset)`` for ``budget`` at ``now``."""
    start = budget.period_start_date or budget.start_date
    next_reset = next_reset_date(budget.time_period, start)
    while now >= next_reset:
        start = next_reset
        next_reset = next_reset_date(budget.time_period, start)
    return start, next_reset


def _matches_scope(
    budget: Budget,
    txn: Transaction,
    accounts: Sequence[Account],
    account_scope: str,
) -> bool:
    if budget.type == BudgetType.overall:
        return True
    if budget.type == BudgetType.category:
        return budget.category_id is not None and txn.category_id == budget.category_id
    if budget.account_id is None or txn.from_account_id is None:
        return False
    if account_scope == "account":
        return txn.from_account_id == budget.account_id

    # type scope aggregates every account sharing the linked account's type
    linked = next((a for a in accounts if a.id == budget.account_id), None)
    source = next((a for a in accounts if a.id == txn.from_account_id), None)
    if linked is None or source is None:
        return False
    return source.type == linked.type


def spent_in_window(
    budget: Budget,
    start: date,
    end: date,
    transactions: Iterable[Transaction],
    accounts: Sequence[Account],
    account_scope: str = "type",
) -> int:
    # split expenses count the user's share only
    return sum(
        txn.amount_cents
        for txn in transactions
        if txn.type == TransactionType.expense
        and start <= txn.date < end
        and _matches_scope(budget, txn, accounts, account_scope)
    )


def refresh_budget(
    budget: Budget,
    now: date,
    transactions: Iterable[Transaction],
    accounts: Sequence[Account] = (),
    account_scope: str = "type",
) -> Budget:
    start, next_reset = roll_period(budget, now)
    if budget.period_start_date is not None and start != budget.period_start_date:
        logger.debug(
            f"budget_rollover: budget={budget.id} from={budget.period_start_date} to={start}"
        )
    spent = spent_in_window(
        budget, start, next_reset, transactions, accounts, account_scope
    )
    return budget.model_copy(
        update={"period_start_date": start, "current_spent_cents": spent}
    )


def refresh_budgets(
    budgets: Iterable[Budget],
    now: date,
    transactions: Sequence[Transaction],
    accounts: Sequence[Account] = (),
    account_scope: str = "type",
) -> list[Budget]:
    return [
        refresh_budget(budget, now, transactions, accounts, account_scope)
        for budget in budgets
    ]


def days_remaining(budget: Budget, now: date) -> int:
    _start, next_reset = roll_period(budget, now)
    return max(0, (next_reset - now).days)


def next_reset_for(budget: Budget, now: Optional[date] = None) -> date:
    if now is None:
        start = budget.period_start_date or budget.start_date
        return next_reset_date(budget.time_period, start)
    return roll_period(budget, now)[1]
