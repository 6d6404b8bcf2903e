from datetime import date, timedelta
from uuid import uuid4

from budgets import days_remaining, next_reset_for, refresh_budget, roll_period
from models import (
    Account,
    AccountType,
    Budget,
    BudgetType,
    TimePeriod,
    Transaction,
    TransactionType,
)


def _budget(
    type: BudgetType = BudgetType.overall,
    period: TimePeriod = TimePeriod.monthly,
    start: date = date(2024, 3, 1),
    amount: int = 20_000,
    **kwargs,
) -> Budget:
    return Budget(
        name="Budget",
        amount_cents=amount,
        type=type,
        time_period=period,
        start_date=start,
        **kwargs,
    )


def _expense(amount: int, on: date, category_id=None, account_id=None) -> Transaction:
    return Transaction(
        date=on,
        amount_cents=amount,
        type=TransactionType.expense,
        category_id=category_id or uuid4(),
        from_account_id=account_id or uuid4(),
    )


def test_category_budget_progress() -> None:
    food = uuid4()
    budget = _budget(BudgetType.category, category_id=food)
    txns = [
        _expense(5_000, date(2024, 3, 4), food),
        _expense(3_000, date(2024, 3, 9), food),
        _expense(9_999, date(2024, 3, 9)),
    ]

    result = refresh_budget(budget, date(2024, 3, 10), txns)

    assert result.current_spent_cents == 8_000
    assert result.percent_used == 0.4
    assert result.remaining_cents == 12_000


def test_income_and_transfers_do_not_count() -> None:
    budget = _budget()
    txns = [
        Transaction(date=date(2024, 3, 2), amount_cents=1_000, type=TransactionType.income,
                    category_id=uuid4(), to_account_id=uuid4()),
        Transaction(date=date(2024, 3, 2), amount_cents=1_000, type=TransactionType.transfer,
                    category_id=uuid4(), from_account_id=uuid4(), to_account_id=uuid4()),
        _expense(700, date(2024, 3, 2)),
    ]
    assert refresh_budget(budget, date(2024, 3, 5), txns).current_spent_cents == 700


def test_overspent_budget_clamps() -> None:
    budget = _budget(amount=1_000)
    result = refresh_budget(budget, date(2024, 3, 5), [_expense(2_500, date(2024, 3, 2))])
    assert result.remaining_cents == 0
    assert result.percent_used == 1.0


def test_monthly_window_rolls_over_several_periods() -> None:
    budget = _budget(start=date(2024, 1, 15))
    txns = [
        _expense(1_000, date(2024, 2, 20)),
        _expense(2_000, date(2024, 3, 1)),
        _expense(4_000, date(2024, 4, 1)),
    ]

    result = refresh_budget(budget, date(2024, 3, 10), txns)

    assert result.period_start_date == date(2024, 3, 1)
    assert result.current_spent_cents == 2_000
    assert next_reset_for(result, date(2024, 3, 10)) == date(2024, 4, 1)


def test_weekly_window_is_monday_aligned() -> None:
    budget = _budget(period=TimePeriod.weekly, start=date(2024, 1, 3))

    assert roll_period(budget, date(2024, 1, 5)) == (date(2024, 1, 3), date(2024, 1, 8))
    assert roll_period(budget, date(2024, 1, 9)) == (date(2024, 1, 8), date(2024, 1, 15))
    assert days_remaining(budget, date(2024, 1, 9)) == 6


def test_yearly_reset_is_first_of_january() -> None:
    budget = _budget(period=TimePeriod.yearly, start=date(2024, 6, 1))
    assert roll_period(budget, date(2025, 2, 1)) == (date(2025, 1, 1), date(2026, 1, 1))


def test_account_budget_type_scope_and_account_scope() -> None:
    current = Account(name="Current", type=AccountType.current)
    other_current = Account(name="Joint", type=AccountType.current)
    savings = Account(name="Savings", type=AccountType.savings)
    accounts = [current, other_current, savings]
    budget = _budget(BudgetType.account, account_id=current.id)
    txns = [
        _expense(1_000, date(2024, 3, 2), account_id=current.id),
        _expense(2_000, date(2024, 3, 2), account_id=other_current.id),
        _expense(4_000, date(2024, 3, 2), account_id=savings.id),
    ]

    by_type = refresh_budget(budget, date(2024, 3, 5), txns, accounts, "type")
    by_account = refresh_budget(budget, date(2024, 3, 5), txns, accounts, "account")

    assert by_type.current_spent_cents == 3_000
    assert by_account.current_spent_cents == 1_000


def test_account_budget_with_missing_account_counts_nothing() -> None:
    budget = _budget(BudgetType.account, account_id=uuid4())
    txns = [_expense(1_000, date(2024, 3, 2))]
    assert refresh_budget(budget, date(2024, 3, 5), txns).current_spent_cents == 0


def test_split_expense_counts_user_share() -> None:
    budget = _budget()
    txn = _expense(1_200, date(2024, 3, 2)).model_copy(
        update={
            "is_split": True,
            "friend_name": "Sam",
            "friend_amount_cents": 1_200,
            "user_amount_cents": 1_200,
        }
    )
    assert refresh_budget(budget, date(2024, 3, 5), [txn]).current_spent_cents == 1_200


def test_future_transactions_outside_window_are_ignored() -> None:
    budget = _budget()
    txns = [_expense(500, date(2024, 3, 31)), _expense(800, date(2024, 4, 1))]
    assert refresh_budget(budget, date(2024, 3, 5), txns).current_spent_cents == 500


def test_weekly_budget_advances_two_weeks_and_counts_new_window_only() -> None:
    start = date(2024, 1, 1)
    budget = _budget(period=TimePeriod.weekly, start=start, period_start_date=start)
    now = start + timedelta(days=14)
    txns = [
        _expense(1_000, date(2024, 1, 3)),
        _expense(2_000, date(2024, 1, 10)),
        _expense(400, now),
        _expense(600, date(2024, 1, 21)),
        _expense(5_000, date(2024, 1, 22)),
    ]

    result = refresh_budget(budget, now, txns)

    assert result.period_start_date == now
    assert (result.period_start_date - start).days == 14
    assert result.current_spent_cents == 1_000
