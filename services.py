from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Optional
from uuid import UUID

from budgets import days_remaining, next_reset_for
from errors import NotFoundError, ValidationError
from models import (
    Account,
    Budget,
    BudgetType,
    Category,
    CategoryType,
    Pool,
    RecurrenceInterval,
    RecurrenceKind,
    Transaction,
    TransactionType,
    UserPreferences,
    default_categories,
)
from periods import Period, period_start_for
from pools import (
    create_pool,
    delete_pool,
    pool_transactions,
    reassign,
    rename_pool,
    scale_pools,
    top_up_pool,
    unallocated_balance,
    withdraw_from_pool,
)
from recurrence import RecurringEngine, instances_of, local_today, occurrence_date
from schemas import (
    AccountIn,
    BudgetIn,
    CategoryIn,
    CategoryUpdateIn,
    PoolIn,
    PreferencesIn,
    TransactionIn,
)
from state import AppState, refresh_derived

logger = logging.getLogger(__name__)

OTHER_LABEL = "Other"


@dataclass
class TransactionFilters:
    types: set[TransactionType] = field(default_factory=set)
    category_ids: set[UUID] = field(default_factory=set)
    query: Optional[str] = None
    min_amount_cents: Optional[int] = None
    max_amount_cents: Optional[int] = None
    only_recurring: bool = False
    pool_id: Optional[UUID] = None
    account_id: Optional[UUID] = None

    def matches(self, txn: Transaction) -> bool:
        if self.types and txn.type not in self.types:
            return False
        if self.category_ids and txn.category_id not in self.category_ids:
            return False
        if self.query and self.query.lower() not in txn.description.lower():
            return False
        if self.min_amount_cents is not None and txn.amount_cents < self.min_amount_cents:
            return False
        if self.max_amount_cents is not None and txn.amount_cents > self.max_amount_cents:
            return False
        if self.only_recurring and not (txn.is_origin or txn.is_generated):
            return False
        if self.pool_id is not None and txn.pool_id != self.pool_id:
            return False
        if self.account_id is not None and not txn.touches(self.account_id):
            return False
        return True


class _StateService:
    def __init__(self, state: AppState, today: Optional[date] = None) -> None:
        self.state = state
        self.today = today or local_today()

    def _refresh(self) -> None:
        refresh_derived(self.state, self.today)

    def _account(self, account_id: UUID) -> Account:
        account = self.state.account(account_id)
        if not account:
            raise NotFoundError("Account not found")
        return account

    def _release_pool(self, txn: Transaction) -> None:
        """Reverse ``txn``'s effect on the pool it is assigned to, if any."""
        if txn.pool_id is None:
            return
        owner = self.state.pool_owner(txn.pool_id)
        if owner is None:
            return
        self.state.replace_account(reassign(txn, txn.pool_id, None, owner))

    def _claim_pool(self, txn: Transaction) -> None:
        if txn.pool_id is None:
            return
        owner = self.state.pool_owner(txn.pool_id)
        if owner is None:
            raise ValidationError("Pool not found")
        self.state.replace_account(reassign(txn, None, txn.pool_id, owner))


class AccountService(_StateService):
    def list_all(self) -> list[Account]:
        return list(self.state.accounts)

    def get(self, account_id: UUID) -> Account:
        return self._account(account_id)

    def create(self, data: AccountIn) -> Account:
        name = data.name.strip()
        if not name:
            raise ValidationError("Account name is required")
        account = Account(
            name=name,
            type=data.type,
            initial_balance_cents=data.initial_balance_cents,
            balance_cents=data.initial_balance_cents,
        )
        self.state.accounts = [*self.state.accounts, account]
        self._refresh()
        return self._account(account.id)

    def update(self, account_id: UUID, data: AccountIn) -> Account:
        account = self._account(account_id)
        name = data.name.strip()
        if not name:
            raise ValidationError("Account name is required")
        updated = account.model_copy(
            update={
                "name": name,
                "type": data.type,
                "initial_balance_cents": data.initial_balance_cents,
            }
        )
        if (
            data.initial_balance_cents != account.initial_balance_cents
            and account.initial_balance_cents != 0
        ):
            ratio = data.initial_balance_cents / account.initial_balance_cents
            updated = scale_pools(updated, ratio)
        self.state.replace_account(updated)
        self._refresh()
        return self._account(account_id)

    def delete(self, account_id: UUID) -> None:
        account = self._account(account_id)
        removed = [
            txn
            for txn in self.state.transactions
            if account_id in (txn.from_account_id, txn.to_account_id)
        ]
        for txn in removed:
            self._release_pool(txn)
        removed_ids = {txn.id for txn in removed}
        lost_pools = {pool.id for pool in account.pools}

        remaining: list[Transaction] = []
        for txn in self.state.transactions:
            if txn.id in removed_ids:
                continue
            update: dict[str, object] = {}
            if txn.friend_payment_account_id == account_id:
                update["friend_payment_account_id"] = None
                update["friend_payment_is_account"] = False
            if txn.pool_id in lost_pools:
                update["pool_id"] = None
            remaining.append(txn.model_copy(update=update) if update else txn)
        self.state.accounts = [a for a in self.state.accounts if a.id != account_id]
        self.state.transactions = remaining
        logger.info(
            f"account_deleted: account={account_id} transactions_removed={len(removed)}"
        )
        self._refresh()


class CategoryService(_StateService):
    def list_all(self, type: Optional[CategoryType] = None) -> list[Category]:
        categories = self.state.categories
        if type is not None:
            categories = [c for c in categories if c.type == type]
        return sorted(categories, key=lambda c: (c.type.value, c.name.lower()))

    def get(self, category_id: UUID) -> Category:
        category = self.state.category(category_id)
        if not category:
            raise NotFoundError("Category not found")
        return category

    def _check_unique(
        self, name: str, type: CategoryType, exclude: Optional[UUID] = None
    ) -> None:
        for existing in self.state.categories:
            if existing.id == exclude or existing.type != type:
                continue
            if existing.name.lower() == name.lower():
                raise ValidationError("Category with this name already exists")

    def create(self, data: CategoryIn) -> Category:
        name = data.name.strip()
        if not name:
            raise ValidationError("Category name is required")
        self._check_unique(name, data.type)
        category = Category(name=name, type=data.type, icon_name=data.icon_name)
        self.state.categories = [*self.state.categories, category]
        return category

    def update(self, category_id: UUID, data: CategoryUpdateIn) -> Category:
        category = self.get(category_id)
        update: dict[str, object] = {}
        if data.name is not None:
            name = data.name.strip()
            if not name:
                raise ValidationError("Category name is required")
            self._check_unique(name, category.type, exclude=category.id)
            update["name"] = name
        if data.icon_name is not None:
            update["icon_name"] = data.icon_name
        updated = category.model_copy(update=update)
        self.state.categories = [
            updated if c.id == category_id else c for c in self.state.categories
        ]
        return updated

    def delete(self, category_id: UUID) -> None:
        # transactions keep the dangling id and render as "Other"
        self.get(category_id)
        self.state.categories = [
            c for c in self.state.categories if c.id != category_id
        ]

    def label_for(self, category_id: Optional[UUID]) -> str:
        category = self.state.category(category_id)
        return category.name if category else OTHER_LABEL

    def seed_defaults(self) -> int:
        if self.state.categories:
            return 0
        self.state.categories = default_categories()
        return len(self.state.categories)


class TransactionService(_StateService):
    def __init__(
        self,
        state: AppState,
        today: Optional[date] = None,
        engine: Optional[RecurringEngine] = None,
    ) -> None:
        super().__init__(state, today)
        self.engine = engine or RecurringEngine()

    def list(
        self,
        period: Optional[Period] = None,
        filters: Optional[TransactionFilters] = None,
        *,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Transaction]:
        filters = filters or TransactionFilters()
        items = [
            txn
            for txn in self.state.transactions
            if (period is None or period.contains(txn.date)) and filters.matches(txn)
        ]
        items.sort(key=lambda t: t.date, reverse=True)
        if limit is None:
            return items[offset:]
        return items[offset : offset + limit]

    def get(self, transaction_id: UUID) -> Transaction:
        txn = self.state.transaction(transaction_id)
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    def future(self) -> list[Transaction]:
        items = [t for t in self.state.transactions if t.is_future(self.today)]
        return sorted(items, key=lambda t: t.date)

    def recurring(self) -> list[Transaction]:
        items = [t for t in self.state.transactions if t.is_origin]
        return sorted(items, key=lambda t: t.date)

    def _require_account(self, account_id: Optional[UUID], role: str) -> UUID:
        if account_id is None:
            raise ValidationError(f"{role} account is required")
        if self.state.account(account_id) is None:
            raise ValidationError(f"{role} account not found")
        return account_id

    def _build(
        self, data: TransactionIn, existing: Optional[Transaction] = None
    ) -> Transaction:
        category = self.state.category(data.category_id)
        if not category:
            raise ValidationError("Category not found")
        if data.type != TransactionType.transfer and category.type.value != data.type.value:
            raise ValidationError("Category type mismatch")

        from_id: Optional[UUID] = None
        to_id: Optional[UUID] = None
        if data.type == TransactionType.expense:
            from_id = self._require_account(data.from_account_id, "Source")
        elif data.type == TransactionType.income:
            to_id = self._require_account(data.to_account_id, "Destination")
        else:
            from_id = self._require_account(data.from_account_id, "Source")
            to_id = self._require_account(data.to_account_id, "Destination")
            if from_id == to_id:
                raise ValidationError("Cannot transfer to the same account")

        values: dict[str, object] = {
            "date": data.date,
            "amount_cents": data.amount_cents,
            "description": data.description.strip(),
            "type": data.type,
            "category_id": data.category_id,
            "from_account_id": from_id,
            "to_account_id": to_id,
            "pool_id": data.pool_id,
        }

        if data.split is not None:
            split = data.split
            if data.type != TransactionType.expense:
                raise ValidationError("Only expenses can be split")
            if split.user_amount_cents != data.amount_cents:
                raise ValidationError("Amount must equal the user's share of a split")
            payment_is_account = split.payment_account_id is not None
            if payment_is_account and self.state.account(split.payment_account_id) is None:
                raise ValidationError("Friend payment account not found")
            values.update(
                is_split=True,
                friend_name=split.friend_name.strip(),
                friend_amount_cents=split.friend_amount_cents,
                user_amount_cents=split.user_amount_cents,
                friend_payment_destination=split.payment_destination.strip(),
                friend_payment_account_id=split.payment_account_id,
                friend_payment_is_account=payment_is_account,
            )
        else:
            values.update(
                is_split=False,
                friend_name="",
                friend_amount_cents=0,
                user_amount_cents=0,
                friend_payment_destination="",
                friend_payment_account_id=None,
                friend_payment_is_account=False,
            )

        recurrence = data.recurrence
        if recurrence is not None and recurrence.interval != RecurrenceInterval.none:
            if existing is not None and existing.is_generated:
                raise ValidationError("Generated instances cannot be made recurring")
            if recurrence.end_date is not None and recurrence.end_date < data.date:
                raise ValidationError("Recurrence end date must not precede the date")
            values.update(
                is_recurring=True,
                recurrence_interval=recurrence.interval,
                recurrence_end_date=recurrence.end_date,
                kind=RecurrenceKind.origin,
            )
        else:
            values.update(
                is_recurring=False,
                recurrence_interval=RecurrenceInterval.none,
                recurrence_end_date=None,
                kind=RecurrenceKind.generated
                if existing is not None and existing.is_generated
                else RecurrenceKind.single,
            )

        if existing is None:
            txn = Transaction(**values)
        else:
            txn = existing.model_copy(update=values)

        if txn.pool_id is not None:
            owner = self.state.pool_owner(txn.pool_id)
            if owner is None:
                raise ValidationError("Pool not found")
            if not txn.touches(owner.id):
                raise ValidationError("Pool belongs to an account this transaction does not affect")
        return txn

    def create(self, data: TransactionIn) -> Transaction:
        txn = self._build(data)
        self._claim_pool(txn)
        transactions = [*self.state.transactions, txn]
        if txn.is_origin:
            created = self.engine.generate_for(txn, transactions, self.today)
            transactions.extend(created)
            logger.info(f"recurring_created: origin={txn.id} instances={len(created)}")
        self.state.transactions = transactions
        self._refresh()
        return txn

    def update(self, transaction_id: UUID, data: TransactionIn) -> Transaction:
        existing = self.get(transaction_id)
        txn = self._build(data, existing)
        self._release_pool(existing)
        self._claim_pool(txn)
        self.state.transactions = [
            txn if t.id == transaction_id else t for t in self.state.transactions
        ]
        if existing.is_origin or txn.is_origin:
            RecurringService(self.state, self.today, self.engine).propagate_edit(
                existing, txn
            )
        self._refresh()
        return txn

    def assign_pool(self, transaction_id: UUID, pool_id: Optional[UUID]) -> Transaction:
        txn = self.get(transaction_id)
        if pool_id is not None:
            owner = self.state.pool_owner(pool_id)
            if owner is None:
                raise NotFoundError("Pool not found")
            if not txn.touches(owner.id):
                raise ValidationError("Pool belongs to an account this transaction does not affect")
        self._release_pool(txn)
        updated = txn.model_copy(update={"pool_id": pool_id})
        self._claim_pool(updated)
        self.state.transactions = [
            updated if t.id == transaction_id else t for t in self.state.transactions
        ]
        return updated

    def delete(self, transaction_id: UUID, *, include_instances: bool = False) -> int:
        txn = self.get(transaction_id)
        doomed = [txn]
        if include_instances and txn.is_origin:
            doomed.extend(instances_of(txn.id, self.state.transactions))
        for item in doomed:
            self._release_pool(item)
        doomed_ids = {item.id for item in doomed}
        self.state.transactions = [
            t for t in self.state.transactions if t.id not in doomed_ids
        ]
        self._refresh()
        return len(doomed)


class RecurringService(_StateService):
    def __init__(
        self,
        state: AppState,
        today: Optional[date] = None,
        engine: Optional[RecurringEngine] = None,
    ) -> None:
        super().__init__(state, today)
        self.engine = engine or RecurringEngine()

    def origins(self) -> list[Transaction]:
        return sorted(
            (t for t in self.state.transactions if t.is_origin), key=lambda t: t.date
        )

    def instances(self, origin_id: UUID) -> list[Transaction]:
        origin = self.state.transaction(origin_id)
        if not origin or origin.is_generated:
            raise NotFoundError("Recurring transaction not found")
        return instances_of(origin_id, self.state.transactions)

    def _occurrence_index(
        self, origin: Transaction, children: list[Transaction]
    ) -> dict[date, int]:
        """Map each on-schedule instance date of ``origin`` to its index."""
        if not origin.is_origin or not children:
            return {}
        last = max(child.date for child in children)
        index: dict[date, int] = {}
        n = 1
        while True:
            on = occurrence_date(origin.date, origin.recurrence_interval, n)
            if on > last:
                return index
            index[on] = n
            n += 1

    def propagate_edit(self, before: Transaction, after: Transaction) -> None:
        """Carry an origin edit over to its generated instances.

        Description and category follow the origin. When the origin date or
        interval changes, the n-th instance moves to the n-th occurrence of the
        new schedule; instances the user moved off schedule shift by the date
        delta. Amount and split details stay as they were generated. If the
        origin stops recurring, instances dated after today are dropped.
        """
        delta = after.date - before.date
        children = instances_of(before.id, self.state.transactions)
        remap = after.is_origin and (
            delta or before.recurrence_interval != after.recurrence_interval
        )
        index = self._occurrence_index(before, children) if remap else {}

        moved: dict[UUID, Transaction] = {}
        dropped: list[Transaction] = []
        seen: set[date] = set()
        for txn in children:
            if not after.is_origin and txn.date > self.today:
                dropped.append(txn)
                continue
            if txn.date in index:
                on = occurrence_date(
                    after.date, after.recurrence_interval, index[txn.date]
                )
            else:
                on = txn.date + delta
            if on in seen or (
                after.recurrence_end_date is not None
                and on > after.recurrence_end_date
            ):
                dropped.append(txn)
                continue
            seen.add(on)
            moved[txn.id] = txn.model_copy(
                update={
                    "description": after.description,
                    "category_id": after.category_id,
                    "date": on,
                }
            )

        for txn in dropped:
            self._release_pool(txn)
        dropped_ids = {txn.id for txn in dropped}
        kept = [
            moved.get(txn.id, txn)
            for txn in self.state.transactions
            if txn.id not in dropped_ids
        ]
        if after.is_origin:
            kept.extend(self.engine.generate_for(after, kept, self.today))
        self.state.transactions = kept
        if dropped:
            logger.info(
                f"recurring_pruned: origin={before.id} instances={len(dropped)}"
            )

    def catch_up(self) -> int:
        before = len(self.state.transactions)
        self.state.transactions = self.engine.materialise(
            self.state.transactions, self.today
        )
        self._refresh()
        return len(self.state.transactions) - before


class BudgetService(_StateService):
    def list_all(self) -> list[Budget]:
        return list(self.state.budgets)

    def get(self, budget_id: UUID) -> Budget:
        budget = self.state.budget(budget_id)
        if not budget:
            raise NotFoundError("Budget not found")
        return budget

    def _validated(self, data: BudgetIn) -> dict[str, object]:
        name = data.name.strip()
        if not name:
            raise ValidationError("Budget name is required")
        category_id: Optional[UUID] = None
        account_id: Optional[UUID] = None
        if data.type == BudgetType.category:
            if data.category_id is None:
                raise ValidationError("Select a category for a category budget")
            category = self.state.category(data.category_id)
            if not category:
                raise ValidationError("Category not found")
            if category.type != CategoryType.expense:
                raise ValidationError("Budgets can only be set for expense categories")
            category_id = category.id
        elif data.type == BudgetType.account:
            if data.account_id is None:
                raise ValidationError("Select an account for an account budget")
            if self.state.account(data.account_id) is None:
                raise ValidationError("Account not found")
            account_id = data.account_id
        return {
            "name": name,
            "amount_cents": data.amount_cents,
            "type": data.type,
            "time_period": data.time_period,
            "category_id": category_id,
            "account_id": account_id,
            "start_date": data.start_date,
        }

    def create(self, data: BudgetIn) -> Budget:
        budget = Budget(**self._validated(data))
        self.state.budgets = [*self.state.budgets, budget]
        self._refresh()
        return self.get(budget.id)

    def update(self, budget_id: UUID, data: BudgetIn) -> Budget:
        budget = self.get(budget_id)
        values = self._validated(data)
        if data.time_period != budget.time_period:
            values["period_start_date"] = period_start_for(data.time_period, self.today)
        updated = budget.model_copy(update=values)
        self.state.budgets = [
            updated if b.id == budget_id else b for b in self.state.budgets
        ]
        self._refresh()
        return self.get(budget_id)

    def delete(self, budget_id: UUID) -> None:
        self.get(budget_id)
        self.state.budgets = [b for b in self.state.budgets if b.id != budget_id]

    def refresh_all(self) -> list[Budget]:
        self._refresh()
        return list(self.state.budgets)

    def status(self, budget_id: UUID) -> dict[str, object]:
        budget = self.get(budget_id)
        return {
            "budget": budget,
            "days_remaining": days_remaining(budget, self.today),
            "next_reset_date": next_reset_for(budget, self.today),
        }


class PoolService(_StateService):
    def list(self, account_id: UUID) -> list[Pool]:
        return list(self._account(account_id).pools)

    def unallocated(self, account_id: UUID) -> int:
        return unallocated_balance(self._account(account_id))

    def create(self, account_id: UUID, data: PoolIn) -> Pool:
        account = self._account(account_id)
        updated = create_pool(account, data.name, data.amount_cents, data.color)
        self.state.replace_account(updated)
        return updated.pools[-1]

    def top_up(self, account_id: UUID, pool_id: UUID, amount_cents: int) -> Pool:
        updated = top_up_pool(self._account(account_id), pool_id, amount_cents)
        self.state.replace_account(updated)
        return updated.pool(pool_id)

    def withdraw(self, account_id: UUID, pool_id: UUID, amount_cents: int) -> Pool:
        updated = withdraw_from_pool(self._account(account_id), pool_id, amount_cents)
        self.state.replace_account(updated)
        return updated.pool(pool_id)

    def rename(self, account_id: UUID, pool_id: UUID, name: str, color=None) -> Pool:
        updated = rename_pool(self._account(account_id), pool_id, name, color)
        self.state.replace_account(updated)
        return updated.pool(pool_id)

    def delete(self, account_id: UUID, pool_id: UUID) -> None:
        account, transactions = delete_pool(
            self._account(account_id), pool_id, self.state.transactions
        )
        self.state.replace_account(account)
        self.state.transactions = transactions

    def transactions(self, account_id: UUID, pool_id: UUID) -> list[Transaction]:
        account = self._account(account_id)
        if account.pool(pool_id) is None:
            raise NotFoundError("Pool not found")
        return [
            t for t in pool_transactions(pool_id, self.state.transactions)
            if t.touches(account_id)
        ]


class MetricsService(_StateService):
    def _in_period(
        self, period: Period, type: Optional[TransactionType] = None
    ) -> Iterable[Transaction]:
        for txn in self.state.transactions:
            if not period.contains(txn.date):
                continue
            if type is not None and txn.type != type:
                continue
            yield txn

    def kpis(self, period: Period) -> dict[str, int]:
        income = sum(t.amount_cents for t in self._in_period(period, TransactionType.income))
        expenses = sum(
            t.amount_cents for t in self._in_period(period, TransactionType.expense)
        )
        return {
            "income": income,
            "expenses": expenses,
            "net": income - expenses,
            "balance": sum(a.balance_cents for a in self.state.accounts),
        }

    def category_breakdown(
        self, period: Period, type: TransactionType
    ) -> list[dict[str, object]]:
        labels = CategoryService(self.state, self.today)
        totals: dict[UUID, int] = defaultdict(int)
        counts: dict[UUID, int] = defaultdict(int)
        for txn in self._in_period(period, type):
            totals[txn.category_id] += txn.amount_cents
            counts[txn.category_id] += 1
        grand_total = sum(totals.values())
        rows = [
            {
                "category_id": category_id,
                "name": labels.label_for(category_id),
                "amount_cents": amount,
                "count": counts[category_id],
                "percent": (amount / grand_total * 100) if grand_total else 0.0,
            }
            for category_id, amount in totals.items()
        ]
        rows.sort(key=lambda row: row["amount_cents"], reverse=True)
        return rows

    def daily_net(self, period: Period) -> list[dict[str, object]]:
        by_day: dict[date, int] = defaultdict(int)
        for txn in self._in_period(period):
            if txn.type == TransactionType.income:
                by_day[txn.date] += txn.amount_cents
            elif txn.type == TransactionType.expense:
                by_day[txn.date] -= txn.amount_cents
        return [{"date": day, "net_cents": by_day[day]} for day in sorted(by_day)]

    def spending_trend(self, days: int = 30) -> list[dict[str, object]]:
        start = self.today - timedelta(days=days - 1)
        period = Period("trend", start, self.today)
        by_day: dict[date, int] = defaultdict(int)
        for txn in self._in_period(period, TransactionType.expense):
            by_day[txn.date] += txn.amount_cents
        return [
            {"date": start + timedelta(days=i), "spent_cents": by_day[start + timedelta(days=i)]}
            for i in range(days)
        ]


class PreferencesService(_StateService):
    def get(self) -> UserPreferences:
        return self.state.preferences

    def update(self, data: PreferencesIn) -> UserPreferences:
        self.state.preferences = UserPreferences(**data.model_dump())
        return self.state.preferences


def catch_up_all(state: AppState, today: Optional[date] = None) -> int:
    created = RecurringService(state, today).catch_up()
    logger.debug(f"catch_up: instances={created}")
    return created
