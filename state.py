from dataclasses import dataclass, field
from datetime import date
from typing import Optional
from uuid import UUID

from budgets import refresh_budgets
from config import get_settings
from ledger import recalculate_balances
from models import Account, Budget, Category, Transaction, UserPreferences


@dataclass
class AppState:
    accounts: list[Account] = field(default_factory=list)
    categories: list[Category] = field(default_factory=list)
    transactions: list[Transaction] = field(default_factory=list)
    budgets: list[Budget] = field(default_factory=list)
    preferences: UserPreferences = field(default_factory=UserPreferences)

    def account(self, account_id: Optional[UUID]) -> Optional[Account]:
        if account_id is None:
            return None
        return next((a for a in self.accounts if a.id == account_id), None)

    def category(self, category_id: Optional[UUID]) -> Optional[Category]:
        if category_id is None:
            return None
        return next((c for c in self.categories if c.id == category_id), None)

    def transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        return next((t for t in self.transactions if t.id == transaction_id), None)

    def budget(self, budget_id: UUID) -> Optional[Budget]:
        return next((b for b in self.budgets if b.id == budget_id), None)

    def replace_account(self, account: Account) -> None:
        self.accounts = [account if a.id == account.id else a for a in self.accounts]

    def pool_owner(self, pool_id: UUID) -> Optional[Account]:
        return next((a for a in self.accounts if a.pool(pool_id) is not None), None)


def refresh_derived(state: AppState, today: date) -> AppState:
    """Recompute balances and budget windows from the current collections."""
    settings = get_settings()
    state.accounts = recalculate_balances(state.accounts, state.transactions)
    state.budgets = refresh_budgets(
        state.budgets,
        today,
        state.transactions,
        state.accounts,
        settings.budget_account_scope,
    )
    return state
