import datetime as dt
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field


class AccountType(str, Enum):
    savings = "savings"
    current = "current"
    credit = "credit"


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"
    transfer = "transfer"


class CategoryType(str, Enum):
    income = "income"
    expense = "expense"


class RecurrenceInterval(str, Enum):
    none = "none"
    daily = "daily"
    weekly = "weekly"
    biweekly = "biweekly"
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"


class RecurrenceKind(str, Enum):
    single = "single"
    origin = "origin"
    generated = "generated"


class BudgetType(str, Enum):
    overall = "overall"
    category = "category"
    account = "account"


class TimePeriod(str, Enum):
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


class PoolColor(str, Enum):
    blue = "Blue"
    green = "Green"
    orange = "Orange"
    purple = "Purple"
    red = "Red"
    teal = "Teal"


class Record(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    id: UUID = Field(default_factory=uuid4)


class Pool(Record):
    name: str
    amount_cents: int
    color: PoolColor = PoolColor.blue


class Account(Record):
    name: str
    type: AccountType
    initial_balance_cents: int = 0
    balance_cents: int = 0
    pools: list[Pool] = Field(default_factory=list)

    @computed_field
    @property
    def allocated_cents(self) -> int:
        return sum(pool.amount_cents for pool in self.pools)

    @computed_field
    @property
    def unallocated_cents(self) -> int:
        return self.balance_cents - self.allocated_cents

    def pool(self, pool_id: Optional[UUID]) -> Optional[Pool]:
        if pool_id is None:
            return None
        return next((p for p in self.pools if p.id == pool_id), None)


class Category(Record):
    name: str
    type: CategoryType
    icon_name: str = "ellipsis"


DEFAULT_INCOME_CATEGORIES: tuple[tuple[str, str], ...] = (
    ("Salary", "dollarsign.circle"),
    ("Student Loan", "studentdesk"),
    ("Bursary", "banknote"),
    ("Gift", "gift"),
    ("Part-time Job", "briefcase"),
)

DEFAULT_EXPENSE_CATEGORIES: tuple[tuple[str, str], ...] = (
    ("Food", "fork.knife"),
    ("Transport", "bus"),
    ("Bills", "doc.text"),
    ("Entertainment", "film"),
    ("Education", "book"),
    ("Shopping", "cart"),
    ("Housing", "house"),
    ("Other", "ellipsis"),
)


def default_categories() -> list[Category]:
    categories = [
        Category(name=name, type=CategoryType.income, icon_name=icon)
        for name, icon in DEFAULT_INCOME_CATEGORIES
    ]
    categories.extend(
        Category(name=name, type=CategoryType.expense, icon_name=icon)
        for name, icon in DEFAULT_EXPENSE_CATEGORIES
    )
    return categories


def default_accounts() -> list[Account]:
    return [
        Account(name="Savings Account", type=AccountType.savings),
        Account(name="Current Account", type=AccountType.current),
        Account(name="Credit Card", type=AccountType.credit),
    ]


class Transaction(Record):
    date: dt.date
    amount_cents: int
    description: str = ""
    type: TransactionType
    from_account_id: Optional[UUID] = None
    to_account_id: Optional[UUID] = None
    category_id: UUID

    # split payment: amount_cents holds the user's share only
    is_split: bool = False
    friend_name: str = ""
    friend_amount_cents: int = 0
    user_amount_cents: int = 0
    friend_payment_destination: str = ""
    friend_payment_account_id: Optional[UUID] = None
    friend_payment_is_account: bool = False

    is_recurring: bool = False
    recurrence_interval: RecurrenceInterval = RecurrenceInterval.none
    recurrence_end_date: Optional[dt.date] = None
    parent_transaction_id: Optional[UUID] = None
    kind: RecurrenceKind = RecurrenceKind.single

    pool_id: Optional[UUID] = None

    @computed_field
    @property
    def total_amount_cents(self) -> int:
        if self.is_split:
            return self.user_amount_cents + self.friend_amount_cents
        return self.amount_cents

    @property
    def is_origin(self) -> bool:
        return (
            self.is_recurring
            and self.recurrence_interval != RecurrenceInterval.none
            and self.parent_transaction_id is None
        )

    @property
    def is_generated(self) -> bool:
        return self.parent_transaction_id is not None

    def is_future(self, today: dt.date) -> bool:
        return self.date > today

    def touches(self, account_id: UUID) -> bool:
        return account_id in (
            self.from_account_id,
            self.to_account_id,
            self.friend_payment_account_id if self.friend_payment_is_account else None,
        )


class Budget(Record):
    name: str
    amount_cents: int
    type: BudgetType
    time_period: TimePeriod
    category_id: Optional[UUID] = None
    account_id: Optional[UUID] = None
    start_date: dt.date
    period_start_date: Optional[dt.date] = None
    current_spent_cents: int = 0

    @computed_field
    @property
    def remaining_cents(self) -> int:
        return max(0, self.amount_cents - self.current_spent_cents)

    @computed_field
    @property
    def percent_used(self) -> float:
        if self.amount_cents <= 0:
            return 0.0
        return min(1.0, self.current_spent_cents / self.amount_cents)


class UserPreferences(BaseModel):
    user_name: str = ""
    currency_symbol: str = "£"
    locale: str = "en_GB"
    has_completed_onboarding: bool = False
