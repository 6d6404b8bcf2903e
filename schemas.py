import datetime as dt
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from models import (
    AccountType,
    BudgetType,
    CategoryType,
    PoolColor,
    RecurrenceInterval,
    TimePeriod,
    TransactionType,
)


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    initial_balance_cents: int = 0


class PoolIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    amount_cents: int = Field(..., gt=0)
    color: PoolColor = PoolColor.blue


class PoolAmountIn(BaseModel):
    amount_cents: int = Field(..., gt=0)


class PoolRenameIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: Optional[PoolColor] = None


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType
    icon_name: str = Field(default="ellipsis", max_length=100)


class CategoryUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    icon_name: Optional[str] = Field(default=None, max_length=100)


class SplitIn(BaseModel):
    friend_name: str = Field(..., min_length=1, max_length=100)
    friend_amount_cents: int = Field(..., ge=0)
    user_amount_cents: int = Field(..., gt=0)
    payment_destination: str = Field(default="", max_length=100)
    payment_account_id: Optional[UUID] = None


class RecurrenceIn(BaseModel):
    interval: RecurrenceInterval
    end_date: Optional[dt.date] = None


class TransactionIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    date: dt.date
    amount_cents: int = Field(..., gt=0)
    description: str = Field(default="", max_length=200)
    type: TransactionType
    category_id: UUID
    from_account_id: Optional[UUID] = None
    to_account_id: Optional[UUID] = None
    split: Optional[SplitIn] = None
    recurrence: Optional[RecurrenceIn] = None
    pool_id: Optional[UUID] = None


class PoolAssignmentIn(BaseModel):
    pool_id: Optional[UUID] = None


class BudgetIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    amount_cents: int = Field(..., gt=0)
    type: BudgetType
    time_period: TimePeriod
    category_id: Optional[UUID] = None
    account_id: Optional[UUID] = None
    start_date: dt.date


class PreferencesIn(BaseModel):
    user_name: str = Field(default="", max_length=100)
    currency_symbol: str = Field(default="£", min_length=1, max_length=5)
    locale: str = Field(default="en_GB", min_length=2, max_length=20)
    has_completed_onboarding: bool = False
