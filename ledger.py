from collections import defaultdict
from typing import Iterable, Sequence
from uuid import UUID

from models import Account, Transaction, TransactionType


def transaction_effects(txn: Transaction) -> dict[UUID, int]:
    """Signed balance change per account id for a single transaction.

    ``amount_cents`` is the user's share when the transaction is split. The
    friend's share only reaches the ledger when the friend paid into one of
    the tracked accounts.
    """
    effects: dict[UUID, int] = defaultdict(int)
    if txn.type == TransactionType.expense:
        if txn.from_account_id is not None:
            effects[txn.from_account_id] -= txn.amount_cents
    elif txn.type == TransactionType.income:
        if txn.to_account_id is not None:
            effects[txn.to_account_id] += txn.amount_cents
    else:
        # a missing side is skipped, the other still moves
        if txn.from_account_id is not None:
            effects[txn.from_account_id] -= txn.amount_cents
        if txn.to_account_id is not None:
            effects[txn.to_account_id] += txn.amount_cents

    if (
        txn.is_split
        and txn.friend_payment_is_account
        and txn.friend_payment_account_id is not None
    ):
        effects[txn.friend_payment_account_id] += txn.friend_amount_cents
    return dict(effects)


def effect_on(txn: Transaction, account_id: UUID) -> int:
    return transaction_effects(txn).get(account_id, 0)


def recalculate_balances(
    accounts: Sequence[Account], transactions: Iterable[Transaction]
) -> list[Account]:
    totals: dict[UUID, int] = defaultdict(int)
    for txn in transactions:
        for account_id, delta in transaction_effects(txn).items():
            totals[account_id] += delta

    # unknown account ids simply never match an account here
    return [
        account.model_copy(
            update={
                "balance_cents": account.initial_balance_cents
                + totals.get(account.id, 0)
            }
        )
        for account in accounts
    ]


def account_transactions(
    account_id: UUID, transactions: Iterable[Transaction]
) -> list[Transaction]:
    matching = [txn for txn in transactions if txn.touches(account_id)]
    return sorted(matching, key=lambda t: t.date, reverse=True)


def total_balance(accounts: Iterable[Account]) -> int:
    return sum(account.balance_cents for account in accounts)
