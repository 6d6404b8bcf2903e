from typing import Iterable, Optional
from uuid import UUID

from errors import NotFoundError, ValidationError
from ledger import effect_on
from models import Account, Pool, PoolColor, Transaction


def unallocated_balance(account: Account) -> int:
    return account.balance_cents - sum(p.amount_cents for p in account.pools)


def _replace_pool(account: Account, pool: Pool) -> Account:
    pools = [pool if p.id == pool.id else p for p in account.pools]
    return account.model_copy(update={"pools": pools})


def _require_pool(account: Account, pool_id: UUID) -> Pool:
    pool = account.pool(pool_id)
    if pool is None:
        raise NotFoundError("Pool not found")
    return pool


def _check_allocation(account: Account, amount_cents: int) -> None:
    if amount_cents <= 0:
        raise ValidationError("Pool amount must be positive")
    available = unallocated_balance(account)
    if amount_cents > available:
        raise ValidationError(
            f"Pool amount {amount_cents} exceeds unallocated balance {available}"
        )


def create_pool(
    account: Account,
    name: str,
    amount_cents: int,
    color: PoolColor = PoolColor.blue,
) -> Account:
    name = name.strip()
    if not name:
        raise ValidationError("Pool name is required")
    _check_allocation(account, amount_cents)
    pool = Pool(name=name, amount_cents=amount_cents, color=color)
    return account.model_copy(update={"pools": [*account.pools, pool]})


def top_up_pool(account: Account, pool_id: UUID, amount_cents: int) -> Account:
    pool = _require_pool(account, pool_id)
    _check_allocation(account, amount_cents)
    return _replace_pool(
        account, pool.model_copy(update={"amount_cents": pool.amount_cents + amount_cents})
    )


def withdraw_from_pool(account: Account, pool_id: UUID, amount_cents: int) -> Account:
    pool = _require_pool(account, pool_id)
    if amount_cents <= 0:
        raise ValidationError("Withdrawal amount must be positive")
    if amount_cents > pool.amount_cents:
        raise ValidationError("Cannot withdraw more than the pool holds")
    return _replace_pool(
        account, pool.model_copy(update={"amount_cents": pool.amount_cents - amount_cents})
    )


def rename_pool(
    account: Account, pool_id: UUID, name: str, color: Optional[PoolColor] = None
) -> Account:
    pool = _require_pool(account, pool_id)
    name = name.strip()
    if not name:
        raise ValidationError("Pool name is required")
    update: dict[str, object] = {"name": name}
    if color is not None:
        update["color"] = color
    return _replace_pool(account, pool.model_copy(update=update))


def reassign(
    txn: Transaction,
    from_pool_id: Optional[UUID],
    to_pool_id: Optional[UUID],
    account: Account,
) -> Account:
    """Move ``txn``'s effect from one of ``account``'s pools to another.

    The prior effect on ``from_pool_id`` is reversed first, then the effect is
    applied to ``to_pool_id``. ``to_pool_id=None`` only reverses.
    """
    if to_pool_id is not None:
        _require_pool(account, to_pool_id)
        if not txn.touches(account.id):
            raise ValidationError("Transaction does not affect this account")

    effect = effect_on(txn, account.id)
    pools: list[Pool] = []
    for pool in account.pools:
        amount = pool.amount_cents
        if from_pool_id is not None and pool.id == from_pool_id:
            amount -= effect
        if to_pool_id is not None and pool.id == to_pool_id:
            amount += effect
        if amount != pool.amount_cents:
            pool = pool.model_copy(update={"amount_cents": amount})
        pools.append(pool)
    return account.model_copy(update={"pools": pools})


def delete_pool(
    account: Account, pool_id: UUID, transactions: Iterable[Transaction]
) -> tuple[Account, list[Transaction]]:
    _require_pool(account, pool_id)
    remaining = [p for p in account.pools if p.id != pool_id]
    cleared = [
        txn.model_copy(update={"pool_id": None}) if txn.pool_id == pool_id else txn
        for txn in transactions
    ]
    return account.model_copy(update={"pools": remaining}), cleared


def scale_pools(account: Account, ratio: float) -> Account:
    pools = [
        p.model_copy(update={"amount_cents": round(p.amount_cents * ratio)})
        for p in account.pools
    ]
    return account.model_copy(update={"pools": pools})


def pool_transactions(
    pool_id: UUID, transactions: Iterable[Transaction]
) -> list[Transaction]:
    matching = [txn for txn in transactions if txn.pool_id == pool_id]
    return sorted(matching, key=lambda t: t.date, reverse=True)
