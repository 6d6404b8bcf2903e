from typing import Optional
from uuid import UUID

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from errors import NotFoundError
from models import CategoryType, TransactionType
from periods import Period, resolve_period
from recurrence import local_today
from scheduler import SchedulerManager
from schemas import (
    AccountIn,
    BudgetIn,
    CategoryIn,
    CategoryUpdateIn,
    PoolAmountIn,
    PoolAssignmentIn,
    PoolIn,
    PoolRenameIn,
    PreferencesIn,
    TransactionIn,
)
from services import (
    AccountService,
    BudgetService,
    CategoryService,
    MetricsService,
    PoolService,
    PreferencesService,
    RecurringService,
    TransactionFilters,
    TransactionService,
)
from storage import get_state, state_scope

app = FastAPI(title="Student Finance Tracker")

scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400, content={"detail": jsonable_encoder(exc.errors())}
    )


def _http_error(exc: ValueError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def period_from_request(request: Request) -> Period:
    period_slug = request.query_params.get("period")
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    try:
        return resolve_period(period_slug, start, end, today=local_today())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _parse_int(value: Optional[str], name: str) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {name}") from exc


def filters_from_request(request: Request) -> TransactionFilters:
    params = request.query_params
    try:
        types = {
            TransactionType(value)
            for value in params.get("type", "").split(",")
            if value
        }
        category_ids = {
            UUID(value) for value in params.get("category", "").split(",") if value
        }
        pool_id = UUID(params["pool"]) if params.get("pool") else None
        account_id = UUID(params["account"]) if params.get("account") else None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return TransactionFilters(
        types=types,
        category_ids=category_ids,
        query=params.get("q") or None,
        min_amount_cents=_parse_int(params.get("min"), "min"),
        max_amount_cents=_parse_int(params.get("max"), "max"),
        only_recurring=params.get("recurring") in ("1", "true", "yes"),
        pool_id=pool_id,
        account_id=account_id,
    )


@app.get("/health")
def health():
    return {"status": "ok"}


# Accounts


@app.get("/api/accounts")
def list_accounts():
    return AccountService(get_state()).list_all()


@app.post("/api/accounts", status_code=201)
def create_account(data: AccountIn):
    with state_scope() as state:
        try:
            return AccountService(state).create(data)
        except ValueError as exc:
            raise _http_error(exc) from exc


@app.get("/api/accounts/{account_id}")
def get_account(account_id: UUID):
    try:
        return AccountService(get_state()).get(account_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.put("/api/accounts/{account_id}")
def update_account(account_id: UUID, data: AccountIn):
    with state_scope() as state:
        try:
            return AccountService(state).update(account_id, data)
        except ValueError as exc:
            raise _http_error(exc) from exc


@app.delete("/api/accounts/{account_id}", status_code=204)
def delete_account(account_id: UUID):
    with state_scope() as state:
        try:
            AccountService(state).delete(account_id)
        except ValueError as exc:
            raise _http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/accounts/{account_id}/transactions")
def account_transactions(account_id: UUID):
    state = get_state()
    try:
        AccountService(state).get(account_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return TransactionService(state).list(filters=TransactionFilters(account_id=account_id))


@app.get("/api/accounts/{account_id}/unallocated")
def account_unallocated(account_id: UUID):
    try:
        amount = PoolService(get_state()).unallocated(account_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {"account_id": account_id, "unallocated_cents": amount}


# Pools


@app.get("/api/accounts/{account_id}/pools")
def list_pools(account_id: UUID):
    try:
        return PoolService(get_state()).list(account_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.post("/api/accounts/{account_id}/pools", status_code=201)
def create_pool(account_id: UUID, data: PoolIn):
    with state_scope() as state:
        try:
            return PoolService(state).create(account_id, data)
        except ValueError as exc:
            raise _http_error(exc) from exc


@app.put("/api/accounts/{account_id}/pools/{pool_id}")
def rename_pool(account_id: UUID, pool_id: UUID, data: PoolRenameIn):
    with state_scope() as state:
        try:
            return PoolService(state).rename(account_id, pool_id, data.name, data.color)
        except ValueError as exc:
            raise _http_error(exc) from exc


@app.post("/api/accounts/{account_id}/pools/{pool_id}/top-up")
def top_up_pool(account_id: UUID, pool_id: UUID, data: PoolAmountIn):
    with state_scope() as state:
        try:
            return PoolService(state).top_up(account_id, pool_id, data.amount_cents)
        except ValueError as exc:
            raise _http_error(exc) from exc


@app.post("/api/accounts/{account_id}/pools/{pool_id}/withdraw")
def withdraw_from_pool(account_id: UUID, pool_id: UUID, data: PoolAmountIn):
    with state_scope() as state:
        try:
            return PoolService(state).withdraw(account_id, pool_id, data.amount_cents)
        except ValueError as exc:
            raise _http_error(exc) from exc


@app.delete("/api/accounts/{account_id}/pools/{pool_id}", status_code=204)
def delete_pool(account_id: UUID, pool_id: UUID):
    with state_scope() as state:
        try:
            PoolService(state).delete(account_id, pool_id)
        except ValueError as exc:
            raise _http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/accounts/{account_id}/pools/{pool_id}/transactions")
def pool_transactions(account_id: UUID, pool_id: UUID):
    try:
        return PoolService(get_state()).transactions(account_id, pool_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


# Categories


@app.get("/api/categories")
def list_categories(type: Optional[CategoryType] = None):
    return CategoryService(get_state()).list_all(type)


@app.post("/api/categories", status_code=201)
def create_category(data: CategoryIn):
    with state_scope() as state:
        try:
            return CategoryService(state).create(data)
        except ValueError as exc:
            raise _http_error(exc) from exc


@app.put("/api/categories/{category_id}")
def update_category(category_id: UUID, data: CategoryUpdateIn):
    with state_scope() as state:
        try:
            return CategoryService(state).update(category_id, data)
        except ValueError as exc:
            raise _http_error(exc) from exc


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(category_id: UUID):
    with state_scope() as state:
        try:
            CategoryService(state).delete(category_id)
        except ValueError as exc:
            raise _http_error(exc) from exc
    return Response(status_code=204)


# Transactions


@app.get("/api/transactions")
def list_transactions(request: Request):
    period = period_from_request(request)
    filters = filters_from_request(request)
    limit = _parse_int(request.query_params.get("limit"), "limit")
    offset = _parse_int(request.query_params.get("offset"), "offset") or 0
    return TransactionService(get_state()).list(
        period, filters, limit=limit, offset=offset
    )


@app.get("/api/transactions/future")
def future_transactions():
    return TransactionService(get_state()).future()


@app.post("/api/transactions", status_code=201)
def create_transaction(data: TransactionIn):
    with state_scope() as state:
        try:
            return TransactionService(state).create(data)
        except ValueError as exc:
            raise _http_error(exc) from exc


@app.get("/api/transactions/{transaction_id}")
def get_transaction(transaction_id: UUID):
    try:
        return TransactionService(get_state()).get(transaction_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.put("/api/transactions/{transaction_id}")
def update_transaction(transaction_id: UUID, data: TransactionIn):
    with state_scope() as state:
        try:
            return TransactionService(state).update(transaction_id, data)
        except ValueError as exc:
            raise _http_error(exc) from exc


@app.put("/api/transactions/{transaction_id}/pool")
def assign_transaction_pool(transaction_id: UUID, data: PoolAssignmentIn):
    with state_scope() as state:
        try:
            return TransactionService(state).assign_pool(transaction_id, data.pool_id)
        except ValueError as exc:
            raise _http_error(exc) from exc


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(transaction_id: UUID, include_instances: bool = False):
    with state_scope() as state:
        try:
            TransactionService(state).delete(
                transaction_id, include_instances=include_instances
            )
        except ValueError as exc:
            raise _http_error(exc) from exc
    return Response(status_code=204)


# Recurring series


@app.get("/api/recurring")
def list_recurring():
    return RecurringService(get_state()).origins()


@app.get("/api/recurring/{origin_id}/instances")
def recurring_instances(origin_id: UUID):
    try:
        return RecurringService(get_state()).instances(origin_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.delete("/api/recurring/{origin_id}", status_code=204)
def delete_recurring(origin_id: UUID):
    with state_scope() as state:
        try:
            RecurringService(state).instances(origin_id)
            TransactionService(state).delete(origin_id, include_instances=True)
        except ValueError as exc:
            raise _http_error(exc) from exc
    return Response(status_code=204)


@app.post("/api/recurring/catch-up")
def catch_up_recurring():
    with state_scope() as state:
        created = RecurringService(state).catch_up()
    return {"instances_created": created}


# Budgets


@app.get("/api/budgets")
def list_budgets():
    return BudgetService(get_state()).list_all()


@app.post("/api/budgets", status_code=201)
def create_budget(data: BudgetIn):
    with state_scope() as state:
        try:
            return BudgetService(state).create(data)
        except ValueError as exc:
            raise _http_error(exc) from exc


@app.post("/api/budgets/refresh")
def refresh_budgets():
    with state_scope() as state:
        return BudgetService(state).refresh_all()


@app.get("/api/budgets/{budget_id}")
def get_budget(budget_id: UUID):
    try:
        return BudgetService(get_state()).status(budget_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.put("/api/budgets/{budget_id}")
def update_budget(budget_id: UUID, data: BudgetIn):
    with state_scope() as state:
        try:
            return BudgetService(state).update(budget_id, data)
        except ValueError as exc:
            raise _http_error(exc) from exc


@app.delete("/api/budgets/{budget_id}", status_code=204)
def delete_budget(budget_id: UUID):
    with state_scope() as state:
        try:
            BudgetService(state).delete(budget_id)
        except ValueError as exc:
            raise _http_error(exc) from exc
    return Response(status_code=204)


# Analytics


@app.get("/api/analytics/kpis")
def analytics_kpis(request: Request):
    period = period_from_request(request)
    return {"period": period.slug, **MetricsService(get_state()).kpis(period)}


@app.get("/api/analytics/categories")
def analytics_categories(
    request: Request, type: TransactionType = TransactionType.expense
):
    period = period_from_request(request)
    return MetricsService(get_state()).category_breakdown(period, type)


@app.get("/api/analytics/daily")
def analytics_daily(request: Request):
    period = period_from_request(request)
    return MetricsService(get_state()).daily_net(period)


@app.get("/api/analytics/trend")
def analytics_trend(days: int = 30):
    if days < 1 or days > 366:
        raise HTTPException(status_code=400, detail="days must be between 1 and 366")
    return MetricsService(get_state()).spending_trend(days)


# Preferences


@app.get("/api/preferences")
def get_preferences():
    return PreferencesService(get_state()).get()


@app.put("/api/preferences")
def update_preferences(data: PreferencesIn):
    with state_scope() as state:
        return PreferencesService(state).update(data)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
