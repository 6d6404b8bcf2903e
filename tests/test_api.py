import pytest
from fastapi.testclient import TestClient

from main import app


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def _ids(client: TestClient) -> dict[str, str]:
    ids = {a["name"]: a["id"] for a in client.get("/api/accounts").json()}
    ids.update({c["name"]: c["id"] for c in client.get("/api/categories?type=expense").json()})
    return ids


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_transaction_round_trip_updates_balance(client: TestClient, data_dir) -> None:
    ids = _ids(client)
    payload = {
        "date": "2024-03-01",
        "amount_cents": 2_500,
        "description": "Groceries",
        "type": "expense",
        "category_id": ids["Food"],
        "from_account_id": ids["Current Account"],
    }

    created = client.post("/api/transactions", json=payload)
    assert created.status_code == 201
    txn_id = created.json()["id"]

    account = client.get(f"/api/accounts/{ids['Current Account']}").json()
    assert account["balance_cents"] == -2_500
    assert client.get(f"/api/transactions/{txn_id}").json()["description"] == "Groceries"
    listed = client.get("/api/transactions?period=custom&start=2024-03-01&end=2024-03-31").json()
    assert [t["id"] for t in listed] == [txn_id]
    assert (data_dir / "transactions.json").exists()

    assert client.delete(f"/api/transactions/{txn_id}").status_code == 204
    assert client.get(f"/api/transactions/{txn_id}").status_code == 404


def test_validation_errors_are_400(client: TestClient) -> None:
    ids = _ids(client)
    same_account = client.post(
        "/api/transactions",
        json={
            "date": "2024-03-01",
            "amount_cents": 100,
            "type": "transfer",
            "category_id": ids["Other"],
            "from_account_id": ids["Current Account"],
            "to_account_id": ids["Current Account"],
        },
    )
    assert same_account.status_code == 400

    negative = client.post(
        "/api/transactions",
        json={
            "date": "2024-03-01",
            "amount_cents": -5,
            "type": "expense",
            "category_id": ids["Food"],
            "from_account_id": ids["Current Account"],
        },
    )
    assert negative.status_code == 400
    assert client.get("/api/transactions?period=fortnight").status_code == 400


def test_pool_flow(client: TestClient) -> None:
    ids = _ids(client)
    account_id = ids["Savings Account"]
    client.put(
        f"/api/accounts/{account_id}",
        json={"name": "Savings Account", "type": "savings", "initial_balance_cents": 100_000},
    )

    pool = client.post(
        f"/api/accounts/{account_id}/pools", json={"name": "Rent", "amount_cents": 30_000}
    ).json()
    assert client.get(f"/api/accounts/{account_id}/unallocated").json()["unallocated_cents"] == 70_000

    too_much = client.post(
        f"/api/accounts/{account_id}/pools/{pool['id']}/top-up", json={"amount_cents": 80_000}
    )
    assert too_much.status_code == 400
    ok = client.post(
        f"/api/accounts/{account_id}/pools/{pool['id']}/top-up", json={"amount_cents": 70_000}
    )
    assert ok.json()["amount_cents"] == 100_000

    missing = client.post(
        f"/api/accounts/{account_id}/pools/{ids['Food']}/withdraw", json={"amount_cents": 1}
    )
    assert missing.status_code == 404


def test_recurring_and_budget_endpoints(client: TestClient) -> None:
    ids = _ids(client)
    origin = client.post(
        "/api/transactions",
        json={
            "date": "2024-01-31",
            "amount_cents": 45_000,
            "description": "Rent",
            "type": "expense",
            "category_id": ids["Housing"],
            "from_account_id": ids["Current Account"],
            "recurrence": {"interval": "monthly", "end_date": "2024-04-30"},
        },
    ).json()

    assert [t["id"] for t in client.get("/api/recurring").json()] == [origin["id"]]
    instances = client.get(f"/api/recurring/{origin['id']}/instances").json()
    assert [t["date"] for t in instances] == ["2024-02-29", "2024-03-31", "2024-04-30"]

    budget = client.post(
        "/api/budgets",
        json={
            "name": "Housing",
            "amount_cents": 100_000,
            "type": "category",
            "time_period": "monthly",
            "category_id": ids["Housing"],
            "start_date": "2024-01-01",
        },
    )
    assert budget.status_code == 201
    status = client.get(f"/api/budgets/{budget.json()['id']}").json()
    assert status["days_remaining"] >= 0
    assert client.get("/api/budgets/00000000-0000-0000-0000-000000000000").status_code == 404

    assert client.delete(f"/api/recurring/{origin['id']}").status_code == 204
    assert client.get("/api/transactions").json() == []


def test_analytics_and_preferences(client: TestClient) -> None:
    kpis = client.get("/api/analytics/kpis?period=this_month").json()
    assert kpis["period"] == "this_month"
    assert kpis["income"] == 0
    assert client.get("/api/analytics/categories").json() == []

    updated = client.put(
        "/api/preferences",
        json={"user_name": "Robin", "currency_symbol": "£", "locale": "en_GB",
              "has_completed_onboarding": True},
    )
    assert updated.status_code == 200
    assert client.get("/api/preferences").json()["user_name"] == "Robin"
