import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
from main import app, get_db


def make_client(create_tables: bool = True) -> TestClient:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    if create_tables:
        Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def client():
    yield make_client()
    app.dependency_overrides.clear()


def test_ledger_is_forked_from_templates_on_first_read(client: TestClient) -> None:
    created = client.post(
        "/api/templates/income", json={"name": "Salary", "amount_cents": 10_000_000}
    )
    assert created.status_code == 201
    template_id = created.json()["id"]

    resp = client.get("/api/monthly-ledger", params={"month": "2025-04"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["daily_expenses_total_cents"] == 0
    ledger = body["ledger"]
    assert ledger["month"] == "2025-04"
    assert ledger["status"] == "draft"
    assert [(i["name"], i["source_id"]) for i in ledger["incomes"]] == [
        ("Salary", template_id)
    ]

    again = client.get("/api/monthly-ledger", params={"month": "2025-04"})
    assert again.json()["ledger"]["id"] == ledger["id"]


def test_ledger_read_rejects_bad_months(client: TestClient) -> None:
    for month in ("2025-4", "25-04", "2025-13"):
        resp = client.get("/api/monthly-ledger", params={"month": month})
        assert resp.status_code == 400
    assert client.get("/api/monthly-ledger").status_code == 400


def test_item_routes_map_errors_to_statuses(client: TestClient) -> None:
    missing = client.post(
        "/api/monthly-ledger/2025-04/items",
        json={"section": "expenses", "name": "Taxi", "amount_cents": 500},
    )
    assert missing.status_code == 404

    client.get("/api/monthly-ledger", params={"month": "2025-04"})

    no_section = client.post(
        "/api/monthly-ledger/2025-04/items", json={"name": "Taxi", "amount_cents": 500}
    )
    assert no_section.status_code == 400

    no_amount = client.post(
        "/api/monthly-ledger/2025-04/items", json={"section": "expenses", "name": "Taxi"}
    )
    assert no_amount.status_code == 400

    added = client.post(
        "/api/monthly-ledger/2025-04/items",
        json={"section": "expenses", "name": "Taxi", "amount_cents": 500},
    )
    assert added.status_code == 201
    item = added.json()["expenses"][0]
    assert item["source_id"] is None

    updated = client.put(
        f"/api/monthly-ledger/2025-04/items/{item['id']}",
        json={"section": "expenses", "amount_cents": 650},
    )
    assert updated.status_code == 200
    assert updated.json()["expenses"][0]["amount_cents"] == 650
    assert updated.json()["expenses"][0]["name"] == "Taxi"

    not_found = client.put(
        "/api/monthly-ledger/2025-04/items/999",
        json={"section": "expenses", "amount_cents": 1},
    )
    assert not_found.status_code == 404

    source = client.get(
        f"/api/monthly-ledger/2025-04/items/{item['id']}/source",
        params={"section": "expenses"},
    )
    assert source.status_code == 200
    assert source.json() == {"template": None}

    removed = client.delete(
        f"/api/monthly-ledger/2025-04/items/{item['id']}", params={"section": "expenses"}
    )
    assert removed.status_code == 200
    assert removed.json()["expenses"] == []

    again = client.delete(
        f"/api/monthly-ledger/2025-04/items/{item['id']}", params={"section": "expenses"}
    )
    assert again.status_code == 200

    no_ledger = client.delete(
        "/api/monthly-ledger/2025-05/items/1", params={"section": "expenses"}
    )
    assert no_ledger.status_code == 404


def test_status_and_summary(client: TestClient) -> None:
    client.post(
        "/api/templates/expense",
        json={"name": "Rent", "amount_cents": 2_500_000, "category": "housing"},
    )
    client.post(
        "/api/templates/income", json={"name": "Salary", "amount_cents": 10_000_000}
    )

    summary = client.get("/api/monthly-ledger/2025-04/summary")
    assert summary.status_code == 200
    assert summary.json()["source"] == "templates"
    assert summary.json()["totals"]["remaining_cents"] == 7_500_000

    client.get("/api/monthly-ledger", params={"month": "2025-04"})
    finalized = client.put(
        "/api/monthly-ledger/2025-04/status",
        json={"status": "finalized", "notes": "Closed out"},
    )
    assert finalized.status_code == 200
    assert finalized.json()["status"] == "finalized"

    summary = client.get("/api/monthly-ledger/2025-04/summary")
    assert summary.json()["source"] == "ledger"

    missing = client.put("/api/monthly-ledger/2025-06/status", json={"status": "draft"})
    assert missing.status_code == 404


def test_users_are_isolated_by_header(client: TestClient) -> None:
    client.post(
        "/api/templates/income",
        json={"name": "Salary", "amount_cents": 10_000_000},
        headers={"X-User-Id": "alice"},
    )

    alice = client.get(
        "/api/monthly-ledger", params={"month": "2025-04"}, headers={"X-User-Id": "alice"}
    )
    bob = client.get(
        "/api/monthly-ledger", params={"month": "2025-04"}, headers={"X-User-Id": "bob"}
    )
    assert len(alice.json()["ledger"]["incomes"]) == 1
    assert bob.json()["ledger"]["incomes"] == []
    assert alice.json()["ledger"]["id"] != bob.json()["ledger"]["id"]


def test_templates_and_daily_expenses_routes(client: TestClient) -> None:
    created = client.post(
        "/api/templates/investment",
        json={"name": "Index fund", "type": "sip", "amount_cents": 1_000_000},
    )
    assert created.status_code == 201
    fund_id = created.json()["id"]

    invalid = client.post("/api/templates/investment", json={"name": "No type"})
    assert invalid.status_code == 400

    paused = client.put(f"/api/templates/investment/{fund_id}", json={"status": "paused"})
    assert paused.status_code == 200
    assert paused.json()["status"] == "paused"
    active = client.get("/api/templates/investment", params={"active_only": True})
    assert active.json() == []

    assert client.delete("/api/templates/investment/999").status_code == 404
    assert client.delete(f"/api/templates/investment/{fund_id}", params={"hard": True}).status_code == 200
    assert client.get("/api/templates/investment").json() == []

    expense = client.post(
        "/api/daily-expenses",
        json={
            "amount_cents": 45_000,
            "description": "Lunch",
            "category": "fod",
            "date": "2025-04-03",
        },
    )
    assert expense.status_code == 201
    assert expense.json()["category"] == "food"

    listed = client.get(
        "/api/daily-expenses", params={"start": "2025-04-01", "end": "2025-04-30"}
    )
    assert [e["description"] for e in listed.json()] == ["Lunch"]

    assert client.delete(f"/api/daily-expenses/{expense.json()['id']}").status_code == 200
    assert client.delete(f"/api/daily-expenses/{expense.json()['id']}").status_code == 404


def test_settings_round_trip(client: TestClient) -> None:
    updated = client.put(
        "/api/settings", json={"base_currency": "inr", "exchange_rates": {"usd": "90"}}
    )
    assert updated.status_code == 200
    assert updated.json()["exchange_rates"] == {"USD": "90"}

    current = client.get("/api/settings")
    assert current.json()["base_currency"] == "INR"
    assert current.json()["exchange_rates"] == {"USD": "90"}

    rejected = client.put("/api/settings", json={"exchange_rates": {"USD": "0"}})
    assert rejected.status_code == 422


def test_settings_reject_rates_below_one_micro(client: TestClient) -> None:
    tiny = client.put("/api/settings", json={"exchange_rates": {"USD": "0.0000001"}})
    assert tiny.status_code == 422
    assert client.get("/api/settings").json()["exchange_rates"] == {}

    smallest = client.put(
        "/api/settings", json={"exchange_rates": {"USD": "0.000001"}}
    )
    assert smallest.status_code == 200
    assert smallest.json()["exchange_rates"] == {"USD": "0.000001"}


def test_snapshot_routes(client: TestClient) -> None:
    client.post(
        "/api/templates/income", json={"name": "Salary", "amount_cents": 1_000_000}
    )
    created = client.post("/api/snapshots", params={"month": "2025-03"})
    assert created.status_code == 201
    assert created.json()["total_income_cents"] == 1_000_000

    listed = client.get("/api/snapshots")
    assert [s["month"] for s in listed.json()] == ["2025-03"]

    assert client.post("/api/snapshots", params={"month": "2025-3"}).status_code == 400


def test_storage_failures_surface_as_service_unavailable() -> None:
    client = make_client(create_tables=False)
    try:
        resp = client.get("/api/monthly-ledger", params={"month": "2025-04"})
        assert resp.status_code == 503
        assert resp.json() == {"detail": "Storage unavailable"}
    finally:
        app.dependency_overrides.clear()
