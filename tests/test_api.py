import logging

import pytest

from api.app import create_app
from books.config import Settings
from books.storage import RecordStore

USER = {"X-User-Id": "user-1"}


@pytest.fixture
def client():
    app = create_app(settings=Settings(), store=RecordStore())
    app.config["TESTING"] = True
    return app.test_client()


def _seed_rent(client):
    response = client.post("/categories", json={"name": "Rent"}, headers=USER)
    assert response.status_code == 201
    return response.get_json()


def test_requests_without_user_are_rejected(client):
    response = client.get("/categories")

    assert response.status_code == 401
    body = response.get_json()
    assert body["code"] == "UNAUTHENTICATED"
    assert body["error"] == "Authentication required"


def test_allowed_users_restrict_access():
    app = create_app(settings=Settings(allowed_users="alice"), store=RecordStore())
    client = app.test_client()

    assert client.get("/categories", headers={"X-User-Id": "mallory"}).status_code == 401
    assert client.get("/categories", headers={"X-User-Id": "alice"}).status_code == 200


def test_category_lifecycle(client):
    rent = _seed_rent(client)

    duplicate = client.post("/categories", json={"name": "rent"}, headers=USER)
    renamed = client.put(f"/categories/{rent['id']}", json={"name": "Office rent"}, headers=USER)
    deactivated = client.post(f"/categories/{rent['id']}/deactivate", headers=USER)
    active = client.get("/categories", headers=USER).get_json()["items"]
    everything = client.get("/categories/all", headers=USER).get_json()["items"]

    assert duplicate.status_code == 400
    assert duplicate.get_json()["code"] == "VALIDATION_ERROR"
    assert renamed.get_json()["name"] == "Office rent"
    assert deactivated.get_json()["is_active"] is False
    assert active == []
    assert [c["name"] for c in everything] == ["Office rent"]


def test_seed_categories(client):
    first = client.post("/categories/seed", headers=USER).get_json()
    second = client.post("/categories/seed", headers=USER).get_json()

    assert first["inserted"] == 7
    assert second["inserted"] == 0


def test_transaction_crud(client):
    _seed_rent(client)
    created = client.post(
        "/transactions",
        json={
            "type": "expense",
            "amount": "250",
            "description": "January rent",
            "date": "2025-01-15",
            "category": "Rent",
        },
        headers=USER,
    )
    assert created.status_code == 201
    transaction = created.get_json()
    assert transaction["amount"] == "250.00"
    assert transaction["created_by"] == "user-1"

    updated = client.put(
        f"/transactions/{transaction['id']}", json={"amount": 300, "notes": "late"}, headers=USER
    )
    listed = client.get("/transactions?type=expense&search=january", headers=USER)

    assert updated.get_json()["amount"] == "300.00"
    assert updated.get_json()["notes"] == "late"
    assert [t["id"] for t in listed.get_json()["items"]] == [transaction["id"]]

    deleted = client.delete(f"/transactions/{transaction['id']}", headers=USER)
    missing = client.get(f"/transactions/{transaction['id']}", headers=USER)

    assert deleted.status_code == 204
    assert missing.status_code == 404
    assert missing.get_json()["code"] == "NOT_FOUND"


def test_expense_without_category_is_rejected(client):
    response = client.post(
        "/transactions",
        json={"type": "expense", "amount": 10, "description": "Pens", "date": "2025-01-15"},
        headers=USER,
    )

    assert response.status_code == 400
    assert "category" in response.get_json()["details"]


def test_non_string_category_is_rejected(client):
    _seed_rent(client)
    response = client.post(
        "/transactions",
        json={"type": "expense", "amount": 10, "description": "Pens", "date": "2025-01-15", "category": ["Rent"]},
        headers=USER,
    )

    assert response.status_code == 400
    assert response.get_json()["code"] == "VALIDATION_ERROR"


def test_non_json_body_is_rejected(client):
    response = client.post("/categories", data="name=Rent", headers=USER)

    assert response.status_code == 400


def test_bad_limit_is_rejected(client):
    response = client.get("/transactions?type=income&limit=lots", headers=USER)

    assert response.status_code == 400


def test_shareholder_capacity_is_enforced(client):
    first = client.post(
        "/shareholders",
        json={"name": "A", "email": "a@example.com", "share_percentage": 60},
        headers=USER,
    )
    second = client.post(
        "/shareholders",
        json={"name": "B", "email": "b@example.com", "share_percentage": 50},
        headers=USER,
    )
    total = client.get("/shareholders/total", headers=USER).get_json()

    assert first.status_code == 201
    assert second.status_code == 400
    assert second.get_json()["code"] == "VALIDATION_ERROR"
    assert "40%" in second.get_json()["details"]
    assert total == {"total": "60", "remaining": "40"}


def test_profit_distribution_flow(client):
    _seed_rent(client)
    for payload in (
        {"type": "income", "amount": 15000, "description": "Contract", "date": "2025-01-15"},
        {"type": "expense", "amount": 5000, "description": "Office", "date": "2025-03-15", "category": "Rent"},
    ):
        assert client.post("/transactions", json=payload, headers=USER).status_code == 201
    shareholder = client.post(
        "/shareholders",
        json={"name": "A", "email": "a@example.com", "share_percentage": 25},
        headers=USER,
    ).get_json()
    disbursement = client.post(
        "/disbursements",
        json={"shareholder_id": shareholder["id"], "amount": 1000, "date": "2025-02-15", "period": "2025-Q1"},
        headers=USER,
    )
    assert disbursement.status_code == 201

    query = "date_from=2025-01-01&date_to=2025-12-31"
    metrics = client.get(f"/reports/metrics?{query}", headers=USER).get_json()
    shares = client.get(f"/reports/shares?{query}", headers=USER).get_json()["items"]
    breakdown = client.get(f"/reports/breakdown?{query}", headers=USER).get_json()["items"]
    top = client.get(f"/reports/top-categories?{query}&limit=1", headers=USER).get_json()["items"]
    entries = client.get("/disbursements", headers=USER).get_json()["items"]

    assert metrics["net_profit"] == "10000.00"
    assert metrics["available_profit"] == "9000.00"
    assert shares[0]["share_amount"] == "2500.00"
    assert shares[0]["remaining"] == "1500.00"
    assert breakdown == [{"category": "Rent", "total": "5000.00", "percentage": "100.0"}]
    assert len(top) == 1
    assert entries[0]["shareholder_name"] == "A"


def test_report_requires_ordered_range(client):
    response = client.get("/reports/metrics?date_from=2025-02-01&date_to=2025-01-01", headers=USER)

    assert response.status_code == 400


def test_disbursement_to_unknown_shareholder(client):
    response = client.post(
        "/disbursements",
        json={"shareholder_id": "missing", "amount": 10, "date": "2025-01-15", "period": "Q1"},
        headers=USER,
    )

    assert response.status_code == 400


def test_unknown_log_level_falls_back_to_info():
    app = create_app(settings=Settings(log_level="LOUD"), store=RecordStore())

    assert app.logger.level == logging.INFO
