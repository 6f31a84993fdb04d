"""Integration tests for API endpoints"""

import pytest
from datetime import date
from decimal import Decimal

from fastapi.testclient import TestClient

from fintrack_engine.api.dependencies import get_aggregator_client
from fintrack_engine.domain.exceptions import AggregatorRequestFailed
from fintrack_engine.infrastructure.database.models import CreditInstallment, LedgerTransaction


@pytest.fixture
def api(client: TestClient, aggregator) -> TestClient:
    """Test client whose aggregator dependency is the AsyncMock double"""
    client.app.dependency_overrides[get_aggregator_client] = lambda: aggregator
    return client


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "fintrack_sync_total" in response.text
    assert "fintrack_payments_recorded_total" in response.text


def test_request_id_header(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_sync_item_endpoint(api: TestClient, user_id, db):
    response = api.post("/v1/sync/items/item-1", params={"user_id": user_id})

    assert response.status_code == 200
    data = response.json()
    assert data["transactions_applied"] == 3
    assert data["duplicates_avoided"] == 0
    assert data["refresh_timed_out"] is False
    assert db.query(LedgerTransaction).count() == 3

    again = api.post("/v1/sync/items/item-1", params={"user_id": user_id}).json()
    assert again["transactions_applied"] == 0
    assert again["duplicates_avoided"] == 3


def test_sync_item_aggregator_failure_is_502(api: TestClient, user_id, aggregator):
    aggregator.list_accounts.side_effect = AggregatorRequestFailed("Aggregator unreachable")

    response = api.post("/v1/sync/items/item-1", params={"user_id": user_id})

    assert response.status_code == 502


def test_connections_listing_after_sync(api: TestClient, user_id):
    api.post("/v1/sync/items/item-1", params={"user_id": user_id})

    response = api.get("/v1/connections", params={"user_id": user_id})

    assert response.status_code == 200
    connections = response.json()["connections"]
    assert len(connections) == 1
    assert connections[0]["external_item_id"] == "item-1"
    assert connections[0]["status"] == "active"
    assert connections[0]["institution_name"] == "Nubank"


def test_sync_run_silent_hides_errors(api: TestClient, user_id, aggregator):
    api.post("/v1/sync/items/item-1", params={"user_id": user_id})
    aggregator.list_accounts.side_effect = AggregatorRequestFailed("Aggregator unreachable")

    silent = api.post("/v1/sync/run", params={"user_id": user_id, "mode": "silent"})
    interactive = api.post("/v1/sync/run", params={"user_id": user_id, "mode": "interactive"})

    assert silent.status_code == 200
    assert silent.json()["failed"] == 1
    assert silent.json()["outcomes"][0]["error"] is None
    assert interactive.json()["outcomes"][0]["error"] == "Aggregator unreachable"


def test_sync_run_rejects_unknown_mode(api: TestClient, user_id):
    response = api.post("/v1/sync/run", params={"user_id": user_id, "mode": "loud"})
    assert response.status_code == 422


def test_create_and_list_bills(client: TestClient, user_id, checking):
    response = client.post("/v1/bills", json={
        "user_id": user_id,
        "title": "Internet",
        "amount": "120.00",
        "frequency": "monthly",
        "start_date": "2025-06-02",
        "next_due_date": "2099-06-02",
        "account_id": str(checking.id),
        "payment_method": "Debit",
    })

    assert response.status_code == 201
    assert response.json()["status"] == "Pending"

    bills = client.get("/v1/bills", params={"user_id": user_id}).json()["bills"]
    assert [b["title"] for b in bills] == ["Internet"]
    assert bills[0]["next_due_date"] == "2099-06-02"


def test_create_bill_invalid_frequency_is_422(client: TestClient, user_id):
    response = client.post("/v1/bills", json={
        "user_id": user_id, "title": "Gym", "amount": "25.00", "frequency": "daily", "start_date": "2025-06-02",
    })
    assert response.status_code == 422


def test_pay_bill_endpoint(client: TestClient, user_id, make_bill, checking, db):
    bill = make_bill("Gym", "25.00", "weekly", start_date=date(2025, 6, 2))

    response = client.post(f"/v1/bills/{bill.id}/pay", json={
        "user_id": user_id,
        "account_id": str(checking.id),
        "payment_method": "Debit",
        "payment_date": "2025-06-02",
    })

    assert response.status_code == 200
    data = response.json()
    assert data["applied"] is True
    assert data["next_due_date"] == "2025-06-09"
    assert Decimal(data["amount"]) == Decimal("-25.00")
    assert db.query(LedgerTransaction).count() == 1


def test_pay_credit_bill_through_cash_path_is_409(client: TestClient, user_id, make_bill, card, db):
    bill = make_bill("Streaming", "39.90", payment_method="Credit", account_id=card.id)

    response = client.post(f"/v1/bills/{bill.id}/pay", json={"user_id": user_id})

    assert response.status_code == 409
    assert db.query(LedgerTransaction).count() == 0


def test_pay_bill_without_account_is_422(client: TestClient, user_id, make_bill):
    bill = make_bill()
    response = client.post(f"/v1/bills/{bill.id}/pay", json={"user_id": user_id, "payment_method": "Pix"})
    assert response.status_code == 422


def test_pay_unknown_bill_is_404(client: TestClient, user_id):
    response = client.post("/v1/bills/does-not-exist/pay", json={"user_id": user_id, "payment_method": "Cash"})
    assert response.status_code == 404


def test_bills_summary(client: TestClient, user_id, make_bill):
    make_bill("Old", "30.00", next_due_date=date(2020, 1, 1))
    make_bill("Future", "70.00", next_due_date=date(2099, 1, 1))

    data = client.get("/v1/bills/summary", params={"user_id": user_id}).json()

    assert data["total"] == 2
    assert data["overdue"] == 1
    assert data["pending"] == 2
    assert Decimal(data["overdue_amount"]) == Decimal("30.00")


def test_credit_bill_payment_flow(client: TestClient, user_id, card, db):
    created = client.post("/v1/bills", json={
        "user_id": user_id,
        "title": "Streaming",
        "amount": "39.90",
        "frequency": "monthly",
        "start_date": "2025-06-05",
        "next_due_date": "2025-06-05",
        "account_id": str(card.id),
        "payment_method": "Credit",
    }).json()

    first = client.post(f"/v1/bills/{created['bill_id']}/pay-credit", json={"user_id": user_id})
    assert first.status_code == 200
    assert first.json()["applied"] is True
    assert first.json()["next_due_date"] == "2025-07-05"

    paid_id = first.json()["installment_id"]
    again = client.post(f"/v1/credit/installments/{paid_id}/pay", json={"user_id": user_id})
    assert again.status_code == 200
    assert again.json()["applied"] is False

    pending = client.get("/v1/credit/installments", params={"user_id": user_id, "include_paid": False}).json()
    assert [i["due_date"] for i in pending["installments"]] == ["2025-07-05"]


def test_purchase_endpoint(client: TestClient, user_id, card, db):
    response = client.post("/v1/credit/purchases", json={
        "user_id": user_id,
        "card_account_id": str(card.id),
        "title": "Laptop",
        "total_amount": "300.00",
        "installment_count": 3,
        "base_date": "2025-01-15",
    })

    assert response.status_code == 201
    assert [Decimal(i["amount"]) for i in response.json()] == [Decimal("100.00")] * 3
    assert db.query(CreditInstallment).count() == 3


def test_purchase_on_bank_account_is_422(client: TestClient, user_id, checking):
    response = client.post("/v1/credit/purchases", json={
        "user_id": user_id,
        "card_account_id": str(checking.id),
        "title": "Laptop",
        "total_amount": "300.00",
        "installment_count": 3,
        "base_date": "2025-01-15",
    })
    assert response.status_code == 422


def test_card_payment_endpoint_is_idempotent(client: TestClient, user_id, card, db):
    body = {
        "user_id": user_id,
        "card_account_id": str(card.id),
        "title": "Gym",
        "amount": "25.00",
        "due_date": "2025-07-01",
    }

    first = client.post("/v1/credit/card-payments", json=body).json()
    second = client.post("/v1/credit/card-payments", json=body).json()

    assert first["installment_id"] == second["installment_id"]
    assert db.query(CreditInstallment).count() == 1
