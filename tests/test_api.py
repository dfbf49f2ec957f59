"""
Integration tests for the Branch Finance API
Tests end-to-end workflows using FastAPI TestClient
"""

import pytest
from fastapi.testclient import TestClient

from branch_finance.api import create_app
from branch_finance.api.system import BranchFinanceSystem, get_system
from branch_finance.config import BranchFinanceConfig
from branch_finance.storage import InMemoryStorage


HEADERS = {"X-User-Id": "USER001"}


@pytest.fixture
def client():
    """Test client backed by an in-memory system"""
    system = BranchFinanceSystem(
        config=BranchFinanceConfig(storage_backend="memory"),
        storage=InMemoryStorage()
    )
    app = create_app()
    app.dependency_overrides[get_system] = lambda: system

    yield TestClient(app)
    app.dependency_overrides.clear()


def create_loan(client, **overrides):
    payload = {
        "kind": "loan",
        "branch_id": "BR001",
        "counterparty_name": "Banco Nación",
        "principal_amount": "120000",
        "installment_count": 12,
        "start_date": "2025-01-01",
        "interest_rate_percent_total": "10",
        "record_disbursement": False
    }
    payload.update(overrides)
    r = client.post("/obligations", json=payload, headers=HEADERS)
    assert r.status_code == 201, r.text
    return r.json()


def pay(client, obligation, number, amount, headers=None):
    installment = obligation["installments"][number - 1]
    return client.post(
        f"/obligations/{obligation['id']}/installments/{installment['id']}/payments",
        json={"amount": amount, "payment_date": "2025-02-03"},
        headers=headers or HEADERS
    )


class TestHealthEndpoints:

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"


class TestObligationFlow:
    """End-to-end obligation tests"""

    def test_create_loan(self, client):
        data = create_loan(client)

        assert data["status"] == "active"
        assert data["kind"] == "loan"
        assert len(data["installments"]) == 12
        first = data["installments"][0]
        assert first["due_date"] == "2025-02-01"
        assert first["capital_amount"] == {"amount": "10000.00", "currency": "ARS"}
        assert first["interest_amount"] == {"amount": "1000.00", "currency": "ARS"}
        assert first["status"] == "pending"
        assert data["remaining_balance"]["amount"] == "132000.00"
        assert data["progress_percent"] == "0.00"

    def test_create_requires_user(self, client):
        r = client.post("/obligations", json={
            "kind": "loan",
            "branch_id": "BR001",
            "counterparty_name": "Banco Nación",
            "principal_amount": "1000",
            "installment_count": 2,
            "start_date": "2025-01-01"
        })
        assert r.status_code == 400

    def test_create_invalid_parameters(self, client):
        r = client.post("/obligations", json={
            "kind": "loan",
            "branch_id": "BR001",
            "counterparty_name": "Banco Nación",
            "principal_amount": "1000",
            "down_payment": "1000",
            "installment_count": 2,
            "start_date": "2025-01-01"
        }, headers=HEADERS)

        assert r.status_code == 422
        assert r.json()["error"] == "ValidationError"

    def test_create_unknown_kind(self, client):
        r = client.post("/obligations", json={
            "kind": "mortgage",
            "branch_id": "BR001",
            "counterparty_name": "Banco Nación",
            "principal_amount": "1000",
            "installment_count": 2,
            "start_date": "2025-01-01"
        }, headers=HEADERS)
        assert r.status_code == 422

    def test_get_and_list(self, client):
        loan = create_loan(client)

        r = client.get(f"/obligations/{loan['id']}")
        assert r.status_code == 200
        assert r.json()["id"] == loan["id"]

        r = client.get("/obligations", params={"branch_id": "BR001", "status": "active"})
        assert [o["id"] for o in r.json()["obligations"]] == [loan["id"]]

        r = client.get("/obligations", params={"branch_id": "BR001", "status": "completed"})
        assert r.json()["obligations"] == []

        assert client.get("/obligations/missing").status_code == 404

    def test_full_payment(self, client):
        loan = create_loan(client)
        r = pay(client, loan, 1, "11000")

        assert r.status_code == 200
        data = r.json()
        assert data["capital_paid"]["amount"] == "10000.00"
        assert data["interest_paid"]["amount"] == "1000.00"
        assert data["installment"]["status"] == "paid"
        assert data["obligation_status"] == "active"
        assert len(data["postings"]) == 2
        assert data["postings"][0]["category_group"] == "DEBT"
        assert data["postings"][1]["category_group"] == "FINANCIAL_EXPENSE"

        ledger = client.get(f"/obligations/{loan['id']}/ledger").json()["transactions"]
        assert len(ledger) == 2
        payments = client.get(f"/obligations/{loan['id']}/payments").json()["payments"]
        assert payments[0]["amount"]["amount"] == "11000.00"

    def test_partial_payment(self, client):
        loan = create_loan(client)
        data = pay(client, loan, 1, "5000").json()

        assert data["installment"]["status"] == "partial"
        assert data["capital_paid"]["amount"] == "4545.45"
        assert data["interest_paid"]["amount"] == "454.55"

    def test_overpayment(self, client):
        loan = create_loan(client)
        r = pay(client, loan, 1, "12000")

        assert r.status_code == 422
        assert r.json()["error"] == "OverpaymentError"
        assert client.get(f"/obligations/{loan['id']}/ledger").json()["transactions"] == []

    def test_payment_requires_user(self, client):
        loan = create_loan(client)
        r = pay(client, loan, 1, "100", headers={"X-Other": "x"})
        assert r.status_code == 400

    def test_idempotent_payment(self, client):
        loan = create_loan(client)
        headers = {**HEADERS, "Idempotency-Key": "PAY-42"}

        first = pay(client, loan, 1, "5000", headers=headers).json()
        second = pay(client, loan, 1, "5000", headers=headers).json()

        assert not first["replayed"]
        assert second["replayed"]
        assert second["payment_id"] == first["payment_id"]
        assert len(client.get(f"/obligations/{loan['id']}/payments").json()["payments"]) == 1

    def test_completion(self, client):
        loan = create_loan(client, principal_amount="2000", installment_count=2,
                           interest_rate_percent_total="0")
        pay(client, loan, 1, "1000")
        data = pay(client, loan, 2, "1000").json()

        assert data["obligation_status"] == "completed"
        assert client.get(f"/obligations/{loan['id']}").json()["progress_percent"] == "100.00"

        r = pay(client, loan, 2, "1")
        assert r.status_code == 409


class TestDueDatesAndFlags:

    def test_edit_plan_due_date(self, client):
        plan = create_loan(client, kind="payment_plan", counterparty_name="AFIP")
        installment = plan["installments"][1]

        r = client.patch(
            f"/obligations/{plan['id']}/installments/{installment['id']}/due-date",
            json={"due_date": "2025-03-20"}, headers=HEADERS
        )
        assert r.status_code == 200
        assert r.json()["due_date"] == "2025-03-20"

    def test_edit_loan_due_date_rejected(self, client):
        loan = create_loan(client)
        installment = loan["installments"][1]

        r = client.patch(
            f"/obligations/{loan['id']}/installments/{installment['id']}/due-date",
            json={"due_date": "2025-03-20"}, headers=HEADERS
        )
        assert r.status_code == 422

    def test_default_and_cancel(self, client):
        loan = create_loan(client)

        r = client.post(f"/obligations/{loan['id']}/default", headers=HEADERS)
        assert r.status_code == 200
        assert r.json()["status"] == "defaulted"

        r = client.post(f"/obligations/{loan['id']}/cancel", headers=HEADERS)
        assert r.status_code == 409
        assert r.json()["error"] == "InactiveObligationError"

        assert pay(client, loan, 1, "100").status_code == 409
        assert client.post("/obligations/missing/cancel", headers=HEADERS).status_code == 404


class TestBranchSummary:

    def test_summary(self, client):
        loan = create_loan(client)
        create_loan(client, kind="payment_plan", counterparty_name="AFIP",
                    principal_amount="60000", installment_count=6,
                    interest_rate_percent_total="20")
        pay(client, loan, 1, "5000")

        r = client.get("/branches/BR001/summary", params={"as_of": "2025-01-15"})
        assert r.status_code == 200
        data = r.json()
        assert data["active_count"] == 2
        assert data["total_outstanding"]["amount"] == "199000.00"
        assert data["overdue_installments"] == 0

        r = client.get("/branches/BR001/summary", params={"kind": "loan", "as_of": "2025-01-15"})
        assert r.json()["total_outstanding"]["amount"] == "127000.00"
