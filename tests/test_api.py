"""
HTTP surface: envelopes, status codes and a few end-to-end flows. Every
request gets its own session on the shared in-memory engine, so route-level
transaction boundaries behave as in production.
"""
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from petcare.api.deps import get_db
from petcare.main import app


@pytest.fixture()
def api(engine, db, masters):
    ids = SimpleNamespace(
        branch=masters.branch.id,
        customer=masters.customer.id,
        dog_food=masters.dog_food.id,
        grooming=masters.grooming.id,
        leash=masters.leash.id,
        supplier=masters.supplier.id,
    )
    db.close()

    def _get_db():
        session = Session(engine, autoflush=False)
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    client = TestClient(app)
    yield client, ids
    app.dependency_overrides.clear()


def _data(resp):
    body = resp.json()
    assert body["ok"] is True, body
    return body["data"]


def _error(resp):
    body = resp.json()
    assert body["ok"] is False, body
    return body["error"]


class TestEnvelope:
    def test_health(self, api):
        client, _ = api
        assert client.get("/").status_code == 200

    def test_accounts_listed_and_seed_is_idempotent(self, api):
        client, _ = api
        codes = {a["code"] for a in _data(client.get("/api/accounts"))}
        assert {"1-101", "1-120", "2-101", "4-111", "5-101"} <= codes
        assert _data(client.post("/api/accounts/seed")) == {"added": 0}

    def test_not_found(self, api):
        client, _ = api
        resp = client.get("/api/sales/9999")
        assert resp.status_code == 404
        assert _error(resp)["code"] == "NOT_FOUND"

    def test_request_validation(self, api):
        client, _ = api
        resp = client.post("/api/sales", json={"items": []})
        assert resp.status_code == 422
        err = _error(resp)
        assert err["code"] == "VALIDATION"
        assert err["details"]

    def test_unbalanced_manual_entry(self, api):
        client, _ = api
        resp = client.post("/api/journal-entries", json={
            "journal_date": "2025-01-15",
            "description": "Typo",
            "lines": [
                {"account_code": "1-101", "debit_amount": 100000},
                {"account_code": "3-100", "credit_amount": 90000},
            ],
        })
        assert resp.status_code == 409
        err = _error(resp)
        assert err["code"] == "DUPLICATE_ENTRY"
        assert err["msg"].startswith("Journal is not balanced.")


class TestSaleFlow:
    def _sale(self, client, ids, qty=2):
        resp = client.post("/api/sales", json={
            "branch_id": ids.branch,
            "customer_id": ids.customer,
            "items": [{"product_id": ids.dog_food, "quantity": qty}],
        })
        assert resp.status_code == 201
        return _data(resp)

    def test_stock_sell_and_trial_balance(self, api):
        client, ids = api
        stock = client.post("/api/inventory/initial-stock", json={
            "branch_id": ids.branch, "product_id": ids.dog_food, "quantity": 10, "unit_cost": 60000,
        })
        assert stock.status_code == 201

        sale = self._sale(client, ids)
        assert sale["status"] == "DRAFT"
        assert sale["total_amount"] == 200000

        done = _data(client.post(f"/api/sales/{sale['id']}/submit", json={
            "payments": [{"amount": 250000, "payment_method": "CASH"}],
        }))
        assert done["sale"]["status"] == "COMPLETED"
        assert done["change"] == 50000
        assert done["journal_entry_id"] is not None

        again = client.post(f"/api/sales/{sale['id']}/submit", json={"payments": []})
        assert again.status_code == 409
        assert _error(again)["code"] == "STATUS_CONFLICT"

        on_hand = _data(client.get("/api/inventory/stock", params={"branch_id": ids.branch}))
        assert [float(r["quantity"]) for r in on_hand] == [8.0]

        tb = _data(client.get("/api/journal-entries/trial-balance"))
        assert tb["is_balanced"] is True
        assert tb["total_debit"] == tb["total_credit"]

    def test_unstocked_item_leaves_draft(self, api):
        client, ids = api
        sale = self._sale(client, ids, qty=1)
        resp = client.post(f"/api/sales/{sale['id']}/submit", json={"payments": []})
        assert resp.status_code == 404
        assert _error(resp)["msg"].startswith("Dog Food 1kg: ")
        assert _data(client.get(f"/api/sales/{sale['id']}"))["status"] == "DRAFT"

    def test_service_sale_on_credit_then_payment(self, api):
        client, ids = api
        sale = _data(client.post("/api/sales", json={
            "branch_id": ids.branch,
            "items": [{"product_id": ids.grooming, "quantity": 1}],
        }))
        done = _data(client.post(f"/api/sales/{sale['id']}/submit", json={"payments": []}))
        assert done["outstanding"] == 80000

        paid = _data(client.post(f"/api/sales/{sale['id']}/payments", json={
            "amount": 80000, "payment_method": "QRIS",
        }))
        assert paid["sale"]["outstanding_amount"] == 0
        entries = _data(client.get("/api/journal-entries", params={"source_type": "PAYMENT"}))
        assert len(entries) == 1


class TestExpenseFlow:
    def test_create_pay_and_guard(self, api):
        client, ids = api
        created = client.post("/api/expenses", json={
            "branch_id": ids.branch,
            "account_code": "5-212",
            "amount": 50000,
            "description": "Office snacks",
            "expense_date": "2025-01-20",
        })
        assert created.status_code == 201
        exp = _data(created)
        assert exp["status"] == "DRAFT"

        paid = _data(client.post(f"/api/expenses/{exp['id']}/pay", json={"payment_method": "CASH"}))
        assert paid["status"] == "PAID"
        assert paid["journal_entry_id"] is not None

        gone = client.delete(f"/api/expenses/{exp['id']}")
        assert gone.status_code == 409
        assert _error(gone)["code"] == "STATUS_CONFLICT"

    def test_rejects_non_expense_account(self, api):
        client, ids = api
        resp = client.post("/api/expenses", json={
            "branch_id": ids.branch, "account_code": "1-101", "amount": 1000, "description": "Nope",
        })
        assert resp.status_code == 400
        assert _error(resp)["code"] == "VALIDATION"


class TestBankFlow:
    def test_supplier_paid_from_bank(self, api):
        client, ids = api
        created = client.post("/api/bank-accounts", json={
            "account_name": "Operasional",
            "bank_name": "BCA",
            "account_number": "123-456",
            "account_code": "1-111",
            "initial_balance": 1000000,
            "payment_methods": ["QRIS"],
        })
        assert created.status_code == 201
        ba = _data(created)
        assert ba["method_list"] == ["QRIS"]

        dup = client.post("/api/bank-accounts", json={
            "account_name": "Copy", "bank_name": "BCA", "account_number": "123-456", "account_code": "1-112",
        })
        assert dup.status_code == 409
        assert _error(dup)["code"] == "DUPLICATE_ENTRY"

        po = _data(client.post("/api/purchase-orders", json={
            "supplier_id": ids.supplier,
            "branch_id": ids.branch,
            "items": [{"product_id": ids.leash, "quantity": 10}],
        }))
        client.post(f"/api/purchase-orders/{po['id']}/submit")
        client.post(f"/api/purchase-orders/{po['id']}/receive", json={
            "items": [{"item_id": po["items"][0]["id"], "quantity": 10}],
        })
        payables = _data(client.get("/api/purchase-orders/payables"))
        assert [p["outstanding"] for p in payables] == [150000]

        paid = _data(client.post(f"/api/purchase-orders/{po['id']}/payments", json={"bank_account_id": ba["id"]}))
        assert paid["purchase_order"]["paid"] is True
        assert paid["bank_transaction"]["transaction_type"] == "WITHDRAWAL"

        again = client.post(f"/api/purchase-orders/{po['id']}/payments", json={"amount": 1000})
        assert again.status_code == 409
        assert _error(again)["code"] == "CONFLICT_STATE"

        st = _data(client.get(f"/api/bank-accounts/{ba['id']}/statement"))
        assert st["opening_balance"] == 1000000
        assert [t["running_balance"] for t in st["transactions"]] == [850000]

        tx_id = paid["bank_transaction"]["id"]
        done = _data(client.post(f"/api/bank-transactions/{tx_id}/reconcile", json={"bank_statement_date": "2025-01-31"}))
        assert done["reconciliation_status"] == "RECONCILED"
        blocked = client.post(f"/api/bank-transactions/{tx_id}/void", json={"reason": "Oops"})
        assert blocked.status_code == 409

        summary = _data(client.get("/api/bank-accounts/summary"))
        assert summary["total_balance"] == 850000
