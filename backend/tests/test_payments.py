"""
Payment ledger tests.

Verifies:
- payment_status is derived from the sum of non-returned payments
- Cash/bank transfers credit the deposit account immediately
- Cheques credit only when passed; a returned cheque restores exactly its
  amount to the customer's outstanding balance
- passed/returned are terminal
"""

import pytest

from sierra.extensions import db
from sierra.models import Payment
from sierra.services.customer_service import derive_outstanding


@pytest.fixture
def order(client, admin_headers, customer, cable):
    """Unpaid bill for 10 coils: 59950."""
    resp = client.post(
        "/api/orders",
        json={
            "customer_id": customer.id,
            "items": [{"product_id": cable.id, "quantity": 10, "unit_price_cents": 5995}],
        },
        headers=admin_headers,
    )
    assert resp.status_code == 201
    return resp.get_json()["order"]


def _cash(customer, order, amount, account, **extra):
    return {
        "customer_id": customer.id,
        "order_id": order["id"],
        "amount_cents": amount,
        "payment_method": "cash",
        "deposit_account_id": account.id,
        **extra,
    }


def _cheque(customer, order, amount, account, number="000123"):
    return {
        "customer_id": customer.id,
        "order_id": order["id"],
        "amount_cents": amount,
        "payment_method": "cheque",
        "cheque_number": number,
        "cheque_date": "2026-10-25",
        "bank_account_id": account.id,
    }


# =============================================================================
# CASH / BANK TRANSFER
# =============================================================================


class TestDirectPayments:

    def test_full_cash_payment(self, client, admin_headers, customer, order, cash_account):
        assert customer.outstanding_balance_cents == 59950

        resp = client.post("/api/payments", json=_cash(customer, order, 59950, cash_account), headers=admin_headers)
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["order"]["payment_status"] == "paid"
        assert body["balance_cents"] == 0

        assert customer.outstanding_balance_cents == 0
        assert cash_account.current_balance_cents == 59950

    @pytest.mark.parametrize(
        "amounts,expected",
        [
            ([1], "partial"),
            ([59949], "partial"),
            ([30000, 29950], "paid"),
            ([60000], "paid"),
        ],
    )
    def test_status_follows_sum(self, client, admin_headers, customer, order, cash_account, amounts, expected):
        for amount in amounts:
            client.post("/api/payments", json=_cash(customer, order, amount, cash_account), headers=admin_headers)
        detail = client.get(f"/api/orders/{order['id']}", headers=admin_headers).get_json()
        assert detail["order"]["payment_status"] == expected
        assert detail["paid_amount_cents"] == sum(amounts)

    def test_outstanding_floors_at_zero(self, client, admin_headers, customer, order, cash_account):
        customer.outstanding_balance_cents = 10000
        db.session.commit()

        client.post("/api/payments", json=_cash(customer, order, 59950, cash_account), headers=admin_headers)
        assert customer.outstanding_balance_cents == 0

    def test_bank_transfer_credits_bank_account(self, client, admin_headers, customer, order, bank_account):
        payload = _cash(customer, order, 25000, bank_account, payment_method="bank_transfer", reference_number="TT-88")
        assert client.post("/api/payments", json=payload, headers=admin_headers).status_code == 201
        assert bank_account.current_balance_cents == 25000

    def test_missing_deposit_account_rejected(self, client, admin_headers, customer, order):
        payload = {"customer_id": customer.id, "order_id": order["id"], "amount_cents": 100, "payment_method": "cash"}
        assert client.post("/api/payments", json=payload, headers=admin_headers).status_code == 400

    def test_non_positive_amount_rejected(self, client, admin_headers, customer, order, cash_account):
        for amount in (0, -5):
            resp = client.post("/api/payments", json=_cash(customer, order, amount, cash_account), headers=admin_headers)
            assert resp.status_code == 400
        assert db.session.query(Payment).count() == 0

    def test_order_of_other_customer_rejected(self, client, admin_headers, other_customer, order, cash_account):
        resp = client.post("/api/payments", json=_cash(other_customer, order, 100, cash_account), headers=admin_headers)
        assert resp.status_code == 400
        assert cash_account.current_balance_cents == 0

    def test_standalone_payment_is_credit(self, client, admin_headers, customer, order, cash_account):
        payload = {
            "customer_id": customer.id,
            "amount_cents": 5000,
            "payment_method": "cash",
            "deposit_account_id": cash_account.id,
        }
        assert client.post("/api/payments", json=payload, headers=admin_headers).status_code == 201

        assert customer.outstanding_balance_cents == 59950
        credit = client.get(f"/api/customers/{customer.id}/credit", headers=admin_headers).get_json()
        assert credit["credit_balance_cents"] == 5000

    def test_idempotent_payment(self, client, admin_headers, customer, order, cash_account):
        headers = {**admin_headers, "Idempotency-Key": "pay-42"}
        payload = _cash(customer, order, 10000, cash_account)
        assert client.post("/api/payments", json=payload, headers=headers).status_code == 201
        replay = client.post("/api/payments", json=payload, headers=headers)
        assert replay.status_code == 200
        assert replay.get_json()["replayed"] is True

        assert cash_account.current_balance_cents == 10000
        assert customer.outstanding_balance_cents == 49950


# =============================================================================
# CHEQUE LIFECYCLE
# =============================================================================


class TestChequeLifecycle:

    def test_cheque_requires_details(self, client, admin_headers, customer, order, bank_account):
        payload = _cheque(customer, order, 1000, bank_account)
        del payload["cheque_number"]
        assert client.post("/api/payments", json=payload, headers=admin_headers).status_code == 400

    def test_pending_cheque_counts_but_does_not_credit(self, client, admin_headers, customer, order, bank_account):
        resp = client.post("/api/payments", json=_cheque(customer, order, 59950, bank_account), headers=admin_headers)
        body = resp.get_json()
        assert body["payment"]["cheque_status"] == "pending"
        assert body["order"]["payment_status"] == "paid"
        assert bank_account.current_balance_cents == 0

    def test_deposited_then_passed_credits_account(self, client, admin_headers, customer, order, bank_account, cash_account):
        payment = client.post(
            "/api/payments", json=_cheque(customer, order, 30000, cash_account), headers=admin_headers
        ).get_json()["payment"]

        resp = client.patch(
            f"/api/payments/{payment['id']}",
            json={"cheque_status": "deposited", "deposit_account_id": bank_account.id},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert bank_account.current_balance_cents == 0

        resp = client.patch(f"/api/payments/{payment['id']}", json={"cheque_status": "passed"}, headers=admin_headers)
        assert resp.status_code == 200
        assert bank_account.current_balance_cents == 30000
        assert cash_account.current_balance_cents == 0

    def test_returned_cheque_restores_outstanding(self, client, admin_headers, customer, order, cash_account, bank_account):
        client.post("/api/payments", json=_cash(customer, order, 20000, cash_account), headers=admin_headers)
        cheque = client.post(
            "/api/payments", json=_cheque(customer, order, 39950, bank_account), headers=admin_headers
        ).get_json()
        assert cheque["order"]["payment_status"] == "paid"
        assert customer.outstanding_balance_cents == 0

        resp = client.patch(
            f"/api/payments/{cheque['payment']['id']}", json={"cheque_status": "returned"}, headers=admin_headers
        )
        assert resp.status_code == 200
        assert resp.get_json()["order"]["payment_status"] == "partial"
        assert customer.outstanding_balance_cents == 39950
        assert derive_outstanding(customer.id) == 39950
        assert bank_account.current_balance_cents == 0

    def test_returned_cheque_on_cancelled_order_adds_nothing(
        self, client, admin_headers, customer, order, bank_account
    ):
        cheque = client.post(
            "/api/payments", json=_cheque(customer, order, 20000, bank_account), headers=admin_headers
        ).get_json()["payment"]
        assert customer.outstanding_balance_cents == 39950

        resp = client.post(f"/api/orders/{order['id']}/return", json={"action": "cancel"}, headers=admin_headers)
        assert resp.status_code == 200
        assert customer.outstanding_balance_cents == 0

        resp = client.patch(f"/api/payments/{cheque['id']}", json={"cheque_status": "returned"}, headers=admin_headers)
        assert resp.status_code == 200
        assert customer.outstanding_balance_cents == 0
        assert derive_outstanding(customer.id) == 0

        detail = client.get(f"/api/orders/{order['id']}", headers=admin_headers).get_json()["order"]
        assert detail["status"] == "cancelled"
        assert detail["payment_status"] == "unpaid"

    def test_returned_cheque_after_partial_return(self, client, admin_headers, customer, cable, bank_account):
        body = client.post(
            "/api/orders",
            json={"customer_id": customer.id, "items": [{"product_id": cable.id, "quantity": 10, "unit_price_cents": 1000}]},
            headers=admin_headers,
        ).get_json()
        order, item_id = body["order"], body["items"][0]["id"]

        cheque = client.post(
            "/api/payments", json=_cheque(customer, order, 6000, bank_account), headers=admin_headers
        ).get_json()["payment"]
        assert customer.outstanding_balance_cents == 4000

        # Total drops to 5000, already covered by the cheque
        resp = client.post(
            f"/api/orders/{order['id']}/return",
            json={"action": "partial_return", "items": [{"order_item_id": item_id, "return_qty": 5}]},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert customer.outstanding_balance_cents == 0

        resp = client.patch(f"/api/payments/{cheque['id']}", json={"cheque_status": "returned"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["order"]["payment_status"] == "unpaid"
        assert customer.outstanding_balance_cents == 5000
        assert derive_outstanding(customer.id) == 5000

    @pytest.mark.parametrize("terminal", ["passed", "returned"])
    @pytest.mark.parametrize("follow_up", ["deposited", "passed", "returned"])
    def test_terminal_states_reject_transitions(
        self, client, admin_headers, customer, order, bank_account, terminal, follow_up
    ):
        payment_id = client.post(
            "/api/payments", json=_cheque(customer, order, 1000, bank_account), headers=admin_headers
        ).get_json()["payment"]["id"]
        assert client.patch(
            f"/api/payments/{payment_id}", json={"cheque_status": terminal}, headers=admin_headers
        ).status_code == 200
        balance_before = bank_account.current_balance_cents
        outstanding_before = customer.outstanding_balance_cents

        resp = client.patch(f"/api/payments/{payment_id}", json={"cheque_status": follow_up}, headers=admin_headers)
        assert resp.status_code == 409
        assert bank_account.current_balance_cents == balance_before
        assert customer.outstanding_balance_cents == outstanding_before

    def test_cash_payment_has_no_cheque_status(self, client, admin_headers, customer, order, cash_account):
        payment_id = client.post(
            "/api/payments", json=_cash(customer, order, 100, cash_account), headers=admin_headers
        ).get_json()["payment"]["id"]
        resp = client.patch(f"/api/payments/{payment_id}", json={"cheque_status": "passed"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_unknown_status_rejected(self, client, admin_headers, customer, order, bank_account):
        payment_id = client.post(
            "/api/payments", json=_cheque(customer, order, 100, bank_account), headers=admin_headers
        ).get_json()["payment"]["id"]
        resp = client.patch(f"/api/payments/{payment_id}", json={"cheque_status": "bounced"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_list_filters_by_cheque_status(self, client, admin_headers, customer, order, bank_account, cash_account):
        client.post("/api/payments", json=_cheque(customer, order, 100, bank_account), headers=admin_headers)
        client.post("/api/payments", json=_cash(customer, order, 100, cash_account), headers=admin_headers)

        body = client.get("/api/payments?cheque_status=pending", headers=admin_headers).get_json()
        assert body["count"] == 1
        assert body["payments"][0]["payment_method"] == "cheque"
