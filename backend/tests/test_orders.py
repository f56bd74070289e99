"""
Order intake tests.

Verifies:
- A sale lowers stock by exactly the quantity sold and logs it
- A short product rejects the whole order with nothing written
- Totals, discounts and profit are computed server-side
- Initial payments, idempotent retries, returns and cancellation
"""

from sierra.extensions import db
from sierra.models import InventoryTransaction, Order
from sierra.services.inventory_service import ledger_quantity


def _order(customer, *lines, **extra):
    return {
        "customer_id": customer.id,
        "items": [
            {"product_id": p.id, "quantity": q, "unit_price_cents": p.unit_price_cents}
            for p, q in lines
        ],
        **extra,
    }


# =============================================================================
# STOCK EFFECTS
# =============================================================================


class TestOrderStock:

    def test_sale_lowers_stock_by_quantity(self, client, admin_headers, customer, cable):
        resp = client.post("/api/orders", json=_order(customer, (cable, 7)), headers=admin_headers)
        assert resp.status_code == 201

        assert cable.stock_quantity == 93
        sale = db.session.query(InventoryTransaction).filter_by(
            product_id=cable.id, transaction_type="sale"
        ).one()
        assert sale.quantity == -7
        assert sale.reference_id == resp.get_json()["order"]["id"]
        assert ledger_quantity(cable.id) == cable.stock_quantity

    def test_insufficient_stock_rejects_without_writing(self, client, admin_headers, customer, cable, flex):
        resp = client.post(
            "/api/orders",
            json=_order(customer, (cable, 2), (flex, 10)),
            headers=admin_headers,
        )
        assert resp.status_code == 400
        body = resp.get_json()
        assert body["details"] == [
            {"product_id": flex.id, "product_name": "Flexible Cord 1.0mm", "requested": 10, "available": 5}
        ]

        assert db.session.query(Order).count() == 0
        assert flex.stock_quantity == 5
        assert cable.stock_quantity == 100
        assert customer.outstanding_balance_cents == 0
        assert db.session.query(InventoryTransaction).filter_by(transaction_type="sale").count() == 0

    def test_repeated_lines_are_summed_for_stock_check(self, client, admin_headers, customer, flex):
        resp = client.post(
            "/api/orders",
            json=_order(customer, (flex, 3), (flex, 3)),
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["details"][0]["requested"] == 6
        assert flex.stock_quantity == 5


# =============================================================================
# TOTALS AND PAYMENT STATUS
# =============================================================================


class TestOrderTotals:

    def test_totals_profit_and_outstanding(self, client, admin_headers, customer, cable):
        resp = client.post("/api/orders", json=_order(customer, (cable, 10)), headers=admin_headers)
        body = resp.get_json()

        assert body["order"]["subtotal_cents"] == 59950
        assert body["order"]["total_amount_cents"] == 59950
        assert body["order"]["payment_status"] == "unpaid"
        assert body["profit_cents"] == (5995 - 4500) * 10
        assert body["items"][0]["cost_price_cents"] == 4500
        assert customer.outstanding_balance_cents == 59950

    def test_line_discount_rounds_half_up(self, client, admin_headers, customer, cable):
        payload = _order(customer, (cable, 3))
        payload["items"][0]["discount_percent"] = 10
        payload["discount_amount_cents"] = 187

        body = client.post("/api/orders", json=payload, headers=admin_headers).get_json()
        # 17985 * 0.9 = 16186.5
        assert body["items"][0]["line_total_cents"] == 16187
        assert body["order"]["total_amount_cents"] == 16000

    def test_discount_above_subtotal_rejected(self, client, admin_headers, customer, cable):
        payload = _order(customer, (cable, 1), discount_amount_cents=6000)
        assert client.post("/api/orders", json=payload, headers=admin_headers).status_code == 400
        assert cable.stock_quantity == 100

    def test_full_cash_payment_marks_paid(self, client, admin_headers, customer, cable, cash_account):
        payload = _order(
            customer, (cable, 10),
            paid_amount_cents=59950, payment_method="cash", deposit_account_id=cash_account.id,
        )
        body = client.post("/api/orders", json=payload, headers=admin_headers).get_json()

        assert body["order"]["payment_status"] == "paid"
        assert customer.outstanding_balance_cents == 0
        assert cash_account.current_balance_cents == 59950

    def test_partial_initial_payment(self, client, admin_headers, customer, cable, cash_account):
        payload = _order(
            customer, (cable, 10),
            paid_amount_cents=20000, payment_method="cash", deposit_account_id=cash_account.id,
        )
        order_id = client.post("/api/orders", json=payload, headers=admin_headers).get_json()["order"]["id"]

        detail = client.get(f"/api/orders/{order_id}", headers=admin_headers).get_json()
        assert detail["order"]["payment_status"] == "partial"
        assert detail["paid_amount_cents"] == 20000
        assert detail["balance_cents"] == 39950
        assert len(detail["payments"]) == 1
        assert customer.outstanding_balance_cents == 39950

    def test_initial_payment_requires_method(self, client, admin_headers, customer, cable):
        payload = _order(customer, (cable, 1), paid_amount_cents=100)
        assert client.post("/api/orders", json=payload, headers=admin_headers).status_code == 400

    def test_unknown_customer_is_404(self, client, admin_headers, cable):
        payload = {"customer_id": 999, "items": [{"product_id": cable.id, "quantity": 1, "unit_price_cents": 100}]}
        assert client.post("/api/orders", json=payload, headers=admin_headers).status_code == 404

    def test_empty_items_rejected(self, client, admin_headers, customer):
        resp = client.post("/api/orders", json={"customer_id": customer.id, "items": []}, headers=admin_headers)
        assert resp.status_code == 400


# =============================================================================
# IDEMPOTENCY AND NUMBERING
# =============================================================================


class TestOrderIdempotency:

    def test_replayed_key_returns_original(self, client, admin_headers, customer, cable):
        headers = {**admin_headers, "Idempotency-Key": "bill-0001"}
        first = client.post("/api/orders", json=_order(customer, (cable, 4)), headers=headers)
        second = client.post("/api/orders", json=_order(customer, (cable, 4)), headers=headers)

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.get_json()["replayed"] is True
        assert second.get_json()["order"]["id"] == first.get_json()["order"]["id"]
        assert cable.stock_quantity == 96
        assert db.session.query(Order).count() == 1

    def test_generated_numbers_are_sequential(self, client, admin_headers, customer, cable):
        a = client.post("/api/orders", json=_order(customer, (cable, 1)), headers=admin_headers).get_json()
        b = client.post("/api/orders", json=_order(customer, (cable, 1)), headers=admin_headers).get_json()
        assert a["order"]["order_number"] != b["order"]["order_number"]

    def test_duplicate_client_number_is_409(self, client, admin_headers, customer, cable):
        payload = _order(customer, (cable, 1), order_number="BILL-77")
        assert client.post("/api/orders", json=payload, headers=admin_headers).status_code == 201
        assert client.post("/api/orders", json=payload, headers=admin_headers).status_code == 409
        assert cable.stock_quantity == 99


# =============================================================================
# UPDATES, RETURNS AND CANCELLATION
# =============================================================================


class TestOrderReturns:

    def _create(self, client, headers, customer, cable, qty=10, **extra):
        resp = client.post("/api/orders", json=_order(customer, (cable, qty), **extra), headers=headers)
        return resp.get_json()

    def test_payment_status_cannot_be_overridden(self, client, admin_headers, customer, cable):
        order_id = self._create(client, admin_headers, customer, cable)["order"]["id"]

        resp = client.put(f"/api/orders/{order_id}", json={"payment_status": "paid"}, headers=admin_headers)
        assert resp.status_code == 409

        resp = client.put(
            f"/api/orders/{order_id}",
            json={"payment_status": "unpaid", "status": "delivered"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["order"]["status"] == "delivered"

    def test_partial_return(self, client, admin_headers, customer, cable):
        body = self._create(client, admin_headers, customer, cable)
        order_id = body["order"]["id"]
        item_id = body["items"][0]["id"]

        resp = client.post(
            f"/api/orders/{order_id}/return",
            json={"action": "partial_return", "items": [{"order_item_id": item_id, "return_qty": 4}]},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        result = resp.get_json()
        assert result["return_value_cents"] == 4 * 5995
        assert result["new_total_cents"] == 6 * 5995

        assert cable.stock_quantity == 94
        assert customer.outstanding_balance_cents == 6 * 5995
        assert ledger_quantity(cable.id) == 94

    def test_return_more_than_sold_rejected(self, client, admin_headers, customer, cable):
        body = self._create(client, admin_headers, customer, cable, qty=2)
        resp = client.post(
            f"/api/orders/{body['order']['id']}/return",
            json={"action": "partial_return", "items": [{"order_item_id": body["items"][0]["id"], "return_qty": 3}]},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert cable.stock_quantity == 98

    def test_cancel_restores_stock_and_unpaid_balance(self, client, admin_headers, customer, cable, cash_account):
        body = self._create(
            client, admin_headers, customer, cable,
            paid_amount_cents=10000, payment_method="cash", deposit_account_id=cash_account.id,
        )
        order_id = body["order"]["id"]
        assert customer.outstanding_balance_cents == 49950

        resp = client.post(f"/api/orders/{order_id}/return", json={"action": "cancel"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["order"]["status"] == "cancelled"
        assert cable.stock_quantity == 100
        assert customer.outstanding_balance_cents == 0

        again = client.post(f"/api/orders/{order_id}/return", json={"action": "cancel"}, headers=admin_headers)
        assert again.status_code == 409

    def test_paid_order_cannot_be_returned(self, client, admin_headers, customer, cable, cash_account):
        body = self._create(
            client, admin_headers, customer, cable, qty=1,
            paid_amount_cents=5995, payment_method="cash", deposit_account_id=cash_account.id,
        )
        resp = client.post(f"/api/orders/{body['order']['id']}/return", json={"action": "cancel"}, headers=admin_headers)
        assert resp.status_code == 400
        assert cable.stock_quantity == 99

    def test_unpaid_listing(self, client, admin_headers, customer, other_customer, cable):
        self._create(client, admin_headers, customer, cable, qty=2)
        self._create(client, admin_headers, other_customer, cable, qty=1)

        resp = client.get(f"/api/orders/unpaid/by-customer/{customer.id}", headers=admin_headers)
        body = resp.get_json()
        assert body["count"] == 1
        assert body["total_balance_cents"] == 2 * 5995

        assert client.get("/api/orders/unpaid", headers=admin_headers).get_json()["count"] == 2
