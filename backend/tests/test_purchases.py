"""
Purchase intake and edit tests.

Verifies:
- A purchase increments stock and logs purchase movements atomically
- Line discounts, totals and the cost basis update
- An edit re-applies only the per-product stock difference
"""

from sierra.extensions import db
from sierra.models import InventoryTransaction, Purchase
from sierra.services.inventory_service import ledger_quantity


def _purchase_payload(*lines, **extra):
    return {
        "purchase_date": "2026-10-01",
        "invoice_number": "KEL-INV-5521",
        "items": [
            {"product_id": p.id, "quantity": q, "unit_price_cents": price, "discount_percent": disc}
            for p, q, price, disc in lines
        ],
        **extra,
    }


# =============================================================================
# PURCHASE CREATION
# =============================================================================


class TestCreatePurchase:

    def test_purchase_increments_stock(self, client, admin_headers, supplier, cable):
        resp = client.post(
            "/api/purchases",
            json=_purchase_payload((cable, 50, 4000, 5)),
            headers=admin_headers,
        )
        assert resp.status_code == 201
        body = resp.get_json()

        assert body["purchase"]["supplier_id"] == supplier.id
        assert body["purchase"]["subtotal_cents"] == 200000
        assert body["purchase"]["total_discount_cents"] == 10000
        assert body["purchase"]["total_amount_cents"] == 190000
        assert body["purchase"]["payment_status"] == "unpaid"
        assert body["items"][0]["line_total_cents"] == 190000

        assert cable.stock_quantity == 150
        assert cable.cost_price_cents == 4000
        movement = db.session.query(InventoryTransaction).filter_by(transaction_type="purchase").one()
        assert movement.quantity == 50
        assert movement.reference_id == body["purchase"]["id"]
        assert ledger_quantity(cable.id) == 150

    def test_staff_can_record_purchase(self, client, staff_headers, supplier, flex):
        resp = client.post("/api/purchases", json=_purchase_payload((flex, 20, 1700, 0)), headers=staff_headers)
        assert resp.status_code == 201
        assert flex.stock_quantity == 25

    def test_no_supplier_configured(self, client, admin_headers, cable):
        resp = client.post("/api/purchases", json=_purchase_payload((cable, 5, 4000, 0)), headers=admin_headers)
        assert resp.status_code == 400
        assert cable.stock_quantity == 100
        assert db.session.query(Purchase).count() == 0

    def test_unknown_product_writes_nothing(self, client, admin_headers, supplier, cable):
        payload = _purchase_payload((cable, 5, 4000, 0))
        payload["items"].append({"product_id": 999, "quantity": 1, "unit_price_cents": 100})
        assert client.post("/api/purchases", json=payload, headers=admin_headers).status_code == 404
        assert cable.stock_quantity == 100
        assert db.session.query(Purchase).count() == 0

    def test_zero_quantity_rejected(self, client, admin_headers, supplier, cable):
        resp = client.post("/api/purchases", json=_purchase_payload((cable, 0, 4000, 0)), headers=admin_headers)
        assert resp.status_code == 400


# =============================================================================
# PURCHASE EDIT
# =============================================================================


class TestEditPurchase:

    def test_edit_applies_stock_difference(self, client, admin_headers, supplier, cable, flex):
        purchase_id = client.post(
            "/api/purchases", json=_purchase_payload((cable, 50, 4000, 0)), headers=admin_headers
        ).get_json()["purchase"]["id"]
        assert cable.stock_quantity == 150

        resp = client.put(
            f"/api/purchases/{purchase_id}/update",
            json=_purchase_payload((cable, 30, 4000, 0), (flex, 10, 1700, 0)),
            headers=admin_headers,
        )
        assert resp.status_code == 200
        body = resp.get_json()
        assert sorted(body["stock_changes"], key=lambda c: c["product_id"]) == sorted(
            [{"product_id": cable.id, "quantity": -20}, {"product_id": flex.id, "quantity": 10}],
            key=lambda c: c["product_id"],
        )
        assert body["purchase"]["total_amount_cents"] == 30 * 4000 + 10 * 1700
        assert len(body["items"]) == 2

        assert cable.stock_quantity == 130
        assert flex.stock_quantity == 15
        edits = db.session.query(InventoryTransaction).filter_by(transaction_type="purchase_edit").all()
        assert {(t.product_id, t.quantity) for t in edits} == {(cable.id, -20), (flex.id, 10)}
        assert ledger_quantity(cable.id) == 130
        assert ledger_quantity(flex.id) == 15

    def test_unchanged_quantities_log_nothing(self, client, admin_headers, supplier, cable):
        purchase_id = client.post(
            "/api/purchases", json=_purchase_payload((cable, 50, 4000, 0)), headers=admin_headers
        ).get_json()["purchase"]["id"]

        resp = client.put(
            f"/api/purchases/{purchase_id}/update",
            json=_purchase_payload((cable, 50, 4200, 0)),
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["stock_changes"] == []
        assert cable.stock_quantity == 150
        assert cable.cost_price_cents == 4200

    def test_edit_missing_purchase_is_404(self, client, admin_headers, supplier, cable):
        resp = client.put("/api/purchases/999/update", json=_purchase_payload((cable, 1, 100, 0)), headers=admin_headers)
        assert resp.status_code == 404

    def test_edit_requires_date(self, client, admin_headers, supplier, cable):
        purchase_id = client.post(
            "/api/purchases", json=_purchase_payload((cable, 5, 4000, 0)), headers=admin_headers
        ).get_json()["purchase"]["id"]
        payload = _purchase_payload((cable, 6, 4000, 0))
        del payload["purchase_date"]
        assert client.put(f"/api/purchases/{purchase_id}/update", json=payload, headers=admin_headers).status_code == 400
        assert cable.stock_quantity == 105


# =============================================================================
# PURCHASE QUERIES
# =============================================================================


class TestPurchaseQueries:

    def test_unpaid_and_detail(self, client, admin_headers, supplier, cable):
        purchase_id = client.post(
            "/api/purchases", json=_purchase_payload((cable, 10, 4000, 0)), headers=admin_headers
        ).get_json()["purchase"]["id"]

        unpaid = client.get("/api/purchases/unpaid", headers=admin_headers).get_json()
        assert unpaid["count"] == 1
        assert unpaid["total_balance_due_cents"] == 40000

        detail = client.get(f"/api/purchases/{purchase_id}", headers=admin_headers).get_json()
        assert detail["purchase"]["invoice_number"] == "KEL-INV-5521"
        assert detail["supplier_payments"] == []

    def test_date_filter(self, client, admin_headers, supplier, cable):
        client.post("/api/purchases", json=_purchase_payload((cable, 1, 4000, 0)), headers=admin_headers)
        body = client.get("/api/purchases?start_date=2026-10-02", headers=admin_headers).get_json()
        assert body["count"] == 0
        body = client.get("/api/purchases?start_date=2026-10-01&end_date=2026-10-01", headers=admin_headers).get_json()
        assert body["count"] == 1
