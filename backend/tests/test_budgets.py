"""
Budget tests.

Verifies:
- One budget per (period, type, category); expense budgets need a category
- Only the amount and notes change after creation
- Budget vs actual reads the month's sales, expenses and purchases, with
  positive variance always favorable
- Writes need MANAGE_BUDGETS, reads need VIEW_REPORTS
"""

import pytest

from sierra.time_utils import today


@pytest.fixture
def month():
    return today().strftime("%Y-%m")


@pytest.fixture
def trading_month(client, admin_headers, customer, cable, supplier, month):
    """This month: 59950 of sales, 15000 of fuel, 200000 of purchases."""
    client.post(
        "/api/orders",
        json={"customer_id": customer.id, "items": [{"product_id": cable.id, "quantity": 10, "unit_price_cents": 5995}]},
        headers=admin_headers,
    )
    client.post(
        "/api/expenses",
        json={"category": "fuel", "description": "Lorry diesel", "amount_cents": 15000},
        headers=admin_headers,
    )
    client.post(
        "/api/purchases",
        json={"items": [{"product_id": cable.id, "quantity": 50, "unit_price_cents": 4000}]},
        headers=admin_headers,
    )
    return month


def _budget(client, headers, period, budget_type, amount, **extra):
    return client.post(
        "/api/budgets",
        json={"budget_period": period, "budget_type": budget_type, "budgeted_amount_cents": amount, **extra},
        headers=headers,
    )


# =============================================================================
# BUDGET MAINTENANCE
# =============================================================================


class TestBudgets:

    def test_create_and_list(self, client, admin_headers):
        resp = _budget(client, admin_headers, "2026-10", "sales", 500000, notes="Festival season")
        assert resp.status_code == 201
        budget = resp.get_json()["budget"]
        assert budget["category"] is None
        assert budget["notes"] == "Festival season"

        _budget(client, admin_headers, "2025-12", "expenses", 20000, category="rent")

        listed = client.get("/api/budgets?year=2026", headers=admin_headers).get_json()
        assert [b["id"] for b in listed["budgets"]] == [budget["id"]]
        listed = client.get("/api/budgets?type=expenses", headers=admin_headers).get_json()
        assert listed["count"] == 1
        assert listed["budgets"][0]["category"] == "rent"

    def test_duplicate_slot_is_409(self, client, admin_headers):
        assert _budget(client, admin_headers, "2026-10", "sales", 100).status_code == 201
        assert _budget(client, admin_headers, "2026-10", "sales", 200).status_code == 409

        assert _budget(client, admin_headers, "2026-10", "expenses", 100, category="fuel").status_code == 201
        assert _budget(client, admin_headers, "2026-10", "expenses", 100, category="rent").status_code == 201
        assert _budget(client, admin_headers, "2026-10", "expenses", 100, category="fuel").status_code == 409

    @pytest.mark.parametrize(
        "payload",
        [
            {"budget_period": "2026-13", "budget_type": "sales", "budgeted_amount_cents": 100},
            {"budget_period": "10/2026", "budget_type": "sales", "budgeted_amount_cents": 100},
            {"budget_period": "2026-10", "budget_type": "profit", "budgeted_amount_cents": 100},
            {"budget_period": "2026-10", "budget_type": "sales", "budgeted_amount_cents": -1},
            {"budget_period": "2026-10", "budget_type": "sales"},
            {"budget_period": "2026-10", "budget_type": "expenses", "budgeted_amount_cents": 100},
            {"budget_period": "2026-10", "budget_type": "expenses", "budgeted_amount_cents": 100, "category": "gifts"},
            {"budget_period": "2026-10", "budget_type": "sales", "budgeted_amount_cents": 100, "category": "fuel"},
        ],
    )
    def test_invalid_budget_rejected(self, client, admin_headers, payload):
        assert client.post("/api/budgets", json=payload, headers=admin_headers).status_code == 400

    def test_update_amount_and_notes_only(self, client, admin_headers):
        budget_id = _budget(client, admin_headers, "2026-10", "sales", 100).get_json()["budget"]["id"]

        resp = client.put(
            f"/api/budgets/{budget_id}", json={"budgeted_amount_cents": 250, "notes": "Revised"}, headers=admin_headers
        )
        assert resp.status_code == 200
        assert resp.get_json()["budget"]["budgeted_amount_cents"] == 250

        resp = client.patch(f"/api/budgets/{budget_id}", json={"budget_type": "purchases"}, headers=admin_headers)
        assert resp.status_code == 400
        assert client.get(f"/api/budgets/{budget_id}", headers=admin_headers).get_json()["budget"]["budget_type"] == "sales"

    def test_delete(self, client, admin_headers):
        budget_id = _budget(client, admin_headers, "2026-10", "sales", 100).get_json()["budget"]["id"]
        assert client.delete(f"/api/budgets/{budget_id}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/budgets/{budget_id}", headers=admin_headers).status_code == 404
        assert client.delete(f"/api/budgets/{budget_id}", headers=admin_headers).status_code == 404

    def test_staff_denied(self, client, staff_headers):
        assert _budget(client, staff_headers, "2026-10", "sales", 100).status_code == 403
        assert client.get("/api/budgets", headers=staff_headers).status_code == 403


# =============================================================================
# BUDGET VS ACTUAL
# =============================================================================


class TestBudgetVsActual:

    def test_comparison(self, client, admin_headers, trading_month):
        _budget(client, admin_headers, trading_month, "sales", 50000)
        _budget(client, admin_headers, trading_month, "expenses", 10000, category="fuel")
        _budget(client, admin_headers, trading_month, "purchases", 200000)

        resp = client.get(f"/api/budgets/vs-actual?period={trading_month}", headers=admin_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        rows = {row["type"]: row for row in body["comparisons"]}

        assert rows["sales"]["actual_amount_cents"] == 59950
        assert rows["sales"]["variance_cents"] == 9950
        assert rows["sales"]["variance_status"] == "favorable"
        assert rows["sales"]["variance_percent"] == 19.9

        # Overspending is unfavorable
        assert rows["expenses"]["actual_amount_cents"] == 15000
        assert rows["expenses"]["variance_cents"] == -5000
        assert rows["expenses"]["variance_status"] == "unfavorable"

        assert rows["purchases"]["variance_cents"] == 0
        assert rows["purchases"]["variance_status"] == "neutral"

        summary = body["summary"]
        assert summary["total_budgeted_cents"] == 260000
        assert summary["total_actual_cents"] == 274950
        assert summary["total_variance_cents"] == 4950
        assert summary["favorable_count"] == 1
        assert summary["unfavorable_count"] == 1
        assert summary["on_track_percent"] == 33.33

    def test_expense_budget_counts_only_its_category(self, client, admin_headers, trading_month):
        _budget(client, admin_headers, trading_month, "expenses", 10000, category="rent")
        body = client.get("/api/budgets/vs-actual?type=expenses", headers=admin_headers).get_json()
        assert body["comparisons"][0]["actual_amount_cents"] == 0
        assert body["comparisons"][0]["variance_status"] == "favorable"

    def test_cancelled_sales_not_counted(self, client, admin_headers, customer, cable, month):
        order = client.post(
            "/api/orders",
            json={"customer_id": customer.id, "items": [{"product_id": cable.id, "quantity": 2, "unit_price_cents": 5995}]},
            headers=admin_headers,
        ).get_json()["order"]
        client.post(f"/api/orders/{order['id']}/return", json={"action": "cancel"}, headers=admin_headers)
        _budget(client, admin_headers, month, "sales", 1000)

        row = client.get("/api/budgets/vs-actual", headers=admin_headers).get_json()["comparisons"][0]
        assert row["actual_amount_cents"] == 0
        assert row["variance_status"] == "unfavorable"

    def test_empty(self, client, admin_headers):
        body = client.get("/api/budgets/vs-actual?year=2020", headers=admin_headers).get_json()
        assert body["comparisons"] == []
        assert body["summary"]["on_track_percent"] == 0.0

    @pytest.mark.parametrize("query", ["period=2026-1", "year=26", "type=profit"])
    def test_bad_filters_rejected(self, client, admin_headers, query):
        assert client.get(f"/api/budgets/vs-actual?{query}", headers=admin_headers).status_code == 400
