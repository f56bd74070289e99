"""
Financial report, expense and balance-check tests.

Verifies:
- Trading account: COGS = opening + purchases - closing; gross = sales - COGS
- Profit & loss: net = gross - expenses in the period
- Expenses debit their account and refund it on delete
- check-balances reports drift between stored figures and ledgers
- Product performance and financial health derive from the same books
"""

import pytest

from sierra.extensions import db
from sierra.services import reporting_service
from sierra.time_utils import today


@pytest.fixture
def trading_day(client, admin_headers, customer, cable, supplier):
    """Sell 10 coils on credit, then buy 50 more at 4000."""
    order = client.post(
        "/api/orders",
        json={"customer_id": customer.id, "items": [{"product_id": cable.id, "quantity": 10, "unit_price_cents": 5995}]},
        headers=admin_headers,
    )
    assert order.status_code == 201
    purchase = client.post(
        "/api/purchases",
        json={"items": [{"product_id": cable.id, "quantity": 50, "unit_price_cents": 4000}]},
        headers=admin_headers,
    )
    assert purchase.status_code == 201
    return today().isoformat()


def _report(client, headers, name, **params):
    return client.get(f"/api/financial-reports/{name}", query_string=params, headers=headers)


# =============================================================================
# TRADING ACCOUNT / PROFIT & LOSS
# =============================================================================


class TestTradingAccount:

    def test_identities_hold(self, client, admin_headers, trading_day):
        resp = _report(client, admin_headers, "trading-account", start_date=trading_day, end_date=trading_day)
        assert resp.status_code == 200
        body = resp.get_json()

        assert body["total_sales_cents"] == 59950
        assert body["purchases_cents"] == 200000
        # 100 - 10 + 50 coils at the new cost price
        assert body["closing_stock_cents"] == 140 * 4000
        assert body["cost_of_goods_available_cents"] == body["opening_stock_cents"] + body["purchases_cents"]
        assert body["cost_of_goods_sold_cents"] == (
            body["opening_stock_cents"] + body["purchases_cents"] - body["closing_stock_cents"]
        )
        assert body["gross_profit_cents"] == body["net_sales_cents"] - body["cost_of_goods_sold_cents"]

    def test_cancelled_orders_excluded(self, client, admin_headers, customer, cable):
        order = client.post(
            "/api/orders",
            json={"customer_id": customer.id, "items": [{"product_id": cable.id, "quantity": 2, "unit_price_cents": 5995}]},
            headers=admin_headers,
        ).get_json()["order"]
        client.post(
            f"/api/orders/{order['id']}/return",
            json={"action": "cancel"},
            headers=admin_headers,
        )
        day = today().isoformat()
        body = _report(client, admin_headers, "trading-account", start_date=day, end_date=day).get_json()
        assert body["total_sales_cents"] == 0

    @pytest.mark.parametrize(
        "params",
        [
            {"end_date": "2026-10-31"},
            {"start_date": "2026-10-01"},
            {"start_date": "2026-10-31", "end_date": "2026-10-01"},
            {"start_date": "01/10/2026", "end_date": "2026-10-31"},
        ],
    )
    def test_bad_period_rejected(self, client, admin_headers, params):
        assert _report(client, admin_headers, "trading-account", **params).status_code == 400
        assert _report(client, admin_headers, "profit-loss", **params).status_code == 400


class TestProfitAndLoss:

    def test_net_profit_subtracts_expenses(self, client, admin_headers, trading_day):
        client.post(
            "/api/expenses",
            json={"category": "fuel", "description": "Lorry diesel", "amount_cents": 15000, "expense_date": trading_day},
            headers=admin_headers,
        )
        pnl = _report(client, admin_headers, "profit-loss", start_date=trading_day, end_date=trading_day).get_json()
        trading = _report(
            client, admin_headers, "trading-account", start_date=trading_day, end_date=trading_day
        ).get_json()

        assert pnl["gross_profit_cents"] == trading["gross_profit_cents"]
        assert pnl["expenses"]["fuel"] == 15000
        assert pnl["expenses"]["rent"] == 0
        assert pnl["total_expenses_cents"] == 15000
        assert pnl["net_profit_cents"] == pnl["gross_profit_cents"] - 15000
        # Sold before the purchase, so the cost snapshot is the old 4500
        assert pnl["item_margin_cents"] == (5995 - 4500) * 10

    def test_expenses_outside_period_ignored(self, client, admin_headers, trading_day):
        client.post(
            "/api/expenses",
            json={"category": "rent", "description": "Store rent", "amount_cents": 90000, "expense_date": "2020-01-31"},
            headers=admin_headers,
        )
        pnl = _report(client, admin_headers, "profit-loss", start_date=trading_day, end_date=trading_day).get_json()
        assert pnl["total_expenses_cents"] == 0


# =============================================================================
# BALANCE SHEET / DASHBOARD
# =============================================================================


class TestBalanceSheet:

    def test_sections(self, client, admin_headers, trading_day, cash_account, customer):
        client.post(
            "/api/payments",
            json={
                "customer_id": customer.id,
                "amount_cents": 9950,
                "payment_method": "cash",
                "deposit_account_id": cash_account.id,
                "order_id": client.get("/api/orders", headers=admin_headers).get_json()["orders"][0]["id"],
            },
            headers=admin_headers,
        )
        resp = _report(client, admin_headers, "balance-sheet", end_date=trading_day)
        assert resp.status_code == 200
        body = resp.get_json()

        assets = body["current_assets"]
        assert assets["cash_cents"] == 9950
        assert assets["accounts_receivable_cents"] == 50000
        assert assets["inventory_cents"] == 140 * 4000
        assert body["current_liabilities"]["accounts_payable_cents"] == 200000
        assert body["working_capital_cents"] == (
            assets["total_current_assets_cents"] - body["current_liabilities"]["total_current_liabilities_cents"]
        )

        start = today().replace(month=1, day=1)
        expected_profit = reporting_service.profit_and_loss(start, today())["net_profit_cents"]
        assert body["capital"]["net_profit_cents"] == expected_profit
        assert body["capital"]["closing_capital_cents"] == body["capital"]["opening_capital_cents"] + expected_profit

    def test_opening_capital_from_config(self, app, client, admin_headers):
        app.config["OPENING_CAPITAL_CENTS"] = 1_000_000
        body = _report(client, admin_headers, "balance-sheet", end_date=today().isoformat()).get_json()
        assert body["capital"]["opening_capital_cents"] == 1_000_000

    def test_end_date_required(self, client, admin_headers):
        assert _report(client, admin_headers, "balance-sheet").status_code == 400


class TestDashboard:

    def test_stats(self, client, admin_headers, trading_day, customer):
        resp = client.get("/api/dashboard/stats", headers=admin_headers)
        assert resp.status_code == 200
        stats = resp.get_json()

        assert stats["as_of"] == trading_day
        assert stats["sales_today"]["amount_cents"] == 59950
        assert stats["customers"]["count"] == 1
        assert stats["total_due"] == {"amount_cents": 59950, "invoices": 1}
        assert len(stats["sales_chart"]) == 7
        assert stats["sales_chart"][-1]["sales_cents"] == 59950
        assert stats["stock_value"]["items"] == 140
        assert stats["stock_value"]["cost_cents"] == 140 * 4000

    def test_staff_denied(self, client, staff_headers):
        assert client.get("/api/dashboard/stats", headers=staff_headers).status_code == 403


# =============================================================================
# EXPENSES
# =============================================================================


class TestExpenses:

    def test_expense_debits_account(self, client, staff_headers, cash_account):
        resp = client.post(
            "/api/expenses",
            json={"category": "delivery", "description": "Hire lorry", "amount_cents": 4500, "account_id": cash_account.id},
            headers=staff_headers,
        )
        assert resp.status_code == 201
        expense = resp.get_json()["expense"]
        assert expense["account_name"] == cash_account.account_name
        assert expense["expense_date"] == today().isoformat()
        assert cash_account.current_balance_cents == -4500

        assert client.delete(f"/api/expenses/{expense['id']}", headers=staff_headers).status_code == 200
        assert cash_account.current_balance_cents == 0
        assert client.get(f"/api/expenses/{expense['id']}", headers=staff_headers).status_code == 404

    @pytest.mark.parametrize(
        "payload",
        [
            {"category": "gifts", "description": "x", "amount_cents": 100},
            {"category": "fuel", "description": "x", "amount_cents": 0},
            {"category": "fuel", "amount_cents": 100},
        ],
    )
    def test_invalid_expense_rejected(self, client, admin_headers, payload):
        assert client.post("/api/expenses", json=payload, headers=admin_headers).status_code == 400

    def test_unknown_account_is_404(self, client, admin_headers):
        resp = client.post(
            "/api/expenses",
            json={"category": "fuel", "description": "Diesel", "amount_cents": 100, "account_id": 999},
            headers=admin_headers,
        )
        assert resp.status_code == 404

    def test_amount_fixed_after_posting(self, client, admin_headers):
        expense_id = client.post(
            "/api/expenses", json={"category": "fuel", "description": "Diesel", "amount_cents": 100}, headers=admin_headers
        ).get_json()["expense"]["id"]

        assert client.put(f"/api/expenses/{expense_id}", json={"amount_cents": 200}, headers=admin_headers).status_code == 400
        resp = client.put(f"/api/expenses/{expense_id}", json={"vendor_name": "Lanka IOC"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["expense"]["vendor_name"] == "Lanka IOC"

    def test_summary(self, client, admin_headers):
        for category, amount, day in [
            ("fuel", 3000, "2026-09-02"),
            ("fuel", 1000, "2026-10-05"),
            ("rent", 6000, "2026-10-01"),
        ]:
            client.post(
                "/api/expenses",
                json={"category": category, "description": category, "amount_cents": amount, "expense_date": day},
                headers=admin_headers,
            )

        summary = client.get("/api/expenses/summary", headers=admin_headers).get_json()
        assert summary["total_expenses_cents"] == 10000
        assert summary["expense_count"] == 3
        assert summary["by_category"][0] == {"category": "rent", "total_cents": 6000, "percentage": 60.0}
        assert summary["by_month"] == [
            {"month": "2026-09", "total_cents": 3000},
            {"month": "2026-10", "total_cents": 7000},
        ]

        listed = client.get("/api/expenses?category=fuel&start_date=2026-10-01", headers=admin_headers).get_json()
        assert listed["count"] == 1
        assert listed["total_cents"] == 1000


# =============================================================================
# BALANCE CHECK COMMAND
# =============================================================================


class TestCheckBalances:

    def test_clean_books(self, app, trading_day):
        result = app.test_cli_runner().invoke(args=["system", "check-balances"])
        assert result.exit_code == 0
        assert "All stored balances match" in result.output

    def test_reports_drift(self, app, cable, customer):
        cable.stock_quantity = 7
        customer.outstanding_balance_cents = 123
        db.session.commit()

        result = app.test_cli_runner().invoke(args=["system", "check-balances"])
        assert "FAIL Product HW-2.5" in result.output
        assert "Kandy Hardware Stores" in result.output
        assert "2 balance(s) out of line" in result.output


# =============================================================================
# ANALYTICS
# =============================================================================


@pytest.fixture
def sold_cable(client, admin_headers, customer, cable):
    """10 coils billed at 5995 against a 4500 cost snapshot."""
    order = client.post(
        "/api/orders",
        json={"customer_id": customer.id, "items": [{"product_id": cable.id, "quantity": 10, "unit_price_cents": 5995}]},
        headers=admin_headers,
    )
    assert order.status_code == 201
    return order.get_json()["order"]


class TestProductPerformance:

    def test_sales_and_stock_status(self, client, admin_headers, sold_cable, flex):
        resp = client.get("/api/analytics/product-performance", headers=admin_headers)
        assert resp.status_code == 200
        body = resp.get_json()

        top = body["products"][0]
        assert top["sku"] == "HW-2.5"
        assert top["total_units_sold"] == 10
        assert top["total_revenue_cents"] == 59950
        assert top["total_profit_cents"] == 59950 - 45000
        assert top["profit_margin"] == 24.94
        assert top["inventory_value_cents"] == 90 * 4500
        # 90 on hand against a reorder level of 10
        assert top["stock_status"] == "overstocked"

        assert body["products"][1]["total_units_sold"] == 0
        assert body["products"][1]["stock_status"] == "normal"

        summary = body["summary"]
        assert summary["total_products"] == 2
        assert summary["total_revenue_cents"] == 59950
        assert summary["overstocked"] == 1
        assert summary["average_margin"] == 24.94

    def test_status_filter_and_limit(self, client, admin_headers, cable, flex):
        client.post(f"/api/products/{flex.id}/stock", json={"quantity": 5, "operation": "subtract"}, headers=admin_headers)

        body = client.get("/api/analytics/product-performance?status=out_of_stock", headers=admin_headers).get_json()
        assert [p["sku"] for p in body["products"]] == ["FLX-1.0"]
        assert body["summary"]["out_of_stock"] == 1

        body = client.get("/api/analytics/product-performance?limit=1", headers=admin_headers).get_json()
        assert len(body["products"]) == 1

    def test_cancelled_orders_excluded(self, client, admin_headers, sold_cable):
        client.post(f"/api/orders/{sold_cable['id']}/return", json={"action": "cancel"}, headers=admin_headers)
        body = client.get("/api/analytics/product-performance", headers=admin_headers).get_json()
        assert body["summary"]["total_revenue_cents"] == 0

    @pytest.mark.parametrize("query", ["status=hot", "limit=0", "limit=ten"])
    def test_bad_params_rejected(self, client, admin_headers, query):
        assert client.get(f"/api/analytics/product-performance?{query}", headers=admin_headers).status_code == 400


class TestFinancialHealth:

    def test_figures(self, client, admin_headers, sold_cable, customer, cash_account):
        client.post(
            "/api/payments",
            json={
                "customer_id": customer.id,
                "order_id": sold_cable["id"],
                "amount_cents": 9950,
                "payment_method": "cash",
                "deposit_account_id": cash_account.id,
            },
            headers=admin_headers,
        )
        client.post(
            "/api/expenses",
            json={"category": "fuel", "description": "Lorry diesel", "amount_cents": 2000, "account_id": cash_account.id},
            headers=admin_headers,
        )

        resp = client.get("/api/analytics/financial-health", headers=admin_headers)
        assert resp.status_code == 200
        health = resp.get_json()["financial_health"]

        assert health["monthly_revenue_cents"] == 59950
        assert health["monthly_expenses_cents"] == 2000
        assert health["monthly_purchases_cents"] == 0
        assert health["cash_balance_cents"] == 7950
        assert health["total_receivables_cents"] == 50000
        assert health["inventory_value_cents"] == 90 * 4500
        assert health["total_current_assets_cents"] == 7950 + 50000 + 90 * 4500
        assert health["working_capital_cents"] == health["total_current_assets_cents"]
        # No payables yet
        assert health["current_ratio"] == 0.0
        assert health["active_customers"] == 1

        start = today().replace(day=1)
        assert health["monthly_net_profit_cents"] == reporting_service.profit_and_loss(start, today())["net_profit_cents"]

    def test_ratios_against_payables(self, client, admin_headers, cable, supplier, cash_account):
        client.post(
            "/api/purchases",
            json={"items": [{"product_id": cable.id, "quantity": 10, "unit_price_cents": 4000}]},
            headers=admin_headers,
        )
        client.post(
            "/api/accounts/transaction",
            json={"type": "deposit", "amount_cents": 20000, "to_account_id": cash_account.id},
            headers=admin_headers,
        )
        health = client.get("/api/analytics/financial-health", headers=admin_headers).get_json()["financial_health"]

        assert health["total_current_liabilities_cents"] == 40000
        assert health["cash_ratio"] == 0.5
        assert health["quick_ratio"] == 0.5
        assert health["current_ratio"] == round((20000 + 110 * 4000) / 40000, 2)

    def test_staff_denied(self, client, staff_headers):
        assert client.get("/api/analytics/financial-health", headers=staff_headers).status_code == 403
        assert client.get("/api/analytics/product-performance", headers=staff_headers).status_code == 403
