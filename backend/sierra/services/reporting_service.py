# Overview: Service-layer operations for financial reporting; trading account, P&L, balance sheet, dashboard, analytics.

"""
Financial Reports

WHY: The owner needs the standard small-business statements computed from
the books the rest of the system keeps. Every figure here is read-only and
derived from stored rows; nothing is persisted.

DESIGN PRINCIPLES:
- Sales exclude cancelled orders
- Stock values use the product's current cost price
- Opening and closing quantities are rebuilt from the inventory ledger,
  so a period report does not depend on today's stock alone
- Gross profit comes from the trading account and feeds the P&L, which
  feeds the balance sheet capital section
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import (
    CompanyAccount,
    Customer,
    Expense,
    InventoryTransaction,
    Order,
    OrderItem,
    Product,
    Purchase,
)
from ..validation import ValidationError, parse_date
from sierra.time_utils import today
from .customer_service import derive_outstanding
from .expense_service import EXPENSE_CATEGORIES
from .payment_service import order_paid_cents


class ReportError(ValidationError):
    """Raised when report parameters are invalid (400)."""
    pass


def parse_period(start: str | None, end: str | None) -> tuple[date, date]:
    start_date = parse_date("start_date", start)
    end_date = parse_date("end_date", end)
    if start_date > end_date:
        raise ReportError("start_date must be on or before end_date")
    return start_date, end_date


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min)


def pct(part: int, whole: int) -> float:
    return round(part * 100 / whole, 2) if whole else 0.0


def sales_cents(start_date: date, end_date: date) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(Order.total_amount_cents), 0))
        .filter(
            Order.status != "cancelled",
            Order.order_date >= start_date,
            Order.order_date <= end_date,
        )
        .scalar()
    )
    return int(total or 0)


# =============================================================================
# STOCK VALUATION
# =============================================================================

def stock_value_at(moment: datetime | None) -> int:
    """
    Stock value at a point in time, at current cost prices.

    quantity(moment) = stock_quantity - sum of ledger movements after moment.
    moment=None means now.
    """
    movements = {}
    if moment is not None:
        rows = (
            db.session.query(
                InventoryTransaction.product_id,
                func.coalesce(func.sum(InventoryTransaction.quantity), 0),
            )
            .filter(InventoryTransaction.created_at >= moment)
            .group_by(InventoryTransaction.product_id)
            .all()
        )
        movements = {product_id: int(qty) for product_id, qty in rows}

    value = 0
    for product in db.session.query(Product).all():
        qty = product.stock_quantity - movements.get(product.id, 0)
        value += max(qty, 0) * product.cost_price_cents
    return value


# =============================================================================
# TRADING ACCOUNT
# =============================================================================

def trading_account(start_date: date, end_date: date) -> dict:
    """
    Trading account for a period.

    COGS = opening stock + purchases - closing stock
    gross profit = net sales - COGS
    """
    total_sales = sales_cents(start_date, end_date)

    purchases = (
        db.session.query(func.coalesce(func.sum(Purchase.total_amount_cents), 0))
        .filter(Purchase.purchase_date >= start_date, Purchase.purchase_date <= end_date)
        .scalar()
    )
    purchases = int(purchases or 0)

    opening_stock = stock_value_at(_day_start(start_date))
    closing_moment = _day_start(end_date + timedelta(days=1))
    closing_stock = stock_value_at(None if end_date >= today() else closing_moment)

    goods_available = opening_stock + purchases
    cogs = goods_available - closing_stock
    gross_profit = total_sales - cogs

    return {
        "period": {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        "total_sales_cents": total_sales,
        "net_sales_cents": total_sales,
        "opening_stock_cents": opening_stock,
        "purchases_cents": purchases,
        "net_purchases_cents": purchases,
        "cost_of_goods_available_cents": goods_available,
        "closing_stock_cents": closing_stock,
        "cost_of_goods_sold_cents": cogs,
        "gross_profit_cents": gross_profit,
        "gross_profit_margin": pct(gross_profit, total_sales),
    }


# =============================================================================
# PROFIT & LOSS
# =============================================================================

def _expenses_by_category(start_date: date | None, end_date: date) -> dict[str, int]:
    query = db.session.query(Expense.category, func.coalesce(func.sum(Expense.amount_cents), 0)).filter(
        Expense.expense_date <= end_date
    )
    if start_date is not None:
        query = query.filter(Expense.expense_date >= start_date)
    totals = {category: 0 for category in sorted(EXPENSE_CATEGORIES)}
    for category, amount in query.group_by(Expense.category).all():
        totals[category] = totals.get(category, 0) + int(amount)
    return totals


def item_margin_cents(start_date: date, end_date: date) -> int:
    """Sum of (unit price - cost snapshot) * qty over sold items."""
    margin = (
        db.session.query(
            func.coalesce(
                func.sum((OrderItem.unit_price_cents - OrderItem.cost_price_cents) * OrderItem.quantity), 0
            )
        )
        .join(Order, Order.id == OrderItem.order_id)
        .filter(
            Order.status != "cancelled",
            Order.order_date >= start_date,
            Order.order_date <= end_date,
        )
        .scalar()
    )
    return int(margin or 0)


def profit_and_loss(start_date: date, end_date: date) -> dict:
    trading = trading_account(start_date, end_date)
    gross_profit = trading["gross_profit_cents"]
    net_sales = trading["net_sales_cents"]

    expenses = _expenses_by_category(start_date, end_date)
    total_expenses = sum(expenses.values())
    net_profit = gross_profit - total_expenses

    return {
        "period": trading["period"],
        "net_sales_cents": net_sales,
        "gross_profit_cents": gross_profit,
        "item_margin_cents": item_margin_cents(start_date, end_date),
        "expenses": expenses,
        "total_expenses_cents": total_expenses,
        "net_profit_cents": net_profit,
        "net_profit_margin": pct(net_profit, net_sales),
    }


# =============================================================================
# BALANCE SHEET
# =============================================================================

def current_position() -> dict[str, int]:
    """Stored account balances, receivables, payables and stock value right now."""
    accounts = db.session.query(CompanyAccount).filter(CompanyAccount.is_active.is_(True)).all()

    receivable = (
        db.session.query(func.coalesce(func.sum(Customer.outstanding_balance_cents), 0)).scalar()
    )
    payable = (
        db.session.query(
            func.coalesce(func.sum(Purchase.total_amount_cents - Purchase.amount_paid_cents), 0)
        )
        .filter(Purchase.total_amount_cents > Purchase.amount_paid_cents)
        .scalar()
    )

    return {
        "cash": sum(a.current_balance_cents for a in accounts if a.account_type == "cash"),
        "bank": sum(a.current_balance_cents for a in accounts if a.account_type == "bank"),
        "receivable": int(receivable or 0),
        "payable": int(payable or 0),
        "inventory": stock_value_at(None),
    }


def balance_sheet(as_at: date, *, start_date: date | None = None) -> dict:
    """
    Balance sheet as at a date.

    Account balances, receivables and payables are the current stored
    figures. Net profit covers start_date (default: 1 January of the
    as_at year) through as_at.
    """
    if start_date is None:
        start_date = as_at.replace(month=1, day=1)
    if start_date > as_at:
        raise ReportError("start_date must be on or before end_date")

    position = current_position()
    cash = position["cash"]
    bank = position["bank"]
    receivable = position["receivable"]
    inventory = position["inventory"]
    payable = position["payable"]
    total_assets = cash + bank + receivable + inventory
    total_liabilities = payable

    net_profit = profit_and_loss(start_date, as_at)["net_profit_cents"]
    opening_capital = int(current_app.config.get("OPENING_CAPITAL_CENTS", 0))

    return {
        "as_at": as_at.isoformat(),
        "current_assets": {
            "cash_cents": cash,
            "bank_balances_cents": bank,
            "accounts_receivable_cents": receivable,
            "inventory_cents": inventory,
            "total_current_assets_cents": total_assets,
        },
        "current_liabilities": {
            "accounts_payable_cents": payable,
            "total_current_liabilities_cents": total_liabilities,
        },
        "capital": {
            "opening_capital_cents": opening_capital,
            "net_profit_cents": net_profit,
            "closing_capital_cents": opening_capital + net_profit,
        },
        "working_capital_cents": total_assets - total_liabilities,
        "current_ratio": round(total_assets / total_liabilities, 2) if total_liabilities else 0.0,
        "quick_ratio": round((total_assets - inventory) / total_liabilities, 2) if total_liabilities else 0.0,
    }


# =============================================================================
# DASHBOARD
# =============================================================================

def dashboard_stats() -> dict:
    now = today()
    yesterday = now - timedelta(days=1)
    month_start = now.replace(day=1)
    last_month_end = month_start - timedelta(days=1)
    last_month_start = last_month_end.replace(day=1)

    sales_today = sales_cents(now, now)
    sales_yesterday = sales_cents(yesterday, yesterday)
    sales_month = sales_cents(month_start, now)
    sales_last_month = sales_cents(last_month_start, last_month_end)

    total_customers = db.session.query(func.count(Customer.id)).scalar() or 0
    new_customers = (
        db.session.query(func.count(Customer.id))
        .filter(Customer.created_at >= _day_start(month_start))
        .scalar()
        or 0
    )

    due_total = 0
    due_invoices = 0
    for order in db.session.query(Order).filter(
        Order.status != "cancelled",
        Order.payment_status.in_(("unpaid", "partial")),
    ):
        balance = order.total_amount_cents - order_paid_cents(order.id)
        if balance > 0:
            due_total += balance
            due_invoices += 1

    chart = []
    for offset in range(6, -1, -1):
        day = now - timedelta(days=offset)
        chart.append({"date": day.isoformat(), "name": day.strftime("%a"), "sales_cents": sales_cents(day, day)})

    stock_mrp = 0
    stock_cost = 0
    stock_items = 0
    for product in db.session.query(Product).filter(Product.is_active.is_(True)):
        stock_mrp += product.stock_quantity * (product.mrp_cents or product.unit_price_cents)
        stock_cost += product.stock_quantity * product.cost_price_cents
        stock_items += product.stock_quantity

    return {
        "sales_today": {
            "amount_cents": sales_today,
            "comparison_cents": sales_yesterday,
            "change": pct(sales_today - sales_yesterday, sales_yesterday),
        },
        "sales_this_month": {
            "amount_cents": sales_month,
            "comparison_cents": sales_last_month,
            "change": pct(sales_month - sales_last_month, sales_last_month),
        },
        "customers": {"count": int(total_customers), "new_this_month": int(new_customers)},
        "total_due": {"amount_cents": due_total, "invoices": due_invoices},
        "sales_chart": chart,
        "stock_value": {"mrp_cents": stock_mrp, "cost_cents": stock_cost, "items": stock_items},
    }


# =============================================================================
# ANALYTICS
# =============================================================================

STOCK_OUT = "out_of_stock"
STOCK_LOW = "low_stock"
STOCK_OVER = "overstocked"
STOCK_NORMAL = "normal"

STOCK_STATUSES = {STOCK_OUT, STOCK_LOW, STOCK_OVER, STOCK_NORMAL}

# Stock above this many times the reorder level counts as overstocked
OVERSTOCK_MULTIPLE = 5

ACTIVE_CUSTOMER_DAYS = 90


def stock_status(product: Product) -> str:
    if product.stock_quantity <= 0:
        return STOCK_OUT
    if product.stock_quantity <= product.reorder_level:
        return STOCK_LOW
    if product.reorder_level > 0 and product.stock_quantity > product.reorder_level * OVERSTOCK_MULTIPLE:
        return STOCK_OVER
    return STOCK_NORMAL


def product_performance(*, limit: int = 20, status: str | None = None) -> dict:
    """
    Lifetime sales per active product, best revenue first.

    Revenue is the discounted line total; profit subtracts the cost
    snapshot taken at sale time. Cancelled orders are excluded.
    """
    sold = {
        product_id: (int(units), int(revenue), int(cost))
        for product_id, units, revenue, cost in (
            db.session.query(
                OrderItem.product_id,
                func.coalesce(func.sum(OrderItem.quantity), 0),
                func.coalesce(func.sum(OrderItem.line_total_cents), 0),
                func.coalesce(func.sum(OrderItem.cost_price_cents * OrderItem.quantity), 0),
            )
            .join(Order, Order.id == OrderItem.order_id)
            .filter(Order.status != "cancelled")
            .group_by(OrderItem.product_id)
            .all()
        )
    }

    rows = []
    for product in db.session.query(Product).filter(Product.is_active.is_(True)):
        units, revenue, cost = sold.get(product.id, (0, 0, 0))
        profit = revenue - cost
        rows.append({
            "product_id": product.id,
            "sku": product.sku,
            "name": product.name,
            "category": product.category,
            "stock_quantity": product.stock_quantity,
            "reorder_level": product.reorder_level,
            "cost_price_cents": product.cost_price_cents,
            "unit_price_cents": product.unit_price_cents,
            "mrp_cents": product.mrp_cents,
            "total_units_sold": units,
            "total_revenue_cents": revenue,
            "total_profit_cents": profit,
            "profit_margin": pct(profit, revenue),
            "inventory_value_cents": max(product.stock_quantity, 0) * product.cost_price_cents,
            "stock_status": stock_status(product),
        })

    summary = {
        "total_products": len(rows),
        "total_revenue_cents": sum(r["total_revenue_cents"] for r in rows),
        "total_profit_cents": sum(r["total_profit_cents"] for r in rows),
        "out_of_stock": sum(1 for r in rows if r["stock_status"] == STOCK_OUT),
        "low_stock": sum(1 for r in rows if r["stock_status"] == STOCK_LOW),
        "overstocked": sum(1 for r in rows if r["stock_status"] == STOCK_OVER),
    }
    summary["average_margin"] = pct(summary["total_profit_cents"], summary["total_revenue_cents"])

    if status:
        rows = [r for r in rows if r["stock_status"] == status]
    rows.sort(key=lambda r: (-r["total_revenue_cents"], r["sku"]))

    return {"products": rows[:limit], "summary": summary}


def financial_health() -> dict:
    """Month-to-date trading figures plus today's liquidity ratios."""
    now = today()
    month_start = now.replace(day=1)

    revenue = sales_cents(month_start, now)
    expenses = sum(_expenses_by_category(month_start, now).values())
    purchases = (
        db.session.query(func.coalesce(func.sum(Purchase.total_amount_cents), 0))
        .filter(Purchase.purchase_date >= month_start, Purchase.purchase_date <= now)
        .scalar()
    )
    net_profit = profit_and_loss(month_start, now)["net_profit_cents"]

    position = current_position()
    cash = position["cash"] + position["bank"]
    assets = cash + position["receivable"] + position["inventory"]
    liabilities = position["payable"]

    def ratio(numerator: int) -> float:
        return round(numerator / liabilities, 2) if liabilities else 0.0

    active_customers = (
        db.session.query(func.count(func.distinct(Order.customer_id)))
        .filter(
            Order.status != "cancelled",
            Order.order_date >= now - timedelta(days=ACTIVE_CUSTOMER_DAYS),
        )
        .scalar()
    )

    return {
        "as_of": now.isoformat(),
        "monthly_revenue_cents": revenue,
        "monthly_expenses_cents": expenses,
        "monthly_purchases_cents": int(purchases or 0),
        "monthly_net_profit_cents": net_profit,
        "net_profit_margin": pct(net_profit, revenue),
        "cash_balance_cents": cash,
        "total_receivables_cents": position["receivable"],
        "inventory_value_cents": position["inventory"],
        "total_current_assets_cents": assets,
        "total_current_liabilities_cents": liabilities,
        "working_capital_cents": assets - liabilities,
        "current_ratio": ratio(assets),
        "quick_ratio": ratio(assets - position["inventory"]),
        "cash_ratio": ratio(cash),
        "active_customers": int(active_customers or 0),
    }


def receivables_check() -> list[dict]:
    """Customers whose stored outstanding balance differs from the order ledger."""
    rows = []
    for customer in db.session.query(Customer).order_by(Customer.id):
        derived = derive_outstanding(customer.id)
        if derived != customer.outstanding_balance_cents:
            rows.append(
                {
                    "customer_id": customer.id,
                    "name": customer.name,
                    "stored_cents": customer.outstanding_balance_cents,
                    "derived_cents": derived,
                }
            )
    return rows
