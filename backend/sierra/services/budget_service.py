# Overview: Service-layer operations for monthly budgets and budget-vs-actual comparison.

"""
Budget Service

WHY: The owner sets a monthly target for sales, purchases and each expense
category, then checks the month's books against it.

DESIGN PRINCIPLES:
- Periods are calendar months written "YYYY-MM"
- Expense budgets need a category; sales and purchase budgets have none
- Actuals are derived from the books on every read, never stored
- Variance is signed so that positive is always favorable: sales above
  target, or expenses and purchases below it
"""

from __future__ import annotations

import logging
import re
from calendar import monthrange
from datetime import date

from sqlalchemy import func

from ..extensions import db
from ..models import Budget, Expense, Purchase
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    parse_choice,
    parse_money,
    parse_text,
)
from .concurrency import run_with_retry
from .expense_service import EXPENSE_CATEGORIES
from .reporting_service import pct, sales_cents


logger = logging.getLogger(__name__)


BUDGET_SALES = "sales"
BUDGET_EXPENSES = "expenses"
BUDGET_PURCHASES = "purchases"

BUDGET_TYPES = {BUDGET_SALES, BUDGET_EXPENSES, BUDGET_PURCHASES}

_PERIOD_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
_YEAR_RE = re.compile(r"^\d{4}$")


def parse_budget_period(key: str, value, *, required: bool = True) -> str | None:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{key} is required")
        return None
    if not isinstance(value, str) or not _PERIOD_RE.match(value.strip()):
        raise ValidationError(f"{key} must be YYYY-MM")
    return value.strip()


def parse_year(value) -> str | None:
    if value is None or value == "":
        return None
    if not _YEAR_RE.match(str(value).strip()):
        raise ValidationError("year must be YYYY")
    return str(value).strip()


def period_bounds(period: str) -> tuple[date, date]:
    year, month = (int(part) for part in period.split("-"))
    return date(year, month, 1), date(year, month, monthrange(year, month)[1])


# =============================================================================
# BUDGET CRUD
# =============================================================================

def get_budget(budget_id: int) -> Budget:
    budget = db.session.get(Budget, budget_id)
    if not budget:
        raise NotFoundError(f"Budget {budget_id} not found")
    return budget


def list_budgets(
    *,
    period: str | None = None,
    budget_type: str | None = None,
    year: str | None = None,
) -> list[Budget]:
    query = db.session.query(Budget)
    if period:
        query = query.filter(Budget.budget_period == period)
    if budget_type:
        query = query.filter(Budget.budget_type == budget_type)
    if year:
        query = query.filter(Budget.budget_period.like(f"{year}-%"))
    return query.order_by(Budget.budget_period.desc(), Budget.budget_type, Budget.category).all()


def create_budget(payload: dict, *, user_id: int | None) -> Budget:
    """
    Create a budget (POST /api/budgets).

    Raises ConflictError when the (period, type, category) slot is taken.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    period = parse_budget_period("budget_period", payload.get("budget_period"))
    budget_type = parse_choice("budget_type", payload.get("budget_type"), BUDGET_TYPES)
    amount = parse_money("budgeted_amount_cents", payload.get("budgeted_amount_cents"))
    category = parse_text("category", payload.get("category"), max_length=64)
    notes = parse_text("notes", payload.get("notes"))

    if budget_type == BUDGET_EXPENSES:
        if category is None:
            raise ValidationError("category is required for expense budgets")
        if category not in EXPENSE_CATEGORIES:
            raise ValidationError(f"category must be one of: {', '.join(sorted(EXPENSE_CATEGORIES))}")
    elif category is not None:
        raise ValidationError(f"{budget_type} budgets do not take a category")

    def _op():
        existing = db.session.query(Budget).filter(
            Budget.budget_period == period,
            Budget.budget_type == budget_type,
            Budget.category.is_(None) if category is None else Budget.category == category,
        ).first()
        if existing:
            raise ConflictError(f"A {budget_type} budget for {period} already exists")

        budget = Budget(
            budget_period=period,
            budget_type=budget_type,
            category=category,
            budgeted_amount_cents=amount,
            notes=notes,
            created_by_user_id=user_id,
        )
        db.session.add(budget)
        db.session.commit()
        logger.info("Created %s budget for %s (%s): %s", budget_type, period, category or "-", amount)
        return budget

    return run_with_retry(_op)


def update_budget(budget_id: int, payload: dict) -> Budget:
    """Only the amount and notes change; period, type and category are fixed."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    fixed = {"budget_period", "budget_type", "category"} & set(payload)
    if fixed:
        raise ValidationError(f"Fields not allowed on update: {', '.join(sorted(fixed))}")

    patch = {}
    if "budgeted_amount_cents" in payload:
        patch["budgeted_amount_cents"] = parse_money("budgeted_amount_cents", payload["budgeted_amount_cents"])
    if "notes" in payload:
        patch["notes"] = parse_text("notes", payload["notes"])

    def _op():
        budget = get_budget(budget_id)
        for key, value in patch.items():
            setattr(budget, key, value)
        db.session.commit()
        return budget

    return run_with_retry(_op)


def delete_budget(budget_id: int) -> None:
    def _op():
        budget = get_budget(budget_id)
        db.session.delete(budget)
        db.session.commit()
        logger.info("Deleted %s budget for %s", budget.budget_type, budget.budget_period)

    return run_with_retry(_op)


# =============================================================================
# BUDGET VS ACTUAL
# =============================================================================

def actual_cents(budget: Budget) -> int:
    start, end = period_bounds(budget.budget_period)

    if budget.budget_type == BUDGET_SALES:
        return sales_cents(start, end)

    if budget.budget_type == BUDGET_PURCHASES:
        total = (
            db.session.query(func.coalesce(func.sum(Purchase.total_amount_cents), 0))
            .filter(Purchase.purchase_date >= start, Purchase.purchase_date <= end)
            .scalar()
        )
        return int(total or 0)

    query = db.session.query(func.coalesce(func.sum(Expense.amount_cents), 0)).filter(
        Expense.expense_date >= start, Expense.expense_date <= end
    )
    if budget.category:
        query = query.filter(Expense.category == budget.category)
    return int(query.scalar() or 0)


def compare(budget: Budget) -> dict:
    actual = actual_cents(budget)
    if budget.budget_type == BUDGET_SALES:
        variance = actual - budget.budgeted_amount_cents
    else:
        variance = budget.budgeted_amount_cents - actual

    if variance > 0:
        status = "favorable"
    elif variance < 0:
        status = "unfavorable"
    else:
        status = "neutral"

    return {
        "budget_id": budget.id,
        "period": budget.budget_period,
        "type": budget.budget_type,
        "category": budget.category,
        "budgeted_amount_cents": budget.budgeted_amount_cents,
        "actual_amount_cents": actual,
        "variance_cents": variance,
        "variance_percent": pct(variance, budget.budgeted_amount_cents),
        "variance_status": status,
    }


def budget_vs_actual(
    *,
    period: str | None = None,
    year: str | None = None,
    budget_type: str | None = None,
) -> dict:
    comparisons = [
        compare(budget)
        for budget in list_budgets(period=period, budget_type=budget_type, year=year)
    ]

    total_budgeted = sum(c["budgeted_amount_cents"] for c in comparisons)
    total_actual = sum(c["actual_amount_cents"] for c in comparisons)
    total_variance = sum(c["variance_cents"] for c in comparisons)
    favorable = sum(1 for c in comparisons if c["variance_status"] == "favorable")
    unfavorable = sum(1 for c in comparisons if c["variance_status"] == "unfavorable")

    return {
        "comparisons": comparisons,
        "summary": {
            "total_budgeted_cents": total_budgeted,
            "total_actual_cents": total_actual,
            "total_variance_cents": total_variance,
            "variance_percent": pct(total_variance, total_budgeted),
            "favorable_count": favorable,
            "unfavorable_count": unfavorable,
            "on_track_percent": pct(favorable, len(comparisons)),
        },
    }
