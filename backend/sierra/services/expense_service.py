# Overview: Service-layer operations for expenses; optional account debit and summaries.

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date

from ..extensions import db
from ..models import Expense
from ..validation import ModelValidationPolicy, NotFoundError, ValidationError, validate_payload
from sierra.time_utils import today
from .account_service import apply_balance_change, get_account_for_update
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number


logger = logging.getLogger(__name__)


EXPENSE_CATEGORIES = {
    "fuel", "salaries", "rent", "utilities", "maintenance", "delivery",
    "marketing", "office_supplies", "telephone", "insurance", "repairs",
    "professional_fees", "bank_charges", "depreciation", "taxes", "miscellaneous",
}

EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields={
        "expense_date", "category", "description", "amount_cents", "payment_method",
        "account_id", "vendor_name", "reference_number", "notes",
    },
    required_on_create={"category", "description", "amount_cents"},
)

# The account and amount are fixed once the debit is posted
EXPENSE_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"expense_date", "category", "description", "vendor_name", "reference_number", "notes", "payment_method"},
)


def _check_category(patch: dict) -> None:
    if "category" in patch and patch["category"] not in EXPENSE_CATEGORIES:
        raise ValidationError(f"category must be one of: {', '.join(sorted(EXPENSE_CATEGORIES))}")


def create_expense(payload: dict, *, user_id: int | None) -> Expense:
    patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=False)
    _check_category(patch)
    if patch["amount_cents"] <= 0:
        raise ValidationError("amount_cents must be > 0")
    patch.setdefault("expense_date", today())
    if patch["expense_date"] is None:
        patch["expense_date"] = today()

    def _op():
        account = None
        if patch.get("account_id") is not None:
            account = get_account_for_update(patch["account_id"])

        expense = Expense(
            expense_number=next_document_number("expense"),
            created_by_user_id=user_id,
            **patch,
        )
        db.session.add(expense)
        db.session.flush()

        if account is not None:
            apply_balance_change(
                account,
                -expense.amount_cents,
                transaction_type="expense",
                reference_type="expense",
                reference_id=expense.id,
                notes=f"Expense {expense.expense_number}: {expense.description}"[:255],
                user_id=user_id,
            )

        db.session.commit()
        logger.info("Recorded expense %s (%s) of %s", expense.expense_number, expense.category, expense.amount_cents)
        return expense

    return run_with_retry(_op)


def get_expense(expense_id: int) -> Expense:
    expense = db.session.get(Expense, expense_id)
    if not expense:
        raise NotFoundError(f"Expense {expense_id} not found")
    return expense


def update_expense(expense_id: int, payload: dict) -> Expense:
    patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_UPDATE_POLICY, partial=True)
    _check_category(patch)

    def _op():
        expense = get_expense(expense_id)
        for key, value in patch.items():
            setattr(expense, key, value)
        db.session.commit()
        return expense

    return run_with_retry(_op)


def delete_expense(expense_id: int, *, user_id: int | None) -> None:
    """Delete an expense, refunding its account debit if it had one."""
    def _op():
        expense = lock_for_update(db.session.query(Expense).filter_by(id=expense_id)).first()
        if not expense:
            raise NotFoundError(f"Expense {expense_id} not found")

        if expense.account_id is not None:
            account = get_account_for_update(expense.account_id)
            apply_balance_change(
                account,
                expense.amount_cents,
                transaction_type="expense_reversal",
                reference_type="expense",
                reference_id=expense.id,
                notes=f"Expense {expense.expense_number} deleted",
                user_id=user_id,
            )

        db.session.delete(expense)
        db.session.commit()
        logger.info("Deleted expense %s", expense.expense_number)

    return run_with_retry(_op)


def list_expenses(
    *,
    category: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[Expense]:
    query = db.session.query(Expense)
    if category:
        query = query.filter(Expense.category == category)
    if start_date:
        query = query.filter(Expense.expense_date >= start_date)
    if end_date:
        query = query.filter(Expense.expense_date <= end_date)
    return query.order_by(Expense.expense_date.desc(), Expense.id.desc()).all()


def expense_summary(*, start_date: date | None = None, end_date: date | None = None) -> dict:
    """Totals by category, month and payment method."""
    expenses = list_expenses(start_date=start_date, end_date=end_date)
    total = sum(e.amount_cents for e in expenses)

    by_category = defaultdict(int)
    by_month = defaultdict(int)
    by_method = defaultdict(int)
    for e in expenses:
        by_category[e.category] += e.amount_cents
        by_month[e.expense_date.strftime("%Y-%m")] += e.amount_cents
        by_method[e.payment_method] += e.amount_cents

    return {
        "total_expenses_cents": total,
        "expense_count": len(expenses),
        "by_category": sorted(
            (
                {
                    "category": category,
                    "total_cents": amount,
                    "percentage": round(amount * 100 / total, 2) if total else 0,
                }
                for category, amount in by_category.items()
            ),
            key=lambda row: row["total_cents"],
            reverse=True,
        ),
        "by_month": [{"month": m, "total_cents": by_month[m]} for m in sorted(by_month)],
        "by_payment_method": [{"method": m, "total_cents": v} for m, v in sorted(by_method.items())],
    }
