# Overview: Service-layer operations for supplier payments and supplier cheques.

"""
Supplier Payment Service

WHY: Paying the supplier moves money out of a company account and reduces
what is owed on a purchase. Both happen in the same transaction as the
SupplierPayment row.

DESIGN PRINCIPLES:
- Non-cheque payments debit the company account immediately
- Cheques start pending; the debit happens when the cheque passes
- Overdrafts are allowed on this path (the bank honours the cheque)
- A returned cheque gives the amount back to the purchase balance due
- Deleting a payment reverses whatever it had applied
"""

from __future__ import annotations

import logging
from datetime import date

from ..extensions import db
from ..models import Bank, Purchase, SupplierPayment
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    parse_choice,
    parse_date,
    parse_int,
    parse_money,
    parse_text,
)
from sierra.time_utils import today
from .account_service import apply_balance_change, get_account_for_update
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .payment_service import (
    CHEQUE_PASSED,
    CHEQUE_PENDING,
    CHEQUE_RETURNED,
    METHOD_CHEQUE,
    VALID_METHODS,
)
from .purchase_service import apply_payment, get_purchase_for_update
from .supplier_service import get_supplier


logger = logging.getLogger(__name__)


class SupplierPaymentError(ValidationError):
    """Raised for supplier payment errors (400)."""
    pass


def _get_payment_for_update(payment_id: int) -> SupplierPayment:
    payment = lock_for_update(db.session.query(SupplierPayment).filter_by(id=payment_id)).first()
    if not payment:
        raise NotFoundError(f"Supplier payment {payment_id} not found")
    return payment


def create_supplier_payment(payload: dict, *, user_id: int | None) -> SupplierPayment:
    """
    Pay a supplier (POST /api/supplier-payments).

    With purchase_id the amount may not exceed the purchase's balance due.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    supplier_id = parse_int("supplier_id", payload.get("supplier_id"))
    account_id = parse_int("company_account_id", payload.get("company_account_id"))
    purchase_id = parse_int("purchase_id", payload.get("purchase_id"), required=False)
    amount = parse_money("amount_cents", payload.get("amount_cents"), positive=True)
    method = parse_choice("payment_method", payload.get("payment_method"), VALID_METHODS)
    payment_date = parse_date("payment_date", payload.get("payment_date"), required=False) or today()
    bank_id = parse_int("bank_id", payload.get("bank_id"), required=False)
    cheque_number = parse_text("cheque_number", payload.get("cheque_number"), max_length=64)
    cheque_date = parse_date("cheque_date", payload.get("cheque_date"), required=False)

    if method == METHOD_CHEQUE and not cheque_number:
        raise ValidationError("cheque_number is required for cheque payments")

    def _op():
        supplier = get_supplier(supplier_id)
        account = get_account_for_update(account_id)
        if bank_id is not None and not db.session.get(Bank, bank_id):
            raise NotFoundError(f"Bank {bank_id} not found")

        purchase = None
        if purchase_id is not None:
            purchase = get_purchase_for_update(purchase_id)
            if purchase.supplier_id != supplier.id:
                raise SupplierPaymentError("Purchase does not belong to this supplier")
            if amount > purchase.balance_due_cents:
                raise SupplierPaymentError(
                    f"Amount {amount} exceeds balance due {purchase.balance_due_cents}"
                )

        payment = SupplierPayment(
            payment_number=next_document_number("supplier_payment"),
            supplier_id=supplier.id,
            purchase_id=purchase.id if purchase else None,
            company_account_id=account.id,
            payment_date=payment_date,
            amount_cents=amount,
            payment_method=method,
            bank_id=bank_id,
            reference_number=parse_text("reference_number", payload.get("reference_number"), max_length=128),
            cheque_number=cheque_number if method == METHOD_CHEQUE else None,
            cheque_date=cheque_date if method == METHOD_CHEQUE else None,
            cheque_status=CHEQUE_PENDING if method == METHOD_CHEQUE else None,
            notes=parse_text("notes", payload.get("notes")),
            created_by_user_id=user_id,
        )
        db.session.add(payment)
        db.session.flush()

        if method != METHOD_CHEQUE:
            apply_balance_change(
                account,
                -amount,
                transaction_type="supplier_payment",
                reference_type="supplier_payment",
                reference_id=payment.id,
                notes=f"Supplier payment {payment.payment_number}",
                user_id=user_id,
                allow_overdraft=True,
            )

        if purchase is not None:
            apply_payment(purchase, amount)

        db.session.commit()
        logger.info(
            "Recorded supplier payment %s of %s to supplier %s (%s)",
            payment.payment_number, amount, supplier.id, method,
        )
        return payment

    return run_with_retry(_op)


def update_cheque_status(payment_id: int, payload: dict, *, user_id: int | None) -> SupplierPayment:
    """
    Resolve a pending supplier cheque (PATCH /api/supplier-payments/<id>).

    passed: debit the company account (overdraft allowed).
    returned: take the amount back off the purchase's amount_paid.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    new_status = parse_choice("status", payload.get("status", payload.get("cheque_status")),
                              {CHEQUE_PASSED, CHEQUE_RETURNED})

    def _op():
        payment = _get_payment_for_update(payment_id)
        if payment.payment_method != METHOD_CHEQUE:
            raise SupplierPaymentError("Only cheque payments have a status to update")
        if payment.cheque_status != CHEQUE_PENDING:
            raise ConflictError(f"Cheque is already {payment.cheque_status}")

        if new_status == CHEQUE_PASSED:
            account = get_account_for_update(payment.company_account_id)
            apply_balance_change(
                account,
                -payment.amount_cents,
                transaction_type="supplier_payment",
                reference_type="supplier_payment",
                reference_id=payment.id,
                notes=f"Supplier cheque {payment.cheque_number} passed",
                user_id=user_id,
                allow_overdraft=True,
            )
        elif payment.purchase_id is not None:
            purchase = get_purchase_for_update(payment.purchase_id)
            apply_payment(purchase, -payment.amount_cents)

        payment.cheque_status = new_status
        db.session.commit()
        logger.info("Supplier cheque %s (payment %s): pending -> %s", payment.cheque_number, payment.id, new_status)
        return payment

    return run_with_retry(_op)


def delete_supplier_payment(payment_id: int, *, user_id: int | None) -> None:
    """
    Delete a supplier payment and reverse its effects.

    The account debit is refunded if one was made; the purchase's
    amount_paid is reduced unless a returned cheque already did so.
    """
    def _op():
        payment = _get_payment_for_update(payment_id)

        if payment.has_debited_account:
            account = get_account_for_update(payment.company_account_id)
            apply_balance_change(
                account,
                payment.amount_cents,
                transaction_type="supplier_payment_reversal",
                reference_type="supplier_payment",
                reference_id=payment.id,
                notes=f"Supplier payment {payment.payment_number} deleted",
                user_id=user_id,
            )

        if payment.purchase_id is not None and payment.cheque_status != CHEQUE_RETURNED:
            purchase = get_purchase_for_update(payment.purchase_id)
            apply_payment(purchase, -payment.amount_cents)

        db.session.delete(payment)
        db.session.commit()
        logger.info("Deleted supplier payment %s", payment.payment_number)

    return run_with_retry(_op)


def get_supplier_payment(payment_id: int) -> SupplierPayment:
    payment = db.session.get(SupplierPayment, payment_id)
    if not payment:
        raise NotFoundError(f"Supplier payment {payment_id} not found")
    return payment


def list_supplier_payments(
    *,
    supplier_id: int | None = None,
    purchase_id: int | None = None,
    cheque_status: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[SupplierPayment]:
    query = db.session.query(SupplierPayment)
    if supplier_id is not None:
        query = query.filter(SupplierPayment.supplier_id == supplier_id)
    if purchase_id is not None:
        query = query.filter(SupplierPayment.purchase_id == purchase_id)
    if cheque_status:
        query = query.filter(SupplierPayment.cheque_status == cheque_status)
    if start_date:
        query = query.filter(SupplierPayment.payment_date >= start_date)
    if end_date:
        query = query.filter(SupplierPayment.payment_date <= end_date)
    return query.order_by(SupplierPayment.payment_date.desc(), SupplierPayment.id.desc()).all()


def payables_summary() -> dict:
    """Outstanding supplier balances (accounts payable)."""
    rows = (
        db.session.query(Purchase)
        .filter(Purchase.total_amount_cents > Purchase.amount_paid_cents)
        .all()
    )
    pending_cheques = (
        db.session.query(SupplierPayment)
        .filter(SupplierPayment.cheque_status == CHEQUE_PENDING)
        .all()
    )
    return {
        "total_payable_cents": sum(p.balance_due_cents for p in rows),
        "unpaid_purchase_count": len(rows),
        "pending_cheques_cents": sum(p.amount_cents for p in pending_cheques),
        "pending_cheque_count": len(pending_cheques),
    }
