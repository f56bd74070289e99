# Overview: Service-layer operations for customer payments and the cheque lifecycle.

"""
Payment Ledger Service

WHY: Customer payments drive three running figures at once: the order's
payment_status, the customer's outstanding balance and (for money that
has actually landed) a company account balance. All three move in the
same DB transaction as the Payment row.

DESIGN PRINCIPLES:
- payment_status is always re-derived from the sum of non-returned
  payments on the order, never incremented
- Cash and bank transfers credit the deposit account immediately
- Cheques start pending and credit their account only when they pass
- A returned cheque adds back only the part of the order it no longer
  covers; a cancelled order adds nothing
- Standalone payments (no order) are customer credit and leave the
  outstanding balance alone

CHEQUE LIFECYCLE:
    pending -> deposited -> passed | returned
    pending -> passed | returned
passed and returned are terminal.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import CompanyAccount, Customer, Order, Payment
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    derive_payment_status,
    parse_choice,
    parse_date,
    parse_int,
    parse_money,
    parse_text,
)
from sierra.time_utils import today
from .account_service import apply_balance_change, get_account_for_update
from .concurrency import lock_for_update, run_with_retry
from .customer_service import adjust_outstanding, get_customer_for_update
from .document_service import next_document_number


logger = logging.getLogger(__name__)


class PaymentError(ValidationError):
    """Raised for payment operation errors (400)."""
    pass


# =============================================================================
# PAYMENT METHODS AND CHEQUE STATES (CONSTANTS)
# =============================================================================

METHOD_CASH = "cash"
METHOD_BANK_TRANSFER = "bank_transfer"
METHOD_CHEQUE = "cheque"

VALID_METHODS = {METHOD_CASH, METHOD_BANK_TRANSFER, METHOD_CHEQUE}

CHEQUE_PENDING = "pending"
CHEQUE_DEPOSITED = "deposited"
CHEQUE_PASSED = "passed"
CHEQUE_RETURNED = "returned"

TERMINAL_CHEQUE_STATES = {CHEQUE_PASSED, CHEQUE_RETURNED}

CHEQUE_TRANSITIONS = {
    CHEQUE_PENDING: {CHEQUE_DEPOSITED, CHEQUE_PASSED, CHEQUE_RETURNED},
    CHEQUE_DEPOSITED: {CHEQUE_PASSED, CHEQUE_RETURNED},
}


# =============================================================================
# REQUEST PARSING
# =============================================================================

@dataclass(frozen=True)
class PaymentInput:
    """Validated payment fields shared by POST /api/payments and order intake."""
    amount_cents: int
    payment_method: str
    payment_date: date
    deposit_account_id: int | None = None
    bank_account_id: int | None = None
    cheque_number: str | None = None
    cheque_date: date | None = None
    reference_number: str | None = None
    notes: str | None = None


def parse_payment_input(payload: dict, *, amount_key: str = "amount_cents") -> PaymentInput:
    """
    Validate method-specific payment fields.

    cash/bank_transfer need deposit_account_id; cheques need
    cheque_number, cheque_date and bank_account_id.
    """
    amount = parse_money(amount_key, payload.get(amount_key), positive=True)
    method = parse_choice("payment_method", payload.get("payment_method"), VALID_METHODS)
    payment_date = parse_date("payment_date", payload.get("payment_date"), required=False) or today()

    deposit_account_id = parse_int("deposit_account_id", payload.get("deposit_account_id"), required=False)
    bank_account_id = parse_int("bank_account_id", payload.get("bank_account_id"), required=False)
    cheque_number = parse_text("cheque_number", payload.get("cheque_number"), max_length=64)
    cheque_date = parse_date("cheque_date", payload.get("cheque_date"), required=False)

    if method == METHOD_CHEQUE:
        missing = [
            key for key, value in (
                ("cheque_number", cheque_number),
                ("cheque_date", cheque_date),
                ("bank_account_id", bank_account_id),
            ) if value is None
        ]
        if missing:
            raise ValidationError(f"Cheque payments require: {', '.join(missing)}")
    else:
        if deposit_account_id is None:
            raise ValidationError(f"deposit_account_id is required for {method} payments")
        cheque_number = None
        cheque_date = None

    return PaymentInput(
        amount_cents=amount,
        payment_method=method,
        payment_date=payment_date,
        deposit_account_id=deposit_account_id,
        bank_account_id=bank_account_id,
        cheque_number=cheque_number,
        cheque_date=cheque_date,
        reference_number=parse_text("reference_number", payload.get("reference_number"), max_length=128),
        notes=parse_text("notes", payload.get("notes")),
    )


# =============================================================================
# DERIVED FIGURES
# =============================================================================

def _non_returned():
    return db.or_(Payment.cheque_status.is_(None), Payment.cheque_status != CHEQUE_RETURNED)


def order_paid_cents(order_id: int) -> int:
    """Sum of every non-returned payment recorded against an order."""
    total = (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(Payment.order_id == order_id, _non_returned())
        .scalar()
    )
    return int(total)


def refresh_order_payment_status(order: Order) -> str:
    """Re-derive a locked order's payment_status from its payments."""
    db.session.flush()
    order.payment_status = derive_payment_status(order_paid_cents(order.id), order.total_amount_cents)
    return order.payment_status


def _unpaid_cents(order: Order) -> int:
    return max(order.total_amount_cents - order_paid_cents(order.id), 0)


def get_order_payment_summary(order: Order) -> dict:
    paid = order_paid_cents(order.id)
    return {
        "paid_amount_cents": paid,
        "balance_cents": max(order.total_amount_cents - paid, 0),
    }


# =============================================================================
# PAYMENT CREATION
# =============================================================================

def _get_order_for_update(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if not order:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def record_payment_locked(
    *,
    customer: Customer,
    order: Order | None,
    data: PaymentInput,
    user_id: int | None,
    idempotency_key: str | None = None,
) -> Payment:
    """
    Write a payment and all of its side effects. Does not commit.

    customer and order must already be locked by the caller.
    """
    deposit_account = None
    if data.payment_method == METHOD_CHEQUE:
        if not db.session.get(CompanyAccount, data.bank_account_id):
            raise NotFoundError(f"Account {data.bank_account_id} not found")
        if data.deposit_account_id is not None and not db.session.get(CompanyAccount, data.deposit_account_id):
            raise NotFoundError(f"Account {data.deposit_account_id} not found")
    else:
        deposit_account = get_account_for_update(data.deposit_account_id)
        if not deposit_account.is_active:
            raise PaymentError("Deposit account is inactive")

    payment = Payment(
        payment_number=next_document_number("payment"),
        order_id=order.id if order else None,
        customer_id=customer.id,
        payment_date=data.payment_date,
        amount_cents=data.amount_cents,
        payment_method=data.payment_method,
        deposit_account_id=data.deposit_account_id,
        bank_account_id=data.bank_account_id,
        cheque_number=data.cheque_number,
        cheque_date=data.cheque_date,
        cheque_status=CHEQUE_PENDING if data.payment_method == METHOD_CHEQUE else None,
        reference_number=data.reference_number,
        notes=data.notes,
        idempotency_key=idempotency_key,
        created_by_user_id=user_id,
    )
    db.session.add(payment)
    db.session.flush()

    if deposit_account is not None:
        apply_balance_change(
            deposit_account,
            data.amount_cents,
            transaction_type="customer_payment",
            reference_type="payment",
            reference_id=payment.id,
            notes=f"Payment {payment.payment_number}",
            user_id=user_id,
        )

    if order is not None:
        refresh_order_payment_status(order)
        adjust_outstanding(customer, -data.amount_cents)

    return payment


def find_by_idempotency_key(key: str | None) -> Payment | None:
    if not key:
        return None
    return db.session.query(Payment).filter_by(idempotency_key=key).first()


def record_payment(payload: dict, *, user_id: int | None, idempotency_key: str | None = None) -> tuple[Payment, bool]:
    """
    Record a customer payment (POST /api/payments).

    Returns (payment, replayed). A repeated idempotency key returns the
    original payment and changes nothing.
    """
    existing = find_by_idempotency_key(idempotency_key)
    if existing:
        return existing, True

    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    customer_id = parse_int("customer_id", payload.get("customer_id"))
    order_id = parse_int("order_id", payload.get("order_id"), required=False)
    data = parse_payment_input(payload)

    def _op():
        customer = get_customer_for_update(customer_id)
        order = None
        if order_id is not None:
            order = _get_order_for_update(order_id)
            if order.customer_id != customer.id:
                raise PaymentError("Order does not belong to this customer")
            if order.status == "cancelled":
                raise PaymentError("Cannot record a payment against a cancelled order")

        payment = record_payment_locked(
            customer=customer,
            order=order,
            data=data,
            user_id=user_id,
            idempotency_key=idempotency_key,
        )
        db.session.commit()
        logger.info(
            "Recorded %s payment %s of %s for customer %s (order=%s)",
            payment.payment_method, payment.payment_number, payment.amount_cents,
            customer.id, order.id if order else None,
        )
        return payment, False

    try:
        return run_with_retry(_op)
    except IntegrityError:
        # Concurrent request with the same key won the insert
        existing = find_by_idempotency_key(idempotency_key)
        if existing:
            return existing, True
        raise


# =============================================================================
# CHEQUE STATUS TRANSITIONS
# =============================================================================

def update_cheque_status(payment_id: int, payload: dict, *, user_id: int | None) -> Payment:
    """
    Move a customer cheque through its lifecycle (PATCH /api/payments/<id>).

    - deposited: optional deposit_account_id retargets the cheque
    - passed: credit deposit_account_id (else bank_account_id)
    - returned: re-derive payment_status and add back the newly unpaid
      part of the order (nothing for a cancelled order)
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    new_status = parse_choice("status", payload.get("cheque_status", payload.get("status")),
                              {CHEQUE_DEPOSITED, CHEQUE_PASSED, CHEQUE_RETURNED})
    deposit_account_id = parse_int("deposit_account_id", payload.get("deposit_account_id"), required=False)

    def _op():
        payment = lock_for_update(db.session.query(Payment).filter_by(id=payment_id)).first()
        if not payment:
            raise NotFoundError(f"Payment {payment_id} not found")

        if payment.payment_method != METHOD_CHEQUE:
            raise PaymentError("Only cheque payments have a status to update")

        current = payment.cheque_status or CHEQUE_PENDING
        if current in TERMINAL_CHEQUE_STATES:
            raise ConflictError(f"Cheque is already {current}")
        if new_status not in CHEQUE_TRANSITIONS.get(current, set()):
            raise ConflictError(f"Cannot move cheque from {current} to {new_status}")

        if new_status == CHEQUE_DEPOSITED:
            if deposit_account_id is not None:
                if not db.session.get(CompanyAccount, deposit_account_id):
                    raise NotFoundError(f"Account {deposit_account_id} not found")
                payment.deposit_account_id = deposit_account_id

        elif new_status == CHEQUE_PASSED:
            target_id = payment.deposit_account_id or payment.bank_account_id
            if target_id is None:
                raise PaymentError("Cheque has no account to clear into")
            account = get_account_for_update(target_id)
            apply_balance_change(
                account,
                payment.amount_cents,
                transaction_type="cheque_cleared",
                reference_type="payment",
                reference_id=payment.id,
                notes=f"Cheque {payment.cheque_number} cleared",
                user_id=user_id,
            )

        order = customer = None
        unpaid_before = 0
        if new_status == CHEQUE_RETURNED and payment.order_id is not None:
            order = _get_order_for_update(payment.order_id)
            customer = get_customer_for_update(payment.customer_id)
            # Measured before the status change; the paid-sum query autoflushes
            unpaid_before = _unpaid_cents(order)

        payment.cheque_status = new_status

        # Cancelled orders were already released from outstanding in full
        if order is not None and order.status != "cancelled":
            refresh_order_payment_status(order)
            adjust_outstanding(customer, _unpaid_cents(order) - unpaid_before)

        db.session.commit()
        logger.info("Cheque %s (payment %s): %s -> %s", payment.cheque_number, payment.id, current, new_status)
        return payment

    return run_with_retry(_op)


# =============================================================================
# PAYMENT QUERIES
# =============================================================================

def get_payment(payment_id: int) -> Payment:
    payment = db.session.get(Payment, payment_id)
    if not payment:
        raise NotFoundError(f"Payment {payment_id} not found")
    return payment


def list_payments(
    *,
    customer_id: int | None = None,
    order_id: int | None = None,
    payment_method: str | None = None,
    cheque_status: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[Payment]:
    query = db.session.query(Payment)
    if customer_id is not None:
        query = query.filter(Payment.customer_id == customer_id)
    if order_id is not None:
        query = query.filter(Payment.order_id == order_id)
    if payment_method:
        query = query.filter(Payment.payment_method == payment_method)
    if cheque_status:
        query = query.filter(Payment.cheque_status == cheque_status)
    if start_date:
        query = query.filter(Payment.payment_date >= start_date)
    if end_date:
        query = query.filter(Payment.payment_date <= end_date)
    return query.order_by(Payment.payment_date.desc(), Payment.id.desc()).all()
