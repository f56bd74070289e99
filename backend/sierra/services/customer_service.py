# Overview: Service-layer operations for customers; master data, credit and balance reconciliation.

from __future__ import annotations

import logging

from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Order, Payment
from ..validation import ModelValidationPolicy, NotFoundError, validate_payload
from .concurrency import lock_for_update, run_with_retry


logger = logging.getLogger(__name__)


CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email", "address", "city", "credit_limit_cents", "is_active"},
    required_on_create={"name"},
)


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def get_customer_for_update(customer_id: int) -> Customer:
    customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
    if not customer:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def list_customers(*, search: str | None = None, include_inactive: bool = False) -> list[Customer]:
    query = db.session.query(Customer)
    if not include_inactive:
        query = query.filter(Customer.is_active.is_(True))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(Customer.name.ilike(pattern), Customer.phone.ilike(pattern)))
    return query.order_by(Customer.name).all()


def create_customer(payload: dict) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)

    def _op():
        customer = Customer(outstanding_balance_cents=0, **patch)
        db.session.add(customer)
        db.session.commit()
        logger.info("Created customer %s (%s)", customer.name, customer.id)
        return customer

    return run_with_retry(_op)


def update_customer(customer_id: int, payload: dict) -> Customer:
    """Outstanding balance is never client-writable; only orders and payments move it."""
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)

    def _op():
        customer = get_customer_for_update(customer_id)
        for key, value in patch.items():
            setattr(customer, key, value)
        db.session.commit()
        return customer

    return run_with_retry(_op)


def adjust_outstanding(customer: Customer, delta_cents: int) -> int:
    """Apply a signed change to a locked customer's outstanding balance, floored at 0."""
    customer.outstanding_balance_cents = max(0, customer.outstanding_balance_cents + delta_cents)
    return customer.outstanding_balance_cents


def _non_returned_payments():
    return db.or_(Payment.cheque_status.is_(None), Payment.cheque_status != "returned")


def get_credit_balance(customer_id: int) -> int:
    """Sum of non-returned standalone (order_id NULL) payments."""
    get_customer(customer_id)
    total = (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(
            Payment.customer_id == customer_id,
            Payment.order_id.is_(None),
            _non_returned_payments(),
        )
        .scalar()
    )
    return int(total)


def derive_outstanding(customer_id: int) -> int:
    """
    Outstanding balance re-derived from the ledgers.

    Sum over the customer's non-cancelled orders of
    max(total - non-returned payments, 0).
    """
    paid_by_order = dict(
        db.session.query(Payment.order_id, func.sum(Payment.amount_cents))
        .filter(
            Payment.customer_id == customer_id,
            Payment.order_id.isnot(None),
            _non_returned_payments(),
        )
        .group_by(Payment.order_id)
        .all()
    )
    orders = (
        db.session.query(Order.id, Order.total_amount_cents)
        .filter(Order.customer_id == customer_id, Order.status != "cancelled")
        .all()
    )
    return sum(max(total - int(paid_by_order.get(order_id, 0) or 0), 0) for order_id, total in orders)


def get_balance_summary(customer_id: int) -> dict:
    customer = get_customer(customer_id)
    derived = derive_outstanding(customer_id)
    return {
        "customer_id": customer.id,
        "outstanding_balance_cents": customer.outstanding_balance_cents,
        "derived_outstanding_cents": derived,
        "is_reconciled": derived == customer.outstanding_balance_cents,
        "credit_balance_cents": get_credit_balance(customer_id),
        "credit_limit_cents": customer.credit_limit_cents,
    }
