# Overview: Service-layer operations for orders (bills); stock, balance and payment effects in one transaction.

"""
Order Intake Service

WHY: Creating a bill touches five things: the order and its items, the
stock of every product sold, the inventory ledger, the customer's
outstanding balance and (optionally) an initial payment. They either all
happen or none do.

DESIGN PRINCIPLES:
- Totals are computed here from the items; client totals are ignored
- Stock is checked per product (repeated lines summed) before any write
- Cost price is snapshotted onto each item for profit reporting
- payment_status is derived from payments, never set directly
- An Idempotency-Key makes a retried create return the original order
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Order, OrderItem
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    compute_line_total,
    derive_payment_status,
    parse_choice,
    parse_date,
    parse_int,
    parse_line_items,
    parse_money,
    parse_text,
    quantities_by_product,
)
from sierra.time_utils import today
from .concurrency import lock_for_update, run_with_retry
from .customer_service import adjust_outstanding, get_customer_for_update
from .document_service import next_document_number
from .inventory_service import apply_stock_change, get_product_for_update
from .payment_service import (
    VALID_METHODS,
    get_order_payment_summary,
    order_paid_cents,
    parse_payment_input,
    record_payment_locked,
)


logger = logging.getLogger(__name__)


class OrderError(ValidationError):
    """Raised for order operation errors (400)."""
    pass


class InsufficientStockError(OrderError):
    """Raised when one or more products cannot cover the requested quantity."""

    def __init__(self, shortages: list[dict]):
        self.details = shortages
        names = ", ".join(s["product_name"] for s in shortages)
        super().__init__(f"Insufficient stock for: {names}")


# =============================================================================
# ORDER STATUS (CONSTANTS)
# =============================================================================

STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"

OPEN_STATUSES = {"confirmed", "processing", "shipped", "delivered"}
UNPAID_STATUSES = ("unpaid", "partial")
RETURN_ACTIONS = {"cancel", "partial_return"}


# =============================================================================
# ORDER CREATION
# =============================================================================

def _allocate_order_number() -> str:
    # Client-supplied numbers share the namespace, so skip any already taken
    while True:
        number = next_document_number("order")
        if not db.session.query(Order.id).filter_by(order_number=number).first():
            return number


def _profit_cents(items) -> int:
    return sum(item.profit_cents for item in items)


def find_by_idempotency_key(key: str | None) -> Order | None:
    if not key:
        return None
    return db.session.query(Order).filter_by(idempotency_key=key).first()


def create_order(payload: dict, *, user_id: int | None, idempotency_key: str | None = None) -> tuple[Order, int, bool]:
    """
    Create a bill (POST /api/orders).

    Returns (order, profit_cents, replayed).

    Raises:
        ValidationError / OrderError: bad payload, discount above subtotal
        InsufficientStockError: any product short; nothing is written
        NotFoundError: unknown customer, product or account
        ConflictError: order_number already used
    """
    existing = find_by_idempotency_key(idempotency_key)
    if existing:
        return existing, _profit_cents(existing.items), True

    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    customer_id = parse_int("customer_id", payload.get("customer_id"))
    order_date = parse_date("order_date", payload.get("order_date"), required=False) or today()
    lines = parse_line_items(payload.get("items"))
    order_number = parse_text("order_number", payload.get("order_number"), max_length=64)
    discount_amount = parse_money("discount_amount_cents", payload.get("discount_amount_cents"), required=False) or 0
    status = parse_choice("status", payload.get("status"), OPEN_STATUSES, required=False) or STATUS_CONFIRMED
    notes = parse_text("notes", payload.get("notes"))
    payment_method = parse_choice("payment_method", payload.get("payment_method"), VALID_METHODS, required=False)

    paid_amount = parse_money("paid_amount_cents", payload.get("paid_amount_cents"), required=False) or 0
    initial_payment = None
    if paid_amount > 0:
        if payment_method is None:
            raise ValidationError("payment_method is required when paid_amount_cents > 0")
        initial_payment = parse_payment_input(
            {**payload, "payment_date": payload.get("payment_date") or order_date.isoformat()},
            amount_key="paid_amount_cents",
        )

    line_totals = [compute_line_total(l.unit_price_cents, l.quantity, l.discount_percent) for l in lines]
    subtotal = sum(line_totals)
    if discount_amount > subtotal:
        raise OrderError("discount_amount_cents cannot exceed the subtotal")
    total = subtotal - discount_amount
    requested = quantities_by_product(lines)

    def _op():
        customer = get_customer_for_update(customer_id)
        if not customer.is_active:
            raise OrderError("Customer is inactive")

        if order_number and db.session.query(Order.id).filter_by(order_number=order_number).first():
            raise ConflictError(f"Order number {order_number} already exists")

        # Lock every product in id order and check availability before writing
        products = {}
        shortages = []
        for product_id in sorted(requested):
            product = get_product_for_update(product_id)
            if not product.is_active:
                raise OrderError(f"Product {product.name} is inactive")
            products[product_id] = product
            if product.stock_quantity < requested[product_id]:
                shortages.append({
                    "product_id": product.id,
                    "product_name": product.name,
                    "requested": requested[product_id],
                    "available": product.stock_quantity,
                })
        if shortages:
            raise InsufficientStockError(shortages)

        order = Order(
            order_number=order_number or _allocate_order_number(),
            customer_id=customer.id,
            order_date=order_date,
            status=status,
            subtotal_cents=subtotal,
            discount_amount_cents=discount_amount,
            total_amount_cents=total,
            payment_status=derive_payment_status(0, total),
            payment_method=payment_method,
            notes=notes,
            idempotency_key=idempotency_key,
            created_by_user_id=user_id,
        )
        db.session.add(order)
        db.session.flush()

        items = []
        for line, line_total in zip(lines, line_totals):
            product = products[line.product_id]
            item = OrderItem(
                order_id=order.id,
                product_id=product.id,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                cost_price_cents=product.cost_price_cents,
                discount_percent=line.discount_percent,
                line_total_cents=line_total,
            )
            db.session.add(item)
            items.append(item)

            apply_stock_change(
                product,
                -line.quantity,
                transaction_type="sale",
                reference_type="order",
                reference_id=order.id,
                notes=f"Sale - Order {order.order_number}",
                user_id=user_id,
            )

        adjust_outstanding(customer, total)

        if initial_payment is not None:
            record_payment_locked(
                customer=customer,
                order=order,
                data=initial_payment,
                user_id=user_id,
            )

        db.session.commit()
        logger.info(
            "Created order %s for customer %s: total=%s payment_status=%s",
            order.order_number, customer.id, order.total_amount_cents, order.payment_status,
        )
        return order, _profit_cents(items), False

    try:
        return run_with_retry(_op)
    except IntegrityError:
        existing = find_by_idempotency_key(idempotency_key)
        if existing:
            return existing, _profit_cents(existing.items), True
        raise


# =============================================================================
# ORDER QUERIES
# =============================================================================

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def order_detail(order: Order, *, include_payments: bool = False) -> dict:
    data = {
        "order": order.to_dict(),
        "items": [item.to_dict() for item in order.items],
        **get_order_payment_summary(order),
    }
    if include_payments:
        data["payments"] = [p.to_dict() for p in order.payments]
    return data


def list_orders(
    *,
    customer_id: int | None = None,
    status: str | None = None,
    payment_status: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[dict]:
    query = db.session.query(Order)
    if customer_id is not None:
        query = query.filter(Order.customer_id == customer_id)
    if status:
        query = query.filter(Order.status == status)
    if payment_status:
        query = query.filter(Order.payment_status == payment_status)
    if start_date:
        query = query.filter(Order.order_date >= start_date)
    if end_date:
        query = query.filter(Order.order_date <= end_date)
    orders = query.order_by(Order.order_date.desc(), Order.id.desc()).all()
    return [order_detail(o) for o in orders]


def list_unpaid_orders(*, customer_id: int | None = None) -> list[dict]:
    """Open unpaid/partial orders that still have a balance to collect."""
    query = db.session.query(Order).filter(
        Order.payment_status.in_(UNPAID_STATUSES),
        Order.status != STATUS_CANCELLED,
    )
    if customer_id is not None:
        query = query.filter(Order.customer_id == customer_id)

    rows = []
    for order in query.order_by(Order.order_date, Order.id).all():
        detail = order_detail(order)
        if detail["balance_cents"] > 0:
            rows.append(detail)
    return rows


# =============================================================================
# ORDER UPDATES
# =============================================================================

def update_order(order_id: int, payload: dict) -> Order:
    """
    Update status / notes (PUT /api/orders/<id>).

    payment_status is derived from payments: a supplied value that differs
    from the derived one is a conflict; a matching value is a no-op.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    for key in payload:
        if key not in {"status", "notes", "payment_status"}:
            raise ValidationError(f"Field not allowed: {key}")

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise NotFoundError(f"Order {order_id} not found")

        if "payment_status" in payload:
            if order.status == STATUS_CANCELLED:
                derived = order.payment_status
            else:
                derived = derive_payment_status(order_paid_cents(order.id), order.total_amount_cents)
            if payload["payment_status"] != derived:
                raise ConflictError(
                    f"payment_status is derived from payments (currently {derived}) and cannot be set"
                )

        if "status" in payload:
            if payload["status"] == STATUS_CANCELLED:
                raise OrderError("Use the return endpoint to cancel an order")
            new_status = parse_choice("status", payload["status"], OPEN_STATUSES)
            if order.status == STATUS_CANCELLED:
                raise ConflictError("Cancelled orders cannot change status")
            order.status = new_status

        if "notes" in payload:
            order.notes = parse_text("notes", payload["notes"])

        db.session.commit()
        return order

    return run_with_retry(_op)


# =============================================================================
# RETURNS AND CANCELLATION
# =============================================================================

def _parse_return_lines(items) -> dict[int, int]:
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")
    wanted: dict[int, int] = {}
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        item_id = parse_int(f"items[{index}].order_item_id", raw.get("order_item_id"))
        qty = parse_int(f"items[{index}].return_qty", raw.get("return_qty"))
        if qty <= 0:
            raise ValidationError(f"items[{index}].return_qty must be > 0")
        wanted[item_id] = wanted.get(item_id, 0) + qty
    return wanted


def _prorate_discount(discount: int, old_subtotal: int, new_subtotal: int) -> int:
    if old_subtotal <= 0:
        return 0
    value = Decimal(discount) * Decimal(new_subtotal) / Decimal(old_subtotal)
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def return_order(order_id: int, payload: dict, *, user_id: int | None) -> dict:
    """
    Cancel a bill or return some of its items (POST /api/orders/<id>/return).

    {action: "cancel"}: restock everything, drop the unpaid portion from
    the customer's outstanding balance, mark cancelled/unpaid.

    {action: "partial_return", items: [{order_item_id, return_qty}]}:
    restock the returned quantities, shrink or remove the items, recompute
    totals (order discount pro-rated) and lower outstanding by the unpaid
    value that was returned.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    action = parse_choice("action", payload.get("action"), RETURN_ACTIONS)
    wanted = _parse_return_lines(payload.get("items")) if action == "partial_return" else {}

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        if order.status == STATUS_CANCELLED:
            raise ConflictError("Order is already cancelled")
        if order.payment_status == "paid":
            raise OrderError("Cannot return or cancel a fully paid order; handle the refund separately")

        customer = get_customer_for_update(order.customer_id)
        items = list(order.items)
        paid = order_paid_cents(order.id)
        old_total = order.total_amount_cents

        if action == "cancel":
            for item in items:
                product = get_product_for_update(item.product_id)
                apply_stock_change(
                    product,
                    item.quantity,
                    transaction_type="return",
                    reference_type="order",
                    reference_id=order.id,
                    notes=f"Full cancel - Order {order.order_number}",
                    user_id=user_id,
                )
            unpaid = max(old_total - paid, 0)
            adjust_outstanding(customer, -unpaid)
            order.status = STATUS_CANCELLED
            order.payment_status = "unpaid"
            db.session.commit()
            logger.info("Cancelled order %s (unpaid portion %s released)", order.order_number, unpaid)
            return {
                "message": "Order cancelled and stock restored",
                "order": order.to_dict(),
                "return_value_cents": old_total,
                "new_total_cents": 0,
            }

        by_id = {item.id: item for item in items}
        for item_id, qty in wanted.items():
            item = by_id.get(item_id)
            if item is None:
                raise OrderError(f"Order item {item_id} is not part of this order")
            if qty > item.quantity:
                raise OrderError(f"Cannot return {qty} of order item {item_id}; only {item.quantity} sold")

        return_value = 0
        remaining_items = []
        for item in items:
            qty = wanted.get(item.id, 0)
            if qty == 0:
                remaining_items.append(item)
                continue

            product = get_product_for_update(item.product_id)
            apply_stock_change(
                product,
                qty,
                transaction_type="return",
                reference_type="order",
                reference_id=order.id,
                notes=f"Partial return - Order {order.order_number}",
                user_id=user_id,
            )

            remaining = item.quantity - qty
            new_line_total = compute_line_total(item.unit_price_cents, remaining, item.discount_percent)
            return_value += item.line_total_cents - new_line_total
            if remaining == 0:
                db.session.delete(item)
            else:
                item.quantity = remaining
                item.line_total_cents = new_line_total
                remaining_items.append(item)

        new_subtotal = sum(item.line_total_cents for item in remaining_items)
        new_discount = _prorate_discount(order.discount_amount_cents, order.subtotal_cents, new_subtotal)
        new_total = new_subtotal - new_discount

        old_unpaid = max(old_total - paid, 0)
        new_unpaid = max(new_total - paid, 0)
        adjust_outstanding(customer, -(old_unpaid - new_unpaid))

        order.subtotal_cents = new_subtotal
        order.discount_amount_cents = new_discount
        order.total_amount_cents = new_total
        if remaining_items:
            order.payment_status = derive_payment_status(paid, new_total)
        else:
            order.status = STATUS_CANCELLED
            order.payment_status = "unpaid"

        db.session.commit()
        logger.info(
            "Partial return on order %s: returned value %s, new total %s",
            order.order_number, return_value, new_total,
        )
        return {
            "message": "Items returned successfully",
            "order": order.to_dict(),
            "return_value_cents": return_value,
            "new_total_cents": new_total,
        }

    return run_with_retry(_op)
