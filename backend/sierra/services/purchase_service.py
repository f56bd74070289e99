# Overview: Service-layer operations for purchases; stock-in and admin edits with inventory diffs.

"""
Purchase Intake & Edit Service

WHY: Purchases are the only way stock enters the business in bulk. Posting
a purchase and incrementing stock happen in one transaction, so an invoice
can never exist without its stock (or the other way round).

DESIGN PRINCIPLES:
- Purchases are filed against the primary supplier
- Each product's cost_price follows the latest purchase unit price
- Edits diff old vs new quantities per product and log the signed
  difference as purchase_edit inventory transactions
- payment_status is derived from amount_paid vs total
"""

from __future__ import annotations

import logging
from datetime import date

from ..extensions import db
from ..models import Purchase, PurchaseItem
from ..validation import (
    NotFoundError,
    ValidationError,
    compute_line_total,
    derive_payment_status,
    parse_date,
    parse_line_items,
    parse_text,
    quantities_by_product,
)
from sierra.time_utils import today
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .inventory_service import apply_stock_change, get_product_for_update
from .supplier_service import get_primary_supplier


logger = logging.getLogger(__name__)


class PurchaseError(ValidationError):
    """Raised for purchase operation errors (400)."""
    pass


def _line_totals(lines) -> tuple[list[int], int, int]:
    """Returns (line totals, gross subtotal, total discount)."""
    totals = [compute_line_total(l.unit_price_cents, l.quantity, l.discount_percent) for l in lines]
    gross = sum(l.unit_price_cents * l.quantity for l in lines)
    net = sum(totals)
    return totals, gross, gross - net


def _build_items(purchase: Purchase, lines, line_totals, products) -> list[PurchaseItem]:
    items = []
    for line, line_total in zip(lines, line_totals):
        product = products[line.product_id]
        item = PurchaseItem(
            purchase_id=purchase.id,
            product_id=product.id,
            quantity=line.quantity,
            mrp_cents=line.mrp_cents,
            discount_percent=line.discount_percent,
            unit_price_cents=line.unit_price_cents,
            line_total_cents=line_total,
        )
        db.session.add(item)
        items.append(item)

        # Latest purchase price becomes the cost basis
        product.cost_price_cents = line.unit_price_cents
        if line.mrp_cents is not None:
            product.mrp_cents = line.mrp_cents
    return items


def _lock_products(product_ids) -> dict:
    return {pid: get_product_for_update(pid) for pid in sorted(set(product_ids))}


# =============================================================================
# PURCHASE CREATION
# =============================================================================

def create_purchase(payload: dict, *, user_id: int | None) -> Purchase:
    """
    Record a purchase from the primary supplier (POST /api/purchases).

    Stock is incremented and purchase inventory transactions are logged
    in the same transaction as the purchase rows.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    purchase_date = parse_date("purchase_date", payload.get("purchase_date"), required=False) or today()
    invoice_number = parse_text("invoice_number", payload.get("invoice_number"), max_length=64)
    notes = parse_text("notes", payload.get("notes"))
    lines = parse_line_items(payload.get("items"))

    line_totals, gross, discount = _line_totals(lines)

    def _op():
        supplier = get_primary_supplier()
        products = _lock_products(l.product_id for l in lines)

        purchase = Purchase(
            purchase_number=next_document_number("purchase"),
            supplier_id=supplier.id,
            purchase_date=purchase_date,
            invoice_number=invoice_number,
            subtotal_cents=gross,
            total_discount_cents=discount,
            total_amount_cents=gross - discount,
            amount_paid_cents=0,
            payment_status=derive_payment_status(0, gross - discount),
            notes=notes,
            created_by_user_id=user_id,
        )
        db.session.add(purchase)
        db.session.flush()

        _build_items(purchase, lines, line_totals, products)

        for line in lines:
            apply_stock_change(
                products[line.product_id],
                line.quantity,
                transaction_type="purchase",
                reference_type="purchase",
                reference_id=purchase.id,
                notes=f"Purchase {purchase.purchase_number}",
                user_id=user_id,
            )

        db.session.commit()
        logger.info(
            "Created purchase %s from supplier %s: total=%s",
            purchase.purchase_number, supplier.id, purchase.total_amount_cents,
        )
        return purchase

    return run_with_retry(_op)


# =============================================================================
# PURCHASE EDIT (ADMIN)
# =============================================================================

def update_purchase(purchase_id: int, payload: dict, *, user_id: int | None) -> dict:
    """
    Replace a purchase's items and re-apply the stock difference.

    For each product: delta = new qty - old qty (summed per product).
    Removed products give -old, new products +new. Every non-zero delta
    moves stock and is logged as purchase_edit with the signed delta.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    purchase_date = parse_date("purchase_date", payload.get("purchase_date"))
    lines = parse_line_items(payload.get("items"))
    invoice_number = parse_text("invoice_number", payload.get("invoice_number"), max_length=64)
    notes = parse_text("notes", payload.get("notes"))

    line_totals, gross, discount = _line_totals(lines)
    new_qty = quantities_by_product(lines)

    def _op():
        purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
        if not purchase:
            raise NotFoundError(f"Purchase {purchase_id} not found")

        old_items = list(purchase.items)
        old_qty = quantities_by_product(old_items)

        products = _lock_products(list(old_qty) + list(new_qty))

        deltas = {}
        for product_id in sorted(set(old_qty) | set(new_qty)):
            delta = new_qty.get(product_id, 0) - old_qty.get(product_id, 0)
            if delta == 0:
                continue
            deltas[product_id] = delta
            apply_stock_change(
                products[product_id],
                delta,
                transaction_type="purchase_edit",
                reference_type="purchase",
                reference_id=purchase.id,
                notes=f"Purchase edit {purchase.purchase_number}",
                user_id=user_id,
            )

        for item in old_items:
            db.session.delete(item)
        db.session.flush()

        _build_items(purchase, lines, line_totals, products)

        purchase.purchase_date = purchase_date
        if "invoice_number" in payload:
            purchase.invoice_number = invoice_number
        if "notes" in payload:
            purchase.notes = notes
        purchase.subtotal_cents = gross
        purchase.total_discount_cents = discount
        purchase.total_amount_cents = gross - discount
        purchase.payment_status = derive_payment_status(purchase.amount_paid_cents, purchase.total_amount_cents)

        db.session.commit()
        logger.info("Edited purchase %s: stock deltas %s", purchase.purchase_number, deltas)
        return {
            "purchase": purchase.to_dict(),
            "items": [i.to_dict() for i in db.session.query(PurchaseItem).filter_by(purchase_id=purchase.id).order_by(PurchaseItem.id)],
            "stock_changes": [{"product_id": pid, "quantity": d} for pid, d in deltas.items()],
        }

    return run_with_retry(_op)


# =============================================================================
# PAYMENT HOOKS (used by supplier payments)
# =============================================================================

def get_purchase_for_update(purchase_id: int) -> Purchase:
    purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
    if not purchase:
        raise NotFoundError(f"Purchase {purchase_id} not found")
    return purchase


def apply_payment(purchase: Purchase, amount_cents: int) -> None:
    """Move a locked purchase's amount_paid by a signed amount and re-derive status."""
    purchase.amount_paid_cents = max(purchase.amount_paid_cents + amount_cents, 0)
    purchase.payment_status = derive_payment_status(purchase.amount_paid_cents, purchase.total_amount_cents)


# =============================================================================
# PURCHASE QUERIES
# =============================================================================

def get_purchase(purchase_id: int) -> Purchase:
    purchase = db.session.get(Purchase, purchase_id)
    if not purchase:
        raise NotFoundError(f"Purchase {purchase_id} not found")
    return purchase


def purchase_detail(purchase: Purchase) -> dict:
    return {
        "purchase": purchase.to_dict(),
        "items": [item.to_dict() for item in purchase.items],
    }


def list_purchases(
    *,
    supplier_id: int | None = None,
    payment_status: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[Purchase]:
    query = db.session.query(Purchase)
    if supplier_id is not None:
        query = query.filter(Purchase.supplier_id == supplier_id)
    if payment_status:
        query = query.filter(Purchase.payment_status == payment_status)
    if start_date:
        query = query.filter(Purchase.purchase_date >= start_date)
    if end_date:
        query = query.filter(Purchase.purchase_date <= end_date)
    return query.order_by(Purchase.purchase_date.desc(), Purchase.id.desc()).all()


def list_unpaid_purchases() -> list[Purchase]:
    """Purchases with a balance still due to the supplier."""
    return (
        db.session.query(Purchase)
        .filter(Purchase.total_amount_cents > Purchase.amount_paid_cents)
        .order_by(Purchase.purchase_date, Purchase.id)
        .all()
    )
