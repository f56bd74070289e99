# Overview: Service-layer operations for inventory; stock changes always write an inventory transaction.

"""
Inventory Service

WHY: Product.stock_quantity is read on every bill. It is only ever
changed through apply_stock_change, which writes the matching
InventoryTransaction in the same session, so the stock figure can be
re-derived from the ledger at any time.
"""

from __future__ import annotations

import logging

from sqlalchemy import func

from ..extensions import db
from ..models import InventoryTransaction, Product
from ..validation import (
    NotFoundError,
    ValidationError,
    parse_choice,
    parse_int,
    parse_text,
)
from .concurrency import lock_for_update, run_with_retry


logger = logging.getLogger(__name__)


TRANSACTION_TYPES = {"sale", "purchase", "adjustment", "return", "purchase_edit"}
ADJUST_OPERATIONS = {"add", "subtract"}


def get_product_for_update(product_id: int) -> Product:
    """Load and lock a product, or raise NotFoundError."""
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def apply_stock_change(
    product: Product,
    quantity_delta: int,
    *,
    transaction_type: str,
    reference_type: str | None = None,
    reference_id: int | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> InventoryTransaction:
    """
    Move a locked product's stock by a signed delta and log it.

    Does not commit. Sales check availability before calling this; other
    paths may take stock anywhere.
    """
    if transaction_type not in TRANSACTION_TYPES:
        raise ValueError(f"Unknown inventory transaction type: {transaction_type}")

    product.stock_quantity = product.stock_quantity + quantity_delta

    txn = InventoryTransaction(
        product_id=product.id,
        transaction_type=transaction_type,
        quantity=quantity_delta,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        created_by_user_id=user_id,
    )
    db.session.add(txn)
    return txn


def adjust_stock(product_id: int, payload: dict, *, user_id: int | None) -> dict:
    """
    Manual stock change (POST /api/products/<id>/stock).

    {quantity > 0, operation: add|subtract, notes}. Subtract floors at
    zero; the logged quantity is the change actually applied.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    quantity = parse_int("quantity", payload.get("quantity"))
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")
    operation = parse_choice("operation", payload.get("operation"), ADJUST_OPERATIONS)
    notes = parse_text("notes", payload.get("notes"), max_length=255)

    def _op():
        product = get_product_for_update(product_id)
        previous = product.stock_quantity

        if operation == "add":
            delta = quantity
        else:
            delta = -min(quantity, max(previous, 0))

        if delta != 0:
            apply_stock_change(
                product,
                delta,
                transaction_type="adjustment",
                reference_type="manual",
                notes=notes or f"Manual stock {operation}",
                user_id=user_id,
            )
        db.session.commit()
        logger.info("Stock adjustment for product %s: %s -> %s", product.id, previous, product.stock_quantity)

        return {
            "product": product.to_dict(),
            "previous_stock": previous,
            "new_stock": product.stock_quantity,
        }

    return run_with_retry(_op)


def list_transactions(
    *,
    product_id: int | None = None,
    transaction_type: str | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    limit: int = 200,
) -> list[InventoryTransaction]:
    query = db.session.query(InventoryTransaction)
    if product_id is not None:
        query = query.filter(InventoryTransaction.product_id == product_id)
    if transaction_type:
        query = query.filter(InventoryTransaction.transaction_type == transaction_type)
    if reference_type:
        query = query.filter(InventoryTransaction.reference_type == reference_type)
    if reference_id is not None:
        query = query.filter(InventoryTransaction.reference_id == reference_id)
    return query.order_by(InventoryTransaction.id.desc()).limit(limit).all()


def ledger_quantity(product_id: int) -> int:
    """Sum of every logged movement for a product."""
    total = (
        db.session.query(func.coalesce(func.sum(InventoryTransaction.quantity), 0))
        .filter(InventoryTransaction.product_id == product_id)
        .scalar()
    )
    return int(total)


def get_product_ledger(product_id: int, *, limit: int = 200) -> dict:
    """
    Product movements plus reconciliation against the stored stock.

    Opening stock entered on product creation is logged as an adjustment,
    so the ledger sum should equal stock_quantity.
    """
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    derived = ledger_quantity(product_id)
    return {
        "product": product.to_dict(),
        "transactions": [t.to_dict() for t in list_transactions(product_id=product_id, limit=limit)],
        "derived_stock": derived,
        "is_reconciled": derived == product.stock_quantity,
    }
