# Overview: Service-layer operations for products; master data and stock listings.

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Product
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    enforce_rules_product,
    validate_payload,
)
from .concurrency import run_with_retry
from .inventory_service import apply_stock_change


logger = logging.getLogger(__name__)


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "description", "category", "unit_of_measure",
        "unit_price_cents", "cost_price_cents", "mrp_cents",
        "stock_quantity", "reorder_level", "is_active",
    },
    required_on_create={"sku", "name"},
)

# stock_quantity is only set at creation; later changes go through the stock endpoint
PRODUCT_UPDATE_FIELDS = PRODUCT_POLICY.writable_fields - {"stock_quantity"}
PRODUCT_UPDATE_POLICY = ModelValidationPolicy(writable_fields=PRODUCT_UPDATE_FIELDS)


def list_products(
    *,
    search: str | None = None,
    category: str | None = None,
    include_inactive: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    List products with optional search and pagination.

    If page is omitted, returns every matching product.
    """
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if category:
        query = query.filter(Product.category == category)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    query = query.order_by(Product.name)

    if page is None:
        items = query.all()
        return {"items": [p.to_dict() for p in items], "count": len(items)}

    per_page = min(max(per_page or 20, 1), 100)
    page = max(page, 1)
    total = query.count()
    items = query.offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [p.to_dict() for p in items],
        "page": page,
        "per_page": per_page,
        "total": total,
        "pages": (total + per_page - 1) // per_page,
    }


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def create_product(payload: dict, *, user_id: int | None) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)
    opening_stock = patch.pop("stock_quantity", None) or 0

    def _op():
        if db.session.query(Product).filter_by(sku=patch["sku"]).first():
            raise ConflictError(f"SKU {patch['sku']} already exists")

        product = Product(stock_quantity=0, **patch)
        db.session.add(product)
        db.session.flush()

        if opening_stock:
            apply_stock_change(
                product,
                opening_stock,
                transaction_type="adjustment",
                reference_type="product",
                reference_id=product.id,
                notes="Opening stock",
                user_id=user_id,
            )

        db.session.commit()
        logger.info("Created product %s (%s)", product.sku, product.id)
        return product

    return run_with_retry(_op)


def update_product(product_id: int, payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)

    def _op():
        product = get_product(product_id)
        if "sku" in patch and patch["sku"] != product.sku:
            clash = db.session.query(Product).filter(Product.sku == patch["sku"], Product.id != product.id).first()
            if clash:
                raise ConflictError(f"SKU {patch['sku']} already exists")
        for key, value in patch.items():
            setattr(product, key, value)
        db.session.commit()
        return product

    return run_with_retry(_op)


def list_low_stock() -> list[Product]:
    """Active products at or below their reorder level."""
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.stock_quantity <= Product.reorder_level)
        .order_by(Product.stock_quantity, Product.name)
        .all()
    )
