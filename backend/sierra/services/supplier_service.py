# Overview: Service-layer operations for suppliers; master data and primary supplier lookup.

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Supplier
from ..validation import ConflictError, ModelValidationPolicy, NotFoundError, ValidationError, validate_payload
from .concurrency import run_with_retry


logger = logging.getLogger(__name__)


SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"supplier_code", "name", "contact", "email", "address", "city", "is_primary", "is_active"},
    required_on_create={"name"},
)


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if not supplier:
        raise NotFoundError(f"Supplier {supplier_id} not found")
    return supplier


def list_suppliers(*, include_inactive: bool = False) -> list[Supplier]:
    query = db.session.query(Supplier)
    if not include_inactive:
        query = query.filter(Supplier.is_active.is_(True))
    return query.order_by(Supplier.is_primary.desc(), Supplier.name).all()


def get_primary_supplier() -> Supplier:
    """
    The supplier purchases are filed against.

    The active supplier flagged is_primary, else the first active one.
    """
    active = db.session.query(Supplier).filter(Supplier.is_active.is_(True))
    supplier = active.filter(Supplier.is_primary.is_(True)).order_by(Supplier.id).first()
    if not supplier:
        supplier = active.order_by(Supplier.id).first()
    if not supplier:
        raise ValidationError("No active supplier configured")
    return supplier


def _clear_other_primaries(keep_id: int) -> None:
    db.session.query(Supplier).filter(
        Supplier.id != keep_id, Supplier.is_primary.is_(True)
    ).update({Supplier.is_primary: False}, synchronize_session="fetch")


def _check_code_free(code: str | None, *, exclude_id: int | None = None) -> None:
    if not code:
        return
    query = db.session.query(Supplier).filter(Supplier.supplier_code == code)
    if exclude_id is not None:
        query = query.filter(Supplier.id != exclude_id)
    if query.first():
        raise ConflictError(f"Supplier code {code} already exists")


def create_supplier(payload: dict) -> Supplier:
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)

    def _op():
        _check_code_free(patch.get("supplier_code"))
        supplier = Supplier(**patch)
        db.session.add(supplier)
        db.session.flush()
        if supplier.is_primary:
            _clear_other_primaries(supplier.id)
        db.session.commit()
        logger.info("Created supplier %s (%s)", supplier.name, supplier.id)
        return supplier

    return run_with_retry(_op)


def update_supplier(supplier_id: int, payload: dict) -> Supplier:
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)

    def _op():
        supplier = get_supplier(supplier_id)
        if "supplier_code" in patch:
            _check_code_free(patch["supplier_code"], exclude_id=supplier.id)
        for key, value in patch.items():
            setattr(supplier, key, value)
        if patch.get("is_primary"):
            _clear_other_primaries(supplier.id)
        db.session.commit()
        return supplier

    return run_with_retry(_op)
