from __future__ import annotations

from ..extensions import db
from sierra.time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer master data.

    outstanding_balance_cents is a running total: orders add to it,
    order-linked payments subtract from it (floored at zero) and returned
    cheques add the cheque amount back. Every change happens in the same
    transaction as the order/payment row that causes it, so it can always
    be re-derived from the ledgers (see customer_service.derive_outstanding).
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(200), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(300), nullable=True)
    city = db.Column(db.String(100), nullable=True)

    credit_limit_cents = db.Column(db.Integer, nullable=False, default=0)
    outstanding_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "city": self.city,
            "credit_limit_cents": self.credit_limit_cents,
            "outstanding_balance_cents": self.outstanding_balance_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Supplier(db.Model):
    """
    Supplier master data.

    The business buys from a single primary supplier; purchases are filed
    against whichever active supplier is flagged is_primary.
    """
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    supplier_code = db.Column(db.String(32), nullable=True, unique=True)
    name = db.Column(db.String(200), nullable=False)
    contact = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(300), nullable=True)
    city = db.Column(db.String(100), nullable=True)

    is_primary = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_code": self.supplier_code,
            "name": self.name,
            "contact": self.contact,
            "email": self.email,
            "address": self.address,
            "city": self.city,
            "is_primary": self.is_primary,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
