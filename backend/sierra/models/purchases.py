from __future__ import annotations

from ..extensions import db
from sierra.time_utils import to_utc_z, to_iso_date


class Purchase(db.Model):
    """
    Purchase invoice from the primary supplier.

    Posting a purchase increments stock and refreshes each product's
    cost price in the same transaction. Admin edits re-apply the stock
    difference as purchase_edit inventory transactions.

    payment_status is derived from amount_paid_cents vs total_amount_cents.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.Index("ix_purchases_supplier_date", "supplier_id", "purchase_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_number = db.Column(db.String(64), nullable=False, unique=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False)

    purchase_date = db.Column(db.Date, nullable=False)
    invoice_number = db.Column(db.String(64), nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    total_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)

    # unpaid, partial, paid
    payment_status = db.Column(db.String(16), nullable=False, default="unpaid", index=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    supplier = db.relationship("Supplier", backref=db.backref("purchases", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def balance_due_cents(self) -> int:
        return max(self.total_amount_cents - self.amount_paid_cents, 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_number": self.purchase_number,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "purchase_date": to_iso_date(self.purchase_date),
            "invoice_number": self.invoice_number,
            "subtotal_cents": self.subtotal_cents,
            "total_discount_cents": self.total_discount_cents,
            "total_amount_cents": self.total_amount_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "balance_due_cents": self.balance_due_cents,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PurchaseItem(db.Model):
    """Line on a purchase invoice."""
    __tablename__ = "purchase_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    mrp_cents = db.Column(db.Integer, nullable=True)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    purchase = db.relationship("Purchase", backref=db.backref("items", lazy=True, order_by="PurchaseItem.id"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "mrp_cents": self.mrp_cents,
            "discount_percent": str(self.discount_percent) if self.discount_percent is not None else "0",
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
