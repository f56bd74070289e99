from __future__ import annotations

from ..extensions import db
from sierra.time_utils import to_utc_z, to_iso_date


class Order(db.Model):
    """
    Customer bill.

    Totals are computed server-side from the items at creation (and on
    partial returns). payment_status is derived: it is recomputed from the
    sum of non-returned payments whenever a payment is recorded or a
    cheque bounces.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_customer_date", "customer_id", "order_date"),
        db.Index("ix_orders_payment_status", "payment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(64), nullable=False, unique=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    order_date = db.Column(db.Date, nullable=False)

    # confirmed, processing, shipped, delivered, cancelled
    status = db.Column(db.String(16), nullable=False, default="confirmed", index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    # unpaid, partial, paid
    payment_status = db.Column(db.String(16), nullable=False, default="unpaid")
    payment_method = db.Column(db.String(32), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    # Client-supplied retry key; a replayed create returns the original order
    idempotency_key = db.Column(db.String(128), nullable=True, unique=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "order_date": to_iso_date(self.order_date),
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "discount_amount_cents": self.discount_amount_cents,
            "total_amount_cents": self.total_amount_cents,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderItem(db.Model):
    """
    Line on a bill.

    cost_price_cents is a snapshot of the product's cost at sale time so
    gross profit stays correct after later purchases change the cost.
    """
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("items", lazy=True, order_by="OrderItem.id"))
    product = db.relationship("Product")

    @property
    def profit_cents(self) -> int:
        return (self.unit_price_cents - self.cost_price_cents) * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "cost_price_cents": self.cost_price_cents,
            "discount_percent": str(self.discount_percent) if self.discount_percent is not None else "0",
            "line_total_cents": self.line_total_cents,
        }
