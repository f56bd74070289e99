from __future__ import annotations

from ..extensions import db
from sierra.time_utils import to_utc_z, to_iso_date


class Payment(db.Model):
    """
    Customer payment (receipt).

    LIFECYCLE (cheques only):
    1. pending: received, not yet banked; no account balance moves
    2. deposited: handed to the bank (optional step)
    3. passed: cleared; the target company account is credited
    4. returned: bounced; the amount is added back to the customer's
       outstanding balance and the order's payment_status is re-derived

    passed and returned are terminal. Cash and bank transfers have no
    cheque_status and credit deposit_account_id when recorded.

    order_id NULL means a standalone payment held as customer credit.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_order", "order_id"),
        db.Index("ix_payments_customer_date", "customer_id", "payment_date"),
        db.Index("ix_payments_cheque_status", "cheque_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    payment_number = db.Column(db.String(64), nullable=False, unique=True)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)

    payment_date = db.Column(db.Date, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    # cash, bank_transfer, cheque
    payment_method = db.Column(db.String(32), nullable=False)

    # Account credited when the money lands (cash drawer or bank account)
    deposit_account_id = db.Column(db.Integer, db.ForeignKey("company_accounts.id"), nullable=True)
    # Company bank account a cheque will be banked into
    bank_account_id = db.Column(db.Integer, db.ForeignKey("company_accounts.id"), nullable=True)

    cheque_number = db.Column(db.String(64), nullable=True)
    cheque_date = db.Column(db.Date, nullable=True)
    cheque_status = db.Column(db.String(16), nullable=True)

    reference_number = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    idempotency_key = db.Column(db.String(128), nullable=True, unique=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    order = db.relationship("Order", backref=db.backref("payments", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("payments", lazy=True))

    @property
    def is_returned(self) -> bool:
        return self.cheque_status == "returned"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payment_number": self.payment_number,
            "order_id": self.order_id,
            "order_number": self.order.order_number if self.order else None,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "payment_date": to_iso_date(self.payment_date),
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "deposit_account_id": self.deposit_account_id,
            "bank_account_id": self.bank_account_id,
            "cheque_number": self.cheque_number,
            "cheque_date": to_iso_date(self.cheque_date),
            "cheque_status": self.cheque_status,
            "reference_number": self.reference_number,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class SupplierPayment(db.Model):
    """
    Payment made to a supplier from a company account.

    Non-cheque payments debit the account when recorded. Cheques start
    pending and debit the account only when they pass. Overdrafts are
    allowed on this path.
    """
    __tablename__ = "supplier_payments"
    __table_args__ = (
        db.Index("ix_supplier_payments_supplier_date", "supplier_id", "payment_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    payment_number = db.Column(db.String(64), nullable=False, unique=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=True, index=True)
    company_account_id = db.Column(db.Integer, db.ForeignKey("company_accounts.id"), nullable=False)

    payment_date = db.Column(db.Date, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    # cash, bank_transfer, cheque
    payment_method = db.Column(db.String(32), nullable=False)
    bank_id = db.Column(db.Integer, db.ForeignKey("banks.id"), nullable=True)
    reference_number = db.Column(db.String(128), nullable=True)

    cheque_number = db.Column(db.String(64), nullable=True)
    cheque_date = db.Column(db.Date, nullable=True)
    # pending, passed, returned (cheques only)
    cheque_status = db.Column(db.String(16), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    supplier = db.relationship("Supplier", backref=db.backref("payments", lazy=True))
    purchase = db.relationship("Purchase", backref=db.backref("supplier_payments", lazy=True))
    company_account = db.relationship("CompanyAccount")

    @property
    def has_debited_account(self) -> bool:
        if self.payment_method != "cheque":
            return True
        return self.cheque_status == "passed"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payment_number": self.payment_number,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "purchase_id": self.purchase_id,
            "purchase_number": self.purchase.purchase_number if self.purchase else None,
            "company_account_id": self.company_account_id,
            "account_name": self.company_account.account_name if self.company_account else None,
            "payment_date": to_iso_date(self.payment_date),
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "bank_id": self.bank_id,
            "reference_number": self.reference_number,
            "cheque_number": self.cheque_number,
            "cheque_date": to_iso_date(self.cheque_date),
            "cheque_status": self.cheque_status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
