from __future__ import annotations

from ..extensions import db
from sierra.time_utils import to_utc_z, to_iso_date


class Expense(db.Model):
    """
    Operating expense.

    When account_id is set the company account is debited at creation and
    the debit is reversed if the expense is deleted.
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_date_category", "expense_date", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    expense_number = db.Column(db.String(64), nullable=False, unique=True)
    expense_date = db.Column(db.Date, nullable=False)

    category = db.Column(db.String(64), nullable=False)
    description = db.Column(db.String(255), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(32), nullable=False, default="cash")
    account_id = db.Column(db.Integer, db.ForeignKey("company_accounts.id"), nullable=True)

    vendor_name = db.Column(db.String(200), nullable=True)
    reference_number = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    account = db.relationship("CompanyAccount")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "expense_number": self.expense_number,
            "expense_date": to_iso_date(self.expense_date),
            "category": self.category,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "account_id": self.account_id,
            "account_name": self.account.account_name if self.account else None,
            "vendor_name": self.vendor_name,
            "reference_number": self.reference_number,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
