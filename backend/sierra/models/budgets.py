from __future__ import annotations

from ..extensions import db
from sierra.time_utils import to_utc_z


class Budget(db.Model):
    """
    Monthly target for sales, expenses or purchases.

    budget_period is "YYYY-MM". Expense budgets are per category; sales and
    purchase budgets have no category. One budget per (period, type,
    category); the service enforces this for the NULL-category rows too.
    """
    __tablename__ = "budgets"
    __table_args__ = (
        db.UniqueConstraint("budget_period", "budget_type", "category", name="uq_budgets_period_type_category"),
        db.Index("ix_budgets_period", "budget_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    budget_period = db.Column(db.String(7), nullable=False)
    budget_type = db.Column(db.String(16), nullable=False)
    category = db.Column(db.String(64), nullable=True)

    budgeted_amount_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "budget_period": self.budget_period,
            "budget_type": self.budget_type,
            "category": self.category,
            "budgeted_amount_cents": self.budgeted_amount_cents,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
