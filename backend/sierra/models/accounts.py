from __future__ import annotations

from ..extensions import db
from sierra.time_utils import to_utc_z


class Bank(db.Model):
    """Bank master list used by company accounts and supplier cheques."""
    __tablename__ = "banks"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    bank_code = db.Column(db.String(16), nullable=False, unique=True)
    bank_name = db.Column(db.String(128), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bank_code": self.bank_code,
            "bank_name": self.bank_name,
        }


class CompanyAccount(db.Model):
    """
    Company cash drawer or bank account.

    current_balance_cents is a running balance. Every change writes one
    AccountTransaction in the same DB transaction, so
    initial_balance_cents + sum(ledger amounts) always reproduces it.
    """
    __tablename__ = "company_accounts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    account_name = db.Column(db.String(128), nullable=False)
    # cash, bank
    account_type = db.Column(db.String(16), nullable=False, default="bank")
    bank_id = db.Column(db.Integer, db.ForeignKey("banks.id"), nullable=True)
    account_number = db.Column(db.String(64), nullable=True, unique=True)

    initial_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    current_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    bank = db.relationship("Bank", backref=db.backref("accounts", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_name": self.account_name,
            "account_type": self.account_type,
            "bank_id": self.bank_id,
            "bank_name": self.bank.bank_name if self.bank else None,
            "account_number": self.account_number,
            "initial_balance_cents": self.initial_balance_cents,
            "current_balance_cents": self.current_balance_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class AccountTransaction(db.Model):
    """
    Append-only ledger of company account balance changes.

    amount_cents is signed (+credit / -debit). balance_after_cents is the
    account balance immediately after this row was applied.
    """
    __tablename__ = "account_transactions"
    __table_args__ = (
        db.Index("ix_account_txns_account_created", "account_id", "created_at"),
        db.Index("ix_account_txns_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("company_accounts.id"), nullable=False, index=True)

    # deposit, transfer_in, transfer_out, customer_payment, cheque_cleared,
    # supplier_payment, supplier_payment_reversal, expense, expense_reversal
    transaction_type = db.Column(db.String(32), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)

    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    account = db.relationship("CompanyAccount", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "transaction_type": self.transaction_type,
            "amount_cents": self.amount_cents,
            "balance_after_cents": self.balance_after_cents,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
