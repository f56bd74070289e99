from __future__ import annotations

from ..extensions import db


class DocumentSequence(db.Model):
    """
    Counter for human-readable document numbers (BILL-0001, PAY-0001, ...).

    One row per document_type. Incremented inside the caller's transaction,
    so a rolled-back document does not consume a number.
    """
    __tablename__ = "document_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
