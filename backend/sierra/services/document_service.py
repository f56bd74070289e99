# Overview: Service-layer operations for document numbering.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence


# document_type -> (prefix, zero padding)
DOCUMENT_FORMATS = {
    "order": ("BILL", 4),
    "payment": ("PAY", 4),
    "purchase": ("PO", 3),
    "supplier_payment": ("SPY", 4),
    "expense": ("EXP", 4),
}


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_document_number(document_type: str) -> str:
    """
    Allocate the next document number for a type (e.g. "BILL-0007").

    Runs inside the caller's transaction: the UPDATE takes a row lock on
    the sequence, so concurrent writers serialize here and a rollback of
    the caller also releases the number.
    """
    if document_type not in DOCUMENT_FORMATS:
        raise DocumentSequenceError(f"Unknown document type: {document_type}")
    prefix, pad = DOCUMENT_FORMATS[document_type]

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        db.session.add(DocumentSequence(document_type=document_type, next_number=2))
        db.session.flush()
        next_num = 1

    return f"{prefix}-{next_num:0{pad}d}"
