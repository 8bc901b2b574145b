# Overview: Per-store document number allocation for orders and invoices.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence

ORDER_PREFIX = "ORD"
INVOICE_PREFIX = "INV"


def next_document_number(
    *,
    store_id: int,
    document_type: str,
    prefix: str,
    pad: int = 6,
) -> str:
    """
    Allocate the next document number for a store/type inside the caller's
    transaction.

    The UPDATE takes the row lock on (store_id, document_type), so two
    concurrent checkouts can never read the same number. The first
    allocation for a type inserts the sequence row under a savepoint; losing
    that insert race falls back to the UPDATE path.
    """
    if not store_id:
        raise ValueError("store_id is required")
    if not document_type:
        raise ValueError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.store_id == store_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _current_next_number(store_id, document_type) - 1
    else:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(store_id=store_id, document_type=document_type, next_number=2))
            next_num = 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = _current_next_number(store_id, document_type) - 1

    return f"{prefix}-{next_num:0{pad}d}"


def _current_next_number(store_id: int, document_type: str) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(store_id=store_id, document_type=document_type)
        .scalar()
    )
