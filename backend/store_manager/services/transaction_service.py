# Overview: Manual entries and queries over the transaction activity log.

"""
Transactions are an audit/activity log. Every ledger entry writes one
(deposit for positive amounts, withdrawal for negative ones). Manual
transactions recorded here never touch customer balances.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Customer, Transaction
from . import notification_service
from .concurrency import run_with_retry
from .errors import CustomerNotFound, NotFoundError, ValidationError
from .ledger_service import VALID_TRANSACTION_TYPES, validate_amount_cents

logger = logging.getLogger(__name__)


def create_transaction(
    store_id: int,
    *,
    type: str,
    amount_cents,
    description: str | None = None,
    customer_id: int | None = None,
) -> Transaction:
    txn_type = (type or "").strip().lower()
    if txn_type not in VALID_TRANSACTION_TYPES:
        raise ValidationError(f"Invalid transaction type: {type!r}. Must be one of {VALID_TRANSACTION_TYPES}")
    amount_cents = validate_amount_cents(amount_cents)

    def _op() -> Transaction:
        if customer_id is not None:
            exists = db.session.query(Customer.id).filter_by(id=customer_id, store_id=store_id).first()
            if not exists:
                raise CustomerNotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})
        txn = Transaction(
            store_id=store_id,
            customer_id=customer_id,
            type=txn_type,
            amount_cents=amount_cents,
            description=description,
        )
        db.session.add(txn)
        db.session.commit()
        return txn

    txn = run_with_retry(_op)
    logger.info("Recorded %s transaction %s (store=%s)", txn_type, txn.id, store_id)
    notification_service.notify(store_id, notification_service.transaction_created(txn_type, amount_cents))
    return txn


def get_transaction(store_id: int, transaction_id: int) -> Transaction:
    txn = db.session.query(Transaction).filter_by(id=transaction_id, store_id=store_id).first()
    if not txn:
        raise NotFoundError(f"Transaction {transaction_id} not found", details={"transaction_id": transaction_id})
    return txn


def list_transactions(
    store_id: int,
    *,
    type: str | None = None,
    customer_id: int | None = None,
    limit: int = 100,
) -> list[Transaction]:
    query = db.session.query(Transaction).filter_by(store_id=store_id)
    if type:
        query = query.filter_by(type=type)
    if customer_id is not None:
        query = query.filter_by(customer_id=customer_id)
    limit = max(1, min(limit, 500))
    return query.order_by(Transaction.created_at.desc(), Transaction.id.desc()).limit(limit).all()
