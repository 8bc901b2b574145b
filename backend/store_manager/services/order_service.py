# Overview: Service-layer operations for orders after checkout.

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Order
from . import ledger_service
from .checkout_service import ORDER_CANCELLED, ORDER_COMPLETED, ORDER_PENDING, VALID_ORDER_STATUSES
from .concurrency import lock_for_update, run_with_retry
from .errors import ConflictError, OrderNotFound, ValidationError

logger = logging.getLogger(__name__)


# pending may move anywhere; completed may only be cancelled; cancelled is final
_ALLOWED_TRANSITIONS = {
    ORDER_PENDING: {ORDER_COMPLETED, ORDER_CANCELLED},
    ORDER_COMPLETED: {ORDER_CANCELLED},
    ORDER_CANCELLED: set(),
}


def get_order(store_id: int, order_id: int) -> Order:
    order = db.session.query(Order).filter_by(id=order_id, store_id=store_id).first()
    if not order:
        raise OrderNotFound(f"Order {order_id} not found", details={"order_id": order_id})
    return order


def list_orders(
    store_id: int,
    *,
    status: str | None = None,
    customer_id: int | None = None,
    search: str | None = None,
    limit: int = 100,
) -> list[Order]:
    query = db.session.query(Order).filter_by(store_id=store_id)
    if status:
        query = query.filter_by(status=status)
    if customer_id is not None:
        query = query.filter_by(customer_id=customer_id)
    if search:
        query = query.filter(Order.order_number.ilike(f"%{search.strip()}%"))
    limit = max(1, min(limit, 500))
    return query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()


def update_order(store_id: int, order_id: int, *, notes: str | None = None) -> Order:
    def _op() -> Order:
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id, store_id=store_id)).first()
        if not order:
            raise OrderNotFound(f"Order {order_id} not found", details={"order_id": order_id})
        order.notes = notes
        db.session.commit()
        return order

    return run_with_retry(_op)


def set_order_status(store_id: int, order_id: int, status: str, reason: str | None = None) -> Order:
    """
    Move an order through its lifecycle.

    Cancelling reverses every ledger entry the checkout wrote for the order
    before the status changes. Each reversal commits on its own; entries
    already reversed are skipped, so a cancel that failed midway can simply
    be retried.
    """
    if status not in VALID_ORDER_STATUSES:
        raise ValidationError(f"Invalid order status: {status}. Must be one of {VALID_ORDER_STATUSES}")

    order = get_order(store_id, order_id)
    if order.status == status:
        return order
    if status not in _ALLOWED_TRANSITIONS[order.status]:
        raise ConflictError(f"Cannot change order from {order.status} to {status}")

    if status == ORDER_CANCELLED:
        for entry in ledger_service.list_open_order_entries(store_id, order_id):
            ledger_service.reverse_entry(
                store_id,
                entry.id,
                reason=reason or f"order {order.order_number} cancelled",
            )

    def _op() -> Order:
        locked = lock_for_update(db.session.query(Order).filter_by(id=order_id, store_id=store_id)).first()
        if status not in _ALLOWED_TRANSITIONS[locked.status] and locked.status != status:
            raise ConflictError(f"Cannot change order from {locked.status} to {status}")
        locked.status = status
        db.session.commit()
        return locked

    order = run_with_retry(_op)
    logger.info("Order %s is now %s (store=%s)", order.order_number, status, store_id)
    return order
