# Overview: Best-effort notification feed writer and reader.

"""
Notification Emitter

notify() is called after a service has committed its critical path. It
never raises: a failed insert is rolled back and logged, and the caller's
result stands.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Notification

logger = logging.getLogger(__name__)


SEVERITY_SUCCESS = "success"
SEVERITY_WARNING = "warning"
SEVERITY_ERROR = "error"
SEVERITY_INFO = "info"

VALID_SEVERITIES = {SEVERITY_SUCCESS, SEVERITY_WARNING, SEVERITY_ERROR, SEVERITY_INFO}


@dataclass(frozen=True)
class NotificationEvent:
    title: str
    message: str
    severity: str = SEVERITY_INFO


def format_cents(amount_cents: int) -> str:
    sign = "-" if amount_cents < 0 else ""
    whole, frac = divmod(abs(amount_cents), 100)
    return f"{sign}{whole:,}.{frac:02d}"


# =============================================================================
# TEMPLATES
# =============================================================================

def customer_added(customer_name: str) -> NotificationEvent:
    return NotificationEvent("New customer", f"Customer {customer_name} was added", SEVERITY_SUCCESS)


def product_added(product_name: str) -> NotificationEvent:
    return NotificationEvent("New product", f"Product {product_name} was added to inventory", SEVERITY_SUCCESS)


def order_created(order_number: str, amount_cents: int, customer_name: str | None = None) -> NotificationEvent:
    message = f"Order {order_number} created for {format_cents(amount_cents)}"
    if customer_name:
        message += f" for customer {customer_name}"
    return NotificationEvent("New order", message, SEVERITY_SUCCESS)


def invoice_created(invoice_number: str, amount_cents: int) -> NotificationEvent:
    return NotificationEvent(
        "New invoice",
        f"Invoice {invoice_number} created for {format_cents(amount_cents)}",
        SEVERITY_SUCCESS,
    )


def payment_received(amount_cents: int, customer_name: str | None = None) -> NotificationEvent:
    message = f"Payment of {format_cents(amount_cents)} received"
    if customer_name:
        message += f" from {customer_name}"
    return NotificationEvent("Payment received", message, SEVERITY_SUCCESS)


def debt_added(amount_cents: int, customer_name: str) -> NotificationEvent:
    return NotificationEvent(
        "New debt",
        f"Debt of {format_cents(amount_cents)} added for customer {customer_name}",
        SEVERITY_WARNING,
    )


def entry_reversed(payment_id: int, amount_cents: int, customer_name: str | None = None) -> NotificationEvent:
    message = f"Ledger entry #{payment_id} reversed ({format_cents(amount_cents)})"
    if customer_name:
        message += f" for {customer_name}"
    return NotificationEvent("Entry reversed", message, SEVERITY_INFO)


def entry_adjusted(
    payment_id: int, old_amount_cents: int, new_amount_cents: int, customer_name: str | None = None
) -> NotificationEvent:
    message = (
        f"Ledger entry #{payment_id} corrected from {format_cents(old_amount_cents)} "
        f"to {format_cents(new_amount_cents)}"
    )
    if customer_name:
        message += f" for {customer_name}"
    return NotificationEvent("Entry adjusted", message, SEVERITY_INFO)


def low_stock(product_name: str, quantity: int) -> NotificationEvent:
    return NotificationEvent(
        "Low stock warning",
        f"Product {product_name} is running low ({quantity} left)",
        SEVERITY_WARNING,
    )


def transaction_created(transaction_type: str, amount_cents: int) -> NotificationEvent:
    return NotificationEvent(
        "New transaction",
        f"{transaction_type} transaction of {format_cents(amount_cents)} recorded",
        SEVERITY_INFO,
    )


def checkout_failed(order_number: str, reason: str) -> NotificationEvent:
    return NotificationEvent(
        "Checkout needs reconciliation",
        f"Order {order_number} did not complete: {reason}",
        SEVERITY_ERROR,
    )


# =============================================================================
# EMITTER
# =============================================================================

def notify(store_id: int, event: NotificationEvent) -> Notification | None:
    """
    Store a notification for the store. Never raises.

    Must only be called once the caller's own work is committed, since a
    failure here rolls back the session.
    """
    try:
        severity = event.severity if event.severity in VALID_SEVERITIES else SEVERITY_INFO
        notification = Notification(
            store_id=store_id,
            title=event.title,
            message=event.message,
            type=severity,
            is_read=False,
        )
        db.session.add(notification)
        db.session.commit()
        return notification
    except Exception:
        db.session.rollback()
        logger.exception("Failed to store notification %r for store %s", event.title, store_id)
        return None


# =============================================================================
# FEED
# =============================================================================

def get_notifications(store_id: int, limit: int | None = None, unread_only: bool = False) -> list[Notification]:
    if limit is None:
        limit = current_app.config.get("NOTIFICATION_FEED_LIMIT", 50)
    query = db.session.query(Notification).filter_by(store_id=store_id)
    if unread_only:
        query = query.filter_by(is_read=False)
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def get_unread_count(store_id: int) -> int:
    return db.session.query(Notification).filter_by(store_id=store_id, is_read=False).count()


def mark_as_read(store_id: int, notification_id: int) -> Notification | None:
    notification = (
        db.session.query(Notification)
        .filter_by(id=notification_id, store_id=store_id)
        .first()
    )
    if not notification:
        return None
    notification.is_read = True
    db.session.commit()
    return notification


def mark_all_as_read(store_id: int) -> int:
    result = db.session.execute(
        update(Notification)
        .where(Notification.store_id == store_id, Notification.is_read.is_(False))
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount
