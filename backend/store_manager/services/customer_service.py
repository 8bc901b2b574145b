# Overview: Service-layer operations for customers; contact data only, balances belong to the ledger.

from __future__ import annotations

import logging

from sqlalchemy import or_

from ..extensions import db
from ..models import Customer, Invoice, Order, Payment, Transaction
from . import notification_service
from .concurrency import lock_for_update, run_with_retry
from .errors import ConflictError, CustomerNotFound, ValidationError

logger = logging.getLogger(__name__)

# balance_cents is deliberately absent: only ledger_service writes it
CUSTOMER_MUTABLE_FIELDS = {"name", "email", "phone", "address"}


def _clean_patch(patch: dict) -> dict:
    if "balance_cents" in patch or "balance" in patch:
        raise ValidationError("Customer balance is derived from the ledger and cannot be set directly")

    cleaned = {}
    for key, value in patch.items():
        if key not in CUSTOMER_MUTABLE_FIELDS:
            continue
        if isinstance(value, str):
            value = value.strip() or None
        cleaned[key] = value

    if "name" in cleaned and not cleaned["name"]:
        raise ValidationError("Customer name is required")
    if cleaned.get("email") and "@" not in cleaned["email"]:
        raise ValidationError("Invalid email address")
    return cleaned


def get_customer(store_id: int, customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id, store_id=store_id).first()
    if not customer:
        raise CustomerNotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return customer


def list_customers(store_id: int, search: str | None = None, *, with_debt_only: bool = False) -> list[Customer]:
    """Customers of a store, optionally filtered by name/phone/email substring."""
    query = db.session.query(Customer).filter_by(store_id=store_id)
    if search and search.strip():
        term = f"%{search.strip()}%"
        query = query.filter(or_(
            Customer.name.ilike(term),
            Customer.phone.ilike(term),
            Customer.email.ilike(term),
        ))
    if with_debt_only:
        query = query.filter(Customer.balance_cents < 0)
    return query.order_by(Customer.name.asc(), Customer.id.asc()).all()


def create_customer(store_id: int, patch: dict) -> Customer:
    cleaned = _clean_patch(patch)
    if not cleaned.get("name"):
        raise ValidationError("Customer name is required")

    def _op() -> Customer:
        customer = Customer(store_id=store_id, balance_cents=0, **cleaned)
        db.session.add(customer)
        db.session.commit()
        return customer

    customer = run_with_retry(_op)
    logger.info("Created customer %s (store=%s)", customer.id, store_id)
    notification_service.notify(store_id, notification_service.customer_added(customer.name))
    return customer


def update_customer(store_id: int, customer_id: int, patch: dict) -> Customer:
    cleaned = _clean_patch(patch)

    def _op() -> Customer:
        customer = lock_for_update(
            db.session.query(Customer).filter_by(id=customer_id, store_id=store_id)
        ).first()
        if not customer:
            raise CustomerNotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})
        for key, value in cleaned.items():
            setattr(customer, key, value)
        db.session.commit()
        return customer

    return run_with_retry(_op)


def delete_customer(store_id: int, customer_id: int) -> None:
    """
    Delete a customer with no history.

    Customers referenced by payments, transactions, orders or invoices are
    refused with ConflictError; the ledger is append-only.
    """
    def _op() -> None:
        customer = lock_for_update(
            db.session.query(Customer).filter_by(id=customer_id, store_id=store_id)
        ).first()
        if not customer:
            raise CustomerNotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})

        for model, label in ((Payment, "ledger entries"), (Transaction, "transactions"),
                             (Order, "orders"), (Invoice, "invoices")):
            if db.session.query(model.id).filter_by(customer_id=customer_id).first():
                raise ConflictError(
                    f"Customer {customer.name} has {label} and cannot be deleted",
                    details={"customer_id": customer_id},
                )

        db.session.delete(customer)
        db.session.commit()

    run_with_retry(_op)
    logger.info("Deleted customer %s (store=%s)", customer_id, store_id)
