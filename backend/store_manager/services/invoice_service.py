# Overview: Service-layer operations for invoices; paid amounts are derived from the ledger.

"""
Invoice Service

paid_amount_cents is never accepted from clients. It is the sum of ledger
entries referencing the invoice and is refreshed by ledger_service in the
same transaction as each entry. An initial paid amount at creation is
recorded as a real ledger payment.
"""

from __future__ import annotations

import logging
from datetime import date

from ..extensions import db
from ..models import Customer, Invoice
from . import ledger_service, notification_service
from .concurrency import lock_for_update, run_with_retry
from .document_service import INVOICE_PREFIX, next_document_number
from .errors import ConflictError, CustomerNotFound, InvoiceNotFound, ValidationError

logger = logging.getLogger(__name__)


def get_invoice(store_id: int, invoice_id: int) -> Invoice:
    invoice = db.session.query(Invoice).filter_by(id=invoice_id, store_id=store_id).first()
    if not invoice:
        raise InvoiceNotFound(f"Invoice {invoice_id} not found", details={"invoice_id": invoice_id})
    return invoice


def list_invoices(
    store_id: int,
    *,
    status: str | None = None,
    customer_id: int | None = None,
    unpaid_only: bool = False,
    limit: int = 100,
) -> list[Invoice]:
    query = db.session.query(Invoice).filter_by(store_id=store_id)
    if status:
        query = query.filter_by(status=status)
    if unpaid_only:
        query = query.filter(Invoice.status != ledger_service.INVOICE_PAID)
    if customer_id is not None:
        query = query.filter_by(customer_id=customer_id)
    limit = max(1, min(limit, 500))
    return query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).limit(limit).all()


def create_invoice(
    store_id: int,
    *,
    total_amount_cents,
    customer_id: int | None = None,
    invoice_number: str | None = None,
    due_date: date | None = None,
    notes: str | None = None,
    paid_amount_cents=0,
    payment_method: str = ledger_service.METHOD_CASH,
) -> Invoice:
    """
    Create an invoice, optionally with an amount already paid.

    The initial payment is posted through the ledger inside the same
    transaction as the invoice, so either both exist or neither does.
    """
    total_amount_cents = ledger_service.validate_amount_cents(
        total_amount_cents, field_name="total_amount_cents", allow_zero=True
    )
    paid_amount_cents = ledger_service.validate_amount_cents(
        paid_amount_cents, field_name="paid_amount_cents", allow_zero=True
    )
    if paid_amount_cents:
        payment_method = ledger_service.validate_method(payment_method, ledger_service.USER_PAYMENT_METHODS)
    if invoice_number is not None:
        invoice_number = invoice_number.strip()
        if not invoice_number:
            raise ValidationError("invoice_number cannot be blank")

    def _op() -> Invoice:
        if customer_id is not None:
            exists = db.session.query(Customer.id).filter_by(id=customer_id, store_id=store_id).first()
            if not exists:
                raise CustomerNotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})

        number = invoice_number or next_document_number(
            store_id=store_id, document_type="INVOICE", prefix=INVOICE_PREFIX
        )
        duplicate = db.session.query(Invoice.id).filter_by(store_id=store_id, invoice_number=number).first()
        if duplicate:
            raise ConflictError(f"Invoice number {number} already exists")

        invoice = Invoice(
            store_id=store_id,
            customer_id=customer_id,
            invoice_number=number,
            total_amount_cents=total_amount_cents,
            paid_amount_cents=0,
            status=ledger_service.INVOICE_PENDING,
            due_date=due_date,
            notes=notes,
        )
        db.session.add(invoice)
        db.session.flush()

        if paid_amount_cents:
            ledger_service.post_invoice_payment(
                store_id,
                invoice,
                paid_amount_cents,
                payment_method,
                notes=f"Initial payment for invoice {number}",
            )
        else:
            ledger_service.refresh_invoice_paid_amount(invoice)

        db.session.commit()
        return invoice

    invoice = run_with_retry(_op)
    logger.info("Created invoice %s (store=%s)", invoice.invoice_number, store_id)
    notification_service.notify(
        store_id, notification_service.invoice_created(invoice.invoice_number, invoice.total_amount_cents)
    )
    if paid_amount_cents:
        notification_service.notify(
            store_id,
            notification_service.payment_received(
                paid_amount_cents, invoice.customer.name if invoice.customer else None
            ),
        )
    return invoice


def update_invoice(
    store_id: int,
    invoice_id: int,
    *,
    total_amount_cents=None,
    due_date: date | None = None,
    notes: str | None = None,
    clear_due_date: bool = False,
) -> Invoice:
    """Edit invoice terms. Status is re-derived when the total changes."""
    if total_amount_cents is not None:
        total_amount_cents = ledger_service.validate_amount_cents(
            total_amount_cents, field_name="total_amount_cents", allow_zero=True
        )

    def _op() -> Invoice:
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id, store_id=store_id)).first()
        if not invoice:
            raise InvoiceNotFound(f"Invoice {invoice_id} not found", details={"invoice_id": invoice_id})
        if invoice.status == ledger_service.INVOICE_CANCELLED:
            raise ConflictError("Cancelled invoices cannot be edited")

        if total_amount_cents is not None:
            invoice.total_amount_cents = total_amount_cents
        if due_date is not None:
            invoice.due_date = due_date
        elif clear_due_date:
            invoice.due_date = None
        if notes is not None:
            invoice.notes = notes

        ledger_service.refresh_invoice_paid_amount(invoice)
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def cancel_invoice(store_id: int, invoice_id: int) -> Invoice:
    """
    Cancel an invoice. Payments already recorded against it stay in the
    ledger; reverse them explicitly if the money was returned.
    """
    def _op() -> Invoice:
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id, store_id=store_id)).first()
        if not invoice:
            raise InvoiceNotFound(f"Invoice {invoice_id} not found", details={"invoice_id": invoice_id})
        invoice.status = ledger_service.INVOICE_CANCELLED
        db.session.commit()
        return invoice

    return run_with_retry(_op)
