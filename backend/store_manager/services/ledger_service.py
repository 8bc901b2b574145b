# Overview: Service-layer operations for the customer ledger; the only writer of balances and payments.

"""
Customer Ledger Service

LEDGER INVARIANTS (authoritative):
- customers.balance_cents == SUM(payments.amount_cents) for that customer at
  every commit. Payment rows are the source of truth; the balance is a cache.
- Positive entries are money received / credit, negative entries are debt.
  recorded payments raise the balance, recorded debts lower it.
- Payment rows are append-only. Corrections append a reversal (negated
  amount, reverses_payment_id) and optionally an adjustment entry.
- invoices.paid_amount_cents == SUM(payments.amount_cents) referencing it.

WRITE ORDER per event, inside one DB transaction:
    1. append Payment row
    2. lock customer, write balance = recomputed SUM (never read-modify-write)
    3. append Transaction (deposit for credit, withdrawal for debt)
then, after commit:
    4. notification (best effort, never rolls back 1-3)

CONCURRENCY: the customer row is taken with SELECT ... FOR UPDATE and
carries a version_id column. A lock timeout or version conflict rolls the
whole transaction back (so a payment row is never left without its balance
update) and run_with_retry re-runs it; the retried balance is again derived
from history. Exhausted retries surface PersistenceFailure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.orm import aliased

from ..extensions import db
from ..models import Customer, Invoice, Payment, Transaction
from . import notification_service
from .concurrency import lock_for_update, run_with_retry
from .errors import (
    ConflictError,
    CustomerNotFound,
    EntryAlreadyReversed,
    InvalidAmount,
    InvoiceNotFound,
    PaymentNotFound,
    ValidationError,
)

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

METHOD_CASH = "cash"
METHOD_CARD = "card"
METHOD_BANK_TRANSFER = "bank_transfer"
METHOD_CHECK = "check"
METHOD_DIGITAL_WALLET = "digital_wallet"
METHOD_OTHER = "other"

# Written by the ledger itself, not chosen by the user
METHOD_ORDER_PAYMENT = "order_payment"
METHOD_ORDER_DEBT = "order_debt"
METHOD_DEBT = "debt"

USER_PAYMENT_METHODS = [
    METHOD_CASH,
    METHOD_CARD,
    METHOD_BANK_TRANSFER,
    METHOD_CHECK,
    METHOD_DIGITAL_WALLET,
    METHOD_OTHER,
]
PAYMENT_METHODS = USER_PAYMENT_METHODS + [METHOD_ORDER_PAYMENT]
DEBT_METHODS = [METHOD_DEBT, METHOD_ORDER_DEBT]

ENTRY_ORIGINAL = "original"
ENTRY_REVERSAL = "reversal"
ENTRY_ADJUSTMENT = "adjustment"

TXN_SALE = "sale"
TXN_PURCHASE = "purchase"
TXN_DEPOSIT = "deposit"
TXN_WITHDRAWAL = "withdrawal"
TXN_REFUND = "refund"
TXN_EXPENSE = "expense"

VALID_TRANSACTION_TYPES = [TXN_SALE, TXN_PURCHASE, TXN_DEPOSIT, TXN_WITHDRAWAL, TXN_REFUND, TXN_EXPENSE]

INVOICE_PENDING = "pending"
INVOICE_PAID = "paid"
INVOICE_CANCELLED = "cancelled"


@dataclass
class LedgerResult:
    """Outcome of one committed ledger mutation."""
    payment: Payment
    transaction: Transaction
    customer_id: int | None
    balance_cents: int | None
    invoice_id: int | None = None
    related: list[Payment] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "payment": self.payment.to_dict(),
            "transaction": self.transaction.to_dict(),
            "customer_id": self.customer_id,
            "balance_cents": self.balance_cents,
            "invoice_id": self.invoice_id,
            "related": [p.to_dict() for p in self.related],
        }


# =============================================================================
# VALIDATION
# =============================================================================

def validate_amount_cents(value, *, field_name: str = "amount_cents", allow_zero: bool = False) -> int:
    """
    Coerce a positive whole number of cents.

    Accepts ints and plain digit strings; rejects bools, floats, decimals,
    scientific notation and non-positive values with InvalidAmount.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidAmount(f"{field_name} must be a whole number of cents")

    if isinstance(value, str):
        stripped = value.strip()
        digits = stripped[1:] if stripped.startswith("-") else stripped
        # isdigit() alone admits superscripts and other non-ASCII digits int() rejects
        if not digits.isascii() or not digits.isdigit():
            raise InvalidAmount(f"{field_name} must be a whole number of cents")
        value = int(stripped)

    if not isinstance(value, int):
        raise InvalidAmount(f"{field_name} must be a whole number of cents")

    if value < 0 or (value == 0 and not allow_zero):
        raise InvalidAmount(f"{field_name} must be positive", details={field_name: value})

    return value


def validate_method(method: str, allowed: list[str]) -> str:
    if method is not None and not isinstance(method, str):
        raise ValidationError("payment_method must be a string", details={"payment_method": method})
    method = (method or "").strip().lower()
    if method not in allowed:
        raise ValidationError(f"Invalid payment method: {method!r}. Must be one of {allowed}")
    return method


# =============================================================================
# READ SIDE
# =============================================================================

def _sum_customer_payments(customer_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(Payment.customer_id == customer_id)
        .scalar()
    )
    return int(total or 0)


def _get_customer(store_id: int, customer_id: int, *, lock: bool = False) -> Customer:
    query = db.session.query(Customer).filter_by(id=customer_id, store_id=store_id)
    if lock:
        query = lock_for_update(query)
    customer = query.first()
    if not customer:
        raise CustomerNotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return customer


def recompute_balance(store_id: int, customer_id: int) -> int:
    """
    Re-derive a customer's balance from payment history.

    Read-only; see repair_balance to persist the result.
    """
    _get_customer(store_id, customer_id)
    return _sum_customer_payments(customer_id)


def get_payment(store_id: int, payment_id: int) -> Payment:
    payment = db.session.query(Payment).filter_by(id=payment_id, store_id=store_id).first()
    if not payment:
        raise PaymentNotFound(f"Payment {payment_id} not found", details={"payment_id": payment_id})
    return payment


def get_reversal_of(payment_id: int) -> Payment | None:
    return db.session.query(Payment).filter_by(reverses_payment_id=payment_id).first()


def get_payment_history(store_id: int, payment_id: int) -> dict:
    """Payment with the reversal and adjustments that reference it."""
    payment = get_payment(store_id, payment_id)
    reversal = get_reversal_of(payment.id)
    adjustments = (
        db.session.query(Payment)
        .filter_by(adjusts_payment_id=payment.id)
        .order_by(Payment.id)
        .all()
    )
    return {
        "payment": payment.to_dict(),
        "reversal": reversal.to_dict() if reversal else None,
        "adjustments": [a.to_dict() for a in adjustments],
        "is_reversed": reversal is not None,
    }


def list_payments(
    store_id: int,
    *,
    customer_id: int | None = None,
    invoice_id: int | None = None,
    payment_method: str | None = None,
    entry_type: str | None = None,
    limit: int = 100,
) -> list[Payment]:
    query = db.session.query(Payment).filter_by(store_id=store_id)
    if customer_id is not None:
        query = query.filter_by(customer_id=customer_id)
    if invoice_id is not None:
        query = query.filter_by(invoice_id=invoice_id)
    if payment_method:
        query = query.filter_by(payment_method=payment_method)
    if entry_type:
        query = query.filter_by(entry_type=entry_type)
    limit = max(1, min(limit, 500))
    return query.order_by(Payment.created_at.desc(), Payment.id.desc()).limit(limit).all()


def list_open_order_entries(store_id: int, order_id: int) -> list[Payment]:
    """Original entries written for an order that have not been reversed yet."""
    reversal = aliased(Payment)
    reversed_ids = (
        select(reversal.reverses_payment_id)
        .where(reversal.reverses_payment_id.isnot(None))
        .correlate(None)
    )
    return (
        db.session.query(Payment)
        .filter(
            Payment.store_id == store_id,
            Payment.order_id == order_id,
            Payment.entry_type != ENTRY_REVERSAL,
            Payment.id.notin_(reversed_ids),
        )
        .order_by(Payment.id)
        .all()
    )


def customer_statement(store_id: int, customer_id: int) -> dict:
    """
    Customer with full ledger history, newest first.

    in_sync is False when the cached balance has drifted from history.
    """
    customer = _get_customer(store_id, customer_id)
    entries = (
        db.session.query(Payment)
        .filter_by(store_id=store_id, customer_id=customer_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .all()
    )
    recomputed = sum(p.amount_cents for p in entries)
    return {
        "customer": customer.to_dict(),
        "entries": [p.to_dict() for p in entries],
        "balance_cents": customer.balance_cents,
        "recomputed_balance_cents": recomputed,
        "in_sync": recomputed == customer.balance_cents,
        "total_paid_cents": sum(p.amount_cents for p in entries if p.amount_cents > 0),
        "total_debt_cents": -sum(p.amount_cents for p in entries if p.amount_cents < 0),
    }


# =============================================================================
# INVOICE DERIVATION
# =============================================================================

def refresh_invoice_paid_amount(invoice: Invoice) -> Invoice:
    """
    Re-derive paid_amount_cents and status from payments referencing the
    invoice. Flushes but does not commit.
    """
    db.session.flush()
    paid = (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(Payment.invoice_id == invoice.id)
        .scalar()
    )
    invoice.paid_amount_cents = int(paid or 0)
    if invoice.status != INVOICE_CANCELLED:
        invoice.status = INVOICE_PAID if invoice.paid_amount_cents >= invoice.total_amount_cents else INVOICE_PENDING
    return invoice


# =============================================================================
# CORE POSTING
# =============================================================================

def _post_entry(
    *,
    store_id: int,
    amount_cents: int,
    payment_method: str,
    customer_id: int | None,
    invoice_id: int | None = None,
    order_id: int | None = None,
    notes: str | None = None,
    description: str | None = None,
    entry_type: str = ENTRY_ORIGINAL,
    reverses_payment_id: int | None = None,
    adjusts_payment_id: int | None = None,
) -> LedgerResult:
    """
    Append one signed entry in the current transaction. Does not commit.

    Lookups (and therefore CustomerNotFound/InvoiceNotFound) happen before
    anything is added to the session.
    """
    if amount_cents == 0:
        raise InvalidAmount("Ledger entries cannot be zero")

    customer = _get_customer(store_id, customer_id, lock=True) if customer_id is not None else None

    invoice = None
    if invoice_id is not None:
        invoice = lock_for_update(
            db.session.query(Invoice).filter_by(id=invoice_id, store_id=store_id)
        ).first()
        if not invoice:
            raise InvoiceNotFound(f"Invoice {invoice_id} not found", details={"invoice_id": invoice_id})
        if invoice.status == INVOICE_CANCELLED and entry_type != ENTRY_REVERSAL:
            raise ConflictError(f"Invoice {invoice.invoice_number} is cancelled")
        if customer and invoice.customer_id and invoice.customer_id != customer.id:
            raise ValidationError("Invoice belongs to a different customer")

    # 1. Payment row
    payment = Payment(
        store_id=store_id,
        customer_id=customer.id if customer else None,
        invoice_id=invoice.id if invoice else None,
        order_id=order_id,
        amount_cents=amount_cents,
        payment_method=payment_method,
        entry_type=entry_type,
        notes=notes,
        reverses_payment_id=reverses_payment_id,
        adjusts_payment_id=adjusts_payment_id,
    )
    db.session.add(payment)
    db.session.flush()

    # 2. Balance, derived from history (includes the row just flushed)
    balance = None
    if customer:
        customer.balance_cents = _sum_customer_payments(customer.id)
        db.session.flush()  # version_id check happens here
        balance = customer.balance_cents

    if invoice:
        refresh_invoice_paid_amount(invoice)

    # 3. Audit mirror
    txn = Transaction(
        store_id=store_id,
        customer_id=payment.customer_id,
        invoice_id=payment.invoice_id,
        order_id=payment.order_id,
        payment_id=payment.id,
        type=TXN_DEPOSIT if amount_cents > 0 else TXN_WITHDRAWAL,
        amount_cents=abs(amount_cents),
        description=description,
    )
    db.session.add(txn)
    db.session.flush()

    return LedgerResult(
        payment=payment,
        transaction=txn,
        customer_id=payment.customer_id,
        balance_cents=balance,
        invoice_id=payment.invoice_id,
    )


def _describe(kind: str, customer: Customer | None, extra: str | None) -> str:
    parts = [kind]
    if customer:
        parts.append(f"from {customer.name}" if kind.startswith("Payment") else f"for {customer.name}")
    if extra:
        parts.append(f"({extra})")
    return " ".join(parts)


def _customer_name(result: LedgerResult) -> str | None:
    return result.payment.customer.name if result.payment.customer else None


# =============================================================================
# PUBLIC OPERATIONS
# =============================================================================

def record_payment(
    store_id: int,
    customer_id: int | None,
    amount_cents: int,
    payment_method: str = METHOD_CASH,
    *,
    invoice_id: int | None = None,
    order_id: int | None = None,
    notes: str | None = None,
) -> LedgerResult:
    """
    Record money received from a customer.

    Raises the customer's balance by amount_cents, appends a positive
    Payment and a deposit Transaction, then emits paymentReceived.
    customer_id may be None only for an invoice payment from a walk-in
    customer (no balance is touched then).

    Raises:
        InvalidAmount: amount_cents <= 0 or not whole cents (nothing written)
        CustomerNotFound: customer is not in this store
        InvoiceNotFound: invoice is not in this store
        PersistenceFailure: write failed after retries; nothing changed
    """
    amount_cents = validate_amount_cents(amount_cents)
    payment_method = validate_method(payment_method, PAYMENT_METHODS)
    if customer_id is None and invoice_id is None:
        raise ValidationError("customer_id or invoice_id is required")

    def _op() -> LedgerResult:
        customer = _get_customer(store_id, customer_id) if customer_id is not None else None
        result = _post_entry(
            store_id=store_id,
            amount_cents=amount_cents,
            payment_method=payment_method,
            customer_id=customer_id,
            invoice_id=invoice_id,
            order_id=order_id,
            notes=notes,
            description=_describe(f"Payment received - {payment_method}", customer, notes),
        )
        db.session.commit()
        return result

    result = run_with_retry(_op)
    logger.info(
        "Recorded payment #%s of %s cents for store=%s customer=%s",
        result.payment.id, amount_cents, store_id, customer_id,
    )
    notification_service.notify(
        store_id, notification_service.payment_received(amount_cents, _customer_name(result))
    )
    return result


def record_debt(
    store_id: int,
    customer_id: int,
    amount_cents: int,
    *,
    payment_method: str = METHOD_DEBT,
    invoice_id: int | None = None,
    order_id: int | None = None,
    notes: str | None = None,
) -> LedgerResult:
    """
    Record money a customer owes the store.

    Lowers the balance by amount_cents (stored as a negative Payment),
    appends a withdrawal Transaction, then emits debtAdded.

    Raises:
        InvalidAmount, CustomerNotFound, PersistenceFailure (as record_payment)
    """
    amount_cents = validate_amount_cents(amount_cents)
    payment_method = validate_method(payment_method, DEBT_METHODS)
    if customer_id is None:
        raise CustomerNotFound("Debt requires a customer")

    def _op() -> LedgerResult:
        customer = _get_customer(store_id, customer_id)
        result = _post_entry(
            store_id=store_id,
            amount_cents=-amount_cents,
            payment_method=payment_method,
            customer_id=customer_id,
            invoice_id=invoice_id,
            order_id=order_id,
            notes=notes,
            description=_describe("Debt added", customer, notes),
        )
        db.session.commit()
        return result

    result = run_with_retry(_op)
    logger.info(
        "Recorded debt #%s of %s cents for store=%s customer=%s",
        result.payment.id, amount_cents, store_id, customer_id,
    )
    notification_service.notify(
        store_id, notification_service.debt_added(amount_cents, _customer_name(result) or "")
    )
    return result


def post_invoice_payment(
    store_id: int,
    invoice: Invoice,
    amount_cents: int,
    payment_method: str,
    *,
    notes: str | None = None,
) -> LedgerResult:
    """
    Post a payment against an invoice inside the caller's transaction.

    Used when the invoice itself is created in the same unit of work, so
    the caller commits (and retries) both together. No notification is
    emitted here.
    """
    amount_cents = validate_amount_cents(amount_cents)
    payment_method = validate_method(payment_method, USER_PAYMENT_METHODS)
    return _post_entry(
        store_id=store_id,
        amount_cents=amount_cents,
        payment_method=payment_method,
        customer_id=invoice.customer_id,
        invoice_id=invoice.id,
        notes=notes,
        description=f"Payment received - {payment_method} (invoice {invoice.invoice_number})",
    )


def _reverse_locked(store_id: int, original: Payment, reason: str | None) -> LedgerResult:
    if original.entry_type == ENTRY_REVERSAL:
        raise ConflictError(
            f"Entry {original.id} is itself a reversal",
            details={"payment_id": original.id},
        )
    existing = get_reversal_of(original.id)
    if existing:
        raise EntryAlreadyReversed(
            f"Entry {original.id} was already reversed by entry {existing.id}",
            details={"payment_id": original.id, "reversal_id": existing.id},
        )

    note = f"Reversal of entry #{original.id}"
    if reason:
        note += f": {reason}"

    return _post_entry(
        store_id=store_id,
        amount_cents=-original.amount_cents,
        payment_method=original.payment_method,
        customer_id=original.customer_id,
        invoice_id=original.invoice_id,
        order_id=original.order_id,
        notes=note,
        description=note,
        entry_type=ENTRY_REVERSAL,
        reverses_payment_id=original.id,
    )


def reverse_entry(store_id: int, payment_id: int, reason: str | None = None) -> LedgerResult:
    """
    Cancel a ledger entry by appending its negation.

    The original row is left unchanged. The balance is recomputed from
    history, so afterwards it equals the balance as if the entry had never
    been recorded (plus any other activity).

    Raises:
        PaymentNotFound: entry is not in this store
        EntryAlreadyReversed: entry already has a reversal
        ConflictError: entry is itself a reversal
    """
    def _op() -> LedgerResult:
        original = lock_for_update(
            db.session.query(Payment).filter_by(id=payment_id, store_id=store_id)
        ).first()
        if not original:
            raise PaymentNotFound(f"Payment {payment_id} not found", details={"payment_id": payment_id})

        result = _reverse_locked(store_id, original, reason)
        result.related = [original]
        db.session.commit()
        return result

    result = run_with_retry(_op)
    logger.info("Reversed entry #%s with #%s (store=%s)", payment_id, result.payment.id, store_id)
    notification_service.notify(
        store_id,
        notification_service.entry_reversed(payment_id, result.payment.amount_cents, _customer_name(result)),
    )
    return result


def adjust_entry(
    store_id: int,
    payment_id: int,
    new_amount_cents: int,
    *,
    payment_method: str | None = None,
    notes: str | None = None,
) -> LedgerResult:
    """
    Correct an entry's amount without mutating history.

    Appends a reversal of the original and an adjustment entry carrying the
    corrected signed amount, in one transaction. Returns the adjustment;
    related holds [original, reversal].
    """
    if isinstance(new_amount_cents, bool) or not isinstance(new_amount_cents, int) or new_amount_cents == 0:
        raise InvalidAmount("new_amount_cents must be a non-zero whole number of cents")

    def _op() -> LedgerResult:
        original = lock_for_update(
            db.session.query(Payment).filter_by(id=payment_id, store_id=store_id)
        ).first()
        if not original:
            raise PaymentNotFound(f"Payment {payment_id} not found", details={"payment_id": payment_id})

        allowed = PAYMENT_METHODS if new_amount_cents > 0 else DEBT_METHODS
        if payment_method:
            method = validate_method(payment_method, allowed)
        elif original.payment_method in allowed:
            method = original.payment_method
        else:
            # sign flipped; fall back to the plain method for the new direction
            method = METHOD_CASH if new_amount_cents > 0 else METHOD_DEBT

        reversal = _reverse_locked(store_id, original, "adjusted")
        note = notes if notes is not None else original.notes
        adjustment = _post_entry(
            store_id=store_id,
            amount_cents=new_amount_cents,
            payment_method=method,
            customer_id=original.customer_id,
            invoice_id=original.invoice_id,
            order_id=original.order_id,
            notes=note,
            description=f"Adjustment of entry #{original.id}",
            entry_type=ENTRY_ADJUSTMENT,
            adjusts_payment_id=original.id,
        )
        adjustment.related = [original, reversal.payment]
        db.session.commit()
        return adjustment

    result = run_with_retry(_op)
    logger.info("Adjusted entry #%s to %s cents (store=%s)", payment_id, new_amount_cents, store_id)
    notification_service.notify(
        store_id,
        notification_service.entry_adjusted(
            payment_id, result.related[0].amount_cents, new_amount_cents, _customer_name(result)
        ),
    )
    return result


# =============================================================================
# REPAIR
# =============================================================================

def repair_balance(store_id: int, customer_id: int) -> int:
    """Persist the history-derived balance for one customer."""
    def _op() -> int:
        customer = _get_customer(store_id, customer_id, lock=True)
        recomputed = _sum_customer_payments(customer.id)
        if customer.balance_cents != recomputed:
            logger.warning(
                "Repairing balance for customer %s: cached=%s recomputed=%s",
                customer.id, customer.balance_cents, recomputed,
            )
            customer.balance_cents = recomputed
        db.session.commit()
        return recomputed

    return run_with_retry(_op)


def verify_store_balances(store_id: int) -> list[dict]:
    """Customers whose cached balance differs from their payment history."""
    sums = dict(
        db.session.query(Payment.customer_id, func.sum(Payment.amount_cents))
        .filter(Payment.store_id == store_id, Payment.customer_id.isnot(None))
        .group_by(Payment.customer_id)
        .all()
    )
    drifted = []
    for customer in db.session.query(Customer).filter_by(store_id=store_id).order_by(Customer.id).all():
        recomputed = int(sums.get(customer.id) or 0)
        if recomputed != customer.balance_cents:
            drifted.append({
                "customer_id": customer.id,
                "name": customer.name,
                "balance_cents": customer.balance_cents,
                "recomputed_balance_cents": recomputed,
                "drift_cents": customer.balance_cents - recomputed,
            })
    return drifted


def repair_store_balances(store_id: int) -> list[dict]:
    drifted = verify_store_balances(store_id)
    for row in drifted:
        repair_balance(store_id, row["customer_id"])
    return drifted
