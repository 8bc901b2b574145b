from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Payment(db.Model):
    """
    Signed ledger entry for a customer and/or invoice.

    WHY: Payment rows are the durable source of truth for customer balances.
    customers.balance_cents and invoices.paid_amount_cents are caches of
    SUM(amount_cents).

    SIGN:
    - amount_cents > 0: money received / credit to the customer
    - amount_cents < 0: debt recorded against the customer

    ENTRY TYPES:
    - original: a payment or debt as recorded
    - reversal: negates reverses_payment_id (at most one per entry)
    - adjustment: corrected amount replacing adjusts_payment_id

    IMMUTABLE: rows are never updated or deleted. Corrections append
    reversal/adjustment entries.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.UniqueConstraint("reverses_payment_id", name="uq_payments_reverses"),
        db.Index("ix_payments_store_customer", "store_id", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, index=True)
    entry_type = db.Column(db.String(16), nullable=False, default="original", index=True)
    notes = db.Column(db.Text, nullable=True)

    reverses_payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True)
    adjusts_payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    store = db.relationship("Store", backref=db.backref("payments", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("payments", lazy=True))
    invoice = db.relationship("Invoice", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "invoice_id": self.invoice_id,
            "invoice_number": self.invoice.invoice_number if self.invoice else None,
            "order_id": self.order_id,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "entry_type": self.entry_type,
            "notes": self.notes,
            "reverses_payment_id": self.reverses_payment_id,
            "adjusts_payment_id": self.adjusts_payment_id,
            "created_at": to_utc_z(self.created_at),
        }


class Transaction(db.Model):
    """
    Business activity log.

    TYPES: sale, purchase, deposit, withdrawal, refund, expense

    amount_cents is unsigned; direction is carried by type. The ledger
    writes one deposit/withdrawal row per payment entry it appends; other
    rows are entered manually. Never used to derive balances.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_store_type_created", "store_id", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True, index=True)

    type = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("transactions", lazy=True))
    invoice = db.relationship("Invoice")
    order = db.relationship("Order")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "invoice_id": self.invoice_id,
            "invoice_number": self.invoice.invoice_number if self.invoice else None,
            "order_id": self.order_id,
            "payment_id": self.payment_id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }
