# Overview: Checkout orchestration; creates orders and settles them through the ledger as a saga.

"""
Checkout Orchestrator

A checkout is a saga of independently committed steps:

    1. create_order   order header + items, one DB transaction
                      compensation: mark the order cancelled
    2. record_payment customer attached and amount_paid > 0
                      compensation: reverse the payment entry
    3. record_debt    customer attached and amount_paid < total
                      compensation: reverse the debt entry

Validation (EmptyOrder, InvalidAmount, CustomerNotFound, ProductNotFound)
happens before step 1, so a rejected checkout writes nothing.

If step N fails, completed steps are compensated in reverse order and the
original error is re-raised; the order is left cancelled with no open ledger
entries. If a compensation also fails, PartialCheckoutFailure is raised with
the order id and the entries that still need reconciling.

Each ledger step is serialized per customer by ledger_service; the saga
itself holds no locks between steps.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from ..extensions import db
from ..models import Customer, Order, OrderItem, Product
from . import ledger_service, notification_service
from .concurrency import run_with_retry
from .document_service import ORDER_PREFIX, next_document_number
from .errors import (
    CustomerNotFound,
    EmptyOrder,
    PartialCheckoutFailure,
    ProductNotFound,
    ValidationError,
)

logger = logging.getLogger(__name__)


ORDER_PENDING = "pending"
ORDER_COMPLETED = "completed"
ORDER_CANCELLED = "cancelled"

VALID_ORDER_STATUSES = [ORDER_PENDING, ORDER_COMPLETED, ORDER_CANCELLED]


@dataclass(frozen=True)
class CartItem:
    product_id: int | None
    product_name: str
    quantity: int
    unit_price_cents: int

    @property
    def total_price_cents(self) -> int:
        return self.quantity * self.unit_price_cents


@dataclass
class CheckoutResult:
    order: Order
    payment: ledger_service.LedgerResult | None = None
    debt: ledger_service.LedgerResult | None = None

    @property
    def balance_cents(self) -> int | None:
        last = self.debt or self.payment
        return last.balance_cents if last else None

    def to_dict(self) -> dict:
        return {
            "order": self.order.to_dict(include_items=True),
            "payment": self.payment.to_dict() if self.payment else None,
            "debt": self.debt.to_dict() if self.debt else None,
            "balance_cents": self.balance_cents,
        }


# =============================================================================
# SAGA
# =============================================================================

@dataclass
class SagaStep:
    name: str
    action: Callable[[], Any]
    compensate: Callable[[Any], None] | None = None


@dataclass
class CheckoutSaga:
    """Runs steps in order and remembers how to undo the ones that completed."""
    store_id: int
    completed: list[tuple[SagaStep, Any]] = field(default_factory=list)

    def run(self, step: SagaStep) -> Any:
        result = step.action()
        self.completed.append((step, result))
        return result

    def rollback(self) -> list[dict]:
        """Compensate completed steps newest first; returns the ones that failed."""
        failures = []
        for step, result in reversed(self.completed):
            if step.compensate is None:
                continue
            try:
                step.compensate(result)
                logger.info("Compensated checkout step %s (store=%s)", step.name, self.store_id)
            except Exception as exc:
                logger.exception("Compensation failed for checkout step %s (store=%s)", step.name, self.store_id)
                failures.append({"step": step.name, "error": str(exc)})
        return failures

    @property
    def completed_steps(self) -> list[str]:
        return [step.name for step, _ in self.completed]


# =============================================================================
# VALIDATION
# =============================================================================

def _as_int(value, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer")
    if isinstance(value, str):
        stripped = value.strip()
        digits = stripped[1:] if stripped.startswith("-") else stripped
        if not digits.isascii() or not digits.isdigit():
            raise ValidationError(f"{field_name} must be an integer")
        return int(stripped)
    if not isinstance(value, int):
        raise ValidationError(f"{field_name} must be an integer")
    return value


def normalize_items(store_id: int, raw_items: list[dict] | None) -> list[CartItem]:
    """
    Resolve raw cart rows into priced CartItems.

    Each row needs a quantity and either a product_id (name and price
    default from the product) or a product_name with unit_price_cents.
    """
    if not raw_items:
        raise EmptyOrder("Order must contain at least one item")

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")

        quantity = _as_int(raw.get("quantity", 1), f"items[{index}].quantity")
        if quantity <= 0:
            raise ValidationError(f"items[{index}].quantity must be positive")

        product = None
        product_id = raw.get("product_id")
        if product_id is not None:
            product = (
                db.session.query(Product)
                .filter_by(id=_as_int(product_id, f"items[{index}].product_id"), store_id=store_id)
                .first()
            )
            if not product:
                raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})

        name = raw.get("product_name") or (product.name if product else None)
        if not name:
            raise ValidationError(f"items[{index}] requires product_id or product_name")

        unit_price = raw.get("unit_price_cents")
        if unit_price is None:
            if product is None:
                raise ValidationError(f"items[{index}].unit_price_cents is required")
            unit_price = product.price_cents
        unit_price = _as_int(unit_price, f"items[{index}].unit_price_cents")
        if unit_price < 0:
            raise ValidationError(f"items[{index}].unit_price_cents cannot be negative")

        items.append(CartItem(
            product_id=product.id if product else None,
            product_name=name,
            quantity=quantity,
            unit_price_cents=unit_price,
        ))

    return items


def calculate_total(items: list[CartItem]) -> int:
    return sum(item.total_price_cents for item in items)


# =============================================================================
# STEPS
# =============================================================================

def _create_order(
    store_id: int,
    customer_id: int | None,
    items: list[CartItem],
    amount_paid_cents: int,
    status: str,
    notes: str | None,
) -> Order:
    def _op() -> Order:
        order = Order(
            store_id=store_id,
            customer_id=customer_id,
            order_number=next_document_number(store_id=store_id, document_type="ORDER", prefix=ORDER_PREFIX),
            total_amount_cents=calculate_total(items),
            amount_paid_cents=amount_paid_cents,
            status=status,
            notes=notes,
        )
        db.session.add(order)
        db.session.flush()

        for item in items:
            db.session.add(OrderItem(
                order_id=order.id,
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price_cents=item.unit_price_cents,
                total_price_cents=item.total_price_cents,
            ))

        db.session.commit()
        return order

    return run_with_retry(_op)


def _cancel_order(store_id: int, order_id: int, reason: str) -> None:
    def _op() -> None:
        order = db.session.query(Order).filter_by(id=order_id, store_id=store_id).first()
        if order is None:
            return
        order.status = ORDER_CANCELLED
        order.notes = f"{order.notes}\n{reason}" if order.notes else reason
        db.session.commit()

    run_with_retry(_op)


def _reverse_for_checkout(store_id: int, order_number: str) -> Callable[[ledger_service.LedgerResult], None]:
    def _compensate(result: ledger_service.LedgerResult) -> None:
        ledger_service.reverse_entry(store_id, result.payment.id, reason=f"checkout of {order_number} failed")
    return _compensate


# =============================================================================
# PUBLIC OPERATIONS
# =============================================================================

def checkout(
    store_id: int,
    items: list[dict],
    *,
    customer_id: int | None = None,
    amount_paid_cents: int | None = 0,
    notes: str | None = None,
    status: str = ORDER_PENDING,
) -> CheckoutResult:
    """
    Create an order and settle it against the customer's ledger.

    With a customer attached, amount_paid_cents is recorded as an
    order_payment and any shortfall (total - amount_paid) as an order_debt.
    Under the ledger's sign convention a 100.00 order paid 60.00 moves the
    balance by +60.00 then -40.00. amount_paid_cents=None means paid in full.

    Raises:
        EmptyOrder, InvalidAmount, ValidationError, CustomerNotFound,
        ProductNotFound: before anything is written
        PersistenceFailure (or the failing step's error): the order was
            cancelled and all ledger steps compensated
        PartialCheckoutFailure: a step failed and compensation did too
    """
    cart = normalize_items(store_id, items)
    if amount_paid_cents is None:
        amount_paid_cents = calculate_total(cart)
    amount_paid_cents = ledger_service.validate_amount_cents(
        amount_paid_cents, field_name="amount_paid_cents", allow_zero=True
    )
    if status not in (ORDER_PENDING, ORDER_COMPLETED):
        raise ValidationError(f"Invalid checkout status: {status}")

    customer_name = None
    if customer_id is not None:
        customer = db.session.query(Customer).filter_by(id=customer_id, store_id=store_id).first()
        if not customer:
            raise CustomerNotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})
        customer_name = customer.name

    total = calculate_total(cart)
    saga = CheckoutSaga(store_id=store_id)

    order = saga.run(SagaStep(
        name="create_order",
        action=lambda: _create_order(store_id, customer_id, cart, amount_paid_cents, status, notes),
        compensate=lambda o: _cancel_order(store_id, o.id, "Cancelled: checkout failed"),
    ))
    order_id = order.id
    order_number = order.order_number
    result = CheckoutResult(order=order)

    try:
        if customer_id is not None and amount_paid_cents > 0:
            result.payment = saga.run(SagaStep(
                name="record_payment",
                action=lambda: ledger_service.record_payment(
                    store_id,
                    customer_id,
                    amount_paid_cents,
                    ledger_service.METHOD_ORDER_PAYMENT,
                    order_id=order_id,
                    notes=f"Payment for order {order_number}",
                ),
                compensate=_reverse_for_checkout(store_id, order_number),
            ))

        if customer_id is not None and amount_paid_cents < total:
            result.debt = saga.run(SagaStep(
                name="record_debt",
                action=lambda: ledger_service.record_debt(
                    store_id,
                    customer_id,
                    total - amount_paid_cents,
                    payment_method=ledger_service.METHOD_ORDER_DEBT,
                    order_id=order_id,
                    notes=f"Balance due for order {order_number}",
                ),
                compensate=_reverse_for_checkout(store_id, order_number),
            ))
    except Exception as exc:
        logger.error(
            "Checkout of order %s failed after steps %s: %s",
            order_number, saga.completed_steps, exc,
        )
        failures = saga.rollback()
        if failures:
            notification_service.notify(
                store_id, notification_service.checkout_failed(order_number, str(exc))
            )
            raise PartialCheckoutFailure(
                f"Checkout of order {order_number} failed and could not be fully rolled back",
                details={
                    "order_id": order_id,
                    "order_number": order_number,
                    "completed_steps": saga.completed_steps,
                    "failed_compensations": failures,
                    "cause": str(exc),
                    "cause_code": getattr(exc, "code", None),
                },
            ) from exc
        raise

    logger.info(
        "Checkout %s complete: total=%s paid=%s customer=%s",
        order_number, total, amount_paid_cents, customer_id,
    )
    notification_service.notify(
        store_id, notification_service.order_created(order_number, total, customer_name)
    )
    result.order = db.session.get(Order, order_id)
    return result


def pos_checkout(store_id: int, cart: list[dict], notes: str | None = None) -> CheckoutResult:
    """
    Walk-in register sale: paid in full at the counter, no customer ledger
    entries, order completed immediately.
    """
    return checkout(store_id, cart, customer_id=None, amount_paid_cents=None, notes=notes, status=ORDER_COMPLETED)

