# Overview: Pytest coverage for checkout orchestration and order lifecycle.

import pytest

from store_manager.models import Customer, Notification, Order, OrderItem, Payment
from store_manager.services import checkout_service, ledger_service, order_service
from store_manager.services.errors import (
    ConflictError,
    CustomerNotFound,
    EmptyOrder,
    InvalidAmount,
    PartialCheckoutFailure,
    PersistenceFailure,
    ProductNotFound,
    ValidationError,
)


def _items(*prices):
    return [{"product_name": f"Item {i}", "quantity": 1, "unit_price_cents": p} for i, p in enumerate(prices)]


class TestCheckout:

    def test_partial_payment_writes_payment_and_debt(self, db_session, store_a, customer_a):
        """Total 100 paid 60: +60 order_payment, -40 order_debt, net +20."""
        result = checkout_service.checkout(
            store_a.id, _items(6000, 4000), customer_id=customer_a.id, amount_paid_cents=6000
        )

        assert result.order.total_amount_cents == 10000
        assert result.order.status == "pending"
        assert result.payment.payment.amount_cents == 6000
        assert result.payment.payment.payment_method == "order_payment"
        assert result.debt.payment.amount_cents == -4000
        assert result.debt.payment.payment_method == "order_debt"
        assert result.balance_cents == 2000

        entries = db_session.query(Payment).filter_by(order_id=result.order.id).order_by(Payment.id).all()
        assert [e.amount_cents for e in entries] == [6000, -4000]
        assert db_session.get(Customer, customer_a.id).balance_cents == 2000
        assert ledger_service.verify_store_balances(store_a.id) == []

    def test_paid_in_full_writes_no_debt(self, db_session, store_a, customer_a):
        result = checkout_service.checkout(
            store_a.id, _items(2500), customer_id=customer_a.id, amount_paid_cents=2500
        )
        assert result.debt is None
        assert result.balance_cents == 2500

    def test_unpaid_order_is_all_debt(self, db_session, store_a, customer_a):
        result = checkout_service.checkout(store_a.id, _items(1800), customer_id=customer_a.id)
        assert result.payment is None
        assert result.balance_cents == -1800

    def test_walk_in_order_has_no_ledger_entries(self, db_session, store_a):
        result = checkout_service.checkout(store_a.id, _items(1000), amount_paid_cents=1000)
        assert result.payment is None and result.debt is None
        assert db_session.query(Payment).count() == 0

    def test_items_priced_from_product(self, db_session, store_a, customer_a, product_a):
        result = checkout_service.checkout(
            store_a.id, [{"product_id": product_a.id, "quantity": 3}], customer_id=customer_a.id
        )
        item = result.order.items[0]
        assert item.product_name == "Olive Oil 1L"
        assert item.unit_price_cents == 2500
        assert item.total_price_cents == 7500
        assert result.order.total_amount_cents == 7500

    def test_order_numbers_are_sequential_per_store(self, db_session, store_a, store_b):
        first = checkout_service.checkout(store_a.id, _items(100))
        second = checkout_service.checkout(store_a.id, _items(100))
        other = checkout_service.checkout(store_b.id, _items(100))

        assert first.order.order_number == "ORD-000001"
        assert second.order.order_number == "ORD-000002"
        assert other.order.order_number == "ORD-000001"

    def test_order_created_notification(self, db_session, store_a, customer_a):
        checkout_service.checkout(store_a.id, _items(100), customer_id=customer_a.id, amount_paid_cents=100)
        titles = [n.title for n in db_session.query(Notification)]
        assert "New order" in titles
        assert "Payment received" in titles


class TestCheckoutValidation:

    def test_empty_order_writes_nothing(self, db_session, store_a, customer_a):
        with pytest.raises(EmptyOrder):
            checkout_service.checkout(store_a.id, [], customer_id=customer_a.id, amount_paid_cents=100)

        assert db_session.query(Order).count() == 0
        assert db_session.query(OrderItem).count() == 0
        assert db_session.query(Payment).count() == 0

    def test_negative_paid_amount(self, db_session, store_a, customer_a):
        with pytest.raises(InvalidAmount):
            checkout_service.checkout(store_a.id, _items(100), customer_id=customer_a.id, amount_paid_cents=-1)
        assert db_session.query(Order).count() == 0

    def test_unknown_customer(self, db_session, store_a):
        with pytest.raises(CustomerNotFound):
            checkout_service.checkout(store_a.id, _items(100), customer_id=999)
        assert db_session.query(Order).count() == 0

    def test_unknown_product(self, db_session, store_a):
        with pytest.raises(ProductNotFound):
            checkout_service.checkout(store_a.id, [{"product_id": 31337, "quantity": 1}])

    @pytest.mark.parametrize("item", [
        {"product_name": "x", "quantity": 0, "unit_price_cents": 100},
        {"product_name": "x", "quantity": 1, "unit_price_cents": -100},
        {"product_name": "x", "quantity": 1},
        {"quantity": 1, "unit_price_cents": 100},
        {"product_name": "x", "quantity": "²", "unit_price_cents": 100},
        {"product_name": "x", "quantity": 1, "unit_price_cents": "½"},
        "not an object",
    ])
    def test_bad_items(self, db_session, store_a, item):
        with pytest.raises(ValidationError):
            checkout_service.checkout(store_a.id, [item])
        assert db_session.query(Order).count() == 0


class TestCheckoutCompensation:

    def test_failed_debt_step_is_compensated(self, db_session, store_a, customer_a, monkeypatch):
        def failing_debt(*args, **kwargs):
            raise PersistenceFailure("database unavailable")

        monkeypatch.setattr(ledger_service, "record_debt", failing_debt)

        with pytest.raises(PersistenceFailure):
            checkout_service.checkout(
                store_a.id, _items(10000), customer_id=customer_a.id, amount_paid_cents=6000
            )

        order = db_session.query(Order).one()
        assert order.status == "cancelled"

        entries = db_session.query(Payment).order_by(Payment.id).all()
        assert [e.amount_cents for e in entries] == [6000, -6000]
        assert entries[1].reverses_payment_id == entries[0].id
        assert db_session.get(Customer, customer_a.id).balance_cents == 0
        assert ledger_service.list_open_order_entries(store_a.id, order.id) == []

    def test_failed_compensation_raises_partial_checkout(self, db_session, store_a, customer_a, monkeypatch):
        def failing_debt(*args, **kwargs):
            raise PersistenceFailure("database unavailable")

        def failing_reverse(*args, **kwargs):
            raise PersistenceFailure("still unavailable")

        monkeypatch.setattr(ledger_service, "record_debt", failing_debt)
        monkeypatch.setattr(ledger_service, "reverse_entry", failing_reverse)

        with pytest.raises(PartialCheckoutFailure) as excinfo:
            checkout_service.checkout(
                store_a.id, _items(10000), customer_id=customer_a.id, amount_paid_cents=6000
            )

        details = excinfo.value.details
        order = db_session.query(Order).one()
        assert details["order_id"] == order.id
        assert details["completed_steps"] == ["create_order", "record_payment"]
        assert [f["step"] for f in details["failed_compensations"]] == ["record_payment"]
        assert details["cause_code"] == "PERSISTENCE_FAILURE"

        # the payment still stands and is consistent with the balance
        assert db_session.get(Customer, customer_a.id).balance_cents == 6000
        assert ledger_service.verify_store_balances(store_a.id) == []
        assert db_session.query(Notification).filter_by(type="error").count() == 1


class TestPosCheckout:

    def test_pos_sale_completed_without_ledger(self, db_session, store_a, product_a):
        result = checkout_service.pos_checkout(store_a.id, [{"product_id": product_a.id, "quantity": 2}])

        assert result.order.status == "completed"
        assert result.order.customer_id is None
        assert result.order.amount_paid_cents == 5000
        assert db_session.query(Payment).count() == 0

    def test_pos_empty_cart(self, db_session, store_a):
        with pytest.raises(EmptyOrder):
            checkout_service.pos_checkout(store_a.id, [])


class TestOrderLifecycle:

    def test_cancel_reverses_order_entries(self, db_session, store_a, customer_a):
        result = checkout_service.checkout(
            store_a.id, _items(10000), customer_id=customer_a.id, amount_paid_cents=6000
        )

        order = order_service.set_order_status(store_a.id, result.order.id, "cancelled")

        assert order.status == "cancelled"
        assert db_session.get(Customer, customer_a.id).balance_cents == 0
        assert db_session.query(Payment).filter_by(entry_type="reversal").count() == 2
        assert ledger_service.verify_store_balances(store_a.id) == []

    def test_cancel_is_idempotent(self, db_session, store_a, customer_a):
        result = checkout_service.checkout(store_a.id, _items(500), customer_id=customer_a.id)
        order_service.set_order_status(store_a.id, result.order.id, "cancelled")
        order_service.set_order_status(store_a.id, result.order.id, "cancelled")

        assert db_session.query(Payment).count() == 2
        assert db_session.get(Customer, customer_a.id).balance_cents == 0

    def test_complete_then_no_reopen(self, db_session, store_a):
        result = checkout_service.checkout(store_a.id, _items(500))
        order_service.set_order_status(store_a.id, result.order.id, "completed")

        with pytest.raises(ConflictError):
            order_service.set_order_status(store_a.id, result.order.id, "pending")

    def test_invalid_status(self, db_session, store_a):
        result = checkout_service.checkout(store_a.id, _items(500))
        with pytest.raises(ValidationError):
            order_service.set_order_status(store_a.id, result.order.id, "shipped")

    def test_list_orders_by_status(self, db_session, store_a):
        checkout_service.checkout(store_a.id, _items(100))
        checkout_service.pos_checkout(store_a.id, _items(200))

        assert len(order_service.list_orders(store_a.id)) == 2
        completed = order_service.list_orders(store_a.id, status="completed")
        assert [o.total_amount_cents for o in completed] == [200]
