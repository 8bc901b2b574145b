# Overview: Pytest coverage for the customer ledger service.

"""
Customer Ledger Tests

Every test ends by checking the core invariant:
customers.balance_cents == SUM(payments.amount_cents).
"""

import pytest
from sqlalchemy import update

from store_manager.extensions import db
from store_manager.models import Customer, Notification, Payment, Transaction
from store_manager.services import ledger_service, notification_service
from store_manager.services.errors import (
    ConflictError,
    CustomerNotFound,
    EntryAlreadyReversed,
    InvalidAmount,
    PaymentNotFound,
    ValidationError,
)


def assert_ledger_consistent(store_id):
    assert ledger_service.verify_store_balances(store_id) == []


class TestRecordPaymentAndDebt:

    def test_payment_then_debt_nets_balance(self, db_session, store_a, customer_a):
        """Payment 100 then debt 40 leaves +60 with two ledger rows."""
        ledger_service.record_payment(store_a.id, customer_a.id, 10000)
        result = ledger_service.record_debt(store_a.id, customer_a.id, 4000)

        assert result.balance_cents == 6000
        assert db_session.get(Customer, customer_a.id).balance_cents == 6000

        amounts = [p.amount_cents for p in db_session.query(Payment).order_by(Payment.id)]
        assert amounts == [10000, -4000]
        assert_ledger_consistent(store_a.id)

    def test_each_entry_writes_matching_transaction(self, db_session, store_a, customer_a):
        payment = ledger_service.record_payment(store_a.id, customer_a.id, 2500, "card")
        debt = ledger_service.record_debt(store_a.id, customer_a.id, 700)

        assert payment.transaction.type == "deposit"
        assert payment.transaction.amount_cents == 2500
        assert payment.transaction.payment_id == payment.payment.id
        assert debt.transaction.type == "withdrawal"
        assert debt.transaction.amount_cents == 700
        assert db_session.query(Transaction).count() == 2

    def test_notifications_emitted(self, db_session, store_a, customer_a):
        ledger_service.record_payment(store_a.id, customer_a.id, 1000)
        ledger_service.record_debt(store_a.id, customer_a.id, 300)

        titles = [n.title for n in db_session.query(Notification).order_by(Notification.id)]
        assert titles == ["Payment received", "New debt"]

    @pytest.mark.parametrize("amount", [-5, 0, "abc", 12.5, None, True, "²", "١٢", "-", " "])
    def test_invalid_amount_writes_nothing(self, db_session, store_a, customer_a, amount):
        with pytest.raises(InvalidAmount):
            ledger_service.record_payment(store_a.id, customer_a.id, amount)
        with pytest.raises(InvalidAmount):
            ledger_service.record_debt(store_a.id, customer_a.id, amount)

        assert db_session.query(Payment).count() == 0
        assert db_session.query(Transaction).count() == 0
        assert db_session.get(Customer, customer_a.id).balance_cents == 0

    def test_digit_string_amount_accepted(self, db_session, store_a, customer_a):
        result = ledger_service.record_payment(store_a.id, customer_a.id, "1500")
        assert result.balance_cents == 1500

    def test_unknown_customer(self, db_session, store_a):
        with pytest.raises(CustomerNotFound):
            ledger_service.record_payment(store_a.id, 99999, 100)
        assert db_session.query(Payment).count() == 0

    def test_customer_of_other_store_is_not_found(self, db_session, store_a, customer_b):
        with pytest.raises(CustomerNotFound):
            ledger_service.record_debt(store_a.id, customer_b.id, 100)
        assert db_session.get(Customer, customer_b.id).balance_cents == 0

    def test_invalid_method_rejected(self, db_session, store_a, customer_a):
        with pytest.raises(ValidationError):
            ledger_service.record_payment(store_a.id, customer_a.id, 100, "bitcoin")
        with pytest.raises(ValidationError):
            ledger_service.record_payment(store_a.id, customer_a.id, 100, "debt")

    @pytest.mark.parametrize("method", [5, ["cash"], {"m": "cash"}])
    def test_non_string_method_rejected(self, db_session, store_a, customer_a, method):
        with pytest.raises(ValidationError):
            ledger_service.record_payment(store_a.id, customer_a.id, 100, method)
        with pytest.raises(ValidationError):
            ledger_service.record_debt(store_a.id, customer_a.id, 100, payment_method=method)
        assert db_session.query(Payment).count() == 0

    def test_payment_requires_customer_or_invoice(self, db_session, store_a):
        with pytest.raises(ValidationError):
            ledger_service.record_payment(store_a.id, None, 100)

    def test_notification_failure_does_not_roll_back(self, db_session, store_a, customer_a, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("feed unavailable")

        monkeypatch.setattr(notification_service, "Notification", boom)

        result = ledger_service.record_payment(store_a.id, customer_a.id, 800)

        assert result.balance_cents == 800
        assert db_session.query(Payment).count() == 1
        assert db_session.query(Notification).count() == 0
        assert_ledger_consistent(store_a.id)


class TestReversalsAndAdjustments:

    def test_reverse_restores_previous_balance(self, db_session, store_a, customer_a):
        ledger_service.record_payment(store_a.id, customer_a.id, 5000)
        original = ledger_service.record_payment(store_a.id, customer_a.id, 3000)

        result = ledger_service.reverse_entry(store_a.id, original.payment.id, reason="typo")

        assert result.balance_cents == 5000
        assert result.payment.amount_cents == -3000
        assert result.payment.entry_type == "reversal"
        assert result.payment.reverses_payment_id == original.payment.id

        unchanged = db_session.get(Payment, original.payment.id)
        assert unchanged.amount_cents == 3000
        assert unchanged.entry_type == "original"
        assert_ledger_consistent(store_a.id)

    def test_reverse_debt_raises_balance(self, db_session, store_a, customer_a):
        debt = ledger_service.record_debt(store_a.id, customer_a.id, 1200)
        result = ledger_service.reverse_entry(store_a.id, debt.payment.id)

        assert result.balance_cents == 0
        assert result.transaction.type == "deposit"

    def test_cannot_reverse_twice(self, db_session, store_a, customer_a):
        original = ledger_service.record_payment(store_a.id, customer_a.id, 3000)
        ledger_service.reverse_entry(store_a.id, original.payment.id)

        with pytest.raises(EntryAlreadyReversed):
            ledger_service.reverse_entry(store_a.id, original.payment.id)
        assert db_session.query(Payment).count() == 2

    def test_cannot_reverse_a_reversal(self, db_session, store_a, customer_a):
        original = ledger_service.record_payment(store_a.id, customer_a.id, 3000)
        reversal = ledger_service.reverse_entry(store_a.id, original.payment.id)

        with pytest.raises(ConflictError):
            ledger_service.reverse_entry(store_a.id, reversal.payment.id)

    def test_reverse_unknown_payment(self, db_session, store_a):
        with pytest.raises(PaymentNotFound):
            ledger_service.reverse_entry(store_a.id, 424242)

    def test_reverse_other_store_payment_not_found(self, db_session, store_a, store_b, customer_b):
        foreign = ledger_service.record_payment(store_b.id, customer_b.id, 100)
        with pytest.raises(PaymentNotFound):
            ledger_service.reverse_entry(store_a.id, foreign.payment.id)

    def test_adjust_is_reversal_plus_adjustment(self, db_session, store_a, customer_a):
        original = ledger_service.record_payment(store_a.id, customer_a.id, 5000)

        result = ledger_service.adjust_entry(store_a.id, original.payment.id, 3500, payment_method="card")

        assert result.balance_cents == 3500
        assert result.payment.entry_type == "adjustment"
        assert result.payment.adjusts_payment_id == original.payment.id
        assert result.payment.payment_method == "card"
        assert [p.id for p in result.related][0] == original.payment.id

        history = ledger_service.get_payment_history(store_a.id, original.payment.id)
        assert history["is_reversed"] is True
        assert len(history["adjustments"]) == 1
        assert db_session.query(Payment).count() == 3
        assert_ledger_consistent(store_a.id)

        latest = notification_service.get_notifications(store_a.id, limit=1)[0]
        assert latest.title == "Entry adjusted"
        assert "50.00" in latest.message and "35.00" in latest.message

    def test_adjust_across_sign_picks_matching_method(self, db_session, store_a, customer_a):
        debt = ledger_service.record_debt(store_a.id, customer_a.id, 2000)

        flipped = ledger_service.adjust_entry(store_a.id, debt.payment.id, 1200)
        assert flipped.payment.payment_method == "cash"
        assert flipped.balance_cents == 1200

        back = ledger_service.adjust_entry(store_a.id, flipped.payment.id, -300)
        assert back.payment.payment_method == "debt"
        assert back.balance_cents == -300

        same_sign = ledger_service.adjust_entry(store_a.id, back.payment.id, -500)
        assert same_sign.payment.payment_method == "debt"
        assert_ledger_consistent(store_a.id)

    def test_adjust_rejects_zero(self, db_session, store_a, customer_a):
        original = ledger_service.record_payment(store_a.id, customer_a.id, 5000)
        with pytest.raises(InvalidAmount):
            ledger_service.adjust_entry(store_a.id, original.payment.id, 0)
        assert db_session.query(Payment).count() == 1


class TestInvariantAndRepair:

    def test_invariant_holds_after_mixed_sequence(self, db_session, store_a, customer_a):
        p1 = ledger_service.record_payment(store_a.id, customer_a.id, 10000)
        ledger_service.record_debt(store_a.id, customer_a.id, 2500)
        ledger_service.record_payment(store_a.id, customer_a.id, 400, "bank_transfer")
        ledger_service.reverse_entry(store_a.id, p1.payment.id)
        d2 = ledger_service.record_debt(store_a.id, customer_a.id, 999)
        ledger_service.adjust_entry(store_a.id, d2.payment.id, -1000)

        expected = 10000 - 2500 + 400 - 10000 - 999 + 999 - 1000
        assert ledger_service.recompute_balance(store_a.id, customer_a.id) == expected
        assert db_session.get(Customer, customer_a.id).balance_cents == expected
        assert_ledger_consistent(store_a.id)

    def test_verify_and_repair_drift(self, db_session, store_a, customer_a):
        ledger_service.record_payment(store_a.id, customer_a.id, 700)
        db_session.execute(
            update(Customer).where(Customer.id == customer_a.id).values(balance_cents=12345)
        )
        db_session.commit()

        drifted = ledger_service.verify_store_balances(store_a.id)
        assert len(drifted) == 1
        assert drifted[0]["recomputed_balance_cents"] == 700
        assert drifted[0]["drift_cents"] == 12345 - 700

        ledger_service.repair_store_balances(store_a.id)
        db_session.expire_all()
        assert db_session.get(Customer, customer_a.id).balance_cents == 700
        assert_ledger_consistent(store_a.id)

    def test_statement_lists_entries_newest_first(self, db_session, store_a, customer_a):
        ledger_service.record_payment(store_a.id, customer_a.id, 100)
        ledger_service.record_debt(store_a.id, customer_a.id, 300)

        statement = ledger_service.customer_statement(store_a.id, customer_a.id)

        assert [e["amount_cents"] for e in statement["entries"]] == [-300, 100]
        assert statement["balance_cents"] == -200
        assert statement["in_sync"] is True
        assert statement["total_paid_cents"] == 100
        assert statement["total_debt_cents"] == 300
