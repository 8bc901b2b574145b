# Overview: Pytest coverage for store and ledger CLI commands.

from sqlalchemy import update

from store_manager.models import Customer, SessionToken, Store
from store_manager.services import ledger_service


def test_stores_create_prints_token(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["stores", "create", "--name", "CLI Shop", "--email", "cli@example.com"])

    assert result.exit_code == 0, result.output
    assert "TOKEN " in result.output
    store = db_session.query(Store).filter_by(email="cli@example.com").one()
    assert db_session.query(SessionToken).filter_by(store_id=store.id).count() == 1


def test_stores_create_duplicate_email_fails(app, store_a):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["stores", "create", "--name", "Dup", "--email", store_a.email])
    assert result.exit_code != 0


def test_issue_token_and_list(app, store_a):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["stores", "issue-token", "--store-id", str(store_a.id), "--days", "7"])
    assert result.exit_code == 0, result.output

    result = runner.invoke(args=["stores", "list"])
    assert store_a.name in result.output


def test_ledger_verify_and_repair(app, db_session, store_a, customer_a):
    ledger_service.record_payment(store_a.id, customer_a.id, 500)
    db_session.execute(update(Customer).where(Customer.id == customer_a.id).values(balance_cents=1))
    db_session.commit()

    runner = app.test_cli_runner()
    result = runner.invoke(args=["ledger", "verify", "--store-id", str(store_a.id)])
    assert result.exit_code == 1
    assert "drifted" in result.output

    result = runner.invoke(args=["ledger", "repair", "--store-id", str(store_a.id)])
    assert result.exit_code == 0, result.output

    result = runner.invoke(args=["ledger", "verify", "--store-id", str(store_a.id)])
    assert result.exit_code == 0
    assert "PASS" in result.output
