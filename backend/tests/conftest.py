"""
Pytest fixtures for store manager backend tests.

Provides test database setup, two isolated stores with API tokens, and a
test client.
"""

import pytest

from store_manager import create_app
from store_manager.config import TestConfig
from store_manager.extensions import db
from store_manager.models import Customer, Product, Store
from store_manager.services import session_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def store_a(db_session):
    """Create Store A (first tenant)."""
    store = Store(name="Store A - Corner Shop", email="a@corner.test")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_b(db_session):
    """Create Store B (second tenant)."""
    store = Store(name="Store B - Beta Market", email="b@beta.test")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def token_a(store_a):
    _, token = session_service.create_session(store_a.id, label="tests")
    return token


@pytest.fixture(scope='function')
def token_b(store_b):
    _, token = session_service.create_session(store_b.id, label="tests")
    return token


@pytest.fixture(scope='function')
def customer_a(db_session, store_a):
    """Customer in Store A with an empty ledger."""
    customer = Customer(store_id=store_a.id, name="Dana Levi", phone="050-1234567", balance_cents=0)
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def customer_b(db_session, store_b):
    """Customer in Store B."""
    customer = Customer(store_id=store_b.id, name="Omer Cohen", balance_cents=0)
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def product_a(db_session, store_a):
    """Product in Store A."""
    product = Product(
        store_id=store_a.id,
        name="Olive Oil 1L",
        price_cents=2500,
        stock_quantity=40,
        category="Pantry",
        barcode="7290000000011",
    )
    db_session.add(product)
    db_session.commit()
    return product


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
