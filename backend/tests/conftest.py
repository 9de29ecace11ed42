"""
Pytest fixtures for consigna backend tests.

Provides an in-memory application, the store handle, a per-test table wipe,
and seeded clients/products.
"""

import pytest

from consigna import create_app
from consigna.decorators import STORE_EXTENSION_KEY
from consigna.extensions import db
from consigna.models import Client, Product
from consigna.services import ledger_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TX_RETRY_ATTEMPTS': 1,
    })
    yield app


@pytest.fixture(scope='function')
def store(app):
    """Store handle with every table emptied."""
    handle = app.extensions[STORE_EXTENSION_KEY]
    # Core deletes bypass the ORM guard on stock_movements
    with handle.engine.begin() as conn:
        for table in reversed(db.metadata.sorted_tables):
            conn.execute(table.delete())
    return handle


@pytest.fixture(scope='function')
def client(app, store):
    """Create test client."""
    return app.test_client()


def make_client(store, name="Maria Souza"):
    with store.transaction() as session:
        row = Client(name=name, email="maria@example.com")
        session.add(row)
        session.flush()
    return row


def make_product(store, name, price_cents, stock=0, legacy_stock=0):
    with store.transaction() as session:
        product = Product(name=name, price_cents=price_cents, legacy_stock=legacy_stock)
        session.add(product)
        session.flush()
    if stock:
        ledger_service.add_stock(store, product_id=product.id, quantity=stock)
    return product


def balance_of(store, product_id):
    with store.reader() as session:
        return ledger_service.get_balance(session, product_id)


@pytest.fixture(scope='function')
def customer(store):
    """A client row."""
    return make_client(store)


@pytest.fixture(scope='function')
def product_p(store):
    """Product P with 100 units."""
    return make_product(store, "Queijo Minas", 1500, stock=100)


@pytest.fixture(scope='function')
def product_q(store):
    """Product Q with 5 units."""
    return make_product(store, "Doce de Leite", 800, stock=5)
