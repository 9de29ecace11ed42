import pytest
from sqlalchemy.exc import OperationalError

from consigna.models import Product
from consigna.services import ledger_service
from consigna.services.store import StoreHandle, run_in_transaction, run_with_retry
from consigna.validation import PersistenceError, ValidationError


@pytest.fixture
def scratch_store():
    handle = StoreHandle.from_url("sqlite:///:memory:", retry_attempts=2)
    handle.ensure_schema()
    yield handle
    handle.engine.dispose()


def _seed_product(handle, name):
    with handle.transaction() as session:
        product = Product(name=name, price_cents=100)
        session.add(product)
        session.flush()
    ledger_service.add_stock(handle, product_id=product.id, quantity=3)
    return product


def test_transaction_rolls_back_on_error(scratch_store):
    def _op(session):
        session.add(Product(name="Ghost", price_cents=1))
        session.flush()
        raise ValidationError("stop")

    with pytest.raises(ValidationError):
        run_in_transaction(scratch_store, _op)

    with scratch_store.reader() as session:
        assert session.query(Product).count() == 0


def test_swap_points_every_holder_at_new_store(scratch_store):
    _seed_product(scratch_store, "Old")
    holder = scratch_store

    scratch_store.swap("sqlite:///:memory:")

    with holder.reader() as session:
        assert session.query(Product).count() == 0

    product = _seed_product(holder, "New")
    with holder.reader() as session:
        assert ledger_service.get_balance(session, product.id) == 3


def test_swap_to_unreachable_store_keeps_current(scratch_store, tmp_path):
    _seed_product(scratch_store, "Kept")
    bad_url = f"sqlite:///{tmp_path / 'missing' / 'nested' / 'db.sqlite3'}"

    with pytest.raises(PersistenceError):
        scratch_store.swap(bad_url)

    with scratch_store.reader() as session:
        assert session.query(Product).count() == 1


def test_run_with_retry_retries_operational_errors():
    calls = []

    def _flaky():
        calls.append(1)
        if len(calls) < 3:
            raise OperationalError("UPDATE", {}, Exception("database is locked"))
        return "ok"

    assert run_with_retry(_flaky, attempts=3, backoff_base=0) == "ok"
    assert len(calls) == 3


def test_run_in_transaction_wraps_store_failures(scratch_store):
    def _op(session):
        raise OperationalError("SELECT", {}, Exception("disk I/O error"))

    with pytest.raises(PersistenceError):
        run_in_transaction(scratch_store, _op, backoff_base=0)


def test_reader_results_stay_readable_after_block(scratch_store):
    _seed_product(scratch_store, "Detached")

    with scratch_store.reader() as session:
        products = session.query(Product).all()
        movements = ledger_service.list_movements(session, products[0].id)

    assert products[0].name == "Detached"
    assert [m.quantity for m in movements] == [3]
