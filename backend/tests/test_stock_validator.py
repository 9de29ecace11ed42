import pytest

from consigna.services.stock_validator import aggregate_quantities, check_stock, require_stock
from consigna.validation import InsufficientStockError, NotFoundError

from conftest import make_product


def test_aggregate_quantities_sums_per_product():
    lines = [
        {"product_id": 1, "quantity": 5},
        {"product_id": 2, "quantity": 1},
        {"product_id": 1, "quantity": 5},
    ]
    assert aggregate_quantities(lines) == {1: 10, 2: 1}


def test_check_stock_result(store, product_q):
    with store.reader() as session:
        result = check_stock(session, product_q.id, 5)
    assert result.ok
    assert result.to_dict() == {"product_id": product_q.id, "ok": True, "available": 5, "required": 5}


def test_split_lines_are_checked_as_one_request(store):
    product = make_product(store, "Cocada", 250, stock=8)
    lines = [
        {"product_id": product.id, "quantity": 5},
        {"product_id": product.id, "quantity": 5},
    ]

    with pytest.raises(InsufficientStockError) as exc:
        with store.transaction() as session:
            require_stock(session, aggregate_quantities(lines))

    assert exc.value.details == [{
        "product_id": product.id,
        "product_name": "Cocada",
        "required": 10,
        "available": 8,
    }]
    assert exc.value.message == "Insufficient stock for: Cocada: required 10, available 8"


def test_every_failing_product_is_reported(store, product_p, product_q):
    with pytest.raises(InsufficientStockError) as exc:
        with store.transaction() as session:
            require_stock(session, {product_p.id: 101, product_q.id: 6})

    assert [f["product_id"] for f in exc.value.details] == sorted([product_p.id, product_q.id])


def test_unknown_product(store):
    with pytest.raises(NotFoundError):
        with store.transaction() as session:
            require_stock(session, {999: 1})
