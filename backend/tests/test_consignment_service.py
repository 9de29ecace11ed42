"""
Consignment lifecycle tests: create, close into a sale, delete.
"""

from datetime import date, datetime

import pytest

from consigna.models import Consignment, ConsignmentItem, Sale, AccountReceivable
from consigna.services import consignment_service, sales_service
from consigna.services.consignment_lines import resolve_lines, SOURCE_LEGACY, SOURCE_ITEMS
from consigna.validation import ValidationError, InsufficientStockError, NotFoundError, ConflictError

from conftest import make_product, balance_of


def _consign(store, client_id, *lines):
    return consignment_service.create_consignment(
        store,
        client_id=client_id,
        items=[{"product_id": pid, "quantity": qty, "price_cents": None} for pid, qty in lines],
    )


def _settle(product_id, sold, price_cents=None):
    return {"item_id": None, "product_id": product_id, "quantity_sold": sold, "price_cents": price_cents}


def test_create_withdraws_stock(store, customer, product_p, product_q):
    consignment = _consign(store, customer.id, (product_p.id, 40), (product_q.id, 5))

    assert consignment["status"] == "open"
    assert consignment["client"]["name"] == "Maria Souza"
    assert [(i["product_id"], i["quantity"], i["price_cents"]) for i in consignment["items"]] == [
        (product_p.id, 40, 1500),
        (product_q.id, 5, 800),
    ]
    assert balance_of(store, product_p.id) == 60
    assert balance_of(store, product_q.id) == 0


def test_create_requires_stock(store, customer, product_q):
    with pytest.raises(InsufficientStockError):
        _consign(store, customer.id, (product_q.id, 3), (product_q.id, 3))

    assert balance_of(store, product_q.id) == 5
    with store.reader() as session:
        assert session.query(Consignment).count() == 0


def test_create_requires_existing_client(store, product_p):
    with pytest.raises(NotFoundError):
        _consign(store, 999, (product_p.id, 1))


def test_close_partially_sold(store, customer):
    product = make_product(store, "Pao de Queijo", 600, stock=20)
    consignment = _consign(store, customer.id, (product.id, 20))
    assert balance_of(store, product.id) == 0

    sale = consignment_service.close_consignment(
        store,
        consignment["id"],
        settlement=[_settle(product.id, 15)],
        sale_date=datetime(2026, 5, 10, 9, 0),
    )

    assert [(i.product_id, i.quantity) for i in sale.items] == [(product.id, 15)]
    assert sale.total_cents == 15 * 600
    assert sale.notes == f"Sale generated from consignment #{consignment['id']}"
    assert balance_of(store, product.id) == 5

    closed = consignment_service.get_consignment(store, consignment["id"])
    assert closed["status"] == "closed"
    assert closed["closed_quantity"] == 15
    assert closed["closed_total_cents"] == 9000
    assert closed["sale_id"] == sale.id

    with store.reader() as session:
        receivable = session.query(AccountReceivable).filter_by(sale_id=sale.id).one()
    assert receivable.value_cents == 9000
    assert receivable.due_date == date(2026, 6, 9)
    assert receivable.description == f"Sale #{sale.id} - Consignment #{consignment['id']} - 1 item(s)"


def test_close_conserves_units_per_product(store, customer, product_p, product_q):
    consignment = _consign(store, customer.id, (product_p.id, 40), (product_q.id, 5))

    consignment_service.close_consignment(
        store,
        consignment["id"],
        settlement=[_settle(product_p.id, 25, price_cents=1400), _settle(product_q.id, 0)],
    )

    # Sold units stay out, unsold units come back
    assert balance_of(store, product_p.id) == 75
    assert balance_of(store, product_q.id) == 5


def test_close_with_settlement_price_override(store, customer, product_p):
    consignment = _consign(store, customer.id, (product_p.id, 10))

    sale = consignment_service.close_consignment(
        store,
        consignment["id"],
        settlement=[_settle(product_p.id, 4, price_cents=1000)],
    )

    assert sale.total_cents == 4000
    assert sale.items[0].price_cents == 1000


def test_close_twice_is_a_conflict(store, customer, product_p):
    consignment = _consign(store, customer.id, (product_p.id, 10))
    consignment_service.close_consignment(store, consignment["id"], settlement=[_settle(product_p.id, 10)])

    with pytest.raises(ConflictError):
        consignment_service.close_consignment(store, consignment["id"], settlement=[_settle(product_p.id, 10)])

    assert balance_of(store, product_p.id) == 90
    with store.reader() as session:
        assert session.query(Sale).count() == 1


def test_close_rejects_sold_above_consigned(store, customer, product_p):
    consignment = _consign(store, customer.id, (product_p.id, 10))

    with pytest.raises(ValidationError):
        consignment_service.close_consignment(store, consignment["id"], settlement=[_settle(product_p.id, 11)])

    assert balance_of(store, product_p.id) == 90
    assert consignment_service.get_consignment(store, consignment["id"])["status"] == "open"


def test_close_rejects_zero_total(store, customer, product_p):
    consignment = _consign(store, customer.id, (product_p.id, 10))

    with pytest.raises(ValidationError):
        consignment_service.close_consignment(store, consignment["id"], settlement=[_settle(product_p.id, 0)])

    assert balance_of(store, product_p.id) == 90
    with store.reader() as session:
        assert session.query(Sale).count() == 0
        assert session.query(AccountReceivable).count() == 0


def test_close_requires_every_item(store, customer, product_p, product_q):
    consignment = _consign(store, customer.id, (product_p.id, 10), (product_q.id, 2))

    with pytest.raises(ValidationError) as exc:
        consignment_service.close_consignment(store, consignment["id"], settlement=[_settle(product_p.id, 3)])

    assert exc.value.details == [{"product_id": product_q.id, "quantity": 2}]


def test_close_rejects_product_not_consigned(store, customer, product_p, product_q):
    consignment = _consign(store, customer.id, (product_p.id, 10))

    with pytest.raises(ValidationError):
        consignment_service.close_consignment(
            store,
            consignment["id"],
            settlement=[_settle(product_p.id, 3), _settle(product_q.id, 1)],
        )


def test_close_notes_replaced_only_when_given(store, customer, product_p):
    first = consignment_service.create_consignment(
        store,
        client_id=customer.id,
        items=[{"product_id": product_p.id, "quantity": 2, "price_cents": None}],
        notes="Feira de sabado",
    )
    consignment_service.close_consignment(store, first["id"], settlement=[_settle(product_p.id, 1)], notes="  ")
    assert consignment_service.get_consignment(store, first["id"])["notes"] == "Feira de sabado"

    second = _consign(store, customer.id, (product_p.id, 2))
    consignment_service.close_consignment(store, second["id"], settlement=[_settle(product_p.id, 2)], notes="Vendeu tudo")
    assert consignment_service.get_consignment(store, second["id"])["notes"] == "Vendeu tudo"


def test_delete_open_consignment_restores_stock(store, customer):
    product = make_product(store, "Broa", 400, stock=10)
    consignment = _consign(store, customer.id, (product.id, 10))
    assert balance_of(store, product.id) == 0

    consignment_service.delete_consignment(store, consignment["id"])

    assert balance_of(store, product.id) == 10
    with store.reader() as session:
        assert session.query(Consignment).count() == 0
        assert session.query(ConsignmentItem).count() == 0


def test_delete_closed_consignment_is_a_conflict(store, customer, product_p):
    consignment = _consign(store, customer.id, (product_p.id, 10))
    consignment_service.close_consignment(store, consignment["id"], settlement=[_settle(product_p.id, 6)])

    with pytest.raises(ConflictError):
        consignment_service.delete_consignment(store, consignment["id"])

    assert balance_of(store, product_p.id) == 94


def test_deleting_generated_sale_restores_pre_consignment_stock(store, customer, product_p):
    consignment = _consign(store, customer.id, (product_p.id, 20))
    sale = consignment_service.close_consignment(store, consignment["id"], settlement=[_settle(product_p.id, 15)])
    assert balance_of(store, product_p.id) == 85

    sales_service.delete_sale(store, sale.id)

    assert balance_of(store, product_p.id) == 100
    reloaded = consignment_service.get_consignment(store, consignment["id"])
    assert reloaded["status"] == "closed"
    assert reloaded["sale_id"] is None


def test_legacy_single_item_consignment(store, customer, product_p):
    with store.transaction() as session:
        legacy = Consignment(
            client_id=customer.id,
            status="Ativo",
            date=datetime(2025, 11, 2),
            product_id=product_p.id,
            quantity=4,
        )
        session.add(legacy)
        session.flush()
        resolved = resolve_lines(session, legacy)

    assert resolved.source == SOURCE_LEGACY
    assert [(l.product_id, l.quantity, l.price_cents, l.item_id) for l in resolved.lines] == [
        (product_p.id, 4, 1500, None),
    ]

    listed = consignment_service.list_consignments(store, status="open")
    assert [c["id"] for c in listed] == [legacy.id]
    assert listed[0]["items"][0]["quantity"] == 4

    sale = consignment_service.close_consignment(store, legacy.id, settlement=[_settle(product_p.id, 3)])

    assert [(i.product_id, i.quantity) for i in sale.items] == [(product_p.id, 3)]
    assert consignment_service.get_consignment(store, legacy.id)["status"] == "closed"
    # Withdrawal predates the ledger; only the unsold unit comes back
    assert balance_of(store, product_p.id) == 101


def test_multi_item_rows_resolve_as_items(store, customer, product_p):
    consignment = _consign(store, customer.id, (product_p.id, 3))
    with store.reader() as session:
        row = session.query(Consignment).filter_by(id=consignment["id"]).one()
        assert resolve_lines(session, row).source == SOURCE_ITEMS


def test_update_notes(store, customer, product_p):
    consignment = _consign(store, customer.id, (product_p.id, 3))
    updated = consignment_service.update_notes(store, consignment["id"], "Entregar na sexta")
    assert updated["notes"] == "Entregar na sexta"
    assert balance_of(store, product_p.id) == 97


def test_status_filter_accepts_legacy_names(store, customer, product_p):
    kept_open = _consign(store, customer.id, (product_p.id, 2))
    closed = _consign(store, customer.id, (product_p.id, 2))
    consignment_service.close_consignment(store, closed["id"], settlement=[_settle(product_p.id, 1)])

    assert [c["id"] for c in consignment_service.list_consignments(store, status="Ativo")] == [kept_open["id"]]
    assert [c["id"] for c in consignment_service.list_consignments(store, status="Em Aberto")] == [kept_open["id"]]
    assert [c["id"] for c in consignment_service.list_consignments(store, status="Encerrado")] == [closed["id"]]
