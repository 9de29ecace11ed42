"""
Sales Service - sale creation, payment status and cancellation

A sale, its items, the outbound stock movements and the generated receivable
are written in one unit of work. Stock is validated per aggregated product
before anything is written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime

from sqlalchemy.exc import SQLAlchemyError

from ..models import Sale, SaleItem, Client, AccountReceivable, Consignment
from ..models.inventory import DIRECTION_INBOUND, DIRECTION_OUTBOUND, CATEGORY_SALE
from ..models.receivables import RECEIVABLE_PENDING
from ..models.sales import SALE_PENDING, SALE_PAID, normalize_sale_status
from ..validation import ValidationError, NotFoundError, check_price_cents, optional_text
from consigna.time_utils import utcnow, add_days
from .ledger_service import append_movement
from .stock_validator import aggregate_quantities, require_stock
from .receivable_service import DEFAULT_DUE_DAYS, create_from_transaction, find_for_sale, mark_received
from .store import StoreHandle, lock_for_update, run_in_transaction

logger = logging.getLogger(__name__)


@dataclass
class SaleUpdateResult:
    sale: Sale
    warnings: list[str] = field(default_factory=list)


def _require_client(session, client_id: int | None) -> None:
    if client_id is None:
        return
    if session.query(Client.id).filter_by(id=client_id).first() is None:
        raise NotFoundError(f"Client {client_id} not found")


def write_sale(
    session,
    *,
    client_id: int | None,
    lines: list[dict],
    sale_date: datetime,
    notes: str | None,
    user_id: int | None,
) -> Sale:
    """
    Persist a pending sale header, its items and one outbound/sale movement
    per item. Lines carry resolved price_cents; stock checks are the caller's.
    """
    items = []
    total_cents = 0
    for line in lines:
        subtotal = line["quantity"] * line["price_cents"]
        total_cents += subtotal
        items.append(SaleItem(
            product_id=line["product_id"],
            quantity=line["quantity"],
            price_cents=line["price_cents"],
            subtotal_cents=subtotal,
        ))

    sale = Sale(
        client_id=client_id,
        total_cents=total_cents,
        date=sale_date,
        status=SALE_PENDING,
        notes=notes,
        user_id=user_id,
        items=items,
    )
    session.add(sale)
    session.flush()

    for item in items:
        if item.quantity == 0:
            continue
        append_movement(
            session,
            product_id=item.product_id,
            direction=DIRECTION_OUTBOUND,
            quantity=item.quantity,
            category=CATEGORY_SALE,
            origin_id=sale.id,
            note=f"Sale #{sale.id}",
        )
    return sale


def create_sale(
    store: StoreHandle,
    *,
    items: list[dict],
    client_id: int | None = None,
    user_id: int | None = None,
    notes: str | None = None,
    sale_date: datetime | None = None,
    due_date: date | None = None,
    due_days: int = DEFAULT_DUE_DAYS,
) -> Sale:
    """
    Create a sale from validated line items ({product_id, quantity, price_cents|None}).

    Rejects the whole request when any aggregated product quantity exceeds
    its balance; no header, item or movement is written in that case.
    """
    if not items:
        raise ValidationError("At least one item is required")

    def _op(session):
        _require_client(session, client_id)
        products = require_stock(session, aggregate_quantities(items))

        lines = [
            {
                "product_id": line["product_id"],
                "quantity": line["quantity"],
                "price_cents": line["price_cents"] if line.get("price_cents") is not None
                else products[line["product_id"]].price_cents,
            }
            for line in items
        ]

        when = sale_date or utcnow()
        sale = write_sale(
            session,
            client_id=client_id,
            lines=lines,
            sale_date=when,
            notes=optional_text(notes),
            user_id=user_id,
        )

        create_from_transaction(
            session,
            client_id=client_id,
            description=f"Sale #{sale.id} - {len(lines)} item(s)",
            value_cents=sale.total_cents,
            due_date=due_date or add_days(when, due_days),
            sale_id=sale.id,
        )
        return sale

    sale = run_in_transaction(store, _op)
    logger.info("Sale %s created: %d item(s), total %d cents", sale.id, len(sale.items), sale.total_cents)
    return sale


def get_sale(store: StoreHandle, sale_id: int) -> dict:
    with store.reader() as session:
        sale = session.query(Sale).filter_by(id=sale_id).first()
        if sale is None:
            raise NotFoundError("Sale not found")
        data = sale.to_dict()
        account = session.query(AccountReceivable.due_date).filter_by(sale_id=sale_id).first()
        data["account_due_date"] = account[0].isoformat() if account else None
        return data


def list_sales(store: StoreHandle) -> list[dict]:
    """All sales newest first, each with the due date of its linked receivable."""
    with store.reader() as session:
        sales = session.query(Sale).order_by(Sale.date.desc(), Sale.id.desc()).all()
        due_dates = dict(
            session.query(AccountReceivable.sale_id, AccountReceivable.due_date)
            .filter(AccountReceivable.sale_id.isnot(None))
            .all()
        )
        result = []
        for sale in sales:
            data = sale.to_dict()
            due = due_dates.get(sale.id)
            data["account_due_date"] = due.isoformat() if due else None
            result.append(data)
        return result


def _sync_receivable_paid(session, sale_id: int, payment_method: str | None) -> list[str]:
    """
    Mark the sale's pending receivable(s) received.

    Best-effort: runs in a SAVEPOINT, and any failure is returned as a
    warning instead of failing the status change.
    """
    warnings = []
    try:
        with session.begin_nested():
            linked = find_for_sale(session, sale_id)
            pending = [r for r in linked if r.normalized_status == RECEIVABLE_PENDING]
            if not pending:
                warnings.append(f"No pending receivable linked to sale #{sale_id}")
            for receivable in pending:
                mark_received(receivable, payment_method=payment_method)
            session.flush()
    except SQLAlchemyError as exc:
        warnings.append(f"Could not update receivable for sale #{sale_id}: {exc}")

    for message in warnings:
        logger.warning(message)
    return warnings


def update_sale(
    store: StoreHandle,
    sale_id: int,
    *,
    status: str | None = None,
    payment_method: str | None = None,
    total_cents: int | None = None,
) -> SaleUpdateResult:
    """
    Change status / payment method / total of a sale.

    Moving to paid also settles the linked receivable (best-effort).
    """
    new_status = None
    if status is not None:
        new_status = normalize_sale_status(status)
        if new_status is None:
            raise ValidationError(f"Invalid sale status: {status}")
    if total_cents is not None:
        check_price_cents(total_cents, "total")

    def _op(session):
        sale = lock_for_update(session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise NotFoundError("Sale not found")

        warnings = []
        if new_status is not None:
            sale.status = new_status
            if new_status == SALE_PAID:
                warnings = _sync_receivable_paid(session, sale.id, payment_method)
        if payment_method is not None:
            sale.payment_method = payment_method
        if total_cents is not None:
            sale.total_cents = total_cents

        session.flush()
        sale.items  # load before the session closes
        return SaleUpdateResult(sale=sale, warnings=warnings)

    result = run_in_transaction(store, _op)
    logger.info("Sale %s updated (status=%s)", sale_id, result.sale.normalized_status)
    return result


def delete_sale(store: StoreHandle, sale_id: int) -> None:
    """
    Cancel a sale: restore its stock with compensating movements, drop the
    linked receivable, then the items and header.
    """
    def _op(session):
        sale = lock_for_update(session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise NotFoundError("Sale not found")

        for item in sale.items:
            if item.quantity == 0:
                continue
            append_movement(
                session,
                product_id=item.product_id,
                direction=DIRECTION_INBOUND,
                quantity=item.quantity,
                category=CATEGORY_SALE,
                origin_id=sale.id,
                note=f"Cancellation of sale #{sale.id}",
                is_reversal=True,
            )

        for receivable in find_for_sale(session, sale.id):
            session.delete(receivable)

        # A closed consignment keeps its realized figures but loses the link
        for consignment in session.query(Consignment).filter_by(sale_id=sale.id).all():
            consignment.sale_id = None
        session.flush()

        session.delete(sale)
        session.flush()

    run_in_transaction(store, _op)
    logger.info("Sale %s deleted", sale_id)
