"""
Consignment Service - lifecycle of goods handed to a client

States: open -> closed (terminal). Legacy status strings are normalized by
the model; an absent status is open.

Ledger effects:
- create: outbound/consignment per item (stock leaves with the client).
- delete (open only): inbound/consignment reversal of every item.
- close: per item, the consignment withdrawal is unwound and the sale takes
  over the sold units:
    inbound/consignment  quantity_sold        (settled into the sale)
    inbound/consignment  quantity - sold      (unsold return, reversal)
    outbound/sale        quantity_sold        (the generated sale)
  so from the moment before the consignment existed the net effect is a
  withdrawal of exactly quantity_sold, and deleting the generated sale later
  restores those units like any other sale.
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from ..models import Consignment, ConsignmentItem, Client, Sale
from ..models.consignments import CONSIGNMENT_OPEN, CONSIGNMENT_CLOSED, normalize_consignment_status
from ..models.inventory import DIRECTION_INBOUND, DIRECTION_OUTBOUND, CATEGORY_CONSIGNMENT
from ..validation import ValidationError, NotFoundError, ConflictError, optional_text
from consigna.time_utils import utcnow, add_days
from .consignment_lines import ConsignmentLine, resolve_lines
from .ledger_service import append_movement
from .receivable_service import DEFAULT_DUE_DAYS, create_from_transaction
from .sales_service import write_sale
from .stock_validator import aggregate_quantities, require_stock
from .store import StoreHandle, lock_for_update, run_in_transaction

logger = logging.getLogger(__name__)


def _load(session, consignment_id: int, *, lock: bool = False) -> Consignment:
    query = session.query(Consignment).filter_by(id=consignment_id)
    if lock:
        query = lock_for_update(query)
    consignment = query.first()
    if consignment is None:
        raise NotFoundError("Consignment not found")
    return consignment


def _serialize(session, consignment: Consignment) -> dict:
    data = consignment.to_dict()
    data["items"] = [line.to_dict() for line in resolve_lines(session, consignment).lines]
    data["client"] = consignment.client.to_dict() if consignment.client else None
    return data


def create_consignment(
    store: StoreHandle,
    *,
    client_id: int | None,
    items: list[dict],
    notes: str | None = None,
    user_id: int | None = None,
) -> dict:
    """
    Hand goods to a client.

    Stock is validated per aggregated product exactly like a sale; the header
    is always written in the multi-item shape.
    """
    if client_id is None:
        raise ValidationError("client_id is required")
    if not items:
        raise ValidationError("At least one item is required")

    def _op(session):
        if session.query(Client.id).filter_by(id=client_id).first() is None:
            raise NotFoundError(f"Client {client_id} not found")
        products = require_stock(session, aggregate_quantities(items))

        consignment = Consignment(
            client_id=client_id,
            status=CONSIGNMENT_OPEN,
            date=utcnow(),
            notes=optional_text(notes),
            user_id=user_id,
        )
        for line in items:
            price = line["price_cents"] if line.get("price_cents") is not None \
                else products[line["product_id"]].price_cents
            consignment.items.append(ConsignmentItem(
                product_id=line["product_id"],
                quantity=line["quantity"],
                price_cents=price,
                subtotal_cents=line["quantity"] * price,
            ))
        session.add(consignment)
        session.flush()

        for item in consignment.items:
            append_movement(
                session,
                product_id=item.product_id,
                direction=DIRECTION_OUTBOUND,
                quantity=item.quantity,
                category=CATEGORY_CONSIGNMENT,
                origin_id=consignment.id,
                note=f"Consignment #{consignment.id}",
            )
        return _serialize(session, consignment)

    result = run_in_transaction(store, _op)
    logger.info("Consignment %s created for client %s: %d item(s)", result["id"], client_id, len(result["items"]))
    return result


def _match_settlement(lines: tuple[ConsignmentLine, ...], settlement: list[dict]) -> list[tuple[ConsignmentLine, dict]]:
    """
    Pair every consignment line with exactly one settlement entry.

    Entries carrying item_id match that item; the rest match the first
    still-unsettled line of the same product.
    """
    remaining = list(lines)
    pairs = []
    for entry in settlement:
        match = None
        for line in remaining:
            if entry.get("item_id") is not None:
                if line.item_id == entry["item_id"]:
                    match = line
                    break
            elif line.product_id == entry["product_id"]:
                match = line
                break
        if match is None:
            ref = entry.get("item_id") or entry.get("product_id")
            raise ValidationError(f"Product {ref} not found in consignment")
        remaining.remove(match)
        pairs.append((match, entry))

    if remaining:
        raise ValidationError(
            "Every consignment item must be settled",
            details=[{"product_id": line.product_id, "quantity": line.quantity} for line in remaining],
        )

    for line, entry in pairs:
        if entry["quantity_sold"] < 0:
            raise ValidationError("quantity_sold must be >= 0")
        if entry["quantity_sold"] > line.quantity:
            raise ValidationError(
                f"quantity_sold ({entry['quantity_sold']}) cannot exceed the consigned quantity ({line.quantity})",
                details={"product_id": line.product_id, "quantity": line.quantity,
                         "quantity_sold": entry["quantity_sold"]},
            )
    return pairs


def close_consignment(
    store: StoreHandle,
    consignment_id: int,
    *,
    settlement: list[dict],
    due_date: date | None = None,
    notes: str | None = None,
    sale_date: datetime | None = None,
    due_days: int = DEFAULT_DUE_DAYS,
) -> Sale:
    """
    Settle an open consignment into a pending sale plus the return of the
    unsold units. All-or-nothing; returns the generated sale.
    """
    def _op(session):
        consignment = _load(session, consignment_id, lock=True)
        if not consignment.is_open:
            raise ConflictError("Only open consignments can be closed")

        lines = resolve_lines(session, consignment).lines
        if not lines:
            raise ValidationError("Consignment has no items to settle")

        pairs = _match_settlement(lines, settlement)

        sale_lines = []
        for line, entry in pairs:
            price = entry["price_cents"] if entry.get("price_cents") is not None else line.price_cents
            sale_lines.append({
                "product_id": line.product_id,
                "quantity": entry["quantity_sold"],
                "price_cents": price,
            })

        total_cents = sum(l["quantity"] * l["price_cents"] for l in sale_lines)
        if total_cents <= 0:
            raise ValidationError("Settlement total must be greater than zero")

        when = sale_date or utcnow()
        sale = write_sale(
            session,
            client_id=consignment.client_id,
            lines=sale_lines,
            sale_date=when,
            notes=f"Sale generated from consignment #{consignment.id}",
            user_id=consignment.user_id,
        )

        closed_quantity = 0
        for line, entry in pairs:
            sold = entry["quantity_sold"]
            difference = line.quantity - sold
            if sold > 0:
                append_movement(
                    session,
                    product_id=line.product_id,
                    direction=DIRECTION_INBOUND,
                    quantity=sold,
                    category=CATEGORY_CONSIGNMENT,
                    origin_id=consignment.id,
                    note=f"Consignment #{consignment.id} settled by sale #{sale.id}",
                )
            if difference > 0:
                append_movement(
                    session,
                    product_id=line.product_id,
                    direction=DIRECTION_INBOUND,
                    quantity=difference,
                    category=CATEGORY_CONSIGNMENT,
                    origin_id=consignment.id,
                    note=f"Return of unsold goods from consignment #{consignment.id}",
                    is_reversal=True,
                )
            closed_quantity += sold

        create_from_transaction(
            session,
            client_id=consignment.client_id,
            description=f"Sale #{sale.id} - Consignment #{consignment.id} - {len(sale_lines)} item(s)",
            value_cents=total_cents,
            due_date=due_date or add_days(when, due_days),
            sale_id=sale.id,
        )

        consignment.status = CONSIGNMENT_CLOSED
        consignment.closed_quantity = closed_quantity
        consignment.closed_total_cents = total_cents
        consignment.sale_id = sale.id
        replacement_notes = optional_text(notes)
        if replacement_notes:
            consignment.notes = replacement_notes
        session.flush()
        return sale

    sale = run_in_transaction(store, _op)
    logger.info("Consignment %s closed into sale %s (total %d cents)", consignment_id, sale.id, sale.total_cents)
    return sale


def delete_consignment(store: StoreHandle, consignment_id: int) -> None:
    """
    Cancel an open consignment: every withdrawn unit goes back to stock,
    then items and header are removed. Closed consignments are permanent.
    """
    def _op(session):
        consignment = _load(session, consignment_id, lock=True)
        if not consignment.is_open:
            raise ConflictError("Closed consignments cannot be deleted")

        for line in resolve_lines(session, consignment).lines:
            append_movement(
                session,
                product_id=line.product_id,
                direction=DIRECTION_INBOUND,
                quantity=line.quantity,
                category=CATEGORY_CONSIGNMENT,
                origin_id=consignment.id,
                note=f"Cancellation of consignment #{consignment.id}",
                is_reversal=True,
            )

        session.delete(consignment)
        session.flush()

    run_in_transaction(store, _op)
    logger.info("Consignment %s deleted", consignment_id)


def update_notes(store: StoreHandle, consignment_id: int, notes: str | None) -> dict:
    def _op(session):
        consignment = _load(session, consignment_id, lock=True)
        consignment.notes = optional_text(notes)
        session.flush()
        return _serialize(session, consignment)

    return run_in_transaction(store, _op)


def get_consignment(store: StoreHandle, consignment_id: int) -> dict:
    with store.reader() as session:
        return _serialize(session, _load(session, consignment_id))


def list_consignments(store: StoreHandle, *, status: str | None = None) -> list[dict]:
    with store.reader() as session:
        rows = session.query(Consignment).order_by(Consignment.date.desc(), Consignment.id.desc()).all()
        result = [_serialize(session, row) for row in rows]
    if status:
        wanted = normalize_consignment_status(status)
        result = [row for row in result if row["status"] == wanted]
    return result
