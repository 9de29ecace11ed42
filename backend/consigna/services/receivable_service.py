# Overview: Service-layer operations for accounts receivable.

from __future__ import annotations

import logging
from datetime import date

from ..models import AccountReceivable, Client
from ..models.receivables import RECEIVABLE_PENDING, RECEIVABLE_RECEIVED, normalize_receivable_status
from ..validation import ValidationError, NotFoundError, ConflictError, optional_text
from consigna.time_utils import today
from .store import StoreHandle, run_in_transaction

logger = logging.getLogger(__name__)

DEFAULT_DUE_DAYS = 30


def create_from_transaction(
    session,
    *,
    client_id: int | None,
    description: str | None,
    value_cents: int | None,
    due_date: date | None,
    sale_id: int | None = None,
    notes: str | None = None,
) -> AccountReceivable:
    """
    Insert a pending receivable.

    Pure insert: no stock interaction and no de-duplication. Callers that
    need idempotence must check for an existing row themselves.
    """
    if value_cents is None:
        raise ValidationError("value is required")
    if due_date is None:
        raise ValidationError("due_date is required")

    receivable = AccountReceivable(
        client_id=client_id,
        description=description,
        value_cents=value_cents,
        due_date=due_date,
        status=RECEIVABLE_PENDING,
        sale_id=sale_id,
        notes=notes,
    )
    session.add(receivable)
    session.flush()
    return receivable


def find_for_sale(session, sale_id: int) -> list[AccountReceivable]:
    return session.query(AccountReceivable).filter_by(sale_id=sale_id).order_by(AccountReceivable.id).all()


def mark_received(receivable: AccountReceivable, *, payment_method: str | None, received_on: date | None = None) -> None:
    receivable.status = RECEIVABLE_RECEIVED
    receivable.received_date = received_on or today()
    if payment_method:
        receivable.payment_method = payment_method


def list_receivables(store: StoreHandle, *, status: str | None = None) -> list[dict]:
    with store.reader() as session:
        rows = session.query(AccountReceivable).order_by(AccountReceivable.due_date.asc(), AccountReceivable.created_at.desc()).all()
        items = [row.to_dict() for row in rows]
    if status:
        wanted = normalize_receivable_status(status)
        items = [item for item in items if item["status"] == wanted]
    return items


def get_receivable(store: StoreHandle, receivable_id: int) -> dict:
    with store.reader() as session:
        receivable = session.query(AccountReceivable).filter_by(id=receivable_id).first()
        if receivable is None:
            raise NotFoundError("Receivable not found")
        return receivable.to_dict()


def create_receivable(
    store: StoreHandle,
    *,
    client_id: int | None,
    description: str | None,
    value_cents: int | None,
    due_date: date | None,
    notes: str | None = None,
) -> dict:
    """Manually entered receivable (not linked to a sale)."""
    def _op(session):
        if client_id is not None and session.query(Client.id).filter_by(id=client_id).first() is None:
            raise NotFoundError(f"Client {client_id} not found")
        receivable = create_from_transaction(
            session,
            client_id=client_id,
            description=optional_text(description),
            value_cents=value_cents,
            due_date=due_date,
            notes=optional_text(notes),
        )
        return receivable.to_dict()

    return run_in_transaction(store, _op)


def receive(store: StoreHandle, receivable_id: int, *, payment_method: str | None = None,
            received_on: date | None = None) -> dict:
    def _op(session):
        receivable = session.query(AccountReceivable).filter_by(id=receivable_id).first()
        if receivable is None:
            raise NotFoundError("Receivable not found")
        if receivable.normalized_status == RECEIVABLE_RECEIVED:
            raise ConflictError("Receivable already received")
        mark_received(receivable, payment_method=payment_method, received_on=received_on)
        session.flush()
        return receivable.to_dict()

    result = run_in_transaction(store, _op)
    logger.info("Receivable %s marked received", receivable_id)
    return result
