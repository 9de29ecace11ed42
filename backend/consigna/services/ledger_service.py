# Overview: Service-layer operations for the stock ledger; append-only movements and derived balances.

from __future__ import annotations

import logging

from sqlalchemy import case, func

from ..models import Product, StockMovement, StockBalance
from ..models.inventory import (
    DIRECTIONS,
    CATEGORIES,
    DIRECTION_INBOUND,
    DIRECTION_OUTBOUND,
    CATEGORY_PRODUCTION,
    CATEGORY_ADJUSTMENT,
)
from ..validation import ValidationError, NotFoundError
from .store import StoreHandle, lock_for_update, run_in_transaction
"""
Stock Ledger Invariants (authoritative)

- Inventory is ledger-derived from StockMovement rows; Product carries no
  stock field of truth.
- Balance(p) = SUM(inbound.quantity) - SUM(outbound.quantity).
- Movements are written inside the same DB transaction as the domain records
  that cause them, and are never updated or deleted.
- Corrections (cancellations, unsold consignment returns) are new inbound
  movements flagged is_reversal.
- StockBalance mirrors the sum; it is bumped on every append so reads stay
  O(1). When a product has movements but no cache row (rows written before the
  cache existed) the sum is computed and the row seeded. When a product has no
  movements at all, the legacy products.stock counter is reported.
"""

logger = logging.getLogger(__name__)

_SIGNED_QUANTITY = case(
    (StockMovement.direction == DIRECTION_INBOUND, StockMovement.quantity),
    else_=-StockMovement.quantity,
)


def get_product(session, product_id: int, *, lock: bool = False) -> Product:
    query = session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def append_movement(
    session,
    *,
    product_id: int,
    direction: str,
    quantity: int,
    category: str,
    origin_id: int | None = None,
    note: str | None = None,
    is_reversal: bool = False,
) -> StockMovement:
    """
    Append one immutable movement and bump the cached balance.

    No commit here; the caller owns the unit of work.
    """
    if direction not in DIRECTIONS:
        raise ValidationError(f"Invalid movement direction: {direction}")
    if category not in CATEGORIES:
        raise ValidationError(f"Invalid movement category: {category}")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Movement quantity must be a positive integer")

    # Seed the cache from history before this movement lands in it
    balance_row = _balance_row(session, product_id)

    movement = StockMovement(
        product_id=product_id,
        direction=direction,
        quantity=quantity,
        category=category,
        origin_id=origin_id,
        note=note,
        is_reversal=is_reversal,
    )
    session.add(movement)

    balance_row.quantity += quantity if direction == DIRECTION_INBOUND else -quantity
    session.flush()
    return movement


def ledger_sum(session, product_id: int) -> tuple[int, int]:
    """(movement count, signed sum) straight from stock_movements."""
    row = session.query(
        func.count(StockMovement.id),
        func.coalesce(func.sum(_SIGNED_QUANTITY), 0),
    ).filter(StockMovement.product_id == product_id).one()
    return int(row[0] or 0), int(row[1] or 0)


def _balance_row(session, product_id: int) -> StockBalance:
    row = lock_for_update(session.query(StockBalance).filter_by(product_id=product_id)).first()
    if row is not None:
        return row

    count, total = ledger_sum(session, product_id)
    if count == 0:
        legacy = int(session.query(Product.legacy_stock).filter_by(id=product_id).scalar() or 0)
        if legacy > 0:
            # First ledger write for a counter-only product: carry the counter over
            session.add(StockMovement(
                product_id=product_id,
                direction=DIRECTION_INBOUND,
                quantity=legacy,
                category=CATEGORY_ADJUSTMENT,
                note="Opening balance from legacy stock counter",
            ))
            total = legacy

    row = StockBalance(product_id=product_id, quantity=total)
    session.add(row)
    session.flush()
    return row


def get_balance(session, product_id: int) -> int:
    """
    Current stock of a product.

    Reads the cached balance; falls back to the ledger sum, then to the
    legacy counter for products that never had a movement.
    """
    cached = session.query(StockBalance.quantity).filter_by(product_id=product_id).scalar()
    if cached is not None:
        return int(cached)

    count, total = ledger_sum(session, product_id)
    if count:
        return total

    legacy = session.query(Product.legacy_stock).filter_by(id=product_id).scalar()
    return int(legacy or 0)


def list_movements(session, product_id: int, limit: int | None = None) -> list[StockMovement]:
    """Movement history, most recent first."""
    query = session.query(StockMovement).filter_by(product_id=product_id).order_by(
        StockMovement.created_at.desc(),
        StockMovement.id.desc(),
    )
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def rebuild_balances(session) -> int:
    """Recompute every cached balance from the ledger. Returns rows written."""
    totals = dict(
        session.query(StockMovement.product_id, func.sum(_SIGNED_QUANTITY))
        .group_by(StockMovement.product_id)
        .all()
    )
    session.query(StockBalance).delete()
    for product_id, total in totals.items():
        session.add(StockBalance(product_id=product_id, quantity=int(total or 0)))
    session.flush()
    return len(totals)


def find_balance_drift(session) -> list[dict]:
    """Products whose cached balance disagrees with the ledger sum."""
    drift = []
    for row in session.query(StockBalance).order_by(StockBalance.product_id).all():
        _, total = ledger_sum(session, row.product_id)
        if total != row.quantity:
            drift.append({"product_id": row.product_id, "cached": row.quantity, "ledger": total})
    return drift


def add_stock(store: StoreHandle, *, product_id: int, quantity: int, note: str | None = None) -> dict:
    """
    Replenish stock from production (inbound/production movement).
    """
    def _op(session):
        get_product(session, product_id, lock=True)
        movement = append_movement(
            session,
            product_id=product_id,
            direction=DIRECTION_INBOUND,
            quantity=quantity,
            category=CATEGORY_PRODUCTION,
            note=note or "Stock added",
        )
        return {"movement": movement.to_dict(), "stock": get_balance(session, product_id)}

    result = run_in_transaction(store, _op)
    logger.info("Added %s units of product %s", quantity, product_id)
    return result


def adjust_stock(store: StoreHandle, *, product_id: int, quantity_delta: int, note: str | None = None) -> dict:
    """
    Manual correction: positive delta appends inbound, negative appends
    outbound. Outbound adjustments may not take stock below zero.
    """
    from .stock_validator import require_stock

    if quantity_delta == 0:
        raise ValidationError("quantity_delta must be non-zero")

    def _op(session):
        get_product(session, product_id, lock=True)
        if quantity_delta < 0:
            require_stock(session, {product_id: -quantity_delta})
        movement = append_movement(
            session,
            product_id=product_id,
            direction=DIRECTION_INBOUND if quantity_delta > 0 else DIRECTION_OUTBOUND,
            quantity=abs(quantity_delta),
            category=CATEGORY_ADJUSTMENT,
            note=note or "Manual adjustment",
        )
        return {"movement": movement.to_dict(), "stock": get_balance(session, product_id)}

    result = run_in_transaction(store, _op)
    logger.info("Adjusted product %s by %s", product_id, quantity_delta)
    return result
