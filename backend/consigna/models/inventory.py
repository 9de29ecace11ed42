from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from consigna.time_utils import to_utc_z, utcnow

"""
Stock ledger invariants (authoritative)

- stock_movements is append-only: rows are never updated or deleted.
- quantity is always > 0; the sign comes from direction.
- stock(product) = SUM(inbound.quantity) - SUM(outbound.quantity).
- stock_balances caches that sum per product and is written in the same
  DB transaction as the movement that changes it.
"""

DIRECTION_INBOUND = "inbound"
DIRECTION_OUTBOUND = "outbound"
DIRECTIONS = (DIRECTION_INBOUND, DIRECTION_OUTBOUND)

CATEGORY_PRODUCTION = "production"
CATEGORY_SALE = "sale"
CATEGORY_CONSIGNMENT = "consignment"
CATEGORY_ADJUSTMENT = "adjustment"
CATEGORIES = (CATEGORY_PRODUCTION, CATEGORY_SALE, CATEGORY_CONSIGNMENT, CATEGORY_ADJUSTMENT)


class StockMovement(db.Model):
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.Index("ix_stock_movements_origin", "category", "origin_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    direction = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    category = db.Column(db.String(32), nullable=False)
    origin_id = db.Column(db.Integer, nullable=True)

    # Compensating entry (cancellation or unsold consignment return)
    is_reversal = db.Column(db.Boolean, nullable=False, default=False)

    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "direction": self.direction,
            "quantity": self.quantity,
            "category": self.category,
            "origin_id": self.origin_id,
            "is_reversal": self.is_reversal,
            "note": self.note,
            "date": to_utc_z(self.created_at),
        }


@event.listens_for(StockMovement, "before_update")
def _refuse_movement_update(mapper, connection, target):
    raise ValueError("stock movements are immutable; append a compensating movement instead")


@event.listens_for(StockMovement, "before_delete")
def _refuse_movement_delete(mapper, connection, target):
    raise ValueError("stock movements are never deleted; append a compensating movement instead")


class StockBalance(db.Model):
    """Incrementally maintained SUM over stock_movements, one row per product."""
    __tablename__ = "stock_balances"

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), primary_key=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
