from __future__ import annotations

from ..extensions import db
from consigna.time_utils import to_utc_z, utcnow

CONSIGNMENT_OPEN = "open"
CONSIGNMENT_CLOSED = "closed"

_OPEN_ALIASES = {"open", "ativo", "em aberto", "aberto", "active"}
_CLOSED_ALIASES = {"closed", "encerrado", "fechado"}


def normalize_consignment_status(value: str | None) -> str:
    """
    Legacy rows carry free-form status strings.

    Absent or open-like values are open; anything else that is not a known
    closed value is treated as open as well, since only close() writes the
    closed state.
    """
    if value is None:
        return CONSIGNMENT_OPEN
    key = str(value).strip().lower()
    if key in _CLOSED_ALIASES:
        return CONSIGNMENT_CLOSED
    return CONSIGNMENT_OPEN


class Consignment(db.Model):
    """
    Goods handed to a client without an immediate sale.

    LEGACY SHAPE:
    Older installations stored exactly one product per consignment directly on
    the header (product_id, quantity). New writes never fill those columns;
    services.consignment_lines resolves both shapes into ConsignmentLine.
    """
    __tablename__ = "consignments"
    __table_args__ = (
        db.Index("ix_consignments_client_status", "client_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=True, default=CONSIGNMENT_OPEN, index=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    notes = db.Column(db.Text, nullable=True)
    user_id = db.Column(db.Integer, nullable=True)

    # Legacy single-item header fields (read-only for new code)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    quantity = db.Column(db.Integer, nullable=True)

    # Filled once, at close
    closed_quantity = db.Column(db.Integer, nullable=True)
    closed_total_cents = db.Column(db.Integer, nullable=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)

    client = db.relationship("Client")
    items = db.relationship(
        "ConsignmentItem",
        back_populates="consignment",
        order_by="ConsignmentItem.id",
        cascade="all, delete-orphan",
    )

    @property
    def normalized_status(self) -> str:
        return normalize_consignment_status(self.status)

    @property
    def is_open(self) -> bool:
        return self.normalized_status == CONSIGNMENT_OPEN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "status": self.normalized_status,
            "date": to_utc_z(self.date),
            "notes": self.notes,
            "user_id": self.user_id,
            "closed_quantity": self.closed_quantity,
            "closed_total_cents": self.closed_total_cents,
            "sale_id": self.sale_id,
        }


class ConsignmentItem(db.Model):
    __tablename__ = "consignment_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_consignment_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    consignment_id = db.Column(db.Integer, db.ForeignKey("consignments.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    consignment = db.relationship("Consignment", back_populates="items")
    product = db.relationship("Product")
