from __future__ import annotations

from ..extensions import db
from consigna.time_utils import to_utc_z, utcnow

SALE_PENDING = "pending"
SALE_PAID = "paid"

# Status strings written by older installations
_SALE_STATUS_ALIASES = {
    "pendente": SALE_PENDING,
    "pending": SALE_PENDING,
    "pago": SALE_PAID,
    "paga": SALE_PAID,
    "paid": SALE_PAID,
}


def normalize_sale_status(value: str | None) -> str | None:
    """Map a stored or requested status to pending/paid; None if unknown."""
    if value is None or not str(value).strip():
        return SALE_PENDING
    return _SALE_STATUS_ALIASES.get(str(value).strip().lower())


class Sale(db.Model):
    """
    Sale header.

    Created either directly (create_sale) or by closing a consignment.
    Total is the sum of item subtotals at creation time.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_date", "date"),
        db.Index("ix_sales_client_status", "client_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)

    total_cents = db.Column(db.Integer, nullable=False, default=0)
    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    status = db.Column(db.String(16), nullable=False, default=SALE_PENDING, index=True)
    payment_method = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # Owning user (managed by the external auth layer)
    user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    client = db.relationship("Client")
    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        order_by="SaleItem.id",
        cascade="all, delete-orphan",
    )

    @property
    def normalized_status(self) -> str:
        return normalize_sale_status(self.status) or self.status

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "total_cents": self.total_cents,
            "date": to_utc_z(self.date),
            "status": self.normalized_status,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


class SaleItem(db.Model):
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_sale_items_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "subtotal_cents": self.subtotal_cents,
        }
