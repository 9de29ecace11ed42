from __future__ import annotations

from ..extensions import db
from consigna.time_utils import to_utc_z, utcnow


class Client(db.Model):
    """
    Client master data.

    Created and edited by the external client CRUD; this backend only reads
    it to validate references and to embed it in consignment responses.
    """
    __tablename__ = "clients"
    __table_args__ = (
        db.Index("ix_clients_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Client id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data.

    STOCK IS NOT A FIELD OF TRUTH:
    - Current stock is derived from stock_movements (see ledger_service).
    - legacy_stock maps the old "stock" counter column. It is only consulted
      for products that have no ledger history at all.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_active_name", "active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(16), nullable=False, default="un")

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    legacy_stock = db.Column("stock", db.Integer, nullable=False, default=0)

    is_active = db.Column("active", db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r}>"

    def to_dict(self, stock: int | None = None) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "unit": self.unit,
            "price_cents": self.price_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if stock is not None:
            data["stock"] = stock
        return data
