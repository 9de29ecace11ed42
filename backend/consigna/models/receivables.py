from __future__ import annotations

from ..extensions import db
from consigna.time_utils import to_utc_z, to_iso_date, utcnow

RECEIVABLE_PENDING = "pending"
RECEIVABLE_RECEIVED = "received"

_RECEIVABLE_STATUS_ALIASES = {
    "pendente": RECEIVABLE_PENDING,
    "pending": RECEIVABLE_PENDING,
    "recebido": RECEIVABLE_RECEIVED,
    "received": RECEIVABLE_RECEIVED,
}


def normalize_receivable_status(value: str | None) -> str:
    if value is None:
        return RECEIVABLE_PENDING
    return _RECEIVABLE_STATUS_ALIASES.get(str(value).strip().lower(), RECEIVABLE_PENDING)


class AccountReceivable(db.Model):
    """Money owed by a client; optionally linked to the sale that produced it."""
    __tablename__ = "accounts_receivable"
    __table_args__ = (
        db.Index("ix_accounts_receivable_due_status", "due_date", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)

    description = db.Column(db.String(255), nullable=True)
    value_cents = db.Column(db.Integer, nullable=False)
    due_date = db.Column(db.Date, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=RECEIVABLE_PENDING, index=True)
    received_date = db.Column(db.Date, nullable=True)
    payment_method = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def normalized_status(self) -> str:
        return normalize_receivable_status(self.status)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "description": self.description,
            "value_cents": self.value_cents,
            "due_date": to_iso_date(self.due_date),
            "status": self.normalized_status,
            "received_date": to_iso_date(self.received_date),
            "payment_method": self.payment_method,
            "notes": self.notes,
            "sale_id": self.sale_id,
            "created_at": to_utc_z(self.created_at),
        }
