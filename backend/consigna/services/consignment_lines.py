# Overview: Normalizes both consignment item shapes into one line type at the data-access boundary.

from __future__ import annotations

from dataclasses import dataclass

from ..models import Consignment, Product

SOURCE_ITEMS = "items"
SOURCE_LEGACY = "legacy"


@dataclass(frozen=True)
class ConsignmentLine:
    """
    One product handed to the client.

    item_id is None for the line synthesized from a legacy single-item header.
    """
    product_id: int
    quantity: int
    price_cents: int
    subtotal_cents: int
    item_id: int | None = None
    product_name: str | None = None
    product_unit: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.item_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_unit": self.product_unit,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "subtotal_cents": self.subtotal_cents,
        }


@dataclass(frozen=True)
class ResolvedLines:
    source: str
    lines: tuple[ConsignmentLine, ...]


def resolve_lines(session, consignment: Consignment) -> ResolvedLines:
    """
    Item rows win. A header with no item rows but legacy product_id/quantity
    yields exactly one synthesized line priced at the product's current
    price; anything else has no lines.
    """
    if consignment.items:
        return ResolvedLines(
            source=SOURCE_ITEMS,
            lines=tuple(
                ConsignmentLine(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    price_cents=item.price_cents,
                    subtotal_cents=item.subtotal_cents,
                    item_id=item.id,
                    product_name=item.product.name if item.product else None,
                    product_unit=item.product.unit if item.product else None,
                )
                for item in consignment.items
            ),
        )

    if consignment.product_id is not None and consignment.quantity and consignment.quantity > 0:
        product = session.query(Product).filter_by(id=consignment.product_id).first()
        price = product.price_cents if product else 0
        return ResolvedLines(
            source=SOURCE_LEGACY,
            lines=(
                ConsignmentLine(
                    product_id=consignment.product_id,
                    quantity=consignment.quantity,
                    price_cents=price,
                    subtotal_cents=price * consignment.quantity,
                    product_name=product.name if product else None,
                    product_unit=product.unit if product else None,
                ),
            ),
        )

    return ResolvedLines(source=SOURCE_ITEMS, lines=())
