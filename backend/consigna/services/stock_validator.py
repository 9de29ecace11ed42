# Overview: Pre-flight stock checks run before any outbound movement is written.

from __future__ import annotations

from dataclasses import dataclass

from ..models import Product
from ..validation import InsufficientStockError, NotFoundError
from .ledger_service import get_balance
from .store import lock_for_update


@dataclass(frozen=True)
class StockCheck:
    product_id: int
    available: int
    required: int

    @property
    def ok(self) -> bool:
        return self.available >= self.required

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "ok": self.ok,
            "available": self.available,
            "required": self.required,
        }


def check_stock(session, product_id: int, required: int) -> StockCheck:
    """Compare one requested withdrawal with the ledger-derived balance."""
    return StockCheck(
        product_id=product_id,
        available=get_balance(session, product_id),
        required=required,
    )


def aggregate_quantities(lines) -> dict[int, int]:
    """
    Sum requested quantities per product.

    Two lines asking for 5 units each of the same product are one request
    for 10.
    """
    totals: dict[int, int] = {}
    for line in lines:
        totals[line["product_id"]] = totals.get(line["product_id"], 0) + line["quantity"]
    return totals


def require_stock(session, product_totals: dict[int, int]) -> dict[int, Product]:
    """
    Lock every product involved, then check each aggregated total.

    Raises NotFoundError for unknown products and InsufficientStockError
    listing every failing product. Returns the locked products by id.
    """
    products: dict[int, Product] = {}
    # Stable lock order avoids deadlocks between concurrent requests
    for product_id in sorted(product_totals):
        product = lock_for_update(session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        products[product_id] = product

    failures = []
    for product_id in sorted(product_totals):
        result = check_stock(session, product_id, product_totals[product_id])
        if not result.ok:
            failures.append({
                "product_id": product_id,
                "product_name": products[product_id].name,
                "required": result.required,
                "available": result.available,
            })

    if failures:
        raise InsufficientStockError(failures)
    return products
