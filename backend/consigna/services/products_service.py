# Overview: Read-side product operations; every stock figure comes from the ledger.

from __future__ import annotations

from ..models import Product
from ..validation import NotFoundError
from .ledger_service import get_balance, list_movements
from .store import StoreHandle


def list_products(store: StoreHandle, *, include_inactive: bool = False) -> list[dict]:
    with store.reader() as session:
        query = session.query(Product)
        if not include_inactive:
            query = query.filter(Product.is_active.is_(True))
        products = query.order_by(Product.created_at.desc(), Product.id.desc()).all()
        return [p.to_dict(stock=get_balance(session, p.id)) for p in products]


def get_product(store: StoreHandle, product_id: int) -> dict:
    with store.reader() as session:
        product = session.query(Product).filter_by(id=product_id).first()
        if product is None:
            raise NotFoundError("Product not found")
        return product.to_dict(stock=get_balance(session, product.id))


def product_movements(store: StoreHandle, product_id: int, *, limit: int | None = None) -> list[dict]:
    """Movement history of one product, most recent first."""
    with store.reader() as session:
        if session.query(Product.id).filter_by(id=product_id).first() is None:
            raise NotFoundError("Product not found")
        return [m.to_dict() for m in list_movements(session, product_id, limit=limit)]
