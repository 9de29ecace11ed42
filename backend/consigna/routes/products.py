# Overview: Flask API routes for product stock; parses input and returns JSON responses.

# backend/consigna/routes/products.py
"""
Product stock routes.

Product CRUD lives outside this service; these routes read products with
their ledger-derived stock and append production/adjustment movements.
"""
from flask import Blueprint, request, jsonify

from ..services import products_service, ledger_service
from ..validation import ValidationError, coerce_int, optional_text
from ..decorators import current_store, json_errors

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@json_errors("list products")
def list_products_route():
    """
    Query params:
    - include_inactive: "true" to list deactivated products too
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    return jsonify(products_service.list_products(current_store(), include_inactive=include_inactive)), 200


@products_bp.get("/<int:product_id>")
@json_errors("load product")
def get_product_route(product_id: int):
    return jsonify(products_service.get_product(current_store(), product_id)), 200


@products_bp.get("/<int:product_id>/movements")
@json_errors("list stock movements")
def list_movements_route(product_id: int):
    limit = request.args.get("limit", type=int)
    if limit is not None:
        limit = max(1, min(limit, 1000))
    return jsonify(products_service.product_movements(current_store(), product_id, limit=limit)), 200


@products_bp.post("/<int:product_id>/add-stock")
@json_errors("add stock")
def add_stock_route(product_id: int):
    """Body: {quantity, notes?} - production entering stock."""
    data = request.get_json(silent=True) or {}
    if data.get("quantity") is None:
        raise ValidationError("quantity is required")
    quantity = coerce_int(data["quantity"], "quantity")
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")

    ledger_service.add_stock(
        current_store(),
        product_id=product_id,
        quantity=quantity,
        note=optional_text(data.get("notes")),
    )
    return jsonify(products_service.get_product(current_store(), product_id)), 200


@products_bp.post("/<int:product_id>/adjust-stock")
@json_errors("adjust stock")
def adjust_stock_route(product_id: int):
    """Body: {quantity_delta, notes?} - signed manual correction."""
    data = request.get_json(silent=True) or {}
    if data.get("quantity_delta") is None:
        raise ValidationError("quantity_delta is required")

    ledger_service.adjust_stock(
        current_store(),
        product_id=product_id,
        quantity_delta=coerce_int(data["quantity_delta"], "quantity_delta"),
        note=optional_text(data.get("notes")),
    )
    return jsonify(products_service.get_product(current_store(), product_id)), 200
