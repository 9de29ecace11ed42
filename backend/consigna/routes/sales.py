# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/consigna/routes/sales.py
"""
Sales API routes.

Stock validation, ledger movements and the generated receivable all happen
inside sales_service in one transaction; these handlers only parse input.
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import sales_service
from ..validation import (
    ValidationError,
    parse_line_items,
    coerce_int,
    coerce_money_cents,
    optional_text,
)
from consigna.time_utils import parse_iso_datetime, parse_iso_date
from ..decorators import current_store, json_errors


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _optional_int(data: dict, key: str) -> int | None:
    if data.get(key) is None:
        return None
    return coerce_int(data[key], key)


def _parse_dates(data: dict):
    try:
        sale_date = parse_iso_datetime(data.get("date"))
        due_date = parse_iso_date(data.get("due_date"))
    except (TypeError, ValueError):
        raise ValidationError("date and due_date must be ISO-8601")
    return sale_date, due_date


@sales_bp.get("")
@json_errors("list sales")
def list_sales_route():
    return jsonify(sales_service.list_sales(current_store())), 200


@sales_bp.get("/<int:sale_id>")
@json_errors("load sale")
def get_sale_route(sale_id: int):
    return jsonify(sales_service.get_sale(current_store(), sale_id)), 200


@sales_bp.post("")
@json_errors("create sale")
def create_sale_route():
    """
    Create a sale with its items.

    Body: {client_id?, items: [{product_id, quantity, price_cents? | price?}],
           user_id?, notes?, date?, due_date?}
    """
    data = request.get_json(silent=True) or {}
    items = parse_line_items(data.get("items"))
    sale_date, due_date = _parse_dates(data)

    sale = sales_service.create_sale(
        current_store(),
        items=items,
        client_id=_optional_int(data, "client_id"),
        user_id=_optional_int(data, "user_id"),
        notes=optional_text(data.get("notes")),
        sale_date=sale_date,
        due_date=due_date,
        due_days=current_app.config["RECEIVABLE_DUE_DAYS"],
    )
    return jsonify(sale.to_dict()), 201


@sales_bp.put("/<int:sale_id>")
@json_errors("update sale")
def update_sale_route(sale_id: int):
    """
    Body: {status?, payment_method?, total_cents? | total?}

    Marking a sale paid settles its receivable; a failed settlement is
    reported under "warnings" without failing the update.
    """
    data = request.get_json(silent=True) or {}

    total_cents = None
    if data.get("total_cents") is not None:
        total_cents = coerce_int(data["total_cents"], "total_cents")
    elif data.get("total") is not None:
        total_cents = coerce_money_cents(data["total"], "total")

    result = sales_service.update_sale(
        current_store(),
        sale_id,
        status=optional_text(data.get("status")),
        payment_method=optional_text(data.get("payment_method")),
        total_cents=total_cents,
    )
    body = result.sale.to_dict()
    body["warnings"] = result.warnings
    return jsonify(body), 200


@sales_bp.delete("/<int:sale_id>")
@json_errors("delete sale")
def delete_sale_route(sale_id: int):
    sales_service.delete_sale(current_store(), sale_id)
    return jsonify({"success": True}), 200
