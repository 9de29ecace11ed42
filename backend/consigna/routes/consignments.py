# Overview: Flask API routes for consignment operations; parses input and returns JSON responses.

# backend/consigna/routes/consignments.py
"""
Consignment API routes.

Lifecycle: open -> closed. Closing produces a pending sale; deleting is only
allowed while open and returns every withdrawn unit to stock.
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import consignment_service
from ..validation import (
    ValidationError,
    parse_line_items,
    parse_settlement,
    coerce_int,
    optional_text,
)
from consigna.time_utils import parse_iso_datetime, parse_iso_date
from ..decorators import current_store, json_errors


consignments_bp = Blueprint("consignments", __name__, url_prefix="/api/consignments")


@consignments_bp.get("")
@json_errors("list consignments")
def list_consignments_route():
    status = request.args.get("status")
    return jsonify(consignment_service.list_consignments(current_store(), status=status)), 200


@consignments_bp.get("/<int:consignment_id>")
@json_errors("load consignment")
def get_consignment_route(consignment_id: int):
    return jsonify(consignment_service.get_consignment(current_store(), consignment_id)), 200


@consignments_bp.post("")
@json_errors("create consignment")
def create_consignment_route():
    """
    Body: {client_id, items: [{product_id, quantity, price_cents? | price?}], notes?, user_id?}
    """
    data = request.get_json(silent=True) or {}
    if data.get("client_id") is None:
        raise ValidationError("client_id is required")

    consignment = consignment_service.create_consignment(
        current_store(),
        client_id=coerce_int(data["client_id"], "client_id"),
        items=parse_line_items(data.get("items")),
        notes=optional_text(data.get("notes")),
        user_id=coerce_int(data["user_id"], "user_id") if data.get("user_id") is not None else None,
    )
    return jsonify(consignment), 201


@consignments_bp.put("/<int:consignment_id>")
@json_errors("update consignment")
def update_consignment_route(consignment_id: int):
    """Only notes are editable; items and status belong to the lifecycle."""
    data = request.get_json(silent=True) or {}
    forbidden = sorted(k for k in data if k != "notes")
    if forbidden:
        raise ValidationError(f"Field not allowed: {', '.join(forbidden)}")
    consignment = consignment_service.update_notes(current_store(), consignment_id, data.get("notes"))
    return jsonify(consignment), 200


@consignments_bp.post("/<int:consignment_id>/close")
@json_errors("close consignment")
def close_consignment_route(consignment_id: int):
    """
    Body: {items: [{product_id | item_id, quantity_sold, price_cents? | price?}],
           due_date?, date?, notes?}

    Returns the generated sale with its items.
    """
    data = request.get_json(silent=True) or {}
    settlement = parse_settlement(data.get("items"))
    try:
        sale_date = parse_iso_datetime(data.get("date"))
        due_date = parse_iso_date(data.get("due_date"))
    except (TypeError, ValueError):
        raise ValidationError("date and due_date must be ISO-8601")

    sale = consignment_service.close_consignment(
        current_store(),
        consignment_id,
        settlement=settlement,
        due_date=due_date,
        notes=data.get("notes"),
        sale_date=sale_date,
        due_days=current_app.config["RECEIVABLE_DUE_DAYS"],
    )
    return jsonify(sale.to_dict()), 201


@consignments_bp.delete("/<int:consignment_id>")
@json_errors("delete consignment")
def delete_consignment_route(consignment_id: int):
    consignment_service.delete_consignment(current_store(), consignment_id)
    return jsonify({"success": True}), 200
