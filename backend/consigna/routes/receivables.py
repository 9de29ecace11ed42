# Overview: Flask API routes for accounts receivable; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify

from ..services import receivable_service
from ..validation import ValidationError, coerce_int, coerce_money_cents, optional_text
from consigna.time_utils import parse_iso_date
from ..decorators import current_store, json_errors

receivables_bp = Blueprint("receivables", __name__, url_prefix="/api/receivables")


@receivables_bp.get("")
@json_errors("list receivables")
def list_receivables_route():
    status = request.args.get("status")
    return jsonify(receivable_service.list_receivables(current_store(), status=status)), 200


@receivables_bp.get("/<int:receivable_id>")
@json_errors("load receivable")
def get_receivable_route(receivable_id: int):
    return jsonify(receivable_service.get_receivable(current_store(), receivable_id)), 200


@receivables_bp.post("")
@json_errors("create receivable")
def create_receivable_route():
    """Body: {client_id?, description?, value_cents | value, due_date, notes?}"""
    data = request.get_json(silent=True) or {}

    if data.get("value_cents") is not None:
        value_cents = coerce_int(data["value_cents"], "value_cents")
    elif data.get("value") is not None:
        value_cents = coerce_money_cents(data["value"], "value")
    else:
        raise ValidationError("value is required")

    try:
        due_date = parse_iso_date(data.get("due_date"))
    except (TypeError, ValueError):
        raise ValidationError("due_date must be an ISO-8601 date")
    if due_date is None:
        raise ValidationError("due_date is required")

    receivable = receivable_service.create_receivable(
        current_store(),
        client_id=coerce_int(data["client_id"], "client_id") if data.get("client_id") is not None else None,
        description=data.get("description"),
        value_cents=value_cents,
        due_date=due_date,
        notes=data.get("notes"),
    )
    return jsonify(receivable), 201


@receivables_bp.post("/<int:receivable_id>/receive")
@json_errors("receive receivable")
def receive_route(receivable_id: int):
    """Body: {payment_method?, received_date?}"""
    data = request.get_json(silent=True) or {}
    try:
        received_on = parse_iso_date(data.get("received_date"))
    except (TypeError, ValueError):
        raise ValidationError("received_date must be an ISO-8601 date")

    receivable = receivable_service.receive(
        current_store(),
        receivable_id,
        payment_method=optional_text(data.get("payment_method")),
        received_on=received_on,
    )
    return jsonify(receivable), 200
