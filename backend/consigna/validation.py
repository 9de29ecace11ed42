from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.details = details


class InsufficientStockError(ValidationError):
    """
    One or more products cannot cover the requested withdrawal.

    details is a list of {product_id, product_name, required, available}.
    """

    def __init__(self, failures: list[dict]):
        parts = [
            f"{f['product_name']}: required {f['required']}, available {f['available']}"
            for f in failures
        ]
        self.message = f"Insufficient stock for: {'; '.join(parts)}"
        super().__init__("Insufficient stock", details=failures)


class NotFoundError(LookupError):
    """404-level: referenced record does not exist."""


class ConflictError(ValueError):
    """Business rule conflict (forbidden lifecycle transition)."""


class PersistenceError(RuntimeError):
    """Underlying store failure; the unit of work was rolled back."""


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for JSON input.

    Rejects bools, floats, decimals-in-strings and scientific notation.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def coerce_money_cents(value: Any, field: str) -> int:
    """
    Convert a decimal money amount ("12.50", 12.5) to integer cents, half-up.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number")
    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return cents


def check_price_cents(price: int, field: str = "price_cents") -> int:
    if price < 0:
        raise ValidationError(f"{field} must be >= 0")
    if price > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS}")
    return price


def read_price_cents(raw: dict) -> int | None:
    """
    Read an optional unit price from a JSON line.

    price_cents (int) wins over price (decimal amount). None when neither is
    given, so callers can fall back to the product's current price.
    """
    if raw.get("price_cents") is not None:
        return check_price_cents(coerce_int(raw["price_cents"], "price_cents"))
    if raw.get("price") is not None:
        return check_price_cents(coerce_money_cents(raw["price"], "price"), "price")
    return None


def parse_line_items(items: Any, *, quantity_key: str = "quantity") -> list[dict]:
    """
    Validate the items[] array of a sale or consignment request.

    Returns [{product_id, quantity, price_cents}] with price_cents possibly None.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required")

    lines = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        if raw.get("product_id") is None:
            raise ValidationError(f"items[{index}].product_id is required")
        if raw.get(quantity_key) is None:
            raise ValidationError(f"items[{index}].{quantity_key} is required")

        product_id = coerce_int(raw["product_id"], f"items[{index}].product_id")
        quantity = coerce_int(raw[quantity_key], f"items[{index}].{quantity_key}")
        if quantity <= 0:
            raise ValidationError(f"items[{index}].{quantity_key} must be > 0")

        lines.append({
            "product_id": product_id,
            "quantity": quantity,
            "price_cents": read_price_cents(raw),
        })
    return lines


def parse_settlement(items: Any) -> list[dict]:
    """
    Validate the items[] array of a consignment close request.

    quantity_sold may be zero; the upper bound is checked against the
    consignment itself.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("Settlement items are required")

    entries = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        if raw.get("product_id") is None and raw.get("item_id") is None:
            raise ValidationError(f"items[{index}].product_id is required")
        if raw.get("quantity_sold") is None:
            raise ValidationError(f"items[{index}].quantity_sold is required")

        quantity_sold = coerce_int(raw["quantity_sold"], f"items[{index}].quantity_sold")
        if quantity_sold < 0:
            raise ValidationError(f"items[{index}].quantity_sold must be >= 0")

        entries.append({
            "item_id": coerce_int(raw["item_id"], f"items[{index}].item_id") if raw.get("item_id") is not None else None,
            "product_id": coerce_int(raw["product_id"], f"items[{index}].product_id") if raw.get("product_id") is not None else None,
            "quantity_sold": quantity_sold,
            "price_cents": read_price_cents(raw),
        })
    return entries


def optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
