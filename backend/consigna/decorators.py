# Overview: Shared helpers for API routes: store lookup and domain-error mapping.

from functools import wraps
from flask import jsonify, current_app

from .validation import (
    ValidationError,
    InsufficientStockError,
    NotFoundError,
    ConflictError,
    PersistenceError,
)

STORE_EXTENSION_KEY = "consigna.store"


def current_store():
    """The StoreHandle built by create_app()."""
    return current_app.extensions[STORE_EXTENSION_KEY]


def json_errors(action: str):
    """
    Translate domain exceptions into JSON error responses.

    - InsufficientStockError -> 400 {error, details[], message}
    - ValidationError / ConflictError -> 400 {error, details}
    - NotFoundError -> 404
    - PersistenceError and anything unexpected -> 500 (logged)
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except InsufficientStockError as e:
                return jsonify({"error": str(e), "details": e.details, "message": e.message}), 400
            except ValidationError as e:
                return jsonify({"error": str(e), "details": e.details}), 400
            except ConflictError as e:
                return jsonify({"error": str(e)}), 400
            except NotFoundError as e:
                return jsonify({"error": str(e)}), 404
            except PersistenceError:
                current_app.logger.exception(f"Failed to {action}: store error")
                return jsonify({"error": "Database error"}), 500
            except Exception:
                current_app.logger.exception(f"Failed to {action}")
                return jsonify({"error": "Internal server error"}), 500

        return decorated_function

    return decorator
