# backend/consigna/routes/system.py
"""
System health endpoint.

Reports whether the store behind the StoreHandle answers, with the row
counts of the ledger tables for deployment debugging.
"""

import time
from flask import Blueprint, current_app, jsonify

from ..models import Product, StockMovement, Sale, Consignment
from ..decorators import current_store
from consigna.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        with current_store().reader() as session:
            details = {
                "products": session.query(Product).count(),
                "stock_movements": session.query(StockMovement).count(),
                "sales": session.query(Sale).count(),
                "consignments": session.query(Consignment).count(),
            }

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    status_code = 200 if database["status"] == "healthy" else 503
    return jsonify({
        "status": database["status"],
        "checked_at": to_utc_z(utcnow()),
        "checks": {"database": database},
    }), status_code
