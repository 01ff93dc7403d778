# backend/inventra/routes/system.py
"""
System health and display-currency endpoints.
"""

import time
from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import text

from ..errors import LedgerError
from ..extensions import db
from ..services.currency_service import display_amount, get_rate_cache

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Round-trip a trivial query and report latency."""
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": round(elapsed_ms, 2), "error": "Database error"}


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "ok" if healthy else "degraded",
        "checks": {"database": database},
    }), (200 if healthy else 503)


@system_bp.get("/api/currency/rates")
def currency_rates():
    """Display-only exchange rates relative to BASE_CURRENCY."""
    return jsonify({
        "base": current_app.config["BASE_CURRENCY"],
        "rates": get_rate_cache().rates(),
    }), 200


@system_bp.get("/api/currency/convert")
def currency_convert():
    """
    Convert a base-currency amount for display.

    Query: amount_cents (int), currency (EGP|USD|TRY)
    """
    try:
        amount_cents = request.args.get("amount_cents", type=int)
        if amount_cents is None:
            return jsonify({"error": "amount_cents required"}), 400
        return jsonify(display_amount(amount_cents, request.args.get("currency", ""))), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
