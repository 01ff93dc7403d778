# backend/inventra/routes/credit.py
"""
Credit journal routes: cash refunds and paying invoices from credit.

SECURITY:
- Mutations require MANAGE_CREDIT
- History requires VIEW_LEDGER
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..services import credit_service
from ..decorators import require_capability


credit_bp = Blueprint("credit", __name__, url_prefix="/api/credit")


@credit_bp.post("/refunds")
@require_capability("MANAGE_CREDIT")
def cash_refund_route():
    """
    Request body:
    {
        "customer_id": 1,
        "amount_cents": 10000,
        "notes": "..."  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        transaction = credit_service.process_cash_refund(
            customer_id=data.get("customer_id"),
            amount_cents=data.get("amount_cents"),
            notes=data.get("notes"),
            user_id=g.user_id,
        )
        return jsonify({"credit_transaction": transaction.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to process cash refund")
        return jsonify({"error": "Internal server error"}), 500


@credit_bp.post("/invoice-payments")
@require_capability("MANAGE_CREDIT")
def pay_invoice_with_credit_route():
    """
    Request body:
    {
        "invoice_id": 5,
        "amount_cents": 2500
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        transaction = credit_service.pay_invoice_with_credit(
            invoice_id=data.get("invoice_id"),
            amount_cents=data.get("amount_cents"),
            user_id=g.user_id,
        )
        return jsonify({"credit_transaction": transaction.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to pay invoice with credit")
        return jsonify({"error": "Internal server error"}), 500


@credit_bp.get("/<int:customer_id>")
@require_capability("VIEW_LEDGER")
def credit_history_route(customer_id: int):
    try:
        return jsonify(credit_service.get_credit_history(customer_id)), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
