# backend/inventra/routes/invoices.py
"""
Invoice routes.

SECURITY:
- Reads require VIEW_LEDGER
- Creation requires CREATE_INVOICE
- Direct invoice payments require RECORD_PAYMENT
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..services import invoice_service
from ..decorators import require_capability


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.post("/")
@require_capability("CREATE_INVOICE")
def create_invoice_route():
    """
    Create an invoice.

    Request body:
    {
        "customer_id": 1,
        "warehouse_id": 2,
        "payment_type": "CASH" | "CREDIT",
        "items": [
            {"product_variant_id": 3, "quantity": 2, "price_cents": 5000},
            {"product_variant_id": 4, "quantity": 1, "price_cents": 1500, "damaged_item_id": 7}
        ],
        "discount_type": "FIXED" | "PERCENTAGE",  (optional; PERCENTAGE in basis points)
        "discount_value": 1000,  (optional)
        "notes": "..."  (optional)
    }

    Returns:
        201: Invoice created with items
        400: Invalid input
        404: Customer, warehouse, variant or damaged item not found
        409: Insufficient stock or damaged item not available
    """
    try:
        data = request.get_json(silent=True) or {}
        invoice = invoice_service.create_invoice(
            customer_id=data.get("customer_id"),
            payment_type=data.get("payment_type"),
            items=data.get("items") or [],
            warehouse_id=data.get("warehouse_id"),
            discount_type=data.get("discount_type"),
            discount_value=data.get("discount_value"),
            notes=data.get("notes"),
            user_id=g.user_id,
        )
        return jsonify({"invoice": invoice.to_dict(include_lines=True)}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/")
@require_capability("VIEW_LEDGER")
def list_invoices_route():
    try:
        invoices = invoice_service.list_invoices(
            customer_id=request.args.get("customer_id", type=int),
            status=request.args.get("status"),
            limit=request.args.get("limit", type=int),
        )
        return jsonify({"invoices": [inv.to_dict() for inv in invoices]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@invoices_bp.get("/<int:invoice_id>")
@require_capability("VIEW_LEDGER")
def get_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.get_invoice(invoice_id)
        return jsonify({"invoice": invoice.to_dict(include_lines=True)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@invoices_bp.post("/<int:invoice_id>/payments")
@require_capability("RECORD_PAYMENT")
def add_invoice_payment_route(invoice_id: int):
    """
    Pay down one CREDIT invoice directly.

    Request body:
    {
        "amount_cents": 5000,
        "note": "..."  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        payment = invoice_service.add_payment(
            invoice_id=invoice_id,
            amount_cents=data.get("amount_cents"),
            note=data.get("note"),
            user_id=g.user_id,
        )
        invoice = invoice_service.get_invoice(invoice_id)
        return jsonify({"payment": payment.to_dict(), "invoice": invoice.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add invoice payment")
        return jsonify({"error": "Internal server error"}), 500
