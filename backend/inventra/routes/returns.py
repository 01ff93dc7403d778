# backend/inventra/routes/returns.py
"""
Return Processing API Routes

DESIGN:
- A return is booked in one request against an invoice
- NON_DAMAGED returns restock; DAMAGED returns create damaged items
- CREDIT invoices credit the customer's account by the return total

SECURITY:
- PROCESS_RETURN capability required for booking
- VIEW_LEDGER for reads
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..services import return_service
from ..decorators import require_capability


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("/")
@require_capability("PROCESS_RETURN")
def create_return_route():
    """
    Request body:
    {
        "invoice_id": 12,
        "type": "DAMAGED" | "NON_DAMAGED",
        "items": [
            {"product_variant_id": 3, "quantity": 2, "price_cents": 5000}  (price optional)
        ],
        "notes": "..."  (optional)
    }

    Returns:
        201: Return booked
        400: Invalid input or price mismatch
        404: Invoice not found
        409: Quantity exceeds what remains returnable
    """
    try:
        data = request.get_json(silent=True) or {}
        return_doc = return_service.create_return(
            invoice_id=data.get("invoice_id"),
            type=data.get("type"),
            items=data.get("items") or [],
            notes=data.get("notes"),
            user_id=g.user_id,
        )
        return jsonify({"return": return_doc.to_dict(include_items=True)}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/")
@require_capability("VIEW_LEDGER")
def list_returns_route():
    try:
        invoice_id = request.args.get("invoice_id", type=int)
        customer_id = request.args.get("customer_id", type=int)
        if invoice_id is not None:
            returns = return_service.get_invoice_returns(invoice_id)
        elif customer_id is not None:
            returns = return_service.get_customer_returns(customer_id)
        else:
            returns = return_service.list_returns(
                type=request.args.get("type"),
                limit=request.args.get("limit", type=int),
            )
        return jsonify({"returns": [r.to_dict() for r in returns]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@returns_bp.get("/<int:return_id>")
@require_capability("VIEW_LEDGER")
def get_return_route(return_id: int):
    try:
        return_doc = return_service.get_return(return_id)
        return jsonify({"return": return_doc.to_dict(include_items=True)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@returns_bp.get("/returnable/<int:invoice_id>")
@require_capability("VIEW_LEDGER")
def returnable_route(invoice_id: int):
    try:
        remaining = return_service.returnable_quantities(invoice_id)
        return jsonify({
            "invoice_id": invoice_id,
            "returnable": [
                {"product_variant_id": variant_id, "quantity": quantity}
                for variant_id, quantity in sorted(remaining.items())
            ],
        }), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
