# backend/inventra/routes/customers.py
"""
Customer routes: registration, contact edits, account view and
customer-level payments.

SECURITY:
- Reads require VIEW_LEDGER
- Create/edit requires MANAGE_CUSTOMERS
- Registering a payment requires RECORD_PAYMENT
- Deleting a payment requires REVERSE_PAYMENT (SUPER_ADMIN only)
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..models import Customer
from ..errors import LedgerError
from ..validation import ModelValidationPolicy, validate_payload
from ..services import customer_service, customer_payment_service
from ..decorators import require_capability


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")
customer_payments_bp = Blueprint("customer_payments", __name__, url_prefix="/api/customer-payments")

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "address"},
    required_on_create={"name"},
)


@customers_bp.post("/")
@require_capability("MANAGE_CUSTOMERS")
def create_customer_route():
    try:
        patch = validate_payload(
            model=Customer,
            payload=request.get_json(silent=True),
            policy=CUSTOMER_POLICY,
            partial=False,
        )
        customer = customer_service.create_customer(user_id=g.user_id, **patch)
        return jsonify({"customer": customer.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/")
@require_capability("VIEW_LEDGER")
def list_customers_route():
    return jsonify({"customers": [c.to_dict() for c in customer_service.list_customers()]}), 200


@customers_bp.get("/<int:customer_id>")
@require_capability("VIEW_LEDGER")
def get_customer_route(customer_id: int):
    try:
        return jsonify({"customer": customer_service.get_customer(customer_id).to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@customers_bp.put("/<int:customer_id>")
@require_capability("MANAGE_CUSTOMERS")
def update_customer_route(customer_id: int):
    try:
        patch = validate_payload(
            model=Customer,
            payload=request.get_json(silent=True),
            policy=CUSTOMER_POLICY,
            partial=True,
        )
        customer = customer_service.update_customer(customer_id, user_id=g.user_id, **patch)
        return jsonify({"customer": customer.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>/account")
@require_capability("VIEW_LEDGER")
def customer_account_route(customer_id: int):
    try:
        return jsonify(customer_service.get_customer_account(customer_id)), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


# =============================================================================
# CUSTOMER PAYMENTS
# =============================================================================

@customers_bp.post("/<int:customer_id>/payments")
@require_capability("RECORD_PAYMENT")
def register_payment_route(customer_id: int):
    """
    Register a lump-sum payment and auto-settle open invoices oldest first.

    Request body:
    {
        "amount_cents": 15000,
        "note": "Bank transfer"  (optional)
    }

    Returns:
        201: Payment registered, with the allocations applied
        400: Invalid amount
        404: Customer not found
        409: Amount exceeds account balance
    """
    try:
        data = request.get_json(silent=True) or {}
        payment, allocations = customer_payment_service.register_customer_payment(
            customer_id=customer_id,
            amount_cents=data.get("amount_cents"),
            note=data.get("note"),
            user_id=g.user_id,
        )
        return jsonify({
            "customer_payment": payment.to_dict(),
            "allocations": [a.to_dict() for a in allocations],
        }), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register customer payment")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>/payments")
@require_capability("VIEW_LEDGER")
def list_customer_payments_route(customer_id: int):
    try:
        payments = customer_payment_service.list_customer_payments(customer_id)
        return jsonify({"customer_payments": [p.to_dict() for p in payments]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@customer_payments_bp.delete("/<int:customer_payment_id>")
@require_capability("REVERSE_PAYMENT")
def delete_customer_payment_route(customer_payment_id: int):
    """
    Reverse a customer payment, its invoice allocations and its balance effect.

    Requires: REVERSE_PAYMENT (SUPER_ADMIN only)
    """
    try:
        summary = customer_payment_service.delete_customer_payment(
            customer_payment_id=customer_payment_id,
            user_id=g.user_id,
        )
        return jsonify(summary), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete customer payment")
        return jsonify({"error": "Internal server error"}), 500
