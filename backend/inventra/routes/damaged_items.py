# backend/inventra/routes/damaged_items.py
"""
Damaged item routes.

SECURITY:
- Listing requires VIEW_LEDGER
- Repricing and discarding require MANAGE_DAMAGED
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..services import damaged_item_service
from ..decorators import require_capability


damaged_items_bp = Blueprint("damaged_items", __name__, url_prefix="/api/damaged-items")


@damaged_items_bp.get("/")
@require_capability("VIEW_LEDGER")
def list_damaged_items_route():
    try:
        items = damaged_item_service.list_damaged_items(
            status=request.args.get("status"),
            product_variant_id=request.args.get("product_variant_id", type=int),
        )
        return jsonify({"damaged_items": [item.to_dict() for item in items]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@damaged_items_bp.patch("/<int:damaged_item_id>/price")
@require_capability("MANAGE_DAMAGED")
def update_price_route(damaged_item_id: int):
    """
    Request body:
    {
        "resale_price_cents": 1200,
        "note": "..."  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        item = damaged_item_service.update_damaged_item_price(
            damaged_item_id=damaged_item_id,
            resale_price_cents=data.get("resale_price_cents"),
            note=data.get("note"),
            user_id=g.user_id,
        )
        return jsonify({"damaged_item": item.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update damaged item price")
        return jsonify({"error": "Internal server error"}), 500


@damaged_items_bp.post("/<int:damaged_item_id>/discard")
@require_capability("MANAGE_DAMAGED")
def discard_route(damaged_item_id: int):
    try:
        data = request.get_json(silent=True) or {}
        item = damaged_item_service.discard_damaged_item(
            damaged_item_id=damaged_item_id,
            note=data.get("note"),
            user_id=g.user_id,
        )
        return jsonify({"damaged_item": item.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to discard damaged item")
        return jsonify({"error": "Internal server error"}), 500
