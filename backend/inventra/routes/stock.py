# backend/inventra/routes/stock.py
"""
Stock ledger routes.

SECURITY:
- View operations require VIEW_LEDGER
- Adjustments require ADJUST_STOCK
- Transfers require TRANSFER_STOCK

Every stock item is addressed by exactly one of material_id /
product_variant_id.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..services import stock_service
from ..services.stock_service import StockSubject
from ..decorators import require_capability


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.post("/adjust")
@require_capability("ADJUST_STOCK")
def adjust_stock_route():
    """
    Request body:
    {
        "warehouse_id": 1,
        "product_variant_id": 3,  (or "material_id")
        "quantity": 10,
        "type": "IN" | "OUT",
        "note": "Opening count"  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        subject = StockSubject.from_ids(
            material_id=data.get("material_id"),
            product_variant_id=data.get("product_variant_id"),
        )
        stock = stock_service.adjust_stock(
            warehouse_id=data.get("warehouse_id"),
            subject=subject,
            quantity=data.get("quantity"),
            movement_type=data.get("type"),
            user_id=g.user_id,
            note=data.get("note"),
        )
        return jsonify({"stock": stock.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/transfer")
@require_capability("TRANSFER_STOCK")
def transfer_stock_route():
    try:
        data = request.get_json(silent=True) or {}
        subject = StockSubject.from_ids(
            material_id=data.get("material_id"),
            product_variant_id=data.get("product_variant_id"),
        )
        result = stock_service.transfer_stock(
            from_warehouse_id=data.get("from_warehouse_id"),
            to_warehouse_id=data.get("to_warehouse_id"),
            subject=subject,
            quantity=data.get("quantity"),
            user_id=g.user_id,
            note=data.get("note"),
        )
        return jsonify(result.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to transfer stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/")
@require_capability("VIEW_LEDGER")
def list_stock_route():
    try:
        rows = stock_service.list_stock(
            warehouse_id=request.args.get("warehouse_id", type=int),
            subject_kind=request.args.get("kind"),
        )
        return jsonify({"stock": [row.to_dict() for row in rows]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@stock_bp.get("/movements")
@require_capability("VIEW_LEDGER")
def list_movements_route():
    try:
        material_id = request.args.get("material_id", type=int)
        variant_id = request.args.get("product_variant_id", type=int)
        subject = None
        if material_id is not None or variant_id is not None:
            subject = StockSubject.from_ids(material_id=material_id, product_variant_id=variant_id)
        movements = stock_service.list_movements(
            subject=subject,
            warehouse_id=request.args.get("warehouse_id", type=int),
            limit=request.args.get("limit", 200, type=int),
        )
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
