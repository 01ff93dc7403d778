# backend/inventra/routes/ledger.py
"""
Reconciliation and audit history routes.

SECURITY:
- Reconciliation requires RECONCILE (SUPER_ADMIN, ADMIN)
- History and invariant checks require VIEW_LEDGER
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..services import history_service, reconcile_service
from ..decorators import require_capability


ledger_bp = Blueprint("ledger", __name__, url_prefix="/api")


@ledger_bp.post("/reconcile/")
@require_capability("RECONCILE")
def reconcile_route():
    """
    Request body (optional):
    {
        "dry_run": true
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        result = reconcile_service.reconcile_all_customers(
            dry_run=bool(data.get("dry_run", False)),
            user_id=g.user_id,
        )
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Reconciliation failed")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.get("/reconcile/check")
@require_capability("VIEW_LEDGER")
def invariant_check_route():
    return jsonify(reconcile_service.check_invariants()), 200


@ledger_bp.get("/history/")
@require_capability("VIEW_LEDGER")
def list_history_route():
    entries = history_service.list_history(
        entity=request.args.get("entity"),
        entity_id=request.args.get("entity_id", type=int),
        limit=request.args.get("limit", 100, type=int),
    )
    return jsonify({"history": [entry.to_dict() for entry in entries]}), 200
