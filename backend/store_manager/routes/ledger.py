# Overview: Flask API routes for ledger verification and repair.

from flask import Blueprint, current_app, g, jsonify

from ..decorators import require_store
from ..responses import error_response
from ..services import ledger_service
from ..services.errors import StoreManagerError

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


@ledger_bp.get("/verify")
@require_store
def verify_route():
    """Customers whose cached balance differs from their payment history."""
    drifted = ledger_service.verify_store_balances(g.store_id)
    return jsonify({"in_sync": not drifted, "drifted": drifted}), 200


@ledger_bp.post("/repair")
@require_store
def repair_route():
    try:
        repaired = ledger_service.repair_store_balances(g.store_id)
        if repaired:
            current_app.logger.warning("Repaired %d drifted balances (store=%s)", len(repaired), g.store_id)
        return jsonify({"repaired": repaired}), 200
    except StoreManagerError as e:
        return error_response(e)
