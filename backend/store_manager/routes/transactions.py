# Overview: Flask API routes for the transaction activity log.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_store
from ..responses import error_response, int_arg, json_body
from ..services import transaction_service
from ..services.errors import StoreManagerError

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.get("")
@require_store
def list_transactions_route():
    transactions = transaction_service.list_transactions(
        g.store_id,
        type=request.args.get("type"),
        customer_id=int_arg("customer_id"),
        limit=int_arg("limit", 100),
    )
    return jsonify({"items": [t.to_dict() for t in transactions], "count": len(transactions)}), 200


@transactions_bp.post("")
@require_store
def create_transaction_route():
    """
    Manual activity entry. Does not change any customer balance.

    Request body: {"type": "expense", "amount_cents": 2500, "description": "...", "customer_id": null}
    """
    try:
        data = json_body()
        txn = transaction_service.create_transaction(
            g.store_id,
            type=data.get("type"),
            amount_cents=data.get("amount_cents"),
            description=data.get("description"),
            customer_id=data.get("customer_id"),
        )
        return jsonify({"transaction": txn.to_dict()}), 201
    except StoreManagerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("/<int:transaction_id>")
@require_store
def get_transaction_route(transaction_id: int):
    try:
        txn = transaction_service.get_transaction(g.store_id, transaction_id)
        return jsonify({"transaction": txn.to_dict()}), 200
    except StoreManagerError as e:
        return error_response(e)
