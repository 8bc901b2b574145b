# Overview: Flask API routes for checkout and orders; parses input and returns JSON responses.

"""
Order & Checkout API Routes

- POST /api/orders          customer checkout (order + ledger settlement)
- POST /api/orders/pos      walk-in register sale, paid in full
- GET  /api/orders          list (status, customer_id, search)
- GET  /api/orders/<id>     order with items
- POST /api/orders/<id>/status   pending -> completed / cancelled
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_store
from ..responses import error_response, int_arg, json_body
from ..services import checkout_service, order_service
from ..services.errors import StoreManagerError

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_store
def checkout_route():
    """
    Request body:
    {
        "customer_id": 12,           (optional)
        "items": [{"product_id": 3, "quantity": 2, "unit_price_cents": 1500}],
        "amount_paid_cents": 2000,   (optional, default 0)
        "notes": "..."
    }

    Returns:
        201: order, payment and debt ledger results
        400: empty order / invalid amount
        404: customer or product not found
        500: PARTIAL_CHECKOUT with reconciliation details
        503: retryable persistence failure
    """
    try:
        data = json_body()
        result = checkout_service.checkout(
            g.store_id,
            data.get("items") or [],
            customer_id=data.get("customer_id"),
            amount_paid_cents=data.get("amount_paid_cents", 0),
            notes=data.get("notes"),
        )
        return jsonify(result.to_dict()), 201
    except StoreManagerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Checkout failed")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/pos")
@require_store
def pos_checkout_route():
    """Request body: {"items": [...], "notes": "..."}"""
    try:
        data = json_body()
        result = checkout_service.pos_checkout(g.store_id, data.get("items") or [], notes=data.get("notes"))
        return jsonify(result.to_dict()), 201
    except StoreManagerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("POS checkout failed")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_store
def list_orders_route():
    orders = order_service.list_orders(
        g.store_id,
        status=request.args.get("status"),
        customer_id=int_arg("customer_id"),
        search=request.args.get("search"),
        limit=int_arg("limit", 100),
    )
    return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)}), 200


@orders_bp.get("/<int:order_id>")
@require_store
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(g.store_id, order_id)
        return jsonify({"order": order.to_dict(include_items=True)}), 200
    except StoreManagerError as e:
        return error_response(e)


@orders_bp.patch("/<int:order_id>")
@require_store
def update_order_route(order_id: int):
    try:
        order = order_service.update_order(g.store_id, order_id, notes=json_body().get("notes"))
        return jsonify({"order": order.to_dict(include_items=True)}), 200
    except StoreManagerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/status")
@require_store
def set_order_status_route(order_id: int):
    """
    Request body: {"status": "completed" | "cancelled", "reason": "..."}

    Cancelling reverses the order's ledger entries.
    """
    try:
        data = json_body()
        order = order_service.set_order_status(
            g.store_id, order_id, data.get("status") or "", reason=data.get("reason")
        )
        return jsonify({"order": order.to_dict(include_items=True)}), 200
    except StoreManagerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to change order status")
        return jsonify({"error": "Internal server error"}), 500
