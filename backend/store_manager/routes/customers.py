# Overview: Flask API routes for customers; parses input and returns JSON responses.

"""
Customer routes.

Balances are read-only here; they move only through /api/payments and
checkout.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_store
from ..responses import bool_arg, error_response, json_body
from ..services import customer_service, ledger_service
from ..services.errors import StoreManagerError

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_store
def list_customers_route():
    """
    Query params:
    - search: substring of name, phone or email
    - in_debt: true to only return customers with a negative balance
    """
    customers = customer_service.list_customers(
        g.store_id,
        request.args.get("search"),
        with_debt_only=bool_arg("in_debt"),
    )
    return jsonify({"items": [c.to_dict() for c in customers], "count": len(customers)}), 200


@customers_bp.post("")
@require_store
def create_customer_route():
    try:
        customer = customer_service.create_customer(g.store_id, json_body())
        return jsonify({"customer": customer.to_dict()}), 201
    except StoreManagerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>")
@require_store
def get_customer_route(customer_id: int):
    try:
        customer = customer_service.get_customer(g.store_id, customer_id)
        return jsonify({"customer": customer.to_dict()}), 200
    except StoreManagerError as e:
        return error_response(e)


@customers_bp.patch("/<int:customer_id>")
@require_store
def update_customer_route(customer_id: int):
    try:
        customer = customer_service.update_customer(g.store_id, customer_id, json_body())
        return jsonify({"customer": customer.to_dict()}), 200
    except StoreManagerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.delete("/<int:customer_id>")
@require_store
def delete_customer_route(customer_id: int):
    try:
        customer_service.delete_customer(g.store_id, customer_id)
        return "", 204
    except StoreManagerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>/statement")
@require_store
def customer_statement_route(customer_id: int):
    """Customer, ledger entries newest first, and a balance drift flag."""
    try:
        return jsonify(ledger_service.customer_statement(g.store_id, customer_id)), 200
    except StoreManagerError as e:
        return error_response(e)
