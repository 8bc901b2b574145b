# Overview: Flask API routes for customer ledger operations; parses input and returns JSON responses.

"""
Customer Ledger API Routes

Every route here goes through ledger_service, the only writer of
payments and customer balances.

- POST /api/payments                     record a payment (balance +)
- POST /api/payments/debt                record a debt (balance -)
- POST /api/payments/<id>/reverse        append a compensating entry
- POST /api/payments/<id>/adjust         reversal + corrected entry
- GET  /api/payments                     list (customer_id, invoice_id, method, entry_type)
- GET  /api/payments/<id>                entry with its reversal and adjustments
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_store
from ..responses import error_response, int_arg, json_body
from ..services import ledger_service
from ..services.errors import StoreManagerError

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


# =============================================================================
# LEDGER WRITES
# =============================================================================

@payments_bp.post("")
@require_store
def record_payment_route():
    """
    Request body:
    {
        "customer_id": 12,           (optional only when invoice_id is given)
        "amount_cents": 4000,
        "payment_method": "cash",
        "invoice_id": 7,             (optional)
        "notes": "..."
    }
    """
    try:
        data = json_body()
        result = ledger_service.record_payment(
            g.store_id,
            data.get("customer_id"),
            data.get("amount_cents"),
            data.get("payment_method") or ledger_service.METHOD_CASH,
            invoice_id=data.get("invoice_id"),
            notes=data.get("notes"),
        )
        return jsonify(result.to_dict()), 201
    except StoreManagerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/debt")
@require_store
def record_debt_route():
    """Request body: {"customer_id": 12, "amount_cents": 1500, "notes": "..."}"""
    try:
        data = json_body()
        result = ledger_service.record_debt(
            g.store_id,
            data.get("customer_id"),
            data.get("amount_cents"),
            invoice_id=data.get("invoice_id"),
            notes=data.get("notes"),
        )
        return jsonify(result.to_dict()), 201
    except StoreManagerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record debt")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/<int:payment_id>/reverse")
@require_store
def reverse_entry_route(payment_id: int):
    """Request body: {"reason": "..."} (optional)"""
    try:
        result = ledger_service.reverse_entry(g.store_id, payment_id, reason=json_body().get("reason"))
        return jsonify(result.to_dict()), 201
    except StoreManagerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reverse entry")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/<int:payment_id>/adjust")
@require_store
def adjust_entry_route(payment_id: int):
    """
    Request body: {"amount_cents": 3500, "payment_method": "card", "notes": "..."}

    amount_cents is the corrected signed amount (negative for a debt).
    """
    try:
        data = json_body()
        result = ledger_service.adjust_entry(
            g.store_id,
            payment_id,
            data.get("amount_cents"),
            payment_method=data.get("payment_method"),
            notes=data.get("notes"),
        )
        return jsonify(result.to_dict()), 201
    except StoreManagerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust entry")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# QUERIES
# =============================================================================

@payments_bp.get("")
@require_store
def list_payments_route():
    payments = ledger_service.list_payments(
        g.store_id,
        customer_id=int_arg("customer_id"),
        invoice_id=int_arg("invoice_id"),
        payment_method=request.args.get("payment_method"),
        entry_type=request.args.get("entry_type"),
        limit=int_arg("limit", 100),
    )
    return jsonify({"items": [p.to_dict() for p in payments], "count": len(payments)}), 200


@payments_bp.get("/<int:payment_id>")
@require_store
def get_payment_route(payment_id: int):
    try:
        return jsonify(ledger_service.get_payment_history(g.store_id, payment_id)), 200
    except StoreManagerError as e:
        return error_response(e)
