# Overview: Flask API routes for invoices; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_store
from ..responses import bool_arg, error_response, int_arg, json_body
from ..services import invoice_service, ledger_service
from ..services.errors import StoreManagerError, ValidationError
from ..time_utils import parse_iso_date

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _due_date(data: dict):
    try:
        return parse_iso_date(data.get("due_date"))
    except (TypeError, ValueError) as exc:
        raise ValidationError("due_date must be YYYY-MM-DD") from exc


@invoices_bp.get("")
@require_store
def list_invoices_route():
    invoices = invoice_service.list_invoices(
        g.store_id,
        status=request.args.get("status"),
        customer_id=int_arg("customer_id"),
        unpaid_only=bool_arg("unpaid"),
        limit=int_arg("limit", 100),
    )
    return jsonify({"items": [i.to_dict() for i in invoices], "count": len(invoices)}), 200


@invoices_bp.post("")
@require_store
def create_invoice_route():
    """
    Request body:
    {
        "total_amount_cents": 10000,
        "customer_id": 4,            (optional)
        "invoice_number": "A-17",    (optional, allocated INV-000001 style otherwise)
        "due_date": "2026-03-01",    (optional)
        "paid_amount_cents": 2500,   (optional, recorded as a ledger payment)
        "payment_method": "cash",
        "notes": "..."
    }
    """
    try:
        data = json_body()
        invoice = invoice_service.create_invoice(
            g.store_id,
            total_amount_cents=data.get("total_amount_cents"),
            customer_id=data.get("customer_id"),
            invoice_number=data.get("invoice_number"),
            due_date=_due_date(data),
            notes=data.get("notes"),
            paid_amount_cents=data.get("paid_amount_cents", 0),
            payment_method=data.get("payment_method") or ledger_service.METHOD_CASH,
        )
        return jsonify({"invoice": invoice.to_dict()}), 201
    except StoreManagerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>")
@require_store
def get_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.get_invoice(g.store_id, invoice_id)
        payments = ledger_service.list_payments(g.store_id, invoice_id=invoice_id)
        return jsonify({"invoice": invoice.to_dict(), "payments": [p.to_dict() for p in payments]}), 200
    except StoreManagerError as e:
        return error_response(e)


@invoices_bp.patch("/<int:invoice_id>")
@require_store
def update_invoice_route(invoice_id: int):
    """paid_amount_cents and status are derived and ignored here."""
    try:
        data = json_body()
        invoice = invoice_service.update_invoice(
            g.store_id,
            invoice_id,
            total_amount_cents=data.get("total_amount_cents"),
            due_date=_due_date(data),
            clear_due_date="due_date" in data and not data.get("due_date"),
            notes=data.get("notes"),
        )
        return jsonify({"invoice": invoice.to_dict()}), 200
    except StoreManagerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/cancel")
@require_store
def cancel_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.cancel_invoice(g.store_id, invoice_id)
        return jsonify({"invoice": invoice.to_dict()}), 200
    except StoreManagerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel invoice")
        return jsonify({"error": "Internal server error"}), 500
