# Overview: Flask API routes for dashboard analytics.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_store
from ..responses import int_arg
from ..services import analytics_service
from ..time_utils import parse_iso_date

analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/analytics")


@analytics_bp.get("/summary")
@require_store
def summary_route():
    return jsonify(analytics_service.dashboard_summary(g.store_id)), 200


@analytics_bp.get("/revenue")
@require_store
def monthly_revenue_route():
    """Query params: months (default 6, max 24)."""
    return jsonify(analytics_service.monthly_revenue(g.store_id, months=int_arg("months", 6))), 200


@analytics_bp.get("/customers")
@require_store
def customer_growth_route():
    return jsonify(analytics_service.customer_growth(g.store_id, days=int_arg("days", 30))), 200


@analytics_bp.get("/top-products")
@require_store
def top_products_route():
    return jsonify({"items": analytics_service.top_products(g.store_id, limit=int_arg("limit", 5))}), 200


@analytics_bp.get("/daily-sales")
@require_store
def daily_sales_route():
    """Query params: date=YYYY-MM-DD (default today, UTC)."""
    try:
        day = parse_iso_date(request.args.get("date"))
    except ValueError:
        return jsonify({"error": "date must be YYYY-MM-DD"}), 400
    return jsonify(analytics_service.daily_sales(g.store_id, day)), 200
