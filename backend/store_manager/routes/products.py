# Overview: Flask API routes for products; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_store
from ..responses import bool_arg, error_response, json_body
from ..services import products_service
from ..services.errors import StoreManagerError

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_store
def list_products_route():
    """
    Query params:
    - search: substring of name, category or barcode
    - category: exact category
    - low_stock: true to only return products at or below the threshold
    """
    products = products_service.list_products(
        g.store_id,
        request.args.get("search"),
        category=request.args.get("category"),
        low_stock_only=bool_arg("low_stock"),
    )
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@products_bp.get("/categories")
@require_store
def list_categories_route():
    return jsonify({"categories": products_service.list_categories(g.store_id)}), 200


@products_bp.post("")
@require_store
def create_product_route():
    try:
        product = products_service.create_product(g.store_id, json_body())
        return jsonify({"product": product.to_dict()}), 201
    except StoreManagerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_store
def get_product_route(product_id: int):
    try:
        return jsonify({"product": products_service.get_product(g.store_id, product_id).to_dict()}), 200
    except StoreManagerError as e:
        return error_response(e)


@products_bp.patch("/<int:product_id>")
@require_store
def update_product_route(product_id: int):
    try:
        product = products_service.update_product(g.store_id, product_id, json_body())
        return jsonify({"product": product.to_dict()}), 200
    except StoreManagerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_store
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(g.store_id, product_id)
        return "", 204
    except StoreManagerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
