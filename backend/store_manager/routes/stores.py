# Overview: Flask API routes for the calling store's profile and session.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_store
from ..responses import error_response, json_body
from ..services import session_service, store_service
from ..services.errors import StoreManagerError

stores_bp = Blueprint("stores", __name__, url_prefix="/api/store")


@stores_bp.get("")
@require_store
def get_store_route():
    return jsonify({"store": g.store.to_dict()}), 200


@stores_bp.patch("")
@require_store
def update_store_route():
    """
    Update the store profile.

    Request body: {"name": "...", "logo_url": "..."}  (both optional)
    """
    try:
        data = json_body()
        store = store_service.update_store(g.store_id, name=data.get("name"), logo_url=data.get("logo_url"))
        return jsonify({"store": store.to_dict()}), 200
    except StoreManagerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update store")
        return jsonify({"error": "Internal server error"}), 500


@stores_bp.post("/logout")
@require_store
def logout_route():
    """Revoke the bearer token used for this request."""
    token = request.headers.get("Authorization", "").split(" ", 1)[1].strip()
    session_service.revoke_session(token)
    return jsonify({"status": "revoked"}), 200
