# Overview: Flask API routes for the notification feed.

from flask import Blueprint, g, jsonify

from ..decorators import require_store
from ..responses import bool_arg, int_arg
from ..services import notification_service

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_store
def list_notifications_route():
    """
    Query params:
    - limit: max items (defaults to NOTIFICATION_FEED_LIMIT)
    - unread: true to only return unread notifications
    """
    notifications = notification_service.get_notifications(
        g.store_id, limit=int_arg("limit"), unread_only=bool_arg("unread")
    )
    return jsonify({
        "items": [n.to_dict() for n in notifications],
        "count": len(notifications),
        "unread_count": notification_service.get_unread_count(g.store_id),
    }), 200


@notifications_bp.get("/unread-count")
@require_store
def unread_count_route():
    return jsonify({"unread_count": notification_service.get_unread_count(g.store_id)}), 200


@notifications_bp.post("/<int:notification_id>/read")
@require_store
def mark_read_route(notification_id: int):
    notification = notification_service.mark_as_read(g.store_id, notification_id)
    if not notification:
        return jsonify({"error": "Notification not found"}), 404
    return jsonify({"notification": notification.to_dict()}), 200


@notifications_bp.post("/read-all")
@require_store
def mark_all_read_route():
    return jsonify({"updated": notification_service.mark_all_as_read(g.store_id)}), 200
