"""
Team Project Platform
Notification Blueprint.

Provides:
    - In-app notification listing per user, with unread count
    - Mark one / all notifications as read
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.services.notification import NotificationService
from app.utils.errors import E, api_error

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/notifications")


@notification_bp.route("", methods=["GET"])
def list_notifications():
    """List a user's notifications, newest first."""
    user_id = request.args.get("user_id")
    if not user_id:
        return api_error(E.VALIDATION_REQUIRED, "user_id is required")

    unread_only = request.args.get("unread_only", "false").lower() == "true"
    try:
        limit = min(int(request.args.get("limit", 50)), 200)
        offset = max(int(request.args.get("offset", 0)), 0)
    except (TypeError, ValueError):
        return api_error(E.VALIDATION_INVALID, "limit and offset must be integers")

    items, total = NotificationService.list_for_user(
        user_id, unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(user_id),
    })


@notification_bp.route("/<notification_id>/read", methods=["POST"])
def mark_read(notification_id):
    notif = NotificationService.mark_read(notification_id)
    return jsonify(notif.to_dict())


@notification_bp.route("/read-all", methods=["POST"])
def mark_all_read():
    data = request.get_json(silent=True) or {}
    user_id = data.get("user_id") or request.args.get("user_id")
    if not user_id:
        return api_error(E.VALIDATION_REQUIRED, "user_id is required")
    count = NotificationService.mark_all_read(user_id)
    return jsonify({"marked_read": count})
