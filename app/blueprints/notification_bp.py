"""
Notification Blueprint — the current user's in-app notifications.

Routes (prefix /api/v1/notifications):
  GET  ""               – list (?unread_only=true&limit=&offset=)
  GET  /unread-count
  POST /<id>/read
  POST /read-all
"""

from flask import Blueprint, jsonify, request

from app.middleware.role_required import current_user, require_roles
from app.models.auth import ALL_ROLES
from app.services.notification import NotificationService
from app.utils.helpers import parse_bool

notification_bp = Blueprint("notification", __name__, url_prefix="/api/v1/notifications")


@notification_bp.route("", methods=["GET"])
@require_roles(*ALL_ROLES)
def list_notifications():
    user = current_user()
    limit = max(1, min(request.args.get("limit", 50, type=int) or 50, 200))
    offset = max(0, request.args.get("offset", 0, type=int) or 0)
    items, total = NotificationService.list_for_user(
        user.id,
        unread_only=parse_bool(request.args.get("unread_only")),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(user.id),
    })


@notification_bp.route("/unread-count", methods=["GET"])
@require_roles(*ALL_ROLES)
def unread_count():
    return jsonify({"unread_count": NotificationService.unread_count(current_user().id)})


@notification_bp.route("/<int:notification_id>/read", methods=["POST"])
@require_roles(*ALL_ROLES)
def mark_read(notification_id):
    notif = NotificationService.mark_read(notification_id, current_user().id)
    if notif is None:
        return jsonify({"error": "Notification not found"}), 404
    return jsonify(notif.to_dict())


@notification_bp.route("/read-all", methods=["POST"])
@require_roles(*ALL_ROLES)
def mark_all_read():
    count = NotificationService.mark_all_read(current_user().id)
    return jsonify({"marked_read": count})
