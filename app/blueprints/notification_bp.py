"""
Resource Allocation Platform
Notification Blueprint.

Routes:
  GET    /api/v1/notifications                 – caller's notifications
  GET    /api/v1/notifications/unread-count    – unread badge count
  POST   /api/v1/notifications/<id>/read       – mark one read
  POST   /api/v1/notifications/read-all        – mark all read
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from app.core.exceptions import NotFoundError
from app.services import identity
from app.services.notification import NotificationService
from app.utils.errors import register_error_handlers
from app.utils.helpers import parse_bool

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1")
register_error_handlers(notification_bp)


@notification_bp.route("/notifications", methods=["GET"])
def list_notifications():
    """?unread_only=true&limit=50&offset=0"""
    user = identity.current_user()
    limit = min(max(request.args.get("limit", 50, type=int), 1), 200)
    offset = max(request.args.get("offset", 0, type=int), 0)
    items, total = NotificationService.list_for_recipient(
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


@notification_bp.route("/notifications/unread-count", methods=["GET"])
def unread_count():
    user = identity.current_user()
    return jsonify({"unread_count": NotificationService.unread_count(user.id)})


@notification_bp.route("/notifications/<int:notification_id>/read", methods=["POST"])
def mark_read(notification_id):
    user = identity.current_user()
    notif = NotificationService.mark_read(notification_id, user.id)
    if notif is None:
        raise NotFoundError(resource="Notification", resource_id=notification_id)
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/read-all", methods=["POST"])
def mark_all_read():
    user = identity.current_user()
    count = NotificationService.mark_all_read(user.id)
    return jsonify({"marked": count})
