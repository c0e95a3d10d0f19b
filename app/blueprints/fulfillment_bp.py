"""
Fulfillment blueprint.

Routes:
  GET    /api/v1/fulfillment/queue          – routed requests (staff)
  POST   /api/v1/requests/<id>/assign       – hand a request to a member
  POST   /api/v1/requests/<id>/complete     – close with notes + credentials
  GET    /api/v1/fulfillment/my-tasks       – caller's assigned tasks
  GET    /api/v1/fulfillment/assignees      – members who can be assigned (staff)
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from app.core.exceptions import PermissionDenied
from app.services import fulfillment_service, identity
from app.utils.errors import register_error_handlers
from app.utils.helpers import json_body, parse_bool, required_int

logger = logging.getLogger(__name__)

fulfillment_bp = Blueprint("fulfillment_bp", __name__, url_prefix="/api/v1")
register_error_handlers(fulfillment_bp)


@fulfillment_bp.route("/fulfillment/queue", methods=["GET"])
def fulfillment_queue():
    """?include_completed=true adds COMPLETED requests after the open ones."""
    user = identity.current_user()
    if not identity.is_fulfillment_staff(user):
        raise PermissionDenied(user.id, "view the fulfillment queue")
    items = fulfillment_service.list_fulfillment_queue(
        include_completed=parse_bool(request.args.get("include_completed")),
    )
    return jsonify({"items": [r.to_dict() for r in items], "total": len(items)})


@fulfillment_bp.route("/requests/<int:request_id>/assign", methods=["POST"])
def assign_request(request_id):
    """Body: { assignee_id }"""
    user = identity.current_user()
    data = json_body()
    req = fulfillment_service.assign(
        request_id,
        assigner_id=user.id,
        assignee_id=required_int(data, "assignee_id"),
    )
    return jsonify(req.to_dict())


@fulfillment_bp.route("/requests/<int:request_id>/complete", methods=["POST"])
def complete_request(request_id):
    """Body: { notes, credentials? }"""
    user = identity.current_user()
    data = json_body()
    req = fulfillment_service.complete(
        request_id,
        completer_id=user.id,
        notes=data.get("notes"),
        credentials=data.get("credentials"),
    )
    return jsonify(req.to_dict())


@fulfillment_bp.route("/fulfillment/my-tasks", methods=["GET"])
def my_tasks():
    user = identity.current_user()
    items = fulfillment_service.list_assigned_tasks(
        user.id,
        include_completed=parse_bool(request.args.get("include_completed")),
    )
    return jsonify({"items": [r.to_dict() for r in items], "total": len(items)})


@fulfillment_bp.route("/fulfillment/assignees", methods=["GET"])
def assignees():
    """Operational members IT staff can hand a request to."""
    user = identity.current_user()
    if not identity.is_fulfillment_staff(user):
        raise PermissionDenied(user.id, "list assignable members")
    members = identity.assignable_members()
    return jsonify({"items": [m.to_dict() for m in members], "total": len(members)})
