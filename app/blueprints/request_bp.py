"""
Resource request blueprint.

Routes:
  POST   /api/v1/requests              – submit a request
  GET    /api/v1/requests              – list requests (own, or all for staff)
  GET    /api/v1/requests/<id>         – snapshot with decision history
  PUT    /api/v1/requests/<id>         – requester edit (before first approval)

The caller is identified by the X-User-Id header.  Service layer owns all
business logic and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from app.core.exceptions import PermissionDenied
from app.services import identity
from app.services import request_lifecycle as lifecycle
from app.utils.errors import register_error_handlers
from app.utils.helpers import json_body, optional_int, required_int

logger = logging.getLogger(__name__)

request_bp = Blueprint("request_bp", __name__, url_prefix="/api/v1")
register_error_handlers(request_bp)


def _is_staff(user) -> bool:
    return identity.approval_authority(user) > 0 or identity.is_fulfillment_staff(user)


# ═════════════════════════════════════════════════════════════════════════════
# SUBMIT / LIST
# ═════════════════════════════════════════════════════════════════════════════

@request_bp.route("/requests", methods=["POST"])
def submit_request():
    """Submit a request.

    Body: { phase_id, requested_qty, requested_config?, justification?,
            resource_template_id | resource_type }
    """
    user = identity.current_user()
    data = json_body()
    req = lifecycle.submit(
        requester_id=user.id,
        phase_id=required_int(data, "phase_id"),
        qty=data.get("requested_qty"),
        config=data.get("requested_config"),
        justification=data.get("justification"),
        resource_template_id=optional_int(data, "resource_template_id"),
        resource_type=data.get("resource_type"),
    )
    return jsonify(req.to_dict()), 201


@request_bp.route("/requests", methods=["GET"])
def list_requests():
    """List requests, newest first.

    Members only ever see their own.  Approvers, fulfillment staff and
    admins see all, optionally narrowed with ?requester_id=.
    Filter: ?status=PENDING|IN_PROGRESS|...
    """
    user = identity.current_user()
    requester_id = request.args.get("requester_id", type=int)
    if not _is_staff(user):
        requester_id = user.id
    items = lifecycle.list_requests(
        requester_id=requester_id,
        status=request.args.get("status") or None,
    )
    return jsonify({"items": [r.to_dict() for r in items], "total": len(items)})


# ═════════════════════════════════════════════════════════════════════════════
# DETAIL / EDIT
# ═════════════════════════════════════════════════════════════════════════════

@request_bp.route("/requests/<int:request_id>", methods=["GET"])
def get_request(request_id):
    user = identity.current_user()
    snapshot = lifecycle.get_request(request_id)
    if not _is_staff(user) and user.id not in (snapshot["requester_id"], snapshot["assigned_to_id"]):
        raise PermissionDenied(user.id, f"view request {request_id}")
    return jsonify(snapshot)


@request_bp.route("/requests/<int:request_id>", methods=["PUT"])
def edit_request(request_id):
    """Edit qty / config / justification.  Body keys are all optional."""
    user = identity.current_user()
    data = json_body()
    req = lifecycle.edit(
        request_id,
        requester_id=user.id,
        new_qty=data.get("requested_qty"),
        new_config=data.get("requested_config"),
        new_justification=data.get("justification"),
    )
    return jsonify(req.to_dict())
