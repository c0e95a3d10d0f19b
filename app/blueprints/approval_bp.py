"""
Approval blueprint.

Routes:
  POST   /api/v1/requests/<id>/decisions  – approve / reject one level
  GET    /api/v1/approvals/pending        – approver inbox

Decisions are rate limited (RATELIMIT_DECISIONS).
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify

from app.services import identity
from app.services import request_lifecycle as lifecycle
from app.utils.errors import register_error_handlers
from app.utils.helpers import json_body

logger = logging.getLogger(__name__)

approval_bp = Blueprint("approval_bp", __name__, url_prefix="/api/v1")
register_error_handlers(approval_bp)


@approval_bp.route("/requests/<int:request_id>/decisions", methods=["POST"])
def decide_request(request_id):
    """Record a decision.

    Body: { level, decision: "APPROVED" | "REJECTED", reason? }
    ``reason`` is required for a rejection.
    """
    user = identity.current_user()
    data = json_body()
    req = lifecycle.decide(
        request_id,
        approver_id=user.id,
        level=data.get("level"),
        decision=data.get("decision"),
        reason=data.get("reason") or data.get("comments"),
    )
    return jsonify(lifecycle.get_request(req.id))


@approval_bp.route("/approvals/pending", methods=["GET"])
def pending_approvals():
    """Open requests whose next level the caller may decide."""
    user = identity.current_user()
    items = lifecycle.list_pending_for_approver(user.id)
    return jsonify({
        "items": [r.to_dict() for r in items],
        "total": len(items),
        "authority_level": identity.approval_authority(user),
    })
