"""
Resource pool blueprint.

Routes:
  GET    /api/v1/pools/<id>/availability   – capacity of one pool
  POST   /api/v1/resources/availability    – lookup by phase + template/type
  POST   /api/v1/pools/reconcile           – recompute committed counters (admin)
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify

from app.core.exceptions import PermissionDenied, ValidationError
from app.services import identity, resource_ledger
from app.services.reconciliation import reconcile_pools
from app.utils.errors import register_error_handlers
from app.utils.helpers import json_body, optional_int, required_int

logger = logging.getLogger(__name__)

pool_bp = Blueprint("pool_bp", __name__, url_prefix="/api/v1")
register_error_handlers(pool_bp)


@pool_bp.route("/pools/<int:pool_id>/availability", methods=["GET"])
def pool_availability(pool_id):
    identity.current_user()
    pool = resource_ledger.get_pool(pool_id)
    return jsonify(resource_ledger.check_availability(pool).to_dict())


@pool_bp.route("/resources/availability", methods=["POST"])
def lookup_availability():
    """Body: { phase_id, resource_template_id | resource_type }"""
    identity.current_user()
    data = json_body()
    availability = resource_ledger.lookup_availability(
        phase_id=required_int(data, "phase_id"),
        resource_template_id=optional_int(data, "resource_template_id"),
        resource_type=data.get("resource_type"),
    )
    return jsonify(availability.to_dict())


@pool_bp.route("/pools/reconcile", methods=["POST"])
def reconcile():
    """Body (optional): { pool_ids: [int, ...] }"""
    user = identity.current_user()
    if not identity.is_admin(user):
        raise PermissionDenied(user.id, "reconcile resource pools", "admin only")

    pool_ids = json_body().get("pool_ids")
    if pool_ids is not None and (
        not isinstance(pool_ids, list)
        or not all(isinstance(p, int) and not isinstance(p, bool) for p in pool_ids)
    ):
        raise ValidationError("pool_ids must be a list of integers")

    report = reconcile_pools(pool_ids)
    logger.info("Manual reconciliation by user %s", user.id, extra={"user_id": user.id})
    return jsonify(report.to_dict())
