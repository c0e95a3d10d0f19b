"""
ORM factory helpers for tests.

Each helper adds and flushes one row so ids are available immediately;
callers commit when they need the row visible to another session.
"""

import itertools

from app.models import db
from app.models.auth import Department, User
from app.models.project import Phase, Project
from app.models.request import (
    COMMITTED_STATUSES,
    DECISION_APPROVED,
    STATUS_PENDING,
    ApprovalDecision,
    ResourceRequest,
)
from app.models.resource import ResourcePool, ResourceTemplate

_seq = itertools.count(1)


def auth(user) -> dict:
    """Headers identifying ``user`` as the API caller."""
    return {"X-User-Id": str(user.id)}


def _save(obj):
    db.session.add(obj)
    db.session.flush()
    return obj


def make_department(name=None, unit_type="operations"):
    return _save(Department(name=name or f"Department {next(_seq)}", unit_type=unit_type))


def make_user(role="member", department=None, full_name=None, email=None, is_active=True):
    n = next(_seq)
    return _save(User(
        email=email or f"user{n}@example.com",
        full_name=full_name,
        user_role=role,
        department_id=department.id if department else None,
        is_active=is_active,
    ))


def make_phase(project=None, name="Build"):
    if project is None:
        project = _save(Project(name=f"Project {next(_seq)}", client="Acme"))
    return _save(Phase(project_id=project.id, name=name))


def make_template(name=None, approval_levels=1):
    return _save(ResourceTemplate(
        name=name or f"Template {next(_seq)}",
        approval_levels=approval_levels,
        category="compute",
    ))


def make_pool(phase, template=None, resource_type=None, total_qty=5, committed_qty=0,
              configuration=None, cost_per_unit=None):
    return _save(ResourcePool(
        phase_id=phase.id,
        resource_template_id=template.id if template else None,
        resource_type=None if template else (resource_type or "Rack space"),
        total_qty=total_qty,
        committed_qty=committed_qty,
        configuration=configuration or {},
        cost_per_unit=cost_per_unit,
    ))


def make_request(requester, pool, qty=1, status=STATUS_PENDING, required_levels=1,
                 current_level=0, config=None):
    """Insert a request directly in ``status``.

    Requests created in a committed status get a matching approval history
    so the decision ledger stays well-formed.
    """
    committed = status in COMMITTED_STATUSES
    req = _save(ResourceRequest(
        requester_id=requester.id,
        phase_id=pool.phase_id,
        pool_id=pool.id,
        resource_template_id=pool.resource_template_id,
        resource_type=pool.resource_type,
        requested_qty=qty,
        requested_config=config or {},
        status=status,
        required_levels=required_levels,
        current_level=required_levels if committed else current_level,
        routed_to_fulfillment=committed,
    ))
    if committed:
        for level in range(1, required_levels + 1):
            _save(ApprovalDecision(
                request_id=req.id,
                level=level,
                decision=DECISION_APPROVED,
                approver_name_snapshot="seed",
            ))
    return req
