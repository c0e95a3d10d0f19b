"""
Resource request lifecycle.

Owns the request status and drives the approval chain:

    PENDING → IN_PROGRESS → APPROVED | REJECTED
    APPROVED → ASSIGNED_TO_IT → COMPLETED      (see fulfillment_service)

Operations:
    submit   create a PENDING request against a resolved pool
    decide   record one approval-level decision; the final approval
             commits capacity through the resource ledger
    edit     requester changes qty / config / justification until the
             first approval lands
    get_request, list_requests, list_pending_for_approver

Every write path commits exactly once.  Notifications are emitted after the
commit through ``emit_request_event`` and can never undo a transition.

Usage:
    from app.services import request_lifecycle as lifecycle

    req = lifecycle.submit(requester_id=7, phase_id=3, qty=2, config={},
                           justification="UAT", resource_template_id=1)
    lifecycle.decide(req.id, approver_id=4, level=1, decision="APPROVED")
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import (
    AlreadyTerminalError,
    ApproverNotAuthorizedError,
    ConflictError,
    DuplicateApprovalError,
    InsufficientCapacityError,
    NotEditableError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from app.models import db
from app.models.request import (
    DECIDED_STATUSES,
    DECISION_APPROVED,
    DECISION_REJECTED,
    DECISIONS,
    REQUEST_STATUSES,
    STATUS_APPROVED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
    STATUS_REJECTED,
    ApprovalDecision,
    ResourceRequest,
    validate_request_transition,
)
from app.models.resource import clamp_approval_levels
from app.services import identity, resource_ledger
from app.services.approval_chain import evaluate_chain, validate_next_decision
from app.services.notification import (
    EVENT_APPROVED,
    EVENT_PENDING_APPROVAL,
    EVENT_REJECTED,
    emit_request_event,
)

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = frozenset({STATUS_PENDING, STATUS_IN_PROGRESS})


# ═════════════════════════════════════════════════════════════════════════════
# Input validation
# ═════════════════════════════════════════════════════════════════════════════

def _validate_qty(qty, field="requested_qty") -> int:
    if isinstance(qty, bool) or not isinstance(qty, int) or qty < 1:
        raise ValidationError(
            f"{field} must be a positive integer",
            details={field: qty},
        )
    return qty


def _validate_config(config) -> dict:
    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ValidationError("requested_config must be an object",
                              details={"requested_config": "must be an object"})
    return config


def _normalise_decision(decision) -> str:
    value = decision.strip().upper() if isinstance(decision, str) else decision
    if value not in DECISIONS:
        raise ValidationError(
            f"decision must be one of {sorted(DECISIONS)}",
            details={"decision": decision},
        )
    return value


def _get_request(request_id: int) -> ResourceRequest:
    req = db.session.get(ResourceRequest, request_id)
    if req is None:
        raise NotFoundError(resource="ResourceRequest", resource_id=request_id)
    return req


def _log_extra(req: ResourceRequest, **extra) -> dict:
    return {"resource_request_id": req.id, "pool_id": req.pool_id, **extra}


# ═════════════════════════════════════════════════════════════════════════════
# Submit
# ═════════════════════════════════════════════════════════════════════════════

def submit(
    requester_id: int,
    phase_id: int,
    qty,
    config,
    justification: str | None,
    resource_template_id: int | None = None,
    resource_type: str | None = None,
) -> ResourceRequest:
    """Create a PENDING request for ``qty`` units of a phase's pool.

    The approval level count is snapshotted from the pool's template (or
    ``FREEFORM_APPROVAL_LEVELS`` for free-form type pools).

    Raises:
        ValidationError: bad quantity / config, or pool identity missing.
        NotFoundError: unknown requester, phase or pool.
    """
    requester = identity.get_user(requester_id)
    qty = _validate_qty(qty)
    config = _validate_config(config)
    pool = resource_ledger.resolve_pool(phase_id, resource_template_id, resource_type)

    if pool.template is not None:
        levels = clamp_approval_levels(pool.template.approval_levels)
    else:
        levels = clamp_approval_levels(current_app.config.get("FREEFORM_APPROVAL_LEVELS", 1))

    req = ResourceRequest(
        requester_id=requester.id,
        phase_id=pool.phase_id,
        pool_id=pool.id,
        resource_template_id=pool.resource_template_id,
        resource_type=pool.resource_type,
        requested_qty=qty,
        requested_config=config,
        justification=(justification or "").strip() or None,
        status=STATUS_PENDING,
        current_level=0,
        required_levels=levels,
    )
    db.session.add(req)
    db.session.commit()

    logger.info(
        "Request %s submitted by user %s: %d x %s (%d approval level(s))",
        req.id, requester.id, qty, pool.label, levels,
        extra=_log_extra(req, user_id=requester.id),
    )
    emit_request_event(EVENT_PENDING_APPROVAL, req)
    return req


# ═════════════════════════════════════════════════════════════════════════════
# Decide
# ═════════════════════════════════════════════════════════════════════════════

def _record_decision(req, approver, level, decision, reason) -> ApprovalDecision:
    dec = ApprovalDecision(
        request_id=req.id,
        level=level,
        decision=decision,
        approver_id=approver.id,
        approver_name_snapshot=approver.display_name,
        comments=(reason or "").strip() or None,
    )
    db.session.add(dec)
    return dec


def _commit_decision(req: ResourceRequest, level: int) -> None:
    """Commit; a lost race on the (request, level) unique key is a duplicate."""
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.info(
            "Concurrent decision for request %s level %d", req.id, level,
            extra=_log_extra(req, approval_level=level),
        )
        raise DuplicateApprovalError(req.id, level)


def _lock_and_recheck(req: ResourceRequest, level: int):
    """Re-validate the decision against committed state; call under ``pool_lock``.

    Another worker may have decided or edited while we waited for the lock.
    """
    db.session.refresh(req)
    if req.status in DECIDED_STATUSES:
        raise AlreadyTerminalError(req.id, req.status, "decide")
    decisions = db.session.execute(
        select(ApprovalDecision)
        .where(ApprovalDecision.request_id == req.id)
        .order_by(ApprovalDecision.level)
    ).scalars().all()
    state = evaluate_chain(req.required_levels, decisions)
    validate_next_decision(state, decisions, level, request_id=req.id)
    return state


def transition_request(req: ResourceRequest, new_status: str) -> None:
    """Move ``req`` to ``new_status`` if the lifecycle allows it."""
    old = req.status
    if not validate_request_transition(old, new_status):
        raise ConflictError(
            f"Invalid transition for request {req.id}: {old} -> {new_status}",
            details={"from": old, "to": new_status},
        )
    req.status = new_status


def decide(
    request_id: int,
    approver_id: int,
    level,
    decision,
    reason: str | None = None,
) -> ResourceRequest:
    """Record an approval-level decision on a request.

    Checks run in order: request exists, request still open, decision
    well-formed (a rejection needs a reason), level not yet decided and the
    one the chain requires, approver authority covers the level.

    Every decision is written under the pool lock that ``edit`` takes, and
    the chain is re-checked there, so an edit can never land after the first
    approval.

    A final approval commits the request's quantity against its pool.  If
    the pool cannot cover it, nothing is recorded, the request stays open
    (IN_PROGRESS) and InsufficientCapacityError propagates.

    Raises:
        NotFoundError, AlreadyTerminalError, ValidationError,
        DuplicateApprovalError, WrongLevelError, ApproverNotAuthorizedError,
        InsufficientCapacityError
    """
    req = _get_request(request_id)
    if req.status in DECIDED_STATUSES:
        raise AlreadyTerminalError(req.id, req.status, "decide")

    decision = _normalise_decision(decision)
    if decision == DECISION_REJECTED and not (reason or "").strip():
        raise ValidationError("A rejection requires a reason", details={"reason": "required"})

    decisions = list(req.decisions)
    state = evaluate_chain(req.required_levels, decisions)
    validate_next_decision(state, decisions, level, request_id=req.id)

    approver = identity.get_user(approver_id)
    authority = identity.approval_authority(approver)
    if authority < level:
        raise ApproverNotAuthorizedError(approver.id, level, authority)

    if decision == DECISION_REJECTED:
        return _reject(req, approver, level, reason)
    if state.next_is_final:
        return _finalise(req, approver, level, reason)
    return _approve_level(req, approver, level, reason)


def _approve_level(req, approver, level, reason) -> ResourceRequest:
    with resource_ledger.pool_lock(req.pool_id):
        state = _lock_and_recheck(req, level)
        _record_decision(req, approver, level, DECISION_APPROVED, reason)
        transition_request(req, STATUS_IN_PROGRESS)
        req.current_level = state.approved_count + 1
        _commit_decision(req, level)

    logger.info(
        "Request %s approved at level %d of %d by user %s",
        req.id, level, req.required_levels, approver.id,
        extra=_log_extra(req, approval_level=level, user_id=approver.id),
    )
    emit_request_event(EVENT_PENDING_APPROVAL, req)
    return req


def _reject(req, approver, level, reason) -> ResourceRequest:
    with resource_ledger.pool_lock(req.pool_id):
        _lock_and_recheck(req, level)
        _record_decision(req, approver, level, DECISION_REJECTED, reason)
        transition_request(req, STATUS_REJECTED)
        req.rejection_reason = reason.strip()
        _commit_decision(req, level)

    logger.info(
        "Request %s rejected at level %d by user %s",
        req.id, level, approver.id,
        extra=_log_extra(req, approval_level=level, user_id=approver.id),
    )
    emit_request_event(EVENT_REJECTED, req)
    return req


def _finalise(req, approver, level, reason) -> ResourceRequest:
    """Final approval: capacity check, decision and counter in one commit."""
    with resource_ledger.pool_lock(req.pool_id) as pool:
        _lock_and_recheck(req, level)
        try:
            resource_ledger.commit(pool, req.id, req.requested_qty)
        except InsufficientCapacityError:
            # Review has started even though this approval could not land.
            if req.status == STATUS_PENDING:
                transition_request(req, STATUS_IN_PROGRESS)
            db.session.commit()
            raise

        _record_decision(req, approver, level, DECISION_APPROVED, reason)
        transition_request(req, STATUS_APPROVED)
        req.current_level = level
        req.routed_to_fulfillment = True
        _commit_decision(req, level)

    logger.info(
        "Request %s fully approved by user %s; routed to fulfillment",
        req.id, approver.id,
        extra=_log_extra(req, approval_level=level, user_id=approver.id),
    )
    emit_request_event(EVENT_APPROVED, req)
    return req


# ═════════════════════════════════════════════════════════════════════════════
# Edit
# ═════════════════════════════════════════════════════════════════════════════

def edit(
    request_id: int,
    requester_id: int,
    new_qty=None,
    new_config=None,
    new_justification: str | None = None,
) -> ResourceRequest:
    """Let the requester amend a request that no approver has signed yet.

    Raises:
        NotFoundError: unknown request.
        PermissionDenied: caller is not the requester.
        NotEditableError: request decided, or a level already approved.
        ValidationError: bad quantity / config.
    """
    req = _get_request(request_id)
    if req.requester_id != requester_id:
        raise PermissionDenied(requester_id, f"edit request {req.id}", "only the requester may edit")

    if new_qty is not None:
        _validate_qty(new_qty)
    if new_config is not None:
        _validate_config(new_config)

    # Same lock as final approval so qty cannot change under a commit.
    with resource_ledger.pool_lock(req.pool_id):
        db.session.refresh(req)
        if req.status not in EDITABLE_STATUSES:
            raise NotEditableError(req.id, req.status)
        approved_levels = db.session.execute(
            select(ApprovalDecision.level).where(
                ApprovalDecision.request_id == req.id,
                ApprovalDecision.decision == DECISION_APPROVED,
            )
        ).scalars().all()
        if approved_levels:
            raise NotEditableError(req.id, req.status, decided_level=max(approved_levels))

        changed = []
        if new_qty is not None and new_qty != req.requested_qty:
            req.requested_qty = new_qty
            changed.append("requested_qty")
        if new_config is not None:
            req.requested_config = new_config
            changed.append("requested_config")
        if new_justification is not None:
            req.justification = new_justification.strip() or None
            changed.append("justification")
        db.session.commit()

    logger.info(
        "Request %s edited by requester: %s", req.id, ", ".join(changed) or "no changes",
        extra=_log_extra(req, user_id=requester_id),
    )
    return req


# ═════════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════════

def get_request(request_id: int) -> dict:
    """Request snapshot with decision history, chain state and pool."""
    req = _get_request(request_id)
    data = req.to_dict(include_decisions=True)
    data["chain"] = evaluate_chain(req.required_levels, req.decisions).to_dict()
    data["pool"] = req.pool.to_dict() if req.pool else None
    return data


def list_requests(requester_id: int | None = None, status: str | None = None) -> list[ResourceRequest]:
    if status is not None and status not in REQUEST_STATUSES:
        raise ValidationError(
            f"status must be one of {sorted(REQUEST_STATUSES)}",
            details={"status": status},
        )
    stmt = select(ResourceRequest)
    if requester_id is not None:
        stmt = stmt.where(ResourceRequest.requester_id == requester_id)
    if status is not None:
        stmt = stmt.where(ResourceRequest.status == status)
    stmt = stmt.order_by(ResourceRequest.created_at.desc(), ResourceRequest.id.desc())
    return db.session.execute(stmt).scalars().all()


def list_pending_for_approver(approver_id: int) -> list[ResourceRequest]:
    """Open requests whose next required level the approver may decide."""
    approver = identity.get_user(approver_id)
    authority = identity.approval_authority(approver)
    if authority == 0:
        return []
    stmt = (
        select(ResourceRequest)
        .where(
            ResourceRequest.status.in_(sorted(EDITABLE_STATUSES)),
            ResourceRequest.current_level < authority,
        )
        .order_by(ResourceRequest.created_at, ResourceRequest.id)
    )
    return db.session.execute(stmt).scalars().all()
