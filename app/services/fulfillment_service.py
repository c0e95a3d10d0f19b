"""
Fulfillment hand-off service.

Fully approved requests land in the fulfillment queue.  IT staff assign each
one to an operational member, who provisions the resource and completes
the task with notes and (optionally) access credentials.

    APPROVED ──assign──▶ ASSIGNED_TO_IT ──complete──▶ COMPLETED
                         (re-assign allowed)

Completion sends the credentials to the requester as a notification; a
notification failure never rolls the completion back.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import case, select

from app.core.exceptions import (
    AlreadyTerminalError,
    ConflictError,
    NotAssignableError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from app.models import db
from app.models.auth import User
from app.models.request import (
    STATUS_APPROVED,
    STATUS_ASSIGNED_TO_IT,
    STATUS_COMPLETED,
    ResourceRequest,
)
from app.services import identity, resource_ledger
from app.services.notification import EVENT_ASSIGNED, EVENT_COMPLETED, emit_request_event
from app.services.request_lifecycle import transition_request

logger = logging.getLogger(__name__)

_QUEUE_ORDER = case(
    (ResourceRequest.status == STATUS_APPROVED, 0),
    (ResourceRequest.status == STATUS_ASSIGNED_TO_IT, 1),
    else_=2,
)


def _get_request(request_id: int) -> ResourceRequest:
    req = db.session.get(ResourceRequest, request_id)
    if req is None:
        raise NotFoundError(resource="ResourceRequest", resource_id=request_id)
    return req


def _check_assignable(req: ResourceRequest) -> None:
    if req.is_terminal:
        raise AlreadyTerminalError(req.id, req.status, "assign")
    if req.status not in (STATUS_APPROVED, STATUS_ASSIGNED_TO_IT) or not req.routed_to_fulfillment:
        raise NotAssignableError(
            f"Request {req.id} has not been routed to fulfillment (status={req.status})",
            details={"status": req.status},
        )


def _check_completable(req: ResourceRequest, completer: User) -> None:
    allowed = (
        identity.is_admin(completer)
        or completer.user_role == "it_team"
        or completer.id == req.assigned_to_id
    )
    if not allowed:
        raise PermissionDenied(completer.id, f"complete request {req.id}",
                               "only the assignee, IT team or an admin may complete")
    if req.is_terminal:
        raise AlreadyTerminalError(req.id, req.status, "complete")
    if req.status != STATUS_ASSIGNED_TO_IT:
        raise ConflictError(
            f"Request {req.id} must be assigned before it can be completed (status={req.status})",
            details={"status": req.status},
        )


def assign(request_id: int, assigner_id: int, assignee_id: int) -> ResourceRequest:
    """Hand an approved request to an operational member.

    Raises:
        NotFoundError: unknown request, assigner or assignee.
        PermissionDenied: assigner is not fulfillment staff.
        AlreadyTerminalError: request already COMPLETED or REJECTED.
        NotAssignableError: request not routed to fulfillment, or the
            assignee is not an operational member.
    """
    req = _get_request(request_id)
    assigner = identity.get_user(assigner_id)
    if not identity.is_fulfillment_staff(assigner):
        raise PermissionDenied(assigner.id, "assign fulfillment tasks",
                               "requires admin, IT head or IT team role")
    _check_assignable(req)

    assignee = identity.get_user(assignee_id)
    issue = identity.assignability_issue(assignee)
    if issue:
        raise NotAssignableError(
            f"User {assignee.id} cannot be assigned: {issue}",
            details={"assignee_id": assignee.id, "reason": issue},
        )

    # Status writes on a request serialize on its pool, as decisions do.
    with resource_ledger.pool_lock(req.pool_id):
        db.session.refresh(req)
        _check_assignable(req)
        previous = req.assigned_to_id
        transition_request(req, STATUS_ASSIGNED_TO_IT)
        req.assigned_to_id = assignee.id
        req.assigned_by_id = assigner.id
        req.assigned_at = datetime.now(timezone.utc)
        db.session.commit()

    logger.info(
        "Request %s %s to user %s by user %s",
        req.id, "re-assigned" if previous else "assigned", assignee.id, assigner.id,
        extra={"resource_request_id": req.id, "pool_id": req.pool_id, "user_id": assigner.id},
    )
    emit_request_event(EVENT_ASSIGNED, req)
    return req


def complete(request_id: int, completer_id: int, notes, credentials=None) -> ResourceRequest:
    """Close a hand-off task.

    Raises:
        NotFoundError: unknown request or completer.
        PermissionDenied: completer is neither the assignee, an admin nor IT team.
        AlreadyTerminalError: request already COMPLETED or REJECTED.
        ConflictError: request is not ASSIGNED_TO_IT.
        ValidationError: notes missing, or credentials not an object/list.
    """
    req = _get_request(request_id)
    completer = identity.get_user(completer_id)
    _check_completable(req, completer)

    notes = notes.strip() if isinstance(notes, str) else ""
    if not notes:
        raise ValidationError("Completion notes are required", details={"notes": "required"})
    if credentials is not None and not isinstance(credentials, (dict, list)):
        raise ValidationError("credentials must be an object or a list",
                              details={"credentials": "must be an object or a list"})

    with resource_ledger.pool_lock(req.pool_id):
        db.session.refresh(req)
        _check_completable(req, completer)
        transition_request(req, STATUS_COMPLETED)
        req.completed_by_id = completer.id
        req.completed_at = datetime.now(timezone.utc)
        req.completion_notes = notes
        req.credentials = credentials
        db.session.commit()

    logger.info(
        "Request %s completed by user %s", req.id, completer.id,
        extra={"resource_request_id": req.id, "pool_id": req.pool_id, "user_id": completer.id},
    )
    emit_request_event(EVENT_COMPLETED, req)
    return req


def list_fulfillment_queue(include_completed: bool = False) -> list[ResourceRequest]:
    """Routed requests, unassigned first, then in-flight, then (optionally) done."""
    statuses = [STATUS_APPROVED, STATUS_ASSIGNED_TO_IT]
    if include_completed:
        statuses.append(STATUS_COMPLETED)
    stmt = (
        select(ResourceRequest)
        .where(
            ResourceRequest.routed_to_fulfillment.is_(True),
            ResourceRequest.status.in_(statuses),
        )
        .order_by(_QUEUE_ORDER, ResourceRequest.updated_at, ResourceRequest.id)
    )
    return db.session.execute(stmt).scalars().all()


def list_assigned_tasks(assignee_id: int, include_completed: bool = False) -> list[ResourceRequest]:
    """Tasks handed to one assignee; open tasks only unless asked otherwise."""
    statuses = [STATUS_ASSIGNED_TO_IT]
    if include_completed:
        statuses.append(STATUS_COMPLETED)
    stmt = (
        select(ResourceRequest)
        .where(
            ResourceRequest.assigned_to_id == assignee_id,
            ResourceRequest.status.in_(statuses),
        )
        .order_by(_QUEUE_ORDER, ResourceRequest.assigned_at, ResourceRequest.id)
    )
    return db.session.execute(stmt).scalars().all()
