"""
Platform-wide exception hierarchy.

Services raise these types; blueprints map them to HTTP once through
``app.utils.errors.register_error_handlers`` and get consistent status codes
and machine-readable ``code`` values everywhere.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="ResourceRequest", resource_id=42)
    raise ValidationError("requested_qty must be a positive integer",
                          details={"requested_qty": "must be >= 1"})
"""

from __future__ import annotations

from app.utils.errors import E


class DomainError(Exception):
    """Base class for every business-rule failure raised by a service.

    Subclasses set ``code`` (an ``E.*`` constant) and ``status`` (HTTP).
    ``details`` is an optional structured payload returned to the caller.
    """

    code: str = E.INTERNAL
    status: int = 400

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class NotFoundError(DomainError):
    """Raised when a requested record does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "ResourceRequest").
        resource_id: The PK that was looked up.
    """

    code = E.NOT_FOUND
    status = 404

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(DomainError):
    """Raised when well-formed input violates a business rule.

    Distinct from HTTP 400 (malformed input, caught in the blueprint).
    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    code = E.VALIDATION_INVALID
    status = 422


class AuthenticationRequired(DomainError):
    """Raised when no (or an unknown) caller identity accompanies the call."""

    code = E.UNAUTHENTICATED
    status = 401


class PermissionDenied(DomainError):
    """Raised when the caller's role does not allow the action."""

    code = E.FORBIDDEN
    status = 403

    def __init__(self, user_id: int | None, action: str, reason: str | None = None) -> None:
        msg = f"User {user_id} is not allowed to {action}"
        if reason:
            msg += f": {reason}"
        self.user_id = user_id
        self.action = action
        super().__init__(msg, details={"action": action})


class ApproverNotAuthorizedError(PermissionDenied):
    """Raised when an approver's authority level is below the level decided."""

    code = E.APPROVER_NOT_AUTHORIZED

    def __init__(self, user_id: int | None, level: int, authority: int) -> None:
        super().__init__(
            user_id,
            f"decide approval level {level}",
            f"authority level is {authority}",
        )
        self.level = level
        self.authority = authority
        self.details.update({"level": level, "authority": authority})


# ── Lifecycle conflicts (HTTP 409) ───────────────────────────────────────────


class ConflictError(DomainError):
    """Raised when the operation conflicts with the record's current state."""

    code = E.CONFLICT_STATE
    status = 409


class WrongLevelError(ConflictError):
    """Decision submitted for a level other than the one the chain requires."""

    code = E.WRONG_LEVEL

    def __init__(self, request_id: int, level: int, required_level: int) -> None:
        super().__init__(
            f"Request {request_id} requires a decision at level {required_level}, "
            f"got level {level}",
            details={"level": level, "required_level": required_level},
        )
        self.level = level
        self.required_level = required_level


class DuplicateApprovalError(ConflictError):
    """A decision for this (request, level) has already been recorded."""

    code = E.DUPLICATE_APPROVAL

    def __init__(self, request_id: int, level: int) -> None:
        super().__init__(
            f"Level {level} of request {request_id} has already been decided",
            details={"level": level},
        )
        self.level = level


class AlreadyTerminalError(ConflictError):
    """The request has left the stage the operation applies to."""

    code = E.ALREADY_TERMINAL

    def __init__(self, request_id: int, status: str, action: str) -> None:
        super().__init__(
            f"Cannot {action} request {request_id}: status is {status}",
            details={"status": status},
        )
        self.current_status = status


class NotEditableError(ConflictError):
    """The request can no longer be edited because approval has begun."""

    code = E.NOT_EDITABLE

    def __init__(self, request_id: int, status: str, decided_level: int | None = None) -> None:
        if decided_level:
            msg = (f"Request {request_id} cannot be edited: "
                   f"level {decided_level} has already been approved")
        else:
            msg = f"Request {request_id} cannot be edited in status {status}"
        super().__init__(msg, details={"status": status, "decided_level": decided_level})
        self.current_status = status
        self.decided_level = decided_level


class NotAssignableError(ConflictError):
    """The request or the chosen assignee cannot take part in a hand-off."""

    code = E.NOT_ASSIGNABLE


class InsufficientCapacityError(ConflictError):
    """Committing the requested quantity would exceed the pool total."""

    code = E.INSUFFICIENT_CAPACITY

    def __init__(
        self,
        pool_id: int,
        *,
        available: int,
        total: int,
        committed: int,
        requested: int,
    ) -> None:
        self.pool_id = pool_id
        self.available = available
        self.total = total
        self.committed = committed
        self.requested = requested
        self.shortfall = requested - available
        super().__init__(
            f"Insufficient capacity in pool {pool_id}: requested {requested}, "
            f"available {available} of {total}",
            details={
                "pool_id": pool_id,
                "available": available,
                "total": total,
                "committed": committed,
                "requested": requested,
                "shortfall": self.shortfall,
            },
        )
