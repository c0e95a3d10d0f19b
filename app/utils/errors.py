"""Standardised API error responses.

Usage
-----
    from app.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Request not found")
    return api_error(E.VALIDATION_REQUIRED, "phase_id is required")
    return api_error(E.INSUFFICIENT_CAPACITY, "Pool exhausted", details={...})

Blueprints call ``register_error_handlers(bp)`` once so every service
exception turns into the same JSON body.
"""

from __future__ import annotations

import logging

from flask import jsonify, request

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_  prefix for every application error
    """

    # Validation – HTTP 400 / 422
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / lifecycle – HTTP 409
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    WRONG_LEVEL = "ERR_WRONG_LEVEL"
    DUPLICATE_APPROVAL = "ERR_DUPLICATE_APPROVAL"
    ALREADY_TERMINAL = "ERR_ALREADY_TERMINAL"
    NOT_EDITABLE = "ERR_NOT_EDITABLE"
    NOT_ASSIGNABLE = "ERR_NOT_ASSIGNABLE"
    INSUFFICIENT_CAPACITY = "ERR_INSUFFICIENT_CAPACITY"

    # Permissions – HTTP 401 / 403
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    FORBIDDEN = "ERR_FORBIDDEN"
    APPROVER_NOT_AUTHORIZED = "ERR_APPROVER_NOT_AUTHORIZED"

    # Server – HTTP 500 / 503
    DATABASE_UNAVAILABLE = "ERR_DATABASE_UNAVAILABLE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_STATE: 409,
    E.WRONG_LEVEL: 409,
    E.DUPLICATE_APPROVAL: 409,
    E.ALREADY_TERMINAL: 409,
    E.NOT_EDITABLE: 409,
    E.NOT_ASSIGNABLE: 409,
    E.INSUFFICIENT_CAPACITY: 409,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.APPROVER_NOT_AUTHORIZED: 403,
    E.DATABASE_UNAVAILABLE: 503,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (capacity figures, decided level, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def register_error_handlers(bp) -> None:
    """Attach the domain-exception → JSON mapping to a blueprint."""
    from app.core.exceptions import DomainError

    @bp.errorhandler(DomainError)
    def _handle_domain_error(error: DomainError):
        if error.status >= 500:
            logger.error("Domain error in %s: %s", request.endpoint, error)
        else:
            logger.info(
                "Rejected %s %s: %s", request.method, request.path, error,
                extra={"event_type": error.code},
            )
        return api_error(error.code, str(error), status=error.status, details=error.details)
