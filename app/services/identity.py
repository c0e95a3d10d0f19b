"""
Identity collaborator.

Resolves the calling user and answers the role questions the request
lifecycle asks:

    approval_authority(user)   highest approval level the user may decide
    is_fulfillment_staff(user) may assign / complete hand-off tasks
    assignability_issue(user)  why a user cannot receive a hand-off task
    assignable_members()       everyone who can receive one

Authentication proper happens upstream; the API trusts the ``X-User-Id``
header set by the gateway.
"""

from __future__ import annotations

import logging

from flask import g, request
from sqlalchemy import select

from app.core.exceptions import AuthenticationRequired, NotFoundError
from app.models import db
from app.models.auth import (
    FULFILLMENT_ROLES,
    NON_ASSIGNABLE_ROLES,
    ROLE_APPROVAL_LEVEL,
    Department,
    User,
)

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"


def get_user(user_id: int) -> User:
    """Load an active user or raise NotFoundError."""
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        raise NotFoundError(resource="User", resource_id=user_id)
    return user


def current_user() -> User:
    """Return the caller identified by the ``X-User-Id`` header.

    Raises AuthenticationRequired when the header is missing, malformed or
    names an unknown / inactive user.
    """
    raw = (request.headers.get(USER_HEADER) or "").strip()
    if not raw:
        raise AuthenticationRequired(f"{USER_HEADER} header is required")
    try:
        user_id = int(raw)
    except ValueError:
        raise AuthenticationRequired(f"{USER_HEADER} must be a numeric user id")

    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        logger.info("Unknown caller id=%s", user_id)
        raise AuthenticationRequired(f"Unknown user id={user_id}")
    g.current_user_id = user.id
    return user


def approval_authority(user: User) -> int:
    """Highest approval level the user may decide; 0 for non-approvers."""
    return ROLE_APPROVAL_LEVEL.get(user.user_role, 0)


def is_fulfillment_staff(user: User) -> bool:
    return user.user_role in FULFILLMENT_ROLES


def is_admin(user: User) -> bool:
    return user.user_role == "admin"


def assignability_issue(user: User) -> str | None:
    """Return why ``user`` cannot be handed a fulfillment task, else None.

    Assignees are operational members: they belong to an operations
    department and hold no approving, admin or IT role.
    """
    if not user.is_active:
        return "user is inactive"
    if user.user_role in NON_ASSIGNABLE_ROLES:
        return f"role '{user.user_role}' cannot receive fulfillment tasks"
    if user.department is None:
        return "user has no department"
    if user.department.unit_type != "operations":
        return f"department '{user.department.name}' is not an operational unit"
    return None


def approvers_for_level(level: int) -> list[User]:
    """Active users whose role is the designated approver for ``level``."""
    roles = [role for role, authority in ROLE_APPROVAL_LEVEL.items() if authority == level]
    stmt = (
        select(User)
        .where(User.user_role.in_(roles), User.is_active.is_(True))
        .order_by(User.id)
    )
    return db.session.execute(stmt).scalars().all()


def fulfillment_staff() -> list[User]:
    stmt = (
        select(User)
        .where(User.user_role.in_(sorted(FULFILLMENT_ROLES)), User.is_active.is_(True))
        .order_by(User.id)
    )
    return db.session.execute(stmt).scalars().all()


def assignable_members() -> list[User]:
    """Users who pass ``assignability_issue``, for the assignee picker."""
    stmt = (
        select(User)
        .join(Department, User.department_id == Department.id)
        .where(
            Department.unit_type == "operations",
            User.is_active.is_(True),
            User.user_role.not_in(sorted(NON_ASSIGNABLE_ROLES)),
        )
        .order_by(User.full_name, User.id)
    )
    return db.session.execute(stmt).scalars().all()
