"""
Resource pool ledger.

Tracks, per declared resource (phase + template or free-form type), how much
of the pool is committed and how much is left, and owns the serialized
check-then-commit path used on final approval.

Committed quantity is always derived live from request state:

    committed = SUM(requested_qty) over the pool's requests in
                APPROVED | ASSIGNED_TO_IT | COMPLETED

``ResourcePool.committed_qty`` is a cached copy of that sum.  It is written
only through ``write_committed`` (by ``commit`` and by the reconciliation
pass), always as recompute-and-set, never as an increment.

Concurrency:
    ``pool_lock(pool_id)`` serializes check-then-write for one pool.  It
    holds an in-process lock keyed by pool id and takes a row lock on the
    pool (SELECT ... FOR UPDATE, honoured by PostgreSQL).  Callers must
    commit before leaving the ``with`` block.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field

from sqlalchemy import func, select

from app.core.exceptions import InsufficientCapacityError, NotFoundError, ValidationError
from app.models import db
from app.models.auth import User
from app.models.project import Phase
from app.models.request import COMMITTED_STATUSES, ResourceRequest
from app.models.resource import ResourcePool

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Data Classes
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class Allocation:
    """One request currently holding part of a pool."""
    request_id: int
    quantity: int
    status: str
    requester_id: int
    requester: str | None = None

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "quantity": self.quantity,
            "status": self.status,
            "requester_id": self.requester_id,
            "requester": self.requester,
        }


@dataclass
class Availability:
    """Point-in-time capacity view of one pool."""
    pool_id: int
    label: str
    total: int
    committed: int
    available: int
    over_committed: bool = False
    configuration: dict = field(default_factory=dict)
    cost_per_unit: float | None = None
    allocations: list[Allocation] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "pool_id": self.pool_id,
            "label": self.label,
            "total": self.total,
            "committed": self.committed,
            "available": self.available,
            "over_committed": self.over_committed,
            "configuration": self.configuration,
            "cost_per_unit": self.cost_per_unit,
            "allocated_to": [a.to_dict() for a in self.allocations],
        }


# ═════════════════════════════════════════════════════════════════════════════
# Pool lookup
# ═════════════════════════════════════════════════════════════════════════════

def get_pool(pool_id: int) -> ResourcePool:
    pool = db.session.get(ResourcePool, pool_id)
    if pool is None:
        raise NotFoundError(resource="ResourcePool", resource_id=pool_id)
    return pool


def resolve_pool(
    phase_id: int,
    resource_template_id: int | None = None,
    resource_type: str | None = None,
) -> ResourcePool:
    """Find the pool a phase declares for a template or a free-form type.

    Exactly one of ``resource_template_id`` / ``resource_type`` must be given.

    Raises:
        ValidationError: neither or both identities given.
        NotFoundError: unknown phase, or the phase declares no such pool.
    """
    if isinstance(resource_type, str):
        resource_type = resource_type.strip() or None
    if (resource_template_id is None) == (resource_type is None):
        raise ValidationError(
            "Exactly one of resource_template_id or resource_type is required",
            details={"resource_template_id": resource_template_id, "resource_type": resource_type},
        )
    if db.session.get(Phase, phase_id) is None:
        raise NotFoundError(resource="Phase", resource_id=phase_id)

    stmt = select(ResourcePool).where(ResourcePool.phase_id == phase_id)
    if resource_template_id is not None:
        stmt = stmt.where(ResourcePool.resource_template_id == resource_template_id)
        identity = f"template={resource_template_id}"
    else:
        stmt = stmt.where(ResourcePool.resource_type == resource_type)
        identity = f"type={resource_type}"

    pool = db.session.execute(stmt).scalar_one_or_none()
    if pool is None:
        raise NotFoundError(resource="ResourcePool", resource_id=f"phase={phase_id} {identity}")
    return pool


# ═════════════════════════════════════════════════════════════════════════════
# Committed quantity
# ═════════════════════════════════════════════════════════════════════════════

def committed_quantity(pool_id: int, exclude_request_id: int | None = None) -> int:
    """Live sum of committed quantity for a pool."""
    stmt = select(func.coalesce(func.sum(ResourceRequest.requested_qty), 0)).where(
        ResourceRequest.pool_id == pool_id,
        ResourceRequest.status.in_(COMMITTED_STATUSES),
    )
    if exclude_request_id is not None:
        stmt = stmt.where(ResourceRequest.id != exclude_request_id)
    return int(db.session.execute(stmt).scalar_one())


def committed_requests(pool_id: int) -> list[ResourceRequest]:
    stmt = (
        select(ResourceRequest)
        .where(
            ResourceRequest.pool_id == pool_id,
            ResourceRequest.status.in_(COMMITTED_STATUSES),
        )
        .order_by(ResourceRequest.id)
    )
    return db.session.execute(stmt).scalars().all()


def check_availability(pool: ResourcePool, exclude_request_id: int | None = None) -> Availability:
    """Capacity view of ``pool`` derived from current request state.

    ``available`` is clamped at zero for display.  A negative raw value
    means the pool was over-committed (e.g. its total was lowered after
    approvals) and is flagged and logged rather than hidden.
    """
    stmt = (
        select(ResourceRequest, User.full_name, User.email)
        .join(User, User.id == ResourceRequest.requester_id)
        .where(
            ResourceRequest.pool_id == pool.id,
            ResourceRequest.status.in_(COMMITTED_STATUSES),
        )
        .order_by(ResourceRequest.id)
    )
    allocations = []
    for req, full_name, email in db.session.execute(stmt).all():
        if req.id == exclude_request_id:
            continue
        allocations.append(Allocation(
            request_id=req.id,
            quantity=req.requested_qty,
            status=req.status,
            requester_id=req.requester_id,
            requester=full_name or email,
        ))

    committed = sum(a.quantity for a in allocations)
    raw_available = pool.total_qty - committed
    over_committed = raw_available < 0
    if over_committed:
        logger.warning(
            "Pool %s is over-committed: committed %d exceeds total %d",
            pool.id, committed, pool.total_qty,
            extra={"pool_id": pool.id},
        )

    return Availability(
        pool_id=pool.id,
        label=pool.label,
        total=pool.total_qty,
        committed=committed,
        available=max(0, raw_available),
        over_committed=over_committed,
        configuration=pool.configuration or {},
        cost_per_unit=float(pool.cost_per_unit) if pool.cost_per_unit is not None else None,
        allocations=allocations,
    )


def lookup_availability(
    phase_id: int,
    resource_template_id: int | None = None,
    resource_type: str | None = None,
) -> Availability:
    """Resolve a pool by phase + identity and report its availability."""
    pool = resolve_pool(phase_id, resource_template_id, resource_type)
    return check_availability(pool)


# ═════════════════════════════════════════════════════════════════════════════
# Serialized write path
# ═════════════════════════════════════════════════════════════════════════════

_pool_locks: dict[int, threading.Lock] = {}
_pool_locks_guard = threading.Lock()


def _lock_for(pool_id: int) -> threading.Lock:
    with _pool_locks_guard:
        lock = _pool_locks.get(pool_id)
        if lock is None:
            lock = _pool_locks[pool_id] = threading.Lock()
        return lock


@contextmanager
def pool_lock(pool_id: int):
    """Serialize check-then-commit for one pool; yields the locked pool row.

    The pool row is re-read so that ``total_qty`` and ``committed_qty``
    reflect what other transactions committed while this one waited.
    """
    lock = _lock_for(pool_id)
    with lock:
        stmt = (
            select(ResourcePool)
            .where(ResourcePool.id == pool_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        pool = db.session.execute(stmt).scalar_one_or_none()
        if pool is None:
            raise NotFoundError(resource="ResourcePool", resource_id=pool_id)
        try:
            yield pool
        except Exception:
            # Release the row lock before the in-process lock.
            db.session.rollback()
            raise


def write_committed(pool: ResourcePool, value: int) -> int:
    """Set the cached committed counter; returns the previous value.

    The only writer of ``committed_qty``.  Call under ``pool_lock``.
    """
    if value < 0:
        raise ValueError(f"committed quantity cannot be negative (pool {pool.id}: {value})")
    previous = pool.committed_qty
    pool.committed_qty = value
    return previous


def commit(pool: ResourcePool, request_id: int, qty: int) -> int:
    """Commit ``qty`` units of ``pool`` to request ``request_id``.

    Must run under ``pool_lock(pool.id)``; the caller commits the session.
    Committed is recomputed excluding the committing request so a retried
    finalisation cannot count itself twice.

    Returns:
        The new committed quantity.

    Raises:
        InsufficientCapacityError: ``qty`` exceeds what is left.
    """
    committed_excl = committed_quantity(pool.id, exclude_request_id=request_id)
    available = pool.total_qty - committed_excl
    if qty > available:
        logger.info(
            "Capacity check failed for request %s: requested %d, available %d of %d",
            request_id, qty, available, pool.total_qty,
            extra={"pool_id": pool.id, "resource_request_id": request_id},
        )
        raise InsufficientCapacityError(
            pool.id,
            available=max(0, available),
            total=pool.total_qty,
            committed=committed_excl,
            requested=qty,
        )

    new_value = committed_excl + qty
    previous = write_committed(pool, new_value)
    logger.info(
        "Committed %d units of pool %s to request %s (%d -> %d of %d)",
        qty, pool.id, request_id, previous, new_value, pool.total_qty,
        extra={"pool_id": pool.id, "resource_request_id": request_id},
    )
    return new_value
