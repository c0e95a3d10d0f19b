"""
Pool reconciliation pass.

Recomputes every pool's committed quantity from request state and
overwrites the cached ``ResourcePool.committed_qty`` where it has drifted
(manual DB edits, restored backups, a crash between writes).  Pure
recompute-and-set under the pool lock: running it twice changes nothing the
second time.

Runs as the ``pool_reconciliation`` scheduled job, through
``flask reconcile-pools`` and through ``POST /api/v1/pools/reconcile``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import select

from app.models import db
from app.models.resource import ResourcePool
from app.services import resource_ledger

logger = logging.getLogger(__name__)


@dataclass
class PoolCorrection:
    """One pool whose stored counter was rewritten."""
    pool_id: int
    previous: int
    recomputed: int
    request_count: int

    def to_dict(self) -> dict:
        return {
            "pool_id": self.pool_id,
            "previous": self.previous,
            "recomputed": self.recomputed,
            "request_count": self.request_count,
        }


@dataclass
class ReconciliationReport:
    checked: int = 0
    corrections: list[PoolCorrection] = field(default_factory=list)
    over_committed: list[int] = field(default_factory=list)

    @property
    def corrected(self) -> int:
        return len(self.corrections)

    def to_dict(self) -> dict:
        return {
            "checked": self.checked,
            "corrected": self.corrected,
            "corrections": [c.to_dict() for c in self.corrections],
            "over_committed": list(self.over_committed),
        }


def reconcile_pools(pool_ids=None) -> ReconciliationReport:
    """Recompute-and-set ``committed_qty`` for the given pools (default: all).

    Raises NotFoundError if an explicitly listed pool does not exist.
    """
    if pool_ids is None:
        pool_ids = db.session.execute(
            select(ResourcePool.id).order_by(ResourcePool.id)
        ).scalars().all()

    report = ReconciliationReport()
    for pool_id in pool_ids:
        with resource_ledger.pool_lock(pool_id) as pool:
            contributing = resource_ledger.committed_requests(pool.id)
            recomputed = sum(r.requested_qty for r in contributing)
            report.checked += 1

            if recomputed > pool.total_qty:
                report.over_committed.append(pool.id)
                logger.warning(
                    "Pool %s over-committed: %d committed of %d total",
                    pool.id, recomputed, pool.total_qty,
                    extra={"pool_id": pool.id},
                )

            if pool.committed_qty != recomputed:
                previous = resource_ledger.write_committed(pool, recomputed)
                report.corrections.append(PoolCorrection(
                    pool_id=pool.id,
                    previous=previous,
                    recomputed=recomputed,
                    request_count=len(contributing),
                ))
                logger.warning(
                    "Reconciled pool %s: committed %s -> %d (%d contributing request(s))",
                    pool.id, previous, recomputed, len(contributing),
                    extra={"pool_id": pool.id},
                )
            db.session.commit()

    logger.info(
        "Reconciliation checked %d pool(s), corrected %d",
        report.checked, report.corrected,
    )
    return report
