"""
Resource Allocation Platform
Scheduled Jobs.

Jobs:
    - pool_reconciliation: recompute every pool's committed counter and
      alert admins about over-committed pools
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select

from app.models import db
from app.models.auth import User
from app.services.notification import NotificationService
from app.services.reconciliation import reconcile_pools
from app.services.scheduler_service import register_job

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Pool Reconciliation
# ═══════════════════════════════════════════════════════════════════════════

@register_job("pool_reconciliation")
def run_pool_reconciliation(app) -> dict[str, Any]:
    """Recompute committed quantity for every resource pool."""
    report = reconcile_pools()

    if report.over_committed:
        admins = db.session.execute(
            select(User.id).where(User.user_role == "admin", User.is_active.is_(True))
        ).scalars().all()
        pools = ", ".join(f"#{pid}" for pid in report.over_committed)
        NotificationService.broadcast(
            title=f"{len(report.over_committed)} resource pool(s) over-committed",
            message=f"Committed quantity exceeds total for pool(s) {pools}.",
            recipient_ids=admins,
            category="capacity",
            severity="warning",
            event_type="pool.over_committed",
            entity_type="resource_pool",
        )
        logger.warning("Over-committed pools: %s", pools)

    return report.to_dict()
