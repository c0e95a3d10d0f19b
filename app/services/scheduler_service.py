"""
Resource Allocation Platform
Scheduler Service.

Lightweight job registry.  Jobs are plain functions registered with
``@register_job(name)`` and executed inside the Flask app context; every run
is recorded on the job's ScheduledJob row.

Jobs are triggered by the ``flask reconcile-pools`` CLI command, by
``RECONCILE_ON_STARTUP`` and by an external cron calling the CLI.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from flask import Flask

from app.models import db
from app.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}

_DEFAULT_SCHEDULES = {
    "pool_reconciliation": {"hour": "*/1", "minute": "15", "description": "Hourly at :15"},
}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("pool_reconciliation")
        def reconcile(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


class SchedulerService:
    """
    Job registration, persistence and execution.

    Jobs are executed within the Flask app context.
    """

    _app: Flask | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs",
                    len(_job_registry))

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """Create a ScheduledJob row for every registered job missing one."""
        created = []
        for name, fn in _job_registry.items():
            existing = ScheduledJob.query.filter_by(job_name=name).first()
            if existing:
                continue
            job = ScheduledJob(
                job_name=name,
                description=(fn.__doc__ or f"Scheduled job: {name}").strip().splitlines()[0],
                schedule_type="cron",
                schedule_config=_DEFAULT_SCHEDULES.get(name, {"hour": "0", "minute": "0"}),
                status="active",
                is_enabled=True,
                run_count=0,
                error_count=0,
            )
            db.session.add(job)
            created.append(job)
        if created:
            db.session.commit()
            logger.info("Created %d scheduled job records", len(created))
        return created

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """
        Execute a single job by name in the current app context.

        Returns:
            Dict with job_name, status, duration_ms, result and error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"job_name": job_name, "status": "error", "error": f"Unknown job: {job_name}"}

        start = time.monotonic()
        result = None
        error = None
        status = "success"

        try:
            result = fn(cls._app)
        except Exception as exc:
            db.session.rollback()
            status = "failed"
            error = str(exc)
            logger.exception("Job %s failed", job_name, extra={"event_type": job_name})

        duration_ms = int((time.monotonic() - start) * 1000)

        cls.ensure_jobs_registered()
        job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
        job_record.record_run(
            status=status,
            duration_ms=duration_ms,
            result=result if isinstance(result, dict) else {"output": str(result)},
            error=error,
        )
        db.session.commit()

        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def list_jobs(cls) -> list[dict]:
        """List all registered jobs with their DB status."""
        jobs = []
        for name in _job_registry:
            job_record = ScheduledJob.query.filter_by(job_name=name).first()
            jobs.append({
                "job_name": name,
                "registered": True,
                "db_record": job_record.to_dict() if job_record else None,
            })
        return jobs
