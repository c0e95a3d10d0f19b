"""
Resource Allocation Platform
Flask Application Factory.

Usage:
    from app import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
    app = create_app("testing", overrides={"SQLALCHEMY_DATABASE_URI": "sqlite:///x.db"})
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import event as _sa_event, engine as _sa_engine
from sqlalchemy.exc import OperationalError

from app.config import config
from app.models import db
from app.middleware.logging_config import configure_logging
from app.middleware.rate_limiter import init_rate_limits
from app.middleware.timing import init_request_timing
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # per-blueprint limits only
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
)


def create_app(config_name=None, overrides=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
        overrides: Optional mapping applied on top of the config class
                   (used by tests, e.g. a file-backed database URI).

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name])
    if overrides:
        app.config.update(overrides)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 1024 * 1024)  # 1 MB

    @app.before_request
    def _guard_request():
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                return api_error(
                    E.VALIDATION_INVALID,
                    "Content-Type must be application/json",
                    status=415,
                )
        return None

    # ── Import all models so Alembic can detect them ─────────────────────
    from app.models import auth as _auth_models                # noqa: F401
    from app.models import project as _project_models          # noqa: F401
    from app.models import resource as _resource_models        # noqa: F401
    from app.models import request as _request_models          # noqa: F401
    from app.models import notification as _notification_models  # noqa: F401
    from app.models import scheduling as _scheduling_models    # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if config_name != "testing":
        with app.app_context():
            if db.engine.url.drivername.startswith("sqlite") and db.engine.url.database:
                os.makedirs(app.instance_path, exist_ok=True)
            db.create_all()
            app.logger.info("db.create_all() completed successfully")

    # ── Blueprints ───────────────────────────────────────────────────────
    from app.blueprints.request_bp import request_bp
    from app.blueprints.approval_bp import approval_bp
    from app.blueprints.pool_bp import pool_bp
    from app.blueprints.fulfillment_bp import fulfillment_bp
    from app.blueprints.notification_bp import notification_bp
    from app.blueprints.health_bp import health_bp

    app.register_blueprint(request_bp)
    app.register_blueprint(approval_bp)
    app.register_blueprint(pool_bp)
    app.register_blueprint(fulfillment_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(health_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(OperationalError)
    def database_unavailable(e):
        db.session.rollback()
        logger.error("Database unavailable on %s %s: %s", request.method, request.path, e.orig)
        return api_error(
            E.DATABASE_UNAVAILABLE,
            "Database temporarily unavailable, retry the request",
        )

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(413)
    def payload_too_large(e):
        return api_error(E.VALIDATION_INVALID, "Request body too large", status=413)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(
            E.VALIDATION_INVALID, "Too many requests", status=429,
            details={"retry_after": e.description},
        )

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── Scheduler initialization (import jobs to register them) ──────────
    import importlib
    importlib.import_module("app.services.scheduled_jobs")  # registers @register_job handlers
    from app.services.scheduler_service import SchedulerService
    SchedulerService.init_app(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("reconcile-pools")
    def reconcile_pools_cmd():
        """Recompute every pool's committed quantity from request state."""
        outcome = SchedulerService.run_job("pool_reconciliation")
        if outcome["status"] != "success":
            logger.error("Pool reconciliation failed: %s", outcome["error"])
            raise SystemExit(1)
        report = outcome["result"]
        logger.info(
            "Checked %d pool(s), corrected %d, over-committed: %s",
            report["checked"], report["corrected"], report["over_committed"] or "none",
        )

    if app.config.get("RECONCILE_ON_STARTUP"):
        with app.app_context():
            outcome = SchedulerService.run_job("pool_reconciliation")
            app.logger.info("Startup reconciliation: %s", outcome["status"])

    return app
