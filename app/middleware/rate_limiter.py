"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in app/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "120/minute"
READ_LIMIT = "300/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Approval decisions: RATELIMIT_DECISIONS (default 60/minute)
        - Request / fulfillment / pool endpoints: 120/minute
        - Notifications: 300/minute
        - Health check: exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    decisions_limit = app.config.get("RATELIMIT_DECISIONS", "60/minute")
    bp = app.blueprints.get("approval_bp")
    if bp:
        limiter.limit(decisions_limit)(bp)

    for bp_name in ("request_bp", "fulfillment_bp", "pool_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    bp = app.blueprints.get("notification_bp")
    if bp:
        limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: decisions: %s, write: %s, read: %s",
        decisions_limit, WRITE_LIMIT, READ_LIMIT,
    )
