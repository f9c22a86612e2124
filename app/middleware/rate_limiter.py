"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter instance
is created in app/__init__.py with no default limits; this module applies
limits per route category.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)


def rate_limit_key():
    """Key by authenticated user when known, else remote IP."""
    user = getattr(g, "current_user", None)
    if user is not None:
        return f"user:{user.id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits:
        - Access / EOD endpoints:        60/minute  (mostly writes)
        - Notifications, viewing, jobs:  300/minute (polled by the UI)
        - Health check:                  exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name in ("access", "eod"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit("60/minute", key_func=rate_limit_key)(bp)

    # Notifications and viewing heartbeats are polled by the UI
    bp = app.blueprints.get("notification")
    if bp:
        limiter.limit("300/minute", key_func=rate_limit_key)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: access/eod 60/min, notification 300/min"
    )
