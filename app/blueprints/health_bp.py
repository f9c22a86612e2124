"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready : simple 200 for load balancers
    GET /api/v1/health/live  : dependency status (DB, viewing cache, scheduler)
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from app.models import db
from app.services import viewing_tracker
from app.services.scheduler_service import SchedulerService

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe: always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check: database failed: %s", exc)

    # ── Viewing cache (optional) ─────────────────────────────────────
    checks["viewing_cache"] = viewing_tracker.health_check()

    # ── In-process scheduler ─────────────────────────────────────────
    scheduler = SchedulerService._scheduler
    checks["scheduler"] = {
        "enabled": bool(current_app.config.get("SCHEDULER_ENABLED")),
        "running": bool(scheduler is not None and scheduler.running),
    }

    checks["app"] = {
        "name": "Worktrack Platform",
        "debug": current_app.debug,
        "testing": current_app.testing,
        "timezone": current_app.config.get("APP_TIMEZONE") or "local",
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
