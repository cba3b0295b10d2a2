"""
Health check blueprint.

Endpoints:
    GET /api/health/live   — simple 200 while the process is up
    GET /api/health/ready  — dependency status (database, reminder scheduler)
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from app.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/health")


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness probe — always 200 if the app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Readiness check with dependency status."""
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
        logger.error("Health check — database failed: %s", exc)

    # ── Reminder scheduler (optional) ────────────────────────────────
    scheduler = current_app.extensions.get("reminder_scheduler")
    if scheduler is None:
        checks["reminder_scheduler"] = {"status": "disabled"}
    else:
        checks["reminder_scheduler"] = {
            "status": "ok" if scheduler.running else "stopped",
            "last_result": scheduler.last_result,
        }

    checks["app"] = {
        "name": "Team Project Platform",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
