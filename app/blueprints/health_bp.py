"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — database reachability and ledger table counts
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from app.models import db
from app.models.cost import MOD_WAITING, CostModification

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
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
    except SQLAlchemyError as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Ledger backlog ───────────────────────────────────────────────
    if overall:
        try:
            waiting = db.session.execute(
                select(func.count()).select_from(CostModification).where(CostModification.status == MOD_WAITING)
            ).scalar()
            checks["ledger"] = {"status": "ok", "waiting_modifications": waiting}
        except SQLAlchemyError as exc:
            checks["ledger"] = {"status": "error", "detail": str(exc)}
            overall = False
            logger.error("Health check — ledger query failed: %s", exc)

    # ── App info ─────────────────────────────────────────────────────
    checks["app"] = {
        "name": "Cost Ledger Service",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
