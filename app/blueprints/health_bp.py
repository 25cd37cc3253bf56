"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — database + system role check (503 when they fail)
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from app.models import db
from app.models.auth import SYSTEM_ROLES, Role

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Readiness probe: 200 whenever the process serves requests."""
    return jsonify({"status": "ok"}), 200


def _run_check(name, probe, checks):
    """
    Time ``probe`` and record its outcome under ``checks[name]``.

    A probe returns ``(ok, detail)``. Database errors are logged with full
    text but reported to the caller only as a generic failure.
    """
    started = time.perf_counter()
    try:
        ok, detail = probe()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Health check %s failed", name)
        checks[name] = {"status": "error", "detail": "check failed"}
        return False
    checks[name] = {
        "status": "ok" if ok else "error",
        "latency_ms": round((time.perf_counter() - started) * 1000, 1),
        **detail,
    }
    return ok


def _probe_database():
    db.session.execute(db.text("SELECT 1"))
    return True, {}


def _probe_roles():
    present = {r.name for r in Role.query.all()}
    missing = sorted(set(SYSTEM_ROLES) - present)
    if missing:
        logger.warning("System roles missing: %s", ", ".join(missing))
    return not missing, {"roles": len(present), "missing": missing}


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness with dependency status; 503 when any check fails."""
    checks = {}
    healthy = _run_check("database", _probe_database, checks)
    if healthy:
        healthy = _run_check("system_roles", _probe_roles, checks)

    storage = current_app.config.get("REDIS_URL", "memory://")
    checks["rate_limit_storage"] = {"status": "ok", "backend": storage.split("://", 1)[0]}
    checks["app"] = {
        "name": "TCM Platform",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    return jsonify({
        "status": "healthy" if healthy else "degraded",
        "checks": checks,
    }), 200 if healthy else 503
