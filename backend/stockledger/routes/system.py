# backend/stockledger/routes/system.py
"""
System health endpoint.

Reports database connectivity and the size of the stock tables so a
deployment can be checked without touching any balance.
"""

import time

from flask import Blueprint, current_app, jsonify

from ..extensions import db
from ..models import Product, RawMaterial, SequenceCounter, User

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        details = {
            "raw_materials": db.session.query(RawMaterial).count(),
            "products": db.session.query(Product).count(),
            "users": db.session.query(User).count(),
            "sequence_counters": db.session.query(SequenceCounter).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    status_code = 200 if database["status"] == "healthy" else 503
    return jsonify({"status": database["status"], "checks": {"database": database}}), status_code
