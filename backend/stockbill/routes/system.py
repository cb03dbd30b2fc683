# backend/stockbill/routes/system.py
"""
System health endpoint.

Public; used by load balancers and the stress harness to wait for the
server to come up.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..models import Branch, Product
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Check database connectivity with a trivial query and two counts."""
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        branch_count = db.session.query(Branch).count()
        product_count = db.session.query(Product).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "branches": branch_count,
                "products": product_count,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    body = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }
    return body, 200 if healthy else 503
