# backend/poskasir/routes/system.py
"""
Liveness endpoint.

Checks the database and the object storage bucket. Storage is reported as
"disabled" (and does not fail the check) when no provider is configured.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..storage import get_optional_storage
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_storage_health() -> dict:
    storage = get_optional_storage()
    if storage is None:
        return {"status": "disabled"}

    start_time = time.time()
    try:
        exists = storage.bucket_exists()
    except Exception:
        current_app.logger.exception("Storage health check failed")
        exists = False
    elapsed_ms = (time.time() - start_time) * 1000

    if not exists:
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Bucket not reachable",
        }
    return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}


@system_bp.get("/healthz")
def healthz():
    """
    Returns:
    - 200: database and storage healthy (or storage disabled)
    - 503: any check unhealthy
    """
    checks = {
        "database": check_database_health(),
        "storage": check_storage_health(),
    }
    healthy = all(check["status"] != "unhealthy" for check in checks.values())

    return {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": checks,
    }, (200 if healthy else 503)
