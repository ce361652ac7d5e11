# backend/riderops/routes/system.py
"""
System health endpoint.

Checks the database and the photo store so a deployment can tell a
degraded photo store (returns blocked, expenses still fine) from an outage.
"""

import os
import time
from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_photo_storage_health() -> dict:
    storage = current_app.extensions.get("photo_storage")
    root = getattr(storage, "root", None)
    if root is None:
        return {"status": "healthy", "details": {"backend": type(storage).__name__}}
    if os.path.isdir(root) and not os.access(root, os.W_OK):
        return {"status": "degraded", "warning": "Photo directory is not writable"}
    return {"status": "healthy", "details": {"root": root}}


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded (photo store only)
    - 503: database unavailable
    """
    start_time = time.time()

    database_health = check_database_health()
    photo_health = check_photo_storage_health()

    if database_health["status"] == "unhealthy":
        overall_status = "unhealthy"
        http_status = 503
    elif photo_health["status"] != "healthy":
        overall_status = "degraded"
        http_status = 200
    else:
        overall_status = "healthy"
        http_status = 200

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "photo_storage": photo_health,
        },
    }
    return response, http_status
