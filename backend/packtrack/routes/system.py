# backend/packtrack/routes/system.py
"""
System health endpoint.

Reports database reachability and whether the video storage root is
writable, so a deployment can be checked before packing starts.
"""

import os
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

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


def check_storage_health(config_key: str) -> dict:
    root = current_app.config[config_key]
    if not os.path.isdir(root):
        # Created lazily on the first save
        return {"status": "healthy", "root": root, "details": {"exists": False}}
    if not os.access(root, os.W_OK):
        return {"status": "unhealthy", "root": root, "error": f"{config_key} is not writable"}
    return {"status": "healthy", "root": root, "details": {"exists": True}}


@system_bp.get("/health")
def health():
    checks = {
        "database": check_database_health(),
        "video_storage": check_storage_health("VIDEO_STORAGE_ROOT"),
        "photo_storage": check_storage_health("PHOTO_STORAGE_ROOT"),
    }
    healthy = all(c["status"] == "healthy" for c in checks.values())
    body = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": checks,
    }
    return jsonify(body), 200 if healthy else 503
