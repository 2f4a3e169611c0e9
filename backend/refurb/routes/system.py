# backend/refurb/routes/system.py
"""
Unauthenticated health and version probes.
"""

import platform
import time

from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import SessionToken, User
from refurb.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api/system")

API_VERSION = "1.0.0"


def check_database_health() -> dict:
    """Round-trip two cheap counts and report how long they took."""
    started = time.perf_counter()
    try:
        users = db.session.query(User).count()
        live_sessions = (
            db.session.query(SessionToken)
            .filter(SessionToken.is_revoked.is_(False), SessionToken.expires_at >= utcnow())
            .count()
        )
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.perf_counter() - started) * 1000, 2),
            "error": "Database error",
        }

    return {
        "status": "healthy",
        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
        "details": {"users": users, "active_sessions": live_sessions},
    }


@system_bp.get("/health")
def health():
    """200 when the database answers, 503 otherwise."""
    database = check_database_health()
    return {
        "status": database["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }, (200 if database["status"] == "healthy" else 503)


@system_bp.get("/version")
def version():
    return {
        "api_version": API_VERSION,
        "environment": "development" if current_app.debug else "production",
        "python_version": platform.python_version(),
        "server_time": to_utc_z(utcnow()),
    }
