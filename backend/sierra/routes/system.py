# backend/sierra/routes/system.py
"""
System health endpoint.

Unauthenticated so load balancers and the frontend can poll it.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import User, Role, Permission, SessionToken
from sierra.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "active_sessions": active_sessions,
            }
        }
    except SQLAlchemyError:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_auth_health() -> dict:
    """
    Check that roles and permissions have been seeded (flask system init).
    """
    try:
        missing_roles = [
            name for name in ("admin", "staff")
            if not db.session.query(Role).filter_by(name=name).first()
        ]
        permission_count = db.session.query(Permission).count()
    except SQLAlchemyError:
        current_app.logger.exception("Auth health check failed")
        return {"status": "unhealthy", "error": "Auth service error"}

    if missing_roles or permission_count == 0:
        return {
            "status": "degraded",
            "warning": "Run `flask system init` to seed roles and permissions",
            "details": {"missing_roles": missing_roles, "permission_count": permission_count},
        }
    return {"status": "healthy", "details": {"permission_count": permission_count}}


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded (still operational)
    - 503: database unreachable
    """
    database_health = check_database_health()
    auth_health = (
        check_auth_health()
        if database_health["status"] == "healthy"
        else {"status": "unhealthy", "error": "Database unavailable"}
    )

    checks = [database_health, auth_health]
    if any(c["status"] == "unhealthy" for c in checks):
        overall_status, http_status = "unhealthy", 503
    elif any(c["status"] == "degraded" for c in checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {
            "database": database_health,
            "auth": auth_health,
        },
    }, http_status
