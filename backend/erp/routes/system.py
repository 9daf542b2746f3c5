# backend/erp/routes/system.py
"""
System health endpoint.

Reports database connectivity, session table state and whether the
permission catalog and admin tenant have been bootstrapped.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Organization, Permission, Role, SessionToken, User
from erp.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def _elapsed_ms(start_time: float) -> float:
    return round((time.time() - start_time) * 1000, 2)


def check_database_health() -> dict:
    """Check database connectivity with a few cheap counts."""
    start_time = time.time()
    try:
        details = {
            "organizations": db.session.query(Organization).count(),
            "users": db.session.query(User).count(),
            "roles": db.session.query(Role).count(),
        }
        return {"status": "healthy", "latency_ms": _elapsed_ms(start_time), "details": details}
    except Exception:
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(start_time), "error": "Database error"}


def check_session_service_health() -> dict:
    start_time = time.time()
    try:
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()
        expired_sessions = db.session.query(SessionToken).filter(
            SessionToken.expires_at < utcnow(),
            SessionToken.is_revoked.is_(False),
        ).count()
        return {
            "status": "healthy",
            "latency_ms": _elapsed_ms(start_time),
            "details": {
                "active_sessions": active_sessions,
                "expired_pending_cleanup": expired_sessions,
            },
        }
    except Exception:
        current_app.logger.exception("Session service health check failed")
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(start_time), "error": "Session service error"}


def check_auth_service_health() -> dict:
    """
    Degraded (still operational) until the permission catalog is seeded and
    the admin role exists; see `flask system bootstrap-admin`.
    """
    start_time = time.time()
    try:
        permission_count = db.session.query(Permission).count()
        admin_role = db.session.query(Role).filter_by(
            name=current_app.config.get("ADMIN_ROLE_NAME", "Admin-Role")
        ).first()
        details = {
            "permissions_initialized": permission_count > 0,
            "permission_count": permission_count,
            "admin_role_configured": admin_role is not None,
        }
        if not permission_count or admin_role is None:
            return {
                "status": "degraded",
                "latency_ms": _elapsed_ms(start_time),
                "warning": "Admin bootstrap has not been run",
                "details": details,
            }
        return {"status": "healthy", "latency_ms": _elapsed_ms(start_time), "details": details}
    except Exception:
        current_app.logger.exception("Auth service health check failed")
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(start_time), "error": "Auth service error"}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    checks = {
        "database": check_database_health(),
        "session_service": check_session_service_health(),
        "auth_service": check_auth_service_health(),
    }
    statuses = [check["status"] for check in checks.values()]

    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": _elapsed_ms(start_time),
        "checks": checks,
    }, http_status
