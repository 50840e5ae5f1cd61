# backend/authgate/routes/system.py
"""
System health and version endpoints.

Health checks cover the database and the two credential stores (browser
sessions and desktop tokens), reporting rows that the maintenance sweep
would reclaim.
"""

import sys
import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import User, Package, BrowserSession, DesktopToken
from ..services import account_service
from authgate.time_utils import get_clock, to_utc_z

system_bp = Blueprint("system", __name__)

API_VERSION = "1.0.0"


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        package_count = db.session.query(Package).count()
        admin_count = account_service.count_admins()

        elapsed_ms = (time.time() - start_time) * 1000

        result = {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "packages": package_count,
                "admins": admin_count,
            }
        }
        if admin_count == 0:
            result["status"] = "degraded"
            result["warning"] = "No admin account configured"
        return result
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_credential_store_health() -> dict:
    """
    Check that the session and token tables are reachable.
    """
    start_time = time.time()
    try:
        now = get_clock().now()
        idle_cutoff = now - current_app.config["SESSION_IDLE_TIMEOUT"]

        browser_sessions = db.session.query(BrowserSession).count()
        idle_sessions = db.session.query(BrowserSession).filter(
            BrowserSession.last_seen_at < idle_cutoff
        ).count()
        desktop_tokens = db.session.query(DesktopToken).count()
        expired_tokens = db.session.query(DesktopToken).filter(
            DesktopToken.expires_at < now
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "browser_sessions": browser_sessions,
                "desktop_tokens": desktop_tokens,
                "expired_pending_cleanup": idle_sessions + expired_tokens,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Credential store health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Credential store error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    credential_health = check_credential_store_health()

    all_checks = [database_health, credential_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(get_clock().now()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "credential_store": credential_health,
        }
    }

    return response, http_status


@system_bp.get("/version")
def version():
    """
    Version endpoint for deployment debugging.

    Does NOT expose secret keys, database credentials or internal paths.
    """
    return {
        "api_version": API_VERSION,
        "environment": current_app.config.get("ENVIRONMENT", "development"),
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(get_clock().now()),
    }
