# Overview: Flask API routes for the dashboard; parses input and returns JSON responses.

from flask import Blueprint, jsonify, g, current_app

from ..decorators import require_session
from ..services import account_service, entitlement_service
from authgate.time_utils import get_clock


dashboard_bp = Blueprint("dashboard", __name__)

EXPIRY_WARNING_DAYS = 7


@dashboard_bp.get("/dashboard")
@require_session
def dashboard():
    """
    Account overview for the signed-in browser user.

    Standard accounts see their package and days remaining; admins also get
    directory statistics and the accounts expiring this week.
    """
    try:
        user = g.current_user
        now = get_clock().now()

        body = {
            "user": user.to_summary(),
            "daysUntilExpiry": entitlement_service.days_until_expiry(user, now),
            "isExpiringSoon": entitlement_service.is_expiring_within(user, EXPIRY_WARNING_DAYS, now),
        }

        if user.is_admin:
            body["stats"] = {
                "users": account_service.user_stats(),
                "packages": account_service.package_stats(),
            }
            body["expiringUsers"] = [
                u.to_summary() for u in account_service.find_expiring_accounts(days=EXPIRY_WARNING_DAYS)
            ]

        return jsonify(body), 200

    except Exception:
        current_app.logger.exception("Failed to load dashboard")
        return jsonify({"error": "Internal server error"}), 500
