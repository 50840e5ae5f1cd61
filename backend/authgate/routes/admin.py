# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

# backend/authgate/routes/admin.py
"""
Admin routes for account and package management.

Provides endpoints for:
- Accounts (create, view, update, delete, bulk activate/deactivate/delete)
- Device binding reset
- Package assignment and package CRUD
- Accounts about to expire

All endpoints require a browser session whose account currently holds the
admin role; mutations also need the anti-forgery token and are recorded as
ADMIN_ACTION security events.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_admin
from ..errors import AuthGateError, ValidationFailed, error_response
from ..services import account_service, admin_service, audit_service, entitlement_service, login_throttle_service
from authgate.time_utils import get_clock, parse_iso_datetime

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationFailed("JSON body required")
    return data


def _parse_end_date(value):
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationFailed("Please enter a valid end date")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationFailed("Please enter a valid end date")


def _user_detail(user) -> dict:
    user_dict = user.to_dict()
    user_dict["package"] = user.package.to_dict() if user.package else None
    user_dict["days_until_expiry"] = entitlement_service.days_until_expiry(user, get_clock().now())
    return user_dict


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@admin_bp.post("/users")
@require_admin
def create_user():
    """
    Create an account.

    Request body:
    - username, email, password: str (required)
    - role: "user" | "admin" (default "user")
    - package_id: int, package_end_date: ISO date (required for "user")
    - is_active: bool (default true)
    """
    try:
        data = _json_body()
        username = data.get("username")
        email = data.get("email")
        password = data.get("password")

        if not all([username, email, password]):
            return jsonify({"error": "username, email, and password required"}), 400

        user = account_service.create_user(
            username=username,
            email=email,
            password=password,
            role=data.get("role") or "user",
            package_id=data.get("package_id"),
            package_end_date=_parse_end_date(data.get("package_end_date")),
            is_active=bool(data.get("is_active", True)),
        )

        audit_service.log_admin_action(g.current_user.id, "create_user", f"user:{user.id}")

        return jsonify({"user": _user_detail(user), "message": "User created successfully"}), 201

    except AuthGateError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/users/expiring")
@require_admin
def list_expiring_users():
    """Active standard accounts whose package ends within ?days= (default 7)."""
    days = request.args.get("days", default=7, type=int)
    if days is None or days < 0:
        return jsonify({"error": "days must be a non-negative integer"}), 400

    users = account_service.find_expiring_accounts(days=days)
    return jsonify({"users": [_user_detail(u) for u in users], "count": len(users)})


@admin_bp.get("/users/<int:user_id>")
@require_admin
def get_user(user_id: int):
    """Get a specific account by ID."""
    user = account_service.get_user(user_id)
    if not user:
        return jsonify({"error": "User not found"}), 404
    lockout = login_throttle_service.get_lockout_status(login_throttle_service.throttle_key(None, user))
    return jsonify({"user": _user_detail(user), "lockout": lockout})


@admin_bp.patch("/users/<int:user_id>")
@require_admin
def update_user(user_id: int):
    """
    Update account details.

    Request body (all optional): username, email, role, package_id,
    package_end_date, is_active, password. An empty password keeps the
    current one.
    """
    try:
        data = _json_body()
        changes = {
            key: data[key]
            for key in ("username", "email", "role", "package_id", "is_active", "password")
            if key in data
        }
        if "is_active" in changes:
            if not isinstance(changes["is_active"], bool):
                raise ValidationFailed("is_active must be true or false")
            if user_id == g.current_user.id and not changes["is_active"]:
                return jsonify({"error": "Cannot deactivate your own account"}), 400
        if "package_end_date" in data:
            changes["package_end_date"] = _parse_end_date(data["package_end_date"])

        user = account_service.update_user(user_id, changes)

        audit_service.log_admin_action(g.current_user.id, "update_user", f"user:{user_id}")

        return jsonify({"user": _user_detail(user), "message": "User updated successfully"})

    except AuthGateError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.delete("/users/<int:user_id>")
@require_admin
def delete_user(user_id: int):
    """Delete an account with its sessions and tokens. The last admin cannot be deleted."""
    try:
        if user_id == g.current_user.id:
            return jsonify({"error": "Cannot delete your own account"}), 400

        admin_id = g.current_user.id
        admin_service.delete_user(user_id)

        audit_service.log_admin_action(admin_id, "delete_user", f"user:{user_id}")

        return jsonify({"message": "User deleted successfully"})

    except AuthGateError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to delete user")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/users/bulk-action")
@require_admin
def bulk_action():
    """
    Apply one action to many accounts.

    Request body:
    - action: "activate" | "deactivate" | "delete"
    - user_ids: list[int]
    """
    try:
        data = _json_body()
        action = data.get("action")
        user_ids = data.get("user_ids")

        admin_id = g.current_user.id
        user_ids = admin_service.normalize_ids(user_ids)
        if action in ("delete", "deactivate") and admin_id in user_ids:
            return jsonify({"error": f"Cannot {action} your own account"}), 400

        result = admin_service.bulk_action(action, user_ids)

        audit_service.log_admin_action(
            admin_id,
            f"bulk_{action}",
            "users:" + ",".join(str(i) for i in user_ids),
        )

        return jsonify({**result, "message": f"{result['affected']} user(s) updated"})

    except AuthGateError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to run bulk user action")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/users/<int:user_id>/reset-device")
@require_admin
def reset_device(user_id: int):
    """
    Clear the account's desktop device binding.

    The next successful desktop login from any device claims the account.
    Existing desktop tokens for the account are revoked.
    """
    try:
        revoked = admin_service.reset_device(user_id)

        audit_service.log_admin_action(g.current_user.id, "reset_device", f"user:{user_id}")

        return jsonify({"message": "Device registration reset", "tokens_revoked": revoked})

    except AuthGateError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to reset device")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.put("/users/<int:user_id>/package")
@require_admin
def assign_package(user_id: int):
    """
    Move a standard account onto a package.

    Request body: package_id: int, package_end_date: ISO date
    """
    try:
        data = _json_body()
        user = admin_service.assign_package(
            user_id,
            data.get("package_id"),
            _parse_end_date(data.get("package_end_date")),
        )

        audit_service.log_admin_action(
            g.current_user.id, "assign_package", f"user:{user_id} package:{user.package_id}"
        )

        return jsonify({"user": _user_detail(user), "message": "Package assigned"})

    except AuthGateError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to assign package")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PACKAGE MANAGEMENT
# =============================================================================

@admin_bp.get("/packages")
@require_admin
def list_packages():
    packages = account_service.list_packages()
    result = []
    for package in packages:
        package_dict = package.to_dict()
        package_dict["user_count"] = account_service.count_accounts_referencing(package.id)
        result.append(package_dict)
    return jsonify({"packages": result, "count": len(result)})


@admin_bp.post("/packages")
@require_admin
def create_package():
    """
    Create a package.

    Request body: name, email_credits, concurrency_limit, features (list), is_active
    """
    try:
        data = _json_body()
        package = account_service.create_package(
            name=data.get("name"),
            email_credits=data.get("email_credits"),
            concurrency_limit=data.get("concurrency_limit"),
            features=data.get("features"),
            is_active=bool(data.get("is_active", True)),
        )

        audit_service.log_admin_action(g.current_user.id, "create_package", f"package:{package.id}")

        return jsonify({"package": package.to_dict(), "message": "Package created successfully"}), 201

    except AuthGateError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to create package")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.patch("/packages/<int:package_id>")
@require_admin
def update_package(package_id: int):
    try:
        data = _json_body()
        changes = {
            key: data[key]
            for key in ("name", "email_credits", "concurrency_limit", "features", "is_active")
            if key in data
        }
        package = account_service.update_package(package_id, changes)

        audit_service.log_admin_action(g.current_user.id, "update_package", f"package:{package_id}")

        return jsonify({"package": package.to_dict(), "message": "Package updated successfully"})

    except AuthGateError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to update package")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.delete("/packages/<int:package_id>")
@require_admin
def delete_package(package_id: int):
    """Delete a package. Refused (409) while any account references it."""
    try:
        admin_service.delete_package(package_id)

        audit_service.log_admin_action(g.current_user.id, "delete_package", f"package:{package_id}")

        return jsonify({"message": "Package deleted successfully"})

    except AuthGateError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to delete package")
        return jsonify({"error": "Internal server error"}), 500
