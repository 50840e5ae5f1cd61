# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/authgate/routes/auth.py
"""
Authentication routes for both clients.

Desktop client (/auth/api/...):
- Credentials plus device_id in, opaque bearer token out
- Token is presented in the request body on every later call
- Exempt from the browser anti-forgery check

Browser (/auth/login, /auth/logout):
- Server-side session behind the sessionId cookie
- Login attaches the identity to the pre-login session and regenerates its
  identifier (fixation)
- POST requests carry the anti-forgery token issued by GET /auth/login

SECURITY:
- Unknown account and wrong password return the same message
- Login throttling per account, shared by both clients and both identifiers
- Every denial is written to the security audit trail with its reason
"""

from flask import Blueprint, request, jsonify, current_app, g, redirect

from ..errors import AuthGateError, InvalidCredentials, ValidationFailed, error_response
from ..extensions import db
from ..middleware import clear_session_cookie, issue_session_cookie
from ..services import (
    account_service,
    audit_service,
    auth_service,
    desktop_token_service,
    entitlement_service,
    login_throttle_service,
    session_service,
)
from authgate.time_utils import get_clock


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

DASHBOARD_PATH = "/dashboard"
LOGIN_PATH = "/auth/login"


def _payload() -> dict:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def _client_context() -> dict:
    return {
        "ip_address": request.remote_addr,
        "user_agent": request.headers.get("User-Agent"),
    }


def _required_text(data: dict, names: tuple, message: str) -> list:
    """Pull required string fields out of a login payload; anything else is a 400."""
    values = [data.get(name) for name in names]
    if not all(isinstance(value, str) and value for value in values):
        raise ValidationFailed(message)
    return values


def _throttled(key: str):
    """Return a 429 response if the throttle bucket is locked, else None."""
    try:
        login_throttle_service.check_not_locked(key)
    except AuthGateError as exc:
        audit_service.log_security_event(
            event_type="LOGIN_THROTTLED",
            success=False,
            action=key,
            reason=exc.reason,
        )
        return error_response(exc)
    return None


def _record_denied_login(identifier: str, key: str, exc: AuthGateError) -> None:
    if isinstance(exc, InvalidCredentials):
        login_throttle_service.record_failed_attempt(key, reason=exc.reason, user_id=exc.user_id)
    elif not isinstance(exc, ValidationFailed):
        audit_service.log_security_event(
            event_type="LOGIN_DENIED",
            success=False,
            user_id=exc.user_id,
            action=login_throttle_service.normalize_identifier(identifier),
            reason=exc.reason,
        )


# =============================================================================
# DESKTOP CLIENT
# =============================================================================

@auth_bp.post("/api/login")
def desktop_login_route():
    """
    Authenticate the desktop client and issue a bearer token.

    Request body: username, password, device_id

    The first successful login binds the account to device_id; later logins
    from any other device are refused until an admin resets the binding.
    """
    try:
        data = _payload()
        username, password, device_id = _required_text(
            data,
            ("username", "password", "device_id"),
            "Username, password, and device_id are required",
        )

        key = login_throttle_service.throttle_key(username, account_service.get_user_by_username(username))
        locked = _throttled(key)
        if locked:
            return locked

        try:
            _, token, user = desktop_token_service.login(
                username, password, device_id, **_client_context()
            )
        except AuthGateError as exc:
            _record_denied_login(username, key, exc)
            raise

        login_throttle_service.record_successful_login(user.id, key)
        current_app.logger.info("Desktop login for user %s on device %s", user.id, user.registered_device_id)

        return jsonify({
            "success": True,
            "token": token,
            "user": user.to_summary(),
        }), 200

    except AuthGateError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to login desktop client")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/api/verify-token")
def desktop_verify_route():
    """Resolve a desktop token to its account, re-checking entitlement and device."""
    try:
        data = _payload()
        try:
            user = desktop_token_service.verify(data.get("token"))
        except AuthGateError as exc:
            if not isinstance(exc, ValidationFailed):
                audit_service.log_security_event(
                    event_type="TOKEN_REJECTED",
                    success=False,
                    user_id=exc.user_id,
                    action="verify",
                    reason=exc.reason,
                )
            raise

        return jsonify({"success": True, "user": user.to_summary()}), 200

    except AuthGateError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to verify desktop token")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/api/logout")
def desktop_logout_route():
    """Remove a desktop token. The device binding is left in place."""
    try:
        data = _payload()
        user_id = desktop_token_service.logout(data.get("token"))

        audit_service.log_security_event(
            event_type="LOGOUT",
            success=True,
            user_id=user_id,
            action="desktop",
        )

        return jsonify({"success": True, "message": "Logged out successfully"}), 200

    except AuthGateError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to logout desktop client")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# BROWSER
# =============================================================================

@auth_bp.get("/login")
def login_page_route():
    """
    Hand out the anti-forgery token for the login form.

    Allocates an anonymous session on first contact. Already authenticated
    browsers are sent to the dashboard.
    """
    if g.current_user is not None:
        return redirect(DASHBOARD_PATH)

    try:
        session = g.browser_session
        if session is None:
            session, session_id = session_service.start_anonymous(**_client_context())
            g.browser_session = session
            issue_session_cookie(session_id)

        return jsonify({"csrfToken": session_service.ensure_csrf_token(session)}), 200

    except Exception:
        current_app.logger.exception("Failed to start browser session")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """
    Browser login by email and password.

    Runs only after the middleware accepted the anti-forgery token, so a
    (possibly anonymous) session always exists here.
    """
    try:
        data = _payload()
        email, password = _required_text(data, ("email", "password"), "Email and password are required")

        user = account_service.get_user_by_email(email)
        key = login_throttle_service.throttle_key(email, user)
        locked = _throttled(key)
        if locked:
            return locked

        try:
            if not auth_service.check_credentials(user, password):
                exc = InvalidCredentials()
                exc.user_id = user.id if user else None
                raise exc
            try:
                entitlement_service.require_entitled(user, get_clock().now())
            except AuthGateError as exc:
                exc.user_id = user.id
                raise
        except AuthGateError as exc:
            _record_denied_login(email, key, exc)
            raise

        session_service.attach_identity(g.session_id, user)
        new_session_id = session_service.regenerate(g.session_id)

        account_service.record_login(user)
        db.session.commit()

        login_throttle_service.record_successful_login(user.id, key)
        current_app.logger.info("Browser login for user %s", user.id)

        issue_session_cookie(new_session_id)
        return redirect(DASHBOARD_PATH)

    except AuthGateError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.route("/logout", methods=["GET", "POST"])
def logout_route():
    """Destroy the browser session and clear its cookie."""
    try:
        user_id = g.current_user.id if g.current_user else None
        if g.session_id:
            session_service.destroy(g.session_id)
            if user_id is not None:
                audit_service.log_security_event(
                    event_type="LOGOUT",
                    success=True,
                    user_id=user_id,
                    action="browser",
                )

        clear_session_cookie()
        return redirect(LOGIN_PATH)

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500
