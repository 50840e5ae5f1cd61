# Overview: Error taxonomy shared by services and routes.

"""
Typed failures raised by the auth core.

Services raise these; route handlers map them to HTTP responses with
`error_response`. Each error carries:
- status_code: transport status for the boundary layer
- reason: machine-readable code written to the security audit trail
- message: user-facing text (never more specific than the coarse kind)
"""

from __future__ import annotations

from flask import jsonify


GENERIC_LOGIN_FAILURE = "Invalid username/email or password"


class AuthGateError(Exception):
    status_code = 500
    reason = "error"
    default_message = "An error occurred"

    def __init__(self, message: str | None = None, *, reason: str | None = None):
        self.message = message or self.default_message
        if reason is not None:
            self.reason = reason
        # Account the failure concerns, when known (for the audit trail only)
        self.user_id: int | None = None
        super().__init__(self.message)


class ValidationFailed(AuthGateError):
    """Malformed input; the caller's fault."""
    status_code = 400
    reason = "validation_failed"
    default_message = "Invalid request"


class Unauthenticated(AuthGateError):
    """No credential, or the credential/token is not valid."""
    status_code = 401
    reason = "unauthenticated"
    default_message = "Authentication required"


class InvalidCredentials(Unauthenticated):
    reason = "invalid_credentials"
    default_message = GENERIC_LOGIN_FAILURE


class InvalidToken(Unauthenticated):
    reason = "invalid_token"
    default_message = "Invalid or expired token"


class Forbidden(AuthGateError):
    """Authenticated but not allowed to proceed."""
    status_code = 403
    reason = "forbidden"
    default_message = "You do not have permission to access this resource."


class AccountDeactivated(Forbidden):
    reason = "account_deactivated"
    default_message = "Your account has been deactivated. Please contact support."


class EntitlementExpired(Forbidden):
    reason = "entitlement_expired"
    default_message = "Your package has expired. Please contact support to renew your subscription."


class DeviceMismatch(Forbidden):
    reason = "device_mismatch"
    default_message = (
        "This account is registered to another device. "
        "Please contact an administrator to reset your device registration."
    )


class AdminRequired(Forbidden):
    reason = "admin_required"
    default_message = "Admin access required"


class CsrfFailed(Forbidden):
    reason = "csrf_failed"
    default_message = "Invalid security token. Please refresh the page and try again."


class NotFound(AuthGateError):
    status_code = 404
    reason = "not_found"
    default_message = "Not found"


class Conflict(AuthGateError):
    """The change would violate a standing invariant."""
    status_code = 409
    reason = "conflict"
    default_message = "Conflict"


class LoginThrottled(AuthGateError):
    status_code = 429
    reason = "login_throttled"
    default_message = "Too many authentication attempts. Please try again later."

    def __init__(self, retry_after_seconds: int | None = None):
        super().__init__()
        self.retry_after_seconds = retry_after_seconds


def error_response(exc: AuthGateError):
    """Map a typed failure to a JSON response tuple."""
    body = {"error": exc.message}
    if isinstance(exc, LoginThrottled):
        body["locked"] = True
        body["retry_after_seconds"] = exc.retry_after_seconds
    return jsonify(body), exc.status_code
