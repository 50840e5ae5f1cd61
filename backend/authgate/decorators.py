# Overview: Request decorators for browser routes.

from functools import wraps
from flask import request, g

from .errors import AdminRequired, Unauthenticated, error_response
from .services import audit_service


def _is_authenticated() -> bool:
    return getattr(g, "current_user", None) is not None


def require_session(f):
    """
    Require an authenticated browser session.

    The session middleware has already re-validated the account behind the
    cookie, so g.current_user is entitled as of this request.

    Returns 401 when there is no authenticated session.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return error_response(Unauthenticated())
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """
    Require a session whose account currently holds the admin role.

    The role is read from the authoritative account row, not the cached
    identity, so a demotion takes effect on the next request.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return error_response(Unauthenticated())

        user = g.current_user
        if not user.is_admin:
            audit_service.log_security_event(
                event_type="ACCESS_DENIED",
                success=False,
                user_id=user.id,
                action=request.method,
                reason="admin_required",
            )
            return error_response(AdminRequired())

        return f(*args, **kwargs)

    return decorated_function
