# Overview: Per-request browser session resolution and anti-forgery enforcement.

"""
Browser session middleware.

Runs before every browser-facing request:
1. Resolve the session cookie through session_service.load_and_validate
   (idle timeout, account re-read, entitlement check)
2. Regenerate the identifier when the rotation interval has passed
3. Require the anti-forgery token on state-mutating methods

Results are left on flask.g:
- g.browser_session: BrowserSession or None
- g.session_id: plaintext identifier for this request (after rotation)
- g.current_user: User for authenticated sessions, else None

Desktop routes (/auth/api/) authenticate with bearer tokens in the body and
are exempt, as is the health probe.
"""

from flask import current_app, g, request

from .errors import CsrfFailed, error_response
from .services import audit_service, session_service


SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
EXEMPT_PREFIXES = ("/auth/api/", "/health")

CSRF_HEADER = "X-CSRF-Token"
CSRF_FIELD = "_csrf"


def _cookie_name() -> str:
    return current_app.config.get("AUTHGATE_SESSION_COOKIE", "sessionId")


def issue_session_cookie(session_id: str) -> None:
    """Send session_id to the client with this response."""
    g.session_id = session_id
    g.session_cookie_action = "set"


def clear_session_cookie() -> None:
    g.session_id = None
    g.browser_session = None
    g.current_user = None
    g.session_cookie_action = "clear"


def _submitted_csrf_token() -> str | None:
    token = request.headers.get(CSRF_HEADER)
    if token:
        return token
    if request.form:
        token = request.form.get(CSRF_FIELD)
        if token:
            return token
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data.get(CSRF_FIELD)
    return None


def _resolve_session():
    g.browser_session = None
    g.session_id = None
    g.current_user = None
    g.session_cookie_action = None

    if request.path.startswith(EXEMPT_PREFIXES):
        return None

    session_id = request.cookies.get(_cookie_name())
    if session_id:
        context = session_service.load_and_validate(session_id)
        if context is None:
            audit_service.log_security_event(
                event_type="SESSION_INVALIDATED",
                success=False,
                action=request.method,
                reason="session_rejected",
            )
            clear_session_cookie()
        else:
            g.browser_session = context.session
            g.session_id = context.session_id
            g.current_user = context.user

            if session_service.needs_rotation(context.session):
                issue_session_cookie(session_service.regenerate(context.session_id))

    if request.method not in SAFE_METHODS:
        if not session_service.csrf_matches(g.browser_session, _submitted_csrf_token()):
            audit_service.log_security_event(
                event_type="CSRF_REJECTED",
                success=False,
                user_id=g.current_user.id if g.current_user else None,
                action=request.method,
                reason=CsrfFailed.reason,
            )
            return error_response(CsrfFailed())

    return None


def _write_session_cookie(response):
    action = g.get("session_cookie_action")
    if action == "set":
        response.set_cookie(
            _cookie_name(),
            g.session_id,
            httponly=True,
            samesite="Strict",
            secure=current_app.config.get("AUTHGATE_SESSION_COOKIE_SECURE", False),
            path="/",
        )
    elif action == "clear":
        response.delete_cookie(_cookie_name(), path="/")
    return response


def init_session_middleware(app) -> None:
    app.before_request(_resolve_session)
    app.after_request(_write_session_cookie)
