"""
Browser authentication tests (HTTP).

Verifies:
- GET /auth/login issues a session cookie and anti-forgery token
- POST /auth/login requires the token, regenerates the session id and
  redirects to the dashboard
- Unknown email and wrong password are indistinguishable
- Deactivated and expired accounts are refused, and lose live sessions
- Idle timeout and periodic rotation through the middleware
- Logout clears the session
- Wrong guesses through either client count against one per-account budget
"""

from datetime import timedelta

import pytest

from authgate.extensions import db
from authgate.models import BrowserSession, SecurityEvent, User

from conftest import PASSWORD, browser_csrf, browser_login, desktop_login, reload, session_cookie


class TestLoginPage:

    def test_issues_cookie_and_csrf(self, client, db_session):
        csrf = browser_csrf(client)
        assert len(csrf) == 64
        assert session_cookie(client) is not None

    def test_same_session_same_token(self, client, db_session):
        assert browser_csrf(client) == browser_csrf(client)
        assert db_session.query(BrowserSession).count() == 1

    def test_authenticated_user_redirected(self, client, alice):
        browser_login(client, "alice@example.com")
        resp = client.get("/auth/login")
        assert resp.status_code == 302
        assert resp.headers["Location"].endswith("/dashboard")


class TestLogin:

    def test_success_redirects_and_regenerates(self, client, alice):
        browser_csrf(client)
        anonymous_sid = session_cookie(client)

        resp, _ = browser_login(client, "alice@example.com")

        assert resp.status_code == 302
        assert resp.headers["Location"].endswith("/dashboard")
        assert session_cookie(client) != anonymous_sid
        assert reload(User, alice.id).last_login_at is not None

        dashboard = client.get("/dashboard")
        assert dashboard.status_code == 200
        assert dashboard.get_json()["user"]["username"] == "alice"

    def test_email_is_case_insensitive(self, client, alice):
        resp, _ = browser_login(client, "ALICE@Example.com")
        assert resp.status_code == 302

    def test_missing_csrf_rejected(self, client, alice):
        browser_csrf(client)
        resp = client.post("/auth/login", json={"email": "alice@example.com", "password": PASSWORD})
        assert resp.status_code == 403

        db.session.expire_all()
        assert db.session.query(SecurityEvent).filter_by(event_type="CSRF_REJECTED").count() == 1

    def test_csrf_without_session_rejected(self, client, alice):
        resp = client.post(
            "/auth/login",
            json={"email": "alice@example.com", "password": PASSWORD},
            headers={"X-CSRF-Token": "0" * 64},
        )
        assert resp.status_code == 403

    def test_non_string_csrf_field_rejected(self, client, alice):
        browser_csrf(client)
        resp = client.post(
            "/auth/login",
            json={"email": "alice@example.com", "password": PASSWORD, "_csrf": 12345},
        )
        assert resp.status_code == 403

    def test_csrf_accepted_as_form_field(self, client, alice):
        csrf = browser_csrf(client)
        resp = client.post(
            "/auth/login",
            data={"email": "alice@example.com", "password": PASSWORD, "_csrf": csrf},
        )
        assert resp.status_code == 302

    def test_generic_failure_message(self, client, alice):
        unknown, _ = browser_login(client, "nobody@example.com")
        wrong, _ = browser_login(client, "alice@example.com", password="wrong-password")

        assert unknown.status_code == wrong.status_code == 401
        assert unknown.get_json() == wrong.get_json() == {"error": "Invalid username/email or password"}

    def test_deactivated_refused(self, client, alice):
        alice.is_active = False
        db.session.commit()
        resp, _ = browser_login(client, "alice@example.com")
        assert resp.status_code == 403
        assert "deactivated" in resp.get_json()["error"]

    def test_expired_refused(self, client, alice, clock):
        clock.set(alice.package_end_date + timedelta(seconds=1))
        resp, _ = browser_login(client, "alice@example.com")
        assert resp.status_code == 403
        assert "expired" in resp.get_json()["error"]

    def test_missing_fields(self, client, alice):
        csrf = browser_csrf(client)
        resp = client.post("/auth/login", json={"email": "alice@example.com"}, headers={"X-CSRF-Token": csrf})
        assert resp.status_code == 400

    def test_lockout_after_repeated_failures(self, client, alice):
        for _ in range(5):
            resp, _ = browser_login(client, "alice@example.com", password="wrong-password")
            assert resp.status_code == 401

        resp, _ = browser_login(client, "alice@example.com")
        assert resp.status_code == 429

    def test_desktop_failures_lock_browser_login(self, client, alice):
        for _ in range(5):
            assert desktop_login(client, "alice", "dev-1", password="wrong-password").status_code == 401

        resp, _ = browser_login(client, "alice@example.com", password="wrong-password")
        assert resp.status_code == 429
        resp, _ = browser_login(client, "alice@example.com")
        assert resp.status_code == 429

    def test_failures_split_across_clients_share_one_budget(self, client, alice):
        for _ in range(3):
            desktop_login(client, "alice", "dev-1", password="wrong-password")
        for _ in range(2):
            resp, _ = browser_login(client, "alice@example.com", password="wrong-password")
            assert resp.status_code == 401

        assert desktop_login(client, "alice", "dev-1").status_code == 429

    @pytest.mark.parametrize("body", [
        {"email": 12345, "password": PASSWORD},
        {"email": "alice@example.com", "password": 123456},
        {"email": ["alice@example.com"], "password": PASSWORD},
    ])
    def test_non_string_fields_400(self, client, alice, body):
        csrf = browser_csrf(client)
        resp = client.post("/auth/login", json=body, headers={"X-CSRF-Token": csrf})
        assert resp.status_code == 400


class TestLiveSession:

    def test_dashboard_requires_session(self, client, db_session):
        assert client.get("/dashboard").status_code == 401

    def test_deactivation_ends_session(self, client, alice):
        browser_login(client, "alice@example.com")
        assert client.get("/dashboard").status_code == 200

        user = reload(User, alice.id)
        user.is_active = False
        db.session.commit()

        assert client.get("/dashboard").status_code == 401
        assert db.session.query(BrowserSession).count() == 0

    def test_expiry_ends_session(self, client, alice, clock):
        alice.package_end_date = clock.now() + timedelta(minutes=10)
        db.session.commit()

        browser_login(client, "alice@example.com")
        clock.advance(minutes=10)
        assert client.get("/dashboard").status_code == 200
        clock.advance(seconds=1)
        assert client.get("/dashboard").status_code == 401

    def test_idle_timeout(self, client, alice, clock):
        browser_login(client, "alice@example.com")
        clock.advance(minutes=31)
        assert client.get("/dashboard").status_code == 401

    def test_periodic_rotation(self, client, alice, clock):
        browser_login(client, "alice@example.com")
        before = session_cookie(client)

        # Stay active: 5 requests, 25 minutes apart (> 2 hours total)
        for _ in range(5):
            clock.advance(minutes=25)
            assert client.get("/dashboard").status_code == 200

        after = session_cookie(client)
        assert after != before
        assert client.get("/dashboard").status_code == 200

    def test_dashboard_for_admin_includes_stats(self, client, admin_user, package):
        browser_login(client, "admin@example.com")
        body = client.get("/dashboard").get_json()
        assert body["daysUntilExpiry"] is None
        assert body["stats"]["users"]["total"] == 1
        assert body["stats"]["packages"]["total"] == 1
        assert body["expiringUsers"] == []

    def test_dashboard_for_standard_user(self, client, alice):
        browser_login(client, "alice@example.com")
        body = client.get("/dashboard").get_json()
        assert body["daysUntilExpiry"] == 30
        assert body["isExpiringSoon"] is False
        assert "stats" not in body


class TestLogout:

    def test_logout_destroys_session(self, client, alice):
        _, csrf = browser_login(client, "alice@example.com")
        sid = session_cookie(client)

        resp = client.post("/auth/logout", headers={"X-CSRF-Token": csrf})

        assert resp.status_code == 302
        assert resp.headers["Location"].endswith("/auth/login")
        assert session_cookie(client) is None
        assert db.session.query(BrowserSession).count() == 0

        # Replaying the old identifier does not authenticate
        client.set_cookie("sessionId", sid)
        assert client.get("/dashboard").status_code == 401

    def test_get_logout(self, client, alice):
        browser_login(client, "alice@example.com")
        resp = client.get("/auth/logout")
        assert resp.status_code == 302
        assert client.get("/dashboard").status_code == 401


class TestHealth:

    def test_health(self, client, admin_user):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["details"]["admins"] == 1

    def test_degraded_without_admin(self, client, db_session):
        body = client.get("/health").get_json()
        assert body["status"] == "degraded"
