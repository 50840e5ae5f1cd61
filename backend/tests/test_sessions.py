"""
Browser session lifecycle tests (service level).

Verifies:
- Regeneration keeps payload and anti-forgery token, changes the id, and
  the old id stops resolving immediately
- Logout destroys the session
- Idle timeout and entitlement loss destroy the session on next access
- Periodic rotation threshold
- Idle anonymous rows are swept when a new anonymous session starts
"""

from datetime import timedelta

import pytest

from authgate.errors import Unauthenticated
from authgate.extensions import db
from authgate.models import BrowserSession
from authgate.services import admin_service, maintenance_service, session_service


class TestEstablish:

    def test_identity_payload_for_standard_user(self, alice):
        session, sid = session_service.establish(alice)
        assert len(sid) == 64
        assert session.sid_hash != sid
        assert session.identity["username"] == "alice"
        assert session.identity["package"]["name"] == "Premium"
        assert session.identity["packageEndDate"].endswith("Z")

    def test_admin_payload_has_no_package(self, admin_user):
        session, _ = session_service.establish(admin_user)
        assert "package" not in session.identity
        assert "packageEndDate" not in session.identity

    def test_load_touches_last_seen(self, alice, clock):
        _, sid = session_service.establish(alice)
        clock.advance(minutes=10)
        context = session_service.load_and_validate(sid)
        assert context.user.id == alice.id
        assert context.session.last_seen_at == clock.now()

    def test_unknown_id(self, db_session):
        assert session_service.load_and_validate("nope") is None
        assert session_service.load_and_validate(None) is None


class TestRegenerate:

    def test_regenerate_keeps_payload_and_csrf(self, alice):
        session, sid = session_service.establish(alice)
        csrf = session_service.ensure_csrf_token(session)
        identity = dict(session.identity)

        new_sid = session_service.regenerate(sid)

        assert new_sid != sid
        assert session_service.load_and_validate(sid) is None
        context = session_service.load_and_validate(new_sid)
        assert context is not None
        assert context.session.csrf_token == csrf
        assert context.session.identity == identity

    def test_regenerate_unknown_id(self, db_session):
        with pytest.raises(Unauthenticated):
            session_service.regenerate("missing")

    def test_fixation_anonymous_id_unusable_after_login(self, alice):
        session, anon_sid = session_service.start_anonymous()
        session_service.attach_identity(anon_sid, alice)
        new_sid = session_service.regenerate(anon_sid)

        assert session_service.load_and_validate(anon_sid) is None
        assert session_service.load_and_validate(new_sid).user.id == alice.id


class TestInvalidation:

    def test_logout_destroys(self, alice):
        _, sid = session_service.establish(alice)
        assert session_service.destroy(sid) is True
        assert session_service.load_and_validate(sid) is None
        assert session_service.destroy(sid) is False

    def test_idle_timeout(self, alice, clock):
        _, sid = session_service.establish(alice)
        clock.advance(minutes=30)
        assert session_service.load_and_validate(sid) is not None
        clock.advance(minutes=30, seconds=1)
        assert session_service.load_and_validate(sid) is None
        assert db.session.query(BrowserSession).count() == 0

    def test_deactivation_takes_effect_next_request(self, alice):
        _, sid = session_service.establish(alice)
        alice.is_active = False
        db.session.commit()
        assert session_service.load_and_validate(sid) is None
        assert db.session.query(BrowserSession).count() == 0

    def test_entitlement_lapse_mid_session(self, alice, clock):
        alice.package_end_date = clock.now() + timedelta(minutes=5)
        db.session.commit()
        _, sid = session_service.establish(alice)

        clock.advance(minutes=5)
        assert session_service.load_and_validate(sid) is not None
        clock.advance(seconds=1)
        assert session_service.load_and_validate(sid) is None

    def test_identity_refreshed_from_account(self, alice):
        _, sid = session_service.establish(alice)
        alice.email = "alice.new@example.com"
        db.session.commit()
        context = session_service.load_and_validate(sid)
        assert context.session.identity["email"] == "alice.new@example.com"


class TestRotation:

    def test_needs_rotation_after_interval(self, alice, clock):
        session, _ = session_service.establish(alice)
        clock.advance(hours=2)
        assert session_service.needs_rotation(session) is False
        clock.advance(seconds=1)
        assert session_service.needs_rotation(session) is True

    def test_anonymous_sessions_never_rotate(self, db_session, clock):
        session, _ = session_service.start_anonymous()
        clock.advance(hours=3)
        assert session_service.needs_rotation(session) is False


class TestCsrf:

    def test_token_stable_and_compared(self, alice):
        session, _ = session_service.establish(alice)
        token = session_service.ensure_csrf_token(session)
        assert session_service.ensure_csrf_token(session) == token
        assert session_service.csrf_matches(session, token) is True
        assert session_service.csrf_matches(session, token[:-1] + "x") is False
        assert session_service.csrf_matches(session, None) is False
        assert session_service.csrf_matches(session, 12345) is False
        assert session_service.csrf_matches(None, token) is False


class TestCleanup:

    def test_sweep_removes_idle_sessions_and_expired_tokens(self, alice, clock):
        session_service.establish(alice)
        clock.advance(minutes=31)
        session_service.establish(alice)

        deleted = maintenance_service.cleanup_sessions()

        assert deleted == {"browser_sessions": 1, "desktop_tokens": 0}
        assert db.session.query(BrowserSession).count() == 1

    def test_new_anonymous_session_sweeps_idle_anonymous_rows(self, alice, clock):
        session_service.start_anonymous()
        session_service.establish(alice)
        clock.advance(minutes=31)

        session_service.start_anonymous()

        rows = db.session.query(BrowserSession).all()
        assert len(rows) == 2
        assert sorted(row.user_id is None for row in rows) == [False, True]

    def test_recent_anonymous_sessions_survive(self, db_session, clock):
        session_service.start_anonymous()
        clock.advance(minutes=29)
        session_service.start_anonymous()
        assert db.session.query(BrowserSession).count() == 2

    def test_deleted_account_sessions_removed(self, alice, admin_user):
        session_service.establish(alice)
        admin_service.delete_user(alice.id)
        assert db.session.query(BrowserSession).count() == 0
