"""
Pytest fixtures for authgate backend tests.

Provides an in-memory database, a frozen application clock, account
fixtures and login helpers for both clients.
"""

from datetime import datetime, timedelta

import pytest
from authgate import create_app
from authgate.extensions import db
from authgate.models import User, ROLE_ADMIN
from authgate.services import account_service
from authgate.time_utils import FrozenClock


BASE_TIME = datetime(2026, 3, 1, 12, 0, 0)
PASSWORD = "secret123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(
        {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
            'SQLALCHEMY_TRACK_MODIFICATIONS': False,
            'BCRYPT_ROUNDS': 4,
            'AUTHGATE_SESSION_COOKIE_SECURE': False,
        },
        clock=FrozenClock(BASE_TIME),
    )

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def clock(app):
    """The app's frozen clock, rewound to BASE_TIME."""
    frozen = app.extensions["clock"]
    frozen.set(BASE_TIME)
    return frozen


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app, clock):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def package(db_session):
    """Premium-style package."""
    return account_service.create_package(
        name="Premium",
        email_credits=1000,
        concurrency_limit=20,
        features=["Bulk validation"],
    )


def make_user(username, package=None, days=30, role="user", is_active=True, email=None) -> User:
    """Create an account whose entitlement ends `days` after BASE_TIME."""
    if role == ROLE_ADMIN:
        return account_service.create_user(
            username=username,
            email=email or f"{username}@example.com",
            password=PASSWORD,
            role=ROLE_ADMIN,
            is_active=is_active,
        )
    return account_service.create_user(
        username=username,
        email=email or f"{username}@example.com",
        password=PASSWORD,
        package_id=package.id,
        package_end_date=BASE_TIME + timedelta(days=days),
        is_active=is_active,
    )


@pytest.fixture(scope='function')
def alice(db_session, package):
    """Active standard account, entitled for 30 more days."""
    return make_user("alice", package)


@pytest.fixture(scope='function')
def admin_user(db_session):
    return make_user("admin", role=ROLE_ADMIN)


def reload(model, ident):
    """Drop cached state and read a row fresh (requests commit through their own session)."""
    db.session.expire_all()
    return db.session.get(model, ident)


def browser_csrf(client) -> str:
    """Open an (anonymous) browser session and return its anti-forgery token."""
    resp = client.get('/auth/login')
    assert resp.status_code == 200
    return resp.get_json()['csrfToken']


def browser_login(client, email: str, password: str = PASSWORD):
    """Full browser login. Returns (response, csrf_token)."""
    csrf = browser_csrf(client)
    resp = client.post(
        '/auth/login',
        json={'email': email, 'password': password},
        headers={'X-CSRF-Token': csrf},
    )
    return resp, csrf


def desktop_login(client, username: str, device_id: str, password: str = PASSWORD):
    return client.post('/auth/api/login', json={
        'username': username,
        'password': password,
        'device_id': device_id,
    })


def session_cookie(client):
    cookie = client.get_cookie('sessionId')
    return cookie.value if cookie else None
