# backend/authgate/config.py
from __future__ import annotations
import os
from datetime import timedelta


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/authgate.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///authgate.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    ENVIRONMENT = os.environ.get("AUTHGATE_ENV", "development")

    # Browser sessions (server-side, cookie carries only the opaque id)
    AUTHGATE_SESSION_COOKIE = os.environ.get("AUTHGATE_SESSION_COOKIE", "sessionId")
    AUTHGATE_SESSION_COOKIE_SECURE = _env_flag(
        "AUTHGATE_SESSION_COOKIE_SECURE", ENVIRONMENT == "production"
    )
    SESSION_IDLE_TIMEOUT = timedelta(minutes=int(os.environ.get("SESSION_IDLE_TIMEOUT_MINUTES", "30")))
    SESSION_ROTATION_INTERVAL = timedelta(hours=int(os.environ.get("SESSION_ROTATION_HOURS", "2")))

    # Desktop bearer tokens
    DESKTOP_TOKEN_TTL = timedelta(days=int(os.environ.get("DESKTOP_TOKEN_TTL_DAYS", "30")))

    # Credential hashing work factor
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    # Login throttling
    LOGIN_MAX_FAILED_ATTEMPTS = int(os.environ.get("LOGIN_MAX_FAILED_ATTEMPTS", "5"))
    LOGIN_LOCKOUT_WINDOW = timedelta(minutes=int(os.environ.get("LOGIN_LOCKOUT_MINUTES", "15")))

    # Seed values for `flask system init`
    DEFAULT_ADMIN_USERNAME = os.environ.get("DEFAULT_ADMIN_USERNAME", "admin")
    DEFAULT_ADMIN_EMAIL = os.environ.get("DEFAULT_ADMIN_EMAIL", "admin@example.com")
    DEFAULT_ADMIN_PASSWORD = os.environ.get("DEFAULT_ADMIN_PASSWORD", "admin123")
