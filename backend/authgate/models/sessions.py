from __future__ import annotations

from ..extensions import db
from authgate.time_utils import to_utc_z


class BrowserSession(db.Model):
    """
    Server-side browser session.

    The client only ever holds the plaintext identifier (cookie); this table
    stores its SHA-256 hash. Regeneration rewrites sid_hash in place, so the
    old identifier stops resolving in the same statement that makes the new
    one valid.

    identity is the cached account summary. It is advisory: every request
    re-reads the users row before trusting it.

    user_id is NULL for anonymous sessions (anti-forgery token issued before
    login).
    """
    __tablename__ = "browser_sessions"
    __table_args__ = (
        db.Index("ix_browser_sessions_last_seen", "last_seen_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sid_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    identity = db.Column(db.JSON, nullable=True)

    csrf_token = db.Column(db.String(64), nullable=True)

    # created_at restarts on every regeneration (drives periodic rotation)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_seen_at = db.Column(db.DateTime(timezone=True), nullable=False)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    user = db.relationship("User", backref=db.backref("browser_sessions", lazy=True, passive_deletes=True))

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "last_seen_at": to_utc_z(self.last_seen_at),
            "ip_address": self.ip_address,
        }


class DesktopToken(db.Model):
    """
    Bearer token for the desktop client.

    Lives in its own table, independent of any browser session, so an
    unrelated cookie expiring never logs the desktop client out.

    device_id is the device recorded at issuance. The token is only valid while
    it still equals users.registered_device_id; a new device claiming the
    account supersedes every older token at once.
    """
    __tablename__ = "desktop_tokens"
    __table_args__ = (
        db.Index("ix_desktop_tokens_user_device", "user_id", "device_id"),
        db.Index("ix_desktop_tokens_expires", "expires_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    device_id = db.Column(db.String(255), nullable=False)

    issued_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    user = db.relationship("User", backref=db.backref("desktop_tokens", lazy=True, passive_deletes=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "device_id": self.device_id,
            "issued_at": to_utc_z(self.issued_at),
            "expires_at": to_utc_z(self.expires_at),
            "last_used_at": to_utc_z(self.last_used_at) if self.last_used_at else None,
        }
