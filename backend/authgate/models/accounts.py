from __future__ import annotations

from ..extensions import db
from authgate.time_utils import to_utc_z


ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_ADMIN)


class Package(db.Model):
    """
    Subscription tier referenced by standard accounts.

    Credit allowance and concurrency limit are descriptive here; quota
    enforcement belongs to the consuming service, not the login decision.

    Packages are referenced, never embedded. The FK from users is RESTRICT so
    a referenced package cannot be deleted out from under an account.
    """
    __tablename__ = "packages"
    __table_args__ = (
        db.CheckConstraint("email_credits >= 0 AND email_credits <= 1000000", name="ck_packages_email_credits"),
        db.CheckConstraint("concurrency_limit >= 1 AND concurrency_limit <= 1000", name="ck_packages_concurrency_limit"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False, unique=True, index=True)
    email_credits = db.Column(db.Integer, nullable=False)
    concurrency_limit = db.Column(db.Integer, nullable=False)
    features = db.Column(db.JSON, nullable=False, default=list)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Package id={self.id} name={self.name!r}>"

    def to_summary(self) -> dict:
        """Client-facing snapshot carried in sessions and desktop login payloads."""
        return {
            "id": self.id,
            "name": self.name,
            "emailCredits": self.email_credits,
            "concurrencyLimit": self.concurrency_limit,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email_credits": self.email_credits,
            "concurrency_limit": self.concurrency_limit,
            "features": list(self.features or []),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class User(db.Model):
    """
    Account record for both browser and desktop authentication.

    Role-conditional fields: standard accounts ("user") must reference a
    package and carry an entitlement end date; admins may leave both empty.
    The CHECK constraint mirrors the tagged variant built by
    entitlement_service.account_from_user.

    registered_device_id is the single-device binding for the desktop client.
    NULL means the next successful desktop login claims it.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.CheckConstraint("role IN ('user', 'admin')", name="ck_users_role"),
        db.CheckConstraint(
            "role = 'admin' OR (package_id IS NOT NULL AND package_end_date IS NOT NULL)",
            name="ck_users_standard_entitlement",
        ),
        db.Index("ix_users_active_role", "is_active", "role"),
        db.Index("ix_users_package_end_active", "package_end_date", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(20), nullable=False, unique=True, index=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False, default=ROLE_USER, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    package_id = db.Column(
        db.Integer,
        db.ForeignKey("packages.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    package_start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    package_end_date = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    # Desktop single-device binding
    registered_device_id = db.Column(db.String(255), nullable=True)

    email_verified = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    package = db.relationship("Package", backref=db.backref("users", lazy=True))

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role}>"

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def to_summary(self) -> dict:
        """
        Account summary returned to the desktop client.

        Admins carry no package snapshot; package and packageEndDate are null.
        """
        standard = not self.is_admin
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "isActive": self.is_active,
            "package": self.package.to_summary() if standard and self.package else None,
            "packageEndDate": to_utc_z(self.package_end_date) if standard else None,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
            "package_id": self.package_id,
            "package_start_date": to_utc_z(self.package_start_date),
            "package_end_date": to_utc_z(self.package_end_date),
            "registered_device_id": self.registered_device_id,
            "email_verified": self.email_verified,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }
