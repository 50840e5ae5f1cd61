# Overview: Service-layer operations for accounts and packages; encapsulates business logic and database work.

"""
Account Directory

Owns the persisted users and packages. Other services go through these
lookups and mutations rather than touching the tables directly.

INVARIANTS ENFORCED HERE:
- Username and email are unique (Conflict on duplicates)
- Standard accounts reference a package and carry an entitlement end date
- At least one admin account exists at all times
- A package referenced by any account cannot be deleted
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ValidationFailed, Conflict, NotFound
from ..models import User, Package, ROLE_ADMIN, ROLE_USER, ROLES
from . import auth_service, entitlement_service
from authgate.time_utils import Clock, get_clock


USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]{3,20}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")

MAX_EMAIL_CREDITS = 1_000_000
MIN_CONCURRENCY_LIMIT = 1
MAX_CONCURRENCY_LIMIT = 1000

DEFAULT_PACKAGES = [
    {
        "name": "Free",
        "email_credits": 100,
        "concurrency_limit": 5,
        "features": ["Basic email validation", "Standard support"],
    },
    {
        "name": "Premium",
        "email_credits": 1000,
        "concurrency_limit": 20,
        "features": ["Advanced email validation", "Priority support", "Bulk validation"],
    },
    {
        "name": "Enterprise",
        "email_credits": 10000,
        "concurrency_limit": 50,
        "features": ["Enterprise email validation", "24/7 support", "Custom integrations", "Advanced analytics"],
    },
]


# =============================================================================
# VALIDATION
# =============================================================================

def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _validate_username(username: str) -> str:
    username = username.strip() if isinstance(username, str) else ""
    if not USERNAME_RE.match(username):
        raise ValidationFailed(
            "Username must be 3-20 characters and contain only letters, numbers, and underscores"
        )
    return username


def _validate_email(email: str) -> str:
    email = normalize_email(email) if isinstance(email, str) else ""
    if not EMAIL_RE.match(email):
        raise ValidationFailed("Please enter a valid email address")
    return email


def _validate_role(role: str) -> str:
    if role not in ROLES:
        raise ValidationFailed("Invalid role selected")
    return role


def _validate_package_fields(name, email_credits, concurrency_limit) -> tuple[str, int, int]:
    name = (name or "").strip()
    if not 2 <= len(name) <= 50:
        raise ValidationFailed("Package name must be 2-50 characters long")
    try:
        email_credits = int(email_credits)
        concurrency_limit = int(concurrency_limit)
    except (TypeError, ValueError):
        raise ValidationFailed("Email credits and concurrency limit must be integers")
    if not 0 <= email_credits <= MAX_EMAIL_CREDITS:
        raise ValidationFailed("Email credits must be between 0 and 1,000,000")
    if not MIN_CONCURRENCY_LIMIT <= concurrency_limit <= MAX_CONCURRENCY_LIMIT:
        raise ValidationFailed("Concurrency limit must be between 1 and 1,000")
    return name, email_credits, concurrency_limit


def _clean_features(features) -> list[str]:
    if features is None:
        return []
    if isinstance(features, str):
        features = features.split("\n")
    return [str(f).strip() for f in features if str(f).strip()]


def _commit_or_conflict(message: str) -> None:
    """Commit, translating a uniqueness race into Conflict."""
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict(message)


# =============================================================================
# LOOKUPS
# =============================================================================

def get_user(user_id: int) -> User | None:
    return db.session.get(User, user_id)


def require_user(user_id: int) -> User:
    user = get_user(user_id)
    if not user:
        raise NotFound("User not found")
    return user


def get_user_by_username(username: str) -> User | None:
    if not username:
        return None
    return db.session.query(User).filter(User.username == username.strip()).first()


def get_user_by_email(email: str) -> User | None:
    if not email:
        return None
    return db.session.query(User).filter(User.email == normalize_email(email)).first()


def get_package(package_id: int) -> Package | None:
    return db.session.get(Package, package_id)


def require_package(package_id) -> Package:
    try:
        package_id = int(package_id)
    except (TypeError, ValueError):
        raise ValidationFailed("Please select a valid package")
    package = get_package(package_id)
    if not package:
        raise NotFound("Package not found")
    return package


def list_packages() -> list[Package]:
    return db.session.query(Package).order_by(Package.name).all()


def count_admins() -> int:
    return db.session.query(User).filter(User.role == ROLE_ADMIN).count()


def count_accounts_referencing(package_id: int) -> int:
    return db.session.query(User).filter(User.package_id == package_id).count()


# =============================================================================
# USERS
# =============================================================================

def _ensure_unique(username: str, email: str, exclude_user_id: int | None = None) -> None:
    query = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    )
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    if query.first():
        raise Conflict("User with this email or username already exists")


def create_user(
    username: str,
    email: str,
    password: str,
    role: str = ROLE_USER,
    package_id: int | None = None,
    package_end_date: datetime | None = None,
    package_start_date: datetime | None = None,
    is_active: bool = True,
    email_verified: bool = True,
    clock: Clock | None = None,
) -> User:
    """
    Create an account with a bcrypt-hashed password.

    Standard accounts must reference an existing package and an entitlement
    end date. Admin accounts ignore both.

    Raises:
        ValidationFailed: malformed fields or missing standard-account window
        NotFound: package does not exist
        Conflict: username or email already taken
    """
    username = _validate_username(username)
    email = _validate_email(email)
    role = _validate_role(role)
    auth_service.validate_password(password)

    _ensure_unique(username, email)

    user = User(
        username=username,
        email=email,
        password_hash=auth_service.hash_password(password),
        role=role,
        is_active=is_active,
        email_verified=email_verified,
    )

    if role == ROLE_USER:
        if package_end_date is None:
            raise ValidationFailed("Please enter a valid end date")
        package = require_package(package_id)
        user.package_id = package.id
        user.package_start_date = package_start_date or get_clock(clock).now()
        user.package_end_date = package_end_date

    db.session.add(user)
    _commit_or_conflict("User with this email or username already exists")
    return user


def update_user(user_id: int, changes: dict, clock: Clock | None = None) -> User:
    """
    Apply an admin edit to an account.

    Accepted keys: username, email, role, package_id, package_end_date,
    is_active, password. A password is only re-hashed when provided.

    Raises Conflict when the edit would demote the last admin or collide
    with another account's username/email.
    """
    user = require_user(user_id)

    try:
        username = _validate_username(changes["username"]) if "username" in changes else user.username
        email = _validate_email(changes["email"]) if "email" in changes else user.email
        _ensure_unique(username, email, exclude_user_id=user.id)

        role = _validate_role(changes["role"]) if "role" in changes else user.role
        if user.role == ROLE_ADMIN and role != ROLE_ADMIN and count_admins() <= 1:
            raise Conflict("Cannot remove the admin role from the last admin user")

        package_id = user.package_id
        if changes.get("package_id") is not None:
            package_id = require_package(changes["package_id"]).id
        package_end_date = changes.get("package_end_date") or user.package_end_date

        if role == ROLE_USER and (package_id is None or package_end_date is None):
            raise ValidationFailed("Standard users require a package and an end date")

        password = changes.get("password")
        if password is not None and not isinstance(password, str):
            raise ValidationFailed("Password must be a string")
        if password and password.strip():
            set_password(user, password, commit=False)
    except (ValidationFailed, Conflict, NotFound):
        db.session.rollback()
        raise

    user.username = username
    user.email = email
    user.role = role
    user.package_id = package_id
    user.package_end_date = package_end_date
    if "is_active" in changes:
        user.is_active = bool(changes["is_active"])

    _commit_or_conflict("Username or email is already taken by another user")
    return user


def set_password(user: User, password: str, commit: bool = True) -> None:
    """Replace the stored secret. The only place a password is re-hashed."""
    auth_service.validate_password(password)
    user.password_hash = auth_service.hash_password(password)
    if commit:
        db.session.commit()


def record_login(user: User, clock: Clock | None = None) -> None:
    """Stamp last_login_at. Caller commits."""
    user.last_login_at = get_clock(clock).now()


# =============================================================================
# PACKAGES
# =============================================================================

def create_package(name, email_credits, concurrency_limit, features=None, is_active: bool = True) -> Package:
    name, email_credits, concurrency_limit = _validate_package_fields(name, email_credits, concurrency_limit)

    if db.session.query(Package).filter(Package.name == name).first():
        raise Conflict("Package with this name already exists")

    package = Package(
        name=name,
        email_credits=email_credits,
        concurrency_limit=concurrency_limit,
        features=_clean_features(features),
        is_active=is_active,
    )
    db.session.add(package)
    _commit_or_conflict("Package with this name already exists")
    return package


def update_package(package_id: int, changes: dict) -> Package:
    package = require_package(package_id)

    name, email_credits, concurrency_limit = _validate_package_fields(
        changes.get("name", package.name),
        changes.get("email_credits", package.email_credits),
        changes.get("concurrency_limit", package.concurrency_limit),
    )

    taken = db.session.query(Package).filter(
        Package.name == name,
        Package.id != package.id,
    ).first()
    if taken:
        raise Conflict("Package name is already taken by another package")

    package.name = name
    package.email_credits = email_credits
    package.concurrency_limit = concurrency_limit
    if "features" in changes:
        package.features = _clean_features(changes["features"])
    if "is_active" in changes:
        package.is_active = bool(changes["is_active"])

    _commit_or_conflict("Package name is already taken by another package")
    return package


def delete_package(package_id: int) -> None:
    """
    Delete a package nobody references.

    There is no cascading policy: referenced packages are refused.
    """
    package = require_package(package_id)
    if count_accounts_referencing(package.id) > 0:
        raise Conflict("Cannot delete package that is assigned to users")
    db.session.delete(package)
    db.session.commit()


# =============================================================================
# REPORTING
# =============================================================================

def find_expiring_accounts(days: int = 7, clock: Clock | None = None) -> list[User]:
    """Active standard accounts whose package ends within `days` days."""
    now = get_clock(clock).now()
    candidates = db.session.query(User).filter(
        User.role == ROLE_USER,
        User.is_active.is_(True),
        User.package_end_date >= now,
        User.package_end_date <= now + timedelta(days=days),
    ).order_by(User.package_end_date).all()
    return [u for u in candidates if entitlement_service.is_expiring_within(u, days, now)]


def find_expired_accounts(clock: Clock | None = None) -> list[User]:
    now = get_clock(clock).now()
    return db.session.query(User).filter(
        User.role == ROLE_USER,
        User.package_end_date < now,
    ).order_by(User.package_end_date).all()


def user_stats(clock: Clock | None = None) -> dict:
    now = get_clock(clock).now()
    next_week = now + timedelta(days=7)
    query = db.session.query(User)
    return {
        "total": query.count(),
        "active": query.filter(User.is_active.is_(True)).count(),
        "inactive": query.filter(User.is_active.is_(False)).count(),
        "expired": query.filter(User.role == ROLE_USER, User.package_end_date < now).count(),
        "expiring": query.filter(
            User.role == ROLE_USER,
            User.package_end_date >= now,
            User.package_end_date <= next_week,
        ).count(),
    }


def package_stats() -> dict:
    total = db.session.query(func.count(Package.id)).scalar() or 0
    active = db.session.query(func.count(Package.id)).filter(Package.is_active.is_(True)).scalar() or 0
    return {"total": total, "active": active, "inactive": total - active}


# =============================================================================
# SEEDING
# =============================================================================

def ensure_default_packages() -> int:
    """Create the Free/Premium/Enterprise tiers when no package exists."""
    if db.session.query(Package).count() > 0:
        return 0
    for defaults in DEFAULT_PACKAGES:
        db.session.add(Package(is_active=True, **defaults))
    db.session.commit()
    return len(DEFAULT_PACKAGES)


def ensure_default_admin(username: str, email: str, password: str) -> User | None:
    """Create an admin when none exists. Returns the new user, or None."""
    if count_admins() > 0:
        return None
    return create_user(
        username=username,
        email=email,
        password=password,
        role=ROLE_ADMIN,
    )
