# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/authgate/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to authgate (PowerShell: $env:FLASK_APP="authgate").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, the Free/Premium/Enterprise packages and a default admin.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Account inspection/bootstrap:
# - python -m flask users list
#   List all accounts with role, package window and device binding.
# - python -m flask users create --username alice --email alice@example.com --password secret1 --role user --package Free --end-date 2026-12-31
#   Create an account (prompts if options are omitted).
# - python -m flask users reset-device alice
#   Clear an account's desktop device binding and revoke its desktop tokens.
#
# Packages:
# - python -m flask packages list
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions
#   Delete idle browser sessions and expired desktop tokens.
# - python -m flask maintenance cleanup-security-events --retention-days 90
#   Delete security events older than the retention window.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .errors import AuthGateError
from .models import Package, User, ROLES
from .services import account_service, admin_service, maintenance_service
from .time_utils import get_clock, parse_iso_datetime, to_utc_z


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the gateway: schema, default packages, default admin.

    The admin credentials come from DEFAULT_ADMIN_USERNAME / _EMAIL / _PASSWORD.

    SECURITY: Change the default admin password immediately in production!
    """
    click.echo("START Initializing authgate...")

    db.create_all()
    click.echo("PASS Schema ready")

    created = account_service.ensure_default_packages()
    if created:
        click.echo(f"PASS Created {created} default packages")
    else:
        click.echo("PASS Packages already present")

    admin = account_service.ensure_default_admin(
        username=current_app.config["DEFAULT_ADMIN_USERNAME"],
        email=current_app.config["DEFAULT_ADMIN_EMAIL"],
        password=current_app.config["DEFAULT_ADMIN_PASSWORD"],
    )
    if admin:
        click.echo(f"PASS Created admin user: {admin.username} ({admin.email})")
        click.echo("SECURITY Change the default admin password before going live")
    else:
        click.echo("PASS Admin user already present")

    click.echo("DONE authgate initialized")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('users')
def users_group():
    """Account inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), default='user', show_default=True, help='Role')
@click.option('--package', 'package_name', help='Package name (standard users)')
@click.option('--end-date', help='Entitlement end date, YYYY-MM-DD (standard users)')
@with_appcontext
def create_user_cli(username, email, password, role, package_name, end_date):
    """
    Create an account.

    Standard users need --package and --end-date; admins ignore both.
    """
    try:
        package_id = None
        if role == 'user':
            package = db.session.query(Package).filter_by(name=package_name).first() if package_name else None
            if not package:
                click.echo(f"FAIL Package '{package_name}' not found. Run 'python -m flask packages list'.")
                return
            package_id = package.id

        user = account_service.create_user(
            username=username,
            email=email,
            password=password,
            role=role,
            package_id=package_id,
            package_end_date=parse_iso_datetime(end_date) if end_date else None,
        )

        click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")
        if user.package_end_date:
            click.echo(f"     Package ends: {to_utc_z(user.package_end_date)}")
        click.echo("SECURITY Password securely hashed with bcrypt")

    except ValueError:
        click.echo(f"FAIL Invalid end date: {end_date}")
    except AuthGateError as e:
        click.echo(f"FAIL {e.message}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all accounts."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    now = get_clock().now()

    click.echo("\n" + "="*110)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Role':<6} {'Active':<7} {'Ends':<22} {'Device'}")
    click.echo("="*110)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        ends = to_utc_z(user.package_end_date) if user.package_end_date else "-"
        if user.package_end_date and user.package_end_date < now:
            ends += " (exp)"
        device = user.registered_device_id or "-"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {user.role:<6} {active_str:<7} {ends:<22} {device}")

    click.echo("="*110 + "\n")


@users_group.command('reset-device')
@click.argument('username')
@with_appcontext
def reset_device_cli(username):
    """Clear an account's device binding so the next desktop login claims it."""
    user = account_service.get_user_by_username(username)
    if not user:
        click.echo(f"FAIL User '{username}' not found")
        return

    revoked = admin_service.reset_device(user.id)
    click.echo(f"PASS Device binding cleared for {username} ({revoked} desktop tokens revoked)")


@click.group('packages')
def packages_group():
    """Package inspection commands."""


@packages_group.command('list')
@with_appcontext
def list_packages():
    packages = account_service.list_packages()

    if not packages:
        click.echo("No packages found. Run 'python -m flask system init'.")
        return

    for package in packages:
        users = account_service.count_accounts_referencing(package.id)
        status = "active" if package.is_active else "inactive"
        click.echo(
            f"{package.id:<4} {package.name:<20} credits={package.email_credits:<8} "
            f"concurrency={package.concurrency_limit:<5} users={users:<5} {status}"
        )


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions_cli():
    """Delete idle browser sessions and expired desktop tokens."""
    deleted = maintenance_service.cleanup_sessions()
    click.echo(
        f"Deleted {deleted['browser_sessions']} idle browser sessions "
        f"and {deleted['desktop_tokens']} expired desktop tokens."
    )


@maintenance_group.command('cleanup-security-events')
@click.option('--retention-days', type=int, default=90, show_default=True)
@with_appcontext
def cleanup_security_events_cli(retention_days):
    """
    Cleanup old security events.

    Default retention: 90 days.
    """
    deleted = maintenance_service.cleanup_security_events(retention_days=retention_days)
    click.echo(f"Deleted {deleted} security events older than {retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(packages_group)
    app.cli.add_command(maintenance_group)
