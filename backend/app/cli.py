# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/app/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Full idempotent bootstrap: creates tables, seeds the region catalog and default users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role, active status and effective regions.
# - python -m flask users create --username asha --email asha@example.com --password "Password123!" --role Technician
#   Create a user (prompts if options are omitted).
#
# Region catalog:
# - python -m flask regions seed
#   Create any missing Indian state / union territory rows.
# - python -m flask regions list [--all]
#   List regions (use --all to include deactivated ones).
# - python -m flask regions deactivate Goa / regions activate Goa
#   Stop or resume a region granting access.
#
# Grants:
# - python -m flask grants assign asha Maharashtra
#   Grant permanent access to a region.
# - python -m flask grants temporary asha Delhi --hours 4 --reason "Fibre cut survey"
#   Grant time-boxed access.
#
# Maintenance:
# - python -m flask maintenance cleanup-audit-events --retention-days 365
#   Delete audit events older than the retention window; the purge is audited.
# - python -m flask maintenance cleanup-sessions --retention-days 30
#   Delete expired and revoked session tokens.

import click
from datetime import timedelta
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .permissions import RoleName
from .services.auth_service import create_user, PasswordValidationError
from .services import grant_service
from .services import maintenance_service
from .services import region_service
from .validation import ConflictError, NotFoundError, ValidationError
from .time_utils import utcnow


def _get_user_by_username(username: str) -> User:
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        raise click.ClickException(f"User '{username}' not found")
    return user


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the region access system.

    Creates:
    - All tables (if missing)
    - The region catalog
    - Users: admin, manager, technician, user (all with password "Password123!")

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing region access system...")

    db.create_all()

    created_regions = region_service.seed_regions()
    click.echo(f"PASS Seeded {created_regions} regions")

    # Default password meets requirements:
    # - Minimum 8 characters
    # - Uppercase, lowercase, digit, special char
    default_password = "Password123!"

    default_users = [
        ("admin", "admin@region-access.local", RoleName.ADMIN),
        ("manager", "manager@region-access.local", RoleName.MANAGER),
        ("technician", "technician@region-access.local", RoleName.TECHNICIAN),
        ("user", "user@region-access.local", RoleName.USER),
    ]

    click.echo("\nUSERS Creating default users...")
    for username, email, role in default_users:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            create_user(username=username, email=email, password=default_password, role=role)
            click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
        except (PasswordValidationError, ValidationError, ConflictError) as e:
            click.echo(f"FAIL Failed to create user '{username}': {str(e)}")

    click.echo("\n" + "="*60)
    click.echo("DONE Region access system initialized")
    click.echo("="*60)
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    for username, _, role in default_users:
        click.echo(f"   {username:<11} ({role}) / {default_password}")
    click.echo("")


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
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(RoleName.ALL)), prompt=True, help='Role')
@click.option('--full-name', default=None, help='Display name')
@with_appcontext
def create_user_cli(username, email, password, role, full_name):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(username=username, email=email, password=password, role=role, full_name=full_name)
        click.echo(f"PASS Created user: {username} ({email}) with role '{user.role}' (ID: {user.id})")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles and effective regions."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Role':<12} {'Active':<8} {'Regions'}")
    click.echo("="*100)

    for user in users:
        regions = sorted(grant_service.get_effective_regions(user.id))
        regions_str = ", ".join(regions) if regions else "none"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {user.role:<12} {active_str:<8} {regions_str}")

    click.echo("="*100 + "\n")


@click.group('regions')
def regions_group():
    """Region catalog commands."""


@regions_group.command('seed')
@with_appcontext
def seed_regions_cli():
    """Create any missing catalog regions. Idempotent."""
    created = region_service.seed_regions()
    click.echo(f"PASS Created {created} regions")


@regions_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include deactivated regions')
@with_appcontext
def list_regions_cli(include_inactive):
    regions = region_service.list_regions(include_inactive=include_inactive)
    if not regions:
        click.echo("No regions found. Run 'python -m flask regions seed'.")
        return

    for region in regions:
        status = "" if region.is_active else " (inactive)"
        click.echo(f"{region.code or '-':<4} {region.name}{status}")


@regions_group.command('deactivate')
@click.argument('name')
@with_appcontext
def deactivate_region_cli(name):
    """Stop REGION from granting access. Existing grant rows are kept."""
    try:
        region_service.set_region_active(name, False)
    except ValidationError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS {name} deactivated")


@regions_group.command('activate')
@click.argument('name')
@with_appcontext
def activate_region_cli(name):
    try:
        region_service.set_region_active(name, True)
    except ValidationError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS {name} activated")


@click.group('grants')
def grants_group():
    """Region grant commands."""


@grants_group.command('assign')
@click.argument('username')
@click.argument('region')
@with_appcontext
def assign_region_cli(username, region):
    """Grant permanent access to REGION for USERNAME."""
    user = _get_user_by_username(username)
    try:
        grant_service.grant_permanent(user.id, region, None)
    except (ValidationError, NotFoundError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS {username} now has permanent access to {region}")


@grants_group.command('temporary')
@click.argument('username')
@click.argument('region')
@click.option('--hours', type=float, default=24.0, show_default=True, help='Duration of the grant')
@click.option('--reason', default=None, help='Why access is needed')
@with_appcontext
def grant_temporary_cli(username, region, hours, reason):
    """Grant time-boxed access to REGION for USERNAME."""
    user = _get_user_by_username(username)
    if hours <= 0:
        raise click.BadParameter("must be positive", param_hint="--hours")

    expires_at = utcnow() + timedelta(hours=hours)
    admin = db.session.query(User).filter_by(role=RoleName.ADMIN, is_active=True).first()
    if not admin:
        raise click.ClickException("An active Admin is required to attribute the grant")

    try:
        grant = grant_service.grant_temporary(user.id, region, expires_at, admin.id, reason)
    except (ValidationError, NotFoundError, ConflictError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS {username} has temporary access to {region} until {grant.expires_at.isoformat()}Z (grant {grant.id})")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-audit-events')
@click.option('--retention-days', type=click.IntRange(min=1), default=None, help='Defaults to AUDIT_RETENTION_DAYS')
@with_appcontext
def cleanup_audit_events_cli(retention_days):
    """Delete audit events older than the retention window. Recorded as AUDIT_PURGED."""
    if retention_days is None:
        retention_days = int(current_app.config.get("AUDIT_RETENTION_DAYS", 365))
    deleted = maintenance_service.cleanup_audit_events(retention_days=retention_days)
    click.echo(f"Deleted {deleted} audit events older than {retention_days} days.")


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(retention_days):
    """Delete expired and revoked session tokens."""
    deleted = maintenance_service.cleanup_sessions(retention_days=retention_days)
    click.echo(f"Deleted {deleted} sessions older than {retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(regions_group)
    app.cli.add_command(grants_group)
    app.cli.add_command(maintenance_group)
