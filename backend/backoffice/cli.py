# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--username owner --email owner@example.com --password "Password123!"]
#   Create all tables; optionally create a first Main User.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users create-main --username owner --email owner@example.com --password "Password123!"
#   Create a Main User (a new tenant).
# - python -m flask users list [--main-user-id 1]
#   List users, optionally only one tenant's users.
#
# Maintenance:
# - python -m flask maintenance purge-reset-tokens
#   Delete expired password reset tokens.
# - python -m flask maintenance cleanup-sessions --retention-days 30
#   Delete expired/revoked sessions older than the retention window.

import click
from flask.cli import with_appcontext
from sqlalchemy import or_

from .extensions import db
from .errors import DomainError
from .models import User
from .services import auth_service, session_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--username', default=None, help='Optional first Main User username')
@click.option('--email', default=None, help='Email for the first Main User')
@click.option('--password', default=None, help='Password for the first Main User')
@click.option('--company', 'company_name', default=None, help='Company name')
@with_appcontext
def init_system(username, email, password, company_name):
    """
    Create the schema and, when credentials are given, a first Main User.

    Idempotent: existing tables and users are left untouched.
    """
    click.echo("START Initializing back-office database...")
    db.create_all()
    click.echo("PASS Tables created")

    if not username:
        click.echo("DONE No user requested. Create one with 'python -m flask users create-main'.")
        return

    if not email or not password:
        click.echo("FAIL --email and --password are required together with --username")
        return

    existing = db.session.query(User).filter(
        or_(User.username == username, User.email == email.lower())
    ).first()
    if existing:
        click.echo(f"WARN  User '{existing.username}' already exists, skipping...")
        return

    _create_main_user(username, email, password, company_name)


def _create_main_user(username, email, password, company_name):
    try:
        user = auth_service.register_main_user(
            username=username,
            email=email,
            password=password,
            company_name=company_name,
        )
    except auth_service.PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e.message}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        return None
    except DomainError as e:
        click.echo(f"FAIL Failed to create user: {e.message}")
        return None

    click.echo(f"PASS Created main user: {user.username} ({user.email}) ID: {user.id}")
    return user


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
    click.echo("PASS Database reset complete")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create-main')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--company', 'company_name', default=None, help='Company name')
@with_appcontext
def create_main_user_cli(username, email, password, company_name):
    """
    Create a Main User (tenant).

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    _create_main_user(username, email, password, company_name)


@users_group.command('list')
@click.option('--main-user-id', type=int, help='Only the given tenant (main user and its sub-users)')
@with_appcontext
def list_users(main_user_id):
    """List users with their tenant."""
    query = db.session.query(User)

    if main_user_id:
        query = query.filter(or_(User.id == main_user_id, User.parent_user_id == main_user_id))

    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Tenant':<7} {'Username':<20} {'Email':<30} {'Active':<8} {'Kind'}")
    click.echo("="*90)

    for user in users:
        tenant_id = user.parent_user_id or user.id
        active_str = "Yes" if user.is_active else "No"
        kind = "main" if user.is_main_user else "sub-user"
        click.echo(f"{user.id:<5} {tenant_id:<7} {user.username:<20} {user.email:<30} {active_str:<8} {kind}")

    click.echo("="*90 + "\n")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('purge-reset-tokens')
@with_appcontext
def purge_reset_tokens_cli():
    """Delete password reset tokens past their expiry."""
    deleted = auth_service.purge_expired_reset_tokens()
    click.echo(f"Deleted {deleted} expired password reset tokens.")


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(retention_days):
    """
    Cleanup expired and revoked sessions.

    Default retention: 30 days.
    """
    deleted = session_service.cleanup_expired_sessions(retention_days=retention_days)
    click.echo(f"Deleted {deleted} sessions older than {retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)
