# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/memimo_crm/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-email admin@memimo.local] [--admin-password "memimo123"]
#   Idempotent bootstrap: creates tables, roles, default categories, and the first admin.
# - python -m flask system init-roles
#   Create default roles only (admin, standard).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with roles and active status.
# - python -m flask users create --email ana@memimo.local --first-name Ana --password "secret1" --role standard
#   Create a user (prompts if options are omitted).
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions
#   Delete sessions past their expiry.
# - python -m flask maintenance cleanup-auth-logs --retention-days 90
#   Delete login audit rows older than the retention window.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, Role
from .services.auth_service import (
    ADMIN_ROLE,
    STANDARD_ROLE,
    PasswordValidationError,
    create_default_roles,
    create_user,
    normalize_email,
)
from .services import maintenance_service
from .services.product_service import create_default_categories


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', default='admin@memimo.local', show_default=True, help='Email of the first admin')
@click.option('--admin-password', default='memimo123', show_default=True, help='Password of the first admin')
@with_appcontext
def init_system(admin_email, admin_password):
    """
    Initialize the Memimo CRM: tables, roles, product categories, and the first admin.

    Creates:
    - All tables (if missing)
    - Roles: admin, standard
    - Categories: Helados, Paletas, Bebidas, Postres, Toppings
    - Admin user (default admin@memimo.local / memimo123)

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing Memimo CRM...")

    db.create_all()
    click.echo("PASS Tables ready")

    # 1. Roles
    click.echo("\nLIST Creating roles...")
    create_default_roles()
    roles = db.session.query(Role).all()
    click.echo(f"PASS Roles available: {', '.join(r.name for r in roles)}")

    # 2. Product categories
    created = create_default_categories()
    click.echo(f"PASS Created {created} product categories")

    # 3. First admin
    click.echo("\nUSERS Creating default admin...")
    email = normalize_email(admin_email)
    if db.session.query(User).filter_by(email=email).first():
        click.echo(f"WARN  User '{email}' already exists, skipping...")
    else:
        try:
            create_user(
                email=email,
                password=admin_password,
                first_name="Administrador",
                role_name=ADMIN_ROLE,
            )
            click.echo(f"PASS Created user: {email} with role '{ADMIN_ROLE}'")
        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed for '{email}': {str(e)}")
        except Exception as e:
            click.echo(f"FAIL Failed to create user '{email}': {str(e)}")

    click.echo("\n" + "="*60)
    click.echo("DONE Memimo CRM Initialized Successfully!")
    click.echo("="*60)
    click.echo("\nSECURITY WARNING:")
    click.echo("   - Passwords are hashed with bcrypt")
    click.echo("   - Change the default admin password immediately in production!")
    click.echo("   - Password requirements: 6+ chars")
    click.echo("")


@system_group.command('init-roles')
@with_appcontext
def init_roles():
    """Create default roles (admin, standard)."""
    click.echo("LIST Creating default roles...")
    create_default_roles()
    roles = db.session.query(Role).all()
    click.echo(f"PASS Created roles: {', '.join(r.name for r in roles)}")


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users_cli():
    """List all users with their role and status."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Email':<32} {'Name':<24} {'Role':<10} {'Active'}")
    click.echo("="*80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.email:<32} {user.display_name:<24} {user.role_name or '-':<10} {active_str}")

    click.echo("="*80 + "\n")


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--first-name', prompt=True, help='First name')
@click.option('--last-name', default='', help='Last name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice([ADMIN_ROLE, STANDARD_ROLE]), prompt=True, help='Role')
@with_appcontext
def create_user_cli(email, first_name, last_name, password, role):
    """
    Create a new user interactively.

    Password must be at least 6 characters.
    """
    try:
        user = create_user(
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            role_name=role,
        )
        click.echo(f"PASS Created user: {user.email} with role '{role}'")
        click.echo("SECURITY Password securely hashed with bcrypt")

    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
    except Exception as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")


# =============================================================================
# MAINTENANCE COMMANDS
# =============================================================================

@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions_cli():
    """Delete sessions whose expiry has passed."""
    deleted = maintenance_service.cleanup_sessions()
    click.echo(f"Deleted {deleted} expired sessions.")


@maintenance_group.command('cleanup-auth-logs')
@click.option('--retention-days', type=int, default=90, show_default=True)
@with_appcontext
def cleanup_auth_logs_cli(retention_days):
    """
    Cleanup old login audit rows.

    Default retention: 90 days.
    """
    try:
        deleted = maintenance_service.cleanup_auth_logs(retention_days=retention_days)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--retention-days")
    click.echo(f"Deleted {deleted} login audit rows older than {retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)
