# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/refurb/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system cleanup-sessions
#   Delete expired and revoked session tokens.
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with their last activity.
# - python -m flask users create --email me@example.com --pin 1234 --name "Atelier"
#   Create a user (prompts if options are omitted).
# - python -m flask users set-pin --email me@example.com
#   Replace a user's PIN without the current one (prompts for the new PIN).
#
# Stock:
# - python -m flask stock low --email me@example.com [--threshold 5]
#   List a user's pieces below the low-stock threshold.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .services import auth_service, session_service, stock_service
from .services.analytics_service import LOW_STOCK_THRESHOLD
from .services.audit_service import append_audit_event
from .services.errors import ServiceError
from .services.pin_service import hash_pin, validate_pin_format
from .time_utils import to_utc_z


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables. Existing data is left alone."""
    db.create_all()
    click.echo("PASS Database schema ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """Drop every table and recreate an empty schema. Phones, repairs and stock are lost."""
    if not yes:
        click.confirm("WARN Every phone, repair, stock piece and user will be deleted. Continue?", abort=True)

    db.drop_all()
    click.echo("DELETE Tables dropped.")
    db.create_all()
    click.echo("BUILD  Empty schema created.")

    click.echo("PASS Database reset complete. Run 'python -m flask users create' to add a user.")


@system_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions():
    """Delete expired and revoked session tokens."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Deleted {deleted} session(s).")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--pin', prompt=True, hide_input=True, confirmation_prompt=True, help='PIN (4 to 6 digits)')
@click.option('--name', 'display_name', default='', help='Display name')
@with_appcontext
def create_user_cli(email, pin, display_name):
    """Create a new user. The PIN is hashed with bcrypt."""
    try:
        user = auth_service.create_user(email=email, pin=pin, display_name=display_name)
    except ServiceError as e:
        click.echo(f"FAIL Failed to create user: {e.message}")
        return

    click.echo(f"PASS Created user: {user.display_name} ({user.email})")
    click.echo(f"     User ID: {user.id}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Email':<35} {'Name':<25} {'Last activity'}")
    click.echo("="*90)

    for user in users:
        last_activity = to_utc_z(user.last_activity) or "never"
        click.echo(f"{user.id:<5} {user.email:<35} {user.display_name:<25} {last_activity}")

    click.echo("="*90 + "\n")


@users_group.command('set-pin')
@click.option('--email', prompt=True, help='Email address')
@click.option('--pin', prompt=True, hide_input=True, confirmation_prompt=True, help='New PIN (4 to 6 digits)')
@with_appcontext
def set_pin_cli(email, pin):
    """Reset a forgotten PIN (operator action, no current PIN needed)."""
    try:
        user = auth_service.get_user_by_email(email)
    except ServiceError as e:
        click.echo(f"FAIL {e.message}")
        return

    if not validate_pin_format(pin):
        click.echo("FAIL PIN must contain 4 to 6 digits")
        return

    user.pin_hash = hash_pin(pin)
    db.session.commit()
    append_audit_event(user_id=user.id, action="pin_reset", metadata={"source": "cli"})

    click.echo(f"PASS PIN updated for {user.email}")


@click.group('stock')
def stock_group():
    """Stock inspection commands."""


@stock_group.command('low')
@click.option('--email', prompt=True, help='Owner email address')
@click.option('--threshold', type=int, default=LOW_STOCK_THRESHOLD, show_default=True,
              help='Pieces with quantity below this are listed')
@with_appcontext
def low_stock(email, threshold):
    """List pieces running low for one user."""
    try:
        user = auth_service.get_user_by_email(email)
    except ServiceError as e:
        click.echo(f"FAIL {e.message}")
        return

    pieces = stock_service.list_low_stock(user_id=user.id, threshold=threshold)
    if not pieces:
        click.echo(f"PASS No piece below {threshold}.")
        return

    click.echo(f"WARN {len(pieces)} piece(s) below {threshold}:")
    for piece in pieces:
        model = f" [{piece.phone_model}]" if piece.phone_model else ""
        click.echo(f"  {piece.id:<5} {piece.quantity:>4}  {piece.name}{model}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
