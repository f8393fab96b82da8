# Overview: Flask CLI command groups for bootstrap and ledger maintenance.

# backend/shopledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent; use "flask db upgrade" for migrations).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Staff:
# - python -m flask users create-technician --username sam --full-name "Sam Lee"
#   Create a technician that repair cases can be assigned to.
# - python -m flask users list
#   List staff records with role and active status.
#
# Ledger maintenance:
# - python -m flask ledger check
#   Verify balance identity and activity totals on every active purchase and sale.
#   Exits with status 1 when problems are found.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .models.auth import ROLE_TECHNICIAN, USER_ROLES
from .services.ledger_service import check_all_ledgers
from .services.user_service import create_user
from .validation import ConflictError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    click.echo("BUILD  Creating missing tables...")
    db.create_all()
    click.echo("PASS Database ready.")


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

    click.echo("PASS Database reset complete.")


@click.group('users')
def users_group():
    """Staff records (technicians, cashiers)."""


@users_group.command('create-technician')
@click.option('--username', prompt=True, help='Username')
@click.option('--full-name', prompt=True, help='Display name')
@click.option('--phone', default=None, help='Phone number')
@with_appcontext
def create_technician(username, full_name, phone):
    """Create a technician that repair cases can reference."""
    try:
        user = create_user(
            username=username,
            full_name=full_name,
            role=ROLE_TECHNICIAN,
            phone_number=phone,
        )
        db.session.commit()
    except (ValidationError, ConflictError) as e:
        db.session.rollback()
        click.echo(f"FAIL Failed to create technician: {str(e)}")
        raise SystemExit(1)

    click.echo(f"PASS Created technician: {user.username} (ID: {user.id})")


@users_group.command('list')
@click.option('--role', type=click.Choice(USER_ROLES), default=None, help='Filter by role')
@with_appcontext
def list_users(role):
    """List staff records."""
    query = db.session.query(User)
    if role:
        query = query.filter_by(role=role)
    users = query.order_by(User.id).all()

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Full name':<30} {'Role':<14} {'Active'}")
    click.echo("="*80)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.full_name:<30} {user.role:<14} {active_str}")
    click.echo("="*80 + "\n")


@click.group('ledger')
def ledger_group():
    """Ledger consistency checks."""


@ledger_group.command('check')
@with_appcontext
def check_ledgers():
    """
    Verify every active purchase and sale.

    Checks total = paid_now + remaining, remaining >= 0, and that the active
    payment activities add up to paid_now without exceeding the total.
    """
    problems = check_all_ledgers()
    if not problems:
        click.echo("PASS All ledgers consistent.")
        return

    for problem in problems:
        click.echo(f"FAIL {problem}")
    click.echo(f"\n{len(problems)} problem(s) found.")
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(ledger_group)
