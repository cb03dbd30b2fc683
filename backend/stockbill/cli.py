# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/stockbill/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--branch-id main --branch-name "Main Branch"]
#   Idempotent bootstrap: tables, default branch, invoice sequence, admin + branch user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list [--branch-id main]
# - python -m flask users create --email clerk@stockbill.local --name Clerk --password "Password123!" --role user --branch-id main
#
# Permission inspection:
# - python -m flask perms list [--category BILLING] [--role user]
# - python -m flask perms check admin@stockbill.local billing.create
#
# Security audit:
# - python -m flask security events [--user-id 3] [--limit 20]

import click
from flask.cli import with_appcontext

from .errors import AppError
from .extensions import db
from .models import Branch, User
from .permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    PERMISSION_DEFINITIONS,
    ROLE_NAMES,
    get_permissions_by_category,
    has_permission,
)
from .services import auth_service, permission_service
from .services.document_service import INVOICE_DOCUMENT_TYPE, ensure_sequence

DEFAULT_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--branch-id', default='main', show_default=True, help='Default branch id')
@click.option('--branch-name', default='Main Branch', show_default=True, help='Default branch name')
@click.option('--password', default=DEFAULT_PASSWORD, show_default=True, help='Password for seeded users')
@with_appcontext
def init_system(branch_id, branch_name, password):
    """
    Initialize StockBill: schema, default branch, invoice numbering, users.

    Creates:
    - Default branch
    - Users: admin@stockbill.local (admin), user@stockbill.local (user)

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing StockBill...")
    db.create_all()

    branch = db.session.get(Branch, branch_id)
    if branch is None:
        branch = Branch(id=branch_id, name=branch_name, is_active=True)
        db.session.add(branch)
        db.session.commit()
        click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id})")
    else:
        click.echo(f"PASS Using existing branch: {branch.name} (ID: {branch.id})")

    ensure_sequence(INVOICE_DOCUMENT_TYPE)
    click.echo("PASS Invoice numbering ready")

    click.echo("\nUSERS Creating default users...")
    seeds = [
        ("admin@stockbill.local", "Administrator", "admin"),
        ("user@stockbill.local", "Counter User", "user"),
    ]
    for email, name, role in seeds:
        if db.session.query(User).filter_by(email=email).first():
            click.echo(f"SKIP {email} already exists")
            continue
        try:
            auth_service.create_user(
                email=email,
                name=name,
                password=password,
                role=role,
                branch_id=branch.id,
            )
        except AppError as e:
            click.echo(f"FAIL {email}: {e.message}")
            continue
        click.echo(f"PASS Created {role}: {email}")

    click.echo("\nDONE System initialized.")


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
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', prompt=True, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLE_NAMES)), prompt=True, help='Role')
@click.option('--branch-id', default=None, help='Branch id (required for non-admin roles)')
@with_appcontext
def create_user_cli(email, name, password, role, branch_id):
    """Create a user with the role's default permissions."""
    try:
        user = auth_service.create_user(
            email=email,
            name=name,
            password=password,
            role=role,
            branch_id=branch_id,
        )
    except AppError as e:
        click.echo(f"FAIL Error: {e.message}")
        raise SystemExit(1)

    click.echo(f"PASS Created user {user.email} (ID: {user.id}, role: {user.role}, branch: {user.branch_id})")


@users_group.command('list')
@click.option('--branch-id', default=None, help='Filter by branch id')
@with_appcontext
def list_users_cli(branch_id):
    """List users with role, branch and active status."""
    query = db.session.query(User).order_by(User.id.asc())
    if branch_id:
        query = query.filter(User.branch_id == branch_id)
    users = query.all()

    click.echo(f"\n{'ID':<5} {'Email':<32} {'Role':<10} {'Branch':<14} {'Active'}")
    click.echo("-" * 70)
    for user in users:
        active = "yes" if user.is_active else "no"
        click.echo(f"{user.id:<5} {user.email:<32} {user.role:<10} {str(user.branch_id):<14} {active}")
    click.echo(f"\n Total: {len(users)} users\n")


@click.group('perms')
def perms_group():
    """Permission inspection commands."""


@perms_group.command('list')
@click.option('--role', type=click.Choice(list(ROLE_NAMES)), help='Show default grants for a role')
@click.option('--category', help='Filter by category')
@with_appcontext
def list_permissions_cli(role, category):
    """List permission codes, optionally for a role or a category."""
    if role:
        click.echo(f"\nDefault permissions for role: {role.upper()}")
        click.echo("-" * 60)
        for code in DEFAULT_ROLE_PERMISSIONS.get(role, []):
            click.echo(f"  {code}")
        return

    perms = get_permissions_by_category(category) if category else PERMISSION_DEFINITIONS
    click.echo(f"\n{'Code':<20} {'Name':<28} {'Category'}")
    click.echo("-" * 70)
    for code, name, _description, perm_category in perms:
        click.echo(f"{code:<20} {name:<28} {perm_category}")
    click.echo(f"\n Total: {len(perms)} permissions\n")


@perms_group.command('check')
@click.argument('email')
@click.argument('permission_code')
@with_appcontext
def check_permission_cli(email, permission_code):
    """Check if a user has a specific permission."""
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        click.echo(f"FAIL User '{email}' not found")
        return

    identity = auth_service.identity_for_user(user)
    if has_permission(identity, permission_code):
        click.echo(f"PASS User '{user.email}' HAS permission '{permission_code}'")
    else:
        click.echo(f"FAIL User '{user.email}' DOES NOT HAVE permission '{permission_code}'")

    click.echo(f"\nRole: {identity.role}")
    click.echo(f"Granted: {', '.join(sorted(identity.permissions)) or '(none)'}")


@click.group('security')
def security_group():
    """Security audit commands."""


@security_group.command('events')
@click.option('--user-id', default=None, help='Filter by user id')
@click.option('--event-type', default=None, help='Filter by event type')
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def list_security_events_cli(user_id, event_type, limit):
    """Show the most recent security events."""
    events = permission_service.list_security_events(user_id=user_id, event_type=event_type, limit=limit)
    for event in events:
        data = event.to_dict()
        click.echo(
            f"{data['occurred_at']}  {data['event_type']:<22} user={data['user_id']} "
            f"{data['action'] or ''} {data['resource'] or ''}  {data['reason'] or ''}"
        )
    click.echo(f"\n Total: {len(events)} events\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(security_group)
