# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/inventory_audit/cli.py
# Commands Legend (run from the repository root):
# Prereqs:
# - Activate your virtualenv and `pip install -e .`
# - Set FLASK_APP (PowerShell: $env:FLASK_APP="inventory_audit:create_app").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-name "Admin"] [--admin-mobile 01700000000]
#   Idempotent bootstrap: creates tables, permissions, default roles and an admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with roles and active status.
# - python -m flask users create --name "Jane" --mobile 01711111111 --role AUDITOR
#   Create a user (prompts if options are omitted).
# - python -m flask users token 01711111111
#   Print a bearer token for the user.
#
# Permission inspection:
# - python -m flask perms list [--role AUDITOR]
#   List permissions (optionally only those held by a role).
# - python -m flask perms check 01711111111 audit update
#   Check whether a user holds a permission.
#
# Maintenance:
# - python -m flask maintenance reprice [--audit-id 3] [--only-unpriced]
#   Re-resolve item detail prices of in-progress audits.

import click
from flask.cli import with_appcontext

from .errors import AppError
from .extensions import db
from .models import Permission
from .services import auth_service, maintenance_service, permission_service, user_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-name', default='Administrator', help='Name of the bootstrap admin user')
@click.option('--admin-mobile', default='01700000000', help='Mobile number of the bootstrap admin user')
@with_appcontext
def init_system(admin_name, admin_mobile):
    """
    Initialize the system: schema, permissions, default roles and an admin user.

    Safe to run repeatedly.
    """
    click.echo("START Initializing inventory audit system...")

    db.create_all()
    click.echo("PASS Schema ready")

    perm_count = permission_service.initialize_permissions()
    link_count = permission_service.create_default_roles()
    click.echo(f"PASS Created {perm_count} permissions, {link_count} role assignments")

    try:
        admin = user_service.get_user_by_mobile(admin_mobile)
        click.echo(f"WARN  User with mobile {admin_mobile} already exists, skipping...")
    except AppError:
        admin_role = user_service.get_role_by_name("ADMIN")
        admin = user_service.create_user(
            name=admin_name,
            mobile=admin_mobile,
            role_id=admin_role.id,
            is_superuser=True,
        )
        click.echo(f"PASS Created admin user: {admin.name} ({admin.mobile})")

    click.echo("\nDONE System initialized")
    click.echo(f"Admin token: {auth_service.issue_token(admin)}")


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
@click.option('--name', prompt=True)
@click.option('--mobile', prompt=True)
@click.option('--role', default='VIEWER', show_default=True, help='Role name')
@with_appcontext
def create_user_cli(name, mobile, role):
    """Create a user with a role."""
    try:
        role_obj = user_service.get_role_by_name(role)
        user = user_service.create_user(name=name, mobile=mobile, role_id=role_obj.id)
    except AppError as e:
        click.echo(f"FAIL Failed to create user: {e.message}")
        return
    click.echo(f"PASS Created user: {user.name} ({user.mobile}) with role '{role}'")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with roles and active status."""
    users = user_service.list_users()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 72)
    click.echo(f"{'ID':<5} {'Name':<24} {'Mobile':<16} {'Role':<10} {'Active':<7} {'Super'}")
    click.echo("=" * 72)
    for u in users:
        click.echo(
            f"{u['id']:<5} {u['name']:<24} {u['mobile']:<16} {u['role'] or '-':<10} "
            f"{'yes' if u['is_active'] else 'no':<7} {'yes' if u['is_superuser'] else 'no'}"
        )
    click.echo("=" * 72 + "\n")


@users_group.command('token')
@click.argument('mobile')
@with_appcontext
def issue_token_cli(mobile):
    """Print a bearer token for the user with this mobile number."""
    try:
        user = user_service.get_user_by_mobile(mobile)
        click.echo(auth_service.issue_token(user))
    except AppError as e:
        click.echo(f"FAIL {e.message}")


@click.group('perms')
def perms_group():
    """Permission inspection commands."""


@perms_group.command('list')
@click.option('--role', default=None, help='Only permissions held by this role')
@with_appcontext
def list_permissions(role):
    """List permissions."""
    if role:
        try:
            codes = permission_service.get_role_permissions(role)
        except AppError as e:
            click.echo(f"FAIL {e.message}")
            return
        click.echo(f"Role '{role}' holds {len(codes)} permission(s):")
        for code in codes:
            click.echo(f"  {code}")
        return

    permissions = db.session.query(Permission).order_by(Permission.resource, Permission.action).all()
    for p in permissions:
        click.echo(f"  {p.name:<28} {p.description or ''}")
    click.echo(f"\nTotal permissions: {len(permissions)}")


@perms_group.command('check')
@click.argument('mobile')
@click.argument('resource')
@click.argument('action')
@with_appcontext
def check_permission_cli(mobile, resource, action):
    """Check if a user holds (resource, action)."""
    try:
        user = user_service.get_user_by_mobile(mobile)
    except AppError:
        click.echo(f"FAIL User '{mobile}' not found")
        return

    code = f"{resource}:{action}"
    if permission_service.has_permission(user, resource, action):
        click.echo(f"PASS User '{mobile}' HAS permission '{code}'")
    else:
        click.echo(f"FAIL User '{mobile}' DOES NOT HAVE permission '{code}'")

    click.echo(f"\nUser role: {user.role.name if user.role else '-'}")
    click.echo(f"Superuser: {'yes' if user.is_superuser else 'no'}")
    click.echo(f"Total permissions: {len(permission_service.get_user_permissions(user))}")


@click.group('maintenance')
def maintenance_group():
    """Data repair commands."""


@maintenance_group.command('reprice')
@click.option('--audit-id', type=int, default=None, help='Limit to one audit')
@click.option('--only-unpriced', is_flag=True, help='Only rows whose total price is empty or zero')
@with_appcontext
def reprice_cli(audit_id, only_unpriced):
    """Re-resolve item detail unit prices and recompute totals."""
    try:
        result = maintenance_service.reprice_item_details(audit_id=audit_id, only_unpriced=only_unpriced)
    except AppError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS Updated {result['updated']} item detail(s), skipped {result['skipped']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(maintenance_group)
