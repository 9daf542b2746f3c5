# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/erp/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create missing tables and seed the permission catalog (idempotent).
# - python -m flask system bootstrap-admin [--password "..."]
#   Ensure the ADMN organization, Admin-Role (all permissions) and the admin user exist.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organization management (MULTI-TENANT):
# - python -m flask orgs list [--status active]
#   List all organizations.
# - python -m flask orgs create --name "Acme Traders" --code "ACME" [--type Supplier]
#   Create a new organization (tenant).
#
# Permission inspection/repair:
# - python -m flask perms list [--module Finance]
#   List catalog permissions.
# - python -m flask perms check adminuser@admn.com "Post Journal"
#   Check whether a user has a permission (admin bypass applied).
# - python -m flask perms grant Accountant "Post Journal" --org-code ACME
#   Grant a permission to a role.
# - python -m flask perms revoke Accountant "Post Journal" --org-code ACME
#   Revoke a permission from a role.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions
#   Delete revoked and expired session tokens.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Role, User, SessionToken, Division
from .services import auth_service, organization_service, permission_service
from .services.concurrency import commit_with_retry
from .time_utils import utcnow
from .validation import ValidationError, ConflictError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create tables and seed the permission catalog.

    Safe to run repeatedly: existing permissions are left alone.
    """
    click.echo("START Initializing ERP database...")
    db.create_all()
    created = permission_service.initialize_permissions()
    commit_with_retry()
    total = len(permission_service.list_permissions())
    click.echo(f"PASS Permission catalog: {created} created, {total} total")
    click.echo("Next: python -m flask system bootstrap-admin")


@system_group.command('bootstrap-admin')
@click.option('--password', default=None, help='Admin password (defaults to ADMIN_BOOTSTRAP_PASSWORD)')
@with_appcontext
def bootstrap_admin_cli(password):
    """
    Ensure the administrative tenant exists.

    SECURITY: Change the default password immediately in production!
    """
    try:
        result = auth_service.bootstrap_admin(password)
    except auth_service.PasswordValidationError as e:
        click.echo(f"FAIL {e}")
        return

    for record, was_created in result["created"].items():
        state = "created" if was_created else "exists"
        click.echo(f"PASS {record}: {state}")
    click.echo(
        f"   organization_id={result['organization_id']} "
        f"role_id={result['role_id']} user_id={result['user_id']}"
    )


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


# =============================================================================
# ORGANIZATIONS
# =============================================================================

@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@click.option('--status', default=None, help='active | inactive')
@with_appcontext
def list_orgs(status):
    """List all organizations."""
    orgs = organization_service.list_organizations(status=status)

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Code':<6} {'Name':<30} {'Type':<20} {'Status':<9} {'Divs':<5} {'Users'}")
    click.echo("="*80)

    for org in orgs:
        division_count = db.session.query(Division).filter_by(org_id=org.id).count()
        user_count = db.session.query(User).filter_by(org_id=org.id).count()
        click.echo(
            f"{org.id:<5} {org.code:<6} {org.name[:30]:<30} {org.org_type:<20} "
            f"{org.status:<9} {division_count:<5} {user_count}"
        )

    click.echo("="*80 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='4-character code (unique)')
@click.option('--type', 'org_type', default='Retailer', help='Supplier, Retailer, ...')
@with_appcontext
def create_org_cli(name, code, org_type):
    """Create a new organization (tenant)."""
    try:
        org = organization_service.create_organization(
            {"code": code, "name": name, "type": org_type},
            actor="cli",
        )
        commit_with_retry()
    except (ValidationError, ConflictError) as e:
        db.session.rollback()
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


# =============================================================================
# PERMISSIONS
# =============================================================================

@click.group('perms')
def perms_group():
    """Permission inspection and repair commands."""


def _find_role(role_name: str, org_code: str | None) -> Role | None:
    query = db.session.query(Role).filter(Role.name == role_name)
    if org_code:
        org = organization_service.get_organization_by_code(org_code.upper())
        if not org:
            return None
        query = query.filter(Role.org_id == org.id)
    roles = query.all()
    if len(roles) > 1:
        raise click.UsageError(f"Role '{role_name}' exists in several organizations; pass --org-code")
    return roles[0] if roles else None


@perms_group.command('list')
@click.option('--module', default=None, help='Filter by module (Admin, Finance, ...)')
@with_appcontext
def list_perms(module):
    """List catalog permissions."""
    permissions = permission_service.list_permissions(module)
    if not permissions:
        click.echo("No permissions found. Run 'python -m flask system init'.")
        return

    current = None
    for perm in permissions:
        if perm.module != current:
            current = perm.module
            click.echo(f"\n{current}")
        click.echo(f"  {perm.name:<32} {perm.component}")
    click.echo("")


@perms_group.command('check')
@click.argument('email')
@click.argument('permission_name')
@with_appcontext
def check_perm(email, permission_name):
    """Check whether a user has a permission."""
    user = auth_service.get_user_by_email(email)
    if not user:
        click.echo(f"FAIL User {email} not found")
        return

    capability = permission_service.resolve_capability(user)
    if capability.allows(permission_name):
        via = "full access" if capability.is_full_access else "role grant"
        click.echo(f"PASS {email} has {permission_name} ({via})")
    else:
        click.echo(f"FAIL {email} does not have {permission_name}")


@perms_group.command('grant')
@click.argument('role_name')
@click.argument('permission_name')
@click.option('--org-code', default=None, help='Organization owning the role')
@with_appcontext
def grant_perm(role_name, permission_name, org_code):
    """Grant a permission to a role."""
    role = _find_role(role_name, org_code)
    if not role:
        click.echo(f"FAIL Role {role_name} not found")
        return

    try:
        permission_service.grant_permission_to_role(role.id, permission_name)
        commit_with_retry()
    except ValueError as e:
        db.session.rollback()
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Granted {permission_name} to {role.name}")


@perms_group.command('revoke')
@click.argument('role_name')
@click.argument('permission_name')
@click.option('--org-code', default=None, help='Organization owning the role')
@with_appcontext
def revoke_perm(role_name, permission_name, org_code):
    """Revoke a permission from a role."""
    role = _find_role(role_name, org_code)
    if not role:
        click.echo(f"FAIL Role {role_name} not found")
        return

    if permission_service.revoke_permission_from_role(role.id, permission_name):
        commit_with_retry()
        click.echo(f"PASS Revoked {permission_name} from {role.name}")
    else:
        click.echo(f"WARN {role.name} did not have {permission_name}")


# =============================================================================
# MAINTENANCE
# =============================================================================

@click.group('maintenance')
def maintenance_group():
    """Data retention and cleanup commands."""


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions():
    """Delete revoked and expired session tokens."""
    deleted = db.session.query(SessionToken).filter(
        db.or_(SessionToken.is_revoked.is_(True), SessionToken.expires_at < utcnow())
    ).delete(synchronize_session=False)
    commit_with_retry()
    click.echo(f"PASS Deleted {deleted} session tokens")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(maintenance_group)
