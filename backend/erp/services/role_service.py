# Overview: Role administration; roles with their permission sets.

"""
Role service.

MULTI-TENANT RBAC:
- org_id NULL: global role, visible to every tenant, managed by admins only
- org_id set: role owned by that organization

Creating a role and linking its permissions is one transaction: an unknown
permission name leaves nothing behind.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Role, RolePermission, UserRole
from ..validation import ConflictError, ValidationError, require_length
from .permission_service import get_permissions_by_names, is_admin_role
from .session_service import SessionContext
from .tenant_service import TenantAccessError


class RoleError(Exception):
    """Raised when a role change is not allowed."""
    pass


def _scope_of(ctx: SessionContext, org_id: int | None) -> int | None:
    """Non-admin callers can only manage roles of their own organization."""
    if ctx.capability.is_full_access:
        return org_id
    if org_id is not None and org_id != ctx.org_id:
        raise TenantAccessError("Role not found")
    if ctx.org_id is None:
        raise TenantAccessError("No organization is associated with this user")
    return ctx.org_id


def _require_grantable_name(ctx: SessionContext, name: str) -> None:
    """A role name that grants full access is reserved for administrators."""
    if is_admin_role(name) and not ctx.capability.is_full_access:
        raise RoleError("Only administrators can create or rename admin roles")


def _resolve_permissions(names) -> list:
    try:
        return get_permissions_by_names(names)
    except ValueError as exc:
        raise ValidationError(str(exc), details={"permissions": str(exc)})


def create_role(
    ctx: SessionContext,
    *,
    name: str,
    description: str | None = None,
    org_id: int | None = None,
    permission_names=None,
) -> Role:
    """
    Create a role and its permission links. Flushed, not committed; the
    caller wraps it in atomic() so both parts land together.
    """
    scope = _scope_of(ctx, org_id)
    name = require_length("name", name, min_len=1, max_len=64)
    _require_grantable_name(ctx, name)

    existing = db.session.query(Role.id).filter(Role.name == name)
    existing = existing.filter(Role.org_id.is_(None) if scope is None else Role.org_id == scope)
    if existing.first():
        raise ConflictError(f"Role {name} already exists")

    permissions = _resolve_permissions(permission_names)

    role = Role(org_id=scope, name=name, description=description, created_by=ctx.actor)
    db.session.add(role)
    db.session.flush()
    for permission in permissions:
        db.session.add(RolePermission(role_id=role.id, permission_id=permission.id))
    db.session.flush()
    return role


def get_role(ctx: SessionContext, role_id: int) -> Role:
    role = db.session.get(Role, role_id)
    if not role:
        raise TenantAccessError("Role not found")
    if role.org_id is not None and role.org_id != ctx.org_id and not ctx.capability.is_full_access:
        raise TenantAccessError("Role not found")
    return role


def _require_manageable(ctx: SessionContext, role: Role) -> None:
    if role.org_id is None and not ctx.capability.is_full_access:
        raise RoleError("Global roles can only be changed by an administrator")


def update_role(ctx: SessionContext, role_id: int, data: dict) -> Role:
    role = get_role(ctx, role_id)
    _require_manageable(ctx, role)
    if "name" in data:
        name = require_length("name", data.get("name"), min_len=1, max_len=64)
        _require_grantable_name(ctx, name)
        clash = db.session.query(Role.id).filter(Role.name == name, Role.id != role.id)
        clash = clash.filter(Role.org_id.is_(None) if role.org_id is None else Role.org_id == role.org_id)
        if clash.first():
            raise ConflictError(f"Role {name} already exists")
        role.name = name
    if "description" in data:
        role.description = data.get("description")
    if "permissions" in data:
        update_role_permissions(ctx, role.id, data.get("permissions"))
    db.session.flush()
    return role


def update_role_permissions(ctx: SessionContext, role_id: int, permission_names) -> Role:
    """Replace the role's permission set."""
    role = get_role(ctx, role_id)
    _require_manageable(ctx, role)
    permissions = _resolve_permissions(permission_names)

    db.session.query(RolePermission).filter(RolePermission.role_id == role.id).delete(synchronize_session=False)
    for permission in permissions:
        db.session.add(RolePermission(role_id=role.id, permission_id=permission.id))
    db.session.flush()
    db.session.expire(role, ["role_permissions"])
    return role


def delete_role(ctx: SessionContext, role_id: int) -> None:
    role = get_role(ctx, role_id)
    _require_manageable(ctx, role)
    assigned = db.session.query(UserRole.id).filter(UserRole.role_id == role.id).count()
    if assigned:
        raise RoleError(f"Role {role.name} is assigned to {assigned} user(s) and cannot be deleted")
    db.session.delete(role)
    db.session.flush()


def list_roles(ctx: SessionContext) -> list[Role]:
    """Global roles plus the caller's organization roles (admins see every role)."""
    query = db.session.query(Role)
    if not ctx.capability.is_full_access:
        if ctx.org_id is None:
            query = query.filter(Role.org_id.is_(None))
        else:
            query = query.filter(db.or_(Role.org_id.is_(None), Role.org_id == ctx.org_id))
    return query.order_by(Role.org_id.is_(None).desc(), Role.name).all()
