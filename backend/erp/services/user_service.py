# Overview: User administration; create with roles, role assignment, activation.

from __future__ import annotations

from ..extensions import db
from ..models import Role, User, UserRole
from ..validation import ConflictError
from . import auth_service, session_service
from .permission_service import is_admin_role
from .session_service import SessionContext
from .tenant_service import TenantAccessError


class UserAdminError(Exception):
    """Raised when a user change is not allowed."""
    pass


def _target_org(ctx: SessionContext, org_id: int | None) -> int | None:
    if ctx.capability.is_full_access:
        return org_id if org_id is not None else ctx.org_id
    if org_id is not None and org_id != ctx.org_id:
        raise TenantAccessError("Organization not found")
    return ctx.org_id


def get_user(ctx: SessionContext, user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise TenantAccessError("User not found")
    if not ctx.capability.is_full_access and user.org_id != ctx.org_id:
        raise TenantAccessError("User not found")
    return user


def _assignable_role(user: User, role_id: int) -> Role:
    """A role can be assigned when it is global or belongs to the user's organization."""
    role = db.session.get(Role, role_id)
    if not role:
        raise UserAdminError(f"Role {role_id} not found")
    if role.org_id is not None and role.org_id != user.org_id:
        raise UserAdminError(f"Role {role.name} belongs to another organization")
    return role


def create_user_with_roles(ctx: SessionContext, data: dict) -> User:
    """
    Create a user and attach roles.

    Flushed, not committed; the route runs this inside atomic() so a bad role
    id leaves no half-created user behind.
    """
    user = auth_service.sign_up(
        email=data.get("email"),
        password=data.get("password"),
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
        designation=data.get("designation"),
        org_id=_target_org(ctx, data.get("organization_id")),
    )
    for role_id in data.get("role_ids") or []:
        assign_role(ctx, user.id, role_id)
    return user


def update_user(ctx: SessionContext, user_id: int, data: dict) -> User:
    user = get_user(ctx, user_id)
    for key in ("first_name", "last_name", "designation"):
        if key in data:
            setattr(user, key, data.get(key))
    if "password" in data and data["password"]:
        user.password_hash = auth_service.hash_password(data["password"])
    db.session.flush()
    return user


def assign_role(ctx: SessionContext, user_id: int, role_id: int) -> UserRole:
    user = get_user(ctx, user_id)
    role = _assignable_role(user, role_id)
    if is_admin_role(role.name) and not ctx.capability.is_full_access:
        raise UserAdminError("Only administrators can grant the admin role")
    if db.session.query(UserRole.id).filter_by(user_id=user.id, role_id=role.id).first():
        raise ConflictError(f"User already has role {role.name}")
    link = UserRole(user_id=user.id, role_id=role.id)
    db.session.add(link)
    db.session.flush()
    return link


def remove_role(ctx: SessionContext, user_id: int, role_id: int) -> bool:
    user = get_user(ctx, user_id)
    deleted = db.session.query(UserRole).filter_by(user_id=user.id, role_id=role_id).delete()
    db.session.flush()
    return bool(deleted)


def set_user_active(ctx: SessionContext, user_id: int, is_active: bool) -> User:
    """Deactivating a user also revokes every open session."""
    user = get_user(ctx, user_id)
    if ctx.user is not None and user.id == ctx.user.id and not is_active:
        raise UserAdminError("You cannot deactivate your own account")
    user.is_active = bool(is_active)
    db.session.flush()
    if not user.is_active:
        session_service.revoke_all_user_sessions(user.id, reason="User deactivated")
    return user


def list_users(ctx: SessionContext, *, include_inactive: bool = True) -> list[User]:
    query = db.session.query(User)
    if not ctx.capability.is_full_access:
        if ctx.org_id is None:
            return []
        query = query.filter(User.org_id == ctx.org_id)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    return query.order_by(User.email).all()
