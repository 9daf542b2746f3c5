# Overview: Service-layer operations for permission resolution and security event logging.

"""
Permission Resolution and Security Event Logging

WHY: Every screen and endpoint is guarded by a permission name. The answer
to "may this user do X" must be computed one way only, so admin bypass
cannot drift between call sites.

CAPABILITY MODEL:
- PENDING      permissions still loading; every check is False (fail closed)
- NONE         no authenticated user; every check is False
- FULL_ACCESS  the user holds an admin-designated role; every check is True
- SCOPED       exact-name membership in the union of the user's role permissions

The capability is resolved once per validated session (see
session_service.validate_session) and carried on the SessionContext.

DESIGN PRINCIPLES:
- Fail closed: deny by default, require explicit permission grant
- Log denials only: grants are not logged
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..extensions import db
from ..models import Permission, Role, RolePermission, SecurityEvent, User, UserRole
from ..permissions import PERMISSION_DEFINITIONS, PREDICATE_PERMISSIONS
from erp.time_utils import utcnow


ADMIN_ROLE_EXACT_NAMES = frozenset({"Admin-Role", "admin"})


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""
    pass


class CapabilityKind:
    PENDING = "PENDING"
    NONE = "NONE"
    FULL_ACCESS = "FULL_ACCESS"
    SCOPED = "SCOPED"


@dataclass(frozen=True)
class Capability:
    kind: str
    permissions: frozenset = field(default_factory=frozenset)

    @classmethod
    def pending(cls) -> "Capability":
        return cls(CapabilityKind.PENDING)

    @classmethod
    def none(cls) -> "Capability":
        return cls(CapabilityKind.NONE)

    @classmethod
    def full_access(cls) -> "Capability":
        return cls(CapabilityKind.FULL_ACCESS)

    @classmethod
    def scoped(cls, permission_names) -> "Capability":
        return cls(CapabilityKind.SCOPED, frozenset(permission_names))

    @property
    def is_loading(self) -> bool:
        return self.kind == CapabilityKind.PENDING

    @property
    def is_full_access(self) -> bool:
        return self.kind == CapabilityKind.FULL_ACCESS

    def allows(self, permission_name: str) -> bool:
        if self.kind == CapabilityKind.FULL_ACCESS:
            return True
        if self.kind == CapabilityKind.SCOPED:
            return permission_name in self.permissions
        return False

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "permissions": sorted(self.permissions),
        }


def is_admin_role(role_name: str | None) -> bool:
    """
    Admin predicate for a single role name.

    Matches any role whose name contains "admin" (case-insensitive), which
    covers the exact names "Admin-Role" and "admin" as well.
    """
    if not role_name:
        return False
    return "admin" in role_name.lower() or role_name in ADMIN_ROLE_EXACT_NAMES


def has_admin_role(role_names) -> bool:
    return any(is_admin_role(name) for name in role_names or ())


def capability_for(role_names, permission_names) -> Capability:
    """Pure resolution step, given what the user's roles hold."""
    if has_admin_role(role_names):
        return Capability.full_access()
    return Capability.scoped(permission_names or ())


def has_permission(capability: Capability | None, permission_name: str) -> bool:
    if capability is None:
        return False
    return capability.allows(permission_name)


class PermissionChecker:
    """
    Read-only permission view handed to routes and serializers.

        checker = PermissionChecker(ctx.capability)
        checker.has("View PO")
        checker.can_view_po            # same check, by predicate name
        checker.predicates()           # {"can_view_po": True, ...}
    """

    def __init__(self, capability: Capability | None):
        self.capability = capability or Capability.none()

    @property
    def is_loading(self) -> bool:
        return self.capability.is_loading

    def has(self, permission_name: str) -> bool:
        return has_permission(self.capability, permission_name)

    def predicates(self) -> dict[str, bool]:
        return {pred: self.has(name) for pred, name in PREDICATE_PERMISSIONS.items()}

    def __getattr__(self, attr: str):
        if attr.startswith("can_") and attr in PREDICATE_PERMISSIONS:
            return self.has(PREDICATE_PERMISSIONS[attr])
        raise AttributeError(attr)


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    org_id: int | None = None,
) -> SecurityEvent:
    """
    Log security event to audit trail with tenant context.

    Committed immediately so the record survives a rollback of the request
    that triggered it.

    event_type examples:
    - LOGIN_FAILED
    - LOGOUT
    - FORCED_LOGOUT
    - PERMISSION_DENIED
    - ROLE_DENIED
    - ROLE_ASSIGNED
    - CROSS_TENANT_ACCESS_DENIED
    """
    event = SecurityEvent(
        user_id=user_id,
        org_id=org_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return event


def get_user_role_names(user_id: int) -> list[str]:
    rows = (
        db.session.query(Role.name)
        .join(UserRole, UserRole.role_id == Role.id)
        .filter(UserRole.user_id == user_id)
        .order_by(Role.name)
        .all()
    )
    return [r.name for r in rows]


def get_user_permissions(user_id: int) -> set[str]:
    """
    Union of permission names over all of the user's roles.

    This is the raw role grant; it does not apply the admin bypass.
    """
    rows = (
        db.session.query(Permission.name)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .join(UserRole, UserRole.role_id == RolePermission.role_id)
        .filter(UserRole.user_id == user_id)
        .distinct()
        .all()
    )
    return {r.name for r in rows}


def resolve_capability(user: User | None) -> Capability:
    """
    Resolve what a user may do.

    1. no user -> NONE
    2. any admin-designated role -> FULL_ACCESS
    3. otherwise SCOPED over the role permission union
    """
    if user is None:
        return Capability.none()
    role_names = get_user_role_names(user.id)
    if has_admin_role(role_names):
        return Capability.full_access()
    return Capability.scoped(get_user_permissions(user.id))


def user_has_permission(user_id: int, permission_name: str) -> bool:
    user = db.session.get(User, user_id)
    return resolve_capability(user).allows(permission_name)


def require_permission(
    user_id: int,
    permission_name: str,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    org_id: int | None = None,
    capability: Capability | None = None,
) -> None:
    """
    Require the user to hold a permission; logs and raises on denial.

    Pass the session's capability when it is already resolved to avoid
    recomputing it.
    """
    if capability is None:
        capability = resolve_capability(db.session.get(User, user_id))

    if not capability.allows(permission_name):
        log_security_event(
            user_id=user_id,
            event_type="PERMISSION_DENIED",
            success=False,
            resource=resource,
            action=permission_name,
            reason=f"Missing permission: {permission_name}",
            ip_address=ip_address,
            user_agent=user_agent,
            org_id=org_id,
        )
        raise PermissionDeniedError(f"User lacks permission: {permission_name}")


def initialize_permissions() -> int:
    """
    Seed the permission catalog.

    Idempotent: only missing names are inserted. Returns number created.
    """
    existing = {name for (name,) in db.session.query(Permission.name).all()}
    created = 0
    for name, module, component, description in PERMISSION_DEFINITIONS:
        if name in existing:
            continue
        db.session.add(Permission(name=name, module=module, component=component, description=description))
        created += 1
    db.session.flush()
    return created


def list_permissions(module: str | None = None) -> list[Permission]:
    query = db.session.query(Permission)
    if module:
        query = query.filter(Permission.module == module)
    return query.order_by(Permission.module, Permission.component, Permission.name).all()


def get_permissions_by_names(names) -> list[Permission]:
    """Resolve catalog entries by name; unknown names raise ValueError."""
    names = list(dict.fromkeys(names or []))
    if not names:
        return []
    found = db.session.query(Permission).filter(Permission.name.in_(names)).all()
    missing = set(names) - {p.name for p in found}
    if missing:
        raise ValueError(f"Unknown permission(s): {', '.join(sorted(missing))}")
    return found


def grant_permission_to_role(role_id: int, permission_name: str) -> RolePermission:
    """Grant permission to role (idempotent)."""
    permission = db.session.query(Permission).filter_by(name=permission_name).first()
    if not permission:
        raise ValueError(f"Permission {permission_name} not found")

    existing = db.session.query(RolePermission).filter_by(role_id=role_id, permission_id=permission.id).first()
    if existing:
        return existing

    role_permission = RolePermission(role_id=role_id, permission_id=permission.id)
    db.session.add(role_permission)
    db.session.flush()
    return role_permission


def revoke_permission_from_role(role_id: int, permission_name: str) -> bool:
    permission = db.session.query(Permission).filter_by(name=permission_name).first()
    if not permission:
        return False
    deleted = db.session.query(RolePermission).filter_by(
        role_id=role_id, permission_id=permission.id
    ).delete()
    db.session.flush()
    return bool(deleted)
