# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

# backend/erp/routes/admin.py
"""
Admin routes for user, role, permission and organization management.

Provides endpoints for:
- User management (list, create with roles, update, activate/deactivate)
- Role management (list, create with permissions, update, delete)
- Role assignment (assign, remove)
- Permission catalog (list)
- Organizations (list, create, update, status, search)

MULTI-TENANT: callers holding an admin-designated role manage every
tenant; everyone else only sees and changes their own organization.
"""

from flask import Blueprint, request, jsonify, g

from ..errors import json_error
from ..services import organization_service, permission_service, role_service, user_service
from ..services.concurrency import atomic, commit_with_retry
from ..services.tenant_service import TenantAccessError
from ..decorators import require_auth, require_permission

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _ensure_own_organization(org_id: int) -> None:
    ctx = g.session_context
    if not ctx.capability.is_full_access and org_id != ctx.org_id:
        raise TenantAccessError("Organization not found")


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@admin_bp.get("/users")
@require_auth
@require_permission("view_users")
def list_users():
    """
    List users with their roles.

    Query params:
    - include_inactive: bool (default true)
    """
    include_inactive = request.args.get("include_inactive", "true").lower() == "true"
    users = user_service.list_users(g.session_context, include_inactive=include_inactive)
    return jsonify({"users": [u.to_dict() for u in users], "count": len(users)})


@admin_bp.get("/users/<int:user_id>")
@require_auth
@require_permission("view_users")
def get_user(user_id: int):
    try:
        return jsonify({"user": user_service.get_user(g.session_context, user_id).to_dict()})
    except Exception as exc:
        return json_error(exc)


@admin_bp.post("/users")
@require_auth
@require_permission("create_users")
def create_user():
    """
    Create a user and attach roles in one transaction.

    Request body:
    {
        "email": str,
        "password": str,
        "first_name": str, "last_name": str, "designation": str (optional),
        "organization_id": int (optional, admins only; defaults to caller's org),
        "role_ids": [int]
    }
    """
    data = request.get_json() or {}
    try:
        with atomic():
            user = user_service.create_user_with_roles(g.session_context, data)
        return jsonify({"user": user.to_dict()}), 201
    except Exception as exc:
        return json_error(exc)


@admin_bp.patch("/users/<int:user_id>")
@require_auth
@require_permission("edit_users")
def update_user(user_id: int):
    data = request.get_json() or {}
    try:
        user = user_service.update_user(g.session_context, user_id, data)
        commit_with_retry()
        return jsonify({"user": user.to_dict()})
    except Exception as exc:
        return json_error(exc)


@admin_bp.post("/users/<int:user_id>/activate")
@require_auth
@require_permission("edit_users")
def activate_user(user_id: int):
    try:
        user = user_service.set_user_active(g.session_context, user_id, True)
        commit_with_retry()
        return jsonify({"user": user.to_dict()})
    except Exception as exc:
        return json_error(exc)


@admin_bp.post("/users/<int:user_id>/deactivate")
@require_auth
@require_permission("edit_users")
def deactivate_user(user_id: int):
    """Deactivation revokes every open session of the user."""
    try:
        user = user_service.set_user_active(g.session_context, user_id, False)
        commit_with_retry()
        return jsonify({"user": user.to_dict()})
    except Exception as exc:
        return json_error(exc)


@admin_bp.post("/users/<int:user_id>/roles")
@require_auth
@require_permission("edit_users")
def assign_role(user_id: int):
    """
    Request body: {"role_id": int}

    Takes effect on the user's next request.
    """
    data = request.get_json() or {}
    try:
        user_service.assign_role(g.session_context, user_id, int(data["role_id"]))
        commit_with_retry()
        permission_service.log_security_event(
            user_id=g.current_user.id,
            event_type="ROLE_ASSIGNED",
            success=True,
            resource=request.path,
            action=f"role:{data['role_id']}",
            org_id=g.org_id,
        )
        return jsonify({"user": user_service.get_user(g.session_context, user_id).to_dict()}), 201
    except Exception as exc:
        return json_error(exc)


@admin_bp.delete("/users/<int:user_id>/roles/<int:role_id>")
@require_auth
@require_permission("edit_users")
def remove_role(user_id: int, role_id: int):
    try:
        removed = user_service.remove_role(g.session_context, user_id, role_id)
        if not removed:
            return jsonify({"error": "User does not have this role"}), 404
        commit_with_retry()
        return jsonify({"user": user_service.get_user(g.session_context, user_id).to_dict()})
    except Exception as exc:
        return json_error(exc)


# =============================================================================
# ROLE MANAGEMENT
# =============================================================================

@admin_bp.get("/roles")
@require_auth
@require_permission("view_roles")
def list_roles():
    roles = role_service.list_roles(g.session_context)
    return jsonify({"roles": [r.to_dict(include_permissions=True) for r in roles], "count": len(roles)})


@admin_bp.get("/roles/<int:role_id>")
@require_auth
@require_permission("view_roles")
def get_role(role_id: int):
    try:
        role = role_service.get_role(g.session_context, role_id)
        return jsonify({"role": role.to_dict(include_permissions=True)})
    except Exception as exc:
        return json_error(exc)


@admin_bp.post("/roles")
@require_auth
@require_permission("create_role")
def create_role():
    """
    Create a role with its permission set.

    Request body:
    {
        "name": str,
        "description": str (optional),
        "organization_id": int | null (admins only; null = global role),
        "permissions": ["View PO", "Create PO", ...]
    }

    An unknown permission name fails the whole request; no role is left behind.
    """
    data = request.get_json() or {}
    org_id = data.get("organization_id", g.org_id)
    try:
        with atomic():
            role = role_service.create_role(
                g.session_context,
                name=data.get("name"),
                description=data.get("description"),
                org_id=org_id,
                permission_names=data.get("permissions") or [],
            )
        return jsonify({"role": role.to_dict(include_permissions=True)}), 201
    except Exception as exc:
        return json_error(exc)


@admin_bp.patch("/roles/<int:role_id>")
@require_auth
@require_permission("edit_roles")
def update_role(role_id: int):
    data = request.get_json() or {}
    try:
        with atomic():
            role = role_service.update_role(g.session_context, role_id, data)
        return jsonify({"role": role.to_dict(include_permissions=True)})
    except Exception as exc:
        return json_error(exc)


@admin_bp.put("/roles/<int:role_id>/permissions")
@require_auth
@require_permission("edit_roles")
def replace_role_permissions(role_id: int):
    """Request body: {"permissions": [str]} replaces the role's permission set."""
    data = request.get_json() or {}
    try:
        with atomic():
            role = role_service.update_role_permissions(g.session_context, role_id, data.get("permissions") or [])
        return jsonify({"role": role.to_dict(include_permissions=True)})
    except Exception as exc:
        return json_error(exc)


@admin_bp.delete("/roles/<int:role_id>")
@require_auth
@require_permission("edit_roles")
def delete_role(role_id: int):
    try:
        role_service.delete_role(g.session_context, role_id)
        commit_with_retry()
        return jsonify({"message": "Role deleted"})
    except Exception as exc:
        return json_error(exc)


# =============================================================================
# PERMISSIONS
# =============================================================================

@admin_bp.get("/permissions")
@require_auth
@require_permission("view_permissions")
def list_permissions():
    """Query params: module (optional), e.g. "Finance"."""
    permissions = permission_service.list_permissions(request.args.get("module"))
    return jsonify({"permissions": [p.to_dict() for p in permissions], "count": len(permissions)})


# =============================================================================
# ORGANIZATIONS
# =============================================================================

@admin_bp.get("/organizations")
@require_auth
@require_permission("view_organization")
def list_organizations():
    """
    Query params: status, type.

    Non-admin callers only see their own organization.
    """
    orgs = organization_service.list_organizations(
        status=request.args.get("status"),
        org_type=request.args.get("type"),
    )
    if not g.session_context.capability.is_full_access:
        orgs = [o for o in orgs if o.id == g.org_id]
    return jsonify({"organizations": [o.to_dict() for o in orgs], "count": len(orgs)})


@admin_bp.get("/organizations/search")
@require_auth
@require_permission("view_organization")
def search_organizations():
    """Query params: search_type ("code" | "gst"), term."""
    try:
        orgs = organization_service.search_organizations(
            request.args.get("search_type", organization_service.SEARCH_BY_CODE),
            request.args.get("term", ""),
        )
        return jsonify({"organizations": [o.to_dict() for o in orgs], "count": len(orgs)})
    except Exception as exc:
        return json_error(exc)


@admin_bp.get("/organizations/<int:org_id>")
@require_auth
@require_permission("view_organization")
def get_organization(org_id: int):
    try:
        _ensure_own_organization(org_id)
        org = organization_service.get_organization(org_id)
        return jsonify({"organization": org.to_dict(include_children=True)})
    except Exception as exc:
        return json_error(exc)


@admin_bp.post("/organizations")
@require_auth
@require_permission("create_organization")
def create_organization():
    """
    Request body:
    {
        "code": "ACME",
        "name": str, "alias": str (optional),
        "type": "Supplier" | "Retailer" | ...,
        "contacts": [{"type": "Billing", "city": ..., "state_code": ...}],
        "references": [{"type": "GST", "value": ...}]
    }
    """
    data = request.get_json() or {}
    try:
        with atomic():
            org = organization_service.create_organization(data, actor=g.session_context.actor)
        return jsonify({"organization": org.to_dict(include_children=True)}), 201
    except Exception as exc:
        return json_error(exc)


@admin_bp.patch("/organizations/<int:org_id>")
@require_auth
@require_permission("edit_organization")
def update_organization(org_id: int):
    """Contacts / references, when present, replace the existing ones."""
    data = request.get_json() or {}
    try:
        _ensure_own_organization(org_id)
        with atomic():
            org = organization_service.update_organization(org_id, data, actor=g.session_context.actor)
        return jsonify({"organization": org.to_dict(include_children=True)})
    except Exception as exc:
        return json_error(exc)


@admin_bp.post("/organizations/<int:org_id>/status")
@require_auth
@require_permission("edit_organization")
def set_organization_status(org_id: int):
    """
    Request body: {"status": "active" | "inactive"}

    Sessions of an inactive organization are revoked on their next request.
    """
    data = request.get_json() or {}
    try:
        _ensure_own_organization(org_id)
        org = organization_service.set_organization_status(org_id, data.get("status"), actor=g.session_context.actor)
        commit_with_retry()
        return jsonify({"organization": org.to_dict()})
    except Exception as exc:
        return json_error(exc)
