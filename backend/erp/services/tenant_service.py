"""
Multi-Tenant Service: current-organization resolution and record scoping

WHY: Every list and lookup of tenant-owned data goes through these helpers,
either in Python (filter_data_by_organization) or as a query predicate
(scoped_query). Forgetting to scope is a data-leak defect.

SECURITY INVARIANTS:
1. The tenant comes from the SessionContext, never from client input
2. A caller without an organization sees nothing (empty results, no error)
3. Records from another tenant look exactly like missing records
4. Cross-tenant access attempts are logged as security events

USAGE:
    from erp.services.tenant_service import scoped_query, require_record_in_org

    divisions = scoped_query(ctx, Division).order_by(Division.code).all()
    division = require_record_in_org(ctx, Division, division_id)
"""

from __future__ import annotations

from flask import has_request_context, request
from sqlalchemy import false

from ..extensions import db
from ..models import Organization
from .permission_service import log_security_event
from .session_service import SessionContext


class TenantAccessError(Exception):
    """Raised when cross-tenant access is attempted."""
    pass


def get_current_organization_id(ctx: SessionContext | None) -> int | None:
    return ctx.org_id if ctx else None


def get_current_organization_code(ctx: SessionContext | None) -> str | None:
    return ctx.org_code if ctx else None


def get_current_organization_name(ctx: SessionContext | None) -> str | None:
    return ctx.org_name if ctx else None


def is_user_from_organization(ctx: SessionContext | None, organization_code: str | None) -> bool:
    current = get_current_organization_code(ctx)
    return current is not None and organization_code is not None and current == organization_code


def _field(item, *names):
    for name in names:
        if isinstance(item, dict):
            if name in item:
                return item[name]
        elif hasattr(item, name):
            return getattr(item, name)
    return None


def belongs_to_organization(item, org_id: int | None, org_code: str | None) -> bool:
    """
    Record ownership test used by filter_data_by_organization.

    A record matches on organization id or on organization code; a missing
    value on either side never matches.
    """
    item_org_id = _field(item, "organization_id", "org_id")
    item_org_code = _field(item, "organization_code", "org_code")
    if org_id is not None and item_org_id is not None and item_org_id == org_id:
        return True
    if org_code is not None and item_org_code is not None and item_org_code == org_code:
        return True
    return False


def filter_data_by_organization(ctx: SessionContext | None, items) -> list:
    """
    Keep only the records owned by the caller's organization.

    Works on dicts (to_dict() output, imported rows) and on model objects.
    Returns [] when the caller has no organization. Idempotent.
    """
    org_id = get_current_organization_id(ctx)
    org_code = get_current_organization_code(ctx)
    if org_id is None and org_code is None:
        return []
    return [item for item in (items or []) if belongs_to_organization(item, org_id, org_code)]


def scoped_query(ctx: SessionContext | None, model):
    """
    Query over `model` restricted to the caller's organization.

    The model must have an org_id column. Without an organization the query
    matches nothing.
    """
    query = db.session.query(model)
    org_id = get_current_organization_id(ctx)
    if org_id is None:
        return query.filter(false())
    return query.filter(model.org_id == org_id)


def require_record_in_org(ctx: SessionContext | None, model, record_id: int, label: str | None = None):
    """
    Load a tenant-owned record by id.

    SECURITY: Raises TenantAccessError with a generic "not found" message if
    the record is missing or belongs to another organization; the second
    case is logged as CROSS_TENANT_ACCESS_DENIED.

    The denial ends the caller's unit of work: pending changes are rolled
    back before the security event is committed, so nothing written earlier
    in the same operation is persisted with it.
    """
    label = label or model.__name__
    record = db.session.get(model, record_id) if record_id is not None else None
    if record is None:
        raise TenantAccessError(f"{label} not found")

    org_id = get_current_organization_id(ctx)
    if org_id is None or record.org_id != org_id:
        _log_cross_tenant_attempt(
            ctx,
            f"{label} {record_id} belongs to org {record.org_id}, not {org_id}",
        )
        raise TenantAccessError(f"{label} not found")

    return record


def require_organization(ctx: SessionContext | None) -> Organization:
    """The caller's organization, for operations that cannot run without one."""
    org_id = get_current_organization_id(ctx)
    if org_id is None:
        raise TenantAccessError("No organization is associated with this user")
    org = db.session.get(Organization, org_id)
    if not org or not org.is_active:
        raise TenantAccessError("Organization is not active")
    return org


def _log_cross_tenant_attempt(ctx: SessionContext | None, reason: str) -> None:
    db.session.rollback()
    log_security_event(
        user_id=ctx.user.id if ctx and ctx.user else None,
        event_type="CROSS_TENANT_ACCESS_DENIED",
        success=False,
        resource=request.path if has_request_context() else None,
        action=request.method if has_request_context() else None,
        reason=reason,
        ip_address=request.remote_addr if has_request_context() else None,
        user_agent=request.headers.get("User-Agent") if has_request_context() else None,
        org_id=get_current_organization_id(ctx),
    )
