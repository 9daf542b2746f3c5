# Overview: Divisions (operating units) of the caller's organization.

from __future__ import annotations

from ..extensions import db
from ..models import Division
from ..models.tenancy import ORG_STATUS_ACTIVE, ORG_STATUS_INACTIVE
from ..validation import ConflictError, ValidationError, require_choice, require_length, validate_division_suffix
from .organization_service import replace_children
from .session_service import SessionContext
from .tenant_service import require_organization, require_record_in_org, scoped_query
from erp.time_utils import utcnow


def compose_division_code(org_code: str, suffix: str) -> str:
    """"ACME" + "001" -> "ACME001"."""
    return f"{org_code}{validate_division_suffix(suffix)}"


def create_division(ctx: SessionContext, data: dict) -> Division:
    """
    Create a division in the caller's organization.

    The client supplies the 3-character suffix as user_defined_code; the full
    code is derived from the organization code and must be unique.
    """
    org = require_organization(ctx)
    suffix = data.get("user_defined_code")
    code = compose_division_code(org.code, suffix)
    name = require_length("name", data.get("name"), min_len=2, max_len=100)
    status = require_choice("status", data.get("status", ORG_STATUS_ACTIVE), (ORG_STATUS_ACTIVE, ORG_STATUS_INACTIVE))

    if db.session.query(Division).filter_by(code=code).first():
        raise ConflictError(f"Division code {code} already exists")

    division = Division(
        org_id=org.id,
        code=code,
        user_defined_code=suffix,
        name=name,
        division_type=data.get("type"),
        status=status,
        created_by=ctx.actor,
    )
    db.session.add(division)
    db.session.flush()

    replace_children(
        org_id=org.id,
        division_id=division.id,
        contacts=data.get("contacts") or [],
        references=data.get("references") or [],
    )
    return division


def update_division(ctx: SessionContext, division_id: int, data: dict) -> Division:
    division = get_division(ctx, division_id)
    if "user_defined_code" in data and data["user_defined_code"] != division.user_defined_code:
        raise ValidationError("Division code cannot be changed")

    if "name" in data:
        division.name = require_length("name", data.get("name"), min_len=2, max_len=100)
    if "type" in data:
        division.division_type = data.get("type")
    if "status" in data:
        division.status = require_choice("status", data.get("status"), (ORG_STATUS_ACTIVE, ORG_STATUS_INACTIVE))
    division.updated_by = ctx.actor
    division.updated_at = utcnow()

    replace_children(
        org_id=division.org_id,
        division_id=division.id,
        contacts=data.get("contacts"),
        references=data.get("references"),
    )
    db.session.expire(division, ["contacts", "references"])
    return division


def get_division(ctx: SessionContext, division_id: int) -> Division:
    return require_record_in_org(ctx, Division, division_id, label="Division")


def list_divisions(ctx: SessionContext, *, status: str | None = None) -> list[Division]:
    query = scoped_query(ctx, Division)
    if status:
        query = query.filter(Division.status == status)
    return query.order_by(Division.code).all()
