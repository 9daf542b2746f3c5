# Overview: Partner relationships between the caller's organization and other organizations.

from __future__ import annotations

from ..extensions import db
from ..models import Organization, Partner
from ..models.tenancy import ORG_STATUS_ACTIVE, ORG_STATUS_INACTIVE
from ..validation import NotFoundError, ValidationError, require_choice
from .session_service import SessionContext
from .tenant_service import TenantAccessError, require_organization
from erp.time_utils import parse_iso_date, today


class PartnerError(Exception):
    """Raised when a partnership cannot be created or changed."""
    pass


def create_partnerships(
    ctx: SessionContext,
    partner_org_ids: list[int],
    *,
    partnership_date=None,
) -> list[Partner]:
    """
    Add organizations as partners of the caller's organization.

    The caller's own organization and pairs that already exist are skipped,
    so repeating a request never creates duplicates. Returns the new rows.
    """
    owner = require_organization(ctx)
    if not partner_org_ids:
        raise ValidationError("Select at least one organization")

    when = parse_iso_date(partnership_date) or today()
    wanted = list(dict.fromkeys(int(pid) for pid in partner_org_ids))

    orgs = db.session.query(Organization).filter(Organization.id.in_(wanted)).all()
    missing = set(wanted) - {o.id for o in orgs}
    if missing:
        raise NotFoundError(f"Organization(s) not found: {', '.join(str(m) for m in sorted(missing))}")

    existing = {
        pid for (pid,) in db.session.query(Partner.partner_org_id).filter(
            Partner.current_org_id == owner.id,
            Partner.partner_org_id.in_(wanted),
        )
    }

    created = []
    for org in sorted(orgs, key=lambda o: wanted.index(o.id)):
        if org.id == owner.id or org.id in existing:
            continue
        if not org.is_active:
            raise PartnerError(f"Organization {org.code} is not active")
        partner = Partner(
            current_org_id=owner.id,
            partner_org_id=org.id,
            status=ORG_STATUS_ACTIVE,
            partnership_date=when,
            created_by=ctx.actor,
        )
        db.session.add(partner)
        created.append(partner)

    db.session.flush()
    return created


def _get_own_partner(ctx: SessionContext, partner_id: int) -> Partner:
    owner = require_organization(ctx)
    partner = db.session.get(Partner, partner_id)
    if not partner or partner.current_org_id != owner.id:
        raise TenantAccessError("Partner not found")
    return partner


def set_partner_status(ctx: SessionContext, partner_id: int, status: str) -> Partner:
    partner = _get_own_partner(ctx, partner_id)
    partner.status = require_choice("status", status, (ORG_STATUS_ACTIVE, ORG_STATUS_INACTIVE))
    db.session.flush()
    return partner


def list_partners(ctx: SessionContext, *, status: str | None = None, org_type: str | None = None) -> list[Partner]:
    if ctx.org_id is None:
        return []
    query = db.session.query(Partner).filter(Partner.current_org_id == ctx.org_id)
    if status:
        query = query.filter(Partner.status == status)
    if org_type:
        query = query.join(Organization, Organization.id == Partner.partner_org_id).filter(
            Organization.org_type == org_type
        )
    return query.order_by(Partner.id).all()


def is_active_partner(owner_org_id: int, partner_org_id: int) -> bool:
    return db.session.query(Partner.id).filter_by(
        current_org_id=owner_org_id,
        partner_org_id=partner_org_id,
        status=ORG_STATUS_ACTIVE,
    ).first() is not None
