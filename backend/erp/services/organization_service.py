# Overview: Organizations (tenants), their contacts and statutory references.

from __future__ import annotations

from ..extensions import db
from ..models import Contact, Organization, Reference
from ..models.tenancy import CONTACT_TYPES, ORG_STATUS_ACTIVE, ORG_STATUS_INACTIVE, ORGANIZATION_TYPES, REFERENCE_TYPES
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    require_choice,
    require_length,
    validate_organization_code,
)
from erp.time_utils import utcnow


SEARCH_BY_CODE = "code"
SEARCH_BY_GST = "gst"

CONTACT_FIELDS = (
    "first_name", "last_name", "address1", "address2", "postal_code", "city",
    "state", "state_code", "country", "phone_number", "email", "website",
)


def _validate_header(data: dict, *, partial: bool) -> dict:
    clean: dict = {}
    if not partial or "name" in data:
        clean["name"] = require_length("name", data.get("name"), min_len=3, max_len=100)
    if "alias" in data:
        clean["alias"] = require_length("alias", data.get("alias"), max_len=200) or None
    if not partial or "type" in data:
        clean["org_type"] = require_choice("type", data.get("type", "Retailer"), ORGANIZATION_TYPES)
    if "status" in data:
        clean["status"] = require_choice("status", data.get("status"), (ORG_STATUS_ACTIVE, ORG_STATUS_INACTIVE))
    return clean


def build_contacts(rows, *, org_id: int, division_id: int | None = None) -> list[Contact]:
    contacts = []
    for idx, row in enumerate(rows or []):
        if not isinstance(row, dict):
            raise ValidationError(f"contacts[{idx}] must be an object")
        contact_type = require_choice(f"contacts[{idx}].type", row.get("type"), CONTACT_TYPES)
        values = {k: (str(row[k]).strip() or None) if row.get(k) is not None else None for k in CONTACT_FIELDS}
        contacts.append(Contact(org_id=org_id, division_id=division_id, contact_type=contact_type, **values))
    return contacts


def build_references(rows, *, org_id: int, division_id: int | None = None) -> list[Reference]:
    references = []
    for idx, row in enumerate(rows or []):
        if not isinstance(row, dict):
            raise ValidationError(f"references[{idx}] must be an object")
        ref_type = require_choice(f"references[{idx}].type", row.get("type"), REFERENCE_TYPES)
        value = require_length(f"references[{idx}].value", row.get("value"), min_len=1, max_len=64).upper()
        references.append(Reference(org_id=org_id, division_id=division_id, ref_type=ref_type, value=value))
    return references


def replace_children(*, org_id: int, division_id: int | None, contacts=None, references=None) -> None:
    """Replace contacts and/or references of an organization (division_id None) or a division."""
    if contacts is not None:
        new_contacts = build_contacts(contacts, org_id=org_id, division_id=division_id)
        db.session.query(Contact).filter(
            Contact.org_id == org_id,
            Contact.division_id.is_(None) if division_id is None else Contact.division_id == division_id,
        ).delete(synchronize_session=False)
        db.session.add_all(new_contacts)
    if references is not None:
        new_refs = build_references(references, org_id=org_id, division_id=division_id)
        db.session.query(Reference).filter(
            Reference.org_id == org_id,
            Reference.division_id.is_(None) if division_id is None else Reference.division_id == division_id,
        ).delete(synchronize_session=False)
        db.session.add_all(new_refs)
    db.session.flush()


def create_organization(data: dict, *, actor: str | None = None) -> Organization:
    """
    Create an organization with optional contacts and references.

    Raises ValidationError for a malformed code or field, ConflictError if
    the code is taken.
    """
    code = validate_organization_code(data.get("code"))
    header = _validate_header(data, partial=False)

    if db.session.query(Organization).filter_by(code=code).first():
        raise ConflictError(f"Organization code {code} already exists")

    org = Organization(code=code, created_by=actor, status=header.pop("status", ORG_STATUS_ACTIVE), **header)
    db.session.add(org)
    db.session.flush()

    replace_children(
        org_id=org.id,
        division_id=None,
        contacts=data.get("contacts") or [],
        references=data.get("references") or [],
    )
    return org


def update_organization(org_id: int, data: dict, *, actor: str | None = None) -> Organization:
    """Code is immutable; everything else may change."""
    org = get_organization(org_id)
    if "code" in data and data["code"] != org.code:
        raise ValidationError("Organization code cannot be changed")

    for key, value in _validate_header(data, partial=True).items():
        setattr(org, key, value)
    org.updated_by = actor
    org.updated_at = utcnow()

    replace_children(
        org_id=org.id,
        division_id=None,
        contacts=data.get("contacts"),
        references=data.get("references"),
    )
    db.session.expire(org, ["contacts", "references"])
    return org


def set_organization_status(org_id: int, status: str, *, actor: str | None = None) -> Organization:
    org = get_organization(org_id)
    org.status = require_choice("status", status, (ORG_STATUS_ACTIVE, ORG_STATUS_INACTIVE))
    org.updated_by = actor
    org.updated_at = utcnow()
    db.session.flush()
    return org


def get_organization(org_id: int) -> Organization:
    org = db.session.get(Organization, org_id)
    if not org:
        raise NotFoundError("Organization not found")
    return org


def get_organization_by_code(code: str) -> Organization | None:
    return db.session.query(Organization).filter_by(code=(code or "").upper()).first()


def list_organizations(*, status: str | None = None, org_type: str | None = None) -> list[Organization]:
    query = db.session.query(Organization)
    if status:
        query = query.filter(Organization.status == status)
    if org_type:
        query = query.filter(Organization.org_type == org_type)
    return query.order_by(Organization.code).all()


def search_organizations(search_type: str, term: str) -> list[Organization]:
    """
    Find organizations to partner with, by exact code or by GST number.

    Only active organizations are returned.
    """
    term = (term or "").strip()
    if not term:
        return []

    query = db.session.query(Organization).filter(Organization.status == ORG_STATUS_ACTIVE)
    if search_type == SEARCH_BY_CODE:
        query = query.filter(Organization.code == term.upper())
    elif search_type == SEARCH_BY_GST:
        query = query.join(
            Reference,
            db.and_(Reference.org_id == Organization.id, Reference.division_id.is_(None)),
        ).filter(Reference.ref_type == "GST", Reference.value == term.upper())
    else:
        raise ValidationError("search_type must be 'code' or 'gst'")
    return query.order_by(Organization.code).all()
