from __future__ import annotations

from ..extensions import db
from erp.time_utils import to_iso_date, to_utc_z


ORG_STATUS_ACTIVE = "active"
ORG_STATUS_INACTIVE = "inactive"

ORGANIZATION_TYPES = ("Supplier", "Retailer", "Wholesale Customer", "Retail Customer", "Admin")
CONTACT_TYPES = ("Registered location", "Billing", "Shipping", "Owner", "Bill To", "Remit To")
REFERENCE_TYPES = ("GST", "CIN", "PAN", "GS1Code")


class Organization(db.Model):
    """
    Tenant entity.

    MULTI-TENANT: Every master and transactional record hangs off one
    organization. The 4-character code is what users see and what divisions
    are prefixed with; it is validated in organization_service.

    The "ADMN" organization hosts the administrative role (see
    auth_service.bootstrap_admin).
    """
    __tablename__ = "organizations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(4), nullable=False, unique=True, index=True)
    name = db.Column(db.String(100), nullable=False)
    alias = db.Column(db.String(200), nullable=True)
    org_type = db.Column(db.String(32), nullable=False, default="Retailer")
    status = db.Column(db.String(16), nullable=False, default=ORG_STATUS_ACTIVE, index=True)

    created_by = db.Column(db.String(255), nullable=True)
    updated_by = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    contacts = db.relationship(
        "Contact",
        primaryjoin="and_(Contact.org_id == Organization.id, Contact.division_id.is_(None))",
        lazy=True,
        viewonly=True,
        order_by="Contact.id",
    )
    references = db.relationship(
        "Reference",
        primaryjoin="and_(Reference.org_id == Organization.id, Reference.division_id.is_(None))",
        lazy=True,
        viewonly=True,
        order_by="Reference.id",
    )

    @property
    def is_active(self) -> bool:
        return self.status == ORG_STATUS_ACTIVE

    def gst_number(self) -> str | None:
        for ref in self.references:
            if ref.ref_type == "GST" and ref.division_id is None:
                return ref.value
        return None

    def to_dict(self, include_children: bool = False) -> dict:
        data = {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "alias": self.alias,
            "type": self.org_type,
            "status": self.status,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_children:
            data["contacts"] = [c.to_dict() for c in self.contacts]
            data["references"] = [r.to_dict() for r in self.references]
            data["gst_number"] = self.gst_number()
        return data

    def __repr__(self) -> str:
        return f"<Organization {self.code}>"


class Division(db.Model):
    """
    Operating unit of an organization (warehouse, branch, plant).

    Code is the organization code followed by a 3-character suffix, e.g.
    "ACME" + "001" -> "ACME001". Inventory and purchase orders are held per
    division.
    """
    __tablename__ = "divisions"
    __table_args__ = (
        db.Index("ix_divisions_org_id", "org_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    code = db.Column(db.String(7), nullable=False, unique=True, index=True)
    user_defined_code = db.Column(db.String(3), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    division_type = db.Column(db.String(32), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=ORG_STATUS_ACTIVE)

    created_by = db.Column(db.String(255), nullable=True)
    updated_by = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    organization = db.relationship("Organization", backref=db.backref("divisions", lazy=True))
    contacts = db.relationship("Contact", lazy=True, viewonly=True, order_by="Contact.id")
    references = db.relationship("Reference", lazy=True, viewonly=True, order_by="Reference.id")

    def state_code(self) -> str | None:
        return _primary_state_code(self.contacts)

    def to_dict(self, include_children: bool = False) -> dict:
        data = {
            "id": self.id,
            "organization_id": self.org_id,
            "organization_code": self.organization.code if self.organization else None,
            "code": self.code,
            "user_defined_code": self.user_defined_code,
            "name": self.name,
            "type": self.division_type,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_children:
            data["contacts"] = [c.to_dict() for c in self.contacts]
            data["references"] = [r.to_dict() for r in self.references]
        return data


class Contact(db.Model):
    """
    Address/contact row shared by organizations and divisions.

    Organization-level contacts have division_id NULL. Division contacts
    carry both ids so they stay visible to tenant-scoped queries.
    """
    __tablename__ = "contacts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    division_id = db.Column(db.Integer, db.ForeignKey("divisions.id"), nullable=True, index=True)

    contact_type = db.Column(db.String(32), nullable=False)
    first_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)
    address1 = db.Column(db.String(255), nullable=True)
    address2 = db.Column(db.String(255), nullable=True)
    postal_code = db.Column(db.String(16), nullable=True)
    city = db.Column(db.String(100), nullable=True)
    state = db.Column(db.String(100), nullable=True)
    state_code = db.Column(db.String(4), nullable=True)
    country = db.Column(db.String(100), nullable=True)
    phone_number = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    website = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.org_id,
            "division_id": self.division_id,
            "type": self.contact_type,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "address1": self.address1,
            "address2": self.address2,
            "postal_code": self.postal_code,
            "city": self.city,
            "state": self.state,
            "state_code": self.state_code,
            "country": self.country,
            "phone_number": self.phone_number,
            "email": self.email,
            "website": self.website,
        }


class Reference(db.Model):
    """Statutory identifiers (GST, CIN, PAN, GS1) for organizations and divisions."""
    __tablename__ = "organization_references"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    division_id = db.Column(db.Integer, db.ForeignKey("divisions.id"), nullable=True, index=True)
    ref_type = db.Column(db.String(16), nullable=False)
    value = db.Column(db.String(64), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.org_id,
            "division_id": self.division_id,
            "type": self.ref_type,
            "value": self.value,
        }


class Partner(db.Model):
    """
    Directed trading relationship: current_org (owner) -> partner_org.

    One row per ordered pair; the reverse direction is a separate row.
    """
    __tablename__ = "partners"
    __table_args__ = (
        db.UniqueConstraint("current_org_id", "partner_org_id", name="uq_partners_pair"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    current_org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    partner_org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=ORG_STATUS_ACTIVE)
    partnership_date = db.Column(db.Date, nullable=False)
    created_by = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    current_organization = db.relationship("Organization", foreign_keys=[current_org_id])
    partner_organization = db.relationship("Organization", foreign_keys=[partner_org_id])

    def to_dict(self) -> dict:
        partner = self.partner_organization
        return {
            "id": self.id,
            "current_organization_id": self.current_org_id,
            "organization_id": self.partner_org_id,
            "organization_code": partner.code if partner else None,
            "organization_name": partner.name if partner else None,
            "organization_type": partner.org_type if partner else None,
            "status": self.status,
            "partnership_date": to_iso_date(self.partnership_date),
            "created_by": self.created_by,
        }


def _primary_state_code(contacts) -> str | None:
    registered = [c for c in contacts if c.contact_type == "Registered location" and c.state_code]
    if registered:
        return registered[0].state_code
    for contact in contacts:
        if contact.state_code:
            return contact.state_code
    return None


def organization_state_code(org: Organization) -> str | None:
    return _primary_state_code(org.contacts)
