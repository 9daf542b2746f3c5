from __future__ import annotations

from ..extensions import db
from erp.time_utils import to_utc_z


MASTER_STATUS_ACTIVE = "active"
MASTER_STATUS_INACTIVE = "inactive"


class ItemGroup(db.Model):
    __tablename__ = "item_groups"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_item_groups_org_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    classification = db.Column(db.String(100), nullable=True)
    sub_classification = db.Column(db.String(100), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=MASTER_STATUS_ACTIVE)
    created_by = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.org_id,
            "name": self.name,
            "classification": self.classification,
            "sub_classification": self.sub_classification,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_categories_org_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default=MASTER_STATUS_ACTIVE)
    created_by = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.org_id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class SalesChannel(db.Model):
    __tablename__ = "sales_channels"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_sales_channels_org_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default=MASTER_STATUS_ACTIVE)
    created_by = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.org_id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class Item(db.Model):
    """
    Sellable/purchasable item owned by one organization.

    Costs are kept per supplier (ItemCost) and prices per sales channel
    (ItemPrice); both collections are replaced wholesale on update.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.UniqueConstraint("org_id", "item_code", name="uq_items_org_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    item_code = db.Column(db.String(32), nullable=False)
    description = db.Column(db.String(255), nullable=False)
    item_group_id = db.Column(db.Integer, db.ForeignKey("item_groups.id"), nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True)
    classification = db.Column(db.String(100), nullable=True)
    sub_classification = db.Column(db.String(100), nullable=True)
    uom = db.Column(db.String(16), nullable=False, default="EA")
    weight = db.Column(db.Integer, nullable=True)  # grams
    weight_uom = db.Column(db.String(8), nullable=True)
    gst_bps = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=MASTER_STATUS_ACTIVE)

    created_by = db.Column(db.String(255), nullable=True)
    updated_by = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    item_group = db.relationship("ItemGroup")
    category = db.relationship("Category")
    costs = db.relationship("ItemCost", backref="item", lazy=True, cascade="all, delete-orphan", order_by="ItemCost.id")
    prices = db.relationship("ItemPrice", backref="item", lazy=True, cascade="all, delete-orphan", order_by="ItemPrice.id")

    def to_dict(self, include_children: bool = True) -> dict:
        data = {
            "id": self.id,
            "organization_id": self.org_id,
            "item_code": self.item_code,
            "description": self.description,
            "item_group_id": self.item_group_id,
            "item_group": self.item_group.name if self.item_group else None,
            "category_id": self.category_id,
            "category": self.category.name if self.category else None,
            "classification": self.classification,
            "sub_classification": self.sub_classification,
            "uom": self.uom,
            "weight": self.weight,
            "weight_uom": self.weight_uom,
            "gst_bps": self.gst_bps,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_children:
            data["costs"] = [c.to_dict() for c in self.costs]
            data["prices"] = [p.to_dict() for p in self.prices]
        return data


class ItemCost(db.Model):
    __tablename__ = "item_costs"
    __table_args__ = (
        db.UniqueConstraint("item_id", "supplier_org_id", name="uq_item_costs_item_supplier"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    supplier_org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    cost_cents = db.Column(db.Integer, nullable=False)

    supplier = db.relationship("Organization")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_org_id,
            "supplier_code": self.supplier.code if self.supplier else None,
            "cost_cents": self.cost_cents,
        }


class ItemPrice(db.Model):
    __tablename__ = "item_prices"
    __table_args__ = (
        db.UniqueConstraint("item_id", "sales_channel_id", name="uq_item_prices_item_channel"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    sales_channel_id = db.Column(db.Integer, db.ForeignKey("sales_channels.id"), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)

    sales_channel = db.relationship("SalesChannel")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sales_channel_id": self.sales_channel_id,
            "sales_channel": self.sales_channel.name if self.sales_channel else None,
            "price_cents": self.price_cents,
        }
