from __future__ import annotations

from ..extensions import db
from erp.time_utils import to_iso_date, to_utc_z


# Stock ledger transaction types
STOCK_TXN_TRANSFER_OUT = "TRANSFER_OUT"
STOCK_TXN_TRANSFER_IN = "TRANSFER_IN"
STOCK_TXN_PO_RECEIVE = "PO_RECEIVE"
STOCK_TXN_ADJUSTMENT = "ADJUSTMENT"

TRANSFER_STATUS_INITIATED = "Transfer initiated"
TRANSFER_STATUS_CONFIRMED = "Transfer confirmed"


class InventoryStock(db.Model):
    """
    Stock ledger.

    Each row is a signed movement for one item in one division:
    available_quantity and in_process_quantity are deltas, and the on-hand
    position is the sum over rows. Goods in transit to a division sit in
    in_process_quantity until the transfer is confirmed.

    inventory_cost_cents is the unit cost carried by the movement.
    """
    __tablename__ = "inventory_stock"
    __table_args__ = (
        db.Index("ix_inventory_stock_org_item_div", "org_id", "item_id", "division_id"),
        db.Index("ix_inventory_stock_reference", "reference_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    division_id = db.Column(db.Integer, db.ForeignKey("divisions.id"), nullable=False)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False)

    available_quantity = db.Column(db.Integer, nullable=False, default=0)
    in_process_quantity = db.Column(db.Integer, nullable=False, default=0)
    uom = db.Column(db.String(16), nullable=False)
    transaction_type = db.Column(db.String(32), nullable=False)
    reference_number = db.Column(db.String(64), nullable=True)
    inventory_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    created_by = db.Column(db.String(255), nullable=True)
    updated_by = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    item = db.relationship("Item")
    division = db.relationship("Division")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.org_id,
            "division_id": self.division_id,
            "division_code": self.division.code if self.division else None,
            "item_id": self.item_id,
            "item_code": self.item.item_code if self.item else None,
            "available_quantity": self.available_quantity,
            "in_process_quantity": self.in_process_quantity,
            "uom": self.uom,
            "transaction_type": self.transaction_type,
            "reference_number": self.reference_number,
            "inventory_cost_cents": self.inventory_cost_cents,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryTransfer(db.Model):
    """
    Stock movement between two divisions of the same organization.

    Lifecycle: Transfer initiated -> Transfer confirmed.
    Only tracking_number can change, and only while initiated.
    """
    __tablename__ = "inventory_transfers"
    __table_args__ = (
        db.UniqueConstraint("org_id", "transfer_number", name="uq_inventory_transfers_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    transfer_number = db.Column(db.String(64), nullable=False)
    origin_division_id = db.Column(db.Integer, db.ForeignKey("divisions.id"), nullable=False)
    destination_division_id = db.Column(db.Integer, db.ForeignKey("divisions.id"), nullable=False)
    transfer_date = db.Column(db.Date, nullable=False)
    tracking_number = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(32), nullable=False, default=TRANSFER_STATUS_INITIATED, index=True)

    created_by = db.Column(db.String(255), nullable=True)
    updated_by = db.Column(db.String(255), nullable=True)
    confirmed_by = db.Column(db.String(255), nullable=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    origin_division = db.relationship("Division", foreign_keys=[origin_division_id])
    destination_division = db.relationship("Division", foreign_keys=[destination_division_id])
    lines = db.relationship(
        "InventoryTransferLine",
        backref="transfer",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="InventoryTransferLine.id",
    )

    @property
    def total_value_cents(self) -> int:
        return sum(line.quantity * line.inventory_cost_cents for line in self.lines)

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "organization_id": self.org_id,
            "transfer_number": self.transfer_number,
            "origin_division_id": self.origin_division_id,
            "origin_division_code": self.origin_division.code if self.origin_division else None,
            "destination_division_id": self.destination_division_id,
            "destination_division_code": self.destination_division.code if self.destination_division else None,
            "transfer_date": to_iso_date(self.transfer_date),
            "tracking_number": self.tracking_number,
            "status": self.status,
            "total_value_cents": self.total_value_cents,
            "created_by": self.created_by,
            "confirmed_by": self.confirmed_by,
            "confirmed_at": to_utc_z(self.confirmed_at),
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class InventoryTransferLine(db.Model):
    __tablename__ = "inventory_transfer_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("inventory_transfers.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    uom = db.Column(db.String(16), nullable=False)
    inventory_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    item = db.relationship("Item")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "item_code": self.item.item_code if self.item else None,
            "quantity": self.quantity,
            "uom": self.uom,
            "inventory_cost_cents": self.inventory_cost_cents,
            "line_value_cents": self.quantity * self.inventory_cost_cents,
        }
