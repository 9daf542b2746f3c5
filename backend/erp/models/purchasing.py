from __future__ import annotations

from ..extensions import db
from erp.time_utils import to_iso_date, to_utc_z


PO_STATUS_CREATED = "Created"
PO_STATUS_APPROVED = "Approved"
PO_STATUS_PARTIALLY_RECEIVED = "Partially Received"
PO_STATUS_RECEIVED = "Received"
PO_STATUS_CANCELLED = "Cancelled"


class PurchaseOrder(db.Model):
    """
    Purchase order raised by a division of the organization on a supplier.

    Lifecycle: Created -> Approved / Partially Received / Received / Cancelled.
    Cancellation is only possible before anything happens to the PO.

    Totals are denormalised from the lines when the PO is created:
    total_item_cents (pre-tax), total_gst_cents, total_cents.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("org_id", "po_number", name="uq_purchase_orders_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    division_id = db.Column(db.Integer, db.ForeignKey("divisions.id"), nullable=False, index=True)
    supplier_org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    po_number = db.Column(db.String(64), nullable=False)
    po_date = db.Column(db.Date, nullable=False)
    requested_delivery_date = db.Column(db.Date, nullable=True)
    payment_terms = db.Column(db.String(64), nullable=True)  # e.g. "Net 45"
    remarks = db.Column(db.Text, nullable=True)
    is_interstate = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(32), nullable=False, default=PO_STATUS_CREATED, index=True)

    total_item_cents = db.Column(db.Integer, nullable=False, default=0)
    total_gst_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    created_by = db.Column(db.String(255), nullable=True)
    updated_by = db.Column(db.String(255), nullable=True)
    approved_by = db.Column(db.String(255), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.String(255), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    organization = db.relationship("Organization", foreign_keys=[org_id])
    supplier = db.relationship("Organization", foreign_keys=[supplier_org_id])
    division = db.relationship("Division")
    lines = db.relationship(
        "PurchaseOrderLine",
        backref="purchase_order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="PurchaseOrderLine.line_number",
    )
    gst_breakdown = db.relationship(
        "PurchaseOrderGstBreakdown",
        backref="purchase_order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="PurchaseOrderGstBreakdown.gst_bps",
    )

    @property
    def is_fully_received(self) -> bool:
        return bool(self.lines) and all(line.received_quantity >= line.quantity for line in self.lines)

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "organization_id": self.org_id,
            "division_id": self.division_id,
            "division_code": self.division.code if self.division else None,
            "supplier_id": self.supplier_org_id,
            "supplier_code": self.supplier.code if self.supplier else None,
            "supplier_name": self.supplier.name if self.supplier else None,
            "po_number": self.po_number,
            "po_date": to_iso_date(self.po_date),
            "requested_delivery_date": to_iso_date(self.requested_delivery_date),
            "payment_terms": self.payment_terms,
            "remarks": self.remarks,
            "is_interstate": self.is_interstate,
            "status": self.status,
            "total_item_cents": self.total_item_cents,
            "total_gst_cents": self.total_gst_cents,
            "total_cents": self.total_cents,
            "created_by": self.created_by,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "cancelled_by": self.cancelled_by,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
            data["gst_breakdown"] = [row.to_dict() for row in self.gst_breakdown]
        return data


class PurchaseOrderLine(db.Model):
    __tablename__ = "purchase_order_lines"
    __table_args__ = (
        db.UniqueConstraint("purchase_order_id", "line_number", name="uq_purchase_order_lines_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    uom = db.Column(db.String(16), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_unit_price_cents = db.Column(db.Integer, nullable=False)
    gst_bps = db.Column(db.Integer, nullable=False, default=0)
    gst_value_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)
    received_quantity = db.Column(db.Integer, nullable=False, default=0)

    item = db.relationship("Item")

    @property
    def pending_quantity(self) -> int:
        return max(self.quantity - self.received_quantity, 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_number": self.line_number,
            "item_id": self.item_id,
            "item_code": self.item.item_code if self.item else None,
            "item_description": self.item.description if self.item else None,
            "quantity": self.quantity,
            "uom": self.uom,
            "unit_price_cents": self.unit_price_cents,
            "total_unit_price_cents": self.total_unit_price_cents,
            "gst_bps": self.gst_bps,
            "gst_value_cents": self.gst_value_cents,
            "line_total_cents": self.line_total_cents,
            "received_quantity": self.received_quantity,
            "pending_quantity": self.pending_quantity,
        }


class PurchaseOrderGstBreakdown(db.Model):
    """
    Tax summary per GST rate.

    Intra-state supplies split the rate evenly into CGST and SGST;
    inter-state supplies carry the whole rate as IGST.
    """
    __tablename__ = "purchase_order_gst_breakdown"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    gst_bps = db.Column(db.Integer, nullable=False)
    taxable_amount_cents = db.Column(db.Integer, nullable=False)
    cgst_bps = db.Column(db.Integer, nullable=False, default=0)
    cgst_cents = db.Column(db.Integer, nullable=False, default=0)
    sgst_bps = db.Column(db.Integer, nullable=False, default=0)
    sgst_cents = db.Column(db.Integer, nullable=False, default=0)
    igst_bps = db.Column(db.Integer, nullable=False, default=0)
    igst_cents = db.Column(db.Integer, nullable=False, default=0)
    total_gst_cents = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "gst_bps": self.gst_bps,
            "taxable_amount_cents": self.taxable_amount_cents,
            "cgst_bps": self.cgst_bps,
            "cgst_cents": self.cgst_cents,
            "sgst_bps": self.sgst_bps,
            "sgst_cents": self.sgst_cents,
            "igst_bps": self.igst_bps,
            "igst_cents": self.igst_cents,
            "total_gst_cents": self.total_gst_cents,
        }


class PurchaseOrderReceipt(db.Model):
    """One received quantity against one PO line (append-only)."""
    __tablename__ = "po_receive_transactions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    purchase_order_line_id = db.Column(db.Integer, db.ForeignKey("purchase_order_lines.id"), nullable=False)
    receipt_reference = db.Column(db.String(64), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    received_by = db.Column(db.String(255), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    line = db.relationship("PurchaseOrderLine")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "purchase_order_line_id": self.purchase_order_line_id,
            "receipt_reference": self.receipt_reference,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "received_by": self.received_by,
            "received_at": to_utc_z(self.received_at),
        }
