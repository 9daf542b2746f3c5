# Overview: Purchase orders; creation with GST breakdown, editing, approval, cancellation and receiving.

"""
Purchase order service.

LIFECYCLE:
    Created -> Approved -> Partially Received -> Received
    Created -> Cancelled

Only a Created PO can be edited.

Receiving is allowed from Created, Approved and Partially Received. Each
receipt appends PO_RECEIVE stock at the ordering division, valued at the PO
unit price.

GST:
- line gst_value = total_unit_price * gst_bps / 10000 (half-up to the cent)
- one breakdown row per GST rate
- intra-state (supplier and division in the same state, or either state
  unknown): the tax splits into CGST and SGST halves; otherwise IGST
"""

from __future__ import annotations

from collections import OrderedDict

from ..extensions import db
from ..models import (
    Division,
    Item,
    Organization,
    PurchaseOrder,
    PurchaseOrderGstBreakdown,
    PurchaseOrderLine,
    PurchaseOrderReceipt,
)
from ..models.finance import ACTION_PO_CREATED, ACTION_PO_RECEIVE
from ..models.inventory import STOCK_TXN_PO_RECEIVE
from ..models.purchasing import (
    PO_STATUS_APPROVED,
    PO_STATUS_CANCELLED,
    PO_STATUS_CREATED,
    PO_STATUS_PARTIALLY_RECEIVED,
    PO_STATUS_RECEIVED,
)
from ..models.tenancy import organization_state_code
from ..validation import ValidationError, require_amount, require_length, require_positive_quantity
from . import audit_service, inventory_service, master_data_service, rule_evaluator, transaction_sources
from .concurrency import lock_for_update
from .document_service import DOC_PO_RECEIPT, DOC_PURCHASE_ORDER, next_document_number
from .session_service import SessionContext
from .tenant_service import require_organization, require_record_in_org, scoped_query
from erp.time_utils import parse_iso_date, today, utcnow


RECEIVABLE_STATUSES = (PO_STATUS_CREATED, PO_STATUS_APPROVED, PO_STATUS_PARTIALLY_RECEIVED)
OPEN_STATUSES = RECEIVABLE_STATUSES


class PurchaseOrderError(Exception):
    """Raised when a purchase order operation is not allowed."""
    pass


def gst_value_cents(amount_cents: int, gst_bps: int) -> int:
    return (amount_cents * gst_bps + 5000) // 10000


def division_state_code(division: Division) -> str | None:
    return division.state_code() or organization_state_code(division.organization)


def is_interstate_supply(supplier_state: str | None, division_state: str | None) -> bool:
    """Unknown state on either side is treated as intra-state."""
    if not supplier_state or not division_state:
        return False
    return supplier_state.strip().upper() != division_state.strip().upper()


def build_gst_breakdown(lines: list[PurchaseOrderLine], *, interstate: bool) -> list[PurchaseOrderGstBreakdown]:
    grouped: "OrderedDict[int, list[int]]" = OrderedDict()
    for line in sorted(lines, key=lambda l: l.gst_bps):
        taxable, tax = grouped.get(line.gst_bps, [0, 0])
        grouped[line.gst_bps] = [taxable + line.total_unit_price_cents, tax + line.gst_value_cents]

    rows = []
    for bps, (taxable, tax) in grouped.items():
        row = PurchaseOrderGstBreakdown(gst_bps=bps, taxable_amount_cents=taxable, total_gst_cents=tax)
        if interstate:
            row.igst_bps = bps
            row.igst_cents = tax
        else:
            row.cgst_bps = bps // 2
            row.sgst_bps = bps - row.cgst_bps
            row.cgst_cents = tax // 2
            row.sgst_cents = tax - row.cgst_cents
        rows.append(row)
    return rows


def _build_lines(ctx: SessionContext, rows, supplier: Organization) -> list[PurchaseOrderLine]:
    """Unit price defaults to the item's recorded cost from this supplier."""
    if not rows:
        raise ValidationError("A purchase order needs at least one line")

    lines = []
    for idx, row in enumerate(rows, start=1):
        item = require_record_in_org(ctx, Item, row.get("item_id"), label="Item")
        quantity = require_positive_quantity(f"Line {idx}: quantity", row.get("quantity"))
        unit_price = row.get("unit_price_cents")
        if unit_price is None:
            unit_price = master_data_service.supplier_cost_cents(item, supplier.id)
        unit_price = require_amount(f"Line {idx} unit_price_cents", unit_price)
        gst_bps = row.get("gst_bps", item.gst_bps)
        gst_bps = require_amount(f"Line {idx} gst_bps", gst_bps)
        if gst_bps > 10000:
            raise ValidationError(f"Line {idx}: gst_bps cannot exceed 10000")

        total = quantity * unit_price
        gst = gst_value_cents(total, gst_bps)
        lines.append(PurchaseOrderLine(
            line_number=idx,
            item_id=item.id,
            quantity=quantity,
            uom=row.get("uom") or item.uom,
            unit_price_cents=unit_price,
            total_unit_price_cents=total,
            gst_bps=gst_bps,
            gst_value_cents=gst,
            line_total_cents=total + gst,
            received_quantity=0,
        ))
    return lines


def _apply_totals(po: PurchaseOrder, lines: list[PurchaseOrderLine], *, interstate: bool) -> None:
    po.is_interstate = interstate
    po.total_item_cents = sum(l.total_unit_price_cents for l in lines)
    po.total_gst_cents = sum(l.gst_value_cents for l in lines)
    po.total_cents = sum(l.line_total_cents for l in lines)
    po.gst_breakdown = build_gst_breakdown(lines, interstate=interstate)


def create_purchase_order(ctx: SessionContext, data: dict) -> tuple[PurchaseOrder, rule_evaluator.EvaluationResult]:
    """
    Create a PO with lines, totals and GST breakdown, then fire "PO Created".

    Raises ValidationError for bad input, TenantAccessError for a division or
    item outside the caller's organization.
    """
    org = require_organization(ctx)
    division = require_record_in_org(ctx, Division, data.get("division_id"), label="Division")

    supplier = db.session.get(Organization, data.get("supplier_id")) if data.get("supplier_id") else None
    if not supplier:
        raise ValidationError("Supplier not found", details={"supplier_id": "Unknown organization"})
    if not supplier.is_active:
        raise ValidationError("Supplier is not active")
    if supplier.id == org.id:
        raise ValidationError("An organization cannot order from itself")

    lines = _build_lines(ctx, data.get("lines"), supplier)
    interstate = is_interstate_supply(organization_state_code(supplier), division_state_code(division))

    po = PurchaseOrder(
        org_id=org.id,
        division_id=division.id,
        supplier_org_id=supplier.id,
        po_number=next_document_number(org_id=org.id, document=DOC_PURCHASE_ORDER),
        po_date=parse_iso_date(data.get("po_date")) or today(),
        requested_delivery_date=parse_iso_date(data.get("requested_delivery_date")),
        payment_terms=require_length("payment_terms", data.get("payment_terms"), max_len=64) or None,
        remarks=data.get("remarks"),
        status=PO_STATUS_CREATED,
        created_by=ctx.actor,
    )
    po.lines = lines
    _apply_totals(po, lines, interstate=interstate)
    db.session.add(po)
    db.session.flush()

    audit_service.record_event(
        org_id=org.id,
        event_type="purchase_order.created",
        entity_type="purchase_order",
        entity_id=po.id,
        actor=ctx.actor,
        payload={"total_cents": po.total_cents},
    )
    evaluation = rule_evaluator.apply_rules(
        transaction_sources.from_purchase_order(po),
        ACTION_PO_CREATED,
        actor=ctx.actor,
    )
    return po, evaluation


def _locked_po(ctx: SessionContext, po_id: int) -> PurchaseOrder:
    get_purchase_order(ctx, po_id)
    return lock_for_update(db.session.query(PurchaseOrder).filter_by(id=po_id)).first()


def update_purchase_order(ctx: SessionContext, po_id: int, data: dict) -> PurchaseOrder:
    """
    Edit a purchase order that is still Created.

    Header fields present in data are updated; "lines", when given, replace
    every existing line. Totals and the GST breakdown are rebuilt because the
    division (and so the place of supply) may have changed. The supplier and
    the PO number are fixed. No accounting rules fire on an edit.
    """
    po = _locked_po(ctx, po_id)
    if po.status != PO_STATUS_CREATED:
        raise PurchaseOrderError(f"Cannot edit purchase order in {po.status} status")
    if "supplier_id" in data and data.get("supplier_id") != po.supplier_org_id:
        raise ValidationError("Supplier cannot be changed", details={"supplier_id": "Cannot be changed"})

    division = po.division
    if "division_id" in data:
        division = require_record_in_org(ctx, Division, data.get("division_id"), label="Division")
    lines = _build_lines(ctx, data.get("lines"), po.supplier) if "lines" in data else None

    if "po_date" in data:
        po_date = parse_iso_date(data.get("po_date"))
        if po_date is None:
            raise ValidationError("po_date is required", details={"po_date": "Cannot be blank"})
        po.po_date = po_date
    if "requested_delivery_date" in data:
        po.requested_delivery_date = parse_iso_date(data.get("requested_delivery_date"))
    if "payment_terms" in data:
        po.payment_terms = require_length("payment_terms", data.get("payment_terms"), max_len=64) or None
    if "remarks" in data:
        po.remarks = data.get("remarks")
    po.division = division

    # Old rows go first so replacement line numbers do not collide.
    if lines is not None:
        po.lines = []
    po.gst_breakdown = []
    db.session.flush()
    if lines is not None:
        po.lines = lines

    interstate = is_interstate_supply(organization_state_code(po.supplier), division_state_code(division))
    _apply_totals(po, po.lines, interstate=interstate)
    po.updated_by = ctx.actor
    po.updated_at = utcnow()
    db.session.flush()

    audit_service.record_event(
        org_id=po.org_id,
        event_type="purchase_order.updated",
        entity_type="purchase_order",
        entity_id=po.id,
        actor=ctx.actor,
        payload={"total_cents": po.total_cents, "lines_replaced": lines is not None},
    )
    return po


def approve_purchase_order(ctx: SessionContext, po_id: int) -> PurchaseOrder:
    po = _locked_po(ctx, po_id)
    if po.status != PO_STATUS_CREATED:
        raise PurchaseOrderError(f"Cannot approve purchase order in {po.status} status")
    po.status = PO_STATUS_APPROVED
    po.approved_by = ctx.actor
    po.approved_at = utcnow()
    audit_service.record_event(
        org_id=po.org_id,
        event_type="purchase_order.approved",
        entity_type="purchase_order",
        entity_id=po.id,
        actor=ctx.actor,
    )
    return po


def cancel_purchase_order(ctx: SessionContext, po_id: int, reason: str | None = None) -> PurchaseOrder:
    po = _locked_po(ctx, po_id)
    if po.status != PO_STATUS_CREATED:
        raise PurchaseOrderError(f"Cannot cancel purchase order in {po.status} status")
    po.status = PO_STATUS_CANCELLED
    po.cancelled_by = ctx.actor
    po.cancelled_at = utcnow()
    audit_service.record_event(
        org_id=po.org_id,
        event_type="purchase_order.cancelled",
        entity_type="purchase_order",
        entity_id=po.id,
        actor=ctx.actor,
        note=reason,
    )
    return po


def receive_purchase_order(
    ctx: SessionContext,
    po_id: int,
    data: dict,
) -> tuple[PurchaseOrder, list[PurchaseOrderReceipt], rule_evaluator.EvaluationResult]:
    """
    Record received quantities against PO lines.

    data["lines"] = [{"line_id": ..., "quantity": ...}, ...]

    Each quantity must be positive and keep the cumulative received quantity
    within the ordered quantity. The PO becomes Received once every line is
    complete, Partially Received otherwise.
    """
    po = _locked_po(ctx, po_id)
    if po.status not in RECEIVABLE_STATUSES:
        raise PurchaseOrderError(f"Cannot receive purchase order in {po.status} status")

    rows = data.get("lines") or []
    if not rows:
        raise ValidationError("Nothing to receive")

    lines_by_id = {line.id: line for line in po.lines}
    requested: "OrderedDict[int, int]" = OrderedDict()
    for idx, row in enumerate(rows, start=1):
        line_id = row.get("line_id")
        line = lines_by_id.get(line_id)
        if line is None:
            raise ValidationError(f"Receipt line {idx}: line {line_id} is not on this purchase order")
        quantity = require_positive_quantity(f"Receipt line {idx}: quantity", row.get("quantity"))
        requested[line_id] = requested.get(line_id, 0) + quantity

    for line_id, quantity in requested.items():
        line = lines_by_id[line_id]
        if line.received_quantity + quantity > line.quantity:
            raise PurchaseOrderError(
                f"Line {line.line_number}: receiving {quantity} would exceed ordered quantity "
                f"({line.received_quantity} of {line.quantity} already received)"
            )

    receipt_reference = next_document_number(org_id=po.org_id, document=DOC_PO_RECEIPT)
    receipt_date = parse_iso_date(data.get("receipt_date")) or today()
    receipts = []
    received = []
    for line_id, quantity in requested.items():
        line = lines_by_id[line_id]
        line.received_quantity += quantity
        receipt = PurchaseOrderReceipt(
            purchase_order_id=po.id,
            purchase_order_line_id=line.id,
            receipt_reference=receipt_reference,
            quantity=quantity,
            unit_price_cents=line.unit_price_cents,
            received_by=ctx.actor,
        )
        db.session.add(receipt)
        receipts.append(receipt)
        received.append((line, quantity))

        inventory_service.record_movement(
            org_id=po.org_id,
            division_id=po.division_id,
            item_id=line.item_id,
            uom=line.uom,
            transaction_type=STOCK_TXN_PO_RECEIVE,
            available_delta=quantity,
            unit_cost_cents=line.unit_price_cents,
            reference_number=receipt_reference,
            actor=ctx.actor,
        )

    po.status = PO_STATUS_RECEIVED if po.is_fully_received else PO_STATUS_PARTIALLY_RECEIVED
    po.updated_by = ctx.actor
    po.updated_at = utcnow()
    db.session.flush()

    audit_service.record_event(
        org_id=po.org_id,
        event_type="purchase_order.received",
        entity_type="purchase_order",
        entity_id=po.id,
        actor=ctx.actor,
        payload={"receipt_reference": receipt_reference, "lines": {str(k): v for k, v in requested.items()}},
    )
    evaluation = rule_evaluator.apply_rules(
        transaction_sources.from_po_receipt(po, received, reference=receipt_reference, receipt_date=receipt_date),
        ACTION_PO_RECEIVE,
        actor=ctx.actor,
    )
    return po, receipts, evaluation


def get_purchase_order(ctx: SessionContext, po_id: int) -> PurchaseOrder:
    return require_record_in_org(ctx, PurchaseOrder, po_id, label="Purchase order")


def list_purchase_orders(
    ctx: SessionContext,
    *,
    status: str | None = None,
    supplier_id: int | None = None,
    open_only: bool = False,
) -> list[PurchaseOrder]:
    query = scoped_query(ctx, PurchaseOrder)
    if status:
        query = query.filter(PurchaseOrder.status == status)
    if open_only:
        query = query.filter(PurchaseOrder.status.in_(OPEN_STATUSES))
    if supplier_id is not None:
        query = query.filter(PurchaseOrder.supplier_org_id == supplier_id)
    return query.order_by(PurchaseOrder.id.desc()).all()


def list_receipts(ctx: SessionContext, po_id: int) -> list[PurchaseOrderReceipt]:
    po = get_purchase_order(ctx, po_id)
    return (
        db.session.query(PurchaseOrderReceipt)
        .filter(PurchaseOrderReceipt.purchase_order_id == po.id)
        .order_by(PurchaseOrderReceipt.id)
        .all()
    )
