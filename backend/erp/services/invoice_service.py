# Overview: Supplier invoices generated from received purchase orders; approval and payment status.

"""
Invoice service.

An invoice is raised from a fully received purchase order, one per PO:
- bill-to: the ordering organization; remit-to: the supplier
- lines copied from the PO lines at the received quantities
- due date = PO date + payment terms in days (first number found in the
  terms text, DEFAULT_PAYMENT_TERMS_DAYS otherwise)

Approval writes a "Payable Invoice" general ledger row and fires
"Invoice Approved" accounting rules. The invoice becomes Paid once approved
payments linked to it cover its total.
"""

from __future__ import annotations

import re

from flask import current_app

from ..extensions import db
from ..models import Contact, Invoice, InvoiceLine, Payment, PurchaseOrder
from ..models.finance import (
    ACTION_INVOICE_APPROVED,
    GL_TYPE_PAYABLE_INVOICE,
    INVOICE_STATUS_APPROVED,
    INVOICE_STATUS_CREATED,
    INVOICE_STATUS_PAID,
    PAYMENT_STATUS_APPROVED,
)
from ..models.purchasing import PO_STATUS_RECEIVED
from ..validation import ConflictError
from . import audit_service, general_ledger_service, rule_evaluator, transaction_sources
from .concurrency import lock_for_update
from .document_service import DOC_INVOICE, next_document_number
from .purchase_order_service import gst_value_cents
from .session_service import SessionContext
from .tenant_service import require_record_in_org, scoped_query
from erp.time_utils import add_days, parse_iso_date, today, utcnow


TERMS_DAYS_RE = re.compile(r"(\d+)")


class InvoiceError(Exception):
    """Raised when an invoice cannot be created or changed."""
    pass


def payment_terms_days(payment_terms: str | None, default: int | None = None) -> int:
    """
    "Net 45" -> 45, "30 days" -> 30, None or "Immediate" -> default.
    """
    if default is None:
        default = int(current_app.config.get("DEFAULT_PAYMENT_TERMS_DAYS", 30))
    match = TERMS_DAYS_RE.search(payment_terms or "")
    return int(match.group(1)) if match else default


def _pick_contact(org_id: int, preferred: tuple[str, ...]) -> int | None:
    contacts = (
        db.session.query(Contact)
        .filter(Contact.org_id == org_id, Contact.division_id.is_(None))
        .order_by(Contact.id)
        .all()
    )
    for contact_type in preferred:
        for contact in contacts:
            if contact.contact_type == contact_type:
                return contact.id
    return contacts[0].id if contacts else None


def create_invoice_from_po(ctx: SessionContext, po_id: int, data: dict | None = None) -> Invoice:
    """
    Generate the invoice for a received purchase order.

    Raises:
        InvoiceError: PO not Received
        ConflictError: PO already invoiced
    """
    data = data or {}
    require_record_in_org(ctx, PurchaseOrder, po_id, label="Purchase order")
    po = lock_for_update(db.session.query(PurchaseOrder).filter_by(id=po_id)).first()

    if po.status != PO_STATUS_RECEIVED:
        raise InvoiceError(f"Purchase order {po.po_number} is not fully received (status: {po.status})")
    if db.session.query(Invoice.id).filter_by(purchase_order_id=po.id).first():
        raise ConflictError(f"Purchase order {po.po_number} has already been invoiced")

    lines = []
    for po_line in po.lines:
        if po_line.received_quantity <= 0:
            continue
        total = po_line.received_quantity * po_line.unit_price_cents
        gst = gst_value_cents(total, po_line.gst_bps)
        lines.append(InvoiceLine(
            line_number=len(lines) + 1,
            item_id=po_line.item_id,
            quantity=po_line.received_quantity,
            uom=po_line.uom,
            unit_price_cents=po_line.unit_price_cents,
            total_price_cents=total,
            gst_bps=po_line.gst_bps,
            gst_value_cents=gst,
            line_total_cents=total + gst,
        ))
    if not lines:
        raise InvoiceError("Purchase order has no received lines to invoice")

    invoice = Invoice(
        org_id=po.org_id,
        purchase_order_id=po.id,
        division_id=po.division_id,
        invoice_number=next_document_number(org_id=po.org_id, document=DOC_INVOICE),
        invoice_date=parse_iso_date(data.get("invoice_date")) or today(),
        due_date=add_days(po.po_date, payment_terms_days(po.payment_terms)),
        bill_to_org_id=po.org_id,
        remit_to_org_id=po.supplier_org_id,
        bill_to_contact_id=_pick_contact(po.org_id, ("Bill To", "Billing", "Registered location")),
        remit_to_contact_id=_pick_contact(po.supplier_org_id, ("Remit To", "Billing", "Registered location")),
        total_item_cents=sum(l.total_price_cents for l in lines),
        total_gst_cents=sum(l.gst_value_cents for l in lines),
        total_cents=sum(l.line_total_cents for l in lines),
        status=INVOICE_STATUS_CREATED,
        created_by=ctx.actor,
    )
    invoice.lines = lines
    db.session.add(invoice)
    db.session.flush()

    audit_service.record_event(
        org_id=invoice.org_id,
        event_type="invoice.created",
        entity_type="invoice",
        entity_id=invoice.id,
        actor=ctx.actor,
        payload={"purchase_order": po.po_number, "total_cents": invoice.total_cents},
    )
    return invoice


def approve_invoice(ctx: SessionContext, invoice_id: int) -> tuple[Invoice, rule_evaluator.EvaluationResult]:
    get_invoice(ctx, invoice_id)
    invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()

    if invoice.status != INVOICE_STATUS_CREATED:
        raise InvoiceError(f"Invoice {invoice.invoice_number} is already {invoice.status.lower()}")
    if not invoice.lines:
        raise InvoiceError("Cannot approve an invoice with no lines")

    invoice.status = INVOICE_STATUS_APPROVED
    invoice.approved_by = ctx.actor
    invoice.approved_at = utcnow()
    db.session.flush()

    audit_service.record_event(
        org_id=invoice.org_id,
        event_type="invoice.approved",
        entity_type="invoice",
        entity_id=invoice.id,
        actor=ctx.actor,
        payload={"total_cents": invoice.total_cents},
    )
    general_ledger_service.record_entry(
        bill_to_org_id=invoice.bill_to_org_id,
        remit_to_org_id=invoice.remit_to_org_id,
        transaction_type=GL_TYPE_PAYABLE_INVOICE,
        reference_number=invoice.invoice_number,
        amount_cents=invoice.total_cents,
        transaction_date=invoice.invoice_date,
        actor=ctx.actor,
    )
    evaluation = rule_evaluator.apply_rules(
        transaction_sources.from_invoice(invoice),
        ACTION_INVOICE_APPROVED,
        actor=ctx.actor,
    )
    return invoice, evaluation


def amount_paid_cents(invoice: Invoice) -> int:
    value = db.session.query(db.func.coalesce(db.func.sum(Payment.amount_cents), 0)).filter(
        Payment.invoice_id == invoice.id,
        Payment.status == PAYMENT_STATUS_APPROVED,
    ).scalar()
    return int(value or 0)


def refresh_paid_status(invoice: Invoice) -> bool:
    """Mark an approved invoice Paid when approved payments cover it. Returns True if it changed."""
    if invoice.status != INVOICE_STATUS_APPROVED:
        return False
    if amount_paid_cents(invoice) >= invoice.total_cents:
        invoice.status = INVOICE_STATUS_PAID
        db.session.flush()
        return True
    return False


def get_invoice(ctx: SessionContext, invoice_id: int) -> Invoice:
    return require_record_in_org(ctx, Invoice, invoice_id, label="Invoice")


def list_invoices(
    ctx: SessionContext,
    *,
    status: str | None = None,
    supplier_id: int | None = None,
) -> list[Invoice]:
    query = scoped_query(ctx, Invoice)
    if status:
        query = query.filter(Invoice.status == status)
    if supplier_id is not None:
        query = query.filter(Invoice.remit_to_org_id == supplier_id)
    return query.order_by(Invoice.id.desc()).all()


def awaiting_approval(ctx: SessionContext) -> list[Invoice]:
    return list_invoices(ctx, status=INVOICE_STATUS_CREATED)
