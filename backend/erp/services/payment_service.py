# Overview: Supplier payments; creation, approval (ledger + settlement) and rejection.

from __future__ import annotations

from ..extensions import db
from ..models import Division, Invoice, Organization, Payment
from ..models.finance import (
    ACTION_PAYMENT_APPROVED,
    ACTION_PAYMENT_CREATED,
    ACTION_PAYMENT_PROCESSED,
    GL_TYPE_PAYMENT,
    INVOICE_STATUS_APPROVED,
    PAYMENT_MODES,
    PAYMENT_STATUS_APPROVED,
    PAYMENT_STATUS_CREATED,
    PAYMENT_STATUS_REJECTED,
)
from ..validation import ValidationError, require_amount, require_choice, require_length
from . import (
    audit_service,
    general_ledger_service,
    invoice_service,
    rule_evaluator,
    subledger_service,
    transaction_sources,
)
from .concurrency import lock_for_update
from .document_service import DOC_PAYMENT, next_document_number
from .session_service import SessionContext
from .tenant_service import require_organization, require_record_in_org, scoped_query
from erp.time_utils import parse_iso_date, today, utcnow


class PaymentError(Exception):
    """Raised when a payment cannot be created or changed."""
    pass


def create_payment(ctx: SessionContext, data: dict) -> tuple[Payment, rule_evaluator.EvaluationResult]:
    """
    Record a payment to a payee, optionally against an approved invoice.

    When an invoice is given the payee defaults to its remit-to organization
    and must match it.
    """
    org = require_organization(ctx)

    invoice = None
    if data.get("invoice_id") is not None:
        invoice = require_record_in_org(ctx, Invoice, data.get("invoice_id"), label="Invoice")
        if invoice.status != INVOICE_STATUS_APPROVED:
            raise PaymentError(f"Invoice {invoice.invoice_number} is not awaiting payment (status: {invoice.status})")

    payee_id = data.get("payee_id") or (invoice.remit_to_org_id if invoice else None)
    payee = db.session.get(Organization, payee_id) if payee_id else None
    if not payee:
        raise ValidationError("Payee not found", details={"payee_id": "Unknown organization"})
    if invoice and payee.id != invoice.remit_to_org_id:
        raise PaymentError("Payee does not match the invoice remit-to organization")

    division_id = data.get("division_id") or (invoice.division_id if invoice else None)
    if division_id is not None:
        division_id = require_record_in_org(ctx, Division, division_id, label="Division").id

    payment = Payment(
        org_id=org.id,
        payee_org_id=payee.id,
        division_id=division_id,
        invoice_id=invoice.id if invoice else None,
        payment_number=next_document_number(org_id=org.id, document=DOC_PAYMENT),
        payment_date=parse_iso_date(data.get("payment_date")) or today(),
        payment_mode=require_choice("payment_mode", data.get("payment_mode"), PAYMENT_MODES),
        amount_cents=require_amount("amount_cents", data.get("amount_cents"), allow_zero=False),
        reference_number=require_length("reference_number", data.get("reference_number"), max_len=64) or None,
        remarks=data.get("remarks"),
        status=PAYMENT_STATUS_CREATED,
        created_by=ctx.actor,
    )
    db.session.add(payment)
    db.session.flush()

    audit_service.record_event(
        org_id=org.id,
        event_type="payment.created",
        entity_type="payment",
        entity_id=payment.id,
        actor=ctx.actor,
        payload={"amount_cents": payment.amount_cents},
    )
    evaluation = rule_evaluator.apply_rules(
        transaction_sources.from_payment(payment),
        ACTION_PAYMENT_CREATED,
        actor=ctx.actor,
    )
    return payment, evaluation


def approve_payment(ctx: SessionContext, payment_id: int) -> tuple[Payment, list[rule_evaluator.EvaluationResult]]:
    """
    Approve a payment.

    Writes a negative "Payment" general ledger row, fires "Payment Approved"
    and "Payment Processed" rules, and marks the linked invoice Paid when
    approved payments cover it. Only then are the party entries of the
    invoice and of its payments settled; a partial payment leaves them Open.
    """
    get_payment(ctx, payment_id)
    payment = lock_for_update(db.session.query(Payment).filter_by(id=payment_id)).first()
    if payment.status != PAYMENT_STATUS_CREATED:
        raise PaymentError(f"Cannot approve payment in {payment.status} status")

    payment.status = PAYMENT_STATUS_APPROVED
    payment.approved_by = ctx.actor
    payment.approved_at = utcnow()
    db.session.flush()

    audit_service.record_event(
        org_id=payment.org_id,
        event_type="payment.approved",
        entity_type="payment",
        entity_id=payment.id,
        actor=ctx.actor,
        payload={"amount_cents": payment.amount_cents},
    )
    general_ledger_service.record_entry(
        bill_to_org_id=payment.org_id,
        remit_to_org_id=payment.payee_org_id,
        transaction_type=GL_TYPE_PAYMENT,
        reference_number=payment.payment_number,
        amount_cents=-payment.amount_cents,
        transaction_date=payment.payment_date,
        actor=ctx.actor,
    )

    source = transaction_sources.from_payment(payment)
    evaluations = [
        rule_evaluator.apply_rules(source, ACTION_PAYMENT_APPROVED, actor=ctx.actor),
        rule_evaluator.apply_rules(source, ACTION_PAYMENT_PROCESSED, actor=ctx.actor),
    ]

    invoice = payment.invoice
    if invoice is not None and invoice_service.refresh_paid_status(invoice):
        _settle_invoice(payment.org_id, invoice)

    return payment, evaluations


def _settle_invoice(org_id: int, invoice: Invoice) -> None:
    payment_numbers = [
        number for (number,) in db.session.query(Payment.payment_number).filter(
            Payment.invoice_id == invoice.id,
            Payment.status == PAYMENT_STATUS_APPROVED,
        )
    ]
    for reference in [invoice.invoice_number, *payment_numbers]:
        subledger_service.settle_entries(org_id, reference)


def reject_payment(ctx: SessionContext, payment_id: int, reason: str | None = None) -> Payment:
    get_payment(ctx, payment_id)
    payment = lock_for_update(db.session.query(Payment).filter_by(id=payment_id)).first()
    if payment.status != PAYMENT_STATUS_CREATED:
        raise PaymentError(f"Cannot reject payment in {payment.status} status")
    payment.status = PAYMENT_STATUS_REJECTED
    audit_service.record_event(
        org_id=payment.org_id,
        event_type="payment.rejected",
        entity_type="payment",
        entity_id=payment.id,
        actor=ctx.actor,
        note=reason,
    )
    db.session.flush()
    return payment


def get_payment(ctx: SessionContext, payment_id: int) -> Payment:
    return require_record_in_org(ctx, Payment, payment_id, label="Payment")


def list_payments(
    ctx: SessionContext,
    *,
    status: str | None = None,
    invoice_id: int | None = None,
) -> list[Payment]:
    query = scoped_query(ctx, Payment)
    if status:
        query = query.filter(Payment.status == status)
    if invoice_id is not None:
        query = query.filter(Payment.invoice_id == invoice_id)
    return query.order_by(Payment.id.desc()).all()
