# Overview: Double-entry journals; create as Draft, post when balanced, reverse once posted.

"""
Journal lifecycle

    Draft --post--> Posted --reverse--> Reversed

INVARIANTS:
- Every line carries a non-negative debit and credit, exactly one of them
  positive.
- A journal can only be posted with at least one line and
  total debit == total credit > 0.
- Only posted journals can be reversed. Reversal is a status change plus an
  audit record; the lines are kept for the audit trail.
"""

from __future__ import annotations

from ..extensions import db
from ..models import ChartOfAccount, JournalHeader, JournalLine
from ..models.finance import (
    ACCOUNT_STATUS_ACTIVE,
    JOURNAL_STATUS_DRAFT,
    JOURNAL_STATUS_POSTED,
    JOURNAL_STATUS_REVERSED,
)
from ..validation import ValidationError
from . import audit_service
from .concurrency import lock_for_update
from .document_service import DOC_JOURNAL, next_document_number
from .session_service import SessionContext
from .tenant_service import require_organization, require_record_in_org, scoped_query
from erp.time_utils import parse_iso_date, today, utcnow


class JournalError(Exception):
    """Raised when a journal cannot be created, posted or reversed."""
    pass


def _clean_amount(value, label: str) -> int:
    if value in (None, ""):
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise JournalError(f"{label} must be an integer amount in minor units")
    if value < 0:
        raise JournalError(f"{label} cannot be negative")
    return value


def build_lines(rows) -> list[JournalLine]:
    """Validate raw line dicts and turn them into JournalLine objects (unsaved)."""
    lines = []
    for idx, row in enumerate(rows or [], start=1):
        code = (row.get("account_code") or "").strip()
        if not code:
            raise JournalError(f"Line {idx}: account_code is required")
        debit = _clean_amount(row.get("debit_cents"), f"Line {idx} debit")
        credit = _clean_amount(row.get("credit_cents"), f"Line {idx} credit")
        if (debit > 0) == (credit > 0):
            raise JournalError(f"Line {idx}: exactly one of debit or credit must be positive")
        lines.append(JournalLine(
            line_number=idx,
            account_code=code,
            debit_cents=debit,
            credit_cents=credit,
            narration=row.get("narration"),
            sl_reference=row.get("sl_reference"),
            rule_id=row.get("rule_id"),
        ))
    return lines


def create_journal(
    *,
    org_id: int,
    lines,
    journal_date=None,
    source_type: str | None = None,
    source_reference: str | None = None,
    triggering_action: str | None = None,
    narration: str | None = None,
    actor: str | None = None,
) -> JournalHeader:
    """Create a Draft journal with its lines. Flushed, not committed."""
    journal = JournalHeader(
        org_id=org_id,
        journal_number=next_document_number(org_id=org_id, document=DOC_JOURNAL),
        journal_date=parse_iso_date(journal_date) or today(),
        source_type=source_type,
        source_reference=source_reference,
        triggering_action=triggering_action,
        narration=narration,
        status=JOURNAL_STATUS_DRAFT,
        created_by=actor,
    )
    journal.lines = build_lines(lines)
    db.session.add(journal)
    db.session.flush()
    return journal


def journal_totals(journal: JournalHeader) -> dict:
    debit = journal.total_debit_cents
    credit = journal.total_credit_cents
    return {
        "total_debit_cents": debit,
        "total_credit_cents": credit,
        "difference_cents": debit - credit,
        "is_balanced": bool(journal.lines) and debit == credit and debit > 0,
    }


def post(journal: JournalHeader, *, actor: str | None = None) -> JournalHeader:
    """Post a Draft journal (no tenant check; callers have already scoped it)."""
    if journal.status != JOURNAL_STATUS_DRAFT:
        raise JournalError(f"Cannot post journal in {journal.status} status")
    if not journal.lines:
        raise JournalError("Cannot post a journal with no lines")

    totals = journal_totals(journal)
    if not totals["is_balanced"]:
        raise JournalError(
            f"Journal is not balanced (debit {totals['total_debit_cents']}, "
            f"credit {totals['total_credit_cents']})"
        )

    journal.status = JOURNAL_STATUS_POSTED
    journal.posted_by = actor
    journal.posted_at = utcnow()
    audit_service.record_event(
        org_id=journal.org_id,
        event_type="journal.posted",
        entity_type="journal",
        entity_id=journal.id,
        actor=actor,
        payload=totals,
    )
    db.session.flush()
    return journal


def _check_accounts(org_id: int, lines: list[JournalLine]) -> None:
    codes = {line.account_code for line in lines}
    if not codes:
        return
    active = {
        code for (code,) in db.session.query(ChartOfAccount.account_code).filter(
            ChartOfAccount.org_id == org_id,
            ChartOfAccount.account_code.in_(codes),
            ChartOfAccount.status == ACCOUNT_STATUS_ACTIVE,
        )
    }
    unknown = sorted(codes - active)
    if unknown:
        raise ValidationError(f"Unknown or inactive account code(s): {', '.join(unknown)}")


def create_manual_journal(ctx: SessionContext, data: dict) -> JournalHeader:
    """Journal entered by a user. Account codes must exist and be active."""
    org = require_organization(ctx)
    lines = build_lines(data.get("lines"))
    _check_accounts(org.id, lines)
    return create_journal(
        org_id=org.id,
        lines=data.get("lines"),
        journal_date=data.get("journal_date"),
        source_type=data.get("source_type") or "Manual",
        source_reference=data.get("source_reference"),
        narration=data.get("narration"),
        actor=ctx.actor,
    )


def get_journal(ctx: SessionContext, journal_id: int) -> JournalHeader:
    return require_record_in_org(ctx, JournalHeader, journal_id, label="Journal")


def post_journal(ctx: SessionContext, journal_id: int) -> JournalHeader:
    get_journal(ctx, journal_id)
    journal = lock_for_update(db.session.query(JournalHeader).filter_by(id=journal_id)).first()
    return post(journal, actor=ctx.actor)


def reverse_journal(ctx: SessionContext, journal_id: int, reason: str | None = None) -> JournalHeader:
    get_journal(ctx, journal_id)
    journal = lock_for_update(db.session.query(JournalHeader).filter_by(id=journal_id)).first()
    if journal.status != JOURNAL_STATUS_POSTED:
        raise JournalError(f"Only posted journals can be reversed (status: {journal.status})")

    journal.status = JOURNAL_STATUS_REVERSED
    journal.reversed_by = ctx.actor
    journal.reversed_at = utcnow()
    audit_service.record_event(
        org_id=journal.org_id,
        event_type="journal.reversed",
        entity_type="journal",
        entity_id=journal.id,
        actor=ctx.actor,
        note=reason,
    )
    db.session.flush()
    return journal


def list_journals(
    ctx: SessionContext,
    *,
    status: str | None = None,
    source_reference: str | None = None,
    source_type: str | None = None,
) -> list[JournalHeader]:
    query = scoped_query(ctx, JournalHeader)
    if status:
        query = query.filter(JournalHeader.status == status)
    if source_reference:
        query = query.filter(JournalHeader.source_reference == source_reference)
    if source_type:
        query = query.filter(JournalHeader.source_type == source_type)
    return query.order_by(JournalHeader.id.desc()).all()
