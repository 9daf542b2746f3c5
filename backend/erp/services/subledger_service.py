# Overview: Per-party subledger entries; open balances and settlement.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import SubledgerEntry
from ..models.finance import SUBLEDGER_STATUS_OPEN, SUBLEDGER_STATUS_SETTLED
from .session_service import SessionContext
from .tenant_service import scoped_query
from erp.time_utils import parse_iso_date, today, utcnow


def add_entry(
    *,
    org_id: int,
    party_org_id: int,
    journal_id: int | None = None,
    party_contact_id: int | None = None,
    account_code: str | None = None,
    transaction_date=None,
    debit_cents: int = 0,
    credit_cents: int = 0,
    source_reference: str | None = None,
    transaction_category: str | None = None,
    triggering_action: str | None = None,
    actor: str | None = None,
) -> SubledgerEntry:
    entry = SubledgerEntry(
        org_id=org_id,
        journal_id=journal_id,
        party_org_id=party_org_id,
        party_contact_id=party_contact_id,
        account_code=account_code,
        transaction_date=parse_iso_date(transaction_date) or today(),
        debit_cents=debit_cents,
        credit_cents=credit_cents,
        source_reference=source_reference,
        transaction_category=transaction_category,
        triggering_action=triggering_action,
        status=SUBLEDGER_STATUS_OPEN,
        created_by=actor,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def party_balance(org_id: int, party_org_id: int) -> int:
    """
    Open balance owed to a party: SUM(credit - debit) over Open entries.

    Positive means the organization owes the party.
    """
    value = db.session.query(
        func.coalesce(func.sum(SubledgerEntry.credit_cents - SubledgerEntry.debit_cents), 0)
    ).filter(
        SubledgerEntry.org_id == org_id,
        SubledgerEntry.party_org_id == party_org_id,
        SubledgerEntry.status == SUBLEDGER_STATUS_OPEN,
    ).scalar()
    return int(value or 0)


def settle_entries(org_id: int, source_reference: str) -> int:
    """Mark every Open entry for a document as Settled. Returns the number settled."""
    entries = db.session.query(SubledgerEntry).filter(
        SubledgerEntry.org_id == org_id,
        SubledgerEntry.source_reference == source_reference,
        SubledgerEntry.status == SUBLEDGER_STATUS_OPEN,
    ).all()
    now = utcnow()
    for entry in entries:
        entry.status = SUBLEDGER_STATUS_SETTLED
        entry.settled_at = now
    db.session.flush()
    return len(entries)


def list_entries(
    ctx: SessionContext,
    *,
    party_org_id: int | None = None,
    status: str | None = None,
    source_reference: str | None = None,
) -> list[SubledgerEntry]:
    query = scoped_query(ctx, SubledgerEntry)
    if party_org_id is not None:
        query = query.filter(SubledgerEntry.party_org_id == party_org_id)
    if status:
        query = query.filter(SubledgerEntry.status == status)
    if source_reference:
        query = query.filter(SubledgerEntry.source_reference == source_reference)
    return query.order_by(SubledgerEntry.transaction_date, SubledgerEntry.id).all()
