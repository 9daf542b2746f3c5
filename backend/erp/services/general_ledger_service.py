# Overview: Payables ledger between a bill-to and a remit-to organization.

"""
General ledger

Each row is a signed amount between two organizations:
- Payable Invoice, Debit Note: positive (bill_to owes remit_to more)
- Payment, Credit Note: negative

The statement shows debit/credit columns derived from the sign and a running
balance; outstanding payables is the final balance when it is positive.
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import GeneralLedgerEntry
from ..models.finance import GL_TRANSACTION_TYPES
from ..validation import ValidationError, require_choice
from erp.time_utils import parse_iso_date, to_iso_date, today


def record_entry(
    *,
    bill_to_org_id: int,
    remit_to_org_id: int,
    transaction_type: str,
    reference_number: str,
    amount_cents: int,
    transaction_date=None,
    actor: str | None = None,
) -> GeneralLedgerEntry:
    require_choice("transaction_type", transaction_type, GL_TRANSACTION_TYPES)
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents == 0:
        raise ValidationError("amount_cents must be a non-zero integer")
    entry = GeneralLedgerEntry(
        bill_to_org_id=bill_to_org_id,
        remit_to_org_id=remit_to_org_id,
        transaction_type=transaction_type,
        transaction_date=parse_iso_date(transaction_date) or today(),
        reference_number=reference_number,
        amount_cents=amount_cents,
        created_by=actor,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def ledger_statement(bill_to_org_id: int, remit_to_org_id: int) -> list[dict]:
    """
    Statement rows ordered by date.

    debit_cents is the magnitude of negative amounts, credit_cents the value
    of positive ones; running_balance_cents is the cumulative signed sum.
    """
    entries = (
        db.session.query(GeneralLedgerEntry)
        .filter(
            GeneralLedgerEntry.bill_to_org_id == bill_to_org_id,
            GeneralLedgerEntry.remit_to_org_id == remit_to_org_id,
        )
        .order_by(GeneralLedgerEntry.transaction_date, GeneralLedgerEntry.id)
        .all()
    )

    running = 0
    rows = []
    for entry in entries:
        running += entry.amount_cents
        rows.append({
            "id": entry.id,
            "transaction_date": to_iso_date(entry.transaction_date),
            "transaction_type": entry.transaction_type,
            "reference_number": entry.reference_number,
            "debit_cents": -entry.amount_cents if entry.amount_cents < 0 else 0,
            "credit_cents": entry.amount_cents if entry.amount_cents > 0 else 0,
            "running_balance_cents": running,
        })
    return rows


def outstanding_payables(bill_to_org_id: int, remit_to_org_id: int) -> int | None:
    """Total still owed by bill_to to remit_to, or None when nothing is owed."""
    total = db.session.query(func.coalesce(func.sum(GeneralLedgerEntry.amount_cents), 0)).filter(
        GeneralLedgerEntry.bill_to_org_id == bill_to_org_id,
        GeneralLedgerEntry.remit_to_org_id == remit_to_org_id,
    ).scalar()
    total = int(total or 0)
    return total if total > 0 else None


def counterparties(org_id: int) -> list[int]:
    """Organizations this organization has ledger rows with, as bill-to."""
    rows = (
        db.session.query(GeneralLedgerEntry.remit_to_org_id)
        .filter(GeneralLedgerEntry.bill_to_org_id == org_id)
        .distinct()
        .all()
    )
    return sorted(r[0] for r in rows)
