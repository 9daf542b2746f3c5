# Overview: Allocation of human-readable document numbers per organization.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence, Organization


DOC_PURCHASE_ORDER = ("PURCHASE_ORDER", "PO")
DOC_PO_RECEIPT = ("PO_RECEIPT", "GRN")
DOC_INVOICE = ("INVOICE", "INV")
DOC_PAYMENT = ("PAYMENT", "PAY")
DOC_TRANSFER = ("TRANSFER", "TRF")
DOC_JOURNAL = ("JOURNAL", "JV")


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_document_number(*, org_id: int, document: tuple[str, str], pad: int = 4) -> str:
    """
    Allocate the next number for an organization/document type.

    Format: <PREFIX>-<ORGCODE>-<NNNN>, e.g. "PO-ACME-0007".

    The counter row is bumped with a single UPDATE so concurrent writers
    serialize on that row; the first allocation creates the row. Runs inside
    the caller's transaction so a rolled back document does not burn a number.
    """
    document_type, prefix = document
    if not org_id:
        raise DocumentSequenceError("org_id is required")

    org = db.session.get(Organization, org_id)
    if not org:
        raise DocumentSequenceError("Organization not found")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.org_id == org_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)

    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(org_id=org_id, document_type=document_type)
            .scalar()
        )
        number = current - 1
    else:
        db.session.add(DocumentSequence(org_id=org_id, document_type=document_type, next_number=2))
        db.session.flush()
        number = 1

    return f"{prefix}-{org.code}-{number:0{pad}d}"
