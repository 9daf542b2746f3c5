# Overview: Append-only business event log (document state changes, rule failures).

from __future__ import annotations

import json

from ..extensions import db
from ..models import AuditEvent
from erp.time_utils import utcnow


def record_event(
    *,
    org_id: int | None,
    event_type: str,
    entity_type: str,
    entity_id: int | None = None,
    actor: str | None = None,
    note: str | None = None,
    payload: dict | None = None,
) -> AuditEvent:
    """
    Append a business event.

    Flushed, not committed: the event shares the transaction of the change it
    describes, so a rolled back change leaves no event behind.

    event_type examples:
    - purchase_order.created / .approved / .cancelled / .received
    - invoice.created / invoice.approved
    - payment.created / .approved / .rejected
    - transfer.created / transfer.confirmed
    - journal.posted / journal.reversed
    - accounting_rule.failed
    """
    event = AuditEvent(
        org_id=org_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor=actor,
        note=note,
        payload=json.dumps(payload, default=str) if payload is not None else None,
        occurred_at=utcnow(),
    )
    db.session.add(event)
    db.session.flush()
    return event


def list_events(
    *,
    org_id: int,
    entity_type: str | None = None,
    entity_id: int | None = None,
    event_type: str | None = None,
    limit: int = 100,
) -> list[AuditEvent]:
    query = db.session.query(AuditEvent).filter(AuditEvent.org_id == org_id)
    if entity_type:
        query = query.filter(AuditEvent.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(AuditEvent.entity_id == entity_id)
    if event_type:
        query = query.filter(AuditEvent.event_type == event_type)
    limit = max(1, min(limit, 500))
    return query.order_by(AuditEvent.id.desc()).limit(limit).all()
