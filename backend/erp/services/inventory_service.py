# Overview: Stock ledger queries and movements (receipts, adjustments, summaries).

"""
Inventory invariants

- Stock is ledger-derived from InventoryStock rows; there is no mutable
  on-hand column. Available and in-process positions are SUM of the signed
  deltas per organization/division/item.
- Available stock may never go negative as the result of a movement.
- Goods in transit to a division sit in in_process_quantity until the
  transfer is confirmed.
- The unit cost carried by a movement is the latest inbound cost
  (PO_RECEIVE, ADJUSTMENT with cost, or TRANSFER_IN) for the item in that
  organization.
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Division, InventoryStock, Item
from ..models.inventory import STOCK_TXN_ADJUSTMENT, STOCK_TXN_PO_RECEIVE, STOCK_TXN_TRANSFER_IN
from ..validation import ValidationError, require_amount
from .session_service import SessionContext
from .tenant_service import require_organization, require_record_in_org, scoped_query


class InventoryError(Exception):
    """Raised when a stock movement would break the ledger invariants."""
    pass


def get_available_quantity(org_id: int, division_id: int, item_id: int) -> int:
    q = db.session.query(
        func.coalesce(func.sum(InventoryStock.available_quantity), 0)
    ).filter(
        InventoryStock.org_id == org_id,
        InventoryStock.division_id == division_id,
        InventoryStock.item_id == item_id,
    )
    return int(q.scalar() or 0)


def get_in_process_quantity(org_id: int, division_id: int, item_id: int) -> int:
    q = db.session.query(
        func.coalesce(func.sum(InventoryStock.in_process_quantity), 0)
    ).filter(
        InventoryStock.org_id == org_id,
        InventoryStock.division_id == division_id,
        InventoryStock.item_id == item_id,
    )
    return int(q.scalar() or 0)


def get_latest_cost_cents(org_id: int, item_id: int) -> int:
    """Most recent inbound unit cost for the item, 0 when it was never received."""
    row = (
        db.session.query(InventoryStock.inventory_cost_cents)
        .filter(
            InventoryStock.org_id == org_id,
            InventoryStock.item_id == item_id,
            InventoryStock.transaction_type.in_([STOCK_TXN_PO_RECEIVE, STOCK_TXN_ADJUSTMENT, STOCK_TXN_TRANSFER_IN]),
            InventoryStock.inventory_cost_cents > 0,
        )
        .order_by(InventoryStock.id.desc())
        .first()
    )
    return int(row[0]) if row else 0


def record_movement(
    *,
    org_id: int,
    division_id: int,
    item_id: int,
    uom: str,
    transaction_type: str,
    available_delta: int = 0,
    in_process_delta: int = 0,
    unit_cost_cents: int = 0,
    reference_number: str | None = None,
    actor: str | None = None,
) -> InventoryStock:
    """
    Append one signed row to the stock ledger.

    Flushed, not committed. Refuses a negative resulting available position.
    """
    if available_delta < 0:
        on_hand = get_available_quantity(org_id, division_id, item_id)
        if on_hand + available_delta < 0:
            raise InventoryError(
                f"Insufficient stock for item {item_id}. Available: {on_hand}, requested: {-available_delta}"
            )

    row = InventoryStock(
        org_id=org_id,
        division_id=division_id,
        item_id=item_id,
        available_quantity=available_delta,
        in_process_quantity=in_process_delta,
        uom=uom,
        transaction_type=transaction_type,
        reference_number=reference_number,
        inventory_cost_cents=unit_cost_cents,
        created_by=actor,
    )
    db.session.add(row)
    db.session.flush()
    return row


def adjust_stock(ctx: SessionContext, data: dict) -> InventoryStock:
    """
    Manual stock adjustment (opening balances, count corrections).

    quantity is a signed delta; unit_cost_cents applies to positive
    adjustments and defaults to the latest known cost.
    """
    org = require_organization(ctx)
    division = require_record_in_org(ctx, Division, data.get("division_id"), label="Division")
    item = require_record_in_org(ctx, Item, data.get("item_id"), label="Item")

    quantity = data.get("quantity")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity == 0:
        raise ValidationError("quantity must be a non-zero integer")

    cost = data.get("unit_cost_cents")
    cost = require_amount("unit_cost_cents", cost) if cost is not None else get_latest_cost_cents(org.id, item.id)

    return record_movement(
        org_id=org.id,
        division_id=division.id,
        item_id=item.id,
        uom=data.get("uom") or item.uom,
        transaction_type=STOCK_TXN_ADJUSTMENT,
        available_delta=quantity,
        unit_cost_cents=cost,
        reference_number=data.get("reference_number"),
        actor=ctx.actor,
    )


def stock_summary(ctx: SessionContext, *, division_id: int | None = None) -> list[dict]:
    """
    Current position per division and item.

    available_value_cents values the available quantity at the latest cost.
    """
    if ctx.org_id is None:
        return []
    query = db.session.query(
        InventoryStock.division_id,
        InventoryStock.item_id,
        func.sum(InventoryStock.available_quantity).label("available"),
        func.sum(InventoryStock.in_process_quantity).label("in_process"),
    ).filter(InventoryStock.org_id == ctx.org_id)
    if division_id is not None:
        query = query.filter(InventoryStock.division_id == division_id)
    rows = query.group_by(InventoryStock.division_id, InventoryStock.item_id).all()

    divisions = {d.id: d for d in scoped_query(ctx, Division)}
    items = {i.id: i for i in scoped_query(ctx, Item)}
    summary = []
    for row in rows:
        item = items.get(row.item_id)
        division = divisions.get(row.division_id)
        available = int(row.available or 0)
        cost = get_latest_cost_cents(ctx.org_id, row.item_id)
        summary.append({
            "division_id": row.division_id,
            "division_code": division.code if division else None,
            "item_id": row.item_id,
            "item_code": item.item_code if item else None,
            "description": item.description if item else None,
            "uom": item.uom if item else None,
            "available_quantity": available,
            "in_process_quantity": int(row.in_process or 0),
            "unit_cost_cents": cost,
            "available_value_cents": available * cost,
        })
    summary.sort(key=lambda r: (r["division_code"] or "", r["item_code"] or ""))
    return summary


def stock_ledger(
    ctx: SessionContext,
    *,
    item_id: int | None = None,
    division_id: int | None = None,
    limit: int = 500,
) -> list[InventoryStock]:
    query = scoped_query(ctx, InventoryStock)
    if item_id is not None:
        query = query.filter(InventoryStock.item_id == item_id)
    if division_id is not None:
        query = query.filter(InventoryStock.division_id == division_id)
    limit = max(1, min(limit, 5000))
    return query.order_by(InventoryStock.id.desc()).limit(limit).all()
