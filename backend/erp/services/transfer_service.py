# Overview: Inventory transfers between divisions of one organization.

"""
Inter-division transfer service.

WHY: Stock moves between divisions with a confirmation step so goods in
transit are never counted as available at either end.

LIFECYCLE:
1. Transfer initiated: document created; origin loses available stock,
   destination gains in-process stock (TRANSFER_OUT / TRANSFER_IN rows)
2. Transfer confirmed: destination in-process stock becomes available;
   "Transfer confirmed" accounting rules fire

While initiated, only the tracking number may change.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Division, InventoryTransfer, InventoryTransferLine, Item
from ..models.finance import ACTION_TRANSFER_CONFIRMED
from ..models.inventory import (
    STOCK_TXN_TRANSFER_IN,
    STOCK_TXN_TRANSFER_OUT,
    TRANSFER_STATUS_CONFIRMED,
    TRANSFER_STATUS_INITIATED,
)
from . import audit_service, inventory_service, rule_evaluator, transaction_sources
from .concurrency import lock_for_update
from .document_service import DOC_TRANSFER, next_document_number
from .session_service import SessionContext
from .tenant_service import require_organization, require_record_in_org, scoped_query
from erp.time_utils import parse_iso_date, today, utcnow


EDITABLE_FIELDS = {"tracking_number"}


class TransferError(Exception):
    """Raised when transfer operations fail."""
    pass


def is_transfer_editable(transfer: InventoryTransfer | None) -> bool:
    return transfer is not None and transfer.status == TRANSFER_STATUS_INITIATED


def create_transfer(ctx: SessionContext, data: dict) -> InventoryTransfer:
    """
    Create a transfer (status: Transfer initiated) and move the stock.

    Raises:
        TransferError: same origin and destination, no lines, bad quantity,
            duplicate item, or insufficient stock at the origin
    """
    org = require_organization(ctx)
    origin = require_record_in_org(ctx, Division, data.get("origin_division_id"), label="Origin division")
    destination = require_record_in_org(
        ctx, Division, data.get("destination_division_id"), label="Destination division"
    )
    if origin.id == destination.id:
        raise TransferError("Cannot transfer to the same division")

    rows = data.get("lines") or []
    if not rows:
        raise TransferError("A transfer needs at least one line")

    lines = []
    seen = set()
    for idx, row in enumerate(rows, start=1):
        item = require_record_in_org(ctx, Item, row.get("item_id"), label="Item")
        if item.id in seen:
            raise TransferError(f"Item {item.item_code} already on this transfer")
        seen.add(item.id)

        quantity = row.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise TransferError(f"Line {idx}: quantity must be positive")

        on_hand = inventory_service.get_available_quantity(org.id, origin.id, item.id)
        if on_hand < quantity:
            raise TransferError(
                f"Insufficient inventory for item {item.item_code}. "
                f"On-hand: {on_hand}, requested: {quantity}"
            )
        lines.append(InventoryTransferLine(
            item_id=item.id,
            quantity=quantity,
            uom=row.get("uom") or item.uom,
            inventory_cost_cents=inventory_service.get_latest_cost_cents(org.id, item.id),
        ))

    transfer = InventoryTransfer(
        org_id=org.id,
        transfer_number=next_document_number(org_id=org.id, document=DOC_TRANSFER),
        origin_division_id=origin.id,
        destination_division_id=destination.id,
        transfer_date=parse_iso_date(data.get("transfer_date")) or today(),
        tracking_number=data.get("tracking_number"),
        status=TRANSFER_STATUS_INITIATED,
        created_by=ctx.actor,
    )
    transfer.lines = lines
    db.session.add(transfer)
    db.session.flush()

    for line in transfer.lines:
        inventory_service.record_movement(
            org_id=org.id,
            division_id=origin.id,
            item_id=line.item_id,
            uom=line.uom,
            transaction_type=STOCK_TXN_TRANSFER_OUT,
            available_delta=-line.quantity,
            unit_cost_cents=line.inventory_cost_cents,
            reference_number=transfer.transfer_number,
            actor=ctx.actor,
        )
        inventory_service.record_movement(
            org_id=org.id,
            division_id=destination.id,
            item_id=line.item_id,
            uom=line.uom,
            transaction_type=STOCK_TXN_TRANSFER_IN,
            in_process_delta=line.quantity,
            unit_cost_cents=line.inventory_cost_cents,
            reference_number=transfer.transfer_number,
            actor=ctx.actor,
        )

    audit_service.record_event(
        org_id=org.id,
        event_type="transfer.created",
        entity_type="transfer",
        entity_id=transfer.id,
        actor=ctx.actor,
    )
    return transfer


def update_transfer(ctx: SessionContext, transfer_id: int, data: dict) -> InventoryTransfer:
    """Only tracking_number can change, and only while the transfer is initiated."""
    transfer = get_transfer(ctx, transfer_id)
    if not is_transfer_editable(transfer):
        raise TransferError(f"Cannot edit transfer in '{transfer.status}' status")

    rejected = sorted(set(data) - EDITABLE_FIELDS)
    if rejected:
        raise TransferError(f"Only tracking_number can be changed (got: {', '.join(rejected)})")

    if "tracking_number" in data:
        tracking = data.get("tracking_number")
        if tracking is not None:
            tracking = str(tracking).strip() or None
        transfer.tracking_number = tracking
    transfer.updated_by = ctx.actor
    transfer.updated_at = utcnow()
    db.session.flush()
    return transfer


def confirm_transfer(ctx: SessionContext, transfer_id: int) -> tuple[InventoryTransfer, rule_evaluator.EvaluationResult]:
    """
    Confirm receipt at the destination.

    Moves each line's quantity from in-process to available at the
    destination, then fires "Transfer confirmed" rules.
    """
    get_transfer(ctx, transfer_id)
    transfer = lock_for_update(db.session.query(InventoryTransfer).filter_by(id=transfer_id)).first()
    if transfer.status != TRANSFER_STATUS_INITIATED:
        raise TransferError(f"Cannot confirm transfer in '{transfer.status}' status")

    for line in transfer.lines:
        inventory_service.record_movement(
            org_id=transfer.org_id,
            division_id=transfer.destination_division_id,
            item_id=line.item_id,
            uom=line.uom,
            transaction_type=STOCK_TXN_TRANSFER_IN,
            available_delta=line.quantity,
            in_process_delta=-line.quantity,
            unit_cost_cents=line.inventory_cost_cents,
            reference_number=transfer.transfer_number,
            actor=ctx.actor,
        )

    transfer.status = TRANSFER_STATUS_CONFIRMED
    transfer.confirmed_by = ctx.actor
    transfer.confirmed_at = utcnow()
    db.session.flush()

    audit_service.record_event(
        org_id=transfer.org_id,
        event_type="transfer.confirmed",
        entity_type="transfer",
        entity_id=transfer.id,
        actor=ctx.actor,
    )
    evaluation = rule_evaluator.apply_rules(
        transaction_sources.from_transfer(transfer),
        ACTION_TRANSFER_CONFIRMED,
        actor=ctx.actor,
    )
    return transfer, evaluation


def get_transfer(ctx: SessionContext, transfer_id: int) -> InventoryTransfer:
    return require_record_in_org(ctx, InventoryTransfer, transfer_id, label="Transfer")


def list_transfers(
    ctx: SessionContext,
    *,
    status: str | None = None,
    division_id: int | None = None,
) -> list[InventoryTransfer]:
    query = scoped_query(ctx, InventoryTransfer)
    if status:
        query = query.filter(InventoryTransfer.status == status)
    if division_id is not None:
        query = query.filter(db.or_(
            InventoryTransfer.origin_division_id == division_id,
            InventoryTransfer.destination_division_id == division_id,
        ))
    return query.order_by(InventoryTransfer.id.desc()).all()
