# backend/erp/routes/inventory.py
"""
Inventory API routes: stock position, stock ledger, manual adjustments and
inter-division transfers.

Transfer lifecycle: Transfer initiated -> Transfer confirmed.
Creating a transfer takes the quantity out of the origin's available stock
and books it as in-process at the destination; confirming moves it to
available at the destination and fires the "Transfer confirmed" accounting
rules.
"""
from flask import Blueprint, request, jsonify, g
from erp.decorators import require_auth, require_permission
from erp.errors import json_error
from erp.services import inventory_service, transfer_service
from erp.services.concurrency import atomic, commit_with_retry


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


# =============================================================================
# STOCK
# =============================================================================

@inventory_bp.route("/stock", methods=["GET"])
@require_auth
@require_permission("view-inventory")
def stock_summary():
    """Query params: division_id (optional)."""
    rows = inventory_service.stock_summary(g.session_context, division_id=request.args.get("division_id", type=int))
    return jsonify({"stock": rows, "count": len(rows)}), 200


@inventory_bp.route("/ledger", methods=["GET"])
@require_auth
@require_permission("view-inventory")
def stock_ledger():
    """Query params: item_id, division_id, limit (default 500)."""
    rows = inventory_service.stock_ledger(
        g.session_context,
        item_id=request.args.get("item_id", type=int),
        division_id=request.args.get("division_id", type=int),
        limit=request.args.get("limit", 500, type=int),
    )
    return jsonify({"ledger": [r.to_dict() for r in rows], "count": len(rows)}), 200


@inventory_bp.route("/adjustments", methods=["POST"])
@require_auth
@require_permission("Create Inventory transfer")
def adjust_stock():
    """
    Manual stock adjustment.

    Request body:
    {
        "division_id": int,
        "item_id": int,
        "quantity": int (signed, non-zero),
        "unit_cost_cents": int (optional),
        "reference_number": str (optional)
    }

    Returns:
        201: Stock row written
        400: Invalid request or stock would go negative
    """
    data = request.get_json() or {}

    try:
        row = inventory_service.adjust_stock(g.session_context, data)
        commit_with_retry()
        return jsonify(row.to_dict()), 201
    except Exception as e:
        return json_error(e)


# =============================================================================
# TRANSFERS
# =============================================================================

@inventory_bp.route("/transfers", methods=["GET"])
@require_auth
@require_permission("View Inventory transfer")
def list_transfers():
    """Query params: status, division_id (origin or destination)."""
    transfers = transfer_service.list_transfers(
        g.session_context,
        status=request.args.get("status"),
        division_id=request.args.get("division_id", type=int),
    )
    return jsonify({"transfers": [t.to_dict(include_lines=False) for t in transfers], "count": len(transfers)}), 200


@inventory_bp.route("/transfers/<int:transfer_id>", methods=["GET"])
@require_auth
@require_permission("View Inventory transfer")
def get_transfer(transfer_id: int):
    try:
        transfer = transfer_service.get_transfer(g.session_context, transfer_id)
        body = transfer.to_dict()
        body["editable"] = transfer_service.is_transfer_editable(transfer)
        return jsonify(body), 200
    except Exception as e:
        return json_error(e)


@inventory_bp.route("/transfers", methods=["POST"])
@require_auth
@require_permission("Create Inventory transfer")
def create_transfer():
    """
    Create a transfer.

    Request body:
    {
        "origin_division_id": int,
        "destination_division_id": int,
        "transfer_date": "YYYY-MM-DD" (optional),
        "tracking_number": str (optional),
        "lines": [{"item_id": int, "quantity": int, "uom": str}]
    }

    Returns:
        201: Transfer created
        400: Same divisions, bad lines or insufficient stock
        404: Division or item not in the caller's organization
    """
    data = request.get_json() or {}

    try:
        with atomic():
            transfer = transfer_service.create_transfer(g.session_context, data)
        return jsonify(transfer.to_dict()), 201
    except Exception as e:
        return json_error(e)


@inventory_bp.route("/transfers/<int:transfer_id>", methods=["PATCH"])
@require_auth
@require_permission("Edit Inventory transfer")
def update_transfer(transfer_id: int):
    """Request body: {"tracking_number": str}. Any other key is rejected."""
    data = request.get_json() or {}

    try:
        transfer = transfer_service.update_transfer(g.session_context, transfer_id, data)
        commit_with_retry()
        return jsonify(transfer.to_dict()), 200
    except Exception as e:
        return json_error(e)


@inventory_bp.route("/transfers/<int:transfer_id>/confirm", methods=["POST"])
@require_auth
@require_permission("Confirm Inventory transfer")
def confirm_transfer(transfer_id: int):
    """
    Confirm receipt at the destination.

    Returns the transfer and the accounting rule evaluation; rule failures
    are reported but do not undo the confirmation.
    """
    try:
        with atomic():
            transfer, evaluation = transfer_service.confirm_transfer(g.session_context, transfer_id)
        return jsonify({"transfer": transfer.to_dict(), "accounting": evaluation.to_dict()}), 200
    except Exception as e:
        return json_error(e)
