# backend/erp/routes/purchase_orders.py
"""
Purchase order API routes.

Lifecycle: Created -> Approved -> Partially Received -> Received
           Created -> Cancelled

Creating and receiving a PO fire the "PO Created" and "Purchase order
receive" accounting rules; the evaluation is returned with the document.
"""
from flask import Blueprint, request, jsonify, g
from erp.decorators import require_auth, require_permission
from erp.errors import json_error
from erp.services import purchase_order_service
from erp.services.concurrency import atomic, commit_with_retry


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.route("", methods=["GET"])
@require_auth
@require_permission("View PO")
def list_purchase_orders():
    """Query params: status, supplier_id, open (true = Created/Approved/Partially Received)."""
    orders = purchase_order_service.list_purchase_orders(
        g.session_context,
        status=request.args.get("status"),
        supplier_id=request.args.get("supplier_id", type=int),
        open_only=request.args.get("open", "false").lower() == "true",
    )
    return jsonify({"purchase_orders": [po.to_dict(include_lines=False) for po in orders], "count": len(orders)}), 200


@purchase_orders_bp.route("/open", methods=["GET"])
@require_auth
@require_permission("View Open PO Widget")
def open_purchase_orders():
    """Dashboard widget: purchase orders still waiting for goods."""
    orders = purchase_order_service.list_purchase_orders(g.session_context, open_only=True)
    return jsonify({
        "purchase_orders": [po.to_dict(include_lines=False) for po in orders],
        "count": len(orders),
        "total_cents": sum(po.total_cents for po in orders),
    }), 200


@purchase_orders_bp.route("/<int:po_id>", methods=["GET"])
@require_auth
@require_permission("View PO")
def get_purchase_order(po_id: int):
    try:
        return jsonify(purchase_order_service.get_purchase_order(g.session_context, po_id).to_dict()), 200
    except Exception as e:
        return json_error(e)


@purchase_orders_bp.route("", methods=["POST"])
@require_auth
@require_permission("Create PO")
def create_purchase_order():
    """
    Create a purchase order.

    Request body:
    {
        "division_id": int,
        "supplier_id": int,
        "po_date": "YYYY-MM-DD" (optional),
        "payment_terms": "Net 45" (optional),
        "lines": [{"item_id": int, "quantity": int, "unit_price_cents": int, "gst_bps": int, "uom": str}]
    }

    GST is split into CGST/SGST when supplier and division share a state,
    IGST otherwise.

    Returns:
        201: {"purchase_order": {...}, "accounting": {...}}
        400: Invalid lines
        404: Division or supplier not found
    """
    data = request.get_json() or {}

    try:
        with atomic():
            po, evaluation = purchase_order_service.create_purchase_order(g.session_context, data)
        return jsonify({"purchase_order": po.to_dict(), "accounting": evaluation.to_dict()}), 201
    except Exception as e:
        return json_error(e)


@purchase_orders_bp.route("/<int:po_id>", methods=["PATCH"])
@require_auth
@require_permission("Edit PO")
def update_purchase_order(po_id: int):
    """
    Edit a Created purchase order.

    Request body: any of division_id, po_date, requested_delivery_date,
    payment_terms, remarks; "lines" replaces every line. The supplier cannot
    change.

    Returns:
        200: Updated purchase order
        400: Not Created, or invalid input
        404: PO, division or item not found
    """
    data = request.get_json() or {}

    try:
        with atomic():
            po = purchase_order_service.update_purchase_order(g.session_context, po_id, data)
        return jsonify(po.to_dict()), 200
    except Exception as e:
        return json_error(e)


@purchase_orders_bp.route("/<int:po_id>/approve", methods=["POST"])
@require_auth
@require_permission("Edit PO")
def approve_purchase_order(po_id: int):
    try:
        po = purchase_order_service.approve_purchase_order(g.session_context, po_id)
        commit_with_retry()
        return jsonify(po.to_dict()), 200
    except Exception as e:
        return json_error(e)


@purchase_orders_bp.route("/<int:po_id>/cancel", methods=["POST"])
@require_auth
@require_permission("Cancel PO")
def cancel_purchase_order(po_id: int):
    """Only a Created purchase order can be cancelled. Body: {"reason": str} (optional)."""
    data = request.get_json(silent=True) or {}

    try:
        po = purchase_order_service.cancel_purchase_order(g.session_context, po_id, data.get("reason"))
        commit_with_retry()
        return jsonify(po.to_dict()), 200
    except Exception as e:
        return json_error(e)


@purchase_orders_bp.route("/<int:po_id>/receive", methods=["POST"])
@require_auth
@require_permission("Create PO Receive")
def receive_purchase_order(po_id: int):
    """
    Receive goods against a purchase order.

    Request body:
    {
        "receipt_date": "YYYY-MM-DD" (optional),
        "lines": [{"line_id": int, "quantity": int}]
    }

    Returns:
        200: {"purchase_order", "receipts", "accounting"}
        400: Quantity exceeds what is still open, or PO not receivable
    """
    data = request.get_json() or {}

    try:
        with atomic():
            po, receipts, evaluation = purchase_order_service.receive_purchase_order(g.session_context, po_id, data)
        return jsonify({
            "purchase_order": po.to_dict(),
            "receipts": [r.to_dict() for r in receipts],
            "accounting": evaluation.to_dict(),
        }), 200
    except Exception as e:
        return json_error(e)


@purchase_orders_bp.route("/<int:po_id>/receipts", methods=["GET"])
@require_auth
@require_permission("View PO Receive")
def list_receipts(po_id: int):
    try:
        receipts = purchase_order_service.list_receipts(g.session_context, po_id)
        return jsonify({"receipts": [r.to_dict() for r in receipts], "count": len(receipts)}), 200
    except Exception as e:
        return json_error(e)
