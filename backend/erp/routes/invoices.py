# backend/erp/routes/invoices.py
"""
Payables invoice API routes.

Invoices are generated from fully received purchase orders (one per PO).
Approval writes a "Payable Invoice" general ledger row and fires the
"Invoice Approved" accounting rules.
"""
from flask import Blueprint, request, jsonify, g
from erp.decorators import require_auth, require_permission
from erp.errors import json_error
from erp.services import invoice_service
from erp.services.concurrency import atomic


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.route("", methods=["GET"])
@require_auth
@require_permission("View Invoices")
def list_invoices():
    """Query params: status, supplier_id (remit-to organization)."""
    invoices = invoice_service.list_invoices(
        g.session_context,
        status=request.args.get("status"),
        supplier_id=request.args.get("supplier_id", type=int),
    )
    return jsonify({"invoices": [i.to_dict(include_lines=False) for i in invoices], "count": len(invoices)}), 200


@invoices_bp.route("/awaiting-approval", methods=["GET"])
@require_auth
@require_permission("Invoice awaiting approval")
def awaiting_approval():
    """Dashboard widget: invoices still in Created status."""
    invoices = invoice_service.awaiting_approval(g.session_context)
    return jsonify({"invoices": [i.to_dict(include_lines=False) for i in invoices], "count": len(invoices)}), 200


@invoices_bp.route("/<int:invoice_id>", methods=["GET"])
@require_auth
@require_permission("View Invoices")
def get_invoice(invoice_id: int):
    try:
        invoice = invoice_service.get_invoice(g.session_context, invoice_id)
        body = invoice.to_dict()
        body["amount_paid_cents"] = invoice_service.amount_paid_cents(invoice)
        return jsonify(body), 200
    except Exception as e:
        return json_error(e)


@invoices_bp.route("/from-po/<int:po_id>", methods=["POST"])
@require_auth
@require_permission("Create Invoice")
def create_invoice_from_po(po_id: int):
    """
    Generate the invoice of a received purchase order.

    Request body (optional): {"invoice_date": "YYYY-MM-DD"}

    Returns:
        201: Invoice created (header and lines in one transaction)
        400: Purchase order not fully received
        409: Purchase order already invoiced
    """
    data = request.get_json(silent=True) or {}

    try:
        with atomic():
            invoice = invoice_service.create_invoice_from_po(g.session_context, po_id, data)
        return jsonify(invoice.to_dict()), 201
    except Exception as e:
        return json_error(e)


@invoices_bp.route("/<int:invoice_id>/approve", methods=["POST"])
@require_auth
@require_permission("approve-invoice")
def approve_invoice(invoice_id: int):
    try:
        with atomic():
            invoice, evaluation = invoice_service.approve_invoice(g.session_context, invoice_id)
        return jsonify({"invoice": invoice.to_dict(), "accounting": evaluation.to_dict()}), 200
    except Exception as e:
        return json_error(e)
