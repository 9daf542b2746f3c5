# backend/erp/routes/payments.py
"""
Payment API routes.

Lifecycle: Created -> Approved | Rejected.

Creation fires "Payment Created"; approval fires "Payment Approved" and
"Payment Processed", writes a "Payment" general ledger row and settles the
linked invoice.
"""
from flask import Blueprint, request, jsonify, g
from erp.decorators import require_auth, require_permission
from erp.errors import json_error
from erp.services import payment_service
from erp.services.concurrency import atomic, commit_with_retry


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.route("", methods=["GET"])
@require_auth
@require_permission("View Payments")
def list_payments():
    """Query params: status, invoice_id."""
    payments = payment_service.list_payments(
        g.session_context,
        status=request.args.get("status"),
        invoice_id=request.args.get("invoice_id", type=int),
    )
    return jsonify({"payments": [p.to_dict() for p in payments], "count": len(payments)}), 200


@payments_bp.route("/<int:payment_id>", methods=["GET"])
@require_auth
@require_permission("View Payments")
def get_payment(payment_id: int):
    try:
        return jsonify(payment_service.get_payment(g.session_context, payment_id).to_dict()), 200
    except Exception as e:
        return json_error(e)


@payments_bp.route("", methods=["POST"])
@require_auth
@require_permission("Create Payment")
def create_payment():
    """
    Create a payment.

    Request body:
    {
        "invoice_id": int (optional; the invoice must be Approved),
        "payee_id": int (defaults to the invoice's remit-to organization),
        "division_id": int (optional),
        "payment_mode": "Bank Transfer" | "UPI" | "Cheque" | "Cash" | "Online Payment" | "Wire Transfer",
        "amount_cents": int (> 0),
        "payment_date": "YYYY-MM-DD" (optional),
        "reference_number": str (optional)
    }
    """
    data = request.get_json() or {}

    try:
        with atomic():
            payment, evaluation = payment_service.create_payment(g.session_context, data)
        return jsonify({"payment": payment.to_dict(), "accounting": evaluation.to_dict()}), 201
    except Exception as e:
        return json_error(e)


@payments_bp.route("/<int:payment_id>/approve", methods=["POST"])
@require_auth
@require_permission("approve_payments")
def approve_payment(payment_id: int):
    try:
        with atomic():
            payment, evaluations = payment_service.approve_payment(g.session_context, payment_id)
        return jsonify({
            "payment": payment.to_dict(),
            "accounting": [e.to_dict() for e in evaluations],
        }), 200
    except Exception as e:
        return json_error(e)


@payments_bp.route("/<int:payment_id>/reject", methods=["POST"])
@require_auth
@require_permission("reject_payments")
def reject_payment(payment_id: int):
    """Body: {"reason": str} (optional)."""
    data = request.get_json(silent=True) or {}

    try:
        payment = payment_service.reject_payment(g.session_context, payment_id, data.get("reason"))
        commit_with_retry()
        return jsonify(payment.to_dict()), 200
    except Exception as e:
        return json_error(e)
