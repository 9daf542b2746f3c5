# Overview: Exception-to-JSON translation shared by the API routes.

from flask import current_app, jsonify

from .extensions import db
from .services.auth_service import AuthError
from .services.document_service import DocumentSequenceError
from .services.export_service import ExportError
from .services.inventory_service import InventoryError
from .services.invoice_service import InvoiceError
from .services.journal_service import JournalError
from .services.partner_service import PartnerError
from .services.payment_service import PaymentError
from .services.permission_service import PermissionDeniedError
from .services.purchase_order_service import PurchaseOrderError
from .services.role_service import RoleError
from .services.rule_evaluator import RuleError
from .services.route_guard import PUBLIC_ENTRY_ROUTE, UNAUTHORIZED_ROUTE, GuardState
from .services.tenant_service import TenantAccessError
from .services.transfer_service import TransferError
from .services.user_service import UserAdminError
from .validation import ConflictError, NotFoundError, ValidationError


# Business rule violations raised by the domain services
BUSINESS_ERRORS = (
    TransferError,
    PurchaseOrderError,
    InvoiceError,
    PaymentError,
    JournalError,
    RuleError,
    RoleError,
    PartnerError,
    UserAdminError,
    InventoryError,
    DocumentSequenceError,
)


def json_error(exc: Exception):
    """
    Roll back the request transaction and describe the failure.

    Unexpected exceptions are logged with their traceback and reported as a
    generic 500 so internals never leak to the client.
    """
    db.session.rollback()

    if isinstance(exc, ValidationError):
        body = {"error": str(exc)}
        if exc.details:
            body["details"] = exc.details
        return jsonify(body), 400
    if isinstance(exc, ConflictError):
        return jsonify({"error": str(exc)}), 409
    if isinstance(exc, (NotFoundError, TenantAccessError, ExportError)):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, KeyError):
        return jsonify({"error": f"Missing required field: {exc}"}), 400
    if isinstance(exc, AuthError):
        return jsonify({
            "error": str(exc),
            "state": GuardState.UNAUTHENTICATED,
            "redirect": PUBLIC_ENTRY_ROUTE,
        }), 401
    if isinstance(exc, PermissionDeniedError):
        return jsonify({
            "error": str(exc),
            "state": GuardState.PERMISSION_DENIED,
            "redirect": UNAUTHORIZED_ROUTE,
        }), 403
    if isinstance(exc, BUSINESS_ERRORS):
        return jsonify({"error": str(exc)}), 400
    if isinstance(exc, (TypeError, ValueError)):
        return jsonify({"error": f"Invalid request: {exc}"}), 400

    current_app.logger.exception("Unhandled error while processing request")
    return jsonify({"error": "Internal server error"}), 500
