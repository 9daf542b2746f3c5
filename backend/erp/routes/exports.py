# backend/erp/routes/exports.py
"""
Spreadsheet export routes.

GET /api/exports/<dataset> streams an XLSX file of the caller's
organization data. The permission depends on the data set: exporting
journals needs "View Journal", exporting stock needs "view-inventory", etc.
"""
import io

from flask import Blueprint, request, jsonify, g, send_file
from erp.decorators import require_auth
from erp.errors import json_error
from erp.services import export_service, permission_service


exports_bp = Blueprint("exports", __name__, url_prefix="/api/exports")


@exports_bp.route("", methods=["GET"])
@require_auth
def list_datasets():
    """Data sets the caller may export."""
    ctx = g.session_context
    datasets = [
        name for name in export_service.DATASETS
        if ctx.capability.allows(export_service.dataset_permission(name))
    ]
    return jsonify({"datasets": datasets}), 200


@exports_bp.route("/<dataset>", methods=["GET"])
@require_auth
def export_dataset(dataset: str):
    """
    Query params are passed to the data set loader (e.g. search, status,
    remit_to_id).

    Returns:
        200: XLSX attachment
        403: Missing the data set's view permission
        404: Unknown data set
    """
    ctx = g.session_context

    try:
        permission_service.require_permission(
            user_id=ctx.user.id,
            permission_name=export_service.dataset_permission(dataset),
            resource=request.path,
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
            org_id=ctx.org_id,
            capability=ctx.capability,
        )
        filename, data = export_service.export_dataset(ctx, dataset, request.args.to_dict())
    except Exception as e:
        return json_error(e)

    return send_file(
        io.BytesIO(data),
        mimetype=export_service.XLSX_MIMETYPE,
        as_attachment=True,
        download_name=filename,
    )
