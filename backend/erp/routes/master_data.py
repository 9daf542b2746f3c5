# backend/erp/routes/master_data.py
"""
Master data API routes: items and the simple lookup tables (item groups,
categories, sales channels).

Lookup tables share one set of endpoints keyed by kind; the permission is
resolved per kind ("view-item-group", "create-category", ...).
"""
from flask import Blueprint, request, jsonify, g
from erp.decorators import require_auth, require_permission
from erp.errors import json_error
from erp.services import master_data_service, permission_service
from erp.services.concurrency import atomic, commit_with_retry
from erp.validation import ValidationError


master_data_bp = Blueprint("master_data", __name__, url_prefix="/api/master-data")

# lookup kind -> permission suffix
LOOKUP_PERMISSIONS = {
    "item-groups": "item-group",
    "categories": "category",
    "sales-channels": "sales-channel",
}


def _require_lookup_permission(kind: str, action: str) -> None:
    """Raises PermissionDeniedError (logged) when the caller lacks e.g. "create-category"."""
    suffix = LOOKUP_PERMISSIONS.get(kind)
    if suffix is None:
        raise ValidationError(f"Unknown master data type: {kind}")
    ctx = g.session_context
    permission_service.require_permission(
        user_id=ctx.user.id,
        permission_name=f"{action}-{suffix}",
        resource=request.path,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
        org_id=ctx.org_id,
        capability=ctx.capability,
    )


# =============================================================================
# ITEMS
# =============================================================================

@master_data_bp.route("/items", methods=["GET"])
@require_auth
@require_permission("view-item")
def list_items():
    """Query params: search (code or description), status."""
    items = master_data_service.list_items(
        g.session_context,
        search=request.args.get("search"),
        status=request.args.get("status"),
    )
    return jsonify({"items": [i.to_dict(include_children=False) for i in items], "count": len(items)}), 200


@master_data_bp.route("/items/<int:item_id>", methods=["GET"])
@require_auth
@require_permission("view-item")
def get_item(item_id: int):
    try:
        return jsonify(master_data_service.get_item(g.session_context, item_id).to_dict()), 200
    except Exception as e:
        return json_error(e)


@master_data_bp.route("/items", methods=["POST"])
@require_auth
@require_permission("create-item")
def create_item():
    """
    Create an item with its supplier costs and sales channel prices.

    Request body:
    {
        "item_code": str,
        "description": str,
        "item_group_id": int, "category_id": int (optional),
        "uom": str, "weight": int (optional), "gst_bps": int,
        "costs": [{"supplier_id": int, "cost_cents": int}],
        "prices": [{"sales_channel_id": int, "price_cents": int}]
    }
    """
    data = request.get_json() or {}

    try:
        with atomic():
            item = master_data_service.create_item(g.session_context, data)
        return jsonify(item.to_dict()), 201
    except Exception as e:
        return json_error(e)


@master_data_bp.route("/items/<int:item_id>", methods=["PATCH"])
@require_auth
@require_permission("edit-item")
def update_item(item_id: int):
    """costs / prices, when present, replace the existing rows."""
    data = request.get_json() or {}

    try:
        with atomic():
            item = master_data_service.update_item(g.session_context, item_id, data)
        return jsonify(item.to_dict()), 200
    except Exception as e:
        return json_error(e)


@master_data_bp.route("/items/<int:item_id>/display-picture/validate", methods=["POST"])
@require_auth
@require_permission("edit-item")
def validate_display_picture(item_id: int):
    """
    Check a display picture before upload (multipart field "file").

    Returns:
        200: {"valid": true, "width", "height", "content_type", "size_bytes"}
        400: Wrong type, over 5MB, or outside 800x800 to 3000x3000 pixels
        404: Item not found
    """
    try:
        master_data_service.get_item(g.session_context, item_id)
        upload = request.files.get("file")
        if upload is None:
            raise ValidationError("file is required", details={"file": "Missing"})
        data = upload.read()
        width, height = master_data_service.validate_display_picture(upload.mimetype, data)
        return jsonify({
            "valid": True,
            "width": width,
            "height": height,
            "content_type": upload.mimetype,
            "size_bytes": len(data),
        }), 200
    except Exception as e:
        return json_error(e)


# =============================================================================
# LOOKUP TABLES
# =============================================================================

@master_data_bp.route("/<kind>", methods=["GET"])
@require_auth
def list_lookup(kind: str):
    try:
        _require_lookup_permission(kind, "view")
        records = master_data_service.list_lookup(g.session_context, kind, status=request.args.get("status"))
        return jsonify({kind: [r.to_dict() for r in records], "count": len(records)}), 200
    except Exception as e:
        return json_error(e)


@master_data_bp.route("/<kind>", methods=["POST"])
@require_auth
def create_lookup(kind: str):
    """Request body: {"name": str, "status": str (optional), ...kind-specific fields}"""
    data = request.get_json() or {}

    try:
        _require_lookup_permission(kind, "create")
        record = master_data_service.create_lookup(g.session_context, kind, data)
        commit_with_retry()
        return jsonify(record.to_dict()), 201
    except Exception as e:
        return json_error(e)


@master_data_bp.route("/<kind>/<int:record_id>", methods=["PATCH"])
@require_auth
def update_lookup(kind: str, record_id: int):
    data = request.get_json() or {}

    try:
        _require_lookup_permission(kind, "edit")
        record = master_data_service.update_lookup(g.session_context, kind, record_id, data)
        commit_with_retry()
        return jsonify(record.to_dict()), 200
    except Exception as e:
        return json_error(e)
