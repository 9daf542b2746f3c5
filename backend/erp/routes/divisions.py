# backend/erp/routes/divisions.py
"""
Division API routes.

Divisions always belong to the caller's organization; the full code is the
organization code followed by the 3-character user_defined_code.
"""
from flask import Blueprint, request, jsonify, g
from erp.decorators import require_auth, require_permission
from erp.errors import json_error
from erp.services import division_service
from erp.services.concurrency import atomic


divisions_bp = Blueprint("divisions", __name__, url_prefix="/api/divisions")


@divisions_bp.route("", methods=["GET"])
@require_auth
@require_permission("view-division")
def list_divisions():
    """Query params: status (optional)."""
    divisions = division_service.list_divisions(g.session_context, status=request.args.get("status"))
    return jsonify({"divisions": [d.to_dict() for d in divisions], "count": len(divisions)}), 200


@divisions_bp.route("/<int:division_id>", methods=["GET"])
@require_auth
@require_permission("view-division")
def get_division(division_id: int):
    try:
        division = division_service.get_division(g.session_context, division_id)
        return jsonify(division.to_dict(include_children=True)), 200
    except Exception as e:
        return json_error(e)


@divisions_bp.route("", methods=["POST"])
@require_auth
@require_permission("create-division")
def create_division():
    """
    Create a division.

    Request body:
    {
        "user_defined_code": "001",
        "name": str,
        "type": str (optional),
        "contacts": [...], "references": [...]
    }

    Returns:
        201: Division created
        400: Invalid code or field
        409: Code already exists
    """
    data = request.get_json() or {}

    try:
        with atomic():
            division = division_service.create_division(g.session_context, data)
        return jsonify(division.to_dict(include_children=True)), 201
    except Exception as e:
        return json_error(e)


@divisions_bp.route("/<int:division_id>", methods=["PATCH"])
@require_auth
@require_permission("edit-division")
def update_division(division_id: int):
    data = request.get_json() or {}

    try:
        with atomic():
            division = division_service.update_division(g.session_context, division_id, data)
        return jsonify(division.to_dict(include_children=True)), 200
    except Exception as e:
        return json_error(e)
