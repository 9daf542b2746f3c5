# backend/erp/routes/partners.py
"""
Partner API routes.

A partner is another organization the caller's organization trades with
(supplier, customer). Partners are found by organization code or GST number
and added in bulk.
"""
from flask import Blueprint, request, jsonify, g
from erp.decorators import require_auth, require_permission
from erp.errors import json_error
from erp.services import organization_service, partner_service
from erp.services.concurrency import commit_with_retry


partners_bp = Blueprint("partners", __name__, url_prefix="/api/partners")


@partners_bp.route("", methods=["GET"])
@require_auth
@require_permission("view_organization")
def list_partners():
    """Query params: status, type (partner organization type)."""
    partners = partner_service.list_partners(
        g.session_context,
        status=request.args.get("status"),
        org_type=request.args.get("type"),
    )
    return jsonify({"partners": [p.to_dict() for p in partners], "count": len(partners)}), 200


@partners_bp.route("/search", methods=["GET"])
@require_auth
@require_permission("manage_partner")
def search_candidates():
    """
    Query params: search_type ("code" | "gst"), term.

    The caller's own organization is never offered as a partner.
    """
    try:
        orgs = organization_service.search_organizations(
            request.args.get("search_type", organization_service.SEARCH_BY_CODE),
            request.args.get("term", ""),
        )
        orgs = [o for o in orgs if o.id != g.org_id]
        return jsonify({"organizations": [o.to_dict(include_children=True) for o in orgs]}), 200
    except Exception as e:
        return json_error(e)


@partners_bp.route("", methods=["POST"])
@require_auth
@require_permission("manage_partner")
def add_partners():
    """
    Request body:
    {
        "organization_ids": [int],
        "partnership_date": "YYYY-MM-DD" (optional, default today)
    }

    Returns:
        201: Partnerships created (existing pairs and the caller's own
             organization are skipped, so "created" may be empty)
    """
    data = request.get_json() or {}

    try:
        created = partner_service.create_partnerships(
            g.session_context,
            data.get("organization_ids") or [],
            partnership_date=data.get("partnership_date"),
        )
        commit_with_retry()
        return jsonify({"created": [p.to_dict() for p in created], "count": len(created)}), 201
    except Exception as e:
        return json_error(e)


@partners_bp.route("/<int:partner_id>/status", methods=["POST"])
@require_auth
@require_permission("manage_partner")
def set_partner_status(partner_id: int):
    """Request body: {"status": "active" | "inactive"}"""
    data = request.get_json() or {}

    try:
        partner = partner_service.set_partner_status(g.session_context, partner_id, data.get("status"))
        commit_with_retry()
        return jsonify(partner.to_dict()), 200
    except Exception as e:
        return json_error(e)
