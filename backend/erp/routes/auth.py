# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/erp/routes/auth.py
"""
Authentication API routes

SESSION LIFECYCLE:
- POST /login          init: opens a session, returns the plaintext token once
- POST /refresh        rotates the token, keeps the tenant context
- POST /logout         teardown of the current session
- POST /force-logout   revokes every session of the user and purges the
                       client's auth storage snapshot

GET /me returns the session context with the capability and the per-screen
permission predicates the UI uses to hide navigation entries.
"""

from flask import Blueprint, request, jsonify, g

from ..errors import json_error
from ..services import auth_service, session_service
from ..services.permission_service import PermissionChecker
from ..services.route_guard import PUBLIC_ENTRY_ROUTE, evaluate_route_access
from ..services.concurrency import commit_with_retry
from ..decorators import bearer_token, current_context, require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _context_payload(ctx: session_service.SessionContext) -> dict:
    payload = ctx.to_dict()
    payload["permissions"] = sorted(ctx.capability.permissions)
    payload["predicates"] = PermissionChecker(ctx.capability).predicates()
    return payload


@auth_bp.post("/signup")
def signup_route():
    """
    Self-registration.

    The account has no organization and no roles until an administrator
    assigns them, so it can sign in but every guarded route denies it.
    """
    data = request.get_json() or {}
    try:
        user = auth_service.sign_up(
            email=data.get("email"),
            password=data.get("password"),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
        )
        commit_with_retry()
        return jsonify({"user": user.to_dict(), "message": "Sign-up successful"}), 201
    except Exception as exc:
        return json_error(exc)


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in Authorization header for protected routes.
    Every failure answers with the same message; the precise reason is in
    the security log.
    """
    data = request.get_json() or {}
    email = data.get("email") or data.get("username")
    password = data.get("password")

    if not all([email, password]):
        return jsonify({"error": "email and password required"}), 400

    try:
        context, token = auth_service.sign_in(
            email,
            password,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        commit_with_retry()
        payload = _context_payload(context)
        payload.update({"token": token, "message": "Login successful"})
        return jsonify(payload), 200
    except Exception as exc:
        return json_error(exc)


@auth_bp.post("/logout")
def logout_route():
    """Revoke session token (logout). Expects Authorization header: Bearer <token>."""
    token = bearer_token()
    if not token:
        return jsonify({"error": "Authorization header required", "redirect": PUBLIC_ENTRY_ROUTE}), 401

    try:
        ctx = session_service.validate_session(token)
        revoked = auth_service.sign_out(
            token,
            user_id=ctx.user.id if ctx else None,
            org_id=ctx.org_id if ctx else None,
        )
        if not revoked:
            return jsonify({"error": "Invalid or expired token", "redirect": PUBLIC_ENTRY_ROUTE}), 401
        return jsonify({"message": "Logout successful", "redirect": PUBLIC_ENTRY_ROUTE}), 200
    except Exception as exc:
        return json_error(exc)


@auth_bp.post("/force-logout")
def force_logout_route():
    """
    Hard sign-out.

    Request body (optional):
    {
        "storage": {"supabase.auth.token": "...", "sb-xyz-auth-token": "...", "theme": "dark"}
    }

    Returns the number of revoked sessions and the storage keys the client
    must delete. Always answers 200 so a broken session can still be cleared.
    """
    data = request.get_json(silent=True) or {}
    storage = dict(data.get("storage") or {})
    token = bearer_token()

    try:
        if token:
            result = session_service.force_logout(token, storage)
        else:
            result = {"revoked_sessions": 0, "purged_keys": session_service.purge_auth_keys(storage)}
        return jsonify(dict(result, redirect=PUBLIC_ENTRY_ROUTE)), 200
    except Exception as exc:
        return json_error(exc)


@auth_bp.post("/refresh")
def refresh_route():
    token = bearer_token()
    if not token:
        return jsonify({"error": "Authorization header required", "redirect": PUBLIC_ENTRY_ROUTE}), 401

    try:
        refreshed = session_service.refresh_session(
            token,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        if refreshed is None:
            return jsonify({"error": "Invalid or expired token", "redirect": PUBLIC_ENTRY_ROUTE}), 401
        context, new_token = refreshed
        payload = _context_payload(context)
        payload["token"] = new_token
        return jsonify(payload), 200
    except Exception as exc:
        return json_error(exc)


@auth_bp.get("/me")
@require_auth
def me_route():
    """
    Session context of the caller: user, organization, roles, capability and
    permission predicates.
    """
    return jsonify(_context_payload(g.session_context)), 200


@auth_bp.post("/route-check")
def route_check_route():
    """
    Route access decision for a UI router.

    Request body:
    {
        "required_permission": "View PO",     (optional)
        "required_roles": ["Manager"]          (optional)
    }

    The Authorization header is optional; without it the decision is
    UNAUTHENTICATED with redirect "/".
    """
    data = request.get_json(silent=True) or {}
    token = bearer_token()
    ctx = session_service.validate_session(token) if token else None
    ctx = ctx or current_context()

    decision = evaluate_route_access(
        ctx,
        required_permission=data.get("required_permission"),
        required_roles=data.get("required_roles") or (),
    )
    return jsonify(decision.to_dict()), 200
