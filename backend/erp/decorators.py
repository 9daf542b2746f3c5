# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service, permission_service
from .services.route_guard import GuardState, PUBLIC_ENTRY_ROUTE, evaluate_route_access


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def current_context() -> session_service.SessionContext:
    """The validated context of this request, or an anonymous one."""
    return getattr(g, "session_context", None) or session_service.anonymous_context()


def _unauthenticated(message: str):
    return jsonify({
        "error": message,
        "state": GuardState.UNAUTHENTICATED,
        "redirect": PUBLIC_ENTRY_ROUTE,
    }), 401


def require_auth(f):
    """
    Require authentication and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.session_context: The full SessionContext (user, org, roles, capability)
    - g.current_user: The authenticated User object
    - g.org_id: The organization ID (None for users without an organization)

    SECURITY: Returns 401 with redirect "/" if:
    - No Authorization header
    - Invalid, expired or idle token
    - User account or organization deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return _unauthenticated("Authentication required")

        # Capability is re-resolved on every request so role changes apply immediately
        context = session_service.validate_session(token)
        if not context:
            return _unauthenticated("Invalid or expired token")

        g.session_context = context
        g.current_user = context.user
        g.org_id = context.org_id

        return f(*args, **kwargs)

    return decorated_function


def permission_protected(required_permission: str | None = None, required_roles=()):
    """
    Guard a route with the route access decision.

    LOADING -> 503, UNAUTHENTICATED -> 401, PERMISSION_DENIED / ROLE_DENIED -> 403.
    Denials are written to the security log with the caller's tenant.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            ctx = current_context()
            decision = evaluate_route_access(ctx, required_permission, required_roles)

            if decision.allowed:
                return f(*args, **kwargs)

            if decision.state == GuardState.LOADING:
                return jsonify({"error": "Permissions are still loading", "state": decision.state}), 503

            if decision.state == GuardState.UNAUTHENTICATED:
                return _unauthenticated(decision.reason or "Authentication required")

            permission_service.log_security_event(
                user_id=ctx.user.id,
                event_type=decision.state,
                success=False,
                resource=request.path,
                action=required_permission or ",".join(required_roles),
                reason=decision.reason,
                ip_address=request.remote_addr,
                user_agent=request.headers.get("User-Agent"),
                org_id=ctx.org_id,
            )
            body = {
                "error": "Permission denied",
                "state": decision.state,
                "redirect": decision.redirect_to,
                "message": decision.reason,
            }
            if required_permission:
                body["required_permission"] = required_permission
            else:
                body["required_roles"] = list(required_roles)
            return jsonify(body), 403

        return decorated_function
    return decorator


def require_permission(permission_name: str):
    """Require a specific permission (admin-designated users always pass)."""
    return permission_protected(required_permission=permission_name)


def require_any_role(*role_names):
    """Require at least one of the given role names."""
    return permission_protected(required_roles=role_names)
