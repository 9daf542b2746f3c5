# Overview: Route access decision (loading / unauthenticated / admin bypass / denied / allowed).

"""
Route Guard

Decides whether a caller may enter a protected route. Checks run in a fixed
order, and the first one that applies wins:

    1. LOADING            capability still pending, no decision yet
    2. UNAUTHENTICATED    no user                        -> redirect "/"
    3. ADMIN_BYPASS       capability is FULL_ACCESS      -> allow
    4. PERMISSION_DENIED  required_permission not held   -> redirect "/unauthorized"
    5. ROLE_DENIED        no required_permission, required_roles given and
                          none of them held             -> redirect "/unauthorized"
    6. ALLOWED

Admin bypass is evaluated before the permission and role checks, so an
admin-designated user passes every route regardless of what it declares.
"""

from __future__ import annotations

from dataclasses import dataclass

from .permission_service import has_permission
from .session_service import SessionContext


PUBLIC_ENTRY_ROUTE = "/"
UNAUTHORIZED_ROUTE = "/unauthorized"


class GuardState:
    LOADING = "LOADING"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    ADMIN_BYPASS = "ADMIN_BYPASS"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    ROLE_DENIED = "ROLE_DENIED"
    ALLOWED = "ALLOWED"


@dataclass(frozen=True)
class GuardDecision:
    state: str
    redirect_to: str | None = None
    reason: str | None = None

    @property
    def allowed(self) -> bool:
        return self.state in (GuardState.ADMIN_BYPASS, GuardState.ALLOWED)

    def to_dict(self) -> dict:
        return {
            "state": self.state,
            "allowed": self.allowed,
            "redirect": self.redirect_to,
            "reason": self.reason,
        }


def evaluate_route_access(
    ctx: SessionContext | None,
    required_permission: str | None = None,
    required_roles=(),
) -> GuardDecision:
    if ctx is not None and ctx.capability.is_loading:
        return GuardDecision(GuardState.LOADING)

    if ctx is None or not ctx.is_authenticated:
        return GuardDecision(
            GuardState.UNAUTHENTICATED,
            redirect_to=PUBLIC_ENTRY_ROUTE,
            reason="Authentication required",
        )

    if ctx.capability.is_full_access:
        return GuardDecision(GuardState.ADMIN_BYPASS)

    if required_permission:
        if not has_permission(ctx.capability, required_permission):
            return GuardDecision(
                GuardState.PERMISSION_DENIED,
                redirect_to=UNAUTHORIZED_ROUTE,
                reason=f"Missing permission: {required_permission}",
            )
        return GuardDecision(GuardState.ALLOWED)

    required_roles = [r for r in (required_roles or ()) if r]
    if required_roles and not any(role in ctx.roles for role in required_roles):
        return GuardDecision(
            GuardState.ROLE_DENIED,
            redirect_to=UNAUTHORIZED_ROUTE,
            reason=f"Requires one of roles: {', '.join(required_roles)}",
        )

    return GuardDecision(GuardState.ALLOWED)
