"""
Authorization tests for the ERP API.

Verifies:
- Unauthenticated requests return 401 with redirect "/"
- Scoped users are denied routes outside their permissions (403, redirect "/unauthorized")
- Denials are written to the security log with the caller's tenant
- Admin-designated roles bypass every permission check
- Route guard decision order (loading, unauthenticated, admin bypass, denied, allowed)
- Role and permission changes apply on the next request
"""

import pytest

from erp.models import Role, SecurityEvent, User
from erp.services import permission_service
from erp.services.permission_service import Capability
from erp.services.route_guard import GuardState, evaluate_route_access
from erp.services.session_service import SessionContext


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/admin/users"),
            ("POST", "/api/admin/roles"),
            ("GET", "/api/admin/organizations"),
            ("GET", "/api/divisions"),
            ("GET", "/api/partners"),
            ("GET", "/api/master-data/items"),
            ("GET", "/api/inventory/stock"),
            ("POST", "/api/inventory/transfers"),
            ("GET", "/api/purchase-orders"),
            ("POST", "/api/purchase-orders"),
            ("GET", "/api/invoices"),
            ("GET", "/api/payments"),
            ("GET", "/api/finance/journals"),
            ("POST", "/api/finance/rules"),
            ("GET", "/api/finance/outstanding-payables"),
            ("GET", "/api/exports/items"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.json["redirect"] == "/"

    def test_garbage_token_rejected(self, client, db_session):
        resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401
        assert resp.json["state"] == GuardState.UNAUTHENTICATED


# =============================================================================
# SCOPED USER DENIED (403)
# =============================================================================


class TestScopedUserDenied:
    """The PO viewer can read purchase orders and nothing else."""

    def test_can_list_purchase_orders(self, client, clerk_headers):
        resp = client.get("/api/purchase-orders", headers=clerk_headers)
        assert resp.status_code == 200

    @pytest.mark.parametrize(
        "method,path,permission",
        [
            ("POST", "/api/purchase-orders", "Create PO"),
            ("GET", "/api/invoices", "View Invoices"),
            ("GET", "/api/finance/journals", "View Journal"),
            ("POST", "/api/finance/accounts", "Create COA"),
            ("GET", "/api/admin/users", "view_users"),
            ("GET", "/api/inventory/stock", "view-inventory"),
            ("POST", "/api/payments/1/approve", "approve_payments"),
        ],
    )
    def test_denied(self, client, clerk_headers, method, path, permission):
        resp = getattr(client, method.lower())(path, json={}, headers=clerk_headers)
        assert resp.status_code == 403, f"{method} {path} returned {resp.status_code}"
        assert resp.json["state"] == GuardState.PERMISSION_DENIED
        assert resp.json["redirect"] == "/unauthorized"
        assert resp.json["required_permission"] == permission

    def test_denial_is_logged_with_tenant(self, client, db_session, clerk_a, org_a, clerk_headers):
        client.get("/api/finance/journals", headers=clerk_headers)

        event = db_session.query(SecurityEvent).filter_by(event_type="PERMISSION_DENIED").one()
        assert event.user_id == clerk_a.id
        assert event.org_id == org_a.id
        assert event.resource == "/api/finance/journals"
        assert event.action == "View Journal"

    def test_export_needs_dataset_permission(self, client, clerk_headers):
        resp = client.get("/api/exports/journals", headers=clerk_headers)
        assert resp.status_code == 403
        assert resp.json["redirect"] == "/unauthorized"


# =============================================================================
# ADMIN BYPASS
# =============================================================================


class TestAdminBypass:
    """An admin-designated role passes every route, whatever it was granted."""

    @pytest.mark.parametrize(
        "path",
        [
            "/api/finance/journals",
            "/api/finance/accounts",
            "/api/invoices",
            "/api/admin/users",
            "/api/inventory/stock",
            "/api/purchase-orders/open",
        ],
    )
    def test_admin_passes(self, client, admin_headers, path):
        resp = client.get(path, headers=admin_headers)
        assert resp.status_code == 200, f"GET {path} returned {resp.status_code}"

    def test_me_reports_full_access(self, client, admin_headers):
        resp = client.get("/api/auth/me", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["capability"]["kind"] == "FULL_ACCESS"
        assert all(resp.json["predicates"].values())


# =============================================================================
# ROUTE GUARD DECISIONS
# =============================================================================


class TestRouteGuard:
    """Decision order of evaluate_route_access."""

    def _ctx(self, capability, roles=()):
        return SessionContext(user=User(email="guard@acme.com"), roles=list(roles), capability=capability)

    def test_loading_wins_over_everything(self, app):
        ctx = SessionContext(user=None, capability=Capability.pending())
        decision = evaluate_route_access(ctx, "View PO")
        assert decision.state == GuardState.LOADING
        assert not decision.allowed

    def test_unauthenticated(self, app):
        decision = evaluate_route_access(None, "View PO")
        assert decision.state == GuardState.UNAUTHENTICATED
        assert decision.redirect_to == "/"

    def test_admin_bypass_ignores_roles_and_permission(self, app):
        decision = evaluate_route_access(self._ctx(Capability.full_access()), "anything", ["Nobody"])
        assert decision.state == GuardState.ADMIN_BYPASS
        assert decision.allowed

    def test_permission_denied(self, app):
        decision = evaluate_route_access(self._ctx(Capability.scoped(["View PO"])), "Create PO")
        assert decision.state == GuardState.PERMISSION_DENIED
        assert decision.redirect_to == "/unauthorized"

    def test_permission_checked_before_roles(self, app):
        ctx = self._ctx(Capability.scoped(["View PO"]), roles=["Buyer"])
        decision = evaluate_route_access(ctx, "View PO", ["Accountant"])
        assert decision.state == GuardState.ALLOWED

    def test_role_denied_without_permission_requirement(self, app):
        ctx = self._ctx(Capability.scoped([]), roles=["Buyer"])
        decision = evaluate_route_access(ctx, None, ["Accountant", "Controller"])
        assert decision.state == GuardState.ROLE_DENIED
        assert decision.redirect_to == "/unauthorized"

    def test_role_allowed(self, app):
        ctx = self._ctx(Capability.scoped([]), roles=["Buyer"])
        assert evaluate_route_access(ctx, None, ["Accountant", "Buyer"]).allowed

    def test_no_requirements_allowed(self, app):
        assert evaluate_route_access(self._ctx(Capability.scoped([]))).state == GuardState.ALLOWED


class TestRouteCheckEndpoint:
    """POST /api/auth/route-check exposes the guard to the UI router."""

    def test_without_token(self, client, db_session):
        resp = client.post("/api/auth/route-check", json={"required_permission": "View PO"})
        assert resp.status_code == 200
        assert resp.json["state"] == GuardState.UNAUTHENTICATED
        assert resp.json["redirect"] == "/"

    def test_allowed(self, client, clerk_headers):
        resp = client.post("/api/auth/route-check", json={"required_permission": "View PO"}, headers=clerk_headers)
        assert resp.json["state"] == GuardState.ALLOWED
        assert resp.json["allowed"] is True

    def test_denied(self, client, clerk_headers):
        resp = client.post("/api/auth/route-check", json={"required_permission": "Post Journal"}, headers=clerk_headers)
        assert resp.json["state"] == GuardState.PERMISSION_DENIED
        assert resp.json["redirect"] == "/unauthorized"

    def test_role_requirement(self, client, clerk_headers):
        resp = client.post("/api/auth/route-check", json={"required_roles": ["Accountant"]}, headers=clerk_headers)
        assert resp.json["state"] == GuardState.ROLE_DENIED

        resp = client.post("/api/auth/route-check", json={"required_roles": ["PO Viewer"]}, headers=clerk_headers)
        assert resp.json["state"] == GuardState.ALLOWED

    def test_admin_bypass(self, client, admin_headers):
        resp = client.post("/api/auth/route-check", json={"required_roles": ["Nobody"]}, headers=admin_headers)
        assert resp.json["state"] == GuardState.ADMIN_BYPASS


# =============================================================================
# CHANGES APPLY ON THE NEXT REQUEST
# =============================================================================


class TestCapabilityRefresh:
    """The capability is resolved per request, not frozen into the token."""

    def test_granted_permission_applies_immediately(self, client, db_session, clerk_a, clerk_headers):
        assert client.get("/api/invoices", headers=clerk_headers).status_code == 403

        role = db_session.query(Role).filter_by(name="PO Viewer").one()
        permission_service.grant_permission_to_role(role.id, "View Invoices")
        db_session.commit()

        assert client.get("/api/invoices", headers=clerk_headers).status_code == 200

    def test_revoked_permission_applies_immediately(self, client, db_session, clerk_a, clerk_headers):
        assert client.get("/api/purchase-orders", headers=clerk_headers).status_code == 200

        role = db_session.query(Role).filter_by(name="PO Viewer").one()
        assert permission_service.revoke_permission_from_role(role.id, "View PO")
        db_session.commit()

        assert client.get("/api/purchase-orders", headers=clerk_headers).status_code == 403
