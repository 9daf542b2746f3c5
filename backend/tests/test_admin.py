"""
User, role and organization administration tests.

Verifies:
- Creating a role with permissions is atomic (unknown permission leaves nothing)
- Users are created with roles in one transaction
- Only administrators can grant admin-designated roles
- Only administrators can create or rename a role to an admin-designated name
- Deactivating a user revokes their sessions; nobody can deactivate themselves
- Non-admin callers only manage their own organization
- Organization codes are validated and unique
"""

import pytest

from erp.models import Organization, Role, SessionToken, User
from erp.services import role_service, user_service
from erp.services.role_service import RoleError
from erp.services.tenant_service import TenantAccessError
from erp.services.user_service import UserAdminError
from erp.validation import ConflictError, ValidationError
from tests.conftest import PASSWORD, auth_headers, context_for, get_auth_token, make_role, make_user


# =============================================================================
# ROLES
# =============================================================================


class TestRoles:

    def test_create_role_with_permissions(self, client, db_session, manager_headers, org_a):
        resp = client.post("/api/admin/roles", headers=manager_headers, json={
            "name": "Buyer",
            "permissions": ["View PO", "Create PO"],
        })
        assert resp.status_code == 201
        role = resp.json["role"]
        assert role["organization_id"] == org_a.id
        assert sorted(role["permissions"]) == ["Create PO", "View PO"]

    def test_unknown_permission_leaves_no_role(self, client, db_session, manager_headers):
        resp = client.post("/api/admin/roles", headers=manager_headers, json={
            "name": "Broken",
            "permissions": ["View PO", "Launch Rockets"],
        })
        assert resp.status_code == 400
        assert "permissions" in resp.json["details"]
        assert db_session.query(Role).filter_by(name="Broken").count() == 0

    def test_permission_names_are_exact(self, db_session, manager_ctx):
        with pytest.raises(ValidationError):
            role_service.create_role(manager_ctx, name="Loose", permission_names=["view po"])

    def test_duplicate_name_in_org_conflicts(self, db_session, manager_ctx):
        role_service.create_role(manager_ctx, name="Buyer", permission_names=["View PO"])
        with pytest.raises(ConflictError):
            role_service.create_role(manager_ctx, name="Buyer")

    def test_non_admin_cannot_create_role_for_other_org(self, db_session, manager_ctx, org_b):
        with pytest.raises(TenantAccessError):
            role_service.create_role(manager_ctx, name="Spy", org_id=org_b.id)

    def test_admin_can_create_global_role(self, client, db_session, admin_headers):
        resp = client.post("/api/admin/roles", headers=admin_headers, json={
            "name": "Auditor",
            "organization_id": None,
            "permissions": ["View Journal"],
        })
        assert resp.status_code == 201
        assert resp.json["role"]["organization_id"] is None

    def test_replace_permissions(self, client, db_session, manager_headers, manager_ctx):
        role = role_service.create_role(manager_ctx, name="Buyer", permission_names=["View PO"])
        db_session.commit()

        resp = client.put(f"/api/admin/roles/{role.id}/permissions", headers=manager_headers, json={
            "permissions": ["View Invoices"],
        })
        assert resp.status_code == 200
        assert resp.json["role"]["permissions"] == ["View Invoices"]

    def test_assigned_role_cannot_be_deleted(self, client, db_session, clerk_a, manager_headers):
        role = db_session.query(Role).filter_by(name="PO Viewer").one()
        resp = client.delete(f"/api/admin/roles/{role.id}", headers=manager_headers)
        assert resp.status_code == 400
        assert "assigned" in resp.json["error"]

    def test_non_admin_cannot_create_admin_named_role(self, db_session, manager_ctx):
        with pytest.raises(RoleError):
            role_service.create_role(manager_ctx, name="Store Admin", permission_names=["View PO"])
        assert db_session.query(Role).filter_by(name="Store Admin").count() == 0

    def test_role_editor_cannot_rename_own_role_to_admin(self, client, db_session, org_a, manager_b):
        role = make_role(db_session, org_a, "Role Editor", ["edit_roles", "view_users"])
        editor = make_user(db_session, "editor@acme.com", org_a, [role])
        headers = auth_headers(get_auth_token(client, editor.email))

        resp = client.patch(f"/api/admin/roles/{role.id}", headers=headers, json={"name": "Role Editor admin"})
        assert resp.status_code == 400
        assert "administrators" in resp.json["error"]

        db_session.expire_all()
        assert db_session.get(Role, role.id).name == "Role Editor"

        resp = client.get("/api/auth/me", headers=headers)
        assert resp.json["capability"]["kind"] == "SCOPED"

        resp = client.get("/api/admin/users", headers=headers)
        assert [u["email"] for u in resp.json["users"]] == ["editor@acme.com"]

    def test_admin_can_rename_role_to_admin(self, client, db_session, admin_headers, manager_ctx):
        role = role_service.create_role(manager_ctx, name="Buyer", permission_names=["View PO"])
        db_session.commit()

        resp = client.patch(f"/api/admin/roles/{role.id}", headers=admin_headers, json={"name": "Buyer admin"})
        assert resp.status_code == 200
        assert resp.json["role"]["name"] == "Buyer admin"

    def test_list_roles_hides_other_orgs(self, client, db_session, manager_headers, manager_b):
        resp = client.get("/api/admin/roles", headers=manager_headers)
        assert resp.status_code == 200
        org_ids = {r["organization_id"] for r in resp.json["roles"]}
        assert manager_b.org_id not in org_ids


# =============================================================================
# USERS
# =============================================================================


class TestUsers:

    def test_create_user_with_roles(self, client, db_session, manager_headers, org_a):
        role = make_role(db_session, org_a, "Buyer", ["View PO"])
        resp = client.post("/api/admin/users", headers=manager_headers, json={
            "email": "buyer@acme.com",
            "password": PASSWORD,
            "first_name": "Bea",
            "role_ids": [role.id],
        })
        assert resp.status_code == 201
        user = resp.json["user"]
        assert user["organization_id"] == org_a.id
        assert user["roles"] == ["Buyer"]

        headers = auth_headers(get_auth_token(client, "buyer@acme.com"))
        assert client.get("/api/purchase-orders", headers=headers).status_code == 200

    def test_bad_role_leaves_no_user(self, client, db_session, manager_headers):
        resp = client.post("/api/admin/users", headers=manager_headers, json={
            "email": "ghost@acme.com",
            "password": PASSWORD,
            "role_ids": [987654],
        })
        assert resp.status_code == 400
        assert db_session.query(User).filter_by(email="ghost@acme.com").count() == 0

    def test_non_admin_cannot_grant_admin_role(self, db_session, manager_ctx, clerk_a, org_a):
        admin_role = make_role(db_session, org_a, "Admin-Role")
        with pytest.raises(UserAdminError, match="Only administrators"):
            user_service.assign_role(manager_ctx, clerk_a.id, admin_role.id)

    def test_admin_can_grant_admin_role(self, db_session, admin_a, clerk_a):
        admin_role = db_session.query(Role).filter_by(name="Admin-Role").one()
        user_service.assign_role(context_for(admin_a), clerk_a.id, admin_role.id)
        db_session.commit()
        assert "Admin-Role" in clerk_a.role_names

    def test_duplicate_assignment_conflicts(self, client, db_session, manager_headers, clerk_a):
        role = db_session.query(Role).filter_by(name="PO Viewer").one()
        resp = client.post(f"/api/admin/users/{clerk_a.id}/roles", headers=manager_headers, json={"role_id": role.id})
        assert resp.status_code == 409

    def test_role_from_other_org_refused(self, db_session, manager_ctx, clerk_a, org_b):
        foreign = make_role(db_session, org_b, "Beta Buyer", ["View PO"])
        with pytest.raises(UserAdminError, match="another organization"):
            user_service.assign_role(manager_ctx, clerk_a.id, foreign.id)

    def test_other_org_user_not_found(self, client, manager_headers, manager_b):
        resp = client.get(f"/api/admin/users/{manager_b.id}", headers=manager_headers)
        assert resp.status_code == 404

    def test_list_users_scoped_to_org(self, client, manager_headers, manager_a, clerk_a, manager_b):
        resp = client.get("/api/admin/users", headers=manager_headers)
        emails = [u["email"] for u in resp.json["users"]]
        assert emails == ["clerk@acme.com", "manager@acme.com"]

    def test_admin_lists_every_user(self, client, admin_headers, manager_b):
        resp = client.get("/api/admin/users", headers=admin_headers)
        assert "manager@beta.com" in [u["email"] for u in resp.json["users"]]


class TestActivation:

    def test_deactivation_revokes_sessions(self, client, db_session, manager_headers, clerk_a, clerk_headers):
        assert client.get("/api/auth/me", headers=clerk_headers).status_code == 200

        resp = client.post(f"/api/admin/users/{clerk_a.id}/deactivate", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["user"]["is_active"] is False

        assert client.get("/api/auth/me", headers=clerk_headers).status_code == 401
        sessions = db_session.query(SessionToken).filter_by(user_id=clerk_a.id).all()
        assert sessions and all(s.is_revoked for s in sessions)
        assert get_auth_token(client, clerk_a.email) is None

    def test_reactivated_user_can_login(self, client, db_session, manager_headers, clerk_a):
        client.post(f"/api/admin/users/{clerk_a.id}/deactivate", headers=manager_headers)
        client.post(f"/api/admin/users/{clerk_a.id}/activate", headers=manager_headers)
        assert get_auth_token(client, clerk_a.email) is not None

    def test_cannot_deactivate_self(self, client, manager_a, manager_headers):
        resp = client.post(f"/api/admin/users/{manager_a.id}/deactivate", headers=manager_headers)
        assert resp.status_code == 400


# =============================================================================
# ORGANIZATIONS
# =============================================================================


class TestOrganizations:

    def test_create_with_contacts(self, client, db_session, admin_headers):
        resp = client.post("/api/admin/organizations", headers=admin_headers, json={
            "code": "GAMA",
            "name": "Gamma Traders",
            "type": "Supplier",
            "contacts": [{"type": "Registered location", "city": "Pune", "state_code": "27"}],
            "references": [{"type": "GST", "value": "27abcde1234f1z5"}],
        })
        assert resp.status_code == 201
        org = resp.json["organization"]
        assert org["code"] == "GAMA"
        assert org["status"] == "active"
        assert org["gst_number"] == "27ABCDE1234F1Z5"

        resp = client.get(
            "/api/admin/organizations/search?search_type=gst&term=27ABCDE1234F1Z5", headers=admin_headers
        )
        assert [o["code"] for o in resp.json["organizations"]] == ["GAMA"]

    @pytest.mark.parametrize("code", ["acme", "AB", "ABCDE", "AB-1", None])
    def test_invalid_code(self, client, db_session, admin_headers, code):
        resp = client.post("/api/admin/organizations", headers=admin_headers, json={
            "code": code, "name": "Bad Code Ltd",
        })
        assert resp.status_code == 400

    def test_duplicate_code(self, client, admin_headers, org_b):
        resp = client.post("/api/admin/organizations", headers=admin_headers, json={
            "code": "BETA", "name": "Another Beta",
        })
        assert resp.status_code == 409

    def test_non_admin_sees_only_own_org(self, client, manager_headers, org_a, org_b):
        resp = client.get("/api/admin/organizations", headers=manager_headers)
        assert [o["code"] for o in resp.json["organizations"]] == ["ACME"]

        resp = client.get(f"/api/admin/organizations/{org_b.id}", headers=manager_headers)
        assert resp.status_code == 404

    def test_deactivating_org_ends_its_sessions(self, client, db_session, admin_headers, org_b, manager_b_headers):
        resp = client.post(f"/api/admin/organizations/{org_b.id}/status", headers=admin_headers, json={
            "status": "inactive",
        })
        assert resp.status_code == 200
        assert db_session.get(Organization, org_b.id).status == "inactive"
        assert client.get("/api/auth/me", headers=manager_b_headers).status_code == 401
