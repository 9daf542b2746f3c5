"""
Authentication and session lifecycle tests.

Verifies:
- Sign-up validates e-mail and password strength, rejects duplicates
- Login failures share one generic message and are logged
- Session init / refresh / teardown / forced logout
- Deactivated users and organizations lose access
- Admin bootstrap is idempotent
"""

import pytest

from erp.models import Organization, Role, SecurityEvent, SessionToken, User
from erp.services import auth_service, session_service
from erp.services.auth_service import PasswordValidationError, validate_password_strength
from tests.conftest import PASSWORD, auth_headers, get_auth_token


# =============================================================================
# PASSWORD RULES
# =============================================================================


class TestPasswordStrength:

    @pytest.mark.parametrize(
        "password",
        ["Sh0rt!", "alllower1!", "ALLUPPER1!", "NoDigits!!", "NoSpecial12"],
    )
    def test_weak_passwords_rejected(self, password):
        with pytest.raises(PasswordValidationError):
            validate_password_strength(password)

    def test_strong_password_accepted(self):
        validate_password_strength("Str0ng#Pass")

    def test_hash_and_verify(self, app):
        hashed = auth_service.hash_password("Str0ng#Pass")
        assert hashed != "Str0ng#Pass"
        assert auth_service.verify_password("Str0ng#Pass", hashed)
        assert not auth_service.verify_password("Wr0ng#Pass", hashed)

    def test_malformed_hash_is_a_mismatch(self, app):
        assert not auth_service.verify_password("Str0ng#Pass", "not-a-bcrypt-hash")


# =============================================================================
# SIGN-UP
# =============================================================================


class TestSignup:

    def test_signup_creates_user_without_org_or_roles(self, client, db_session):
        resp = client.post("/api/auth/signup", json={
            "email": "New.User@Example.com",
            "password": PASSWORD,
            "first_name": "New",
            "last_name": "User",
        })
        assert resp.status_code == 201
        assert resp.json["user"]["email"] == "new.user@example.com"
        assert resp.json["user"]["organization_id"] is None
        assert resp.json["user"]["roles"] == []

    def test_signed_up_user_is_denied_everywhere(self, client, db_session):
        client.post("/api/auth/signup", json={"email": "solo@example.com", "password": PASSWORD})
        headers = auth_headers(get_auth_token(client, "solo@example.com"))

        assert client.get("/api/auth/me", headers=headers).status_code == 200
        assert client.get("/api/purchase-orders", headers=headers).status_code == 403

    def test_weak_password_returns_400(self, client, db_session):
        resp = client.post("/api/auth/signup", json={"email": "weak@example.com", "password": "password"})
        assert resp.status_code == 400
        assert db_session.query(User).filter_by(email="weak@example.com").first() is None

    def test_invalid_email_returns_400(self, client, db_session):
        resp = client.post("/api/auth/signup", json={"email": "not-an-email", "password": PASSWORD})
        assert resp.status_code == 400
        assert resp.json["details"]["email"] == "Invalid email address"

    def test_duplicate_email_returns_409(self, client, db_session, manager_a):
        resp = client.post("/api/auth/signup", json={"email": "MANAGER@acme.com", "password": PASSWORD})
        assert resp.status_code == 409


# =============================================================================
# LOGIN
# =============================================================================


class TestLogin:

    def test_login_returns_token_and_context(self, client, manager_a, org_a):
        resp = client.post("/api/auth/login", json={"email": manager_a.email, "password": PASSWORD})
        assert resp.status_code == 200
        body = resp.json
        assert len(body["token"]) == 64
        assert body["organization"] == {"id": org_a.id, "code": "ACME", "name": "Acme Retail"}
        assert body["roles"] == ["Operations Manager"]
        assert body["capability"]["kind"] == "SCOPED"
        assert body["predicates"]["can_view_po"] is True

    def test_missing_fields_returns_400(self, client, db_session):
        assert client.post("/api/auth/login", json={"email": "x@y.com"}).status_code == 400

    @pytest.mark.parametrize(
        "email,password",
        [
            ("manager@acme.com", "Wrong#Pass1"),
            ("ghost@acme.com", PASSWORD),
        ],
    )
    def test_failures_share_one_message(self, client, manager_a, email, password):
        resp = client.post("/api/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 401
        assert resp.json["error"] == "Invalid email or password"
        assert resp.json["redirect"] == "/"

    def test_failure_reason_is_logged(self, client, db_session, manager_a):
        client.post("/api/auth/login", json={"email": manager_a.email, "password": "Wrong#Pass1"})
        event = db_session.query(SecurityEvent).filter_by(event_type="LOGIN_FAILED").one()
        assert event.user_id == manager_a.id
        assert event.reason == "Wrong password"

    def test_inactive_user_cannot_login(self, client, db_session, manager_a):
        manager_a.is_active = False
        db_session.commit()
        resp = client.post("/api/auth/login", json={"email": manager_a.email, "password": PASSWORD})
        assert resp.status_code == 401
        assert resp.json["error"] == "Invalid email or password"

    def test_inactive_organization_cannot_login(self, client, db_session, manager_a, org_a):
        org_a.status = "inactive"
        db_session.commit()
        resp = client.post("/api/auth/login", json={"email": manager_a.email, "password": PASSWORD})
        assert resp.status_code == 401

    def test_login_records_last_login(self, client, db_session, manager_a):
        get_auth_token(client, manager_a.email)
        db_session.expire_all()
        assert db_session.get(User, manager_a.id).last_login_at is not None


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================


class TestSessionLifecycle:

    def test_me_returns_context(self, client, manager_headers, manager_a):
        resp = client.get("/api/auth/me", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["user"]["email"] == manager_a.email
        assert "View PO" in resp.json["permissions"]

    def test_logout_revokes_token(self, client, db_session, manager_a, manager_headers):
        resp = client.post("/api/auth/logout", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["redirect"] == "/"

        assert client.get("/api/auth/me", headers=manager_headers).status_code == 401
        assert db_session.query(SecurityEvent).filter_by(event_type="LOGOUT").count() == 1

    def test_logout_twice_returns_401(self, client, manager_headers):
        client.post("/api/auth/logout", headers=manager_headers)
        assert client.post("/api/auth/logout", headers=manager_headers).status_code == 401

    def test_refresh_rotates_token(self, client, manager_headers, org_a):
        resp = client.post("/api/auth/refresh", headers=manager_headers)
        assert resp.status_code == 200
        new_headers = auth_headers(resp.json["token"])
        assert new_headers != manager_headers
        assert resp.json["organization"]["id"] == org_a.id

        assert client.get("/api/auth/me", headers=manager_headers).status_code == 401
        assert client.get("/api/auth/me", headers=new_headers).status_code == 200

    def test_force_logout_revokes_all_sessions_and_purges_storage(self, client, db_session, manager_a):
        first = auth_headers(get_auth_token(client, manager_a.email))
        second = auth_headers(get_auth_token(client, manager_a.email))

        resp = client.post("/api/auth/force-logout", headers=first, json={
            "storage": {
                "supabase.auth.token": "abc",
                "sb-project-auth-token": "def",
                "theme": "dark",
            },
        })
        assert resp.status_code == 200
        assert resp.json["revoked_sessions"] == 2
        assert sorted(resp.json["purged_keys"]) == ["sb-project-auth-token", "supabase.auth.token"]

        assert client.get("/api/auth/me", headers=first).status_code == 401
        assert client.get("/api/auth/me", headers=second).status_code == 401

    def test_force_logout_without_token_still_purges(self, client, db_session):
        resp = client.post("/api/auth/force-logout", json={"storage": {"supabase.auth.x": 1, "lang": "en"}})
        assert resp.status_code == 200
        assert resp.json["revoked_sessions"] == 0
        assert resp.json["purged_keys"] == ["supabase.auth.x"]

    def test_purge_auth_keys_mutates_mapping(self):
        storage = {"supabase.auth.token": 1, "x-sb-y": 2, "keep": 3}
        removed = session_service.purge_auth_keys(storage)
        assert sorted(removed) == ["supabase.auth.token", "x-sb-y"]
        assert storage == {"keep": 3}

    def test_session_captures_org(self, db_session, manager_a, org_a):
        session, token = session_service.create_session(manager_a.id)
        assert session.org_id == org_a.id
        assert session.token_hash != token

        ctx = session_service.validate_session(token)
        assert ctx.org_code == "ACME"
        assert ctx.actor == manager_a.email

    def test_deactivated_org_invalidates_session(self, client, db_session, org_a, manager_headers):
        org_a.status = "inactive"
        db_session.commit()

        assert client.get("/api/auth/me", headers=manager_headers).status_code == 401
        session = db_session.query(SessionToken).first()
        assert session.is_revoked
        assert session.revoked_reason == "Organization deactivated"


# =============================================================================
# ADMIN BOOTSTRAP
# =============================================================================


class TestBootstrapAdmin:

    def test_bootstrap_creates_admin_tenant(self, client, db_session):
        result = auth_service.bootstrap_admin()
        assert result["created"] == {"organization": True, "role": True, "user": True}

        org = db_session.get(Organization, result["organization_id"])
        assert org.code == "ADMN"
        role = db_session.get(Role, result["role_id"])
        assert role.name == "Admin-Role"

        token = get_auth_token(client, "adminuser@admn.com", "Password@admin1")
        resp = client.get("/api/auth/me", headers=auth_headers(token))
        assert resp.json["capability"]["kind"] == "FULL_ACCESS"

    def test_bootstrap_is_idempotent(self, db_session):
        first = auth_service.bootstrap_admin()
        second = auth_service.bootstrap_admin()

        assert second["created"] == {"organization": False, "role": False, "user": False}
        assert first["user_id"] == second["user_id"]
        assert db_session.query(Organization).filter_by(code="ADMN").count() == 1

    def test_existing_user_keeps_password(self, client, db_session):
        auth_service.bootstrap_admin("Another#Pass1")
        auth_service.bootstrap_admin("Different#Pass2")
        assert get_auth_token(client, "adminuser@admn.com", "Another#Pass1") is not None



# =============================================================================
# HEALTH
# =============================================================================


class TestHealth:

    def test_degraded_before_bootstrap(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "degraded"
        assert resp.json["checks"]["auth_service"]["details"]["admin_role_configured"] is False

    def test_healthy_after_bootstrap(self, client, db_session):
        auth_service.bootstrap_admin()
        db_session.commit()

        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"
        assert resp.json["checks"]["database"]["details"]["organizations"] == 1
