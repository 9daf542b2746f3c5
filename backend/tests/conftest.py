"""
Pytest fixtures for ERP backend tests.

Provides test database setup, tenant fixtures (two retailers and a
supplier), users with role-scoped or full access, and auth helpers.
"""

import pytest
from erp import create_app
from erp.extensions import db
from erp.models import (
    Contact, Division, Item, Organization, Permission, Role, RolePermission, User, UserRole,
)
from erp.permissions import get_all_permission_names
from erp.services import accounting_rule_service, chart_of_accounts_service, permission_service, session_service
from erp.services.auth_service import hash_password


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh database with the permission catalog seeded."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        permission_service.initialize_permissions()
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def make_org(db_session, code: str, name: str, org_type: str = "Retailer", state_code: str | None = None):
    org = Organization(code=code, name=name, org_type=org_type, status="active")
    db_session.add(org)
    db_session.flush()
    if state_code:
        db_session.add(Contact(
            org_id=org.id,
            contact_type="Registered location",
            city="City",
            state_code=state_code,
        ))
    db_session.commit()
    return org


def make_role(db_session, org, name: str, permissions=()):
    role = Role(org_id=org.id if org else None, name=name, description=f"{name} (test)")
    db_session.add(role)
    db_session.flush()
    if permissions:
        rows = db_session.query(Permission).filter(Permission.name.in_(list(permissions))).all()
        assert len(rows) == len(set(permissions)), "unknown permission in fixture"
        for perm in rows:
            db_session.add(RolePermission(role_id=role.id, permission_id=perm.id))
    db_session.commit()
    return role


def make_user(db_session, email: str, org=None, roles=()):
    user = User(
        email=email,
        first_name=email.split("@")[0].title(),
        last_name="Tester",
        org_id=org.id if org else None,
        password_hash=hash_password(PASSWORD),
        is_active=True,
    )
    db_session.add(user)
    db_session.flush()
    for role in roles:
        db_session.add(UserRole(user_id=user.id, role_id=role.id))
    db_session.commit()
    return user


def context_for(user):
    """SessionContext for calling services directly, as a validated request would see it."""
    session, _ = session_service.create_session(user.id)
    return session_service.build_context(session)


def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password,
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


# =============================================================================
# TENANTS
# =============================================================================


@pytest.fixture(scope='function')
def org_a(db_session):
    """Organization A (first tenant), Karnataka."""
    return make_org(db_session, "ACME", "Acme Retail", state_code="29")


@pytest.fixture(scope='function')
def org_b(db_session):
    """Organization B (second tenant)."""
    return make_org(db_session, "BETA", "Beta Stores", state_code="29")


@pytest.fixture(scope='function')
def supplier(db_session):
    """Supplier registered in the same state as org A."""
    return make_org(db_session, "SUPL", "Local Supplies", org_type="Supplier", state_code="29")


@pytest.fixture(scope='function')
def remote_supplier(db_session):
    """Supplier registered in another state."""
    return make_org(db_session, "FARS", "Far Supplies", org_type="Supplier", state_code="27")


@pytest.fixture(scope='function')
def division_a(db_session, org_a):
    division = Division(org_id=org_a.id, code="ACME001", user_defined_code="001", name="Main Warehouse")
    db_session.add(division)
    db_session.commit()
    return division


@pytest.fixture(scope='function')
def division_a2(db_session, org_a):
    division = Division(org_id=org_a.id, code="ACME002", user_defined_code="002", name="City Store")
    db_session.add(division)
    db_session.commit()
    return division


@pytest.fixture(scope='function')
def division_b(db_session, org_b):
    division = Division(org_id=org_b.id, code="BETA001", user_defined_code="001", name="Beta Warehouse")
    db_session.add(division)
    db_session.commit()
    return division


@pytest.fixture(scope='function')
def item_a(db_session, org_a):
    item = Item(org_id=org_a.id, item_code="WIDGET", description="Widget", uom="EA", gst_bps=1800, status="active")
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def item_b(db_session, org_b):
    item = Item(org_id=org_b.id, item_code="GADGET", description="Gadget", uom="EA", gst_bps=1200, status="active")
    db_session.add(item)
    db_session.commit()
    return item


# =============================================================================
# USERS
# =============================================================================


@pytest.fixture(scope='function')
def manager_role_a(db_session, org_a):
    """Org A role holding every catalog permission (scoped, not an admin bypass)."""
    return make_role(db_session, org_a, "Operations Manager", get_all_permission_names())


@pytest.fixture(scope='function')
def manager_a(db_session, org_a, manager_role_a):
    return make_user(db_session, "manager@acme.com", org_a, [manager_role_a])


@pytest.fixture(scope='function')
def manager_b(db_session, org_b):
    role = make_role(db_session, org_b, "Operations Manager", get_all_permission_names())
    return make_user(db_session, "manager@beta.com", org_b, [role])


@pytest.fixture(scope='function')
def clerk_a(db_session, org_a):
    """Org A user who can only look at purchase orders."""
    role = make_role(db_session, org_a, "PO Viewer", ["View PO"])
    return make_user(db_session, "clerk@acme.com", org_a, [role])


@pytest.fixture(scope='function')
def admin_a(db_session, org_a):
    """Org A user with an admin-designated role that holds no explicit permissions."""
    role = make_role(db_session, org_a, "Admin-Role")
    return make_user(db_session, "admin@acme.com", org_a, [role])


@pytest.fixture(scope='function')
def manager_headers(client, manager_a):
    return auth_headers(get_auth_token(client, manager_a.email))


@pytest.fixture(scope='function')
def manager_b_headers(client, manager_b):
    return auth_headers(get_auth_token(client, manager_b.email))


@pytest.fixture(scope='function')
def clerk_headers(client, clerk_a):
    return auth_headers(get_auth_token(client, clerk_a.email))


@pytest.fixture(scope='function')
def admin_headers(client, admin_a):
    return auth_headers(get_auth_token(client, admin_a.email))


@pytest.fixture(scope='function')
def manager_ctx(manager_a):
    return context_for(manager_a)


# =============================================================================
# FINANCE
# =============================================================================


STANDARD_ACCOUNTS = [
    ("1000", "Bank", "Asset"),
    ("1400", "Inventory", "Asset"),
    ("1410", "GST Input Credit", "Asset"),
    ("2100", "Accounts Payable", "Liability"),
    ("5000", "Purchases", "Expense"),
]


def make_accounts(ctx, accounts=STANDARD_ACCOUNTS):
    for code, name, account_type in accounts:
        chart_of_accounts_service.create_account(ctx, {
            "account_code": code,
            "account_name": name,
            "account_type": account_type,
        })
    db.session.commit()


def rule_line(debit, credit, amount_source, subledger=False) -> dict:
    return {
        "debit_account_code": debit,
        "credit_account_code": credit,
        "amount_source": amount_source,
        "enable_subledger": subledger,
    }


def make_rule(ctx, category: str, action: str, lines, **extra):
    """Create and commit an accounting rule for the caller's organization."""
    data = {
        "rule_name": extra.pop("rule_name", f"{action} rule"),
        "transaction_category": category,
        "triggering_action": action,
        "lines": lines,
    }
    data.update(extra)
    rule = accounting_rule_service.create_rule(ctx, data)
    db.session.commit()
    return rule


@pytest.fixture(scope='function')
def accounts_a(manager_ctx):
    """Standard chart of accounts for organization A."""
    make_accounts(manager_ctx)
    return manager_ctx
