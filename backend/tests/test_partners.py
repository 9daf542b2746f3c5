"""
Partner relationship tests.

Verifies:
- Bulk creation skips the caller's own organization and existing pairs
- Unknown organizations fail the request; inactive ones are refused
- Partner status changes are limited to the caller's own partnerships
- Candidate search never offers the caller's organization
"""

import pytest

from erp.models import Partner
from erp.services import partner_service
from erp.services.partner_service import PartnerError
from erp.services.tenant_service import TenantAccessError
from erp.validation import NotFoundError, ValidationError
from tests.conftest import context_for


class TestCreatePartnerships:

    def test_creates_one_row_per_org(self, db_session, manager_ctx, supplier, remote_supplier):
        created = partner_service.create_partnerships(
            manager_ctx, [supplier.id, remote_supplier.id], partnership_date="2026-03-01"
        )
        db_session.commit()

        assert [p.partner_org_id for p in created] == [supplier.id, remote_supplier.id]
        assert {p.status for p in created} == {"active"}
        assert created[0].to_dict()["partnership_date"] == "2026-03-01"

    def test_self_and_existing_pairs_are_skipped(self, db_session, manager_ctx, org_a, supplier):
        partner_service.create_partnerships(manager_ctx, [supplier.id])
        db_session.commit()

        created = partner_service.create_partnerships(manager_ctx, [org_a.id, supplier.id, supplier.id])
        assert created == []
        assert db_session.query(Partner).count() == 1

    def test_unknown_org_fails(self, db_session, manager_ctx, supplier):
        with pytest.raises(NotFoundError, match="424242"):
            partner_service.create_partnerships(manager_ctx, [supplier.id, 424242])

    def test_empty_selection_fails(self, db_session, manager_ctx):
        with pytest.raises(ValidationError):
            partner_service.create_partnerships(manager_ctx, [])

    def test_inactive_org_refused(self, db_session, manager_ctx, supplier):
        supplier.status = "inactive"
        db_session.commit()
        with pytest.raises(PartnerError):
            partner_service.create_partnerships(manager_ctx, [supplier.id])

    def test_partnership_is_one_directional(self, db_session, manager_ctx, manager_b, org_a, org_b):
        partner_service.create_partnerships(manager_ctx, [org_b.id])
        db_session.commit()

        assert partner_service.is_active_partner(org_a.id, org_b.id)
        assert not partner_service.is_active_partner(org_b.id, org_a.id)
        assert partner_service.list_partners(context_for(manager_b)) == []


class TestPartnerStatus:

    def test_deactivate(self, db_session, manager_ctx, org_a, supplier):
        [partner] = partner_service.create_partnerships(manager_ctx, [supplier.id])
        partner_service.set_partner_status(manager_ctx, partner.id, "inactive")

        assert not partner_service.is_active_partner(org_a.id, supplier.id)
        assert partner_service.list_partners(manager_ctx, status="active") == []

    def test_invalid_status(self, db_session, manager_ctx, supplier):
        [partner] = partner_service.create_partnerships(manager_ctx, [supplier.id])
        with pytest.raises(ValidationError):
            partner_service.set_partner_status(manager_ctx, partner.id, "paused")

    def test_other_org_partner_not_found(self, db_session, manager_ctx, manager_b, supplier):
        [partner] = partner_service.create_partnerships(context_for(manager_b), [supplier.id])
        db_session.commit()
        with pytest.raises(TenantAccessError):
            partner_service.set_partner_status(manager_ctx, partner.id, "inactive")


class TestPartnerRoutes:

    def test_add_and_list(self, client, manager_headers, org_a, supplier, remote_supplier):
        resp = client.post("/api/partners", headers=manager_headers, json={
            "organization_ids": [supplier.id, org_a.id, remote_supplier.id],
        })
        assert resp.status_code == 201
        assert resp.json["count"] == 2

        resp = client.get("/api/partners?type=Supplier", headers=manager_headers)
        assert resp.status_code == 200
        assert sorted(p["organization_code"] for p in resp.json["partners"]) == ["FARS", "SUPL"]

    def test_search_excludes_own_org(self, client, manager_headers, org_a, supplier):
        resp = client.get("/api/partners/search?search_type=code&term=acme", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["organizations"] == []

        resp = client.get("/api/partners/search?search_type=code&term=supl", headers=manager_headers)
        [found] = resp.json["organizations"]
        assert found["code"] == "SUPL"
        assert found["contacts"][0]["state_code"] == "29"

    def test_bad_search_type(self, client, manager_headers):
        resp = client.get("/api/partners/search?search_type=phone&term=123", headers=manager_headers)
        assert resp.status_code == 400

    def test_clerk_cannot_manage_partners(self, client, clerk_headers, supplier):
        resp = client.post("/api/partners", headers=clerk_headers, json={"organization_ids": [supplier.id]})
        assert resp.status_code == 403
        assert resp.json["required_permission"] == "manage_partner"
