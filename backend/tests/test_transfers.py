"""
Inventory and inter-division transfer tests.

Verifies:
- Adjustments write the stock ledger and refuse negative stock
- Creating a transfer moves stock from available (origin) to in-process (destination)
- Confirming moves in-process stock to available at the destination
- Only the tracking number can change, and only while initiated
- Transfer validation: same division, no lines, duplicate item, insufficient stock
- Transfer confirmation fires "Transfer confirmed" rules at the latest cost
"""

import pytest

from erp.services import inventory_service, transfer_service
from erp.services.inventory_service import InventoryError
from erp.services.tenant_service import TenantAccessError
from erp.services.transfer_service import TransferError
from erp.validation import ValidationError
from tests.conftest import make_rule, rule_line


@pytest.fixture
def stocked(db_session, manager_ctx, division_a, item_a):
    """20 widgets at division A001, costed at 250 cents."""
    inventory_service.adjust_stock(manager_ctx, {
        "division_id": division_a.id,
        "item_id": item_a.id,
        "quantity": 20,
        "unit_cost_cents": 250,
    })
    db_session.commit()
    return manager_ctx


def new_transfer(ctx, origin, destination, item, quantity=5, **extra):
    data = {
        "origin_division_id": origin.id,
        "destination_division_id": destination.id,
        "lines": [{"item_id": item.id, "quantity": quantity}],
    }
    data.update(extra)
    return transfer_service.create_transfer(ctx, data)


# =============================================================================
# STOCK
# =============================================================================


class TestStockAdjustments:

    def test_adjustment_adds_available_stock(self, db_session, stocked, org_a, division_a, item_a):
        assert inventory_service.get_available_quantity(org_a.id, division_a.id, item_a.id) == 20
        assert inventory_service.get_latest_cost_cents(org_a.id, item_a.id) == 250

    def test_negative_adjustment_cannot_go_below_zero(self, db_session, stocked, division_a, item_a):
        with pytest.raises(InventoryError, match="Insufficient stock"):
            inventory_service.adjust_stock(stocked, {"division_id": division_a.id, "item_id": item_a.id, "quantity": -21})

    def test_negative_adjustment_keeps_latest_cost(self, db_session, stocked, org_a, division_a, item_a):
        row = inventory_service.adjust_stock(stocked, {
            "division_id": division_a.id, "item_id": item_a.id, "quantity": -5,
        })
        assert row.inventory_cost_cents == 250
        assert inventory_service.get_available_quantity(org_a.id, division_a.id, item_a.id) == 15

    @pytest.mark.parametrize("quantity", [0, "5", True, None])
    def test_quantity_must_be_non_zero_integer(self, db_session, manager_ctx, division_a, item_a, quantity):
        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(manager_ctx, {
                "division_id": division_a.id, "item_id": item_a.id, "quantity": quantity,
            })

    def test_stock_summary_over_http(self, client, manager_headers, stocked, division_a):
        resp = client.get("/api/inventory/stock", headers=manager_headers)
        assert resp.status_code == 200
        [row] = resp.json["stock"]
        assert row["division_code"] == division_a.code
        assert row["available_quantity"] == 20
        assert row["available_value_cents"] == 20 * 250

    def test_adjustment_over_http(self, client, manager_headers, division_a, item_a):
        resp = client.post("/api/inventory/adjustments", headers=manager_headers, json={
            "division_id": division_a.id, "item_id": item_a.id, "quantity": 7, "unit_cost_cents": 100,
        })
        assert resp.status_code == 201
        assert resp.json["transaction_type"] == "ADJUSTMENT"

        resp = client.post("/api/inventory/adjustments", headers=manager_headers, json={
            "division_id": division_a.id, "item_id": item_a.id, "quantity": -8,
        })
        assert resp.status_code == 400

        resp = client.get("/api/inventory/ledger", headers=manager_headers)
        assert resp.json["count"] == 1


# =============================================================================
# TRANSFERS
# =============================================================================


class TestTransferCreation:

    def test_create_moves_stock_in_transit(self, db_session, stocked, org_a, division_a, division_a2, item_a):
        transfer = new_transfer(stocked, division_a, division_a2, item_a, quantity=5, tracking_number="TRK-1")
        db_session.commit()

        assert transfer.transfer_number == "TRF-ACME-0001"
        assert transfer.status == "Transfer initiated"
        assert transfer.lines[0].inventory_cost_cents == 250
        assert transfer.total_value_cents == 1250

        assert inventory_service.get_available_quantity(org_a.id, division_a.id, item_a.id) == 15
        assert inventory_service.get_available_quantity(org_a.id, division_a2.id, item_a.id) == 0
        assert inventory_service.get_in_process_quantity(org_a.id, division_a2.id, item_a.id) == 5

    def test_same_division_rejected(self, db_session, stocked, division_a, item_a):
        with pytest.raises(TransferError, match="same division"):
            new_transfer(stocked, division_a, division_a, item_a)

    def test_no_lines_rejected(self, db_session, stocked, division_a, division_a2, item_a):
        with pytest.raises(TransferError):
            new_transfer(stocked, division_a, division_a2, item_a, lines=[])

    def test_duplicate_item_rejected(self, db_session, stocked, division_a, division_a2, item_a):
        with pytest.raises(TransferError, match="already on this transfer"):
            new_transfer(stocked, division_a, division_a2, item_a, lines=[
                {"item_id": item_a.id, "quantity": 1},
                {"item_id": item_a.id, "quantity": 2},
            ])

    def test_insufficient_stock_rejected(self, db_session, stocked, org_a, division_a, division_a2, item_a):
        with pytest.raises(TransferError, match="Insufficient inventory"):
            new_transfer(stocked, division_a, division_a2, item_a, quantity=21)
        db_session.rollback()
        assert inventory_service.get_available_quantity(org_a.id, division_a.id, item_a.id) == 20

    def test_other_org_division_not_found(self, db_session, stocked, division_a, division_b, item_a):
        with pytest.raises(TenantAccessError):
            new_transfer(stocked, division_a, division_b, item_a)


class TestTransferLifecycle:

    def test_confirm_makes_stock_available(self, db_session, stocked, org_a, division_a, division_a2, item_a):
        transfer = new_transfer(stocked, division_a, division_a2, item_a, quantity=5)
        transfer, evaluation = transfer_service.confirm_transfer(stocked, transfer.id)
        db_session.commit()

        assert transfer.status == "Transfer confirmed"
        assert transfer.confirmed_by == "manager@acme.com"
        assert evaluation.journal is None
        assert inventory_service.get_available_quantity(org_a.id, division_a2.id, item_a.id) == 5
        assert inventory_service.get_in_process_quantity(org_a.id, division_a2.id, item_a.id) == 0

    def test_cannot_confirm_twice(self, db_session, stocked, division_a, division_a2, item_a):
        transfer = new_transfer(stocked, division_a, division_a2, item_a)
        transfer_service.confirm_transfer(stocked, transfer.id)
        with pytest.raises(TransferError):
            transfer_service.confirm_transfer(stocked, transfer.id)

    def test_only_tracking_number_is_editable(self, db_session, stocked, division_a, division_a2, item_a):
        transfer = new_transfer(stocked, division_a, division_a2, item_a)
        transfer_service.update_transfer(stocked, transfer.id, {"tracking_number": "  TRK-9 "})
        assert transfer.tracking_number == "TRK-9"

        with pytest.raises(TransferError, match="Only tracking_number"):
            transfer_service.update_transfer(stocked, transfer.id, {"destination_division_id": division_a.id})

    def test_confirmed_transfer_is_read_only(self, db_session, stocked, division_a, division_a2, item_a):
        transfer = new_transfer(stocked, division_a, division_a2, item_a)
        transfer_service.confirm_transfer(stocked, transfer.id)
        assert not transfer_service.is_transfer_editable(transfer)
        with pytest.raises(TransferError):
            transfer_service.update_transfer(stocked, transfer.id, {"tracking_number": "late"})

    def test_confirmation_fires_rules(self, db_session, stocked, division_a, division_a2, item_a):
        from tests.conftest import make_accounts

        make_accounts(stocked)
        make_rule(
            stocked, "Inventory Transfer", "Transfer confirmed",
            [rule_line("1400", "1400", "Total transfer value")],
            destination_division_id=division_a2.id,
        )
        transfer = new_transfer(stocked, division_a, division_a2, item_a, quantity=4)
        _, evaluation = transfer_service.confirm_transfer(stocked, transfer.id)

        assert evaluation.posted
        assert evaluation.journal.total_debit_cents == 4 * 250

    def test_lifecycle_over_http(self, client, manager_headers, stocked, division_a, division_a2, item_a):
        resp = client.post("/api/inventory/transfers", headers=manager_headers, json={
            "origin_division_id": division_a.id,
            "destination_division_id": division_a2.id,
            "lines": [{"item_id": item_a.id, "quantity": 3}],
        })
        assert resp.status_code == 201
        transfer_id = resp.json["id"]

        resp = client.get(f"/api/inventory/transfers/{transfer_id}", headers=manager_headers)
        assert resp.json["editable"] is True

        resp = client.patch(f"/api/inventory/transfers/{transfer_id}", headers=manager_headers, json={"status": "x"})
        assert resp.status_code == 400

        resp = client.post(f"/api/inventory/transfers/{transfer_id}/confirm", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["transfer"]["status"] == "Transfer confirmed"
        assert resp.json["accounting"]["failures"] == []

        resp = client.get(f"/api/inventory/transfers/{transfer_id}", headers=manager_headers)
        assert resp.json["editable"] is False

    def test_insufficient_stock_over_http(self, client, manager_headers, division_a, division_a2, item_a):
        resp = client.post("/api/inventory/transfers", headers=manager_headers, json={
            "origin_division_id": division_a.id,
            "destination_division_id": division_a2.id,
            "lines": [{"item_id": item_a.id, "quantity": 1}],
        })
        assert resp.status_code == 400
        assert "Insufficient inventory" in resp.json["error"]
