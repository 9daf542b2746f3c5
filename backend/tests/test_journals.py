"""
Manual journal and chart of accounts tests.

Verifies:
- Account codes are unique per organization and immutable
- Manual journals need known, active accounts and one-sided lines
- Posting requires a balanced journal with at least one line
- Only posted journals can be reversed
- Journal totals are reported with every journal payload
"""

import pytest

from erp.services import chart_of_accounts_service, journal_service
from erp.services.journal_service import JournalError
from erp.validation import ConflictError, ValidationError


def manual(ctx, *lines, **extra):
    data = {"lines": [{"account_code": c, "debit_cents": d, "credit_cents": k} for c, d, k in lines]}
    data.update(extra)
    return journal_service.create_manual_journal(ctx, data)


# =============================================================================
# CHART OF ACCOUNTS
# =============================================================================


class TestChartOfAccounts:

    def test_duplicate_code_conflicts(self, db_session, accounts_a):
        with pytest.raises(ConflictError):
            chart_of_accounts_service.create_account(accounts_a, {
                "account_code": "1000", "account_name": "Bank again", "account_type": "Asset",
            })

    def test_same_code_in_another_org(self, db_session, accounts_a, manager_b):
        from tests.conftest import context_for

        account = chart_of_accounts_service.create_account(context_for(manager_b), {
            "account_code": "1000", "account_name": "Bank", "account_type": "Asset",
        })
        assert account.account_code == "1000"

    def test_invalid_type_rejected(self, db_session, manager_ctx):
        with pytest.raises(ValidationError):
            chart_of_accounts_service.create_account(manager_ctx, {
                "account_code": "9000", "account_name": "Misc", "account_type": "Sundry",
            })

    def test_code_is_immutable(self, db_session, accounts_a):
        account = chart_of_accounts_service.list_accounts(accounts_a)[0]
        with pytest.raises(ValidationError):
            chart_of_accounts_service.update_account(accounts_a, account.id, {"account_code": "1001"})

    def test_update_over_http(self, client, manager_headers, accounts_a):
        account = chart_of_accounts_service.list_accounts(accounts_a)[0]

        resp = client.patch(f"/api/finance/accounts/{account.id}", headers=manager_headers, json={
            "account_code": account.account_code,
            "account_name": "  Main Bank  ",
        })
        assert resp.status_code == 200
        assert resp.json["account_name"] == "Main Bank"

        resp = client.patch(f"/api/finance/accounts/{account.id}", headers=manager_headers, json={
            "account_name": "",
            "created_by": "someone",
        })
        assert resp.status_code == 400
        assert resp.json["details"] == {"account_name": "Cannot be blank", "created_by": "Field not allowed"}

    def test_list_filters_by_type(self, db_session, accounts_a):
        codes = [a.account_code for a in chart_of_accounts_service.list_accounts(accounts_a, account_type="Asset")]
        assert codes == ["1000", "1400", "1410"]


# =============================================================================
# MANUAL JOURNALS
# =============================================================================


class TestManualJournals:

    def test_create_draft(self, db_session, accounts_a):
        journal = manual(accounts_a, ("5000", 700, 0), ("1000", 0, 700), narration="Office supplies")

        assert journal.status == "Draft"
        assert journal.journal_number == "JV-ACME-0001"
        assert journal.source_type == "Manual"
        assert journal_service.journal_totals(journal) == {
            "total_debit_cents": 700,
            "total_credit_cents": 700,
            "difference_cents": 0,
            "is_balanced": True,
        }

    def test_unknown_account_rejected(self, db_session, accounts_a):
        with pytest.raises(ValidationError, match="9999"):
            manual(accounts_a, ("9999", 100, 0), ("1000", 0, 100))

    def test_inactive_account_rejected(self, db_session, accounts_a):
        account = [a for a in chart_of_accounts_service.list_accounts(accounts_a) if a.account_code == "5000"][0]
        chart_of_accounts_service.update_account(accounts_a, account.id, {"status": "Inactive"})
        with pytest.raises(ValidationError):
            manual(accounts_a, ("5000", 100, 0), ("1000", 0, 100))

    @pytest.mark.parametrize(
        "debit,credit",
        [(100, 100), (0, 0), (-5, 0), (None, None)],
    )
    def test_line_must_be_one_sided(self, db_session, accounts_a, debit, credit):
        with pytest.raises(JournalError):
            manual(accounts_a, ("5000", debit, credit))


class TestPostingAndReversal:

    def test_post_balanced(self, db_session, accounts_a):
        journal = manual(accounts_a, ("5000", 700, 0), ("1000", 0, 700))
        journal_service.post_journal(accounts_a, journal.id)

        assert journal.status == "Posted"
        assert journal.posted_by == "manager@acme.com"

    def test_unbalanced_cannot_post(self, db_session, accounts_a):
        journal = manual(accounts_a, ("5000", 700, 0), ("1000", 0, 600))
        assert journal_service.journal_totals(journal)["difference_cents"] == 100

        with pytest.raises(JournalError, match="not balanced"):
            journal_service.post_journal(accounts_a, journal.id)
        assert journal.status == "Draft"

    def test_empty_journal_cannot_post(self, db_session, accounts_a):
        journal = manual(accounts_a)
        with pytest.raises(JournalError, match="no lines"):
            journal_service.post_journal(accounts_a, journal.id)

    def test_cannot_post_twice(self, db_session, accounts_a):
        journal = manual(accounts_a, ("5000", 700, 0), ("1000", 0, 700))
        journal_service.post_journal(accounts_a, journal.id)
        with pytest.raises(JournalError):
            journal_service.post_journal(accounts_a, journal.id)

    def test_reverse_only_posted(self, db_session, accounts_a):
        journal = manual(accounts_a, ("5000", 700, 0), ("1000", 0, 700))
        with pytest.raises(JournalError, match="Only posted"):
            journal_service.reverse_journal(accounts_a, journal.id)

        journal_service.post_journal(accounts_a, journal.id)
        journal_service.reverse_journal(accounts_a, journal.id, "Entered twice")
        assert journal.status == "Reversed"
        assert len(journal.lines) == 2

        with pytest.raises(JournalError):
            journal_service.reverse_journal(accounts_a, journal.id)

    def test_lifecycle_over_http(self, client, manager_headers, accounts_a):
        resp = client.post("/api/finance/journals", headers=manager_headers, json={
            "lines": [
                {"account_code": "5000", "debit_cents": 900},
                {"account_code": "1000", "credit_cents": 900},
            ],
        })
        assert resp.status_code == 201
        assert resp.json["is_balanced"] is True
        journal_id = resp.json["id"]

        resp = client.post(f"/api/finance/journals/{journal_id}/post", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["status"] == "Posted"

        resp = client.post(f"/api/finance/journals/{journal_id}/reverse", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["status"] == "Reversed"

        resp = client.post(f"/api/finance/journals/{journal_id}/reverse", headers=manager_headers)
        assert resp.status_code == 400

    def test_other_org_journal_not_found(self, client, db_session, accounts_a, manager_b_headers):
        journal = manual(accounts_a, ("5000", 700, 0), ("1000", 0, 700))
        db_session.commit()

        resp = client.post(f"/api/finance/journals/{journal.id}/post", headers=manager_b_headers)
        assert resp.status_code == 404
