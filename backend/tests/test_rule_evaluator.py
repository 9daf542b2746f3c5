"""
Accounting rule evaluator tests.

Verifies:
- Filter operators, aliases and unknown-operator errors
- AND / OR criteria combination
- Division and transaction type narrowing
- One journal per event: Posted when balanced, Draft otherwise
- A failing rule is reported and never blocks the other rules
- Subledger entries follow the rule's party type, one per flagged rule line on the payable side
- Rules are validated when they are created (operators, finite numbers)
- Non-finite criterion values compare as text and never raise
"""

import pytest

from erp.models import AccountingRule, AccountingRuleLine, AuditEvent, ChartOfAccount, JournalHeader, SubledgerEntry
from erp.models.finance import ACTION_PO_CREATED, CATEGORY_PO
from erp.services import accounting_rule_service, payment_service, purchase_order_service, rule_evaluator, subledger_service
from erp.services.rule_evaluator import RuleError, evaluate_criterion, normalize_operator
from erp.validation import ValidationError
from tests.conftest import auth_headers, get_auth_token, make_role, make_rule, make_user, rule_line


def create_po(ctx, division, supplier, item, quantity=10, unit_price_cents=1000):
    po, evaluation = purchase_order_service.create_purchase_order(ctx, {
        "division_id": division.id,
        "supplier_id": supplier.id,
        "lines": [{"item_id": item.id, "quantity": quantity, "unit_price_cents": unit_price_cents}],
    })
    return po, evaluation


# =============================================================================
# CRITERIA
# =============================================================================


class TestCriteria:
    """evaluate_criterion works on plain dicts, no database."""

    FIELDS = {
        "supplier_code": "SUPL",
        "total_cents": 11800,
        "payment_terms": "Net 45",
        "division_code": "ACME001",
        "is_interstate": False,
        "remarks": None,
    }

    @pytest.mark.parametrize(
        "operator,field,value,expected",
        [
            ("=", "supplier_code", "supl", True),
            ("equals", "total_cents", "11800", True),
            ("!=", "supplier_code", "FARS", True),
            ("<>", "supplier_code", "SUPL", False),
            (">", "total_cents", 10000, True),
            ("gte", "total_cents", 11800, True),
            ("less than", "total_cents", 11800, False),
            ("<=", "total_cents", "11800.00", True),
            ("contains", "payment_terms", "45", True),
            ("starts_with", "division_code", "acme", True),
            ("begins_with", "division_code", "BETA", False),
            ("in", "supplier_code", "FARS, SUPL", True),
            ("in", "supplier_code", ["FARS", "ZETA"], False),
        ],
    )
    def test_operators(self, operator, field, value, expected):
        criterion = {"field": field, "operator": operator, "value": value}
        assert evaluate_criterion(criterion, self.FIELDS) is expected

    @pytest.mark.parametrize("field", ["not_a_field", "remarks", None])
    def test_missing_field_is_false(self, field):
        assert evaluate_criterion({"field": field, "operator": "!=", "value": "x"}, self.FIELDS) is False

    def test_unknown_operator_raises_even_for_missing_field(self):
        with pytest.raises(RuleError, match="Unknown filter operator"):
            evaluate_criterion({"field": "not_a_field", "operator": "matches", "value": "x"}, self.FIELDS)

    @pytest.mark.parametrize("value", ["NaN", "Infinity", float("nan")])
    def test_non_finite_value_is_not_numeric(self, value):
        criterion = {"field": "total_cents", "operator": ">", "value": value}
        assert evaluate_criterion(criterion, self.FIELDS) is False

    @pytest.mark.parametrize(
        "alias,canonical",
        [("EQ", "="), (" Greater Than ", ">"), ("startswith", "starts_with"), ("ne", "!=")],
    )
    def test_normalize_operator(self, alias, canonical):
        assert normalize_operator(alias) == canonical

    @pytest.mark.parametrize("operator", [None, "", "~=", "like"])
    def test_normalize_operator_rejects(self, operator):
        with pytest.raises(RuleError):
            normalize_operator(operator)


# =============================================================================
# RULE CREATION
# =============================================================================


class TestRuleValidation:

    def test_unknown_operator_rejected_at_creation(self, db_session, accounts_a):
        with pytest.raises(ValidationError) as exc:
            make_rule(
                accounts_a, "PO", ACTION_PO_CREATED,
                [rule_line("5000", "2100", "Total PO Value")],
                filter_criteria=[{"field": "supplier_code", "operator": "resembles", "value": "SUPL"}],
            )
        assert exc.value.details == {"filter_criteria[0].operator": "Unknown operator"}

    @pytest.mark.parametrize("value", ["NaN", "-Infinity", ["10", "nan"]])
    def test_non_finite_value_rejected_at_creation(self, db_session, accounts_a, value):
        with pytest.raises(ValidationError) as exc:
            make_rule(
                accounts_a, "PO", ACTION_PO_CREATED,
                [rule_line("5000", "2100", "Total PO Value")],
                filter_criteria=[{"field": "total_cents", "operator": ">", "value": value}],
            )
        assert exc.value.details == {"filter_criteria[0].value": "Not a finite number"}

    def test_amount_source_must_fit_category(self, db_session, accounts_a):
        with pytest.raises(ValidationError):
            make_rule(accounts_a, "PO", ACTION_PO_CREATED, [rule_line("5000", "2100", "Payment amount")])

    def test_amount_source_is_case_insensitive(self, db_session, accounts_a):
        rule = make_rule(accounts_a, "PO", ACTION_PO_CREATED, [rule_line("5000", "2100", "total po value")])
        assert rule.lines[0].amount_source == "total po value"

    def test_line_needs_an_account(self, db_session, accounts_a):
        with pytest.raises(ValidationError):
            make_rule(accounts_a, "PO", ACTION_PO_CREATED, [rule_line(None, "", "Total PO Value")])

    def test_unknown_action_rejected(self, db_session, accounts_a):
        with pytest.raises(ValidationError):
            make_rule(accounts_a, "PO", "PO Exploded", [rule_line("5000", "2100", "Total PO Value")])

    def test_create_over_http(self, client, manager_headers, accounts_a):
        resp = client.post("/api/finance/rules", headers=manager_headers, json={
            "rule_name": "PO accrual",
            "transaction_category": "PO",
            "triggering_action": "PO Created",
            "lines": [rule_line("5000", "2100", "Total PO Value")],
        })
        assert resp.status_code == 201
        assert resp.json["status"] == "Active"

        resp = client.post("/api/finance/rules", headers=manager_headers, json={
            "rule_name": "Broken",
            "transaction_category": "PO",
            "triggering_action": "PO Created",
            "filter_criteria": [{"field": "x", "operator": "??", "value": 1}],
            "lines": [rule_line("5000", "2100", "Total PO Value")],
        })
        assert resp.status_code == 400

    def test_delete_keeps_journal_lines(self, db_session, accounts_a, division_a, supplier, item_a):
        rule = make_rule(accounts_a, "PO", ACTION_PO_CREATED, [rule_line("5000", "2100", "Total PO Value")])
        _, evaluation = create_po(accounts_a, division_a, supplier, item_a)
        db_session.commit()

        accounting_rule_service.delete_rule(accounts_a, rule.id)
        db_session.commit()

        journal = db_session.get(JournalHeader, evaluation.journal.id)
        assert len(journal.lines) == 2
        assert {line.rule_id for line in journal.lines} == {None}


# =============================================================================
# APPLYING RULES
# =============================================================================


class TestApplyRules:

    def test_no_rules_no_journal(self, db_session, manager_ctx, division_a, supplier, item_a):
        _, evaluation = create_po(manager_ctx, division_a, supplier, item_a)
        assert evaluation.journal is None
        assert evaluation.matched_rule_ids == []
        assert evaluation.failures == []

    def test_balanced_rule_posts_journal(self, db_session, accounts_a, division_a, supplier, item_a):
        rule = make_rule(accounts_a, "PO", ACTION_PO_CREATED, [
            rule_line("5000", "2100", "Sum of line"),
            rule_line("1410", "2100", "Total GST value"),
        ])
        po, evaluation = create_po(accounts_a, division_a, supplier, item_a)

        assert evaluation.posted
        assert evaluation.matched_rule_ids == [rule.id]
        journal = evaluation.journal
        assert journal.source_reference == po.po_number
        assert journal.triggering_action == "PO Created"
        assert [(l.account_code, l.debit_cents, l.credit_cents) for l in journal.lines] == [
            ("5000", 10000, 0),
            ("2100", 0, 10000),
            ("1410", 1800, 0),
            ("2100", 0, 1800),
        ]
        assert evaluation.to_dict()["journal_status"] == "Posted"

    def test_all_rules_for_event_share_one_journal(self, db_session, accounts_a, division_a, supplier, item_a):
        make_rule(accounts_a, "PO", ACTION_PO_CREATED, [rule_line("5000", "2100", "Sum of line")], rule_name="A")
        make_rule(accounts_a, "PO", ACTION_PO_CREATED, [rule_line("1410", "2100", "Total GST value")], rule_name="B")

        _, evaluation = create_po(accounts_a, division_a, supplier, item_a)

        assert len(evaluation.matched_rule_ids) == 2
        assert db_session.query(JournalHeader).count() == 1
        assert evaluation.journal.total_debit_cents == 11800

    def test_failing_rule_does_not_block_others(self, db_session, accounts_a, division_a, supplier, item_a):
        good = make_rule(accounts_a, "PO", ACTION_PO_CREATED, [rule_line("5000", "2100", "Total PO Value")])
        bad = make_rule(
            accounts_a, "PO", ACTION_PO_CREATED, [rule_line("9999", "2100", "Total PO Value")], rule_name="Bad"
        )

        po, evaluation = create_po(accounts_a, division_a, supplier, item_a)

        assert po.id is not None
        assert evaluation.matched_rule_ids == [good.id]
        assert evaluation.posted
        [failure] = evaluation.failures
        assert failure.rule_id == bad.id
        assert "9999" in failure.message

        event = db_session.query(AuditEvent).filter_by(event_type="accounting_rule.failed").one()
        assert event.entity_id == bad.id

    def test_stored_non_finite_value_does_not_abort(self, db_session, accounts_a, division_a, supplier, item_a):
        rule = make_rule(accounts_a, "PO", ACTION_PO_CREATED, [rule_line("5000", "2100", "Total PO Value")])
        rule.filter_criteria = [{"field": "total_cents", "operator": ">", "value": "NaN"}]
        db_session.commit()

        po, evaluation = create_po(accounts_a, division_a, supplier, item_a)

        assert po.id is not None
        assert evaluation.journal is None
        assert evaluation.failures == []

    def test_inactive_account_fails_rule(self, db_session, accounts_a, division_a, supplier, item_a):
        make_rule(accounts_a, "PO", ACTION_PO_CREATED, [rule_line("5000", "2100", "Total PO Value")])
        db_session.query(ChartOfAccount).filter_by(account_code="2100").one().status = "Inactive"
        db_session.commit()

        _, evaluation = create_po(accounts_a, division_a, supplier, item_a)
        assert evaluation.journal is None
        assert "inactive" in evaluation.failures[0].message

    def test_unavailable_amount_source_fails_rule(self, db_session, accounts_a, division_a, supplier, item_a):
        rule = make_rule(accounts_a, "PO", ACTION_PO_CREATED, [rule_line("5000", "2100", "Total PO Value")])
        db_session.query(AccountingRuleLine).filter_by(rule_id=rule.id).update({"amount_source": "Freight"})
        db_session.commit()

        _, evaluation = create_po(accounts_a, division_a, supplier, item_a)
        assert evaluation.journal is None
        assert "Freight" in evaluation.failures[0].message

    def test_unbalanced_journal_left_as_draft(self, db_session, accounts_a, division_a, supplier, item_a):
        make_rule(accounts_a, "PO", ACTION_PO_CREATED, [
            rule_line("5000", None, "Sum of line"),
            rule_line(None, "2100", "Total PO Value"),
        ])

        _, evaluation = create_po(accounts_a, division_a, supplier, item_a)

        assert evaluation.journal.status == "Draft"
        assert not evaluation.posted
        assert "not balanced" in evaluation.failures[-1].message

    def test_zero_amount_lines_are_skipped(self, db_session, accounts_a, division_a, supplier, item_a):
        rule = make_rule(accounts_a, "PO", ACTION_PO_CREATED, [rule_line("1410", "2100", "Total PO IGST")])

        _, evaluation = create_po(accounts_a, division_a, supplier, item_a)

        assert evaluation.matched_rule_ids == [rule.id]
        assert evaluation.journal is None
        assert evaluation.failures == []

    def test_inactive_rule_is_ignored(self, db_session, accounts_a, division_a, supplier, item_a):
        make_rule(accounts_a, "PO", ACTION_PO_CREATED, [rule_line("5000", "2100", "Total PO Value")], status="Inactive")
        _, evaluation = create_po(accounts_a, division_a, supplier, item_a)
        assert evaluation.journal is None
        assert evaluation.matched_rule_ids == []

    def test_division_narrowing(self, db_session, accounts_a, division_a, division_a2, supplier, item_a):
        make_rule(
            accounts_a, "PO", ACTION_PO_CREATED, [rule_line("5000", "2100", "Total PO Value")],
            division_id=division_a2.id,
        )
        _, evaluation = create_po(accounts_a, division_a, supplier, item_a)
        assert evaluation.matched_rule_ids == []

        _, evaluation = create_po(accounts_a, division_a2, supplier, item_a)
        assert evaluation.posted

    @pytest.mark.parametrize("logic,expected", [("AND", False), ("OR", True)])
    def test_filter_logic(self, db_session, accounts_a, division_a, supplier, item_a, logic, expected):
        make_rule(
            accounts_a, "PO", ACTION_PO_CREATED, [rule_line("5000", "2100", "Total PO Value")],
            filter_logic_type=logic,
            filter_criteria=[
                {"field": "supplier_code", "operator": "=", "value": "SUPL"},
                {"field": "total_cents", "operator": ">", "value": 50000},
            ],
        )
        _, evaluation = create_po(accounts_a, division_a, supplier, item_a)
        assert evaluation.posted is expected

    def test_transaction_type_matches_payment_mode(self, db_session, accounts_a, supplier):
        make_rule(
            accounts_a, "Payment", "Payment Created", [rule_line("2100", "1000", "Payment amount")],
            transaction_type="upi",
        )

        _, by_cash = payment_service.create_payment(accounts_a, {
            "payee_id": supplier.id, "payment_mode": "Cash", "amount_cents": 500,
        })
        _, by_upi = payment_service.create_payment(accounts_a, {
            "payee_id": supplier.id, "payment_mode": "UPI", "amount_cents": 500,
        })

        assert by_cash.journal is None
        assert by_upi.posted

    def test_other_tenant_rules_do_not_apply(self, db_session, accounts_a, manager_b, division_a, supplier, item_a):
        from tests.conftest import context_for, make_accounts

        ctx_b = context_for(manager_b)
        make_accounts(ctx_b)
        make_rule(ctx_b, "PO", ACTION_PO_CREATED, [rule_line("5000", "2100", "Total PO Value")])

        _, evaluation = create_po(accounts_a, division_a, supplier, item_a)
        assert evaluation.journal is None


# =============================================================================
# SUBLEDGER
# =============================================================================


class TestSubledger:

    @pytest.mark.parametrize("party_type", ["Remit To", "Bill To"])
    def test_party_follows_rule(self, db_session, accounts_a, org_a, division_a, supplier, item_a, party_type):
        make_rule(
            accounts_a, "PO", ACTION_PO_CREATED,
            [rule_line("5000", "2100", "Total PO Value", subledger=True)],
            party_type=party_type,
        )
        po, evaluation = create_po(accounts_a, division_a, supplier, item_a)

        entries = db_session.query(SubledgerEntry).all()
        expected_party = supplier.id if party_type == "Remit To" else org_a.id
        assert {e.party_org_id for e in entries} == {expected_party}
        assert [(e.account_code, e.debit_cents, e.credit_cents) for e in entries] == [("2100", 0, 11800)]
        assert subledger_service.party_balance(accounts_a.org_id, expected_party) == 11800
        assert {e.journal_id for e in entries} == {evaluation.journal.id}
        assert {e.source_reference for e in entries} == {po.po_number}

    def test_lines_without_flag_have_no_entries(self, db_session, accounts_a, division_a, supplier, item_a):
        make_rule(accounts_a, "PO", ACTION_PO_CREATED, [
            rule_line("5000", "2100", "Sum of line"),
            rule_line("1410", "2100", "Total GST value", subledger=True),
        ])
        create_po(accounts_a, division_a, supplier, item_a)

        entries = db_session.query(SubledgerEntry).all()
        assert [(e.account_code, e.credit_cents) for e in entries] == [("2100", 1800)]

    def test_liability_on_debit_side_lowers_balance(self, db_session, accounts_a, supplier):
        make_rule(
            accounts_a, "Payment", "Payment Created",
            [rule_line("2100", "1000", "Payment amount", subledger=True)],
        )
        payment_service.create_payment(accounts_a, {
            "payee_id": supplier.id, "payment_mode": "Cash", "amount_cents": 500,
        })

        [entry] = db_session.query(SubledgerEntry).all()
        assert (entry.account_code, entry.debit_cents, entry.credit_cents) == ("2100", 500, 0)
        assert subledger_service.party_balance(accounts_a.org_id, supplier.id) == -500

    def test_without_liability_account_credit_side_is_used(self, db_session, accounts_a, division_a, supplier, item_a):
        make_rule(accounts_a, "PO", ACTION_PO_CREATED, [
            rule_line("1400", "1000", "Total PO Value", subledger=True),
            rule_line("5000", None, "Sum of line", subledger=True),
            rule_line("1410", None, "Total GST value", subledger=True),
        ])
        create_po(accounts_a, division_a, supplier, item_a)

        entries = db_session.query(SubledgerEntry).order_by(SubledgerEntry.id).all()
        assert [(e.account_code, e.debit_cents, e.credit_cents) for e in entries] == [
            ("1000", 0, 11800),
            ("5000", 10000, 0),
            ("1410", 1800, 0),
        ]

    def test_apply_rules_directly(self, db_session, accounts_a, division_a, supplier, item_a):
        from erp.services import transaction_sources

        make_rule(accounts_a, "PO", ACTION_PO_CREATED, [rule_line("5000", "2100", "Total PO Value")])
        po, _ = create_po(accounts_a, division_a, supplier, item_a)

        source = transaction_sources.from_purchase_order(po)
        assert source.category == CATEGORY_PO
        assert source.amount("TOTAL PO VALUE") == 11800

        again = rule_evaluator.apply_rules(source, ACTION_PO_CREATED, actor="tester")
        assert again.posted
        assert db_session.query(AccountingRule).count() == 1
        assert db_session.query(JournalHeader).count() == 2


# =============================================================================
# AUDIT TRAIL
# =============================================================================


class TestAuditTrail:

    @pytest.fixture
    def failed_rule(self, db_session, accounts_a, division_a, supplier, item_a):
        rule = make_rule(
            accounts_a, "PO", ACTION_PO_CREATED, [rule_line("9999", "2100", "Total PO Value")], rule_name="Bad"
        )
        create_po(accounts_a, division_a, supplier, item_a)
        db_session.commit()
        return rule

    def test_auditor_role_sees_rule_failures(self, client, db_session, org_a, failed_rule):
        auditor = make_user(db_session, "auditor@acme.com", org_a, [make_role(db_session, org_a, "Auditor")])
        headers = auth_headers(get_auth_token(client, auditor.email))

        resp = client.get("/api/finance/audit-events?event_type=accounting_rule.failed", headers=headers)
        assert resp.status_code == 200
        [event] = resp.json["events"]
        assert event["entity_id"] == failed_rule.id
        assert "9999" in event["note"]

    def test_permissions_alone_are_not_enough(self, client, manager_headers, failed_rule):
        resp = client.get("/api/finance/audit-events", headers=manager_headers)
        assert resp.status_code == 403
        assert resp.json["state"] == "ROLE_DENIED"
        assert resp.json["required_roles"] == ["Auditor", "Finance Controller"]

    def test_admin_bypass(self, client, admin_headers, failed_rule):
        resp = client.get("/api/finance/audit-events", headers=admin_headers)
        assert resp.status_code == 200
