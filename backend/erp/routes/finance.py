# backend/erp/routes/finance.py
"""
Finance API routes: chart of accounts, accounting rules, journals,
subledger and the bill-to/remit-to general ledger.

All data is scoped to the caller's organization. The general ledger is
always read with the caller's organization as the bill-to party.
"""
from flask import Blueprint, request, jsonify, g
from erp.decorators import require_any_role, require_auth, require_permission
from erp.errors import json_error
from erp.services import (
    accounting_rule_service,
    audit_service,
    chart_of_accounts_service,
    general_ledger_service,
    journal_service,
    subledger_service,
)
from erp.services.concurrency import atomic, commit_with_retry
from erp.services.tenant_service import require_organization


finance_bp = Blueprint("finance", __name__, url_prefix="/api/finance")


def _journal_payload(journal, include_lines: bool = True) -> dict:
    body = journal.to_dict(include_lines=include_lines)
    body.update(journal_service.journal_totals(journal))
    return body


# =============================================================================
# CHART OF ACCOUNTS
# =============================================================================

@finance_bp.route("/accounts", methods=["GET"])
@require_auth
@require_permission("View COA")
def list_accounts():
    """Query params: status, type."""
    accounts = chart_of_accounts_service.list_accounts(
        g.session_context,
        status=request.args.get("status"),
        account_type=request.args.get("type"),
    )
    return jsonify({"accounts": [a.to_dict() for a in accounts], "count": len(accounts)}), 200


@finance_bp.route("/accounts/<int:account_id>", methods=["GET"])
@require_auth
@require_permission("View COA")
def get_account(account_id: int):
    try:
        return jsonify(chart_of_accounts_service.get_account(g.session_context, account_id).to_dict()), 200
    except Exception as e:
        return json_error(e)


@finance_bp.route("/accounts", methods=["POST"])
@require_auth
@require_permission("Create COA")
def create_account():
    """
    Request body:
    {
        "account_code": str,
        "account_name": str,
        "account_type": "Asset" | "Liability" | "Equity" | "Revenue" | "Expense",
        "status": "Active" | "Inactive" (optional)
    }
    """
    data = request.get_json() or {}

    try:
        account = chart_of_accounts_service.create_account(g.session_context, data)
        commit_with_retry()
        return jsonify(account.to_dict()), 201
    except Exception as e:
        return json_error(e)


@finance_bp.route("/accounts/<int:account_id>", methods=["PATCH"])
@require_auth
@require_permission("Edit COA")
def update_account(account_id: int):
    data = request.get_json() or {}

    try:
        account = chart_of_accounts_service.update_account(g.session_context, account_id, data)
        commit_with_retry()
        return jsonify(account.to_dict()), 200
    except Exception as e:
        return json_error(e)


# =============================================================================
# ACCOUNTING RULES
# =============================================================================

@finance_bp.route("/rules", methods=["GET"])
@require_auth
@require_permission("View Rules")
def list_rules():
    """Query params: status, triggering_action, transaction_category."""
    rules = accounting_rule_service.list_rules(
        g.session_context,
        status=request.args.get("status"),
        triggering_action=request.args.get("triggering_action"),
        transaction_category=request.args.get("transaction_category"),
    )
    return jsonify({"rules": [r.to_dict(include_lines=False) for r in rules], "count": len(rules)}), 200


@finance_bp.route("/rules/<int:rule_id>", methods=["GET"])
@require_auth
@require_permission("View Rules")
def get_rule(rule_id: int):
    try:
        return jsonify(accounting_rule_service.get_rule(g.session_context, rule_id).to_dict()), 200
    except Exception as e:
        return json_error(e)


@finance_bp.route("/rules", methods=["POST"])
@require_auth
@require_permission("Create Rules")
def create_rule():
    """
    Create an accounting rule.

    Request body:
    {
        "rule_name": str,
        "transaction_category": "Invoice" | "PO" | "Payment" | "Inventory Transfer",
        "triggering_action": "Invoice Approved" | "PO Created" | ...,
        "division_id": int | null,
        "transaction_type": str | null,
        "party_type": "Bill To" | "Remit To" | null,
        "filter_logic_type": "AND" | "OR",
        "filter_criteria": [{"field": str, "operator": str, "value": any}],
        "lines": [{
            "debit_account_code": str, "credit_account_code": str,
            "amount_source": "Total PO Value", "enable_subledger": bool
        }]
    }
    """
    data = request.get_json() or {}

    try:
        with atomic():
            rule = accounting_rule_service.create_rule(g.session_context, data)
        return jsonify(rule.to_dict()), 201
    except Exception as e:
        return json_error(e)


@finance_bp.route("/rules/<int:rule_id>", methods=["PATCH"])
@require_auth
@require_permission("Edit Rules")
def update_rule(rule_id: int):
    """lines, when present, replace the existing rule lines."""
    data = request.get_json() or {}

    try:
        with atomic():
            rule = accounting_rule_service.update_rule(g.session_context, rule_id, data)
        return jsonify(rule.to_dict()), 200
    except Exception as e:
        return json_error(e)


@finance_bp.route("/rules/<int:rule_id>", methods=["DELETE"])
@require_auth
@require_permission("Delete Rules")
def delete_rule(rule_id: int):
    try:
        with atomic():
            accounting_rule_service.delete_rule(g.session_context, rule_id)
        return jsonify({"message": "Rule deleted"}), 200
    except Exception as e:
        return json_error(e)


# =============================================================================
# JOURNALS
# =============================================================================

@finance_bp.route("/journals", methods=["GET"])
@require_auth
@require_permission("View Journal")
def list_journals():
    """Query params: status, source_reference, source_type."""
    journals = journal_service.list_journals(
        g.session_context,
        status=request.args.get("status"),
        source_reference=request.args.get("source_reference"),
        source_type=request.args.get("source_type"),
    )
    return jsonify({"journals": [_journal_payload(j, include_lines=False) for j in journals], "count": len(journals)}), 200


@finance_bp.route("/journals/<int:journal_id>", methods=["GET"])
@require_auth
@require_permission("View Journal")
def get_journal(journal_id: int):
    try:
        return jsonify(_journal_payload(journal_service.get_journal(g.session_context, journal_id))), 200
    except Exception as e:
        return json_error(e)


@finance_bp.route("/journals", methods=["POST"])
@require_auth
@require_permission("Create Journal")
def create_journal():
    """
    Create a manual journal (Draft).

    Request body:
    {
        "journal_date": "YYYY-MM-DD" (optional),
        "source_reference": str (optional),
        "narration": str (optional),
        "lines": [{"account_code": str, "debit_cents": int, "credit_cents": int, "narration": str}]
    }
    """
    data = request.get_json() or {}

    try:
        with atomic():
            journal = journal_service.create_manual_journal(g.session_context, data)
        return jsonify(_journal_payload(journal)), 201
    except Exception as e:
        return json_error(e)


@finance_bp.route("/journals/<int:journal_id>/post", methods=["POST"])
@require_auth
@require_permission("Post Journal")
def post_journal(journal_id: int):
    """Requires at least one line and equal, non-zero debit and credit totals."""
    try:
        journal = journal_service.post_journal(g.session_context, journal_id)
        commit_with_retry()
        return jsonify(_journal_payload(journal)), 200
    except Exception as e:
        return json_error(e)


@finance_bp.route("/journals/<int:journal_id>/reverse", methods=["POST"])
@require_auth
@require_permission("Reverse Journal")
def reverse_journal(journal_id: int):
    """Body: {"reason": str} (optional). Only Posted journals can be reversed."""
    data = request.get_json(silent=True) or {}

    try:
        journal = journal_service.reverse_journal(g.session_context, journal_id, data.get("reason"))
        commit_with_retry()
        return jsonify(_journal_payload(journal)), 200
    except Exception as e:
        return json_error(e)


# =============================================================================
# SUBLEDGER
# =============================================================================

@finance_bp.route("/subledger", methods=["GET"])
@require_auth
@require_permission("View Subledger")
def list_subledger():
    """Query params: party_org_id, status (Open | Settled), source_reference."""
    entries = subledger_service.list_entries(
        g.session_context,
        party_org_id=request.args.get("party_org_id", type=int),
        status=request.args.get("status"),
        source_reference=request.args.get("source_reference"),
    )
    return jsonify({"entries": [e.to_dict() for e in entries], "count": len(entries)}), 200


@finance_bp.route("/subledger/balance/<int:party_org_id>", methods=["GET"])
@require_auth
@require_permission("View Subledger")
def party_balance(party_org_id: int):
    """Open balance owed to the party (credit minus debit over Open entries)."""
    try:
        org = require_organization(g.session_context)
        return jsonify({
            "party_org_id": party_org_id,
            "balance_cents": subledger_service.party_balance(org.id, party_org_id),
        }), 200
    except Exception as e:
        return json_error(e)


# =============================================================================
# GENERAL LEDGER
# =============================================================================

@finance_bp.route("/general-ledger/<int:remit_to_id>", methods=["GET"])
@require_auth
@require_permission("View General Ledger")
def ledger_statement(remit_to_id: int):
    """Statement between the caller's organization (bill-to) and a remit-to party."""
    try:
        org = require_organization(g.session_context)
        rows = general_ledger_service.ledger_statement(org.id, remit_to_id)
        return jsonify({
            "bill_to_org_id": org.id,
            "remit_to_org_id": remit_to_id,
            "entries": rows,
            "outstanding_cents": general_ledger_service.outstanding_payables(org.id, remit_to_id),
        }), 200
    except Exception as e:
        return json_error(e)


@finance_bp.route("/outstanding-payables", methods=["GET"])
@require_auth
@require_permission("AP Balance")
def outstanding_payables():
    """Dashboard widget: amounts still owed, per remit-to party; settled parties are left out."""
    try:
        org = require_organization(g.session_context)
        rows = []
        for party_id in general_ledger_service.counterparties(org.id):
            amount = general_ledger_service.outstanding_payables(org.id, party_id)
            if amount is not None:
                rows.append({"remit_to_org_id": party_id, "outstanding_cents": amount})
        return jsonify({
            "payables": rows,
            "total_cents": sum(r["outstanding_cents"] for r in rows),
        }), 200
    except Exception as e:
        return json_error(e)


# =============================================================================
# AUDIT TRAIL
# =============================================================================

@finance_bp.route("/audit-events", methods=["GET"])
@require_auth
@require_any_role("Auditor", "Finance Controller")
def list_audit_events():
    """
    Business events of the caller's organization, newest first.

    Query params: entity_type, entity_id, event_type, limit (max 500).
    Rule evaluation failures are listed as event_type "accounting_rule.failed".
    """
    try:
        org = require_organization(g.session_context)
        entity_id = request.args.get("entity_id", type=int)
        events = audit_service.list_events(
            org_id=org.id,
            entity_type=request.args.get("entity_type"),
            entity_id=entity_id,
            event_type=request.args.get("event_type"),
            limit=request.args.get("limit", 100, type=int),
        )
        return jsonify({"events": [e.to_dict() for e in events], "count": len(events)}), 200
    except Exception as e:
        return json_error(e)
