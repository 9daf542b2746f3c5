# Overview: Accounting rule maintenance; validation, create/update/delete and listing.

from __future__ import annotations

from ..extensions import db
from ..models import AccountingRule, AccountingRuleLine, Division, JournalLine
from ..models.finance import (
    FILTER_LOGIC_AND,
    FILTER_LOGIC_OR,
    PARTY_TYPES,
    RULE_CATEGORIES,
    RULE_STATUS_ACTIVE,
    RULE_STATUS_INACTIVE,
    TRIGGERING_ACTIONS,
)
from ..validation import ValidationError, require_choice, require_length
from .rule_evaluator import RuleError, is_non_finite, normalize_operator
from .session_service import SessionContext
from .tenant_service import require_organization, require_record_in_org, scoped_query
from .transaction_sources import AMOUNT_SOURCES_BY_CATEGORY, is_valid_amount_source
from erp.time_utils import utcnow


def _clean_criteria(rows) -> list[dict]:
    criteria = []
    for idx, row in enumerate(rows or []):
        if not isinstance(row, dict):
            raise ValidationError(f"filter_criteria[{idx}] must be an object")
        field = require_length(f"filter_criteria[{idx}].field", row.get("field"), min_len=1, max_len=64)
        try:
            normalize_operator(row.get("operator"))
        except RuleError as exc:
            raise ValidationError(str(exc), details={f"filter_criteria[{idx}].operator": "Unknown operator"})
        if is_non_finite(row.get("value")):
            raise ValidationError(
                f"filter_criteria[{idx}].value must be a finite number",
                details={f"filter_criteria[{idx}].value": "Not a finite number"},
            )
        criteria.append({"field": field, "operator": row.get("operator"), "value": row.get("value")})
    return criteria


def _build_lines(category: str, rows) -> list[AccountingRuleLine]:
    if not rows:
        raise ValidationError("A rule needs at least one line")
    lines = []
    for idx, row in enumerate(rows, start=1):
        debit = (row.get("debit_account_code") or "").strip() or None
        credit = (row.get("credit_account_code") or "").strip() or None
        if not debit and not credit:
            raise ValidationError(f"Line {idx}: a debit or credit account is required")
        source = row.get("amount_source")
        if not is_valid_amount_source(category, source):
            allowed = ", ".join(AMOUNT_SOURCES_BY_CATEGORY.get(category, ()))
            raise ValidationError(
                f"Line {idx}: amount source must be one of: {allowed}",
                details={f"lines[{idx - 1}].amount_source": "Invalid for this category"},
            )
        lines.append(AccountingRuleLine(
            line_number=row.get("line_number") or idx,
            debit_account_code=debit,
            credit_account_code=credit,
            amount_source=source.strip(),
            enable_subledger=bool(row.get("enable_subledger")),
        ))
    return lines


def _apply_header(ctx: SessionContext, rule: AccountingRule, data: dict, *, partial: bool) -> None:
    if not partial or "rule_name" in data:
        rule.rule_name = require_length("rule_name", data.get("rule_name"), min_len=1, max_len=128)
    if not partial or "transaction_category" in data:
        rule.transaction_category = require_choice(
            "transaction_category", data.get("transaction_category"), RULE_CATEGORIES
        )
    if not partial or "triggering_action" in data:
        rule.triggering_action = require_choice("triggering_action", data.get("triggering_action"), TRIGGERING_ACTIONS)
    for key in ("division_id", "destination_division_id"):
        if key in data:
            value = data.get(key)
            setattr(rule, key, require_record_in_org(ctx, Division, value, label="Division").id if value else None)
    for key in ("transaction_reference", "transaction_type", "party_name", "party_code"):
        if key in data:
            setattr(rule, key, (str(data[key]).strip() or None) if data[key] is not None else None)
    if "party_type" in data:
        rule.party_type = require_choice("party_type", data.get("party_type"), PARTY_TYPES, allow_none=True)
    if not partial or "filter_logic_type" in data:
        logic = (data.get("filter_logic_type") or FILTER_LOGIC_AND).upper()
        rule.filter_logic_type = require_choice("filter_logic_type", logic, (FILTER_LOGIC_AND, FILTER_LOGIC_OR))
    if "filter_criteria" in data:
        rule.filter_criteria = _clean_criteria(data.get("filter_criteria"))
    if not partial or "status" in data:
        rule.status = require_choice(
            "status", data.get("status", RULE_STATUS_ACTIVE), (RULE_STATUS_ACTIVE, RULE_STATUS_INACTIVE)
        )


def create_rule(ctx: SessionContext, data: dict) -> AccountingRule:
    org = require_organization(ctx)
    rule = AccountingRule(org_id=org.id, created_by=ctx.actor)
    _apply_header(ctx, rule, data, partial=False)
    rule.lines = _build_lines(rule.transaction_category, data.get("lines"))
    db.session.add(rule)
    db.session.flush()
    return rule


def update_rule(ctx: SessionContext, rule_id: int, data: dict) -> AccountingRule:
    """Header fields present in data are updated; lines, when given, replace the existing ones."""
    rule = get_rule(ctx, rule_id)
    _apply_header(ctx, rule, data, partial=True)
    if "lines" in data:
        rule.lines = []
        db.session.flush()
        rule.lines = _build_lines(rule.transaction_category, data.get("lines"))
    else:
        for line in rule.lines:
            if not is_valid_amount_source(rule.transaction_category, line.amount_source):
                raise ValidationError(
                    f"Line {line.line_number}: amount source '{line.amount_source}' "
                    f"is not valid for {rule.transaction_category}"
                )
    rule.updated_by = ctx.actor
    rule.updated_at = utcnow()
    db.session.flush()
    return rule


def delete_rule(ctx: SessionContext, rule_id: int) -> None:
    """Journal lines produced by the rule keep their amounts and lose the rule link."""
    rule = get_rule(ctx, rule_id)
    db.session.query(JournalLine).filter(JournalLine.rule_id == rule.id).update(
        {JournalLine.rule_id: None}, synchronize_session=False
    )
    db.session.delete(rule)
    db.session.flush()


def get_rule(ctx: SessionContext, rule_id: int) -> AccountingRule:
    return require_record_in_org(ctx, AccountingRule, rule_id, label="Accounting rule")


def list_rules(
    ctx: SessionContext,
    *,
    status: str | None = None,
    triggering_action: str | None = None,
    transaction_category: str | None = None,
) -> list[AccountingRule]:
    query = scoped_query(ctx, AccountingRule)
    if status:
        query = query.filter(AccountingRule.status == status)
    if triggering_action:
        query = query.filter(AccountingRule.triggering_action == triggering_action)
    if transaction_category:
        query = query.filter(AccountingRule.transaction_category == transaction_category)
    return query.order_by(AccountingRule.id).all()
