# Overview: Applies accounting rules to a business event and writes the resulting journal.

"""
Accounting Rule Evaluator

WHY: Business documents (POs, receipts, invoices, payments, transfers) do not
write journals themselves. Each state change calls apply_rules() with a
TransactionSource and the triggering action; the organization's rules decide
which accounts move.

MATCHING (all must hold):
1. rule status is Active
2. triggering_action and transaction_category equal the event's
3. rule division is empty or equals the source division
4. rule destination division is empty or equals the source destination
5. rule transaction_type is empty or equals the source's (case-insensitive)
6. filter criteria pass, combined with AND (default) or OR; no criteria
   always pass. A criterion on a field the source does not carry is false.

LINES:
- amount comes from the line's amount_source; unknown source, negative
  amount, no account on either side, or an unknown/inactive account code
  make the whole rule fail
- zero amounts are skipped
- a line with both codes emits one debit and one credit line
- a subledger-enabled line adds one party entry on the payable side: the
  Liability account when either side is one, else the credit side, else
  the debit side

OUTCOME:
- a failing rule contributes nothing and is reported as a RuleFailure; the
  remaining rules still apply
- every line of every successful rule for the event goes into one journal,
  posted when balanced and left as Draft otherwise
- failures are written to the audit log and the application log; they never
  abort the operation that triggered evaluation
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from flask import current_app

from ..extensions import db
from ..models import AccountingRule, ChartOfAccount, JournalHeader
from ..models.finance import (
    ACCOUNT_STATUS_ACTIVE,
    ACCOUNT_TYPE_LIABILITY,
    FILTER_LOGIC_OR,
    JOURNAL_STATUS_POSTED,
    PARTY_BILL_TO,
    RULE_STATUS_ACTIVE,
)
from . import audit_service, journal_service, subledger_service
from .transaction_sources import TransactionSource


class RuleError(Exception):
    """A rule cannot be applied to the event (bad operator, amount or account)."""
    pass


OPERATOR_ALIASES = {
    "=": "=", "==": "=", "eq": "=", "equals": "=", "is": "=",
    "!=": "!=", "<>": "!=", "ne": "!=", "not_equals": "!=", "not equals": "!=",
    ">": ">", "gt": ">", "greater_than": ">", "greater than": ">",
    ">=": ">=", "gte": ">=", "greater_than_or_equal": ">=", "greater than or equal": ">=",
    "<": "<", "lt": "<", "less_than": "<", "less than": "<",
    "<=": "<=", "lte": "<=", "less_than_or_equal": "<=", "less than or equal": "<=",
    "contains": "contains",
    "starts_with": "starts_with", "startswith": "starts_with", "starts with": "starts_with",
    "begins_with": "starts_with",
    "in": "in",
}


@dataclass(frozen=True)
class RuleFailure:
    rule_id: int | None
    rule_name: str | None
    message: str

    def to_dict(self) -> dict:
        return {"rule_id": self.rule_id, "rule_name": self.rule_name, "message": self.message}


@dataclass(frozen=True)
class PlannedLine:
    rule_id: int
    account_code: str
    debit_cents: int
    credit_cents: int
    enable_subledger: bool
    narration: str | None = None


@dataclass(frozen=True)
class PartyLine:
    """One subledger entry for the rule's party."""
    rule_id: int
    account_code: str
    debit_cents: int
    credit_cents: int


@dataclass
class RulePlan:
    lines: list[PlannedLine] = field(default_factory=list)
    party_lines: list[PartyLine] = field(default_factory=list)


@dataclass
class EvaluationResult:
    triggering_action: str
    reference: str
    journal: JournalHeader | None = None
    matched_rule_ids: list[int] = field(default_factory=list)
    failures: list[RuleFailure] = field(default_factory=list)

    @property
    def posted(self) -> bool:
        return self.journal is not None and self.journal.status == JOURNAL_STATUS_POSTED

    def to_dict(self) -> dict:
        return {
            "triggering_action": self.triggering_action,
            "reference": self.reference,
            "journal_id": self.journal.id if self.journal else None,
            "journal_number": self.journal.journal_number if self.journal else None,
            "journal_status": self.journal.status if self.journal else None,
            "matched_rule_ids": list(self.matched_rule_ids),
            "failures": [f.to_dict() for f in self.failures],
        }


def normalize_operator(operator) -> str:
    key = str(operator or "").strip().lower()
    if key not in OPERATOR_ALIASES:
        raise RuleError(f"Unknown filter operator: {operator!r}")
    return OPERATOR_ALIASES[key]


def _as_number(value):
    """Finite Decimal for numeric input, None otherwise (NaN and infinities included)."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


def is_non_finite(value) -> bool:
    """True for NaN or an infinity, given as a number, a string or inside a list."""
    if isinstance(value, (list, tuple, set)):
        return any(is_non_finite(v) for v in value)
    if isinstance(value, bool) or value is None:
        return False
    try:
        return not Decimal(str(value).strip()).is_finite()
    except (InvalidOperation, ValueError):
        return False


def _equal(actual, expected) -> bool:
    a, b = _as_number(actual), _as_number(expected)
    if a is not None and b is not None:
        return a == b
    return str(actual).strip().lower() == str(expected).strip().lower()


def evaluate_criterion(criterion: dict, fields: dict) -> bool:
    """
    Evaluate one {field, operator, value} criterion against source fields.

    Raises RuleError for an unknown operator, even when the field is absent.
    """
    op = normalize_operator(criterion.get("operator"))
    name = criterion.get("field")
    if not name or name not in fields or fields[name] is None:
        return False

    actual = fields[name]
    expected = criterion.get("value")

    if op == "=":
        return _equal(actual, expected)
    if op == "!=":
        return not _equal(actual, expected)
    if op in (">", ">=", "<", "<="):
        a, b = _as_number(actual), _as_number(expected)
        if a is None or b is None:
            a, b = str(actual).lower(), str(expected).lower()
        return {
            ">": a > b,
            ">=": a >= b,
            "<": a < b,
            "<=": a <= b,
        }[op]
    if op == "contains":
        return str(expected).lower() in str(actual).lower()
    if op == "starts_with":
        return str(actual).lower().startswith(str(expected).lower())
    # "in": list value, or comma separated string
    if isinstance(expected, (list, tuple, set)):
        options = expected
    else:
        options = str(expected).split(",")
    return any(_equal(actual, option) for option in options)


def criteria_pass(rule: AccountingRule, fields: dict) -> bool:
    criteria = rule.filter_criteria
    if not criteria:
        return True
    # Evaluate every criterion so a bad operator surfaces regardless of order.
    results = [evaluate_criterion(c, fields) for c in criteria]
    if (rule.filter_logic_type or "").upper() == FILTER_LOGIC_OR:
        return any(results)
    return all(results)


def rule_matches(rule: AccountingRule, source: TransactionSource, triggering_action: str) -> bool:
    if rule.status != RULE_STATUS_ACTIVE:
        return False
    if rule.triggering_action != triggering_action:
        return False
    if rule.transaction_category != source.category:
        return False
    if rule.division_id is not None and rule.division_id != source.division_id:
        return False
    if rule.destination_division_id is not None and rule.destination_division_id != source.destination_division_id:
        return False
    if rule.transaction_type:
        if not source.transaction_type:
            return False
        if rule.transaction_type.strip().lower() != source.transaction_type.strip().lower():
            return False
    return criteria_pass(rule, source.fields)


def _party_line(rule_id: int, debit_code: str, credit_code: str, amount: int, accounts: dict[str, str]) -> PartyLine:
    if credit_code and accounts.get(credit_code) == ACCOUNT_TYPE_LIABILITY:
        return PartyLine(rule_id, credit_code, 0, amount)
    if debit_code and accounts.get(debit_code) == ACCOUNT_TYPE_LIABILITY:
        return PartyLine(rule_id, debit_code, amount, 0)
    if credit_code:
        return PartyLine(rule_id, credit_code, 0, amount)
    return PartyLine(rule_id, debit_code, amount, 0)


def plan_rule(rule: AccountingRule, source: TransactionSource, accounts: dict[str, str]) -> RulePlan:
    """
    Journal lines and party entries one rule produces for the source.

    `accounts` maps each active account code to its type. Raises RuleError.
    """
    plan = RulePlan()
    for line in rule.lines:
        label = f"Line {line.line_number}"
        amount = source.amount(line.amount_source)
        if amount is None:
            raise RuleError(f"{label}: amount source '{line.amount_source}' is not available for {source.category}")
        if amount < 0:
            raise RuleError(f"{label}: amount {amount} is negative")

        debit_code = (line.debit_account_code or "").strip()
        credit_code = (line.credit_account_code or "").strip()
        if not debit_code and not credit_code:
            raise RuleError(f"{label}: no debit or credit account")
        for code in (debit_code, credit_code):
            if code and code not in accounts:
                raise RuleError(f"{label}: account {code} does not exist or is inactive")

        if amount == 0:
            continue

        narration = f"{rule.rule_name}: {source.reference}"
        if debit_code:
            plan.lines.append(PlannedLine(rule.id, debit_code, amount, 0, bool(line.enable_subledger), narration))
        if credit_code:
            plan.lines.append(PlannedLine(rule.id, credit_code, 0, amount, bool(line.enable_subledger), narration))
        if line.enable_subledger:
            plan.party_lines.append(_party_line(rule.id, debit_code, credit_code, amount, accounts))
    return plan


def _active_accounts(org_id: int) -> dict[str, str]:
    """Active account codes of the organization mapped to their account type."""
    return {
        code: account_type for (code, account_type) in db.session.query(
            ChartOfAccount.account_code, ChartOfAccount.account_type
        ).filter(
            ChartOfAccount.org_id == org_id,
            ChartOfAccount.status == ACCOUNT_STATUS_ACTIVE,
        )
    }


def _party_for(rule: AccountingRule, source: TransactionSource) -> tuple[int | None, int | None]:
    if rule.party_type == PARTY_BILL_TO:
        return source.bill_to_org_id, source.bill_to_contact_id
    return source.remit_to_org_id, source.remit_to_contact_id


def _report_failures(result: EvaluationResult, source: TransactionSource, actor: str | None) -> None:
    for failure in result.failures:
        audit_service.record_event(
            org_id=source.org_id,
            event_type="accounting_rule.failed",
            entity_type="accounting_rule",
            entity_id=failure.rule_id,
            actor=actor,
            note=failure.message,
            payload={
                "rule_name": failure.rule_name,
                "triggering_action": result.triggering_action,
                "category": source.category,
                "reference": source.reference,
            },
        )
        current_app.logger.warning(
            "Accounting rule %s (%s) failed for %s %s: %s",
            failure.rule_id,
            failure.rule_name,
            result.triggering_action,
            source.reference,
            failure.message,
        )


def apply_rules(source: TransactionSource, triggering_action: str, *, actor: str | None = None) -> EvaluationResult:
    """
    Evaluate the organization's rules for one event and write the journal.

    Flushed, not committed; runs inside the caller's transaction so the
    journal lands together with the document change that triggered it.
    """
    result = EvaluationResult(triggering_action=triggering_action, reference=source.reference)

    rules = (
        db.session.query(AccountingRule)
        .filter(
            AccountingRule.org_id == source.org_id,
            AccountingRule.triggering_action == triggering_action,
            AccountingRule.transaction_category == source.category,
            AccountingRule.status == RULE_STATUS_ACTIVE,
        )
        .order_by(AccountingRule.id)
        .all()
    )
    if not rules:
        return result

    accounts = _active_accounts(source.org_id)
    accepted: list[tuple[AccountingRule, RulePlan]] = []
    for rule in rules:
        try:
            if not rule_matches(rule, source, triggering_action):
                continue
            plan = plan_rule(rule, source, accounts)
        except RuleError as exc:
            result.failures.append(RuleFailure(rule.id, rule.rule_name, str(exc)))
            continue
        result.matched_rule_ids.append(rule.id)
        if plan.lines:
            accepted.append((rule, plan))

    if accepted:
        rows = []
        for _, plan in accepted:
            for line in plan.lines:
                rows.append({
                    "account_code": line.account_code,
                    "debit_cents": line.debit_cents,
                    "credit_cents": line.credit_cents,
                    "narration": line.narration,
                    "sl_reference": source.reference if line.enable_subledger else None,
                    "rule_id": line.rule_id,
                })
        journal = journal_service.create_journal(
            org_id=source.org_id,
            lines=rows,
            journal_date=source.transaction_date,
            source_type=source.category,
            source_reference=source.reference,
            triggering_action=triggering_action,
            narration=f"{triggering_action}: {source.reference}",
            actor=actor,
        )
        result.journal = journal

        for rule, plan in accepted:
            party_org_id, party_contact_id = _party_for(rule, source)
            if party_org_id is None:
                continue
            for line in plan.party_lines:
                subledger_service.add_entry(
                    org_id=source.org_id,
                    journal_id=journal.id,
                    party_org_id=party_org_id,
                    party_contact_id=party_contact_id,
                    account_code=line.account_code,
                    transaction_date=source.transaction_date,
                    debit_cents=line.debit_cents,
                    credit_cents=line.credit_cents,
                    source_reference=source.reference,
                    transaction_category=source.category,
                    triggering_action=triggering_action,
                    actor=actor,
                )

        totals = journal_service.journal_totals(journal)
        if totals["is_balanced"]:
            journal_service.post(journal, actor=actor)
        else:
            result.failures.append(RuleFailure(
                None,
                None,
                f"Journal {journal.journal_number} is not balanced "
                f"(debit {totals['total_debit_cents']}, credit {totals['total_credit_cents']}); left as Draft",
            ))

    _report_failures(result, source, actor)
    return result
