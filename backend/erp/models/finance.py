from __future__ import annotations

import json

from ..extensions import db
from erp.time_utils import to_iso_date, to_utc_z


INVOICE_STATUS_CREATED = "Created"
INVOICE_STATUS_APPROVED = "Approved"
INVOICE_STATUS_PAID = "Paid"

PAYMENT_STATUS_CREATED = "Created"
PAYMENT_STATUS_APPROVED = "Approved"
PAYMENT_STATUS_REJECTED = "Rejected"

PAYMENT_MODES = ("Bank Transfer", "UPI", "Cheque", "Cash", "Online Payment", "Wire Transfer")

ACCOUNT_TYPE_LIABILITY = "Liability"
ACCOUNT_TYPES = ("Asset", ACCOUNT_TYPE_LIABILITY, "Equity", "Revenue", "Expense")
ACCOUNT_STATUS_ACTIVE = "Active"
ACCOUNT_STATUS_INACTIVE = "Inactive"

RULE_STATUS_ACTIVE = "Active"
RULE_STATUS_INACTIVE = "Inactive"

JOURNAL_STATUS_DRAFT = "Draft"
JOURNAL_STATUS_POSTED = "Posted"
JOURNAL_STATUS_REVERSED = "Reversed"

SUBLEDGER_STATUS_OPEN = "Open"
SUBLEDGER_STATUS_SETTLED = "Settled"

GL_TYPE_PAYABLE_INVOICE = "Payable Invoice"
GL_TYPE_PAYMENT = "Payment"
GL_TYPE_CREDIT_NOTE = "Credit Note"
GL_TYPE_DEBIT_NOTE = "Debit Note"
GL_TRANSACTION_TYPES = (GL_TYPE_PAYABLE_INVOICE, GL_TYPE_PAYMENT, GL_TYPE_CREDIT_NOTE, GL_TYPE_DEBIT_NOTE)

# Accounting rule vocabulary
CATEGORY_INVOICE = "Invoice"
CATEGORY_PO = "PO"
CATEGORY_PAYMENT = "Payment"
CATEGORY_TRANSFER = "Inventory Transfer"
RULE_CATEGORIES = (CATEGORY_INVOICE, CATEGORY_PO, CATEGORY_PAYMENT, CATEGORY_TRANSFER)

ACTION_INVOICE_APPROVED = "Invoice Approved"
ACTION_PO_CREATED = "PO Created"
ACTION_PO_RECEIVE = "Purchase order receive"
ACTION_PAYMENT_CREATED = "Payment Created"
ACTION_PAYMENT_APPROVED = "Payment Approved"
ACTION_PAYMENT_PROCESSED = "Payment Processed"
ACTION_TRANSFER_CONFIRMED = "Transfer confirmed"
TRIGGERING_ACTIONS = (
    ACTION_INVOICE_APPROVED,
    ACTION_PO_CREATED,
    ACTION_PO_RECEIVE,
    ACTION_PAYMENT_CREATED,
    ACTION_PAYMENT_APPROVED,
    ACTION_PAYMENT_PROCESSED,
    ACTION_TRANSFER_CONFIRMED,
)

PARTY_BILL_TO = "Bill To"
PARTY_REMIT_TO = "Remit To"
PARTY_TYPES = (PARTY_BILL_TO, PARTY_REMIT_TO)

FILTER_LOGIC_AND = "AND"
FILTER_LOGIC_OR = "OR"


# =============================================================================
# Invoices & payments
# =============================================================================


class Invoice(db.Model):
    """
    Supplier invoice generated from a fully received purchase order.

    bill_to = the buying organization (owner of the PO),
    remit_to = the supplier. One invoice per purchase order.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("org_id", "invoice_number", name="uq_invoices_number"),
        db.UniqueConstraint("purchase_order_id", name="uq_invoices_purchase_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False)
    division_id = db.Column(db.Integer, db.ForeignKey("divisions.id"), nullable=True)
    invoice_number = db.Column(db.String(64), nullable=False)
    invoice_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=False)

    bill_to_org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    remit_to_org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    bill_to_contact_id = db.Column(db.Integer, db.ForeignKey("contacts.id"), nullable=True)
    remit_to_contact_id = db.Column(db.Integer, db.ForeignKey("contacts.id"), nullable=True)

    total_item_cents = db.Column(db.Integer, nullable=False, default=0)
    total_gst_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=INVOICE_STATUS_CREATED, index=True)

    created_by = db.Column(db.String(255), nullable=True)
    approved_by = db.Column(db.String(255), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    purchase_order = db.relationship("PurchaseOrder", backref=db.backref("invoice", uselist=False))
    bill_to = db.relationship("Organization", foreign_keys=[bill_to_org_id])
    remit_to = db.relationship("Organization", foreign_keys=[remit_to_org_id])
    lines = db.relationship(
        "InvoiceLine",
        backref="invoice",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="InvoiceLine.line_number",
    )

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "organization_id": self.org_id,
            "purchase_order_id": self.purchase_order_id,
            "po_number": self.purchase_order.po_number if self.purchase_order else None,
            "division_id": self.division_id,
            "invoice_number": self.invoice_number,
            "invoice_date": to_iso_date(self.invoice_date),
            "due_date": to_iso_date(self.due_date),
            "bill_to_id": self.bill_to_org_id,
            "bill_to_code": self.bill_to.code if self.bill_to else None,
            "remit_to_id": self.remit_to_org_id,
            "remit_to_code": self.remit_to.code if self.remit_to else None,
            "bill_to_contact_id": self.bill_to_contact_id,
            "remit_to_contact_id": self.remit_to_contact_id,
            "total_item_cents": self.total_item_cents,
            "total_gst_cents": self.total_gst_cents,
            "total_cents": self.total_cents,
            "status": self.status,
            "created_by": self.created_by,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class InvoiceLine(db.Model):
    __tablename__ = "invoice_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    uom = db.Column(db.String(16), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)
    gst_bps = db.Column(db.Integer, nullable=False, default=0)
    gst_value_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    item = db.relationship("Item")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_number": self.line_number,
            "item_id": self.item_id,
            "item_code": self.item.item_code if self.item else None,
            "quantity": self.quantity,
            "uom": self.uom,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "gst_bps": self.gst_bps,
            "gst_value_cents": self.gst_value_cents,
            "line_total_cents": self.line_total_cents,
        }


class Payment(db.Model):
    """
    Outgoing payment from the organization to a payee (usually a supplier).

    Lifecycle: Created -> Approved | Rejected.
    payment_mode doubles as the accounting rule "transaction type".
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.UniqueConstraint("org_id", "payment_number", name="uq_payments_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    payee_org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    division_id = db.Column(db.Integer, db.ForeignKey("divisions.id"), nullable=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, index=True)

    payment_number = db.Column(db.String(64), nullable=False)
    payment_date = db.Column(db.Date, nullable=False)
    payment_mode = db.Column(db.String(32), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    reference_number = db.Column(db.String(64), nullable=True)
    remarks = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_CREATED, index=True)

    created_by = db.Column(db.String(255), nullable=True)
    approved_by = db.Column(db.String(255), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    payee = db.relationship("Organization", foreign_keys=[payee_org_id])
    invoice = db.relationship("Invoice", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.org_id,
            "payee_id": self.payee_org_id,
            "payee_code": self.payee.code if self.payee else None,
            "division_id": self.division_id,
            "invoice_id": self.invoice_id,
            "invoice_number": self.invoice.invoice_number if self.invoice else None,
            "payment_number": self.payment_number,
            "payment_date": to_iso_date(self.payment_date),
            "payment_mode": self.payment_mode,
            "amount_cents": self.amount_cents,
            "reference_number": self.reference_number,
            "remarks": self.remarks,
            "status": self.status,
            "created_by": self.created_by,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "created_at": to_utc_z(self.created_at),
        }


# =============================================================================
# Chart of accounts & accounting rules
# =============================================================================


class ChartOfAccount(db.Model):
    __tablename__ = "chart_of_accounts"
    __table_args__ = (
        db.UniqueConstraint("org_id", "account_code", name="uq_chart_of_accounts_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    account_code = db.Column(db.String(32), nullable=False)
    account_name = db.Column(db.String(128), nullable=False)
    account_type = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=ACCOUNT_STATUS_ACTIVE)
    created_by = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.org_id,
            "account_code": self.account_code,
            "account_name": self.account_name,
            "account_type": self.account_type,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class AccountingRule(db.Model):
    """
    Maps a business event to the journal lines it should produce.

    A rule applies when its triggering_action and transaction_category match
    the event, its division (if any) matches the source division, its
    transaction_type (if any) matches, and its filter criteria pass.
    filter_criteria is stored as a JSON list of {field, operator, value}.
    """
    __tablename__ = "accounting_rules"
    __table_args__ = (
        db.Index("ix_accounting_rules_lookup", "org_id", "triggering_action", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    rule_name = db.Column(db.String(128), nullable=False)
    division_id = db.Column(db.Integer, db.ForeignKey("divisions.id"), nullable=True)
    destination_division_id = db.Column(db.Integer, db.ForeignKey("divisions.id"), nullable=True)
    transaction_category = db.Column(db.String(32), nullable=False)
    transaction_reference = db.Column(db.String(64), nullable=True)
    transaction_type = db.Column(db.String(64), nullable=True)
    triggering_action = db.Column(db.String(64), nullable=False)
    party_type = db.Column(db.String(16), nullable=True)
    party_name = db.Column(db.String(128), nullable=True)
    party_code = db.Column(db.String(16), nullable=True)
    filter_logic_type = db.Column(db.String(3), nullable=False, default="AND")
    filter_criteria_json = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default=RULE_STATUS_ACTIVE)

    created_by = db.Column(db.String(255), nullable=True)
    updated_by = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    lines = db.relationship(
        "AccountingRuleLine",
        backref="rule",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="AccountingRuleLine.line_number",
    )

    @property
    def filter_criteria(self) -> list[dict]:
        if not self.filter_criteria_json:
            return []
        return json.loads(self.filter_criteria_json)

    @filter_criteria.setter
    def filter_criteria(self, value: list[dict] | None) -> None:
        self.filter_criteria_json = json.dumps(value) if value else None

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "organization_id": self.org_id,
            "rule_name": self.rule_name,
            "division_id": self.division_id,
            "destination_division_id": self.destination_division_id,
            "transaction_category": self.transaction_category,
            "transaction_reference": self.transaction_reference,
            "transaction_type": self.transaction_type,
            "triggering_action": self.triggering_action,
            "party_type": self.party_type,
            "party_name": self.party_name,
            "party_code": self.party_code,
            "filter_logic_type": self.filter_logic_type,
            "filter_criteria": self.filter_criteria,
            "status": self.status,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class AccountingRuleLine(db.Model):
    __tablename__ = "accounting_rule_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    rule_id = db.Column(db.Integer, db.ForeignKey("accounting_rules.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)
    debit_account_code = db.Column(db.String(32), nullable=True)
    credit_account_code = db.Column(db.String(32), nullable=True)
    amount_source = db.Column(db.String(64), nullable=False)
    enable_subledger = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_number": self.line_number,
            "debit_account_code": self.debit_account_code,
            "credit_account_code": self.credit_account_code,
            "amount_source": self.amount_source,
            "enable_subledger": self.enable_subledger,
        }


# =============================================================================
# Journals, subledger, general ledger
# =============================================================================


class JournalHeader(db.Model):
    """
    Double-entry journal.

    Lifecycle: Draft -> Posted -> Reversed. A journal can only be posted
    when it has lines and total debits equal total credits.
    """
    __tablename__ = "journal_headers"
    __table_args__ = (
        db.UniqueConstraint("org_id", "journal_number", name="uq_journal_headers_number"),
        db.Index("ix_journal_headers_source", "org_id", "source_type", "source_reference"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    journal_number = db.Column(db.String(64), nullable=False)
    journal_date = db.Column(db.Date, nullable=False)
    source_type = db.Column(db.String(32), nullable=True)
    source_reference = db.Column(db.String(64), nullable=True)
    triggering_action = db.Column(db.String(64), nullable=True)
    narration = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default=JOURNAL_STATUS_DRAFT, index=True)

    created_by = db.Column(db.String(255), nullable=True)
    posted_by = db.Column(db.String(255), nullable=True)
    posted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reversed_by = db.Column(db.String(255), nullable=True)
    reversed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    lines = db.relationship(
        "JournalLine",
        backref="journal",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="JournalLine.line_number",
    )

    @property
    def total_debit_cents(self) -> int:
        return sum(line.debit_cents for line in self.lines)

    @property
    def total_credit_cents(self) -> int:
        return sum(line.credit_cents for line in self.lines)

    @property
    def is_balanced(self) -> bool:
        return bool(self.lines) and self.total_debit_cents == self.total_credit_cents

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "organization_id": self.org_id,
            "journal_number": self.journal_number,
            "journal_date": to_iso_date(self.journal_date),
            "source_type": self.source_type,
            "source_reference": self.source_reference,
            "triggering_action": self.triggering_action,
            "narration": self.narration,
            "status": self.status,
            "total_debit_cents": self.total_debit_cents,
            "total_credit_cents": self.total_credit_cents,
            "created_by": self.created_by,
            "posted_by": self.posted_by,
            "posted_at": to_utc_z(self.posted_at),
            "reversed_by": self.reversed_by,
            "reversed_at": to_utc_z(self.reversed_at),
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class JournalLine(db.Model):
    __tablename__ = "journal_lines"
    __table_args__ = (
        db.CheckConstraint("debit_cents >= 0 AND credit_cents >= 0", name="ck_journal_lines_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    journal_id = db.Column(db.Integer, db.ForeignKey("journal_headers.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)
    account_code = db.Column(db.String(32), nullable=False, index=True)
    debit_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_cents = db.Column(db.Integer, nullable=False, default=0)
    narration = db.Column(db.Text, nullable=True)
    sl_reference = db.Column(db.String(64), nullable=True)
    rule_id = db.Column(db.Integer, db.ForeignKey("accounting_rules.id"), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_number": self.line_number,
            "account_code": self.account_code,
            "debit_cents": self.debit_cents,
            "credit_cents": self.credit_cents,
            "narration": self.narration,
            "sl_reference": self.sl_reference,
            "rule_id": self.rule_id,
        }


class SubledgerEntry(db.Model):
    """
    Per-counterparty entry derived from a journal line.

    Open entries make up the party balance; they are settled when the
    referenced document is paid.
    """
    __tablename__ = "subledger"
    __table_args__ = (
        db.Index("ix_subledger_party", "org_id", "party_org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    journal_id = db.Column(db.Integer, db.ForeignKey("journal_headers.id"), nullable=True, index=True)
    party_org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    party_contact_id = db.Column(db.Integer, db.ForeignKey("contacts.id"), nullable=True)
    account_code = db.Column(db.String(32), nullable=True)
    transaction_date = db.Column(db.Date, nullable=False)
    debit_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_cents = db.Column(db.Integer, nullable=False, default=0)
    source_reference = db.Column(db.String(64), nullable=True, index=True)
    transaction_category = db.Column(db.String(32), nullable=True)
    triggering_action = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=SUBLEDGER_STATUS_OPEN)
    settled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_by = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    party = db.relationship("Organization", foreign_keys=[party_org_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.org_id,
            "journal_id": self.journal_id,
            "party_id": self.party_org_id,
            "party_code": self.party.code if self.party else None,
            "party_contact_id": self.party_contact_id,
            "account_code": self.account_code,
            "transaction_date": to_iso_date(self.transaction_date),
            "debit_cents": self.debit_cents,
            "credit_cents": self.credit_cents,
            "source_reference": self.source_reference,
            "transaction_category": self.transaction_category,
            "triggering_action": self.triggering_action,
            "status": self.status,
            "settled_at": to_utc_z(self.settled_at),
        }


class GeneralLedgerEntry(db.Model):
    """
    Pairwise payable ledger between a bill-to and a remit-to organization.

    amount_cents is signed: invoices and debit notes increase what bill_to
    owes remit_to (positive), payments and credit notes reduce it (negative).
    """
    __tablename__ = "general_ledger"
    __table_args__ = (
        db.Index("ix_general_ledger_pair", "bill_to_org_id", "remit_to_org_id", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    bill_to_org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    remit_to_org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    transaction_type = db.Column(db.String(32), nullable=False)
    transaction_date = db.Column(db.Date, nullable=False)
    reference_number = db.Column(db.String(64), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    created_by = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bill_to_id": self.bill_to_org_id,
            "remit_to_id": self.remit_to_org_id,
            "transaction_type": self.transaction_type,
            "transaction_date": to_iso_date(self.transaction_date),
            "reference_number": self.reference_number,
            "amount_cents": self.amount_cents,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
