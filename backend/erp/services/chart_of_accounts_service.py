# Overview: Chart of accounts per organization.

from __future__ import annotations

from ..extensions import db
from ..models import ChartOfAccount
from ..models.finance import ACCOUNT_STATUS_ACTIVE, ACCOUNT_STATUS_INACTIVE, ACCOUNT_TYPES
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    require_choice,
    require_length,
    validate_payload,
)
from .session_service import SessionContext
from .tenant_service import require_organization, require_record_in_org, scoped_query


STATUSES = (ACCOUNT_STATUS_ACTIVE, ACCOUNT_STATUS_INACTIVE)

ACCOUNT_UPDATE_POLICY = ModelValidationPolicy(writable_fields={"account_name", "account_type", "status"})


def create_account(ctx: SessionContext, data: dict) -> ChartOfAccount:
    org = require_organization(ctx)
    code = require_length("account_code", data.get("account_code"), min_len=1, max_len=32)
    if db.session.query(ChartOfAccount.id).filter_by(org_id=org.id, account_code=code).first():
        raise ConflictError(f"Account {code} already exists")

    account = ChartOfAccount(
        org_id=org.id,
        account_code=code,
        account_name=require_length("account_name", data.get("account_name"), min_len=1, max_len=128),
        account_type=require_choice("account_type", data.get("account_type"), ACCOUNT_TYPES),
        status=require_choice("status", data.get("status", ACCOUNT_STATUS_ACTIVE), STATUSES),
        created_by=ctx.actor,
    )
    db.session.add(account)
    db.session.flush()
    return account


def update_account(ctx: SessionContext, account_id: int, data: dict) -> ChartOfAccount:
    """The account code is immutable once journals may reference it."""
    account = get_account(ctx, account_id)
    data = dict(data or {})
    if data.pop("account_code", account.account_code) != account.account_code:
        raise ValidationError("Account code cannot be changed")

    patch = validate_payload(model=ChartOfAccount, payload=data, policy=ACCOUNT_UPDATE_POLICY, partial=True)
    if "account_type" in patch:
        require_choice("account_type", patch["account_type"], ACCOUNT_TYPES)
    if "status" in patch:
        require_choice("status", patch["status"], STATUSES)
    for key, value in patch.items():
        setattr(account, key, value)
    db.session.flush()
    return account


def get_account(ctx: SessionContext, account_id: int) -> ChartOfAccount:
    return require_record_in_org(ctx, ChartOfAccount, account_id, label="Account")


def list_accounts(
    ctx: SessionContext,
    *,
    status: str | None = None,
    account_type: str | None = None,
) -> list[ChartOfAccount]:
    query = scoped_query(ctx, ChartOfAccount)
    if status:
        query = query.filter(ChartOfAccount.status == status)
    if account_type:
        query = query.filter(ChartOfAccount.account_type == account_type)
    return query.order_by(ChartOfAccount.account_code).all()
