from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import Boolean, Date, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from erp.time_utils import parse_iso_date, parse_iso_datetime


# Upper bound for any single monetary amount: 99,99,99,999.99 in minor units.
MAX_AMOUNT_CENTS = 9_999_999_999

ORGANIZATION_CODE_RE = re.compile(r"^[A-Z0-9]{4}$")
DIVISION_SUFFIX_RE = re.compile(r"^[A-Z0-9]{3}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class ValidationError(ValueError):
    """400-level input problem."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate organization code)."""


class NotFoundError(LookupError):
    """404-level missing record."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or not re.fullmatch(r"-?\d+", stripped):
                raise ValidationError(f"{col.key} must be an integer")
            return int(stripped)
        raise ValidationError(f"{col.key} must be an integer")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be true or false")

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        try:
            dt = parse_iso_datetime(str(value))
        except ValueError:
            raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
        if dt is None:
            raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
        return dt

    if isinstance(coltype, Date):
        try:
            d = parse_iso_date(value)
        except ValueError:
            raise ValidationError(f"{col.key} must be an ISO-8601 date")
        if d is None:
            raise ValidationError(f"{col.key} must be an ISO-8601 date")
        return d

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    Field-level problems are collected into ValidationError.details so the
    client can show them inline next to each input.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    errors: dict[str, str] = {}

    required = policy.required_on_create or set()
    if not partial:
        for f in sorted(required):
            if f not in payload or payload[f] in (None, ""):
                errors[f] = "This field is required"

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields or k not in cols:
            errors[k] = "Field not allowed"

    patch: dict = {}

    for k, raw in payload.items():
        if k in errors:
            continue
        col = cols[k]

        if raw is None:
            if not col.nullable:
                errors[k] = "Cannot be null"
            else:
                patch[k] = None
            continue

        try:
            val = _coerce_value(col, raw)
        except ValidationError as exc:
            errors[k] = str(exc)
            continue

        if isinstance(col.type, (String, Text)) and not col.nullable and val == "":
            errors[k] = "Cannot be blank"
            continue

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                errors[k] = f"Exceeds max length {col.type.length}"
                continue

        patch[k] = val

    if errors:
        summary = "; ".join(f"{k}: {v}" for k, v in errors.items())
        raise ValidationError(f"Validation failed - {summary}", details=errors)

    return patch


# =============================================================================
# Domain rules not captured by column metadata
# =============================================================================


def validate_organization_code(code: str | None) -> str:
    """Organization codes are exactly four uppercase letters or digits."""
    if not isinstance(code, str) or not ORGANIZATION_CODE_RE.match(code):
        raise ValidationError(
            "Organization code must be exactly 4 uppercase letters or digits",
            details={"code": "Must match [A-Z0-9]{4}"},
        )
    return code


def validate_division_suffix(suffix: str | None) -> str:
    """Division codes append a three character uppercase alphanumeric suffix to the org code."""
    if not isinstance(suffix, str) or not DIVISION_SUFFIX_RE.match(suffix):
        raise ValidationError(
            "Division code must be exactly 3 uppercase letters or digits",
            details={"user_defined_code": "Must match [A-Z0-9]{3}"},
        )
    return suffix


def validate_email(email: str | None) -> str:
    if not isinstance(email, str) or not EMAIL_RE.match(email.strip()):
        raise ValidationError("Invalid email address", details={"email": "Invalid email address"})
    return email.strip().lower()


def require_choice(field: str, value, choices: Iterable[str], *, allow_none: bool = False):
    if value is None and allow_none:
        return None
    choices = list(choices)
    if value not in choices:
        raise ValidationError(
            f"{field} must be one of: {', '.join(choices)}",
            details={field: "Invalid choice"},
        )
    return value


def require_length(field: str, value: str | None, *, min_len: int = 0, max_len: int | None = None) -> str | None:
    if value is None:
        if min_len:
            raise ValidationError(f"{field} is required", details={field: "This field is required"})
        return None
    value = str(value).strip()
    if len(value) < min_len:
        raise ValidationError(
            f"{field} must be at least {min_len} characters",
            details={field: f"Minimum {min_len} characters"},
        )
    if max_len is not None and len(value) > max_len:
        raise ValidationError(
            f"{field} must be at most {max_len} characters",
            details={field: f"Maximum {max_len} characters"},
        )
    return value


def require_amount(field: str, value, *, allow_zero: bool = True) -> int:
    """Amounts are integer minor units; negative values are never accepted."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer amount in minor units")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{field} must be {'>= 0' if allow_zero else '> 0'}")
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS}")
    return value


def require_positive_quantity(field: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return value
