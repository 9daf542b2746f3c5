# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Session Token Management with an explicit Session Context

WHY: Services never look the current user up from a global. A request is
authenticated once (validate_session) and the resulting SessionContext is
handed to whatever needs the user, the tenant or the capability.

LIFECYCLE:
- init      create_session      on sign-in
- refresh   refresh_session     rotates the token, keeps the tenant context
- teardown  revoke_session      on sign-out (force_logout revokes all)

MULTI-TENANT: Sessions capture org_id at creation time. The organization
code/name and the capability are resolved when the session is validated.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- Absolute and idle timeouts (config: SESSION_ABSOLUTE_TIMEOUT_HOURS,
  SESSION_IDLE_TIMEOUT_MINUTES)
- Sessions of deactivated users or organizations are revoked on sight
"""

from __future__ import annotations

import hashlib
import secrets
from collections.abc import MutableMapping
from dataclasses import dataclass, field
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import Organization, SessionToken, User
from .permission_service import Capability, get_user_role_names, resolve_capability
from erp.time_utils import utcnow


DEFAULT_ABSOLUTE_TIMEOUT = timedelta(hours=24)
DEFAULT_IDLE_TIMEOUT = timedelta(hours=2)

# Keys left behind in browser storage by the hosted auth client
AUTH_STORAGE_PREFIX = "supabase.auth."
AUTH_STORAGE_MARKER = "sb-"


@dataclass
class SessionContext:
    """
    Everything a request knows about its caller.

    org_id/org_code/org_name are None for users without an organization.
    capability starts PENDING and is resolved by validate_session.
    """
    user: User | None
    session: SessionToken | None = None
    org_id: int | None = None
    org_code: str | None = None
    org_name: str | None = None
    roles: list[str] = field(default_factory=list)
    capability: Capability = field(default_factory=Capability.pending)

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def actor(self) -> str | None:
        """Attribution string written to created_by/updated_by columns."""
        return self.user.email if self.user else None

    def to_dict(self) -> dict:
        return {
            "user": self.user.to_dict() if self.user else None,
            "organization": {
                "id": self.org_id,
                "code": self.org_code,
                "name": self.org_name,
            } if self.org_id else None,
            "roles": list(self.roles),
            "capability": self.capability.to_dict(),
            "expires_at": self.session.to_dict()["expires_at"] if self.session else None,
        }


def anonymous_context() -> SessionContext:
    return SessionContext(user=None, capability=Capability.none())


def _absolute_timeout() -> timedelta:
    hours = current_app.config.get("SESSION_ABSOLUTE_TIMEOUT_HOURS")
    return timedelta(hours=hours) if hours else DEFAULT_ABSOLUTE_TIMEOUT


def _idle_timeout() -> timedelta:
    minutes = current_app.config.get("SESSION_IDLE_TIMEOUT_MINUTES")
    return timedelta(minutes=minutes) if minutes else DEFAULT_IDLE_TIMEOUT


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    Returns 64-character hex string (32 bytes of entropy).
    This is the plaintext token sent to client (never stored).
    """
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    WHY SHA-256 not bcrypt: Tokens are already high-entropy (unlike passwords).
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def build_context(session: SessionToken) -> SessionContext:
    """Resolve tenant details, role names and capability for a live session."""
    user = session.user
    org = db.session.get(Organization, session.org_id) if session.org_id else None
    return SessionContext(
        user=user,
        session=session,
        org_id=org.id if org else None,
        org_code=org.code if org else None,
        org_name=org.name if org else None,
        roles=get_user_role_names(user.id),
        capability=resolve_capability(user),
    )


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
    org_id: int | None = None,
) -> tuple[SessionToken, str]:
    """
    Create new session token for user with tenant context.

    org_id defaults to the user's organization. Raises ValueError if the
    user is missing or inactive, or the organization is inactive.

    Returns (session_record, plaintext_token).
    """
    user = db.session.get(User, user_id)
    if not user:
        raise ValueError("User not found")
    if not user.is_active:
        raise ValueError("User account is deactivated")

    org_id = org_id if org_id is not None else user.org_id
    if org_id is not None:
        org = db.session.get(Organization, org_id)
        if not org or not org.is_active:
            raise ValueError("Organization is not active")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        org_id=org_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _absolute_timeout(),
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason


def validate_session(token: str) -> SessionContext | None:
    """
    Validate session token and return SessionContext if valid.

    Returns None if:
    - Token is invalid, expired, or revoked
    - Session idled out (the session is revoked)
    - User account or organization was deactivated (the session is revoked)

    Updates last_used_at on success.
    """
    if not token:
        return None

    now = utcnow()
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > _idle_timeout():
        _revoke(session, "Idle timeout")
        db.session.commit()
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session, "User account deactivated")
        db.session.commit()
        return None

    if session.org_id is not None:
        org = db.session.get(Organization, session.org_id)
        if not org or not org.is_active:
            _revoke(session, "Organization deactivated")
            db.session.commit()
            return None

    session.last_used_at = now
    db.session.commit()

    return build_context(session)


def refresh_session(
    token: str,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionContext, str] | None:
    """
    Rotate a valid token.

    The old session is revoked and a new one is issued for the same user and
    tenant with a fresh absolute timeout. Returns None if the token is not
    valid any more.
    """
    context = validate_session(token)
    if context is None:
        return None

    _revoke(context.session, "Rotated")
    new_session, new_token = create_session(
        context.user.id,
        user_agent=user_agent,
        ip_address=ip_address,
        org_id=context.session.org_id,
    )
    return build_context(new_session), new_token


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """
    Revoke session token.

    Returns True if session was revoked, False if not found.
    """
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    db.session.commit()
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions") -> int:
    """Revoke every live session of a user. Returns number of sessions revoked."""
    sessions = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
    for session in sessions:
        _revoke(session, reason)
    db.session.commit()
    return len(sessions)


def is_auth_storage_key(key: str) -> bool:
    return key.startswith(AUTH_STORAGE_PREFIX) or AUTH_STORAGE_MARKER in key


def purge_auth_keys(storage: MutableMapping | None) -> list[str]:
    """
    Remove leftover auth entries from a client storage mapping.

    Every key starting with "supabase.auth." or containing "sb-" is dropped.
    Returns the removed keys.
    """
    if not storage:
        return []
    removed = [key for key in list(storage.keys()) if is_auth_storage_key(key)]
    for key in removed:
        del storage[key]
    return removed


def force_logout(token: str, storage: MutableMapping | None = None) -> dict:
    """
    Hard sign-out: revoke every session of the token's owner and purge the
    client storage snapshot if one was supplied.
    """
    revoked = 0
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if session:
        revoked = revoke_all_user_sessions(session.user_id, reason="Forced logout")
    return {
        "revoked_sessions": revoked,
        "purged_keys": purge_auth_keys(storage),
    }
