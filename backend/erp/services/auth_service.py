# Overview: Service-layer operations for auth; sign-up, sign-in, sign-out and the admin bootstrap.

"""
Authentication Provider

WHY: Every action must be attributable. Uses bcrypt for password hashing and
validates password strength at sign-up.

MULTI-TENANT: A user may be affiliated with one organization. Sign-in is
refused when that organization is inactive.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters; upper, lower, digit and special char required
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import Organization, Permission, Role, RolePermission, User, UserRole
from ..validation import ConflictError, ValidationError, validate_email
from . import permission_service, session_service
from .concurrency import atomic
from erp.time_utils import utcnow


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


class AuthError(Exception):
    """Invalid credentials or unusable account (401)."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-+=]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    A malformed stored hash counts as a mismatch.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def get_user_by_email(email: str) -> User | None:
    if not email:
        return None
    return db.session.query(User).filter(User.email == email.strip().lower()).first()


def sign_up(
    *,
    email: str,
    password: str,
    first_name: str | None = None,
    last_name: str | None = None,
    org_id: int | None = None,
    designation: str | None = None,
) -> User:
    """
    Register a user.

    The user is flushed, not committed, so callers can attach roles in the
    same transaction (see user_service.create_user_with_roles).

    Raises:
        ValidationError: bad e-mail or weak password
        ConflictError: e-mail already registered
    """
    email = validate_email(email)

    if org_id is not None:
        org = db.session.get(Organization, org_id)
        if not org:
            raise ValidationError("Organization not found")
        if not org.is_active:
            raise ValidationError("Organization is not active")

    if get_user_by_email(email):
        raise ConflictError("A user with this email already exists")

    user = User(
        email=email,
        first_name=first_name,
        last_name=last_name,
        designation=designation,
        org_id=org_id,
        password_hash=hash_password(password),
        is_active=True,
    )
    db.session.add(user)
    db.session.flush()
    return user


def sign_in(
    email: str,
    password: str,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[session_service.SessionContext, str]:
    """
    Authenticate and open a session.

    Returns (SessionContext, plaintext_token). Every failure raises AuthError
    with the same message so the response does not reveal which check failed;
    the precise reason goes to the security log.
    """
    user = get_user_by_email(email)

    def _fail(reason: str):
        permission_service.log_security_event(
            user_id=user.id if user else None,
            event_type="LOGIN_FAILED",
            success=False,
            resource="/api/auth/login",
            action="POST",
            reason=reason,
            ip_address=ip_address,
            user_agent=user_agent,
            org_id=user.org_id if user else None,
        )
        raise AuthError("Invalid email or password")

    if not user:
        _fail("Unknown email")
    if not verify_password(password, user.password_hash):
        _fail("Wrong password")
    if not user.is_active:
        _fail("User account is deactivated")
    if user.org_id is not None:
        org = db.session.get(Organization, user.org_id)
        if not org or not org.is_active:
            _fail("Organization is not active")

    user.last_login_at = utcnow()
    session, token = session_service.create_session(user.id, user_agent=user_agent, ip_address=ip_address)
    return session_service.build_context(session), token


def sign_out(token: str, user_id: int | None = None, org_id: int | None = None) -> bool:
    revoked = session_service.revoke_session(token, reason="User logout")
    if revoked:
        permission_service.log_security_event(
            user_id=user_id,
            event_type="LOGOUT",
            success=True,
            org_id=org_id,
        )
    return revoked


def bootstrap_admin(password: str | None = None) -> dict:
    """
    Ensure the administrative tenant exists.

    - organization coded ADMIN_ORG_CODE ("ADMN"), type Admin
    - role ADMIN_ROLE_NAME ("Admin-Role") in that organization holding every
      catalog permission
    - user ADMIN_BOOTSTRAP_EMAIL ("adminuser@admn.com") linked to that role

    Existing records are reused, never duplicated, so the bootstrap can run
    any number of times. All writes happen in one transaction.

    Returns ids and a "created" flag per record.
    """
    cfg = current_app.config
    org_code = cfg.get("ADMIN_ORG_CODE", "ADMN")
    role_name = cfg.get("ADMIN_ROLE_NAME", "Admin-Role")
    email = cfg.get("ADMIN_BOOTSTRAP_EMAIL", "adminuser@admn.com").lower()
    password = password or cfg.get("ADMIN_BOOTSTRAP_PASSWORD")

    created = {"organization": False, "role": False, "user": False}

    with atomic():
        permission_service.initialize_permissions()

        org = db.session.query(Organization).filter_by(code=org_code).first()
        if not org:
            org = Organization(
                code=org_code,
                name=cfg.get("ADMIN_ORG_NAME", "Administration"),
                org_type="Admin",
                status="active",
                created_by="system",
            )
            db.session.add(org)
            db.session.flush()
            created["organization"] = True

        role = db.session.query(Role).filter_by(org_id=org.id, name=role_name).first()
        if not role:
            role = Role(
                org_id=org.id,
                name=role_name,
                description="Full access to every module",
                created_by="system",
            )
            db.session.add(role)
            db.session.flush()
            created["role"] = True

        granted = {rp.permission_id for rp in db.session.query(RolePermission).filter_by(role_id=role.id)}
        for permission in db.session.query(Permission).all():
            if permission.id not in granted:
                db.session.add(RolePermission(role_id=role.id, permission_id=permission.id))

        user = get_user_by_email(email)
        if not user:
            user = User(
                email=email,
                first_name="Admin",
                last_name="User",
                org_id=org.id,
                password_hash=hash_password(password),
                is_active=True,
            )
            db.session.add(user)
            db.session.flush()
            created["user"] = True

        link = db.session.query(UserRole).filter_by(user_id=user.id, role_id=role.id).first()
        if not link:
            db.session.add(UserRole(user_id=user.id, role_id=role.id))

    return {
        "organization_id": org.id,
        "role_id": role.id,
        "user_id": user.id,
        "created": created,
    }
