# backend/erp/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/erp.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///erp.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Session lifetime (see services/session_service.py)
    SESSION_ABSOLUTE_TIMEOUT_HOURS = _int_env("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24)
    SESSION_IDLE_TIMEOUT_MINUTES = _int_env("SESSION_IDLE_TIMEOUT_MINUTES", 120)

    # Administrative tenant bootstrap (flask system bootstrap-admin)
    ADMIN_ORG_CODE = os.environ.get("ADMIN_ORG_CODE", "ADMN")
    ADMIN_ORG_NAME = os.environ.get("ADMIN_ORG_NAME", "Administration")
    ADMIN_ROLE_NAME = os.environ.get("ADMIN_ROLE_NAME", "Admin-Role")
    ADMIN_BOOTSTRAP_EMAIL = os.environ.get("ADMIN_BOOTSTRAP_EMAIL", "adminuser@admn.com")
    ADMIN_BOOTSTRAP_PASSWORD = os.environ.get("ADMIN_BOOTSTRAP_PASSWORD", "Password@admin1")

    # Invoices fall due this many days after the PO date unless the PO says otherwise
    DEFAULT_PAYMENT_TERMS_DAYS = _int_env("DEFAULT_PAYMENT_TERMS_DAYS", 30)

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:8080",
        ).split(",")
        if origin.strip()
    ]
