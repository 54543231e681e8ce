# backend/sportsfest/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/sportsfest.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///sportsfest.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Cart sessions slide forward this many minutes on every mutation
    CART_TTL_MINUTES = _env_int("CART_TTL_MINUTES", 60)

    # Abandoned-order sweep thresholds (hours since creation)
    ABANDONED_ORDER_HOURS = _env_int("ABANDONED_ORDER_HOURS", 24)
    QUICK_CLEANUP_HOURS = _env_int("QUICK_CLEANUP_HOURS", 1)

    # Overpayment accepted (and absorbed) up to this many cents
    PAYMENT_TOLERANCE_CENTS = _env_int("PAYMENT_TOLERANCE_CENTS", 1)

    # Card processing fee passed through on sponsorship invoices: 2.9% + $0.30
    SPONSORSHIP_FEE_BPS = _env_int("SPONSORSHIP_FEE_BPS", 290)
    SPONSORSHIP_FEE_FIXED_CENTS = _env_int("SPONSORSHIP_FEE_FIXED_CENTS", 30)

    # Shared secrets for machine-to-machine endpoints (cron, payment provider)
    CRON_SECRET = os.environ.get("CRON_SECRET")
    PAYMENT_WEBHOOK_SECRET = os.environ.get("PAYMENT_WEBHOOK_SECRET")

    # Used to build payment links in invoice emails
    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:3000")

    # Outbound email (Flask-Mail)
    MAIL_SERVER = os.environ.get("SMTP_HOST", "localhost")
    MAIL_PORT = _env_int("SMTP_PORT", 587)
    MAIL_USE_TLS = os.environ.get("SMTP_USE_TLS", "true").lower() == "true"
    MAIL_USERNAME = os.environ.get("SMTP_USER") or None
    MAIL_PASSWORD = os.environ.get("SMTP_PASSWORD") or None
    MAIL_DEFAULT_SENDER = os.environ.get("SMTP_FROM", "no-reply@sportsfest.local")
    MAIL_SUPPRESS_SEND = os.environ.get("MAIL_SUPPRESS_SEND", "false").lower() == "true"
