# backend/backoffice/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/backoffice.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///backoffice.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Sessions (opaque bearer tokens)
    SESSION_ABSOLUTE_TIMEOUT_HOURS = _int_env("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24)
    SESSION_IDLE_TIMEOUT_MINUTES = _int_env("SESSION_IDLE_TIMEOUT_MINUTES", 120)

    # Password reset
    PASSWORD_RESET_URL = os.environ.get(
        "PASSWORD_RESET_URL", "http://localhost:5173/reset-password"
    )
    PASSWORD_RESET_TOKEN_TTL_MINUTES = _int_env("PASSWORD_RESET_TOKEN_TTL_MINUTES", 60)

    # Outbound mail: "log" writes the message to the app log, "sendgrid" calls the API
    MAIL_BACKEND = os.environ.get("MAIL_BACKEND", "log")
    SENDGRID_API_KEY = os.environ.get("SENDGRID_API_KEY")
    SENDGRID_API_URL = os.environ.get("SENDGRID_API_URL", "https://api.sendgrid.com/v3/mail/send")
    MAIL_FROM_EMAIL = os.environ.get("MAIL_FROM_EMAIL", "no-reply@backoffice.local")
    MAIL_FROM_NAME = os.environ.get("MAIL_FROM_NAME", "Back Office")
    MAIL_TIMEOUT_SECONDS = _int_env("MAIL_TIMEOUT_SECONDS", 10)

    # Listing defaults
    DEFAULT_PAGE_SIZE = _int_env("DEFAULT_PAGE_SIZE", 20)
    MAX_PAGE_SIZE = _int_env("MAX_PAGE_SIZE", 100)
