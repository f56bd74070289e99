# backend/sierra/config.py
from __future__ import annotations
import os


def _split_csv(value: str | None) -> set[str]:
    if not value:
        return set()
    return {part.strip() for part in value.split(",") if part.strip()}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/sierra.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location (Postgres/MySQL URL)
        "sqlite:///sierra.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # bcrypt cost factor; tests drop this to keep the suite fast
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    # Absolute lifetime of a bearer token
    SESSION_HOURS = int(os.environ.get("SESSION_HOURS", "24"))

    CORS_ORIGINS = _split_csv(os.environ.get("CORS_ORIGINS")) or {
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    }

    # Used by `flask system init` when no explicit values are passed
    DEFAULT_ADMIN_USERNAME = os.environ.get("SIERRA_ADMIN_USERNAME", "admin")
    DEFAULT_ADMIN_EMAIL = os.environ.get("SIERRA_ADMIN_EMAIL", "admin@sierra.local")

    # Owner's capital at the start of the books (balance sheet)
    OPENING_CAPITAL_CENTS = int(os.environ.get("OPENING_CAPITAL_CENTS", "0"))
