# backend/coinseal/config.py
from __future__ import annotations
import os


def _sqlite_engine_options(uri: str) -> dict:
    # Lock waits abort after this many seconds instead of blocking forever
    if uri.startswith("sqlite"):
        timeout = float(os.environ.get("DB_LOCK_TIMEOUT_SECONDS", "10"))
        return {"connect_args": {"timeout": timeout}}
    return {"pool_pre_ping": True}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/coinseal.sqlite3 by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///coinseal.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = _sqlite_engine_options(SQLALCHEMY_DATABASE_URI)

    # Account receiving session-start debits and top-ups.
    # Empty means "lowest-id SuperAdmin".
    SYSTEM_ACCOUNT_EMAIL = os.environ.get("SYSTEM_ACCOUNT_EMAIL", "")
    SUPERADMIN_INITIAL_COINS = int(os.environ.get("SUPERADMIN_INITIAL_COINS", "1000000"))

    # bcrypt cost factor; tests lower it to keep hashing fast
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    ATOMIC_RETRY_ATTEMPTS = int(os.environ.get("ATOMIC_RETRY_ATTEMPTS", "3"))
    ATOMIC_RETRY_BACKOFF = float(os.environ.get("ATOMIC_RETRY_BACKOFF", "0.1"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    CORS_ALLOWED_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    }
