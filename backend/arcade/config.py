# backend/arcade/config.py
from __future__ import annotations
import os


def _env_list(name: str, default: str) -> list[str]:
    return [item.strip() for item in os.environ.get(name, default).split(",") if item.strip()]


def engine_options_for(database_uri: str, timeout_seconds: float) -> dict:
    """
    SQLAlchemy engine options that bound every database wait.

    A row lock or statement that outlives timeout_seconds fails with
    OperationalError instead of blocking the request.
    - SQLite: busy timeout on the connection
    - PostgreSQL: connect, lock and statement timeouts
    - MySQL: connect and InnoDB lock-wait timeouts
    """
    millis = int(timeout_seconds * 1000)
    whole_seconds = max(1, int(timeout_seconds))
    if database_uri.startswith("sqlite"):
        return {"connect_args": {"timeout": timeout_seconds}}
    if database_uri.startswith("postgresql"):
        return {
            "pool_timeout": timeout_seconds,
            "connect_args": {
                "connect_timeout": whole_seconds,
                "options": f"-c lock_timeout={millis} -c statement_timeout={millis}",
            },
        }
    if database_uri.startswith("mysql"):
        return {
            "pool_timeout": timeout_seconds,
            "connect_args": {
                "connect_timeout": whole_seconds,
                "init_command": f"SET SESSION innodb_lock_wait_timeout={whole_seconds}",
            },
        }
    return {}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/arcade.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///arcade.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Upper bound on any single database wait (locks, statements, connects).
    # create_app turns it into SQLALCHEMY_ENGINE_OPTIONS unless those are set.
    DB_TIMEOUT_SECONDS = float(os.environ.get("DB_TIMEOUT_SECONDS", "10"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    CORS_ALLOWED_ORIGINS = _env_list(
        "CORS_ALLOWED_ORIGINS",
        "http://localhost:3000,http://localhost:5000,https://arcademanager.app,https://www.arcademanager.app",
    )

    # Ledger recalculation: per-store lock wait and wholesale retry policy
    LEDGER_LOCK_TIMEOUT_SECONDS = float(os.environ.get("LEDGER_LOCK_TIMEOUT_SECONDS", "10"))
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))
    LEDGER_RETRY_BACKOFF_SECONDS = float(os.environ.get("LEDGER_RETRY_BACKOFF_SECONDS", "0.1"))

    SESSION_ABSOLUTE_TIMEOUT_HOURS = int(os.environ.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", "24"))
    SESSION_IDLE_TIMEOUT_HOURS = int(os.environ.get("SESSION_IDLE_TIMEOUT_HOURS", "2"))

    # PayPal subscription billing
    PAYPAL_CLIENT_ID = os.environ.get("PAYPAL_CLIENT_ID", "")
    PAYPAL_CLIENT_SECRET = os.environ.get("PAYPAL_CLIENT_SECRET", "")
    PAYPAL_BASE_URL = os.environ.get("PAYPAL_BASE_URL", "https://api-m.sandbox.paypal.com")
    PAYPAL_PLAN_ID = os.environ.get("PAYPAL_PLAN_ID", "")
    PAYPAL_BRAND_NAME = os.environ.get("PAYPAL_BRAND_NAME", "Arcade Manager")
    PAYPAL_TIMEOUT_SECONDS = float(os.environ.get("PAYPAL_TIMEOUT_SECONDS", "15"))
    FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000")

    SUBSCRIPTION_PRICE_CENTS = int(os.environ.get("SUBSCRIPTION_PRICE_CENTS", "700"))
    SUBSCRIPTION_CURRENCY = os.environ.get("SUBSCRIPTION_CURRENCY", "USD")
    PENDING_SUBSCRIPTION_TTL_HOURS = int(os.environ.get("PENDING_SUBSCRIPTION_TTL_HOURS", "24"))
