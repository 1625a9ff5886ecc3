"""
Shared configuration for the Payback identity engine.
"""

from __future__ import annotations

import logging
import os

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("payback")


def _get_bool(env_name: str, default: bool) -> bool:
    value = os.environ.get(env_name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(env_name: str, default: int) -> int:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_list(env_name: str, default: list[str]) -> list[str]:
    value = os.environ.get(env_name, "")
    items = [item.strip() for item in value.split(",") if item.strip()]
    return items or default


def _derive_effective_backend(db_backend: str) -> str:
    return db_backend if db_backend in {"postgres", "sqlite"} else "postgres"


# Database settings
DB_BACKEND = os.environ.get("DB_BACKEND", "postgres").strip().lower()
SQLITE_PATH = os.environ.get("SQLITE_PATH", "/data/payback.db")
DATABASE_URL = os.environ.get("DATABASE_URL")
DB_BACKEND_EFFECTIVE = _derive_effective_backend(DB_BACKEND)

# Database initialization controls
AUTO_MIGRATE_ON_STARTUP = _get_bool("AUTO_MIGRATE_ON_STARTUP", True)

# Friend request handshake
FRIEND_REQUEST_TTL_DAYS = _get_int("FRIEND_REQUEST_TTL_DAYS", 7)
FRIEND_REQUEST_ALLOW_AFTER_REJECT = _get_bool("FRIEND_REQUEST_ALLOW_AFTER_REJECT", True)

# Link requests (claiming a placeholder contact)
LINK_REQUEST_TTL_DAYS = _get_int("LINK_REQUEST_TTL_DAYS", 7)

# Audit trail
AUDIT_ENABLED = _get_bool("AUDIT_ENABLED", True)

# HTTP surface
TRUSTED_HOSTS = _get_list("TRUSTED_HOSTS", [])
CORS_ALLOWED_ORIGINS = _get_list(
    "CORS_ALLOWED_ORIGINS",
    [os.environ.get("FRONTEND_URL", "http://localhost:3000")],
)

# Request/input limits
MAX_RESULT_LIMIT = _get_int("PAYBACK_MAX_RESULT_LIMIT", 200)
MAX_SHORT_TEXT_LENGTH = _get_int("PAYBACK_MAX_SHORT_TEXT_LENGTH", 255)
MAX_NAME_LENGTH = _get_int("PAYBACK_MAX_NAME_LENGTH", 120)
MAX_LIST_ITEMS = _get_int("PAYBACK_MAX_LIST_ITEMS", 50)
MAX_MEMBER_ID_LENGTH = _get_int("PAYBACK_MAX_MEMBER_ID_LENGTH", 64)


def validate_and_prepare_config() -> None:
    """Validate configuration and apply derived settings at startup."""
    global DATABASE_URL, DB_BACKEND_EFFECTIVE

    errors = []
    if DB_BACKEND not in {"postgres", "sqlite"}:
        errors.append("DB_BACKEND must be 'postgres' or 'sqlite'")

    if DB_BACKEND == "postgres" and not DATABASE_URL:
        errors.append("DATABASE_URL is required when DB_BACKEND=postgres")

    if DB_BACKEND == "sqlite":
        if not DATABASE_URL:
            DATABASE_URL = f"sqlite:///{SQLITE_PATH}"
        elif not DATABASE_URL.startswith("sqlite"):
            errors.append("DATABASE_URL must be a sqlite URL when DB_BACKEND=sqlite")

    if FRIEND_REQUEST_TTL_DAYS < 0:
        errors.append("FRIEND_REQUEST_TTL_DAYS must be zero (never expire) or positive")
    if LINK_REQUEST_TTL_DAYS < 0:
        errors.append("LINK_REQUEST_TTL_DAYS must be zero (never expire) or positive")

    for name, value in (
        ("PAYBACK_MAX_RESULT_LIMIT", MAX_RESULT_LIMIT),
        ("PAYBACK_MAX_SHORT_TEXT_LENGTH", MAX_SHORT_TEXT_LENGTH),
        ("PAYBACK_MAX_NAME_LENGTH", MAX_NAME_LENGTH),
        ("PAYBACK_MAX_LIST_ITEMS", MAX_LIST_ITEMS),
        ("PAYBACK_MAX_MEMBER_ID_LENGTH", MAX_MEMBER_ID_LENGTH),
    ):
        if value <= 0:
            errors.append(f"{name} must be positive")

    if errors:
        raise RuntimeError("Configuration invalid: " + "; ".join(errors))

    DB_BACKEND_EFFECTIVE = _derive_effective_backend(DB_BACKEND)
