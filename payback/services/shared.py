"""
Shared helpers and configuration for engine services.
"""

from __future__ import annotations

from datetime import datetime
from functools import wraps
from typing import Callable, Optional

import payback.config as config
from payback.errors import ValidationIssue
from payback.validators import (
    normalize_email as _normalize_email,
    normalize_member_id as _normalize_member_id,
    normalize_member_ids as _normalize_member_ids,
    validate_limit as _validate_limit,
    validate_optional_text as _validate_optional_text,
    validate_required_text as _validate_required_text,
    validate_string_list as _validate_string_list,
)

# =============================================================================
# Configuration
# =============================================================================

logger = config.logger

MAX_RESULT_LIMIT = config.MAX_RESULT_LIMIT
MAX_SHORT_TEXT_LENGTH = config.MAX_SHORT_TEXT_LENGTH
MAX_NAME_LENGTH = config.MAX_NAME_LENGTH
MAX_LIST_ITEMS = config.MAX_LIST_ITEMS


def _utcnow() -> datetime:
    return datetime.utcnow()


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# =============================================================================
# Tool error handling
# =============================================================================

def _tool_error_payload(tool_name: str, exc: ValidationIssue) -> dict:
    payload = {
        "status": "error",
        "error_type": exc.error_type,
        "error_code": exc.error_code,
        "tool": tool_name,
        "field": exc.field,
        "message": str(exc),
    }
    if exc.data:
        payload["data"] = exc.data
    return payload


def _log_validation_issue(tool_name: str, exc: ValidationIssue, warn: bool = False) -> None:
    payload = {
        "tool": tool_name,
        "field": exc.field,
        "error_type": exc.error_type,
        "error_code": exc.error_code,
        "detail": str(exc),
    }
    if warn:
        logger.warning("tool_validation_error", extra=payload)
    else:
        logger.info("tool_validation_error", extra=payload)


def _tool_error_handler(fn: Callable[..., dict]) -> Callable[..., dict]:
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except ValidationIssue as exc:
            _log_validation_issue(fn.__name__, exc, warn=False)
            return _tool_error_payload(fn.__name__, exc)
        except ValueError as exc:
            issue = ValidationIssue(str(exc), field="unknown", error_type="value_error")
            _log_validation_issue(fn.__name__, issue, warn=True)
            return _tool_error_payload(fn.__name__, issue)
    return wrapper


def service_tool(fn: Callable[..., dict]) -> Callable[..., dict]:
    return _tool_error_handler(fn)


__all__ = [
    "logger",
    "service_tool",
    "MAX_RESULT_LIMIT",
    "MAX_SHORT_TEXT_LENGTH",
    "MAX_NAME_LENGTH",
    "MAX_LIST_ITEMS",
    "_normalize_email",
    "_normalize_member_id",
    "_normalize_member_ids",
    "_validate_limit",
    "_validate_optional_text",
    "_validate_required_text",
    "_validate_string_list",
    "_utcnow",
    "_iso",
]
