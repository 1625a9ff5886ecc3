"""
Request-scoped context objects for engine services.

The acting account always travels as an explicit argument; services never
read it from ambient state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from payback.errors import Unauthorized


@dataclass(frozen=True)
class AuthContext:
    account_id: Optional[str] = None
    email: Optional[str] = None
    actor: Optional[str] = None


@dataclass(frozen=True)
class RequestContext:
    auth: AuthContext
    request_id: Optional[str] = None
    source: Optional[str] = None


def for_account(email: str, account_id: Optional[str] = None, source: Optional[str] = None) -> RequestContext:
    return RequestContext(
        auth=AuthContext(account_id=account_id, email=email, actor="user"),
        source=source,
    )


def require_account_email(context: Optional[RequestContext]) -> str:
    """Return the normalized acting account email or raise Unauthorized."""
    email = context.auth.email if context and context.auth else None
    if not email or not isinstance(email, str) or not email.strip():
        raise Unauthorized("an authenticated account is required for this operation")
    return email.strip().lower()


def resolve_request_id(context: Optional[RequestContext]) -> Optional[str]:
    return context.request_id if context else None


__all__ = [
    "AuthContext",
    "RequestContext",
    "for_account",
    "require_account_email",
    "resolve_request_id",
]
