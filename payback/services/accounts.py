"""
Account registry: verified logins and the member identity each one owns.
"""

from __future__ import annotations

from typing import Optional
import uuid

from payback.context import RequestContext, require_account_email
from payback.db import DB
from payback.errors import NotFound, ValidationIssue
from payback.models import Account
from payback.services.aliases import equivalent_member_ids
from payback.services.shared import (
    _normalize_email,
    _normalize_member_id,
    _utcnow,
    _validate_optional_text,
    _validate_required_text,
    MAX_NAME_LENGTH,
    MAX_SHORT_TEXT_LENGTH,
    logger,
    service_tool,
)


def get_account_by_email(db, email: str) -> Optional[Account]:
    return db.query(Account).filter(Account.email == email).first()


def require_account(db, email: str, *, field: str = "account") -> Account:
    account = get_account_by_email(db, email)
    if account is None:
        raise NotFound(f"Account not found: {email}", field=field)
    return account


def resolve_actor_id(db, context: RequestContext, email: str) -> Optional[str]:
    """Account id recorded on audit events; HTTP contexts carry only the email."""
    if context.auth.account_id:
        return context.auth.account_id
    account = get_account_by_email(db, email)
    return account.id if account else None


def find_account_for_member(db, member_id: str) -> Optional[Account]:
    """The account whose member identity is equivalent to ``member_id``, if any."""
    account = db.query(Account).filter(Account.linked_member_id == member_id).first()
    if account is not None:
        return account
    members = equivalent_member_ids(db, member_id)
    return (
        db.query(Account)
        .filter(Account.linked_member_id.in_(members))
        .order_by(Account.created_at.asc())
        .first()
    )


def serialize_account(account: Account) -> dict:
    return {
        "id": account.id,
        "email": account.email,
        "display_name": account.display_name,
        "linked_member_id": account.linked_member_id,
        "created_at": account.created_at.isoformat() if account.created_at else None,
    }


@service_tool
def account_register(
    account_id: str,
    email: str,
    display_name: Optional[str] = None,
    linked_member_id: Optional[str] = None,
) -> dict:
    """
    Store a verified account, minting its member identity when none is given.

    Repeat calls for the same email are idempotent and only refresh the
    display name; the member identity never changes once assigned.
    """
    _validate_required_text(account_id, "account_id", MAX_SHORT_TEXT_LENGTH)
    if "@" in account_id:
        raise ValidationIssue(
            "account_id must be the identity provider's subject id, not an email address",
            field="account_id",
            error_type="invalid_value",
        )
    email_value = _normalize_email(email)
    _validate_optional_text(display_name, "display_name", MAX_NAME_LENGTH)
    member_value = _normalize_member_id(linked_member_id, field="linked_member_id") if linked_member_id else None

    db = DB.SessionLocal()
    try:
        existing = get_account_by_email(db, email_value)
        if existing:
            if existing.id != account_id.strip():
                raise ValidationIssue(
                    "email is already registered to a different account",
                    field="email",
                    error_type="conflict",
                    error_code="EMAIL_TAKEN",
                )
            if display_name is not None:
                existing.display_name = display_name.strip() or existing.display_name
                existing.updated_at = _utcnow()
            db.commit()
            return {"status": "ok", "created": False, "account": serialize_account(existing)}

        if db.get(Account, account_id.strip()) is not None:
            raise ValidationIssue(
                "account_id is already registered with a different email",
                field="account_id",
                error_type="conflict",
                error_code="ACCOUNT_ID_TAKEN",
            )

        now = _utcnow()
        account = Account(
            id=account_id.strip(),
            email=email_value,
            display_name=(display_name or "").strip() or None,
            linked_member_id=member_value or str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
        )
        db.add(account)
        db.commit()
        logger.info("account_registered", extra={"account_id": account.id})
        return {"status": "ok", "created": True, "account": serialize_account(account)}
    finally:
        db.close()


@service_tool
def account_get(context: Optional[RequestContext] = None) -> dict:
    """Return the acting account."""
    email = require_account_email(context)

    db = DB.SessionLocal()
    try:
        account = require_account(db, email)
        return {"status": "ok", "account": serialize_account(account)}
    finally:
        db.close()


__all__ = [
    "get_account_by_email",
    "require_account",
    "resolve_actor_id",
    "find_account_for_member",
    "serialize_account",
    "account_register",
    "account_get",
]
