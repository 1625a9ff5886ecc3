"""
Audit logging helpers (DB-only, metadata-only).

Events record which identities an operation touched, never personal data.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

import payback.config as config
from payback.models import AuditEvent

ALLOWED_ACTOR_TYPES = {"user", "admin", "system"}
ALLOWED_TARGET_TYPES = {
    "alias",
    "relationship",
    "friend_request",
    "link_request",
    "account",
    "group",
    "expense",
}

FORBIDDEN_METADATA_KEYS = {
    "email",
    "name",
    "nickname",
    "display_name",
    "description",
}
MAX_METADATA_STRING_LENGTH = 500
MAX_TARGET_ID_LENGTH = config.MAX_SHORT_TEXT_LENGTH


def _looks_like_email(value: str) -> bool:
    local, sep, domain = value.partition("@")
    return bool(sep and local.strip() and "." in domain)


def _metadata_key_forbidden(key: str) -> bool:
    normalized = key.strip().lower().replace("-", "_")
    return any(token in normalized for token in FORBIDDEN_METADATA_KEYS)


def _validate_metadata_value(value: Any, path: str = "") -> None:
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise ValueError("metadata keys must be strings")
            if _metadata_key_forbidden(key):
                raise ValueError(f"metadata key '{key}' is not allowed")
            _validate_metadata_value(item, f"{path}.{key}" if path else key)
        return
    if isinstance(value, list):
        for item in value:
            _validate_metadata_value(item, path)
        return
    if isinstance(value, str):
        if len(value) > MAX_METADATA_STRING_LENGTH:
            raise ValueError(f"metadata value too long at '{path or 'value'}'")
        if _looks_like_email(value):
            raise ValueError(f"metadata value at '{path or 'value'}' looks like an email address")


def _identity_ids(target_ids: Any) -> list[str]:
    """Target ids are member, account, request or group ids; never addresses."""
    if not isinstance(target_ids, (list, tuple)):
        raise ValueError("target_ids must be a list")
    ids: list[str] = []
    for item in target_ids:
        if not isinstance(item, str) or not item:
            raise ValueError("target_ids must contain non-empty strings")
        if len(item) > MAX_TARGET_ID_LENGTH:
            raise ValueError("target_id value too long")
        if _looks_like_email(item):
            raise ValueError("target_ids must not contain email addresses")
        ids.append(item)
    return ids


def log_event(
    db,
    *,
    event_type: str,
    actor_type: str,
    actor_id: Optional[str] = None,
    target_type: str,
    target_ids: list[Any],
    count_affected: Optional[int] = None,
    reason: Optional[str] = None,
    request_id: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> Optional[AuditEvent]:
    """
    Append an audit event to the caller's transaction.

    Returns None when the audit trail is disabled.
    """
    if not event_type or not isinstance(event_type, str):
        raise ValueError("event_type must be a non-empty string")
    if actor_type not in ALLOWED_ACTOR_TYPES:
        raise ValueError("actor_type must be one of: user|admin|system")
    if target_type not in ALLOWED_TARGET_TYPES:
        raise ValueError(
            "target_type must be one of: " + "|".join(sorted(ALLOWED_TARGET_TYPES))
        )

    safe_target_ids = _identity_ids(target_ids)
    if actor_id is not None and _looks_like_email(actor_id):
        raise ValueError("actor_id must be an account id, not an email address")
    if reason is not None and _looks_like_email(reason):
        raise ValueError("reason must not contain an email address")

    if metadata is not None:
        if not isinstance(metadata, dict):
            raise ValueError("metadata must be a dict")
        _validate_metadata_value(metadata)

    if not config.AUDIT_ENABLED:
        return None

    event = AuditEvent(
        created_at=datetime.utcnow(),
        event_type=event_type,
        actor_type=actor_type,
        actor_id=actor_id,
        target_type=target_type,
        target_ids=safe_target_ids,
        count_affected=count_affected,
        reason=reason,
        request_id=request_id,
        metadata_=metadata,
    )
    db.add(event)
    return event


def list_audit_events(
    db,
    *,
    event_type: Optional[str] = None,
    actor_id: Optional[str] = None,
    limit: int = 100,
) -> dict:
    """Most recent audit events, newest first."""
    if limit <= 0:
        raise ValueError("limit must be positive")

    query = db.query(AuditEvent)
    if event_type:
        query = query.filter(AuditEvent.event_type == event_type)
    if actor_id:
        query = query.filter(AuditEvent.actor_id == actor_id)
    rows = (
        query.order_by(AuditEvent.created_at.desc(), AuditEvent.event_id.desc())
        .limit(limit)
        .all()
    )
    return {
        "status": "ok",
        "count": len(rows),
        "events": [
            {
                "event_id": row.event_id,
                "created_at": row.created_at.isoformat() if row.created_at else None,
                "event_type": row.event_type,
                "actor_type": row.actor_type,
                "actor_id": row.actor_id,
                "target_type": row.target_type,
                "target_ids": row.target_ids,
                "count_affected": row.count_affected,
                "reason": row.reason,
                "metadata": row.metadata_,
            }
            for row in rows
        ],
    }


__all__ = [
    "AuditEvent",
    "log_event",
    "list_audit_events",
    "ALLOWED_ACTOR_TYPES",
    "ALLOWED_TARGET_TYPES",
]
