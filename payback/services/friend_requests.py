"""
Friend request handshake.

The only path to ``friend`` status: a sender asks, the recipient accepts,
and both sides' records flip to friend in the same transaction.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

import payback.config as config
from payback.audit import log_event
from payback.audit_constants import (
    EVENT_FRIEND_REQUEST_ACCEPTED,
    EVENT_FRIEND_REQUEST_REJECTED,
    EVENT_FRIEND_REQUEST_SENT,
)
from payback.context import RequestContext, require_account_email, resolve_request_id
from payback.db import DB, lock_for_write
from payback.errors import (
    AlreadyFriends,
    RequestAlreadyPending,
    RequestExpired,
    RequestNotFound,
    RequestNotPending,
    RequestPreviouslyRejected,
    Unauthorized,
    ValidationIssue,
)
from payback.models import (
    Account,
    AccountFriend,
    FriendRequest,
    FriendRequestStatus,
    RelationshipStatus,
)
from payback.services.accounts import get_account_by_email, require_account
from payback.services.relationships import (
    effective_status,
    find_relationship_record,
    link_record_to_account,
    new_record,
    parse_status,
    set_status,
)
from payback.services.shared import (
    _normalize_email,
    _utcnow,
    _validate_limit,
    _validate_required_text,
    MAX_RESULT_LIMIT,
    MAX_SHORT_TEXT_LENGTH,
    logger,
    service_tool,
)


REQUEST_LOCK = "friend_requests"


def _expiry_for(now: datetime) -> Optional[datetime]:
    if config.FRIEND_REQUEST_TTL_DAYS <= 0:
        return None
    return now + timedelta(days=config.FRIEND_REQUEST_TTL_DAYS)


def is_expired(request: FriendRequest, now: Optional[datetime] = None) -> bool:
    if request.expires_at is None:
        return False
    now = now or _utcnow()
    expires_at = request.expires_at
    if expires_at.tzinfo is not None:
        expires_at = expires_at.replace(tzinfo=None)
    return now > expires_at


def serialize_request(request: FriendRequest, sender: Optional[Account] = None) -> dict:
    data = {
        "id": request.id,
        "sender_email": request.sender_email,
        "recipient_email": request.recipient_email,
        "status": request.status,
        "created_at": request.created_at.isoformat() if request.created_at else None,
        "expires_at": request.expires_at.isoformat() if request.expires_at else None,
        "expired": is_expired(request),
    }
    if sender is not None:
        data["sender"] = {
            "account_id": sender.id,
            "display_name": sender.display_name,
            "member_id": sender.linked_member_id,
        }
    return data


def _mark_friend(db, observer: Account, counterpart: Account) -> AccountFriend:
    """Set observer's record for counterpart to friend, creating it if needed."""
    record = find_relationship_record(db, observer.email, counterpart.linked_member_id)
    if record is None:
        record = new_record(
            db,
            account_email=observer.email,
            member_id=counterpart.linked_member_id,
            status=RelationshipStatus.friend,
            name=counterpart.display_name,
            linked_account=counterpart,
        )
    else:
        set_status(record, RelationshipStatus.friend)
        link_record_to_account(record, counterpart)
    record.status_before_request = None
    return record


def _load_request(db, request_id: str) -> FriendRequest:
    request = db.get(FriendRequest, request_id)
    if request is None:
        raise RequestNotFound(f"Friend request not found: {request_id}")
    return request


def _check_recipient(request: FriendRequest, email: str) -> None:
    if request.recipient_email != email:
        raise Unauthorized("Only the recipient can respond to this friend request", field="request_id")


def _check_pending(request: FriendRequest) -> None:
    if request.status != FriendRequestStatus.pending.value:
        raise RequestNotPending(
            f"Friend request is already {request.status}",
            data={"request_status": request.status},
        )


# =============================================================================
# Service tools
# =============================================================================

@service_tool
def friend_request_send(
    recipient_email: str,
    context: Optional[RequestContext] = None,
) -> dict:
    """Ask another verified account to become a friend."""
    sender_email = require_account_email(context)
    recipient_value = _normalize_email(recipient_email, field="recipient_email")
    if recipient_value == sender_email:
        raise ValidationIssue(
            "Cannot send a friend request to yourself",
            field="recipient_email",
            error_type="invalid_value",
            error_code="SELF_REQUEST",
        )

    db = DB.SessionLocal()
    try:
        lock_for_write(db, REQUEST_LOCK)
        sender = require_account(db, sender_email)
        recipient = require_account(db, recipient_value, field="recipient_email")
        now = _utcnow()

        sender_record = find_relationship_record(db, sender.email, recipient.linked_member_id)
        if sender_record is not None and effective_status(sender_record) == RelationshipStatus.friend:
            raise AlreadyFriends(f"Already friends with {recipient.email}")

        previous = (
            db.query(FriendRequest)
            .filter(FriendRequest.sender_email == sender.email)
            .filter(FriendRequest.recipient_email == recipient.email)
            .order_by(FriendRequest.created_at.desc())
            .all()
        )
        for existing in previous:
            if existing.status == FriendRequestStatus.pending.value and not is_expired(existing, now):
                raise RequestAlreadyPending(
                    "Friend request already pending",
                    data={"request_id": existing.id},
                )
        if (
            not config.FRIEND_REQUEST_ALLOW_AFTER_REJECT
            and previous
            and previous[0].status == FriendRequestStatus.rejected.value
        ):
            raise RequestPreviouslyRejected("The recipient declined your previous friend request")

        request = FriendRequest(
            sender_account_id=sender.id,
            sender_email=sender.email,
            recipient_email=recipient.email,
            status=FriendRequestStatus.pending.value,
            created_at=now,
            updated_at=now,
            expires_at=_expiry_for(now),
        )
        db.add(request)

        if sender_record is None:
            sender_record = new_record(
                db,
                account_email=sender.email,
                member_id=recipient.linked_member_id,
                status=RelationshipStatus.request_sent,
                name=recipient.display_name,
                linked_account=recipient,
            )
            sender_record.status_before_request = None
        else:
            current = parse_status(sender_record.status)
            if current != RelationshipStatus.request_sent:
                sender_record.status_before_request = current.value
            set_status(sender_record, RelationshipStatus.request_sent)
            link_record_to_account(sender_record, recipient)

        db.flush()
        log_event(
            db,
            event_type=EVENT_FRIEND_REQUEST_SENT,
            actor_type="user",
            actor_id=sender.id,
            target_type="friend_request",
            target_ids=[request.id],
            request_id=resolve_request_id(context),
        )
        db.commit()
        logger.info("friend_request_sent", extra={"request_id": request.id, "sender_id": sender.id})
        return {"status": "ok", "request": serialize_request(request)}
    finally:
        db.close()


@service_tool
def friend_request_accept(
    request_id: str,
    context: Optional[RequestContext] = None,
) -> dict:
    """Accept a pending request; both sides become friends atomically."""
    email = require_account_email(context)
    _validate_required_text(request_id, "request_id", MAX_SHORT_TEXT_LENGTH)

    db = DB.SessionLocal()
    try:
        lock_for_write(db, REQUEST_LOCK)
        request = _load_request(db, request_id.strip())
        _check_recipient(request, email)
        _check_pending(request)
        if is_expired(request):
            raise RequestExpired("Friend request has expired")

        recipient = require_account(db, request.recipient_email)
        sender = db.get(Account, request.sender_account_id)
        if sender is None:
            raise RequestNotFound("The sender of this friend request no longer exists")

        now = _utcnow()
        request.status = FriendRequestStatus.accepted.value
        request.updated_at = now
        sender_record = _mark_friend(db, sender, recipient)
        recipient_record = _mark_friend(db, recipient, sender)

        db.flush()
        log_event(
            db,
            event_type=EVENT_FRIEND_REQUEST_ACCEPTED,
            actor_type="user",
            actor_id=recipient.id,
            target_type="friend_request",
            target_ids=[request.id],
            request_id=resolve_request_id(context),
        )
        db.commit()
        logger.info("friend_request_accepted", extra={"request_id": request.id})
        return {
            "status": "ok",
            "request": serialize_request(request),
            "friend_member_id": recipient_record.member_id,
            "sender_view_member_id": sender_record.member_id,
        }
    finally:
        db.close()


@service_tool
def friend_request_reject(
    request_id: str,
    context: Optional[RequestContext] = None,
) -> dict:
    """
    Decline a pending request.

    The sender's record goes back to what it was before the request; a
    record that only existed because of the request is removed.
    """
    email = require_account_email(context)
    _validate_required_text(request_id, "request_id", MAX_SHORT_TEXT_LENGTH)

    db = DB.SessionLocal()
    try:
        lock_for_write(db, REQUEST_LOCK)
        request = _load_request(db, request_id.strip())
        _check_recipient(request, email)
        _check_pending(request)

        now = _utcnow()
        request.status = FriendRequestStatus.rejected.value
        request.updated_at = now

        recipient = get_account_by_email(db, request.recipient_email)
        restored = None
        if recipient is not None:
            sender_record = find_relationship_record(db, request.sender_email, recipient.linked_member_id)
            if sender_record is not None and parse_status(sender_record.status) == RelationshipStatus.request_sent:
                previous = sender_record.status_before_request
                if previous is None:
                    db.delete(sender_record)
                    restored = "unknown"
                else:
                    set_status(sender_record, RelationshipStatus(previous))
                    sender_record.status_before_request = None
                    restored = previous

        log_event(
            db,
            event_type=EVENT_FRIEND_REQUEST_REJECTED,
            actor_type="user",
            actor_id=recipient.id if recipient else None,
            target_type="friend_request",
            target_ids=[request.id],
            request_id=resolve_request_id(context),
        )
        db.commit()
        logger.info("friend_request_rejected", extra={"request_id": request.id})
        return {
            "status": "ok",
            "request": serialize_request(request),
            "sender_status_restored_to": restored,
        }
    finally:
        db.close()


@service_tool
def friend_request_list_incoming(
    limit: int = 50,
    context: Optional[RequestContext] = None,
) -> dict:
    """Pending, unexpired requests addressed to the acting account."""
    email = require_account_email(context)
    _validate_limit(limit, "limit", MAX_RESULT_LIMIT)

    db = DB.SessionLocal()
    try:
        rows = (
            db.query(FriendRequest, Account)
            .join(Account, Account.id == FriendRequest.sender_account_id)
            .filter(FriendRequest.recipient_email == email)
            .filter(FriendRequest.status == FriendRequestStatus.pending.value)
            .order_by(FriendRequest.created_at.desc())
            .all()
        )
        now = _utcnow()
        requests = [
            serialize_request(request, sender)
            for request, sender in rows
            if not is_expired(request, now)
        ][:limit]
        return {"status": "ok", "count": len(requests), "requests": requests}
    finally:
        db.close()


@service_tool
def friend_request_list_outgoing(
    limit: int = 50,
    context: Optional[RequestContext] = None,
) -> dict:
    """Requests the acting account has sent, newest first."""
    email = require_account_email(context)
    _validate_limit(limit, "limit", MAX_RESULT_LIMIT)

    db = DB.SessionLocal()
    try:
        rows = (
            db.query(FriendRequest)
            .filter(FriendRequest.sender_email == email)
            .order_by(FriendRequest.created_at.desc())
            .limit(limit)
            .all()
        )
        requests = [serialize_request(request) for request in rows]
        return {"status": "ok", "count": len(requests), "requests": requests}
    finally:
        db.close()


__all__ = [
    "is_expired",
    "serialize_request",
    "friend_request_send",
    "friend_request_accept",
    "friend_request_reject",
    "friend_request_list_incoming",
    "friend_request_list_outgoing",
]
