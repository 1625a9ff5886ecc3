"""
Link requests: asking a real person to claim a placeholder contact.

An account keeps unlinked contacts under member ids it made up. A link
request names one of those contacts and an email; when the owner of that
email accepts, the placeholder id is merged into their own member id and
the requester's record starts pointing at their account.

Linking is not friending. Relationship statuses are left as they were; the
friend request handshake is still the only way to become friends.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

import payback.config as config
from payback.audit import log_event
from payback.audit_constants import (
    EVENT_LINK_REQUEST_ACCEPTED,
    EVENT_LINK_REQUEST_CANCELLED,
    EVENT_LINK_REQUEST_DECLINED,
    EVENT_LINK_REQUEST_SENT,
)
from payback.context import RequestContext, require_account_email, resolve_request_id
from payback.db import DB, lock_for_write
from payback.errors import (
    AlreadyLinkedCannotMerge,
    ConflictingAlias,
    NotFound,
    RequestExpired,
    RequestNotFound,
    RequestNotPending,
    SelfClaim,
    Unauthorized,
)
from payback.models import Account, AccountFriend, LinkRequest, LinkRequestStatus, RelationshipStatus
from payback.services.accounts import find_account_for_member, require_account
from payback.services.alias_merge import MERGE_LOCK, stage_merge
from payback.services.aliases import resolve_canonical_member_id, same_identity
from payback.services.friend_requests import is_expired
from payback.services.relationships import (
    find_records_for_identity,
    find_relationship_record,
    link_record_to_account,
    new_record,
)
from payback.services.shared import (
    _normalize_email,
    _normalize_member_id,
    _utcnow,
    _validate_limit,
    _validate_optional_text,
    _validate_required_text,
    MAX_NAME_LENGTH,
    MAX_RESULT_LIMIT,
    MAX_SHORT_TEXT_LENGTH,
    logger,
    service_tool,
)


LINK_LOCK = "link_requests"


def _expiry_for(now: datetime) -> Optional[datetime]:
    if config.LINK_REQUEST_TTL_DAYS <= 0:
        return None
    return now + timedelta(days=config.LINK_REQUEST_TTL_DAYS)


def serialize_link_request(request: LinkRequest, requester: Optional[Account] = None) -> dict:
    data = {
        "id": request.id,
        "requester_email": request.requester_email,
        "recipient_email": request.recipient_email,
        "target_member_id": request.target_member_id,
        "target_member_name": request.target_member_name,
        "status": request.status,
        "created_at": request.created_at.isoformat() if request.created_at else None,
        "expires_at": request.expires_at.isoformat() if request.expires_at else None,
        "expired": is_expired(request),
    }
    if requester is not None:
        data["requester"] = {
            "account_id": requester.id,
            "display_name": requester.display_name,
            "member_id": requester.linked_member_id,
        }
    return data


def _load_request(db, request_id: str) -> LinkRequest:
    request = db.get(LinkRequest, request_id)
    if request is None:
        raise RequestNotFound(f"Link request not found: {request_id}")
    return request


def _check_pending(request: LinkRequest) -> None:
    if request.status != LinkRequestStatus.pending.value:
        raise RequestNotPending(
            f"Link request is already {request.status}",
            data={"request_status": request.status},
        )


def _claim_record(record: AccountFriend, claimer: Account, now: datetime) -> None:
    """Point one of the requester's records at the claiming account."""
    display = (claimer.display_name or "").strip() or record.name
    if record.name != display and not record.original_name:
        record.original_name = record.name
    if record.nickname and record.nickname.strip().lower() == display.lower():
        record.nickname = None
    record.name = display
    link_record_to_account(record, claimer)
    record.updated_at = now


# =============================================================================
# Service tools
# =============================================================================

@service_tool
def link_request_send(
    recipient_email: str,
    target_member_id: str,
    target_member_name: Optional[str] = None,
    context: Optional[RequestContext] = None,
) -> dict:
    """
    Ask ``recipient_email`` to claim one of the acting account's unlinked contacts.

    The recipient does not need an account yet; the request waits for them.
    Sending the same request twice returns the pending one.
    """
    requester_email = require_account_email(context)
    recipient_value = _normalize_email(recipient_email, field="recipient_email")
    target_value = _normalize_member_id(target_member_id, field="target_member_id")
    _validate_optional_text(target_member_name, "target_member_name", MAX_NAME_LENGTH)
    if recipient_value == requester_email:
        raise SelfClaim("Cannot ask yourself to claim a contact")

    db = DB.SessionLocal()
    try:
        lock_for_write(db, LINK_LOCK)
        requester = require_account(db, requester_email)
        if same_identity(db, target_value, requester.linked_member_id):
            raise SelfClaim("That member id is your own identity", field="target_member_id")

        record = find_relationship_record(db, requester.email, target_value)
        if record is None:
            raise NotFound(f"No contact with member {target_value}", field="target_member_id")
        if record.has_linked_account:
            raise AlreadyLinkedCannotMerge(
                f"Member {target_value} already has a linked account",
                field="target_member_id",
            )

        now = _utcnow()
        pending = (
            db.query(LinkRequest)
            .filter(LinkRequest.requester_account_id == requester.id)
            .filter(LinkRequest.recipient_email == recipient_value)
            .filter(LinkRequest.target_member_id == target_value)
            .filter(LinkRequest.status == LinkRequestStatus.pending.value)
            .all()
        )
        for existing in pending:
            if not is_expired(existing, now):
                return {"status": "ok", "already_existed": True, "request": serialize_link_request(existing)}

        request = LinkRequest(
            requester_account_id=requester.id,
            requester_email=requester.email,
            recipient_email=recipient_value,
            target_member_id=target_value,
            target_member_name=(target_member_name or "").strip() or record.name,
            status=LinkRequestStatus.pending.value,
            created_at=now,
            updated_at=now,
            expires_at=_expiry_for(now),
        )
        db.add(request)
        db.flush()
        log_event(
            db,
            event_type=EVENT_LINK_REQUEST_SENT,
            actor_type="user",
            actor_id=requester.id,
            target_type="link_request",
            target_ids=[request.id, target_value],
            request_id=resolve_request_id(context),
        )
        db.commit()
        logger.info("link_request_sent", extra={"request_id": request.id, "requester_id": requester.id})
        return {"status": "ok", "already_existed": False, "request": serialize_link_request(request)}
    finally:
        db.close()


@service_tool
def link_request_accept(
    request_id: str,
    context: Optional[RequestContext] = None,
) -> dict:
    """
    Claim the requested contact as the acting account's identity.

    The placeholder member id becomes an alias of the claimer's canonical
    member id and the requester's records for it are linked to the claimer.
    When the requester already had a record for the claimer, that record is
    kept and the placeholder record is dropped. The claimer gets a
    group_peer record for the requester if they had none. Groups and
    expenses are not rewritten; reads resolve the alias.
    """
    email = require_account_email(context)
    _validate_required_text(request_id, "request_id", MAX_SHORT_TEXT_LENGTH)

    db = DB.SessionLocal()
    try:
        lock_for_write(db, LINK_LOCK)
        lock_for_write(db, MERGE_LOCK)
        request = _load_request(db, request_id.strip())
        if request.recipient_email != email:
            raise Unauthorized("Only the recipient can respond to this link request", field="request_id")
        _check_pending(request)
        if is_expired(request):
            raise RequestExpired("Link request has expired")

        claimer = require_account(db, email)
        requester = db.get(Account, request.requester_account_id)
        if requester is None:
            raise RequestNotFound("The sender of this link request no longer exists")

        target = request.target_member_id
        claimer_member = resolve_canonical_member_id(db, claimer.linked_member_id)
        owner = find_account_for_member(db, target)
        if owner is not None and owner.id != claimer.id:
            raise ConflictingAlias(
                f"Member {target} already belongs to another account",
                field="target_member_id",
                data={"target_member_id": target},
            )

        placeholder_records = find_records_for_identity(db, requester.email, target)
        existing_record = (
            db.query(AccountFriend)
            .filter(AccountFriend.account_email == requester.email)
            .filter(AccountFriend.member_id == claimer_member)
            .first()
        )

        merge = stage_merge(
            db,
            target,
            claimer_member,
            account_email=claimer.email,
            actor_id=claimer.id,
            request_id=resolve_request_id(context),
        )

        now = _utcnow()
        records_linked = 0
        records_merged = 0
        if existing_record is not None and existing_record not in placeholder_records:
            _claim_record(existing_record, claimer, now)
            records_linked = 1
            for record in placeholder_records:
                db.delete(record)
                records_merged += 1
        else:
            for record in placeholder_records:
                _claim_record(record, claimer, now)
                records_linked += 1

        counterpart = find_relationship_record(db, claimer.email, requester.linked_member_id)
        if counterpart is None:
            new_record(
                db,
                account_email=claimer.email,
                member_id=requester.linked_member_id,
                status=RelationshipStatus.group_peer,
                name=requester.display_name,
                linked_account=requester,
            )
        else:
            link_record_to_account(counterpart, requester)
            counterpart.updated_at = now

        request.status = LinkRequestStatus.accepted.value
        request.updated_at = now
        db.flush()
        log_event(
            db,
            event_type=EVENT_LINK_REQUEST_ACCEPTED,
            actor_type="user",
            actor_id=claimer.id,
            target_type="link_request",
            target_ids=[request.id, target, claimer_member],
            count_affected=records_linked,
            request_id=resolve_request_id(context),
            metadata={"alias_created": not merge["already_existed"], "records_merged": records_merged},
        )
        db.commit()
        logger.info(
            "link_request_accepted",
            extra={"request_id": request.id, "target_member_id": target, "canonical_member_id": claimer_member},
        )
        return {
            "status": "ok",
            "request": serialize_link_request(request),
            "canonical_member_id": claimer_member,
            "alias_created": not merge["already_existed"],
            "records_linked": records_linked,
            "records_merged": records_merged,
        }
    finally:
        db.close()


@service_tool
def link_request_decline(
    request_id: str,
    context: Optional[RequestContext] = None,
) -> dict:
    """Refuse a pending link request. The requester's contact stays unlinked."""
    email = require_account_email(context)
    _validate_required_text(request_id, "request_id", MAX_SHORT_TEXT_LENGTH)

    db = DB.SessionLocal()
    try:
        lock_for_write(db, LINK_LOCK)
        request = _load_request(db, request_id.strip())
        if request.recipient_email != email:
            raise Unauthorized("Only the recipient can respond to this link request", field="request_id")
        _check_pending(request)

        request.status = LinkRequestStatus.declined.value
        request.updated_at = _utcnow()
        recipient = db.query(Account).filter(Account.email == email).first()
        log_event(
            db,
            event_type=EVENT_LINK_REQUEST_DECLINED,
            actor_type="user",
            actor_id=recipient.id if recipient else None,
            target_type="link_request",
            target_ids=[request.id],
            request_id=resolve_request_id(context),
        )
        db.commit()
        logger.info("link_request_declined", extra={"request_id": request.id})
        return {"status": "ok", "request": serialize_link_request(request)}
    finally:
        db.close()


@service_tool
def link_request_cancel(
    request_id: str,
    context: Optional[RequestContext] = None,
) -> dict:
    """Withdraw a pending link request the acting account sent."""
    email = require_account_email(context)
    _validate_required_text(request_id, "request_id", MAX_SHORT_TEXT_LENGTH)

    db = DB.SessionLocal()
    try:
        lock_for_write(db, LINK_LOCK)
        request = _load_request(db, request_id.strip())
        if request.requester_email != email:
            raise Unauthorized("Only the requester can cancel this link request", field="request_id")
        _check_pending(request)

        requester_id = request.requester_account_id
        cancelled_id = request.id
        db.delete(request)
        log_event(
            db,
            event_type=EVENT_LINK_REQUEST_CANCELLED,
            actor_type="user",
            actor_id=requester_id,
            target_type="link_request",
            target_ids=[cancelled_id],
            request_id=resolve_request_id(context),
        )
        db.commit()
        logger.info("link_request_cancelled", extra={"request_id": cancelled_id})
        return {"status": "ok", "request_id": cancelled_id, "deleted": True}
    finally:
        db.close()


@service_tool
def link_request_list_incoming(
    limit: int = 50,
    context: Optional[RequestContext] = None,
) -> dict:
    """Pending, unexpired link requests addressed to the acting account."""
    email = require_account_email(context)
    _validate_limit(limit, "limit", MAX_RESULT_LIMIT)

    db = DB.SessionLocal()
    try:
        rows = (
            db.query(LinkRequest, Account)
            .join(Account, Account.id == LinkRequest.requester_account_id)
            .filter(LinkRequest.recipient_email == email)
            .filter(LinkRequest.status == LinkRequestStatus.pending.value)
            .order_by(LinkRequest.created_at.desc())
            .all()
        )
        now = _utcnow()
        requests = [
            serialize_link_request(request, requester)
            for request, requester in rows
            if not is_expired(request, now)
        ][:limit]
        return {"status": "ok", "count": len(requests), "requests": requests}
    finally:
        db.close()


@service_tool
def link_request_list_outgoing(
    limit: int = 50,
    context: Optional[RequestContext] = None,
) -> dict:
    """Link requests the acting account has sent, newest first."""
    email = require_account_email(context)
    _validate_limit(limit, "limit", MAX_RESULT_LIMIT)

    db = DB.SessionLocal()
    try:
        rows = (
            db.query(LinkRequest)
            .filter(LinkRequest.requester_email == email)
            .order_by(LinkRequest.created_at.desc())
            .limit(limit)
            .all()
        )
        requests = [serialize_link_request(request) for request in rows]
        return {"status": "ok", "count": len(requests), "requests": requests}
    finally:
        db.close()


__all__ = [
    "serialize_link_request",
    "link_request_send",
    "link_request_accept",
    "link_request_decline",
    "link_request_cancel",
    "link_request_list_incoming",
    "link_request_list_outgoing",
]
