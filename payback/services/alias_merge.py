"""
Merging two member identities into one.

A merge adds a single alias -> canonical edge. It is idempotent, refuses to
re-point an alias that already resolves elsewhere, and refuses any edge
that would close a cycle.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.exc import IntegrityError

from payback.audit import log_event
from payback.audit_constants import EVENT_ALIAS_CREATED
from payback.context import RequestContext, require_account_email, resolve_request_id
from payback.db import DB, lock_for_write
from payback.errors import (
    AlreadyLinkedCannotMerge,
    ConflictingAlias,
    CycleDetected,
    NotFound,
    ValidationIssue,
)
from payback.models import AccountFriend, MemberAlias
from payback.services.accounts import resolve_actor_id
from payback.services.aliases import resolve_canonical_member_id, walk_alias_chain
from payback.services.shared import (
    _normalize_member_id,
    _utcnow,
    logger,
    service_tool,
)


MERGE_LOCK = "member_aliases"


def _merge_result(
    *,
    already_existed: bool,
    source_id: str,
    canonical_id: str,
    alias: Optional[MemberAlias],
    message: str,
) -> dict:
    return {
        "status": "ok",
        "already_existed": already_existed,
        "message": message,
        "source_id": source_id,
        "canonical_member_id": canonical_id,
        "alias": {
            "alias_member_id": alias.alias_member_id,
            "canonical_member_id": alias.canonical_member_id,
        }
        if alias is not None
        else None,
    }


def stage_merge(
    db,
    source_id: str,
    target_id: str,
    *,
    account_email: Optional[str],
    actor_id: Optional[str],
    request_id: Optional[str],
) -> dict:
    """Check and add the edge inside the caller's transaction without committing."""
    if source_id == target_id:
        return _merge_result(
            already_existed=True,
            source_id=source_id,
            canonical_id=resolve_canonical_member_id(db, target_id),
            alias=None,
            message="Source and target are the same member",
        )

    target_chain, resolved_target = walk_alias_chain(db, target_id)
    if source_id in target_chain or source_id == resolved_target:
        raise CycleDetected(
            f"Merging {source_id} into {target_id} would create a cycle",
            data={"source_id": source_id, "target_id": target_id},
        )

    existing = (
        db.query(MemberAlias)
        .filter(MemberAlias.alias_member_id == source_id)
        .first()
    )
    if existing is not None:
        existing_canonical = resolve_canonical_member_id(db, existing.canonical_member_id)
        if existing_canonical == resolved_target:
            return _merge_result(
                already_existed=True,
                source_id=source_id,
                canonical_id=resolved_target,
                alias=existing,
                message="Members already merged",
            )
        raise ConflictingAlias(
            f"{source_id} is already merged into a different member",
            data={
                "source_id": source_id,
                "existing_canonical_member_id": existing_canonical,
                "requested_canonical_member_id": resolved_target,
            },
        )

    alias = MemberAlias(
        alias_member_id=source_id,
        canonical_member_id=resolved_target,
        account_email=account_email,
        created_at=_utcnow(),
    )
    db.add(alias)
    db.flush()
    log_event(
        db,
        event_type=EVENT_ALIAS_CREATED,
        actor_type="user" if account_email else "system",
        actor_id=actor_id,
        target_type="alias",
        target_ids=[source_id, resolved_target],
        count_affected=1,
        request_id=request_id,
    )
    return _merge_result(
        already_existed=False,
        source_id=source_id,
        canonical_id=resolved_target,
        alias=alias,
        message="Members merged",
    )


def merge_member_ids(
    db,
    source_id: str,
    target_id: str,
    *,
    account_email: Optional[str] = None,
    actor_id: Optional[str] = None,
    request_id: Optional[str] = None,
) -> dict:
    """
    Record that ``source_id`` refers to the same person as ``target_id``.

    The edge is stored against the target's canonical, never an intermediate
    alias. Merge writers are serialized before any check runs, so two
    merges racing in opposite directions cannot both pass the cycle check.
    Commits on success and rolls back on a rejected merge. If an insert
    still collides on the alias column, the call is re-evaluated once
    against the committed state.
    """
    result = None
    for attempt in range(2):
        lock_for_write(db, MERGE_LOCK)
        try:
            result = stage_merge(
                db,
                source_id,
                target_id,
                account_email=account_email,
                actor_id=actor_id,
                request_id=request_id,
            )
            db.commit()
            break
        except ValidationIssue:
            db.rollback()
            raise
        except IntegrityError:
            db.rollback()
            if attempt:
                raise
            logger.info(
                "alias_merge_reevaluated",
                extra={"source_id": source_id, "target_id": target_id},
            )

    if not result["already_existed"]:
        logger.info(
            "alias_created",
            extra={"source_id": source_id, "canonical_member_id": result["canonical_member_id"]},
        )
    return result


def _require_account_record(db, account_email: str, member_id: str, field: str) -> AccountFriend:
    record = (
        db.query(AccountFriend)
        .filter(AccountFriend.account_email == account_email)
        .filter(AccountFriend.member_id == member_id)
        .first()
    )
    if record is None:
        raise NotFound(f"Friend with member_id {member_id} not found", field=field)
    return record


# =============================================================================
# Service tools
# =============================================================================

@service_tool
def alias_merge(
    source_id: str,
    target_id: str,
    context: Optional[RequestContext] = None,
) -> dict:
    """Merge one member id into another."""
    email = require_account_email(context)
    source_value = _normalize_member_id(source_id, field="source_id")
    target_value = _normalize_member_id(target_id, field="target_id")

    db = DB.SessionLocal()
    try:
        return merge_member_ids(
            db,
            source_value,
            target_value,
            account_email=email,
            actor_id=resolve_actor_id(db, context, email),
            request_id=resolve_request_id(context),
        )
    finally:
        db.close()


@service_tool
def friend_merge_pair(
    friend_id_1: str,
    friend_id_2: str,
    context: Optional[RequestContext] = None,
) -> dict:
    """
    Merge two of the acting account's unlinked contacts into one person.

    ``friend_id_1`` becomes the canonical. Contacts backed by a real account
    can only be merged through the account-linking flow.
    """
    email = require_account_email(context)
    first_value = _normalize_member_id(friend_id_1, field="friend_id_1")
    second_value = _normalize_member_id(friend_id_2, field="friend_id_2")

    db = DB.SessionLocal()
    try:
        if first_value == second_value:
            return _merge_result(
                already_existed=True,
                source_id=second_value,
                canonical_id=resolve_canonical_member_id(db, first_value),
                alias=None,
                message="Both ids are the same member",
            )

        first = _require_account_record(db, email, first_value, "friend_id_1")
        second = _require_account_record(db, email, second_value, "friend_id_2")
        for field, record in (("friend_id_1", first), ("friend_id_2", second)):
            if record.has_linked_account:
                raise AlreadyLinkedCannotMerge(
                    f"Member {record.member_id} has a linked account and cannot be merged",
                    field=field,
                )

        return merge_member_ids(
            db,
            second_value,
            first_value,
            account_email=email,
            actor_id=resolve_actor_id(db, context, email),
            request_id=resolve_request_id(context),
        )
    finally:
        db.close()


__all__ = [
    "stage_merge",
    "merge_member_ids",
    "alias_merge",
    "friend_merge_pair",
]
