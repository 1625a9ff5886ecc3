"""
Cleanup cascades for removing friends and deleting accounts.

Linked and unlinked friends are removed through different paths because
their shared data means different things: a linked friend's direct
contexts belong to a real person and are deleted, an unlinked contact is
only stripped out of the acting account's data.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import or_

from payback.audit import log_event
from payback.audit_constants import (
    EVENT_ACCOUNT_HARD_DELETED,
    EVENT_ACCOUNT_SELF_DELETED,
    EVENT_FRIEND_REMOVED_LINKED,
    EVENT_FRIEND_REMOVED_UNLINKED,
)
from payback.context import RequestContext, require_account_email, resolve_request_id
from payback.db import DB
from payback.errors import NotFound, RemovalPathMismatch
from payback.models import (
    Account,
    AccountFriend,
    Expense,
    FriendRequest,
    Group,
    LinkRequest,
    MemberAlias,
)
from payback.services.accounts import require_account
from payback.services.aliases import equivalent_member_ids
from payback.services.relationships import (
    find_records_for_identity,
    find_relationship_record,
    unlink_record,
)
from payback.services.shared import (
    _normalize_email,
    _normalize_member_id,
    _utcnow,
    logger,
    service_tool,
)


def _group_member_set(group: Group) -> set[str]:
    return {member["id"] for member in (group.members or []) if member.get("id")}


def _delete_group_with_expenses(db, group: Group) -> int:
    expenses_deleted = (
        db.query(Expense)
        .filter(Expense.group_id == group.id)
        .delete(synchronize_session=False)
    )
    db.delete(group)
    return expenses_deleted


def _direct_groups_between(db, account: Account, members: set[str]) -> list[Group]:
    """Direct groups the account takes part in that also contain ``members``."""
    own_members = equivalent_member_ids(db, account.linked_member_id)
    groups = db.query(Group).filter(Group.is_direct.is_(True)).all()
    matched = []
    for group in groups:
        group_members = _group_member_set(group)
        if not group_members & members:
            continue
        if group.owner_email == account.email or group_members & own_members:
            matched.append(group)
    return matched


def _strip_from_expense(db, expense: Expense, members: set[str]) -> str:
    """
    Remove ``members`` from an expense. Returns 'deleted', 'modified' or 'unchanged'.

    The expense goes only when one participant or fewer would remain. A
    removed payer stays recorded as ``paid_by_member_id``.
    """
    participants = list(expense.participant_member_ids or [])
    if not set(participants) & members:
        return "unchanged"
    remaining = [member_id for member_id in participants if member_id not in members]
    if len(remaining) <= 1:
        db.delete(expense)
        return "deleted"
    expense.participant_member_ids = remaining
    expense.splits = [split for split in (expense.splits or []) if split.get("member_id") not in members]
    expense.updated_at = _utcnow()
    return "modified"


def _load_removal_target(db, email: str, member_id: str) -> tuple[AccountFriend, set[str]]:
    record = find_relationship_record(db, email, member_id)
    if record is None:
        raise NotFound(f"No relationship with member {member_id}", field="member_id")
    members = equivalent_member_ids(db, record.member_id) | {member_id}
    return record, members


# =============================================================================
# Friend removal
# =============================================================================

@service_tool
def friend_remove_linked(
    member_id: str,
    context: Optional[RequestContext] = None,
) -> dict:
    """Remove a friend backed by an account, deleting every direct context with them."""
    email = require_account_email(context)
    member_value = _normalize_member_id(member_id)

    db = DB.SessionLocal()
    try:
        account = require_account(db, email)
        record, members = _load_removal_target(db, email, member_value)
        if not record.has_linked_account:
            raise RemovalPathMismatch(
                "This friend has no linked account; use unlinked removal",
                data={"has_linked_account": False},
            )

        records = find_records_for_identity(db, email, record.member_id)
        for item in records:
            db.delete(item)

        groups_deleted = 0
        expenses_deleted = 0
        for group in _direct_groups_between(db, account, members):
            expenses_deleted += _delete_group_with_expenses(db, group)
            groups_deleted += 1

        log_event(
            db,
            event_type=EVENT_FRIEND_REMOVED_LINKED,
            actor_type="user",
            actor_id=account.id,
            target_type="relationship",
            target_ids=[record.member_id],
            count_affected=len(records),
            request_id=resolve_request_id(context),
            metadata={"groups_deleted": groups_deleted, "expenses_deleted": expenses_deleted},
        )
        db.commit()
        logger.info(
            "friend_removed_linked",
            extra={"member_id": member_value, "groups_deleted": groups_deleted, "expenses_deleted": expenses_deleted},
        )
        return {
            "status": "ok",
            "member_id": member_value,
            "records_deleted": len(records),
            "groups_deleted": groups_deleted,
            "expenses_deleted": expenses_deleted,
        }
    finally:
        db.close()


@service_tool
def friend_remove_unlinked(
    member_id: str,
    context: Optional[RequestContext] = None,
) -> dict:
    """
    Remove a contact with no account from the acting account's data.

    The identity is stripped from the account's groups and expenses, and
    the alias edges the account created for it are dropped.
    """
    email = require_account_email(context)
    member_value = _normalize_member_id(member_id)

    db = DB.SessionLocal()
    try:
        account = require_account(db, email)
        record, members = _load_removal_target(db, email, member_value)
        if record.has_linked_account:
            raise RemovalPathMismatch(
                "This friend has a linked account; use linked removal",
                data={"has_linked_account": True},
            )

        records = find_records_for_identity(db, email, record.member_id)
        for item in records:
            db.delete(item)

        groups_deleted = 0
        groups_modified = 0
        expenses_deleted = 0
        expenses_modified = 0
        owned_groups = db.query(Group).filter(Group.owner_email == email).all()
        for group in owned_groups:
            group_members = _group_member_set(group)
            if not group_members & members:
                continue
            if group.is_direct:
                expenses_deleted += _delete_group_with_expenses(db, group)
                groups_deleted += 1
                continue
            group.members = [m for m in (group.members or []) if m.get("id") not in members]
            group.updated_at = _utcnow()
            groups_modified += 1

        db.flush()
        owned_expenses = db.query(Expense).filter(Expense.owner_email == email).all()
        for expense in owned_expenses:
            outcome = _strip_from_expense(db, expense, members)
            if outcome == "deleted":
                expenses_deleted += 1
            elif outcome == "modified":
                expenses_modified += 1

        aliases_deleted = (
            db.query(MemberAlias)
            .filter(MemberAlias.account_email == email)
            .filter(
                or_(
                    MemberAlias.alias_member_id.in_(members),
                    MemberAlias.canonical_member_id.in_(members),
                )
            )
            .delete(synchronize_session=False)
        )

        log_event(
            db,
            event_type=EVENT_FRIEND_REMOVED_UNLINKED,
            actor_type="user",
            actor_id=account.id,
            target_type="relationship",
            target_ids=[record.member_id],
            count_affected=len(records),
            request_id=resolve_request_id(context),
            metadata={
                "groups_deleted": groups_deleted,
                "groups_modified": groups_modified,
                "expenses_deleted": expenses_deleted,
                "expenses_modified": expenses_modified,
                "aliases_deleted": aliases_deleted,
            },
        )
        db.commit()
        logger.info("friend_removed_unlinked", extra={"member_id": member_value})
        return {
            "status": "ok",
            "member_id": member_value,
            "records_deleted": len(records),
            "groups_deleted": groups_deleted,
            "groups_modified": groups_modified,
            "expenses_deleted": expenses_deleted,
            "expenses_modified": expenses_modified,
            "aliases_deleted": aliases_deleted,
        }
    finally:
        db.close()


# =============================================================================
# Account deletion
# =============================================================================

def _unlink_records_pointing_at(db, account: Account) -> int:
    records = (
        db.query(AccountFriend)
        .filter(
            or_(
                AccountFriend.linked_account_id == account.id,
                AccountFriend.linked_account_email == account.email,
            )
        )
        .all()
    )
    now = _utcnow()
    for record in records:
        unlink_record(record)
        record.updated_at = now
    return len(records)


def _delete_requests_involving(db, account: Account) -> int:
    """Friend and link requests the account sent or received."""
    friend_requests = (
        db.query(FriendRequest)
        .filter(
            or_(
                FriendRequest.sender_account_id == account.id,
                FriendRequest.sender_email == account.email,
                FriendRequest.recipient_email == account.email,
            )
        )
        .delete(synchronize_session=False)
    )
    link_requests = (
        db.query(LinkRequest)
        .filter(
            or_(
                LinkRequest.requester_account_id == account.id,
                LinkRequest.requester_email == account.email,
                LinkRequest.recipient_email == account.email,
            )
        )
        .delete(synchronize_session=False)
    )
    return friend_requests + link_requests


def _delete_own_records(db, account: Account) -> int:
    return (
        db.query(AccountFriend)
        .filter(AccountFriend.account_email == account.email)
        .delete(synchronize_session=False)
    )


@service_tool
def account_self_delete(context: Optional[RequestContext] = None) -> dict:
    """
    Delete the acting account.

    Other accounts keep their records of this person but lose the link.
    Groups, expenses and alias edges are retained as history.
    """
    email = require_account_email(context)

    db = DB.SessionLocal()
    try:
        account = require_account(db, email)
        account_id = account.id
        records_unlinked = _unlink_records_pointing_at(db, account)
        records_deleted = _delete_own_records(db, account)
        requests_deleted = _delete_requests_involving(db, account)
        db.delete(account)

        log_event(
            db,
            event_type=EVENT_ACCOUNT_SELF_DELETED,
            actor_type="user",
            actor_id=account_id,
            target_type="account",
            target_ids=[account_id],
            count_affected=1,
            request_id=resolve_request_id(context),
            metadata={
                "records_unlinked": records_unlinked,
                "records_deleted": records_deleted,
                "requests_deleted": requests_deleted,
            },
        )
        db.commit()
        logger.info("account_self_deleted", extra={"account_id": account_id})
        return {
            "status": "ok",
            "account_id": account_id,
            "records_unlinked": records_unlinked,
            "records_deleted": records_deleted,
            "requests_deleted": requests_deleted,
        }
    finally:
        db.close()


@service_tool
def account_hard_delete(email: str, reason: Optional[str] = None) -> dict:
    """
    Administrative removal of an account and everything it owns.

    Not reachable through the public API; run it from the operator CLI.
    """
    email_value = _normalize_email(email)

    db = DB.SessionLocal()
    try:
        account = require_account(db, email_value, field="email")
        account_id = account.id

        groups = db.query(Group).filter(Group.owner_email == email_value).all()
        group_ids = [group.id for group in groups]
        expenses_deleted = (
            db.query(Expense)
            .filter(or_(Expense.owner_email == email_value, Expense.group_id.in_(group_ids)))
            .delete(synchronize_session=False)
        )
        for group in groups:
            db.delete(group)

        aliases_deleted = (
            db.query(MemberAlias)
            .filter(MemberAlias.account_email == email_value)
            .delete(synchronize_session=False)
        )
        records_unlinked = _unlink_records_pointing_at(db, account)
        records_deleted = _delete_own_records(db, account)
        requests_deleted = _delete_requests_involving(db, account)
        db.delete(account)

        log_event(
            db,
            event_type=EVENT_ACCOUNT_HARD_DELETED,
            actor_type="admin",
            target_type="account",
            target_ids=[account_id],
            count_affected=1,
            reason=reason,
            metadata={
                "groups_deleted": len(groups),
                "expenses_deleted": expenses_deleted,
                "aliases_deleted": aliases_deleted,
                "records_unlinked": records_unlinked,
                "records_deleted": records_deleted,
                "requests_deleted": requests_deleted,
            },
        )
        db.commit()
        logger.warning("account_hard_deleted", extra={"account_id": account_id})
        return {
            "status": "ok",
            "account_id": account_id,
            "groups_deleted": len(groups),
            "expenses_deleted": expenses_deleted,
            "aliases_deleted": aliases_deleted,
            "records_unlinked": records_unlinked,
            "records_deleted": records_deleted,
            "requests_deleted": requests_deleted,
        }
    finally:
        db.close()


__all__ = [
    "friend_remove_linked",
    "friend_remove_unlinked",
    "account_self_delete",
    "account_hard_delete",
]
