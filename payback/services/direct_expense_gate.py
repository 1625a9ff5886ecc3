"""
Authorization gate for expenses in direct (two-person) contexts.

Only a confirmed friendship qualifies. Sharing a group, or having a
request outstanding, does not.
"""

from __future__ import annotations

from typing import Optional, Sequence

from payback.context import RequestContext, require_account_email
from payback.db import DB
from payback.errors import NotFound, PolicyViolation, Unauthorized
from payback.models import Account, Group, RelationshipStatus
from payback.services.accounts import require_account
from payback.services.aliases import equivalent_member_ids, member_in_list, resolve_canonical_member_id
from payback.services.relationships import effective_status, find_relationship_record
from payback.services.shared import (
    _normalize_member_ids,
    _validate_required_text,
    MAX_LIST_ITEMS,
    MAX_SHORT_TEXT_LENGTH,
    logger,
    service_tool,
)


def load_group(db, group_id: str) -> Group:
    group = db.get(Group, group_id)
    if group is None:
        raise NotFound(f"Group not found: {group_id}", field="group_id")
    return group


def group_member_ids(group: Group) -> list[str]:
    return [member["id"] for member in (group.members or []) if member.get("id")]


def require_group_access(db, account: Account, group: Group) -> None:
    if group.owner_email == account.email:
        return
    if member_in_list(db, account.linked_member_id, group_member_ids(group)):
        return
    raise Unauthorized("Not a member of this group", field="group_id")


def authorize_direct_expense(
    db,
    account: Account,
    group: Group,
    participant_ids: Sequence[str],
) -> dict:
    """
    Allow or reject an expense write for ``account`` in ``group``.

    Non-direct groups pass through. In a direct group the single other
    person (from the participants or the group itself) must resolve to a
    record whose effective status is friend. Raises PolicyViolation
    otherwise.
    """
    if not group.is_direct:
        return {"authorized": True, "direct": False, "checked_member_ids": []}

    require_group_access(db, account, group)

    own_members = equivalent_member_ids(db, account.linked_member_id)
    own_canonical = resolve_canonical_member_id(db, account.linked_member_id)
    others: dict[str, str] = {}
    for participant_id in [*participant_ids, *group_member_ids(group)]:
        if participant_id in own_members:
            continue
        canonical = resolve_canonical_member_id(db, participant_id)
        if canonical == own_canonical:
            continue
        others.setdefault(canonical, participant_id)

    if len(others) > 1:
        raise PolicyViolation(
            "A direct expense can involve only one other person",
            data={"participant_ids": sorted(others.values())},
        )

    for canonical, participant_id in others.items():
        record = find_relationship_record(db, account.email, participant_id)
        status = effective_status(record).value if record is not None else None
        if status != RelationshipStatus.friend.value:
            logger.info(
                "direct_expense_denied",
                extra={"group_id": group.id, "member_id": participant_id, "relationship_status": status},
            )
            raise PolicyViolation(
                "Direct expenses require an accepted friendship",
                data={"member_id": participant_id, "relationship_status": status},
            )

    return {"authorized": True, "direct": True, "checked_member_ids": sorted(others.keys())}


@service_tool
def expense_authorize_direct(
    group_id: str,
    participant_ids: Sequence[str],
    context: Optional[RequestContext] = None,
) -> dict:
    """Check whether the acting account may record an expense in a group."""
    email = require_account_email(context)
    _validate_required_text(group_id, "group_id", MAX_SHORT_TEXT_LENGTH)
    participants = _normalize_member_ids(participant_ids, "participant_ids", MAX_LIST_ITEMS)

    db = DB.SessionLocal()
    try:
        account = require_account(db, email)
        group = load_group(db, group_id.strip())
        result = authorize_direct_expense(db, account, group, participants)
        return {"status": "ok", **result}
    finally:
        db.close()


__all__ = [
    "load_group",
    "group_member_ids",
    "require_group_access",
    "authorize_direct_expense",
    "expense_authorize_direct",
]
