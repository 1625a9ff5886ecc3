"""
Group and expense call sites for the membership hook and the direct gate.

Balances and split math live elsewhere; amounts are stored as given.
"""

from __future__ import annotations

from typing import Optional, Sequence
import uuid

from payback.context import RequestContext, require_account_email
from payback.db import DB
from payback.errors import NotFound, PolicyViolation, Unauthorized, ValidationIssue
from payback.models import Expense, Group
from payback.services.accounts import require_account
from payback.services.aliases import canonical_member_map, member_in_list
from payback.services.direct_expense_gate import (
    authorize_direct_expense,
    group_member_ids,
    load_group,
    require_group_access,
)
from payback.services.relationships import on_members_added
from payback.services.shared import (
    _normalize_member_id,
    _utcnow,
    _validate_optional_text,
    _validate_required_text,
    MAX_LIST_ITEMS,
    MAX_NAME_LENGTH,
    MAX_SHORT_TEXT_LENGTH,
    logger,
    service_tool,
)


def _normalize_members(members: Sequence[dict], field: str = "members") -> list[dict]:
    if not isinstance(members, (list, tuple)):
        raise ValidationIssue(f"{field} must be a list", field=field, error_type="invalid_type")
    if len(members) > MAX_LIST_ITEMS:
        raise ValidationIssue(f"{field} exceeds max items {MAX_LIST_ITEMS}", field=field, error_type="max_items")
    normalized: list[dict] = []
    seen: set[str] = set()
    for member in members:
        if isinstance(member, str):
            member = {"id": member}
        if not isinstance(member, dict):
            raise ValidationIssue(f"{field} must contain objects", field=field, error_type="invalid_type")
        member_id = _normalize_member_id(member.get("id"), field=field)
        name = member.get("name")
        _validate_optional_text(name, f"{field}.name", MAX_NAME_LENGTH)
        if member_id in seen:
            continue
        seen.add(member_id)
        normalized.append({"id": member_id, "name": (name or "").strip() or None})
    return normalized


def serialize_group(group: Group) -> dict:
    return {
        "id": group.id,
        "name": group.name,
        "owner_email": group.owner_email,
        "is_direct": bool(group.is_direct),
        "members": list(group.members or []),
        "created_at": group.created_at.isoformat() if group.created_at else None,
    }


def serialize_expense(expense: Expense) -> dict:
    return {
        "id": expense.id,
        "group_id": expense.group_id,
        "description": expense.description,
        "total_amount": expense.total_amount,
        "paid_by_member_id": expense.paid_by_member_id,
        "participant_member_ids": list(expense.participant_member_ids or []),
        "splits": list(expense.splits or []),
        "created_at": expense.created_at.isoformat() if expense.created_at else None,
    }


# =============================================================================
# Groups
# =============================================================================

@service_tool
def group_create(
    name: str,
    members: Sequence[dict],
    is_direct: bool = False,
    context: Optional[RequestContext] = None,
) -> dict:
    """Create a group owned by the acting account and seed peer records."""
    email = require_account_email(context)
    _validate_required_text(name, "name", MAX_SHORT_TEXT_LENGTH)
    member_values = _normalize_members(members)

    db = DB.SessionLocal()
    try:
        owner = require_account(db, email)
        if not member_in_list(db, owner.linked_member_id, [m["id"] for m in member_values]):
            member_values.insert(0, {"id": owner.linked_member_id, "name": owner.display_name})
        if is_direct and len(member_values) != 2:
            raise ValidationIssue(
                "A direct group must have exactly two members",
                field="members",
                error_type="invalid_value",
            )

        now = _utcnow()
        group = Group(
            id=str(uuid.uuid4()),
            name=name.strip(),
            owner_email=owner.email,
            owner_account_id=owner.id,
            is_direct=bool(is_direct),
            members=member_values,
            created_at=now,
            updated_at=now,
        )
        db.add(group)
        db.flush()
        hook = on_members_added(db, group, [m["id"] for m in member_values])
        db.commit()
        logger.info("group_created", extra={"group_id": group.id, "is_direct": group.is_direct})
        return {"status": "ok", "group": serialize_group(group), "relationships": hook}
    finally:
        db.close()


@service_tool
def group_add_members(
    group_id: str,
    members: Sequence[dict],
    context: Optional[RequestContext] = None,
) -> dict:
    """Add members to a group; only identities not already present are added."""
    email = require_account_email(context)
    _validate_required_text(group_id, "group_id", MAX_SHORT_TEXT_LENGTH)
    member_values = _normalize_members(members)

    db = DB.SessionLocal()
    try:
        group = load_group(db, group_id.strip())
        if group.owner_email != email:
            raise Unauthorized("Only the group owner can add members", field="group_id")
        if group.is_direct:
            raise PolicyViolation(
                "Members cannot be added to a direct group",
                field="group_id",
                data={"group_id": group.id},
            )

        current = list(group.members or [])
        added: list[dict] = []
        for member in member_values:
            if member_in_list(db, member["id"], [m["id"] for m in current]):
                continue
            current.append(member)
            added.append(member)

        hook = {"created": 0, "preserved": 0}
        if added:
            group.members = current
            group.updated_at = _utcnow()
            db.flush()
            hook = on_members_added(db, group, [m["id"] for m in added])
        db.commit()
        return {
            "status": "ok",
            "added_member_ids": [m["id"] for m in added],
            "group": serialize_group(group),
            "relationships": hook,
        }
    finally:
        db.close()


@service_tool
def group_is_member(
    group_id: str,
    member_id: str,
    context: Optional[RequestContext] = None,
) -> dict:
    """Membership test that treats aliases as the same person."""
    email = require_account_email(context)
    _validate_required_text(group_id, "group_id", MAX_SHORT_TEXT_LENGTH)
    member_value = _normalize_member_id(member_id)

    db = DB.SessionLocal()
    try:
        account = require_account(db, email)
        group = load_group(db, group_id.strip())
        require_group_access(db, account, group)
        return {
            "status": "ok",
            "group_id": group.id,
            "member_id": member_value,
            "is_member": member_in_list(db, member_value, group_member_ids(group)),
        }
    finally:
        db.close()


# =============================================================================
# Expenses
# =============================================================================

def _normalize_splits(splits: Sequence[dict]) -> list[dict]:
    if not isinstance(splits, (list, tuple)) or not splits:
        raise ValidationIssue("splits must be a non-empty list", field="splits", error_type="required")
    if len(splits) > MAX_LIST_ITEMS:
        raise ValidationIssue(f"splits exceeds max items {MAX_LIST_ITEMS}", field="splits", error_type="max_items")
    normalized = []
    for split in splits:
        if not isinstance(split, dict):
            raise ValidationIssue("splits must contain objects", field="splits", error_type="invalid_type")
        amount = split.get("amount")
        if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount < 0:
            raise ValidationIssue("split amount must be a non-negative number", field="splits", error_type="invalid_value")
        normalized.append(
            {
                "id": split.get("id") or str(uuid.uuid4()),
                "member_id": _normalize_member_id(split.get("member_id"), field="splits"),
                "amount": float(amount),
                "is_settled": bool(split.get("is_settled", False)),
            }
        )
    return normalized


@service_tool
def expense_create(
    group_id: str,
    description: str,
    total_amount: float,
    paid_by_member_id: str,
    splits: Sequence[dict],
    context: Optional[RequestContext] = None,
) -> dict:
    """Record an expense; direct groups must pass the friendship gate first."""
    email = require_account_email(context)
    _validate_required_text(group_id, "group_id", MAX_SHORT_TEXT_LENGTH)
    _validate_optional_text(description, "description", MAX_SHORT_TEXT_LENGTH)
    if isinstance(total_amount, bool) or not isinstance(total_amount, (int, float)) or total_amount < 0:
        raise ValidationIssue("total_amount must be a non-negative number", field="total_amount", error_type="invalid_value")
    payer = _normalize_member_id(paid_by_member_id, field="paid_by_member_id")
    split_values = _normalize_splits(splits)

    db = DB.SessionLocal()
    try:
        account = require_account(db, email)
        group = load_group(db, group_id.strip())
        require_group_access(db, account, group)

        participants: list[str] = []
        for member_id in [payer, *[split["member_id"] for split in split_values]]:
            if member_id not in participants:
                participants.append(member_id)
        members = group_member_ids(group)
        for member_id in participants:
            if not member_in_list(db, member_id, members):
                raise ValidationIssue(
                    f"{member_id} is not a member of this group",
                    field="splits",
                    error_type="invalid_value",
                )

        authorize_direct_expense(db, account, group, participants)

        now = _utcnow()
        expense = Expense(
            id=str(uuid.uuid4()),
            group_id=group.id,
            owner_email=group.owner_email,
            description=(description or "").strip() or None,
            total_amount=float(total_amount),
            paid_by_member_id=payer,
            participant_member_ids=participants,
            splits=split_values,
            created_at=now,
            updated_at=now,
        )
        db.add(expense)
        db.commit()
        return {"status": "ok", "expense": serialize_expense(expense)}
    finally:
        db.close()


@service_tool
def expense_canonical_participants(
    expense_id: str,
    context: Optional[RequestContext] = None,
) -> dict:
    """Attribute each stored participant id to its canonical identity."""
    email = require_account_email(context)
    _validate_required_text(expense_id, "expense_id", MAX_SHORT_TEXT_LENGTH)

    db = DB.SessionLocal()
    try:
        account = require_account(db, email)
        expense = db.get(Expense, expense_id.strip())
        if expense is None:
            raise NotFound(f"Expense not found: {expense_id}", field="expense_id")
        require_group_access(db, account, load_group(db, expense.group_id))
        mapping = canonical_member_map(db, expense.participant_member_ids or [])
        return {
            "status": "ok",
            "expense_id": expense.id,
            "participants": mapping,
            "paid_by_canonical_member_id": mapping.get(expense.paid_by_member_id),
        }
    finally:
        db.close()


__all__ = [
    "serialize_group",
    "serialize_expense",
    "group_create",
    "group_add_members",
    "group_is_member",
    "expense_create",
    "expense_canonical_participants",
]
