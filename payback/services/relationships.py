"""
Relationship records: one account's view of one member identity.

Supports:
- Status parsing with legacy (NULL) rows read as friend
- Record lookup across an identity's aliases
- The group-membership hook that seeds group_peer records
- Nickname/display edits that never touch status
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from payback.context import RequestContext, require_account_email
from payback.db import DB
from payback.errors import NotFound
from payback.models import Account, AccountFriend, Group, RelationshipStatus
from payback.services.accounts import find_account_for_member
from payback.services.aliases import (
    equivalent_member_ids,
    resolve_canonical_member_id,
    same_identity,
)
from payback.services.shared import (
    _normalize_member_id,
    _utcnow,
    _validate_limit,
    _validate_optional_text,
    MAX_NAME_LENGTH,
    MAX_RESULT_LIMIT,
    logger,
    service_tool,
)

DEFAULT_FRIEND_NAME = "Unknown"


# =============================================================================
# Status read boundary
# =============================================================================

def parse_status(raw: Optional[str]) -> RelationshipStatus:
    """Parse a stored status; NULL is the legacy variant."""
    if raw is None:
        return RelationshipStatus.legacy
    if isinstance(raw, RelationshipStatus):
        return raw
    try:
        return RelationshipStatus(raw)
    except ValueError as exc:
        raise ValueError(f"unknown relationship status: {raw!r}") from exc


def effective_status(record_or_raw) -> RelationshipStatus:
    """Status as every policy check must see it: legacy reads as friend."""
    raw = record_or_raw.status if isinstance(record_or_raw, AccountFriend) else record_or_raw
    status = parse_status(raw)
    if status == RelationshipStatus.legacy:
        return RelationshipStatus.friend
    return status


def is_friend(record: Optional[AccountFriend]) -> bool:
    return record is not None and effective_status(record) == RelationshipStatus.friend


# =============================================================================
# Record lookup
# =============================================================================

def _preferred_record(records: Sequence[AccountFriend]) -> Optional[AccountFriend]:
    if not records:
        return None
    return sorted(
        records,
        key=lambda rec: (bool(rec.has_linked_account), rec.updated_at or rec.created_at),
        reverse=True,
    )[0]


def find_relationship_record(db, account_email: str, member_id: str) -> Optional[AccountFriend]:
    """
    The acting account's record for ``member_id``.

    An exact match wins; otherwise any record stored under an equivalent id.
    """
    exact = (
        db.query(AccountFriend)
        .filter(AccountFriend.account_email == account_email)
        .filter(AccountFriend.member_id == member_id)
        .first()
    )
    if exact is not None:
        return exact
    members = equivalent_member_ids(db, member_id)
    records = (
        db.query(AccountFriend)
        .filter(AccountFriend.account_email == account_email)
        .filter(AccountFriend.member_id.in_(members))
        .all()
    )
    return _preferred_record(records)


def find_records_for_identity(db, account_email: str, member_id: str) -> list[AccountFriend]:
    members = equivalent_member_ids(db, member_id)
    return (
        db.query(AccountFriend)
        .filter(AccountFriend.account_email == account_email)
        .filter(AccountFriend.member_id.in_(members))
        .all()
    )


def link_record_to_account(record: AccountFriend, account: Account) -> None:
    record.has_linked_account = True
    record.linked_account_id = account.id
    record.linked_account_email = account.email


def unlink_record(record: AccountFriend) -> None:
    record.has_linked_account = False
    record.linked_account_id = None
    record.linked_account_email = None


def set_status(record: AccountFriend, status: RelationshipStatus) -> None:
    if status == RelationshipStatus.legacy:
        raise ValueError("legacy status cannot be written")
    record.status = status.value
    record.updated_at = _utcnow()


def new_record(
    db,
    *,
    account_email: str,
    member_id: str,
    status: RelationshipStatus,
    name: Optional[str] = None,
    linked_account: Optional[Account] = None,
) -> AccountFriend:
    now = _utcnow()
    record = AccountFriend(
        account_email=account_email,
        member_id=member_id,
        name=(name or "").strip() or DEFAULT_FRIEND_NAME,
        status=status.value,
        prefer_nickname=False,
        has_linked_account=False,
        created_at=now,
        updated_at=now,
    )
    if linked_account is not None:
        link_record_to_account(record, linked_account)
    db.add(record)
    return record


def serialize_relationship(record: AccountFriend, alias_member_ids: Optional[Iterable[str]] = None) -> dict:
    stored = parse_status(record.status)
    data = {
        "member_id": record.member_id,
        "name": record.name,
        "nickname": record.nickname,
        "original_name": record.original_name,
        "original_nickname": record.original_nickname,
        "prefer_nickname": bool(record.prefer_nickname),
        "profile_avatar_color": record.profile_avatar_color,
        "has_linked_account": bool(record.has_linked_account),
        "linked_account_id": record.linked_account_id,
        "linked_account_email": record.linked_account_email,
        "status": effective_status(record).value,
        "is_legacy_status": stored == RelationshipStatus.legacy,
        "updated_at": record.updated_at.isoformat() if record.updated_at else None,
    }
    if alias_member_ids is not None:
        data["alias_member_ids"] = sorted(alias_member_ids)
    return data


# =============================================================================
# Group membership hook
# =============================================================================

def _group_member_ids(group: Group) -> list[str]:
    return [member["id"] for member in (group.members or []) if member.get("id")]


def _group_member_names(group: Group) -> dict[str, Optional[str]]:
    return {member["id"]: member.get("name") for member in (group.members or []) if member.get("id")}


def on_members_added(db, group: Group, new_member_ids: Sequence[str]) -> dict:
    """
    Seed group_peer records between newly added members and everyone else.

    Existing records are never modified, so a friend stays a friend and a
    group_peer is never promoted. Only members that own an account get
    records (placeholders have no view of anyone). Does not commit.
    """
    members = _group_member_ids(group)
    names = _group_member_names(group)
    new_ids = [member_id for member_id in new_member_ids if member_id in members]

    accounts: dict[str, Optional[Account]] = {}

    def account_for(member_id: str) -> Optional[Account]:
        if member_id not in accounts:
            accounts[member_id] = find_account_for_member(db, member_id)
        return accounts[member_id]

    pairs: list[tuple[Account, str]] = []
    for new_id in new_ids:
        for other_id in members:
            if other_id == new_id:
                continue
            observer = account_for(new_id)
            if observer is not None:
                pairs.append((observer, other_id))
            observer = account_for(other_id)
            if observer is not None:
                pairs.append((observer, new_id))

    owner = db.query(Account).filter(Account.email == group.owner_email).first()
    if owner is not None:
        for new_id in new_ids:
            pairs.append((owner, new_id))

    created = 0
    preserved = 0
    seen: set[tuple[str, str]] = set()
    for observer, subject_id in pairs:
        key = (observer.email, subject_id)
        if key in seen:
            continue
        seen.add(key)
        if same_identity(db, observer.linked_member_id, subject_id):
            continue
        if find_relationship_record(db, observer.email, subject_id) is not None:
            preserved += 1
            continue
        subject_account = account_for(subject_id)
        name = names.get(subject_id) or (subject_account.display_name if subject_account else None)
        new_record(
            db,
            account_email=observer.email,
            member_id=subject_id,
            status=RelationshipStatus.group_peer,
            name=name,
            linked_account=subject_account,
        )
        db.flush()
        created += 1

    if created:
        logger.info(
            "group_peer_records_created",
            extra={"group_id": group.id, "records_created": created, "records_preserved": preserved},
        )
    return {"created": created, "preserved": preserved}


# =============================================================================
# Service tools
# =============================================================================

def _normalize_nickname(name: str, nickname: Optional[str]) -> Optional[str]:
    if nickname is None:
        return None
    value = nickname.strip()
    if not value or value.lower() == name.strip().lower():
        return None
    return value


@service_tool
def friend_upsert(
    member_id: str,
    name: Optional[str] = None,
    nickname: Optional[str] = None,
    original_name: Optional[str] = None,
    original_nickname: Optional[str] = None,
    prefer_nickname: Optional[bool] = None,
    profile_avatar_color: Optional[str] = None,
    context: Optional[RequestContext] = None,
) -> dict:
    """
    Create or edit the display fields of a relationship record.

    Status and link fields are owned by the handshake and are left alone.
    A record created here is an unlinked group_peer placeholder.
    """
    email = require_account_email(context)
    member_value = _normalize_member_id(member_id)
    for field, value in (
        ("name", name),
        ("nickname", nickname),
        ("original_name", original_name),
        ("original_nickname", original_nickname),
    ):
        _validate_optional_text(value, field, MAX_NAME_LENGTH)
    _validate_optional_text(profile_avatar_color, "profile_avatar_color", 32)

    db = DB.SessionLocal()
    try:
        record = find_relationship_record(db, email, member_value)
        created = False
        if record is None:
            record = new_record(
                db,
                account_email=email,
                member_id=member_value,
                status=RelationshipStatus.group_peer,
                name=name,
            )
            created = True
        elif name is not None:
            record.name = name.strip() or DEFAULT_FRIEND_NAME

        if nickname is not None:
            record.nickname = _normalize_nickname(record.name, nickname)
        elif record.nickname and record.nickname.strip().lower() == record.name.strip().lower():
            record.nickname = None
        if original_name is not None:
            record.original_name = original_name.strip() or None
        if original_nickname is not None:
            record.original_nickname = original_nickname.strip() or None
        if prefer_nickname is not None:
            record.prefer_nickname = bool(prefer_nickname)
        if profile_avatar_color is not None:
            record.profile_avatar_color = profile_avatar_color.strip() or None
        record.updated_at = _utcnow()

        db.commit()
        return {
            "status": "ok",
            "created": created,
            "friend": serialize_relationship(record),
        }
    finally:
        db.close()


@service_tool
def friend_get(
    member_id: str,
    context: Optional[RequestContext] = None,
) -> dict:
    """Return the acting account's record for a member, matched across aliases."""
    email = require_account_email(context)
    member_value = _normalize_member_id(member_id)

    db = DB.SessionLocal()
    try:
        record = find_relationship_record(db, email, member_value)
        if record is None:
            raise NotFound(f"No relationship with member {member_value}", field="member_id")
        members = equivalent_member_ids(db, record.member_id)
        return {
            "status": "ok",
            "canonical_member_id": resolve_canonical_member_id(db, record.member_id),
            "friend": serialize_relationship(record, members - {record.member_id}),
        }
    finally:
        db.close()


@service_tool
def friend_list(
    status: Optional[str] = None,
    limit: int = 100,
    context: Optional[RequestContext] = None,
) -> dict:
    """
    List the acting account's relationships, one entry per person.

    Records stored under equivalent member ids are collapsed; the linked
    record wins, then the most recently updated.
    """
    email = require_account_email(context)
    _validate_limit(limit, "limit", MAX_RESULT_LIMIT)
    status_filter = None
    if status is not None:
        status_filter = effective_status(status.strip().lower())

    db = DB.SessionLocal()
    try:
        records = (
            db.query(AccountFriend)
            .filter(AccountFriend.account_email == email)
            .order_by(AccountFriend.name.asc(), AccountFriend.id.asc())
            .all()
        )
        grouped: dict[str, list[AccountFriend]] = {}
        for record in records:
            canonical = resolve_canonical_member_id(db, record.member_id)
            grouped.setdefault(canonical, []).append(record)

        friends = []
        for canonical, group_records in grouped.items():
            chosen = _preferred_record(group_records)
            if status_filter is not None and effective_status(chosen) != status_filter:
                continue
            aliases = {rec.member_id for rec in group_records} | {canonical}
            entry = serialize_relationship(chosen, aliases - {chosen.member_id})
            entry["canonical_member_id"] = canonical
            friends.append(entry)
        friends.sort(key=lambda item: (item["name"] or "").lower())
        friends = friends[:limit]
        return {"status": "ok", "count": len(friends), "friends": friends}
    finally:
        db.close()


__all__ = [
    "DEFAULT_FRIEND_NAME",
    "parse_status",
    "effective_status",
    "is_friend",
    "find_relationship_record",
    "find_records_for_identity",
    "link_record_to_account",
    "unlink_record",
    "set_status",
    "new_record",
    "serialize_relationship",
    "on_members_added",
    "friend_upsert",
    "friend_get",
    "friend_list",
]
