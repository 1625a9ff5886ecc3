"""
Payback Identity Engine Database Models
PostgreSQL (production) / SQLite (local + tests) schema
"""

from datetime import datetime
from enum import Enum as PyEnum
import uuid
from sqlalchemy import (
    Column, Integer, String, Text, Float, Boolean,
    DateTime, ForeignKey, Index, UniqueConstraint, JSON, event
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

import payback.config as config
from payback.errors import ValidationIssue

DB_BACKEND_EFFECTIVE = config.DB_BACKEND_EFFECTIVE

JSON_TYPE = JSONB if DB_BACKEND_EFFECTIVE == "postgres" else JSON
ID_TYPE = String(36)


def _uuid_default() -> str:
    return str(uuid.uuid4())

Base = declarative_base()

# =============================================================================
# Enums
# =============================================================================

class RelationshipStatus(str, PyEnum):
    friend = "friend"
    group_peer = "group_peer"
    request_sent = "request_sent"
    # Parse result for rows written before the status column existed.
    # Never persisted; read as ``friend``.
    legacy = "legacy"


class FriendRequestStatus(str, PyEnum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"


class LinkRequestStatus(str, PyEnum):
    pending = "pending"
    accepted = "accepted"
    declined = "declined"


STORED_RELATIONSHIP_STATUSES = {
    RelationshipStatus.friend.value,
    RelationshipStatus.group_peer.value,
    RelationshipStatus.request_sent.value,
}

# =============================================================================
# Accounts
# =============================================================================

class Account(Base):
    """A verified login. Each account owns exactly one member identity."""
    __tablename__ = "accounts"

    id = Column(String(255), primary_key=True)
    email = Column(String(255), nullable=False, unique=True)
    display_name = Column(String(255))
    linked_member_id = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_accounts_linked_member_id", "linked_member_id"),
    )


# =============================================================================
# Member aliases (alias -> canonical edges)
# =============================================================================

class MemberAlias(Base):
    """
    Directed merge edge. The unique alias column is what guarantees a node
    has at most one outgoing edge, including under concurrent merges.
    """
    __tablename__ = "member_aliases"

    id = Column(Integer, primary_key=True, autoincrement=True)
    alias_member_id = Column(String(64), nullable=False, unique=True)
    canonical_member_id = Column(String(64), nullable=False)
    account_email = Column(String(255))
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_member_aliases_canonical", "canonical_member_id"),
        Index("ix_member_aliases_account_email", "account_email"),
    )


# =============================================================================
# Relationship records (one account's view of one member)
# =============================================================================

class AccountFriend(Base):
    __tablename__ = "account_friends"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_email = Column(String(255), nullable=False)
    member_id = Column(String(64), nullable=False)
    name = Column(String(255), nullable=False, default="Unknown")
    nickname = Column(String(255))
    original_name = Column(String(255))
    original_nickname = Column(String(255))
    prefer_nickname = Column(Boolean, default=False, nullable=False)
    profile_avatar_color = Column(String(32))
    has_linked_account = Column(Boolean, default=False, nullable=False)
    linked_account_id = Column(String(255))
    linked_account_email = Column(String(255))
    # NULL marks a record written before statuses existed
    status = Column(String(32), nullable=True)
    status_before_request = Column(String(32), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("account_email", "member_id", name="uq_account_friends_account_member"),
        Index("ix_account_friends_member_id", "member_id"),
        Index("ix_account_friends_linked_account_email", "linked_account_email"),
        Index("ix_account_friends_status", "status"),
    )


# =============================================================================
# Friend requests
# =============================================================================

class FriendRequest(Base):
    __tablename__ = "friend_requests"

    id = Column(ID_TYPE, primary_key=True, default=_uuid_default)
    sender_account_id = Column(String(255), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    sender_email = Column(String(255), nullable=False)
    recipient_email = Column(String(255), nullable=False)
    status = Column(String(32), nullable=False, default=FriendRequestStatus.pending.value)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_friend_requests_recipient_status", "recipient_email", "status"),
        Index("ix_friend_requests_sender_email", "sender_email"),
    )


# =============================================================================
# Link requests (claiming a placeholder contact)
# =============================================================================

class LinkRequest(Base):
    """
    Asks the owner of ``recipient_email`` to claim one of the requester's
    unlinked contacts as their own identity.
    """
    __tablename__ = "link_requests"

    id = Column(ID_TYPE, primary_key=True, default=_uuid_default)
    requester_account_id = Column(String(255), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    requester_email = Column(String(255), nullable=False)
    recipient_email = Column(String(255), nullable=False)
    target_member_id = Column(String(64), nullable=False)
    target_member_name = Column(String(255))
    status = Column(String(32), nullable=False, default=LinkRequestStatus.pending.value)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_link_requests_recipient_status", "recipient_email", "status"),
        Index("ix_link_requests_requester_email", "requester_email"),
        Index("ix_link_requests_target_member_id", "target_member_id"),
    )


# =============================================================================
# Groups & expenses (hook and gate call sites)
# =============================================================================

class Group(Base):
    __tablename__ = "groups"

    id = Column(ID_TYPE, primary_key=True, default=_uuid_default)
    name = Column(String(255), nullable=False)
    owner_email = Column(String(255), nullable=False)
    owner_account_id = Column(String(255))
    is_direct = Column(Boolean, default=False, nullable=False)
    # [{"id": member_id, "name": display name}, ...]
    members = Column(JSON_TYPE, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_groups_owner_email", "owner_email"),
    )


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(ID_TYPE, primary_key=True, default=_uuid_default)
    group_id = Column(ID_TYPE, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    owner_email = Column(String(255), nullable=False)
    description = Column(Text)
    total_amount = Column(Float, nullable=False, default=0.0)
    paid_by_member_id = Column(String(64), nullable=False)
    participant_member_ids = Column(JSON_TYPE, nullable=False, default=list)
    # [{"id": ..., "member_id": ..., "amount": ..., "is_settled": ...}, ...]
    splits = Column(JSON_TYPE, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_expenses_group_id", "group_id"),
        Index("ix_expenses_owner_email", "owner_email"),
    )


# =============================================================================
# Audit Events (metadata-only)
# =============================================================================

class AuditEvent(Base):
    __tablename__ = "audit_events"

    event_id = Column(ID_TYPE, primary_key=True, default=_uuid_default)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    event_type = Column(String(100), nullable=False)
    event_version = Column(Integer, default=1, nullable=False)
    actor_type = Column(String(50), nullable=False)
    actor_id = Column(String(255))
    target_type = Column(String(50), nullable=False)
    target_ids = Column(JSON_TYPE, nullable=False)
    count_affected = Column(Integer)
    reason = Column(Text)
    request_id = Column(String(255))
    metadata_ = Column("metadata", JSON_TYPE)

    __table_args__ = (
        Index("ix_audit_events_created_at", "created_at"),
        Index("ix_audit_events_event_type", "event_type"),
    )


@event.listens_for(AccountFriend, "before_insert")
@event.listens_for(AccountFriend, "before_update")
def _reject_unknown_status_before_write(mapper, connection, target) -> None:
    for field in ("status", "status_before_request"):
        value = getattr(target, field, None)
        if isinstance(value, PyEnum):
            value = value.value
            setattr(target, field, value)
        if value is not None and value not in STORED_RELATIONSHIP_STATUSES:
            raise ValidationIssue(
                f"{field} must be one of: friend, group_peer, request_sent",
                field=field,
                error_type="invalid_value",
            )


__all__ = [
    "Base",
    "RelationshipStatus",
    "FriendRequestStatus",
    "STORED_RELATIONSHIP_STATUSES",
    "Account",
    "MemberAlias",
    "AccountFriend",
    "FriendRequest",
    "LinkRequestStatus",
    "LinkRequest",
    "Group",
    "Expense",
    "AuditEvent",
]
