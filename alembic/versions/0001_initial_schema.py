"""Initial identity schema: accounts, aliases, friends, requests, groups, expenses, audit.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-09-02
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    is_postgres = bind.dialect.name == "postgresql"

    json_type = postgresql.JSONB() if is_postgres else sa.JSON()
    id_type = sa.String(36)

    # =============================================================================
    # Accounts
    # =============================================================================
    op.create_table(
        "accounts",
        sa.Column("id", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("linked_member_id", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_accounts_linked_member_id", "accounts", ["linked_member_id"])

    # =============================================================================
    # Member aliases
    # =============================================================================
    op.create_table(
        "member_aliases",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("alias_member_id", sa.String(64), nullable=False),
        sa.Column("canonical_member_id", sa.String(64), nullable=False),
        sa.Column("account_email", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("alias_member_id"),
    )
    op.create_index("ix_member_aliases_canonical", "member_aliases", ["canonical_member_id"])
    op.create_index("ix_member_aliases_account_email", "member_aliases", ["account_email"])

    # =============================================================================
    # Account friends (pre-status shape)
    # =============================================================================
    op.create_table(
        "account_friends",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("account_email", sa.String(255), nullable=False),
        sa.Column("member_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("nickname", sa.String(255), nullable=True),
        sa.Column("original_name", sa.String(255), nullable=True),
        sa.Column("original_nickname", sa.String(255), nullable=True),
        sa.Column("prefer_nickname", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("profile_avatar_color", sa.String(32), nullable=True),
        sa.Column("has_linked_account", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("linked_account_id", sa.String(255), nullable=True),
        sa.Column("linked_account_email", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("account_email", "member_id", name="uq_account_friends_account_member"),
    )
    op.create_index("ix_account_friends_member_id", "account_friends", ["member_id"])
    op.create_index(
        "ix_account_friends_linked_account_email",
        "account_friends",
        ["linked_account_email"],
    )

    # =============================================================================
    # Friend requests
    # =============================================================================
    op.create_table(
        "friend_requests",
        sa.Column("id", id_type, nullable=False),
        sa.Column("sender_account_id", sa.String(255), nullable=False),
        sa.Column("sender_email", sa.String(255), nullable=False),
        sa.Column("recipient_email", sa.String(255), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["sender_account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_friend_requests_recipient_status",
        "friend_requests",
        ["recipient_email", "status"],
    )
    op.create_index("ix_friend_requests_sender_email", "friend_requests", ["sender_email"])

    # =============================================================================
    # Groups & expenses
    # =============================================================================
    op.create_table(
        "groups",
        sa.Column("id", id_type, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("owner_email", sa.String(255), nullable=False),
        sa.Column("owner_account_id", sa.String(255), nullable=True),
        sa.Column("is_direct", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("members", json_type, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_groups_owner_email", "groups", ["owner_email"])

    op.create_table(
        "expenses",
        sa.Column("id", id_type, nullable=False),
        sa.Column("group_id", id_type, nullable=False),
        sa.Column("owner_email", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("total_amount", sa.Float(), nullable=False),
        sa.Column("paid_by_member_id", sa.String(64), nullable=False),
        sa.Column("participant_member_ids", json_type, nullable=False),
        sa.Column("splits", json_type, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["group_id"], ["groups.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_expenses_group_id", "expenses", ["group_id"])
    op.create_index("ix_expenses_owner_email", "expenses", ["owner_email"])

    # =============================================================================
    # Audit events
    # =============================================================================
    op.create_table(
        "audit_events",
        sa.Column("event_id", id_type, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("event_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("actor_type", sa.String(50), nullable=False),
        sa.Column("actor_id", sa.String(255), nullable=True),
        sa.Column("target_type", sa.String(50), nullable=False),
        sa.Column("target_ids", json_type, nullable=False),
        sa.Column("count_affected", sa.Integer(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("request_id", sa.String(255), nullable=True),
        sa.Column("metadata", json_type, nullable=True),
        sa.PrimaryKeyConstraint("event_id"),
    )
    op.create_index("ix_audit_events_created_at", "audit_events", ["created_at"])
    op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"])


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("expenses")
    op.drop_table("groups")
    op.drop_table("friend_requests")
    op.drop_table("account_friends")
    op.drop_table("member_aliases")
    op.drop_table("accounts")
