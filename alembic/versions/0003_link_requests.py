"""Add link_requests for claiming placeholder contacts.

Revision ID: 0003_link_requests
Revises: 0002_relationship_status
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "0003_link_requests"
down_revision = "0002_relationship_status"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "link_requests",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("requester_account_id", sa.String(255), nullable=False),
        sa.Column("requester_email", sa.String(255), nullable=False),
        sa.Column("recipient_email", sa.String(255), nullable=False),
        sa.Column("target_member_id", sa.String(64), nullable=False),
        sa.Column("target_member_name", sa.String(255), nullable=True),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["requester_account_id"], ["accounts.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_link_requests_recipient_status",
        "link_requests",
        ["recipient_email", "status"],
    )
    op.create_index("ix_link_requests_requester_email", "link_requests", ["requester_email"])
    op.create_index("ix_link_requests_target_member_id", "link_requests", ["target_member_id"])


def downgrade() -> None:
    op.drop_index("ix_link_requests_target_member_id", table_name="link_requests")
    op.drop_index("ix_link_requests_requester_email", table_name="link_requests")
    op.drop_index("ix_link_requests_recipient_status", table_name="link_requests")
    op.drop_table("link_requests")
