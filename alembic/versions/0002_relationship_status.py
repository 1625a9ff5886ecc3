"""Add relationship status to account_friends.

Existing rows keep status NULL (legacy, read as friend) until the
backfill runs: python admin.py backfill-status

Revision ID: 0002_relationship_status
Revises: 0001_initial_schema
Create Date: 2026-10-06
"""

from alembic import op
import sqlalchemy as sa


revision = "0002_relationship_status"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    with op.batch_alter_table("account_friends") as batch_op:
        batch_op.add_column(sa.Column("status", sa.String(32), nullable=True))
        batch_op.add_column(sa.Column("status_before_request", sa.String(32), nullable=True))
    op.create_index("ix_account_friends_status", "account_friends", ["status"])


def downgrade() -> None:
    op.drop_index("ix_account_friends_status", table_name="account_friends")
    with op.batch_alter_table("account_friends") as batch_op:
        batch_op.drop_column("status_before_request")
        batch_op.drop_column("status")
