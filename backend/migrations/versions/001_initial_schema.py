"""Initial schema: businesses, rank batch runs and items, rank checks, credits, notifications.

Revision ID: 001
Revises:
Create Date: 2026-09-14
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Businesses
    op.create_table(
        "businesses",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("account_id", postgresql.UUID(as_uuid=True), unique=True, nullable=False, index=True),
        sa.Column("name", sa.String(255)),
        sa.Column("business_website", sa.String(500)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Rank batch runs
    op.create_table(
        "rank_batch_runs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("account_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("idempotency_key", sa.String(255)),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("total_keywords", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("processed_keywords", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("successful_checks", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("failed_checks", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("estimated_credits", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("total_credits_used", sa.Integer),
        sa.Column("scheduled_for", sa.DateTime(timezone=True)),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("error_message", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("idx_rank_batch_run_queue", "rank_batch_runs", ["status", "scheduled_for", "created_at"])
    op.create_index("idx_rank_batch_run_started", "rank_batch_runs", ["status", "started_at"])

    # Rank batch run items
    op.create_table(
        "rank_batch_run_items",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("batch_run_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("rank_batch_runs.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("keyword_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("search_term", sa.Text, nullable=False),
        sa.Column("location_code", sa.Integer),
        sa.Column("desktop_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("mobile_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("retry_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("error_message", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("idx_rank_batch_item_pending", "rank_batch_run_items", ["batch_run_id", "desktop_status", "mobile_status"])

    # Rank checks (append-only)
    op.create_table(
        "rank_checks",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("account_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("keyword_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("batch_run_id", postgresql.UUID(as_uuid=True), index=True),
        sa.Column("search_query_used", sa.Text, nullable=False),
        sa.Column("location_code", sa.Integer, nullable=False),
        sa.Column("device", sa.String(10), nullable=False),
        sa.Column("position", sa.Integer),
        sa.Column("found_url", sa.Text),
        sa.Column("checked_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_rank_check_keyword_device", "rank_checks", ["keyword_id", "device", "checked_at"])

    # Credit ledger
    op.create_table(
        "credit_ledger_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("account_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column("transaction_type", sa.String(50), nullable=False),
        sa.Column("idempotency_key", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("feature_type", sa.String(50)),
        sa.Column("description", sa.Text),
        sa.Column("extra_data", postgresql.JSONB, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Notifications
    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("account_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("notification_type", sa.String(50), nullable=False),
        sa.Column("payload", postgresql.JSONB, server_default=sa.text("'{}'::jsonb")),
        sa.Column("is_read", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("credit_ledger_entries")
    op.drop_table("rank_checks")
    op.drop_table("rank_batch_run_items")
    op.drop_table("rank_batch_runs")
    op.drop_table("businesses")
