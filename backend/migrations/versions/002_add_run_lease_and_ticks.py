"""Add selection lease to rank_batch_runs and the rank_batch_ticks log.

Revision ID: 002
Revises: 001
Create Date: 2026-10-02
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Lease taken by the tick advancing a run, so overlapping ticks skip it
    op.add_column("rank_batch_runs", sa.Column("lease_token", sa.String(64), nullable=True))
    op.add_column("rank_batch_runs", sa.Column("lease_expires_at", sa.DateTime(timezone=True), nullable=True))

    op.create_table(
        "rank_batch_ticks",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("finished_at", sa.DateTime(timezone=True)),
        sa.Column("status", sa.String(20), nullable=False, server_default="running"),
        sa.Column("batch_run_id", postgresql.UUID(as_uuid=True), index=True),
        sa.Column("items_processed", sa.Integer, server_default=sa.text("0")),
        sa.Column("reaped_runs", sa.Integer, server_default=sa.text("0")),
        sa.Column("error_message", sa.Text),
    )


def downgrade() -> None:
    op.drop_table("rank_batch_ticks")
    op.drop_column("rank_batch_runs", "lease_expires_at")
    op.drop_column("rank_batch_runs", "lease_token")
